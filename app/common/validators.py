"""
Validadores específicos para Paraguay
"""
import re
from typing import Optional


# RUC genérico usado para ventas a consumidor final
CONSUMIDOR_FINAL_RUC = "44444401-7"


def calculate_ruc_dv(base: str, basemax: int = 11) -> Optional[int]:
    """
    Calcula el dígito verificador de un RUC paraguayo (módulo 11 de la SET).
    Retorna None si la base no es numérica.
    """
    cleaned = re.sub(r'[\.\s]', '', base or '')
    if not cleaned.isdigit():
        return None

    total = 0
    factor = 2
    for digit in reversed(cleaned):
        if factor > basemax:
            factor = 2
        total += int(digit) * factor
        factor += 1

    resto = total % 11
    return 11 - resto if resto > 1 else 0


def validate_paraguay_ruc(ruc: str) -> bool:
    """
    Valida un RUC con formato BASE-DV.
    - Base de 1 a 8 dígitos (cédula o número de contribuyente)
    - DV calculado con módulo 11
    """
    cleaned = re.sub(r'[\.\s]', '', ruc or '')
    match = re.match(r'^(\d{1,8})-(\d)$', cleaned)
    if not match:
        return False
    return calculate_ruc_dv(match.group(1)) == int(match.group(2))


def normalize_ruc(ruc: Optional[str]) -> str:
    """
    Limpia puntos y espacios del RUC. Sin RUC se usa el de consumidor final.
    Lanza ValueError si trae DV y no corresponde.
    """
    if ruc is None or not ruc.strip():
        return CONSUMIDOR_FINAL_RUC

    cleaned = re.sub(r'[\.\s]', '', ruc)
    # Cédulas sin DV o documentos extranjeros se aceptan tal cual
    if '-' in cleaned and not validate_paraguay_ruc(cleaned):
        raise ValueError(f"RUC inválido: {ruc}")
    return cleaned
