"""
Helper para cálculo de IVA según la legislación paraguaya

Los precios de venta incluyen IVA. Para cada item:
    iva = total * tasa / (100 + tasa)
    gravada = total - iva
Los items exentos suman su total completo a "exenta".
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Protocol, Union

from app.modules.taxes.schemas import IvaRate, TaxTotals


CENT = Decimal('0.01')

# Diferencia máxima aceptada entre el IVA informado y el calculado
IVA_TOLERANCE = Decimal('1.00')


class TaxableItem(Protocol):
    iva_rate: Union[int, IvaRate]
    iva_amount: Decimal
    total_price: Decimal


def compute_iva_amount(total_price: Decimal, iva_rate: Union[int, IvaRate]) -> Decimal:
    """
    Calcular el IVA contenido en un precio con IVA incluido

    Args:
        total_price: Precio total del item (IVA incluido)
        iva_rate: Tasa en porcentaje (0, 5 o 10)

    Returns:
        IVA redondeado a 2 decimales (ROUND_HALF_UP)
    """
    rate = Decimal(int(iva_rate))
    if rate == 0:
        return Decimal('0.00')
    amount = Decimal(total_price) * rate / (Decimal(100) + rate)
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def is_iva_consistent(total_price: Decimal, iva_rate: Union[int, IvaRate], iva_amount: Decimal) -> bool:
    """Verificar que el IVA informado coincide con la tasa y el total"""
    expected = compute_iva_amount(total_price, iva_rate)
    return abs(Decimal(iva_amount) - expected) <= IVA_TOLERANCE


class TaxAggregator:
    """Agrega bases e IVA por tasa. Sin efectos secundarios ni I/O."""

    @staticmethod
    def aggregate(items: Iterable[TaxableItem]) -> TaxTotals:
        """
        Calcular los totales fiscales de una venta

        Una lista vacía devuelve todos los totales en cero; la regla de
        "al menos un item" se valida antes de llegar aquí.
        """
        gravada10 = gravada5 = exenta = iva10 = iva5 = Decimal('0.00')

        for item in items:
            total = Decimal(item.total_price)
            rate = IvaRate(int(item.iva_rate))

            if rate == IvaRate.EXENTA:
                exenta += total
                continue

            iva = Decimal(item.iva_amount)
            if rate == IvaRate.IVA_10:
                gravada10 += total - iva
                iva10 += iva
            else:
                gravada5 += total - iva
                iva5 += iva

        return TaxTotals(
            gravada10=gravada10,
            gravada5=gravada5,
            exenta=exenta,
            iva10=iva10,
            iva5=iva5,
        )


def get_paraguayan_iva_rates() -> list[dict]:
    """
    Obtener lista de tasas de IVA paraguayas
    Útil para interfaces de usuario
    """
    return [
        {
            "name": "IVA 10%",
            "rate": IvaRate.IVA_10,
            "applicable_to": "Tasa general de bienes y servicios"
        },
        {
            "name": "IVA 5%",
            "rate": IvaRate.IVA_5,
            "applicable_to": "Canasta básica, medicamentos, alquileres"
        },
        {
            "name": "Exenta",
            "rate": IvaRate.EXENTA,
            "applicable_to": "Productos exentos de IVA"
        }
    ]
