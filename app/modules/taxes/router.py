from fastapi import APIRouter, Depends
from typing import List

from app.modules.auth.dependencies import AuthDependencies
from app.modules.auth.schemas import AuthContext
from app.modules.taxes.calculator import TaxAggregator, get_paraguayan_iva_rates
from app.modules.taxes.schemas import TaxTotals
from app.modules.sales.schemas import LineItemIn

router = APIRouter(prefix="/taxes", tags=["Taxes"])


@router.get("/iva-rates")
def list_iva_rates(
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """
    Listar las tasas de IVA disponibles (10%, 5% y exenta)
    """
    return get_paraguayan_iva_rates()


@router.post("/preview", response_model=TaxTotals)
def preview_totals(
    items: List[LineItemIn],
    auth_context: AuthContext = Depends(AuthDependencies.require_any_role())
):
    """
    Calcular los totales fiscales de una lista de items sin crear la venta

    Útil para mostrar gravadas e IVA en el carrito antes de confirmar.
    """
    return TaxAggregator.aggregate(items)
