from pydantic import BaseModel, Field
from decimal import Decimal
from enum import IntEnum


class IvaRate(IntEnum):
    """Tasas de IVA vigentes en Paraguay (porcentaje)"""
    EXENTA = 0
    IVA_5 = 5
    IVA_10 = 10


class TaxTotals(BaseModel):
    """Bases imponibles e IVA por tasa, derivados de los items de la venta"""
    gravada10: Decimal = Field(default=Decimal('0.00'), description="Base gravada al 10%")
    gravada5: Decimal = Field(default=Decimal('0.00'), description="Base gravada al 5%")
    exenta: Decimal = Field(default=Decimal('0.00'), description="Monto exento")
    iva10: Decimal = Field(default=Decimal('0.00'), description="IVA 10%")
    iva5: Decimal = Field(default=Decimal('0.00'), description="IVA 5%")

    @property
    def iva_total(self) -> Decimal:
        return self.iva10 + self.iva5
