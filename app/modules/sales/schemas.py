from pydantic import BaseModel, Field, field_validator, model_validator
from decimal import Decimal
from typing import Optional, List, Dict
from uuid import UUID
from datetime import date, datetime

from app.common.validators import normalize_ruc
from app.modules.sales.models import SaleStatus, SaleStage, SaleMode, PaymentMethod
from app.modules.taxes.calculator import compute_iva_amount, is_iva_consistent
from app.modules.taxes.schemas import IvaRate, TaxTotals


def _validate_ruc(v: Optional[str]) -> Optional[str]:
    return normalize_ruc(v) if v is not None else v


# Line Item Schemas
class LineItemIn(BaseModel):
    product_id: str = Field(..., min_length=1, max_length=64)
    variant_id: Optional[str] = Field(None, max_length=64)
    name: str = Field(..., min_length=1, max_length=200)
    unit: Optional[str] = Field(None, max_length=20)
    quantity: int = Field(..., gt=0, description="Cantidad debe ser mayor a 0")
    iva_rate: IvaRate
    iva_amount: Optional[Decimal] = Field(None, ge=0, description="IVA incluido en total_price; se calcula si no se envía")
    total_price: Decimal = Field(..., ge=0, description="Precio total con IVA incluido")

    @model_validator(mode='after')
    def validate_iva_amount(self):
        if self.iva_amount is None:
            self.iva_amount = compute_iva_amount(self.total_price, self.iva_rate)
        elif not is_iva_consistent(self.total_price, self.iva_rate, self.iva_amount):
            expected = compute_iva_amount(self.total_price, self.iva_rate)
            raise ValueError(
                f'El IVA informado ({self.iva_amount}) no corresponde a la tasa {int(self.iva_rate)}% '
                f'sobre {self.total_price} (esperado {expected})'
            )
        elif self.iva_rate == IvaRate.EXENTA:
            self.iva_amount = Decimal('0.00')
        return self


class LineItemOut(BaseModel):
    product_id: str
    variant_id: Optional[str] = None
    name: str
    unit: Optional[str] = None
    quantity: int
    iva_rate: int
    iva_amount: Decimal
    total_price: Decimal

    class Config:
        from_attributes = True


# Payment Schemas
class PaymentIn(BaseModel):
    payment_method: PaymentMethod
    total_amount: Decimal = Field(..., ge=0)
    date: Optional[datetime] = None


class PaymentOut(BaseModel):
    payment_method: PaymentMethod
    total_amount: Decimal
    date: datetime

    class Config:
        from_attributes = True


# Sale Schemas
class SaleCreate(BaseModel):
    products: List[LineItemIn]
    payment: List[PaymentIn] = Field(default_factory=list)
    ruc: Optional[str] = Field(None, max_length=20)
    customer_name: Optional[str] = Field(None, max_length=200)
    status: Optional[SaleStatus] = None
    mode: SaleMode = SaleMode.LOCAL
    invoiced: bool = Field(False, description="Facturar inmediatamente luego de crear la venta")

    @field_validator('ruc')
    @classmethod
    def validate_ruc(cls, v):
        return _validate_ruc(v)


class SaleUpdate(BaseModel):
    """Actualización completa (PUT). Los campos omitidos conservan su valor."""
    products: Optional[List[LineItemIn]] = None
    payment: Optional[List[PaymentIn]] = None
    ruc: Optional[str] = Field(None, max_length=20)
    customer_name: Optional[str] = Field(None, max_length=200)
    status: Optional[SaleStatus] = None
    mode: Optional[SaleMode] = None
    invoiced: Optional[bool] = None

    @field_validator('ruc')
    @classmethod
    def validate_ruc(cls, v):
        return _validate_ruc(v)


class SaleStatusUpdate(BaseModel):
    status: str = Field(..., description="Nuevo estado o la señal 'ready'")
    ruc: Optional[str] = Field(None, max_length=20)
    invoice: bool = Field(False, description="Facturar al completar la venta")

    @field_validator('ruc')
    @classmethod
    def validate_ruc(cls, v):
        return _validate_ruc(v)


class SaleOut(BaseModel):
    id: UUID
    daily_id: int
    business_date: str
    date: datetime
    products: List[LineItemOut]
    payment: List[PaymentOut]
    total_amount: Decimal
    totals: TaxTotals
    ruc: str
    customer_name: Optional[str] = None
    status: SaleStatus
    stage: SaleStage
    mode: SaleMode
    invoiced: bool
    invoice_number: Optional[str] = None
    timbrado_number: Optional[str] = None
    timbrado_init: Optional[datetime] = None
    timbrado_id: Optional[UUID] = None
    user_id: str
    user_name: Optional[str] = None
    updated_at: datetime

    class Config:
        from_attributes = True


class SaleList(BaseModel):
    sales: List[SaleOut]
    total: int
    limit: int
    offset: int
    status_counts: Dict[str, int] = Field(default_factory=dict)


class SaleFilters(BaseModel):
    status: Optional[SaleStatus] = None
    user_id: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    payment_method: Optional[PaymentMethod] = None
    ruc: Optional[str] = None
    product_name: Optional[str] = None
    invoiced: Optional[bool] = None


class InvoiceInfo(BaseModel):
    sale_id: UUID
    invoice_number: str
    timbrado_number: str
    timbrado_init: datetime
    timbrado_id: UUID


class DailyCounterOut(BaseModel):
    date: str
    last_daily_id: int
