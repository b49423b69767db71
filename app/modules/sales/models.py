"""
Modelos SQLAlchemy para el módulo de ventas

- Sale: venta del punto de venta con su estado, etapa y datos fiscales
- SaleLineItem: items de la venta (precio con IVA incluido)
- SalePayment: pagos registrados contra la venta

Las ventas nunca se borran: se retiran cancelándolas o anulándolas.
"""

from app.database.database import Base
from sqlalchemy import (
    Column, Integer, String, Boolean, DateTime, ForeignKey, Numeric, Enum, Uuid, UniqueConstraint
)
from sqlalchemy.orm import relationship
from uuid import uuid4
from decimal import Decimal
from app.common.mixins import TimestampMixin
from app.common.timeutils import utcnow
from app.common.validators import CONSUMIDOR_FINAL_RUC
from app.modules.taxes.schemas import TaxTotals
from app.modules.timbrados.models import Timbrado
import enum


# ===== ENUMS =====

class SaleStatus(str, enum.Enum):
    """Estados de la venta"""
    PENDING = "pending"       # Creada, sin cobrar por completo
    ORDERED = "ordered"       # Pedido tomado con pago parcial
    COMPLETED = "completed"   # Entregada y cobrada
    CANCELED = "canceled"     # Cancelada antes de completarse
    ANNULLED = "annulled"     # Anulada luego de completada


class SaleStage(str, enum.Enum):
    """Etapa operativa (cocina/entrega), derivada del estado"""
    PROCESSED = "processed"
    FINISHED = "finished"
    DELIVERED = "delivered"
    CLOSED = "closed"


class SaleMode(str, enum.Enum):
    """Modo de consumo"""
    LOCAL = "local"
    CARRY = "carry"
    DELIVERY = "delivery"


class PaymentMethod(str, enum.Enum):
    CASH = "cash"
    CARD = "card"
    QR = "qr"
    TRANSFER = "transfer"


# ===== MODELOS =====

class Sale(Base, TimestampMixin):
    """
    Venta del punto de venta

    daily_id es el número de orden visible al cliente; se reinicia cada día
    calendario del negocio y es único por business_date. Los campos
    invoice_number/timbrado_* quedan en NULL hasta que la venta se factura.
    """
    __tablename__ = "sales"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    daily_id = Column(Integer, nullable=False)
    business_date = Column(String(10), nullable=False, index=True)  # YYYY-MM-DD local
    date = Column(DateTime, nullable=False, default=utcnow, index=True)

    # Importes
    total_amount = Column(Numeric(15, 2), nullable=False, default=0)
    gravada10 = Column(Numeric(15, 2), nullable=False, default=0)
    gravada5 = Column(Numeric(15, 2), nullable=False, default=0)
    exenta = Column(Numeric(15, 2), nullable=False, default=0)
    iva10 = Column(Numeric(15, 2), nullable=False, default=0)
    iva5 = Column(Numeric(15, 2), nullable=False, default=0)

    # Cliente
    ruc = Column(String(20), nullable=False, default=CONSUMIDOR_FINAL_RUC, index=True)
    customer_name = Column(String(200), nullable=True)

    status = Column(Enum(SaleStatus), nullable=False, default=SaleStatus.PENDING, index=True)
    stage = Column(Enum(SaleStage), nullable=False, default=SaleStage.PROCESSED)
    mode = Column(Enum(SaleMode), nullable=False, default=SaleMode.LOCAL)

    # Datos fiscales (solo una vez: invoiced nunca vuelve a False)
    invoiced = Column(Boolean, nullable=False, default=False, index=True)
    invoice_number = Column(String(20), nullable=True)
    timbrado_number = Column(String(8), nullable=True)
    timbrado_init = Column(DateTime, nullable=True)
    timbrado_id = Column(Uuid(as_uuid=True), ForeignKey("timbrados.id"), nullable=True, index=True)

    # Usuario autenticado que registró la venta
    user_id = Column(String(64), nullable=False, index=True)
    user_name = Column(String(100), nullable=True)

    # Relationships
    products = relationship(
        "SaleLineItem", back_populates="sale", cascade="all, delete-orphan",
        order_by="SaleLineItem.position"
    )
    payment = relationship(
        "SalePayment", back_populates="sale", cascade="all, delete-orphan",
        order_by="SalePayment.date"
    )
    timbrado = relationship(Timbrado)

    __table_args__ = (
        UniqueConstraint("business_date", "daily_id", name="uq_sale_business_date_daily_id"),
        UniqueConstraint("timbrado_id", "invoice_number", name="uq_sale_timbrado_invoice_number"),
    )

    @property
    def totals(self) -> TaxTotals:
        return TaxTotals(
            gravada10=self.gravada10 or Decimal("0.00"),
            gravada5=self.gravada5 or Decimal("0.00"),
            exenta=self.exenta or Decimal("0.00"),
            iva10=self.iva10 or Decimal("0.00"),
            iva5=self.iva5 or Decimal("0.00"),
        )

    @property
    def paid_amount(self) -> Decimal:
        return sum((Decimal(p.total_amount) for p in self.payment), Decimal("0.00"))


class SaleLineItem(Base):
    """Item de venta; total_price incluye IVA"""
    __tablename__ = "sale_line_items"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    sale_id = Column(Uuid(as_uuid=True), ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)

    # Snapshot del producto al momento de la venta (catálogo externo)
    product_id = Column(String(64), nullable=False, index=True)
    variant_id = Column(String(64), nullable=True)
    name = Column(String(200), nullable=False)
    unit = Column(String(20), nullable=True)

    quantity = Column(Integer, nullable=False)
    iva_rate = Column(Integer, nullable=False)  # 0, 5 o 10
    iva_amount = Column(Numeric(15, 2), nullable=False, default=0)
    total_price = Column(Numeric(15, 2), nullable=False)

    sale = relationship("Sale", back_populates="products")


class SalePayment(Base):
    __tablename__ = "sale_payments"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    sale_id = Column(Uuid(as_uuid=True), ForeignKey("sales.id", ondelete="CASCADE"), nullable=False, index=True)
    payment_method = Column(Enum(PaymentMethod), nullable=False)
    total_amount = Column(Numeric(15, 2), nullable=False)
    date = Column(DateTime, nullable=False, default=utcnow)

    sale = relationship("Sale", back_populates="payment")
