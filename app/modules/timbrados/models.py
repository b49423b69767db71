from app.database.database import Base
from sqlalchemy import Column, Integer, String, DateTime, Uuid
from uuid import uuid4
from app.common.mixins import TimestampMixin


class Timbrado(Base, TimestampMixin):
    """
    Autorización fiscal de la SET para emitir facturas

    Vigencia [issued_at, expires_at] en hora local del negocio. El número de
    factura es "{establishment}-{branch}-{correlativo de 6 dígitos}".
    """
    __tablename__ = "timbrados"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid4)
    code = Column(String(8), nullable=False, unique=True, index=True)  # timbrado de 8 dígitos
    issued_at = Column(DateTime, nullable=False, index=True)
    expires_at = Column(DateTime, nullable=False, index=True)
    establishment = Column(String(3), nullable=False, default="001")
    branch = Column(String(3), nullable=False, default="001")
    last_invoice_number = Column(Integer, nullable=False, default=0)  # correlativo interno
    max_invoices = Column(Integer, nullable=False, default=999999)

    def is_active(self, now) -> bool:
        return self.issued_at <= now <= self.expires_at

    @property
    def remaining_invoices(self) -> int:
        return max(self.max_invoices - self.last_invoice_number, 0)
