from pydantic import BaseModel, Field, model_validator
from typing import Optional, List
from uuid import UUID
from datetime import date, datetime


class TimbradoCreate(BaseModel):
    code: str = Field(..., pattern=r"^\d{8}$", description="El timbrado debe tener 8 dígitos")
    issued_at: Optional[date] = Field(None, description="Inicio de vigencia (por defecto hoy)")
    expires_at: date = Field(..., description="Fin de vigencia (válido todo ese día)")
    establishment: Optional[str] = Field(None, pattern=r"^\d{3}$")
    branch: Optional[str] = Field(None, pattern=r"^\d{3}$")
    max_invoices: Optional[int] = Field(None, gt=0)

    @model_validator(mode='after')
    def validate_dates(self):
        if self.issued_at and self.expires_at < self.issued_at:
            raise ValueError('La fecha de expiración no puede ser anterior a la fecha de emisión')
        return self


class TimbradoOut(BaseModel):
    id: UUID
    code: str
    issued_at: datetime
    expires_at: datetime
    establishment: str
    branch: str
    last_invoice_number: int
    max_invoices: int
    remaining_invoices: int
    created_at: datetime

    class Config:
        from_attributes = True


class TimbradoList(BaseModel):
    timbrados: List[TimbradoOut]
    total: int
