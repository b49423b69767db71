from sqlalchemy.orm import Session
from sqlalchemy.orm.attributes import set_committed_value
from sqlalchemy.exc import IntegrityError
from sqlalchemy import update, text
from datetime import datetime, timedelta
from typing import Callable, List, Optional
from uuid import UUID
import logging

from app.common.exceptions import (
    BaseApplicationError, ConflictError, NotFoundError, NoActiveTimbradoError,
    ExpiredError, QuotaExceededError
)
from app.common.timeutils import local_now, start_of_day, end_of_day
from app.core.config import settings
from app.modules.timbrados.models import Timbrado
from app.modules.timbrados.schemas import TimbradoCreate

logger = logging.getLogger(__name__)

# Clave del advisory lock que serializa el alta de timbrados en PostgreSQL
TIMBRADO_REGISTRY_LOCK = 7_301_202


class TimbradoService:
    """Registro de timbrados y emisión de números de factura"""

    def __init__(self, db: Session, clock: Callable[[], datetime] = local_now):
        self.db = db
        self.clock = clock

    def find_active(self, now: Optional[datetime] = None) -> Optional[Timbrado]:
        """
        Timbrado cuya vigencia contiene `now`

        Si hubiera más de uno (no debería pasar), gana el de emisión más antigua.
        """
        now = now or self.clock()
        return self.db.query(Timbrado).filter(
            Timbrado.issued_at <= now,
            Timbrado.expires_at >= now
        ).order_by(Timbrado.issued_at.asc()).first()

    def get_active(self) -> Timbrado:
        timbrado = self.find_active()
        if not timbrado:
            raise NoActiveTimbradoError("No hay timbrado activo")
        return timbrado

    def register(self, data: TimbradoCreate) -> Timbrado:
        """
        Dar de alta un timbrado

        Falla con ConflictError si ya hay uno activo en este momento o si el
        código ya existe. La expiración se lleva al final del día indicado más
        un día completo de gracia.
        """
        now = self.clock()
        try:
            self._lock_registry()

            active = self.find_active(now)
            if active:
                raise ConflictError(
                    "Ya existe un timbrado activo",
                    details={"active_code": active.code}
                )

            exists = self.db.query(Timbrado).filter(Timbrado.code == data.code).first()
            if exists:
                raise ConflictError("El timbrado ya existe", details={"code": data.code})

            issued_day = data.issued_at or now.date()
            timbrado = Timbrado(
                code=data.code,
                issued_at=start_of_day(issued_day),
                expires_at=end_of_day(data.expires_at) + timedelta(days=1),
                establishment=data.establishment or settings.TIMBRADO_DEFAULT_ESTABLISHMENT,
                branch=data.branch or settings.TIMBRADO_DEFAULT_BRANCH,
                max_invoices=data.max_invoices or settings.TIMBRADO_DEFAULT_MAX_INVOICES,
                last_invoice_number=0
            )
            self.db.add(timbrado)
            self.db.commit()
            self.db.refresh(timbrado)

            logger.info(f"Timbrado creado: {timbrado.code} vigente {timbrado.issued_at} -> {timbrado.expires_at}")
            return timbrado

        except BaseApplicationError:
            self.db.rollback()
            raise
        except IntegrityError:
            # Otro request registró el mismo código entre la verificación y el insert
            self.db.rollback()
            raise ConflictError("El timbrado ya existe", details={"code": data.code})

    def issue_invoice_number(self, timbrado: Timbrado, now: Optional[datetime] = None) -> str:
        """
        Emitir el próximo número de factura del timbrado

        El incremento es un único UPDATE condicionado a vigencia y cupo, por lo
        que dos emisiones concurrentes nunca obtienen el mismo correlativo.
        No hace commit: el número queda confirmado junto con la transacción
        del llamador (y se descarta si esta hace rollback).

        Raises:
            ExpiredError: `now` fuera de [issued_at, expires_at]
            QuotaExceededError: last_invoice_number >= max_invoices
        """
        now = now or self.clock()
        stmt = (
            update(Timbrado)
            .where(
                Timbrado.id == timbrado.id,
                Timbrado.issued_at <= now,
                Timbrado.expires_at >= now,
                Timbrado.last_invoice_number < Timbrado.max_invoices
            )
            .values(last_invoice_number=Timbrado.last_invoice_number + 1)
            .returning(Timbrado.last_invoice_number)
            .execution_options(synchronize_session=False)
        )
        correlative = self.db.execute(stmt).scalar_one_or_none()

        if correlative is None:
            self.db.refresh(timbrado)
            if not timbrado.is_active(now):
                raise ExpiredError("Timbrado expirado", details={"timbrado": timbrado.code})
            raise QuotaExceededError(
                "Se alcanzó el límite de facturas para este timbrado",
                details={"timbrado": timbrado.code, "max_invoices": timbrado.max_invoices}
            )

        set_committed_value(timbrado, "last_invoice_number", correlative)
        return self.format_invoice_number(timbrado.establishment, timbrado.branch, correlative)

    @staticmethod
    def format_invoice_number(establishment: str, branch: str, correlative: int) -> str:
        return f"{establishment}-{branch}-{correlative:06d}"

    def list_timbrados(self) -> List[Timbrado]:
        return self.db.query(Timbrado).order_by(Timbrado.issued_at.desc()).all()

    def get_timbrado(self, timbrado_id: UUID) -> Timbrado:
        timbrado = self.db.get(Timbrado, timbrado_id)
        if not timbrado:
            raise NotFoundError("Timbrado no encontrado")
        return timbrado

    def _lock_registry(self) -> None:
        """Serializa altas concurrentes (solo PostgreSQL; SQLite ya serializa escrituras)"""
        if self.db.get_bind().dialect.name == "postgresql":
            self.db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": TIMBRADO_REGISTRY_LOCK})
