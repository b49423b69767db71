from sqlalchemy.orm import Session
from sqlalchemy.dialects import postgresql, sqlite
import logging

from app.common.exceptions import StoreUnavailableError
from app.modules.counters.models import DailyCounter

logger = logging.getLogger(__name__)

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


class DailyCounterService:
    """Numeración diaria de órdenes (dailyId)"""

    def __init__(self, db: Session):
        self.db = db

    def next_daily_id(self, date_key: str) -> int:
        """
        Incrementar y devolver el contador del día en una sola sentencia

        INSERT ... ON CONFLICT DO UPDATE ... RETURNING: crea la fila del día
        con seq=1 o incrementa la existente. Dos llamadas concurrentes nunca
        reciben el mismo valor. No hace commit; el llamador decide.
        """
        dialect = self.db.get_bind().dialect.name
        insert = _UPSERT_DIALECTS.get(dialect)
        if insert is None:
            raise StoreUnavailableError(f"Dialecto sin upsert atómico soportado: {dialect}")

        stmt = (
            insert(DailyCounter)
            .values(date=date_key, seq=1)
            .on_conflict_do_update(
                index_elements=[DailyCounter.date],
                set_={"seq": DailyCounter.seq + 1},
            )
            .returning(DailyCounter.seq)
        )
        seq = self.db.execute(stmt).scalar_one()
        logger.debug(f"Daily counter {date_key} -> {seq}")
        return seq

    def current_daily_id(self, date_key: str) -> int:
        """Último número asignado en el día (0 si todavía no hubo ventas)"""
        counter = self.db.get(DailyCounter, date_key)
        return counter.seq if counter else 0
