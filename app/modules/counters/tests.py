"""
Tests del contador diario de órdenes
"""

from app.database.database import SessionLocal
from app.modules.counters.models import DailyCounter
from app.modules.counters.service import DailyCounterService


class TestDailyCounter:

    def test_first_call_creates_counter(self, db_session):
        service = DailyCounterService(db_session)
        assert service.next_daily_id("2024-01-15") == 1
        db_session.commit()

        counter = db_session.get(DailyCounter, "2024-01-15")
        assert counter.seq == 1

    def test_sequence_is_contiguous(self, db_session):
        service = DailyCounterService(db_session)
        values = [service.next_daily_id("2024-01-15") for _ in range(5)]
        db_session.commit()

        assert values == [1, 2, 3, 4, 5]

    def test_each_day_has_its_own_sequence(self, db_session):
        service = DailyCounterService(db_session)
        assert service.next_daily_id("2024-01-15") == 1
        assert service.next_daily_id("2024-01-15") == 2
        assert service.next_daily_id("2024-01-16") == 1
        db_session.commit()

    def test_rollback_discards_increment(self, db_session):
        """Si la venta no se guarda, el número tampoco se consume"""
        service = DailyCounterService(db_session)
        service.next_daily_id("2024-01-15")
        db_session.commit()

        service.next_daily_id("2024-01-15")
        db_session.rollback()

        assert service.next_daily_id("2024-01-15") == 2

    def test_current_daily_id(self, db_session):
        service = DailyCounterService(db_session)
        assert service.current_daily_id("2024-01-15") == 0

        service.next_daily_id("2024-01-15")
        service.next_daily_id("2024-01-15")
        db_session.commit()

        assert service.current_daily_id("2024-01-15") == 2

    def test_interleaved_sessions_never_repeat(self, db_session):
        """Una sesión con el contador ya leído recibe el siguiente valor, no uno repetido"""
        service = DailyCounterService(db_session)
        assert service.next_daily_id("2024-01-15") == 1
        db_session.commit()

        other_session = SessionLocal()
        try:
            other = DailyCounterService(other_session)
            assert other.current_daily_id("2024-01-15") == 1

            assert service.next_daily_id("2024-01-15") == 2
            db_session.commit()

            assert other.next_daily_id("2024-01-15") == 3
            other_session.commit()

            assert service.next_daily_id("2024-01-15") == 4
            db_session.commit()
        finally:
            other_session.close()

        assert service.current_daily_id("2024-01-15") == 4
