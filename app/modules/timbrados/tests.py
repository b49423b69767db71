"""
Tests para el módulo de Timbrados

Cubren:
- Alta con normalización de vigencia (fin del día + un día de gracia)
- Un único timbrado vigente a la vez y códigos únicos
- Emisión de números de factura correlativos, vencimiento y cupo
- Endpoints con control de roles
"""

import pytest
from datetime import date, datetime, timedelta

from app.common.exceptions import (
    ConflictError, ExpiredError, NoActiveTimbradoError, NotFoundError, QuotaExceededError
)
from app.database.database import SessionLocal
from app.modules.timbrados.models import Timbrado
from app.modules.timbrados.schemas import TimbradoCreate
from app.modules.timbrados.service import TimbradoService
from pydantic import ValidationError as PydanticValidationError


class TestTimbradoRegistration:
    """Tests de alta de timbrados"""

    def test_register_normalizes_validity(self, db_session, clock):
        service = TimbradoService(db_session, clock=clock)
        timbrado = service.register(TimbradoCreate(
            code="12345678", issued_at=date(2024, 1, 1), expires_at=date(2024, 1, 31)
        ))

        assert timbrado.issued_at == datetime(2024, 1, 1, 0, 0, 0)
        assert timbrado.expires_at == datetime(2024, 2, 1, 23, 59, 59, 999000)
        assert timbrado.establishment == "001"
        assert timbrado.branch == "001"
        assert timbrado.last_invoice_number == 0
        assert timbrado.max_invoices == 999999

    def test_issued_at_defaults_to_today(self, db_session, clock):
        service = TimbradoService(db_session, clock=clock)
        timbrado = service.register(TimbradoCreate(code="11112222", expires_at=date(2024, 6, 30)))
        assert timbrado.issued_at == datetime(2024, 1, 15)

    def test_register_while_active_conflicts(self, db_session, clock, active_timbrado):
        """Un segundo timbrado con vigencia superpuesta es rechazado"""
        service = TimbradoService(db_session, clock=clock)
        with pytest.raises(ConflictError):
            service.register(TimbradoCreate(
                code="87654321", issued_at=date(2024, 1, 10), expires_at=date(2024, 12, 31)
            ))

    def test_duplicate_code_conflicts(self, db_session, clock, active_timbrado):
        clock.now = datetime(2024, 3, 1, 9, 0)  # el anterior ya venció
        service = TimbradoService(db_session, clock=clock)
        with pytest.raises(ConflictError):
            service.register(TimbradoCreate(
                code="12345678", issued_at=date(2024, 3, 1), expires_at=date(2024, 12, 31)
            ))

    def test_register_after_expiration(self, db_session, clock, active_timbrado):
        clock.now = datetime(2024, 2, 2, 8, 0)
        service = TimbradoService(db_session, clock=clock)
        timbrado = service.register(TimbradoCreate(code="87654321", expires_at=date(2024, 12, 31)))
        assert service.find_active().id == timbrado.id

    def test_expiration_before_issue_rejected(self):
        with pytest.raises(PydanticValidationError):
            TimbradoCreate(code="12345678", issued_at=date(2024, 2, 1), expires_at=date(2024, 1, 1))

    def test_code_must_have_eight_digits(self):
        with pytest.raises(PydanticValidationError):
            TimbradoCreate(code="1234", expires_at=date(2024, 1, 1))


class TestActiveTimbrado:
    """Tests de búsqueda del timbrado vigente"""

    def test_find_active_within_grace_day(self, db_session, clock, active_timbrado):
        service = TimbradoService(db_session, clock=clock)
        assert service.find_active(datetime(2024, 2, 1, 22, 0)).id == active_timbrado.id
        assert service.find_active(datetime(2024, 2, 2, 0, 0)) is None

    def test_find_active_before_issue(self, db_session, clock, active_timbrado):
        service = TimbradoService(db_session, clock=clock)
        assert service.find_active(datetime(2023, 12, 31, 23, 59)) is None

    def test_earliest_issued_wins(self, db_session, clock):
        """Si hubiera superposición, gana el de emisión más antigua"""
        db_session.add_all([
            Timbrado(code="22222222", issued_at=datetime(2024, 1, 10), expires_at=datetime(2024, 12, 31)),
            Timbrado(code="11111111", issued_at=datetime(2024, 1, 1), expires_at=datetime(2024, 12, 31)),
        ])
        db_session.commit()

        service = TimbradoService(db_session, clock=clock)
        assert service.find_active().code == "11111111"

    def test_get_active_without_timbrado(self, db_session, clock):
        with pytest.raises(NoActiveTimbradoError):
            TimbradoService(db_session, clock=clock).get_active()


class TestInvoiceNumbers:
    """Tests de emisión de números de factura"""

    def test_three_consecutive_numbers(self, db_session, clock, active_timbrado):
        service = TimbradoService(db_session, clock=clock)
        numbers = [service.issue_invoice_number(active_timbrado) for _ in range(3)]
        db_session.commit()

        assert numbers == ["001-001-000001", "001-001-000002", "001-001-000003"]
        db_session.refresh(active_timbrado)
        assert active_timbrado.last_invoice_number == 3

    def test_numbers_strictly_increasing_without_gaps(self, db_session, clock, active_timbrado):
        service = TimbradoService(db_session, clock=clock)
        correlatives = [
            int(service.issue_invoice_number(active_timbrado).split("-")[-1]) for _ in range(25)
        ]
        db_session.commit()
        assert correlatives == list(range(1, 26))

    def test_stale_copy_in_other_session_gets_next_number(self, db_session, clock, active_timbrado):
        """Una sesión con last_invoice_number desactualizado no repite números"""
        service = TimbradoService(db_session, clock=clock)

        other_session = SessionLocal()
        try:
            other_service = TimbradoService(other_session, clock=clock)
            stale = other_service.get_timbrado(active_timbrado.id)
            assert stale.last_invoice_number == 0

            assert service.issue_invoice_number(active_timbrado) == "001-001-000001"
            db_session.commit()

            assert stale.last_invoice_number == 0
            assert other_service.issue_invoice_number(stale) == "001-001-000002"
            other_session.commit()
            assert stale.last_invoice_number == 2

            assert service.issue_invoice_number(active_timbrado) == "001-001-000003"
            db_session.commit()
        finally:
            other_session.close()

        db_session.refresh(active_timbrado)
        assert active_timbrado.last_invoice_number == 3

    def test_uses_establishment_and_branch(self, db_session, clock):
        service = TimbradoService(db_session, clock=clock)
        timbrado = service.register(TimbradoCreate(
            code="12345678", issued_at=date(2024, 1, 1), expires_at=date(2024, 1, 31),
            establishment="002", branch="003"
        ))
        assert service.issue_invoice_number(timbrado) == "002-003-000001"

    def test_rollback_returns_the_number(self, db_session, clock, active_timbrado):
        service = TimbradoService(db_session, clock=clock)
        service.issue_invoice_number(active_timbrado)
        db_session.rollback()

        assert service.issue_invoice_number(active_timbrado) == "001-001-000001"

    def test_expired_timbrado(self, db_session, clock, active_timbrado):
        service = TimbradoService(db_session, clock=clock)
        with pytest.raises(ExpiredError):
            service.issue_invoice_number(active_timbrado, now=datetime(2024, 2, 3, 9, 0))

    def test_not_yet_valid_timbrado(self, db_session, clock, active_timbrado):
        service = TimbradoService(db_session, clock=clock)
        with pytest.raises(ExpiredError):
            service.issue_invoice_number(active_timbrado, now=datetime(2023, 12, 20, 9, 0))

    def test_quota_exceeded(self, db_session, clock):
        service = TimbradoService(db_session, clock=clock)
        timbrado = service.register(TimbradoCreate(
            code="12345678", issued_at=date(2024, 1, 1), expires_at=date(2024, 1, 31), max_invoices=2
        ))
        service.issue_invoice_number(timbrado)
        service.issue_invoice_number(timbrado)
        db_session.commit()

        with pytest.raises(QuotaExceededError):
            service.issue_invoice_number(timbrado)
        db_session.rollback()
        db_session.refresh(timbrado)
        assert timbrado.last_invoice_number == 2
        assert timbrado.remaining_invoices == 0

    def test_get_unknown_timbrado(self, db_session, clock):
        from uuid import uuid4
        with pytest.raises(NotFoundError):
            TimbradoService(db_session, clock=clock).get_timbrado(uuid4())


class TestTimbradoEndpoints:
    """Tests de los endpoints de timbrados"""

    def test_create_requires_admin(self, client, cashier_headers):
        response = client.post(
            "/timbrados/",
            json={"code": "12345678", "issued_at": "2024-01-01", "expires_at": "2024-01-31"},
            headers=cashier_headers
        )
        assert response.status_code == 403
        assert response.json()["success"] is False

    def test_create_and_get_active(self, client, admin_headers, cashier_headers):
        response = client.post(
            "/timbrados/",
            json={"code": "12345678", "issued_at": "2024-01-01", "expires_at": "2024-01-31"},
            headers=admin_headers
        )
        assert response.status_code == 201
        created = response.json()
        assert created["code"] == "12345678"
        assert created["remaining_invoices"] == 999999

        response = client.get("/timbrados/active", headers=cashier_headers)
        assert response.status_code == 200
        assert response.json()["id"] == created["id"]

    def test_create_while_active_returns_409(self, client, admin_headers, active_timbrado):
        response = client.post(
            "/timbrados/",
            json={"code": "87654321", "issued_at": "2024-01-05", "expires_at": "2024-03-31"},
            headers=admin_headers
        )
        assert response.status_code == 409
        body = response.json()
        assert body["success"] is False
        assert body["active_code"] == "12345678"

    def test_invalid_code_returns_422(self, client, admin_headers):
        response = client.post(
            "/timbrados/",
            json={"code": "ABC", "expires_at": "2024-01-31"},
            headers=admin_headers
        )
        assert response.status_code == 422
        assert any(e["field"] == "code" for e in response.json()["errors"])

    def test_no_active_returns_404(self, client, cashier_headers):
        response = client.get("/timbrados/active", headers=cashier_headers)
        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_list_timbrados(self, client, cashier_headers, active_timbrado):
        response = client.get("/timbrados/", headers=cashier_headers)
        assert response.status_code == 200
        assert response.json()["total"] == 1
