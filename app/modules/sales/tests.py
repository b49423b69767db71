"""
Tests para el módulo de Ventas

Tests que cubren:
- Creación: totales, liquidación de IVA, número de orden diario, pagos
- Máquina de estados y etapa derivada
- Facturación a lo sumo una vez (incluida la carrera entre dos requests)
- Actualización completa y filtros del listado
- Endpoints HTTP con formato de error estructurado
"""

import pytest
from datetime import datetime
from decimal import Decimal
from uuid import uuid4

from app.common.exceptions import (
    AlreadyInvoicedError, InvalidTransitionError, NoActiveTimbradoError,
    NotFoundError, ValidationError
)
from app.core.config import settings
from app.database.database import SessionLocal
from app.modules.sales.models import Sale, SaleStatus, SaleStage, SaleMode, PaymentMethod
from app.modules.sales.schemas import SaleFilters, SaleUpdate, PaymentIn
from app.modules.sales.service import SaleService
from app.modules.sales.state import check_transition, derive_stage, ready_stage
from app.modules.timbrados.models import Timbrado


@pytest.fixture
def sale_service(db_session, clock, print_queue):
    return SaleService(db_session, clock=clock, print_queue=print_queue)


# ===== MÁQUINA DE ESTADOS =====

class TestSaleStateMachine:
    """Tests de las tablas de transición"""

    @pytest.mark.parametrize("current,target", [
        (SaleStatus.PENDING, SaleStatus.COMPLETED),
        (SaleStatus.PENDING, SaleStatus.CANCELED),
        (SaleStatus.ORDERED, SaleStatus.COMPLETED),
        (SaleStatus.ORDERED, SaleStatus.CANCELED),
        (SaleStatus.COMPLETED, SaleStatus.ANNULLED),
        (SaleStatus.CANCELED, SaleStatus.CANCELED),
    ])
    def test_allowed_transitions(self, current, target):
        check_transition(current, target)

    @pytest.mark.parametrize("current,target", [
        (SaleStatus.CANCELED, SaleStatus.COMPLETED),
        (SaleStatus.ANNULLED, SaleStatus.COMPLETED),
        (SaleStatus.COMPLETED, SaleStatus.CANCELED),
        (SaleStatus.COMPLETED, SaleStatus.PENDING),
        (SaleStatus.PENDING, SaleStatus.ANNULLED),
    ])
    def test_rejected_transitions(self, current, target):
        with pytest.raises(InvalidTransitionError):
            check_transition(current, target)

    def test_stage_projection(self):
        assert derive_stage(SaleStatus.CANCELED, SaleStage.PROCESSED) == SaleStage.CLOSED
        assert derive_stage(SaleStatus.ANNULLED, SaleStage.DELIVERED) == SaleStage.CLOSED
        assert derive_stage(SaleStatus.COMPLETED, SaleStage.FINISHED) == SaleStage.DELIVERED
        assert derive_stage(SaleStatus.PENDING, SaleStage.FINISHED) == SaleStage.FINISHED

    def test_ready_only_for_open_orders(self):
        assert ready_stage(SaleStatus.ORDERED) == SaleStage.FINISHED
        with pytest.raises(InvalidTransitionError):
            ready_stage(SaleStatus.COMPLETED)


# ===== CREACIÓN =====

class TestCreateSale:
    """Tests de creación de ventas"""

    def test_totals_for_two_items_at_10(self, sale_service, sale_data, cashier):
        sale = sale_service.create_sale(sale_data(), cashier)

        assert sale.total_amount == Decimal("16500")
        assert sale.totals.gravada10 == Decimal("15000")
        assert sale.totals.iva10 == Decimal("1500")
        assert sale.totals.exenta == Decimal("0")

    def test_defaults(self, sale_service, sale_data, cashier, print_queue):
        sale = sale_service.create_sale(sale_data(), cashier)

        assert sale.status == SaleStatus.PENDING
        assert sale.stage == SaleStage.PROCESSED
        assert sale.mode == SaleMode.LOCAL
        assert sale.invoiced is False
        assert sale.invoice_number is None
        assert sale.ruc == "44444401-7"
        assert sale.user_id == "user-1"
        assert sale.user_name == "Caja 1"
        assert sale.business_date == "2024-01-15"
        assert print_queue.kitchen_orders == [sale.id]
        assert print_queue.customer_tickets == []

    def test_daily_ids_back_to_back(self, sale_service, sale_data, cashier):
        first = sale_service.create_sale(sale_data(), cashier)
        second = sale_service.create_sale(sale_data(), cashier)
        assert (first.daily_id, second.daily_id) == (1, 2)

    def test_daily_ids_contiguous_and_reset_next_day(self, sale_service, sale_data, cashier, clock):
        ids = [sale_service.create_sale(sale_data(), cashier).daily_id for _ in range(6)]
        assert ids == [1, 2, 3, 4, 5, 6]

        clock.now = datetime(2024, 1, 16, 8, 0)
        assert sale_service.create_sale(sale_data(), cashier).daily_id == 1

    def test_rejected_sale_does_not_consume_daily_id(self, sale_service, sale_data, cash_payment, cashier):
        sale_service.create_sale(sale_data(), cashier)
        with pytest.raises(ValidationError):
            sale_service.create_sale(sale_data(payment=[cash_payment("99999")]), cashier)
        assert sale_service.create_sale(sale_data(), cashier).daily_id == 2

    def test_empty_products_rejected(self, sale_service, sale_data, cashier):
        with pytest.raises(ValidationError):
            sale_service.create_sale(sale_data(products=[]), cashier)

    def test_payments_exceeding_total_rejected(self, sale_service, sale_data, cash_payment, cashier):
        with pytest.raises(ValidationError) as exc_info:
            sale_service.create_sale(sale_data(payment=[cash_payment("10000"), cash_payment("7000")]), cashier)
        assert exc_info.value.field_errors[0]["field"] == "payment"

    def test_partial_and_exact_payments_accepted(self, sale_service, sale_data, cash_payment, cashier):
        partial = sale_service.create_sale(sale_data(payment=[cash_payment("5000")]), cashier)
        exact = sale_service.create_sale(sale_data(payment=[cash_payment("16500")]), cashier)
        assert partial.paid_amount == Decimal("5000")
        assert exact.paid_amount == Decimal("16500")

    def test_created_completed_is_delivered(self, sale_service, sale_data, cashier, print_queue):
        sale = sale_service.create_sale(sale_data(status="completed"), cashier)
        assert sale.stage == SaleStage.DELIVERED
        assert print_queue.customer_tickets == [sale.id]
        assert print_queue.kitchen_orders == []

    def test_cannot_create_canceled(self, sale_service, sale_data, cashier):
        with pytest.raises(ValidationError):
            sale_service.create_sale(sale_data(status="canceled"), cashier)

    def test_default_status_from_settings(self, sale_service, sale_data, cashier, monkeypatch):
        monkeypatch.setattr(settings, "SALE_DEFAULT_STATUS", "ordered")
        assert sale_service.create_sale(sale_data(), cashier).status == SaleStatus.ORDERED

    def test_create_and_invoice(self, sale_service, sale_data, cashier, active_timbrado):
        sale = sale_service.create_sale(sale_data(status="completed", invoiced=True), cashier)

        assert sale.invoiced is True
        assert sale.invoice_number == "001-001-000001"
        assert sale.timbrado_number == "12345678"
        assert sale.timbrado_id == active_timbrado.id
        assert sale.timbrado_init == datetime(2024, 1, 1)

    def test_invoicing_failure_keeps_sale(self, sale_service, sale_data, cashier, db_session):
        with pytest.raises(NoActiveTimbradoError) as exc_info:
            sale_service.create_sale(sale_data(invoiced=True), cashier)

        error = exc_info.value
        assert error.context["daily_id"] == 1
        sale = db_session.query(Sale).one()
        assert str(sale.id) == error.context["sale_id"]
        assert sale.invoiced is False


# ===== FACTURACIÓN =====

class TestInvoiceSale:
    """Tests de facturación a lo sumo una vez"""

    def test_invoice_sale(self, sale_service, sale_data, cashier, active_timbrado):
        sale = sale_service.create_sale(sale_data(status="completed"), cashier)
        info = sale_service.invoice_sale(sale.id)

        assert info.sale_id == sale.id
        assert info.invoice_number == "001-001-000001"
        assert info.timbrado_number == "12345678"

    def test_second_invoice_rejected(self, sale_service, sale_data, cashier, active_timbrado, db_session):
        sale = sale_service.create_sale(sale_data(status="completed"), cashier)
        sale_service.invoice_sale(sale.id)

        with pytest.raises(AlreadyInvoicedError):
            sale_service.invoice_sale(sale.id)

        db_session.refresh(active_timbrado)
        assert active_timbrado.last_invoice_number == 1

    def test_lost_race_rolls_back_correlative(
        self, sale_service, sale_data, cashier, active_timbrado, db_session, clock, print_queue
    ):
        """
        Otra sesión leyó la venta antes de que se facturara: su chequeo en
        memoria pasa, pero el compare-and-set falla y el correlativo no se pierde.
        """
        sale = sale_service.create_sale(sale_data(status="completed"), cashier)

        other_session = SessionLocal()
        try:
            stale = other_session.get(Sale, sale.id)
            assert stale.invoiced is False

            sale_service.invoice_sale(sale.id)

            other_service = SaleService(other_session, clock=clock, print_queue=print_queue)
            with pytest.raises(AlreadyInvoicedError):
                other_service.invoice_sale(sale.id)
        finally:
            other_session.close()

        db_session.refresh(active_timbrado)
        assert active_timbrado.last_invoice_number == 1

        second = sale_service.create_sale(sale_data(status="completed"), cashier)
        assert sale_service.invoice_sale(second.id).invoice_number == "001-001-000002"

    def test_invoice_numbers_follow_sales(self, sale_service, sale_data, cashier, active_timbrado):
        numbers = []
        for _ in range(3):
            sale = sale_service.create_sale(sale_data(status="completed"), cashier)
            numbers.append(sale_service.invoice_sale(sale.id).invoice_number)
        assert numbers == ["001-001-000001", "001-001-000002", "001-001-000003"]

    def test_no_active_timbrado(self, sale_service, sale_data, cashier):
        sale = sale_service.create_sale(sale_data(), cashier)
        with pytest.raises(NoActiveTimbradoError):
            sale_service.invoice_sale(sale.id)

    def test_unknown_sale(self, sale_service):
        with pytest.raises(NotFoundError):
            sale_service.invoice_sale(uuid4())


# ===== CAMBIOS DE ESTADO =====

class TestUpdateStatus:
    """Tests de cambio de estado"""

    def test_cancel_closes_sale(self, sale_service, sale_data, cashier):
        sale = sale_service.create_sale(sale_data(), cashier)
        updated = sale_service.update_status(sale.id, "canceled")

        assert updated.status == SaleStatus.CANCELED
        assert updated.stage == SaleStage.CLOSED

    def test_complete_then_annul(self, sale_service, sale_data, cashier, print_queue):
        sale = sale_service.create_sale(sale_data(), cashier)

        completed = sale_service.update_status(sale.id, "completed")
        assert completed.stage == SaleStage.DELIVERED
        assert print_queue.customer_tickets == [sale.id]

        annulled = sale_service.update_status(sale.id, "annulled")
        assert annulled.status == SaleStatus.ANNULLED
        assert annulled.stage == SaleStage.CLOSED

    def test_same_status_is_noop(self, sale_service, sale_data, cashier, print_queue):
        sale = sale_service.create_sale(sale_data(status="completed"), cashier)
        sale_service.update_status(sale.id, "completed")
        assert print_queue.customer_tickets == [sale.id]

    def test_canceled_cannot_complete(self, sale_service, sale_data, cashier):
        sale = sale_service.create_sale(sale_data(), cashier)
        sale_service.update_status(sale.id, "canceled")
        with pytest.raises(InvalidTransitionError):
            sale_service.update_status(sale.id, "completed")

    def test_unknown_status(self, sale_service, sale_data, cashier):
        sale = sale_service.create_sale(sale_data(), cashier)
        with pytest.raises(ValidationError):
            sale_service.update_status(sale.id, "shipped")

    def test_unknown_sale(self, sale_service):
        with pytest.raises(NotFoundError):
            sale_service.update_status(uuid4(), "canceled")

    def test_ready_signal(self, sale_service, sale_data, cashier):
        sale = sale_service.create_sale(sale_data(), cashier)
        ready = sale_service.update_status(sale.id, "ready")

        assert ready.status == SaleStatus.PENDING
        assert ready.stage == SaleStage.FINISHED

        completed = sale_service.update_status(sale.id, "completed")
        assert completed.stage == SaleStage.DELIVERED

    def test_ready_after_completion_rejected(self, sale_service, sale_data, cashier):
        sale = sale_service.create_sale(sale_data(status="completed"), cashier)
        with pytest.raises(InvalidTransitionError):
            sale_service.mark_ready(sale.id)

    def test_update_ruc(self, sale_service, sale_data, cashier):
        sale = sale_service.create_sale(sale_data(), cashier)
        updated = sale_service.update_status(sale.id, "completed", ruc="80012346-8")
        assert updated.ruc == "80012346-8"

    def test_invalid_ruc_rejected(self, sale_service, sale_data, cashier):
        sale = sale_service.create_sale(sale_data(), cashier)
        with pytest.raises(ValidationError):
            sale_service.update_status(sale.id, "completed", ruc="80012346-1")

    def test_complete_with_invoice(self, sale_service, sale_data, cashier, active_timbrado):
        sale = sale_service.create_sale(sale_data(), cashier)
        updated = sale_service.update_status(sale.id, "completed", invoice=True)
        assert updated.invoiced is True
        assert updated.invoice_number == "001-001-000001"

    def test_auto_invoice_on_complete(self, sale_service, sale_data, cashier, active_timbrado, monkeypatch):
        monkeypatch.setattr(settings, "AUTO_INVOICE_ON_COMPLETE", True)
        sale = sale_service.create_sale(sale_data(), cashier)
        assert sale_service.update_status(sale.id, "completed").invoiced is True

    def test_complete_invoice_failure_keeps_status(self, sale_service, sale_data, cashier, db_session):
        sale = sale_service.create_sale(sale_data(), cashier)
        with pytest.raises(NoActiveTimbradoError) as exc_info:
            sale_service.update_status(sale.id, "completed", invoice=True)

        assert exc_info.value.context["sale_id"] == str(sale.id)
        db_session.refresh(sale)
        assert sale.status == SaleStatus.COMPLETED
        assert sale.invoiced is False


# ===== ACTUALIZACIÓN COMPLETA =====

class TestUpdateSale:
    """Tests de PUT sobre la venta"""

    def test_replace_products_recomputes_totals(self, sale_service, sale_data, cashier, line_item_payload):
        sale = sale_service.create_sale(sale_data(), cashier)
        updated = sale_service.update_sale(sale.id, SaleUpdate(
            products=[line_item_payload("10500", 5, "Leche"), line_item_payload("3000", 0, "Agua")]
        ))

        assert updated.total_amount == Decimal("13500")
        assert updated.totals.gravada5 == Decimal("10000")
        assert updated.totals.iva5 == Decimal("500")
        assert updated.totals.exenta == Decimal("3000")
        assert updated.totals.gravada10 == Decimal("0")
        assert [p.name for p in updated.products] == ["Leche", "Agua"]
        assert updated.daily_id == sale.daily_id

    def test_payments_bound_on_update(self, sale_service, sale_data, cashier):
        sale = sale_service.create_sale(sale_data(), cashier)
        with pytest.raises(ValidationError):
            sale_service.update_sale(sale.id, SaleUpdate(
                payment=[PaymentIn(payment_method=PaymentMethod.CARD, total_amount=Decimal("20000"))]
            ))

    def test_shrinking_products_below_payments_rejected(
        self, sale_service, sale_data, cash_payment, cashier, line_item_payload
    ):
        sale = sale_service.create_sale(sale_data(payment=[cash_payment("16500")]), cashier)
        with pytest.raises(ValidationError):
            sale_service.update_sale(sale.id, SaleUpdate(products=[line_item_payload("1000", 10)]))

    def test_metadata_and_status(self, sale_service, sale_data, cashier, print_queue):
        sale = sale_service.create_sale(sale_data(), cashier)
        updated = sale_service.update_sale(sale.id, SaleUpdate(
            customer_name="Otra persona", mode=SaleMode.CARRY, status=SaleStatus.COMPLETED
        ))

        assert updated.customer_name == "Otra persona"
        assert updated.mode == SaleMode.CARRY
        assert updated.stage == SaleStage.DELIVERED
        assert print_queue.customer_tickets == [sale.id]

    def test_invalid_transition_on_update(self, sale_service, sale_data, cashier):
        sale = sale_service.create_sale(sale_data(), cashier)
        with pytest.raises(InvalidTransitionError):
            sale_service.update_sale(sale.id, SaleUpdate(status=SaleStatus.ANNULLED))

    def test_invoice_on_update_when_completed(self, sale_service, sale_data, cashier, active_timbrado):
        sale = sale_service.create_sale(sale_data(), cashier)
        updated = sale_service.update_sale(sale.id, SaleUpdate(status=SaleStatus.COMPLETED, invoiced=True))
        assert updated.invoiced is True
        assert updated.invoice_number == "001-001-000001"

    def test_invoiced_flag_ignored_while_pending(self, sale_service, sale_data, cashier, active_timbrado):
        sale = sale_service.create_sale(sale_data(), cashier)
        updated = sale_service.update_sale(sale.id, SaleUpdate(invoiced=True))
        assert updated.invoiced is False

    def test_invoiced_sale_keeps_products(self, sale_service, sale_data, cashier, active_timbrado, line_item_payload):
        sale = sale_service.create_sale(sale_data(status="completed", invoiced=True), cashier)
        with pytest.raises(AlreadyInvoicedError):
            sale_service.update_sale(sale.id, SaleUpdate(products=[line_item_payload("1000", 10)]))

    def test_invoiced_never_reverts(self, sale_service, sale_data, cashier, active_timbrado):
        sale = sale_service.create_sale(sale_data(status="completed", invoiced=True), cashier)
        with pytest.raises(AlreadyInvoicedError):
            sale_service.update_sale(sale.id, SaleUpdate(invoiced=False))

    def test_stale_update_cannot_complete_canceled_sale(
        self, sale_service, sale_data, cashier, db_session, clock, print_queue
    ):
        """Otra sesión leyó la venta pendiente; se cancela antes de que su PUT la complete"""
        sale = sale_service.create_sale(sale_data(), cashier)

        other_session = SessionLocal()
        try:
            stale = other_session.get(Sale, sale.id)
            assert stale.status == SaleStatus.PENDING

            sale_service.update_status(sale.id, "canceled")

            other_service = SaleService(other_session, clock=clock, print_queue=print_queue)
            with pytest.raises(InvalidTransitionError):
                other_service.update_sale(sale.id, SaleUpdate(status="completed", customer_name="Otro"))
        finally:
            other_session.close()

        db_session.refresh(sale)
        assert sale.status == SaleStatus.CANCELED
        assert sale.stage == SaleStage.CLOSED
        assert sale.customer_name == "Cliente de prueba"
        assert print_queue.customer_tickets == []

    def test_stale_update_cannot_replace_items_of_invoiced_sale(
        self, sale_service, sale_data, cashier, active_timbrado, db_session, clock, print_queue, line_item_payload
    ):
        sale = sale_service.create_sale(sale_data(status="completed"), cashier)

        other_session = SessionLocal()
        try:
            stale = other_session.get(Sale, sale.id)
            assert stale.invoiced is False

            sale_service.invoice_sale(sale.id)

            other_service = SaleService(other_session, clock=clock, print_queue=print_queue)
            with pytest.raises(AlreadyInvoicedError):
                other_service.update_sale(sale.id, SaleUpdate(products=[line_item_payload("1000", 10)]))
        finally:
            other_session.close()

        db_session.refresh(sale)
        assert sale.invoiced is True
        assert sale.invoice_number == "001-001-000001"
        assert sale.total_amount == Decimal("16500")
        assert [item.name for item in sale.products] == ["Hamburguesa", "Papas fritas"]


# ===== LISTADO =====

class TestListSales:
    """Tests de filtros del listado"""

    @pytest.fixture
    def sales(self, sale_service, sale_data, cashier, line_item_payload, cash_payment, clock):
        first = sale_service.create_sale(sale_data(payment=[cash_payment("1000")]), cashier)
        second = sale_service.create_sale(
            sale_data(status="completed", products=[line_item_payload("45000", 10, "Pizza grande")],
                      ruc="80012346-8"),
            cashier
        )
        clock.now = datetime(2024, 1, 16, 12, 0)
        third = sale_service.create_sale(sale_data(), cashier)
        sale_service.update_status(third.id, "canceled")
        return first, second, third

    def test_no_filters(self, sale_service, sales):
        result = sale_service.list_sales(SaleFilters())
        assert result.total == 3
        assert result.status_counts == {"pending": 1, "completed": 1, "canceled": 1}

    def test_filter_by_status(self, sale_service, sales):
        result = sale_service.list_sales(SaleFilters(status=SaleStatus.COMPLETED))
        assert [s.id for s in result.sales] == [sales[1].id]

    def test_filter_by_date_range(self, sale_service, sales):
        from datetime import date
        result = sale_service.list_sales(SaleFilters(start_date=date(2024, 1, 16), end_date=date(2024, 1, 16)))
        assert [s.id for s in result.sales] == [sales[2].id]

    def test_filter_by_payment_method(self, sale_service, sales):
        result = sale_service.list_sales(SaleFilters(payment_method=PaymentMethod.CASH))
        assert [s.id for s in result.sales] == [sales[0].id]

    def test_filter_by_product_name_and_ruc(self, sale_service, sales):
        assert sale_service.list_sales(SaleFilters(product_name="pizza")).total == 1
        assert sale_service.list_sales(SaleFilters(ruc="80012")).total == 1

    def test_filter_by_invoiced_and_user(self, sale_service, sales):
        assert sale_service.list_sales(SaleFilters(invoiced=False)).total == 3
        assert sale_service.list_sales(SaleFilters(user_id="otro")).total == 0

    def test_pagination(self, sale_service, sales):
        result = sale_service.list_sales(SaleFilters(), limit=2, offset=0)
        assert len(result.sales) == 2
        assert result.total == 3


# ===== ENDPOINTS =====

class TestSalesEndpoints:
    """Tests de los endpoints de ventas"""

    def test_create_sale(self, client, cashier_headers, sale_payload):
        response = client.post("/sales/", json=sale_payload(), headers=cashier_headers)

        assert response.status_code == 201
        body = response.json()
        assert body["daily_id"] == 1
        assert body["status"] == "pending"
        assert body["stage"] == "processed"
        assert Decimal(body["total_amount"]) == Decimal("16500")
        assert Decimal(body["totals"]["gravada10"]) == Decimal("15000")
        assert Decimal(body["totals"]["iva10"]) == Decimal("1500")
        assert body["user_id"] == "user-1"

    def test_create_requires_auth(self, client, sale_payload):
        response = client.post("/sales/", json=sale_payload())
        assert response.status_code in (401, 403)

    def test_invalid_token(self, client, sale_payload):
        response = client.post("/sales/", json=sale_payload(), headers={"Authorization": "Bearer nope"})
        assert response.status_code == 401

    def test_payment_overflow_returns_400(self, client, cashier_headers, sale_payload, cash_payment):
        response = client.post(
            "/sales/", json=sale_payload(payment=[cash_payment("20000")]), headers=cashier_headers
        )
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["errors"][0]["field"] == "payment"

    def test_empty_products_returns_400(self, client, cashier_headers, sale_payload):
        response = client.post("/sales/", json=sale_payload(products=[]), headers=cashier_headers)
        assert response.status_code == 400

    def test_bad_mode_returns_422(self, client, cashier_headers, sale_payload):
        response = client.post("/sales/", json=sale_payload(mode="drone"), headers=cashier_headers)
        assert response.status_code == 422
        assert any(e["field"] == "mode" for e in response.json()["errors"])

    def test_invoice_failure_reports_sale(self, client, cashier_headers, sale_payload):
        response = client.post("/sales/", json=sale_payload(invoiced=True), headers=cashier_headers)

        assert response.status_code == 404
        body = response.json()
        assert body["type"] == "NoActiveTimbradoError"
        sale_id = body["sale_id"]

        response = client.get(f"/sales/{sale_id}", headers=cashier_headers)
        assert response.status_code == 200
        assert response.json()["invoiced"] is False

    def test_status_flow(self, client, cashier_headers, sale_payload):
        sale_id = client.post("/sales/", json=sale_payload(), headers=cashier_headers).json()["id"]

        response = client.patch(f"/sales/{sale_id}/status", json={"status": "ready"}, headers=cashier_headers)
        assert response.json()["stage"] == "finished"

        response = client.patch(f"/sales/{sale_id}/status", json={"status": "canceled"}, headers=cashier_headers)
        assert response.status_code == 200
        assert response.json()["stage"] == "closed"

        response = client.patch(f"/sales/{sale_id}/status", json={"status": "completed"}, headers=cashier_headers)
        assert response.status_code == 409

    def test_bad_status_returns_400(self, client, cashier_headers, sale_payload):
        sale_id = client.post("/sales/", json=sale_payload(), headers=cashier_headers).json()["id"]
        response = client.patch(f"/sales/{sale_id}/status", json={"status": "lost"}, headers=cashier_headers)
        assert response.status_code == 400

    def test_unknown_sale_returns_404(self, client, cashier_headers):
        response = client.patch(f"/sales/{uuid4()}/status", json={"status": "canceled"}, headers=cashier_headers)
        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_invoice_endpoint(self, client, cashier_headers, sale_payload, active_timbrado):
        sale_id = client.post(
            "/sales/", json=sale_payload(status="completed"), headers=cashier_headers
        ).json()["id"]

        response = client.post(f"/sales/{sale_id}/invoice", headers=cashier_headers)
        assert response.status_code == 200
        assert response.json()["invoice_number"] == "001-001-000001"

        response = client.post(f"/sales/{sale_id}/invoice", headers=cashier_headers)
        assert response.status_code == 409
        assert response.json()["type"] == "AlreadyInvoicedError"

    def test_put_invoices_completed_sale(self, client, cashier_headers, sale_payload, active_timbrado):
        sale_id = client.post("/sales/", json=sale_payload(), headers=cashier_headers).json()["id"]

        response = client.put(
            f"/sales/{sale_id}", json={"status": "completed", "invoiced": True}, headers=cashier_headers
        )
        assert response.status_code == 200
        body = response.json()
        assert body["invoiced"] is True
        assert body["timbrado_number"] == "12345678"

    def test_list_and_daily_counter(self, client, cashier_headers, sale_payload):
        client.post("/sales/", json=sale_payload(), headers=cashier_headers)
        client.post("/sales/", json=sale_payload(status="completed"), headers=cashier_headers)

        response = client.get("/sales/", params={"status": "completed"}, headers=cashier_headers)
        assert response.status_code == 200
        assert response.json()["total"] == 1

        response = client.get("/sales/daily-counter", headers=cashier_headers)
        assert response.json() == {"date": "2024-01-15", "last_daily_id": 2}

    def test_timbrado_quota_reported_as_400(self, client, cashier_headers, sale_payload, db_session):
        db_session.add(Timbrado(
            code="12345678", issued_at=datetime(2024, 1, 1), expires_at=datetime(2024, 2, 1, 23, 59),
            last_invoice_number=5, max_invoices=5
        ))
        db_session.commit()

        response = client.post(
            "/sales/", json=sale_payload(status="completed", invoiced=True), headers=cashier_headers
        )
        assert response.status_code == 400
        assert response.json()["type"] == "QuotaExceededError"
