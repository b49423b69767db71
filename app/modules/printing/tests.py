"""
Tests del módulo de Impresión

- Render de ticket de cliente y comanda
- Escritura en el spool de la impresora
- Tareas de Celery ejecutadas en proceso
- Un fallo al encolar nunca hace fallar la venta
"""

import os
import pytest

from app.core.config import settings
from app.main import app
from app.modules.printing import service as printing_service
from app.modules.printing.printer import SpoolPrinter, PrinterError
from app.modules.printing.service import PrintQueue, get_print_queue
from app.modules.printing.tasks import print_customer_ticket_task, print_kitchen_order_task
from app.modules.printing.ticket import format_guaranies, render_customer_ticket, render_kitchen_order
from app.modules.sales.service import SaleService


class BrokenTask:
    """Simula un broker caído"""

    def delay(self, *args, **kwargs):
        raise ConnectionError("broker no disponible")


class RecordingTask:

    def __init__(self):
        self.calls = []

    def delay(self, *args, **kwargs):
        self.calls.append(args)


@pytest.fixture
def sale(db_session, clock, print_queue, sale_data, cash_payment, cashier):
    service = SaleService(db_session, clock=clock, print_queue=print_queue)
    return service.create_sale(
        sale_data(status="completed", payment=[cash_payment("16500")], mode="carry"),
        cashier
    )


class TestTicketRendering:

    def test_format_guaranies(self):
        assert format_guaranies(16500) == "Gs. 16.500"
        assert format_guaranies("1500.00") == "Gs. 1.500"
        assert format_guaranies(None) == "Gs. 0"

    def test_customer_ticket(self, sale):
        content = render_customer_ticket(sale)

        assert settings.TICKET_BUSINESS_NAME in content
        assert "Orden N°: 1" in content
        assert "RUC: 44444401-7" in content
        assert "Modo: Para llevar" in content
        assert "1 x Hamburguesa" in content
        assert "Gs. 16.500" in content
        assert "Gs. 15.000" in content  # gravada 10%
        assert "Efectivo" in content
        assert "Factura:" not in content

    def test_customer_ticket_with_invoice(self, db_session, clock, print_queue, sale, active_timbrado):
        SaleService(db_session, clock=clock, print_queue=print_queue).invoice_sale(sale.id)
        db_session.refresh(sale)

        content = render_customer_ticket(sale)
        assert "Timbrado: 12345678" in content
        assert "Factura: 001-001-000001" in content

    def test_kitchen_order(self, sale):
        content = render_kitchen_order(sale)

        assert "COMANDA" in content
        assert "ORDEN N° 1" in content
        assert "1 x Papas fritas" in content
        assert "Gs." not in content


class TestSpoolPrinter:

    def test_writes_job_file(self, tmp_path):
        printer = SpoolPrinter("MP-4200 TH", spool_dir=str(tmp_path))
        path = printer.print_text("hola\n", job_name="ticket-1")

        assert path.endswith(".txt")
        assert os.path.dirname(path) == os.path.join(str(tmp_path), "MP-4200_TH")
        with open(path, encoding="utf-8") as f:
            assert f.read() == "hola\n"

    def test_unwritable_spool(self, tmp_path):
        blocker = tmp_path / "ocupado"
        blocker.write_text("no soy un directorio")

        printer = SpoolPrinter("caja", spool_dir=str(blocker))
        with pytest.raises(PrinterError):
            printer.print_text("hola")

    def test_failed_rename_leaves_no_partial_job(self, tmp_path, monkeypatch):
        def broken_replace(src, dst):
            raise OSError("disco lleno")

        monkeypatch.setattr(os, "replace", broken_replace)
        printer = SpoolPrinter("caja", spool_dir=str(tmp_path))

        with pytest.raises(PrinterError):
            printer.print_text("hola", job_name="ticket-1")

        assert os.listdir(os.path.join(str(tmp_path), "caja")) == []


class TestPrintTasks:

    def test_customer_ticket_task(self, sale, tmp_path, monkeypatch):
        monkeypatch.setattr(settings, "PRINTER_SPOOL_DIR", str(tmp_path))

        result = print_customer_ticket_task(str(sale.id))

        assert result["status"] == "success"
        with open(result["path"], encoding="utf-8") as f:
            assert "Orden N°: 1" in f.read()

    def test_kitchen_order_task(self, sale, tmp_path, monkeypatch):
        monkeypatch.setattr(settings, "PRINTER_SPOOL_DIR", str(tmp_path))

        result = print_kitchen_order_task(str(sale.id))
        assert result["status"] == "success"

    def test_unknown_sale_is_skipped(self, db_session):
        from uuid import uuid4
        result = print_kitchen_order_task(str(uuid4()))
        assert result["status"] == "skipped"


class TestPrintQueue:

    def test_disabled_printer_dispatches_nothing(self, sale, monkeypatch):
        task = RecordingTask()
        monkeypatch.setattr(settings, "PRINTER_ENABLED", False)
        monkeypatch.setattr(printing_service, "print_customer_ticket_task", task)

        assert PrintQueue().print_customer_ticket(sale) is False
        assert task.calls == []

    def test_dispatch_sends_sale_id(self, sale, monkeypatch):
        task = RecordingTask()
        monkeypatch.setattr(settings, "PRINTER_ENABLED", True)
        monkeypatch.setattr(printing_service, "print_kitchen_order_task", task)

        assert PrintQueue().print_kitchen_order(sale) is True
        assert task.calls == [(str(sale.id),)]

    def test_broker_failure_is_swallowed(self, sale, monkeypatch):
        monkeypatch.setattr(settings, "PRINTER_ENABLED", True)
        monkeypatch.setattr(printing_service, "print_customer_ticket_task", BrokenTask())

        assert PrintQueue().print_customer_ticket(sale) is False

    def test_sale_created_when_broker_is_down(self, client, cashier_headers, sale_payload, monkeypatch):
        monkeypatch.setattr(settings, "PRINTER_ENABLED", True)
        monkeypatch.setattr(printing_service, "print_kitchen_order_task", BrokenTask())
        app.dependency_overrides[get_print_queue] = lambda: PrintQueue()

        response = client.post("/sales/", json=sale_payload(), headers=cashier_headers)

        assert response.status_code == 201
        assert response.json()["daily_id"] == 1
