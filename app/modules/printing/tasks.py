"""
Tareas asíncronas de Celery para la impresión de tickets y comandas.

Se encolan luego de confirmar la venta; un fallo aquí nunca afecta a la venta.
"""
import logging
from uuid import UUID

from app.core.celery import celery_app
from app.core.config import settings
from app.database.database import SessionLocal
from app.modules.printing.printer import SpoolPrinter
from app.modules.printing.ticket import render_customer_ticket, render_kitchen_order
from app.modules.sales.models import Sale

logger = logging.getLogger(__name__)


def _print_sale(sale_id: str, render, printer_name: str, job_prefix: str) -> dict:
    db = SessionLocal()
    try:
        sale = db.get(Sale, UUID(sale_id))
        if not sale:
            logger.warning(f"Venta {sale_id} no encontrada, no se imprime {job_prefix}")
            return {"status": "skipped", "sale_id": sale_id}

        content = render(sale)
        path = SpoolPrinter(printer_name).print_text(content, job_name=f"{job_prefix}-{sale.daily_id}")
        return {"status": "success", "sale_id": sale_id, "path": path}
    finally:
        db.close()


@celery_app.task(bind=True, max_retries=3)
def print_customer_ticket_task(self, sale_id: str):
    """
    Imprimir el ticket de cliente de una venta completada.
    """
    try:
        return _print_sale(sale_id, render_customer_ticket, settings.PRINTER_NAME, "ticket")

    except Exception as exc:
        logger.error(f"Customer ticket printing failed for sale {sale_id}: {str(exc)}")

        # Retry with exponential backoff
        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=60 * (2 ** self.request.retries))

        # Final failure
        return {"status": "failed", "error": str(exc), "sale_id": sale_id}


@celery_app.task(bind=True, max_retries=3)
def print_kitchen_order_task(self, sale_id: str):
    """
    Imprimir la comanda de cocina de una venta pendiente.
    """
    try:
        return _print_sale(sale_id, render_kitchen_order, settings.KITCHEN_PRINTER_NAME, "comanda")

    except Exception as exc:
        logger.error(f"Kitchen order printing failed for sale {sale_id}: {str(exc)}")

        if self.request.retries < self.max_retries:
            raise self.retry(exc=exc, countdown=60 * (2 ** self.request.retries))

        return {"status": "failed", "error": str(exc), "sale_id": sale_id}
