import logging

from app.core.config import settings
from app.modules.printing.tasks import print_customer_ticket_task, print_kitchen_order_task

logger = logging.getLogger(__name__)


class PrintQueue:
    """
    Despacho de impresiones a la cola "printing" de Celery

    Se llama después del commit de la venta. Es fire-and-forget: si el broker
    no está disponible se registra el error y la venta sigue su curso.
    """

    def print_customer_ticket(self, sale) -> bool:
        return self._dispatch(print_customer_ticket_task, sale, "ticket")

    def print_kitchen_order(self, sale) -> bool:
        return self._dispatch(print_kitchen_order_task, sale, "comanda")

    def _dispatch(self, task, sale, kind: str) -> bool:
        if not settings.PRINTER_ENABLED:
            logger.debug(f"Impresión deshabilitada, se omite {kind} de la venta {sale.id}")
            return False
        try:
            task.delay(str(sale.id))
            logger.info(f"{kind.capitalize()} encolado para la orden {sale.daily_id}")
            return True
        except Exception as e:
            logger.error(f"No se pudo encolar {kind} de la venta {sale.id}: {str(e)}")
            return False


def get_print_queue() -> PrintQueue:
    return PrintQueue()
