from sqlalchemy.orm import Session
from sqlalchemy import update, select, func
from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional
from uuid import UUID
import logging

from app.common.exceptions import (
    BaseApplicationError, ValidationError, NotFoundError, AlreadyInvoicedError,
    InvalidTransitionError, NoActiveTimbradoError
)
from app.common.timeutils import local_now, utcnow, business_date_key
from app.common.validators import normalize_ruc
from app.core.config import settings
from app.modules.auth.schemas import AuthContext
from app.modules.counters.service import DailyCounterService
from app.modules.printing.service import PrintQueue
from app.modules.sales.models import Sale, SaleLineItem, SalePayment, SaleStatus, SaleStage
from app.modules.sales.schemas import (
    SaleCreate, SaleUpdate, SaleFilters, SaleList, InvoiceInfo, LineItemIn, PaymentIn
)
from app.modules.sales.state import (
    READY_SIGNAL, parse_status, parse_creation_status, check_transition, derive_stage, ready_stage
)
from app.modules.taxes.calculator import TaxAggregator
from app.modules.timbrados.service import TimbradoService

logger = logging.getLogger(__name__)


class SaleService:
    """
    Ciclo de vida de la venta: creación, cambios de estado y facturación

    Los invariantes compartidos entre requests (dailyId único, correlativo de
    factura, facturación a lo sumo una vez) se resuelven con sentencias
    atómicas en la base; la impresión se despacha después del commit.
    """

    def __init__(
        self,
        db: Session,
        clock: Callable[[], datetime] = local_now,
        print_queue: Optional[PrintQueue] = None
    ):
        self.db = db
        self.clock = clock
        self.print_queue = print_queue or PrintQueue()
        self.counters = DailyCounterService(db)
        self.timbrados = TimbradoService(db, clock=clock)

    # ===== Creación =====

    def create_sale(self, data: SaleCreate, auth_context: AuthContext) -> Sale:
        """
        Crear una venta

        1. Valida items (al menos uno) y que los pagos no excedan el total
        2. Calcula total y liquidación de IVA
        3. Asigna el dailyId del día y persiste (invoiced=False)
        4. Si se pidió, factura; un fallo de facturación no deshace la venta
        5. Encola ticket (completed) o comanda (resto)
        """
        if not data.products:
            raise ValidationError(
                "La venta debe incluir al menos un producto",
                field_errors=[{"field": "products", "message": "Debe incluir al menos un item"}]
            )

        status = parse_creation_status(data.status, settings.SALE_DEFAULT_STATUS)
        total_amount = self._sum_items(data.products)
        self._check_payments(data.payment, total_amount)
        ruc = self._normalize_ruc(data.ruc)

        now = self.clock()
        business_date = business_date_key(now)

        try:
            daily_id = self.counters.next_daily_id(business_date)

            sale = Sale(
                daily_id=daily_id,
                business_date=business_date,
                date=utcnow(),
                ruc=ruc,
                customer_name=data.customer_name,
                status=status,
                stage=derive_stage(status, SaleStage.PROCESSED),
                mode=data.mode,
                invoiced=False,
                user_id=auth_context.user_id,
                user_name=auth_context.user_name,
            )
            self._set_products(sale, data.products)
            sale.payment = self._build_payments(data.payment)

            self.db.add(sale)
            self.db.commit()
            self.db.refresh(sale)
        except Exception:
            # El contador se incrementó en la misma transacción: vuelve atrás también
            self.db.rollback()
            raise

        logger.info(
            f"Venta creada: {sale.id} orden {sale.daily_id} ({business_date}) "
            f"estado={sale.status.value} total={sale.total_amount}"
        )

        invoice_error = None
        if data.invoiced:
            invoice_error = self._try_invoice(sale)

        if sale.status == SaleStatus.COMPLETED:
            self.print_queue.print_customer_ticket(sale)
        else:
            self.print_queue.print_kitchen_order(sale)

        if invoice_error:
            raise invoice_error
        return sale

    # ===== Facturación =====

    def invoice_sale(self, sale_id: UUID) -> InvoiceInfo:
        """
        Facturar una venta con el timbrado vigente

        Buscar timbrado → emitir número → marcar la venta, todo en una sola
        transacción. La marca es un compare-and-set sobre invoiced: si otro
        request facturó primero, se hace rollback (incluido el correlativo)
        y se responde AlreadyInvoicedError.
        """
        sale = self._get_sale(sale_id)
        if sale.invoiced:
            raise AlreadyInvoicedError(
                "La venta ya fue facturada",
                details={"invoice_number": sale.invoice_number}
            )

        try:
            now = self.clock()
            timbrado = self.timbrados.find_active(now)
            if not timbrado:
                raise NoActiveTimbradoError("No hay timbrado activo")

            invoice_number = self.timbrados.issue_invoice_number(timbrado, now)

            result = self.db.execute(
                update(Sale)
                .where(Sale.id == sale.id, Sale.invoiced.is_(False))
                .values(
                    invoiced=True,
                    invoice_number=invoice_number,
                    timbrado_number=timbrado.code,
                    timbrado_init=timbrado.issued_at,
                    timbrado_id=timbrado.id,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise AlreadyInvoicedError("La venta ya fue facturada")

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(sale)
        logger.info(f"Venta {sale.id} facturada: {sale.invoice_number} timbrado {sale.timbrado_number}")

        return InvoiceInfo(
            sale_id=sale.id,
            invoice_number=sale.invoice_number,
            timbrado_number=sale.timbrado_number,
            timbrado_init=sale.timbrado_init,
            timbrado_id=sale.timbrado_id,
        )

    # ===== Estado =====

    def update_status(
        self,
        sale_id: UUID,
        status: str,
        ruc: Optional[str] = None,
        invoice: bool = False
    ) -> Sale:
        """
        Cambiar el estado de una venta y derivar su etapa

        "ready" es la señal de pedido listo (ver mark_ready). Al completar se
        encola el ticket de cliente y se factura si se pidió o si
        AUTO_INVOICE_ON_COMPLETE está activo.
        """
        if status == READY_SIGNAL:
            return self.mark_ready(sale_id)

        target = parse_status(status)
        sale = self._get_sale(sale_id)
        previous = sale.status
        check_transition(previous, target)

        values = {"status": target, "stage": derive_stage(target, sale.stage)}
        if ruc is not None:
            values["ruc"] = self._normalize_ruc(ruc)

        self._compare_and_set_status(sale, previous, values)

        changed = previous != target
        if changed:
            logger.info(f"Venta {sale.id} orden {sale.daily_id}: {previous.value} -> {target.value}")

        invoice_error = None
        wants_invoice = invoice or (changed and settings.AUTO_INVOICE_ON_COMPLETE)
        if target == SaleStatus.COMPLETED and wants_invoice and not sale.invoiced:
            invoice_error = self._try_invoice(sale)

        if changed and target == SaleStatus.COMPLETED:
            self.print_queue.print_customer_ticket(sale)

        if invoice_error:
            raise invoice_error
        return sale

    def mark_ready(self, sale_id: UUID) -> Sale:
        """Señal de pedido listo: etapa finished sin cambiar el estado"""
        sale = self._get_sale(sale_id)
        stage = ready_stage(sale.status)
        self._compare_and_set_status(sale, sale.status, {"stage": stage})
        logger.info(f"Orden {sale.daily_id} lista para entregar")
        return sale

    # ===== Actualización completa =====

    def update_sale(self, sale_id: UUID, data: SaleUpdate) -> Sale:
        """
        Reemplazar items, pagos y datos de la venta (PUT)

        Una venta facturada conserva sus items e invoiced nunca vuelve a
        False. Si invoiced pasa de False a True con la venta completada, se
        factura después de guardar los cambios.

        Estado y etapa se escriben primero con un UPDATE condicionado al
        estado leído (y a invoiced=False si se reemplazan items), en la misma
        transacción que los items y pagos: si otro request canceló o facturó
        la venta en el medio, no se pisa nada.
        """
        sale = self._get_sale(sale_id)
        was_invoiced = sale.invoiced

        if was_invoiced and data.products is not None:
            raise AlreadyInvoicedError("No se pueden modificar los items de una venta facturada")
        if was_invoiced and data.invoiced is False:
            raise AlreadyInvoicedError("Una venta facturada no puede desmarcarse")

        previous = sale.status
        target = data.status or previous
        check_transition(previous, target)

        try:
            self._guarded_update(
                sale,
                previous,
                {"status": target, "stage": derive_stage(target, sale.stage)},
                invoiced=False if data.products is not None else None
            )

            if data.products is not None:
                if not data.products:
                    raise ValidationError(
                        "La venta debe incluir al menos un producto",
                        field_errors=[{"field": "products", "message": "Debe incluir al menos un item"}]
                    )
                self._set_products(sale, data.products)

            if data.payment is not None:
                self._check_payments(data.payment, Decimal(sale.total_amount))
                sale.payment = self._build_payments(data.payment)
            else:
                self._check_amount(sale.paid_amount, Decimal(sale.total_amount))

            if data.ruc is not None:
                sale.ruc = self._normalize_ruc(data.ruc)
            if data.customer_name is not None:
                sale.customer_name = data.customer_name
            if data.mode is not None:
                sale.mode = data.mode

            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(sale)
        changed = previous != target
        if changed:
            logger.info(f"Venta {sale.id} orden {sale.daily_id}: {previous.value} -> {target.value}")
        else:
            logger.info(f"Venta {sale.id} actualizada")

        invoice_error = None
        if data.invoiced and not was_invoiced:
            if sale.status == SaleStatus.COMPLETED:
                invoice_error = self._try_invoice(sale)
            else:
                logger.debug(f"Venta {sale.id} no se factura: estado {sale.status.value}")

        if changed and target == SaleStatus.COMPLETED:
            self.print_queue.print_customer_ticket(sale)

        if invoice_error:
            raise invoice_error
        return sale

    # ===== Consultas =====

    def get_sale(self, sale_id: UUID) -> Sale:
        return self._get_sale(sale_id)

    def list_sales(self, filters: SaleFilters, limit: int = 20, offset: int = 0) -> SaleList:
        """Listar ventas con filtros, la más reciente primero"""
        query = self.db.query(Sale)

        if filters.status:
            query = query.filter(Sale.status == filters.status)
        if filters.user_id:
            query = query.filter(Sale.user_id == filters.user_id)
        if filters.start_date:
            query = query.filter(Sale.business_date >= filters.start_date.isoformat())
        if filters.end_date:
            query = query.filter(Sale.business_date <= filters.end_date.isoformat())
        if filters.payment_method:
            query = query.filter(Sale.payment.any(SalePayment.payment_method == filters.payment_method))
        if filters.ruc:
            query = query.filter(Sale.ruc.ilike(f"%{filters.ruc}%"))
        if filters.product_name:
            query = query.filter(Sale.products.any(SaleLineItem.name.ilike(f"%{filters.product_name}%")))
        if filters.invoiced is not None:
            query = query.filter(Sale.invoiced.is_(filters.invoiced))

        total = query.count()
        status_counts = {
            status.value: count
            for status, count in query.with_entities(Sale.status, func.count(Sale.id)).group_by(Sale.status).all()
        }
        sales = query.order_by(Sale.date.desc(), Sale.daily_id.desc()).offset(offset).limit(limit).all()

        return SaleList(
            sales=sales,
            total=total,
            limit=limit,
            offset=offset,
            status_counts=status_counts
        )

    def current_daily_id(self) -> dict:
        business_date = business_date_key(self.clock())
        return {"date": business_date, "last_daily_id": self.counters.current_daily_id(business_date)}

    # ===== Helpers =====

    def _get_sale(self, sale_id: UUID) -> Sale:
        sale = self.db.get(Sale, sale_id)
        if not sale:
            raise NotFoundError("Venta no encontrada", details={"sale_id": str(sale_id)})
        return sale

    def _try_invoice(self, sale: Sale) -> Optional[BaseApplicationError]:
        """Facturar sin deshacer la venta; devuelve el error con el contexto de la venta"""
        try:
            self.invoice_sale(sale.id)
            self.db.refresh(sale)
            return None
        except BaseApplicationError as e:
            logger.warning(f"No se pudo facturar la venta {sale.id} (orden {sale.daily_id}): {e.message}")
            self.db.refresh(sale)
            return e.add_context("sale_id", str(sale.id)).add_context("daily_id", sale.daily_id)

    def _compare_and_set_status(self, sale: Sale, expected: SaleStatus, values: dict) -> None:
        """UPDATE condicionado al estado leído; si otro request lo cambió, se rechaza"""
        try:
            self._guarded_update(sale, expected, values)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(sale)

    def _guarded_update(
        self,
        sale: Sale,
        expected: SaleStatus,
        values: dict,
        invoiced: Optional[bool] = None
    ) -> None:
        """
        UPDATE de la venta condicionado a su estado (y opcionalmente a invoiced)

        No hace commit. Si la fila ya no coincide con lo leído, informa qué
        cambió: AlreadyInvoicedError si la facturaron, InvalidTransitionError
        si cambió el estado.
        """
        conditions = [Sale.id == sale.id, Sale.status == expected]
        if invoiced is not None:
            conditions.append(Sale.invoiced.is_(invoiced))

        result = self.db.execute(
            update(Sale)
            .where(*conditions)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return

        current_status, current_invoiced = self.db.execute(
            select(Sale.status, Sale.invoiced).where(Sale.id == sale.id)
        ).one()
        if invoiced is not None and current_invoiced != invoiced:
            raise AlreadyInvoicedError(
                "La venta fue facturada mientras se actualizaba",
                details={"sale_id": str(sale.id)}
            )
        raise InvalidTransitionError(
            "El estado de la venta cambió mientras se actualizaba, reintente",
            details={"expected_status": expected.value, "current_status": current_status.value}
        )

    def _set_products(self, sale: Sale, items: List[LineItemIn]) -> None:
        sale.products = [
            SaleLineItem(
                position=position,
                product_id=item.product_id,
                variant_id=item.variant_id,
                name=item.name,
                unit=item.unit,
                quantity=item.quantity,
                iva_rate=int(item.iva_rate),
                iva_amount=item.iva_amount,
                total_price=item.total_price,
            )
            for position, item in enumerate(items)
        ]
        sale.total_amount = self._sum_items(items)

        totals = TaxAggregator.aggregate(items)
        sale.gravada10 = totals.gravada10
        sale.gravada5 = totals.gravada5
        sale.exenta = totals.exenta
        sale.iva10 = totals.iva10
        sale.iva5 = totals.iva5

    def _build_payments(self, payments: List[PaymentIn]) -> List[SalePayment]:
        return [
            SalePayment(
                payment_method=entry.payment_method,
                total_amount=entry.total_amount,
                date=entry.date or utcnow(),
            )
            for entry in payments
        ]

    @staticmethod
    def _sum_items(items: List[LineItemIn]) -> Decimal:
        return sum((Decimal(item.total_price) for item in items), Decimal("0.00"))

    def _check_payments(self, payments: List[PaymentIn], total_amount: Decimal) -> None:
        paid = sum((Decimal(entry.total_amount) for entry in payments), Decimal("0.00"))
        self._check_amount(paid, total_amount)

    @staticmethod
    def _check_amount(paid: Decimal, total_amount: Decimal) -> None:
        if paid > total_amount:
            raise ValidationError(
                "El total pagado excede el total de la venta",
                field_errors=[{
                    "field": "payment",
                    "message": f"Pagado {paid} supera el total {total_amount}"
                }]
            )

    @staticmethod
    def _normalize_ruc(ruc: Optional[str]) -> str:
        try:
            return normalize_ruc(ruc)
        except ValueError as e:
            raise ValidationError(str(e), field_errors=[{"field": "ruc", "message": str(e)}])
