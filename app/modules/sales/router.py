from fastapi import APIRouter, Depends, status, Query
from typing import Optional
from uuid import UUID
from datetime import date

from app.core.config import settings
from app.dependencies.dbDependecies import db_dependency
from app.dependencies.clockDependencies import clock_dependency
from app.modules.auth.dependencies import AuthDependencies
from app.modules.printing.service import PrintQueue, get_print_queue
from app.modules.sales.models import SaleStatus, PaymentMethod
from app.modules.sales.service import SaleService
from app.modules.sales.schemas import (
    SaleCreate, SaleUpdate, SaleStatusUpdate, SaleOut, SaleList, SaleFilters,
    InvoiceInfo, DailyCounterOut
)

router = APIRouter(prefix="/sales", tags=["Sales"])


def get_sale_service(
    db: db_dependency,
    clock: clock_dependency,
    print_queue: PrintQueue = Depends(get_print_queue)
) -> SaleService:
    return SaleService(db, clock=clock, print_queue=print_queue)


@router.post("/", response_model=SaleOut, status_code=status.HTTP_201_CREATED)
def create_sale(
    sale_data: SaleCreate,
    service: SaleService = Depends(get_sale_service),
    auth_context=Depends(AuthDependencies.require_any_role())
):
    """
    Registrar una venta

    Asigna el número de orden del día, calcula la liquidación de IVA y
    encola la comanda o el ticket. Con `invoiced=true` además la factura;
    si la facturación falla la venta queda registrada y el error lleva su
    `sale_id`.
    """
    return service.create_sale(sale_data, auth_context)


@router.get("/", response_model=SaleList)
def list_sales(
    limit: int = Query(settings.DEFAULT_PAGE_SIZE, ge=1, le=settings.MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    status: Optional[SaleStatus] = Query(None, description="Estado de la venta"),
    user_id: Optional[str] = Query(None, description="Usuario que registró la venta"),
    start_date: Optional[date] = Query(None, description="Fecha inicial (YYYY-MM-DD)"),
    end_date: Optional[date] = Query(None, description="Fecha final (YYYY-MM-DD)"),
    payment_method: Optional[PaymentMethod] = Query(None, description="Medio de pago"),
    ruc: Optional[str] = Query(None, description="RUC (coincidencia parcial)"),
    product_name: Optional[str] = Query(None, description="Nombre de producto (coincidencia parcial)"),
    invoiced: Optional[bool] = Query(None, description="Solo facturadas / no facturadas"),
    service: SaleService = Depends(get_sale_service),
    auth_context=Depends(AuthDependencies.require_any_role())
):
    """
    Listar ventas con filtros

    Incluye el conteo por estado de las ventas que cumplen los filtros.
    """
    filters = SaleFilters(
        status=status,
        user_id=user_id,
        start_date=start_date,
        end_date=end_date,
        payment_method=payment_method,
        ruc=ruc,
        product_name=product_name,
        invoiced=invoiced
    )
    return service.list_sales(filters, limit, offset)


@router.get("/daily-counter", response_model=DailyCounterOut)
def get_daily_counter(
    service: SaleService = Depends(get_sale_service),
    auth_context=Depends(AuthDependencies.require_any_role())
):
    """Último número de orden asignado hoy"""
    return service.current_daily_id()


@router.get("/{sale_id}", response_model=SaleOut)
def get_sale(
    sale_id: UUID,
    service: SaleService = Depends(get_sale_service),
    auth_context=Depends(AuthDependencies.require_any_role())
):
    return service.get_sale(sale_id)


@router.put("/{sale_id}", response_model=SaleOut)
def update_sale(
    sale_id: UUID,
    sale_update: SaleUpdate,
    service: SaleService = Depends(get_sale_service),
    auth_context=Depends(AuthDependencies.require_any_role())
):
    """
    Actualizar una venta

    Reemplaza items y pagos si se envían (no permitido en ventas facturadas).
    Si `invoiced` pasa a true y la venta queda completada, se factura.
    """
    return service.update_sale(sale_id, sale_update)


@router.patch("/{sale_id}/status", response_model=SaleOut)
def update_sale_status(
    sale_id: UUID,
    status_update: SaleStatusUpdate,
    service: SaleService = Depends(get_sale_service),
    auth_context=Depends(AuthDependencies.require_any_role())
):
    """
    Cambiar el estado de una venta

    `status` acepta pending, ordered, completed, canceled, annulled o la
    señal `ready` (pedido listo). La etapa se deriva del estado.
    """
    return service.update_status(
        sale_id,
        status_update.status,
        ruc=status_update.ruc,
        invoice=status_update.invoice
    )


@router.post("/{sale_id}/invoice", response_model=InvoiceInfo)
def invoice_sale(
    sale_id: UUID,
    service: SaleService = Depends(get_sale_service),
    auth_context=Depends(AuthDependencies.require_any_role())
):
    """
    Facturar una venta con el timbrado vigente

    409 si ya estaba facturada, 404 si no hay timbrado vigente, 400 si el
    timbrado expiró o se agotó su cupo.
    """
    return service.invoice_sale(sale_id)
