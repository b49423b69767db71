"""
Máquina de estados de la venta

Las transiciones permitidas y la etapa derivada de cada estado viven en
estas tablas; tanto la creación como las actualizaciones pasan por aquí.
"""
from typing import Optional, Union

from app.common.exceptions import ValidationError, InvalidTransitionError
from app.modules.sales.models import SaleStatus, SaleStage

# Señal "pedido listo": no cambia el estado, solo la etapa
READY_SIGNAL = "ready"

CREATION_STATUSES = {SaleStatus.PENDING, SaleStatus.ORDERED, SaleStatus.COMPLETED}

ALLOWED_TRANSITIONS = {
    SaleStatus.PENDING: {SaleStatus.COMPLETED, SaleStatus.CANCELED},
    SaleStatus.ORDERED: {SaleStatus.COMPLETED, SaleStatus.CANCELED},
    SaleStatus.COMPLETED: {SaleStatus.ANNULLED},
    SaleStatus.CANCELED: set(),
    SaleStatus.ANNULLED: set(),
}

STAGE_BY_STATUS = {
    SaleStatus.COMPLETED: SaleStage.DELIVERED,
    SaleStatus.CANCELED: SaleStage.CLOSED,
    SaleStatus.ANNULLED: SaleStage.CLOSED,
}

# Estados en los que la cocina todavía puede marcar el pedido como listo
READY_STATUSES = {SaleStatus.PENDING, SaleStatus.ORDERED}


def parse_status(value: Union[str, SaleStatus]) -> SaleStatus:
    try:
        return SaleStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in SaleStatus)
        raise ValidationError(
            f"Estado inválido: {value}",
            field_errors=[{"field": "status", "message": f"Debe ser uno de: {allowed}"}]
        )


def parse_creation_status(value: Optional[Union[str, SaleStatus]], default: str) -> SaleStatus:
    status = parse_status(value or default)
    if status not in CREATION_STATUSES:
        raise ValidationError(
            f"Una venta no puede crearse con estado {status.value}",
            field_errors=[{"field": "status", "message": "Debe ser pending, ordered o completed"}]
        )
    return status


def check_transition(current: SaleStatus, target: SaleStatus) -> None:
    """Misma → misma es un no-op aceptado"""
    if current == target:
        return
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(
            f"No se puede pasar de {current.value} a {target.value}",
            details={"current_status": current.value, "requested_status": target.value}
        )


def derive_stage(status: SaleStatus, current_stage: SaleStage) -> SaleStage:
    return STAGE_BY_STATUS.get(status, current_stage)


def ready_stage(status: SaleStatus) -> SaleStage:
    if status not in READY_STATUSES:
        raise InvalidTransitionError(
            f"Una venta en estado {status.value} no puede marcarse como lista",
            details={"current_status": status.value}
        )
    return SaleStage.FINISHED
