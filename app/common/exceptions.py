"""
Excepciones de dominio del sistema de ventas y facturación.

Todas heredan de BaseApplicationError, que lleva el código HTTP con el que
se traducen en la frontera del servicio (ver app.common.error_handlers).
"""
from typing import Any, Dict, List, Optional
from fastapi import status


class BaseApplicationError(Exception):
    """Error de aplicación con mensaje, detalles y contexto estructurado."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.context = context or {}

    def add_context(self, key: str, value: Any) -> "BaseApplicationError":
        """Agregar información de contexto (ej. sale_id) al error."""
        self.context[key] = value
        return self

    def to_dict(self) -> Dict[str, Any]:
        payload = {
            "success": False,
            "message": self.message,
            "type": self.__class__.__name__,
        }
        payload.update(self.details)
        payload.update(self.context)
        return payload


class ValidationError(BaseApplicationError):
    """Datos de entrada inválidos (items vacíos, pagos excedidos, enum desconocido)."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str, field_errors: Optional[List[Dict[str, str]]] = None, **kwargs):
        self.field_errors = field_errors or []
        details = {"errors": self.field_errors} if self.field_errors else None
        super().__init__(message, details=details, **kwargs)


class NotFoundError(BaseApplicationError):
    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(BaseApplicationError):
    status_code = status.HTTP_409_CONFLICT


class AlreadyInvoicedError(ConflictError):
    """La venta ya fue facturada; la facturación ocurre a lo sumo una vez."""


class InvalidTransitionError(ConflictError):
    """Transición de estado no permitida por la máquina de estados de la venta."""


class NoActiveTimbradoError(BaseApplicationError):
    status_code = status.HTTP_404_NOT_FOUND


class ExpiredError(BaseApplicationError):
    """El timbrado no está vigente en el momento de emitir la factura."""

    status_code = status.HTTP_400_BAD_REQUEST


class QuotaExceededError(BaseApplicationError):
    """Se alcanzó el límite de facturas del timbrado."""

    status_code = status.HTTP_400_BAD_REQUEST


class StoreUnavailableError(BaseApplicationError):
    """La base de datos no respondió a tiempo o no está disponible."""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
