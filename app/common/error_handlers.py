"""
Exception handlers de FastAPI.

Traducen los errores de dominio y de base de datos a respuestas JSON con la
forma {success: false, message, ...detalles}. Ningún error sale sin manejar.
"""
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from sqlalchemy.exc import IntegrityError, OperationalError
import logging

from app.common.exceptions import BaseApplicationError
from app.core.config import settings

logger = logging.getLogger(__name__)


async def application_exception_handler(request: Request, exc: BaseApplicationError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} -> {exc.__class__.__name__}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} -> {exc.__class__.__name__}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = []
    for error in exc.errors():
        # El primer elemento de loc es "body"/"query"/"path"
        field = ".".join(str(loc) for loc in error["loc"][1:]) or str(error["loc"][0])
        errors.append({"field": field, "message": error["msg"]})
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "success": False,
            "message": "Errores de validación",
            "type": "ValidationError",
            "errors": errors,
        },
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "message": exc.detail, "type": "HTTPException"},
        headers=getattr(exc, "headers", None),
    )


async def integrity_exception_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    logger.warning(f"Integrity error on {request.method} {request.url.path}: {exc.orig}")
    return JSONResponse(
        status_code=status.HTTP_409_CONFLICT,
        content={"success": False, "message": "Duplicate key error", "type": "ConflictError"},
    )


async def operational_exception_handler(request: Request, exc: OperationalError) -> JSONResponse:
    logger.error(f"Database unavailable on {request.method} {request.url.path}: {exc.orig}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "success": False,
            "message": "Base de datos no disponible, reintente la operación",
            "type": "StoreUnavailableError",
        },
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=True)
    message = "Something went wrong" if settings.ENVIRONMENT == "production" else str(exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"success": False, "message": message, "type": exc.__class__.__name__},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(BaseApplicationError, application_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(IntegrityError, integrity_exception_handler)
    app.add_exception_handler(OperationalError, operational_exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
