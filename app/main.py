from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
import logging

# Import database components
from app.database.database import engine, Base

# Import middleware and error handlers
from app.common.middleware import RequestLogMiddleware, SecurityHeadersMiddleware
from app.common.error_handlers import register_exception_handlers

# Import routers
from app.modules.sales.router import router as sales_router
from app.modules.timbrados.router import router as timbrados_router
from app.modules.taxes.router import router as taxes_router

# Import models for table creation
import app.modules.counters.models
import app.modules.timbrados.models
import app.modules.sales.models

from app.core.config import settings

# Configure logging
logging.basicConfig(
    level=logging.INFO if settings.ENVIRONMENT == "production" else logging.DEBUG,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# FastAPI app
app = FastAPI(
    title="POS Fiscal API",
    description="Ventas de punto de venta con numeración diaria de órdenes y facturación por timbrado (Paraguay)",
    version="1.0.0",
    docs_url="/docs" if settings.ENVIRONMENT != "production" else None,
    redoc_url="/redoc" if settings.ENVIRONMENT != "production" else None
)

# Add middleware (order matters!)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(SecurityHeadersMiddleware)
app.add_middleware(RequestLogMiddleware)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_exception_handlers(app)

# Include routers
app.include_router(sales_router)
app.include_router(timbrados_router)
app.include_router(taxes_router)

# Create database tables (only for development)
if settings.ENVIRONMENT == "development":
    Base.metadata.create_all(bind=engine)


@app.get("/")
async def read_root():
    return {
        "message": "POS Fiscal API is running",
        "version": "1.0.0",
        "environment": settings.ENVIRONMENT
    }


@app.get("/health")
async def health_check():
    return {"status": "healthy", "environment": settings.ENVIRONMENT}


@app.on_event("startup")
async def startup_event():
    logger.info("POS Fiscal API starting up...")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Business timezone: {settings.BUSINESS_TIMEZONE}")
    logger.info(f"Default sale status: {settings.SALE_DEFAULT_STATUS}")


@app.on_event("shutdown")
async def shutdown_event():
    logger.info("POS Fiscal API shutting down...")
