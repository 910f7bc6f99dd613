"""
FastAPI Application Entry Point.

This is the main application file for the Driver Pay Backend.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from driverpay.app.core.config import settings
from driverpay.app.api.v1.router import router as api_v1_router
from driverpay.app.core.observability import ObservabilityMiddleware, configure_logging
from driverpay.app.core.redis_client import ping_redis
from driverpay.app.db.session import engine, Base
from driverpay.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from driverpay.app.models.trip import Trip
from driverpay.app.models.pay_settings import PaySettings
from driverpay.app.models.audit_log import AuditLog


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    1. Configures logging.
    2. Creates database tables on startup.
    3. Disposes the engine on shutdown.
    """
    configure_logging(settings.log_level)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    await engine.dispose()

# Initialize FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    debug=settings.debug,
    description="Trip mileage tracking and pay calculation for delivery drivers",
    lifespan=lifespan,
)

app.add_middleware(ObservabilityMiddleware)

# Register global exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(RequestValidationError, validation_exception_handler)
app.add_exception_handler(Exception, generic_exception_handler)


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint.

    Reports the record store and the snapshot store separately; the
    service keeps working without Redis, only crash recovery is weaker.

    Returns:
        dict: Status and application information
    """
    database_ok = True
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError):
        database_ok = False

    redis_ok = await ping_redis()

    return {
        "status": "healthy" if database_ok else "degraded",
        "app_name": settings.app_name,
        "version": settings.api_version,
        "database": "ok" if database_ok else "unavailable",
        "redis": "ok" if redis_ok else "unavailable",
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")


@app.get("/", tags=["Root"])
async def root():
    """
    Root endpoint.

    Returns:
        dict: Welcome message and API documentation links
    """
    return {
        "message": "Welcome to Driver Pay Backend API",
        "docs": "/docs",
        "health": "/health",
    }
