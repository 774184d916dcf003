"""
FastAPI Application Entry Point.

Parcel/trip matching backend: scores parcels against courier trips, stores
candidate matches and tracks parcel, match and payment status.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.exceptions import RequestValidationError
from parcelmatch.app.core.config import settings
from parcelmatch.app.api.v1.router import router as api_v1_router
from parcelmatch.app.core.observability import ObservabilityMiddleware, configure_logging
from parcelmatch.app.db.session import engine, Base
from parcelmatch.app.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    generic_exception_handler
)

# Import models to ensure they are registered with Base
from parcelmatch.app.models.user import User  # noqa: F401
from parcelmatch.app.models.trip import Trip  # noqa: F401
from parcelmatch.app.models.parcel import Parcel  # noqa: F401
from parcelmatch.app.models.match import Match  # noqa: F401
from parcelmatch.app.models.parcel_status_history import ParcelStatusHistory  # noqa: F401
from parcelmatch.app.models.notification import Notification  # noqa: F401
from parcelmatch.app.models.audit_log import AuditLog  # noqa: F401


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Lifespan context manager for application startup/shutdown.

    Configures logging and creates database tables on startup.
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
    description="Matches parcels with courier trips and tracks delivery and payment status",
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

    Returns:
        dict: Status and application information
    """
    return {
        "status": "healthy",
        "app_name": settings.app_name,
        "version": settings.api_version,
    }


# Include API v1 router
app.include_router(api_v1_router, prefix=f"/{settings.api_version}")
