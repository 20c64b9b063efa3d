#!/usr/bin/env python3
"""
FastAPI Application Entry Point

Hosts the session courier: the lifespan builds and starts the lifecycle
manager, the routes expose health and operator controls.

Author: Senior Solution Architect
Date: 2025-12-05
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from courier.application.api.routes.admin import router as admin_router
from courier.application.api.routes.health import router as health_router
from courier.connection.lifecycle_manager import LifecycleManager
from courier.core.config.settings import get_settings
from courier.core.exceptions import (
    ConfigurationError,
    CourierError,
    InvalidTransitionError,
    NotConnectedError,
    RateLimitExceededError,
)
from courier.core.logging import get_logger, setup_logging
from courier.infrastructure import BackendClient

logger = get_logger(__name__)


# ============================================================================
# Application Lifespan
# ============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Startup/shutdown hook pair.

    A manager already placed on app.state is used as-is; otherwise one is
    built from settings with the transport named by TRANSPORT_FACTORY.
    """
    settings = get_settings()
    setup_logging(log_level=settings.logging.LOG_LEVEL, log_format=settings.logging.LOG_FORMAT)
    logger.info(
        "Starting Session Courier",
        environment=settings.app.ENVIRONMENT,
        version=settings.app.APP_VERSION,
    )

    backend = None
    manager = getattr(app.state, "manager", None)
    if manager is None:
        backend = BackendClient(settings.backend, app_version=settings.app.APP_VERSION)
        manager = LifecycleManager.from_settings(settings, backend=backend)
        await backend.open()
        app.state.manager = manager

    try:
        await manager.start()
        logger.info("Application startup complete")
        yield
    finally:
        logger.info("Shutting down application")
        await manager.shutdown()
        if backend is not None:
            await backend.aclose()
        logger.info("Application shutdown complete")


# ============================================================================
# Exception Handlers
# ============================================================================

_STATUS_BY_ERROR: list[tuple[type[CourierError], int]] = [
    (NotConnectedError, 409),
    (InvalidTransitionError, 409),
    (RateLimitExceededError, 429),
    (ConfigurationError, 500),
]


async def courier_exception_handler(request: Request, exc: CourierError):
    """Map domain errors to JSON using the error's to_dict()."""
    status_code = next((code for cls, code in _STATUS_BY_ERROR if isinstance(exc, cls)), 500)
    logger.error(
        f"Courier exception: {exc.message}",
        error_type=type(exc).__name__,
        correlation_id=exc.correlation_id,
        path=request.url.path,
    )
    return JSONResponse(status_code=status_code, content=exc.to_dict())


# ============================================================================
# Application Factory
# ============================================================================


def create_app(manager: LifecycleManager | None = None) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        manager: Pre-built manager (tests); built in the lifespan when omitted
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.app.APP_NAME,
        version=settings.app.APP_VERSION,
        description="Resilient session courier: connection lifecycle, delivery queue and health",
        lifespan=lifespan,
    )
    if manager is not None:
        app.state.manager = manager

    app.add_exception_handler(CourierError, courier_exception_handler)

    # All endpoints live under API_BASE_PATH (default /api/v1)
    base_path = settings.app.API_BASE_PATH
    app.include_router(health_router, prefix=base_path)
    app.include_router(admin_router, prefix=base_path)

    @app.get("/", tags=["Root"])
    async def root():
        return {
            "name": settings.app.APP_NAME,
            "version": settings.app.APP_VERSION,
            "environment": settings.app.ENVIRONMENT,
            "health": f"{base_path}/health",
        }

    return app
