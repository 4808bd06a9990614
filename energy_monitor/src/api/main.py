"""
FastAPI application factory for the panel energy monitor API.

The lifespan builds the service graph from MonitorSettings (or uses one
supplied by the caller, e.g. tests), starts MQTT ingestion when autostart is
enabled, and tears everything down in order on shutdown.

Errors raised by route handlers are rendered in the dashboard envelope
``{"status": "ERROR", "message": ...}``.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from energy_monitor.src.api.health import router as health_router
from energy_monitor.src.api.mqtt import router as mqtt_router
from energy_monitor.src.api.panels import router as panels_router
from energy_monitor.src.config import MonitorSettings
from energy_monitor.src.errors import InvalidRange, MonitorError
from energy_monitor.src.main import (
    MonitorServices,
    build_services,
    configure_logging,
    log_config_summary,
)

logger = logging.getLogger(__name__)


def _error_envelope(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"status": "ERROR", "message": message})


async def _http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    return _error_envelope(exc.status_code, str(exc.detail))


async def _invalid_range_handler(request: Request, exc: InvalidRange) -> JSONResponse:
    return _error_envelope(400, str(exc))


async def _monitor_error_handler(request: Request, exc: MonitorError) -> JSONResponse:
    logger.error("Unhandled monitor error on %s: %s", request.url.path, exc)
    return _error_envelope(500, "Internal server error")


def create_app(services: MonitorServices | None = None) -> FastAPI:
    """Build the FastAPI application.

    Args:
        services: Pre-built service graph. When None, the lifespan loads
            MonitorSettings from the environment and builds one.

    Returns:
        FastAPI: Configured application with all routers registered.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan: build and start services, then close them."""
        graph = services
        if graph is None:
            configure_logging()
            settings = MonitorSettings()
            log_config_summary(settings)
            graph = build_services(settings)

        app.state.services = graph
        await graph.start()
        logger.info("Energy monitor API ready")
        try:
            yield
        finally:
            logger.info("Energy monitor API shutting down")
            await graph.close()

    app = FastAPI(
        title="Panel Energy Monitor API",
        description="Realtime and historical energy telemetry for building power panels.",
        version="0.1.0",
        lifespan=lifespan,
    )

    app.add_exception_handler(HTTPException, _http_exception_handler)
    app.add_exception_handler(InvalidRange, _invalid_range_handler)
    app.add_exception_handler(MonitorError, _monitor_error_handler)

    app.include_router(health_router)
    app.include_router(mqtt_router)
    app.include_router(panels_router)
    return app


app = create_app()
