"""csv-relay ─ FastAPI application
================================

This module hosts the **production ASGI application**.

Usage
-----
Run locally with::

    uvicorn csv_relay.api.app:app --reload

or through the entry point ``python -m csv_relay.main`` which applies the
host/port from :class:`~csv_relay.core.config.Settings`.
"""

from __future__ import annotations

# third-party
import structlog
from fastapi import APIRouter, FastAPI
from prometheus_client import make_asgi_app

# local imports
from csv_relay import __version__
from csv_relay.api.errors import add_exception_handlers
from csv_relay.api.routes import admin as admin_router_module
from csv_relay.api.routes import upload as upload_router_module
from csv_relay.core.config import Settings, get_settings
from csv_relay.core.logging import RequestLoggingMiddleware, configure_logging

__all__: list[str] = ["app"]

# ---------------------------------------------------------------------------
# Initialise *process-wide* logging before any logger instantiation.
# ---------------------------------------------------------------------------
settings = get_settings()
configure_logging(settings.debug)
logger = structlog.get_logger(__name__)


def _register_routes(app_instance: FastAPI) -> None:
    """Include every API router into the FastAPI application."""
    routers: list[APIRouter] = [
        upload_router_module.router,
        admin_router_module.router,
    ]
    for router in routers:
        app_instance.include_router(router)


def _create_fastapi_app(app_settings: Settings | None = None) -> FastAPI:  # noqa: D401 – factory
    """Build and configure the FastAPI application."""

    app_settings = app_settings or settings

    app_instance = FastAPI(
        title="csv-relay",
        version=__version__,
        docs_url="/docs",
        redoc_url=None,
        openapi_url="/openapi.json",
    )

    # ------------------------------------------------------------------
    # Middleware – logging comes first so later handlers inherit context vars.
    # ------------------------------------------------------------------
    app_instance.add_middleware(RequestLoggingMiddleware)

    @app_instance.on_event("startup")
    async def _on_startup() -> None:  # pragma: no cover – trivial logging
        logger.info(
            "fastapi_startup",
            commit_sha=app_settings.commit_sha,
            validation_bytes=app_settings.validation_bytes,
        )

    @app_instance.on_event("shutdown")
    async def _on_shutdown() -> None:  # pragma: no cover – trivial logging
        logger.info("fastapi_shutdown")

    _register_routes(app_instance)
    add_exception_handlers(app_instance)

    # ------------------------------------------------------------------
    # Prometheus metrics mounted under */metrics/*. Response sizes are not
    # measured by a middleware: that would buffer every relayed body.
    # ------------------------------------------------------------------
    if app_settings.prometheus_enabled:
        app_instance.mount("/metrics", make_asgi_app())
        logger.info("prometheus_instrumentation_enabled")

    return app_instance


# Instantiate once at import time.
app: FastAPI = _create_fastapi_app()
