"""Application factory for hosting the performance layer.

Usage:
    perf = PerformanceContext.from_settings(Settings(), stores)
    app = create_app(perf)
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import ORJSONResponse

from enterprise_perf.api.errors import install_error_handlers
from enterprise_perf.api.middleware import RequestContextMiddleware
from enterprise_perf.api.routers import health
from enterprise_perf.config import Settings
from enterprise_perf.context import PerformanceContext
from enterprise_perf.observability.logging import configure_logging

logger = logging.getLogger(__name__)


def create_app(context: PerformanceContext, configure_logs: bool = True) -> FastAPI:
    """Create a FastAPI app bound to a PerformanceContext.

    The lifespan starts the context on startup and closes it on shutdown.
    Host applications include their own routers and use
    enterprise_perf.api.deps to reach the context and request loaders.
    """
    settings = context.settings

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if configure_logs:
            configure_logging(json_format=settings.log_json, level=settings.log_level)

        logger.info(f"Starting {settings.app_name} ({settings.env})")
        await context.start()
        yield
        logger.info(f"Shutting down {settings.app_name}")
        await context.close()

    app = FastAPI(
        title=settings.app_name,
        default_response_class=ORJSONResponse,
        lifespan=lifespan,
    )
    app.state.perf = context

    app.add_middleware(RequestContextMiddleware)
    install_error_handlers(app)
    app.include_router(health.router)

    return app


def create_default_app() -> FastAPI:
    """Factory for `enterprise-perf serve`: Redis-backed context without stores."""
    return create_app(PerformanceContext.from_settings(Settings()))
