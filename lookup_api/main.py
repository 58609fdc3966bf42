"""
Lookup Portal API application factory.
Psychology: Build everything from one Settings object so tests can build their own.
Intention: Middleware order is fixed here - logging, metrics, gate, session, routes.
"""
import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Optional

import httpx
from fastapi import FastAPI

from lookup_api import __version__
from lookup_api.api import accounts, search
from lookup_api.auth import router as auth_router
from lookup_api.auth.sessions import SessionMiddleware
from lookup_api.config import Settings, get_settings
from lookup_api.database import ensure_indexes
from lookup_api.exceptions import register_exception_handlers
from lookup_api.middleware.gate import GateMiddleware
from lookup_api.middleware.logging import StructuredLoggingMiddleware, setup_structured_logging
from lookup_api.monitoring import MonitoringMiddleware, setup_monitoring
from lookup_api.services import build_services

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    database: Any = None,
    http_client: Optional[httpx.AsyncClient] = None,
) -> FastAPI:
    settings = settings or get_settings()
    services = build_services(settings, database=database, http_client=http_client)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {settings.app_name} ({settings.role_model})")
        if not settings.superuser_configured:
            logger.warning(f"{settings.roles.superuser_name} credentials not configured; superuser login disabled")
        try:
            await ensure_indexes(services.database, settings)
        except Exception as e:
            logger.warning(f"Index creation skipped: {e}")
        yield
        await services.close()
        logger.info(f"{settings.app_name} stopped")

    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        description="Session-authenticated lookup portal",
        docs_url=None if settings.production else "/docs",
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.services = services

    # added innermost first
    app.add_middleware(SessionMiddleware)
    app.add_middleware(GateMiddleware, settings=settings)
    app.add_middleware(MonitoringMiddleware)
    app.add_middleware(StructuredLoggingMiddleware)

    register_exception_handlers(app)
    setup_monitoring(app)

    app.include_router(auth_router.router)
    app.include_router(accounts.build_accounts_router(settings.roles))
    app.include_router(search.router)

    return app


def main():
    import uvicorn

    settings = get_settings()
    setup_structured_logging(settings.log_level, settings.log_json)
    port = int(os.getenv("PORT", 5000))
    uvicorn.run(create_app(settings), host="0.0.0.0", port=port, log_config=None)


if __name__ == "__main__":
    main()
