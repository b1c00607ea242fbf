"""
Connector Hub — application entry point.
"""

from __future__ import annotations

import logging
import sys
from typing import Optional

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware import register_exception_handlers, register_middleware
from api.routes import router as api_router
from config.settings import Settings, config
from connectors.routes import router as connectors_router
from core.services import Services, build_services
from database.session import build_engine, build_session_factory, init_models

logging.basicConfig(
    level=logging.DEBUG if config.debug else logging.INFO,
    format="%(asctime)s  %(levelname)-8s  %(name)s — %(message)s",
    stream=sys.stdout,
)
for _noisy in ("httpcore", "httpx", "openai", "anthropic", "sqlalchemy.engine"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)
logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, services: Optional[Services] = None) -> FastAPI:
    """
    Build the FastAPI app.

    When ``services`` is given it is used as-is (tests); otherwise the
    database is initialised and the services are built on startup.
    """
    settings = settings or config
    app = FastAPI(
        title="Connector Hub",
        version="1.0.0",
        description="Per-user credentials and tool dispatch for third-party connectors.",
    )

    # CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    register_middleware(app)
    register_exception_handlers(app)

    # Routes
    app.include_router(connectors_router, prefix="/api/connectors")
    app.include_router(api_router, prefix="/api")

    app.state.services = services
    app.state.engine = None
    owns_services = services is None

    @app.on_event("startup")
    async def on_startup():
        if app.state.services is None:
            app.state.engine = build_engine(settings.database_url, echo=settings.debug)
            await init_models(app.state.engine)
            app.state.services = build_services(settings, build_session_factory(app.state.engine))

        configured = [c.name for c in app.state.services.registry.list_connectors() if c.is_configured()]
        logger.info("Configured connectors: %s", configured or "none")
        logger.info("Application ready to accept requests.")

    @app.on_event("shutdown")
    async def on_shutdown():
        if owns_services and app.state.services is not None:
            await app.state.services.aclose()
        if app.state.engine is not None:
            await app.state.engine.dispose()

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )
