"""FastAPI application factory."""

from __future__ import annotations

from fastapi import FastAPI

from event_service.app.exception_handlers import configure_exception_handlers
from event_service.app.lifespan import lifespan
from event_service.app.router import setup_routers
from event_service.core.settings import get_app_settings
from event_service.core.settings.app import AppSettings


def create_app(app_settings: AppSettings | None = None) -> FastAPI:
    """Create and configure FastAPI application.

    Settings are loaded once and cached via LRU cache; pass ``app_settings``
    to override them (tests do).

    Returns:
        Configured FastAPI application instance.
    """
    app_settings = app_settings or get_app_settings()

    app = FastAPI(
        title=app_settings.title,
        description=app_settings.description,
        version=app_settings.version,
        docs_url=app_settings.docs_url,
        openapi_url=app_settings.openapi_url,
        debug=app_settings.debug,
        lifespan=lifespan,
    )

    # Configure exception handlers (must be before routers)
    configure_exception_handlers(app)

    setup_routers(app, app_settings)

    return app


# Application instance for uvicorn
app = create_app()
