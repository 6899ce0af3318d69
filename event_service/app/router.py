"""Router registry and setup."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from event_service.core.settings import get_app_settings
from event_service.features.events.router import router as events_router
from event_service.features.metrics.router import router as metrics_router
from event_service.features.webhooks.router import router as webhooks_router

if TYPE_CHECKING:
    from fastapi import FastAPI

    from event_service.core.settings.app import AppSettings

logger = logging.getLogger(__name__)


def setup_routers(app: FastAPI, app_settings: AppSettings | None = None) -> None:
    """Register all feature routers with the application.

    Args:
        app: FastAPI application instance.
        app_settings: Optional application settings override for the API prefix.
    """
    app_settings = app_settings or get_app_settings()
    api_prefix = app_settings.api_prefix

    # Metrics endpoint (no prefix - accessible at /metrics)
    app.include_router(metrics_router, tags=["observability"])

    app.include_router(events_router, prefix=api_prefix)
    app.include_router(webhooks_router, prefix=api_prefix)

    logger.debug("Routers registered", extra={"api_prefix": api_prefix})


__all__ = ["setup_routers"]
