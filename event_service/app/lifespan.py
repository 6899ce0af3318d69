"""Application lifespan management.

Startup Order:
1. Core (logging)
2. Taskiq broker - only with ``APP_QUEUE_BACKEND=rabbitmq``
3. Event bus (subscriber modules, in-process queue workers)
4. Maintenance scheduler - only with the ``memory`` backend; with
   ``rabbitmq`` each worker sweeps its own event log

Shutdown Order: Reverse of startup (what starts first, shuts down last)
"""

from __future__ import annotations

from contextlib import asynccontextmanager
import logging
from typing import TYPE_CHECKING

from event_service.app.container import get_event_bus
from event_service.core.settings import get_app_settings, get_logging_settings
from event_service.infra.logging.config import setup_logging
from event_service.tasks.broker import start_taskiq, stop_taskiq
from event_service.tasks.scheduler import create_scheduler, setup_maintenance_jobs

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from fastapi import FastAPI

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Manage application lifecycle.

    Args:
        app: FastAPI application instance; the event bus is stored on
            ``app.state.event_bus``.

    Yields:
        None during application runtime.
    """
    settings = get_app_settings()

    # 1. Core
    setup_logging(log_settings=get_logging_settings(), force=True)
    logger.info(
        "Application starting",
        extra={
            "service": settings.service_name,
            "environment": settings.environment,
            "queue_backend": settings.queue_backend,
        },
    )

    # 2. Taskiq broker (no-op unless the rabbitmq backend is configured)
    await start_taskiq()

    # 3. Event bus
    bus = get_event_bus()
    app.state.event_bus = bus
    await bus.start()

    # 4. Maintenance scheduler
    scheduler = None
    if settings.queue_backend == "memory":
        scheduler = create_scheduler()
        setup_maintenance_jobs(scheduler, bus)
        scheduler.start()
        logger.info("Maintenance scheduler started", extra={"jobs": len(scheduler.get_jobs())})

    logger.info("Application ready", extra={"service": settings.service_name})

    try:
        yield
    finally:
        logger.info("Application shutting down", extra={"service": settings.service_name})

        if scheduler is not None and scheduler.running:
            scheduler.shutdown(wait=False)

        await bus.shutdown()
        get_event_bus.cache_clear()

        await stop_taskiq()
        logger.info("Application shutdown complete")


__all__ = ["lifespan"]
