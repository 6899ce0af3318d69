"""APScheduler jobs for periodic maintenance.

Expired event log entries and old replay results are swept on the process
that owns them: the API process with the ``memory`` backend, each worker
with ``rabbitmq``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from event_service.core.settings import get_event_settings, get_replay_settings

if TYPE_CHECKING:
    from event_service.app.container import EventBus
    from event_service.core.settings import EventSettings, ReplaySettings

logger = logging.getLogger(__name__)


def create_scheduler() -> AsyncIOScheduler:
    return AsyncIOScheduler(
        timezone="UTC",
        job_defaults={
            "coalesce": True,  # Combine multiple pending executions into one
            "max_instances": 1,
            "misfire_grace_time": 60,
        },
    )


async def cleanup_event_log(bus: EventBus) -> int:
    """Remove expired event log entries."""
    removed = bus.event_log.cleanup_expired_entries()
    logger.info(
        "Event log cleanup finished",
        extra={
            "removed": removed,
            "remaining": bus.event_log.entry_count,
            "operation": "scheduler.cleanup_event_log",
        },
    )
    return removed


async def cleanup_replays(bus: EventBus) -> int:
    """Forget finished replay results past their max age."""
    removed = bus.replay.cleanup_old_replays()
    logger.debug(
        "Replay cleanup finished",
        extra={"removed": removed, "operation": "scheduler.cleanup_replays"},
    )
    return removed


def setup_maintenance_jobs(
    scheduler: AsyncIOScheduler,
    bus: EventBus,
    *,
    event_settings: EventSettings | None = None,
    replay_settings: ReplaySettings | None = None,
) -> None:
    """Register the maintenance sweeps on ``scheduler``."""
    event_settings = event_settings or get_event_settings()
    replay_settings = replay_settings or get_replay_settings()

    scheduler.add_job(
        func=cleanup_event_log,
        args=[bus],
        trigger=IntervalTrigger(seconds=event_settings.cleanup_interval_seconds),
        id="cleanup_event_log",
        name="Remove expired event log entries",
        replace_existing=True,
    )
    scheduler.add_job(
        func=cleanup_replays,
        args=[bus],
        trigger=IntervalTrigger(seconds=replay_settings.cleanup_interval_seconds),
        id="cleanup_replays",
        name="Remove old replay results",
        replace_existing=True,
    )
    logger.info(
        "Maintenance jobs scheduled",
        extra={"jobs": len(scheduler.get_jobs()), "operation": "scheduler.setup"},
    )


__all__ = [
    "cleanup_event_log",
    "cleanup_replays",
    "create_scheduler",
    "setup_maintenance_jobs",
]
