"""Historical event replay.

A replay selects DELIVERED log entries of one tenant inside a time window
and republishes them in batches. Republished events are new events: they
carry ``correlation_id="replay:<request_id>"`` and point back at the
original through ``causation_id`` and replay metadata.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from datetime import timedelta
import logging
from typing import TYPE_CHECKING

from event_service.core.exceptions import ReplayCapacityError
from event_service.core.settings.replay import ReplaySettings
from event_service.infra.metrics.tracking import (
    track_replay_finished,
    track_replay_rejected,
    track_replays_in_progress,
)

from .schemas import (
    EventLogEntry,
    EventReplayRequest,
    EventReplayResult,
    PublishOptions,
    ReplayFilter,
    ReplayStatus,
    utc_now,
)
from .types import EventPriority

if TYPE_CHECKING:
    from .log import EventLog
    from .publisher import EventPublisher

logger = logging.getLogger(__name__)

_MISSING = object()


def matches_replay_filter(entry: EventLogEntry, replay_filter: ReplayFilter | None) -> bool:
    """Source allow-list and exact metadata match against a log entry."""
    if replay_filter is None:
        return True
    if replay_filter.sources and entry.source not in replay_filter.sources:
        return False
    return all(
        entry.metadata.get(key, _MISSING) == expected
        for key, expected in (replay_filter.metadata or {}).items()
    )


def replay_correlation_id(request_id: str) -> str:
    return f"replay:{request_id}"


class EventReplayService:
    """Run replays in the background under a global concurrency cap.

    Example:
        service = EventReplayService(event_log, publisher)
        result = await service.start_replay(EventReplayRequest(tenant_id="acme", start_time=..., end_time=...))
        service.get_replay_status(result.request_id)
    """

    def __init__(
        self,
        event_log: EventLog,
        publisher: EventPublisher,
        settings: ReplaySettings | None = None,
    ) -> None:
        self._event_log = event_log
        self._publisher = publisher
        self._settings = settings or ReplaySettings()
        self._replays: dict[str, EventReplayResult] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}

    @property
    def replay_priority(self) -> EventPriority:
        return EventPriority.from_name(self._settings.priority)

    async def start_replay(self, request: EventReplayRequest) -> EventReplayResult:
        """Validate capacity, select the entries and start the run.

        Returns a snapshot taken when the run was marked in progress; poll
        ``get_replay_status`` for live progress.

        Raises:
            ReplayCapacityError: ``max_concurrent`` replays are already running.
        """
        max_concurrent = self._settings.max_concurrent
        if len(self.get_active_replays()) >= max_concurrent:
            track_replay_rejected()
            logger.warning(
                "Replay rejected: capacity reached",
                extra={
                    "tenant_id": request.tenant_id,
                    "max_concurrent": max_concurrent,
                    "operation": "replay.start_replay",
                },
            )
            raise ReplayCapacityError(max_concurrent)

        entries = [
            entry
            for entry in self._event_log.get_events_for_replay(
                request.tenant_id,
                request.start_time,
                request.end_time,
                request.event_types,
            )
            if matches_replay_filter(entry, request.filter)
        ]

        result = EventReplayResult(
            tenant_id=request.tenant_id,
            status=ReplayStatus.IN_PROGRESS,
            total_events=len(entries),
        )
        self._replays[result.request_id] = result

        batch_size = request.batch_size or self._settings.default_batch_size
        delay_ms = (
            request.delay_between_batches_ms
            if request.delay_between_batches_ms is not None
            else self._settings.default_delay_between_batches_ms
        )
        task = asyncio.create_task(
            self._execute(result, entries, batch_size, delay_ms),
            name=f"replay-{result.request_id}",
        )
        self._tasks[result.request_id] = task
        task.add_done_callback(lambda _: self._tasks.pop(result.request_id, None))
        track_replays_in_progress(len(self.get_active_replays()))

        logger.info(
            "Replay started",
            extra={
                "replay_request_id": result.request_id,
                "tenant_id": request.tenant_id,
                "total_events": result.total_events,
                "batch_size": batch_size,
                "delay_between_batches_ms": delay_ms,
                "operation": "replay.start_replay",
            },
        )
        return result.model_copy()

    async def _execute(
        self,
        result: EventReplayResult,
        entries: Sequence[EventLogEntry],
        batch_size: int,
        delay_ms: int,
    ) -> None:
        try:
            for offset in range(0, len(entries), batch_size):
                if result.status is ReplayStatus.CANCELLED:
                    break
                if offset and delay_ms:
                    await asyncio.sleep(delay_ms / 1000)
                    if result.status is ReplayStatus.CANCELLED:
                        break
                for entry in entries[offset : offset + batch_size]:
                    await self._replay_entry(result, entry)

            if result.status is ReplayStatus.IN_PROGRESS:
                result.status = ReplayStatus.COMPLETED
        except asyncio.CancelledError:
            if result.status is ReplayStatus.IN_PROGRESS:
                result.status = ReplayStatus.CANCELLED
            raise
        except Exception as exc:
            result.status = ReplayStatus.FAILED
            result.error = str(exc) or type(exc).__name__
            logger.exception(
                "Replay failed",
                extra={
                    "replay_request_id": result.request_id,
                    "operation": "replay.execute",
                },
            )
        finally:
            if result.completed_at is None:
                result.completed_at = utc_now()
            track_replay_finished(
                result.status,
                republished=result.processed_events - result.failed_events,
                failed=result.failed_events,
            )
            track_replays_in_progress(len(self.get_active_replays()))
            logger.info(
                "Replay finished",
                extra={
                    "replay_request_id": result.request_id,
                    "status": result.status,
                    "processed_events": result.processed_events,
                    "failed_events": result.failed_events,
                    "operation": "replay.execute",
                },
            )

    async def _replay_entry(self, result: EventReplayResult, entry: EventLogEntry) -> None:
        options = PublishOptions(
            priority=self.replay_priority,
            correlation_id=replay_correlation_id(result.request_id),
            causation_id=entry.event_id,
            source=entry.source,
            metadata={
                **entry.metadata,
                "original_event_id": entry.event_id,
                "replay_request_id": result.request_id,
                "replayed": True,
            },
        )
        try:
            await self._publisher.publish(entry.tenant_id, entry.type, entry.payload, options)
        except Exception:
            result.failed_events += 1
            logger.warning(
                "Failed to republish event during replay",
                exc_info=True,
                extra={
                    "replay_request_id": result.request_id,
                    "original_event_id": entry.event_id,
                    "operation": "replay.replay_entry",
                },
            )
        finally:
            result.processed_events += 1

    # ──────────────────────────────────────────────────────────────
    # Queries and control
    # ──────────────────────────────────────────────────────────────

    def get_replay_status(self, request_id: str) -> EventReplayResult | None:
        return self._replays.get(request_id)

    def cancel_replay(self, request_id: str) -> bool:
        """Request cancellation; takes effect at the next batch boundary.

        Returns:
            True when the replay was in progress.
        """
        result = self._replays.get(request_id)
        if result is None or result.status is not ReplayStatus.IN_PROGRESS:
            return False
        result.status = ReplayStatus.CANCELLED
        result.completed_at = utc_now()
        logger.info(
            "Replay cancelled",
            extra={"replay_request_id": request_id, "operation": "replay.cancel_replay"},
        )
        return True

    def get_tenant_replays(self, tenant_id: str) -> list[EventReplayResult]:
        """Replays of a tenant, most recently started first."""
        return sorted(
            (result for result in self._replays.values() if result.tenant_id == tenant_id),
            key=lambda result: result.started_at,
            reverse=True,
        )

    def get_active_replays(self) -> list[EventReplayResult]:
        return [r for r in self._replays.values() if r.status is ReplayStatus.IN_PROGRESS]

    def cleanup_old_replays(self, max_age_ms: int | None = None) -> int:
        """Forget finished replays older than ``max_age_ms``; running ones are kept."""
        if max_age_ms is None:
            max_age_ms = self._settings.result_max_age_seconds * 1000
        cutoff = utc_now() - timedelta(milliseconds=max_age_ms)

        stale = [
            request_id
            for request_id, result in self._replays.items()
            if result.status is not ReplayStatus.IN_PROGRESS
            and (result.completed_at or result.started_at) < cutoff
        ]
        for request_id in stale:
            del self._replays[request_id]

        if stale:
            logger.info(
                "Old replay results removed",
                extra={"removed": len(stale), "operation": "replay.cleanup_old_replays"},
            )
        return len(stale)

    async def wait_for(self, request_id: str) -> EventReplayResult | None:
        """Wait for a running replay to finish and return its final result."""
        task = self._tasks.get(request_id)
        if task is not None:
            await asyncio.gather(task, return_exceptions=True)
        return self._replays.get(request_id)

    async def on_shutdown(self) -> None:
        """Cancel running replays and wait for their tasks to unwind."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._replays.clear()


__all__ = [
    "EventReplayService",
    "matches_replay_filter",
    "replay_correlation_id",
]
