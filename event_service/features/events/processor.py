"""Event queue consumer.

For every job taken off the event queue the processor writes an event log
entry, dispatches the event to matching subscriptions and records the
outcome. A partially successful fan-out is recorded with the configured
``partial_delivery_status``.
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING

from event_service.core.settings.events import EventSettings
from event_service.infra.logging import clear_log_context, set_log_context
from event_service.infra.metrics.tracking import (
    track_event_dead_lettered,
    track_event_processed,
)

from .schemas import DispatchResult, Event, utc_now
from .types import EventStatus

if TYPE_CHECKING:
    from event_service.infra.queue import QueueJob

    from .log import EventLog
    from .publisher import EventPublisher
    from .subscriber import SubscriberRegistry

logger = logging.getLogger(__name__)


class EventProcessor:
    """Consume event jobs: log, dispatch, classify."""

    def __init__(
        self,
        registry: SubscriberRegistry,
        event_log: EventLog,
        publisher: EventPublisher | None = None,
        settings: EventSettings | None = None,
    ) -> None:
        """Initialize the processor.

        Args:
            registry: Subscriptions the events are dispatched to.
            event_log: Log receiving one entry per processing attempt.
            publisher: When given, its status buffer mirrors the outcome.
            settings: Event settings (partial delivery policy).
        """
        self._registry = registry
        self._event_log = event_log
        self._publisher = publisher
        self._settings = settings or EventSettings()

    @property
    def partial_delivery_status(self) -> EventStatus:
        return EventStatus(self._settings.partial_delivery_status)

    async def process(self, job: QueueJob) -> DispatchResult:
        """Process one event job.

        Raises:
            Exception: A dispatch-level failure, after the entry was marked
                FAILED, so the queue retries the job.
        """
        event = Event.model_validate(job.payload)
        set_log_context(
            event_id=event.id,
            tenant_id=event.tenant_id,
            correlation_id=event.correlation_id,
        )
        try:
            return await self._process(event, job.attempts_made)
        finally:
            clear_log_context()

    async def _process(self, event: Event, attempt: int) -> DispatchResult:
        entry = self._event_log.log_event(event)
        self._event_log.update_status(entry.id, EventStatus.PROCESSING)
        self._mirror(event.id, EventStatus.PROCESSING, attempts=attempt)

        started = time.perf_counter()
        try:
            result = await self._registry.dispatch(event)
        except Exception as exc:
            error = str(exc) or type(exc).__name__
            self._event_log.update_status(entry.id, EventStatus.FAILED, error)
            self._mirror(event.id, EventStatus.FAILED, error=error)
            track_event_processed(event.type, EventStatus.FAILED, time.perf_counter() - started)
            logger.exception(
                "Event dispatch failed",
                extra={
                    "event_id": event.id,
                    "event_type": event.type,
                    "attempt": attempt,
                    "operation": "processor.process",
                },
            )
            raise

        duration = time.perf_counter() - started
        status = self.classify(result)
        error = "; ".join(f"{e.subscription_id}: {e.error}" for e in result.errors) or None

        self._event_log.update_status(entry.id, status, error)
        self._mirror(event.id, status, error=error)
        track_event_processed(
            event.type,
            status,
            duration,
            handler_failures=result.failure_count,
        )

        if result.failure_count and result.success_count:
            logger.warning(
                "Event partially delivered",
                extra={
                    "event_id": event.id,
                    "event_type": event.type,
                    "success_count": result.success_count,
                    "failure_count": result.failure_count,
                    "recorded_status": status,
                    "operation": "processor.process",
                },
            )
        else:
            logger.info(
                "Event processed",
                extra={
                    "event_id": event.id,
                    "event_type": event.type,
                    "status": status,
                    "success_count": result.success_count,
                    "failure_count": result.failure_count,
                    "duration_ms": round(duration * 1000, 2),
                    "operation": "processor.process",
                },
            )
        return result

    def classify(self, result: DispatchResult) -> EventStatus:
        """Map dispatch counts to the status recorded for the event.

        No failures (including no matching subscription) is DELIVERED, only
        failures is FAILED, and a mix uses ``partial_delivery_status``.
        """
        if result.failure_count == 0:
            return EventStatus.DELIVERED
        if result.success_count == 0:
            return EventStatus.FAILED
        return self.partial_delivery_status

    async def handle_failure(self, job: QueueJob, exc: BaseException) -> None:
        """Queue failure callback, run after every failed attempt.

        Once the attempts are spent the latest log entry of the event is
        moved to DEAD_LETTER; before that the buffered event is marked
        RETRYING.
        """
        event_id = job.payload.get("id")
        if not event_id:
            logger.warning(
                "Failed job carries no event id",
                extra={"job_id": job.id, "operation": "processor.handle_failure"},
            )
            return

        error = str(exc) or type(exc).__name__
        if not job.attempts_exhausted:
            self._mirror(event_id, EventStatus.RETRYING, error=error, attempts=job.attempts_made)
            logger.info(
                "Event will be retried",
                extra={
                    "event_id": event_id,
                    "attempt": job.attempts_made,
                    "max_attempts": job.max_attempts,
                    "operation": "processor.handle_failure",
                },
            )
            return

        entry = self._event_log.get_entry_by_event_id(event_id)
        if entry is not None:
            self._event_log.update_status(entry.id, EventStatus.DEAD_LETTER, error)
        self._mirror(event_id, EventStatus.DEAD_LETTER, error=error, attempts=job.attempts_made)
        track_event_dead_lettered(job.name)
        logger.error(
            "Event dead-lettered",
            extra={
                "event_id": event_id,
                "event_type": job.name,
                "attempts": job.attempts_made,
                "error": error,
                "operation": "processor.handle_failure",
            },
        )

    def _mirror(
        self,
        event_id: str,
        status: EventStatus,
        *,
        error: str | None = None,
        attempts: int | None = None,
    ) -> None:
        if self._publisher is None:
            return
        self._publisher.update_event_status(
            event_id,
            status,
            error=error,
            delivered_at=utc_now() if status is EventStatus.DELIVERED else None,
            attempts=attempts,
        )


__all__ = ["EventProcessor"]
