"""Event publishing onto the durable event queue.

The publisher stamps ids, correlation and causation links, enqueues the
event as a job and keeps a bounded status buffer of what it published.
"""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Sequence
from datetime import datetime
import logging
import threading
from typing import TYPE_CHECKING, Any

from event_service.core.settings.events import EventSettings
from event_service.infra.metrics.tracking import track_event_published
from event_service.infra.queue import BackoffKind, JobOptions, QueueStats, RetryPolicy

from .schemas import (
    EventInput,
    PublishedEvent,
    PublishOptions,
    generate_event_id,
    utc_now,
)
from .types import EventStatus, get_event_category, is_known_event_type

if TYPE_CHECKING:
    from event_service.infra.queue import DurableQueue

logger = logging.getLogger(__name__)


class EventPublisher:
    """Publish events to the durable queue.

    Example:
        publisher = EventPublisher(queue, settings)
        event = await publisher.publish("acme", OrderEvents.CREATED, {"order_id": "o-1"})
        chain = await publisher.publish_chain("acme", [EventInput(type="order.approved"), ...])
    """

    def __init__(self, queue: DurableQueue, settings: EventSettings | None = None) -> None:
        """Initialize the publisher.

        Args:
            queue: Queue the event jobs are written to.
            settings: Event settings; defaults are used when omitted.
        """
        self._queue = queue
        self._settings = settings or EventSettings()
        self._buffer: OrderedDict[str, PublishedEvent] = OrderedDict()
        self._lock = threading.Lock()

    @property
    def queue(self) -> DurableQueue:
        return self._queue

    # ──────────────────────────────────────────────────────────────
    # Publishing
    # ──────────────────────────────────────────────────────────────

    async def publish(
        self,
        tenant_id: str,
        event_type: str,
        payload: dict[str, Any],
        options: PublishOptions | None = None,
    ) -> PublishedEvent:
        """Publish a single event.

        The event is buffered at PENDING, moves to PROCESSING once the
        queue accepted it, or to FAILED when the enqueue raised; the
        enqueue error is re-raised unchanged.

        Raises:
            Exception: Whatever the queue raised while enqueueing.
        """
        options = options or PublishOptions()
        max_attempts = options.max_attempts or self._settings.max_attempts

        event = PublishedEvent(
            type=event_type,
            tenant_id=tenant_id,
            source=options.source or self._settings.default_source,
            schema_version=options.schema_version or "1.0",
            correlation_id=options.correlation_id,
            causation_id=options.causation_id,
            metadata=dict(options.metadata or {}),
            payload=payload,
            priority=options.priority,
            max_attempts=max_attempts,
        )
        self._remember(event)

        job_options = JobOptions(
            job_id=options.deduplication_id or event.id,
            priority=int(options.priority),
            delay_ms=options.delay_ms,
            retry=self._retry_policy(max_attempts),
        )

        try:
            job = await self._queue.enqueue(
                event_type, event.to_event().to_job_payload(), job_options
            )
        except Exception as exc:
            event.status = EventStatus.FAILED
            event.last_error = str(exc) or type(exc).__name__
            track_event_published(event_type, success=False)
            logger.exception(
                "Failed to enqueue event",
                extra={
                    "event_id": event.id,
                    "event_type": event_type,
                    "tenant_id": tenant_id,
                    "operation": "publisher.publish",
                },
            )
            raise

        original_id = job.payload.get("id")
        if original_id is not None and original_id != event.id:
            return self._resolve_duplicate(event, job.payload, job_options.job_id)

        event.status = EventStatus.PROCESSING
        track_event_published(event_type, success=True)
        if not is_known_event_type(event_type):
            logger.debug(
                "Publishing event type outside the catalog",
                extra={"event_type": event_type, "operation": "publisher.publish"},
            )
        logger.info(
            "Event published",
            extra={
                "event_id": event.id,
                "event_type": event_type,
                "category": get_event_category(event_type),
                "tenant_id": tenant_id,
                "correlation_id": event.correlation_id,
                "causation_id": event.causation_id,
                "priority": event.priority.name,
                "delay_ms": options.delay_ms,
                "operation": "publisher.publish",
            },
        )
        return event

    async def publish_batch(
        self,
        tenant_id: str,
        events: Sequence[EventInput],
        correlation_id: str | None = None,
    ) -> list[PublishedEvent]:
        """Publish several events sharing one correlation id.

        Items that carry their own correlation id keep it.
        """
        shared_correlation = correlation_id or generate_event_id()
        published = []
        for item in events:
            published.append(
                await self.publish(
                    tenant_id,
                    item.type,
                    item.payload,
                    self._options_for(item, item.correlation_id or shared_correlation),
                )
            )
        return published

    async def publish_chain(
        self,
        tenant_id: str,
        events: Sequence[EventInput],
        correlation_id: str | None = None,
    ) -> list[PublishedEvent]:
        """Publish events in order, each caused by the one before it.

        The first event has no causation id; every later event points at
        its predecessor. All share one correlation id.
        """
        shared_correlation = correlation_id or generate_event_id()
        published: list[PublishedEvent] = []
        for item in events:
            causation_id = published[-1].id if published else None
            published.append(
                await self.publish(
                    tenant_id,
                    item.type,
                    item.payload,
                    self._options_for(item, shared_correlation, causation_id=causation_id),
                )
            )
        return published

    # ──────────────────────────────────────────────────────────────
    # Status buffer
    # ──────────────────────────────────────────────────────────────

    def get_event(self, event_id: str) -> PublishedEvent | None:
        return self._buffer.get(event_id)

    def get_events_by_tenant(
        self,
        tenant_id: str,
        event_type: str | None = None,
        status: EventStatus | None = None,
        limit: int | None = None,
    ) -> list[PublishedEvent]:
        """Buffered events of a tenant, newest first."""
        with self._lock:
            snapshot = list(reversed(self._buffer.values()))
        matches = [
            event
            for event in snapshot
            if event.tenant_id == tenant_id
            and (event_type is None or event.type == event_type)
            and (status is None or event.status == status)
        ]
        return matches[:limit] if limit is not None else matches

    def update_event_status(
        self,
        event_id: str,
        status: EventStatus,
        error: str | None = None,
        delivered_at: datetime | None = None,
        attempts: int | None = None,
    ) -> bool:
        """Update a buffered event; returns False when it is not (or no longer) buffered."""
        event = self._buffer.get(event_id)
        if event is None:
            return False
        event.status = status
        if error is not None:
            event.last_error = error
        if attempts is not None:
            event.attempts = attempts
        if status is EventStatus.DELIVERED:
            event.delivered_at = delivered_at or utc_now()
        elif delivered_at is not None:
            event.delivered_at = delivered_at
        return True

    def clear_buffer(self) -> None:
        with self._lock:
            self._buffer.clear()

    @property
    def buffered_count(self) -> int:
        return len(self._buffer)

    # ──────────────────────────────────────────────────────────────
    # Queue control
    # ──────────────────────────────────────────────────────────────

    async def get_queue_stats(self) -> QueueStats:
        return await self._queue.get_counts()

    async def pause(self) -> None:
        await self._queue.pause()
        logger.info("Event queue paused", extra={"operation": "publisher.pause"})

    async def resume(self) -> None:
        await self._queue.resume()
        logger.info("Event queue resumed", extra={"operation": "publisher.resume"})

    async def drain(self) -> None:
        await self._queue.drain()
        logger.info("Event queue drained", extra={"operation": "publisher.drain"})

    def on_shutdown(self) -> None:
        self.clear_buffer()

    # ──────────────────────────────────────────────────────────────
    # Internals
    # ──────────────────────────────────────────────────────────────

    def _remember(self, event: PublishedEvent) -> None:
        with self._lock:
            self._buffer[event.id] = event
            while len(self._buffer) > self._settings.buffer_size:
                self._buffer.popitem(last=False)

    def _resolve_duplicate(
        self, event: PublishedEvent, original: dict[str, Any], job_id: str
    ) -> PublishedEvent:
        """Drop the redundant buffer entry and hand back the event that holds the job id."""
        with self._lock:
            self._buffer.pop(event.id, None)
            buffered = self._buffer.get(original["id"])
        logger.info(
            "Duplicate publish ignored",
            extra={
                "event_id": original["id"],
                "job_id": job_id,
                "event_type": event.type,
                "tenant_id": event.tenant_id,
                "operation": "publisher.publish",
            },
        )
        if buffered is not None:
            return buffered
        # Evicted, or published by another process
        return PublishedEvent.model_validate({**original, "status": EventStatus.PROCESSING})

    def _retry_policy(self, max_attempts: int) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=max_attempts,
            backoff=BackoffKind(self._settings.backoff),
            base_delay_ms=self._settings.backoff_base_delay_ms,
            max_delay_ms=self._settings.backoff_max_delay_ms,
        )

    @staticmethod
    def _options_for(
        item: EventInput,
        correlation_id: str,
        causation_id: str | None = None,
    ) -> PublishOptions:
        return PublishOptions(
            priority=item.priority,
            delay_ms=item.delay_ms,
            correlation_id=correlation_id,
            causation_id=causation_id,
            metadata=item.metadata,
            source=item.source,
        )


__all__ = ["EventPublisher"]
