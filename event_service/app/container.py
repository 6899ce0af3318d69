"""Composition root for the event backbone.

``EventBus`` owns every registry, buffer and queue of one process. The API
lifespan builds one and stores it on ``app.state``; taskiq workers build their
own through ``get_event_bus()`` so worker-side dispatch sees the subscriptions
registered by ``APP_SUBSCRIBER_MODULES``.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from importlib import import_module
import logging
from typing import TYPE_CHECKING

from event_service.core.settings import (
    get_app_settings,
    get_event_settings,
    get_replay_settings,
    get_webhook_settings,
)
from event_service.features.events.log import EventLog
from event_service.features.events.processor import EventProcessor
from event_service.features.events.publisher import EventPublisher
from event_service.features.events.replay import EventReplayService
from event_service.features.events.subscriber import SubscriberRegistry
from event_service.features.webhooks.delivery import WebhookDeliveryService
from event_service.features.webhooks.processor import WebhookProcessor
from event_service.infra.queue import DurableQueue, InMemoryQueue

if TYPE_CHECKING:
    from collections.abc import Iterable

    from event_service.core.settings import (
        AppSettings,
        EventSettings,
        ReplaySettings,
        WebhookSettings,
    )
    from event_service.features.webhooks.client import WebhookHttpClient

logger = logging.getLogger(__name__)


@dataclass
class EventBus:
    """Every event backbone component of one process, wired together."""

    event_log: EventLog
    registry: SubscriberRegistry
    publisher: EventPublisher
    processor: EventProcessor
    webhook_delivery: WebhookDeliveryService
    webhook_processor: WebhookProcessor
    replay: EventReplayService
    event_queue: DurableQueue
    webhook_queue: DurableQueue
    started: bool = False

    @property
    def processes_events_locally(self) -> bool:
        """True when this process consumes its own event jobs, keeping its event log live."""
        return isinstance(self.event_queue, InMemoryQueue)

    @property
    def delivers_webhooks_locally(self) -> bool:
        return isinstance(self.webhook_queue, InMemoryQueue)

    async def start(self) -> None:
        """Attach the processors to in-process queues and start their workers.

        Broker-backed queues are consumed by taskiq workers instead, so only
        ``InMemoryQueue`` instances are started here.
        """
        if self.started:
            return
        if isinstance(self.event_queue, InMemoryQueue):
            self.event_queue.process(self.processor.process, on_failed=self.processor.handle_failure)
            await self.event_queue.start()
        if isinstance(self.webhook_queue, InMemoryQueue):
            self.webhook_queue.process(self.webhook_processor.handle)
            await self.webhook_queue.start()
        self.started = True
        logger.info(
            "Event bus started",
            extra={
                "subscriptions": self.registry.subscription_count,
                "operation": "bus.start",
            },
        )

    async def shutdown(self) -> None:
        """Cancel replays, stop workers and release every in-memory store."""
        await self.replay.on_shutdown()
        for queue in (self.event_queue, self.webhook_queue):
            if isinstance(queue, InMemoryQueue):
                await queue.stop()
        self.registry.on_shutdown()
        self.publisher.on_shutdown()
        self.webhook_delivery.on_shutdown()
        self.event_log.clear_all()
        self.started = False
        logger.info("Event bus stopped", extra={"operation": "bus.shutdown"})


def load_subscribers(bus: EventBus, modules: Iterable[str]) -> None:
    """Import each module and call its ``setup(bus)`` hook.

    Raises:
        ImportError: A module cannot be imported.
        AttributeError: A module does not define ``setup``.
    """
    for path in modules:
        module = import_module(path)
        setup = getattr(module, "setup", None)
        if setup is None:
            raise AttributeError(f"Subscriber module '{path}' has no setup(bus) function")
        setup(bus)
        logger.info(
            "Subscriber module loaded",
            extra={"module": path, "operation": "bus.load_subscribers"},
        )


def _broker_queues() -> tuple[DurableQueue, DurableQueue]:
    from event_service.tasks.broker import broker, job_claims, queue_stats
    from event_service.tasks.queue import EVENT_TASK_NAME, WEBHOOK_TASK_NAME, TaskiqQueue

    if broker is None:
        raise RuntimeError("APP_QUEUE_BACKEND=rabbitmq but the taskiq broker is not configured")
    return (
        TaskiqQueue("events", broker, EVENT_TASK_NAME, stats=queue_stats, claims=job_claims),
        TaskiqQueue("webhooks", broker, WEBHOOK_TASK_NAME, stats=queue_stats, claims=job_claims),
    )


def build_event_bus(
    app_settings: AppSettings | None = None,
    event_settings: EventSettings | None = None,
    webhook_settings: WebhookSettings | None = None,
    replay_settings: ReplaySettings | None = None,
    *,
    event_queue: DurableQueue | None = None,
    webhook_queue: DurableQueue | None = None,
    http_client: WebhookHttpClient | None = None,
    load_modules: bool = True,
) -> EventBus:
    """Wire a new event bus.

    Queues default to the configured backend: ``InMemoryQueue`` workers for
    ``memory``, ``TaskiqQueue`` adapters for ``rabbitmq``. Passing queues
    explicitly overrides the backend (tests do this).

    Args:
        app_settings: Application settings (queue backend, subscriber modules).
        event_settings: Publisher, processor and log settings.
        webhook_settings: Webhook delivery settings.
        replay_settings: Replay settings.
        event_queue: Queue carrying event jobs.
        webhook_queue: Queue carrying webhook jobs.
        http_client: Transport used for webhook requests.
        load_modules: Run ``APP_SUBSCRIBER_MODULES`` setup hooks.

    Returns:
        A bus that still needs ``await bus.start()``.
    """
    app_settings = app_settings or get_app_settings()
    event_settings = event_settings or get_event_settings()
    webhook_settings = webhook_settings or get_webhook_settings()
    replay_settings = replay_settings or get_replay_settings()

    if event_queue is None or webhook_queue is None:
        if app_settings.queue_backend == "rabbitmq":
            default_events, default_webhooks = _broker_queues()
        else:
            default_events = InMemoryQueue(
                "events", concurrency=event_settings.worker_concurrency
            )
            default_webhooks = InMemoryQueue(
                "webhooks", concurrency=webhook_settings.worker_concurrency
            )
        event_queue = event_queue or default_events
        webhook_queue = webhook_queue or default_webhooks

    event_log = EventLog(settings=event_settings)
    registry = SubscriberRegistry()
    publisher = EventPublisher(event_queue, settings=event_settings)
    processor = EventProcessor(registry, event_log, publisher=publisher, settings=event_settings)
    webhook_delivery = WebhookDeliveryService(
        http_client=http_client, queue=webhook_queue, settings=webhook_settings
    )

    bus = EventBus(
        event_log=event_log,
        registry=registry,
        publisher=publisher,
        processor=processor,
        webhook_delivery=webhook_delivery,
        webhook_processor=WebhookProcessor(webhook_delivery),
        replay=EventReplayService(event_log, publisher, settings=replay_settings),
        event_queue=event_queue,
        webhook_queue=webhook_queue,
    )

    if load_modules:
        load_subscribers(bus, app_settings.subscriber_modules)

    logger.debug(
        "Event bus built",
        extra={"queue_backend": app_settings.queue_backend, "operation": "bus.build"},
    )
    return bus


@lru_cache(maxsize=1)
def get_event_bus() -> EventBus:
    """Return this process's event bus, building it on first use."""
    return build_event_bus()


__all__ = ["EventBus", "build_event_bus", "get_event_bus", "load_subscribers"]
