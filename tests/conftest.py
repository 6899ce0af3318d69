"""Pytest configuration and shared fixtures.

Organization:
    - Settings Fixtures: fast retry/backoff settings for in-process queues
    - Event Fixtures: event factories and a wired event bus
    - HTTP Fixtures: httpx mock transports for webhook delivery
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
import os
from typing import Any
from unittest.mock import AsyncMock

import httpx
import pytest

# Ensure tests run without external infrastructure
os.environ.setdefault("APP_QUEUE_BACKEND", "memory")
os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("LOG_JSON_LOGS", "false")

from event_service.app.container import EventBus, build_event_bus  # noqa: E402
from event_service.core.settings import (  # noqa: E402
    AppSettings,
    EventSettings,
    ReplaySettings,
    WebhookSettings,
)
from event_service.features.events.schemas import Event  # noqa: E402
from event_service.features.webhooks.client import WebhookHttpClient  # noqa: E402
from event_service.infra.queue import InMemoryQueue, QueueJob  # noqa: E402

# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture
def event_settings() -> EventSettings:
    """Event settings with immediate retries."""
    return EventSettings(
        max_attempts=3,
        backoff="fixed",
        backoff_base_delay_ms=0,
        worker_concurrency=1,
    )


@pytest.fixture
def webhook_settings() -> WebhookSettings:
    """Webhook settings with immediate retries."""
    return WebhookSettings(
        max_attempts=3,
        backoff="fixed",
        retry_delay_ms=0,
        worker_concurrency=1,
    )


@pytest.fixture
def replay_settings() -> ReplaySettings:
    return ReplaySettings(max_concurrent=2, default_batch_size=10, default_delay_between_batches_ms=0)


@pytest.fixture
def app_settings() -> AppSettings:
    return AppSettings(queue_backend="memory", subscriber_modules=[])


# ============================================================================
# Event Fixtures
# ============================================================================


@pytest.fixture
def make_event() -> Callable[..., Event]:
    """Factory for events with sensible defaults.

    Example:
        def test_something(make_event):
            event = make_event(type="order.created", payload={"total": 150})
    """

    def _make(**overrides: Any) -> Event:
        data: dict[str, Any] = {
            "type": "order.created",
            "tenant_id": "acme",
            "source": "orders",
            "payload": {"order_id": "o-1", "total": 150},
        }
        data.update(overrides)
        return Event(**data)

    return _make


@pytest.fixture
def queue_mock() -> AsyncMock:
    """Queue double whose ``enqueue`` accepts every job as new."""
    queue = AsyncMock()
    queue.enqueue.side_effect = lambda name, payload, options: QueueJob(
        id=options.job_id, name=name, payload=payload, options=options
    )
    return queue


# ============================================================================
# HTTP Fixtures
# ============================================================================


class RecordingTransport(httpx.MockTransport):
    """``httpx.MockTransport`` that keeps every request it answered."""

    def __init__(self, handler: Callable[[httpx.Request], httpx.Response]) -> None:
        self.requests: list[httpx.Request] = []

        def _record(request: httpx.Request) -> httpx.Response:
            self.requests.append(request)
            return handler(request)

        super().__init__(_record)


@pytest.fixture
def webhook_transport() -> RecordingTransport:
    """Transport answering 200 OK to every webhook request."""
    return RecordingTransport(lambda request: httpx.Response(200, text="ok"))


@pytest.fixture
async def bus(
    app_settings: AppSettings,
    event_settings: EventSettings,
    webhook_settings: WebhookSettings,
    replay_settings: ReplaySettings,
    webhook_transport: RecordingTransport,
) -> AsyncGenerator[EventBus]:
    """A started event bus on in-process queues."""
    event_bus = build_event_bus(
        app_settings,
        event_settings,
        webhook_settings,
        replay_settings,
        event_queue=InMemoryQueue("events"),
        webhook_queue=InMemoryQueue("webhooks"),
        http_client=WebhookHttpClient(transport=webhook_transport),
        load_modules=False,
    )
    await event_bus.start()
    yield event_bus
    await event_bus.shutdown()
