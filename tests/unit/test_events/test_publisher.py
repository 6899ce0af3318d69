"""Unit tests for the event publisher."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from event_service.core.settings import EventSettings
from event_service.features.events.publisher import EventPublisher
from event_service.features.events.schemas import EventInput, PublishOptions
from event_service.features.events.types import EventPriority, EventStatus
from event_service.infra.queue import BackoffKind, InMemoryQueue, QueueStats


@pytest.fixture
def queue(queue_mock) -> AsyncMock:
    return queue_mock


@pytest.fixture
def publisher(queue) -> EventPublisher:
    return EventPublisher(queue, EventSettings(default_source="test-suite", buffer_size=3))


@pytest.mark.unit
class TestPublish:
    """Single event publishing."""

    @pytest.mark.asyncio
    async def test_enqueues_event_with_job_options(self, publisher, queue):
        event = await publisher.publish(
            "acme",
            "order.created",
            {"order_id": "o-1"},
            PublishOptions(priority=EventPriority.HIGH, delay_ms=500),
        )

        queue.enqueue.assert_awaited_once()
        job_name, payload, options = queue.enqueue.await_args.args
        assert job_name == "order.created"
        assert payload["id"] == event.id
        assert payload["tenant_id"] == "acme"
        assert "status" not in payload
        assert options.job_id == event.id
        assert options.priority == 2
        assert options.delay_ms == 500
        assert options.retry.max_attempts == 3
        assert options.retry.backoff is BackoffKind.EXPONENTIAL

    @pytest.mark.asyncio
    async def test_defaults_and_status(self, publisher):
        event = await publisher.publish("acme", "order.created", {})

        assert event.status is EventStatus.PROCESSING
        assert event.source == "test-suite"
        assert event.schema_version == "1.0"
        assert event.correlation_id is None
        assert publisher.get_event(event.id) is event

    @pytest.mark.asyncio
    async def test_deduplication_id_becomes_job_id(self, publisher, queue):
        await publisher.publish("acme", "order.created", {}, PublishOptions(deduplication_id="dup-1"))

        assert queue.enqueue.await_args.args[2].job_id == "dup-1"

    @pytest.mark.asyncio
    async def test_enqueue_failure_marks_failed_and_reraises(self, publisher, queue):
        queue.enqueue.side_effect = ConnectionError("broker down")

        with pytest.raises(ConnectionError):
            await publisher.publish("acme", "order.created", {})

        [event] = publisher.get_events_by_tenant("acme")
        assert event.status is EventStatus.FAILED
        assert event.last_error == "broker down"

    @pytest.mark.asyncio
    async def test_buffer_is_bounded(self, publisher):
        events = [await publisher.publish("acme", "order.created", {}) for _ in range(5)]

        assert publisher.buffered_count == 3
        assert publisher.get_event(events[0].id) is None
        assert publisher.get_event(events[4].id) is not None

    @pytest.mark.asyncio
    async def test_same_deduplication_id_enqueues_once(self):
        queue = InMemoryQueue("events")
        publisher = EventPublisher(queue)
        options = PublishOptions(deduplication_id="dup-1")

        first = await publisher.publish("acme", "order.created", {}, options)
        second = await publisher.publish("acme", "order.created", {}, options)

        assert (await queue.get_counts()).waiting == 1
        assert second.id == first.id
        assert second is first
        assert publisher.buffered_count == 1
        assert [event.id for event in publisher.get_events_by_tenant("acme")] == [first.id]

    @pytest.mark.asyncio
    async def test_duplicate_of_evicted_event_returns_original_id(self):
        queue = InMemoryQueue("events")
        publisher = EventPublisher(queue)
        options = PublishOptions(deduplication_id="dup-2")

        first = await publisher.publish("acme", "order.created", {"n": 1}, options)
        publisher.clear_buffer()
        second = await publisher.publish("acme", "order.created", {"n": 2}, options)

        assert second.id == first.id
        assert second.payload == {"n": 1}
        assert second.status is EventStatus.PROCESSING
        assert publisher.buffered_count == 0


@pytest.mark.unit
class TestBatchAndChain:
    """Multi-event publishing."""

    @pytest.mark.asyncio
    async def test_batch_shares_correlation_id(self, publisher):
        events = await publisher.publish_batch(
            "acme",
            [
                EventInput(type="order.created"),
                EventInput(type="invoice.created"),
                EventInput(type="payment.authorized", correlation_id="own"),
            ],
        )

        assert events[0].correlation_id is not None
        assert events[0].correlation_id == events[1].correlation_id
        assert events[2].correlation_id == "own"
        assert all(event.causation_id is None for event in events)

    @pytest.mark.asyncio
    async def test_batch_uses_given_correlation_id(self, publisher):
        events = await publisher.publish_batch("acme", [EventInput(type="a.b")], "corr-1")

        assert events[0].correlation_id == "corr-1"

    @pytest.mark.asyncio
    async def test_chain_links_causation(self, publisher):
        events = await publisher.publish_chain(
            "acme",
            [
                EventInput(type="order.submitted"),
                EventInput(type="order.approved"),
                EventInput(type="order.shipped"),
            ],
            "corr-1",
        )

        assert [event.causation_id for event in events] == [None, events[0].id, events[1].id]
        assert {event.correlation_id for event in events} == {"corr-1"}


@pytest.mark.unit
class TestStatusBuffer:
    """Status buffer queries and updates."""

    @pytest.mark.asyncio
    async def test_get_events_by_tenant_newest_first(self, publisher):
        first = await publisher.publish("acme", "order.created", {})
        second = await publisher.publish("acme", "invoice.paid", {})
        await publisher.publish("globex", "order.created", {})

        assert [e.id for e in publisher.get_events_by_tenant("acme")] == [second.id, first.id]
        assert [e.id for e in publisher.get_events_by_tenant("acme", event_type="order.created")] == [
            first.id
        ]
        assert len(publisher.get_events_by_tenant("acme", limit=1)) == 1

    @pytest.mark.asyncio
    async def test_update_event_status(self, publisher):
        event = await publisher.publish("acme", "order.created", {})

        assert publisher.update_event_status(event.id, EventStatus.DELIVERED, attempts=2) is True
        assert event.status is EventStatus.DELIVERED
        assert event.delivered_at is not None
        assert event.attempts == 2
        assert publisher.update_event_status("missing", EventStatus.FAILED) is False

        by_status = publisher.get_events_by_tenant("acme", status=EventStatus.DELIVERED)
        assert [e.id for e in by_status] == [event.id]

    def test_on_shutdown_clears_buffer(self, publisher):
        publisher.on_shutdown()

        assert publisher.buffered_count == 0


@pytest.mark.unit
class TestQueueControl:
    """Pass-through queue operations."""

    @pytest.mark.asyncio
    async def test_control_calls_delegate(self, publisher, queue):
        queue.get_counts.return_value = QueueStats(waiting=4)

        await publisher.pause()
        await publisher.resume()
        await publisher.drain()
        stats = await publisher.get_queue_stats()

        queue.pause.assert_awaited_once()
        queue.resume.assert_awaited_once()
        queue.drain.assert_awaited_once()
        assert stats.waiting == 4
