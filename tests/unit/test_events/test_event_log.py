"""Unit tests for the event log."""

from __future__ import annotations

from datetime import timedelta

import pytest

from event_service.core.settings import EventSettings
from event_service.features.events.log import EventLog
from event_service.features.events.schemas import (
    EventLogQuery,
    RetentionPolicy,
    StatsPeriod,
    utc_now,
)
from event_service.features.events.types import EventStatus


@pytest.fixture
def event_log() -> EventLog:
    return EventLog()


@pytest.mark.unit
class TestLogEvent:
    """Writes and indexes."""

    def test_entry_starts_pending(self, event_log, make_event):
        event = make_event(correlation_id="corr-1")

        entry = event_log.log_event(event)

        assert entry.status is EventStatus.PENDING
        assert entry.event_id == event.id
        assert entry.correlation_id == "corr-1"
        assert entry.expires_at - entry.created_at == timedelta(days=30)
        assert event_log.get_entry(entry.id) == entry

    def test_update_status_recomputes_expiry(self, event_log, make_event):
        entry = event_log.log_event(make_event())

        assert event_log.update_status(entry.id, EventStatus.DEAD_LETTER, "boom") is True

        updated = event_log.get_entry(entry.id)
        assert updated.status is EventStatus.DEAD_LETTER
        assert updated.last_error == "boom"
        assert updated.expires_at - updated.updated_at == timedelta(days=90)

    def test_update_status_unknown_entry(self, event_log):
        assert event_log.update_status("missing", EventStatus.DELIVERED) is False

    def test_get_entry_by_event_id_returns_latest(self, event_log, make_event):
        event = make_event()
        event_log.log_event(event)
        latest = event_log.log_event(event)

        assert event_log.get_entry_by_event_id(event.id).id == latest.id
        assert event_log.get_entry_by_event_id("missing") is None

    def test_delete_removes_from_indexes(self, event_log, make_event):
        entry = event_log.log_event(make_event(correlation_id="corr-1"))

        assert event_log.delete_entry(entry.id) is True
        assert event_log.delete_entry(entry.id) is False

        assert event_log.query(EventLogQuery(correlation_id="corr-1")).total == 0
        assert event_log.query(EventLogQuery(tenant_id="acme")).total == 0


@pytest.mark.unit
class TestQuery:
    """Filtering, ordering and pagination."""

    def test_newest_first_with_total_before_paging(self, event_log, make_event):
        entries = [event_log.log_event(make_event()) for _ in range(5)]

        page = event_log.query(EventLogQuery(tenant_id="acme", limit=2, offset=1))

        assert page.total == 5
        assert [entry.id for entry in page.entries] == [entries[3].id, entries[2].id]

    def test_filters_are_conjunctive(self, event_log, make_event):
        event_log.log_event(make_event(type="order.created", source="orders"))
        event_log.log_event(make_event(type="order.created", source="erp"))
        event_log.log_event(make_event(type="invoice.paid", source="orders"))
        event_log.log_event(make_event(type="order.created", source="orders", tenant_id="other"))

        page = event_log.query(
            EventLogQuery(tenant_id="acme", types=["order.created"], source="orders")
        )

        assert page.total == 1

    def test_status_and_time_window(self, event_log, make_event):
        delivered = event_log.log_event(make_event())
        event_log.log_event(make_event())
        event_log.update_status(delivered.id, EventStatus.DELIVERED)

        now = utc_now()
        page = event_log.query(
            EventLogQuery(
                status=EventStatus.DELIVERED,
                start_time=now - timedelta(minutes=1),
                end_time=now,
            )
        )
        assert [entry.id for entry in page.entries] == [delivered.id]

        future = event_log.query(EventLogQuery(start_time=now + timedelta(minutes=1)))
        assert future.total == 0

    def test_tenant_isolation(self, event_log, make_event):
        event_log.log_event(make_event(tenant_id="acme"))
        event_log.log_event(make_event(tenant_id="globex"))

        page = event_log.query(EventLogQuery(tenant_id="globex"))

        assert page.total == 1
        assert page.entries[0].tenant_id == "globex"

    def test_events_for_replay_are_delivered_oldest_first(self, event_log, make_event):
        first = event_log.log_event(make_event())
        failed = event_log.log_event(make_event())
        second = event_log.log_event(make_event(type="invoice.paid"))
        for entry in (first, second):
            event_log.update_status(entry.id, EventStatus.DELIVERED)
        event_log.update_status(failed.id, EventStatus.FAILED)

        now = utc_now()
        entries = event_log.get_events_for_replay("acme", now - timedelta(hours=1), now)
        assert [entry.id for entry in entries] == [first.id, second.id]

        typed = event_log.get_events_for_replay(
            "acme", now - timedelta(hours=1), now, types=["invoice.paid"]
        )
        assert [entry.id for entry in typed] == [second.id]


@pytest.mark.unit
class TestRetention:
    """Expiry, cleanup and retention policy updates."""

    def test_status_overrides_type_overrides_default(self, make_event):
        event_log = EventLog(
            retention_policy=RetentionPolicy(
                default_days=10,
                by_type={"order.created": 20},
                by_status={EventStatus.FAILED: 5},
            )
        )
        typed = event_log.log_event(make_event(type="order.created"))
        plain = event_log.log_event(make_event(type="invoice.paid"))

        assert typed.expires_at - typed.created_at == timedelta(days=20)
        assert plain.expires_at - plain.created_at == timedelta(days=10)

        event_log.update_status(typed.id, EventStatus.FAILED)
        entry = event_log.get_entry(typed.id)
        assert entry.expires_at - entry.updated_at == timedelta(days=5)

    def test_settings_supply_defaults(self, make_event):
        settings = EventSettings(
            retention_default_days=7, retention_failed_days=14, retention_dead_letter_days=21
        )
        event_log = EventLog(settings=settings)

        policy = event_log.get_retention_policy()

        assert policy.default_days == 7
        assert policy.by_status == {EventStatus.FAILED: 14, EventStatus.DEAD_LETTER: 21}

    def test_cleanup_removes_expired(self, make_event):
        event_log = EventLog(retention_policy=RetentionPolicy(by_type={"cart.viewed": 1}))
        kept = event_log.log_event(make_event(type="order.created"))
        expired = event_log.log_event(make_event(type="cart.viewed"))

        removed = event_log.cleanup_expired_entries(now=utc_now() + timedelta(days=2))

        assert removed == 1
        assert event_log.get_entry(expired.id) is None
        assert event_log.get_entry(kept.id) is not None

    def test_cleanup_keeps_unexpired(self, event_log, make_event):
        event_log.log_event(make_event())

        assert event_log.cleanup_expired_entries() == 0
        assert event_log.entry_count == 1

    def test_set_retention_policy_merges(self, event_log):
        policy = event_log.set_retention_policy(by_type={"order.created": 3})

        assert policy.default_days == 30
        assert policy.by_type == {"order.created": 3}
        assert policy.by_status[EventStatus.DEAD_LETTER] == 90

        policy = event_log.set_retention_policy(default_days=12)
        assert policy.default_days == 12
        assert policy.by_type == {"order.created": 3}

    def test_get_retention_policy_returns_copy(self, event_log):
        policy = event_log.get_retention_policy()
        policy.by_type["order.created"] = 1

        assert event_log.get_retention_policy().by_type == {}

    def test_clear_tenant_entries(self, event_log, make_event):
        event_log.log_event(make_event(tenant_id="acme"))
        event_log.log_event(make_event(tenant_id="acme"))
        event_log.log_event(make_event(tenant_id="globex"))

        assert event_log.clear_tenant_entries("acme") == 2
        assert event_log.entry_count == 1

    def test_clear_all(self, event_log, make_event):
        event_log.log_event(make_event())

        event_log.clear_all()

        assert event_log.entry_count == 0
        assert event_log.query(EventLogQuery()).total == 0


@pytest.mark.unit
class TestStats:
    """Per-tenant statistics."""

    def test_counts_by_status_and_type(self, event_log, make_event):
        delivered = event_log.log_event(make_event(type="order.created"))
        failed = event_log.log_event(make_event(type="order.created"))
        retrying = event_log.log_event(make_event(type="invoice.paid"))
        event_log.log_event(make_event(tenant_id="globex"))
        event_log.update_status(delivered.id, EventStatus.DELIVERED)
        event_log.update_status(failed.id, EventStatus.DEAD_LETTER)
        event_log.update_status(retrying.id, EventStatus.RETRYING)

        stats = event_log.get_stats("acme", StatsPeriod.DAY)

        assert stats.total_events == 3
        assert stats.event_counts == {"order.created": 2, "invoice.paid": 1}
        assert stats.successful_deliveries == 1
        assert stats.failed_deliveries == 1
        assert stats.retry_count == 1
        assert stats.avg_delivery_time_ms >= 0

    def test_accepts_period_string(self, event_log):
        stats = event_log.get_stats("acme", "week")

        assert stats.period is StatsPeriod.WEEK
        assert stats.total_events == 0
