"""Unit tests for the metric tracking helpers."""

from __future__ import annotations

import pytest

from event_service.infra.metrics import REGISTRY, tracking


def sample(name: str, **labels: str) -> float:
    return REGISTRY.get_sample_value(name, labels or None) or 0.0


@pytest.mark.unit
class TestTracking:
    """Counters move by the expected amount."""

    def test_webhook_outcomes(self):
        before = {
            outcome: sample("webhook_deliveries_total", outcome=outcome)
            for outcome in ("success", "http_error", "transport_error")
        }

        tracking.track_webhook_delivery(success=True, status_code=200, duration_seconds=0.01)
        tracking.track_webhook_delivery(success=False, status_code=503, duration_seconds=0.01)
        tracking.track_webhook_delivery(success=False, status_code=None, duration_seconds=0.01)

        for outcome in before:
            assert sample("webhook_deliveries_total", outcome=outcome) == before[outcome] + 1

    def test_event_processed_counts_handler_failures(self):
        before = sample("event_handler_failures_total", event_type="metrics.test")

        tracking.track_event_processed("metrics.test", "partial", 0.002, handler_failures=2)

        assert sample("event_handler_failures_total", event_type="metrics.test") == before + 2
        assert sample("events_processed_total", event_type="metrics.test", status="partial") >= 1

    def test_replay_counts(self):
        before = sample("replay_events_total", result="republished")

        tracking.track_replay_finished("completed", republished=3, failed=0)
        tracking.track_replays_in_progress(4)

        assert sample("replay_events_total", result="republished") == before + 3
        assert sample("replays_in_progress") == 4

    def test_error_tracked_by_endpoint(self):
        labels = {"error_type": "event-not-found", "endpoint": "/metrics-test", "status_code": "404"}
        before = sample("errors_total", **labels)

        tracking.track_error("event-not-found", "/metrics-test", 404)

        assert sample("errors_total", **labels) == before + 1
