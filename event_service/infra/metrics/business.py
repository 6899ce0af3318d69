"""Event backbone metrics: publishing, dispatch, webhooks and replay."""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

from .prometheus import DEFAULT_LATENCY_BUCKETS, REGISTRY

# ──────────────────────────────────────────────────────────────
# Errors
# ──────────────────────────────────────────────────────────────

errors_total = Counter(
    "errors_total",
    "Total number of API errors by type and endpoint",
    ["error_type", "endpoint", "status_code"],
    registry=REGISTRY,
)

# ──────────────────────────────────────────────────────────────
# Publishing and dispatch
# ──────────────────────────────────────────────────────────────

events_published_total = Counter(
    "events_published_total",
    "Events accepted by the publisher",
    ["event_type", "result"],  # result: enqueued, failed
    registry=REGISTRY,
)

events_processed_total = Counter(
    "events_processed_total",
    "Event jobs processed by outcome status",
    ["event_type", "status"],  # status: delivered, failed, partial
    registry=REGISTRY,
)

events_dead_lettered_total = Counter(
    "events_dead_lettered_total",
    "Events whose retry budget was exhausted",
    ["event_type"],
    registry=REGISTRY,
)

event_handler_failures_total = Counter(
    "event_handler_failures_total",
    "Subscription handlers that raised during dispatch",
    ["event_type"],
    registry=REGISTRY,
)

event_dispatch_duration_seconds = Histogram(
    "event_dispatch_duration_seconds",
    "Time spent dispatching an event to all matching subscriptions",
    ["event_type"],
    buckets=DEFAULT_LATENCY_BUCKETS,
    registry=REGISTRY,
)

event_log_entries = Gauge(
    "event_log_entries",
    "Entries currently held by the event log",
    registry=REGISTRY,
)

event_log_expired_total = Counter(
    "event_log_expired_total",
    "Event log entries removed by the retention sweep",
    registry=REGISTRY,
)

# ──────────────────────────────────────────────────────────────
# Webhooks
# ──────────────────────────────────────────────────────────────

webhook_deliveries_total = Counter(
    "webhook_deliveries_total",
    "Webhook delivery attempts by outcome",
    ["outcome"],  # outcome: success, http_error, transport_error
    registry=REGISTRY,
)

webhook_delivery_duration_seconds = Histogram(
    "webhook_delivery_duration_seconds",
    "Wall-clock duration of webhook HTTP calls",
    buckets=DEFAULT_LATENCY_BUCKETS,
    registry=REGISTRY,
)

webhook_retries_total = Counter(
    "webhook_retries_total",
    "Webhook jobs handed back to the queue for another attempt",
    registry=REGISTRY,
)

# ──────────────────────────────────────────────────────────────
# Replay
# ──────────────────────────────────────────────────────────────

replays_total = Counter(
    "replays_total",
    "Replay runs by terminal status",
    ["status"],  # status: completed, cancelled, failed, rejected
    registry=REGISTRY,
)

replay_events_total = Counter(
    "replay_events_total",
    "Events republished by replay runs",
    ["result"],  # result: republished, failed
    registry=REGISTRY,
)

replays_in_progress = Gauge(
    "replays_in_progress",
    "Replay runs currently in progress",
    registry=REGISTRY,
)

__all__ = [
    "errors_total",
    "event_dispatch_duration_seconds",
    "event_handler_failures_total",
    "event_log_entries",
    "event_log_expired_total",
    "events_dead_lettered_total",
    "events_processed_total",
    "events_published_total",
    "replay_events_total",
    "replays_in_progress",
    "replays_total",
    "webhook_deliveries_total",
    "webhook_delivery_duration_seconds",
    "webhook_retries_total",
]
