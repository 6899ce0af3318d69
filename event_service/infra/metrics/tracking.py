"""Helper functions for tracking business and operational metrics."""

from __future__ import annotations

import logging
from typing import Any

from event_service.infra.metrics import business

logger = logging.getLogger(__name__)


# ============================================================================
# Error Tracking
# ============================================================================


def track_error(
    error_type: str,
    endpoint: str,
    status_code: int,
    extra: dict[str, Any] | None = None,
) -> None:
    """Track an API error occurrence.

    Args:
        error_type: Type of error (e.g., 'replay-capacity-exceeded', 'not-found')
        endpoint: API endpoint where error occurred
        status_code: HTTP status code
        extra: Additional context for logging
    """
    business.errors_total.labels(
        error_type=error_type,
        endpoint=endpoint,
        status_code=str(status_code),
    ).inc()

    logger.debug(
        f"Tracked error: {error_type}",
        extra={"endpoint": endpoint, "status_code": status_code, **(extra or {})},
    )


# ============================================================================
# Event Tracking
# ============================================================================


def track_event_published(event_type: str, *, success: bool) -> None:
    """Count a publish call by whether the enqueue succeeded."""
    business.events_published_total.labels(
        event_type=event_type,
        result="enqueued" if success else "failed",
    ).inc()


def track_event_processed(
    event_type: str,
    status: str,
    duration_seconds: float,
    handler_failures: int = 0,
) -> None:
    """Record the outcome of one event job.

    Args:
        event_type: Event type that was dispatched.
        status: Resulting log status (delivered, failed) or "partial".
        duration_seconds: Time spent in dispatch.
        handler_failures: Number of handlers that raised.
    """
    business.events_processed_total.labels(event_type=event_type, status=status).inc()
    business.event_dispatch_duration_seconds.labels(event_type=event_type).observe(
        duration_seconds
    )
    if handler_failures:
        business.event_handler_failures_total.labels(event_type=event_type).inc(
            handler_failures
        )


def track_event_dead_lettered(event_type: str) -> None:
    business.events_dead_lettered_total.labels(event_type=event_type).inc()


def track_event_log_size(entries: int, expired: int = 0) -> None:
    """Update the event log gauge and count swept entries."""
    business.event_log_entries.set(entries)
    if expired:
        business.event_log_expired_total.inc(expired)


# ============================================================================
# Webhook Tracking
# ============================================================================


def track_webhook_delivery(
    *,
    success: bool,
    status_code: int | None,
    duration_seconds: float,
) -> None:
    """Record one webhook HTTP attempt.

    Args:
        success: Whether the endpoint answered with a 2xx status.
        status_code: HTTP status, or None when the request never got a response.
        duration_seconds: Wall-clock duration of the attempt.
    """
    if success:
        outcome = "success"
    elif status_code is None:
        outcome = "transport_error"
    else:
        outcome = "http_error"
    business.webhook_deliveries_total.labels(outcome=outcome).inc()
    business.webhook_delivery_duration_seconds.observe(duration_seconds)


def track_webhook_retry() -> None:
    business.webhook_retries_total.inc()


# ============================================================================
# Replay Tracking
# ============================================================================


def track_replay_finished(status: str, republished: int, failed: int) -> None:
    """Record the terminal state of a replay run and its per-event counts."""
    business.replays_total.labels(status=status).inc()
    if republished:
        business.replay_events_total.labels(result="republished").inc(republished)
    if failed:
        business.replay_events_total.labels(result="failed").inc(failed)


def track_replay_rejected() -> None:
    business.replays_total.labels(status="rejected").inc()


def track_replays_in_progress(count: int) -> None:
    business.replays_in_progress.set(count)


__all__ = [
    "track_error",
    "track_event_dead_lettered",
    "track_event_log_size",
    "track_event_processed",
    "track_event_published",
    "track_replay_finished",
    "track_replay_rejected",
    "track_replays_in_progress",
    "track_webhook_delivery",
    "track_webhook_retry",
]
