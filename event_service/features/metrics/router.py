"""Prometheus metrics endpoint.

Endpoints:
    GET /metrics - Prometheus scrape endpoint

Metrics Exposed:
    - events_published_total, events_processed_total, events_dead_lettered_total
    - event_handler_failures_total, event_dispatch_duration_seconds
    - event_log_entries, event_log_expired_total
    - webhook_deliveries_total, webhook_delivery_duration_seconds, webhook_retries_total
    - replays_total, replay_events_total, replays_in_progress
    - errors_total
"""

from __future__ import annotations

from fastapi import APIRouter, Response
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from event_service.infra.metrics.prometheus import REGISTRY

router = APIRouter(tags=["observability"])


@router.get("/metrics")
async def metrics() -> Response:
    """Expose the service registry in Prometheus text format."""
    data = generate_latest(REGISTRY)
    return Response(
        content=data,
        media_type=CONTENT_TYPE_LATEST,
        headers={"Cache-Control": "no-cache, no-store, must-revalidate"},
    )
