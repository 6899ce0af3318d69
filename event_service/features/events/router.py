"""API router for publishing, the event log and replays.

Every route is scoped to the tenant named by the ``X-Tenant-ID`` header.
"""

from __future__ import annotations

from datetime import datetime
import logging
from typing import TYPE_CHECKING, Annotated

from fastapi import APIRouter, Depends, Query, status

from event_service.core.dependencies.events import (
    CorrelationIdDep,
    EventBusDep,
    TenantIdDep,
    require_local_state,
)
from event_service.core.exceptions import NotFoundException
from event_service.infra.logging import get_lazy_logger
from event_service.infra.queue import QueueStats

from .schemas import (
    EventLogPage,
    EventLogQuery,
    EventReplayResult,
    EventStats,
    EventStatusUpdate,
    PublishBatchRequest,
    PublishedEvent,
    PublishedEventResponse,
    PublishEventRequest,
    ReplayStartRequest,
    RetentionPolicy,
    RetentionPolicyUpdate,
    StatsPeriod,
    SubscriptionRead,
)
from .types import EventStatus

if TYPE_CHECKING:
    from event_service.app.container import EventBus

router = APIRouter(prefix="/events", tags=["events"])

logger = logging.getLogger(__name__)
lazy_logger = get_lazy_logger(__name__)

LOCAL_EVENT_LOG = [Depends(require_local_state("event log"))]
LOCAL_STATUS_BUFFER = [Depends(require_local_state("published event status"))]
LOCAL_REPLAYS = [Depends(require_local_state("replay state"))]


def _to_response(event: PublishedEvent) -> PublishedEventResponse:
    return PublishedEventResponse(
        id=event.id,
        type=event.type,
        status=event.status,
        correlation_id=event.correlation_id,
        causation_id=event.causation_id,
        published_at=event.published_at,
    )


# ──────────────────────────────────────────────────────────────
# Publishing
# ──────────────────────────────────────────────────────────────


@router.post(
    "",
    response_model=PublishedEventResponse,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Publish an event",
)
async def publish_event(
    body: PublishEventRequest,
    bus: EventBusDep,
    tenant_id: TenantIdDep,
    correlation_id: CorrelationIdDep,
) -> PublishedEventResponse:
    event = await bus.publisher.publish(
        tenant_id, body.type, body.payload, body.to_options(correlation_id)
    )
    return _to_response(event)


@router.post(
    "/batch",
    response_model=list[PublishedEventResponse],
    status_code=status.HTTP_202_ACCEPTED,
    summary="Publish events sharing one correlation id",
)
async def publish_batch(
    body: PublishBatchRequest,
    bus: EventBusDep,
    tenant_id: TenantIdDep,
    correlation_id: CorrelationIdDep,
) -> list[PublishedEventResponse]:
    events = await bus.publisher.publish_batch(
        tenant_id, body.events, body.correlation_id or correlation_id
    )
    return [_to_response(event) for event in events]


@router.post(
    "/chain",
    response_model=list[PublishedEventResponse],
    status_code=status.HTTP_202_ACCEPTED,
    summary="Publish events where each one is caused by the previous",
)
async def publish_chain(
    body: PublishBatchRequest,
    bus: EventBusDep,
    tenant_id: TenantIdDep,
    correlation_id: CorrelationIdDep,
) -> list[PublishedEventResponse]:
    events = await bus.publisher.publish_chain(
        tenant_id, body.events, body.correlation_id or correlation_id
    )
    return [_to_response(event) for event in events]


@router.get(
    "",
    response_model=list[PublishedEvent],
    summary="List recently published events",
    description="Reads the publisher's bounded status buffer, newest first.",
    dependencies=LOCAL_STATUS_BUFFER,
)
async def list_published_events(
    bus: EventBusDep,
    tenant_id: TenantIdDep,
    type: Annotated[str | None, Query()] = None,  # noqa: A002
    status_filter: Annotated[EventStatus | None, Query(alias="status")] = None,
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
) -> list[PublishedEvent]:
    return bus.publisher.get_events_by_tenant(
        tenant_id, event_type=type, status=status_filter, limit=limit
    )


# ──────────────────────────────────────────────────────────────
# Event log
# ──────────────────────────────────────────────────────────────


@router.get(
    "/log",
    response_model=EventLogPage,
    summary="Query the event log",
    dependencies=LOCAL_EVENT_LOG,
)
async def query_event_log(
    bus: EventBusDep,
    tenant_id: TenantIdDep,
    types: Annotated[list[str] | None, Query()] = None,
    status_filter: Annotated[EventStatus | None, Query(alias="status")] = None,
    source: Annotated[str | None, Query()] = None,
    start_time: Annotated[datetime | None, Query()] = None,
    end_time: Annotated[datetime | None, Query()] = None,
    correlation_id: Annotated[str | None, Query()] = None,
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> EventLogPage:
    query = EventLogQuery(
        tenant_id=tenant_id,
        types=types,
        status=status_filter,
        source=source,
        start_time=start_time,
        end_time=end_time,
        correlation_id=correlation_id,
        limit=limit,
        offset=offset,
    )
    lazy_logger.debug(
        lambda: f"Event log query: {query.model_dump(exclude_none=True)}",
        extra={"tenant_id": tenant_id, "operation": "api.query_event_log"},
    )
    return bus.event_log.query(query)


@router.get(
    "/stats",
    response_model=EventStats,
    summary="Event statistics for a period",
    dependencies=LOCAL_EVENT_LOG,
)
async def get_event_stats(
    bus: EventBusDep,
    tenant_id: TenantIdDep,
    period: Annotated[StatsPeriod, Query()] = StatsPeriod.DAY,
) -> EventStats:
    return bus.event_log.get_stats(tenant_id, period)


@router.get(
    "/retention-policy",
    response_model=RetentionPolicy,
    summary="Current event log retention policy",
    dependencies=LOCAL_EVENT_LOG,
)
async def get_retention_policy(bus: EventBusDep) -> RetentionPolicy:
    return bus.event_log.get_retention_policy()


@router.put(
    "/retention-policy",
    response_model=RetentionPolicy,
    summary="Update the event log retention policy",
    description="Omitted fields keep their current value.",
    dependencies=LOCAL_EVENT_LOG,
)
async def set_retention_policy(body: RetentionPolicyUpdate, bus: EventBusDep) -> RetentionPolicy:
    return bus.event_log.set_retention_policy(
        default_days=body.default_days,
        by_type=body.by_type,
        by_status=body.by_status,
    )


# ──────────────────────────────────────────────────────────────
# Queue control
# ──────────────────────────────────────────────────────────────


@router.get("/queue/stats", response_model=QueueStats, summary="Event queue counts")
async def get_queue_stats(bus: EventBusDep) -> QueueStats:
    return await bus.publisher.get_queue_stats()


@router.post(
    "/queue/pause",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Stop handing out event jobs",
)
async def pause_queue(bus: EventBusDep) -> None:
    await bus.publisher.pause()


@router.post(
    "/queue/resume",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Resume handing out event jobs",
)
async def resume_queue(bus: EventBusDep) -> None:
    await bus.publisher.resume()


@router.post(
    "/queue/drain",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Discard waiting and delayed event jobs",
)
async def drain_queue(bus: EventBusDep) -> None:
    await bus.publisher.drain()


# ──────────────────────────────────────────────────────────────
# Subscriptions
# ──────────────────────────────────────────────────────────────


@router.get(
    "/subscriptions",
    response_model=list[SubscriptionRead],
    summary="List the tenant's subscriptions",
    description="Subscriptions are registered in code at startup; this view is read-only.",
)
async def list_subscriptions(bus: EventBusDep, tenant_id: TenantIdDep) -> list[SubscriptionRead]:
    return [
        SubscriptionRead(
            id=subscription.id,
            name=subscription.name,
            event_types=list(subscription.event_types),
            enabled=subscription.enabled,
            filter=subscription.filter,
            created_at=subscription.created_at,
        )
        for subscription in bus.registry.get_subscriptions_by_tenant(tenant_id)
    ]


# ──────────────────────────────────────────────────────────────
# Replay
# ──────────────────────────────────────────────────────────────


@router.post(
    "/replays",
    response_model=EventReplayResult,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Start replaying delivered events",
    responses={429: {"description": "Too many replays in progress"}},
    dependencies=LOCAL_REPLAYS,
)
async def start_replay(
    body: ReplayStartRequest,
    bus: EventBusDep,
    tenant_id: TenantIdDep,
) -> EventReplayResult:
    return await bus.replay.start_replay(body.for_tenant(tenant_id))


@router.get(
    "/replays",
    response_model=list[EventReplayResult],
    summary="List the tenant's replays",
    dependencies=LOCAL_REPLAYS,
)
async def list_replays(bus: EventBusDep, tenant_id: TenantIdDep) -> list[EventReplayResult]:
    return bus.replay.get_tenant_replays(tenant_id)


def _get_tenant_replay(bus: EventBus, tenant_id: str, request_id: str) -> EventReplayResult:
    result = bus.replay.get_replay_status(request_id)
    if result is None or result.tenant_id != tenant_id:
        raise NotFoundException(
            detail=f"Replay {request_id} not found",
            type="replay-not-found",
            extra={"request_id": request_id},
        )
    return result


@router.get(
    "/replays/{request_id}",
    response_model=EventReplayResult,
    summary="Replay progress",
    dependencies=LOCAL_REPLAYS,
)
async def get_replay(request_id: str, bus: EventBusDep, tenant_id: TenantIdDep) -> EventReplayResult:
    return _get_tenant_replay(bus, tenant_id, request_id)


@router.post(
    "/replays/{request_id}/cancel",
    response_model=EventReplayResult,
    summary="Cancel a running replay",
    description="Cancellation takes effect at the next batch boundary.",
    dependencies=LOCAL_REPLAYS,
)
async def cancel_replay(
    request_id: str, bus: EventBusDep, tenant_id: TenantIdDep
) -> EventReplayResult:
    _get_tenant_replay(bus, tenant_id, request_id)
    cancelled = bus.replay.cancel_replay(request_id)
    logger.info(
        "Replay cancel requested",
        extra={
            "request_id": request_id,
            "tenant_id": tenant_id,
            "cancelled": cancelled,
            "operation": "api.cancel_replay",
        },
    )
    return _get_tenant_replay(bus, tenant_id, request_id)


# ──────────────────────────────────────────────────────────────
# Single event (declared last so the static paths above win)
# ──────────────────────────────────────────────────────────────


def _get_tenant_event(bus: EventBus, tenant_id: str, event_id: str) -> PublishedEvent:
    event = bus.publisher.get_event(event_id)
    if event is None or event.tenant_id != tenant_id:
        raise NotFoundException(
            detail=f"Event {event_id} not found",
            type="event-not-found",
            extra={"event_id": event_id},
        )
    return event


@router.get(
    "/{event_id}",
    response_model=PublishedEvent,
    summary="Published event status",
    dependencies=LOCAL_STATUS_BUFFER,
)
async def get_event(event_id: str, bus: EventBusDep, tenant_id: TenantIdDep) -> PublishedEvent:
    return _get_tenant_event(bus, tenant_id, event_id)


@router.patch(
    "/{event_id}/status",
    response_model=PublishedEvent,
    summary="Override a published event's status",
    dependencies=LOCAL_STATUS_BUFFER,
)
async def update_event_status(
    event_id: str,
    body: EventStatusUpdate,
    bus: EventBusDep,
    tenant_id: TenantIdDep,
) -> PublishedEvent:
    _get_tenant_event(bus, tenant_id, event_id)
    bus.publisher.update_event_status(event_id, body.status, error=body.error)
    return _get_tenant_event(bus, tenant_id, event_id)
