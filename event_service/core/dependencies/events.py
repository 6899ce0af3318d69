"""Event backbone dependencies for FastAPI route handlers.

Usage:
    from event_service.core.dependencies.events import EventBusDep, TenantIdDep

    @router.post("/events")
    async def publish_event(body: PublishEventRequest, bus: EventBusDep, tenant_id: TenantIdDep):
        return await bus.publisher.publish(tenant_id, body.type, body.payload)
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Annotated, Literal

from fastapi import Depends, Header, Request

from event_service.app.container import EventBus
from event_service.core.exceptions import BadRequestException, WorkerStateUnavailableError


def get_event_bus(request: Request) -> EventBus:
    """Return the event bus built by the application lifespan."""
    return request.app.state.event_bus


def get_tenant_id(
    x_tenant_id: Annotated[str | None, Header(description="Tenant owning the request")] = None,
) -> str:
    """Read the tenant from the ``X-Tenant-ID`` header.

    Raises:
        BadRequestException: The header is missing or blank.
    """
    tenant_id = (x_tenant_id or "").strip()
    if not tenant_id:
        raise BadRequestException(
            detail="X-Tenant-ID header is required",
            type="missing-tenant",
        )
    return tenant_id


def get_correlation_id(
    x_correlation_id: Annotated[str | None, Header()] = None,
) -> str | None:
    return x_correlation_id or None


EventBusDep = Annotated[EventBus, Depends(get_event_bus)]
TenantIdDep = Annotated[str, Depends(get_tenant_id)]
CorrelationIdDep = Annotated[str | None, Depends(get_correlation_id)]


def require_local_state(
    resource: str, queue: Literal["events", "webhooks"] = "events"
) -> Callable[[EventBus], None]:
    """Dependency factory guarding routes that read process-local state.

    With the ``rabbitmq`` backend, taskiq workers consume the queues, so the
    event log, publisher buffer, replays and delivery results of the API
    process are never filled. Guarded routes answer 501 instead of empty data.

    Example:
        @router.get("/log", dependencies=[Depends(require_local_state("event log"))])
        async def query_event_log(...): ...
    """

    def dependency(bus: EventBusDep) -> None:
        if queue == "events":
            local, target = bus.processes_events_locally, bus.event_queue
        else:
            local, target = bus.delivers_webhooks_locally, bus.webhook_queue
        if not local:
            raise WorkerStateUnavailableError(
                resource, backend=getattr(target, "backend", type(target).__name__)
            )

    return dependency


__all__ = [
    "CorrelationIdDep",
    "EventBusDep",
    "TenantIdDep",
    "get_correlation_id",
    "get_event_bus",
    "get_tenant_id",
    "require_local_state",
]
