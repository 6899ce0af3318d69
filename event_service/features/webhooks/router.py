"""API router for webhook deliveries."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, status

from event_service.core.dependencies.events import EventBusDep, TenantIdDep, require_local_state
from event_service.core.exceptions import NotFoundException

from .schemas import DeliveryStats, EventDeliveryResult, WebhookQueued, WebhookQueueRequest

router = APIRouter(prefix="/webhooks", tags=["webhooks"])

logger = logging.getLogger(__name__)

LOCAL_RESULTS = [Depends(require_local_state("webhook delivery history", queue="webhooks"))]


@router.post(
    "/deliveries",
    response_model=WebhookQueued,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Queue a webhook delivery",
    description=(
        "The job id is derived from the event and subscription ids, so queueing "
        "the same pair twice delivers once."
    ),
)
async def queue_delivery(
    body: WebhookQueueRequest,
    bus: EventBusDep,
    tenant_id: TenantIdDep,
) -> WebhookQueued:
    job_id = await bus.webhook_delivery.queue_webhook(
        body.event_id,
        body.subscription_id,
        body.destination,
        body.payload,
        priority=body.priority,
        delay_ms=body.delay_ms,
        max_attempts=body.max_attempts,
        tenant_id=tenant_id,
    )
    logger.info(
        "Webhook delivery requested",
        extra={"job_id": job_id, "tenant_id": tenant_id, "operation": "api.queue_delivery"},
    )
    return WebhookQueued(job_id=job_id)


@router.get(
    "/deliveries/{event_id}",
    response_model=list[EventDeliveryResult],
    summary="Recorded delivery attempts for an event",
    description="Only attempts queued on behalf of the calling tenant are returned.",
    dependencies=LOCAL_RESULTS,
)
async def get_deliveries(
    event_id: str,
    bus: EventBusDep,
    tenant_id: TenantIdDep,
) -> list[EventDeliveryResult]:
    return bus.webhook_delivery.get_delivery_results(event_id, tenant_id=tenant_id)


@router.post(
    "/deliveries/{event_id}/{subscription_id}/retry",
    status_code=status.HTTP_202_ACCEPTED,
    summary="Requeue a failed delivery",
    dependencies=LOCAL_RESULTS,
)
async def retry_delivery(
    event_id: str,
    subscription_id: str,
    bus: EventBusDep,
    tenant_id: TenantIdDep,
) -> WebhookQueued:
    if not await bus.webhook_delivery.retry_delivery(
        event_id, subscription_id, tenant_id=tenant_id
    ):
        raise NotFoundException(
            detail=f"No failed delivery of event {event_id} to {subscription_id}",
            type="delivery-not-found",
            extra={"event_id": event_id, "subscription_id": subscription_id},
        )
    return WebhookQueued(job_id=f"{event_id}-{subscription_id}")


@router.get(
    "/stats",
    response_model=DeliveryStats,
    summary="Webhook delivery statistics",
    description="Attempt figures cover the calling tenant; queue counts cover the whole queue.",
    dependencies=LOCAL_RESULTS,
)
async def get_delivery_stats(bus: EventBusDep, tenant_id: TenantIdDep) -> DeliveryStats:
    return await bus.webhook_delivery.get_delivery_stats(tenant_id=tenant_id)
