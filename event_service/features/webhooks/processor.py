"""Webhook queue consumer and its retry policy.

``decide`` returns an explicit ``RetryDecision``; only ``handle``, the
boundary with the queue, turns ``Retry`` into a raised ``WebhookRetryError``
so the queue schedules the next attempt. A ``Stop`` ends the job
successfully from the queue's point of view even when the delivery failed.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING

from event_service.infra.metrics.tracking import track_webhook_retry

from .schemas import EventDeliveryResult, WebhookJob

if TYPE_CHECKING:
    from event_service.infra.queue import QueueJob

    from .delivery import WebhookDeliveryService

logger = logging.getLogger(__name__)

RETRYABLE_CLIENT_STATUS = 429


@dataclass(frozen=True, slots=True)
class Retry:
    """Signal the queue to schedule another attempt."""

    result: EventDeliveryResult


@dataclass(frozen=True, slots=True)
class Stop:
    """End the job; ``result`` may still be a failed delivery."""

    result: EventDeliveryResult


RetryDecision = Retry | Stop


class WebhookRetryError(Exception):
    """Raised to the queue when a delivery attempt should be retried."""

    def __init__(self, result: EventDeliveryResult) -> None:
        super().__init__(result.error or "Webhook delivery failed")
        self.result = result


def should_retry(result: EventDeliveryResult, attempt: int, max_attempts: int) -> bool:
    """Whether a failed attempt is worth another try.

    Retryable iff attempts remain and the failure was transport-level (no
    status), a server error or 429. Other 4xx answers are permanent.

    Examples:
        >>> r = EventDeliveryResult(event_id="e", subscription_id="s", success=False, status_code=503)
        >>> should_retry(r, attempt=1, max_attempts=3)
        True
        >>> should_retry(r, attempt=3, max_attempts=3)
        False
    """
    if attempt >= max_attempts:
        return False
    status = result.status_code
    return status is None or status >= 500 or status == RETRYABLE_CLIENT_STATUS


class WebhookProcessor:
    """Consume webhook jobs."""

    def __init__(self, delivery: WebhookDeliveryService) -> None:
        self._delivery = delivery

    async def decide(self, job: QueueJob) -> RetryDecision:
        """Deliver the job's webhook and decide whether to retry it."""
        request = WebhookJob.model_validate(job.payload)
        attempt = max(job.attempts_made, 1)

        result = await self._delivery.deliver_webhook(
            request.event_id,
            request.subscription_id,
            request.destination,
            request.payload,
            attempt=attempt,
            tenant_id=request.tenant_id,
        )
        if result.success:
            return Stop(result)

        if should_retry(result, attempt, job.max_attempts):
            track_webhook_retry()
            logger.info(
                "Webhook delivery will be retried",
                extra={
                    "job_id": job.id,
                    "event_id": request.event_id,
                    "subscription_id": request.subscription_id,
                    "attempt": attempt,
                    "max_attempts": job.max_attempts,
                    "status_code": result.status_code,
                    "operation": "webhook_processor.decide",
                },
            )
            return Retry(result)

        logger.warning(
            "Webhook delivery permanently failed",
            extra={
                "job_id": job.id,
                "event_id": request.event_id,
                "subscription_id": request.subscription_id,
                "attempt": attempt,
                "status_code": result.status_code,
                "error": result.error,
                "operation": "webhook_processor.decide",
            },
        )
        return Stop(result)

    async def handle(self, job: QueueJob) -> EventDeliveryResult:
        """Queue entrypoint.

        Raises:
            WebhookRetryError: The attempt failed and should be retried.
        """
        match await self.decide(job):
            case Retry(result=result):
                raise WebhookRetryError(result)
            case Stop(result=result):
                return result


__all__ = [
    "Retry",
    "RetryDecision",
    "Stop",
    "WebhookProcessor",
    "WebhookRetryError",
    "should_retry",
]
