"""Outbound webhook delivery.

Builds the request (headers, auth, HMAC signature over the exact body),
sends it through ``WebhookHttpClient`` and records every attempt in a
bounded per-event history. Retry classification lives in the webhook
processor; this module only reports what happened.
"""

from __future__ import annotations

import base64
from collections import deque
import hashlib
import hmac
import json
import logging
import time
from typing import TYPE_CHECKING, Any

import httpx

from event_service.core.settings.webhooks import WebhookSettings
from event_service.features.events.types import EventPriority
from event_service.infra.metrics.tracking import track_webhook_delivery
from event_service.infra.queue import BackoffKind, JobOptions, RetryPolicy

from .client import WebhookHttpClient
from .schemas import (
    DeliveryStats,
    EventDeliveryResult,
    HmacAlgorithm,
    WebhookAuth,
    WebhookAuthType,
    WebhookDestination,
    WebhookJob,
)

if TYPE_CHECKING:
    from event_service.infra.queue import DurableQueue

logger = logging.getLogger(__name__)

WEBHOOK_JOB_NAME = "webhook.deliver"


def compute_hmac_signature(
    payload: str | bytes,
    secret: str,
    algorithm: HmacAlgorithm | str = HmacAlgorithm.SHA256,
) -> str:
    """Hex HMAC of ``payload`` keyed by ``secret``.

    Examples:
        >>> len(compute_hmac_signature("{}", "s3cret", "sha1"))
        40
        >>> len(compute_hmac_signature(b"{}", "s3cret"))
        64
    """
    body = payload.encode("utf-8") if isinstance(payload, str) else payload
    digest = getattr(hashlib, HmacAlgorithm(algorithm).value)
    return hmac.new(secret.encode("utf-8"), body, digest).hexdigest()


def webhook_job_id(event_id: str, subscription_id: str) -> str:
    return f"{event_id}-{subscription_id}"


def serialize_body(payload: dict[str, Any]) -> bytes:
    return json.dumps(payload, separators=(",", ":"), default=str).encode("utf-8")


class WebhookDeliveryService:
    """Deliver webhooks directly or through the webhook queue.

    Example:
        service = WebhookDeliveryService(queue=webhook_queue)
        result = await service.deliver_webhook("evt-1", "sub-1", destination, {"order_id": "o-1"})
        job_id = await service.queue_webhook("evt-1", "sub-1", destination, payload)
    """

    def __init__(
        self,
        http_client: WebhookHttpClient | None = None,
        queue: DurableQueue | None = None,
        settings: WebhookSettings | None = None,
    ) -> None:
        self._http = http_client or WebhookHttpClient()
        self._queue = queue
        self._settings = settings or WebhookSettings()
        self._results: dict[str, deque[EventDeliveryResult]] = {}

    @property
    def queue(self) -> DurableQueue | None:
        return self._queue

    # ──────────────────────────────────────────────────────────────
    # Request building
    # ──────────────────────────────────────────────────────────────

    def build_headers(
        self,
        event_id: str,
        subscription_id: str,
        destination: WebhookDestination,
        body: bytes,
        attempt: int,
    ) -> dict[str, str]:
        """Standard headers, then destination headers, then auth headers."""
        headers = {
            "Content-Type": "application/json",
            "User-Agent": self._settings.user_agent,
            "X-Event-ID": event_id,
            "X-Delivery-Attempt": str(attempt),
            "X-Subscription-ID": subscription_id,
        }
        if destination.headers:
            headers.update(destination.headers)
        if destination.auth is not None:
            headers.update(self._auth_headers(destination.auth, body))
        return headers

    def _auth_headers(self, auth: WebhookAuth, body: bytes) -> dict[str, str]:
        match auth.type:
            case WebhookAuthType.BASIC:
                credentials = f"{auth.username}:{auth.password}".encode()
                return {"Authorization": f"Basic {base64.b64encode(credentials).decode('ascii')}"}
            case WebhookAuthType.BEARER:
                return {"Authorization": f"Bearer {auth.token}"}
            case WebhookAuthType.API_KEY:
                return {auth.key_name: str(auth.api_key)}
            case WebhookAuthType.HMAC:
                signature = compute_hmac_signature(body, str(auth.secret), auth.algorithm)
                header = auth.signature_header or self._settings.signature_header
                return {header: f"{auth.algorithm.value}={signature}"}
            case _:
                return {}

    # ──────────────────────────────────────────────────────────────
    # Delivery
    # ──────────────────────────────────────────────────────────────

    async def deliver_webhook(
        self,
        event_id: str,
        subscription_id: str,
        destination: WebhookDestination,
        payload: dict[str, Any],
        attempt: int = 1,
        tenant_id: str | None = None,
    ) -> EventDeliveryResult:
        """Send one delivery attempt and record its result.

        Never raises for HTTP or transport failures; they are reported in
        the returned result.
        """
        body = serialize_body(payload)
        headers = self.build_headers(event_id, subscription_id, destination, body, attempt)
        timeout = destination.timeout_seconds or self._settings.timeout_seconds
        log_extra = {
            "event_id": event_id,
            "subscription_id": subscription_id,
            "tenant_id": tenant_id,
            "url": destination.url,
            "attempt": attempt,
            "operation": "delivery.deliver_webhook",
        }

        status_code: int | None = None
        response_text: str | None = None
        error: str | None = None
        started = time.perf_counter()
        try:
            response = await self._http.send(
                destination.method.upper(),
                destination.url,
                headers=headers,
                content=body,
                timeout_seconds=timeout,
                verify_ssl=destination.verify_ssl,
            )
        except httpx.TimeoutException:
            error = f"Request timeout after {timeout}s"
            logger.warning("Webhook delivery timeout", extra={**log_extra, "timeout_seconds": timeout})
        except httpx.HTTPError as exc:
            error = str(exc) or type(exc).__name__
            logger.error("Webhook delivery request error", extra={**log_extra, "error": error})
        except Exception as exc:
            error = str(exc) or type(exc).__name__
            logger.exception("Webhook delivery unexpected error", extra=log_extra)
        else:
            status_code = response.status_code
            response_text = response.text[: self._settings.max_response_chars] or None
            if not 200 <= status_code < 300:
                error = f"HTTP {status_code}: {response.reason}"

        duration_ms = int((time.perf_counter() - started) * 1000)
        result = EventDeliveryResult(
            event_id=event_id,
            subscription_id=subscription_id,
            tenant_id=tenant_id,
            success=error is None,
            status_code=status_code,
            response=response_text,
            error=error,
            duration_ms=duration_ms,
            attempt=attempt,
        )
        self._record(result)
        track_webhook_delivery(
            success=result.success,
            status_code=status_code,
            duration_seconds=duration_ms / 1000,
        )

        if result.success:
            logger.info(
                "Webhook delivered successfully",
                extra={**log_extra, "status_code": status_code, "duration_ms": duration_ms},
            )
        elif status_code is not None:
            logger.warning(
                "Webhook delivery failed with non-2xx status",
                extra={**log_extra, "status_code": status_code, "duration_ms": duration_ms},
            )
        return result

    async def queue_webhook(
        self,
        event_id: str,
        subscription_id: str,
        destination: WebhookDestination,
        payload: dict[str, Any],
        priority: EventPriority = EventPriority.NORMAL,
        delay_ms: int = 0,
        max_attempts: int | None = None,
        tenant_id: str | None = None,
    ) -> str:
        """Enqueue a delivery for the webhook processor.

        Returns:
            The job id, ``"<event_id>-<subscription_id>"``.
        """
        if self._queue is None:
            raise RuntimeError("Webhook queue is not configured")

        job_id = webhook_job_id(event_id, subscription_id)
        job = WebhookJob(
            event_id=event_id,
            subscription_id=subscription_id,
            tenant_id=tenant_id,
            destination=destination,
            payload=payload,
        )
        options = JobOptions(
            job_id=job_id,
            priority=int(priority),
            delay_ms=delay_ms,
            retry=RetryPolicy(
                max_attempts=max_attempts or self._settings.max_attempts,
                backoff=BackoffKind(self._settings.backoff),
                base_delay_ms=self._settings.retry_delay_ms,
                max_delay_ms=self._settings.retry_max_delay_ms,
            ),
        )
        await self._queue.enqueue(WEBHOOK_JOB_NAME, job.model_dump(mode="json"), options)

        logger.info(
            "Webhook queued",
            extra={
                "job_id": job_id,
                "event_id": event_id,
                "subscription_id": subscription_id,
                "tenant_id": tenant_id,
                "priority": int(priority),
                "delay_ms": delay_ms,
                "operation": "delivery.queue_webhook",
            },
        )
        return job_id

    # ──────────────────────────────────────────────────────────────
    # Results and stats
    # ──────────────────────────────────────────────────────────────

    def get_delivery_results(
        self, event_id: str, tenant_id: str | None = None
    ) -> list[EventDeliveryResult]:
        """Recorded attempts for an event, limited to one tenant when ``tenant_id`` is given."""
        return [
            result
            for result in self._results.get(event_id, ())
            if tenant_id is None or result.tenant_id == tenant_id
        ]

    def get_latest_result(
        self, event_id: str, subscription_id: str, tenant_id: str | None = None
    ) -> EventDeliveryResult | None:
        for result in reversed(self.get_delivery_results(event_id, tenant_id)):
            if result.subscription_id == subscription_id:
                return result
        return None

    async def get_delivery_stats(self, tenant_id: str | None = None) -> DeliveryStats:
        """Attempt statistics plus webhook queue counts.

        ``tenant_id`` narrows the attempt figures; queue counts stay global.
        """
        results = [
            result
            for history in self._results.values()
            for result in history
            if tenant_id is None or result.tenant_id == tenant_id
        ]
        successful = sum(1 for result in results if result.success)
        total = len(results)

        stats = DeliveryStats(
            total_deliveries=total,
            successful_deliveries=successful,
            failed_deliveries=total - successful,
            success_rate=round(successful / total * 100, 2) if total else 0.0,
            avg_duration_ms=round(sum(r.duration_ms for r in results) / total, 2) if total else 0.0,
        )
        if self._queue is not None:
            counts = await self._queue.get_counts()
            stats.queued = counts.waiting + counts.delayed
            stats.active = counts.active
            stats.completed = counts.completed
            stats.failed = counts.failed
        return stats

    async def retry_delivery(
        self, event_id: str, subscription_id: str, tenant_id: str | None = None
    ) -> bool:
        """Requeue a delivery whose latest recorded attempt failed.

        Returns:
            False when there is no queue, no attempt recorded for the tenant,
            the latest attempt succeeded, or the queue no longer knows the job.
        """
        if self._queue is None:
            return False
        latest = self.get_latest_result(event_id, subscription_id, tenant_id)
        if latest is None or latest.success:
            return False
        retried = await self._queue.retry_job(webhook_job_id(event_id, subscription_id))
        logger.info(
            "Webhook retry requested",
            extra={
                "event_id": event_id,
                "subscription_id": subscription_id,
                "tenant_id": tenant_id,
                "requeued": retried,
                "operation": "delivery.retry_delivery",
            },
        )
        return retried

    def clear_results(self, event_id: str | None = None) -> None:
        if event_id is None:
            self._results.clear()
        else:
            self._results.pop(event_id, None)

    def on_shutdown(self) -> None:
        self.clear_results()

    def _record(self, result: EventDeliveryResult) -> None:
        history = self._results.get(result.event_id)
        if history is None:
            history = deque(maxlen=self._settings.max_results_per_event)
            self._results[result.event_id] = history
        history.append(result)


__all__ = [
    "WEBHOOK_JOB_NAME",
    "WebhookDeliveryService",
    "compute_hmac_signature",
    "serialize_body",
    "webhook_job_id",
]
