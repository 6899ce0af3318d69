"""Webhook delivery feature package."""

from .client import HttpResponse, WebhookHttpClient
from .delivery import WebhookDeliveryService, compute_hmac_signature, webhook_job_id
from .processor import Retry, RetryDecision, Stop, WebhookProcessor, WebhookRetryError, should_retry
from .schemas import (
    DeliveryStats,
    EventDeliveryResult,
    HmacAlgorithm,
    WebhookAuth,
    WebhookAuthType,
    WebhookDestination,
    WebhookJob,
)

__all__ = [
    "DeliveryStats",
    "EventDeliveryResult",
    "HmacAlgorithm",
    "HttpResponse",
    "Retry",
    "RetryDecision",
    "Stop",
    "WebhookAuth",
    "WebhookAuthType",
    "WebhookDestination",
    "WebhookDeliveryService",
    "WebhookHttpClient",
    "WebhookJob",
    "WebhookProcessor",
    "WebhookRetryError",
    "compute_hmac_signature",
    "should_retry",
    "webhook_job_id",
]
