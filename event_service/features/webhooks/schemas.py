"""Pydantic schemas for outbound webhook delivery."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from event_service.features.events.schemas import utc_now
from event_service.features.events.types import EventPriority


class WebhookAuthType(StrEnum):
    """Authentication scheme applied to a webhook request."""

    NONE = "none"
    BASIC = "basic"
    BEARER = "bearer"
    API_KEY = "api_key"
    HMAC = "hmac"


class HmacAlgorithm(StrEnum):
    SHA1 = "sha1"
    SHA256 = "sha256"
    SHA512 = "sha512"


class WebhookAuth(BaseModel):
    """Credentials for one of the supported auth schemes.

    Only the fields of the selected ``type`` are used: ``username``/``password``
    for basic, ``token`` for bearer, ``api_key``/``key_name`` for API keys and
    ``secret``/``algorithm``/``signature_header`` for HMAC signing.
    """

    model_config = ConfigDict(frozen=True)

    type: WebhookAuthType = WebhookAuthType.NONE
    username: str | None = None
    password: str | None = None
    token: str | None = None
    api_key: str | None = None
    key_name: str = Field(default="X-API-Key", min_length=1)
    secret: str | None = None
    algorithm: HmacAlgorithm = HmacAlgorithm.SHA256
    signature_header: str | None = Field(
        default=None,
        description="Header carrying the HMAC signature; the service default when omitted",
    )

    @model_validator(mode="after")
    def _check_credentials(self) -> WebhookAuth:
        required = {
            WebhookAuthType.BASIC: ("username", "password"),
            WebhookAuthType.BEARER: ("token",),
            WebhookAuthType.API_KEY: ("api_key",),
            WebhookAuthType.HMAC: ("secret",),
        }.get(self.type, ())
        missing = [name for name in required if getattr(self, name) is None]
        if missing:
            raise ValueError(f"{self.type} auth requires: {', '.join(missing)}")
        return self


class WebhookDestination(BaseModel):
    """Where and how a webhook is sent."""

    model_config = ConfigDict(frozen=True)

    url: str = Field(..., min_length=1, description="Target URL")
    method: str = Field(default="POST", description="HTTP method")
    headers: dict[str, str] | None = Field(default=None, description="Extra request headers")
    timeout_seconds: float | None = Field(
        default=None, gt=0, le=300, description="Overrides the service default timeout"
    )
    verify_ssl: bool = True
    auth: WebhookAuth | None = None


class EventDeliveryResult(BaseModel):
    """Outcome of a single webhook delivery attempt."""

    event_id: str
    subscription_id: str
    tenant_id: str | None = None
    success: bool
    status_code: int | None = None
    response: str | None = None
    error: str | None = None
    duration_ms: int = 0
    attempt: int = 1
    delivered_at: datetime = Field(default_factory=utc_now)


class WebhookJob(BaseModel):
    """Payload of a queued webhook job."""

    event_id: str
    subscription_id: str
    tenant_id: str | None = None
    destination: WebhookDestination
    payload: dict[str, Any] = Field(default_factory=dict)


class WebhookQueueRequest(BaseModel):
    """API body for queueing a webhook delivery."""

    event_id: str = Field(..., min_length=1)
    subscription_id: str = Field(..., min_length=1)
    destination: WebhookDestination
    payload: dict[str, Any] = Field(default_factory=dict)
    priority: EventPriority = EventPriority.NORMAL
    delay_ms: int = Field(default=0, ge=0)
    max_attempts: int | None = Field(default=None, ge=1)


class WebhookQueued(BaseModel):
    job_id: str


class DeliveryStats(BaseModel):
    """Queue counts plus aggregates over the recorded delivery results."""

    queued: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    total_deliveries: int = 0
    successful_deliveries: int = 0
    failed_deliveries: int = 0
    success_rate: float = Field(default=0.0, description="Percentage of successful attempts")
    avg_duration_ms: float = 0.0


__all__ = [
    "DeliveryStats",
    "EventDeliveryResult",
    "HmacAlgorithm",
    "WebhookAuth",
    "WebhookAuthType",
    "WebhookDestination",
    "WebhookJob",
    "WebhookQueueRequest",
    "WebhookQueued",
]
