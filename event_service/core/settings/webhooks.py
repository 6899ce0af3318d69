"""Webhook delivery configuration settings.

Provides settings for webhook HTTP delivery, retry logic, and timeout configuration.
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class WebhookSettings(BaseSettings):
    """Configuration for webhook delivery system.

    Controls HTTP timeouts, retry behavior, and how much delivery history
    is kept in memory for outbound webhook notifications.
    """

    # HTTP delivery settings
    timeout_seconds: float = Field(
        default=30.0,
        gt=0,
        le=300,
        description="Default timeout for webhook HTTP requests (seconds)",
    )
    user_agent: str = Field(
        default="EventService-Webhook/1.0",
        min_length=1,
        description="User-Agent header sent with every webhook request",
    )
    signature_header: str = Field(
        default="X-Webhook-Signature",
        min_length=1,
        description="Default header carrying the HMAC signature",
    )

    # Retry configuration
    max_attempts: int = Field(
        default=5,
        ge=1,
        le=25,
        description="Maximum delivery attempts for a queued webhook",
    )
    backoff: Literal["fixed", "linear", "exponential"] = Field(
        default="exponential",
        description="Backoff kind between delivery attempts",
    )
    retry_delay_ms: int = Field(
        default=60_000,
        ge=0,
        description="Base delay between webhook retry attempts (milliseconds)",
    )
    retry_max_delay_ms: int = Field(
        default=3_600_000,
        ge=1,
        description="Maximum delay between retries (1 hour default)",
    )
    worker_concurrency: int = Field(
        default=4,
        ge=1,
        le=256,
        description="Number of in-process workers consuming the webhook queue (memory backend)",
    )

    # Delivery history
    max_results_per_event: int = Field(
        default=100,
        ge=1,
        le=10_000,
        description="Delivery results kept per event; oldest are trimmed first",
    )
    max_response_chars: int = Field(
        default=5000,
        ge=0,
        description="Response bodies are truncated to this many characters",
    )

    model_config = SettingsConfigDict(
        env_prefix="WEBHOOK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
    )


__all__ = ["WebhookSettings"]
