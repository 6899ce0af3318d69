"""Event publishing and processing settings.

Controls the publisher status buffer, the retry policy applied to event jobs,
event log retention defaults and how partially successful dispatches are
recorded.
"""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

BackoffKind = Literal["fixed", "linear", "exponential"]
PartialDeliveryStatus = Literal["delivered", "failed"]


class EventSettings(BaseSettings):
    """Configuration for the event publisher, processor and log.

    Environment variables use EVENT_ prefix.
    Example: EVENT_MAX_ATTEMPTS=5, EVENT_PARTIAL_DELIVERY_STATUS=failed
    """

    # ──────────────────────────────────────────────────────────────
    # Publisher
    # ──────────────────────────────────────────────────────────────

    default_source: str = Field(
        default="event-service",
        min_length=1,
        max_length=100,
        description="Source recorded on events when the publisher is not given one",
    )
    buffer_size: int = Field(
        default=1000,
        ge=1,
        le=100_000,
        description="Capacity of the in-memory published event status buffer",
    )

    # ──────────────────────────────────────────────────────────────
    # Retry policy for event jobs
    # ──────────────────────────────────────────────────────────────

    max_attempts: int = Field(
        default=3,
        ge=1,
        le=25,
        description="Maximum processing attempts before an event is dead-lettered",
    )
    backoff: BackoffKind = Field(
        default="exponential",
        description="Backoff kind between attempts (fixed|linear|exponential)",
    )
    backoff_base_delay_ms: int = Field(
        default=1000,
        ge=0,
        description="Base delay between attempts in milliseconds",
    )
    backoff_max_delay_ms: int = Field(
        default=300_000,
        ge=0,
        description="Upper bound for a single retry delay in milliseconds",
    )

    # ──────────────────────────────────────────────────────────────
    # Processing
    # ──────────────────────────────────────────────────────────────

    partial_delivery_status: PartialDeliveryStatus = Field(
        default="delivered",
        description=(
            "Status recorded when some subscribers succeeded and some failed. "
            "'delivered' keeps the event out of the retry path."
        ),
    )
    worker_concurrency: int = Field(
        default=4,
        ge=1,
        le=256,
        description="Number of in-process workers consuming the event queue (memory backend)",
    )

    # ──────────────────────────────────────────────────────────────
    # Event log retention
    # ──────────────────────────────────────────────────────────────

    retention_default_days: int = Field(
        default=30,
        ge=1,
        le=3650,
        description="Default retention for event log entries (days)",
    )
    retention_failed_days: int = Field(
        default=60,
        ge=1,
        le=3650,
        description="Retention for entries in the failed status (days)",
    )
    retention_dead_letter_days: int = Field(
        default=90,
        ge=1,
        le=3650,
        description="Retention for entries in the dead_letter status (days)",
    )
    cleanup_interval_seconds: int = Field(
        default=86_400,
        ge=60,
        description="Interval between expired log entry sweeps (daily by default)",
    )

    model_config = SettingsConfigDict(
        env_prefix="EVENT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
    )


__all__ = ["BackoffKind", "EventSettings", "PartialDeliveryStatus"]
