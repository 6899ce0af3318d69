"""Event replay settings."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ReplaySettings(BaseSettings):
    """Limits and defaults for historical event replay.

    Environment variables use REPLAY_ prefix.
    Example: REPLAY_MAX_CONCURRENT=10
    """

    max_concurrent: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Replays allowed in progress at the same time across all tenants",
    )
    default_batch_size: int = Field(
        default=100,
        ge=1,
        le=1000,
        description="Events republished per batch when the request omits batch_size",
    )
    default_delay_between_batches_ms: int = Field(
        default=1000,
        ge=0,
        le=60_000,
        description="Pause between batches when the request omits it (milliseconds)",
    )
    priority: Literal["critical", "high", "normal", "low"] = Field(
        default="low",
        description="Queue priority given to replayed events",
    )
    result_max_age_seconds: int = Field(
        default=86_400,
        ge=60,
        description="Finished replay results older than this are evicted by the cleanup sweep",
    )
    cleanup_interval_seconds: int = Field(
        default=3600,
        ge=60,
        description="Interval between replay result cleanup sweeps",
    )

    model_config = SettingsConfigDict(
        env_prefix="REPLAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
    )


__all__ = ["ReplaySettings"]
