"""Durable job queue port shared by the event and webhook pipelines.

The publisher and the webhook delivery service only talk to a queue through
``DurableQueue``. Retry and backoff travel with each job as a ``RetryPolicy``
value object; the queue owns attempt counting, delays and the hand-off to a
failure callback once a job errors.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field


class BackoffKind(StrEnum):
    """How the delay grows between attempts."""

    FIXED = "fixed"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


class RetryPolicy(BaseModel):
    """Retry budget and backoff attached to a job.

    Example:
        policy = RetryPolicy(max_attempts=5, backoff=BackoffKind.EXPONENTIAL, base_delay_ms=1000)
    """

    model_config = ConfigDict(frozen=True)

    max_attempts: int = Field(default=3, ge=1, description="Total attempts including the first")
    backoff: BackoffKind = Field(default=BackoffKind.EXPONENTIAL)
    base_delay_ms: int = Field(default=1000, ge=0)
    max_delay_ms: int = Field(default=300_000, ge=0)


class JobOptions(BaseModel):
    """Per-job enqueue options."""

    model_config = ConfigDict(frozen=True)

    job_id: str = Field(..., min_length=1, description="Deduplication key; reused ids are ignored")
    priority: int = Field(default=3, ge=1, description="Lower values are served first")
    delay_ms: int = Field(default=0, ge=0)
    retry: RetryPolicy = Field(default_factory=RetryPolicy)


class JobState(StrEnum):
    """Lifecycle of a queued job."""

    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class QueueStats(BaseModel):
    """Job counts per state."""

    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0


def _utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass
class QueueJob:
    """A job as seen by queue consumers.

    ``attempts_made`` counts started attempts, so inside a handler it equals
    the current attempt number (1 for the first run).
    """

    id: str
    name: str
    payload: dict[str, Any]
    options: JobOptions
    state: JobState = JobState.WAITING
    attempts_made: int = 0
    failed_reason: str | None = None
    return_value: Any = None
    created_at: datetime = field(default_factory=_utc_now)
    finished_at: datetime | None = None

    @property
    def max_attempts(self) -> int:
        return self.options.retry.max_attempts

    @property
    def attempts_exhausted(self) -> bool:
        """True once no further attempt will be scheduled."""
        return self.attempts_made >= self.max_attempts


JobHandler = Callable[[QueueJob], Awaitable[Any]]
FailureCallback = Callable[[QueueJob, BaseException], Awaitable[None]]


class DurableQueue(Protocol):
    """Port implemented by every queue backend.

    Implementations must deduplicate on ``JobOptions.job_id``: enqueueing an
    id that is already known returns the existing job without adding another.
    """

    name: str

    async def enqueue(
        self,
        job_name: str,
        payload: dict[str, Any],
        options: JobOptions,
    ) -> QueueJob:
        """Add a job; raises when the backend cannot accept it."""
        ...

    async def pause(self) -> None: ...

    async def resume(self) -> None: ...

    async def drain(self) -> None:
        """Remove every job that has not started yet."""
        ...

    async def get_counts(self) -> QueueStats: ...

    async def get_job(self, job_id: str) -> QueueJob | None: ...

    async def retry_job(self, job_id: str) -> bool:
        """Move a finished job back to waiting with a fresh attempt budget.

        Returns False when the job is unknown or has not finished yet.
        """
        ...


__all__ = [
    "BackoffKind",
    "DurableQueue",
    "FailureCallback",
    "JobHandler",
    "JobOptions",
    "JobState",
    "QueueJob",
    "QueueStats",
    "RetryPolicy",
]
