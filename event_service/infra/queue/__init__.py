"""Durable job queue port and its in-process implementation."""

from __future__ import annotations

from .backoff import calculate_delay
from .base import (
    BackoffKind,
    DurableQueue,
    FailureCallback,
    JobHandler,
    JobOptions,
    JobState,
    QueueJob,
    QueueStats,
    RetryPolicy,
)
from .memory import InMemoryQueue

__all__ = [
    "BackoffKind",
    "DurableQueue",
    "FailureCallback",
    "InMemoryQueue",
    "JobHandler",
    "JobOptions",
    "JobState",
    "QueueJob",
    "QueueStats",
    "RetryPolicy",
    "calculate_delay",
]
