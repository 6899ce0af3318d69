"""Retry delay calculation for queued jobs.

Pure functions: given a ``RetryPolicy`` and the number of attempts already
made, return how long the queue waits before the next attempt.
"""

from __future__ import annotations

import random

from .base import BackoffKind, RetryPolicy


def calculate_delay(policy: RetryPolicy, attempts_made: int, *, jitter: bool = False) -> int:
    """Calculate the delay before the next attempt.

    Args:
        policy: Retry policy carried by the job.
        attempts_made: Attempts already made (1 after the first failure).
        jitter: Spread the delay over +/-25% to avoid synchronized retries.

    Returns:
        Delay in milliseconds, capped by ``policy.max_delay_ms``.

    Example:
        policy = RetryPolicy(backoff=BackoffKind.EXPONENTIAL, base_delay_ms=1000)
        calculate_delay(policy, 1)  # 1000
        calculate_delay(policy, 2)  # 2000
        calculate_delay(policy, 3)  # 4000
    """
    retry_index = max(attempts_made - 1, 0)

    match policy.backoff:
        case BackoffKind.FIXED:
            delay = float(policy.base_delay_ms)
        case BackoffKind.LINEAR:
            delay = float(policy.base_delay_ms * (retry_index + 1))
        case BackoffKind.EXPONENTIAL:
            delay = float(policy.base_delay_ms * (2**retry_index))
        case _:
            delay = float(policy.base_delay_ms)

    delay = min(delay, float(policy.max_delay_ms))

    if jitter and delay > 0:
        delay = random.uniform(delay * 0.75, delay * 1.25)

    return int(delay)


__all__ = ["calculate_delay"]
