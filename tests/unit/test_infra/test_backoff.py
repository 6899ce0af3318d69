"""Unit tests for retry delay calculation."""

from __future__ import annotations

import pytest

from event_service.infra.queue import BackoffKind, RetryPolicy, calculate_delay


@pytest.mark.unit
class TestCalculateDelay:
    """Test suite for calculate_delay."""

    def test_exponential_doubles_each_attempt(self):
        policy = RetryPolicy(backoff=BackoffKind.EXPONENTIAL, base_delay_ms=1000)

        assert [calculate_delay(policy, n) for n in (1, 2, 3, 4)] == [1000, 2000, 4000, 8000]

    def test_linear_grows_by_base(self):
        policy = RetryPolicy(backoff=BackoffKind.LINEAR, base_delay_ms=500)

        assert [calculate_delay(policy, n) for n in (1, 2, 3)] == [500, 1000, 1500]

    def test_fixed_stays_constant(self):
        policy = RetryPolicy(backoff=BackoffKind.FIXED, base_delay_ms=250)

        assert {calculate_delay(policy, n) for n in range(1, 6)} == {250}

    def test_delay_is_capped(self):
        policy = RetryPolicy(
            backoff=BackoffKind.EXPONENTIAL, base_delay_ms=1000, max_delay_ms=5000
        )

        assert calculate_delay(policy, 10) == 5000

    def test_zero_attempts_treated_as_first(self):
        policy = RetryPolicy(backoff=BackoffKind.EXPONENTIAL, base_delay_ms=1000)

        assert calculate_delay(policy, 0) == 1000

    def test_jitter_stays_within_quarter(self):
        policy = RetryPolicy(backoff=BackoffKind.FIXED, base_delay_ms=1000)

        for _ in range(50):
            assert 750 <= calculate_delay(policy, 1, jitter=True) <= 1250

    def test_jitter_leaves_zero_delay_alone(self):
        policy = RetryPolicy(backoff=BackoffKind.FIXED, base_delay_ms=0)

        assert calculate_delay(policy, 3, jitter=True) == 0
