"""Prometheus registry shared by every event backbone metric."""

from __future__ import annotations

from prometheus_client import CollectorRegistry

# Custom registry so the /metrics endpoint exposes only service metrics
REGISTRY = CollectorRegistry()

# Covers handler and webhook latencies from 5ms to 30s
DEFAULT_LATENCY_BUCKETS = (
    0.005,
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
    30.0,
)

__all__ = ["DEFAULT_LATENCY_BUCKETS", "REGISTRY"]
