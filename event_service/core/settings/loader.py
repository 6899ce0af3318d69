"""LRU-cached settings loaders.

Settings are loaded and validated once, then cached for the lifetime of the process.

Usage:
    from event_service.core.settings.loader import get_event_settings

    settings = get_event_settings()  # First call: loads and validates
    settings = get_event_settings()  # Subsequent calls: returns cached instance

Testing:
    In tests, clear the cache to force reload:
    get_event_settings.cache_clear()

    Or pass explicit instances to the components:
    EventPublisher(queue, settings=EventSettings(buffer_size=10))
"""

from __future__ import annotations

from functools import lru_cache

from .app import AppSettings
from .events import EventSettings
from .logs import LoggingSettings
from .rabbit import RabbitSettings
from .redis import RedisSettings
from .replay import ReplaySettings
from .webhooks import WebhookSettings


@lru_cache(maxsize=1)
def get_app_settings() -> AppSettings:
    """Get cached application settings.

    Returns:
        Validated and frozen AppSettings instance.
    """
    return AppSettings()


@lru_cache(maxsize=1)
def get_event_settings() -> EventSettings:
    """Get cached event publishing/processing settings.

    Returns:
        Validated and frozen EventSettings instance.
    """
    return EventSettings()


@lru_cache(maxsize=1)
def get_webhook_settings() -> WebhookSettings:
    """Get cached webhook delivery settings.

    Returns:
        Validated and frozen WebhookSettings instance.
    """
    return WebhookSettings()


@lru_cache(maxsize=1)
def get_replay_settings() -> ReplaySettings:
    """Get cached event replay settings.

    Returns:
        Validated and frozen ReplaySettings instance.
    """
    return ReplaySettings()


@lru_cache(maxsize=1)
def get_rabbit_settings() -> RabbitSettings:
    """Get cached RabbitMQ settings.

    Returns:
        Validated and frozen RabbitSettings instance.
    """
    return RabbitSettings()


@lru_cache(maxsize=1)
def get_redis_settings() -> RedisSettings:
    """Get cached Redis settings.

    Returns:
        Validated and frozen RedisSettings instance.
    """
    return RedisSettings()


@lru_cache(maxsize=1)
def get_logging_settings() -> LoggingSettings:
    """Get cached logging settings.

    Returns:
        Validated and frozen LoggingSettings instance.
    """
    return LoggingSettings()


def clear_all_caches() -> None:
    """Clear all settings caches (useful for testing)."""
    get_app_settings.cache_clear()
    get_event_settings.cache_clear()
    get_webhook_settings.cache_clear()
    get_replay_settings.cache_clear()
    get_rabbit_settings.cache_clear()
    get_redis_settings.cache_clear()
    get_logging_settings.cache_clear()


__all__ = [
    "clear_all_caches",
    "get_app_settings",
    "get_event_settings",
    "get_logging_settings",
    "get_rabbit_settings",
    "get_redis_settings",
    "get_replay_settings",
    "get_webhook_settings",
]
