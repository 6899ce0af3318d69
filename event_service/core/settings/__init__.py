"""Modular Pydantic Settings v2 configuration.

One frozen settings class per domain, each read from environment variables
with its own prefix (APP_, EVENT_, WEBHOOK_, REPLAY_, RABBIT_, REDIS_, LOG_) and an
optional .env file. Import settings via the cached loaders:

    from event_service.core.settings import get_event_settings
"""

from __future__ import annotations

from .app import AppSettings
from .events import EventSettings
from .loader import (
    clear_all_caches,
    get_app_settings,
    get_event_settings,
    get_logging_settings,
    get_rabbit_settings,
    get_redis_settings,
    get_replay_settings,
    get_webhook_settings,
)
from .logs import LoggingSettings
from .rabbit import RabbitSettings
from .redis import RedisSettings
from .replay import ReplaySettings
from .webhooks import WebhookSettings

__all__ = [
    "AppSettings",
    "EventSettings",
    "LoggingSettings",
    "RabbitSettings",
    "RedisSettings",
    "ReplaySettings",
    "WebhookSettings",
    "clear_all_caches",
    "get_app_settings",
    "get_event_settings",
    "get_logging_settings",
    "get_rabbit_settings",
    "get_redis_settings",
    "get_replay_settings",
    "get_webhook_settings",
]
