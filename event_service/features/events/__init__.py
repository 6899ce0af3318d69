"""Event publishing, subscriptions, processing, the event log and replay.

The HTTP routes live in ``event_service.features.events.router`` and are
mounted by ``event_service.app.router``.
"""

from .filters import CompiledFilter, compile_filter, matches_filter
from .log import EventLog
from .processor import EventProcessor
from .publisher import EventPublisher
from .replay import EventReplayService
from .schemas import (
    DispatchResult,
    Event,
    EventFilter,
    EventInput,
    EventLogEntry,
    EventLogQuery,
    EventReplayRequest,
    EventReplayResult,
    FilterCondition,
    PublishedEvent,
    PublishOptions,
    ReplayFilter,
    ReplayStatus,
    RetentionPolicy,
)
from .subscriber import EventSubscription, SubscriberRegistry
from .types import WILDCARD, EventPriority, EventStatus

__all__ = [
    "WILDCARD",
    "CompiledFilter",
    "DispatchResult",
    "Event",
    "EventFilter",
    "EventInput",
    "EventLog",
    "EventLogEntry",
    "EventLogQuery",
    "EventPriority",
    "EventProcessor",
    "EventPublisher",
    "EventReplayRequest",
    "EventReplayResult",
    "EventReplayService",
    "EventStatus",
    "EventSubscription",
    "FilterCondition",
    "PublishOptions",
    "PublishedEvent",
    "ReplayFilter",
    "ReplayStatus",
    "RetentionPolicy",
    "SubscriberRegistry",
    "compile_filter",
    "matches_filter",
]
