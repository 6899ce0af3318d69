"""Pydantic models for events, the event log, filters and replay."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum
from typing import Annotated, Any

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, model_validator
from uuid_utils import uuid7

from .types import EventPriority, EventStatus

# Publishing delays are capped at seven days
MAX_DELAY_MS = 7 * 24 * 60 * 60 * 1000


def generate_event_id() -> str:
    """Generate a time-sortable UUID v7 string."""
    return str(uuid7())


def utc_now() -> datetime:
    return datetime.now(UTC)


def as_utc(value: datetime) -> datetime:
    """Treat a naive datetime as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


# Window bounds compared against the aware timestamps of log entries
UtcDatetime = Annotated[datetime, AfterValidator(as_utc)]


# ──────────────────────────────────────────────────────────────
# Filters
# ──────────────────────────────────────────────────────────────


class FilterCondition(BaseModel):
    """Predicate on a value extracted from the event by path.

    ``operator`` is kept as a plain string so that an unknown operator
    reaches the matcher (and fails closed) instead of being rejected.
    """

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., min_length=1, description="Dotted path such as $.payload.total")
    operator: str = Field(..., min_length=1, description="eq, ne, gt, gte, lt, lte, contains, startsWith, endsWith, regex, in")
    value: Any = None


class EventFilter(BaseModel):
    """Conjunction of source, metadata and condition clauses."""

    model_config = ConfigDict(frozen=True)

    sources: list[str] | None = Field(default=None, description="Allowed event sources")
    metadata: dict[str, Any] | None = Field(default=None, description="Exact metadata matches")
    conditions: list[FilterCondition] | None = None


# ──────────────────────────────────────────────────────────────
# Events
# ──────────────────────────────────────────────────────────────


class Event(BaseModel):
    """Immutable event envelope.

    Attributes:
        id: Unique identifier (UUID v7).
        type: Dotted event type, e.g. ``order.created``.
        tenant_id: Tenant that owns the event.
        timestamp: When the event was created (UTC).
        schema_version: Payload schema version.
        source: Logical producer of the event.
        correlation_id: Groups events belonging to one business flow.
        causation_id: Id of the event that directly caused this one.
        metadata: Free-form context used by filters.
        payload: Event body.
    """

    model_config = ConfigDict(
        frozen=True,
        str_strip_whitespace=True,
        extra="forbid",
    )

    id: str = Field(default_factory=generate_event_id)
    type: str = Field(..., min_length=1, max_length=255)
    tenant_id: str = Field(..., min_length=1, max_length=255)
    timestamp: datetime = Field(default_factory=utc_now)
    schema_version: str = Field(default="1.0")
    source: str = Field(..., min_length=1)
    correlation_id: str | None = None
    causation_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    payload: dict[str, Any] = Field(default_factory=dict)

    def to_job_payload(self) -> dict[str, Any]:
        """Serialize for the queue (JSON-safe)."""
        return self.model_dump(mode="json")


class PublishedEvent(Event):
    """Event plus its operational status, as held by the publisher buffer."""

    model_config = ConfigDict(frozen=False, validate_assignment=True)

    status: EventStatus = EventStatus.PENDING
    priority: EventPriority = EventPriority.NORMAL
    attempts: int = 0
    max_attempts: int = 3
    last_error: str | None = None
    delivered_at: datetime | None = None
    published_at: datetime = Field(default_factory=utc_now)

    def to_event(self) -> Event:
        return Event.model_validate(self.model_dump(include=set(Event.model_fields)))


class PublishOptions(BaseModel):
    """Optional arguments for a single publish call."""

    model_config = ConfigDict(frozen=True)

    priority: EventPriority = EventPriority.NORMAL
    delay_ms: int = Field(default=0, ge=0, le=MAX_DELAY_MS)
    correlation_id: str | None = None
    causation_id: str | None = None
    metadata: dict[str, Any] | None = None
    source: str | None = None
    deduplication_id: str | None = Field(
        default=None,
        description="Queue job id; publishing twice with the same id enqueues once",
    )
    schema_version: str | None = None
    max_attempts: int | None = Field(default=None, ge=1)


class EventInput(BaseModel):
    """One item of a batch or chain publish."""

    type: str = Field(..., min_length=1, max_length=255)
    payload: dict[str, Any] = Field(default_factory=dict)
    priority: EventPriority = EventPriority.NORMAL
    delay_ms: int = Field(default=0, ge=0, le=MAX_DELAY_MS)
    correlation_id: str | None = None
    metadata: dict[str, Any] | None = None
    source: str | None = None


# ──────────────────────────────────────────────────────────────
# Dispatch
# ──────────────────────────────────────────────────────────────


class HandlerError(BaseModel):
    subscription_id: str
    error: str


class DispatchResult(BaseModel):
    """Outcome of fanning one event out to its matching subscriptions."""

    success_count: int = 0
    failure_count: int = 0
    errors: list[HandlerError] = Field(default_factory=list)

    @property
    def matched(self) -> int:
        return self.success_count + self.failure_count


# ──────────────────────────────────────────────────────────────
# Event log
# ──────────────────────────────────────────────────────────────


class EventLogEntry(BaseModel):
    """Durable record of an event as seen by the processor."""

    model_config = ConfigDict(validate_assignment=True)

    id: str = Field(default_factory=generate_event_id)
    event_id: str
    type: str
    tenant_id: str
    payload: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)
    source: str
    correlation_id: str | None = None
    causation_id: str | None = None
    status: EventStatus = EventStatus.PENDING
    last_error: str | None = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)
    expires_at: datetime


class EventLogQuery(BaseModel):
    """Conjunctive filter plus pagination for the event log."""

    tenant_id: str | None = None
    types: list[str] | None = None
    status: EventStatus | None = None
    source: str | None = None
    start_time: UtcDatetime | None = None
    end_time: UtcDatetime | None = None
    correlation_id: str | None = None
    limit: int = Field(default=100, ge=1, le=1000)
    offset: int = Field(default=0, ge=0)


class EventLogPage(BaseModel):
    entries: list[EventLogEntry]
    total: int
    limit: int
    offset: int


class RetentionPolicy(BaseModel):
    """Days an entry is kept; status overrides type, type overrides the default."""

    default_days: int = Field(default=30, ge=1)
    by_type: dict[str, int] = Field(default_factory=dict)
    by_status: dict[EventStatus, int] = Field(
        default_factory=lambda: {EventStatus.DEAD_LETTER: 90, EventStatus.FAILED: 60}
    )


class RetentionPolicyUpdate(BaseModel):
    """Partial retention update; omitted fields keep their current value."""

    default_days: int | None = Field(default=None, ge=1)
    by_type: dict[str, int] | None = None
    by_status: dict[EventStatus, int] | None = None


class StatsPeriod(StrEnum):
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class EventStats(BaseModel):
    tenant_id: str
    period: StatsPeriod
    event_counts: dict[str, int] = Field(default_factory=dict)
    total_events: int = 0
    successful_deliveries: int = 0
    failed_deliveries: int = 0
    retry_count: int = 0
    avg_delivery_time_ms: float = 0.0


# ──────────────────────────────────────────────────────────────
# Replay
# ──────────────────────────────────────────────────────────────


class ReplayStatus(StrEnum):
    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"


class ReplayFilter(BaseModel):
    model_config = ConfigDict(frozen=True)

    sources: list[str] | None = None
    metadata: dict[str, Any] | None = None


class EventReplayRequest(BaseModel):
    """Time-bounded selection of delivered events to republish.

    ``batch_size`` and ``delay_between_batches_ms`` fall back to the replay
    settings when omitted.
    """

    model_config = ConfigDict(frozen=True)

    tenant_id: str = Field(..., min_length=1)
    start_time: UtcDatetime
    end_time: UtcDatetime
    event_types: list[str] | None = None
    filter: ReplayFilter | None = None
    batch_size: int | None = Field(default=None, ge=1, le=1000)
    delay_between_batches_ms: int | None = Field(default=None, ge=0, le=60_000)

    @model_validator(mode="after")
    def _check_window(self) -> EventReplayRequest:
        if self.end_time < self.start_time:
            raise ValueError("end_time must not be before start_time")
        return self


class EventReplayResult(BaseModel):
    """Live progress record of one replay run."""

    model_config = ConfigDict(validate_assignment=True)

    request_id: str = Field(default_factory=generate_event_id)
    tenant_id: str
    status: ReplayStatus = ReplayStatus.PENDING
    total_events: int = 0
    processed_events: int = 0
    failed_events: int = 0
    started_at: datetime = Field(default_factory=utc_now)
    completed_at: datetime | None = None
    error: str | None = None


# ──────────────────────────────────────────────────────────────
# HTTP API
# ──────────────────────────────────────────────────────────────


class PublishEventRequest(BaseModel):
    """Body of `POST /events`; the tenant comes from the X-Tenant-ID header."""

    type: str = Field(..., min_length=1, max_length=255, examples=["order.created"])
    payload: dict[str, Any] = Field(default_factory=dict)
    priority: EventPriority = EventPriority.NORMAL
    delay_ms: int = Field(default=0, ge=0, le=MAX_DELAY_MS, description="Delay before processing")
    correlation_id: str | None = None
    causation_id: str | None = None
    metadata: dict[str, Any] | None = None
    source: str | None = None
    deduplication_id: str | None = None

    def to_options(self, correlation_id: str | None = None) -> PublishOptions:
        return PublishOptions(
            priority=self.priority,
            delay_ms=self.delay_ms,
            correlation_id=self.correlation_id or correlation_id,
            causation_id=self.causation_id,
            metadata=self.metadata,
            source=self.source,
            deduplication_id=self.deduplication_id,
        )


class PublishBatchRequest(BaseModel):
    events: list[EventInput] = Field(..., min_length=1, max_length=1000)
    correlation_id: str | None = None


class PublishedEventResponse(BaseModel):
    id: str
    type: str
    status: EventStatus
    correlation_id: str | None = None
    causation_id: str | None = None
    published_at: datetime


class EventStatusUpdate(BaseModel):
    status: EventStatus
    error: str | None = None


class ReplayStartRequest(BaseModel):
    """Body of `POST /events/replays`."""

    start_time: UtcDatetime
    end_time: UtcDatetime
    event_types: list[str] | None = None
    filter: ReplayFilter | None = None
    batch_size: int | None = Field(default=None, ge=1, le=1000)
    delay_between_batches_ms: int | None = Field(default=None, ge=0, le=60_000)

    def for_tenant(self, tenant_id: str) -> EventReplayRequest:
        return EventReplayRequest(tenant_id=tenant_id, **self.model_dump())


class SubscriptionRead(BaseModel):
    id: str
    name: str | None = None
    event_types: list[str]
    enabled: bool
    filter: EventFilter | None = None
    created_at: datetime


__all__ = [
    "MAX_DELAY_MS",
    "DispatchResult",
    "Event",
    "EventFilter",
    "EventInput",
    "EventLogEntry",
    "EventLogPage",
    "EventLogQuery",
    "EventReplayRequest",
    "EventReplayResult",
    "EventStats",
    "EventStatusUpdate",
    "FilterCondition",
    "HandlerError",
    "PublishBatchRequest",
    "PublishEventRequest",
    "PublishOptions",
    "PublishedEvent",
    "PublishedEventResponse",
    "ReplayFilter",
    "ReplayStartRequest",
    "ReplayStatus",
    "RetentionPolicy",
    "RetentionPolicyUpdate",
    "StatsPeriod",
    "SubscriptionRead",
    "UtcDatetime",
    "as_utc",
    "generate_event_id",
    "utc_now",
]
