"""Queryable, retention-bounded event log.

Entries are kept in memory with secondary indexes on tenant, type,
correlation id and original event id. Every index maps a key to the set of
entry ids carrying it; removing an entry removes it from each index and drops
keys that become empty.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta
import logging
import threading
from typing import TYPE_CHECKING

from event_service.infra.metrics.tracking import track_event_log_size

from .schemas import (
    Event,
    EventLogEntry,
    EventLogPage,
    EventLogQuery,
    EventStats,
    RetentionPolicy,
    StatsPeriod,
    utc_now,
)
from .types import EventStatus

if TYPE_CHECKING:
    from collections.abc import Iterable

    from event_service.core.settings.events import EventSettings

logger = logging.getLogger(__name__)

_PERIOD_SPANS = {
    StatsPeriod.HOUR: timedelta(hours=1),
    StatsPeriod.DAY: timedelta(days=1),
    StatsPeriod.WEEK: timedelta(days=7),
    StatsPeriod.MONTH: timedelta(days=30),
}


class EventLog:
    """In-memory event log with retention.

    Example:
        log = EventLog()
        entry = log.log_event(event)
        log.update_status(entry.id, EventStatus.DELIVERED)
        page = log.query(EventLogQuery(tenant_id="acme", status=EventStatus.DELIVERED))
    """

    def __init__(
        self,
        settings: EventSettings | None = None,
        retention_policy: RetentionPolicy | None = None,
    ) -> None:
        """Initialize the log.

        Args:
            settings: Event settings supplying retention defaults.
            retention_policy: Explicit policy; takes precedence over settings.
        """
        if retention_policy is None and settings is not None:
            retention_policy = RetentionPolicy(
                default_days=settings.retention_default_days,
                by_status={
                    EventStatus.FAILED: settings.retention_failed_days,
                    EventStatus.DEAD_LETTER: settings.retention_dead_letter_days,
                },
            )
        self._retention = retention_policy or RetentionPolicy()
        self._entries: dict[str, EventLogEntry] = {}
        self._by_tenant: defaultdict[str, set[str]] = defaultdict(set)
        self._by_type: defaultdict[str, set[str]] = defaultdict(set)
        self._by_correlation: defaultdict[str, set[str]] = defaultdict(set)
        self._by_event: defaultdict[str, set[str]] = defaultdict(set)
        self._lock = threading.RLock()

    # ──────────────────────────────────────────────────────────────
    # Writes
    # ──────────────────────────────────────────────────────────────

    def log_event(self, event: Event) -> EventLogEntry:
        """Record an event at PENDING and index it."""
        now = utc_now()
        entry = EventLogEntry(
            event_id=event.id,
            type=event.type,
            tenant_id=event.tenant_id,
            payload=dict(event.payload),
            metadata=dict(event.metadata),
            source=event.source,
            correlation_id=event.correlation_id,
            causation_id=event.causation_id,
            status=EventStatus.PENDING,
            created_at=now,
            updated_at=now,
            expires_at=self._expires_at(event.type, EventStatus.PENDING, now),
        )

        with self._lock:
            self._entries[entry.id] = entry
            self._by_tenant[entry.tenant_id].add(entry.id)
            self._by_type[entry.type].add(entry.id)
            self._by_event[entry.event_id].add(entry.id)
            if entry.correlation_id:
                self._by_correlation[entry.correlation_id].add(entry.id)
            size = len(self._entries)

        track_event_log_size(size)
        logger.debug(
            "Event logged",
            extra={
                "entry_id": entry.id,
                "event_id": event.id,
                "event_type": event.type,
                "tenant_id": event.tenant_id,
                "operation": "event_log.log_event",
            },
        )
        return entry

    def update_status(
        self,
        entry_id: str,
        status: EventStatus,
        error: str | None = None,
    ) -> bool:
        """Change an entry's status and recompute its expiry.

        Returns:
            False when the entry does not exist.
        """
        with self._lock:
            entry = self._entries.get(entry_id)
            if entry is None:
                return False
            now = utc_now()
            entry.status = status
            entry.updated_at = now
            if error is not None:
                entry.last_error = error
            entry.expires_at = self._expires_at(entry.type, status, now)
        return True

    def delete_entry(self, entry_id: str) -> bool:
        with self._lock:
            entry = self._entries.pop(entry_id, None)
            if entry is None:
                return False
            self._unindex(self._by_tenant, entry.tenant_id, entry_id)
            self._unindex(self._by_type, entry.type, entry_id)
            self._unindex(self._by_event, entry.event_id, entry_id)
            if entry.correlation_id:
                self._unindex(self._by_correlation, entry.correlation_id, entry_id)
        return True

    def cleanup_expired_entries(self, now: datetime | None = None) -> int:
        """Remove every entry whose ``expires_at`` is at or before ``now``.

        Returns:
            Number of entries removed.
        """
        now = now or utc_now()
        with self._lock:
            expired = [entry_id for entry_id, entry in self._entries.items() if entry.expires_at <= now]
            for entry_id in expired:
                self.delete_entry(entry_id)
            size = len(self._entries)

        track_event_log_size(size, expired=len(expired))
        if expired:
            logger.info(
                "Expired event log entries removed",
                extra={"removed": len(expired), "remaining": size, "operation": "event_log.cleanup"},
            )
        return len(expired)

    def clear_tenant_entries(self, tenant_id: str) -> int:
        """Purge every entry of a tenant."""
        with self._lock:
            entry_ids = list(self._by_tenant.get(tenant_id, ()))
            for entry_id in entry_ids:
                self.delete_entry(entry_id)
            size = len(self._entries)

        track_event_log_size(size)
        logger.info(
            "Tenant event log entries cleared",
            extra={"tenant_id": tenant_id, "removed": len(entry_ids), "operation": "event_log.clear_tenant"},
        )
        return len(entry_ids)

    def clear_all(self) -> None:
        with self._lock:
            self._entries.clear()
            self._by_tenant.clear()
            self._by_type.clear()
            self._by_correlation.clear()
            self._by_event.clear()
        track_event_log_size(0)

    # ──────────────────────────────────────────────────────────────
    # Reads
    # ──────────────────────────────────────────────────────────────

    def get_entry(self, entry_id: str) -> EventLogEntry | None:
        return self._entries.get(entry_id)

    def get_entry_by_event_id(self, event_id: str) -> EventLogEntry | None:
        """Return the most recent entry logged for an original event id."""
        with self._lock:
            entries = [self._entries[entry_id] for entry_id in self._by_event.get(event_id, ())]
        if not entries:
            return None
        return max(entries, key=lambda entry: entry.created_at)

    @property
    def entry_count(self) -> int:
        return len(self._entries)

    def query(self, query: EventLogQuery) -> EventLogPage:
        """Filter, sort newest first, then paginate.

        ``total`` counts every matching entry before offset/limit apply.
        """
        matched = self._filter(query)
        matched.sort(key=lambda entry: (entry.created_at, entry.id), reverse=True)
        page = matched[query.offset : query.offset + query.limit]
        return EventLogPage(entries=page, total=len(matched), limit=query.limit, offset=query.offset)

    def get_events_for_replay(
        self,
        tenant_id: str,
        start_time: datetime,
        end_time: datetime,
        types: list[str] | None = None,
    ) -> list[EventLogEntry]:
        """Delivered entries of a tenant inside a time window, oldest first."""
        entries = self._filter(
            EventLogQuery(
                tenant_id=tenant_id,
                types=types,
                status=EventStatus.DELIVERED,
                start_time=start_time,
                end_time=end_time,
            )
        )
        entries.sort(key=lambda entry: (entry.created_at, entry.id))
        return entries

    def get_stats(self, tenant_id: str, period: StatsPeriod | str) -> EventStats:
        """Aggregate counts for a tenant over a trailing period."""
        period = StatsPeriod(period)
        now = utc_now()
        entries = self._filter(
            EventLogQuery(tenant_id=tenant_id, start_time=now - _PERIOD_SPANS[period], end_time=now)
        )

        stats = EventStats(tenant_id=tenant_id, period=period, total_events=len(entries))
        delivery_ms: list[float] = []
        for entry in entries:
            stats.event_counts[entry.type] = stats.event_counts.get(entry.type, 0) + 1
            if entry.status is EventStatus.DELIVERED:
                stats.successful_deliveries += 1
                delivery_ms.append((entry.updated_at - entry.created_at).total_seconds() * 1000)
            elif entry.status in (EventStatus.FAILED, EventStatus.DEAD_LETTER):
                stats.failed_deliveries += 1
            elif entry.status is EventStatus.RETRYING:
                stats.retry_count += 1

        if delivery_ms:
            stats.avg_delivery_time_ms = sum(delivery_ms) / len(delivery_ms)
        return stats

    # ──────────────────────────────────────────────────────────────
    # Retention
    # ──────────────────────────────────────────────────────────────

    def set_retention_policy(
        self,
        default_days: int | None = None,
        by_type: dict[str, int] | None = None,
        by_status: dict[EventStatus, int] | None = None,
    ) -> RetentionPolicy:
        """Merge a partial policy over the current one.

        Existing entries keep their expiry until their next status change.
        """
        update = {
            key: value
            for key, value in (
                ("default_days", default_days),
                ("by_type", by_type),
                ("by_status", by_status),
            )
            if value is not None
        }
        with self._lock:
            self._retention = RetentionPolicy.model_validate(
                {**self._retention.model_dump(), **update}
            )
        logger.info(
            "Retention policy updated",
            extra={"policy": self._retention.model_dump(mode="json"), "operation": "event_log.set_retention"},
        )
        return self.get_retention_policy()

    def get_retention_policy(self) -> RetentionPolicy:
        return self._retention.model_copy(deep=True)

    # ──────────────────────────────────────────────────────────────
    # Internals
    # ──────────────────────────────────────────────────────────────

    def _expires_at(self, event_type: str, status: EventStatus, now: datetime) -> datetime:
        days = self._retention.default_days
        days = self._retention.by_type.get(event_type) or days
        days = self._retention.by_status.get(status) or days
        return now + timedelta(days=days)

    def _candidate_ids(self, query: EventLogQuery) -> Iterable[str]:
        # Start from the narrowest index available
        if query.correlation_id:
            return set(self._by_correlation.get(query.correlation_id, ()))
        if query.tenant_id:
            return set(self._by_tenant.get(query.tenant_id, ()))
        if query.types:
            ids: set[str] = set()
            for event_type in query.types:
                ids |= self._by_type.get(event_type, set())
            return ids
        return list(self._entries)

    def _filter(self, query: EventLogQuery) -> list[EventLogEntry]:
        types = set(query.types) if query.types else None
        with self._lock:
            candidates = [self._entries[entry_id] for entry_id in self._candidate_ids(query)]

        return [
            entry
            for entry in candidates
            if (query.tenant_id is None or entry.tenant_id == query.tenant_id)
            and (types is None or entry.type in types)
            and (query.status is None or entry.status is query.status)
            and (query.source is None or entry.source == query.source)
            and (query.start_time is None or entry.created_at >= query.start_time)
            and (query.end_time is None or entry.created_at <= query.end_time)
            and (query.correlation_id is None or entry.correlation_id == query.correlation_id)
        ]

    @staticmethod
    def _unindex(index: defaultdict[str, set[str]], key: str, entry_id: str) -> None:
        ids = index.get(key)
        if ids is None:
            return
        ids.discard(entry_id)
        if not ids:
            del index[key]


__all__ = ["EventLog"]
