"""In-process subscription registry and sequential fan-out dispatch.

Subscriptions live only in this process and are never persisted; each worker
rebuilds them at startup (see ``AppSettings.subscriber_modules``).
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Awaitable, Callable, Iterable
from dataclasses import dataclass, field
from datetime import datetime
import inspect
import itertools
import logging
import threading
from typing import Any

from uuid_utils import uuid7

from event_service.infra.logging import get_lazy_logger

from .filters import CompiledFilter, compile_filter
from .schemas import DispatchResult, Event, EventFilter, HandlerError, utc_now
from .types import WILDCARD

logger = logging.getLogger(__name__)
lazy_logger = get_lazy_logger(__name__)

EventHandler = Callable[[Event], Awaitable[Any] | Any]


@dataclass(eq=False)
class EventSubscription:
    """A registered handler for one tenant and a set of event types."""

    id: str
    tenant_id: str
    event_types: tuple[str, ...]
    handler: EventHandler
    name: str | None = None
    filter: EventFilter | None = None
    enabled: bool = True
    created_at: datetime = field(default_factory=utc_now)
    sequence: int = 0
    compiled_filter: CompiledFilter | None = field(default=None, repr=False)

    def accepts(self, event: Event) -> bool:
        """Tenant, enabled flag and filter checks; the type check is done by the index."""
        if not self.enabled or self.tenant_id != event.tenant_id:
            return False
        return self.compiled_filter is None or self.compiled_filter.matches(event)


class SubscriberRegistry:
    """Registry of subscriptions indexed by event type and tenant.

    Example:
        registry = SubscriberRegistry()
        sub_id = registry.subscribe("acme", ["order.created"], notify_erp)
        result = await registry.dispatch(event)
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, EventSubscription] = {}
        self._by_type: defaultdict[str, set[str]] = defaultdict(set)
        self._by_tenant: defaultdict[str, set[str]] = defaultdict(set)
        self._sequence = itertools.count()
        self._lock = threading.RLock()

    # ──────────────────────────────────────────────────────────────
    # Registration
    # ──────────────────────────────────────────────────────────────

    def subscribe(
        self,
        tenant_id: str,
        event_types: str | Iterable[str],
        handler: EventHandler,
        *,
        name: str | None = None,
        filter: EventFilter | None = None,
        enabled: bool = True,
    ) -> str:
        """Register a handler.

        Args:
            tenant_id: Only events of this tenant are delivered.
            event_types: One type or several; ``"*"`` matches every type.
            handler: Async (or plain) callable receiving the Event.
            name: Optional human-readable name.
            filter: Optional source/metadata/condition filter.
            enabled: Disabled subscriptions are kept but never matched.

        Returns:
            The new subscription id.
        """
        types = (event_types,) if isinstance(event_types, str) else tuple(event_types)
        if not types:
            raise ValueError("At least one event type is required")

        subscription = EventSubscription(
            id=str(uuid7()),
            tenant_id=tenant_id,
            event_types=types,
            handler=handler,
            name=name,
            filter=filter,
            enabled=enabled,
            sequence=next(self._sequence),
            compiled_filter=compile_filter(filter) if filter is not None else None,
        )

        with self._lock:
            self._subscriptions[subscription.id] = subscription
            self._by_tenant[tenant_id].add(subscription.id)
            for event_type in types:
                self._by_type[event_type].add(subscription.id)

        logger.info(
            "Subscription registered",
            extra={
                "subscription_id": subscription.id,
                "tenant_id": tenant_id,
                "event_types": list(types),
                "subscription_name": name,
                "operation": "subscriber.subscribe",
            },
        )
        return subscription.id

    def subscribe_all(
        self,
        tenant_id: str,
        handler: EventHandler,
        *,
        name: str | None = None,
        filter: EventFilter | None = None,
        enabled: bool = True,
    ) -> str:
        """Subscribe to every event type of a tenant."""
        return self.subscribe(tenant_id, WILDCARD, handler, name=name, filter=filter, enabled=enabled)

    def unsubscribe(self, subscription_id: str) -> bool:
        with self._lock:
            subscription = self._subscriptions.pop(subscription_id, None)
            if subscription is None:
                return False
            for event_type in subscription.event_types:
                self._discard(self._by_type, event_type, subscription_id)
            self._discard(self._by_tenant, subscription.tenant_id, subscription_id)

        logger.info(
            "Subscription removed",
            extra={"subscription_id": subscription_id, "operation": "subscriber.unsubscribe"},
        )
        return True

    def set_enabled(self, subscription_id: str, enabled: bool) -> bool:
        subscription = self._subscriptions.get(subscription_id)
        if subscription is None:
            return False
        subscription.enabled = enabled
        return True

    # ──────────────────────────────────────────────────────────────
    # Matching and dispatch
    # ──────────────────────────────────────────────────────────────

    def get_subscriptions_for_event(self, event: Event) -> list[EventSubscription]:
        """Enabled subscriptions of the event's tenant whose type and filter match.

        Returned in registration order.
        """
        with self._lock:
            candidate_ids = self._by_type.get(event.type, set()) | self._by_type.get(WILDCARD, set())
            candidates = [self._subscriptions[sub_id] for sub_id in candidate_ids]

        matched = sorted(
            (subscription for subscription in candidates if subscription.accepts(event)),
            key=lambda subscription: subscription.sequence,
        )
        lazy_logger.debug(
            lambda: f"{len(matched)} of {len(candidates)} subscriptions matched {event.type}",
            extra={"event_id": event.id, "operation": "subscriber.match"},
        )
        return matched

    async def dispatch(self, event: Event) -> DispatchResult:
        """Invoke every matching handler, one after another.

        A failing handler is counted and logged; the remaining handlers
        still run.
        """
        result = DispatchResult()
        for subscription in self.get_subscriptions_for_event(event):
            try:
                outcome = subscription.handler(event)
                if inspect.isawaitable(outcome):
                    await outcome
            except Exception as exc:
                result.failure_count += 1
                result.errors.append(
                    HandlerError(subscription_id=subscription.id, error=str(exc) or type(exc).__name__)
                )
                logger.exception(
                    "Subscription handler failed",
                    extra={
                        "event_id": event.id,
                        "event_type": event.type,
                        "subscription_id": subscription.id,
                        "subscription_name": subscription.name,
                        "operation": "subscriber.dispatch",
                    },
                )
            else:
                result.success_count += 1
                logger.debug(
                    "Event dispatched to subscription",
                    extra={
                        "event_id": event.id,
                        "subscription_id": subscription.id,
                        "operation": "subscriber.dispatch",
                    },
                )
        return result

    # ──────────────────────────────────────────────────────────────
    # Queries
    # ──────────────────────────────────────────────────────────────

    def get_subscription(self, subscription_id: str) -> EventSubscription | None:
        return self._subscriptions.get(subscription_id)

    def get_subscriptions_by_tenant(self, tenant_id: str) -> list[EventSubscription]:
        return self._ordered(self._by_tenant.get(tenant_id, ()))

    def get_subscriptions_by_type(self, event_type: str) -> list[EventSubscription]:
        return self._ordered(self._by_type.get(event_type, ()))

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)

    # ──────────────────────────────────────────────────────────────
    # Lifecycle
    # ──────────────────────────────────────────────────────────────

    def clear_tenant_subscriptions(self, tenant_id: str) -> int:
        subscription_ids = list(self._by_tenant.get(tenant_id, ()))
        for subscription_id in subscription_ids:
            self.unsubscribe(subscription_id)
        return len(subscription_ids)

    def clear(self) -> None:
        with self._lock:
            self._subscriptions.clear()
            self._by_type.clear()
            self._by_tenant.clear()

    def on_shutdown(self) -> None:
        count = self.subscription_count
        self.clear()
        logger.info(
            "Subscription registry cleared on shutdown",
            extra={"cleared": count, "operation": "subscriber.on_shutdown"},
        )

    # ──────────────────────────────────────────────────────────────
    # Internals
    # ──────────────────────────────────────────────────────────────

    def _ordered(self, subscription_ids: Iterable[str]) -> list[EventSubscription]:
        with self._lock:
            subscriptions = [self._subscriptions[sub_id] for sub_id in subscription_ids]
        return sorted(subscriptions, key=lambda subscription: subscription.sequence)

    @staticmethod
    def _discard(index: defaultdict[str, set[str]], key: str, subscription_id: str) -> None:
        ids = index.get(key)
        if ids is None:
            return
        ids.discard(subscription_id)
        if not ids:
            del index[key]


__all__ = ["EventHandler", "EventSubscription", "SubscriberRegistry"]
