"""Event type catalog, statuses and priorities.

Event types are dotted strings (``<domain>.<entity>.<action>`` or
``<domain>.<action>``). The catalog lists the types emitted by the business
flows; publishers may still use any non-empty string.
"""

from __future__ import annotations

from enum import IntEnum, StrEnum

WILDCARD = "*"


class EventStatus(StrEnum):
    """Processing status shared by published events and log entries."""

    PENDING = "pending"
    PROCESSING = "processing"
    DELIVERED = "delivered"
    FAILED = "failed"
    DEAD_LETTER = "dead_letter"
    RETRYING = "retrying"


class EventPriority(IntEnum):
    """Queue priority; lower values are served first."""

    CRITICAL = 1
    HIGH = 2
    NORMAL = 3
    LOW = 4

    @classmethod
    def from_name(cls, name: str) -> EventPriority:
        """Resolve a case-insensitive priority name such as ``"low"``."""
        return cls[name.upper()]


class OrderEvents:
    """Order lifecycle events."""

    CREATED = "order.created"
    UPDATED = "order.updated"
    SUBMITTED = "order.submitted"
    APPROVED = "order.approved"
    REJECTED = "order.rejected"
    CANCELLED = "order.cancelled"
    SHIPPED = "order.shipped"
    DELIVERED = "order.delivered"
    COMPLETED = "order.completed"


class InvoiceEvents:
    """Invoicing events."""

    CREATED = "invoice.created"
    SENT = "invoice.sent"
    PAID = "invoice.paid"
    OVERDUE = "invoice.overdue"
    CANCELLED = "invoice.cancelled"
    SYNCED = "invoice.synced"


class PaymentEvents:
    """Payment authorization and capture events."""

    AUTHORIZED = "payment.authorized"
    CAPTURED = "payment.captured"
    FAILED = "payment.failed"
    REFUNDED = "payment.refunded"


class ShipmentEvents:
    """Shipping events."""

    CREATED = "shipment.created"
    UPDATED = "shipment.updated"
    DELIVERED = "shipment.delivered"
    ASN_GENERATED = "shipment.asn.generated"


class InventoryEvents:
    """Stock, reservation and inventory sync events."""

    STOCK_UPDATED = "inventory.stock.updated"
    STOCK_LOW = "inventory.stock.low"
    STOCK_OUT = "inventory.stock.out"
    STOCK_REPLENISHED = "inventory.stock.replenished"
    RESERVATION_CREATED = "inventory.reservation.created"
    RESERVATION_FULFILLED = "inventory.reservation.fulfilled"
    RESERVATION_RELEASED = "inventory.reservation.released"
    RESERVATION_EXPIRED = "inventory.reservation.expired"
    SYNC_COMPLETED = "inventory.sync.completed"
    SYNC_FAILED = "inventory.sync.failed"


class CustomerEvents:
    """Customer account events."""

    CREATED = "customer.created"
    UPDATED = "customer.updated"
    CREDIT_APPROVED = "customer.credit.approved"
    CREDIT_REJECTED = "customer.credit.rejected"


class IntegrationEvents:
    """Connector and sync events raised by third-party integrations."""

    SYNC_STARTED = "integration.sync.started"
    SYNC_COMPLETED = "integration.sync.completed"
    SYNC_FAILED = "integration.sync.failed"
    CONNECTOR_ERROR = "integration.connector.error"


_CATALOG = (
    OrderEvents,
    InvoiceEvents,
    PaymentEvents,
    ShipmentEvents,
    InventoryEvents,
    CustomerEvents,
    IntegrationEvents,
)

# All cataloged event types, in declaration order
ALL_EVENT_TYPES: tuple[str, ...] = tuple(
    value
    for group in _CATALOG
    for name, value in vars(group).items()
    if name.isupper() and isinstance(value, str)
)


def is_known_event_type(event_type: str) -> bool:
    """Check whether an event type is part of the catalog.

    Examples:
        >>> is_known_event_type("order.created")
        True
        >>> is_known_event_type("custom.thing")
        False
    """
    return event_type in ALL_EVENT_TYPES


def get_event_category(event_type: str) -> str | None:
    """Return the domain prefix of an event type.

    Examples:
        >>> get_event_category("inventory.stock.low")
        'inventory'
        >>> get_event_category("nodots") is None
        True
    """
    head, sep, _ = event_type.partition(".")
    return head if sep and head else None


__all__ = [
    "ALL_EVENT_TYPES",
    "WILDCARD",
    "CustomerEvents",
    "EventPriority",
    "EventStatus",
    "IntegrationEvents",
    "InventoryEvents",
    "InvoiceEvents",
    "OrderEvents",
    "PaymentEvents",
    "ShipmentEvents",
    "get_event_category",
    "is_known_event_type",
]
