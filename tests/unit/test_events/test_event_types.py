"""Unit tests for the event type catalog."""

from __future__ import annotations

import pytest

from event_service.features.events.types import (
    ALL_EVENT_TYPES,
    EventPriority,
    OrderEvents,
    get_event_category,
    is_known_event_type,
)


@pytest.mark.unit
class TestCatalog:
    def test_catalog_is_unique(self):
        assert len(ALL_EVENT_TYPES) == len(set(ALL_EVENT_TYPES))
        assert OrderEvents.CREATED in ALL_EVENT_TYPES

    def test_known_types(self):
        assert is_known_event_type("order.created")
        assert not is_known_event_type("custom.thing")

    @pytest.mark.parametrize(
        ("event_type", "category"),
        [
            ("inventory.stock.low", "inventory"),
            ("order.created", "order"),
            ("nodots", None),
            (".leading", None),
        ],
    )
    def test_category(self, event_type, category):
        assert get_event_category(event_type) == category


@pytest.mark.unit
class TestPriority:
    def test_lower_value_served_first(self):
        assert sorted([EventPriority.LOW, EventPriority.CRITICAL, EventPriority.NORMAL]) == [
            EventPriority.CRITICAL,
            EventPriority.NORMAL,
            EventPriority.LOW,
        ]

    def test_from_name(self):
        assert EventPriority.from_name("low") is EventPriority.LOW
        with pytest.raises(KeyError):
            EventPriority.from_name("urgent")
