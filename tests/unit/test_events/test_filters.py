"""Unit tests for subscription filter evaluation."""

from __future__ import annotations

import pytest

from event_service.features.events.filters import (
    Compare,
    Equals,
    Membership,
    NeverMatches,
    RegexMatch,
    StringMatch,
    compile_condition,
    extract_path,
    matches_filter,
    parse_path,
)
from event_service.features.events.schemas import EventFilter, FilterCondition


def condition(path: str, operator: str, value) -> FilterCondition:
    return FilterCondition(path=path, operator=operator, value=value)


@pytest.mark.unit
class TestPaths:
    """Path parsing and extraction."""

    def test_parse_strips_root(self):
        assert parse_path("$.payload.total") == ("payload", "total")
        assert parse_path("metadata.channel") == ("metadata", "channel")
        assert parse_path("$") == ()

    def test_extract_nested_and_list_index(self):
        document = {"payload": {"items": [{"sku": "A-1"}, {"sku": "B-2"}]}}

        assert extract_path(document, "$.payload.items.1.sku") == "B-2"

    def test_extract_missing_returns_none(self):
        document = {"payload": {"items": []}}

        assert extract_path(document, "$.payload.missing") is None
        assert extract_path(document, "$.payload.items.3") is None
        assert extract_path(document, "$.payload.items.sku") is None

    def test_extract_camel_case_falls_back_to_snake_case(self, make_event):
        event = make_event(tenant_id="acme")

        assert extract_path(event, "$.tenantId") == "acme"


@pytest.mark.unit
class TestCompileCondition:
    """Conditions compile into the matching predicate variant."""

    @pytest.mark.parametrize(
        ("operator", "value", "variant"),
        [
            ("eq", 1, Equals),
            ("ne", 1, Equals),
            ("gt", 1, Compare),
            ("lte", 1, Compare),
            ("contains", "x", StringMatch),
            ("startsWith", "x", StringMatch),
            ("ends_with", "x", StringMatch),
            ("regex", "^x", RegexMatch),
            ("in", ["x"], Membership),
        ],
    )
    def test_variant_per_operator(self, operator, value, variant):
        assert isinstance(compile_condition(condition("$.payload.a", operator, value)), variant)

    @pytest.mark.parametrize(
        ("operator", "value"),
        [
            ("between", 1),
            ("regex", "[unclosed"),
            ("regex", 5),
            ("contains", 5),
            ("in", "not-a-list"),
        ],
    )
    def test_uncompilable_conditions_never_match(self, operator, value):
        predicate = compile_condition(condition("$.payload.a", operator, value))

        assert isinstance(predicate, NeverMatches)
        assert predicate.matches({"payload": {"a": value}}) is False


@pytest.mark.unit
class TestPredicates:
    """Predicate evaluation against documents."""

    document = {"payload": {"total": 150, "status": "open", "region": "eu-west"}}

    @pytest.mark.parametrize(
        ("operator", "value", "expected"),
        [
            ("eq", 150, True),
            ("ne", 150, False),
            ("gt", 100, True),
            ("gt", 150, False),
            ("gte", 150, True),
            ("lt", 200, True),
            ("lte", 149, False),
        ],
    )
    def test_numeric_operators(self, operator, value, expected):
        predicate = compile_condition(condition("$.payload.total", operator, value))

        assert predicate.matches(self.document) is expected

    def test_ordering_requires_numbers(self):
        predicate = compile_condition(condition("$.payload.status", "gt", 1))

        assert predicate.matches(self.document) is False

    def test_ordering_rejects_booleans(self):
        predicate = compile_condition(condition("$.payload.flag", "gt", 0))

        assert predicate.matches({"payload": {"flag": True}}) is False

    @pytest.mark.parametrize(
        ("operator", "value", "expected"),
        [
            ("contains", "west", True),
            ("startsWith", "eu-", True),
            ("endsWith", "east", False),
            ("regex", r"^eu-\w+$", True),
        ],
    )
    def test_string_operators(self, operator, value, expected):
        predicate = compile_condition(condition("$.payload.region", operator, value))

        assert predicate.matches(self.document) is expected

    def test_string_operators_reject_non_strings(self):
        predicate = compile_condition(condition("$.payload.total", "contains", "1"))

        assert predicate.matches(self.document) is False

    def test_membership(self):
        predicate = compile_condition(condition("$.payload.status", "in", ["open", "pending"]))

        assert predicate.matches(self.document) is True

    @pytest.mark.parametrize(
        ("operator", "value", "flag", "expected"),
        [
            ("eq", 1, True, False),
            ("eq", True, 1, False),
            ("ne", 0, False, True),
            ("eq", 1.0, 1, True),
            ("eq", True, True, True),
        ],
    )
    def test_equality_keeps_booleans_apart_from_numbers(self, operator, value, flag, expected):
        predicate = compile_condition(condition("$.payload.flag", operator, value))

        assert predicate.matches({"payload": {"flag": flag}}) is expected

    def test_membership_keeps_booleans_apart_from_numbers(self):
        predicate = compile_condition(condition("$.payload.flag", "in", [1, 0]))

        assert predicate.matches({"payload": {"flag": True}}) is False
        assert predicate.matches({"payload": {"flag": 0}}) is True

    def test_equality_against_missing_path(self):
        predicate = compile_condition(condition("$.payload.missing", "eq", None))

        assert predicate.matches(self.document) is True


@pytest.mark.unit
class TestMatchesFilter:
    """Whole-filter evaluation against events."""

    def test_no_filter_matches(self, make_event):
        assert matches_filter(make_event(), None) is True

    def test_source_allow_list(self, make_event):
        event_filter = EventFilter(sources=["orders", "erp"])

        assert matches_filter(make_event(source="erp"), event_filter) is True
        assert matches_filter(make_event(source="crm"), event_filter) is False

    def test_empty_source_list_allows_all(self, make_event):
        assert matches_filter(make_event(source="crm"), EventFilter(sources=[])) is True

    def test_metadata_requires_presence_and_equality(self, make_event):
        event_filter = EventFilter(metadata={"channel": "web"})

        assert matches_filter(make_event(metadata={"channel": "web"}), event_filter) is True
        assert matches_filter(make_event(metadata={"channel": "pos"}), event_filter) is False
        assert matches_filter(make_event(metadata={}), event_filter) is False

    def test_metadata_boolean_does_not_equal_number(self, make_event):
        event_filter = EventFilter(metadata={"priority": 1})

        assert matches_filter(make_event(metadata={"priority": True}), event_filter) is False
        assert matches_filter(make_event(metadata={"priority": 1}), event_filter) is True

    def test_metadata_none_value_must_be_present(self, make_event):
        event_filter = EventFilter(metadata={"channel": None})

        assert matches_filter(make_event(metadata={"channel": None}), event_filter) is True
        assert matches_filter(make_event(metadata={}), event_filter) is False

    def test_all_conditions_must_pass(self, make_event):
        event_filter = EventFilter(
            conditions=[
                condition("$.payload.total", "gt", 100),
                condition("$.type", "startsWith", "order."),
            ]
        )

        assert matches_filter(make_event(payload={"total": 150}), event_filter) is True
        assert matches_filter(make_event(payload={"total": 50}), event_filter) is False

    def test_unknown_operator_rejects_event(self, make_event):
        event_filter = EventFilter(conditions=[condition("$.payload.total", "approx", 150)])

        assert matches_filter(make_event(payload={"total": 150}), event_filter) is False
