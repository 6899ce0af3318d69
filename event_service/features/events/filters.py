"""Subscription filter evaluation.

Filter conditions arrive as loose ``(path, operator, value)`` triples. Each
one is compiled into one of a closed set of predicate variants, and every
variant evaluates against a value pulled out of the event by
``extract_path``. Anything that cannot be compiled (unknown operator,
invalid regex) becomes ``NeverMatches`` so a broken filter never lets an
event through.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from enum import StrEnum
import re
from typing import Any

from pydantic import BaseModel
from pydantic.alias_generators import to_snake

from event_service.infra.logging import get_lazy_logger

from .schemas import Event, EventFilter, FilterCondition

lazy_logger = get_lazy_logger(__name__)

_MISSING = object()


class Operator(StrEnum):
    EQ = "eq"
    NE = "ne"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    REGEX = "regex"
    IN = "in"


# snake_case spellings accepted alongside the canonical names
_OPERATOR_ALIASES = {
    "starts_with": Operator.STARTS_WITH,
    "ends_with": Operator.ENDS_WITH,
}


# ──────────────────────────────────────────────────────────────
# Path extraction
# ──────────────────────────────────────────────────────────────


def parse_path(path: str) -> tuple[str, ...]:
    """Split ``$.payload.items.0.sku`` into its segments.

    Examples:
        >>> parse_path("$.payload.total")
        ('payload', 'total')
        >>> parse_path("metadata.channel")
        ('metadata', 'channel')
    """
    if path.startswith("$."):
        path = path[2:]
    elif path == "$":
        return ()
    return tuple(part for part in path.split(".") if part)


def extract_path(document: Any, path: str | Sequence[str]) -> Any:
    """Walk a nested mapping/list by path.

    Mapping keys are tried verbatim and then in snake_case, so camelCase
    paths like ``$.tenantId`` resolve against ``tenant_id``. Numeric segments
    index into lists.

    Returns:
        The value found, or ``None`` when any segment is missing.
    """
    segments = parse_path(path) if isinstance(path, str) else tuple(path)
    current: Any = document.model_dump() if isinstance(document, BaseModel) else document

    for segment in segments:
        if isinstance(current, Mapping):
            value = current.get(segment, _MISSING)
            if value is _MISSING:
                value = current.get(to_snake(segment), _MISSING)
            if value is _MISSING:
                return None
            current = value
        elif isinstance(current, list) and segment.isdigit():
            index = int(segment)
            if index >= len(current):
                return None
            current = current[index]
        else:
            return None
    return current


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _strict_equal(left: Any, right: Any) -> bool:
    """Equality that keeps booleans apart from the numbers 0 and 1."""
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


# ──────────────────────────────────────────────────────────────
# Predicate variants
# ──────────────────────────────────────────────────────────────


@dataclass(frozen=True, slots=True)
class Equals:
    path: tuple[str, ...]
    expected: Any
    negate: bool = False

    def matches(self, document: Mapping[str, Any]) -> bool:
        equal = _strict_equal(extract_path(document, self.path), self.expected)
        return not equal if self.negate else equal


@dataclass(frozen=True, slots=True)
class Compare:
    """Ordering comparison; both sides must be numbers."""

    path: tuple[str, ...]
    operator: Operator
    bound: Any

    def matches(self, document: Mapping[str, Any]) -> bool:
        value = extract_path(document, self.path)
        if not _is_number(value) or not _is_number(self.bound):
            return False
        match self.operator:
            case Operator.GT:
                return value > self.bound
            case Operator.GTE:
                return value >= self.bound
            case Operator.LT:
                return value < self.bound
            case Operator.LTE:
                return value <= self.bound
            case _:
                return False


@dataclass(frozen=True, slots=True)
class StringMatch:
    """Substring, prefix or suffix test on a string value."""

    path: tuple[str, ...]
    operator: Operator
    needle: str

    def matches(self, document: Mapping[str, Any]) -> bool:
        value = extract_path(document, self.path)
        if not isinstance(value, str):
            return False
        match self.operator:
            case Operator.CONTAINS:
                return self.needle in value
            case Operator.STARTS_WITH:
                return value.startswith(self.needle)
            case Operator.ENDS_WITH:
                return value.endswith(self.needle)
            case _:
                return False


@dataclass(frozen=True, slots=True)
class RegexMatch:
    path: tuple[str, ...]
    pattern: re.Pattern[str]

    def matches(self, document: Mapping[str, Any]) -> bool:
        value = extract_path(document, self.path)
        return isinstance(value, str) and self.pattern.search(value) is not None


@dataclass(frozen=True, slots=True)
class Membership:
    path: tuple[str, ...]
    options: tuple[Any, ...]

    def matches(self, document: Mapping[str, Any]) -> bool:
        value = extract_path(document, self.path)
        return any(_strict_equal(value, option) for option in self.options)


@dataclass(frozen=True, slots=True)
class NeverMatches:
    """Stand-in for a condition that could not be compiled."""

    reason: str

    def matches(self, document: Mapping[str, Any]) -> bool:
        return False


Predicate = Equals | Compare | StringMatch | RegexMatch | Membership | NeverMatches


def compile_condition(condition: FilterCondition) -> Predicate:
    """Turn a filter condition into its predicate variant.

    Example:
        >>> predicate = compile_condition(FilterCondition(path="$.payload.total", operator="gt", value=100))
        >>> predicate.matches({"payload": {"total": 150}})
        True
    """
    path = parse_path(condition.path)
    raw = condition.operator
    try:
        operator = _OPERATOR_ALIASES.get(raw) or Operator(raw)
    except ValueError:
        return NeverMatches(reason=f"unsupported operator '{raw}'")

    match operator:
        case Operator.EQ | Operator.NE:
            return Equals(path=path, expected=condition.value, negate=operator is Operator.NE)
        case Operator.GT | Operator.GTE | Operator.LT | Operator.LTE:
            return Compare(path=path, operator=operator, bound=condition.value)
        case Operator.CONTAINS | Operator.STARTS_WITH | Operator.ENDS_WITH:
            if not isinstance(condition.value, str):
                return NeverMatches(reason=f"'{raw}' needs a string value")
            return StringMatch(path=path, operator=operator, needle=condition.value)
        case Operator.REGEX:
            if not isinstance(condition.value, str):
                return NeverMatches(reason="regex needs a string pattern")
            try:
                return RegexMatch(path=path, pattern=re.compile(condition.value))
            except re.error as exc:
                return NeverMatches(reason=f"invalid regex: {exc}")
        case Operator.IN:
            if not isinstance(condition.value, (list, tuple, set, frozenset)):
                return NeverMatches(reason="'in' needs a list value")
            return Membership(path=path, options=tuple(condition.value))
        case _:
            return NeverMatches(reason=f"unsupported operator '{raw}'")


@dataclass(frozen=True, slots=True)
class CompiledFilter:
    """An ``EventFilter`` with its conditions compiled once."""

    sources: frozenset[str]
    metadata: tuple[tuple[str, Any], ...]
    predicates: tuple[Predicate, ...]

    def matches(self, event: Event) -> bool:
        """Evaluate against an event.

        All present clauses must pass: the source allow-list (when non-empty),
        every metadata key (present and equal), then every condition in order.
        """
        if self.sources and event.source not in self.sources:
            return False

        for key, expected in self.metadata:
            if not _strict_equal(event.metadata.get(key, _MISSING), expected):
                return False

        if self.predicates:
            document = event.model_dump()
            for predicate in self.predicates:
                if not predicate.matches(document):
                    lazy_logger.debug(
                        lambda p=predicate: f"Filter condition rejected event: {p!r}",
                        extra={"event_id": event.id, "operation": "filters.matches"},
                    )
                    return False

        return True


def compile_filter(event_filter: EventFilter) -> CompiledFilter:
    return CompiledFilter(
        sources=frozenset(event_filter.sources or ()),
        metadata=tuple((event_filter.metadata or {}).items()),
        predicates=tuple(compile_condition(c) for c in event_filter.conditions or ()),
    )


def matches_filter(event: Event, event_filter: EventFilter | None) -> bool:
    """Check an event against an uncompiled filter; ``None`` matches everything."""
    if event_filter is None:
        return True
    return compile_filter(event_filter).matches(event)


__all__ = [
    "Compare",
    "CompiledFilter",
    "Equals",
    "Membership",
    "NeverMatches",
    "Operator",
    "Predicate",
    "RegexMatch",
    "StringMatch",
    "compile_condition",
    "compile_filter",
    "extract_path",
    "matches_filter",
    "parse_path",
]
