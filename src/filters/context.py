"""Criteria context predicates.

The search term and profile type stored beside a filter expression are
extra AND-ed predicates. This module evaluates them in memory and builds
a store query that pre-filters on the profile type.
"""

from __future__ import annotations

from typing import Callable, Mapping

from core.constants import DEFAULT_PROFILE_TYPE
from core.types import Record, RecordQuery
from filters.expression import FilterCriteria

_ProfilePredicate = Callable[[Record], bool]

PROFILE_TYPE_PREDICATES: dict[str, _ProfilePredicate] = {
    "active": lambda record: _text(record.value_of("status")) == "active",
    "marketing": lambda record: record.value_of("is_marketing") is True,
    "suppressed": lambda record: record.value_of("is_suppressed") is True,
    "unsubscribed": lambda record: record.value_of("is_subscribed") is False,
    "deleted": lambda record: _text(record.value_of("status")) == "deleted",
}
_PROFILE_TYPE_STATUS = {"active": "Active", "deleted": "Deleted"}
_PROFILE_TYPE_FLAGS = {
    "marketing": ("is_marketing", True),
    "suppressed": ("is_suppressed", True),
    "unsubscribed": ("is_subscribed", False),
}


def supported_profile_types() -> tuple[str, ...]:
    """Return accepted profile type names, ``all`` first."""
    return (DEFAULT_PROFILE_TYPE, *PROFILE_TYPE_PREDICATES)


def matches_profile_type(record: Record, profile_type: str | None) -> bool:
    """Return whether a record falls in a profile type bucket.

    ``None``, empty, and ``all`` match every record; unknown names match
    nothing.
    """
    normalized = (profile_type or "").strip().lower()
    if normalized in ("", DEFAULT_PROFILE_TYPE):
        return True
    predicate = PROFILE_TYPE_PREDICATES.get(normalized)
    return predicate(record) if predicate is not None else False


def matches_search_term(record: Record, search_term: str | None) -> bool:
    """Return whether any attribute value contains the search term."""
    term = (search_term or "").strip().lower()
    if not term:
        return True
    values = [record.record_id, *_flatten(record.attributes), *_flatten(record.custom_fields)]
    return any(term in _text(value) for value in values)


def matches_context(record: Record, criteria: FilterCriteria) -> bool:
    """Apply both context predicates of a criteria object."""
    return matches_profile_type(record, criteria.profile_type) and matches_search_term(
        record, criteria.search_term
    )


def context_query(criteria: FilterCriteria) -> RecordQuery:
    """Translate the profile type into a pushed-down store query.

    Only the profile type is pushed down. Store search covers a fixed set of
    columns while the search predicate scans every value, so the search
    term always runs in memory.

    Args:
        criteria: Criteria carrying the profile type.

    Returns:
        Store query with equality constraints only.
    """
    equals: dict[str, object] = {}
    profile_type = (criteria.profile_type or "").strip().lower()
    if profile_type in _PROFILE_TYPE_STATUS:
        equals["status"] = _PROFILE_TYPE_STATUS[profile_type]
    elif profile_type in _PROFILE_TYPE_FLAGS:
        field_key, flag = _PROFILE_TYPE_FLAGS[profile_type]
        equals[field_key] = flag
    return RecordQuery(equals=equals)


def _flatten(values: Mapping[str, object]) -> list[object]:
    flattened: list[object] = []
    for value in values.values():
        if isinstance(value, (list, tuple)):
            flattened.extend(value)
        elif isinstance(value, Mapping):
            flattened.extend(value.values())
        elif value is not None:
            flattened.append(value)
    return flattened


def _text(value: object) -> str:
    if value is None:
        return ""
    return str(value).strip().lower()
