"""Condition, group, and expression evaluation.

Evaluation is pure and total: malformed record data or literals coerce to
a defined boolean instead of raising. Dispatch always pairs the field's
semantic type with the operator name.
"""

from __future__ import annotations

import json
import math
from datetime import date, datetime, timezone
from typing import Callable, Mapping

from core.types import FieldDescriptor, Record, SemanticType
from filters.expression import (
    CompleteCondition,
    FieldResolver,
    FilterExpression,
    FilterGroup,
)
from filters.operators import IS_EMPTY, IS_NOT_EMPTY, is_operator_allowed

_Comparison = Callable[[object, str], bool]


def evaluate_condition(
    condition: CompleteCondition,
    field: FieldDescriptor | None,
    record: Record,
) -> bool:
    """Evaluate one complete condition against a record.

    Args:
        condition: Complete condition to apply.
        field: Resolved descriptor, ``None`` when the field is unknown.
        record: Record to test.

    Returns:
        Match result. Unknown fields and illegal operators never match.
    """
    if field is None or not is_operator_allowed(field.semantic_type, condition.operator):
        return False
    raw_value = record.value_of(field.key)
    if condition.operator in (IS_EMPTY, IS_NOT_EMPTY):
        empty = _is_empty(field.semantic_type, raw_value)
        return empty if condition.operator == IS_EMPTY else not empty
    if raw_value is None:
        return False
    comparison = _COMPARISONS[field.semantic_type].get(condition.operator)
    if comparison is None:
        return False
    try:
        return comparison(raw_value, condition.value)
    except (TypeError, ValueError, OverflowError):
        return False


def evaluate_group(group: FilterGroup, record: Record, registry: FieldResolver) -> bool:
    """Evaluate the AND of a group's complete conditions.

    Incomplete conditions are skipped. A group without complete conditions
    does not match; callers decide what an empty group means.
    """
    conditions = group.complete_conditions()
    if not conditions:
        return False
    return all(
        evaluate_condition(condition, registry.resolve(condition.field), record)
        for condition in conditions
    )


def evaluate_expression(
    expression: FilterExpression, record: Record, registry: FieldResolver
) -> bool:
    """Evaluate the OR of all groups holding complete conditions.

    An expression with no complete conditions returns ``False``. Callers
    needing "no filter means everything" must check
    ``expression.has_complete_conditions()`` first.
    """
    return any(
        evaluate_group(group, record, registry) for group in expression.active_groups()
    )


def _is_empty(semantic_type: SemanticType, value: object) -> bool:
    if value is None:
        return True
    if semantic_type == "array":
        return len(_as_sequence(value)) == 0
    if semantic_type == "json":
        return len(_as_mapping(value)) == 0
    if isinstance(value, str):
        return value.strip() == ""
    if semantic_type == "number" and isinstance(value, float):
        return math.isnan(value)
    return False


# string


def _string_contains(value: object, literal: str) -> bool:
    return literal.lower() in _as_text(value).lower()


def _string_is(value: object, literal: str) -> bool:
    return _as_text(value).lower() == literal.lower()


def _string_is_not(value: object, literal: str) -> bool:
    return _as_text(value).lower() != literal.lower()


def _string_starts_with(value: object, literal: str) -> bool:
    return _as_text(value).lower().startswith(literal.lower())


def _string_ends_with(value: object, literal: str) -> bool:
    return _as_text(value).lower().endswith(literal.lower())


def _as_text(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


# number


def _number_comparison(compare: Callable[[float, float], bool]) -> _Comparison:
    def _apply(value: object, literal: str) -> bool:
        return compare(_as_number(value), _as_number(literal))

    return _apply


def _as_number(value: object) -> float:
    """Coerce to float; non-numeric and non-finite inputs become 0."""
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return 0.0
    else:
        return 0.0
    return number if math.isfinite(number) else 0.0


# date


def _date_comparison(compare: Callable[[float, float], bool]) -> _Comparison:
    def _apply(value: object, literal: str) -> bool:
        left = _as_timestamp(value)
        right = _as_timestamp(literal)
        if left is None or right is None:
            return False
        return compare(left, right)

    return _apply


def _as_timestamp(value: object) -> float | None:
    """Coerce to a UTC epoch timestamp; unparsable inputs become ``None``."""
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        moment = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value) if math.isfinite(value) else None
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            moment = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.timestamp()


# boolean


def _boolean_is(value: object, literal: str) -> bool:
    record_flag = _as_boolean(value)
    return record_flag is not None and record_flag == (literal.strip().lower() == "true")


def _boolean_is_not(value: object, literal: str) -> bool:
    record_flag = _as_boolean(value)
    return record_flag is not None and record_flag != (literal.strip().lower() == "true")


def _as_boolean(value: object) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str):
        normalized = value.strip().lower()
        if normalized in {"true", "1", "yes"}:
            return True
        if normalized in {"false", "0", "no"}:
            return False
    return None


# array


def _array_contains(value: object, literal: str) -> bool:
    return any(_element_matches(element, literal) for element in _as_sequence(value))


def _array_does_not_contain(value: object, literal: str) -> bool:
    return not _array_contains(value, literal)


def _element_matches(element: object, literal: str) -> bool:
    if isinstance(element, str):
        return element.lower() == literal.lower()
    return _as_text(element) == literal


def _as_sequence(value: object) -> list[object]:
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return []
        if text.startswith("["):
            try:
                parsed = json.loads(text)
            except (json.JSONDecodeError, RecursionError):
                return [value]
            if isinstance(parsed, list):
                return parsed
        return [value]
    if value is None:
        return []
    return [value]


# json


def _json_contains_key(value: object, literal: str) -> bool:
    return literal in _as_mapping(value)


def _json_does_not_contain_key(value: object, literal: str) -> bool:
    return literal not in _as_mapping(value)


def _as_mapping(value: object) -> Mapping[str, object]:
    if isinstance(value, Mapping):
        return value
    if isinstance(value, str) and value.strip():
        try:
            parsed = json.loads(value)
        except (json.JSONDecodeError, RecursionError):
            return {}
        if isinstance(parsed, dict):
            return parsed
    return {}


_COMPARISONS: dict[SemanticType, dict[str, _Comparison]] = {
    "string": {
        "contains": _string_contains,
        "is": _string_is,
        "is not": _string_is_not,
        "starts with": _string_starts_with,
        "ends with": _string_ends_with,
    },
    "number": {
        "equals": _number_comparison(lambda left, right: left == right),
        "greater than": _number_comparison(lambda left, right: left > right),
        "less than": _number_comparison(lambda left, right: left < right),
        "greater than or equal to": _number_comparison(lambda left, right: left >= right),
        "less than or equal to": _number_comparison(lambda left, right: left <= right),
    },
    "date": {
        "is": _date_comparison(lambda left, right: left == right),
        "is before": _date_comparison(lambda left, right: left < right),
        "is after": _date_comparison(lambda left, right: left > right),
        "is on or before": _date_comparison(lambda left, right: left <= right),
        "is on or after": _date_comparison(lambda left, right: left >= right),
    },
    "boolean": {"is": _boolean_is, "is not": _boolean_is_not},
    "array": {"contains": _array_contains, "does not contain": _array_does_not_contain},
    "json": {
        "contains key": _json_contains_key,
        "does not contain key": _json_does_not_contain_key,
    },
}
