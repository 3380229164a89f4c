"""Storable filter criteria encoding.

This module converts ``FilterCriteria`` to and from the persisted JSON
shape. Structured criteria store ``filterGroups`` plus a flattened
``conditions`` mirror; legacy criteria store flattened ``conditions`` only
and decode into one AND group.
"""

from __future__ import annotations

from typing import Any, Mapping

from core.errors import CohortCriteriaError
from filters.expression import FilterCondition, FilterCriteria, FilterExpression, FilterGroup

LEGACY_GROUP_ID = "legacy"


def serialize_criteria(criteria: FilterCriteria) -> dict[str, object]:
    """Encode criteria into the storable JSON shape.

    The legacy shape stores only the flattened conditions, so it keeps a
    single group. Decoding names that group ``LEGACY_GROUP_ID`` and drops
    it when it holds no conditions; build legacy criteria that way for an
    exact round trip. Legacy criteria with several groups are written with
    ``filterGroups`` and decode as the grouped shape.

    Args:
        criteria: Criteria to encode.

    Returns:
        JSON-safe dictionary.
    """
    groups = criteria.expression.groups
    payload: dict[str, object] = {
        "conditions": [
            _condition_payload(condition) for group in groups for condition in group.conditions
        ]
    }
    if criteria.shape == "groups" or len(groups) > 1:
        payload["filterGroups"] = [
            {
                "id": group.group_id,
                "conditions": [_condition_payload(condition) for condition in group.conditions],
            }
            for group in groups
        ]
    if criteria.profile_type is not None:
        payload["profileType"] = criteria.profile_type
    if criteria.search_term is not None:
        payload["searchTerm"] = criteria.search_term
    return payload


def deserialize_criteria(payload: object) -> FilterCriteria:
    """Decode a stored criteria payload.

    Args:
        payload: Parsed JSON object.

    Returns:
        Typed criteria.

    Raises:
        CohortCriteriaError: If the payload shape is invalid.
    """
    if not isinstance(payload, Mapping):
        raise CohortCriteriaError(
            f"Invalid filter criteria: expected object, got {type(payload).__name__}."
        )
    raw_groups = payload.get("filterGroups")
    if raw_groups is not None:
        groups = tuple(
            _group_from_payload(item, index)
            for index, item in enumerate(_expect_list(raw_groups, "filterGroups"))
        )
        shape = "groups"
    else:
        raw_conditions = _expect_list(payload.get("conditions", []), "conditions")
        conditions = tuple(
            _condition_from_payload(item, f"conditions[{index}]")
            for index, item in enumerate(raw_conditions)
        )
        groups = (
            (FilterGroup(group_id=LEGACY_GROUP_ID, conditions=conditions),) if conditions else ()
        )
        shape = "legacy" if "conditions" in payload else "groups"
    return FilterCriteria(
        expression=FilterExpression(groups=groups),
        profile_type=_optional_text(payload.get("profileType"), "profileType"),
        search_term=_optional_text(payload.get("searchTerm"), "searchTerm"),
        shape=shape,
    )


def _condition_payload(condition: FilterCondition) -> dict[str, str]:
    return {"field": condition.field, "operator": condition.operator, "value": condition.value}


def _group_from_payload(payload: object, index: int) -> FilterGroup:
    if not isinstance(payload, Mapping):
        raise CohortCriteriaError(f"Invalid filterGroups[{index}]: expected object.")
    raw_id = payload.get("id")
    group_id = str(raw_id) if raw_id not in (None, "") else f"group-{index + 1}"
    raw_conditions = _expect_list(
        payload.get("conditions", []), f"filterGroups[{index}].conditions"
    )
    conditions = tuple(
        _condition_from_payload(item, f"filterGroups[{index}].conditions[{position}]")
        for position, item in enumerate(raw_conditions)
    )
    return FilterGroup(group_id=group_id, conditions=conditions)


def _condition_from_payload(payload: object, context: str) -> FilterCondition:
    if not isinstance(payload, Mapping):
        raise CohortCriteriaError(f"Invalid {context}: expected object with field/operator/value.")
    return FilterCondition(
        field=_text(payload.get("field")),
        operator=_text(payload.get("operator")),
        value=_text(payload.get("value")),
    )


def _expect_list(value: object, context: str) -> list[Any]:
    if isinstance(value, list):
        return value
    raise CohortCriteriaError(f"Invalid {context}: expected list, got {type(value).__name__}.")


def _optional_text(value: object, context: str) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    raise CohortCriteriaError(f"Invalid {context}: expected string, got {type(value).__name__}.")


def _text(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
