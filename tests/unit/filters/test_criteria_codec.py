"""Unit tests for stored criteria encoding."""

from __future__ import annotations

import json

import pytest

from core.errors import CohortCriteriaError
from filters.criteria_codec import LEGACY_GROUP_ID, deserialize_criteria, serialize_criteria
from filters.expression import FilterCondition, FilterCriteria, FilterExpression, FilterGroup


def _grouped_criteria() -> FilterCriteria:
    return FilterCriteria(
        expression=FilterExpression(
            groups=(
                FilterGroup(
                    group_id="g1",
                    conditions=(
                        FilterCondition("status", "is", "Active"),
                        FilterCondition("email", "is not empty", ""),
                    ),
                ),
                FilterGroup(group_id="g2", conditions=(FilterCondition("country", "is", "US"),)),
            )
        ),
        profile_type="marketing",
        search_term="ada",
    )


def test_grouped_criteria_round_trip_through_json() -> None:
    """Structured criteria should survive serialize, JSON, and deserialize."""
    criteria = _grouped_criteria()

    restored = deserialize_criteria(json.loads(json.dumps(serialize_criteria(criteria))))

    assert restored == criteria


def test_grouped_payload_keeps_flattened_conditions_mirror() -> None:
    """Structured payloads should also carry the flattened legacy list."""
    payload = serialize_criteria(_grouped_criteria())

    assert [item["field"] for item in payload["conditions"]] == ["status", "email", "country"]
    assert [group["id"] for group in payload["filterGroups"]] == ["g1", "g2"]
    assert payload["profileType"] == "marketing" and payload["searchTerm"] == "ada"


def test_legacy_payload_decodes_into_one_group_and_round_trips() -> None:
    """A conditions-only payload should become one AND group and keep its shape."""
    payload = {
        "conditions": [{"field": "tags", "operator": "contains", "value": "spring"}],
        "profileType": "all",
        "searchTerm": "",
    }

    criteria = deserialize_criteria(payload)

    assert criteria.shape == "legacy"
    assert criteria.expression.groups[0].group_id == LEGACY_GROUP_ID
    assert serialize_criteria(criteria) == payload
    assert deserialize_criteria(serialize_criteria(criteria)) == criteria


def test_empty_legacy_payload_round_trips() -> None:
    """An empty conditions list should decode to zero groups."""
    criteria = deserialize_criteria({"conditions": []})

    assert criteria.expression.groups == () and serialize_criteria(criteria) == {"conditions": []}


def test_legacy_shape_normalizes_single_group_on_decode() -> None:
    """Legacy criteria should decode into the canonical legacy group."""
    condition = FilterCondition("tags", "contains", "spring")
    renamed = FilterCriteria(
        expression=FilterExpression(groups=(FilterGroup("uploads", (condition,)),)),
        shape="legacy",
    )
    blank = FilterCriteria(
        expression=FilterExpression(groups=(FilterGroup(LEGACY_GROUP_ID),)), shape="legacy"
    )

    decoded = deserialize_criteria(serialize_criteria(renamed))

    assert decoded.expression.groups == (FilterGroup(LEGACY_GROUP_ID, (condition,)),)
    assert deserialize_criteria(serialize_criteria(blank)).expression.groups == ()


def test_missing_group_ids_are_generated() -> None:
    """Groups without ids should receive positional ids."""
    criteria = deserialize_criteria(
        {"filterGroups": [{"conditions": []}, {"id": "", "conditions": []}]}
    )

    assert [group.group_id for group in criteria.expression.groups] == ["group-1", "group-2"]


def test_non_string_values_are_coerced_to_text() -> None:
    """Booleans, numbers, and nulls should be stored as condition text."""
    criteria = deserialize_criteria(
        {
            "conditions": [
                {"field": "is_marketing", "operator": "is", "value": True},
                {"field": "total_spent", "operator": "greater than", "value": 25},
                {"field": "email", "operator": "is empty", "value": None},
            ]
        }
    )

    values = [condition.value for condition in criteria.expression.groups[0].conditions]
    assert values == ["true", "25", ""]


@pytest.mark.parametrize(
    "payload",
    [
        [],
        {"conditions": "status is Active"},
        {"filterGroups": [{"conditions": ["status"]}]},
        {"conditions": [], "profileType": 3},
    ],
)
def test_invalid_payloads_raise_criteria_error(payload: object) -> None:
    """Malformed payloads should raise a criteria error."""
    with pytest.raises(CohortCriteriaError):
        deserialize_criteria(payload)
