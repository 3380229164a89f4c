"""Unit tests for segment materialization."""

from __future__ import annotations

from filters.expression import FilterCondition, FilterCriteria, FilterExpression, FilterGroup
from schema.field_registry import FieldRegistry
from segments.materializer import materialize, materialize_criteria, targets_deleted_records
from tests.record_helpers import make_record

REGISTRY = FieldRegistry()
RECORDS = [
    make_record("a", status="Active", country="US", is_marketing=True),
    make_record("b", status="Active", country="CA", is_marketing=False),
    make_record("c", status="Deleted", country="US", is_marketing=True),
    make_record("d", status="Inactive", country="US", is_marketing=False),
]


def _criteria(*conditions: FilterCondition, **context: object) -> FilterCriteria:
    expression = FilterExpression(groups=(FilterGroup(group_id="g1", conditions=conditions),))
    return FilterCriteria(expression=expression, **context)  # type: ignore[arg-type]


def test_materialize_returns_matches_in_input_order() -> None:
    """Matches should keep the collected order and report their size."""
    expression = _criteria(FilterCondition("country", "is", "US")).expression

    result = materialize(expression, RECORDS, REGISTRY)

    assert [record.record_id for record in result.matches] == ["a", "c", "d"]
    assert result.size == 3 and not result.unfiltered


def test_empty_expression_policy_is_explicit() -> None:
    """No complete conditions should match nothing or everything by policy."""
    expression = _criteria(FilterCondition("country", "is", "")).expression

    none = materialize(expression, RECORDS, REGISTRY)
    everything = materialize(expression, RECORDS, REGISTRY, empty_policy="match_all")

    assert none.size == 0 and none.unfiltered
    assert everything.size == len(RECORDS) and everything.unfiltered


def test_materialize_criteria_excludes_deleted_records_by_default() -> None:
    """Deleted records should be dropped unless targeted explicitly."""
    criteria = _criteria(FilterCondition("country", "is", "US"))

    result = materialize_criteria(criteria, RECORDS, REGISTRY)

    assert [record.record_id for record in result.matches] == ["a", "d"]


def test_materialize_criteria_keeps_deleted_records_when_targeted() -> None:
    """A status condition on Deleted should include deleted records."""
    criteria = _criteria(FilterCondition("status", "is", "deleted"))

    result = materialize_criteria(criteria, RECORDS, REGISTRY)

    assert targets_deleted_records(criteria)
    assert [record.record_id for record in result.matches] == ["c"]


def test_materialize_criteria_applies_profile_type_and_search() -> None:
    """Context predicates should be AND-ed with the expression."""
    criteria = _criteria(
        FilterCondition("country", "is", "US"), profile_type="marketing", search_term="a"
    )

    result = materialize_criteria(criteria, RECORDS, REGISTRY)

    assert [record.record_id for record in result.matches] == ["a"]


def test_deleted_profile_type_includes_deleted_records() -> None:
    """The deleted profile type should count as an explicit target."""
    criteria = _criteria(FilterCondition("country", "is", "US"), profile_type="deleted")

    result = materialize_criteria(criteria, RECORDS, REGISTRY, empty_policy="match_all")

    assert [record.record_id for record in result.matches] == ["c"]
