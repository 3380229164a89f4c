"""Segment materialization over an in-memory record universe.

Materialization applies the filter expression to every collected record.
Callers pick how an expression without complete conditions is treated.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Literal

from core.constants import DELETED_STATUS
from core.types import Record
from filters.context import matches_context
from filters.evaluator import evaluate_expression
from filters.expression import FieldResolver, FilterCriteria, FilterExpression

EmptyPolicy = Literal["match_none", "match_all"]
EMPTY_POLICIES: tuple[EmptyPolicy, ...] = ("match_none", "match_all")


@dataclass(frozen=True)
class Materialization:
    """Matched records for one expression.

    Attributes:
        matches: Matching records in input order.
        size: Number of matches.
        unfiltered: Whether the expression had no complete conditions.
    """

    matches: tuple[Record, ...]
    size: int
    unfiltered: bool = False


def materialize(
    expression: FilterExpression,
    records: Iterable[Record],
    registry: FieldResolver,
    empty_policy: EmptyPolicy = "match_none",
) -> Materialization:
    """Evaluate an expression against every record.

    Args:
        expression: Expression to apply.
        records: Full record universe.
        registry: Field resolver for condition fields.
        empty_policy: Outcome for an expression with no complete
            conditions: ``match_none`` returns nothing, ``match_all``
            returns every record.

    Returns:
        Matches and their count.
    """
    if not expression.has_complete_conditions():
        matches = tuple(records) if empty_policy == "match_all" else ()
        return Materialization(matches=matches, size=len(matches), unfiltered=True)
    matches = tuple(
        record for record in records if evaluate_expression(expression, record, registry)
    )
    return Materialization(matches=matches, size=len(matches))


def materialize_criteria(
    criteria: FilterCriteria,
    records: Iterable[Record],
    registry: FieldResolver,
    empty_policy: EmptyPolicy = "match_none",
) -> Materialization:
    """Materialize stored criteria, including context predicates.

    Records with status ``Deleted`` are excluded unless the criteria
    explicitly target deleted records.
    """
    include_deleted = targets_deleted_records(criteria)
    universe = [
        record
        for record in records
        if matches_context(record, criteria) and (include_deleted or not _is_deleted(record))
    ]
    return materialize(criteria.expression, universe, registry, empty_policy)


def targets_deleted_records(criteria: FilterCriteria) -> bool:
    """Return whether criteria ask for deleted records explicitly."""
    if (criteria.profile_type or "").strip().lower() == DELETED_STATUS:
        return True
    for group in criteria.expression.groups:
        for condition in group.complete_conditions():
            if (
                condition.field == "status"
                and condition.operator == "is"
                and condition.value.strip().lower() == DELETED_STATUS
            ):
                return True
    return False


def _is_deleted(record: Record) -> bool:
    status = record.value_of("status")
    return isinstance(status, str) and status.strip().lower() == DELETED_STATUS
