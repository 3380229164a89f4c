"""Filter condition, group, and expression models.

This module defines the stored filter triple, its complete/incomplete
classification, AND groups, OR expressions, and the storable criteria
wrapper that carries search and profile-type context. It also validates
expressions against the field registry.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Protocol, Union

from core.errors import OperatorMismatchError, SchemaResolutionError
from core.types import FieldDescriptor
from filters.operators import is_operator_allowed, operators_for, requires_value

CriteriaShape = Literal["groups", "legacy"]
ViolationCode = Literal[
    "missing_field",
    "unknown_field",
    "missing_operator",
    "operator_mismatch",
    "missing_value",
]


class FieldResolver(Protocol):
    """Registry surface needed for validation and evaluation."""

    def resolve(self, field_key: str) -> FieldDescriptor | None:
        """Resolve one field key, returning ``None`` when unknown."""
        ...


@dataclass(frozen=True)
class CompleteCondition:
    """Condition with field, operator, and any required value present."""

    field: str
    operator: str
    value: str


@dataclass(frozen=True)
class IncompleteCondition:
    """Condition still missing a field, operator, or required value."""

    field: str
    operator: str
    value: str
    missing: tuple[str, ...]


ClassifiedCondition = Union[CompleteCondition, IncompleteCondition]


@dataclass(frozen=True)
class FilterCondition:
    """Stored ``(field, operator, value)`` triple as entered by a user."""

    field: str
    operator: str
    value: str = ""

    def classify(self) -> ClassifiedCondition:
        """Tag this condition as complete or incomplete."""
        field_key = self.field.strip()
        operator = self.operator.strip()
        missing: list[str] = []
        if not field_key:
            missing.append("field")
        if not operator:
            missing.append("operator")
        if operator and requires_value(operator) and not self.value.strip():
            missing.append("value")
        if missing:
            return IncompleteCondition(
                field=self.field, operator=self.operator, value=self.value, missing=tuple(missing)
            )
        return CompleteCondition(field=field_key, operator=operator, value=self.value)


@dataclass(frozen=True)
class FilterGroup:
    """AND-combination of conditions."""

    group_id: str
    conditions: tuple[FilterCondition, ...] = ()

    def complete_conditions(self) -> tuple[CompleteCondition, ...]:
        """Return only the complete conditions, in order."""
        classified = (condition.classify() for condition in self.conditions)
        return tuple(item for item in classified if isinstance(item, CompleteCondition))


@dataclass(frozen=True)
class FilterExpression:
    """OR-combination of groups."""

    groups: tuple[FilterGroup, ...] = ()

    def active_groups(self) -> tuple[FilterGroup, ...]:
        """Return groups holding at least one complete condition."""
        return tuple(group for group in self.groups if group.complete_conditions())

    def has_complete_conditions(self) -> bool:
        """Return whether any group holds a complete condition."""
        return bool(self.active_groups())

    def field_keys(self) -> frozenset[str]:
        """Return every field key referenced by any stored condition."""
        return frozenset(
            condition.field for group in self.groups for condition in group.conditions
        )


@dataclass(frozen=True)
class FilterCriteria:
    """Storable filter definition.

    Attributes:
        expression: Boolean filter expression.
        profile_type: Optional coarse profile bucket, AND-ed with the expression.
        search_term: Optional free-text term, AND-ed with the expression.
        shape: Stored layout, ``groups`` or flattened ``legacy`` conditions.
    """

    expression: FilterExpression
    profile_type: str | None = None
    search_term: str | None = None
    shape: CriteriaShape = "groups"


@dataclass(frozen=True)
class FilterViolation:
    """One validation failure for a stored condition."""

    group_id: str
    condition_index: int
    field: str
    operator: str
    code: ViolationCode
    message: str


def validate_expression(
    expression: FilterExpression, registry: FieldResolver
) -> list[FilterViolation]:
    """Validate every condition of an expression.

    Args:
        expression: Expression to check.
        registry: Field resolver for descriptor lookup.

    Returns:
        Violations in group/condition order, empty when valid.
    """
    violations: list[FilterViolation] = []
    for group in expression.groups:
        for index, condition in enumerate(group.conditions):
            violation = _validate_condition(group.group_id, index, condition, registry)
            if violation is not None:
                violations.append(violation)
    return violations


def ensure_valid(expression: FilterExpression, registry: FieldResolver) -> None:
    """Raise a typed error for the first invalid complete condition.

    Incomplete conditions are not-yet-specified rows and are skipped, as
    evaluation skips them; use ``validate_expression`` to list them.

    Args:
        expression: Expression to check.
        registry: Field resolver for descriptor lookup.

    Raises:
        SchemaResolutionError: If a complete condition names an unknown field.
        OperatorMismatchError: If an operator is not legal for the field type.
    """
    first = _first_complete_violation(expression, registry)
    if first is None:
        return
    if first.code == "unknown_field":
        raise SchemaResolutionError(first.message)
    raise OperatorMismatchError(first.message)


def _first_complete_violation(
    expression: FilterExpression, registry: FieldResolver
) -> FilterViolation | None:
    for group in expression.groups:
        for index, condition in enumerate(group.conditions):
            if not isinstance(condition.classify(), CompleteCondition):
                continue
            violation = _validate_condition(group.group_id, index, condition, registry)
            if violation is not None:
                return violation
    return None


def _validate_condition(
    group_id: str,
    index: int,
    condition: FilterCondition,
    registry: FieldResolver,
) -> FilterViolation | None:
    def violation(code: ViolationCode, message: str) -> FilterViolation:
        return FilterViolation(
            group_id=group_id,
            condition_index=index,
            field=condition.field,
            operator=condition.operator,
            code=code,
            message=f"Group '{group_id}' condition {index + 1}: {message}",
        )

    field_key = condition.field.strip()
    operator = condition.operator.strip()
    if not field_key:
        return violation("missing_field", "no field selected.")
    descriptor = registry.resolve(field_key)
    if descriptor is None:
        return violation("unknown_field", f"unknown field '{field_key}'.")
    if not operator:
        return violation("missing_operator", f"no operator selected for '{field_key}'.")
    if not is_operator_allowed(descriptor.semantic_type, operator):
        allowed = ", ".join(operators_for(descriptor.semantic_type))
        return violation(
            "operator_mismatch",
            f"operator '{operator}' is not valid for {descriptor.semantic_type} field "
            f"'{field_key}'. Allowed: {allowed}.",
        )
    if requires_value(operator) and not condition.value.strip():
        return violation("missing_value", f"operator '{operator}' on '{field_key}' needs a value.")
    return None
