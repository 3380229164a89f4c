"""Per-type operator catalogs.

Operator names repeat across types with different meanings, e.g. ``is``
for strings, dates, and booleans. Lookups always pair the semantic type
with the operator name.
"""

from __future__ import annotations

from core.types import SemanticType

IS_EMPTY = "is empty"
IS_NOT_EMPTY = "is not empty"
EMPTY_TEST_OPERATORS = (IS_EMPTY, IS_NOT_EMPTY)

OPERATORS_BY_TYPE: dict[SemanticType, tuple[str, ...]] = {
    "string": ("contains", "is", "is not", "starts with", "ends with", IS_EMPTY, IS_NOT_EMPTY),
    "number": (
        "equals",
        "greater than",
        "less than",
        "greater than or equal to",
        "less than or equal to",
        IS_EMPTY,
        IS_NOT_EMPTY,
    ),
    "date": (
        "is",
        "is before",
        "is after",
        "is on or before",
        "is on or after",
        IS_EMPTY,
        IS_NOT_EMPTY,
    ),
    "boolean": ("is", "is not"),
    "array": ("contains", "does not contain", IS_EMPTY, IS_NOT_EMPTY),
    "json": ("contains key", "does not contain key", IS_EMPTY, IS_NOT_EMPTY),
}


def operators_for(semantic_type: SemanticType) -> tuple[str, ...]:
    """Return legal operators for a semantic type in presentation order.

    Args:
        semantic_type: Field semantic type.

    Returns:
        Ordered operator names, empty for unknown types.
    """
    return OPERATORS_BY_TYPE.get(semantic_type, ())


def is_operator_allowed(semantic_type: SemanticType, operator: str) -> bool:
    """Return whether ``operator`` belongs to the type's catalog."""
    return operator in operators_for(semantic_type)


def requires_value(operator: str) -> bool:
    """Return whether a condition with ``operator`` needs a literal value."""
    return operator not in EMPTY_TEST_OPERATORS
