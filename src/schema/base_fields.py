"""Built-in record field descriptors.

This module lists the statically known profile fields and their semantic
types. Custom descriptors are merged on top by the field registry.
"""

from __future__ import annotations

from core.types import FieldDescriptor, SemanticType

_STRING_FIELDS = (
    "id",
    "first_name",
    "last_name",
    "email",
    "mobile",
    "mobile_number",
    "phone",
    "postcode",
    "suburb",
    "state",
    "timezone",
    "country",
    "location",
    "language_preferences",
    "device",
    "os",
    "source",
    "avatar_url",
    "status",
    "role",
    "preferred_category",
)
_NUMBER_FIELDS = ("total_purchases", "lifetime_value", "loyalty_points", "total_spent")
_DATE_FIELDS = ("created_at", "updated_at", "last_purchase_date", "last_login", "customer_since")
_BOOLEAN_FIELDS = (
    "is_suppressed",
    "is_transactional",
    "is_high_value",
    "is_subscribed",
    "is_marketing",
)
_ARRAY_FIELDS = ("tags", "teams")
_JSON_FIELDS = ("notification_preferences", "performance_metrics")
_SPECIAL_LABELS = {
    "id": "ID",
    "avatar_url": "Avatar URL",
    "os": "OS",
}


def base_field_descriptors() -> tuple[FieldDescriptor, ...]:
    """Return built-in descriptors in presentation order."""
    grouped: tuple[tuple[SemanticType, tuple[str, ...]], ...] = (
        ("string", _STRING_FIELDS),
        ("number", _NUMBER_FIELDS),
        ("date", _DATE_FIELDS),
        ("boolean", _BOOLEAN_FIELDS),
        ("array", _ARRAY_FIELDS),
        ("json", _JSON_FIELDS),
    )
    return tuple(
        FieldDescriptor(
            key=key, semantic_type=semantic_type, origin="base", label=format_label(key)
        )
        for semantic_type, keys in grouped
        for key in keys
    )


def format_label(key: str) -> str:
    """Build a display label from a snake_case field key."""
    if key in _SPECIAL_LABELS:
        return _SPECIAL_LABELS[key]
    return " ".join(word.capitalize() for word in key.split("_") if word)
