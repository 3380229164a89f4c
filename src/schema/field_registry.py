"""Field schema registry.

This module merges built-in descriptors with custom field descriptors
loaded from the schema store. Built-in keys always win on collision and
a failed custom field load degrades to built-in fields only.
"""

from __future__ import annotations

from typing import Protocol

from core.constants import CUSTOM_FIELDS_PREFIX
from core.errors import CohortStoreError, SchemaResolutionError
from core.logging_config import get_logger
from core.types import CustomFieldDefinition, FieldDescriptor, FieldOrigin, SemanticType
from schema.base_fields import base_field_descriptors, format_label

_LOGGER = get_logger(__name__)

_DECLARED_TYPE_MAP: dict[str, SemanticType] = {
    "string": "string",
    "text": "string",
    "email": "string",
    "url": "string",
    "textarea": "string",
    "phone": "string",
    "select": "string",
    "number": "number",
    "currency": "number",
    "date": "date",
    "datetime": "date",
    "boolean": "boolean",
    "checkbox": "boolean",
    "array": "array",
    "multiselect": "array",
    "json": "json",
    "object": "json",
}
_DATE_HINTS = ("date", "time", "created", "updated")
_NUMBER_HINTS = ("count", "number", "amount", "price", "value")
_BOOLEAN_HINTS = ("is_", "has_", "active", "enabled")


class CustomFieldSource(Protocol):
    """Schema store surface needed by the registry."""

    def list_custom_fields(self) -> list[CustomFieldDefinition]:
        """Return every stored custom field definition."""
        ...


class FieldRegistry:
    """Merged lookup of built-in and custom field descriptors."""

    def __init__(self, custom_source: CustomFieldSource | None = None) -> None:
        """Create a registry.

        Args:
            custom_source: Optional schema store for custom fields.
        """
        self._custom_source = custom_source
        self._base = {descriptor.key: descriptor for descriptor in base_field_descriptors()}
        self._merged: dict[str, FieldDescriptor] | None = None

    def resolve(self, field_key: str) -> FieldDescriptor | None:
        """Resolve one field key, returning ``None`` when unknown.

        Args:
            field_key: Field key, ``custom_fields.<name>`` for custom fields.

        Returns:
            Matching descriptor or ``None``.
        """
        return self._descriptors().get(field_key)

    def require(self, field_key: str) -> FieldDescriptor:
        """Resolve one field key or raise.

        Args:
            field_key: Field key to resolve.

        Returns:
            Matching descriptor.

        Raises:
            SchemaResolutionError: If the key does not resolve.
        """
        descriptor = self.resolve(field_key)
        if descriptor is None:
            raise SchemaResolutionError(
                f"Unknown filter field '{field_key}'. "
                "Use 'cohort fields' to list built-in and custom field keys."
            )
        return descriptor

    def list_all(self) -> dict[FieldOrigin, tuple[FieldDescriptor, ...]]:
        """Return descriptors grouped by origin in registry order."""
        descriptors = tuple(self._descriptors().values())
        return {
            "base": tuple(item for item in descriptors if item.origin == "base"),
            "custom": tuple(item for item in descriptors if item.origin == "custom"),
        }

    def refresh(self) -> None:
        """Invalidate the cached merge and reload custom fields."""
        self._merged = None
        self._descriptors()

    def _descriptors(self) -> dict[str, FieldDescriptor]:
        if self._merged is None:
            self._merged = _merge_descriptors(self._base, self._load_custom_descriptors())
        return self._merged

    def _load_custom_descriptors(self) -> tuple[FieldDescriptor, ...]:
        if self._custom_source is None:
            return ()
        try:
            definitions = self._custom_source.list_custom_fields()
        except (CohortStoreError, OSError) as error:
            _LOGGER.warning("custom_fields_unavailable", error=str(error))
            return ()
        return tuple(custom_descriptor(definition) for definition in definitions)


def custom_descriptor(definition: CustomFieldDefinition) -> FieldDescriptor:
    """Build a registry descriptor for one custom field definition.

    Args:
        definition: Stored custom field definition.

    Returns:
        Descriptor keyed as ``custom_fields.<key>``.
    """
    declared = definition.field_type.strip().lower()
    semantic_type = _DECLARED_TYPE_MAP.get(declared) or infer_field_type(definition.key)
    return FieldDescriptor(
        key=f"{CUSTOM_FIELDS_PREFIX}{definition.key}",
        semantic_type=semantic_type,
        origin="custom",
        label=definition.label or format_label(definition.key),
    )


def infer_field_type(field_name: str) -> SemanticType:
    """Infer a semantic type from a field name.

    Fallback only: used when a custom field declares no recognized type.
    Checks run in a fixed order (date, number, boolean) so the result is
    deterministic for names matching several hints.

    Args:
        field_name: Custom field key, with or without prefix.

    Returns:
        Inferred semantic type, ``string`` when no hint matches.
    """
    name = field_name.removeprefix(CUSTOM_FIELDS_PREFIX).lower()
    if any(hint in name for hint in _DATE_HINTS):
        return "date"
    if any(hint in name for hint in _NUMBER_HINTS):
        return "number"
    if any(hint in name for hint in _BOOLEAN_HINTS):
        return "boolean"
    return "string"


def _merge_descriptors(
    base: dict[str, FieldDescriptor],
    custom: tuple[FieldDescriptor, ...],
) -> dict[str, FieldDescriptor]:
    merged = dict(base)
    for descriptor in custom:
        if descriptor.key in merged:
            _LOGGER.warning("custom_field_shadowed", field_key=descriptor.key)
            continue
        merged[descriptor.key] = descriptor
    return merged
