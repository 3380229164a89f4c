"""Unit tests for merged field descriptor lookup."""

from __future__ import annotations

import pytest

from core.errors import CohortStoreError, SchemaResolutionError
from core.types import CustomFieldDefinition
from schema.base_fields import base_field_descriptors, format_label
from schema.field_registry import FieldRegistry, custom_descriptor, infer_field_type


class _StaticSource:
    def __init__(self, definitions: list[CustomFieldDefinition]) -> None:
        self.definitions = definitions
        self.calls = 0

    def list_custom_fields(self) -> list[CustomFieldDefinition]:
        self.calls += 1
        return list(self.definitions)


class _BrokenSource:
    def list_custom_fields(self) -> list[CustomFieldDefinition]:
        raise CohortStoreError("schema store offline")


def test_base_fields_cover_every_semantic_type() -> None:
    """Built-in descriptors should include each semantic type."""
    by_key = {descriptor.key: descriptor for descriptor in base_field_descriptors()}

    assert by_key["status"].semantic_type == "string"
    assert by_key["lifetime_value"].semantic_type == "number"
    assert by_key["created_at"].semantic_type == "date"
    assert by_key["is_marketing"].semantic_type == "boolean"
    assert by_key["tags"].semantic_type == "array"
    assert by_key["notification_preferences"].semantic_type == "json"


def test_custom_fields_resolve_with_prefix() -> None:
    """Custom fields should resolve as custom_fields.<key> with declared types."""
    registry = FieldRegistry(_StaticSource([CustomFieldDefinition("tier", "Tier", "select")]))

    descriptor = registry.require("custom_fields.tier")

    assert descriptor.semantic_type == "string" and descriptor.origin == "custom"
    assert registry.resolve("tier") is None


def test_list_all_groups_descriptors_by_origin() -> None:
    """Grouped listing should separate built-in and custom descriptors."""
    registry = FieldRegistry(_StaticSource([CustomFieldDefinition("tier", "", "number")]))

    grouped = registry.list_all()

    assert [item.key for item in grouped["custom"]] == ["custom_fields.tier"]
    assert grouped["custom"][0].label == "Tier"
    assert all(item.origin == "base" for item in grouped["base"])


def test_registry_caches_until_refresh() -> None:
    """Custom fields should load once per refresh."""
    source = _StaticSource([])
    registry = FieldRegistry(source)
    registry.resolve("status")
    registry.resolve("email")
    source.definitions.append(CustomFieldDefinition("score_count", "Score"))

    missing_before = registry.resolve("custom_fields.score_count")
    registry.refresh()

    assert missing_before is None and source.calls == 2
    assert registry.require("custom_fields.score_count").semantic_type == "number"


def test_unavailable_custom_source_degrades_to_base_fields() -> None:
    """A failing schema store should leave built-in fields usable."""
    registry = FieldRegistry(_BrokenSource())

    grouped = registry.list_all()

    assert grouped["custom"] == () and len(grouped["base"]) == len(base_field_descriptors())


def test_require_raises_for_unknown_field() -> None:
    """Unknown keys should raise a schema resolution error."""
    with pytest.raises(SchemaResolutionError, match="cohort fields"):
        FieldRegistry().require("nickname")


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("renewal_date", "date"),
        ("updated_value", "date"),
        ("order_count", "number"),
        ("has_pet", "boolean"),
        ("custom_fields.is_vip", "boolean"),
        ("favourite_colour", "string"),
    ],
)
def test_infer_field_type_checks_hints_in_fixed_order(name: str, expected: str) -> None:
    """Name inference should check date, number, then boolean hints."""
    assert infer_field_type(name) == expected


def test_format_label_handles_special_keys() -> None:
    """Labels should title-case words and keep known acronyms."""
    assert format_label("last_purchase_date") == "Last Purchase Date"
    assert format_label("avatar_url") == "Avatar URL"


@pytest.mark.parametrize(
    ("declared", "expected"),
    [("currency", "number"), ("checkbox", "boolean"), ("multiselect", "array"), ("object", "json")],
)
def test_declared_types_map_onto_semantic_types(declared: str, expected: str) -> None:
    """Declared custom types should map before name inference applies."""
    descriptor = custom_descriptor(CustomFieldDefinition("created_label", "Label", declared))

    assert descriptor.semantic_type == expected
