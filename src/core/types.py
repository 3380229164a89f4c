"""Shared typed models.

This module defines immutable data models used by the schema registry,
record store, batch collector, and SDK layers to keep interfaces explicit.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Mapping

from core.constants import (
    CUSTOM_FIELDS_PREFIX,
    DEFAULT_ORDER_BY,
    DEFAULT_SEARCH_FIELDS,
)

SemanticType = Literal["string", "number", "date", "boolean", "array", "json"]
SEMANTIC_TYPES: tuple[SemanticType, ...] = (
    "string",
    "number",
    "date",
    "boolean",
    "array",
    "json",
)
FieldOrigin = Literal["base", "custom"]
FetchPolicy = Literal["strict", "best_effort"]
FETCH_POLICIES: tuple[FetchPolicy, ...] = ("strict", "best_effort")


@dataclass(frozen=True)
class FieldDescriptor:
    """Metadata describing one record attribute.

    Attributes:
        key: Addressable key, ``custom_fields.<name>`` for custom fields.
        semantic_type: Type driving legal operators and coercions.
        origin: Whether the field is built in or user defined.
        label: Human-readable field name.
    """

    key: str
    semantic_type: SemanticType
    origin: FieldOrigin
    label: str = ""


@dataclass(frozen=True)
class CustomFieldDefinition:
    """User-defined field stored in the schema store.

    Attributes:
        key: Custom field key without the ``custom_fields.`` prefix.
        label: Display label.
        field_type: Declared type name, e.g. ``number`` or ``email``.
        required: Whether records must provide a value.
        default_value: Default value applied by record editors.
        description: Free-text description.
    """

    key: str
    label: str
    field_type: str = ""
    required: bool = False
    default_value: str = ""
    description: str = ""


@dataclass(frozen=True)
class CustomFieldDeletion:
    """Outcome of deleting one custom field.

    Attributes:
        key: Deleted custom field key.
        removed_from_records: Records whose custom map contained the key.
    """

    key: str
    removed_from_records: int


@dataclass(frozen=True)
class Record:
    """Attribute bag for one stored record.

    Attributes:
        record_id: Stable record identifier.
        attributes: Built-in attribute values keyed by field key.
        custom_fields: Custom attribute values keyed by custom field key.
    """

    record_id: str
    attributes: Mapping[str, object] = field(default_factory=dict)
    custom_fields: Mapping[str, object] = field(default_factory=dict)

    def value_of(self, key: str) -> object | None:
        """Return the raw value addressed by a field key."""
        if key.startswith(CUSTOM_FIELDS_PREFIX):
            return self.custom_fields.get(key[len(CUSTOM_FIELDS_PREFIX) :])
        if key == "id":
            return self.record_id
        return self.attributes.get(key)


@dataclass(frozen=True)
class RecordQuery:
    """Base predicate pushed down to the record store.

    Attributes:
        equals: Exact field equality constraints.
        search_term: Case-insensitive substring matched against search fields.
        search_fields: Fields OR-ed together for the search term.
        order_by: Field used for stable page ordering.
        descending: Whether ordering is descending.
    """

    equals: Mapping[str, object] = field(default_factory=dict)
    search_term: str | None = None
    search_fields: tuple[str, ...] = DEFAULT_SEARCH_FIELDS
    order_by: str = DEFAULT_ORDER_BY
    descending: bool = True


@dataclass(frozen=True)
class PageRange:
    """One page request window.

    Attributes:
        batch_index: Zero-based batch position.
        offset: First row offset, inclusive.
        limit: Maximum rows requested.
    """

    batch_index: int
    offset: int
    limit: int

    @property
    def end(self) -> int:
        """Return the inclusive last row offset."""
        return self.offset + self.limit - 1


@dataclass(frozen=True)
class FetchResult:
    """Records collected from a paginated store.

    Attributes:
        records: Records concatenated in batch order.
        total_count: Row count reported by the store before paging.
        generation: Collector generation that produced this result.
        missing_pages: Pages skipped under best-effort policy.
    """

    records: tuple[Record, ...]
    total_count: int
    generation: int
    missing_pages: tuple[PageRange, ...] = ()

    @property
    def complete(self) -> bool:
        """Return whether every page was collected."""
        return not self.missing_pages
