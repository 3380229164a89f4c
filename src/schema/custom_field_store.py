"""Custom field definition store.

This module persists user-defined field definitions as a JSON catalog.
Deleting a field strips its key from every stored record as well.
"""

from __future__ import annotations

from dataclasses import asdict
from pathlib import Path
from typing import Protocol

from core.constants import (
    CUSTOM_FIELDS_FILE_NAME,
    RESERVED_CUSTOM_KEY_PREFIX,
    SCHEMA_DIR_NAME,
)
from core.errors import CohortStoreError, EntityNotFoundError, RepositoryConflictError
from core.logging_config import get_logger
from core.types import CustomFieldDefinition, CustomFieldDeletion
from store.json_io import read_object_list, write_object_list

_LOGGER = get_logger(__name__)
_FIELDS_KEY = "fields"


class CustomFieldRecordWriter(Protocol):
    """Record store surface used when a custom field is removed."""

    def strip_custom_field(self, key: str) -> int:
        """Remove one custom key from every record and return affected count."""
        ...


class CustomFieldStore:
    """JSON-backed custom field registry."""

    def __init__(self, data_root: Path, record_writer: CustomFieldRecordWriter) -> None:
        """Create a custom field store.

        Args:
            data_root: Local data root directory.
            record_writer: Record store used to strip deleted keys.
        """
        self._path = data_root / SCHEMA_DIR_NAME / CUSTOM_FIELDS_FILE_NAME
        self._record_writer = record_writer

    def list_custom_fields(self) -> list[CustomFieldDefinition]:
        """Return stored custom field definitions in creation order.

        Raises:
            CohortStoreError: If the definitions file is invalid.
        """
        return [_definition_from_payload(item, self._path) for item in self._read()]

    def create_custom_field(self, definition: CustomFieldDefinition) -> CustomFieldDefinition:
        """Persist a new custom field definition.

        Args:
            definition: Definition to add.

        Returns:
            Stored definition.

        Raises:
            RepositoryConflictError: If the key exists or is reserved.
        """
        _validate_key(definition.key)
        entries = self._read()
        if any(item.get("key") == definition.key for item in entries):
            raise RepositoryConflictError(
                f"Custom field '{definition.key}' already exists. "
                "Use update-field to change its definition."
            )
        entries.append(asdict(definition))
        write_object_list(self._path, _FIELDS_KEY, entries)
        _LOGGER.info("custom_field_created", key=definition.key, field_type=definition.field_type)
        return definition

    def update_custom_field(
        self, old_key: str, definition: CustomFieldDefinition
    ) -> CustomFieldDefinition:
        """Replace a custom field definition, optionally renaming its key.

        A key rename only changes the definition. Record values and saved
        filter criteria keep the old key.

        Args:
            old_key: Key of the definition to replace.
            definition: New definition.

        Returns:
            Stored definition.

        Raises:
            EntityNotFoundError: If ``old_key`` does not exist.
            RepositoryConflictError: If the new key collides with another field.
        """
        _validate_key(definition.key)
        entries = self._read()
        position = _find_position(entries, old_key, self._path)
        if definition.key != old_key and any(item.get("key") == definition.key for item in entries):
            raise RepositoryConflictError(
                f"Cannot rename custom field '{old_key}' to '{definition.key}': key already exists."
            )
        entries[position] = asdict(definition)
        write_object_list(self._path, _FIELDS_KEY, entries)
        _LOGGER.info("custom_field_updated", old_key=old_key, key=definition.key)
        return definition

    def delete_custom_field(self, key: str) -> CustomFieldDeletion:
        """Delete a definition and strip its key from every record.

        Args:
            key: Custom field key to delete.

        Returns:
            Deletion summary with the number of affected records.

        Raises:
            EntityNotFoundError: If the key does not exist.
        """
        entries = self._read()
        position = _find_position(entries, key, self._path)
        removed_from_records = self._record_writer.strip_custom_field(key)
        del entries[position]
        write_object_list(self._path, _FIELDS_KEY, entries)
        _LOGGER.info(
            "custom_field_deleted", key=key, removed_from_records=removed_from_records
        )
        return CustomFieldDeletion(key=key, removed_from_records=removed_from_records)

    def _read(self) -> list[dict[str, object]]:
        return read_object_list(self._path, _FIELDS_KEY)


def _validate_key(key: str) -> None:
    if not key.strip():
        raise CohortStoreError("Custom field key must not be empty.")
    if key.startswith(RESERVED_CUSTOM_KEY_PREFIX):
        raise RepositoryConflictError(
            f"Custom field key '{key}' is reserved: keys starting with "
            f"'{RESERVED_CUSTOM_KEY_PREFIX}' hold internal metadata."
        )


def _find_position(entries: list[dict[str, object]], key: str, path: Path) -> int:
    for position, item in enumerate(entries):
        if item.get("key") == key:
            return position
    raise EntityNotFoundError(f"Custom field '{key}' not found in {path}.")


def _definition_from_payload(payload: dict[str, object], path: Path) -> CustomFieldDefinition:
    key = payload.get("key")
    if not isinstance(key, str) or not key:
        raise CohortStoreError(f"Invalid custom field entry at {path}: missing 'key'.")
    return CustomFieldDefinition(
        key=key,
        label=str(payload.get("label") or ""),
        field_type=str(payload.get("field_type") or ""),
        required=bool(payload.get("required", False)),
        default_value=str(payload.get("default_value") or ""),
        description=str(payload.get("description") or ""),
    )
