"""JSON I/O helpers for catalogs, schema, and membership files."""

from __future__ import annotations

import json
from pathlib import Path

from core.errors import CohortStoreError


def read_json_file(payload_path: Path, default_value: object | None = None) -> object:
    """Read JSON payload from disk with optional default when missing."""
    if default_value is not None and not payload_path.exists():
        return default_value
    try:
        return json.loads(payload_path.read_text(encoding="utf-8"))
    except FileNotFoundError as error:
        raise CohortStoreError(
            f"Missing required catalog file at {payload_path}. Recreate it or reset the data root."
        ) from error
    except json.JSONDecodeError as error:
        raise CohortStoreError(f"Failed to parse JSON at {payload_path}: {error.msg}.") from error
    except OSError as error:
        raise CohortStoreError(f"Failed to read catalog file {payload_path}: {error}.") from error


def write_json_file(payload_path: Path, payload: object) -> None:
    """Write one JSON payload to disk with traceable errors."""
    try:
        payload_path.parent.mkdir(parents=True, exist_ok=True)
        payload_path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    except OSError as error:
        raise CohortStoreError(f"Failed to write catalog file {payload_path}: {error}.") from error


def read_object_list(payload_path: Path, list_key: str) -> list[dict[str, object]]:
    """Read a ``{list_key: [...]}`` catalog, defaulting to an empty list.

    Args:
        payload_path: Catalog JSON path.
        list_key: Top-level key holding the entries.

    Returns:
        Catalog entries as dictionaries.

    Raises:
        CohortStoreError: If the catalog shape is invalid.
    """
    payload = read_json_file(payload_path, default_value={list_key: []})
    if not isinstance(payload, dict) or not isinstance(payload.get(list_key), list):
        raise CohortStoreError(
            f"Invalid catalog format at {payload_path}: expected '{list_key}' list."
        )
    entries = payload[list_key]
    for entry in entries:
        if not isinstance(entry, dict):
            raise CohortStoreError(
                f"Invalid catalog entry at {payload_path}: expected JSON objects in '{list_key}'."
            )
    return entries


def write_object_list(payload_path: Path, list_key: str, entries: list[dict[str, object]]) -> None:
    """Write a ``{list_key: [...]}`` catalog."""
    write_json_file(payload_path, {list_key: entries})
