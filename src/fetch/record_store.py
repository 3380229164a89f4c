"""Record store protocol and local JSONL implementation.

The record store is the paginated source the batch collector reads from.
It supports equality and search-term pushdown and caps rows per page.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Iterable, Protocol

from core.constants import (
    RECORDS_DIR_NAME,
    RECORDS_FILE_NAME,
    STORE_MAX_PAGE_SIZE,
    UPLOAD_TAG_FIELD,
)
from core.errors import CohortStoreError
from core.logging_config import get_logger
from core.types import Record, RecordQuery

_LOGGER = get_logger(__name__)
_ID_KEY = "id"
_CUSTOM_KEY = "custom_fields"


class RecordStore(Protocol):
    """Paginated record source used by the batch collector."""

    max_page_size: int

    async def count(self, query: RecordQuery) -> int:
        """Return the number of records matching a base query."""
        ...

    async def fetch_page(self, query: RecordQuery, offset: int, limit: int) -> list[Record]:
        """Return one ordered page of records matching a base query."""
        ...


def record_to_payload(record: Record) -> dict[str, object]:
    """Serialize a record into its JSONL payload."""
    payload: dict[str, object] = {_ID_KEY: record.record_id}
    payload.update(record.attributes)
    payload[_CUSTOM_KEY] = dict(record.custom_fields)
    return payload


def record_from_payload(payload: dict[str, Any]) -> Record:
    """Deserialize one JSONL payload into a record.

    Args:
        payload: Object with an ``id``, flat attributes, and optional
            ``custom_fields`` map.

    Returns:
        Parsed record.

    Raises:
        CohortStoreError: If the id or custom field map is invalid.
    """
    record_id = payload.get(_ID_KEY)
    if record_id is None or str(record_id).strip() == "":
        raise CohortStoreError("Record payload is missing a non-empty 'id'.")
    custom_fields = payload.get(_CUSTOM_KEY) or {}
    if not isinstance(custom_fields, dict):
        raise CohortStoreError(
            f"Record '{record_id}' has invalid 'custom_fields': expected a JSON object."
        )
    attributes = {
        str(key): value for key, value in payload.items() if key not in (_ID_KEY, _CUSTOM_KEY)
    }
    return Record(
        record_id=str(record_id),
        attributes=attributes,
        custom_fields={str(key): value for key, value in custom_fields.items()},
    )


def read_records_file(source_path: Path) -> list[Record]:
    """Read records from a JSON array file or a JSONL file.

    Raises:
        CohortStoreError: If the file is missing or malformed.
    """
    try:
        text = source_path.read_text(encoding="utf-8")
    except OSError as error:
        raise CohortStoreError(f"Failed to read records file {source_path}: {error}.") from error
    if text.lstrip().startswith("["):
        try:
            payloads = json.loads(text)
        except json.JSONDecodeError as error:
            raise CohortStoreError(
                f"Failed to parse JSON array at {source_path}: {error.msg}."
            ) from error
        if not all(isinstance(item, dict) for item in payloads):
            raise CohortStoreError(
                f"Invalid records file {source_path}: expected an array of JSON objects."
            )
        return [record_from_payload(item) for item in payloads]
    return [
        record_from_payload(payload) for payload in _parse_jsonl(text, source_path)
    ]


class LocalRecordStore:
    """JSONL-backed record store under the data root."""

    def __init__(self, data_root: Path, max_page_size: int = STORE_MAX_PAGE_SIZE) -> None:
        self._path = data_root / RECORDS_DIR_NAME / RECORDS_FILE_NAME
        self.max_page_size = max_page_size

    @property
    def path(self) -> Path:
        """Return the backing JSONL path."""
        return self._path

    async def count(self, query: RecordQuery) -> int:
        """Return the number of records matching a base query."""
        return len(self._select(query))

    async def fetch_page(self, query: RecordQuery, offset: int, limit: int) -> list[Record]:
        """Return one ordered page; ``limit`` is capped at ``max_page_size``.

        Args:
            query: Base query with equality, search, and ordering.
            offset: First row offset, inclusive.
            limit: Requested row count.

        Returns:
            Up to ``min(limit, max_page_size)`` records.
        """
        capped = max(0, min(limit, self.max_page_size))
        return self._select(query)[offset : offset + capped]

    def all_records(self) -> list[Record]:
        """Return every stored record in file order."""
        if not self._path.exists():
            return []
        try:
            text = self._path.read_text(encoding="utf-8")
        except OSError as error:
            raise CohortStoreError(f"Failed to read record store {self._path}: {error}.") from error
        return [record_from_payload(payload) for payload in _parse_jsonl(text, self._path)]

    def import_records(self, records: Iterable[Record]) -> int:
        """Insert or replace records by id.

        Args:
            records: Records to upsert.

        Returns:
            Number of records written.
        """
        stored = {record.record_id: record for record in self.all_records()}
        written = 0
        for record in records:
            stored[record.record_id] = record
            written += 1
        self._write(list(stored.values()))
        _LOGGER.info("records_imported", written=written, total=len(stored))
        return written

    def strip_custom_field(self, key: str) -> int:
        """Remove a custom key from every record's custom map.

        Returns:
            Number of records that held the key.
        """
        records = self.all_records()
        updated: list[Record] = []
        affected = 0
        for record in records:
            if key in record.custom_fields:
                affected += 1
                custom_fields = {
                    name: value for name, value in record.custom_fields.items() if name != key
                }
                record = Record(record.record_id, record.attributes, custom_fields)
            updated.append(record)
        if affected:
            self._write(updated)
        _LOGGER.info("custom_field_stripped", key=key, affected=affected)
        return affected

    def add_tag(self, record_ids: Iterable[str], tag: str) -> int:
        """Append a tag to the ``tags`` array of the given records.

        Returns:
            Number of records that received the tag.
        """
        wanted = set(record_ids)
        tagged = 0
        updated: list[Record] = []
        for record in self.all_records():
            if record.record_id in wanted:
                tags = _tag_list(record.value_of(UPLOAD_TAG_FIELD))
                if tag not in tags:
                    tags.append(tag)
                    tagged += 1
                    attributes = dict(record.attributes)
                    attributes[UPLOAD_TAG_FIELD] = tags
                    record = Record(record.record_id, attributes, record.custom_fields)
            updated.append(record)
        self._write(updated)
        _LOGGER.info("records_tagged", tag=tag, tagged=tagged, requested=len(wanted))
        return tagged

    def _select(self, query: RecordQuery) -> list[Record]:
        matched = [record for record in self.all_records() if _matches_query(record, query)]
        present = [record for record in matched if record.value_of(query.order_by) is not None]
        absent = [record for record in matched if record.value_of(query.order_by) is None]
        present.sort(
            key=lambda record: (_sort_key(record.value_of(query.order_by)), record.record_id),
            reverse=query.descending,
        )
        absent.sort(key=lambda record: record.record_id)
        return present + absent

    def _write(self, records: list[Record]) -> None:
        lines = [json.dumps(record_to_payload(record), sort_keys=True) for record in records]
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text("\n".join(lines) + ("\n" if lines else ""), encoding="utf-8")
        except OSError as error:
            raise CohortStoreError(
                f"Failed to write record store {self._path}: {error}."
            ) from error


def _matches_query(record: Record, query: RecordQuery) -> bool:
    for key, expected in query.equals.items():
        actual = record.value_of(key)
        if isinstance(expected, str) and isinstance(actual, str):
            if actual.lower() != expected.lower():
                return False
        elif actual != expected:
            return False
    term = (query.search_term or "").strip().lower()
    if not term:
        return True
    return any(
        term in str(record.value_of(field_key) or "").lower() for field_key in query.search_fields
    )


def _sort_key(value: object) -> tuple[int, object]:
    if isinstance(value, bool):
        return (0, int(value))
    if isinstance(value, (int, float)):
        return (0, value)
    return (1, str(value))


def _tag_list(value: object) -> list[object]:
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, str) and value.strip():
        return [value]
    return []


def _parse_jsonl(text: str, source_path: Path) -> list[dict[str, Any]]:
    payloads: list[dict[str, Any]] = []
    for line_number, line in enumerate(text.splitlines(), 1):
        if not line.strip():
            continue
        try:
            payload = json.loads(line)
        except json.JSONDecodeError as error:
            raise CohortStoreError(
                f"Invalid JSON at {source_path} line {line_number}: {error.msg}."
            ) from error
        if not isinstance(payload, dict):
            raise CohortStoreError(
                f"Invalid record at {source_path} line {line_number}: expected JSON object."
            )
        payloads.append(payload)
    return payloads
