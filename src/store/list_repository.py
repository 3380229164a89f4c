"""List catalog and membership repository.

Lists and their membership rows persist as JSON under the data root.
Membership removal is soft, and ``contact_count`` is recomputed from the
active rows after every membership change.
"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from typing import Iterable
from uuid import uuid4

from core.constants import (
    LISTS_CATALOG_FILE_NAME,
    LISTS_DIR_NAME,
    MEMBERSHIPS_FILE_NAME,
    PROTECTED_ENTITY_TYPE,
)
from core.errors import CohortStoreError, EntityNotFoundError, RepositoryConflictError
from core.logging_config import get_logger
from store.json_io import read_object_list, write_object_list
from store.segment_types import (
    ListDraft,
    ListMembership,
    ListUpdate,
    RecordList,
    list_from_payload,
    list_to_payload,
    membership_from_payload,
    membership_to_payload,
    utc_now,
)

_LOGGER = get_logger(__name__)
_LISTS_KEY = "lists"
_MEMBERSHIPS_KEY = "memberships"


class ListRepository:
    """JSON-backed list repository with soft-removed memberships."""

    def __init__(self, data_root: Path) -> None:
        """Create a repository rooted at ``<data_root>/lists``.

        Args:
            data_root: Local data root directory.
        """
        lists_root = data_root / LISTS_DIR_NAME
        self._lists_path = lists_root / LISTS_CATALOG_FILE_NAME
        self._memberships_path = lists_root / MEMBERSHIPS_FILE_NAME

    def create(self, draft: ListDraft) -> RecordList:
        """Persist a new empty list.

        Raises:
            CohortStoreError: If the name is empty.
        """
        name = draft.name.strip()
        if not name:
            raise CohortStoreError("List name must not be empty.")
        now = utc_now()
        record_list = RecordList(
            list_id=f"list-{uuid4().hex[:12]}",
            name=name,
            description=draft.description,
            list_type=draft.list_type,
            source=draft.source,
            criteria=draft.criteria,
            contact_count=0,
            tags=draft.tags,
            created_at=now,
            updated_at=now,
        )
        lists = self._load_lists()
        lists.append(record_list)
        self._save_lists(lists)
        _LOGGER.info(
            "list_created",
            list_id=record_list.list_id,
            name=record_list.name,
            list_type=record_list.list_type,
        )
        return record_list

    def get(self, list_id: str) -> RecordList:
        """Return one list.

        Raises:
            EntityNotFoundError: If the id does not exist.
        """
        for record_list in self._load_lists():
            if record_list.list_id == list_id:
                return record_list
        raise EntityNotFoundError(
            f"List '{list_id}' not found. Use 'cohort lists' to list list ids."
        )

    def list(self) -> list[RecordList]:
        """Return every list, newest first."""
        return sorted(
            reversed(self._load_lists()), key=lambda item: item.created_at, reverse=True
        )

    def update(self, list_id: str, update: ListUpdate) -> RecordList:
        """Apply a partial update.

        Raises:
            EntityNotFoundError: If the id does not exist.
        """
        changes = {
            name: value
            for name, value in (
                ("name", update.name),
                ("description", update.description),
                ("source", update.source),
                ("criteria", update.criteria),
                ("tags", update.tags),
            )
            if value is not None
        }
        record_list = self._replace(list_id, updated_at=utc_now(), **changes)
        _LOGGER.info("list_updated", list_id=list_id, fields=sorted(changes))
        return record_list

    def delete(self, list_id: str) -> None:
        """Delete a list and all of its membership rows.

        Raises:
            EntityNotFoundError: If the id does not exist.
            RepositoryConflictError: If the list is a protected system list.
        """
        record_list = self.get(list_id)
        if record_list.list_type == PROTECTED_ENTITY_TYPE:
            raise RepositoryConflictError(
                f"List '{record_list.name}' is a {PROTECTED_ENTITY_TYPE} list and cannot be "
                "deleted."
            )
        memberships = [item for item in self._load_memberships() if item.list_id != list_id]
        self._save_memberships(memberships)
        self._save_lists([item for item in self._load_lists() if item.list_id != list_id])
        _LOGGER.info("list_deleted", list_id=list_id, name=record_list.name)

    def add_members(self, list_id: str, record_ids: Iterable[str]) -> RecordList:
        """Add records to a list.

        Existing rows are re-activated instead of duplicated.

        Args:
            list_id: Target list.
            record_ids: Records to add.

        Returns:
            List with its recomputed ``contact_count``.

        Raises:
            EntityNotFoundError: If the list does not exist.
        """
        self.get(list_id)
        memberships = self._load_memberships()
        positions = {
            item.record_id: position
            for position, item in enumerate(memberships)
            if item.list_id == list_id
        }
        now = utc_now()
        added = 0
        for record_id in dict.fromkeys(record_ids):
            position = positions.get(record_id)
            if position is None:
                memberships.append(
                    ListMembership(
                        list_id=list_id, record_id=record_id, status="Active", date_added=now
                    )
                )
                positions[record_id] = len(memberships) - 1
                added += 1
            elif memberships[position].status != "Active":
                memberships[position] = replace(
                    memberships[position], status="Active", date_added=now, date_removed=None
                )
                added += 1
        self._save_memberships(memberships)
        record_list = self._refresh_count(list_id, memberships)
        _LOGGER.info(
            "list_members_added",
            list_id=list_id,
            added=added,
            contact_count=record_list.contact_count,
        )
        return record_list

    def remove_members(self, list_id: str, record_ids: Iterable[str]) -> RecordList:
        """Soft-remove records from a list.

        Rows are kept with status ``Removed`` and a ``date_removed`` stamp.

        Returns:
            List with its recomputed ``contact_count``.

        Raises:
            EntityNotFoundError: If the list does not exist.
        """
        self.get(list_id)
        wanted = set(record_ids)
        memberships = self._load_memberships()
        now = utc_now()
        removed = 0
        for position, item in enumerate(memberships):
            if item.list_id == list_id and item.record_id in wanted and item.status == "Active":
                memberships[position] = replace(item, status="Removed", date_removed=now)
                removed += 1
        self._save_memberships(memberships)
        record_list = self._refresh_count(list_id, memberships)
        _LOGGER.info(
            "list_members_removed",
            list_id=list_id,
            removed=removed,
            contact_count=record_list.contact_count,
        )
        return record_list

    def memberships(self, list_id: str, include_removed: bool = False) -> list[ListMembership]:
        """Return membership rows of one list in insertion order."""
        self.get(list_id)
        return [
            item
            for item in self._load_memberships()
            if item.list_id == list_id and (include_removed or item.status == "Active")
        ]

    def member_ids(self, list_id: str) -> list[str]:
        """Return record ids with an active membership."""
        return [item.record_id for item in self.memberships(list_id)]

    def lists_for_record(self, record_id: str) -> list[RecordList]:
        """Return lists where a record has an active membership."""
        list_ids = {
            item.list_id
            for item in self._load_memberships()
            if item.record_id == record_id and item.status == "Active"
        }
        return [record_list for record_list in self.list() if record_list.list_id in list_ids]

    def _refresh_count(self, list_id: str, memberships: list[ListMembership]) -> RecordList:
        contact_count = sum(
            1 for item in memberships if item.list_id == list_id and item.status == "Active"
        )
        return self._replace(list_id, contact_count=contact_count, updated_at=utc_now())

    def _replace(self, list_id: str, **changes: object) -> RecordList:
        lists = self._load_lists()
        for position, record_list in enumerate(lists):
            if record_list.list_id == list_id:
                updated = replace(record_list, **changes)
                lists[position] = updated
                self._save_lists(lists)
                return updated
        raise EntityNotFoundError(
            f"List '{list_id}' not found. Use 'cohort lists' to list list ids."
        )

    def _load_lists(self) -> list[RecordList]:
        return [list_from_payload(item) for item in read_object_list(self._lists_path, _LISTS_KEY)]

    def _save_lists(self, lists: list[RecordList]) -> None:
        write_object_list(self._lists_path, _LISTS_KEY, [list_to_payload(item) for item in lists])

    def _load_memberships(self) -> list[ListMembership]:
        return [
            membership_from_payload(item)
            for item in read_object_list(self._memberships_path, _MEMBERSHIPS_KEY)
        ]

    def _save_memberships(self, memberships: list[ListMembership]) -> None:
        write_object_list(
            self._memberships_path,
            _MEMBERSHIPS_KEY,
            [membership_to_payload(item) for item in memberships],
        )
