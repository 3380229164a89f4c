"""Segment catalog repository.

Segments persist as one JSON catalog under the data root. System segments
are protected from deletion.
"""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from uuid import uuid4

from core.constants import PROTECTED_ENTITY_TYPE, SEGMENTS_CATALOG_FILE_NAME, SEGMENTS_DIR_NAME
from core.errors import CohortStoreError, EntityNotFoundError, RepositoryConflictError
from core.logging_config import get_logger
from store.json_io import read_object_list, write_object_list
from store.segment_types import (
    Segment,
    SegmentDraft,
    SegmentUpdate,
    segment_from_payload,
    segment_to_payload,
    utc_now,
)

_LOGGER = get_logger(__name__)
_SEGMENTS_KEY = "segments"


class SegmentRepository:
    """JSON-backed segment repository."""

    def __init__(self, data_root: Path) -> None:
        """Create a repository rooted at ``<data_root>/segments``.

        Args:
            data_root: Local data root directory.
        """
        self._path = data_root / SEGMENTS_DIR_NAME / SEGMENTS_CATALOG_FILE_NAME

    def create(self, draft: SegmentDraft) -> Segment:
        """Persist a new segment.

        Args:
            draft: Segment fields.

        Returns:
            Stored segment with generated id and timestamps.

        Raises:
            CohortStoreError: If the name is empty.
        """
        name = draft.name.strip()
        if not name:
            raise CohortStoreError("Segment name must not be empty.")
        now = utc_now()
        segment = Segment(
            segment_id=f"seg-{uuid4().hex[:12]}",
            name=name,
            description=draft.description,
            criteria=draft.criteria,
            auto_update=draft.auto_update,
            estimated_size=draft.estimated_size,
            tags=draft.tags,
            shared=draft.shared,
            segment_type=draft.segment_type,
            created_at=now,
            updated_at=now,
        )
        segments = self._load()
        segments.append(segment)
        self._save(segments)
        _LOGGER.info(
            "segment_created",
            segment_id=segment.segment_id,
            name=segment.name,
            estimated_size=segment.estimated_size,
        )
        return segment

    def get(self, segment_id: str) -> Segment:
        """Return one segment.

        Raises:
            EntityNotFoundError: If the id does not exist.
        """
        for segment in self._load():
            if segment.segment_id == segment_id:
                return segment
        raise EntityNotFoundError(
            f"Segment '{segment_id}' not found. Use 'cohort segments' to list segment ids."
        )

    def list(self) -> list[Segment]:
        """Return every segment, newest first."""
        return sorted(
            reversed(self._load()), key=lambda segment: segment.created_at, reverse=True
        )

    def update(self, segment_id: str, update: SegmentUpdate) -> Segment:
        """Apply a partial update.

        Args:
            segment_id: Segment to change.
            update: Fields to replace; ``None`` fields are kept.

        Returns:
            Updated segment.

        Raises:
            EntityNotFoundError: If the id does not exist.
        """
        changes = {
            name: value
            for name, value in (
                ("name", update.name),
                ("description", update.description),
                ("criteria", update.criteria),
                ("auto_update", update.auto_update),
                ("estimated_size", update.estimated_size),
                ("tags", update.tags),
                ("shared", update.shared),
            )
            if value is not None
        }
        segment = self._replace(segment_id, updated_at=utc_now(), **changes)
        _LOGGER.info("segment_updated", segment_id=segment_id, fields=sorted(changes))
        return segment

    def record_use(self, segment_id: str) -> Segment:
        """Increment the use counter and stamp ``last_used_at``."""
        current = self.get(segment_id)
        return self._replace(
            segment_id, last_used_at=utc_now(), use_count=current.use_count + 1
        )

    def delete(self, segment_id: str) -> None:
        """Delete a segment.

        Raises:
            EntityNotFoundError: If the id does not exist.
            RepositoryConflictError: If the segment is a protected system segment.
        """
        segment = self.get(segment_id)
        if segment.segment_type == PROTECTED_ENTITY_TYPE:
            raise RepositoryConflictError(
                f"Segment '{segment.name}' is a {PROTECTED_ENTITY_TYPE} segment and cannot be "
                "deleted."
            )
        self._save([item for item in self._load() if item.segment_id != segment_id])
        _LOGGER.info("segment_deleted", segment_id=segment_id, name=segment.name)

    def _replace(self, segment_id: str, **changes: object) -> Segment:
        segments = self._load()
        for position, segment in enumerate(segments):
            if segment.segment_id == segment_id:
                updated = replace(segment, **changes)
                segments[position] = updated
                self._save(segments)
                return updated
        raise EntityNotFoundError(
            f"Segment '{segment_id}' not found. Use 'cohort segments' to list segment ids."
        )

    def _load(self) -> list[Segment]:
        return [segment_from_payload(item) for item in read_object_list(self._path, _SEGMENTS_KEY)]

    def _save(self, segments: list[Segment]) -> None:
        write_object_list(
            self._path, _SEGMENTS_KEY, [segment_to_payload(segment) for segment in segments]
        )
