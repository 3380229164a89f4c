"""Segment and list entity models.

This module defines persisted segment, list, and membership entities plus
the draft and update requests accepted by the repositories. Payload helpers
convert entities to and from catalog JSON.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Literal

from core.errors import CohortCriteriaError, CohortStoreError
from filters.criteria_codec import deserialize_criteria, serialize_criteria
from filters.expression import FilterCriteria

SegmentType = Literal["Custom", "System"]
SEGMENT_TYPES: tuple[SegmentType, ...] = ("Custom", "System")
ListType = Literal["Manual", "System", "Upload", "Segment", "Dynamic", "Static"]
LIST_TYPES: tuple[ListType, ...] = ("Manual", "System", "Upload", "Segment", "Dynamic", "Static")
MembershipStatus = Literal["Active", "Removed"]


@dataclass(frozen=True)
class Segment:
    """Named, persisted filter expression.

    Attributes:
        segment_id: Stable segment identifier.
        name: Display name.
        description: Free-text description.
        criteria: Stored filter criteria.
        auto_update: Whether membership is re-evaluated on use.
        estimated_size: Last materialized member count.
        tags: Organizational tags.
        shared: Whether the segment is shared with other users.
        segment_type: ``Custom`` or protected ``System``.
        created_at: Creation time.
        updated_at: Last modification time.
        last_used_at: Last resolution time, if any.
        use_count: Number of resolutions.
    """

    segment_id: str
    name: str
    description: str
    criteria: FilterCriteria
    auto_update: bool
    estimated_size: int
    tags: tuple[str, ...]
    shared: bool
    segment_type: SegmentType
    created_at: datetime
    updated_at: datetime
    last_used_at: datetime | None = None
    use_count: int = 0


@dataclass(frozen=True)
class SegmentDraft:
    """Request to create a segment."""

    name: str
    criteria: FilterCriteria
    description: str = ""
    auto_update: bool = True
    estimated_size: int = 0
    tags: tuple[str, ...] = ()
    shared: bool = False
    segment_type: SegmentType = "Custom"


@dataclass(frozen=True)
class SegmentUpdate:
    """Partial segment update; ``None`` leaves a field unchanged."""

    name: str | None = None
    description: str | None = None
    criteria: FilterCriteria | None = None
    auto_update: bool | None = None
    estimated_size: int | None = None
    tags: tuple[str, ...] | None = None
    shared: bool | None = None


@dataclass(frozen=True)
class RecordList:
    """Named record collection with explicit membership.

    Attributes:
        list_id: Stable list identifier.
        name: Display name.
        description: Free-text description.
        list_type: Origin of the list, e.g. ``Manual`` or ``Upload``.
        source: Free-text source, e.g. an upload file name.
        criteria: Optional filter criteria the list was derived from.
        contact_count: Number of active memberships.
        tags: Organizational tags.
        created_at: Creation time.
        updated_at: Last modification time.
    """

    list_id: str
    name: str
    description: str
    list_type: ListType
    source: str
    criteria: FilterCriteria | None
    contact_count: int
    tags: tuple[str, ...]
    created_at: datetime
    updated_at: datetime


@dataclass(frozen=True)
class ListDraft:
    """Request to create a list."""

    name: str
    description: str = ""
    list_type: ListType = "Manual"
    source: str = ""
    criteria: FilterCriteria | None = None
    tags: tuple[str, ...] = ()


@dataclass(frozen=True)
class ListUpdate:
    """Partial list update; ``None`` leaves a field unchanged."""

    name: str | None = None
    description: str | None = None
    source: str | None = None
    criteria: FilterCriteria | None = None
    tags: tuple[str, ...] | None = None


@dataclass(frozen=True)
class ListMembership:
    """One record's membership row in a list.

    Removed rows are kept with ``status='Removed'`` and ``date_removed`` set.
    """

    list_id: str
    record_id: str
    status: MembershipStatus
    date_added: datetime
    date_removed: datetime | None = None


def utc_now() -> datetime:
    """Return the current UTC time."""
    return datetime.now(timezone.utc)


def segment_to_payload(segment: Segment) -> dict[str, object]:
    """Serialize a segment into a catalog entry."""
    return {
        "segment_id": segment.segment_id,
        "name": segment.name,
        "description": segment.description,
        "criteria": serialize_criteria(segment.criteria),
        "auto_update": segment.auto_update,
        "estimated_size": segment.estimated_size,
        "tags": list(segment.tags),
        "shared": segment.shared,
        "segment_type": segment.segment_type,
        "created_at": segment.created_at.isoformat(),
        "updated_at": segment.updated_at.isoformat(),
        "last_used_at": segment.last_used_at.isoformat() if segment.last_used_at else None,
        "use_count": segment.use_count,
    }


def segment_from_payload(payload: dict[str, Any]) -> Segment:
    """Deserialize a catalog entry into a segment.

    Raises:
        CohortStoreError: If required keys are missing or malformed.
    """
    try:
        segment_type = str(payload.get("segment_type") or "Custom")
        return Segment(
            segment_id=str(payload["segment_id"]),
            name=str(payload["name"]),
            description=str(payload.get("description") or ""),
            criteria=deserialize_criteria(payload.get("criteria") or {}),
            auto_update=bool(payload.get("auto_update", True)),
            estimated_size=int(payload.get("estimated_size") or 0),
            tags=tuple(str(tag) for tag in payload.get("tags") or ()),
            shared=bool(payload.get("shared", False)),
            segment_type="System" if segment_type == "System" else "Custom",
            created_at=datetime.fromisoformat(str(payload["created_at"])),
            updated_at=datetime.fromisoformat(str(payload["updated_at"])),
            last_used_at=_optional_datetime(payload.get("last_used_at")),
            use_count=int(payload.get("use_count") or 0),
        )
    except (KeyError, TypeError, ValueError, CohortCriteriaError) as error:
        raise CohortStoreError(
            f"Invalid segment catalog entry: {error}. Repair or remove the entry."
        ) from error


def list_to_payload(record_list: RecordList) -> dict[str, object]:
    """Serialize a list into a catalog entry."""
    return {
        "list_id": record_list.list_id,
        "name": record_list.name,
        "description": record_list.description,
        "list_type": record_list.list_type,
        "source": record_list.source,
        "criteria": (
            serialize_criteria(record_list.criteria) if record_list.criteria is not None else None
        ),
        "contact_count": record_list.contact_count,
        "tags": list(record_list.tags),
        "created_at": record_list.created_at.isoformat(),
        "updated_at": record_list.updated_at.isoformat(),
    }


def list_from_payload(payload: dict[str, Any]) -> RecordList:
    """Deserialize a catalog entry into a list.

    Raises:
        CohortStoreError: If required keys are missing or malformed.
    """
    try:
        list_type = str(payload.get("list_type") or "Manual")
        if list_type not in LIST_TYPES:
            raise ValueError(f"unknown list_type '{list_type}'")
        raw_criteria = payload.get("criteria")
        return RecordList(
            list_id=str(payload["list_id"]),
            name=str(payload["name"]),
            description=str(payload.get("description") or ""),
            list_type=list_type,  # type: ignore[arg-type]
            source=str(payload.get("source") or ""),
            criteria=deserialize_criteria(raw_criteria) if raw_criteria is not None else None,
            contact_count=int(payload.get("contact_count") or 0),
            tags=tuple(str(tag) for tag in payload.get("tags") or ()),
            created_at=datetime.fromisoformat(str(payload["created_at"])),
            updated_at=datetime.fromisoformat(str(payload["updated_at"])),
        )
    except (KeyError, TypeError, ValueError, CohortCriteriaError) as error:
        raise CohortStoreError(
            f"Invalid list catalog entry: {error}. Repair or remove the entry."
        ) from error


def membership_to_payload(membership: ListMembership) -> dict[str, object]:
    """Serialize a membership row."""
    return {
        "list_id": membership.list_id,
        "record_id": membership.record_id,
        "status": membership.status,
        "date_added": membership.date_added.isoformat(),
        "date_removed": membership.date_removed.isoformat() if membership.date_removed else None,
    }


def membership_from_payload(payload: dict[str, Any]) -> ListMembership:
    """Deserialize a membership row.

    Raises:
        CohortStoreError: If required keys are missing or malformed.
    """
    try:
        return ListMembership(
            list_id=str(payload["list_id"]),
            record_id=str(payload["record_id"]),
            status="Removed" if payload.get("status") == "Removed" else "Active",
            date_added=datetime.fromisoformat(str(payload["date_added"])),
            date_removed=_optional_datetime(payload.get("date_removed")),
        )
    except (KeyError, TypeError, ValueError, CohortCriteriaError) as error:
        raise CohortStoreError(
            f"Invalid list membership entry: {error}. Repair or remove the entry."
        ) from error


def _optional_datetime(value: object) -> datetime | None:
    if value is None or value == "":
        return None
    return datetime.fromisoformat(str(value))
