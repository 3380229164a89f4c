"""Segmentation service for SDK and CLI workflows.

This module wires the field registry, batch collector, materializer, and
segment/list repositories into one client. Every read-side operation
collects the record universe through the collector and evaluates in memory.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Iterable

from core.config import CohortConfig
from core.constants import DEFAULT_PROFILE_TYPE, UPLOAD_TAG_FIELD
from core.definition_file import SegmentDefinition, load_definition
from core.errors import CohortCriteriaError, CohortStoreError
from core.logging_config import get_logger
from core.types import (
    CustomFieldDefinition,
    CustomFieldDeletion,
    FetchPolicy,
    FetchResult,
    FieldDescriptor,
    FieldOrigin,
    PageRange,
    Record,
    RecordQuery,
)
from fetch.batch_collector import BatchCollector, run_fetch
from fetch.record_store import LocalRecordStore
from filters.context import context_query
from filters.criteria_codec import LEGACY_GROUP_ID
from filters.expression import (
    FilterCondition,
    FilterCriteria,
    FilterExpression,
    FilterGroup,
    FilterViolation,
    ensure_valid,
    validate_expression,
)
from schema.custom_field_store import CustomFieldStore
from schema.field_registry import FieldRegistry
from segments.materializer import Materialization, materialize_criteria
from store.list_repository import ListRepository
from store.segment_repository import SegmentRepository
from store.segment_types import (
    LIST_TYPES,
    ListDraft,
    ListUpdate,
    RecordList,
    Segment,
    SegmentDraft,
    SegmentType,
    SegmentUpdate,
)

_LOGGER = get_logger(__name__)
_TAG_PATTERN = re.compile(r"[^a-z0-9]")


@dataclass(frozen=True)
class PreviewResult:
    """Materialized criteria over the collected universe.

    Attributes:
        materialization: Matching records and their count.
        total_records: Records collected before filtering.
        missing_pages: Pages skipped under best-effort policy.
    """

    materialization: Materialization
    total_records: int
    missing_pages: tuple[PageRange, ...] = ()


@dataclass(frozen=True)
class SegmentResolution:
    """Resolved segment membership.

    Attributes:
        segment: Segment after its use was recorded.
        members: Live members; empty for snapshot segments.
        size: Live member count, or the cached size for snapshot segments.
        live: Whether the expression was re-evaluated.
        missing_pages: Pages skipped under best-effort policy.
    """

    segment: Segment
    members: tuple[Record, ...]
    size: int
    live: bool
    missing_pages: tuple[PageRange, ...] = ()


class CohortClient:
    """Primary SDK entry point for segmentation workflows."""

    def __init__(self, config: CohortConfig | None = None) -> None:
        """Create SDK client.

        Args:
            config: Optional runtime configuration.
        """
        self._config = config or CohortConfig.from_env()
        data_root = self._config.data_root
        self._records = LocalRecordStore(data_root)
        self._custom_fields = CustomFieldStore(data_root, self._records)
        self._registry = FieldRegistry(self._custom_fields)
        self._collector = BatchCollector(
            self._records,
            page_size=self._config.page_size,
            retries=self._config.fetch_retries,
            retry_base_delay=self._config.retry_base_delay,
            concurrency=self._config.fetch_concurrency,
        )
        self._segments = SegmentRepository(data_root)
        self._lists = ListRepository(data_root)

    @property
    def config(self) -> CohortConfig:
        """Return the client configuration."""
        return self._config

    @property
    def registry(self) -> FieldRegistry:
        """Return the field registry."""
        return self._registry

    @property
    def records(self) -> LocalRecordStore:
        """Return the backing record store."""
        return self._records

    def with_data_root(self, data_root: str) -> "CohortClient":
        """Clone the client with a different local data root."""
        resolved_root = Path(data_root).expanduser().resolve()
        return CohortClient(replace(self._config, data_root=resolved_root))

    def import_records(self, records: Iterable[Record]) -> int:
        """Upsert records into the local record store."""
        return self._records.import_records(records)

    # fields

    def fields(self) -> dict[FieldOrigin, tuple[FieldDescriptor, ...]]:
        """Return field descriptors grouped by origin."""
        return self._registry.list_all()

    def refresh_fields(self) -> dict[FieldOrigin, tuple[FieldDescriptor, ...]]:
        """Reload custom fields and return the merged descriptors."""
        self._registry.refresh()
        return self._registry.list_all()

    def list_custom_fields(self) -> list[CustomFieldDefinition]:
        """Return stored custom field definitions."""
        return self._custom_fields.list_custom_fields()

    def create_custom_field(self, definition: CustomFieldDefinition) -> CustomFieldDefinition:
        """Create a custom field and refresh the registry."""
        created = self._custom_fields.create_custom_field(definition)
        self._registry.refresh()
        return created

    def update_custom_field(
        self, old_key: str, definition: CustomFieldDefinition
    ) -> CustomFieldDefinition:
        """Update a custom field and refresh the registry.

        A key rename is not propagated to records or saved criteria; the
        segments and lists still using the old key are logged.
        """
        updated = self._custom_fields.update_custom_field(old_key, definition)
        if definition.key != old_key:
            references = self.criteria_references(f"custom_fields.{old_key}")
            if references:
                _LOGGER.warning(
                    "custom_field_rename_not_propagated",
                    old_key=old_key,
                    key=definition.key,
                    references=list(references),
                )
        self._registry.refresh()
        return updated

    def delete_custom_field(self, key: str) -> CustomFieldDeletion:
        """Delete a custom field, strip it from records, and refresh the registry."""
        deletion = self._custom_fields.delete_custom_field(key)
        self._registry.refresh()
        return deletion

    def criteria_references(self, field_key: str) -> tuple[str, ...]:
        """Return ids of segments and lists whose criteria use a field key."""
        segment_ids = [
            segment.segment_id
            for segment in self._segments.list()
            if field_key in segment.criteria.expression.field_keys()
        ]
        list_ids = [
            record_list.list_id
            for record_list in self._lists.list()
            if record_list.criteria is not None
            and field_key in record_list.criteria.expression.field_keys()
        ]
        return tuple(segment_ids + list_ids)

    # criteria

    def validate(self, criteria: FilterCriteria) -> list[FilterViolation]:
        """Return validation violations for criteria."""
        return validate_expression(criteria.expression, self._registry)

    def collect(
        self, query: RecordQuery | None = None, policy: FetchPolicy | None = None
    ) -> FetchResult:
        """Collect the record universe for a base query.

        Raises:
            BatchFetchError: If the count fails, or a page fails under strict policy.
        """
        return run_fetch(
            self._collector, query or RecordQuery(), policy or self._config.fetch_policy
        )

    def preview(
        self,
        criteria: FilterCriteria,
        policy: FetchPolicy | None = None,
        push_down: bool = False,
    ) -> PreviewResult:
        """Materialize criteria without persisting anything.

        Criteria without complete conditions are treated as unfiltered and
        return every record that passes the context predicates.

        Args:
            criteria: Criteria to apply.
            policy: Fetch failure policy; config default when omitted.
            push_down: Pre-filter profile type and search term in the store.

        Returns:
            Preview over the collected universe.

        Raises:
            CohortCriteriaError: If criteria reference unknown fields or
                illegal operators.
        """
        ensure_valid(criteria.expression, self._registry)
        query = context_query(criteria) if push_down else RecordQuery()
        fetched = self.collect(query, policy)
        materialization = materialize_criteria(
            criteria, fetched.records, self._registry, empty_policy="match_all"
        )
        return PreviewResult(
            materialization=materialization,
            total_records=len(fetched.records),
            missing_pages=fetched.missing_pages,
        )

    # segments

    def create_segment(
        self,
        name: str,
        criteria: FilterCriteria,
        description: str = "",
        auto_update: bool = True,
        tags: tuple[str, ...] = (),
        shared: bool = False,
        segment_type: SegmentType = "Custom",
        policy: FetchPolicy | None = None,
    ) -> Segment:
        """Validate, materialize, and persist a segment.

        Args:
            name: Segment name.
            criteria: Filter criteria; must hold a complete condition.
            description: Free-text description.
            auto_update: Whether membership is re-evaluated on use.
            tags: Organizational tags.
            shared: Sharing flag.
            segment_type: ``Custom`` or protected ``System``.
            policy: Fetch failure policy; config default when omitted.

        Returns:
            Stored segment with its ``estimated_size``.

        Raises:
            CohortCriteriaError: If criteria are invalid or empty.
            BatchFetchError: If collection fails under strict policy.
        """
        self._ensure_segment_criteria(criteria)
        estimated_size = self._materialize(criteria, policy).size
        return self._segments.create(
            SegmentDraft(
                name=name,
                criteria=criteria,
                description=description,
                auto_update=auto_update,
                estimated_size=estimated_size,
                tags=tags,
                shared=shared,
                segment_type=segment_type,
            )
        )

    def update_segment(
        self, segment_id: str, update: SegmentUpdate, policy: FetchPolicy | None = None
    ) -> Segment:
        """Update a segment; new criteria are validated and re-materialized."""
        if update.criteria is not None:
            self._ensure_segment_criteria(update.criteria)
            size = self._materialize(update.criteria, policy).size
            update = replace(update, estimated_size=size)
        return self._segments.update(segment_id, update)

    def get_segment(self, segment_id: str) -> Segment:
        """Return one segment."""
        return self._segments.get(segment_id)

    def list_segments(self) -> list[Segment]:
        """Return segments newest first."""
        return self._segments.list()

    def delete_segment(self, segment_id: str) -> None:
        """Delete a non-system segment."""
        self._segments.delete(segment_id)

    def resolve_segment(
        self, segment_id: str, policy: FetchPolicy | None = None
    ) -> SegmentResolution:
        """Resolve a segment's members and record the use.

        Auto-update segments re-run their criteria. Snapshot segments
        return the cached ``estimated_size`` and no member list.

        Raises:
            EntityNotFoundError: If the segment does not exist.
            BatchFetchError: If collection fails under strict policy.
        """
        segment = self._segments.get(segment_id)
        if not segment.auto_update:
            used = self._segments.record_use(segment_id)
            return SegmentResolution(
                segment=used, members=(), size=segment.estimated_size, live=False
            )
        fetched = self.collect(RecordQuery(), policy)
        materialization = materialize_criteria(segment.criteria, fetched.records, self._registry)
        used = self._segments.record_use(segment_id)
        _LOGGER.info(
            "segment_resolved",
            segment_id=segment_id,
            size=materialization.size,
            missing_pages=len(fetched.missing_pages),
        )
        return SegmentResolution(
            segment=used,
            members=materialization.matches,
            size=materialization.size,
            live=True,
            missing_pages=fetched.missing_pages,
        )

    def refresh_counts(self, policy: FetchPolicy | None = None) -> list[Segment]:
        """Recompute ``estimated_size`` for every auto-update segment.

        Returns:
            Updated segments.
        """
        segments = [segment for segment in self._segments.list() if segment.auto_update]
        if not segments:
            return []
        fetched = self.collect(RecordQuery(), policy)
        refreshed: list[Segment] = []
        for segment in segments:
            size = materialize_criteria(segment.criteria, fetched.records, self._registry).size
            refreshed.append(
                self._segments.update(segment.segment_id, SegmentUpdate(estimated_size=size))
            )
        _LOGGER.info("segment_counts_refreshed", segments=len(refreshed))
        return refreshed

    def create_segment_from_upload(
        self, name: str, description: str, record_ids: Iterable[str]
    ) -> Segment:
        """Tag uploaded records and save a segment matching the tag.

        The tag is the lower-cased name with every non-alphanumeric
        character replaced by ``-``.

        Records are tagged before the segment is stored, so a failed tag
        write leaves no segment behind.

        Returns:
            Stored segment sized by the number of uploaded ids.

        Raises:
            CohortStoreError: If the name yields an empty tag or tagging fails.
        """
        ids = list(dict.fromkeys(record_ids))
        tag = upload_tag(name)
        if not tag.strip("-"):
            raise CohortStoreError(
                f"Upload name '{name}' produces an empty tag. Use a name with letters or digits."
            )
        criteria = FilterCriteria(
            expression=FilterExpression(
                groups=(
                    FilterGroup(
                        group_id=LEGACY_GROUP_ID,
                        conditions=(FilterCondition(UPLOAD_TAG_FIELD, "contains", tag),),
                    ),
                )
            ),
            profile_type=DEFAULT_PROFILE_TYPE,
            search_term="",
            shape="legacy",
        )
        if ids:
            self._records.add_tag(ids, tag)
        return self._segments.create(
            SegmentDraft(
                name=name,
                criteria=criteria,
                description=description,
                estimated_size=len(ids),
                tags=(tag,),
            )
        )

    def create_from_definition(self, definition_path: str) -> Segment | RecordList:
        """Create a segment or list from a YAML definition file."""
        definition = load_definition(definition_path)
        return self.apply_definition(definition)

    def apply_definition(self, definition: SegmentDefinition) -> Segment | RecordList:
        """Create a segment or list from a parsed definition."""
        if definition.kind == "segment" and definition.criteria is not None:
            return self.create_segment(
                name=definition.name,
                criteria=definition.criteria,
                description=definition.description,
                auto_update=definition.auto_update,
                tags=definition.tags,
                shared=definition.shared,
            )
        return self.create_list(
            name=definition.name,
            description=definition.description,
            list_type=definition.list_type,
            source=definition.source,
            criteria=definition.criteria,
            tags=definition.tags,
        )

    # lists

    def create_list(
        self,
        name: str,
        description: str = "",
        list_type: str = "Manual",
        source: str = "",
        criteria: FilterCriteria | None = None,
        tags: tuple[str, ...] = (),
        record_ids: Iterable[str] = (),
        policy: FetchPolicy | None = None,
    ) -> RecordList:
        """Create a list seeded from criteria and explicit record ids.

        Raises:
            CohortStoreError: If ``list_type`` is unknown.
            CohortCriteriaError: If criteria are invalid.
        """
        if list_type not in LIST_TYPES:
            raise CohortStoreError(
                f"Unknown list type '{list_type}'. Use one of: {', '.join(LIST_TYPES)}."
            )
        member_ids = list(record_ids)
        if criteria is not None:
            ensure_valid(criteria.expression, self._registry)
            if criteria.expression.has_complete_conditions():
                member_ids.extend(
                    record.record_id for record in self._materialize(criteria, policy).matches
                )
        record_list = self._lists.create(
            ListDraft(
                name=name,
                description=description,
                list_type=list_type,  # type: ignore[arg-type]
                source=source,
                criteria=criteria,
                tags=tags,
            )
        )
        if member_ids:
            record_list = self._lists.add_members(record_list.list_id, member_ids)
        return record_list

    def get_list(self, list_id: str) -> RecordList:
        """Return one list."""
        return self._lists.get(list_id)

    def update_list(self, list_id: str, update: ListUpdate) -> RecordList:
        """Apply a partial list update; new criteria are validated.

        Criteria changes do not re-seed members; use ``add_list_members``.

        Raises:
            EntityNotFoundError: If the list does not exist.
            CohortCriteriaError: If new criteria are invalid.
        """
        if update.criteria is not None:
            ensure_valid(update.criteria.expression, self._registry)
        return self._lists.update(list_id, update)

    def list_lists(self) -> list[RecordList]:
        """Return lists newest first."""
        return self._lists.list()

    def add_list_members(self, list_id: str, record_ids: Iterable[str]) -> RecordList:
        """Add members to a list."""
        return self._lists.add_members(list_id, record_ids)

    def remove_list_members(self, list_id: str, record_ids: Iterable[str]) -> RecordList:
        """Soft-remove members from a list."""
        return self._lists.remove_members(list_id, record_ids)

    def list_members(self, list_id: str) -> list[str]:
        """Return active member record ids of a list."""
        return self._lists.member_ids(list_id)

    def lists_for_record(self, record_id: str) -> list[RecordList]:
        """Return lists a record actively belongs to."""
        return self._lists.lists_for_record(record_id)

    def delete_list(self, list_id: str) -> None:
        """Delete a non-system list and its memberships."""
        self._lists.delete(list_id)

    def _ensure_segment_criteria(self, criteria: FilterCriteria) -> None:
        ensure_valid(criteria.expression, self._registry)
        if not criteria.expression.has_complete_conditions():
            raise CohortCriteriaError(
                "Segment criteria need at least one complete condition. "
                "Add a field, operator, and value before saving."
            )

    def _materialize(
        self, criteria: FilterCriteria, policy: FetchPolicy | None
    ) -> Materialization:
        fetched = self.collect(RecordQuery(), policy)
        if fetched.missing_pages:
            _LOGGER.warning(
                "materialized_partial_universe",
                missing_pages=[page.batch_index for page in fetched.missing_pages],
            )
        return materialize_criteria(criteria, fetched.records, self._registry)


def upload_tag(name: str) -> str:
    """Normalize an upload name into a record tag."""
    return _TAG_PATTERN.sub("-", name.lower())
