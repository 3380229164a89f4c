"""Unit tests for the segmentation SDK client."""

from __future__ import annotations

import pytest

from core.config import CohortConfig
from core.errors import (
    CohortCriteriaError,
    CohortStoreError,
    OperatorMismatchError,
    SchemaResolutionError,
)
from core.types import CustomFieldDefinition
from fetch.record_store import read_records_file
from filters.expression import FilterCondition, FilterCriteria, FilterExpression, FilterGroup
from segments.segment_service import CohortClient, upload_tag
from store.segment_types import ListUpdate, RecordList, Segment
from tests.fixture_paths import fixture_path


def _client(tmp_path) -> CohortClient:
    client = CohortClient(CohortConfig(data_root=tmp_path, page_size=2, retry_base_delay=0))
    client.import_records(read_records_file(fixture_path("records/contacts.jsonl")))
    return client


def _criteria(*conditions: FilterCondition, **context: object) -> FilterCriteria:
    expression = FilterExpression(groups=(FilterGroup(group_id="g1", conditions=conditions),))
    return FilterCriteria(expression=expression, **context)  # type: ignore[arg-type]


def test_preview_without_conditions_returns_all_non_deleted(tmp_path) -> None:
    """Preview should treat an empty expression as unfiltered."""
    client = _client(tmp_path)

    preview = client.preview(_criteria())

    assert preview.total_records == 6
    assert preview.materialization.unfiltered and preview.materialization.size == 5


def test_preview_with_push_down_matches_in_memory_result(tmp_path) -> None:
    """Pushing the profile type down should not change the matches."""
    client = _client(tmp_path)
    criteria = _criteria(FilterCondition("country", "is", "US"), profile_type="marketing")

    pushed = client.preview(criteria, push_down=True)
    in_memory = client.preview(criteria)

    assert pushed.materialization.matches == in_memory.materialization.matches
    assert pushed.total_records < in_memory.total_records


def test_preview_with_push_down_keeps_search_in_memory(tmp_path) -> None:
    """A search term matching only custom values should survive push-down."""
    client = _client(tmp_path)
    criteria = _criteria(search_term="gold")

    pushed = client.preview(criteria, push_down=True)
    in_memory = client.preview(criteria)

    pushed_ids = sorted(record.record_id for record in pushed.materialization.matches)
    assert pushed_ids == ["c-001", "c-006"]
    assert pushed.materialization.matches == in_memory.materialization.matches


def test_blank_condition_rows_are_ignored_by_preview_and_save(tmp_path) -> None:
    """Incomplete rows should not block previewing or saving a segment."""
    client = _client(tmp_path)
    criteria = _criteria(
        FilterCondition("country", "is", "US"), FilterCondition("status", "is", "")
    )

    preview = client.preview(criteria)
    segment = client.create_segment("US", criteria)

    assert preview.materialization.size == 3 and segment.estimated_size == 3
    assert [violation.code for violation in client.validate(criteria)] == ["missing_value"]


def test_create_segment_stores_estimated_size(tmp_path) -> None:
    """Saved segments should carry their materialized size."""
    client = _client(tmp_path)

    segment = client.create_segment("VIPs", _criteria(FilterCondition("tags", "contains", "VIP")))

    assert segment.estimated_size == 2 and client.list_segments() == [segment]


def test_create_segment_rejects_empty_and_invalid_criteria(tmp_path) -> None:
    """Saving should reject empty expressions and typed validation failures."""
    client = _client(tmp_path)

    with pytest.raises(CohortCriteriaError, match="complete condition"):
        client.create_segment("empty", _criteria())
    with pytest.raises(SchemaResolutionError):
        client.create_segment("bad", _criteria(FilterCondition("nickname", "is", "x")))
    with pytest.raises(OperatorMismatchError):
        client.create_segment("bad", _criteria(FilterCondition("tags", "starts with", "v")))


def test_resolve_live_segment_returns_members_and_records_use(tmp_path) -> None:
    """Auto-update segments should re-run and count the use."""
    client = _client(tmp_path)
    segment = client.create_segment(
        "High value", _criteria(FilterCondition("lifetime_value", "greater than", "100"))
    )

    resolution = client.resolve_segment(segment.segment_id)

    assert resolution.live and resolution.size == 2
    assert {record.record_id for record in resolution.members} == {"c-001", "c-006"}
    assert resolution.segment.use_count == 1


def test_resolve_snapshot_segment_uses_cached_size(tmp_path) -> None:
    """Snapshot segments should return the stored size without members."""
    client = _client(tmp_path)
    segment = client.create_segment(
        "US", _criteria(FilterCondition("country", "is", "US")), auto_update=False
    )
    client.import_records(read_records_file(fixture_path("records/contacts.jsonl")))

    resolution = client.resolve_segment(segment.segment_id)

    assert not resolution.live and resolution.members == ()
    assert resolution.size == segment.estimated_size == 3


def test_refresh_counts_recomputes_auto_update_segments(tmp_path) -> None:
    """Refreshing should pick up newly imported records."""
    client = _client(tmp_path)
    segment = client.create_segment("Canada", _criteria(FilterCondition("country", "is", "CA")))
    client.import_records(read_records_file(fixture_path("records/canada.json")))

    refreshed = client.refresh_counts()

    assert segment.estimated_size == 1
    assert [item.estimated_size for item in refreshed] == [3]


def test_upload_segment_tags_records_and_matches_them(tmp_path) -> None:
    """Upload segments should tag records and resolve through the tag."""
    client = _client(tmp_path)

    segment = client.create_segment_from_upload("Spring List!", "From CSV", ["c-002", "c-005"])
    resolution = client.resolve_segment(segment.segment_id)

    assert upload_tag("Spring List!") == "spring-list-"
    assert segment.criteria.shape == "legacy" and segment.criteria.profile_type == "all"
    assert segment.estimated_size == 2 and segment.tags == ("spring-list-",)
    assert {record.record_id for record in resolution.members} == {"c-002", "c-005"}


def test_upload_segment_is_not_saved_when_tagging_fails(
    tmp_path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """A failed tag write should leave no upload segment behind."""
    client = _client(tmp_path)

    def _fail_tagging(record_ids: object, tag: str) -> int:
        raise CohortStoreError(f"Failed to write records while tagging {tag}.")

    monkeypatch.setattr(client.records, "add_tag", _fail_tagging)

    with pytest.raises(CohortStoreError, match="tagging spring"):
        client.create_segment_from_upload("Spring", "", ["c-002"])
    assert client.list_segments() == []


def test_custom_field_lifecycle_through_client(tmp_path) -> None:
    """Custom fields should be filterable and strip records on delete."""
    client = _client(tmp_path)
    client.create_custom_field(CustomFieldDefinition("tier", "Tier", "select"))
    segment = client.create_segment(
        "Gold", _criteria(FilterCondition("custom_fields.tier", "is", "gold"))
    )

    client.update_custom_field("tier", CustomFieldDefinition("level", "Level", "select"))
    references = client.criteria_references("custom_fields.tier")
    deletion = client.delete_custom_field("level")

    assert segment.estimated_size == 2
    assert references == (segment.segment_id,)
    assert deletion.removed_from_records == 0
    assert client.fields()["custom"] == ()


def test_delete_custom_field_reports_records_stripped(tmp_path) -> None:
    """Deleting a field should report how many records held it."""
    client = _client(tmp_path)
    client.create_custom_field(CustomFieldDefinition("tier", "Tier"))

    deletion = client.delete_custom_field("tier")

    assert deletion.removed_from_records == 4
    assert all("tier" not in record.custom_fields for record in client.records.all_records())


def test_create_list_seeds_members_from_criteria_and_ids(tmp_path) -> None:
    """Lists should combine criteria matches with explicit ids."""
    client = _client(tmp_path)

    record_list = client.create_list(
        "Marketing US",
        list_type="Segment",
        criteria=_criteria(FilterCondition("country", "is", "US"), profile_type="marketing"),
        record_ids=["c-002"],
    )

    assert record_list.contact_count == 3
    assert sorted(client.list_members(record_list.list_id)) == ["c-001", "c-002", "c-006"]
    assert [item.list_id for item in client.lists_for_record("c-002")] == [record_list.list_id]


def test_update_list_applies_partial_changes(tmp_path) -> None:
    """List updates should change only the given fields and validate criteria."""
    client = _client(tmp_path)
    record_list = client.create_list("Leads", description="old", record_ids=["c-001"])

    updated = client.update_list(record_list.list_id, ListUpdate(description="new"))

    assert updated.description == "new" and updated.name == "Leads"
    assert updated.contact_count == 1
    with pytest.raises(SchemaResolutionError):
        client.update_list(
            record_list.list_id,
            ListUpdate(criteria=_criteria(FilterCondition("nickname", "is", "x"))),
        )


def test_create_list_rejects_unknown_type(tmp_path) -> None:
    """Unknown list types should be rejected before anything is stored."""
    client = _client(tmp_path)

    with pytest.raises(CohortStoreError, match="Unknown list type"):
        client.create_list("Bad", list_type="Smart")

    assert client.list_lists() == []


def test_apply_definition_creates_segment_or_list(tmp_path) -> None:
    """YAML definitions should create the matching entity type."""
    client = _client(tmp_path)

    segment = client.create_from_definition(str(fixture_path("definitions/vip_segment.yaml")))
    record_list = client.create_from_definition(str(fixture_path("definitions/manual_list.yaml")))

    assert isinstance(segment, Segment) and segment.estimated_size == 2
    assert isinstance(record_list, RecordList) and record_list.list_type == "Static"
