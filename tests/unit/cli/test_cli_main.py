"""Unit tests for CLI command handling."""

from __future__ import annotations

import json

from cli.main import main
from tests.fixture_paths import fixture_path


def _run(tmp_path, capsys, *args: str) -> tuple[int, list[str], str]:
    exit_code = main(["--data-root", str(tmp_path), *args])
    captured = capsys.readouterr()
    return exit_code, captured.out.strip().splitlines(), captured.err


def _import_contacts(tmp_path, capsys) -> None:
    exit_code, output, _ = _run(
        tmp_path, capsys, "import-records", str(fixture_path("records/contacts.jsonl"))
    )
    assert exit_code == 0 and output == ["imported=6"]


def test_cli_fields_lists_base_and_custom_fields(tmp_path, capsys) -> None:
    """Fields should include created custom fields with their prefix."""
    exit_code, output, _ = _run(tmp_path, capsys, "add-field", "tier", "--label", "Tier")
    assert exit_code == 0 and output == ["custom_fields.tier"]

    exit_code, output, _ = _run(tmp_path, capsys, "fields")

    rows = [line.split("\t") for line in output]
    assert exit_code == 0
    assert ["email", "string", "base", "Email"] in rows
    assert ["custom_fields.tier", "string", "custom", "Tier"] in rows


def test_cli_preview_prints_size_and_members(tmp_path, capsys) -> None:
    """Preview should report size and optionally member ids."""
    _import_contacts(tmp_path, capsys)

    exit_code, output, _ = _run(
        tmp_path, capsys, "preview", "--where", "country:is:US", "--show-members"
    )

    assert exit_code == 0
    assert output[:4] == ["size=3", "total_records=6", "unfiltered=false", "missing_pages=-"]
    assert sorted(output[4:]) == ["c-001", "c-005", "c-006"]


def test_cli_preview_accepts_criteria_json(tmp_path, capsys) -> None:
    """Stored criteria JSON should combine with profile type overrides."""
    _import_contacts(tmp_path, capsys)
    _run(tmp_path, capsys, "add-field", "tier")
    criteria = json.dumps(
        {"conditions": [{"field": "custom_fields.tier", "operator": "is", "value": "gold"}]}
    )

    exit_code, output, _ = _run(
        tmp_path, capsys, "preview", "--criteria", criteria, "--profile-type", "marketing"
    )

    assert exit_code == 0 and output[0] == "size=2"


def test_cli_segment_lifecycle(tmp_path, capsys) -> None:
    """Segments should be creatable, listable, resolvable, and deletable."""
    _import_contacts(tmp_path, capsys)

    exit_code, output, _ = _run(
        tmp_path, capsys, "create-segment", "--name", "US", "--where", "country:is:US"
    )
    segment_id, name, segment_type, size, mode, _ = output[0].split("\t")
    assert exit_code == 0 and name == "US" and segment_type == "Custom"
    assert size == "3" and mode == "auto"

    exit_code, output, _ = _run(tmp_path, capsys, "segments")
    assert exit_code == 0 and [line.split("\t")[0] for line in output] == [segment_id]

    exit_code, output, _ = _run(tmp_path, capsys, "show-segment", segment_id, "--show-members")
    assert exit_code == 0 and output[1:3] == ["size=3", "live=true"]
    assert sorted(output[3:]) == ["c-001", "c-005", "c-006"]

    exit_code, output, _ = _run(tmp_path, capsys, "delete-segment", segment_id)
    assert exit_code == 0 and output == [f"deleted={segment_id}"]
    exit_code, output, _ = _run(tmp_path, capsys, "segments")
    assert exit_code == 0 and output == []


def test_cli_create_segment_from_definition(tmp_path, capsys) -> None:
    """A YAML definition should create the described segment."""
    _import_contacts(tmp_path, capsys)

    exit_code, output, _ = _run(
        tmp_path,
        capsys,
        "create-segment",
        "--definition",
        str(fixture_path("definitions/vip_segment.yaml")),
    )

    columns = output[0].split("\t")
    assert exit_code == 0 and columns[1] == "VIP customers" and columns[3] == "2"


def test_cli_create_segment_from_uploaded_ids(tmp_path, capsys) -> None:
    """Uploaded ids should be tagged and matched by the new segment."""
    _import_contacts(tmp_path, capsys)
    ids_path = tmp_path / "ids.txt"
    ids_path.write_text("c-002\nc-004\n", encoding="utf-8")

    exit_code, output, _ = _run(
        tmp_path, capsys, "create-segment", "--name", "Spring Leads", "--upload-ids", str(ids_path)
    )
    segment_id = output[0].split("\t")[0]
    exit_code, output, _ = _run(tmp_path, capsys, "show-segment", segment_id, "--show-members")

    assert exit_code == 0 and sorted(output[3:]) == ["c-002", "c-004"]


def test_cli_validate_reports_violations(tmp_path, capsys) -> None:
    """Validate should print violations and exit non-zero."""
    exit_code, output, _ = _run(
        tmp_path, capsys, "validate", "--where", "tags:starts with:v", "--where", "nickname:is:x"
    )

    codes = [line.split("\t")[2] for line in output]
    assert exit_code == 1 and codes == ["operator_mismatch", "unknown_field"]

    exit_code, output, _ = _run(tmp_path, capsys, "validate", "--where", "status:is empty")
    assert exit_code == 0 and output == ["valid"]


def test_cli_reports_domain_errors_on_stderr(tmp_path, capsys) -> None:
    """Domain failures should exit with code 1 and an error line."""
    exit_code, output, error_output = _run(tmp_path, capsys, "delete-segment", "seg-missing")
    assert exit_code == 1 and output == []
    assert "error: Segment 'seg-missing' not found" in error_output

    exit_code, _, error_output = _run(tmp_path, capsys, "preview", "--where", "status")
    assert exit_code == 1 and "error: Invalid --where 'status'" in error_output


def test_cli_list_lifecycle(tmp_path, capsys) -> None:
    """Lists should track active members through add and remove."""
    _import_contacts(tmp_path, capsys)

    exit_code, output, _ = _run(
        tmp_path,
        capsys,
        "create-list",
        "Canada",
        "--with-criteria",
        "--where",
        "country:is:CA",
        "--record-id",
        "c-004",
    )
    list_id, name, list_type, count, _ = output[0].split("\t")
    assert exit_code == 0 and name == "Canada" and list_type == "Manual" and count == "2"

    _run(tmp_path, capsys, "add-members", list_id, "c-005")
    exit_code, output, _ = _run(tmp_path, capsys, "remove-members", list_id, "c-004")
    assert exit_code == 0 and output[0].split("\t")[3] == "2"

    exit_code, output, _ = _run(tmp_path, capsys, "list-members", list_id)
    assert exit_code == 0 and sorted(output) == ["c-002", "c-005"]

    exit_code, output, _ = _run(tmp_path, capsys, "delete-list", list_id)
    assert exit_code == 0 and output == [f"deleted={list_id}"]
    exit_code, output, _ = _run(tmp_path, capsys, "lists")
    assert exit_code == 0 and output == []
