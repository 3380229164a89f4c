"""Cohort CLI entry points.
This module exposes record import, criteria, and segment commands.
It maps argparse commands onto SDK calls.
"""

from __future__ import annotations

import argparse
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Sequence, cast

from cli.criteria_options import add_criteria_arguments, criteria_from_args
from cli.field_commands import FIELD_COMMANDS, add_field_commands, run_field_command
from cli.list_commands import LIST_COMMANDS, add_list_commands, run_list_command
from core.config import CohortConfig
from core.errors import CohortError, CohortStoreError
from core.logging_config import configure_logging
from core.types import FETCH_POLICIES, FetchPolicy
from fetch.record_store import read_records_file
from segments.segment_service import CohortClient
from store.segment_types import RecordList, Segment


def build_parser() -> argparse.ArgumentParser:
    """Build the top-level CLI parser.

    Returns:
        Configured argument parser.
    """
    parser = argparse.ArgumentParser(prog="cohort", description="Cohort segmentation CLI")
    parser.add_argument("--data-root", help="Override COHORT_DATA_ROOT for this command")
    parser.add_argument(
        "--policy",
        choices=FETCH_POLICIES,
        help="Override COHORT_FETCH_POLICY for page failures",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    _add_import_records_command(subparsers)
    add_field_commands(subparsers)
    _add_validate_command(subparsers)
    _add_preview_command(subparsers)
    _add_create_segment_command(subparsers)
    _add_segment_commands(subparsers)
    add_list_commands(subparsers)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    """Run the Cohort CLI.

    Args:
        argv: Optional argument vector.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    try:
        client = _build_client(args.data_root)
        return _dispatch(parser, client, args)
    except CohortError as error:
        print(f"error: {error}", file=sys.stderr)
        return 1


def _dispatch(
    parser: argparse.ArgumentParser, client: CohortClient, args: argparse.Namespace
) -> int:
    if args.command == "import-records":
        return _run_import_records_command(client, args)
    if args.command in FIELD_COMMANDS:
        return run_field_command(client, args)
    if args.command == "validate":
        return _run_validate_command(client, args)
    if args.command == "preview":
        return _run_preview_command(client, args)
    if args.command == "create-segment":
        return _run_create_segment_command(client, args)
    if args.command in ("segments", "show-segment", "delete-segment", "refresh-counts"):
        return _run_segment_command(client, args)
    if args.command in LIST_COMMANDS:
        return run_list_command(client, args)
    parser.error(f"Unsupported command: {args.command}")
    return 2


def _build_client(data_root: str | None) -> CohortClient:
    """Build SDK client with optional data-root override.

    Args:
        data_root: Optional override path.

    Returns:
        Configured SDK client.
    """
    config = CohortConfig.from_env()
    if data_root:
        config = replace(config, data_root=Path(data_root).expanduser().resolve())
    configure_logging(config.log_level)
    return CohortClient(config)


def _policy(args: argparse.Namespace) -> FetchPolicy | None:
    return cast(FetchPolicy, args.policy) if args.policy else None


def _run_import_records_command(client: CohortClient, args: argparse.Namespace) -> int:
    """Handle import-records command."""
    written = client.import_records(read_records_file(Path(args.source).expanduser()))
    print(f"imported={written}")
    return 0


def _run_validate_command(client: CohortClient, args: argparse.Namespace) -> int:
    """Handle validate command.

    Returns:
        Exit code 1 when any condition is invalid.
    """
    violations = client.validate(criteria_from_args(args))
    for violation in violations:
        print(
            f"{violation.group_id}\t{violation.condition_index}\t"
            f"{violation.code}\t{violation.message}"
        )
    if violations:
        return 1
    print("valid")
    return 0


def _run_preview_command(client: CohortClient, args: argparse.Namespace) -> int:
    """Handle preview command."""
    preview = client.preview(
        criteria_from_args(args), policy=_policy(args), push_down=args.push_down
    )
    materialization = preview.materialization
    print(f"size={materialization.size}")
    print(f"total_records={preview.total_records}")
    print(f"unfiltered={str(materialization.unfiltered).lower()}")
    missing = ",".join(str(page.batch_index) for page in preview.missing_pages)
    print(f"missing_pages={missing or '-'}")
    if args.show_members:
        for record in materialization.matches:
            print(record.record_id)
    return 0


def _run_create_segment_command(client: CohortClient, args: argparse.Namespace) -> int:
    """Handle create-segment command."""
    if args.definition:
        created: Segment | RecordList = client.create_from_definition(args.definition)
    elif args.upload_ids:
        record_ids = _read_record_ids(args.upload_ids)
        created = client.create_segment_from_upload(args.name or "", args.description, record_ids)
    else:
        created = client.create_segment(
            name=args.name or "",
            criteria=criteria_from_args(args),
            description=args.description,
            auto_update=not args.snapshot,
            tags=tuple(args.tag),
            shared=args.shared,
            policy=_policy(args),
        )
    if isinstance(created, Segment):
        print(_format_segment(created))
    else:
        print(f"{created.list_id}\t{created.name}\t{created.list_type}\t{created.contact_count}")
    return 0


def _run_segment_command(client: CohortClient, args: argparse.Namespace) -> int:
    """Handle segments, show-segment, delete-segment, and refresh-counts."""
    if args.command == "segments":
        for segment in client.list_segments():
            print(_format_segment(segment))
        return 0
    if args.command == "show-segment":
        resolution = client.resolve_segment(args.segment_id, policy=_policy(args))
        print(_format_segment(resolution.segment))
        print(f"size={resolution.size}")
        print(f"live={str(resolution.live).lower()}")
        if args.show_members:
            for record in resolution.members:
                print(record.record_id)
        return 0
    if args.command == "delete-segment":
        client.delete_segment(args.segment_id)
        print(f"deleted={args.segment_id}")
        return 0
    for segment in client.refresh_counts(policy=_policy(args)):
        print(_format_segment(segment))
    return 0


def _read_record_ids(ids_path: str) -> list[str]:
    try:
        return Path(ids_path).expanduser().read_text(encoding="utf-8").split()
    except OSError as error:
        raise CohortStoreError(f"Failed to read record ids from {ids_path}: {error}.") from error


def _format_segment(segment: Segment) -> str:
    return (
        f"{segment.segment_id}\t"
        f"{segment.name}\t"
        f"{segment.segment_type}\t"
        f"{segment.estimated_size}\t"
        f"{'auto' if segment.auto_update else 'snapshot'}\t"
        f"{segment.created_at.isoformat()}"
    )


def _add_import_records_command(subparsers: Any) -> None:
    """Register import-records subcommand."""
    parser = subparsers.add_parser("import-records", help="Upsert records from JSON or JSONL")
    parser.add_argument("source", help="JSON array or JSONL file of records")


def _add_validate_command(subparsers: Any) -> None:
    """Register validate subcommand."""
    parser = subparsers.add_parser("validate", help="Validate filter criteria")
    add_criteria_arguments(parser)


def _add_preview_command(subparsers: Any) -> None:
    """Register preview subcommand."""
    parser = subparsers.add_parser("preview", help="Count records matching criteria")
    add_criteria_arguments(parser)
    parser.add_argument(
        "--push-down",
        action="store_true",
        help="Let the record store pre-filter the profile type",
    )
    parser.add_argument("--show-members", action="store_true", help="Print matching record ids")


def _add_create_segment_command(subparsers: Any) -> None:
    """Register create-segment subcommand."""
    parser = subparsers.add_parser("create-segment", help="Save a segment")
    parser.add_argument("--name", help="Segment name")
    parser.add_argument("--description", default="", help="Segment description")
    parser.add_argument("--definition", help="YAML segment or list definition file")
    parser.add_argument(
        "--upload-ids",
        help="File of whitespace-separated record ids to tag into an upload segment",
    )
    parser.add_argument("--snapshot", action="store_true", help="Disable live re-evaluation")
    parser.add_argument("--shared", action="store_true", help="Share the segment")
    parser.add_argument("--tag", action="append", default=[], help="Segment tag, repeatable")
    add_criteria_arguments(parser)


def _add_segment_commands(subparsers: Any) -> None:
    """Register segment inspection subcommands."""
    subparsers.add_parser("segments", help="List segments, newest first")
    show_parser = subparsers.add_parser("show-segment", help="Resolve a segment's members")
    show_parser.add_argument("segment_id", help="Segment id")
    show_parser.add_argument("--show-members", action="store_true", help="Print member ids")
    delete_parser = subparsers.add_parser("delete-segment", help="Delete a segment")
    delete_parser.add_argument("segment_id", help="Segment id")
    subparsers.add_parser("refresh-counts", help="Recompute auto-update segment sizes")
