"""List command wiring for Cohort CLI."""

from __future__ import annotations

import argparse
from typing import Any

from cli.criteria_options import add_criteria_arguments, criteria_from_args
from segments.segment_service import CohortClient
from store.segment_types import LIST_TYPES, RecordList

LIST_COMMANDS = (
    "create-list",
    "lists",
    "list-members",
    "add-members",
    "remove-members",
    "delete-list",
)


def add_list_commands(subparsers: Any) -> None:
    """Register list subcommands."""
    create_parser = subparsers.add_parser("create-list", help="Create a list")
    create_parser.add_argument("name", help="List name")
    create_parser.add_argument("--description", default="", help="List description")
    create_parser.add_argument("--type", dest="list_type", default="Manual", choices=LIST_TYPES)
    create_parser.add_argument("--source", default="", help="Origin of the list members")
    create_parser.add_argument(
        "--with-criteria",
        action="store_true",
        help="Seed members from the criteria options",
    )
    create_parser.add_argument("--record-id", action="append", default=[], help="Member id")
    add_criteria_arguments(create_parser)
    subparsers.add_parser("lists", help="List lists, newest first")
    members_parser = subparsers.add_parser("list-members", help="Print active member ids")
    members_parser.add_argument("list_id", help="List id")
    for command, help_text in (
        ("add-members", "Add records to a list"),
        ("remove-members", "Soft-remove records from a list"),
    ):
        parser = subparsers.add_parser(command, help=help_text)
        parser.add_argument("list_id", help="List id")
        parser.add_argument("record_ids", nargs="+", help="Record ids")
    delete_parser = subparsers.add_parser("delete-list", help="Delete a list and its memberships")
    delete_parser.add_argument("list_id", help="List id")


def run_list_command(client: CohortClient, args: argparse.Namespace) -> int:
    """Dispatch one list subcommand."""
    if args.command == "create-list":
        record_list = client.create_list(
            name=args.name,
            description=args.description,
            list_type=args.list_type,
            source=args.source,
            criteria=criteria_from_args(args) if args.with_criteria else None,
            record_ids=args.record_id,
        )
        print(_format_list(record_list))
        return 0
    if args.command == "lists":
        for record_list in client.list_lists():
            print(_format_list(record_list))
        return 0
    if args.command == "list-members":
        for record_id in client.list_members(args.list_id):
            print(record_id)
        return 0
    if args.command == "add-members":
        print(_format_list(client.add_list_members(args.list_id, args.record_ids)))
        return 0
    if args.command == "remove-members":
        print(_format_list(client.remove_list_members(args.list_id, args.record_ids)))
        return 0
    client.delete_list(args.list_id)
    print(f"deleted={args.list_id}")
    return 0


def _format_list(record_list: RecordList) -> str:
    return (
        f"{record_list.list_id}\t"
        f"{record_list.name}\t"
        f"{record_list.list_type}\t"
        f"{record_list.contact_count}\t"
        f"{record_list.created_at.isoformat()}"
    )
