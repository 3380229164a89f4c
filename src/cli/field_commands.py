"""Field schema command wiring for Cohort CLI."""

from __future__ import annotations

import argparse
from typing import Any

from core.types import CustomFieldDefinition
from segments.segment_service import CohortClient

FIELD_COMMANDS = ("fields", "add-field", "update-field", "delete-field")


def add_field_commands(subparsers: Any) -> None:
    """Register field listing and custom field subcommands."""
    subparsers.add_parser("fields", help="List built-in and custom filter fields")
    add_parser = subparsers.add_parser("add-field", help="Create a custom field")
    _add_definition_arguments(add_parser)
    update_parser = subparsers.add_parser("update-field", help="Update or rename a custom field")
    update_parser.add_argument("old_key", help="Current custom field key")
    _add_definition_arguments(update_parser)
    delete_parser = subparsers.add_parser(
        "delete-field", help="Delete a custom field and strip it from every record"
    )
    delete_parser.add_argument("key", help="Custom field key")


def run_field_command(client: CohortClient, args: argparse.Namespace) -> int:
    """Dispatch one field subcommand."""
    if args.command == "fields":
        for origin, descriptors in client.fields().items():
            for descriptor in descriptors:
                print(f"{descriptor.key}\t{descriptor.semantic_type}\t{origin}\t{descriptor.label}")
        return 0
    if args.command == "add-field":
        created = client.create_custom_field(_definition_from_args(args))
        print(f"custom_fields.{created.key}")
        return 0
    if args.command == "update-field":
        updated = client.update_custom_field(args.old_key, _definition_from_args(args))
        if updated.key != args.old_key:
            for reference in client.criteria_references(f"custom_fields.{args.old_key}"):
                print(f"stale_reference={reference}")
        print(f"custom_fields.{updated.key}")
        return 0
    deletion = client.delete_custom_field(args.key)
    print(f"removed_from_records={deletion.removed_from_records}")
    return 0


def _add_definition_arguments(parser: Any) -> None:
    parser.add_argument("key", help="Custom field key, without the custom_fields. prefix")
    parser.add_argument("--label", help="Display label; defaults to the key")
    parser.add_argument("--type", dest="field_type", default="", help="Declared type, e.g. number")
    parser.add_argument("--required", action="store_true", help="Mark the field as required")
    parser.add_argument("--default-value", default="", help="Default value for record editors")
    parser.add_argument("--description", default="", help="Free-text description")


def _definition_from_args(args: argparse.Namespace) -> CustomFieldDefinition:
    return CustomFieldDefinition(
        key=args.key,
        label=args.label or args.key,
        field_type=args.field_type,
        required=args.required,
        default_value=args.default_value,
        description=args.description,
    )
