"""Shared filter-criteria arguments for CLI commands."""

from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any

from core.errors import CohortCriteriaError
from filters.criteria_codec import deserialize_criteria
from filters.expression import FilterCondition, FilterCriteria, FilterExpression, FilterGroup


def add_criteria_arguments(parser: Any) -> None:
    """Register criteria input options on one subcommand parser."""
    source = parser.add_mutually_exclusive_group()
    source.add_argument("--criteria", help="Stored criteria JSON object")
    source.add_argument("--criteria-file", help="Path to a stored criteria JSON file")
    source.add_argument(
        "--where",
        action="append",
        default=[],
        help="Condition FIELD:OPERATOR[:VALUE], repeatable; all AND-ed in one group",
    )
    parser.add_argument("--profile-type", help="Profile type bucket, e.g. active")
    parser.add_argument("--search", help="Free-text search term")


def criteria_from_args(args: argparse.Namespace) -> FilterCriteria:
    """Build criteria from whichever criteria option was given.

    Raises:
        CohortCriteriaError: If the JSON or a ``--where`` clause is invalid.
    """
    if args.criteria:
        criteria = deserialize_criteria(_parse_json(args.criteria, "--criteria"))
    elif args.criteria_file:
        criteria = deserialize_criteria(_read_json_file(args.criteria_file))
    else:
        conditions = tuple(_parse_where(clause) for clause in args.where)
        groups = (FilterGroup(group_id="group-1", conditions=conditions),) if conditions else ()
        criteria = FilterCriteria(expression=FilterExpression(groups=groups))
    return FilterCriteria(
        expression=criteria.expression,
        profile_type=args.profile_type if args.profile_type is not None else criteria.profile_type,
        search_term=args.search if args.search is not None else criteria.search_term,
        shape=criteria.shape,
    )


def _parse_where(clause: str) -> FilterCondition:
    parts = clause.split(":", 2)
    if len(parts) < 2:
        raise CohortCriteriaError(
            f"Invalid --where '{clause}': expected FIELD:OPERATOR[:VALUE], e.g. status:is:Active."
        )
    field_key, operator = parts[0].strip(), parts[1].strip()
    value = parts[2] if len(parts) == 3 else ""
    return FilterCondition(field=field_key, operator=operator, value=value)


def _parse_json(raw_payload: str, context: str) -> object:
    try:
        return json.loads(raw_payload)
    except json.JSONDecodeError as error:
        raise CohortCriteriaError(f"Invalid JSON in {context}: {error.msg}.") from error


def _read_json_file(criteria_path: str) -> object:
    criteria_file = Path(criteria_path).expanduser()
    try:
        return _parse_json(criteria_file.read_text(encoding="utf-8"), str(criteria_file))
    except OSError as error:
        raise CohortCriteriaError(
            f"Failed to read criteria file {criteria_file}: {error}."
        ) from error
