"""Declarative segment and list definition files.

This module loads and strictly validates YAML definitions so the CLI and
SDK create segments and lists from the same reviewed description.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal, Mapping, cast

import yaml

from core.errors import CohortCriteriaError, CohortDefinitionError
from filters.criteria_codec import deserialize_criteria
from filters.expression import FilterCriteria

DefinitionKind = Literal["segment", "list"]
SUPPORTED_DEFINITION_KINDS: tuple[DefinitionKind, ...] = ("segment", "list")
_COMMON_KEYS = frozenset({"kind", "name", "description", "tags", "criteria"})
_KIND_KEYS: dict[DefinitionKind, frozenset[str]] = {
    "segment": _COMMON_KEYS | {"auto_update", "shared"},
    "list": _COMMON_KEYS | {"list_type", "source"},
}


@dataclass(frozen=True)
class SegmentDefinition:
    """Validated definition of one segment or list.

    Attributes:
        kind: ``segment`` or ``list``.
        name: Display name.
        description: Free-text description.
        tags: Organizational tags.
        criteria: Filter criteria; required for segments.
        auto_update: Segment live re-evaluation flag.
        shared: Segment sharing flag.
        list_type: List origin type.
        source: List source description.
    """

    kind: DefinitionKind
    name: str
    description: str = ""
    tags: tuple[str, ...] = ()
    criteria: FilterCriteria | None = None
    auto_update: bool = True
    shared: bool = False
    list_type: str = "Manual"
    source: str = ""


def load_definition(definition_path: str) -> SegmentDefinition:
    """Load and validate a YAML definition from disk.

    Args:
        definition_path: File path to the YAML definition.

    Returns:
        Validated definition.

    Raises:
        CohortDefinitionError: If the file is unreadable or invalid.
    """
    definition_file = Path(definition_path).expanduser().resolve()
    if not definition_file.exists():
        raise CohortDefinitionError(
            f"Definition file does not exist at {definition_file}. Provide a valid YAML path."
        )
    try:
        payload = cast(object, yaml.safe_load(definition_file.read_text(encoding="utf-8")))
    except OSError as error:
        raise CohortDefinitionError(
            f"Failed to read definition at {definition_file}: {error}."
        ) from error
    except yaml.YAMLError as error:
        raise CohortDefinitionError(
            f"Failed to parse YAML definition at {definition_file}: {error}. Fix YAML syntax."
        ) from error
    if payload is None:
        raise CohortDefinitionError(
            f"Definition at {definition_file} is empty. Define 'kind', 'name', and 'criteria'."
        )
    return parse_definition(payload)


def parse_definition(payload: object) -> SegmentDefinition:
    """Validate an already-parsed definition mapping.

    Raises:
        CohortDefinitionError: If keys or values are invalid.
    """
    root = _expect_mapping(payload, "definition root")
    kind = _parse_kind(root.get("kind"))
    unknown_keys = sorted(set(root) - _KIND_KEYS[kind])
    if unknown_keys:
        raise CohortDefinitionError(
            f"Unsupported {kind} definition keys: {', '.join(unknown_keys)}. "
            f"Allowed keys: {', '.join(sorted(_KIND_KEYS[kind]))}."
        )
    name = root.get("name")
    if not isinstance(name, str) or not name.strip():
        raise CohortDefinitionError("Definition field 'name' must be a non-empty string.")
    criteria = _parse_criteria(root.get("criteria"))
    if kind == "segment" and criteria is None:
        raise CohortDefinitionError("Segment definitions require a 'criteria' mapping.")
    return SegmentDefinition(
        kind=kind,
        name=name.strip(),
        description=_optional_string(root, "description"),
        tags=_parse_tags(root.get("tags")),
        criteria=criteria,
        auto_update=_optional_bool(root, "auto_update", True),
        shared=_optional_bool(root, "shared", False),
        list_type=_optional_string(root, "list_type") or "Manual",
        source=_optional_string(root, "source"),
    )


def _parse_kind(raw_kind: object) -> DefinitionKind:
    if raw_kind in SUPPORTED_DEFINITION_KINDS:
        return cast(DefinitionKind, raw_kind)
    raise CohortDefinitionError(
        f"Definition field 'kind' must be one of: {', '.join(SUPPORTED_DEFINITION_KINDS)}; "
        f"got {raw_kind!r}."
    )


def _parse_criteria(raw_criteria: object) -> FilterCriteria | None:
    if raw_criteria is None:
        return None
    criteria_mapping = _expect_mapping(raw_criteria, "criteria")
    unknown_keys = sorted(
        set(criteria_mapping) - {"conditions", "filterGroups", "profileType", "searchTerm"}
    )
    if unknown_keys:
        raise CohortDefinitionError(f"Unsupported criteria keys: {', '.join(unknown_keys)}.")
    try:
        return deserialize_criteria(criteria_mapping)
    except CohortCriteriaError as error:
        raise CohortDefinitionError(f"Invalid definition criteria: {error}") from error


def _parse_tags(raw_tags: object) -> tuple[str, ...]:
    if raw_tags is None:
        return ()
    if not isinstance(raw_tags, list) or not all(isinstance(tag, str) for tag in raw_tags):
        raise CohortDefinitionError("Definition field 'tags' must be a list of strings.")
    return tuple(raw_tags)


def _optional_string(root: Mapping[str, object], key: str) -> str:
    value = root.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise CohortDefinitionError(
            f"Definition field '{key}' must be a string, got {type(value).__name__}."
        )
    return value


def _optional_bool(root: Mapping[str, object], key: str, default_value: bool) -> bool:
    value = root.get(key)
    if value is None:
        return default_value
    if not isinstance(value, bool):
        raise CohortDefinitionError(
            f"Definition field '{key}' must be true or false, got {value!r}."
        )
    return value


def _expect_mapping(value: object, context: str) -> Mapping[str, object]:
    if isinstance(value, Mapping):
        normalized_mapping = {}
        for key, payload in value.items():
            if not isinstance(key, str):
                raise CohortDefinitionError(
                    f"Invalid {context}: expected string keys, got {type(key).__name__}."
                )
            normalized_mapping[key] = payload
        return normalized_mapping
    raise CohortDefinitionError(
        f"Invalid {context}: expected object mapping, got {type(value).__name__}."
    )
