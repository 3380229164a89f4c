"""Runtime configuration model for Cohort.

This module owns all environment variable parsing and validation.
Other modules consume a typed config object instead of raw env reads.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, TypeVar, cast

from core.constants import (
    DEFAULT_DATA_ROOT,
    DEFAULT_FETCH_CONCURRENCY,
    DEFAULT_FETCH_POLICY,
    DEFAULT_FETCH_RETRIES,
    DEFAULT_LOG_LEVEL,
    DEFAULT_PAGE_SIZE,
    DEFAULT_RETRY_BASE_DELAY,
)
from core.errors import CohortConfigError
from core.types import FETCH_POLICIES, FetchPolicy

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")
_ValueT = TypeVar("_ValueT", int, float)


@dataclass(frozen=True)
class CohortConfig:
    """Validated runtime configuration.

    Attributes:
        data_root: Local root directory for records, schema, and catalogs.
        page_size: Rows requested per page from the record store.
        fetch_retries: Extra attempts per failed page request.
        retry_base_delay: Base delay in seconds for exponential retry backoff.
        fetch_concurrency: Maximum page requests in flight at once.
        fetch_policy: Failure policy for page requests.
        log_level: Minimum structured log level.
    """

    data_root: Path
    page_size: int = DEFAULT_PAGE_SIZE
    fetch_retries: int = DEFAULT_FETCH_RETRIES
    retry_base_delay: float = DEFAULT_RETRY_BASE_DELAY
    fetch_concurrency: int = DEFAULT_FETCH_CONCURRENCY
    fetch_policy: FetchPolicy = cast(FetchPolicy, DEFAULT_FETCH_POLICY)
    log_level: str = DEFAULT_LOG_LEVEL

    @classmethod
    def from_env(cls) -> "CohortConfig":
        """Build config from process environment variables.

        Returns:
            A validated config object.

        Raises:
            CohortConfigError: If environment values are invalid.
        """
        data_root_value = os.getenv("COHORT_DATA_ROOT", str(DEFAULT_DATA_ROOT))
        return cls(
            data_root=Path(data_root_value).expanduser().resolve(),
            page_size=_parse_number("COHORT_PAGE_SIZE", DEFAULT_PAGE_SIZE, int, minimum=1),
            fetch_retries=_parse_number(
                "COHORT_FETCH_RETRIES", DEFAULT_FETCH_RETRIES, int, minimum=0
            ),
            retry_base_delay=_parse_number(
                "COHORT_RETRY_BASE_DELAY", DEFAULT_RETRY_BASE_DELAY, float, minimum=0
            ),
            fetch_concurrency=_parse_number(
                "COHORT_FETCH_CONCURRENCY", DEFAULT_FETCH_CONCURRENCY, int, minimum=1
            ),
            fetch_policy=_parse_fetch_policy(
                os.getenv("COHORT_FETCH_POLICY", DEFAULT_FETCH_POLICY)
            ),
            log_level=_parse_log_level(os.getenv("COHORT_LOG_LEVEL", DEFAULT_LOG_LEVEL)),
        )


def _parse_number(
    variable: str,
    default_value: _ValueT,
    cast_value: Callable[[str], _ValueT],
    minimum: _ValueT,
) -> _ValueT:
    """Parse one numeric environment value with a lower bound.

    Args:
        variable: Environment variable name.
        default_value: Value used when the variable is unset.
        cast_value: Numeric constructor applied to the raw string.
        minimum: Smallest accepted value.

    Returns:
        Parsed numeric value.

    Raises:
        CohortConfigError: If value is not numeric or below the minimum.
    """
    raw_value = os.getenv(variable)
    if raw_value is None:
        return default_value
    try:
        parsed = cast_value(raw_value)
    except ValueError as error:
        raise CohortConfigError(
            f"Invalid {variable} value: expected {cast_value.__name__}, got '{raw_value}'. "
            f"Set {variable} to a numeric value."
        ) from error
    if parsed < minimum:
        raise CohortConfigError(
            f"Invalid {variable} value: expected >= {minimum}, got {parsed}. "
            f"Set {variable} to a value of at least {minimum}."
        )
    return parsed


def _parse_fetch_policy(raw_value: str) -> FetchPolicy:
    normalized = raw_value.strip().lower().replace("-", "_")
    if normalized in FETCH_POLICIES:
        return cast(FetchPolicy, normalized)
    raise CohortConfigError(
        f"Invalid COHORT_FETCH_POLICY value '{raw_value}'. "
        f"Use one of: {', '.join(FETCH_POLICIES)}."
    )


def _parse_log_level(raw_value: str) -> str:
    normalized = raw_value.strip().upper()
    if normalized in _LOG_LEVELS:
        return normalized
    raise CohortConfigError(
        f"Invalid COHORT_LOG_LEVEL value '{raw_value}'. Use one of: {', '.join(_LOG_LEVELS)}."
    )
