"""Cohort exception hierarchy.

This module defines traceable domain errors with clear boundaries.
Each subsystem raises a specific error type for debuggability.
"""

from __future__ import annotations


class CohortError(Exception):
    """Base exception for all Cohort failures."""


class CohortConfigError(CohortError):
    """Raised for invalid runtime configuration."""


class CohortStoreError(CohortError):
    """Raised for record, schema, segment, and list persistence failures."""


class EntityNotFoundError(CohortStoreError):
    """Raised when a segment or list id does not exist."""


class RepositoryConflictError(CohortStoreError):
    """Raised when a repository mutation violates a domain rule."""


class CohortCriteriaError(CohortError):
    """Raised for filter criteria that cannot be accepted."""


class SchemaResolutionError(CohortCriteriaError):
    """Raised when a condition references a field the registry cannot resolve."""


class OperatorMismatchError(CohortCriteriaError):
    """Raised when a condition operator is not legal for its field type."""


class BatchFetchError(CohortError):
    """Raised when a record page or count request fails after retries."""

    def __init__(self, message: str, batch_index: int | None = None, offset: int | None = None):
        super().__init__(message)
        self.batch_index = batch_index
        self.offset = offset


class StaleResultDiscarded(CohortError):
    """Raised to a superseded fetch whose results were dropped."""

    def __init__(self, message: str, generation: int, current_generation: int):
        super().__init__(message)
        self.generation = generation
        self.current_generation = current_generation


class CohortDefinitionError(CohortError):
    """Raised for invalid segment or list definition files."""
