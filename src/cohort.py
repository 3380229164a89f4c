"""Public SDK surface for Cohort.

This module provides a stable import path for library users.
It re-exports the primary client and typed criteria models.
"""

from __future__ import annotations

from core.config import CohortConfig
from core.types import CustomFieldDefinition, FieldDescriptor, Record, RecordQuery
from fetch.batch_collector import BatchCollector
from fetch.record_store import LocalRecordStore, RecordStore
from filters.criteria_codec import deserialize_criteria, serialize_criteria
from filters.evaluator import evaluate_condition, evaluate_expression
from filters.expression import FilterCondition, FilterCriteria, FilterExpression, FilterGroup
from segments.materializer import Materialization, materialize, materialize_criteria
from segments.segment_service import CohortClient, PreviewResult, SegmentResolution

__all__ = [
    "BatchCollector",
    "CohortClient",
    "CohortConfig",
    "CustomFieldDefinition",
    "FieldDescriptor",
    "FilterCondition",
    "FilterCriteria",
    "FilterExpression",
    "FilterGroup",
    "LocalRecordStore",
    "Materialization",
    "PreviewResult",
    "Record",
    "RecordQuery",
    "RecordStore",
    "SegmentResolution",
    "deserialize_criteria",
    "evaluate_condition",
    "evaluate_expression",
    "materialize",
    "materialize_criteria",
    "serialize_criteria",
]
