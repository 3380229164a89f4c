"""Core constants used across Cohort modules.

This module centralizes non-domain-specific constants.
Keeping values here avoids magic literals in business logic.
"""

from __future__ import annotations

from pathlib import Path

DEFAULT_DATA_ROOT = Path(".cohort")
RECORDS_DIR_NAME = "records"
RECORDS_FILE_NAME = "records.jsonl"
SCHEMA_DIR_NAME = "schema"
CUSTOM_FIELDS_FILE_NAME = "custom_fields.json"
SEGMENTS_DIR_NAME = "segments"
SEGMENTS_CATALOG_FILE_NAME = "catalog.json"
LISTS_DIR_NAME = "lists"
LISTS_CATALOG_FILE_NAME = "catalog.json"
MEMBERSHIPS_FILE_NAME = "memberships.json"
CUSTOM_FIELDS_PREFIX = "custom_fields."
RESERVED_CUSTOM_KEY_PREFIX = "_"
STORE_MAX_PAGE_SIZE = 1000
DEFAULT_PAGE_SIZE = 1000
DEFAULT_FETCH_RETRIES = 2
DEFAULT_RETRY_BASE_DELAY = 0.5
DEFAULT_RETRY_MAX_DELAY = 8.0
DEFAULT_FETCH_CONCURRENCY = 1
DEFAULT_FETCH_POLICY = "strict"
DEFAULT_LOG_LEVEL = "INFO"
DEFAULT_ORDER_BY = "created_at"
DEFAULT_SEARCH_FIELDS = ("first_name", "last_name", "email", "mobile")
DEFAULT_PROFILE_TYPE = "all"
DELETED_STATUS = "deleted"
PROTECTED_ENTITY_TYPE = "System"
UPLOAD_TAG_FIELD = "tags"
