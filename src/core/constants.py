"""Core constants used across Sluice modules.

This module centralizes non-domain-specific constants.
Keeping values here avoids magic literals in business logic.
"""

from __future__ import annotations

DEFAULT_HTTP_METHOD = "GET"
DEFAULT_CALLBACK_METHOD = "POST"
DEFAULT_HTTP_TIMEOUT_SECONDS = 30.0
DEFAULT_LOG_LEVEL = "info"
DEFAULT_API_KEY_HEADER = "X-API-Key"
USER_AGENT = "sluice-etl/0.1"

DEFAULT_RETRY_MAX_ATTEMPTS = 3
DEFAULT_RETRY_INITIAL_DELAY_MS = 500
DEFAULT_RETRY_MAX_DELAY_MS = 30_000
DEFAULT_RETRY_BACKOFF_MULTIPLIER = 2.0

DEFAULT_CSV_DELIMITER = ","
DEFAULT_TSV_DELIMITER = "\t"
DEFAULT_CSV_QUOTE_CHAR = '"'
SYNTHETIC_COLUMN_PREFIX = "column_"
TRUE_LITERALS = ("true", "yes", "1")
FALSE_LITERALS = ("false", "no", "0")

LOOKUP_KEY_SEPARATOR = ":"
GROUP_CONCAT_SEPARATOR = ","
DEFAULT_SPLIT_FILENAME_TEMPLATE = "{stem}_{value}{suffix}"
DEFAULT_RUN_CHUNK_SIZE = 64

SUPPORTED_SOURCE_TYPES = ("api", "local_file", "database", "object_store")
SUPPORTED_FILE_FORMATS = ("json", "csv", "tsv", "excel", "parquet", "zip")
SUPPORTED_TRANSFORMATION_TYPES = (
    "map",
    "calculate",
    "format",
    "convert",
    "filter",
    "aggregate",
    "join",
    "custom",
    "lookup",
    "uppercase",
    "lowercase",
)
SUPPORTED_OUTPUT_FORMATS = ("csv", "json", "excel", "parquet", "database")
SUPPORTED_DESTINATIONS = ("local_file", "object_store", "database", "api")
SUPPORTED_AUTH_TYPES = ("basic_auth", "bearer_token", "api_key", "oauth2")
SUPPORTED_DATABASE_DRIVERS = ("postgres", "mysql", "sqlite", "surreal")
SUPPORTED_DATA_TYPES = ("string", "integer", "float", "boolean", "date", "datetime", "json")
SUPPORTED_AGGREGATE_OPERATIONS = ("count", "sum", "average", "min", "max", "group_concat")
SUPPORTED_JOIN_TYPES = ("inner", "left", "right", "full")
SUPPORTED_WRITE_MODES = ("overwrite", "append", "upsert")
SUPPORTED_COMPRESSION_TYPES = ("gzip", "zip", "bzip2", "zstd")
SUPPORTED_COMPARISON_OPERATORS = (
    "equal",
    "not_equal",
    "greater_than",
    "less_than",
    "greater_equal",
    "less_equal",
    "contains",
    "starts_with",
    "ends_with",
    "regex",
    "in",
    "not_in",
)
SUPPORTED_CUSTOM_FUNCTIONS = ("trim", "uppercase", "lowercase", "lookup", "default", "replace")
