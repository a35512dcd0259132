"""Semantic validation of parsed pipeline configurations.

This module checks cross-field rules the structural parser cannot see.
Every failure is a ``SluiceConfigError`` carrying the offending field path.
"""

from __future__ import annotations

import re
from typing import Mapping

from core.config import parse_log_level
from core.config_fields import join_path
from core.constants import SUPPORTED_CUSTOM_FUNCTIONS
from core.errors import SluiceConfigError
from core.pipeline_config import (
    ApiDestination,
    ApiSource,
    AuthConfig,
    Condition,
    CustomTransform,
    DatabaseDestination,
    DatabaseOutput,
    DatabaseSource,
    DataSourceConfig,
    JoinTransform,
    LocalFileDestination,
    LocalFileSource,
    LookupTransform,
    ObjectStoreDestination,
    ObjectStoreSource,
    OutputConfig,
    PipelineConfig,
    RetryConfig,
    TransformationRule,
)
from core.variables import placeholder_names


def validate_pipeline_config(config: PipelineConfig) -> None:
    """Validate a parsed pipeline configuration.

    Args:
        config: Parsed pipeline configuration.

    Raises:
        SluiceConfigError: If any semantic rule is violated.
    """
    if not config.name.strip():
        raise SluiceConfigError("must be a non-empty string.", "name")
    if not config.transformations:
        raise SluiceConfigError("must declare at least one rule.", "transformations")
    variables = config.settings.variables if config.settings else None
    _validate_source(config.data_source, "data_source", variables)
    for name, source in (config.join_sources or {}).items():
        _validate_source(source, join_path("join_sources", name), variables)
    lookup_names = {table.name for table in config.lookup_tables or ()}
    for index, table in enumerate(config.lookup_tables or ()):
        if table.path is None and table.entries is None:
            raise SluiceConfigError(
                "must declare 'path' or 'entries'.", join_path("lookup_tables", index)
            )
    seen_names: set[str] = set()
    for index, rule in enumerate(config.transformations):
        path = join_path("transformations", index)
        if rule.name in seen_names:
            raise SluiceConfigError(
                f"duplicate rule name '{rule.name}'.", join_path(path, "name")
            )
        seen_names.add(rule.name)
        _validate_rule(rule, path, config.join_sources or {}, lookup_names)
    _validate_output(config.output, variables)
    _validate_settings(config)


def _validate_source(
    source: DataSourceConfig,
    path: str,
    variables: Mapping[str, str] | None,
) -> None:
    if isinstance(source, ApiSource):
        _require_text(source.url, join_path(path, "url"))
        _validate_placeholders(source.url, join_path(path, "url"), variables)
        if source.auth is not None:
            _validate_auth(source.auth, join_path(path, "auth"))
        if source.retry is not None:
            _validate_retry(source.retry, join_path(path, "retry"))
        if source.timeout_seconds is not None and source.timeout_seconds <= 0:
            raise SluiceConfigError("must be > 0.", join_path(path, "timeout_seconds"))
    elif isinstance(source, LocalFileSource):
        _require_text(source.path, join_path(path, "path"))
        _validate_placeholders(source.path, join_path(path, "path"), variables)
    elif isinstance(source, DatabaseSource):
        _require_text(source.connection_string, join_path(path, "connection_string"))
        _require_text(source.query, join_path(path, "query"))
    elif isinstance(source, ObjectStoreSource):
        _require_text(source.bucket, join_path(path, "bucket"))
        _require_text(source.key, join_path(path, "key"))
        _require_text(source.region, join_path(path, "region"))


def _validate_auth(auth: AuthConfig, path: str) -> None:
    credentials = auth.credentials
    credentials_path = join_path(path, "credentials")
    if auth.auth_type == "basic_auth":
        if credentials.username is None:
            raise SluiceConfigError(
                "basic_auth requires username.", join_path(credentials_path, "username")
            )
    elif auth.auth_type == "bearer_token":
        if not credentials.token:
            raise SluiceConfigError(
                "bearer_token requires token.", join_path(credentials_path, "token")
            )
    elif auth.auth_type == "api_key":
        if not credentials.api_key:
            raise SluiceConfigError(
                "api_key requires api_key.", join_path(credentials_path, "api_key")
            )


def _validate_retry(retry: RetryConfig, path: str) -> None:
    if retry.max_attempts < 1:
        raise SluiceConfigError("must be >= 1.", join_path(path, "max_attempts"))
    if retry.initial_delay_ms < 0:
        raise SluiceConfigError("must be >= 0.", join_path(path, "initial_delay_ms"))
    if retry.max_delay_ms < retry.initial_delay_ms:
        raise SluiceConfigError(
            "must be >= initial_delay_ms.", join_path(path, "max_delay_ms")
        )
    if retry.backoff_multiplier < 1:
        raise SluiceConfigError("must be >= 1.", join_path(path, "backoff_multiplier"))


def _validate_rule(
    rule: TransformationRule,
    path: str,
    join_sources: Mapping[str, DataSourceConfig],
    lookup_names: set[str],
) -> None:
    _require_text(rule.name, join_path(path, "name"))
    _require_text(rule.source_field, join_path(path, "source_field"))
    if rule.condition is not None:
        _validate_condition(rule.condition, join_path(path, "condition"))
    kind = rule.transformation
    kind_path = join_path(path, "transformation")
    if isinstance(kind, JoinTransform) and kind.join_source not in join_sources:
        raise SluiceConfigError(
            f"unknown join source '{kind.join_source}'. Declare it under join_sources.",
            join_path(kind_path, "join_source"),
        )
    if isinstance(kind, LookupTransform) and kind.table not in lookup_names:
        raise SluiceConfigError(
            f"unknown lookup table '{kind.table}'. Declare it under lookup_tables.",
            join_path(kind_path, "table"),
        )
    if isinstance(kind, CustomTransform):
        _validate_custom(kind, kind_path, lookup_names)


def _validate_condition(condition: Condition, path: str) -> None:
    _require_text(condition.field, join_path(path, "field"))
    if condition.operator == "regex":
        if not isinstance(condition.value, str):
            raise SluiceConfigError("regex value must be a string.", join_path(path, "value"))
        try:
            re.compile(condition.value)
        except re.error as error:
            raise SluiceConfigError(
                f"invalid regular expression: {error}.", join_path(path, "value")
            ) from error
    elif condition.operator in ("in", "not_in"):
        if not isinstance(condition.value, list):
            raise SluiceConfigError(
                f"'{condition.operator}' requires a list value.", join_path(path, "value")
            )


def _validate_custom(kind: CustomTransform, path: str, lookup_names: set[str]) -> None:
    if kind.function not in SUPPORTED_CUSTOM_FUNCTIONS:
        raise SluiceConfigError(
            f"unknown custom function '{kind.function}'. "
            f"Use one of: {', '.join(SUPPORTED_CUSTOM_FUNCTIONS)}.",
            join_path(path, "function"),
        )
    parameters = kind.parameters or {}
    parameters_path = join_path(path, "parameters")
    if kind.function == "lookup":
        table = parameters.get("table")
        if table not in lookup_names:
            raise SluiceConfigError(
                f"unknown lookup table {table!r}. Declare it under lookup_tables.",
                join_path(parameters_path, "table"),
            )
    elif kind.function == "default" and "value" not in parameters:
        raise SluiceConfigError(
            "default requires a 'value' parameter.", join_path(parameters_path, "value")
        )
    elif kind.function == "replace":
        for name in ("old", "new"):
            if not isinstance(parameters.get(name), str):
                raise SluiceConfigError(
                    f"replace requires a string '{name}' parameter.",
                    join_path(parameters_path, name),
                )


def _validate_output(output: OutputConfig, variables: Mapping[str, str] | None) -> None:
    destination = output.destination
    destination_path = "output.destination"
    is_database_format = isinstance(output.format, DatabaseOutput)
    is_database_destination = isinstance(destination, DatabaseDestination)
    if is_database_format != is_database_destination:
        raise SluiceConfigError(
            "database format and database destination must be used together.",
            "output.format",
        )
    if isinstance(output.format, DatabaseOutput):
        _require_text(output.format.table_name, "output.format.table_name")
        if output.format.mode == "upsert" and not output.format.key_columns:
            raise SluiceConfigError(
                "upsert mode requires key_columns.", "output.format.key_columns"
            )
    if isinstance(destination, LocalFileDestination):
        _require_text(destination.path, join_path(destination_path, "path"))
        _validate_placeholders(destination.path, join_path(destination_path, "path"), variables)
    elif isinstance(destination, ObjectStoreDestination):
        _require_text(destination.bucket, join_path(destination_path, "bucket"))
        _require_text(destination.key, join_path(destination_path, "key"))
        _require_text(destination.region, join_path(destination_path, "region"))
    elif isinstance(destination, DatabaseDestination):
        _require_text(
            destination.connection_string, join_path(destination_path, "connection_string")
        )
    elif isinstance(destination, ApiDestination):
        _require_text(destination.url, join_path(destination_path, "url"))
        if destination.auth is not None:
            _validate_auth(destination.auth, join_path(destination_path, "auth"))
    options = output.options
    if options is None:
        return
    for field_name in ("batch_size", "max_file_size"):
        value = getattr(options, field_name)
        if value is not None and value < 1:
            raise SluiceConfigError("must be >= 1.", join_path("output.options", field_name))


def _validate_settings(config: PipelineConfig) -> None:
    settings = config.settings
    if settings is None:
        return
    for field_name in ("parallel_workers", "memory_limit_mb"):
        value = getattr(settings, field_name)
        if value is not None and value < 1:
            raise SluiceConfigError("must be >= 1.", join_path("settings", field_name))
    if settings.timeout_seconds is not None and settings.timeout_seconds <= 0:
        raise SluiceConfigError("must be > 0.", "settings.timeout_seconds")
    if settings.log_level is not None:
        parse_log_level(settings.log_level, "settings.log_level")


def _require_text(value: str, path: str) -> None:
    if not value.strip():
        raise SluiceConfigError("must be a non-empty string.", path)


def _validate_placeholders(
    text: str,
    path: str,
    variables: Mapping[str, str] | None,
) -> None:
    for name in placeholder_names(text):
        if variables is None or name not in variables:
            raise SluiceConfigError(
                f"undefined variable '${{{name}}}'. Declare it under settings.variables.",
                path,
            )
