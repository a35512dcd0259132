"""Strict parsing of pipeline configuration documents.

This module turns a JSON (or YAML) document into the typed model from
``core.pipeline_config``. Parsing is structural: tags, types, and key sets are
checked here, semantic rules live in ``core.pipeline_config_validation``.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Callable, Mapping, TypeVar, cast

from core.config_fields import (
    expect_mapping,
    expect_sequence,
    join_path,
    optional_bool,
    optional_char,
    optional_choice,
    optional_int,
    optional_json_map,
    optional_number,
    optional_string,
    optional_string_list,
    optional_string_map,
    reject_unknown_keys,
    required_choice,
    required_field,
    required_int,
    required_number,
    required_string,
    string_list,
)
from core.constants import (
    SUPPORTED_AGGREGATE_OPERATIONS,
    SUPPORTED_AUTH_TYPES,
    SUPPORTED_COMPARISON_OPERATORS,
    SUPPORTED_COMPRESSION_TYPES,
    SUPPORTED_DATA_TYPES,
    SUPPORTED_DATABASE_DRIVERS,
    SUPPORTED_DESTINATIONS,
    SUPPORTED_FILE_FORMATS,
    SUPPORTED_JOIN_TYPES,
    SUPPORTED_OUTPUT_FORMATS,
    SUPPORTED_SOURCE_TYPES,
    SUPPORTED_TRANSFORMATION_TYPES,
    SUPPORTED_WRITE_MODES,
)
from core.errors import SluiceConfigError, SluiceDependencyError
from core.pipeline_config import (
    AggregateTransform,
    ApiDestination,
    ApiSource,
    AuthConfig,
    AuthCredentials,
    AwsCredentials,
    CalculateTransform,
    Condition,
    ConvertTransform,
    CsvFormat,
    CsvOutput,
    CustomTransform,
    DatabaseDestination,
    DatabaseOutput,
    DatabaseSource,
    DataSourceConfig,
    ExcelFormat,
    ExcelOutput,
    FileFormat,
    FilterTransform,
    FormatTransform,
    GlobalSettings,
    JoinTransform,
    JsonFormat,
    JsonOutput,
    LocalFileDestination,
    LocalFileSource,
    LookupTableConfig,
    LookupTransform,
    LowercaseTransform,
    MapTransform,
    ObjectStoreDestination,
    ObjectStoreSource,
    OutputConfig,
    OutputDestination,
    OutputFormat,
    OutputOptions,
    ParquetFormat,
    ParquetOutput,
    PipelineConfig,
    RetryConfig,
    TransformationKind,
    TransformationRule,
    TsvFormat,
    UppercaseTransform,
    ZipFormat,
)

_T = TypeVar("_T")
Fields = Mapping[str, object]

_ROOT_KEYS = {
    "name",
    "description",
    "data_source",
    "transformations",
    "output",
    "settings",
    "join_sources",
    "lookup_tables",
}


def parse_pipeline_config(raw_text: str) -> PipelineConfig:
    """Parse a JSON pipeline document.

    Args:
        raw_text: JSON document text.

    Returns:
        Typed pipeline configuration (not yet semantically validated).

    Raises:
        SluiceConfigError: If the document is malformed or violates the schema.
    """
    try:
        payload = json.loads(raw_text)
    except json.JSONDecodeError as error:
        raise SluiceConfigError(
            f"Invalid JSON at line {error.lineno}, column {error.colno}: {error.msg}. "
            "Fix the JSON syntax and retry."
        ) from error
    return pipeline_config_from_payload(payload)


def load_pipeline_config(config_path: str) -> PipelineConfig:
    """Load, parse, and validate a pipeline file.

    ``.yaml``/``.yml`` files are read with PyYAML, everything else as JSON.

    Args:
        config_path: File path of the pipeline definition.

    Returns:
        Validated pipeline configuration.

    Raises:
        SluiceConfigError: If the file is missing, malformed, or invalid.
    """
    from core.pipeline_config_validation import validate_pipeline_config

    config_file = Path(config_path).expanduser().resolve()
    if not config_file.exists():
        raise SluiceConfigError(
            f"Pipeline config does not exist at {config_file}. Provide a valid file path."
        )
    try:
        raw_text = config_file.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as error:
        raise SluiceConfigError(
            f"Failed to read pipeline config at {config_file}: {error}."
        ) from error
    if config_file.suffix.lower() in (".yaml", ".yml"):
        config = pipeline_config_from_payload(_load_yaml_payload(raw_text, config_file))
    else:
        config = parse_pipeline_config(raw_text)
    validate_pipeline_config(config)
    return config


def _load_yaml_payload(raw_text: str, config_file: Path) -> object:
    try:
        import yaml  # type: ignore[import-untyped]
    except ImportError as error:  # pragma: no cover - dependency failure
        raise SluiceDependencyError(
            "YAML pipeline configs require PyYAML. Install with 'pip install pyyaml'."
        ) from error
    try:
        return cast(object, yaml.safe_load(raw_text))
    except yaml.YAMLError as error:
        raise SluiceConfigError(
            f"Failed to parse YAML pipeline config at {config_file}: {error}."
        ) from error


def pipeline_config_from_payload(payload: object) -> PipelineConfig:
    """Build the typed model from an already-decoded document."""
    root = expect_mapping(payload, "")
    reject_unknown_keys(root, _ROOT_KEYS, "")
    rules_value = required_field(root, "transformations", "")
    rules = tuple(
        _parse_rule(rule_value, join_path("transformations", index))
        for index, rule_value in enumerate(expect_sequence(rules_value, "transformations"))
    )
    return PipelineConfig(
        name=required_string(root, "name", ""),
        description=optional_string(root, "description", ""),
        data_source=_parse_source(required_field(root, "data_source", ""), "data_source"),
        transformations=rules,
        output=_parse_output(required_field(root, "output", ""), "output"),
        settings=_optional_section(root, "settings", "", _parse_settings),
        join_sources=_parse_join_sources(root),
        lookup_tables=_parse_lookup_tables(root),
    )


def _optional_section(
    mapping: Fields,
    field_name: str,
    path: str,
    parser: Callable[[object, str], _T],
) -> _T | None:
    value = mapping.get(field_name)
    if value is None:
        return None
    return parser(value, join_path(path, field_name))


def _tagged(
    value: object,
    path: str,
    supported: tuple[str, ...],
    parsers: Mapping[str, Callable[[Fields, str], _T]],
) -> _T:
    """Dispatch a ``{"type": ...}`` object to its variant parser."""
    fields = expect_mapping(value, path)
    tag = required_choice(fields, "type", supported, path)
    return parsers[tag](fields, path)


# Data sources


def _parse_source(value: object, path: str) -> DataSourceConfig:
    return _tagged(value, path, SUPPORTED_SOURCE_TYPES, _SOURCE_PARSERS)


def _parse_api_source(fields: Fields, path: str) -> ApiSource:
    reject_unknown_keys(
        fields,
        {"type", "url", "method", "headers", "auth", "retry", "format", "timeout_seconds"},
        path,
    )
    return ApiSource(
        url=required_string(fields, "url", path),
        method=optional_string(fields, "method", path),
        headers=optional_string_map(fields, "headers", path),
        auth=_optional_section(fields, "auth", path, _parse_auth),
        retry=_optional_section(fields, "retry", path, _parse_retry),
        format=_optional_section(fields, "format", path, _parse_file_format),
        timeout_seconds=optional_number(fields, "timeout_seconds", path),
    )


def _parse_local_file_source(fields: Fields, path: str) -> LocalFileSource:
    reject_unknown_keys(fields, {"type", "path", "format", "encoding"}, path)
    return LocalFileSource(
        path=required_string(fields, "path", path),
        format=_parse_file_format(
            required_field(fields, "format", path), join_path(path, "format")
        ),
        encoding=optional_string(fields, "encoding", path),
    )


def _parse_database_source(fields: Fields, path: str) -> DatabaseSource:
    reject_unknown_keys(fields, {"type", "connection_string", "query", "driver"}, path)
    return DatabaseSource(
        connection_string=required_string(fields, "connection_string", path),
        query=required_string(fields, "query", path),
        driver=required_choice(fields, "driver", SUPPORTED_DATABASE_DRIVERS, path),
    )


def _parse_object_store_source(fields: Fields, path: str) -> ObjectStoreSource:
    reject_unknown_keys(fields, {"type", "bucket", "key", "region", "credentials", "format"}, path)
    return ObjectStoreSource(
        bucket=required_string(fields, "bucket", path),
        key=required_string(fields, "key", path),
        region=required_string(fields, "region", path),
        credentials=_optional_section(fields, "credentials", path, _parse_aws_credentials),
        format=_optional_section(fields, "format", path, _parse_file_format),
    )


_SOURCE_PARSERS: dict[str, Callable[[Fields, str], DataSourceConfig]] = {
    ApiSource.TYPE_TAG: _parse_api_source,
    LocalFileSource.TYPE_TAG: _parse_local_file_source,
    DatabaseSource.TYPE_TAG: _parse_database_source,
    ObjectStoreSource.TYPE_TAG: _parse_object_store_source,
}


def _parse_auth(value: object, path: str) -> AuthConfig:
    fields = expect_mapping(value, path)
    reject_unknown_keys(fields, {"auth_type", "credentials"}, path)
    credentials_path = join_path(path, "credentials")
    credentials = expect_mapping(required_field(fields, "credentials", path), credentials_path)
    credential_keys = {"username", "password", "token", "api_key", "header_name"}
    reject_unknown_keys(credentials, credential_keys, credentials_path)
    return AuthConfig(
        auth_type=required_choice(fields, "auth_type", SUPPORTED_AUTH_TYPES, path),
        credentials=AuthCredentials(
            **{
                key: optional_string(credentials, key, credentials_path)
                for key in sorted(credential_keys)
            }
        ),
    )


def _parse_retry(value: object, path: str) -> RetryConfig:
    fields = expect_mapping(value, path)
    reject_unknown_keys(
        fields, {"max_attempts", "initial_delay_ms", "max_delay_ms", "backoff_multiplier"}, path
    )
    return RetryConfig(
        max_attempts=required_int(fields, "max_attempts", path),
        initial_delay_ms=required_int(fields, "initial_delay_ms", path),
        max_delay_ms=required_int(fields, "max_delay_ms", path),
        backoff_multiplier=required_number(fields, "backoff_multiplier", path),
    )


def _parse_aws_credentials(value: object, path: str) -> AwsCredentials:
    fields = expect_mapping(value, path)
    reject_unknown_keys(fields, {"access_key_id", "secret_access_key", "session_token"}, path)
    return AwsCredentials(
        access_key_id=required_string(fields, "access_key_id", path),
        secret_access_key=required_string(fields, "secret_access_key", path),
        session_token=optional_string(fields, "session_token", path),
    )


# File formats


def _parse_file_format(value: object, path: str) -> FileFormat:
    return _tagged(value, path, SUPPORTED_FILE_FORMATS, _FORMAT_PARSERS)


def _tag_only(format_type: Callable[[], _T]) -> Callable[[Fields, str], _T]:
    def parse(fields: Fields, path: str) -> _T:
        reject_unknown_keys(fields, {"type"}, path)
        return format_type()

    return parse


def _parse_csv_format(fields: Fields, path: str) -> CsvFormat:
    reject_unknown_keys(fields, {"type", "delimiter", "has_headers"}, path)
    return CsvFormat(
        delimiter=optional_char(fields, "delimiter", path),
        has_headers=optional_bool(fields, "has_headers", path),
    )


def _parse_zip_format(fields: Fields, path: str) -> ZipFormat:
    reject_unknown_keys(fields, {"type", "target_files", "extract_path"}, path)
    return ZipFormat(
        target_files=string_list(
            required_field(fields, "target_files", path), join_path(path, "target_files")
        ),
        extract_path=optional_string(fields, "extract_path", path),
    )


_FORMAT_PARSERS: dict[str, Callable[[Fields, str], FileFormat]] = {
    JsonFormat.TYPE_TAG: _tag_only(JsonFormat),
    CsvFormat.TYPE_TAG: _parse_csv_format,
    TsvFormat.TYPE_TAG: _tag_only(TsvFormat),
    ExcelFormat.TYPE_TAG: _tag_only(ExcelFormat),
    ParquetFormat.TYPE_TAG: _tag_only(ParquetFormat),
    ZipFormat.TYPE_TAG: _parse_zip_format,
}


# Transformations


def _parse_rule(value: object, path: str) -> TransformationRule:
    fields = expect_mapping(value, path)
    reject_unknown_keys(
        fields, {"name", "source_field", "target_field", "transformation", "condition"}, path
    )
    return TransformationRule(
        name=required_string(fields, "name", path),
        source_field=required_string(fields, "source_field", path),
        target_field=optional_string(fields, "target_field", path),
        transformation=_parse_transformation(
            required_field(fields, "transformation", path), join_path(path, "transformation")
        ),
        condition=_optional_section(fields, "condition", path, _parse_condition),
    )


def _parse_condition(value: object, path: str) -> Condition:
    fields = expect_mapping(value, path)
    reject_unknown_keys(fields, {"field", "operator", "value"}, path)
    return Condition(
        field=required_string(fields, "field", path),
        operator=required_choice(fields, "operator", SUPPORTED_COMPARISON_OPERATORS, path),
        value=fields.get("value"),
    )


def _parse_transformation(value: object, path: str) -> TransformationKind:
    return _tagged(value, path, SUPPORTED_TRANSFORMATION_TYPES, _TRANSFORMATION_PARSERS)


def _parse_map(fields: Fields, path: str) -> MapTransform:
    reject_unknown_keys(fields, {"type", "mapping"}, path)
    required_field(fields, "mapping", path)
    return MapTransform(mapping=optional_json_map(fields, "mapping", path) or {})


def _single_string(
    kind: Callable[[str], _T], field_name: str
) -> Callable[[Fields, str], _T]:
    def parse(fields: Fields, path: str) -> _T:
        reject_unknown_keys(fields, {"type", field_name}, path)
        return kind(required_string(fields, field_name, path))

    return parse


def _parse_convert(fields: Fields, path: str) -> ConvertTransform:
    reject_unknown_keys(fields, {"type", "to_type"}, path)
    return ConvertTransform(to_type=required_choice(fields, "to_type", SUPPORTED_DATA_TYPES, path))


def _parse_aggregate(fields: Fields, path: str) -> AggregateTransform:
    reject_unknown_keys(fields, {"type", "operation", "group_by"}, path)
    return AggregateTransform(
        operation=required_choice(fields, "operation", SUPPORTED_AGGREGATE_OPERATIONS, path),
        group_by=optional_string_list(fields, "group_by", path),
    )


def _parse_join(fields: Fields, path: str) -> JoinTransform:
    reject_unknown_keys(fields, {"type", "join_source", "join_key", "join_type"}, path)
    return JoinTransform(
        join_source=required_string(fields, "join_source", path),
        join_key=required_string(fields, "join_key", path),
        join_type=required_choice(fields, "join_type", SUPPORTED_JOIN_TYPES, path),
    )


def _parse_custom(fields: Fields, path: str) -> CustomTransform:
    reject_unknown_keys(fields, {"type", "function", "parameters"}, path)
    return CustomTransform(
        function=required_string(fields, "function", path),
        parameters=optional_json_map(fields, "parameters", path),
    )


_TRANSFORMATION_PARSERS: dict[str, Callable[[Fields, str], TransformationKind]] = {
    MapTransform.TYPE_TAG: _parse_map,
    CalculateTransform.TYPE_TAG: _single_string(CalculateTransform, "expression"),
    FormatTransform.TYPE_TAG: _single_string(FormatTransform, "template"),
    ConvertTransform.TYPE_TAG: _parse_convert,
    FilterTransform.TYPE_TAG: _single_string(FilterTransform, "condition"),
    AggregateTransform.TYPE_TAG: _parse_aggregate,
    JoinTransform.TYPE_TAG: _parse_join,
    CustomTransform.TYPE_TAG: _parse_custom,
    LookupTransform.TYPE_TAG: _single_string(LookupTransform, "table"),
    UppercaseTransform.TYPE_TAG: _tag_only(UppercaseTransform),
    LowercaseTransform.TYPE_TAG: _tag_only(LowercaseTransform),
}


# Output


def _parse_output(value: object, path: str) -> OutputConfig:
    fields = expect_mapping(value, path)
    reject_unknown_keys(fields, {"format", "destination", "options"}, path)
    return OutputConfig(
        format=_tagged(
            required_field(fields, "format", path),
            join_path(path, "format"),
            SUPPORTED_OUTPUT_FORMATS,
            _OUTPUT_FORMAT_PARSERS,
        ),
        destination=_tagged(
            required_field(fields, "destination", path),
            join_path(path, "destination"),
            SUPPORTED_DESTINATIONS,
            _DESTINATION_PARSERS,
        ),
        options=_optional_section(fields, "options", path, _parse_output_options),
    )


def _parse_csv_output(fields: Fields, path: str) -> CsvOutput:
    reject_unknown_keys(fields, {"type", "delimiter", "quote_char", "headers", "columns"}, path)
    return CsvOutput(
        delimiter=optional_char(fields, "delimiter", path),
        quote_char=optional_char(fields, "quote_char", path),
        headers=optional_bool(fields, "headers", path),
        columns=optional_string_list(fields, "columns", path),
    )


def _parse_json_output(fields: Fields, path: str) -> JsonOutput:
    reject_unknown_keys(fields, {"type", "pretty_print"}, path)
    return JsonOutput(pretty_print=optional_bool(fields, "pretty_print", path))


def _parse_excel_output(fields: Fields, path: str) -> ExcelOutput:
    reject_unknown_keys(fields, {"type", "sheet_name"}, path)
    return ExcelOutput(sheet_name=optional_string(fields, "sheet_name", path))


def _parse_database_output(fields: Fields, path: str) -> DatabaseOutput:
    reject_unknown_keys(fields, {"type", "table_name", "mode", "key_columns"}, path)
    return DatabaseOutput(
        table_name=required_string(fields, "table_name", path),
        mode=required_choice(fields, "mode", SUPPORTED_WRITE_MODES, path),
        key_columns=optional_string_list(fields, "key_columns", path),
    )


_OUTPUT_FORMAT_PARSERS: dict[str, Callable[[Fields, str], OutputFormat]] = {
    CsvOutput.TYPE_TAG: _parse_csv_output,
    JsonOutput.TYPE_TAG: _parse_json_output,
    ExcelOutput.TYPE_TAG: _parse_excel_output,
    ParquetOutput.TYPE_TAG: _tag_only(ParquetOutput),
    DatabaseOutput.TYPE_TAG: _parse_database_output,
}


def _parse_local_file_destination(fields: Fields, path: str) -> LocalFileDestination:
    reject_unknown_keys(fields, {"type", "path", "compress"}, path)
    return LocalFileDestination(
        path=required_string(fields, "path", path),
        compress=optional_choice(fields, "compress", SUPPORTED_COMPRESSION_TYPES, path),
    )


def _parse_object_store_destination(fields: Fields, path: str) -> ObjectStoreDestination:
    reject_unknown_keys(fields, {"type", "bucket", "key", "region", "credentials"}, path)
    return ObjectStoreDestination(
        bucket=required_string(fields, "bucket", path),
        key=required_string(fields, "key", path),
        region=required_string(fields, "region", path),
        credentials=_optional_section(fields, "credentials", path, _parse_aws_credentials),
    )


def _parse_database_destination(fields: Fields, path: str) -> DatabaseDestination:
    reject_unknown_keys(fields, {"type", "connection_string", "driver"}, path)
    return DatabaseDestination(
        connection_string=required_string(fields, "connection_string", path),
        driver=required_choice(fields, "driver", SUPPORTED_DATABASE_DRIVERS, path),
    )


def _parse_api_destination(fields: Fields, path: str) -> ApiDestination:
    reject_unknown_keys(fields, {"type", "url", "method", "headers", "auth"}, path)
    return ApiDestination(
        url=required_string(fields, "url", path),
        method=optional_string(fields, "method", path),
        headers=optional_string_map(fields, "headers", path),
        auth=_optional_section(fields, "auth", path, _parse_auth),
    )


_DESTINATION_PARSERS: dict[str, Callable[[Fields, str], OutputDestination]] = {
    LocalFileDestination.TYPE_TAG: _parse_local_file_destination,
    ObjectStoreDestination.TYPE_TAG: _parse_object_store_destination,
    DatabaseDestination.TYPE_TAG: _parse_database_destination,
    ApiDestination.TYPE_TAG: _parse_api_destination,
}


def _parse_output_options(value: object, path: str) -> OutputOptions:
    fields = expect_mapping(value, path)
    reject_unknown_keys(
        fields, {"batch_size", "max_file_size", "split_by_field", "filename_template"}, path
    )
    return OutputOptions(
        batch_size=optional_int(fields, "batch_size", path),
        max_file_size=optional_int(fields, "max_file_size", path),
        split_by_field=optional_string(fields, "split_by_field", path),
        filename_template=optional_string(fields, "filename_template", path),
    )


# Root sections


def _parse_settings(value: object, path: str) -> GlobalSettings:
    fields = expect_mapping(value, path)
    reject_unknown_keys(
        fields,
        {
            "parallel_workers",
            "memory_limit_mb",
            "temp_directory",
            "log_level",
            "timeout_seconds",
            "variables",
        },
        path,
    )
    return GlobalSettings(
        parallel_workers=optional_int(fields, "parallel_workers", path),
        memory_limit_mb=optional_int(fields, "memory_limit_mb", path),
        temp_directory=optional_string(fields, "temp_directory", path),
        log_level=optional_string(fields, "log_level", path),
        timeout_seconds=optional_number(fields, "timeout_seconds", path),
        variables=optional_string_map(fields, "variables", path),
    )


def _parse_join_sources(root: Fields) -> dict[str, DataSourceConfig] | None:
    value = root.get("join_sources")
    if value is None:
        return None
    sources = expect_mapping(value, "join_sources")
    return {
        name: _parse_source(source_value, join_path("join_sources", name))
        for name, source_value in sources.items()
    }


def _parse_lookup_tables(root: Fields) -> tuple[LookupTableConfig, ...] | None:
    value = root.get("lookup_tables")
    if value is None:
        return None
    tables: list[LookupTableConfig] = []
    for index, table_value in enumerate(expect_sequence(value, "lookup_tables")):
        path = join_path("lookup_tables", index)
        fields = expect_mapping(table_value, path)
        reject_unknown_keys(fields, {"name", "path", "entries"}, path)
        tables.append(
            LookupTableConfig(
                name=required_string(fields, "name", path),
                path=optional_string(fields, "path", path),
                entries=optional_json_map(fields, "entries", path),
            )
        )
    return tuple(tables)
