"""Typed pipeline configuration model.

Every polymorphic section of a pipeline definition is a closed set of frozen
dataclasses. Each variant carries a ``TYPE_TAG`` matching the ``"type"``
discriminator used in configuration documents, and its field names match the
document keys one-to-one so serialization stays lossless.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, ClassVar, Mapping, Union


@dataclass(frozen=True)
class RetryConfig:
    """Exponential backoff settings for network extraction."""

    max_attempts: int
    initial_delay_ms: int
    max_delay_ms: int
    backoff_multiplier: float


@dataclass(frozen=True)
class AuthCredentials:
    """Credential fields; which ones apply depends on the auth type."""

    username: str | None = None
    password: str | None = None
    token: str | None = None
    api_key: str | None = None
    header_name: str | None = None


@dataclass(frozen=True)
class AuthConfig:
    """Authentication scheme and its credentials."""

    auth_type: str
    credentials: AuthCredentials


@dataclass(frozen=True)
class AwsCredentials:
    """Static object-store credentials."""

    access_key_id: str
    secret_access_key: str
    session_token: str | None = None


# File formats


@dataclass(frozen=True)
class JsonFormat:
    TYPE_TAG: ClassVar[str] = "json"


@dataclass(frozen=True)
class CsvFormat:
    TYPE_TAG: ClassVar[str] = "csv"

    delimiter: str | None = None
    has_headers: bool | None = None


@dataclass(frozen=True)
class TsvFormat:
    TYPE_TAG: ClassVar[str] = "tsv"


@dataclass(frozen=True)
class ExcelFormat:
    TYPE_TAG: ClassVar[str] = "excel"


@dataclass(frozen=True)
class ParquetFormat:
    TYPE_TAG: ClassVar[str] = "parquet"


@dataclass(frozen=True)
class ZipFormat:
    """Zip archive whose entries are decoded by file extension."""

    TYPE_TAG: ClassVar[str] = "zip"

    target_files: tuple[str, ...]
    extract_path: str | None = None


FileFormat = Union[JsonFormat, CsvFormat, TsvFormat, ExcelFormat, ParquetFormat, ZipFormat]


# Data sources


@dataclass(frozen=True)
class ApiSource:
    """HTTP endpoint source."""

    TYPE_TAG: ClassVar[str] = "api"

    url: str
    method: str | None = None
    headers: Mapping[str, str] | None = None
    auth: AuthConfig | None = None
    retry: RetryConfig | None = None
    format: FileFormat | None = None
    timeout_seconds: float | None = None


@dataclass(frozen=True)
class LocalFileSource:
    """File on the local file system."""

    TYPE_TAG: ClassVar[str] = "local_file"

    path: str
    format: FileFormat
    encoding: str | None = None


@dataclass(frozen=True)
class DatabaseSource:
    """SQL query against a database connection."""

    TYPE_TAG: ClassVar[str] = "database"

    connection_string: str
    query: str
    driver: str


@dataclass(frozen=True)
class ObjectStoreSource:
    """Single object in an object-store bucket."""

    TYPE_TAG: ClassVar[str] = "object_store"

    bucket: str
    key: str
    region: str
    credentials: AwsCredentials | None = None
    format: FileFormat | None = None


DataSourceConfig = Union[ApiSource, LocalFileSource, DatabaseSource, ObjectStoreSource]


# Transformations


@dataclass(frozen=True)
class Condition:
    """Gate deciding whether a rule applies to a record."""

    field: str
    operator: str
    value: Any


@dataclass(frozen=True)
class MapTransform:
    TYPE_TAG: ClassVar[str] = "map"

    mapping: Mapping[str, Any]


@dataclass(frozen=True)
class CalculateTransform:
    TYPE_TAG: ClassVar[str] = "calculate"

    expression: str


@dataclass(frozen=True)
class FormatTransform:
    TYPE_TAG: ClassVar[str] = "format"

    template: str


@dataclass(frozen=True)
class ConvertTransform:
    TYPE_TAG: ClassVar[str] = "convert"

    to_type: str


@dataclass(frozen=True)
class FilterTransform:
    TYPE_TAG: ClassVar[str] = "filter"

    condition: str


@dataclass(frozen=True)
class AggregateTransform:
    TYPE_TAG: ClassVar[str] = "aggregate"

    operation: str
    group_by: tuple[str, ...] | None = None


@dataclass(frozen=True)
class JoinTransform:
    TYPE_TAG: ClassVar[str] = "join"

    join_source: str
    join_key: str
    join_type: str


@dataclass(frozen=True)
class CustomTransform:
    TYPE_TAG: ClassVar[str] = "custom"

    function: str
    parameters: Mapping[str, Any] | None = None


@dataclass(frozen=True)
class LookupTransform:
    TYPE_TAG: ClassVar[str] = "lookup"

    table: str


@dataclass(frozen=True)
class UppercaseTransform:
    TYPE_TAG: ClassVar[str] = "uppercase"


@dataclass(frozen=True)
class LowercaseTransform:
    TYPE_TAG: ClassVar[str] = "lowercase"


TransformationKind = Union[
    MapTransform,
    CalculateTransform,
    FormatTransform,
    ConvertTransform,
    FilterTransform,
    AggregateTransform,
    JoinTransform,
    CustomTransform,
    LookupTransform,
    UppercaseTransform,
    LowercaseTransform,
]
BATCH_SCOPED_KINDS = (AggregateTransform, JoinTransform)


@dataclass(frozen=True)
class TransformationRule:
    """One declarative transformation step."""

    name: str
    source_field: str
    transformation: TransformationKind
    target_field: str | None = None
    condition: Condition | None = None

    @property
    def output_field(self) -> str:
        """Field the rule writes; defaults to the source field."""
        return self.target_field or self.source_field

    @property
    def is_batch_scoped(self) -> bool:
        """Return whether the rule needs the whole batch to evaluate."""
        return isinstance(self.transformation, BATCH_SCOPED_KINDS)


# Output


@dataclass(frozen=True)
class CsvOutput:
    TYPE_TAG: ClassVar[str] = "csv"

    delimiter: str | None = None
    quote_char: str | None = None
    headers: bool | None = None
    columns: tuple[str, ...] | None = None


@dataclass(frozen=True)
class JsonOutput:
    TYPE_TAG: ClassVar[str] = "json"

    pretty_print: bool | None = None


@dataclass(frozen=True)
class ExcelOutput:
    TYPE_TAG: ClassVar[str] = "excel"

    sheet_name: str | None = None


@dataclass(frozen=True)
class ParquetOutput:
    TYPE_TAG: ClassVar[str] = "parquet"


@dataclass(frozen=True)
class DatabaseOutput:
    TYPE_TAG: ClassVar[str] = "database"

    table_name: str
    mode: str
    key_columns: tuple[str, ...] | None = None


OutputFormat = Union[CsvOutput, JsonOutput, ExcelOutput, ParquetOutput, DatabaseOutput]


@dataclass(frozen=True)
class LocalFileDestination:
    TYPE_TAG: ClassVar[str] = "local_file"

    path: str
    compress: str | None = None


@dataclass(frozen=True)
class ObjectStoreDestination:
    TYPE_TAG: ClassVar[str] = "object_store"

    bucket: str
    key: str
    region: str
    credentials: AwsCredentials | None = None


@dataclass(frozen=True)
class DatabaseDestination:
    TYPE_TAG: ClassVar[str] = "database"

    connection_string: str
    driver: str


@dataclass(frozen=True)
class ApiDestination:
    TYPE_TAG: ClassVar[str] = "api"

    url: str
    method: str | None = None
    headers: Mapping[str, str] | None = None
    auth: AuthConfig | None = None


OutputDestination = Union[
    LocalFileDestination, ObjectStoreDestination, DatabaseDestination, ApiDestination
]


@dataclass(frozen=True)
class OutputOptions:
    """Optional artifact shaping settings."""

    batch_size: int | None = None
    max_file_size: int | None = None
    split_by_field: str | None = None
    filename_template: str | None = None


@dataclass(frozen=True)
class OutputConfig:
    """Output encoding and destination."""

    format: OutputFormat
    destination: OutputDestination
    options: OutputOptions | None = None


# Pipeline root


@dataclass(frozen=True)
class GlobalSettings:
    """Per-pipeline overrides of runtime behavior."""

    parallel_workers: int | None = None
    memory_limit_mb: int | None = None
    temp_directory: str | None = None
    log_level: str | None = None
    timeout_seconds: float | None = None
    variables: Mapping[str, str] | None = None


@dataclass(frozen=True)
class LookupTableConfig:
    """Lookup table loaded into the cache before transformation.

    Entries come from a JSON object file or a two-column CSV at ``path``,
    from inline ``entries``, or both (inline entries win).
    """

    name: str
    path: str | None = None
    entries: Mapping[str, Any] | None = None


@dataclass(frozen=True)
class PipelineConfig:
    """Validated root object of a pipeline definition."""

    name: str
    data_source: DataSourceConfig
    transformations: tuple[TransformationRule, ...]
    output: OutputConfig
    description: str | None = None
    settings: GlobalSettings | None = None
    join_sources: Mapping[str, DataSourceConfig] | None = None
    lookup_tables: tuple[LookupTableConfig, ...] | None = None
