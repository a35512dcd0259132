"""Extraction layer entry point.

This module turns a data source config into a list of records by
dispatching on the source variant. Collaborators (HTTP session, object
store, database) are injected so callers and tests can replace them.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping

import requests

from core.cancellation import CancellationToken
from core.config import SluiceConfig
from core.errors import SluiceExtractError
from core.logging_config import get_logger
from core.pipeline_config import (
    ApiSource,
    DatabaseSource,
    DataSourceConfig,
    JsonFormat,
    LocalFileSource,
    ObjectStoreSource,
)
from core.types import Record
from core.variables import substitute_variables
from ingest.database import (
    DatabaseAdapter,
    SqlAlchemyDatabase,
    ensure_supported_driver,
    normalize_connection_url,
)
from ingest.http_source import fetch_api_payload, new_session
from ingest.object_store import Boto3ObjectStore, ObjectStoreAdapter
from ingest.record_decoders import decode_records
from ingest.retry import WaitFn

_LOGGER = get_logger(__name__)


@dataclass
class ExtractionContext:
    """Collaborators and run settings shared by source readers.

    Attributes:
        runtime: Runtime configuration.
        cancellation: Run cancellation token.
        session: requests session for API sources.
        object_store: Object-store adapter.
        database: Database adapter.
        variables: ``${NAME}`` substitutions from pipeline settings.
        timeout_seconds: Per-request timeout override from pipeline settings.
        wait: Optional backoff wait function.
        field_prefix: Config path of the source, used in error messages.
    """

    runtime: SluiceConfig
    cancellation: CancellationToken
    session: requests.Session
    object_store: ObjectStoreAdapter
    database: DatabaseAdapter
    variables: Mapping[str, str] | None = None
    timeout_seconds: float | None = None
    wait: WaitFn | None = None
    field_prefix: str = "data_source"


def extract(
    source: DataSourceConfig,
    *,
    runtime: SluiceConfig,
    cancellation: CancellationToken | None = None,
    session: requests.Session | None = None,
    object_store: ObjectStoreAdapter | None = None,
    database: DatabaseAdapter | None = None,
    variables: Mapping[str, str] | None = None,
    timeout_seconds: float | None = None,
    wait: WaitFn | None = None,
) -> list[Record]:
    """Extract records from a configured source.

    Args:
        source: Data source config.
        runtime: Runtime configuration.
        cancellation: Optional run cancellation token.
        session: Optional requests session; a new one is created when absent.
        object_store: Optional object-store adapter; boto3 by default.
        database: Optional database adapter; SQLAlchemy by default.
        variables: Optional ``${NAME}`` substitutions.
        timeout_seconds: Optional per-request timeout override.
        wait: Optional backoff wait function.

    Returns:
        Extracted records in source order.

    Raises:
        SluiceExtractError: If acquisition or decoding fails.
        SluiceAuthError: If API credentials are invalid.
        SluiceConfigError: If a placeholder names an undefined variable.
    """
    context = ExtractionContext(
        runtime=runtime,
        cancellation=cancellation or CancellationToken(),
        session=session or new_session(),
        object_store=object_store or Boto3ObjectStore(runtime),
        database=database or SqlAlchemyDatabase(),
        variables=variables,
        timeout_seconds=timeout_seconds,
        wait=wait,
    )
    return extract_with_context(source, context)


def extract_with_context(source: DataSourceConfig, context: ExtractionContext) -> list[Record]:
    """Extract records using an existing collaborator context."""
    context.cancellation.raise_if_cancelled("extraction")
    reader = _SOURCE_READERS.get(type(source))
    if reader is None:
        raise SluiceExtractError(f"Unsupported data source {type(source).__name__}.")
    records = reader(source, context)
    _LOGGER.info("extract_completed", source=describe_source(source), record_count=len(records))
    return records


def describe_source(source: DataSourceConfig) -> str:
    """Return a short, credential-free identifier for a source."""
    if isinstance(source, ApiSource):
        return source.url
    if isinstance(source, LocalFileSource):
        return source.path
    if isinstance(source, DatabaseSource):
        return f"{source.driver}:{source.query}"
    if isinstance(source, ObjectStoreSource):
        return f"s3://{source.bucket}/{source.key}"
    return type(source).__name__


def _read_api(source: ApiSource, context: ExtractionContext) -> list[Record]:
    url = substitute_variables(source.url, context.variables, f"{context.field_prefix}.url")
    timeout = (
        source.timeout_seconds or context.timeout_seconds or context.runtime.http_timeout_seconds
    )
    payload = fetch_api_payload(
        source,
        url=url,
        session=context.session,
        timeout_seconds=timeout,
        cancellation=context.cancellation,
        wait=context.wait,
    )
    return decode_records(payload, source.format or JsonFormat(), url)


def _read_local_file(source: LocalFileSource, context: ExtractionContext) -> list[Record]:
    raw_path = substitute_variables(source.path, context.variables, f"{context.field_prefix}.path")
    file_path = Path(raw_path).expanduser()
    if not file_path.is_file():
        raise SluiceExtractError(
            f"Failed to read source at {file_path}: file does not exist. "
            "Provide an existing file path."
        )
    try:
        payload = file_path.read_bytes()
    except OSError as error:
        raise SluiceExtractError(f"Failed to read source at {file_path}: {error}.") from error
    payload = _transcode_to_utf8(payload, source.encoding, str(file_path))
    return decode_records(payload, source.format, str(file_path))


def _read_database(source: DatabaseSource, context: ExtractionContext) -> list[Record]:
    ensure_supported_driver(source.driver, SluiceExtractError)
    url = normalize_connection_url(source.connection_string, source.driver)
    return context.database.query(url, source.query)


def _read_object_store(source: ObjectStoreSource, context: ExtractionContext) -> list[Record]:
    payload = context.object_store.get(source.bucket, source.key, source.region, source.credentials)
    source_name = f"s3://{source.bucket}/{source.key}"
    return decode_records(payload, source.format or JsonFormat(), source_name)


def _transcode_to_utf8(payload: bytes, encoding: str | None, source_name: str) -> bytes:
    """Re-encode a non-UTF-8 file so decoders can assume UTF-8."""
    if encoding is None or encoding.replace("-", "").replace("_", "").lower() == "utf8":
        return payload
    try:
        return payload.decode(encoding).encode("utf-8")
    except LookupError as error:
        raise SluiceExtractError(
            f"Unknown encoding '{encoding}' for {source_name}. Use a Python codec name."
        ) from error
    except UnicodeDecodeError as error:
        raise SluiceExtractError(
            f"Content of {source_name} is not valid {encoding} at byte {error.start}."
        ) from error


_SOURCE_READERS: dict[type, Callable[..., list[Record]]] = {
    ApiSource: _read_api,
    LocalFileSource: _read_local_file,
    DatabaseSource: _read_database,
    ObjectStoreSource: _read_object_store,
}
