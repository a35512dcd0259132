"""Load layer entry point.

This module dispatches transformed records to the configured output: encoded
artifacts for file and object-store destinations, row writes for databases,
and JSON batches for API callbacks.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Callable, Mapping, Sequence

import requests

from core.config import SluiceConfig
from core.constants import DEFAULT_SPLIT_FILENAME_TEMPLATE
from core.errors import SluiceLoadError
from core.logging_config import get_logger
from core.pipeline_config import (
    ApiDestination,
    DatabaseDestination,
    DatabaseOutput,
    LocalFileDestination,
    ObjectStoreDestination,
    OutputConfig,
)
from core.types import LoadReceipt, Record
from core.variables import substitute_variables
from ingest.database import (
    DatabaseAdapter,
    SqlAlchemyDatabase,
    ensure_supported_driver,
    normalize_connection_url,
)
from ingest.http_source import new_session
from ingest.object_store import Boto3ObjectStore, ObjectStoreAdapter
from store.archiver import COMPRESSION_SUFFIXES, Artifact, compress_payload, create_zip
from store.destinations import put_object_artifacts, send_api_batches, write_local_artifacts
from store.record_encoders import FILE_SUFFIXES, encode_records
from transforms.value_conversion import display_text

_LOGGER = get_logger(__name__)

_UNSAFE_NAME_CHARACTERS = re.compile(r"[^A-Za-z0-9._-]+")


@dataclass
class LoadContext:
    """Collaborators and run settings for one load.

    Attributes:
        runtime: Runtime configuration.
        session: requests session for API destinations.
        object_store: Object-store adapter.
        database: Database adapter.
        variables: ``${NAME}`` substitutions from pipeline settings.
        timeout_seconds: Per-request timeout override.
        temp_directory: Staging directory for local file writes.
    """

    runtime: SluiceConfig
    session: requests.Session
    object_store: ObjectStoreAdapter
    database: DatabaseAdapter
    variables: Mapping[str, str] | None = None
    timeout_seconds: float | None = None
    temp_directory: Path | None = None


def load(
    records: Sequence[Record],
    output: OutputConfig,
    *,
    runtime: SluiceConfig,
    session: requests.Session | None = None,
    object_store: ObjectStoreAdapter | None = None,
    database: DatabaseAdapter | None = None,
    variables: Mapping[str, str] | None = None,
    timeout_seconds: float | None = None,
    temp_directory: str | Path | None = None,
) -> LoadReceipt:
    """Persist records to the configured output.

    Args:
        records: Transformed records.
        output: Output config.
        runtime: Runtime configuration.
        session: Optional requests session for API destinations.
        object_store: Optional object-store adapter; boto3 by default.
        database: Optional database adapter; SQLAlchemy by default.
        variables: Optional ``${NAME}`` substitutions for the output path.
        timeout_seconds: Optional per-request timeout override.
        temp_directory: Optional staging directory for local file writes;
            defaults to the target directory.

    Returns:
        Receipt describing the committed output.

    Raises:
        SluiceLoadError: If encoding or writing fails.
    """
    context = LoadContext(
        runtime=runtime,
        session=session or new_session(),
        object_store=object_store or Boto3ObjectStore(runtime),
        database=database or SqlAlchemyDatabase(),
        variables=variables,
        timeout_seconds=timeout_seconds,
        temp_directory=Path(temp_directory).expanduser() if temp_directory else None,
    )
    writer = _DESTINATION_WRITERS.get(type(output.destination))
    if writer is None:
        raise SluiceLoadError(
            f"Unsupported output destination {type(output.destination).__name__}."
        )
    receipt = writer(records, output, output.destination, context)
    _LOGGER.info(
        "load_completed",
        destination=receipt.destination,
        record_count=receipt.record_count,
        artifact_count=receipt.artifact_count,
    )
    return receipt


def build_artifacts(
    records: Sequence[Record],
    output: OutputConfig,
    base_name: str,
) -> list[Artifact]:
    """Encode records into named artifacts, splitting by field when configured.

    Args:
        records: Records to encode.
        output: Output config with format and options.
        base_name: File name of the configured destination.

    Returns:
        Artifacts in first-seen split-value order.

    Raises:
        SluiceLoadError: If encoding fails or the filename template is invalid.
    """
    options = output.options
    split_field = options.split_by_field if options else None
    if not split_field:
        groups = [(base_name, list(records))]
    else:
        template = (options.filename_template if options else None) or (
            DEFAULT_SPLIT_FILENAME_TEMPLATE
        )
        groups = _split_groups(records, split_field, template, base_name)
    return [
        Artifact(name=name, payload=encode_records(group, output.format), record_count=len(group))
        for name, group in groups
    ]


def _split_groups(
    records: Sequence[Record],
    split_field: str,
    template: str,
    base_name: str,
) -> list[tuple[str, list[Record]]]:
    base = PurePosixPath(base_name)
    groups: dict[str, list[Record]] = {}
    for record in records:
        value_text = display_text(record.get(split_field)) or "null"
        groups.setdefault(value_text, []).append(record)
    named: list[tuple[str, list[Record]]] = []
    for value_text, group in groups.items():
        safe_value = _UNSAFE_NAME_CHARACTERS.sub("_", value_text)
        try:
            name = template.format(stem=base.stem, value=safe_value, suffix=base.suffix)
        except (KeyError, IndexError, ValueError) as error:
            raise SluiceLoadError(
                f"Invalid filename_template {template!r}: {error}. "
                "Use the {stem}, {value}, and {suffix} placeholders."
            ) from error
        named.append((name, group))
    return named


def _apply_compression(
    artifacts: list[Artifact], compression: str | None, archive_name: str
) -> list[Artifact]:
    """Compress artifacts; zip packages them all into one archive."""
    if compression is None:
        return artifacts
    if compression == "zip":
        record_count = sum(artifact.record_count for artifact in artifacts)
        return [Artifact(archive_name, create_zip(artifacts), record_count)]
    suffix = COMPRESSION_SUFFIXES.get(compression, "")
    return [
        Artifact(
            name=artifact.name if artifact.name.endswith(suffix) else f"{artifact.name}{suffix}",
            payload=compress_payload(artifact.payload, compression),
            record_count=artifact.record_count,
        )
        for artifact in artifacts
    ]


def _check_sizes(artifacts: Sequence[Artifact], output: OutputConfig) -> None:
    max_size = output.options.max_file_size if output.options else None
    if max_size is None:
        return
    for artifact in artifacts:
        if len(artifact.payload) > max_size:
            raise SluiceLoadError(
                f"Artifact {artifact.name} is {len(artifact.payload)} bytes, above "
                f"max_file_size {max_size}. Raise the limit or split the output."
            )


def _write_local_file(
    records: Sequence[Record],
    output: OutputConfig,
    destination: LocalFileDestination,
    context: LoadContext,
) -> LoadReceipt:
    raw_path = substitute_variables(destination.path, context.variables, "output.destination.path")
    target = Path(raw_path).expanduser()
    base_name = target.name
    if destination.compress == "zip" and target.suffix == ".zip":
        base_name = target.stem + FILE_SUFFIXES.get(output.format.TYPE_TAG, "")
    artifacts = build_artifacts(records, output, base_name)
    if destination.compress == "zip" and target.suffix != ".zip":
        archive_name = f"{target.name}.zip"
    else:
        archive_name = target.name
    artifacts = _apply_compression(artifacts, destination.compress, archive_name)
    _check_sizes(artifacts, output)
    paths = write_local_artifacts(
        target.parent, artifacts, temp_directory=context.temp_directory
    )
    receipt_path = paths[0] if len(paths) == 1 else target.parent
    return LoadReceipt(
        destination=str(receipt_path), record_count=len(records), artifact_count=len(paths)
    )


def _write_object_store(
    records: Sequence[Record],
    output: OutputConfig,
    destination: ObjectStoreDestination,
    context: LoadContext,
) -> LoadReceipt:
    artifacts = build_artifacts(records, output, PurePosixPath(destination.key).name)
    _check_sizes(artifacts, output)
    uris = put_object_artifacts(destination, artifacts, context.object_store)
    receipt_uri = uris[0] if len(uris) == 1 else f"s3://{destination.bucket}/{destination.key}"
    return LoadReceipt(destination=receipt_uri, record_count=len(records), artifact_count=len(uris))


def _write_database(
    records: Sequence[Record],
    output: OutputConfig,
    destination: DatabaseDestination,
    context: LoadContext,
) -> LoadReceipt:
    output_format = output.format
    if not isinstance(output_format, DatabaseOutput):
        raise SluiceLoadError("A database destination requires the database output format.")
    ensure_supported_driver(destination.driver, SluiceLoadError)
    context.database.write(
        normalize_connection_url(destination.connection_string, destination.driver),
        output_format.table_name,
        output_format.mode,
        records,
        output_format.key_columns or (),
    )
    return LoadReceipt(
        destination=f"{destination.driver}:{output_format.table_name}",
        record_count=len(records),
        artifact_count=1,
    )


def _write_api(
    records: Sequence[Record],
    output: OutputConfig,
    destination: ApiDestination,
    context: LoadContext,
) -> LoadReceipt:
    request_count = send_api_batches(
        destination,
        records,
        batch_size=output.options.batch_size if output.options else None,
        session=context.session,
        timeout_seconds=context.timeout_seconds or context.runtime.http_timeout_seconds,
    )
    return LoadReceipt(
        destination=destination.url, record_count=len(records), artifact_count=request_count
    )


_DESTINATION_WRITERS: dict[type, Callable[..., LoadReceipt]] = {
    LocalFileDestination: _write_local_file,
    ObjectStoreDestination: _write_object_store,
    DatabaseDestination: _write_database,
    ApiDestination: _write_api,
}
