"""Destination writers for encoded artifacts and record batches.

Local files are committed atomically: every artifact is first written to a
temporary file, beside its target unless a staging directory is given, and
only renamed once all writes succeed.
"""

from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Sequence

import requests

from core.constants import DEFAULT_CALLBACK_METHOD
from core.errors import SluiceHttpError, SluiceLoadError
from core.logging_config import get_logger
from core.pipeline_config import ApiDestination, ObjectStoreDestination
from core.types import Record
from ingest.http_source import send_json_payload
from ingest.object_store import ObjectStoreAdapter
from store.archiver import Artifact

_LOGGER = get_logger(__name__)


def write_local_artifacts(
    directory: Path,
    artifacts: Sequence[Artifact],
    *,
    temp_directory: Path | None = None,
) -> list[Path]:
    """Atomically write artifacts into a directory.

    Every artifact is staged first and only renamed into place once all of
    them are written, so a failed write commits nothing. Renames happen one
    artifact at a time; if one fails, artifacts already renamed stay
    committed and the error names how many.

    Args:
        directory: Target directory; created when missing.
        artifacts: Artifacts to write.
        temp_directory: Optional staging directory. It must be on the same
            filesystem as ``directory`` for the final rename to succeed.

    Returns:
        Final artifact paths.

    Raises:
        SluiceLoadError: If staging or committing fails. Staged temporary
            files are removed either way.
    """
    staging_directory = temp_directory or directory
    staged: list[Path] = []
    final_paths: list[Path] = []
    try:
        try:
            directory.mkdir(parents=True, exist_ok=True)
            staging_directory.mkdir(parents=True, exist_ok=True)
            for artifact in artifacts:
                _stage_file(staging_directory, artifact, staged)
        except OSError as error:
            raise SluiceLoadError(
                f"Failed to write output under {directory}: {error}. "
                "Check the destination path and permissions."
            ) from error
        try:
            for temp_path, artifact in zip(staged, artifacts):
                final_path = directory / artifact.name
                os.replace(temp_path, final_path)
                final_paths.append(final_path)
        except OSError as error:
            raise SluiceLoadError(
                f"Failed to commit output under {directory}: {error}. "
                f"{len(final_paths)} of {len(artifacts)} artifact(s) were already committed."
            ) from error
    finally:
        _discard_staged(staged)
    return final_paths


def put_object_artifacts(
    destination: ObjectStoreDestination,
    artifacts: Sequence[Artifact],
    object_store: ObjectStoreAdapter,
) -> list[str]:
    """Upload artifacts next to the configured key.

    Returns:
        Object URIs written.
    """
    key_prefix = destination.key.rsplit("/", 1)[0] + "/" if "/" in destination.key else ""
    uris: list[str] = []
    for artifact in artifacts:
        object_key = f"{key_prefix}{artifact.name}"
        object_store.put(
            destination.bucket,
            object_key,
            destination.region,
            destination.credentials,
            artifact.payload,
        )
        uris.append(f"s3://{destination.bucket}/{object_key}")
    return uris


def send_api_batches(
    destination: ApiDestination,
    records: Sequence[Record],
    *,
    batch_size: int | None,
    session: requests.Session,
    timeout_seconds: float,
) -> int:
    """POST records as JSON arrays, ``batch_size`` records per request.

    Returns:
        Number of requests sent.

    Raises:
        SluiceLoadError: If a request fails or is answered with a non-2xx status.
    """
    size = batch_size or max(1, len(records))
    batches = [list(records[start : start + size]) for start in range(0, len(records), size)]
    method = destination.method or DEFAULT_CALLBACK_METHOD
    for batch_index, batch in enumerate(batches):
        try:
            send_json_payload(
                url=destination.url,
                method=method,
                headers=destination.headers,
                auth=destination.auth,
                payload=batch,
                session=session,
                timeout_seconds=timeout_seconds,
            )
        except SluiceHttpError as error:
            raise SluiceLoadError(
                f"API destination rejected batch {batch_index + 1}/{len(batches)} "
                f"with HTTP {error.status_code} from {destination.url}."
            ) from error
        except requests.RequestException as error:
            raise SluiceLoadError(
                f"Failed to send batch {batch_index + 1}/{len(batches)} "
                f"to {destination.url}: {error}."
            ) from error
        _LOGGER.info(
            "api_batch_sent",
            url=destination.url,
            batch=batch_index + 1,
            batch_count=len(batches),
            record_count=len(batch),
        )
    return len(batches)


def _stage_file(directory: Path, artifact: Artifact, staged: list[Path]) -> None:
    file_descriptor, temp_name = tempfile.mkstemp(
        prefix=f".{artifact.name}.", suffix=".tmp", dir=directory
    )
    staged.append(Path(temp_name))
    with os.fdopen(file_descriptor, "wb") as handle:
        handle.write(artifact.payload)


def _discard_staged(staged: Sequence[Path]) -> None:
    for temp_path in staged:
        temp_path.unlink(missing_ok=True)
