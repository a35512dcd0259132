"""Artifact compression and archive packaging.

Single artifacts are compressed as gzip or bzip2 streams; zip packages one
or more named artifacts into a single container.
"""

from __future__ import annotations

import bz2
import gzip
import io
import zipfile
from dataclasses import dataclass

from core.errors import SluiceLoadError

COMPRESSION_SUFFIXES = {"gzip": ".gz", "bzip2": ".bz2", "zip": ".zip"}


@dataclass(frozen=True)
class Artifact:
    """One encoded output file.

    Attributes:
        name: File name inside the destination or archive.
        payload: Encoded bytes.
        record_count: Records encoded into the payload.
    """

    name: str
    payload: bytes
    record_count: int


def compress_payload(payload: bytes, compression: str) -> bytes:
    """Compress one artifact payload as a gzip or bzip2 stream.

    Raises:
        SluiceLoadError: If the compression type is unsupported here.
    """
    if compression == "gzip":
        return gzip.compress(payload)
    if compression == "bzip2":
        return bz2.compress(payload)
    if compression == "zstd":
        raise SluiceLoadError(
            "zstd compression is not supported. Use gzip, bzip2, or zip."
        )
    raise SluiceLoadError(f"Compression '{compression}' cannot be applied to a single stream.")


def create_zip(artifacts: list[Artifact]) -> bytes:
    """Package artifacts into one deflate-compressed zip archive."""
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, mode="w", compression=zipfile.ZIP_DEFLATED) as archive:
        for artifact in artifacts:
            archive.writestr(artifact.name, artifact.payload)
    return buffer.getvalue()
