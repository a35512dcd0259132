"""Shared typed models.

This module defines the record representation and the immutable run-level
models passed between extraction, transformation, and load stages.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping

JsonValue = Any
Record = dict[str, JsonValue]
RecordView = Mapping[str, JsonValue]


@dataclass(frozen=True)
class RunMetadata:
    """Observability metadata produced once per pipeline run.

    Attributes:
        source: Identifier of the extracted source.
        timestamp: UTC time the transformed batch was produced.
        record_count: Number of output records.
    """

    source: str
    timestamp: datetime
    record_count: int


@dataclass(frozen=True)
class ProcessedBatch:
    """Transformed records together with their run metadata.

    Attributes:
        records: Output records in input order.
        metadata: Run metadata, never written into record data.
    """

    records: tuple[Record, ...]
    metadata: RunMetadata


@dataclass(frozen=True)
class LoadReceipt:
    """Summary of a committed output artifact.

    Attributes:
        destination: Path, URI, table, or URL the records were written to.
        record_count: Number of records written.
        artifact_count: Number of encoded artifacts produced.
    """

    destination: str
    record_count: int
    artifact_count: int
