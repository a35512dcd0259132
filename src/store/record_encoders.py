"""Output encoders turning records into artifact bytes.

This module renders csv, json, and parquet payloads. Database output has no
byte form and is handled by the database destination instead.
"""

from __future__ import annotations

import csv
import io
import json
from typing import Sequence

from core.constants import DEFAULT_CSV_DELIMITER, DEFAULT_CSV_QUOTE_CHAR
from core.errors import SluiceDependencyError, SluiceLoadError
from core.pipeline_config import CsvOutput, ExcelOutput, JsonOutput, OutputFormat, ParquetOutput
from core.types import Record
from transforms.value_conversion import display_text

FILE_SUFFIXES = {
    CsvOutput.TYPE_TAG: ".csv",
    JsonOutput.TYPE_TAG: ".json",
    ExcelOutput.TYPE_TAG: ".xlsx",
    ParquetOutput.TYPE_TAG: ".parquet",
}


def encode_records(records: Sequence[Record], output_format: OutputFormat) -> bytes:
    """Encode records with the configured output format.

    Args:
        records: Records to encode.
        output_format: Output format config.

    Returns:
        Encoded artifact bytes.

    Raises:
        SluiceLoadError: If the format is not implemented or encoding fails.
    """
    if isinstance(output_format, CsvOutput):
        return encode_csv(records, output_format)
    if isinstance(output_format, JsonOutput):
        return encode_json(records, output_format)
    if isinstance(output_format, ParquetOutput):
        return encode_parquet(records)
    if isinstance(output_format, ExcelOutput):
        raise SluiceLoadError(
            "Writing excel output is not implemented. Use csv, json, or parquet output."
        )
    raise SluiceLoadError(
        f"Output format '{output_format.TYPE_TAG}' has no file encoding. "
        "Use a database destination for database output."
    )


def record_columns(records: Sequence[Record], declared: Sequence[str] | None = None) -> list[str]:
    """Return declared columns, or the union of record keys in first-seen order."""
    if declared:
        return list(declared)
    columns: dict[str, None] = {}
    for record in records:
        for key in record:
            columns.setdefault(key, None)
    return list(columns)


def encode_csv(records: Sequence[Record], output_format: CsvOutput) -> bytes:
    """Encode records as delimited text.

    Each column maps to ``record[column]``; a missing field writes an empty
    string, so the column set never depends on a record's own keys.
    """
    columns = record_columns(records, output_format.columns)
    buffer = io.StringIO()
    writer = csv.writer(
        buffer,
        delimiter=output_format.delimiter or DEFAULT_CSV_DELIMITER,
        quotechar=output_format.quote_char or DEFAULT_CSV_QUOTE_CHAR,
        lineterminator="\n",
    )
    if output_format.headers is not False:
        writer.writerow(columns)
    for record in records:
        writer.writerow([display_text(record.get(column)) for column in columns])
    return buffer.getvalue().encode("utf-8")


def encode_json(records: Sequence[Record], output_format: JsonOutput) -> bytes:
    """Encode records as a JSON array, pretty or compact."""
    try:
        if output_format.pretty_print:
            text = json.dumps(list(records), indent=2, ensure_ascii=False)
        else:
            text = json.dumps(list(records), separators=(",", ":"), ensure_ascii=False)
    except (TypeError, ValueError) as error:
        raise SluiceLoadError(f"Failed to encode records as JSON: {error}.") from error
    return text.encode("utf-8")


def encode_parquet(records: Sequence[Record]) -> bytes:
    """Encode records as a parquet file.

    Raises:
        SluiceDependencyError: If pyarrow is missing.
        SluiceLoadError: If column values cannot form an Arrow table.
    """
    try:
        import pyarrow as pa
        import pyarrow.parquet as pq
    except ImportError as error:
        raise SluiceDependencyError(
            "Parquet output requires pyarrow, but it is not installed. "
            "Install pyarrow to write parquet files."
        ) from error
    columns = record_columns(records)
    try:
        table = pa.table({column: [record.get(column) for record in records] for column in columns})
        sink = pa.BufferOutputStream()
        pq.write_table(table, sink)
    except (pa.ArrowException, TypeError, ValueError) as error:
        raise SluiceLoadError(
            f"Failed to encode records as parquet: {error}. "
            "Convert mixed-type fields to a single type first."
        ) from error
    return bytes(sink.getvalue().to_pybytes())
