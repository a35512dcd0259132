"""Format-specific decoding of raw payloads into records.

This module turns JSON, delimited text, and zip-packaged payloads into the
uniform record representation. Every source variant funnels its bytes here.
"""

from __future__ import annotations

import csv
import io
import json
import math
import re
import zipfile
from pathlib import Path, PurePosixPath

from core.constants import (
    DEFAULT_CSV_DELIMITER,
    DEFAULT_TSV_DELIMITER,
    FALSE_LITERALS,
    SYNTHETIC_COLUMN_PREFIX,
    TRUE_LITERALS,
)
from core.errors import SluiceExtractError
from core.logging_config import get_logger
from core.pipeline_config import (
    CsvFormat,
    ExcelFormat,
    FileFormat,
    JsonFormat,
    ParquetFormat,
    TsvFormat,
    ZipFormat,
)
from core.types import JsonValue, Record

_LOGGER = get_logger(__name__)

_INTEGER_PATTERN = re.compile(r"[+-]?\d+")
_FLOAT_PATTERN = re.compile(r"[+-]?(\d+\.\d*|\.\d+|\d+)([eE][+-]?\d+)?")


def decode_records(payload: bytes, file_format: FileFormat, source_name: str) -> list[Record]:
    """Decode a raw payload according to its declared format.

    Args:
        payload: Raw bytes read from a file, response, or object.
        file_format: Declared payload format.
        source_name: File, entry, or URL name used in error messages.

    Returns:
        Decoded records in payload order.

    Raises:
        SluiceExtractError: If the payload cannot be decoded or the format
            is not implemented.
    """
    if isinstance(file_format, JsonFormat):
        return decode_json_records(payload, source_name)
    if isinstance(file_format, CsvFormat):
        return decode_delimited_records(
            payload,
            source_name,
            delimiter=file_format.delimiter or DEFAULT_CSV_DELIMITER,
            has_headers=True if file_format.has_headers is None else file_format.has_headers,
        )
    if isinstance(file_format, TsvFormat):
        return decode_delimited_records(
            payload, source_name, delimiter=DEFAULT_TSV_DELIMITER, has_headers=True
        )
    if isinstance(file_format, ZipFormat):
        return decode_zip_records(payload, file_format, source_name)
    if isinstance(file_format, (ExcelFormat, ParquetFormat)):
        raise SluiceExtractError(
            f"Reading {file_format.TYPE_TAG} input is not implemented ({source_name}). "
            "Convert the source to csv or json."
        )
    raise SluiceExtractError(f"Unsupported file format {file_format!r} for {source_name}.")


def decode_json_records(payload: bytes, source_name: str) -> list[Record]:
    """Decode a JSON array or object into records.

    Array elements that are not objects become ``{"value": v, "_index": i}``.
    """
    document = _parse_json_document(_decode_utf8(payload, source_name), source_name)
    if isinstance(document, list):
        return [_json_item_to_record(item, index) for index, item in enumerate(document)]
    if isinstance(document, dict):
        return [dict(document)]
    raise SluiceExtractError(
        f"Unsupported JSON shape in {source_name}: expected array or object, "
        f"got {type(document).__name__}."
    )


def decode_delimited_records(
    payload: bytes,
    source_name: str,
    *,
    delimiter: str,
    has_headers: bool,
) -> list[Record]:
    """Decode delimited text with opportunistic value typing.

    Args:
        payload: Raw UTF-8 bytes.
        source_name: Name used in error messages.
        delimiter: Single-character field delimiter.
        has_headers: Whether the first row holds column names. When false,
            columns are named ``column_0``, ``column_1``, ...

    Returns:
        One record per data row.
    """
    text = _decode_utf8(payload, source_name)
    reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter)
    try:
        rows = [row for row in reader if row]
    except csv.Error as error:
        raise SluiceExtractError(
            f"Failed to parse delimited text in {source_name}: {error}."
        ) from error
    if not rows:
        return []
    if has_headers:
        headers, data_rows = rows[0], rows[1:]
    else:
        width = max(len(row) for row in rows)
        headers = [f"{SYNTHETIC_COLUMN_PREFIX}{index}" for index in range(width)]
        data_rows = rows
    records: list[Record] = []
    for row in data_rows:
        records.append(
            {header: infer_scalar(value) for header, value in zip(headers, row)}
        )
    return records


def infer_scalar(text: str) -> JsonValue:
    """Type a delimited-text cell: integer, then float, then boolean, else string.

    Cells are typed as written; surrounding whitespace keeps a cell a string.
    """
    if _INTEGER_PATTERN.fullmatch(text):
        return int(text)
    if _FLOAT_PATTERN.fullmatch(text):
        number = float(text)
        if math.isfinite(number):
            return number
    lowered = text.lower()
    if lowered in TRUE_LITERALS:
        return True
    if lowered in FALSE_LITERALS:
        return False
    return text


def matches_target_pattern(name: str, pattern: str) -> bool:
    """Match an entry name against ``prefix*suffix`` or an exact name.

    Patterns with more than one ``*`` match nothing.
    """
    if "*" not in pattern:
        return name == pattern
    if pattern.count("*") > 1:
        return False
    prefix, suffix = pattern.split("*", 1)
    return (
        len(name) >= len(prefix) + len(suffix)
        and name.startswith(prefix)
        and name.endswith(suffix)
    )


def decode_zip_records(payload: bytes, file_format: ZipFormat, source_name: str) -> list[Record]:
    """Decode selected csv/json entries of a zip archive.

    Entries are selected by ``target_files`` (all entries when empty) and
    decoded by extension; other entries are skipped.
    """
    try:
        archive = zipfile.ZipFile(io.BytesIO(payload))
    except zipfile.BadZipFile as error:
        raise SluiceExtractError(f"Invalid zip archive {source_name}: {error}.") from error
    records: list[Record] = []
    with archive:
        for entry in archive.infolist():
            if entry.is_dir() or not _is_selected(entry.filename, file_format.target_files):
                continue
            entry_format = _entry_format(entry.filename)
            if entry_format is None:
                _LOGGER.debug("zip_entry_skipped", archive=source_name, entry=entry.filename)
                continue
            entry_bytes = archive.read(entry)
            if file_format.extract_path:
                _write_extracted_entry(Path(file_format.extract_path), entry.filename, entry_bytes)
            entry_name = f"{source_name}!{entry.filename}"
            if isinstance(entry_format, JsonFormat):
                records.extend(_decode_zip_json_entry(entry_bytes, entry_name))
            else:
                records.extend(decode_records(entry_bytes, entry_format, entry_name))
    return records


def _decode_zip_json_entry(entry_bytes: bytes, entry_name: str) -> list[Record]:
    """Decode a JSON entry, skipping scalar documents."""
    document = _parse_json_document(_decode_utf8(entry_bytes, entry_name), entry_name)
    if isinstance(document, list):
        return [_json_item_to_record(item, index) for index, item in enumerate(document)]
    if isinstance(document, dict):
        return [dict(document)]
    _LOGGER.debug("zip_entry_skipped", entry=entry_name, reason="scalar_json")
    return []


def _is_selected(name: str, target_files: tuple[str, ...]) -> bool:
    if not target_files:
        return True
    return any(matches_target_pattern(name, pattern) for pattern in target_files)


def _entry_format(name: str) -> FileFormat | None:
    suffix = PurePosixPath(name).suffix.lower()
    if suffix == ".csv":
        return CsvFormat()
    if suffix == ".json":
        return JsonFormat()
    return None


def _write_extracted_entry(extract_dir: Path, entry_name: str, entry_bytes: bytes) -> None:
    """Write a selected entry beneath ``extract_dir``, rejecting traversal."""
    root = extract_dir.expanduser().resolve()
    target = (root / entry_name).resolve()
    if root != target and root not in target.parents:
        raise SluiceExtractError(
            f"Zip entry {entry_name!r} escapes extract_path {root}. Refusing to extract it."
        )
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(entry_bytes)
    except OSError as error:
        raise SluiceExtractError(
            f"Failed to extract zip entry {entry_name!r} to {target}: {error}."
        ) from error


def _json_item_to_record(item: JsonValue, index: int) -> Record:
    if isinstance(item, dict):
        return dict(item)
    return {"value": item, "_index": index}


def _parse_json_document(text: str, source_name: str) -> JsonValue:
    try:
        return json.loads(text)
    except json.JSONDecodeError as error:
        raise SluiceExtractError(
            f"Failed to parse JSON in {source_name} at line {error.lineno}, "
            f"column {error.colno}: {error.msg}."
        ) from error


def _decode_utf8(payload: bytes, source_name: str) -> str:
    try:
        return payload.decode("utf-8")
    except UnicodeDecodeError as error:
        raise SluiceExtractError(
            f"Invalid UTF-8 content in {source_name} at byte {error.start}. "
            "Re-encode the source as UTF-8."
        ) from error
