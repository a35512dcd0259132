"""Unit tests for payload decoders."""

from __future__ import annotations

import io
import json
import zipfile
from pathlib import Path

import pytest

from core.errors import SluiceExtractError
from core.pipeline_config import CsvFormat, ExcelFormat, JsonFormat, TsvFormat, ZipFormat
from ingest.record_decoders import (
    decode_records,
    infer_scalar,
    matches_target_pattern,
)


def _zip_payload(entries: dict[str, str]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, mode="w") as archive:
        for name, text in entries.items():
            archive.writestr(name, text)
    return buffer.getvalue()


def test_decode_json_array_yields_one_record_per_object() -> None:
    """A JSON array of two objects should decode to two records."""
    payload = json.dumps([{"id": 1}, {"id": 2}]).encode("utf-8")

    records = decode_records(payload, JsonFormat(), "items.json")

    assert records == [{"id": 1}, {"id": 2}]


def test_decode_json_object_yields_single_record() -> None:
    """A JSON object should decode to exactly one record."""
    assert decode_records(b'{"id": 7}', JsonFormat(), "item.json") == [{"id": 7}]


def test_decode_json_wraps_scalar_elements() -> None:
    """Non-object array elements should keep their value and position."""
    records = decode_records(b'[1, "two"]', JsonFormat(), "values.json")

    assert records == [{"value": 1, "_index": 0}, {"value": "two", "_index": 1}]


def test_decode_json_rejects_scalar_document() -> None:
    """A scalar JSON document is not a record source."""
    with pytest.raises(SluiceExtractError, match="expected array or object"):
        decode_records(b"42", JsonFormat(), "scalar.json")


def test_decode_json_reports_invalid_utf8_with_source_name() -> None:
    """Invalid UTF-8 should name the offending source."""
    with pytest.raises(SluiceExtractError, match="broken.json"):
        decode_records(b"\xff\xfe[]", JsonFormat(), "broken.json")


def test_decode_csv_infers_scalar_types() -> None:
    """CSV cells should be typed as integer, float, boolean, or string."""
    payload = b"id,score,active,name\n1,2.5,yes,Ada\n2,-3,false,Grace\n"

    records = decode_records(payload, CsvFormat(), "people.csv")

    assert records == [
        {"id": 1, "score": 2.5, "active": True, "name": "Ada"},
        {"id": 2, "score": -3, "active": False, "name": "Grace"},
    ]


def test_decode_csv_without_headers_synthesizes_columns() -> None:
    """Headerless CSV should name columns column_0, column_1, ..."""
    records = decode_records(b"a;1\nb;2\n", CsvFormat(delimiter=";", has_headers=False), "x.csv")

    assert records == [{"column_0": "a", "column_1": 1}, {"column_0": "b", "column_1": 2}]


def test_decode_tsv_uses_tab_delimiter() -> None:
    """TSV payloads should split on tabs."""
    records = decode_records(b"k\tv\nx\t1\n", TsvFormat(), "pairs.tsv")

    assert records == [{"k": "x", "v": 1}]


def test_decode_excel_is_not_implemented() -> None:
    """Excel input should fail with a not-implemented error."""
    with pytest.raises(SluiceExtractError, match="not implemented"):
        decode_records(b"", ExcelFormat(), "book.xlsx")


def test_infer_scalar_keeps_non_finite_floats_as_text() -> None:
    """Non-numeric and non-finite values should remain strings."""
    assert infer_scalar("inf") == "inf"
    assert infer_scalar("1e400") == "1e400"
    assert infer_scalar("007") == 7
    assert infer_scalar("hello") == "hello"


def test_matches_target_pattern_supports_prefix_and_suffix() -> None:
    """Patterns should match exact names or a single-star prefix/suffix."""
    assert matches_target_pattern("data_2024.csv", "data_*.csv")
    assert matches_target_pattern("report.json", "report.json")
    assert not matches_target_pattern("notes/data_1.csv", "data_*.csv")
    assert not matches_target_pattern("a.csv", "ab*.csv")


def test_matches_target_pattern_rejects_multiple_stars() -> None:
    """Patterns with more than one star should match nothing."""
    assert not matches_target_pattern("a1b2c", "a*b*c")
    assert not matches_target_pattern("anything", "**")


def test_infer_scalar_types_cells_as_written() -> None:
    """Cells padded with whitespace should stay strings."""
    assert infer_scalar(" 5") == " 5"
    assert infer_scalar("2.5 ") == "2.5 "
    assert infer_scalar(" true") == " true"
    assert infer_scalar("5") == 5


def test_decode_csv_keeps_padded_cells_as_text() -> None:
    """CSV decoding should not trim cell values before typing them."""
    records = decode_records(b"id,name\n 5, bob\n", CsvFormat(has_headers=True), "p.csv")
    assert records == [{"id": " 5", "name": " bob"}]


def test_decode_zip_reads_only_selected_entries() -> None:
    """Zip sources should decode only entries matching target_files."""
    payload = _zip_payload(
        {
            "data_1.csv": "id\n1\n",
            "data_2.json": '[{"id": 2}]',
            "other.csv": "id\n99\n",
            "data_3.txt": "ignored",
        }
    )

    records = decode_records(payload, ZipFormat(target_files=("data_*",)), "bundle.zip")

    assert records == [{"id": 1}, {"id": 2}]


def test_decode_zip_writes_selected_entries_to_extract_path(tmp_path: Path) -> None:
    """Selected entries should also be written beneath extract_path."""
    payload = _zip_payload({"nested/rows.csv": "id\n5\n"})
    extract_dir = tmp_path / "unpacked"

    records = decode_records(
        payload, ZipFormat(target_files=(), extract_path=str(extract_dir)), "bundle.zip"
    )

    assert records == [{"id": 5}]
    assert (extract_dir / "nested" / "rows.csv").read_text(encoding="utf-8") == "id\n5\n"


def test_decode_zip_rejects_traversal_entries(tmp_path: Path) -> None:
    """Entries escaping extract_path should be refused."""
    payload = _zip_payload({"../escape.csv": "id\n1\n"})

    with pytest.raises(SluiceExtractError, match="escapes"):
        decode_records(
            payload,
            ZipFormat(target_files=(), extract_path=str(tmp_path / "unpacked")),
            "bundle.zip",
        )

    assert not (tmp_path / "escape.csv").exists()


def test_decode_zip_rejects_corrupt_archive() -> None:
    """Corrupt archives should raise an extract error."""
    with pytest.raises(SluiceExtractError, match="Invalid zip"):
        decode_records(b"not a zip", ZipFormat(target_files=()), "bad.zip")
