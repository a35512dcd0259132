"""Unit tests for pipeline config parsing."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from core.errors import SluiceConfigError
from core.pipeline_config import (
    ApiSource,
    CsvFormat,
    CsvOutput,
    FilterTransform,
    JsonFormat,
    LocalFileDestination,
    LocalFileSource,
    LookupTransform,
    ZipFormat,
)
from core.pipeline_config_parsing import (
    load_pipeline_config,
    parse_pipeline_config,
    pipeline_config_from_payload,
)
from tests.fixture_paths import fixture_path, fixture_text


def _minimal_payload() -> dict[str, Any]:
    return {
        "name": "minimal",
        "data_source": {
            "type": "local_file",
            "path": "input.json",
            "format": {"type": "json"},
        },
        "transformations": [
            {
                "name": "upper-name",
                "source_field": "name",
                "transformation": {"type": "uppercase"},
            }
        ],
        "output": {
            "format": {"type": "json"},
            "destination": {"type": "local_file", "path": "output.json"},
        },
    }


def test_parse_pipeline_config_builds_typed_model() -> None:
    """Parser should map tagged objects onto their variants."""
    config = parse_pipeline_config(json.dumps(_minimal_payload()))

    assert isinstance(config.data_source, LocalFileSource)
    assert isinstance(config.data_source.format, JsonFormat)
    assert isinstance(config.output.destination, LocalFileDestination)
    assert config.transformations[0].target_field is None


def test_parse_pipeline_config_reads_fixture_sections() -> None:
    """Parser should read auth, retry, conditions, and lookup tables."""
    raw_text = fixture_text("pipelines/customers.json")

    config = parse_pipeline_config(raw_text)

    source = config.data_source
    assert isinstance(source, ApiSource)
    assert source.auth is not None and source.auth.credentials.token == "secret-token"
    assert source.retry is not None and source.retry.max_attempts == 4
    lookup_rule = config.transformations[1]
    assert isinstance(lookup_rule.transformation, LookupTransform)
    assert lookup_rule.condition is not None and lookup_rule.condition.value == ["eu", "us"]
    assert isinstance(config.output.format, CsvOutput)
    assert config.output.format.columns == ("region_name", "sum_total")
    assert config.lookup_tables is not None and config.lookup_tables[0].name == "regions"


def test_parse_pipeline_config_rejects_invalid_json() -> None:
    """Malformed JSON should become a config error."""
    with pytest.raises(SluiceConfigError, match="Invalid JSON"):
        parse_pipeline_config("{not json")


def test_parse_pipeline_config_rejects_unknown_root_key() -> None:
    """Unknown top-level keys should be rejected."""
    payload = _minimal_payload()
    payload["extras"] = True

    with pytest.raises(SluiceConfigError, match="extras"):
        pipeline_config_from_payload(payload)


def test_parse_pipeline_config_rejects_unknown_nested_key() -> None:
    """Unknown keys inside a variant should report their path."""
    payload = _minimal_payload()
    payload["transformations"][0]["transformation"]["mode"] = "loud"

    with pytest.raises(SluiceConfigError) as error_info:
        pipeline_config_from_payload(payload)

    assert error_info.value.field_path == "transformations[0].transformation"


def test_parse_pipeline_config_rejects_unknown_type_tag() -> None:
    """Unknown variant tags should be rejected with the field path."""
    payload = _minimal_payload()
    payload["data_source"]["type"] = "ftp"

    with pytest.raises(SluiceConfigError) as error_info:
        pipeline_config_from_payload(payload)

    assert error_info.value.field_path == "data_source.type"


def test_parse_pipeline_config_requires_rule_source_field() -> None:
    """Missing required rule fields should be reported."""
    payload = _minimal_payload()
    del payload["transformations"][0]["source_field"]

    with pytest.raises(SluiceConfigError) as error_info:
        pipeline_config_from_payload(payload)

    assert error_info.value.field_path == "transformations[0].source_field"


def test_parse_pipeline_config_treats_null_as_absent() -> None:
    """Explicit null optional fields should equal absent ones."""
    payload = _minimal_payload()
    payload["transformations"][0]["target_field"] = None
    payload["settings"] = None

    config = pipeline_config_from_payload(payload)

    assert config.transformations[0].target_field is None
    assert config.settings is None


def test_parse_pipeline_config_reads_zip_and_csv_formats() -> None:
    """Zip and csv file formats should carry their options."""
    payload = _minimal_payload()
    payload["data_source"]["format"] = {
        "type": "zip",
        "target_files": ["*.csv", "extra.json"],
        "extract_path": "unpacked",
    }
    payload["join_sources"] = {
        "regions": {
            "type": "local_file",
            "path": "regions.csv",
            "format": {"type": "csv", "delimiter": ";", "has_headers": False},
        }
    }

    config = pipeline_config_from_payload(payload)

    source = config.data_source
    assert isinstance(source, LocalFileSource)
    assert isinstance(source.format, ZipFormat)
    assert source.format.target_files == ("*.csv", "extra.json")
    join_source = (config.join_sources or {})["regions"]
    assert isinstance(join_source, LocalFileSource)
    assert join_source.format == CsvFormat(delimiter=";", has_headers=False)


def test_load_pipeline_config_reads_yaml() -> None:
    """YAML files should parse into the same model as JSON."""
    config = load_pipeline_config(str(fixture_path("pipelines/customers.yaml")))

    assert config.name == "customer-cleanup-yaml"
    assert isinstance(config.transformations[1].transformation, FilterTransform)


def test_load_pipeline_config_validates_semantics() -> None:
    """Loading should run semantic validation after parsing."""
    with pytest.raises(SluiceConfigError) as error_info:
        load_pipeline_config(str(fixture_path("pipelines/invalid_rule.json")))

    assert error_info.value.field_path == "transformations[0].transformation.join_source"


def test_load_pipeline_config_raises_for_missing_file(tmp_path: Path) -> None:
    """Missing config files should fail with a config error."""
    with pytest.raises(SluiceConfigError, match="does not exist"):
        load_pipeline_config(str(tmp_path / "missing.json"))
