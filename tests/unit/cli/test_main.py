"""Unit tests for CLI command handling."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from cli.main import main
from tests.fixture_paths import fixture_path


def _write_config(tmp_path: Path, output_path: Path) -> Path:
    config_path = tmp_path / "pipeline.json"
    payload = {
        "name": "cli-demo",
        "data_source": {
            "type": "local_file",
            "path": str(fixture_path("data/customers.csv")),
            "format": {"type": "csv"},
        },
        "transformations": [
            {"name": "upper-name", "source_field": "name", "transformation": {"type": "uppercase"}}
        ],
        "output": {
            "format": {"type": "json"},
            "destination": {"type": "local_file", "path": str(output_path)},
        },
    }
    config_path.write_text(json.dumps(payload), encoding="utf-8")
    return config_path


def test_cli_validate_accepts_fixture(capsys: pytest.CaptureFixture[str]) -> None:
    """Validate should print the pipeline name and rule count."""
    exit_code = main(["validate", str(fixture_path("pipelines/customers.yaml"))])

    assert exit_code == 0
    assert "valid: customer-cleanup-yaml (2 rule(s))" in capsys.readouterr().out


def test_cli_validate_reports_field_path(capsys: pytest.CaptureFixture[str]) -> None:
    """Invalid configs should exit 1 and name the offending field."""
    exit_code = main(["validate", str(fixture_path("pipelines/invalid_rule.json"))])

    assert exit_code == 1
    assert "join_source" in capsys.readouterr().err


def test_cli_show_prints_normalized_config(capsys: pytest.CaptureFixture[str]) -> None:
    """Show should print the config as JSON."""
    exit_code = main(["show", str(fixture_path("pipelines/customers.yaml"))])

    output = capsys.readouterr().out
    assert exit_code == 0
    assert '"name": "customer-cleanup-yaml"' in output
    assert '"lower-email"' in output


def test_cli_run_writes_output(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    """Run should execute the pipeline and print its receipt."""
    output_path = tmp_path / "out" / "names.json"
    config_path = _write_config(tmp_path, output_path)

    exit_code = main(["run", str(config_path), "--workers", "3"])

    output = capsys.readouterr().out
    assert exit_code == 0
    assert "state=done" in output
    assert "record_count=3" in output
    assert "[cli-demo] transforming -> writing" in output
    assert json.loads(output_path.read_text(encoding="utf-8"))[0] == {"name": "ADA LOVELACE"}


def test_cli_run_reports_missing_config(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    """A missing config file should exit 1 with an error message."""
    exit_code = main(["run", str(tmp_path / "missing.json")])

    assert exit_code == 1
    assert capsys.readouterr().err.startswith("error:")


def test_cli_run_rejects_non_positive_workers(tmp_path: Path) -> None:
    """The workers flag must be a positive integer."""
    with pytest.raises(SystemExit) as exit_info:
        main(["run", str(tmp_path / "pipeline.json"), "--workers", "0"])

    assert exit_info.value.code == 2
