"""Unit tests for semantic pipeline config validation."""

from __future__ import annotations

from typing import Any

import pytest

from core.errors import SluiceConfigError
from core.pipeline_config_parsing import pipeline_config_from_payload
from core.pipeline_config_validation import validate_pipeline_config


def _payload(**overrides: Any) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "name": "validation",
        "data_source": {
            "type": "local_file",
            "path": "input.csv",
            "format": {"type": "csv"},
        },
        "transformations": [
            {
                "name": "copy-id",
                "source_field": "id",
                "transformation": {"type": "convert", "to_type": "integer"},
            }
        ],
        "output": {
            "format": {"type": "json"},
            "destination": {"type": "local_file", "path": "output.json"},
        },
    }
    payload.update(overrides)
    return payload


def _field_path_of_error(payload: dict[str, Any]) -> str | None:
    with pytest.raises(SluiceConfigError) as error_info:
        validate_pipeline_config(pipeline_config_from_payload(payload))
    return error_info.value.field_path


def _rule(name: str, transformation: dict[str, Any], **extra: Any) -> dict[str, Any]:
    rule = {"name": name, "source_field": "id", "transformation": transformation}
    rule.update(extra)
    return rule


def test_validate_accepts_minimal_config() -> None:
    """A minimal well-formed config should pass validation."""
    validate_pipeline_config(pipeline_config_from_payload(_payload()))


def test_validate_rejects_empty_rule_list() -> None:
    """At least one transformation rule is required."""
    assert _field_path_of_error(_payload(transformations=[])) == "transformations"


def test_validate_rejects_blank_name() -> None:
    """Pipeline names must not be blank."""
    assert _field_path_of_error(_payload(name="  ")) == "name"


def test_validate_rejects_duplicate_rule_names() -> None:
    """Rule names must be unique."""
    rules = [
        _rule("same", {"type": "uppercase"}),
        _rule("same", {"type": "lowercase"}),
    ]

    assert _field_path_of_error(_payload(transformations=rules)) == "transformations[1].name"


def test_validate_rejects_unknown_custom_function() -> None:
    """Custom functions must be one of the supported names."""
    rules = [_rule("custom", {"type": "custom", "function": "reverse"})]

    path = _field_path_of_error(_payload(transformations=rules))

    assert path == "transformations[0].transformation.function"


def test_validate_rejects_undeclared_lookup_table() -> None:
    """Lookup rules must reference a declared lookup table."""
    rules = [_rule("lookup", {"type": "lookup", "table": "countries"})]

    path = _field_path_of_error(_payload(transformations=rules))

    assert path == "transformations[0].transformation.table"


def test_validate_rejects_invalid_regex_condition() -> None:
    """Regex conditions must compile."""
    rules = [
        _rule(
            "upper",
            {"type": "uppercase"},
            condition={"field": "name", "operator": "regex", "value": "(unclosed"},
        )
    ]

    assert _field_path_of_error(_payload(transformations=rules)) == (
        "transformations[0].condition.value"
    )


def test_validate_rejects_in_condition_without_list() -> None:
    """Membership conditions require a list value."""
    rules = [
        _rule(
            "upper",
            {"type": "uppercase"},
            condition={"field": "region", "operator": "in", "value": "eu"},
        )
    ]

    assert _field_path_of_error(_payload(transformations=rules)) == (
        "transformations[0].condition.value"
    )


def test_validate_rejects_database_format_without_database_destination() -> None:
    """Database output format and destination must be paired."""
    output = {
        "format": {"type": "database", "table_name": "people", "mode": "append"},
        "destination": {"type": "local_file", "path": "out.json"},
    }

    assert _field_path_of_error(_payload(output=output)) == "output.format"


def test_validate_rejects_upsert_without_key_columns() -> None:
    """Upsert writes must declare key columns."""
    output = {
        "format": {"type": "database", "table_name": "people", "mode": "upsert"},
        "destination": {
            "type": "database",
            "connection_string": "sqlite:///people.db",
            "driver": "sqlite",
        },
    }

    assert _field_path_of_error(_payload(output=output)) == "output.format.key_columns"


def test_validate_rejects_bad_retry_bounds() -> None:
    """Retry settings must have positive attempts and ordered delays."""
    source = {
        "type": "api",
        "url": "https://example.com/data",
        "retry": {
            "max_attempts": 3,
            "initial_delay_ms": 500,
            "max_delay_ms": 100,
            "backoff_multiplier": 2.0,
        },
    }

    assert _field_path_of_error(_payload(data_source=source)) == (
        "data_source.retry.max_delay_ms"
    )


def test_validate_rejects_bearer_auth_without_token() -> None:
    """Bearer auth must carry a token."""
    source = {
        "type": "api",
        "url": "https://example.com/data",
        "auth": {"auth_type": "bearer_token", "credentials": {}},
    }

    assert _field_path_of_error(_payload(data_source=source)) == (
        "data_source.auth.credentials.token"
    )


def test_validate_rejects_undefined_path_variable() -> None:
    """Output paths may only reference declared variables."""
    output = {
        "format": {"type": "json"},
        "destination": {"type": "local_file", "path": "out/${DAY}.json"},
    }

    assert _field_path_of_error(_payload(output=output)) == "output.destination.path"


def test_validate_accepts_declared_path_variable() -> None:
    """Declared variables should satisfy placeholder checks."""
    output = {
        "format": {"type": "json"},
        "destination": {"type": "local_file", "path": "out/${DAY}.json"},
    }
    payload = _payload(output=output, settings={"variables": {"DAY": "2024-01-01"}})

    validate_pipeline_config(pipeline_config_from_payload(payload))


def test_validate_rejects_invalid_settings_log_level() -> None:
    """Settings log level must be a known level."""
    payload = _payload(settings={"log_level": "chatty"})

    assert _field_path_of_error(payload) == "settings.log_level"


def test_validate_rejects_lookup_table_without_data() -> None:
    """Lookup tables need a file path or inline entries."""
    payload = _payload(lookup_tables=[{"name": "empty"}])

    assert _field_path_of_error(payload) == "lookup_tables[0]"
