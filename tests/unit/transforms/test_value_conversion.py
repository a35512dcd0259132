"""Unit tests for value conversion and display text."""

from __future__ import annotations

import pytest

from transforms.value_conversion import convert_value, display_text


def test_display_text_renders_json_literals() -> None:
    """None, booleans, and nested values should render as JSON-like text."""
    assert display_text(None) == ""
    assert display_text(True) == "true"
    assert display_text({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'
    assert display_text(2.5) == "2.5"


@pytest.mark.parametrize(
    ("value", "to_type", "expected"),
    [
        ("42", "integer", 42),
        (3.0, "integer", 3),
        ("2.50", "float", 2.5),
        ("yes", "boolean", True),
        (0, "boolean", False),
        (12, "string", "12"),
        ("2024-02-29T00:00:00", "date", "2024-02-29"),
        ("2024-02-29T10:30:00Z", "datetime", "2024-02-29T10:30:00+00:00"),
        ('{"a": 1}', "json", {"a": 1}),
    ],
)
def test_convert_value_supported_conversions(value: object, to_type: str, expected: object) -> None:
    """Supported conversions should produce the expected value."""
    assert convert_value(value, to_type) == expected


@pytest.mark.parametrize(
    ("value", "to_type"),
    [
        ("abc", "integer"),
        (2.5, "integer"),
        (True, "integer"),
        ("maybe", "boolean"),
        ("2024-02-29T10:30:00", "date"),
        ("not json", "json"),
        (None, "string"),
    ],
)
def test_convert_value_rejects_lossy_conversions(value: object, to_type: str) -> None:
    """Impossible or lossy conversions should raise ValueError."""
    with pytest.raises(ValueError):
        convert_value(value, to_type)


def test_convert_value_rejects_int_beyond_float_precision() -> None:
    """Integers a float cannot represent exactly should not be rounded."""
    assert convert_value(2**53, "float") == 9007199254740992.0

    with pytest.raises(ValueError, match="lose precision"):
        convert_value(2**53 + 1, "float")


def test_convert_value_parses_integral_float_text_exactly() -> None:
    """Integral float text should convert without a float round trip."""
    assert convert_value("12345678901234567890.0", "integer") == 12345678901234567890

    with pytest.raises(ValueError, match="fraction"):
        convert_value("1.5", "integer")
