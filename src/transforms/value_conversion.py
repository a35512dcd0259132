"""Scalar type coercion and text rendering of record values.

Coercions are strict: a conversion that would lose information raises
``ValueError`` instead of substituting a default.
"""

from __future__ import annotations

import json
import math
import re
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Callable

from core.constants import FALSE_LITERALS, TRUE_LITERALS
from core.types import JsonValue

_INTEGER_TEXT = re.compile(r"[+-]?\d+")
_FLOAT_TEXT = re.compile(r"[+-]?(\d+\.\d*|\.\d+|\d+)([eE][+-]?\d+)?")


def display_text(value: JsonValue) -> str:
    """Render a value as text for templates and delimited output.

    None renders empty, booleans as ``true``/``false``, and nested values
    as compact JSON.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, separators=(",", ":"), sort_keys=True)
    return str(value)


def convert_value(value: JsonValue, to_type: str) -> JsonValue:
    """Coerce ``value`` to a declared data type.

    Args:
        value: Value to convert.
        to_type: One of string, integer, float, boolean, date, datetime, json.

    Returns:
        Converted value. Dates and datetimes are ISO-8601 strings.

    Raises:
        ValueError: If the conversion is impossible or lossy.
    """
    converter = _CONVERTERS.get(to_type)
    if converter is None:
        raise ValueError(f"unsupported target type '{to_type}'")
    return converter(value)


def _to_string(value: JsonValue) -> str:
    if value is None:
        raise ValueError("cannot convert null to string")
    return display_text(value)


def _to_integer(value: JsonValue) -> int:
    if isinstance(value, bool) or value is None:
        raise ValueError(f"cannot convert {value!r} to integer")
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        if value.is_integer():
            return int(value)
        raise ValueError(f"converting {value!r} to integer would drop its fraction")
    if isinstance(value, str):
        text = value.strip()
        if _INTEGER_TEXT.fullmatch(text):
            return int(text)
        if _FLOAT_TEXT.fullmatch(text):
            number = Decimal(text)
            if number == number.to_integral_value():
                return int(number)
            raise ValueError(f"converting {value!r} to integer would drop its fraction")
    raise ValueError(f"cannot convert {value!r} to integer")


def _to_float(value: JsonValue) -> float:
    if isinstance(value, bool) or value is None:
        raise ValueError(f"cannot convert {value!r} to float")
    if isinstance(value, float):
        return value
    if isinstance(value, int):
        try:
            number = float(value)
        except OverflowError:
            raise ValueError(f"{value!r} is too large for a float") from None
        if int(number) != value:
            raise ValueError(f"converting {value!r} to float would lose precision")
        return number
    if isinstance(value, str) and _FLOAT_TEXT.fullmatch(value.strip()):
        number = float(value.strip())
        if math.isfinite(number):
            return number
    raise ValueError(f"cannot convert {value!r} to float")


def _to_boolean(value: JsonValue) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, int) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in TRUE_LITERALS:
            return True
        if lowered in FALSE_LITERALS:
            return False
    raise ValueError(f"cannot convert {value!r} to boolean")


def _to_date(value: JsonValue) -> str:
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text).isoformat()
        except ValueError:
            parsed = _parse_datetime(text)
            if parsed.time() == datetime.min.time():
                return parsed.date().isoformat()
            raise ValueError(f"converting {value!r} to date would drop its time") from None
    raise ValueError(f"cannot convert {value!r} to date")


def _to_datetime(value: JsonValue) -> str:
    if isinstance(value, bool) or value is None:
        raise ValueError(f"cannot convert {value!r} to datetime")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc).isoformat()
    if isinstance(value, str):
        return _parse_datetime(value.strip()).isoformat()
    raise ValueError(f"cannot convert {value!r} to datetime")


def _parse_datetime(text: str) -> datetime:
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        raise ValueError(f"{text!r} is not an ISO-8601 date or datetime") from None


def _to_json(value: JsonValue) -> JsonValue:
    if not isinstance(value, str):
        return value
    try:
        return json.loads(value)
    except json.JSONDecodeError as error:
        raise ValueError(f"{value!r} is not valid JSON: {error.msg}") from error


_CONVERTERS: dict[str, Callable[[JsonValue], JsonValue]] = {
    "string": _to_string,
    "integer": _to_integer,
    "float": _to_float,
    "boolean": _to_boolean,
    "date": _to_date,
    "datetime": _to_datetime,
    "json": _to_json,
}
