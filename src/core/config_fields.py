"""Type-safe field parsing helpers for pipeline configuration documents.

This module centralizes primitive parsing so every config section produces
consistent validation errors carrying the offending field path.
"""

from __future__ import annotations

from typing import Mapping, Sequence

from core.errors import SluiceConfigError


def join_path(parent: str, child: str | int) -> str:
    """Build a dotted field path, using ``[i]`` for list positions."""
    if isinstance(child, int):
        return f"{parent}[{child}]"
    return f"{parent}.{child}" if parent else child


def expect_mapping(value: object, path: str) -> Mapping[str, object]:
    """Return ``value`` as a string-keyed mapping or raise."""
    if isinstance(value, Mapping):
        normalized_mapping = {}
        for key, payload in value.items():
            if not isinstance(key, str):
                raise SluiceConfigError(
                    f"expected string keys, got {type(key).__name__}.", path or "<root>"
                )
            normalized_mapping[key] = payload
        return normalized_mapping
    raise SluiceConfigError(
        f"expected object mapping, got {type(value).__name__}.", path or "<root>"
    )


def expect_sequence(value: object, path: str) -> Sequence[object]:
    """Return ``value`` as a list or raise."""
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes, bytearray)):
        return value
    raise SluiceConfigError(f"expected list, got {type(value).__name__}.", path)


def reject_unknown_keys(mapping: Mapping[str, object], allowed: set[str], path: str) -> None:
    """Fail loudly on keys outside the schema."""
    unknown_keys = sorted(set(mapping) - allowed)
    if unknown_keys:
        raise SluiceConfigError(
            f"unknown fields: {', '.join(unknown_keys)}. Allowed: {', '.join(sorted(allowed))}.",
            path or "<root>",
        )


def required_field(mapping: Mapping[str, object], field_name: str, path: str) -> object:
    """Return a present, non-null field value."""
    value = mapping.get(field_name)
    if value is None:
        raise SluiceConfigError("missing required field.", join_path(path, field_name))
    return value


def required_string(mapping: Mapping[str, object], field_name: str, path: str) -> str:
    """Read a required string field."""
    value = required_field(mapping, field_name, path)
    if not isinstance(value, str):
        raise SluiceConfigError("must be a string.", join_path(path, field_name))
    return value


def optional_string(mapping: Mapping[str, object], field_name: str, path: str) -> str | None:
    """Read an optional string field."""
    value = mapping.get(field_name)
    if value is None:
        return None
    if isinstance(value, str):
        return value
    raise SluiceConfigError("must be a string when provided.", join_path(path, field_name))


def optional_char(mapping: Mapping[str, object], field_name: str, path: str) -> str | None:
    """Read an optional single-character field such as a delimiter."""
    value = optional_string(mapping, field_name, path)
    if value is not None and len(value) != 1:
        raise SluiceConfigError(
            f"must be a single character, got {value!r}.", join_path(path, field_name)
        )
    return value


def optional_bool(mapping: Mapping[str, object], field_name: str, path: str) -> bool | None:
    """Read an optional boolean field."""
    value = mapping.get(field_name)
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    raise SluiceConfigError("must be true/false.", join_path(path, field_name))


def optional_int(mapping: Mapping[str, object], field_name: str, path: str) -> int | None:
    """Read an optional integer field."""
    value = mapping.get(field_name)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        raise SluiceConfigError("must be an integer.", join_path(path, field_name))
    return value


def required_int(mapping: Mapping[str, object], field_name: str, path: str) -> int:
    """Read a required integer field."""
    value = optional_int(mapping, field_name, path)
    if value is None:
        raise SluiceConfigError("missing required field.", join_path(path, field_name))
    return value


def optional_number(
    mapping: Mapping[str, object], field_name: str, path: str
) -> int | float | None:
    """Read an optional numeric field, keeping its JSON number type."""
    value = mapping.get(field_name)
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise SluiceConfigError("must be numeric.", join_path(path, field_name))
    return value


def required_number(mapping: Mapping[str, object], field_name: str, path: str) -> int | float:
    """Read a required numeric field."""
    value = optional_number(mapping, field_name, path)
    if value is None:
        raise SluiceConfigError("missing required field.", join_path(path, field_name))
    return value


def required_choice(
    mapping: Mapping[str, object],
    field_name: str,
    choices: tuple[str, ...],
    path: str,
) -> str:
    """Read a required string restricted to ``choices``."""
    value = required_string(mapping, field_name, path)
    if value not in choices:
        raise SluiceConfigError(
            f"unsupported value '{value}'. Use one of: {', '.join(choices)}.",
            join_path(path, field_name),
        )
    return value


def optional_choice(
    mapping: Mapping[str, object],
    field_name: str,
    choices: tuple[str, ...],
    path: str,
) -> str | None:
    """Read an optional string restricted to ``choices``."""
    if mapping.get(field_name) is None:
        return None
    return required_choice(mapping, field_name, choices, path)


def optional_string_map(
    mapping: Mapping[str, object], field_name: str, path: str
) -> dict[str, str] | None:
    """Read an optional object whose values are all strings."""
    value = mapping.get(field_name)
    if value is None:
        return None
    field_path = join_path(path, field_name)
    string_map = expect_mapping(value, field_path)
    for key, item in string_map.items():
        if not isinstance(item, str):
            raise SluiceConfigError("must be a string.", join_path(field_path, key))
    return dict(string_map)  # type: ignore[arg-type]


def optional_json_map(
    mapping: Mapping[str, object], field_name: str, path: str
) -> dict[str, object] | None:
    """Read an optional object with arbitrary JSON values."""
    value = mapping.get(field_name)
    if value is None:
        return None
    return dict(expect_mapping(value, join_path(path, field_name)))


def string_list(value: object, path: str) -> tuple[str, ...]:
    """Read a list whose items are all strings."""
    items = expect_sequence(value, path)
    for index, item in enumerate(items):
        if not isinstance(item, str):
            raise SluiceConfigError("must be a string.", join_path(path, index))
    return tuple(items)  # type: ignore[arg-type]


def optional_string_list(
    mapping: Mapping[str, object], field_name: str, path: str
) -> tuple[str, ...] | None:
    """Read an optional list of strings."""
    value = mapping.get(field_name)
    if value is None:
        return None
    return string_list(value, join_path(path, field_name))
