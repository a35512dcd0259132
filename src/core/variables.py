"""``${NAME}`` placeholder substitution for pipeline paths and URLs."""

from __future__ import annotations

import re
from typing import Mapping

from core.errors import SluiceConfigError

_PLACEHOLDER_PATTERN = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def placeholder_names(text: str) -> tuple[str, ...]:
    """Return placeholder names referenced by ``text`` in order."""
    return tuple(match.group(1) for match in _PLACEHOLDER_PATTERN.finditer(text))


def substitute_variables(
    text: str,
    variables: Mapping[str, str] | None,
    field_path: str,
) -> str:
    """Replace ``${NAME}`` placeholders with pipeline variables.

    Args:
        text: Path or URL that may contain placeholders.
        variables: Values from ``settings.variables``.
        field_path: Config field path used in error messages.

    Returns:
        Text with every placeholder replaced.

    Raises:
        SluiceConfigError: If a placeholder names an undefined variable.
    """
    known = variables or {}

    def replace(match: re.Match[str]) -> str:
        name = match.group(1)
        if name not in known:
            raise SluiceConfigError(
                f"undefined variable '${{{name}}}'. Declare it under settings.variables.",
                field_path,
            )
        return known[name]

    return _PLACEHOLDER_PATTERN.sub(replace, text)
