"""Lookup cache with an explicit build-then-freeze phase boundary.

A ``LookupCacheBuilder`` is filled sequentially before transformation starts.
``freeze()`` returns a read-only ``LookupCache`` that worker threads share
without locking, since nothing can mutate it afterwards.
"""

from __future__ import annotations

import csv
import io
import json
from pathlib import Path
from types import MappingProxyType
from typing import Mapping

from core.constants import LOOKUP_KEY_SEPARATOR
from core.errors import SluiceConfigError
from core.logging_config import get_logger
from core.pipeline_config import LookupTableConfig
from core.types import JsonValue

_LOGGER = get_logger(__name__)


def lookup_value_text(value: JsonValue) -> str:
    """Return the text form of a value used as a lookup key.

    Strings are used verbatim; every other value uses its JSON text, so the
    integer ``1`` and the string ``"1"`` resolve to the same entry.
    """
    return value if isinstance(value, str) else json.dumps(value, sort_keys=True)


def lookup_key(table: str, value: JsonValue) -> str:
    """Build the composite ``"{table}:{value}"`` cache key."""
    return f"{table}{LOOKUP_KEY_SEPARATOR}{lookup_value_text(value)}"


class LookupCache:
    """Frozen, concurrently readable lookup table."""

    def __init__(self, entries: Mapping[str, JsonValue]) -> None:
        self._entries = MappingProxyType(dict(entries))

    def __len__(self) -> int:
        return len(self._entries)

    def resolve(self, table: str, value: JsonValue) -> JsonValue:
        """Return the mapped value, or ``value`` unchanged on a miss."""
        return self._entries.get(lookup_key(table, value), value)

    def contains(self, table: str, value: JsonValue) -> bool:
        """Return whether the table holds an entry for ``value``."""
        return lookup_key(table, value) in self._entries


class LookupCacheBuilder:
    """Single-writer builder for a ``LookupCache``."""

    def __init__(self) -> None:
        self._entries: dict[str, JsonValue] = {}
        self._frozen = False

    def add(self, table: str, key: JsonValue, value: JsonValue) -> None:
        """Add or replace one entry.

        Raises:
            RuntimeError: If the builder was already frozen.
        """
        if self._frozen:
            raise RuntimeError("Lookup cache is frozen; entries can no longer be added.")
        self._entries[lookup_key(table, key)] = value

    def add_table(self, table: LookupTableConfig, base_dir: Path | None = None) -> int:
        """Load a configured table from its file and inline entries.

        Inline entries are applied after file entries, so they win.

        Args:
            table: Lookup table config.
            base_dir: Directory relative ``path`` values resolve against.

        Returns:
            Number of entries added.

        Raises:
            SluiceConfigError: If the table file is missing or malformed.
        """
        entries: dict[str, JsonValue] = {}
        if table.path is not None:
            table_path = Path(table.path).expanduser()
            if base_dir is not None and not table_path.is_absolute():
                table_path = base_dir / table_path
            entries.update(_read_table_file(table_path, table.name))
        entries.update(table.entries or {})
        for key, value in entries.items():
            self.add(table.name, key, value)
        _LOGGER.info("lookup_table_loaded", table=table.name, entry_count=len(entries))
        return len(entries)

    def freeze(self) -> LookupCache:
        """End the build phase and return the read-only cache."""
        self._frozen = True
        return LookupCache(self._entries)


def build_lookup_cache(
    tables: tuple[LookupTableConfig, ...] | None,
    base_dir: Path | None = None,
) -> LookupCache:
    """Build and freeze a cache from configured lookup tables."""
    builder = LookupCacheBuilder()
    for table in tables or ():
        builder.add_table(table, base_dir)
    return builder.freeze()


def _read_table_file(table_path: Path, table_name: str) -> dict[str, JsonValue]:
    """Read a JSON object or a two-column CSV (key, value) file."""
    if not table_path.is_file():
        raise SluiceConfigError(
            f"Lookup table '{table_name}' file does not exist at {table_path}.",
        )
    try:
        text = table_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as error:
        raise SluiceConfigError(
            f"Failed to read lookup table '{table_name}' at {table_path}: {error}."
        ) from error
    if table_path.suffix.lower() == ".csv":
        return _parse_csv_table(text, table_path, table_name)
    try:
        payload = json.loads(text)
    except json.JSONDecodeError as error:
        raise SluiceConfigError(
            f"Lookup table '{table_name}' at {table_path} is not valid JSON: {error.msg}."
        ) from error
    if not isinstance(payload, dict):
        raise SluiceConfigError(
            f"Lookup table '{table_name}' at {table_path} must be a JSON object."
        )
    return payload


def _parse_csv_table(text: str, table_path: Path, table_name: str) -> dict[str, JsonValue]:
    entries: dict[str, JsonValue] = {}
    for line_number, row in enumerate(csv.reader(io.StringIO(text)), 1):
        if not row:
            continue
        if len(row) != 2:
            raise SluiceConfigError(
                f"Lookup table '{table_name}' at {table_path}:{line_number} "
                f"must have 2 columns (key, value), got {len(row)}."
            )
        entries[row[0]] = row[1]
    return entries
