"""Unit tests for the lookup cache."""

from __future__ import annotations

from pathlib import Path

import pytest

from core.errors import SluiceConfigError
from core.pipeline_config import LookupTableConfig
from transforms.lookup_cache import LookupCacheBuilder, build_lookup_cache
from tests.fixture_paths import fixture_path


def test_resolve_returns_value_unchanged_on_miss() -> None:
    """A lookup miss should return the input value unchanged."""
    cache = build_lookup_cache((LookupTableConfig(name="codes", entries={"a": "Alpha"}),))

    assert cache.resolve("codes", "a") == "Alpha"
    assert cache.resolve("codes", "z") == "z"
    assert cache.resolve("other", "a") == "a"


def test_non_string_keys_match_their_json_text() -> None:
    """Numeric values should resolve entries keyed by their text form."""
    cache = build_lookup_cache(
        (LookupTableConfig(name="status", path=str(fixture_path("lookups/status.json"))),)
    )

    assert cache.resolve("status", 1) == "one"
    assert cache.contains("status", "A")


def test_csv_table_resolves_relative_to_base_dir() -> None:
    """Relative table paths should resolve against the base directory."""
    table = LookupTableConfig(name="regions", path="../lookups/regions.csv")

    cache = build_lookup_cache((table,), fixture_path("pipelines"))

    assert cache.resolve("regions", "eu") == "Europe"
    assert len(cache) == 2


def test_inline_entries_override_file_entries() -> None:
    """Inline entries should win over entries read from the file."""
    table = LookupTableConfig(
        name="regions",
        path=str(fixture_path("lookups/regions.csv")),
        entries={"eu": "European Union"},
    )

    assert build_lookup_cache((table,)).resolve("regions", "eu") == "European Union"


def test_missing_table_file_is_config_error(tmp_path: Path) -> None:
    """A missing table file should fail while building the cache."""
    table = LookupTableConfig(name="gone", path=str(tmp_path / "gone.json"))

    with pytest.raises(SluiceConfigError, match="does not exist"):
        build_lookup_cache((table,))


def test_builder_rejects_writes_after_freeze() -> None:
    """The builder should refuse writes once the cache is frozen."""
    builder = LookupCacheBuilder()
    builder.add("codes", "a", "Alpha")
    cache = builder.freeze()

    with pytest.raises(RuntimeError, match="frozen"):
        builder.add("codes", "b", "Beta")

    assert cache.resolve("codes", "b") == "b"
