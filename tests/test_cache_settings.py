from __future__ import annotations

import pytest

from gem_core.cache_settings import (
    CacheOptions,
    DEFAULT_FUZZY_THRESHOLD,
    DEFAULT_MAX_AGE_SECONDS,
    DEFAULT_PRUNE_THRESHOLD,
)


def test_defaults() -> None:
    options = CacheOptions.from_config(None)

    assert options == CacheOptions()
    assert options.fuzzy_threshold == DEFAULT_FUZZY_THRESHOLD
    assert options.max_age_seconds == DEFAULT_MAX_AGE_SECONDS
    assert options.prune_threshold == DEFAULT_PRUNE_THRESHOLD


def test_reads_cache_table_from_full_config() -> None:
    options = CacheOptions.from_config(
        {
            "logging": {"level": "debug"},
            "cache": {"enabled": "no", "fuzzy_threshold": 1.5, "max_age_seconds": -5, "prune_threshold": "50"},
        }
    )

    assert options.enabled is False
    assert options.fuzzy_threshold == 1.0
    assert options.max_age_seconds == 0
    assert options.prune_threshold == 50


def test_accepts_cache_table_directly() -> None:
    options = CacheOptions.from_config({"fuzzy_threshold": "0.7", "preseed": "off"})

    assert options.fuzzy_threshold == pytest.approx(0.7)
    assert options.preseed is False


@pytest.mark.parametrize(
    "raw, expected",
    [(True, True), ("YES", True), ("on", True), (False, False), ("0", False), ("maybe", True), (None, True)],
)
def test_enabled_coercion(raw: object, expected: bool) -> None:
    assert CacheOptions.from_config({"cache": {"enabled": raw}}).enabled is expected


def test_with_defaults_clamps_fields() -> None:
    options = CacheOptions(fuzzy_confidence=-1.0, quick_confidence=3.0, prune_threshold=-2).with_defaults()

    assert options.fuzzy_confidence == 0.0
    assert options.quick_confidence == 1.0
    assert options.prune_threshold == 0
