"""Runtime cache configuration models."""

from __future__ import annotations

from collections.abc import Mapping as ABCMapping
from dataclasses import dataclass
from typing import Any, Mapping

from gem_core.utils import safe_float

DEFAULT_FUZZY_THRESHOLD = 0.6
DEFAULT_FUZZY_CONFIDENCE = 0.9
DEFAULT_QUICK_CONFIDENCE = 0.85
DEFAULT_MAX_AGE_SECONDS = 24 * 60 * 60
DEFAULT_PRUNE_THRESHOLD = 1000


def _unit_interval(value: float) -> float:
    return min(1.0, max(0.0, value))


@dataclass(frozen=True, slots=True)
class CacheOptions:
    """Immutable cache configuration parsed from TOML sources."""

    enabled: bool = True
    preseed: bool = True
    fuzzy_threshold: float = DEFAULT_FUZZY_THRESHOLD
    fuzzy_confidence: float = DEFAULT_FUZZY_CONFIDENCE
    quick_confidence: float = DEFAULT_QUICK_CONFIDENCE
    max_age_seconds: int = DEFAULT_MAX_AGE_SECONDS
    prune_threshold: int = DEFAULT_PRUNE_THRESHOLD

    @classmethod
    def from_config(cls, config: Mapping[str, Any] | None = None) -> "CacheOptions":
        """Coerce a configuration mapping into cache options.

        ``config`` may be the whole project configuration (the ``[cache]``
        table is then used) or the ``[cache]`` table itself.  Unknown values
        fall back to the defaults, and booleans/numbers are coerced the same
        way the CLI parses overrides.
        """

        def _as_mapping(value: Any) -> Mapping[str, Any]:
            if isinstance(value, ABCMapping):
                return value
            return {}

        def _coerce_bool(value: Any, fallback: bool) -> bool:
            if isinstance(value, bool):
                return value
            if isinstance(value, str):
                lowered = value.strip().lower()
                if lowered in {"1", "true", "yes", "on"}:
                    return True
                if lowered in {"0", "false", "no", "off"}:
                    return False
            return fallback

        def _coerce_int(value: Any, fallback: int) -> int:
            try:
                numeric = int(value)  # type: ignore[arg-type]
            except (TypeError, ValueError):
                return fallback
            if numeric < 0:
                return 0
            return numeric

        def _coerce_fraction(value: Any, fallback: float) -> float:
            if value is None or isinstance(value, bool):
                return fallback
            return _unit_interval(safe_float(value, fallback))

        root = _as_mapping(config)
        cache_cfg = _as_mapping(root.get("cache")) if "cache" in root else root

        options = cls(
            enabled=_coerce_bool(cache_cfg.get("enabled"), True),
            preseed=_coerce_bool(cache_cfg.get("preseed"), True),
            fuzzy_threshold=_coerce_fraction(cache_cfg.get("fuzzy_threshold"), DEFAULT_FUZZY_THRESHOLD),
            fuzzy_confidence=_coerce_fraction(
                cache_cfg.get("fuzzy_confidence"), DEFAULT_FUZZY_CONFIDENCE
            ),
            quick_confidence=_coerce_fraction(
                cache_cfg.get("quick_confidence"), DEFAULT_QUICK_CONFIDENCE
            ),
            max_age_seconds=_coerce_int(cache_cfg.get("max_age_seconds"), DEFAULT_MAX_AGE_SECONDS),
            prune_threshold=_coerce_int(cache_cfg.get("prune_threshold"), DEFAULT_PRUNE_THRESHOLD),
        )
        return options.with_defaults()

    def with_defaults(self) -> "CacheOptions":
        """Return an instance with normalised field values."""

        return CacheOptions(
            enabled=bool(self.enabled),
            preseed=bool(self.preseed),
            fuzzy_threshold=_unit_interval(float(self.fuzzy_threshold)),
            fuzzy_confidence=_unit_interval(float(self.fuzzy_confidence)),
            quick_confidence=_unit_interval(float(self.quick_confidence)),
            max_age_seconds=max(0, int(self.max_age_seconds)),
            prune_threshold=max(0, int(self.prune_threshold)),
        )


__all__ = [
    "CacheOptions",
    "DEFAULT_FUZZY_CONFIDENCE",
    "DEFAULT_FUZZY_THRESHOLD",
    "DEFAULT_MAX_AGE_SECONDS",
    "DEFAULT_PRUNE_THRESHOLD",
    "DEFAULT_QUICK_CONFIDENCE",
]
