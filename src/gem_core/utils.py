"""Numeric coercion helpers shared by the engine modules."""

from __future__ import annotations

import math

__all__ = ["round_half_up", "safe_float", "positive_float"]


def round_half_up(value: float) -> int:
    """Round ``value`` to the nearest integer with ties away from negative infinity.

    Controller tables are authored with this convention; Python's
    :func:`round` would turn ``20.5`` into ``20``.
    """

    return int(math.floor(value + 0.5))


def safe_float(value: object, default: float = 0.0) -> float:
    try:
        numeric = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return default
    if not math.isfinite(numeric):
        return default
    return numeric


def positive_float(value: object, default: float) -> float:
    """Return ``value`` as a float when it is strictly positive, else ``default``."""

    numeric = safe_float(value, default)
    if numeric <= 0:
        return default
    return numeric
