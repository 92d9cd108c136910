from __future__ import annotations

from types import SimpleNamespace

from gem_core.constants import FACTORY_DEFAULTS, ControllerFunction as F
from gem_core.parameters import ParameterVector
from gem_core.performance import (
    acceleration_change,
    range_change,
    speed_change,
    summarise_performance,
)

FACTORY = ParameterVector(FACTORY_DEFAULTS)


def _context(tire_size_ratio: float = 1.0, is_lithium: bool = False) -> SimpleNamespace:
    return SimpleNamespace(tire_size_ratio=tire_size_ratio, is_lithium=is_lithium)


def test_identical_vectors_report_nothing() -> None:
    assert summarise_performance(FACTORY, FACTORY, _context()) == ()


def test_quicker_launch_trades_range() -> None:
    optimized = FACTORY.with_values({F.CONTROLLED_ACCELERATION: 16})

    assert acceleration_change(optimized, FACTORY) == 25
    assert range_change(optimized, FACTORY, is_lithium=False) == -12
    assert summarise_performance(optimized, FACTORY, _context()) == (
        "Acceleration improved by approximately 25%",
        "Range slightly reduced in favor of performance",
    )


def test_lithium_bonus_counts_toward_range() -> None:
    assert range_change(FACTORY, FACTORY, is_lithium=True) == 15
    assert summarise_performance(FACTORY, FACTORY, _context(is_lithium=True)) == (
        "Range improved by approximately 15%",
    )


def test_speed_threshold_is_exclusive() -> None:
    # 1.05 tyre ratio alone sits exactly on the reporting threshold.
    assert speed_change(FACTORY, FACTORY, 1.05) == 5
    assert summarise_performance(FACTORY, FACTORY, _context(tire_size_ratio=1.05)) == ()


def test_regen_and_hill_lines() -> None:
    optimized = FACTORY.with_values(
        {
            F.REGEN_ARMATURE_CURRENT: 255,
            F.REGEN_MAX_FIELD_CURRENT: 216,
            F.FIELD_TO_ARMATURE_RATIO: 4,
        }
    )

    changes = summarise_performance(optimized, FACTORY, _context())

    assert "Hill climbing ability improved by approximately 17%" in changes
    assert "Regenerative braking strength increased by approximately 18%" in changes
