"""Human readable performance deltas between two controller vectors."""

from __future__ import annotations

from typing import List, Mapping, Protocol, Tuple

from gem_core.constants import ControllerFunction as F
from gem_core.utils import round_half_up

__all__ = [
    "acceleration_change",
    "hill_climbing_change",
    "motor_protection_change",
    "range_change",
    "regen_change",
    "speed_change",
    "summarise_performance",
]

_LITHIUM_RANGE_BONUS = 0.15


class _SupportsPerformanceContext(Protocol):
    tire_size_ratio: float
    is_lithium: bool


def _ratio(numerator: int, denominator: int) -> float:
    if denominator == 0:
        return 1.0
    return numerator / denominator


def speed_change(optimized: Mapping[int, int], factory: Mapping[int, int], tire_size_ratio: float) -> int:
    """Percent top-speed change from field weakening and tyre size."""

    field_weakening = _ratio(factory[F.MIN_FIELD_CURRENT], optimized[F.MIN_FIELD_CURRENT]) - 1
    return round_half_up((field_weakening + (tire_size_ratio - 1)) * 100)


def acceleration_change(optimized: Mapping[int, int], factory: Mapping[int, int]) -> int:
    # A lower controlled-acceleration value means a quicker launch.
    ratio = _ratio(factory[F.CONTROLLED_ACCELERATION], optimized[F.CONTROLLED_ACCELERATION])
    return round_half_up((ratio - 1) * 100)


def hill_climbing_change(optimized: Mapping[int, int], factory: Mapping[int, int]) -> int:
    current = _ratio(optimized[F.MAX_ARMATURE_CURRENT], factory[F.MAX_ARMATURE_CURRENT]) - 1
    field_ratio = _ratio(optimized[F.FIELD_TO_ARMATURE_RATIO], factory[F.FIELD_TO_ARMATURE_RATIO]) - 1
    return round_half_up((current + field_ratio * 0.5) * 100)


def range_change(optimized: Mapping[int, int], factory: Mapping[int, int], is_lithium: bool) -> int:
    acceleration = _ratio(factory[F.CONTROLLED_ACCELERATION], optimized[F.CONTROLLED_ACCELERATION]) - 1
    current = _ratio(factory[F.MAX_ARMATURE_CURRENT], optimized[F.MAX_ARMATURE_CURRENT]) - 1
    bonus = _LITHIUM_RANGE_BONUS if is_lithium else 0.0
    return round_half_up((-acceleration * 0.5 - current * 0.3 + bonus) * 100)


def motor_protection_change(optimized: Mapping[int, int], factory: Mapping[int, int]) -> int:
    min_field = _ratio(optimized[F.MIN_FIELD_CURRENT], factory[F.MIN_FIELD_CURRENT]) - 1
    weakening = _ratio(optimized[F.FIELD_WEAKENING_START], factory[F.FIELD_WEAKENING_START]) - 1
    return round_half_up((min_field + weakening) * 100)


def regen_change(optimized: Mapping[int, int], factory: Mapping[int, int]) -> int:
    armature = _ratio(optimized[F.REGEN_ARMATURE_CURRENT], factory[F.REGEN_ARMATURE_CURRENT]) - 1
    field = _ratio(optimized[F.REGEN_MAX_FIELD_CURRENT], factory[F.REGEN_MAX_FIELD_CURRENT]) - 1
    return round_half_up((armature + field) * 50)


def summarise_performance(
    optimized: Mapping[int, int],
    factory: Mapping[int, int],
    context: _SupportsPerformanceContext,
) -> Tuple[str, ...]:
    """Return one sentence per metric whose change crosses its threshold."""

    changes: List[str] = []

    speed = speed_change(optimized, factory, context.tire_size_ratio)
    if speed > 5:
        changes.append(f"Top speed increased by approximately {speed}%")
    elif speed < -5:
        changes.append(f"Top speed reduced by approximately {abs(speed)}% for motor protection")

    acceleration = acceleration_change(optimized, factory)
    if acceleration > 10:
        changes.append(f"Acceleration improved by approximately {acceleration}%")
    elif acceleration < -10:
        changes.append(
            f"Acceleration smoothed by approximately {abs(acceleration)}% for better control"
        )

    hills = hill_climbing_change(optimized, factory)
    if hills > 5:
        changes.append(f"Hill climbing ability improved by approximately {hills}%")

    range_delta = range_change(optimized, factory, context.is_lithium)
    if range_delta > 5:
        changes.append(f"Range improved by approximately {range_delta}%")
    elif range_delta < -5:
        changes.append("Range slightly reduced in favor of performance")

    protection = motor_protection_change(optimized, factory)
    if protection > 20:
        changes.append(
            "Motor protection significantly improved, reducing risk of brush wear and sparking"
        )
    elif protection > 5:
        changes.append("Motor protection improved, may extend motor life")

    regen = regen_change(optimized, factory)
    if regen > 10:
        changes.append(f"Regenerative braking strength increased by approximately {regen}%")

    return tuple(changes)
