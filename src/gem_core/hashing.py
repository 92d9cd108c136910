"""Cache key derivation for priority weights and operating conditions.

Priority weights and operating conditions are reduced to coarse buckets so
that nearby requests share a cache slot.  Requests that fit no named bucket
get a composite key encoding their rounded values; composite condition keys
can be decoded again by :func:`reconstruct_condition`.

Every function here is total: malformed input degrades to the documented
defaults instead of raising.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Sequence

import numpy as np

from gem_core.constants import DEFAULT_VEHICLE_TAG
from gem_core.profiles import EnvironmentProfile, PriorityWeights, VehicleProfile, normalise_vehicle_tag
from gem_core.utils import round_half_up, safe_float

__all__ = [
    "CompositeConditionKey",
    "CompositePriorityKey",
    "ConditionBucket",
    "ConditionKey",
    "ConditionSnapshot",
    "PriorityBucket",
    "PriorityKey",
    "condition_similarity",
    "generate_cache_key",
    "hash_conditions",
    "hash_priorities",
    "reconstruct_condition",
    "similarity_scores",
    "vehicle_key",
]

_BUCKET_THRESHOLD = 8
_BALANCED_SPREAD = 2

_TEMPERATURE_TOLERANCE = 50.0
_GRADE_TOLERANCE = 10.0
_LOAD_TOLERANCE = 1000.0


class _KeyEnum(str, Enum):
    def __str__(self) -> str:
        return str(self.value)


class PriorityBucket(_KeyEnum):
    SPEED_FOCUSED = "speed_focused"
    RANGE_FOCUSED = "range_focused"
    EFFICIENCY_FOCUSED = "efficiency_focused"
    PERFORMANCE = "performance"
    BALANCED = "balanced"


class ConditionBucket(_KeyEnum):
    COLD = "cold"
    HOT = "hot"
    HILLS = "hills"
    LOADED = "loaded"
    IDEAL = "ideal"


@dataclass(frozen=True, slots=True)
class CompositePriorityKey:
    """Rounded weights of a request that fits no named priority bucket."""

    speed: int
    range: int
    acceleration: int
    efficiency: int

    def __str__(self) -> str:
        return f"s{self.speed}r{self.range}a{self.acceleration}e{self.efficiency}"


@dataclass(frozen=True, slots=True)
class CompositeConditionKey:
    """Temperature in tens of degrees, grade in percent, load in hundreds of lbs."""

    temperature: int
    grade: int
    load: int

    def __str__(self) -> str:
        return f"t{self.temperature}g{self.grade}l{self.load}"


PriorityKey = PriorityBucket | CompositePriorityKey
ConditionKey = ConditionBucket | CompositeConditionKey


@dataclass(frozen=True, slots=True)
class ConditionSnapshot:
    """Numeric operating conditions: deg F, percent grade and lbs of load."""

    temperature: float = 70.0
    grade: float = 0.0
    load: float = 0.0

    def as_array(self) -> np.ndarray:
        return np.array([self.temperature, self.grade, self.load], dtype=float)

    @classmethod
    def from_value(cls, value: Any) -> "ConditionSnapshot":
        """Build a snapshot from an environment profile or a plain mapping."""

        if isinstance(value, cls):
            return value
        if isinstance(value, EnvironmentProfile):
            return cls(value.temperature, value.hill_grade_percent, value.payload)
        if not isinstance(value, Mapping):
            return cls()

        def pick(default: float, *keys: str) -> float:
            for key in keys:
                if value.get(key) is not None:
                    return safe_float(value[key], default)
            return default

        return cls(
            temperature=pick(70.0, "temperature"),
            grade=pick(0.0, "grade", "hill_grade_percent", "hillGrade"),
            load=pick(0.0, "load", "payload"),
        )


_BUCKET_CONDITIONS = MappingProxyType(
    {
        ConditionBucket.IDEAL: ConditionSnapshot(70.0, 0.0, 0.0),
        ConditionBucket.COLD: ConditionSnapshot(35.0, 0.0, 0.0),
        ConditionBucket.HOT: ConditionSnapshot(95.0, 0.0, 0.0),
        ConditionBucket.HILLS: ConditionSnapshot(70.0, 8.0, 0.0),
        ConditionBucket.LOADED: ConditionSnapshot(70.0, 0.0, 800.0),
    }
)

_COMPOSITE_PRIORITY = re.compile(r"^s(-?\d+)r(-?\d+)a(-?\d+)e(-?\d+)$")
_COMPOSITE_CONDITION = re.compile(r"^t(-?\d+)g(-?\d+)l(-?\d+)$")


def _bucket_value(enum_cls: type[_KeyEnum], value: str) -> _KeyEnum | None:
    try:
        return enum_cls(value)
    except ValueError:
        return None


def hash_priorities(weights: PriorityWeights | Mapping[str, Any] | str | None) -> PriorityKey:
    """Reduce priority weights to a bucket or a composite key.

    Missing or zero weights count as 5, mirroring how the UI seeds sliders.
    A string argument is parsed back into the key it renders.
    """

    if isinstance(weights, (PriorityBucket, CompositePriorityKey)):
        return weights
    if isinstance(weights, str):
        bucket = _bucket_value(PriorityBucket, weights)
        if bucket is not None:
            return bucket  # type: ignore[return-value]
        match = _COMPOSITE_PRIORITY.match(weights)
        if match:
            return CompositePriorityKey(*(int(group) for group in match.groups()))
        weights = None
    profile = PriorityWeights.from_mapping(weights if isinstance(weights, (PriorityWeights, Mapping)) else None)

    speed = round_half_up(profile.speed or 5)
    range_ = round_half_up(profile.range or 5)
    acceleration = round_half_up(profile.acceleration or 5)
    efficiency = round_half_up(profile.efficiency or 5)

    if speed >= _BUCKET_THRESHOLD:
        return PriorityBucket.SPEED_FOCUSED
    if range_ >= _BUCKET_THRESHOLD:
        return PriorityBucket.RANGE_FOCUSED
    if efficiency >= _BUCKET_THRESHOLD:
        return PriorityBucket.EFFICIENCY_FOCUSED
    if acceleration >= _BUCKET_THRESHOLD:
        return PriorityBucket.PERFORMANCE
    if abs(speed - range_) <= _BALANCED_SPREAD and abs(speed - acceleration) <= _BALANCED_SPREAD:
        return PriorityBucket.BALANCED
    return CompositePriorityKey(speed, range_, acceleration, efficiency)


def hash_conditions(conditions: ConditionSnapshot | EnvironmentProfile | Mapping[str, Any] | str | None) -> ConditionKey:
    """Reduce operating conditions to a bucket or a composite key."""

    if isinstance(conditions, (ConditionBucket, CompositeConditionKey)):
        return conditions
    if isinstance(conditions, str):
        bucket = _bucket_value(ConditionBucket, conditions)
        if bucket is not None:
            return bucket  # type: ignore[return-value]
        match = _COMPOSITE_CONDITION.match(conditions)
        if match:
            return CompositeConditionKey(*(int(group) for group in match.groups()))
        conditions = None
    snapshot = ConditionSnapshot.from_value(conditions)
    temperature, grade, load = snapshot.temperature, snapshot.grade, snapshot.load

    if temperature < 45:
        return ConditionBucket.COLD
    if temperature > 85:
        return ConditionBucket.HOT
    if grade > 6:
        return ConditionBucket.HILLS
    if load > 600:
        return ConditionBucket.LOADED
    if 60 <= temperature <= 80 and grade <= 3 and load <= 200:
        return ConditionBucket.IDEAL
    return CompositeConditionKey(
        round_half_up(temperature / 10), round_half_up(grade), round_half_up(load / 100)
    )


def vehicle_key(vehicle: VehicleProfile | Mapping[str, Any] | str | None) -> str:
    """Return the cache tag for ``vehicle``; absent tags become ``e4``."""

    if vehicle is None:
        return DEFAULT_VEHICLE_TAG
    if isinstance(vehicle, VehicleProfile):
        return vehicle.tag
    if isinstance(vehicle, Mapping):
        return VehicleProfile.from_mapping(vehicle).tag
    return VehicleProfile(model=str(vehicle)).tag if normalise_vehicle_tag(vehicle) else DEFAULT_VEHICLE_TAG


def generate_cache_key(vehicle: Any, priority: Any, condition: Any) -> str:
    """Return ``"{vehicle}_{priority}_{condition}"``.

    Each component may be a raw tag/key string, a bucket, a composite key,
    a profile or a plain mapping.
    """

    return f"{vehicle_key(vehicle)}_{hash_priorities(priority)}_{hash_conditions(condition)}"


def reconstruct_condition(key: ConditionKey | str) -> ConditionSnapshot:
    """Return representative numeric conditions for a condition key.

    Unknown keys decode to the ideal conditions.
    """

    parsed = hash_conditions(key) if isinstance(key, str) else key
    if isinstance(parsed, ConditionBucket):
        return _BUCKET_CONDITIONS[parsed]
    if isinstance(parsed, CompositeConditionKey):
        return ConditionSnapshot(
            float(parsed.temperature * 10), float(parsed.grade), float(parsed.load * 100)
        )
    return _BUCKET_CONDITIONS[ConditionBucket.IDEAL]


def similarity_scores(candidates: Sequence[ConditionSnapshot], target: ConditionSnapshot) -> np.ndarray:
    """Score every candidate against ``target`` in one vectorised pass.

    Each dimension contributes ``clamp(1 - |delta| / tolerance, 0, 1)`` and
    the per-dimension scores are multiplied, so a score of 1.0 means an
    identical snapshot.
    """

    if not candidates:
        return np.zeros(0, dtype=float)
    matrix = np.vstack([candidate.as_array() for candidate in candidates])
    tolerances = np.array([_TEMPERATURE_TOLERANCE, _GRADE_TOLERANCE, _LOAD_TOLERANCE])
    deltas = np.abs(matrix - target.as_array()) / tolerances
    per_dimension = np.clip(1.0 - deltas, 0.0, 1.0)
    return np.prod(per_dimension, axis=1)


def condition_similarity(candidate: ConditionSnapshot, target: ConditionSnapshot) -> float:
    return float(similarity_scores([candidate], target)[0])
