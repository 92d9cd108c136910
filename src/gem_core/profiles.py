"""Structured inputs consumed by the optimiser and the cache.

Each profile is an immutable record.  ``from_mapping`` constructors accept
the camelCase payloads produced by the UI and preset collaborators as well
as snake_case keys, substituting documented defaults for anything missing
or malformed so the optimiser can always run.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Type, TypeVar

from gem_core.constants import DEFAULT_VEHICLE_TAG
from gem_core.parameters import ParameterVector
from gem_core.utils import positive_float, safe_float

__all__ = [
    "BatteryAge",
    "BatteryChemistry",
    "BatteryProfile",
    "EnvironmentProfile",
    "MotorCondition",
    "OptimizationRequest",
    "PriorityWeights",
    "TemperatureBand",
    "TerrainClass",
    "VehicleLoad",
    "VehicleModel",
    "VehicleProfile",
    "WheelProfile",
    "normalise_vehicle_tag",
]

logger = logging.getLogger(__name__)

_E = TypeVar("_E", bound=Enum)


def _coerce_enum(enum_cls: Type[_E], value: object, default: _E) -> _E:
    if isinstance(value, enum_cls):
        return value
    if value is None:
        return default
    text = str(value).strip().lower()
    for member in enum_cls:
        if str(member.value).lower() == text:
            return member
    logger.debug("Unrecognised %s %r, using %s", enum_cls.__name__, value, default.value)
    return default


def _first(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        if key in payload and payload[key] not in (None, ""):
            return payload[key]
    return None


def normalise_vehicle_tag(value: object) -> str | None:
    """Return a lower-case vehicle tag without separators, or ``None``."""

    if value is None:
        return None
    text = "".join(str(value).split()).replace("-", "").replace("_", "").lower()
    return text or None


class VehicleModel(str, Enum):
    """Vehicle variants with known drivetrain parameters."""

    E2 = "e2"
    E4 = "e4"
    ES = "eS"
    EL = "eL"
    E6 = "e6"
    ELXD = "elXD"

    @property
    def tag(self) -> str:
        return self.value.lower()

    @classmethod
    def resolve(cls, value: object) -> Optional["VehicleModel"]:
        if isinstance(value, cls):
            return value
        tag = normalise_vehicle_tag(value)
        for member in cls:
            if member.tag == tag:
                return member
        return None


class MotorCondition(str, Enum):
    GOOD = "good"
    FAIR = "fair"
    SPARKING = "sparking"


class BatteryChemistry(str, Enum):
    LEAD = "lead"
    AGM = "agm"
    LITHIUM = "lithium"


class BatteryAge(str, Enum):
    NEW = "new"
    GOOD = "good"
    OLD = "old"


class TerrainClass(str, Enum):
    FLAT = "flat"
    MIXED = "mixed"
    MODERATE = "moderate"
    STEEP = "steep"


class VehicleLoad(str, Enum):
    LIGHT = "light"
    MEDIUM = "medium"
    HEAVY = "heavy"
    MAX = "max"


class TemperatureBand(str, Enum):
    COLD = "cold"
    MILD = "mild"
    HOT = "hot"
    EXTREME = "extreme"


@dataclass(frozen=True, slots=True)
class VehicleProfile:
    """Vehicle description supplied with every optimisation request."""

    model: str = DEFAULT_VEHICLE_TAG
    top_speed_rating: float = 25.0
    motor_condition: MotorCondition = MotorCondition.GOOD

    @property
    def vehicle_model(self) -> VehicleModel | None:
        return VehicleModel.resolve(self.model)

    @property
    def tag(self) -> str:
        """Cache tag: the canonical model tag, or the normalised raw tag."""

        known = self.vehicle_model
        if known is not None:
            return known.tag
        return normalise_vehicle_tag(self.model) or DEFAULT_VEHICLE_TAG

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | str | None) -> "VehicleProfile":
        if isinstance(payload, cls):
            return payload
        if isinstance(payload, str):
            return cls(model=payload)
        payload = payload or {}
        model = _first(payload, "model", "vehicle")
        return cls(
            model=str(model) if model is not None else DEFAULT_VEHICLE_TAG,
            top_speed_rating=positive_float(
                _first(payload, "top_speed_rating", "topSpeedRating", "topSpeed"), 25.0
            ),
            motor_condition=_coerce_enum(
                MotorCondition,
                _first(payload, "motor_condition", "motorCondition"),
                MotorCondition.GOOD,
            ),
        )


@dataclass(frozen=True, slots=True)
class BatteryProfile:
    chemistry: BatteryChemistry = BatteryChemistry.LEAD
    voltage: int = 72
    capacity: float = 150.0
    age: BatteryAge = BatteryAge.GOOD

    @property
    def is_lithium(self) -> bool:
        return self.chemistry is BatteryChemistry.LITHIUM

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None) -> "BatteryProfile":
        if isinstance(payload, cls):
            return payload
        payload = payload or {}
        return cls(
            chemistry=_coerce_enum(
                BatteryChemistry, _first(payload, "chemistry", "type"), BatteryChemistry.LEAD
            ),
            voltage=int(positive_float(_first(payload, "voltage"), 72.0)),
            capacity=positive_float(_first(payload, "capacity"), 150.0),
            age=_coerce_enum(BatteryAge, _first(payload, "age"), BatteryAge.GOOD),
        )


@dataclass(frozen=True, slots=True)
class WheelProfile:
    tire_diameter: float = 22.0
    gear_ratio: float | None = None

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None) -> "WheelProfile":
        if isinstance(payload, cls):
            return payload
        payload = payload or {}
        ratio = _first(payload, "gear_ratio", "gearRatio")
        return cls(
            tire_diameter=positive_float(_first(payload, "tire_diameter", "tireDiameter"), 22.0),
            gear_ratio=positive_float(ratio, 0.0) or None,
        )


_BAND_TEMPERATURES = {
    TemperatureBand.COLD: 35.0,
    TemperatureBand.MILD: 70.0,
    TemperatureBand.HOT: 95.0,
    TemperatureBand.EXTREME: 105.0,
}
_TERRAIN_GRADES = {
    TerrainClass.FLAT: 0.0,
    TerrainClass.MIXED: 3.0,
    TerrainClass.MODERATE: 6.0,
    TerrainClass.STEEP: 10.0,
}
_LOAD_PAYLOADS = {
    VehicleLoad.LIGHT: 0.0,
    VehicleLoad.MEDIUM: 300.0,
    VehicleLoad.HEAVY: 600.0,
    VehicleLoad.MAX: 900.0,
}


def _band_for_temperature(temperature: float) -> TemperatureBand:
    if temperature < 45:
        return TemperatureBand.COLD
    if temperature > 100:
        return TemperatureBand.EXTREME
    if temperature > 85:
        return TemperatureBand.HOT
    return TemperatureBand.MILD


def _terrain_for_grade(grade: float) -> TerrainClass:
    if grade <= 2:
        return TerrainClass.FLAT
    if grade <= 5:
        return TerrainClass.MIXED
    if grade <= 8:
        return TerrainClass.MODERATE
    return TerrainClass.STEEP


def _load_for_payload(payload: float) -> VehicleLoad:
    if payload < 200:
        return VehicleLoad.LIGHT
    if payload < 500:
        return VehicleLoad.MEDIUM
    if payload < 800:
        return VehicleLoad.HEAVY
    return VehicleLoad.MAX


@dataclass(frozen=True, slots=True)
class EnvironmentProfile:
    """Terrain, load and climate the vehicle will operate in.

    ``temperature`` (deg F) and ``payload`` (lbs) are the numeric facts the
    cache buckets on.  When only one of a categorical/numeric pair is
    supplied, ``from_mapping`` derives the other from representative values.
    """

    terrain: TerrainClass = TerrainClass.FLAT
    vehicle_load: VehicleLoad = VehicleLoad.LIGHT
    temperature_band: TemperatureBand = TemperatureBand.MILD
    hill_grade_percent: float = 0.0
    temperature: float = 70.0
    payload: float = 0.0

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None) -> "EnvironmentProfile":
        if isinstance(payload, cls):
            return payload
        payload = payload or {}
        raw_terrain = _first(payload, "terrain", "terrainClass", "terrain_class")
        raw_load = _first(payload, "vehicle_load", "vehicleLoad")
        raw_band = _first(payload, "temperature_band", "temperatureBand", "temperatureRange")
        raw_grade = _first(payload, "hill_grade_percent", "hillGradePercent", "hillGrade", "grade")
        raw_temperature = _first(payload, "temperature")
        raw_payload = _first(payload, "payload", "load")

        terrain = _coerce_enum(TerrainClass, raw_terrain, TerrainClass.FLAT)
        load = _coerce_enum(VehicleLoad, raw_load, VehicleLoad.LIGHT)
        band = _coerce_enum(TemperatureBand, raw_band, TemperatureBand.MILD)

        grade = safe_float(raw_grade, _TERRAIN_GRADES[terrain]) if raw_grade is not None else None
        temperature = safe_float(raw_temperature, _BAND_TEMPERATURES[band]) if raw_temperature is not None else None
        weight = safe_float(raw_payload, _LOAD_PAYLOADS[load]) if raw_payload is not None else None

        if raw_terrain is None and grade is not None:
            terrain = _terrain_for_grade(grade)
        if raw_band is None and temperature is not None:
            band = _band_for_temperature(temperature)
        if raw_load is None and weight is not None:
            load = _load_for_payload(weight)

        return cls(
            terrain=terrain,
            vehicle_load=load,
            temperature_band=band,
            hill_grade_percent=grade if grade is not None else _TERRAIN_GRADES[terrain],
            temperature=temperature if temperature is not None else _BAND_TEMPERATURES[band],
            payload=weight if weight is not None else _LOAD_PAYLOADS[load],
        )


_OPTIMIZER_PRIORITIES = ("range", "speed", "acceleration", "hill_climbing", "regen")


@dataclass(frozen=True, slots=True)
class PriorityWeights:
    """User weights on a 0-10 scale; interpreted individually, never normalised.

    ``efficiency`` only participates in cache bucketing.
    """

    range: float = 5.0
    speed: float = 5.0
    acceleration: float = 5.0
    hill_climbing: float = 5.0
    regen: float = 5.0
    efficiency: float = 5.0

    def fractions(self) -> Dict[str, float]:
        """Return the optimiser weights divided by ten, 0.5 when unset."""

        return {name: (getattr(self, name) / 10) or 0.5 for name in _OPTIMIZER_PRIORITIES}

    def optimizer_values(self) -> Dict[str, float]:
        return {name: float(getattr(self, name)) for name in _OPTIMIZER_PRIORITIES}

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None) -> "PriorityWeights":
        if isinstance(payload, cls):
            return payload
        payload = payload or {}

        def weight(*keys: str) -> float:
            return safe_float(_first(payload, *keys), 5.0)

        return cls(
            range=weight("range"),
            speed=weight("speed"),
            acceleration=weight("acceleration"),
            hill_climbing=weight("hill_climbing", "hillClimbing", "hills"),
            regen=weight("regen"),
            efficiency=weight("efficiency"),
        )


@dataclass(frozen=True)
class OptimizationRequest:
    """Complete set of inputs for a single optimisation call."""

    vehicle: VehicleProfile = field(default_factory=VehicleProfile)
    battery: BatteryProfile = field(default_factory=BatteryProfile)
    wheel: WheelProfile = field(default_factory=WheelProfile)
    environment: EnvironmentProfile = field(default_factory=EnvironmentProfile)
    priorities: PriorityWeights = field(default_factory=PriorityWeights)
    baseline: ParameterVector | None = None

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None) -> "OptimizationRequest":
        payload = payload or {}

        def section(name: str) -> Mapping[str, Any]:
            value = payload.get(name)
            return value if isinstance(value, Mapping) else {}

        baseline_payload = payload.get("baseline") or payload.get("baselineSettings")
        baseline = None
        if isinstance(baseline_payload, Mapping):
            try:
                baseline = ParameterVector(baseline_payload)
            except (TypeError, ValueError) as exc:
                logger.debug("Ignoring malformed baseline settings: %s", exc)
        return cls(
            vehicle=VehicleProfile.from_mapping(section("vehicle")),
            battery=BatteryProfile.from_mapping(section("battery")),
            wheel=WheelProfile.from_mapping(section("wheel")),
            environment=EnvironmentProfile.from_mapping(section("environment")),
            priorities=PriorityWeights.from_mapping(section("priorities")),
            baseline=baseline,
        )
