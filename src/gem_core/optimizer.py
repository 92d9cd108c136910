"""Deterministic rule-based optimiser for GEM T2 controller settings.

The optimiser derives an :class:`AnalysisContext` once, then threads a
mutable :class:`~gem_core.parameters.ParameterVectorBuilder` seeded with the
factory defaults through an ordered pipeline of stage functions.  Later
stages read values written by earlier ones, so the order of
:data:`OPTIMIZATION_STAGES` is part of the contract.  The safety clamp runs
after the pipeline unconditionally and the resulting vector is verified
again when the :class:`OptimizationResult` is built.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field, fields, replace
from statistics import pvariance
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Tuple

from gem_core.constants import (
    DEFAULT_VEHICLE_TAG,
    FACTORY_DEFAULTS,
    REFERENCE_TIRE_DIAMETER,
    SAFETY_CONSTRAINTS,
    VEHICLE_PARAMETERS,
    ControllerFunction as F,
)
from gem_core.errors import SafetyInvariantError
from gem_core.parameters import ParameterVector, ParameterVectorBuilder
from gem_core.performance import summarise_performance
from gem_core.profiles import (
    BatteryProfile,
    EnvironmentProfile,
    MotorCondition,
    PriorityWeights,
    TemperatureBand,
    TerrainClass,
    VehicleLoad,
    VehicleProfile,
    WheelProfile,
)
from gem_core.utils import round_half_up

__all__ = [
    "AnalysisContext",
    "CacheAnnotation",
    "OPTIMIZATION_STAGES",
    "OptimizationResult",
    "RuleBasedOptimizer",
    "analyse_configuration",
    "estimate_confidence",
    "optimize_settings",
]

logger = logging.getLogger(__name__)

_MOTOR_RISK: Mapping[MotorCondition, float] = MappingProxyType(
    {MotorCondition.GOOD: 0.0, MotorCondition.FAIR: 0.5, MotorCondition.SPARKING: 1.0}
)
_TERRAIN_DIFFICULTY: Mapping[TerrainClass, float] = MappingProxyType(
    {
        TerrainClass.FLAT: 0.1,
        TerrainClass.MIXED: 0.4,
        TerrainClass.MODERATE: 0.6,
        TerrainClass.STEEP: 1.0,
    }
)
_LOAD_FACTOR: Mapping[VehicleLoad, float] = MappingProxyType(
    {
        VehicleLoad.LIGHT: 1.0,
        VehicleLoad.MEDIUM: 1.4,
        VehicleLoad.HEAVY: 1.75,
        VehicleLoad.MAX: 2.0,
    }
)
_TEMPERATURE_FACTOR: Mapping[TemperatureBand, float] = MappingProxyType(
    {
        TemperatureBand.MILD: 0.3,
        TemperatureBand.COLD: 0.7,
        TemperatureBand.HOT: 0.8,
        TemperatureBand.EXTREME: 1.0,
    }
)

_PRIORITY_TRIGGER = 0.7
_LITHIUM_IR_COMPENSATION = 7

RULE_BASED_METHOD = "rule_based"


@dataclass(frozen=True)
class AnalysisContext:
    """Read-only facts derived once per optimisation call."""

    vehicle_tag: str
    known_vehicle: bool
    vehicle_weight: int
    gear_ratio: float
    tire_size_ratio: float
    battery_voltage: int
    is_lithium: bool
    motor_risk: float
    terrain_difficulty: float
    load_factor: float
    temperature_factor: float
    priority_weights: Mapping[str, float]

    def as_dict(self) -> Dict[str, Any]:
        payload = {item.name: getattr(self, item.name) for item in fields(self)}
        payload["priority_weights"] = dict(self.priority_weights)
        return payload


@dataclass(frozen=True)
class CacheAnnotation:
    """Metadata attached to results served from or stored in the cache."""

    generated_at: float
    cache_hit: str | None = None
    key: str | None = None
    cached: bool = True


@dataclass(frozen=True)
class OptimizationResult:
    """Outcome of a single optimisation.  Never mutated after construction."""

    factory_settings: ParameterVector
    optimized_settings: ParameterVector
    performance_changes: Tuple[str, ...]
    analysis: AnalysisContext
    baseline_settings: ParameterVector
    is_using_imported_baseline: bool = False
    confidence: float = 0.8
    method: str = RULE_BASED_METHOD
    strategy: str | None = None
    notes: Tuple[str, ...] = ()
    estimates: Mapping[str, float] = field(default_factory=dict)
    cache: CacheAnnotation | None = None

    def __post_init__(self) -> None:
        violations = self.optimized_settings.violations(SAFETY_CONSTRAINTS)
        if violations:
            raise SafetyInvariantError(violations)

    @property
    def cached(self) -> bool:
        return self.cache is not None and self.cache.cached

    @property
    def cache_hit(self) -> str | None:
        return self.cache.cache_hit if self.cache is not None else None

    def with_cache_annotation(
        self,
        *,
        generated_at: float,
        cache_hit: str | None = None,
        key: str | None = None,
        method: str | None = None,
        confidence_scale: float = 1.0,
    ) -> "OptimizationResult":
        """Return a copy tagged with cache metadata; settings are untouched."""

        return replace(
            self,
            cache=CacheAnnotation(generated_at=generated_at, cache_hit=cache_hit, key=key),
            method=method or self.method,
            confidence=self.confidence * confidence_scale,
        )

    def without_cache_annotation(self) -> "OptimizationResult":
        return replace(self, cache=None)

    def to_payload(self) -> Dict[str, Any]:
        """Return a JSON-ready mapping using the UI field names."""

        def _settings(vector: ParameterVector) -> Dict[str, int]:
            return {str(number): value for number, value in vector.items()}

        payload: Dict[str, Any] = {
            "factorySettings": _settings(self.factory_settings),
            "baselineSettings": _settings(self.baseline_settings),
            "isUsingImportedBaseline": self.is_using_imported_baseline,
            "optimizedSettings": _settings(self.optimized_settings),
            "performanceChanges": list(self.performance_changes),
            "analysisData": self.analysis.as_dict(),
            "confidence": round(self.confidence, 4),
            "method": self.method,
            "cached": self.cached,
        }
        if self.strategy is not None:
            payload["strategy"] = self.strategy
        if self.notes:
            payload["recommendations"] = list(self.notes)
        if self.estimates:
            payload["performance"] = dict(self.estimates)
        if self.cache is not None:
            payload["cacheHit"] = self.cache.cache_hit
            payload["cacheGenerated"] = self.cache.generated_at
            if self.cache.key is not None:
                payload["cacheKey"] = self.cache.key
        return payload


Stage = Callable[[AnalysisContext, ParameterVectorBuilder], ParameterVectorBuilder]


def analyse_configuration(
    vehicle: VehicleProfile,
    battery: BatteryProfile,
    wheel: WheelProfile,
    environment: EnvironmentProfile,
    priorities: PriorityWeights,
) -> AnalysisContext:
    model = vehicle.vehicle_model
    if model is None:
        logger.debug("Unknown vehicle model %r, using %s parameters", vehicle.model, DEFAULT_VEHICLE_TAG)
    parameters = VEHICLE_PARAMETERS[model.tag if model is not None else DEFAULT_VEHICLE_TAG]
    return AnalysisContext(
        vehicle_tag=vehicle.tag,
        known_vehicle=model is not None,
        vehicle_weight=parameters.weight,
        gear_ratio=wheel.gear_ratio or parameters.gear_ratio,
        tire_size_ratio=(wheel.tire_diameter / REFERENCE_TIRE_DIAMETER) or 1.0,
        battery_voltage=battery.voltage,
        is_lithium=battery.is_lithium,
        motor_risk=_MOTOR_RISK[vehicle.motor_condition],
        terrain_difficulty=_TERRAIN_DIFFICULTY[environment.terrain],
        load_factor=_LOAD_FACTOR[environment.vehicle_load],
        temperature_factor=_TEMPERATURE_FACTOR[environment.temperature_band],
        priority_weights=MappingProxyType(priorities.fractions()),
    )


def scale_for_tires(ctx: AnalysisContext, settings: ParameterVectorBuilder) -> ParameterVectorBuilder:
    ratio = ctx.tire_size_ratio
    settings.set(F.MPH_SCALING, FACTORY_DEFAULTS[F.MPH_SCALING] * ratio)
    settings.set(F.ODOMETER_CALIBRATION, FACTORY_DEFAULTS[F.ODOMETER_CALIBRATION] * ratio)
    if ratio > 1.1:
        settings.scale(F.MIN_FIELD_CURRENT, 1.2, ceiling=SAFETY_CONSTRAINTS[F.MIN_FIELD_CURRENT].maximum)
    return settings


def tune_battery(ctx: AnalysisContext, settings: ParameterVectorBuilder) -> ParameterVectorBuilder:
    settings.set(F.BATTERY_VOLTS, ctx.battery_voltage)
    if ctx.is_lithium:
        settings.set(F.IR_COMPENSATION, _LITHIUM_IR_COMPENSATION)
        settings.scale(
            F.REGEN_ARMATURE_CURRENT, 1.1, ceiling=SAFETY_CONSTRAINTS[F.REGEN_ARMATURE_CURRENT].maximum
        )
        settings.scale(
            F.REGEN_MAX_FIELD_CURRENT, 1.15, ceiling=SAFETY_CONSTRAINTS[F.REGEN_MAX_FIELD_CURRENT].maximum
        )
    return settings


def protect_motor(ctx: AnalysisContext, settings: ParameterVectorBuilder) -> ParameterVectorBuilder:
    """Trade top speed for brush life in proportion to observed wear."""

    if ctx.motor_risk <= 0:
        return settings
    risk_factor = 1 + ctx.motor_risk * 0.5
    settings.scale(F.MIN_FIELD_CURRENT, risk_factor, ceiling=SAFETY_CONSTRAINTS[F.MIN_FIELD_CURRENT].maximum)
    settings.scale(
        F.FIELD_WEAKENING_START, risk_factor, ceiling=SAFETY_CONSTRAINTS[F.FIELD_WEAKENING_START].maximum
    )
    settings.divide(F.MPH_OVERSPEED, risk_factor, floor=SAFETY_CONSTRAINTS[F.MPH_OVERSPEED].minimum)
    settings.divide(F.ERROR_COMPENSATION, 2, floor=SAFETY_CONSTRAINTS[F.ERROR_COMPENSATION].minimum)
    return settings


def adjust_for_terrain(ctx: AnalysisContext, settings: ParameterVectorBuilder) -> ParameterVectorBuilder:
    difficulty = ctx.terrain_difficulty
    if not (difficulty > 0.5 or ctx.load_factor > 1.4):
        return settings
    settings.scale(
        F.CONTROLLED_ACCELERATION,
        1 - difficulty * 0.2,
        floor=SAFETY_CONSTRAINTS[F.CONTROLLED_ACCELERATION].minimum,
    )
    settings.set(F.MAX_ARMATURE_CURRENT, FACTORY_DEFAULTS[F.MAX_ARMATURE_CURRENT])
    settings.scale(
        F.REGEN_ARMATURE_CURRENT,
        1 + difficulty * 0.1,
        ceiling=SAFETY_CONSTRAINTS[F.REGEN_ARMATURE_CURRENT].maximum,
    )
    settings.shift(
        F.FIELD_TO_ARMATURE_RATIO,
        round_half_up(difficulty),
        ceiling=SAFETY_CONSTRAINTS[F.FIELD_TO_ARMATURE_RATIO].maximum,
    )
    return settings


def tune_priorities(ctx: AnalysisContext, settings: ParameterVectorBuilder) -> ParameterVectorBuilder:
    weights = ctx.priority_weights
    if weights["speed"] > _PRIORITY_TRIGGER:
        settings.scale(F.MIN_FIELD_CURRENT, 0.9)
        settings.scale(F.TURF_SPEED_LIMIT, 1.1, ceiling=SAFETY_CONSTRAINTS[F.TURF_SPEED_LIMIT].maximum)
    if weights["acceleration"] > _PRIORITY_TRIGGER:
        settings.scale(
            F.CONTROLLED_ACCELERATION, 0.8, floor=SAFETY_CONSTRAINTS[F.CONTROLLED_ACCELERATION].minimum
        )
        settings.scale(
            F.ARMATURE_ACCELERATION_RATE,
            0.85,
            floor=SAFETY_CONSTRAINTS[F.ARMATURE_ACCELERATION_RATE].minimum,
        )
    if weights["range"] > _PRIORITY_TRIGGER:
        # Gentler starts draw less current.
        settings.scale(
            F.CONTROLLED_ACCELERATION, 1.2, ceiling=SAFETY_CONSTRAINTS[F.CONTROLLED_ACCELERATION].maximum
        )
        settings.scale(F.MAX_ARMATURE_CURRENT, 0.95)
    if weights["regen"] > _PRIORITY_TRIGGER:
        settings.scale(
            F.REGEN_ARMATURE_CURRENT, 1.15, ceiling=SAFETY_CONSTRAINTS[F.REGEN_ARMATURE_CURRENT].maximum
        )
        settings.scale(
            F.REGEN_MAX_FIELD_CURRENT, 1.2, ceiling=SAFETY_CONSTRAINTS[F.REGEN_MAX_FIELD_CURRENT].maximum
        )
        settings.scale(F.FIELD_RAMP_RATE, 0.7, floor=SAFETY_CONSTRAINTS[F.FIELD_RAMP_RATE].minimum)
    return settings


OPTIMIZATION_STAGES: Tuple[Stage, ...] = (
    scale_for_tires,
    tune_battery,
    protect_motor,
    adjust_for_terrain,
    tune_priorities,
)


def estimate_confidence(
    ctx: AnalysisContext, priorities: PriorityWeights, environment: EnvironmentProfile
) -> float:
    """Return how well the rules cover the request, clamped to ``[0.0, 0.95]``.

    Widely spread priority weights lower the score; weights outside the
    0-10 scale can push the raw value below zero.
    """

    confidence = 0.8
    if ctx.known_vehicle:
        confidence += 0.1
    variance = pvariance(priorities.optimizer_values().values())
    confidence += (1 - variance / 25) * 0.1
    if 50 <= environment.temperature <= 80:
        confidence += 0.05
    return min(0.95, max(0.0, confidence))


def optimize_settings(
    vehicle: VehicleProfile | Mapping[str, Any] | str | None = None,
    battery: BatteryProfile | Mapping[str, Any] | None = None,
    wheel: WheelProfile | Mapping[str, Any] | None = None,
    environment: EnvironmentProfile | Mapping[str, Any] | None = None,
    priorities: PriorityWeights | Mapping[str, Any] | None = None,
    *,
    baseline: Mapping[int, int] | None = None,
) -> OptimizationResult:
    """Derive a safety-clamped controller vector for the supplied inputs."""

    vehicle_profile = VehicleProfile.from_mapping(vehicle)
    battery_profile = BatteryProfile.from_mapping(battery)
    wheel_profile = WheelProfile.from_mapping(wheel)
    environment_profile = EnvironmentProfile.from_mapping(environment)
    priority_weights = PriorityWeights.from_mapping(priorities)

    ctx = analyse_configuration(
        vehicle_profile, battery_profile, wheel_profile, environment_profile, priority_weights
    )
    factory = ParameterVector(FACTORY_DEFAULTS)
    settings = ParameterVectorBuilder(factory)
    for stage in OPTIMIZATION_STAGES:
        settings = stage(ctx, settings)
    optimized = settings.clamp(SAFETY_CONSTRAINTS).freeze()

    baseline_vector = ParameterVector(baseline) if baseline is not None else factory
    return OptimizationResult(
        factory_settings=factory,
        optimized_settings=optimized,
        performance_changes=summarise_performance(optimized, factory, ctx),
        analysis=ctx,
        baseline_settings=baseline_vector,
        is_using_imported_baseline=baseline is not None,
        confidence=estimate_confidence(ctx, priority_weights, environment_profile),
    )


class RuleBasedOptimizer:
    """Callable facade over :func:`optimize_settings`.

    Holds no mutable state, so one instance may serve any number of
    concurrent callers.
    """

    def optimize_settings(
        self,
        vehicle: VehicleProfile | Mapping[str, Any] | str | None = None,
        battery: BatteryProfile | Mapping[str, Any] | None = None,
        wheel: WheelProfile | Mapping[str, Any] | None = None,
        environment: EnvironmentProfile | Mapping[str, Any] | None = None,
        priorities: PriorityWeights | Mapping[str, Any] | None = None,
        *,
        baseline: Mapping[int, int] | None = None,
    ) -> OptimizationResult:
        started = time.perf_counter()
        result = optimize_settings(vehicle, battery, wheel, environment, priorities, baseline=baseline)
        logger.debug(
            "Optimised %s in %.3f ms",
            result.analysis.vehicle_tag,
            (time.perf_counter() - started) * 1000,
            extra={"event": "optimizer.run", "changes": len(result.performance_changes)},
        )
        return result

    __call__ = optimize_settings
