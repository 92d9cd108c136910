"""Scenario matrix used to pre-populate the optimisation cache."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Tuple

try:  # Python 3.11+
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover - Python < 3.11 fallback
    import tomli as tomllib  # type: ignore

from gem_core.constants import FACTORY_DEFAULTS, SAFETY_CONSTRAINTS
from gem_core.constants import ControllerFunction as F
from gem_core.data import SCENARIOS_RESOURCE
from gem_core.hashing import ConditionSnapshot, vehicle_key
from gem_core.parameters import ParameterVector
from gem_core.profiles import EnvironmentProfile, PriorityWeights

__all__ = [
    "ConditionProfile",
    "PriorityProfile",
    "QuickScenario",
    "ScenarioLibrary",
    "estimate_performance",
    "load_scenario_library",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class PriorityProfile:
    name: str
    weights: PriorityWeights


@dataclass(frozen=True, slots=True)
class ConditionProfile:
    name: str
    condition: ConditionSnapshot
    surface: str = "paved"

    def environment(self) -> EnvironmentProfile:
        return EnvironmentProfile.from_mapping(
            {
                "temperature": self.condition.temperature,
                "grade": self.condition.grade,
                "load": self.condition.load,
            }
        )


@dataclass(frozen=True, slots=True)
class QuickScenario:
    """Hand-authored controller vector served for common requests."""

    name: str
    vehicle: str
    description: str
    weights: PriorityWeights
    condition: ConditionSnapshot
    settings: ParameterVector
    recommendations: Tuple[str, ...] = ()

    @property
    def key(self) -> str:
        return f"quick_{self.name}_{self.vehicle}"


@dataclass(frozen=True)
class ScenarioLibrary:
    vehicles: Tuple[str, ...] = ()
    priority_profiles: Tuple[PriorityProfile, ...] = ()
    condition_profiles: Tuple[ConditionProfile, ...] = ()
    quick_scenarios: Tuple[QuickScenario, ...] = field(default_factory=tuple)

    def __len__(self) -> int:
        return len(self.vehicles) * len(self.priority_profiles) * len(self.condition_profiles)


def estimate_performance(settings: Mapping[int, int]) -> Dict[str, float]:
    """Rough speed (mph), range (miles), efficiency (%) and 0-20 time (s)."""

    mph_scaling = settings.get(F.MPH_SCALING, FACTORY_DEFAULTS[F.MPH_SCALING])
    max_current = settings.get(F.MAX_ARMATURE_CURRENT, FACTORY_DEFAULTS[F.MAX_ARMATURE_CURRENT])
    acceleration = settings.get(
        F.ARMATURE_ACCELERATION_RATE, FACTORY_DEFAULTS[F.ARMATURE_ACCELERATION_RATE]
    )
    return {
        "speed": round(min(25.0, mph_scaling * 1.1), 1),
        "range": round(max(15.0, 40 - (max_current - 200) * 0.08), 1),
        "efficiency": round(max(60.0, 85 - (max_current - 200) * 0.1), 1),
        "acceleration": round(max(5.0, 12 - (acceleration - 40) * 0.05), 1),
    }


def _snapshot(payload: Any) -> ConditionSnapshot:
    return ConditionSnapshot.from_value(payload if isinstance(payload, Mapping) else {})


def _priority_profile(payload: Mapping[str, Any]) -> PriorityProfile:
    weights = {key: value for key, value in payload.items() if key != "name"}
    return PriorityProfile(name=str(payload["name"]), weights=PriorityWeights.from_mapping(weights))


def _condition_profile(payload: Mapping[str, Any]) -> ConditionProfile:
    return ConditionProfile(
        name=str(payload["name"]),
        condition=_snapshot(payload),
        surface=str(payload.get("surface", "paved")),
    )


def _quick_scenario(payload: Mapping[str, Any]) -> QuickScenario:
    overrides = payload.get("settings")
    settings = ParameterVector(FACTORY_DEFAULTS).with_values(
        overrides if isinstance(overrides, Mapping) else {}
    )
    clamped = settings.clamped(SAFETY_CONSTRAINTS)
    if clamped != settings:
        logger.warning(
            "Quick scenario %s clamped to safety bounds",
            payload["name"],
            extra={"event": "scenarios.clamped", "violations": settings.violations()},
        )
    priorities = payload.get("priorities")
    return QuickScenario(
        name=str(payload["name"]),
        vehicle=vehicle_key(payload.get("vehicle")),
        description=str(payload.get("description", "Custom optimization")),
        weights=PriorityWeights.from_mapping(priorities if isinstance(priorities, Mapping) else None),
        condition=_snapshot(payload.get("condition")),
        settings=clamped,
        recommendations=tuple(str(item) for item in payload.get("recommendations", ())),
    )


def load_scenario_library(path: str | Path | None = None) -> ScenarioLibrary:
    """Load the scenario matrix from ``path`` or the bundled resource."""

    if path is None:
        with SCENARIOS_RESOURCE.open("rb") as handle:
            payload = tomllib.load(handle)
    else:
        with Path(path).expanduser().open("rb") as handle:
            payload = tomllib.load(handle)

    def tables(name: str) -> Tuple[Mapping[str, Any], ...]:
        return tuple(
            entry for entry in payload.get(name, ()) if isinstance(entry, Mapping) and "name" in entry
        )

    return ScenarioLibrary(
        vehicles=tuple(str(vehicle) for vehicle in payload.get("vehicles", ())),
        priority_profiles=tuple(_priority_profile(entry) for entry in tables("priorities")),
        condition_profiles=tuple(_condition_profile(entry) for entry in tables("conditions")),
        quick_scenarios=tuple(_quick_scenario(entry) for entry in tables("quick")),
    )
