"""Pre-computed optimisation cache with exact, fuzzy and quick lookups.

An :class:`OptimizationCache` is an explicitly owned object: callers create
one, share it, and pass it where it is needed.  On construction it runs the
bundled scenario matrix through the optimiser once and stores every result
under its hashed key.  Lookups then resolve in three tiers (exact key,
nearest stored conditions for the same vehicle and priority bucket, and a
hand-authored quick scenario) before reporting a miss.

All state is guarded by one re-entrant lock.  The optimiser itself is pure,
so seeding and runtime insertions never block readers for long.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Protocol, Tuple

import numpy as np

from gem_core.cache_settings import CacheOptions
from gem_core.constants import FACTORY_DEFAULTS
from gem_core.hashing import (
    ConditionSnapshot,
    PriorityBucket,
    hash_conditions,
    hash_priorities,
    reconstruct_condition,
    similarity_scores,
    vehicle_key,
)
from gem_core.optimizer import OptimizationResult, RuleBasedOptimizer, analyse_configuration
from gem_core.parameters import ParameterVector
from gem_core.performance import summarise_performance
from gem_core.profiles import (
    BatteryProfile,
    EnvironmentProfile,
    PriorityWeights,
    VehicleProfile,
    WheelProfile,
)
from gem_core.scenarios import QuickScenario, ScenarioLibrary, estimate_performance, load_scenario_library
from gem_core.utils import round_half_up

__all__ = [
    "CacheStats",
    "OptimizationCache",
    "QuickScenarioInfo",
    "ScenarioMetadata",
    "SupportsOptimize",
]

logger = logging.getLogger(__name__)

PRE_COMPUTED_METHOD = "pre_computed_cache"
RUNTIME_METHOD = "runtime_cached"
QUICK_CONFIDENCE = 0.95

_QUICK_MAPPINGS: Mapping[PriorityBucket, str] = MappingProxyType(
    {
        PriorityBucket.SPEED_FOCUSED: "max_speed",
        PriorityBucket.PERFORMANCE: "max_speed",
        PriorityBucket.RANGE_FOCUSED: "max_range",
        PriorityBucket.EFFICIENCY_FOCUSED: "max_range",
        PriorityBucket.BALANCED: "factory_default",
    }
)


class SupportsOptimize(Protocol):
    def optimize_settings(
        self,
        vehicle: Any = None,
        battery: Any = None,
        wheel: Any = None,
        environment: Any = None,
        priorities: Any = None,
        *,
        baseline: Mapping[int, int] | None = None,
    ) -> OptimizationResult: ...


@dataclass(frozen=True, slots=True)
class ScenarioMetadata:
    """Provenance of one cache entry."""

    vehicle: str
    priority_profile: str
    condition_profile: str
    priority_key: str
    condition_key: str
    condition: ConditionSnapshot
    timestamp: float
    user_generated: bool = False
    quick_access: bool = False


@dataclass(frozen=True, slots=True)
class CacheStats:
    size: int
    scenarios: int
    hits: int
    misses: int
    hit_rate: float
    memory_kb: int

    def to_payload(self) -> Dict[str, Any]:
        return {
            "size": self.size,
            "scenarios": self.scenarios,
            "cacheHits": self.hits,
            "cacheMisses": self.misses,
            "hitRate": self.hit_rate,
            "memoryUsage": self.memory_kb,
        }


@dataclass(frozen=True, slots=True)
class QuickScenarioInfo:
    key: str
    name: str
    description: str
    vehicle: str


def _target_condition(conditions: Any) -> ConditionSnapshot:
    if isinstance(conditions, str):
        return reconstruct_condition(conditions)
    return ConditionSnapshot.from_value(conditions)


def _environment_for(conditions: Any) -> EnvironmentProfile:
    if isinstance(conditions, EnvironmentProfile):
        return conditions
    if isinstance(conditions, Mapping):
        return EnvironmentProfile.from_mapping(conditions)
    snapshot = _target_condition(conditions)
    return EnvironmentProfile.from_mapping(asdict(snapshot))


class OptimizationCache:
    """Keyed store of optimisation results for common scenarios."""

    def __init__(
        self,
        optimizer: SupportsOptimize | None = None,
        *,
        options: CacheOptions | None = None,
        scenario_library: ScenarioLibrary | None = None,
        clock: Callable[[], float] = time.time,
        preseed: bool = True,
    ) -> None:
        self._optimizer: SupportsOptimize = optimizer if optimizer is not None else RuleBasedOptimizer()
        self._options = (options or CacheOptions()).with_defaults()
        self._library = scenario_library if scenario_library is not None else load_scenario_library()
        self._clock = clock
        self._preseed = bool(preseed) and self._options.preseed and self._options.enabled
        self._lock = threading.RLock()
        self._results: Dict[str, OptimizationResult] = {}
        self._scenarios: Dict[str, ScenarioMetadata] = {}
        self._index: Dict[Tuple[str, str], List[str]] = {}
        self._quick: Dict[str, QuickScenario] = {}
        self._shadowed: Dict[str, Tuple[OptimizationResult, ScenarioMetadata]] = {}
        self._hits = 0
        self._misses = 0
        with self._lock:
            self._populate()

    @property
    def options(self) -> CacheOptions:
        return self._options

    def __len__(self) -> int:
        with self._lock:
            return len(self._results)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._results

    def metadata(self, key: str) -> ScenarioMetadata | None:
        with self._lock:
            return self._scenarios.get(key)

    # ------------------------------------------------------------------
    # Population

    def _populate(self) -> None:
        if not self._preseed:
            return
        started = time.perf_counter()
        now = self._clock()
        for vehicle in self._library.vehicles:
            tag = vehicle_key(vehicle)
            for priority in self._library.priority_profiles:
                priority_key = str(hash_priorities(priority.weights))
                for condition in self._library.condition_profiles:
                    condition_key = str(hash_conditions(condition.condition))
                    key = f"{tag}_{priority_key}_{condition_key}"
                    if key in self._results:
                        # Earlier profiles in the matrix keep a shared slot.
                        logger.debug(
                            "Scenario %s/%s shares key %s", priority.name, condition.name, key
                        )
                        continue
                    result = self._optimizer.optimize_settings(
                        VehicleProfile(model=tag),
                        None,
                        None,
                        condition.environment(),
                        priority.weights,
                    )
                    self._store(
                        key,
                        result.with_cache_annotation(generated_at=now, key=key, method=PRE_COMPUTED_METHOD),
                        ScenarioMetadata(
                            vehicle=tag,
                            priority_profile=priority.name,
                            condition_profile=condition.name,
                            priority_key=priority_key,
                            condition_key=condition_key,
                            condition=condition.condition,
                            timestamp=now,
                        ),
                    )
        for scenario in self._library.quick_scenarios:
            self._store_quick(scenario, now)
        logger.info(
            "Optimization cache initialised with %d pre-computed scenarios",
            len(self._results),
            extra={
                "event": "cache.initialised",
                "size": len(self._results),
                "elapsed_ms": round((time.perf_counter() - started) * 1000, 3),
            },
        )

    def _store_quick(self, scenario: QuickScenario, now: float) -> None:
        vehicle = VehicleProfile(model=scenario.vehicle)
        environment = _environment_for(scenario.condition)
        context = analyse_configuration(
            vehicle, BatteryProfile(), WheelProfile(), environment, scenario.weights
        )
        factory = ParameterVector(FACTORY_DEFAULTS)
        result = OptimizationResult(
            factory_settings=factory,
            optimized_settings=scenario.settings,
            performance_changes=summarise_performance(scenario.settings, factory, context),
            analysis=context,
            baseline_settings=factory,
            confidence=QUICK_CONFIDENCE,
            method=PRE_COMPUTED_METHOD,
            strategy=scenario.name,
            notes=scenario.recommendations,
            estimates=MappingProxyType(estimate_performance(scenario.settings)),
        )
        key = scenario.key
        self._results[key] = result.with_cache_annotation(generated_at=now, key=key)
        self._scenarios[key] = ScenarioMetadata(
            vehicle=scenario.vehicle,
            priority_profile=scenario.name,
            condition_profile="optimal",
            priority_key=str(hash_priorities(scenario.weights)),
            condition_key=str(hash_conditions(scenario.condition)),
            condition=scenario.condition,
            timestamp=now,
            quick_access=True,
        )
        self._quick[key] = scenario

    def _store(self, key: str, result: OptimizationResult, metadata: ScenarioMetadata) -> None:
        self._results[key] = result
        self._scenarios[key] = metadata
        bucket = self._index.setdefault((metadata.vehicle, metadata.priority_key), [])
        if key not in bucket:
            bucket.append(key)

    def _discard(self, key: str) -> None:
        metadata = self._scenarios.pop(key, None)
        self._results.pop(key, None)
        if metadata is None:
            return
        index_key = (metadata.vehicle, metadata.priority_key)
        bucket = self._index.get(index_key)
        if bucket is not None and key in bucket:
            bucket.remove(key)
            if not bucket:
                del self._index[index_key]

    # ------------------------------------------------------------------
    # Lookup

    def get_optimization(
        self,
        vehicle: VehicleProfile | Mapping[str, Any] | str | None,
        priorities: PriorityWeights | Mapping[str, Any] | str | None,
        conditions: ConditionSnapshot | EnvironmentProfile | Mapping[str, Any] | str | None = None,
    ) -> OptimizationResult | None:
        """Return a cached result for the request or ``None`` on a miss."""

        if not self._options.enabled:
            return None
        tag = vehicle_key(vehicle)
        priority_key = hash_priorities(priorities)
        condition_key = hash_conditions(conditions)
        key = f"{tag}_{priority_key}_{condition_key}"

        with self._lock:
            stored = self._results.get(key)
            if stored is not None:
                self._hits += 1
                return self._annotate(stored, "exact", key, 1.0)

            fuzzy = self._fuzzy_match(tag, str(priority_key), _target_condition(conditions))
            if fuzzy is not None:
                self._hits += 1
                return self._annotate(
                    self._results[fuzzy], "fuzzy", fuzzy, self._options.fuzzy_confidence
                )

            if isinstance(priority_key, PriorityBucket) and priority_key in _QUICK_MAPPINGS:
                quick_key = f"quick_{_QUICK_MAPPINGS[priority_key]}_{tag}"
                quick = self._results.get(quick_key)
                if quick is not None:
                    self._hits += 1
                    return self._annotate(quick, "quick", quick_key, self._options.quick_confidence)

            self._misses += 1
        logger.debug("Cache miss for %s", key, extra={"event": "cache.miss", "key": key})
        return None

    def _fuzzy_match(self, tag: str, priority_key: str, target: ConditionSnapshot) -> str | None:
        candidates = [
            key
            for key in self._index.get((tag, priority_key), ())
            if not self._scenarios[key].quick_access
        ]
        if not candidates:
            return None
        scores = similarity_scores([self._scenarios[key].condition for key in candidates], target)
        best = int(np.argmax(scores))
        if scores[best] > self._options.fuzzy_threshold:
            return candidates[best]
        return None

    @staticmethod
    def _annotate(result: OptimizationResult, hit: str, key: str, scale: float) -> OptimizationResult:
        generated_at = result.cache.generated_at if result.cache is not None else 0.0
        return result.with_cache_annotation(
            generated_at=generated_at, cache_hit=hit, key=key, confidence_scale=scale
        )

    def get_or_optimize(
        self,
        vehicle: VehicleProfile | Mapping[str, Any] | str | None,
        priorities: PriorityWeights | Mapping[str, Any] | None,
        conditions: EnvironmentProfile | Mapping[str, Any] | str | None = None,
        *,
        battery: BatteryProfile | Mapping[str, Any] | None = None,
        wheel: WheelProfile | Mapping[str, Any] | None = None,
        remember: bool = True,
    ) -> OptimizationResult:
        """Serve ``get_optimization`` or run the optimiser on a miss."""

        cached = self.get_optimization(vehicle, priorities, conditions)
        if cached is not None:
            return cached
        result = self._optimizer.optimize_settings(
            vehicle, battery, wheel, _environment_for(conditions), priorities
        )
        if remember:
            self.add_to_cache(vehicle, priorities, conditions, result)
        return result

    # ------------------------------------------------------------------
    # Mutation

    def add_to_cache(
        self,
        vehicle: VehicleProfile | Mapping[str, Any] | str | None,
        priorities: PriorityWeights | Mapping[str, Any] | str | None,
        conditions: ConditionSnapshot | EnvironmentProfile | Mapping[str, Any] | str | None,
        result: OptimizationResult,
    ) -> str | None:
        """Store ``result`` as a runtime entry and return its key.

        A pre-computed entry under the same key is set aside rather than
        lost: :meth:`prune` puts it back once the runtime entry expires.
        ``None`` is returned when the cache is disabled.
        """

        if not self._options.enabled:
            return None
        tag = vehicle_key(vehicle)
        priority_key = str(hash_priorities(priorities))
        condition_key = str(hash_conditions(conditions))
        key = f"{tag}_{priority_key}_{condition_key}"
        with self._lock:
            existing = self._scenarios.get(key)
            if existing is not None and not existing.user_generated:
                self._shadowed[key] = (self._results[key], existing)
                logger.debug(
                    "Runtime result shadows pre-computed entry %s",
                    key,
                    extra={"event": "cache.shadow", "key": key},
                )
            now = self._clock()
            self._store(
                key,
                result.with_cache_annotation(generated_at=now, key=key, method=RUNTIME_METHOD),
                ScenarioMetadata(
                    vehicle=tag,
                    priority_profile=priority_key,
                    condition_profile=condition_key,
                    priority_key=priority_key,
                    condition_key=condition_key,
                    condition=_target_condition(conditions),
                    timestamp=now,
                    user_generated=True,
                ),
            )
            if len(self._results) > self._options.prune_threshold:
                self.prune(now)
        return key

    def prune(self, now: float | None = None) -> int:
        """Drop runtime entries older than ``max_age_seconds``; return the count.

        Expired entries that shadowed a pre-computed result restore it.
        """

        with self._lock:
            current = self._clock() if now is None else now
            expired = [
                key
                for key, metadata in self._scenarios.items()
                if metadata.user_generated
                and current - metadata.timestamp > self._options.max_age_seconds
            ]
            for key in expired:
                seeded = self._shadowed.pop(key, None)
                if seeded is None:
                    self._discard(key)
                else:
                    self._store(key, *seeded)
            size = len(self._results)
        logger.info(
            "Cache pruned, size: %d",
            size,
            extra={"event": "cache.pruned", "removed": len(expired), "size": size},
        )
        return len(expired)

    def clear(self) -> None:
        """Drop every entry and counter, then regenerate the seeded set."""

        with self._lock:
            self._results.clear()
            self._scenarios.clear()
            self._index.clear()
            self._quick.clear()
            self._shadowed.clear()
            self._hits = 0
            self._misses = 0
            self._populate()
        logger.info("Cache cleared and regenerated", extra={"event": "cache.cleared"})

    # ------------------------------------------------------------------
    # Introspection

    def quick_scenarios(self, vehicle: str = "e4") -> List[QuickScenarioInfo]:
        tag = vehicle_key(vehicle)
        with self._lock:
            return [
                QuickScenarioInfo(
                    key=key, name=scenario.name, description=scenario.description, vehicle=scenario.vehicle
                )
                for key, scenario in self._quick.items()
                if scenario.vehicle == tag
            ]

    def stats(self) -> CacheStats:
        with self._lock:
            total = self._hits + self._misses
            rate = (self._hits / total) * 100 if total else 0.0
            return CacheStats(
                size=len(self._results),
                scenarios=len(self._scenarios),
                hits=self._hits,
                misses=self._misses,
                hit_rate=round_half_up(rate * 100) / 100,
                memory_kb=self._estimate_memory_kb(),
            )

    def _estimate_memory_kb(self) -> int:
        sample = next(iter(self._results.values()), None)
        if sample is None:
            return 0
        entry_size = len(json.dumps(sample.to_payload()))
        return round_half_up(entry_size * len(self._results) / 1024)
