"""Command handlers for the gem-optimizer CLI."""

from __future__ import annotations

import argparse
import json
import logging
from dataclasses import replace
from typing import Any, Dict, List, Mapping

from gem_core.cache import OptimizationCache
from gem_core.cache_settings import CacheOptions
from gem_core.constants import FUNCTION_DESCRIPTIONS
from gem_core.optimizer import OptimizationResult, optimize_settings
from gem_core.profiles import BatteryProfile, OptimizationRequest, VehicleProfile, WheelProfile
from gem_optimizer.cli.errors import CliError
from gem_optimizer.cli.io import apply_request_defaults, load_request
from gem_optimizer.presets import load_preset_catalog
from gem_optimizer.validation import ValidationReport, validate_configuration

__all__ = [
    "build_cache",
    "non_stock_hardware",
    "render_result",
    "_handle_lookup",
    "_handle_optimize",
    "_handle_presets",
    "_handle_stats",
]

logger = logging.getLogger(__name__)


def build_cache(config: Mapping[str, Any]) -> OptimizationCache:
    options = config.get("_cache_options")
    if not isinstance(options, CacheOptions):
        options = CacheOptions.from_config(config)
    return OptimizationCache(options=options)


def _dump(payload: Mapping[str, Any]) -> str:
    return json.dumps(payload, indent=2, sort_keys=False)


def _settings_table(result: OptimizationResult) -> List[str]:
    lines = [f"{'Function':<36}{'Factory':>9}{'Optimized':>11}"]
    for number, value in result.optimized_settings.items():
        label = f"F.{number:<3} {FUNCTION_DESCRIPTIONS.get(number, '')}"
        marker = " *" if result.factory_settings.get(number) != value else ""
        lines.append(f"{label:<36}{result.factory_settings.get(number, ''):>9}{value:>11}{marker}")
    return lines


def render_result(
    result: OptimizationResult,
    fmt: str,
    *,
    report: ValidationReport | None = None,
) -> str:
    """Render an optimisation result as JSON or as a plain-text table."""

    if fmt == "json":
        payload = result.to_payload()
        if report is not None and report.warnings:
            payload["warnings"] = [issue.as_dict() for issue in report.warnings]
        return _dump(payload)

    source = result.cache_hit or ("cache" if result.cached else "optimizer")
    lines = [
        f"Vehicle: {result.analysis.vehicle_tag}  method: {result.method}  "
        f"confidence: {result.confidence:.2f}  source: {source}",
        "",
        *_settings_table(result),
    ]
    if result.performance_changes:
        lines.extend(["", "Performance changes:"])
        lines.extend(f"  - {change}" for change in result.performance_changes)
    if result.notes:
        lines.extend(["", "Recommendations:"])
        lines.extend(f"  - {note}" for note in result.notes)
    if report is not None and report.warnings:
        lines.extend(["", "Warnings:"])
        lines.extend(f"  - {issue.message}" for issue in report.warnings)
    return "\n".join(lines)


def non_stock_hardware(request: OptimizationRequest) -> List[str]:
    """Return the request fields that differ from the hardware the seeded cache assumes.

    Cache keys cover vehicle, priorities and conditions only; every
    pre-computed scenario was optimised for a stock motor, battery and tires.
    """

    stock_vehicle, stock_battery, stock_wheel = VehicleProfile(), BatteryProfile(), WheelProfile()
    fields: List[str] = []
    if request.vehicle.motor_condition is not stock_vehicle.motor_condition:
        fields.append("vehicle.motorCondition")
    if request.battery.chemistry is not stock_battery.chemistry:
        fields.append("battery.type")
    if request.battery.voltage != stock_battery.voltage:
        fields.append("battery.voltage")
    if request.wheel.tire_diameter != stock_wheel.tire_diameter:
        fields.append("wheel.tireDiameter")
    return fields


def _handle_optimize(namespace: argparse.Namespace, *, config: Mapping[str, Any]) -> str:
    request = load_request(namespace.request)

    if namespace.preset:
        catalog = load_preset_catalog()
        if namespace.preset not in catalog:
            raise CliError(
                f"Unknown preset '{namespace.preset}'",
                category="not_found",
                context={"preset": namespace.preset, "available": ", ".join(catalog.names())},
            )
        request = catalog.merged_input(namespace.preset, request)

    report = validate_configuration(request)
    if not report.is_valid:
        messages = "; ".join(issue.message for issue in report.errors)
        raise CliError(
            f"Invalid request: {messages}",
            category="usage",
            context={"path": str(namespace.request), "errors": len(report.errors)},
        )
    for issue in report.warnings:
        logger.warning(issue.message, extra={"event": "validation.warning", "field": issue.field})

    parsed = OptimizationRequest.from_mapping(apply_request_defaults(request, config))
    bypass = non_stock_hardware(parsed)
    if bypass and not namespace.no_cache:
        logger.info(
            "Request hardware differs from the cached scenarios; running the optimizer",
            extra={"event": "cli.cache_bypassed", "fields": bypass},
        )
    if namespace.no_cache or bypass:
        result = optimize_settings(
            parsed.vehicle, parsed.battery, parsed.wheel, parsed.environment, parsed.priorities
        )
    else:
        cache = build_cache(config)
        result = cache.get_or_optimize(
            parsed.vehicle,
            parsed.priorities,
            parsed.environment,
            battery=parsed.battery,
            wheel=parsed.wheel,
        )
    if parsed.baseline is not None:
        result = replace(result, baseline_settings=parsed.baseline, is_using_imported_baseline=True)
    logger.info(
        "Optimisation served",
        extra={"event": "cli.optimize", "cache_hit": result.cache_hit, "method": result.method},
    )
    return render_result(result, namespace.format, report=report)


def _handle_lookup(namespace: argparse.Namespace, *, config: Mapping[str, Any]) -> str:
    priorities = {
        "speed": namespace.speed,
        "range": namespace.range,
        "acceleration": namespace.acceleration,
        "efficiency": namespace.efficiency,
    }
    conditions = {"temperature": namespace.temperature, "grade": namespace.grade, "load": namespace.load}
    cache = build_cache(config)
    result = cache.get_optimization(namespace.vehicle, priorities, conditions)
    if result is None:
        raise CliError(
            "No cached optimization for the requested scenario",
            category="not_found",
            context={"vehicle": namespace.vehicle, **priorities, **conditions},
        )
    return render_result(result, namespace.format)


def _handle_presets(namespace: argparse.Namespace, *, config: Mapping[str, Any]) -> str:
    catalog = load_preset_catalog()
    if not namespace.name:
        if namespace.format == "json":
            return _dump({"presets": [preset.to_payload() for preset in catalog]})
        return "\n".join(f"{preset.name:<20}{preset.title} - {preset.description}" for preset in catalog)

    preset = catalog.get(namespace.name)
    if preset is None:
        raise CliError(
            f"Unknown preset '{namespace.name}'",
            category="not_found",
            context={"preset": namespace.name, "available": ", ".join(catalog.names())},
        )
    settings = preset.resolved_settings()
    if namespace.format == "json":
        payload = preset.to_payload()
        payload["resolvedSettings"] = {str(number): value for number, value in settings.items()}
        return _dump(payload)
    lines = [f"{preset.title}: {preset.description}"]
    lines.extend(f"  - {feature}" for feature in preset.features)
    lines.append("")
    lines.extend(
        f"F.{number:<3} {FUNCTION_DESCRIPTIONS.get(number, ''):<30}{value:>5}"
        for number, value in settings.items()
    )
    return "\n".join(lines)


def _handle_stats(namespace: argparse.Namespace, *, config: Mapping[str, Any]) -> str:
    cache = build_cache(config)
    stats = cache.stats()
    quick = cache.quick_scenarios(namespace.vehicle)
    if namespace.format == "json":
        payload: Dict[str, Any] = stats.to_payload()
        payload["quickScenarios"] = [
            {"key": item.key, "name": item.name, "description": item.description, "vehicle": item.vehicle}
            for item in quick
        ]
        return _dump(payload)
    lines = [
        f"Entries: {stats.size}",
        f"Scenarios: {stats.scenarios}",
        f"Hits: {stats.hits}  Misses: {stats.misses}  Hit rate: {stats.hit_rate}%",
        f"Estimated memory: {stats.memory_kb} KB",
    ]
    if quick:
        lines.extend(["", f"Quick scenarios ({namespace.vehicle}):"])
        lines.extend(f"  {item.name:<18}{item.description}" for item in quick)
    return "\n".join(lines)
