"""Input validation and safety checks for optimisation requests.

Validation never raises for malformed payloads; it collects blocking
``errors`` and advisory ``warnings`` so the CLI can report all problems in
one pass.  Sections that are absent from the payload are not checked, which
lets callers validate partially completed requests.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Dict, List

from gem_core.constants import ADDRESSABLE_FUNCTIONS, SAFETY_CONSTRAINTS
from gem_core.profiles import VehicleModel

__all__ = ["ValidationIssue", "ValidationReport", "validate_configuration", "validate_settings"]

_SECTIONS = ("vehicle", "battery", "wheel", "environment", "priorities")
_BATTERY_TYPES = ("lead", "agm", "lithium")

_REQUIRED_FIELDS = {
    "vehicle": (("model", "Vehicle model is required"), ("motorCondition", "Motor condition is required")),
    "battery": (
        ("voltage", "Battery voltage is required"),
        ("type", "Battery type is required"),
        ("capacity", "Battery capacity is required"),
    ),
    "wheel": (("tireDiameter", "Tire diameter is required"), ("gearRatio", "Gear ratio is required")),
}


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    field: str | None
    message: str
    level: str | None = None
    suggestion: str | None = None

    def as_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"message": self.message}
        if self.field is not None:
            payload["field"] = self.field
        if self.level is not None:
            payload["level"] = self.level
        if self.suggestion is not None:
            payload["suggestion"] = self.suggestion
        return payload


@dataclass(frozen=True)
class ValidationReport:
    errors: tuple[ValidationIssue, ...] = ()
    warnings: tuple[ValidationIssue, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def as_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "errors": [issue.as_dict() for issue in self.errors],
            "warnings": [issue.as_dict() for issue in self.warnings],
        }


@dataclass
class _Collector:
    errors: List[ValidationIssue] = field(default_factory=list)
    warnings: List[ValidationIssue] = field(default_factory=list)

    def error(self, field_name: str | None, message: str) -> None:
        self.errors.append(ValidationIssue(field_name, message))

    def warn(
        self,
        field_name: str | None,
        message: str,
        *,
        level: str | None = None,
        suggestion: str | None = None,
    ) -> None:
        self.warnings.append(ValidationIssue(field_name, message, level, suggestion))

    def report(self) -> ValidationReport:
        return ValidationReport(tuple(self.errors), tuple(self.warnings))


def _number(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _section(payload: Mapping[str, Any], name: str) -> Mapping[str, Any] | None:
    value = payload.get(name)
    return value if isinstance(value, Mapping) else None


def _check_range(
    collector: _Collector,
    section: Mapping[str, Any],
    key: str,
    field_name: str,
    label: str,
    bounds: tuple[float, float],
    expected: str,
) -> float | None:
    raw = section.get(key)
    if not raw:
        return None
    value = _number(raw)
    if value is None:
        collector.error(field_name, f"{label} must be a number")
        return None
    if value < bounds[0] or value > bounds[1]:
        collector.warn(field_name, f"{label} seems unusual (expected {expected})")
    return value


def _validate_required(collector: _Collector, payload: Mapping[str, Any]) -> None:
    for section_name, required in _REQUIRED_FIELDS.items():
        if section_name not in payload:
            continue
        section = _section(payload, section_name) or {}
        for key, message in required:
            if not section.get(key):
                collector.error(f"{section_name}.{key}", message)

    if len(payload) == len(_SECTIONS):
        for section_name in _SECTIONS:
            if not _section(payload, section_name):
                collector.error(section_name, f"{section_name.capitalize()} configuration is required")


def _validate_vehicle(collector: _Collector, vehicle: Mapping[str, Any]) -> None:
    model = vehicle.get("model")
    if model and VehicleModel.resolve(model) is None:
        collector.error("vehicle.model", "Invalid vehicle model")
    top_speed = _number(vehicle.get("topSpeed", vehicle.get("topSpeedRating")))
    if top_speed and (top_speed < 15 or top_speed > 40):
        collector.warn("vehicle.topSpeed", "Top speed seems unusual (expected 15-40 MPH)")


def _validate_battery(collector: _Collector, battery: Mapping[str, Any]) -> None:
    voltage = _check_range(
        collector, battery, "voltage", "battery.voltage", "Battery voltage", (36, 120), "36-120V"
    )
    _check_range(
        collector, battery, "capacity", "battery.capacity", "Battery capacity", (50, 500), "50-500 Ah"
    )
    battery_type = battery.get("type")
    if battery_type and battery_type not in _BATTERY_TYPES:
        collector.error("battery.type", "Battery type must be Lead Acid, AGM, or Lithium")
    if battery_type == "lithium" and voltage is not None and voltage < 80:
        collector.warn("battery.voltage", "Lithium batteries typically have higher voltage (80-100V)")
    if battery_type == "agm" and voltage is not None and voltage > 96:
        collector.warn("battery.voltage", "AGM batteries typically use standard voltage systems (48-96V)")


def _validate_wheel(collector: _Collector, wheel: Mapping[str, Any]) -> None:
    _check_range(
        collector, wheel, "tireDiameter", "wheel.tireDiameter", "Tire diameter", (18, 28), "18-28 inches"
    )
    _check_range(collector, wheel, "gearRatio", "wheel.gearRatio", "Gear ratio", (4, 20), "4-20")


def _validate_environment(collector: _Collector, environment: Mapping[str, Any]) -> None:
    _check_range(
        collector, environment, "hillGrade", "environment.hillGrade", "Hill grade", (0, 30), "0-30%"
    )


def _validate_cross_field(collector: _Collector, payload: Mapping[str, Any]) -> None:
    vehicle = _section(payload, "vehicle") or {}
    battery = _section(payload, "battery") or {}
    wheel = _section(payload, "wheel") or {}
    environment = _section(payload, "environment") or {}

    if battery.get("type") == "lithium" and vehicle.get("motorCondition") == "sparking":
        collector.warn(
            None,
            "Lithium battery with sparking motor requires careful current limiting",
            level="high",
            suggestion="Consider motor service before lithium upgrade",
        )

    diameter = _number(wheel.get("tireDiameter"))
    if diameter is not None and diameter > 24:
        collector.warn(
            None,
            "Large tire diameter may reduce acceleration and hill climbing",
            level="medium",
            suggestion='Consider gear ratio modification for tires over 24"',
        )

    if environment.get("terrain") == "steep" and battery.get("age") == "old":
        collector.warn(
            None,
            "Old batteries may struggle with steep terrain",
            level="high",
            suggestion="Battery replacement recommended for optimal hill performance",
        )


def _check_setting(
    collector: _Collector, key: Any, raw_value: Any, *, prefix: str = ""
) -> tuple[int, int] | None:
    try:
        number = int(key) if isinstance(key, int) else int(
            str(key).strip().upper().removeprefix("F.").removeprefix("F")
        )
    except ValueError:
        collector.error(f"{prefix}F.{key}", f"Unknown controller function {key!r}")
        return None
    label = f"{prefix}F.{number}"
    if number not in ADDRESSABLE_FUNCTIONS:
        collector.error(label, f"Controller function {number} is outside 1..128")
        return None
    value = _number(raw_value)
    # Text values must be integer literals: "18.0" is not accepted as a setting.
    literal = not isinstance(raw_value, str) or raw_value.strip().lstrip("+-").isdigit()
    if value is None or not math.isfinite(value) or value != int(value) or not literal:
        collector.error(label, f"Value {raw_value!r} must be an integer")
        return None
    return number, int(value)


def _validate_baseline(collector: _Collector, payload: Mapping[str, Any]) -> None:
    raw = payload.get("baseline") or payload.get("baselineSettings")
    if not raw:
        return
    if not isinstance(raw, Mapping):
        collector.error("baseline", "Baseline settings must map controller functions to values")
        return
    for key, raw_value in raw.items():
        _check_setting(collector, key, raw_value, prefix="baseline.")


def validate_configuration(payload: Mapping[str, Any] | None) -> ValidationReport:
    """Check an optimisation request mapping using the UI field names."""

    collector = _Collector()
    if not isinstance(payload, Mapping):
        collector.error(None, "Configuration must be a mapping")
        return collector.report()

    _validate_required(collector, payload)
    vehicle = _section(payload, "vehicle")
    if vehicle:
        _validate_vehicle(collector, vehicle)
    battery = _section(payload, "battery")
    if battery:
        _validate_battery(collector, battery)
    wheel = _section(payload, "wheel")
    if wheel:
        _validate_wheel(collector, wheel)
    environment = _section(payload, "environment")
    if environment:
        _validate_environment(collector, environment)
    _validate_baseline(collector, payload)
    _validate_cross_field(collector, payload)
    return collector.report()


def validate_settings(settings: Mapping[Any, Any]) -> ValidationReport:
    """Report controller values outside the addressable space or safety bounds."""

    collector = _Collector()
    for key, raw_value in settings.items():
        checked = _check_setting(collector, key, raw_value)
        if checked is None:
            continue
        number, value = checked
        bound = SAFETY_CONSTRAINTS.get(number)
        if bound is not None and not bound.contains(value):
            collector.error(
                f"F.{number}",
                f"Value {value} outside safe range {bound.minimum}-{bound.maximum}",
            )
    return collector.report()
