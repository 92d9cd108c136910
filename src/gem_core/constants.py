"""Controller function tables shared by the optimisation engine."""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from types import MappingProxyType
from typing import Mapping

__all__ = [
    "ADDRESSABLE_FUNCTIONS",
    "ControllerFunction",
    "FACTORY_DEFAULTS",
    "FUNCTION_DESCRIPTIONS",
    "REFERENCE_TIRE_DIAMETER",
    "SAFETY_CONSTRAINTS",
    "SafetyBound",
    "VEHICLE_PARAMETERS",
    "DEFAULT_VEHICLE_TAG",
    "VehicleParameters",
]


ADDRESSABLE_FUNCTIONS = range(1, 129)
REFERENCE_TIRE_DIAMETER = 22.0
DEFAULT_VEHICLE_TAG = "e4"


class ControllerFunction(IntEnum):
    """Controller functions actively tuned by the optimiser."""

    MPH_SCALING = 1
    CONTROLLED_ACCELERATION = 3
    MAX_ARMATURE_CURRENT = 4
    PLUG_CURRENT = 5
    ARMATURE_ACCELERATION_RATE = 6
    MIN_FIELD_CURRENT = 7
    MAX_FIELD_CURRENT = 8
    REGEN_ARMATURE_CURRENT = 9
    REGEN_MAX_FIELD_CURRENT = 10
    TURF_SPEED_LIMIT = 11
    REVERSE_SPEED_LIMIT = 12
    IR_COMPENSATION = 14
    BATTERY_VOLTS = 15
    FIELD_RAMP_RATE = 19
    MPH_OVERSPEED = 20
    ODOMETER_CALIBRATION = 22
    ERROR_COMPENSATION = 23
    FIELD_WEAKENING_START = 24
    FIELD_TO_ARMATURE_RATIO = 26

    @property
    def description(self) -> str:
        return FUNCTION_DESCRIPTIONS[int(self)]


F = ControllerFunction

FUNCTION_DESCRIPTIONS: Mapping[int, str] = MappingProxyType(
    {
        F.MPH_SCALING: "MPH Scaling",
        F.CONTROLLED_ACCELERATION: "Controlled Acceleration",
        F.MAX_ARMATURE_CURRENT: "Max Armature Current Limit",
        F.PLUG_CURRENT: "Plug Current",
        F.ARMATURE_ACCELERATION_RATE: "Armature Acceleration Rate",
        F.MIN_FIELD_CURRENT: "Minimum Field Current",
        F.MAX_FIELD_CURRENT: "Maximum Field Current",
        F.REGEN_ARMATURE_CURRENT: "Regen Armature Current",
        F.REGEN_MAX_FIELD_CURRENT: "Regen Maximum Field Current",
        F.TURF_SPEED_LIMIT: "Turf Speed Limit",
        F.REVERSE_SPEED_LIMIT: "Reverse Speed Limit",
        F.IR_COMPENSATION: "IR Compensation",
        F.BATTERY_VOLTS: "Battery Volts",
        F.FIELD_RAMP_RATE: "Field Ramp Rate Plug/Regen",
        F.MPH_OVERSPEED: "MPH Overspeed",
        F.ODOMETER_CALIBRATION: "Odometer Calibration",
        F.ERROR_COMPENSATION: "Error Compensation",
        F.FIELD_WEAKENING_START: "Field Weakening Start",
        F.FIELD_TO_ARMATURE_RATIO: "Ratio of Field to Arm",
    }
)


FACTORY_DEFAULTS: Mapping[int, int] = MappingProxyType(
    {
        F.MPH_SCALING: 22,
        F.CONTROLLED_ACCELERATION: 20,
        F.MAX_ARMATURE_CURRENT: 255,
        F.PLUG_CURRENT: 255,
        F.ARMATURE_ACCELERATION_RATE: 60,
        F.MIN_FIELD_CURRENT: 59,
        F.MAX_FIELD_CURRENT: 241,
        F.REGEN_ARMATURE_CURRENT: 221,
        F.REGEN_MAX_FIELD_CURRENT: 180,
        F.TURF_SPEED_LIMIT: 122,
        F.REVERSE_SPEED_LIMIT: 149,
        F.IR_COMPENSATION: 3,
        F.BATTERY_VOLTS: 72,
        F.FIELD_RAMP_RATE: 12,
        F.MPH_OVERSPEED: 40,
        F.ODOMETER_CALIBRATION: 122,
        F.ERROR_COMPENSATION: 10,
        F.FIELD_WEAKENING_START: 43,
        F.FIELD_TO_ARMATURE_RATIO: 3,
    }
)


@dataclass(frozen=True, slots=True)
class SafetyBound:
    """Inclusive range a controller function must stay within."""

    minimum: int
    maximum: int

    def clamp(self, value: int) -> int:
        return max(self.minimum, min(int(value), self.maximum))

    def contains(self, value: int) -> bool:
        return self.minimum <= value <= self.maximum


SAFETY_CONSTRAINTS: Mapping[int, SafetyBound] = MappingProxyType(
    {
        F.MPH_SCALING: SafetyBound(15, 35),
        F.CONTROLLED_ACCELERATION: SafetyBound(8, 40),
        F.MAX_ARMATURE_CURRENT: SafetyBound(180, 255),
        F.PLUG_CURRENT: SafetyBound(180, 255),
        F.ARMATURE_ACCELERATION_RATE: SafetyBound(30, 100),
        F.MIN_FIELD_CURRENT: SafetyBound(51, 120),
        F.MAX_FIELD_CURRENT: SafetyBound(200, 255),
        F.REGEN_ARMATURE_CURRENT: SafetyBound(150, 255),
        F.REGEN_MAX_FIELD_CURRENT: SafetyBound(51, 255),
        F.TURF_SPEED_LIMIT: SafetyBound(100, 170),
        F.REVERSE_SPEED_LIMIT: SafetyBound(120, 170),
        F.IR_COMPENSATION: SafetyBound(2, 15),
        F.BATTERY_VOLTS: SafetyBound(60, 90),
        F.FIELD_RAMP_RATE: SafetyBound(5, 25),
        F.MPH_OVERSPEED: SafetyBound(25, 50),
        F.ODOMETER_CALIBRATION: SafetyBound(80, 180),
        F.ERROR_COMPENSATION: SafetyBound(3, 15),
        F.FIELD_WEAKENING_START: SafetyBound(25, 85),
        F.FIELD_TO_ARMATURE_RATIO: SafetyBound(1, 8),
    }
)


@dataclass(frozen=True, slots=True)
class VehicleParameters:
    """Static characteristics of a supported vehicle variant."""

    weight: int
    passengers: int
    gear_ratio: float


VEHICLE_PARAMETERS: Mapping[str, VehicleParameters] = MappingProxyType(
    {
        "e2": VehicleParameters(weight=1200, passengers=2, gear_ratio=8.91),
        "e4": VehicleParameters(weight=1350, passengers=4, gear_ratio=8.91),
        "es": VehicleParameters(weight=1250, passengers=2, gear_ratio=8.91),
        "el": VehicleParameters(weight=1400, passengers=2, gear_ratio=8.91),
        "e6": VehicleParameters(weight=1500, passengers=6, gear_ratio=8.91),
        "elxd": VehicleParameters(weight=1600, passengers=2, gear_ratio=8.91),
    }
)
