"""Parameter vector model for controller function values."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from typing import Dict, Iterable, Tuple

from gem_core.constants import (
    ADDRESSABLE_FUNCTIONS,
    FACTORY_DEFAULTS,
    SAFETY_CONSTRAINTS,
    SafetyBound,
)
from gem_core.utils import round_half_up

__all__ = ["ParameterVector", "ParameterVectorBuilder", "factory_defaults"]


def _function_number(key: object) -> int:
    if isinstance(key, int):
        return int(key)
    return int(str(key).strip().upper().removeprefix("F.").removeprefix("F"))


def _normalise_items(values: Mapping[object, object] | Iterable[Tuple[object, object]]) -> Dict[int, int]:
    items = values.items() if isinstance(values, Mapping) else values
    normalised: Dict[int, int] = {}
    for key, value in items:
        number = _function_number(key)
        if number not in ADDRESSABLE_FUNCTIONS:
            raise ValueError(f"Controller function {number} is outside 1..128")
        normalised[number] = int(value)  # type: ignore[arg-type]
    return normalised


class ParameterVector(Mapping[int, int]):
    """Immutable mapping of controller function number to integer value.

    Keys may be supplied as integers, numeric strings or ``"F.7"`` style
    labels; they are always stored as plain integers in ascending order.
    """

    __slots__ = ("_values",)

    def __init__(self, values: Mapping[object, object] | Iterable[Tuple[object, object]] = ()) -> None:
        self._values = dict(sorted(_normalise_items(values).items()))

    def __getitem__(self, key: int) -> int:
        try:
            number = _function_number(key)
        except (TypeError, ValueError):
            raise KeyError(key) from None
        return self._values[number]

    def __iter__(self) -> Iterator[int]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Mapping):
            try:
                return self._values == _normalise_items(other)
            except (TypeError, ValueError):
                return False
        return NotImplemented

    def __hash__(self) -> int:
        return hash(tuple(self._values.items()))

    def __repr__(self) -> str:
        return f"ParameterVector({self._values!r})"

    def as_dict(self) -> Dict[int, int]:
        return dict(self._values)

    def with_values(self, overrides: Mapping[object, object]) -> "ParameterVector":
        merged = dict(self._values)
        merged.update(_normalise_items(overrides))
        return ParameterVector(merged)

    def clamped(self, constraints: Mapping[int, SafetyBound] = SAFETY_CONSTRAINTS) -> "ParameterVector":
        """Return a copy with every constrained function inside its bound."""

        return ParameterVector(
            {
                number: constraints[number].clamp(value) if number in constraints else value
                for number, value in self._values.items()
            }
        )

    def violations(self, constraints: Mapping[int, SafetyBound] = SAFETY_CONSTRAINTS) -> Dict[int, int]:
        return {
            number: value
            for number, value in self._values.items()
            if number in constraints and not constraints[number].contains(value)
        }

    def diff(self, other: Mapping[int, int]) -> Dict[int, Tuple[int | None, int | None]]:
        """Return ``{function: (self_value, other_value)}`` for differing functions."""

        changes: Dict[int, Tuple[int | None, int | None]] = {}
        for number in sorted(set(self._values) | {_function_number(key) for key in other}):
            mine = self._values.get(number)
            theirs = other.get(number)
            if mine != theirs:
                changes[number] = (mine, theirs)
        return changes


class ParameterVectorBuilder:
    """Mutable working copy threaded through the optimiser stages."""

    __slots__ = ("_values",)

    def __init__(self, base: Mapping[int, int]) -> None:
        self._values: Dict[int, int] = {int(number): int(value) for number, value in base.items()}

    def __getitem__(self, number: int) -> int:
        return self._values[int(number)]

    def set(self, number: int, value: float) -> "ParameterVectorBuilder":
        self._values[int(number)] = round_half_up(value)
        return self

    def scale(
        self,
        number: int,
        factor: float,
        *,
        ceiling: int | None = None,
        floor: int | None = None,
    ) -> "ParameterVectorBuilder":
        """Multiply a function value by ``factor`` with optional stage guards."""

        value = round_half_up(self._values[int(number)] * factor)
        if ceiling is not None:
            value = min(value, ceiling)
        if floor is not None:
            value = max(value, floor)
        self._values[int(number)] = value
        return self

    def divide(self, number: int, divisor: float, *, floor: int | None = None) -> "ParameterVectorBuilder":
        value = round_half_up(self._values[int(number)] / divisor)
        if floor is not None:
            value = max(value, floor)
        self._values[int(number)] = value
        return self

    def shift(self, number: int, delta: int, *, ceiling: int | None = None) -> "ParameterVectorBuilder":
        value = self._values[int(number)] + int(delta)
        if ceiling is not None:
            value = min(value, ceiling)
        self._values[int(number)] = value
        return self

    def clamp(self, constraints: Mapping[int, SafetyBound] = SAFETY_CONSTRAINTS) -> "ParameterVectorBuilder":
        for number, value in self._values.items():
            bound = constraints.get(number)
            if bound is not None:
                self._values[number] = bound.clamp(value)
        return self

    def freeze(self) -> ParameterVector:
        return ParameterVector(self._values)


def factory_defaults() -> ParameterVector:
    return ParameterVector(FACTORY_DEFAULTS)
