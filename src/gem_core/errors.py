"""Exceptions raised by the optimisation engine."""

from __future__ import annotations

from typing import Mapping

__all__ = ["SafetyInvariantError"]


class SafetyInvariantError(AssertionError):
    """Raised when an optimised vector escapes the safety constraint table.

    The final clamp stage makes this unreachable for any input; seeing it
    means a stage was skipped or reordered.
    """

    def __init__(self, violations: Mapping[int, int]) -> None:
        self.violations = dict(violations)
        formatted = ", ".join(f"F.{number}={value}" for number, value in sorted(self.violations.items()))
        super().__init__(f"Controller values outside safety bounds: {formatted}")
