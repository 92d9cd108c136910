"""Embedded data resources for the optimisation engine."""

from __future__ import annotations

from importlib import resources

__all__ = ["SCENARIOS_RESOURCE"]


def _resource(name: str):
    return resources.files(__name__).joinpath(name)


SCENARIOS_RESOURCE = _resource("scenarios.toml")
