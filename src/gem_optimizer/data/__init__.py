"""Embedded data resources for the GEM controller optimizer."""

from __future__ import annotations

from importlib import resources

__all__ = ["PRESETS_RESOURCE"]


def _resource(name: str):
    return resources.files(__name__).joinpath(name)


PRESETS_RESOURCE = _resource("presets.yaml")
