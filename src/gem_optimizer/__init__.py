"""GEM T2 controller optimizer: configuration, presets, validation and CLI."""

from __future__ import annotations

from gem_optimizer._version import __version__
from gem_optimizer.presets import Preset, PresetCatalog, load_preset_catalog
from gem_optimizer.validation import ValidationReport, validate_configuration, validate_settings

__all__ = [
    "Preset",
    "PresetCatalog",
    "ValidationReport",
    "__version__",
    "load_preset_catalog",
    "validate_configuration",
    "validate_settings",
]
