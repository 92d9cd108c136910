"""Curated controller presets loaded from the bundled YAML catalogue."""

from __future__ import annotations

import logging
from collections.abc import Mapping as MappingABC
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Tuple

import yaml

from gem_core.constants import FACTORY_DEFAULTS, SAFETY_CONSTRAINTS
from gem_core.parameters import ParameterVector
from gem_optimizer.data import PRESETS_RESOURCE

__all__ = ["Preset", "PresetCatalog", "load_preset_catalog"]

logger = logging.getLogger(__name__)


def _deep_copy_mapping(source: Mapping[str, Any]) -> dict[str, Any]:
    copied: dict[str, Any] = {}
    for key, value in source.items():
        key_str = str(key)
        if isinstance(value, MappingABC):
            copied[key_str] = _deep_copy_mapping(value)
        elif isinstance(value, list):
            copied[key_str] = list(value)
        else:
            copied[key_str] = value
    return copied


@dataclass(frozen=True)
class Preset:
    """Named override vector plus the request fields it implies."""

    name: str
    title: str
    description: str
    features: Tuple[str, ...] = ()
    settings: ParameterVector = field(default_factory=ParameterVector)
    input_data: Mapping[str, Mapping[str, Any]] = field(default_factory=dict)

    def resolved_settings(self) -> ParameterVector:
        """Factory defaults with this preset applied, clamped to the safety table."""

        return ParameterVector(FACTORY_DEFAULTS).with_values(self.settings).clamped(SAFETY_CONSTRAINTS)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "title": self.title,
            "description": self.description,
            "features": list(self.features),
            "settings": {str(number): value for number, value in self.settings.items()},
            "inputData": _deep_copy_mapping(self.input_data),
        }


def _preset_from_payload(name: str, payload: Mapping[str, Any]) -> Preset:
    settings = payload.get("settings")
    input_data = payload.get("input_data", payload.get("inputData"))
    return Preset(
        name=name,
        title=str(payload.get("title", name)),
        description=str(payload.get("description", "")),
        features=tuple(str(item) for item in payload.get("features", ()) or ()),
        settings=ParameterVector(settings if isinstance(settings, MappingABC) else {}),
        input_data=MappingProxyType(
            _deep_copy_mapping(input_data) if isinstance(input_data, MappingABC) else {}
        ),
    )


class PresetCatalog:
    """Ordered, read-only collection of :class:`Preset` entries."""

    def __init__(self, presets: Mapping[str, Preset]) -> None:
        self._presets: Dict[str, Preset] = dict(presets)

    @classmethod
    def from_yaml(cls, text: str, *, source: str = "<string>") -> "PresetCatalog":
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in preset catalogue: {source}") from exc
        if data is None:
            return cls({})
        if not isinstance(data, MappingABC):
            raise TypeError(f"Preset catalogue in {source!s} must decode to a mapping")
        presets: Dict[str, Preset] = {}
        for name, payload in data.items():
            if not isinstance(payload, MappingABC):
                logger.debug("Skipping malformed preset %r in %s", name, source)
                continue
            presets[str(name)] = _preset_from_payload(str(name), payload)
        return cls(presets)

    def __iter__(self) -> Iterator[Preset]:
        return iter(self._presets.values())

    def __len__(self) -> int:
        return len(self._presets)

    def __contains__(self, name: object) -> bool:
        return name in self._presets

    def names(self) -> Tuple[str, ...]:
        return tuple(self._presets)

    def get(self, name: str) -> Preset | None:
        return self._presets.get(name)

    def preset_settings(self, name: str) -> ParameterVector | None:
        preset = self.get(name)
        if preset is None:
            return None
        return preset.resolved_settings()

    def merged_input(self, name: str, base: Mapping[str, Any] | None = None) -> Dict[str, Any]:
        """Return ``base`` with the preset's input overrides merged per section.

        ``base`` is never mutated.  Unknown presets return an unmodified copy.
        """

        merged = _deep_copy_mapping(base or {})
        preset = self.get(name)
        if preset is None:
            return merged
        for section, overrides in preset.input_data.items():
            target = merged.get(section)
            if not isinstance(target, dict):
                target = {}
                merged[section] = target
            if isinstance(overrides, MappingABC):
                target.update(_deep_copy_mapping(overrides))
        return merged


def load_preset_catalog(path: str | Path | None = None) -> PresetCatalog:
    """Load presets from ``path`` or from the bundled ``presets.yaml``."""

    if path is not None:
        candidate = Path(path).expanduser()
        return PresetCatalog.from_yaml(candidate.read_text(encoding="utf-8"), source=str(candidate))
    payload = PRESETS_RESOURCE.read_text(encoding="utf-8")
    return PresetCatalog.from_yaml(payload, source=str(PRESETS_RESOURCE))
