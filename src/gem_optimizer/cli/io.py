"""Configuration and request file helpers for the gem-optimizer CLI."""

from __future__ import annotations

import json
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Dict, List, Optional

from gem_optimizer.cli.errors import CliError
from gem_optimizer.configuration import load_project_config, resolve_pyproject_path

__all__ = [
    "CONFIG_ENV_VAR",
    "apply_request_defaults",
    "load_cli_config",
    "load_request",
]

CONFIG_ENV_VAR = "GEM_OPTIMIZER_CONFIG"

# ``[defaults]`` key -> (request section, request field)
_DEFAULT_FIELDS = {
    "vehicle": ("vehicle", "model"),
    "battery_voltage": ("battery", "voltage"),
    "battery_type": ("battery", "type"),
    "tire_diameter": ("wheel", "tireDiameter"),
}


def load_cli_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load CLI defaults from ``pyproject.toml``.

    The explicit ``path`` wins, then ``GEM_OPTIMIZER_CONFIG``, then the
    current working directory.  The returned mapping records the file it
    came from under ``_config_path`` (``None`` when nothing was found).
    """

    bases: List[Path] = [] if path is None else [path]
    env_config = os.environ.get(CONFIG_ENV_VAR)
    if env_config:
        bases.append(Path(env_config))
    bases.append(Path.cwd())

    tried: set[Path] = set()
    for base in bases:
        candidate = resolve_pyproject_path(base)
        if candidate is None:
            continue
        candidate = candidate.resolve(strict=False)
        if candidate in tried:
            continue
        tried.add(candidate)
        try:
            loaded = load_project_config(candidate)
        except ValueError as exc:
            # tomllib.TOMLDecodeError subclasses ValueError
            raise CliError(
                f"Configuration file {candidate} is not valid TOML: {exc}",
                category="usage",
                context={"path": str(candidate)},
            ) from exc
        except OSError as exc:
            raise CliError(
                f"Unable to read configuration file {candidate}",
                category="io",
                context={"path": str(candidate), "error": exc.strerror},
            ) from exc
        if loaded is not None:
            payload, source = loaded
            return {**payload, "_config_path": str(source)}

    return {"_config_path": None}


def load_request(source: Path) -> Dict[str, Any]:
    """Read an optimisation request from a JSON document."""

    if not source.exists():
        raise CliError(
            f"Request file {source} does not exist",
            category="not_found",
            context={"path": str(source)},
        )
    try:
        with source.open("r", encoding="utf8") as handle:
            payload = json.load(handle)
    except json.JSONDecodeError as exc:
        raise CliError(
            f"Request file {source} is not valid JSON: {exc.msg}",
            category="usage",
            context={"path": str(source), "line": exc.lineno, "column": exc.colno},
        ) from exc
    except OSError as exc:
        raise CliError(
            f"Unable to read request file {source}",
            category="io",
            context={"path": str(source), "error": exc.strerror},
        ) from exc
    if not isinstance(payload, Mapping):
        raise CliError(
            f"Request file {source} must contain a JSON object",
            category="usage",
            context={"path": str(source), "type": type(payload).__name__},
        )
    return dict(payload)


def apply_request_defaults(request: Mapping[str, Any], config: Mapping[str, Any]) -> Dict[str, Any]:
    """Fill fields missing from ``request`` using the ``[defaults]`` table."""

    merged: Dict[str, Any] = {
        key: dict(value) if isinstance(value, Mapping) else value for key, value in request.items()
    }
    defaults = config.get("defaults")
    if not isinstance(defaults, Mapping):
        return merged
    for key, (section, field_name) in _DEFAULT_FIELDS.items():
        if key not in defaults:
            continue
        target = merged.get(section)
        if not isinstance(target, dict):
            target = {}
            merged[section] = target
        target.setdefault(field_name, defaults[key])
    return merged
