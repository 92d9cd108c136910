"""Project configuration stored under ``[tool.gem_optimizer]`` in ``pyproject.toml``.

The section is split into four tables:

``[logging]``
    ``level``, ``output`` and ``format`` handed to :func:`setup_logging`.
``[cache]``
    scenario cache options, see :class:`gem_core.cache_settings.CacheOptions`.
``[defaults]``
    fallback request fields (vehicle, battery voltage and type, tire diameter).
``[output]``
    ``format`` used by every subcommand when ``--format`` is omitted.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any

try:  # Python 3.11+
    import tomllib  # type: ignore[attr-defined]
except ModuleNotFoundError:  # pragma: no cover - Python < 3.11 fallback
    import tomli as tomllib  # type: ignore

logger = logging.getLogger(__name__)

PROJECT_FILENAME = "pyproject.toml"
TOOL_SECTION = "gem_optimizer"
KNOWN_SECTIONS = frozenset({"logging", "cache", "defaults", "output"})


def _plain(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {str(key): _plain(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_plain(item) for item in value]
    return value


def resolve_pyproject_path(candidate: Path) -> Path | None:
    """Return the concrete ``pyproject.toml`` path for ``candidate`` if possible.

    Directories resolve to the ``pyproject.toml`` they contain; any other file
    name with a suffix is rejected.
    """

    candidate = candidate.expanduser()
    if candidate.name == PROJECT_FILENAME:
        return candidate
    if candidate.suffix:
        return None
    return candidate / PROJECT_FILENAME


def _read_tool_section(path: Path) -> Mapping[str, Any] | None:
    if not path.is_file():
        return None
    with path.open("rb") as handle:
        document = tomllib.load(handle)
    tool = document.get("tool")
    section = tool.get(TOOL_SECTION) if isinstance(tool, Mapping) else None
    return section if isinstance(section, Mapping) else None


def load_project_config(path: Path) -> tuple[dict[str, Any], Path] | None:
    """Load the ``[tool.gem_optimizer]`` section and the file it came from."""

    pyproject_path = resolve_pyproject_path(path)
    if pyproject_path is None:
        return None
    pyproject_path = pyproject_path.resolve(strict=False)

    section = _read_tool_section(pyproject_path)
    if section is None:
        return None

    config = _plain(section)
    unknown = sorted(set(config) - KNOWN_SECTIONS)
    if unknown:
        logger.debug(
            "Ignoring unknown configuration tables",
            extra={"event": "config.unknown_tables", "tables": unknown, "path": str(pyproject_path)},
        )
    return config, pyproject_path


def config_section(config: Mapping[str, Any] | None, name: str) -> dict[str, Any]:
    """Return a copy of the ``name`` table, or an empty dict when absent or malformed."""

    value = (config or {}).get(name)
    return dict(value) if isinstance(value, Mapping) else {}


__all__ = [
    "KNOWN_SECTIONS",
    "PROJECT_FILENAME",
    "TOOL_SECTION",
    "config_section",
    "load_project_config",
    "resolve_pyproject_path",
]
