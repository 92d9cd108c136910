"""Resolve and validate the ``gem_optimizer`` release version."""

from __future__ import annotations

import os
import re
from importlib import metadata
from pathlib import Path
from typing import Iterator

from packaging.version import InvalidVersion, Version

DISTRIBUTION = "gem-optimizer"
OVERRIDE_ENV_VAR = "PYTHON_SEMANTIC_RELEASE_VERSION"

_CHANGELOG_HEADING = re.compile(r"^## v(?P<version>\d+\.\d+\.\d+)\b")


def _changelog_candidates() -> Iterator[Path]:
    # src/gem_optimizer/_version.py -> src/ and the repository root
    for parent in Path(__file__).resolve().parents[1:3]:
        yield parent / "CHANGELOG.md"


def _changelog_version() -> str:
    """Return the newest ``## vX.Y.Z`` heading from a development checkout."""

    for changelog in _changelog_candidates():
        if not changelog.is_file():
            continue
        for line in changelog.read_text(encoding="utf-8").splitlines():
            match = _CHANGELOG_HEADING.match(line)
            if match:
                return match.group("version")
    raise RuntimeError(
        "Unable to determine the 'gem_optimizer' version: the package is not "
        "installed and no CHANGELOG.md heading was found."
    )


def _raw_version() -> str:
    override = os.environ.get(OVERRIDE_ENV_VAR)
    if override:
        return override
    try:
        return metadata.version(DISTRIBUTION)
    except metadata.PackageNotFoundError:
        return _changelog_version()


def _validated(raw_version: str) -> str:
    try:
        release = Version(raw_version).release
    except InvalidVersion as exc:
        raise RuntimeError(
            f"'gem_optimizer' version {raw_version!r} is not a valid version string."
        ) from exc
    if len(release) != 3:
        raise RuntimeError(
            f"'gem_optimizer' version {raw_version!r} must follow MAJOR.MINOR.PATCH."
        )
    return raw_version


__version__ = _validated(_raw_version())

__all__ = ["__version__"]
