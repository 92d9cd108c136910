from __future__ import annotations

import logging
import sys
from pathlib import Path
from textwrap import dedent
from typing import Callable, Iterator

import pytest


ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from gem_core.cache import OptimizationCache  # noqa: E402
from gem_optimizer.logging.config import MANAGED_LOGGERS  # noqa: E402


def write_pyproject(directory: Path, contents: str) -> Path:
    """Persist a ``pyproject.toml`` under ``directory`` and return its path."""

    payload = dedent(contents).lstrip()
    target = directory / "pyproject.toml"
    target.write_text(payload, encoding="utf8")
    return target


class FakeClock:
    """Monotonic stand-in for :func:`time.time` that tests advance by hand."""

    def __init__(self, start: float = 1_700_000_000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> float:
        self.now += seconds
        return self.now


@pytest.fixture()
def pyproject_writer() -> Callable[[Path, str], Path]:
    return write_pyproject


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def cache(clock: FakeClock) -> OptimizationCache:
    return OptimizationCache(clock=clock)


@pytest.fixture(autouse=True)
def _reset_package_loggers() -> Iterator[None]:
    yield
    for name in MANAGED_LOGGERS:
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        logger.setLevel(logging.NOTSET)


@pytest.fixture(autouse=True)
def _isolate_cli_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("GEM_OPTIMIZER_CONFIG", raising=False)
    monkeypatch.delenv("PYTHON_SEMANTIC_RELEASE_VERSION", raising=False)
