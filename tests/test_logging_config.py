from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest

from gem_optimizer.logging import JsonFormatter, setup_logging
from gem_optimizer.logging.config import MANAGED_LOGGERS


def _marked_handlers(name: str) -> list[logging.Handler]:
    return [
        handler
        for handler in logging.getLogger(name).handlers
        if getattr(handler, "_gem_optimizer_handler", False)
    ]


def test_json_formatter_includes_extra_fields() -> None:
    record = logging.LogRecord("gem_core.cache", logging.INFO, __file__, 1, "Cache ready %d", (3,), None)
    record.event = "cache.initialised"
    record.size = 3
    record.violations = {1: 99}

    payload = json.loads(JsonFormatter().format(record))

    assert payload["message"] == "Cache ready 3"
    assert payload["level"] == "info"
    assert payload["logger"] == "gem_core.cache"
    assert payload["event"] == "cache.initialised"
    assert payload["size"] == 3
    assert payload["violations"] == {"1": 99}
    assert payload["timestamp"].endswith("+00:00")


def test_setup_logging_writes_json_to_file(tmp_path: Path) -> None:
    target = tmp_path / "logs" / "gem.log"

    logger = setup_logging({"logging": {"level": "debug", "output": str(target), "format": "json"}})
    logging.getLogger("gem_core.optimizer").debug("tuned", extra={"event": "optimizer.run"})
    for handler in _marked_handlers("gem_core"):
        handler.flush()

    assert logger.name == "gem_optimizer"
    assert all(logging.getLogger(name).level == logging.DEBUG for name in MANAGED_LOGGERS)
    lines = target.read_text(encoding="utf8").splitlines()
    assert json.loads(lines[-1])["event"] == "optimizer.run"


def test_setup_logging_replaces_previous_handler() -> None:
    setup_logging({"level": "info"})
    setup_logging({"level": "warning", "format": "text"})

    for name in MANAGED_LOGGERS:
        handlers = _marked_handlers(name)
        assert len(handlers) == 1
        assert not isinstance(handlers[0].formatter, JsonFormatter)
    assert logging.getLogger("gem_core").level == logging.WARNING


def test_text_output_to_stdout(capsys: pytest.CaptureFixture[str]) -> None:
    setup_logging({"logging": {"output": "stdout", "format": "text"}})
    logging.getLogger("gem_optimizer.cli").info("hello")

    assert "INFO gem_optimizer.cli: hello" in capsys.readouterr().out


def test_unknown_level_defaults_to_info() -> None:
    setup_logging({"logging": {"level": "chatty"}})

    assert logging.getLogger("gem_optimizer").level == logging.INFO
