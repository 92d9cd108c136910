from __future__ import annotations

import logging
from pathlib import Path

import pytest

from gem_optimizer.cli.errors import STATUS_CODES, CliError, build_error_payload


@pytest.mark.parametrize("category, status", sorted(STATUS_CODES.items()))
def test_categories_map_to_exit_codes(category: str, status: int) -> None:
    assert CliError("boom", category=category).status_code == status


def test_unknown_category_falls_back_to_runtime() -> None:
    payload = build_error_payload("boom", category="exotic")

    assert payload.category == "runtime"
    assert payload.status_code == 1


def test_context_is_made_serialisable() -> None:
    error = CliError("boom", category="io", context={"path": Path("/tmp/x"), "attempts": 2})

    assert error.context == {"path": str(Path("/tmp/x")), "attempts": 2}
    assert error.payload.as_dict()["status_code"] == 3


def test_log_emits_once(caplog: pytest.LogCaptureFixture) -> None:
    error = CliError("boom", category="usage", context={"field": "vehicle"})

    with caplog.at_level(logging.ERROR, logger="gem_optimizer.cli"):
        error.log()
        error.log()

    records = [record for record in caplog.records if record.name == "gem_optimizer.cli"]
    assert len(records) == 1
    assert records[0].event == "cli.error"
    assert records[0].category == "usage"
    assert records[0].context == {"field": "vehicle"}
    assert error.logged
