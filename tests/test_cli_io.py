from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Callable

import pytest

from gem_optimizer.cli import io as cli_io
from gem_optimizer.cli.errors import CliError
from gem_optimizer.configuration import config_section, load_project_config, resolve_pyproject_path

PYPROJECT = """
[project]
name = "sample"

[tool.gem_optimizer.logging]
level = "debug"

[tool.gem_optimizer.cache]
fuzzy_threshold = 0.7

[tool.gem_optimizer.defaults]
vehicle = "e2"
battery_voltage = 82
"""


def test_resolve_pyproject_path(tmp_path: Path) -> None:
    assert resolve_pyproject_path(tmp_path) == tmp_path / "pyproject.toml"
    assert resolve_pyproject_path(tmp_path / "pyproject.toml") == tmp_path / "pyproject.toml"
    assert resolve_pyproject_path(tmp_path / "settings.json") is None


def test_load_project_config_reads_tool_section(
    tmp_path: Path, pyproject_writer: Callable[[Path, str], Path]
) -> None:
    path = pyproject_writer(tmp_path, PYPROJECT)

    loaded = load_project_config(path)

    assert loaded is not None
    payload, source = loaded
    assert source == path.resolve()
    assert payload["logging"] == {"level": "debug"}
    assert payload["defaults"]["battery_voltage"] == 82


def test_load_project_config_without_section(
    tmp_path: Path, pyproject_writer: Callable[[Path, str], Path]
) -> None:
    path = pyproject_writer(tmp_path, '[project]\nname = "other"\n')

    assert load_project_config(path) is None
    assert load_project_config(tmp_path / "missing") is None


def test_unknown_tables_are_kept_but_reported(
    tmp_path: Path, pyproject_writer: Callable[[Path, str], Path], caplog: pytest.LogCaptureFixture
) -> None:
    path = pyproject_writer(tmp_path, "[tool.gem_optimizer.telemetry]\nenabled = true\n")

    with caplog.at_level(logging.DEBUG, logger="gem_optimizer.configuration"):
        payload, _ = load_project_config(path)

    assert payload == {"telemetry": {"enabled": True}}
    assert [record.tables for record in caplog.records] == [["telemetry"]]


def test_config_section() -> None:
    config = {"logging": {"level": "debug"}, "output": "json"}

    assert config_section(config, "logging") == {"level": "debug"}
    assert config_section(config, "output") == {}
    assert config_section(None, "cache") == {}
    config_section(config, "logging")["level"] = "info"
    assert config["logging"]["level"] == "debug"


@pytest.mark.parametrize(
    "via", [pytest.param("explicit", id="explicit-path"), pytest.param("env", id="env-var"), pytest.param("cwd", id="via-chdir")]
)
def test_load_cli_config_sources(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    pyproject_writer: Callable[[Path, str], Path],
    via: str,
) -> None:
    path = pyproject_writer(tmp_path, PYPROJECT)
    elsewhere = tmp_path / "elsewhere"
    elsewhere.mkdir()
    monkeypatch.chdir(elsewhere)

    if via == "explicit":
        config = cli_io.load_cli_config(path)
    elif via == "env":
        monkeypatch.setenv(cli_io.CONFIG_ENV_VAR, str(tmp_path))
        config = cli_io.load_cli_config()
    else:
        monkeypatch.chdir(tmp_path)
        config = cli_io.load_cli_config()

    assert config["_config_path"] == str(path.resolve())
    assert config["cache"]["fuzzy_threshold"] == 0.7


def test_load_cli_config_without_pyproject(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)

    assert cli_io.load_cli_config() == {"_config_path": None}


def test_load_request(tmp_path: Path) -> None:
    source = tmp_path / "request.json"
    source.write_text(json.dumps({"vehicle": {"model": "e4"}}), encoding="utf8")

    assert cli_io.load_request(source) == {"vehicle": {"model": "e4"}}


@pytest.mark.parametrize(
    "contents, category",
    [
        pytest.param(None, "not_found", id="missing"),
        pytest.param("{not json", "usage", id="invalid-json"),
        pytest.param("[1, 2]", "usage", id="not-an-object"),
    ],
)
def test_load_request_errors(tmp_path: Path, contents: str | None, category: str) -> None:
    source = tmp_path / "request.json"
    if contents is not None:
        source.write_text(contents, encoding="utf8")

    with pytest.raises(CliError) as excinfo:
        cli_io.load_request(source)

    assert excinfo.value.category == category
    assert excinfo.value.context["path"] == str(source)


def test_apply_request_defaults_fills_only_missing_fields() -> None:
    request = {"vehicle": {"model": "e6"}, "battery": {"type": "agm"}}
    config = {"defaults": {"vehicle": "e2", "battery_voltage": 82, "tire_diameter": 23}}

    merged = cli_io.apply_request_defaults(request, config)

    assert merged["vehicle"] == {"model": "e6"}
    assert merged["battery"] == {"type": "agm", "voltage": 82}
    assert merged["wheel"] == {"tireDiameter": 23}
    assert request["battery"] == {"type": "agm"}
    assert cli_io.apply_request_defaults(request, {}) == request


def test_load_cli_config_rejects_invalid_toml(tmp_path: Path) -> None:
    target = tmp_path / "pyproject.toml"
    target.write_text("[tool.gem_optimizer\n", encoding="utf8")

    with pytest.raises(CliError) as excinfo:
        cli_io.load_cli_config(target)

    assert excinfo.value.category == "usage"
    assert excinfo.value.context["path"] == str(target.resolve())
