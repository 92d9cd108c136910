from __future__ import annotations

import argparse
import json
from pathlib import Path
from typing import Any, Callable

import pytest

from gem_core.profiles import OptimizationRequest
from gem_optimizer.cli import run_cli
from gem_optimizer.cli import workflows
from gem_optimizer.cli.parser import build_parser

REQUEST = {
    "vehicle": {"model": "e4", "motorCondition": "good"},
    "battery": {"type": "lead", "voltage": 72, "capacity": 150},
    "wheel": {"tireDiameter": 22, "gearRatio": 8.91},
    "environment": {"terrain": "flat", "hillGrade": 2},
    "priorities": {"speed": 5, "range": 5, "acceleration": 5, "hillClimbing": 5, "regen": 5},
}


@pytest.fixture(autouse=True)
def _workdir(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def request_file(tmp_path: Path) -> Callable[..., Path]:
    def _write(payload: dict[str, Any] | None = None, name: str = "request.json") -> Path:
        target = tmp_path / name
        target.write_text(json.dumps(REQUEST if payload is None else payload), encoding="utf8")
        return target

    return _write


def _subparser_choices(parser: argparse.ArgumentParser) -> dict[str, argparse.ArgumentParser]:
    for action in parser._actions:
        if isinstance(action, argparse._SubParsersAction):  # pragma: no branch
            return action.choices
    raise AssertionError("Subparser action not found")


def test_build_parser_registers_commands() -> None:
    parser = build_parser({})

    assert set(_subparser_choices(parser)) == {"optimize", "lookup", "presets", "stats"}
    assert parser.parse_args(["stats"]).handler is workflows._handle_stats
    assert parser.parse_args(["presets"]).format == "text"


def test_build_parser_reads_config_defaults() -> None:
    parser = build_parser({"output": {"format": "json"}, "defaults": {"vehicle": "e2"}})

    namespace = parser.parse_args(["lookup"])
    assert namespace.format == "json"
    assert namespace.vehicle == "e2"
    assert namespace.speed == 5.0
    assert build_parser({"output": {"format": "xml"}}).parse_args(["stats"]).format == "text"


def test_lookup_exact_hit(capsys: pytest.CaptureFixture[str]) -> None:
    output = run_cli(
        ["lookup", "--speed", "9", "--range", "3", "--acceleration", "7", "--efficiency", "2", "--format", "json"]
    )

    payload = json.loads(output)
    assert payload["cacheHit"] == "exact"
    assert payload["cacheKey"] == "e4_speed_focused_ideal"
    assert payload["method"] == "pre_computed_cache"
    assert payload["optimizedSettings"]["7"] == 53
    assert json.loads(capsys.readouterr().out) == payload


def test_lookup_miss_exits_not_found(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as excinfo:
        run_cli(["lookup", "--vehicle", "e2", "--speed", "2", "--range", "6", "--efficiency", "3"])

    assert excinfo.value.code == 4
    assert "No cached optimization" in capsys.readouterr().out


def test_optimize_serves_cached_result(request_file: Callable[..., Path]) -> None:
    payload = json.loads(run_cli(["optimize", str(request_file()), "--format", "json"]))

    assert payload["cached"] is True
    assert payload["cacheHit"] == "exact"
    assert payload["cacheKey"] == "e4_balanced_ideal"
    assert payload["isUsingImportedBaseline"] is False


def test_optimize_without_cache(request_file: Callable[..., Path]) -> None:
    request = {**REQUEST, "wheel": {"tireDiameter": 25, "gearRatio": 8.91}, "baseline": {"3": 18}}

    payload = json.loads(
        run_cli(["optimize", str(request_file(request)), "--no-cache", "--format", "json"])
    )

    assert payload["cached"] is False
    assert payload["method"] == "rule_based"
    assert payload["optimizedSettings"]["1"] == 25
    assert payload["isUsingImportedBaseline"] is True
    assert payload["baselineSettings"] == {"3": 18}
    assert payload["warnings"][0]["level"] == "medium"


def test_optimize_with_preset(request_file: Callable[..., Path]) -> None:
    output = run_cli(
        ["optimize", str(request_file()), "--preset", "lithium-optimized", "--no-cache", "--format", "json"]
    )

    settings = json.loads(output)["optimizedSettings"]
    assert settings["14"] == 7
    assert settings["15"] == 82
    assert settings["9"] == 255


def test_optimize_text_output(request_file: Callable[..., Path]) -> None:
    request = {**REQUEST, "vehicle": {"model": "e4", "motorCondition": "sparking"}}

    output = run_cli(["optimize", str(request_file(request)), "--no-cache"])

    assert output.startswith("Vehicle: e4")
    assert "F.7   Minimum Field Current" in output
    assert "Motor protection significantly improved" in output


@pytest.mark.parametrize(
    "argv_builder, status, message",
    [
        pytest.param(
            lambda write: ["optimize", str(write({**REQUEST, "battery": {**REQUEST["battery"], "type": "nickel"}}))],
            2,
            "Invalid request: Battery type must be Lead Acid, AGM, or Lithium",
            id="invalid-request",
        ),
        pytest.param(
            lambda write: ["optimize", str(write().with_name("missing.json"))],
            4,
            "does not exist",
            id="missing-request",
        ),
        pytest.param(
            lambda write: ["optimize", str(write()), "--preset", "warp-drive"],
            4,
            "Unknown preset 'warp-drive'",
            id="unknown-preset",
        ),
        pytest.param(lambda write: ["presets", "warp-drive"], 4, "Unknown preset", id="unknown-preset-detail"),
        pytest.param(
            lambda write: ["optimize", str(write({**REQUEST, "baselineSettings": {"foo": 18}}))],
            2,
            "Invalid request: Unknown controller function 'foo'",
            id="malformed-baseline",
        ),
    ],
)
def test_command_failures(
    capsys: pytest.CaptureFixture[str],
    request_file: Callable[..., Path],
    argv_builder: Callable[[Callable[..., Path]], list[str]],
    status: int,
    message: str,
) -> None:
    with pytest.raises(SystemExit) as excinfo:
        run_cli(argv_builder(request_file))

    assert excinfo.value.code == status
    assert message in capsys.readouterr().out


def test_unknown_command_is_a_usage_error() -> None:
    with pytest.raises(SystemExit) as excinfo:
        run_cli(["teleport"])

    assert excinfo.value.code == 2


def test_presets_listing_and_detail() -> None:
    listing = run_cli(["presets"])
    assert "lithium-optimized" in listing
    assert "Motor Protection - Conservative settings for aging motors" in listing

    detail = json.loads(run_cli(["presets", "balanced", "--format", "json"]))
    assert detail["title"] == "Balanced"
    assert detail["resolvedSettings"]["7"] == 65
    assert detail["resolvedSettings"]["1"] == 22


def test_stats_reports_seeded_cache() -> None:
    payload = json.loads(run_cli(["stats", "--format", "json"]))

    assert payload["size"] == 95
    assert payload["cacheHits"] == 0
    assert [item["name"] for item in payload["quickScenarios"]][:2] == ["factory_default", "max_speed"]


def test_config_file_controls_output_and_logging(
    tmp_path: Path, pyproject_writer: Callable[[Path, str], Path]
) -> None:
    log_path = tmp_path / "gem.log"
    project = tmp_path / "project"
    project.mkdir()
    config_path = pyproject_writer(
        project,
        f"""
        [tool.gem_optimizer.logging]
        level = "info"
        output = "{log_path.as_posix()}"

        [tool.gem_optimizer.output]
        format = "json"
        """,
    )

    payload = json.loads(run_cli(["--config", str(config_path), "stats"]))

    assert payload["size"] == 95
    records = [json.loads(line) for line in log_path.read_text(encoding="utf8").splitlines()]
    assert any(record.get("event") == "cache.initialised" for record in records)


def test_config_file_can_disable_cache(
    tmp_path: Path, pyproject_writer: Callable[[Path, str], Path]
) -> None:
    pyproject_writer(
        tmp_path,
        """
        [tool.gem_optimizer.cache]
        enabled = false
        """,
    )

    assert json.loads(run_cli(["stats", "--format", "json"]))["size"] == 0
    with pytest.raises(SystemExit) as excinfo:
        run_cli(["lookup"])
    assert excinfo.value.code == 4


def test_log_options_override_config(tmp_path: Path) -> None:
    log_path = tmp_path / "override.log"

    run_cli(["--log-output", str(log_path), "--log-level", "debug", "stats"])

    events = {json.loads(line).get("event") for line in log_path.read_text(encoding="utf8").splitlines()}
    assert "optimizer.run" in events


def test_malformed_config_file_is_a_usage_error(
    capsys: pytest.CaptureFixture[str], tmp_path: Path
) -> None:
    (tmp_path / "pyproject.toml").write_text("[tool.gem_optimizer.cache\nenabled = ", encoding="utf8")

    with pytest.raises(SystemExit) as excinfo:
        run_cli(["stats"])

    assert excinfo.value.code == 2
    assert "is not valid TOML" in capsys.readouterr().out


def test_optimize_bypasses_cache_for_non_stock_hardware(request_file: Callable[..., Path]) -> None:
    request = {**REQUEST, "battery": {"type": "lithium", "voltage": 82, "capacity": 105}}

    payload = json.loads(run_cli(["optimize", str(request_file(request)), "--format", "json"]))

    assert payload["cached"] is False
    assert payload["method"] == "rule_based"
    assert payload["optimizedSettings"]["15"] == 82
    assert payload["optimizedSettings"]["14"] == 7


@pytest.mark.parametrize(
    "overrides, expected",
    [
        pytest.param({}, [], id="stock"),
        pytest.param({"vehicle": {"model": "e2", "motorCondition": "good"}}, [], id="other-model"),
        pytest.param({"wheel": {"tireDiameter": 22, "gearRatio": 12}}, [], id="gear-ratio-ignored"),
        pytest.param(
            {"vehicle": {"model": "e4", "motorCondition": "fair"}, "wheel": {"tireDiameter": 23}},
            ["vehicle.motorCondition", "wheel.tireDiameter"],
            id="worn-motor-large-tires",
        ),
        pytest.param({"battery": {"type": "agm", "voltage": 72}}, ["battery.type"], id="agm"),
    ],
)
def test_non_stock_hardware(overrides: dict[str, Any], expected: list[str]) -> None:
    request = OptimizationRequest.from_mapping({**REQUEST, **overrides})

    assert workflows.non_stock_hardware(request) == expected
