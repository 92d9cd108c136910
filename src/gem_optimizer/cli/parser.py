"""Argument parsing helpers for the gem-optimizer CLI."""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Any, Mapping, Optional

from gem_core.constants import DEFAULT_VEHICLE_TAG
from gem_optimizer.cli.workflows import (
    _handle_lookup,
    _handle_optimize,
    _handle_presets,
    _handle_stats,
)
from gem_optimizer.configuration import config_section

__all__ = ["build_parser"]

_FORMATS = ("json", "text")


def _add_format_argument(parser: argparse.ArgumentParser, default: str) -> None:
    parser.add_argument(
        "--format",
        choices=_FORMATS,
        default=default,
        help=f"Output format (default: {default}).",
    )


def build_parser(config: Optional[Mapping[str, Any]] = None) -> argparse.ArgumentParser:
    config = dict(config or {})
    logging_cfg = config_section(config, "logging")
    defaults_cfg = config_section(config, "defaults")
    output_default = str(config_section(config, "output").get("format", "text"))
    if output_default not in _FORMATS:
        output_default = "text"
    vehicle_default = str(defaults_cfg.get("vehicle", DEFAULT_VEHICLE_TAG))

    parser = argparse.ArgumentParser(
        prog="gem-optimizer",
        description="GEM T2 motor controller settings optimizer",
    )
    parser.add_argument(
        "--config",
        dest="config_path",
        type=Path,
        default=None,
        help="Path to the pyproject.toml (or its directory) holding [tool.gem_optimizer].",
    )
    parser.add_argument(
        "--log-level",
        dest="log_level",
        default=logging_cfg.get("level", "info"),
        help="Logging level (e.g. debug, info, warning).",
    )
    parser.add_argument(
        "--log-output",
        dest="log_output",
        default=logging_cfg.get("output", "stderr"),
        help="Logging destination (stdout, stderr or a file path).",
    )
    parser.add_argument(
        "--log-format",
        dest="log_format",
        choices=_FORMATS,
        default=logging_cfg.get("format", "json"),
        help="Logging formatter (json or text).",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    optimize_parser = subparsers.add_parser(
        "optimize",
        help="Optimise controller settings for a JSON request file.",
    )
    optimize_parser.add_argument(
        "request",
        type=Path,
        help="JSON document with vehicle, battery, wheel, environment and priorities sections.",
    )
    optimize_parser.add_argument(
        "--preset",
        default=None,
        help="Merge a named preset's inputs into the request before optimising.",
    )
    optimize_parser.add_argument(
        "--no-cache",
        dest="no_cache",
        action="store_true",
        help="Always run the optimizer instead of consulting the scenario cache.",
    )
    _add_format_argument(optimize_parser, output_default)
    optimize_parser.set_defaults(handler=_handle_optimize)

    lookup_parser = subparsers.add_parser(
        "lookup",
        help="Look up a pre-computed optimisation without running the optimizer.",
    )
    lookup_parser.add_argument("--vehicle", default=vehicle_default, help="Vehicle model tag.")
    for name in ("speed", "range", "acceleration", "efficiency"):
        lookup_parser.add_argument(
            f"--{name}", type=float, default=5.0, help=f"{name.capitalize()} priority on a 0-10 scale."
        )
    lookup_parser.add_argument("--temperature", type=float, default=70.0, help="Temperature in deg F.")
    lookup_parser.add_argument("--grade", type=float, default=0.0, help="Hill grade in percent.")
    lookup_parser.add_argument("--load", type=float, default=0.0, help="Payload in lbs.")
    _add_format_argument(lookup_parser, output_default)
    lookup_parser.set_defaults(handler=_handle_lookup)

    presets_parser = subparsers.add_parser(
        "presets",
        help="List presets or show the clamped settings of one preset.",
    )
    presets_parser.add_argument("name", nargs="?", default=None, help="Preset name.")
    _add_format_argument(presets_parser, output_default)
    presets_parser.set_defaults(handler=_handle_presets)

    stats_parser = subparsers.add_parser(
        "stats",
        help="Show scenario cache statistics after pre-generation.",
    )
    stats_parser.add_argument(
        "--vehicle", default=vehicle_default, help="Vehicle whose quick scenarios are listed."
    )
    _add_format_argument(stats_parser, output_default)
    stats_parser.set_defaults(handler=_handle_stats)

    return parser
