"""Command line application entry point for gem-optimizer."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import NoReturn, Optional, Sequence

from gem_core.cache_settings import CacheOptions
from gem_optimizer.cli.errors import CliError
from gem_optimizer.cli.io import load_cli_config
from gem_optimizer.cli.parser import build_parser
from gem_optimizer.configuration import config_section
from gem_optimizer.logging.config import setup_logging

__all__ = ["main", "run_cli"]


def _preliminary_parser() -> argparse.ArgumentParser:
    config_parser = argparse.ArgumentParser(add_help=False)
    config_parser.add_argument("--config", dest="config_path", type=Path, default=None)
    config_parser.add_argument("--log-level", dest="log_level", default=None)
    config_parser.add_argument("--log-output", dest="log_output", default=None)
    config_parser.add_argument("--log-format", dest="log_format", choices=("json", "text"), default=None)
    return config_parser


def _write_line(text: str) -> None:
    if text:
        sys.stdout.write(text if text.endswith("\n") else f"{text}\n")


def _exit_with(error: CliError) -> NoReturn:
    error.log()
    _write_line(error.payload.message)
    raise SystemExit(error.status_code) from error


def run_cli(args: Optional[Sequence[str]] = None) -> str:
    """Execute the gem-optimizer command line interface and return its output."""

    preliminary, _ = _preliminary_parser().parse_known_args(args)

    try:
        config = load_cli_config(preliminary.config_path)
    except CliError as exc:
        _exit_with(exc)
    config["_cache_options"] = CacheOptions.from_config(config)
    logging_config = config_section(config, "logging")
    if preliminary.log_level is not None:
        logging_config["level"] = preliminary.log_level
    if preliminary.log_output is not None:
        logging_config["output"] = preliminary.log_output
    if preliminary.log_format is not None:
        logging_config["format"] = preliminary.log_format
    logging_config.setdefault("level", "info")
    logging_config.setdefault("output", "stderr")
    logging_config.setdefault("format", "json")
    config["logging"] = logging_config
    setup_logging(config)

    parser = build_parser(config)
    namespace = parser.parse_args(args)
    namespace.config = config

    handler = getattr(namespace, "handler", None)
    if handler is None:
        _exit_with(
            CliError(
                f"Unknown command '{getattr(namespace, 'command', None)}'.",
                category="usage",
                context={"command": getattr(namespace, "command", None)},
            )
        )

    try:
        result = handler(namespace, config=config)
    except CliError as exc:
        _exit_with(exc)
    _write_line(result)
    return result


def main() -> None:  # pragma: no cover - thin wrapper
    run_cli()


if __name__ == "__main__":  # pragma: no cover - CLI invocation guard
    main()
