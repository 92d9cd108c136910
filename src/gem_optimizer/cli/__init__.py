"""Command line utilities for the GEM controller optimizer."""

from gem_optimizer.cli.app import main, run_cli
from gem_optimizer.cli.errors import CliError

__all__ = ["CliError", "main", "run_cli"]
