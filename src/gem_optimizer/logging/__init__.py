"""Logging utilities for the GEM controller optimizer."""

from gem_optimizer.logging.config import JsonFormatter, setup_logging

__all__ = ["JsonFormatter", "setup_logging"]
