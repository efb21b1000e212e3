"""Structured, colored logging utilities for the engine."""
from __future__ import annotations

import logging
import sys
from typing import Union

# Simple ANSI color map
LEVEL_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[35m",
}
RESET = "\033[0m"


class ColorFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:  # pragma: no cover - presentation
        base = super().format(record)
        color = LEVEL_COLORS.get(record.levelname, "")
        return f"{color}{base}{RESET}" if color else base


def resolve_level(level: Union[int, str]) -> int:
    if isinstance(level, int):
        return level
    resolved = logging.getLevelName(str(level).upper())
    if not isinstance(resolved, int):
        raise ValueError(f"unknown log level: {level!r}")
    return resolved


def setup_logging(level: Union[int, str] = logging.INFO, terse: bool = False) -> None:
    """Install a colored stream handler if none exists."""

    root = logging.getLogger()
    if root.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s" if not terse else "[%(levelname)s] %(message)s"
    handler.setFormatter(ColorFormatter(fmt))
    root.setLevel(resolve_level(level))
    root.addHandler(handler)


__all__ = ["setup_logging", "ColorFormatter", "resolve_level"]
