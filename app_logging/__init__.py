"""Logging package entrypoint."""
from .structured import setup_logging, ColorFormatter, resolve_level

__all__ = ["setup_logging", "ColorFormatter", "resolve_level"]
