"""Diagnostics helpers for coronanumbers."""

from .diagnostics import diag_enabled, get_logger, log_json

__all__ = ["diag_enabled", "get_logger", "log_json"]
