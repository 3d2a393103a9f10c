"""Structured logging helpers shared across coronanumbers modules."""
from __future__ import annotations
import logging
import os
from functools import lru_cache

_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def _resolve_level() -> int:
    level_name = os.getenv("CORONA_LOG_LEVEL", "INFO").upper()
    return getattr(logging, level_name, logging.INFO)


@lru_cache(maxsize=None)
def get_logger(name: str) -> logging.Logger:
    """Return a configured logger with a consistent formatter.

    The first call configures the logger and caches it so repeated invocations
    reuse the same handler without duplicating output.
    """

    logger = logging.getLogger(name)
    logger.setLevel(_resolve_level())
    if not any(isinstance(handler, logging.StreamHandler) for handler in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        logger.addHandler(handler)
    logger.propagate = False
    return logger


def configure_root_logger(*, level: str | int) -> None:
    """Configure the root logger with the shared formatter and level."""

    if isinstance(level, int):
        resolved_level = level
    else:
        resolved_level = getattr(logging, str(level).upper(), logging.INFO)
    root = logging.getLogger()
    root.setLevel(resolved_level)
    if not any(isinstance(handler, logging.StreamHandler) for handler in root.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(_FORMAT))
        root.addHandler(handler)
