# coronanumbers
# Copyright (c) 2025 Kevin Wyjad
# Licensed under the Pythia Non-Commercial Public License v1.0.
# See the LICENSE file in the project root for details.

"""Storage engine version gate run once before a collection."""

from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from typing import Optional, Tuple

import duckdb

LOG = logging.getLogger(__name__)

# ON CONFLICT upserts and UPDATE ... FROM need at least this engine.
MIN_DUCKDB_VERSION: Tuple[int, int, int] = (0, 10, 0)
RECOMMENDED_DUCKDB_VERSION: Tuple[int, int, int] = (1, 1, 0)


class PrecheckError(Exception):
    """Base class for precheck failures."""


class VersionTooOldError(PrecheckError):
    pass


class PrecheckLevel(str, enum.Enum):
    OK = "ok"
    WARN = "warn"
    FATAL = "fatal"


@dataclass(frozen=True)
class PrecheckStatus:
    level: PrecheckLevel
    message: str
    version: str = ""

    @property
    def ok(self) -> bool:
        return self.level is not PrecheckLevel.FATAL


def parse_version(text: str) -> Tuple[int, int, int]:
    """Return the numeric ``(major, minor, patch)`` prefix of ``text``."""

    match = re.match(r"\s*v?(\d+)(?:\.(\d+))?(?:\.(\d+))?", str(text))
    if not match:
        raise ValueError(f"unrecognised version string {text!r}")
    major, minor, patch = (int(part) if part else 0 for part in match.groups())
    return major, minor, patch


def _fmt(version: Tuple[int, int, int]) -> str:
    return ".".join(str(part) for part in version)


def check(version: Optional[str] = None) -> PrecheckStatus:
    """Compare the DuckDB engine version against the supported range.

    ``version`` defaults to the installed engine. The function has no side
    effects; callers decide how to react to the returned level.
    """

    raw = version if version is not None else getattr(duckdb, "__version__", "")
    try:
        parsed = parse_version(raw)
    except ValueError:
        return PrecheckStatus(
            PrecheckLevel.FATAL, f"cannot determine DuckDB version from {raw!r}", str(raw)
        )
    if parsed < MIN_DUCKDB_VERSION:
        return PrecheckStatus(
            PrecheckLevel.FATAL,
            f"DuckDB {raw} is too old; at least {_fmt(MIN_DUCKDB_VERSION)} is required",
            str(raw),
        )
    if parsed < RECOMMENDED_DUCKDB_VERSION:
        return PrecheckStatus(
            PrecheckLevel.WARN,
            f"DuckDB {raw} is supported but {_fmt(RECOMMENDED_DUCKDB_VERSION)} or newer is recommended",
            str(raw),
        )
    return PrecheckStatus(PrecheckLevel.OK, f"DuckDB {raw}", str(raw))


def require(version: Optional[str] = None) -> PrecheckStatus:
    """Run :func:`check`, log the outcome and raise on a fatal level."""

    status = check(version)
    if status.level is PrecheckLevel.FATAL:
        LOG.error("precheck.fatal | %s", status.message)
        raise VersionTooOldError(status.message)
    if status.level is PrecheckLevel.WARN:
        LOG.warning("precheck.warn | %s", status.message)
    else:
        LOG.debug("precheck.ok | %s", status.message)
    return status


__all__ = [
    "MIN_DUCKDB_VERSION",
    "PrecheckError",
    "PrecheckLevel",
    "PrecheckStatus",
    "RECOMMENDED_DUCKDB_VERSION",
    "VersionTooOldError",
    "check",
    "parse_version",
    "require",
]
