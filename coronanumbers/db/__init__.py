"""DuckDB persistence for collected records."""

from .precheck import PrecheckLevel, PrecheckStatus, VersionTooOldError, check, require
from .store import (
    MergeAnomaly,
    MergeResult,
    MergeStore,
    StoreConstraintError,
    StoreError,
    StoreIOError,
)

__all__ = [
    "MergeAnomaly",
    "MergeResult",
    "MergeStore",
    "PrecheckLevel",
    "PrecheckStatus",
    "StoreConstraintError",
    "StoreError",
    "StoreIOError",
    "VersionTooOldError",
    "check",
    "require",
]
