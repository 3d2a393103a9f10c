"""Collection policy, configuration and run reporting.

Import the worker pool from :mod:`coronanumbers.collect.orchestrator`.
"""

from .config import CollectConfig, load
from .ranges import RangeMode, RequestedMode, select_range
from .report import Anomaly, CollectionOutcome, OutcomeStatus, RunReport

__all__ = [
    "Anomaly",
    "CollectConfig",
    "CollectionOutcome",
    "OutcomeStatus",
    "RangeMode",
    "RequestedMode",
    "RunReport",
    "load",
    "select_range",
]
