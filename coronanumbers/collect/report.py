# coronanumbers
# Copyright (c) 2025 Kevin Wyjad
# Licensed under the Pythia Non-Commercial Public License v1.0.
# See the LICENSE file in the project root for details.

"""Per-country outcomes and the aggregated run report."""

from __future__ import annotations

import datetime as dt
import enum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from ..catalog import Country
from ..records import DailyRecord
from .ranges import RequestedMode


class OutcomeStatus(str, enum.Enum):
    SUCCESS = "success"
    PARTIAL_FAILURE = "partial_failure"
    FATAL = "fatal"


@dataclass(frozen=True)
class CollectionOutcome:
    """What happened to one country during a run."""

    country: Country
    status: OutcomeStatus
    records_written: int = 0
    reason: str = ""
    duration_s: float = 0.0
    attempts: int = 0
    range_mode: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "geo_id": self.country.id,
            "status": self.status.value,
            "records_written": self.records_written,
            "reason": self.reason,
            "duration_s": round(self.duration_s, 3),
            "attempts": self.attempts,
            "range_mode": self.range_mode,
        }


@dataclass(frozen=True)
class Anomaly:
    country: Country
    record: DailyRecord
    kind: str
    column: str = ""
    previous: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        payload = self.record.to_dict()
        payload.update(kind=self.kind, column=self.column, previous=self.previous)
        return payload


@dataclass
class RunReport:
    """Aggregated result of one collection run.

    A report is always produced; ``fatal`` marks runs that stopped early
    because the store failed or the precheck refused to start.
    """

    requested_mode: RequestedMode
    outcomes: List[CollectionOutcome] = field(default_factory=list)
    anomalies: List[Anomaly] = field(default_factory=list)
    fatal: bool = False
    fatal_reason: str = ""
    cancelled: bool = False
    precheck: str = ""
    started_at: dt.datetime = field(default_factory=dt.datetime.now)
    finished_at: Optional[dt.datetime] = None
    fatal_error: Optional[BaseException] = field(default=None, repr=False, compare=False)

    @property
    def succeeded(self) -> List[Country]:
        return [o.country for o in self.outcomes if o.status is OutcomeStatus.SUCCESS]

    @property
    def partial_failures(self) -> List[Tuple[Country, str]]:
        return [
            (o.country, o.reason)
            for o in self.outcomes
            if o.status is OutcomeStatus.PARTIAL_FAILURE
        ]

    @property
    def total_records_written(self) -> int:
        return sum(o.records_written for o in self.outcomes)

    @property
    def ok(self) -> bool:
        return not self.fatal and not self.partial_failures

    def outcome_for(self, geo_id: str) -> Optional[CollectionOutcome]:
        for outcome in self.outcomes:
            if outcome.country.id == geo_id:
                return outcome
        return None

    def mark_fatal(self, reason: str, error: BaseException | None = None) -> None:
        if self.fatal:
            return
        self.fatal = True
        self.fatal_reason = reason
        self.fatal_error = error

    def summary(self) -> str:
        lines = [
            f"Mode: {self.requested_mode.value}",
            f"Countries succeeded: {len(self.succeeded)}",
            f"Countries failed: {len(self.partial_failures)}",
            f"Records written: {self.total_records_written}",
            f"Anomalies: {len(self.anomalies)}",
        ]
        if self.cancelled:
            lines.append("Run was cancelled before all countries were processed")
        if self.fatal:
            lines.append(f"FATAL: {self.fatal_reason}")
        for country, reason in self.partial_failures:
            lines.append(f"  - {country.id} ({country.display_name}): {reason}")
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "requested_mode": self.requested_mode.value,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "succeeded": [country.id for country in self.succeeded],
            "partial_failures": [
                {"geo_id": country.id, "reason": reason}
                for country, reason in self.partial_failures
            ],
            "total_records_written": self.total_records_written,
            "anomalies": [
                {"geo_id": anomaly.country.id, **anomaly.to_dict()} for anomaly in self.anomalies
            ],
            "fatal": self.fatal,
            "fatal_reason": self.fatal_reason,
            "cancelled": self.cancelled,
            "precheck": self.precheck,
            "outcomes": [outcome.to_dict() for outcome in self.outcomes],
        }
