# coronanumbers
# Copyright (c) 2025 Kevin Wyjad
# Licensed under the Pythia Non-Commercial Public License v1.0.
# See the LICENSE file in the project root for details.

"""Decide how much history to request for one country."""
from __future__ import annotations

import datetime as dt
import enum
import logging
from dataclasses import dataclass
from typing import Optional

from ..catalog import Country

LOGGER = logging.getLogger(__name__)


class RequestedMode(str, enum.Enum):
    """Collection mode asked for by the caller."""

    ALL = "all"
    RECENT = "recent"


@dataclass(frozen=True)
class RangeMode:
    """Range actually requested upstream for one country.

    ``since`` is ``None`` for a full-history fetch.
    """

    kind: str
    since: Optional[dt.date] = None

    @classmethod
    def all(cls) -> "RangeMode":
        return cls(kind="all")

    @classmethod
    def recent(cls, since: dt.date) -> "RangeMode":
        return cls(kind="recent", since=since)

    @property
    def is_all(self) -> bool:
        return self.kind == "all"

    def lastdays(self, today: dt.date) -> str:
        """Value of the ``lastdays`` query parameter for this range."""

        if self.since is None:
            return "all"
        return str(max(1, (today - self.since).days + 1))

    def describe(self) -> str:
        if self.since is None:
            return "all"
        return f"recent:{self.since.isoformat()}"


def select_range(
    country: Country,
    requested_mode: RequestedMode,
    last_known_date: Optional[dt.date],
    *,
    today: dt.date,
    max_recent_days: int = 30,
) -> RangeMode:
    """Return the range to fetch for ``country``.

    ``RECENT`` re-requests ``last_known_date`` itself so same-day corrections
    are picked up. Countries without history, or whose history is older than
    ``max_recent_days``, fall back to a full fetch.
    """

    if RequestedMode(requested_mode) is RequestedMode.ALL:
        return RangeMode.all()
    if last_known_date is None:
        LOGGER.debug("range.bootstrap | geo_id=%s", country.id)
        return RangeMode.all()
    gap = (today - last_known_date).days
    if gap > max_recent_days:
        LOGGER.info(
            "range.escalate | geo_id=%s last_known=%s gap_days=%d max_recent_days=%d",
            country.id,
            last_known_date,
            gap,
            max_recent_days,
        )
        return RangeMode.all()
    return RangeMode.recent(since=last_known_date)
