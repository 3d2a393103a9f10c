# coronanumbers
# Copyright (c) 2025 Kevin Wyjad
# Licensed under the Pythia Non-Commercial Public License v1.0.
# See the LICENSE file in the project root for details.

"""Normalize historical timeline payloads into record frames."""
from __future__ import annotations

import datetime as dt
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

import pandas as pd

from ..catalog import Country
from ..records import RECORD_COLUMNS, empty_records
from .http import ParseError

LOG = logging.getLogger(__name__)

_SERIES = ("cases", "deaths", "recovered")


def parse_upstream_date(text: str) -> dt.date:
    """Parse the ``M/D/YY`` keys used by the timeline maps."""

    parts = str(text).strip().split("/")
    if len(parts) != 3:
        raise ValueError(f"unexpected date {text!r}")
    month, day, year = (int(part) for part in parts)
    if year < 100:
        year += 2000
    return dt.date(year, month, day)


def _as_count(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _series(timeline: Mapping[str, Any], name: str, *, geo_id: str) -> Dict[dt.date, int]:
    raw = timeline.get(name)
    if raw is None:
        return {}
    if not isinstance(raw, Mapping):
        raise ParseError(f"{geo_id}: timeline.{name} is not an object")
    values: Dict[dt.date, int] = {}
    skipped = 0
    for key, value in raw.items():
        try:
            day = parse_upstream_date(key)
        except ValueError:
            skipped += 1
            continue
        count = _as_count(value)
        if count is None or count < 0:
            skipped += 1
            continue
        values[day] = count
    if skipped:
        LOG.warning("timeline.skipped | geo_id=%s series=%s skipped=%d", geo_id, name, skipped)
    return values


def _timeline_of(item: Any, *, geo_id: str) -> Dict[str, Dict[dt.date, int]]:
    if not isinstance(item, Mapping):
        raise ParseError(f"{geo_id}: expected an object, got {type(item).__name__}")
    timeline = item.get("timeline")
    if not isinstance(timeline, Mapping):
        raise ParseError(f"{geo_id}: response has no timeline object")
    return {name: _series(timeline, name, geo_id=geo_id) for name in _SERIES}


def _sum_timelines(timelines: Iterable[Dict[str, Dict[dt.date, int]]]) -> Dict[str, Dict[dt.date, int]]:
    totals: Dict[str, Dict[dt.date, int]] = {name: {} for name in _SERIES}
    for timeline in timelines:
        for name in _SERIES:
            bucket = totals[name]
            for day, value in timeline[name].items():
                bucket[day] = bucket.get(day, 0) + value
    return totals


def extract_timeline(payload: Any, country: Country) -> Dict[str, Dict[dt.date, int]]:
    """Return the per-series date maps for ``country`` from a decoded payload."""

    geo_id = country.id
    if country.fetch_mode in {"usacounties", "first_of"}:
        if not isinstance(payload, list):
            raise ParseError(f"{geo_id}: expected an array response")
        if not payload:
            raise ParseError(f"{geo_id}: empty array response")
        if country.fetch_mode == "first_of":
            return _timeline_of(payload[0], geo_id=geo_id)
        return _sum_timelines(_timeline_of(item, geo_id=geo_id) for item in payload)
    return _timeline_of(payload, geo_id=geo_id)


def _shift(values: Dict[dt.date, int], days: int) -> Dict[dt.date, int]:
    if days <= 0 or not values:
        return values
    last = max(values)
    return {day + dt.timedelta(days=days): value for day, value in values.items() if day != last}


def normalize_timeline(
    payload: Any,
    country: Country,
    *,
    today: dt.date,
    since: Optional[dt.date] = None,
) -> pd.DataFrame:
    """Turn an upstream payload into a frame with ``RECORD_COLUMNS``.

    Dates missing confirmed or death counts are dropped. Points dated after
    ``today`` are dropped, as are points before ``since`` when given.
    """

    series = extract_timeline(payload, country)
    cases = _shift(series["cases"], country.shift_days)
    deaths = _shift(series["deaths"], country.shift_days)
    recovered = _shift(series["recovered"], country.shift_days)

    rows: List[Dict[str, Any]] = []
    incomplete = 0
    future = 0
    for day in sorted(cases):
        if day > today:
            future += 1
            continue
        if since is not None and day < since:
            continue
        if day not in deaths:
            incomplete += 1
            continue
        rows.append(
            {
                "country_id": country.id,
                "date": day,
                "confirmed": cases[day],
                "deaths": deaths[day],
                "recovered": recovered.get(day),
            }
        )
    if incomplete:
        LOG.warning("timeline.incomplete | geo_id=%s dropped=%d", country.id, incomplete)
    if future:
        LOG.warning("timeline.future_dates | geo_id=%s dropped=%d today=%s", country.id, future, today)
    if not rows:
        return empty_records()
    frame = pd.DataFrame(rows, columns=RECORD_COLUMNS)
    frame["recovered"] = frame["recovered"].astype("Int64")
    return frame
