# coronanumbers
# Copyright (c) 2025 Kevin Wyjad
# Licensed under the Pythia Non-Commercial Public License v1.0.
# See the LICENSE file in the project root for details.

"""Read-side daily numbers derived from stored cumulative counters."""

from __future__ import annotations

import logging

import pandas as pd

from ..records import RECORD_COLUMNS

LOGGER = logging.getLogger(__name__)

MAX_FILLED_GAP = 100
INCIDENCE_WINDOW = 14

DAILY_COLUMNS = ["date", "confirmed", "deaths", "new_cases", "new_deaths", "incidence_14d"]


def fill_missing_dates(frame: pd.DataFrame, *, max_gap: int = MAX_FILLED_GAP) -> pd.DataFrame:
    """Return ``frame`` with one row per calendar day.

    Missing days repeat the previous cumulative counters. Raises
    ``ValueError`` when more than ``max_gap`` consecutive days are missing.
    """

    missing = [c for c in RECORD_COLUMNS if c not in frame.columns]
    if missing:
        raise ValueError(f"record frame missing columns: {missing}")
    if len(frame) <= 1:
        return frame.reset_index(drop=True)

    ordered = frame.copy()
    ordered["date"] = pd.to_datetime(ordered["date"])
    ordered = ordered.sort_values("date").drop_duplicates(subset=["date"], keep="last")
    gaps = ordered["date"].diff().dt.days.fillna(1) - 1
    if (gaps > max_gap).any():
        worst = int(gaps.max())
        raise ValueError(
            f"dates are far from contiguous: {worst} days missing between two consecutive dates"
        )

    full_range = pd.date_range(ordered["date"].iloc[0], ordered["date"].iloc[-1], freq="D")
    filled = ordered.set_index("date").reindex(full_range)
    inserted = int(filled["confirmed"].isna().sum())
    filled = filled.ffill()
    filled.index.name = "date"
    filled = filled.reset_index()
    filled["date"] = filled["date"].dt.date
    filled["confirmed"] = filled["confirmed"].astype("int64")
    filled["deaths"] = filled["deaths"].astype("int64")
    filled["recovered"] = filled["recovered"].astype("Int64")
    if inserted:
        LOGGER.debug("incidence.fill | inserted=%d", inserted)
    return filled[RECORD_COLUMNS]


def daily_numbers(frame: pd.DataFrame, population: int | None) -> pd.DataFrame:
    """Derive daily new cases/deaths and the 14-day incidence per 100 000.

    The first row keeps its cumulative values as "new" numbers. Incidence is
    ``None`` for the first 13 days and whenever the population is unknown.
    """

    if frame.empty:
        return pd.DataFrame(columns=DAILY_COLUMNS)

    filled = fill_missing_dates(frame)
    out = pd.DataFrame(
        {
            "date": filled["date"].tolist(),
            "confirmed": filled["confirmed"].astype("int64").to_numpy(),
            "deaths": filled["deaths"].astype("int64").to_numpy(),
        }
    )
    out["new_cases"] = out["confirmed"].diff().fillna(out["confirmed"]).astype("int64")
    out["new_deaths"] = out["deaths"].diff().fillna(out["deaths"]).astype("int64")

    if population is None or population <= 0:
        out["incidence_14d"] = None
        return out[DAILY_COLUMNS]

    window_sum = out["new_cases"].rolling(INCIDENCE_WINDOW, min_periods=INCIDENCE_WINDOW).sum()
    incidence = window_sum * 100_000.0 / float(population)
    out["incidence_14d"] = pd.Series(
        [None if pd.isna(value) else float(value) for value in incidence],
        index=out.index,
        dtype=object,
    )
    return out[DAILY_COLUMNS]


__all__ = ["DAILY_COLUMNS", "MAX_FILLED_GAP", "daily_numbers", "fill_missing_dates"]
