# coronanumbers
# Copyright (c) 2025 Kevin Wyjad
# Licensed under the Pythia Non-Commercial Public License v1.0.
# See the LICENSE file in the project root for details.

"""Daily record schema shared by the API client and the store."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Mapping, Optional

import pandas as pd

# Every batch handed from the client to the store has exactly these columns.
# ``date`` holds ``datetime.date`` objects; counters are cumulative.
RECORD_COLUMNS: list[str] = [
    "country_id",
    "date",
    "confirmed",
    "deaths",
    "recovered",
]


@dataclass(frozen=True)
class DailyRecord:
    """Cumulative counts reported for one country on one day."""

    country_id: str
    date: dt.date
    confirmed: int
    deaths: int
    recovered: Optional[int] = None

    @classmethod
    def from_mapping(cls, row: Mapping[str, Any]) -> "DailyRecord":
        recovered = row.get("recovered")
        if recovered is None or pd.isna(recovered):
            recovered_value = None
        else:
            recovered_value = int(recovered)
        return cls(
            country_id=str(row["country_id"]),
            date=_as_date(row["date"]),
            confirmed=int(row["confirmed"]),
            deaths=int(row["deaths"]),
            recovered=recovered_value,
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "country_id": self.country_id,
            "date": self.date.isoformat(),
            "confirmed": self.confirmed,
            "deaths": self.deaths,
            "recovered": self.recovered,
        }


def _as_date(value: object) -> dt.date:
    if isinstance(value, dt.datetime):
        return value.date()
    if isinstance(value, dt.date):
        return value
    if isinstance(value, pd.Timestamp):
        return value.date()
    return dt.date.fromisoformat(str(value)[:10])


def empty_records() -> pd.DataFrame:
    """Return an empty DataFrame with the record column set."""
    return pd.DataFrame(columns=RECORD_COLUMNS)


def records_frame(records: Iterable[DailyRecord]) -> pd.DataFrame:
    rows = [
        {
            "country_id": record.country_id,
            "date": record.date,
            "confirmed": record.confirmed,
            "deaths": record.deaths,
            "recovered": record.recovered,
        }
        for record in records
    ]
    if not rows:
        return empty_records()
    return pd.DataFrame(rows, columns=RECORD_COLUMNS)


def iter_daily_records(frame: pd.DataFrame) -> Iterator[DailyRecord]:
    for row in frame.to_dict(orient="records"):
        yield DailyRecord.from_mapping(row)


def validate_records(df: pd.DataFrame, *, source: str = "unknown") -> pd.DataFrame:
    """Assert that *df* conforms to the record schema.

    Raises ``ValueError`` on any violation and returns a copy with ``date``
    coerced to ``datetime.date`` values.
    """
    missing = [c for c in RECORD_COLUMNS if c not in df.columns]
    if missing:
        raise ValueError(f"[{source}] record DataFrame missing columns: {missing}")

    extra = [c for c in df.columns if c not in RECORD_COLUMNS]
    if extra:
        raise ValueError(f"[{source}] record DataFrame has unexpected columns: {extra}")

    frame = df.copy()
    if frame.empty:
        return frame

    if frame["date"].isna().any():
        raise ValueError(f"[{source}] {int(frame['date'].isna().sum())} rows have no date")
    frame["date"] = [_as_date(value) for value in frame["date"]]

    for column in ("confirmed", "deaths"):
        values = pd.to_numeric(frame[column], errors="coerce")
        if values.isna().any():
            raise ValueError(f"[{source}] {int(values.isna().sum())} rows have non-numeric '{column}'")
        if (values < 0).any():
            raise ValueError(f"[{source}] {int((values < 0).sum())} rows have negative '{column}'")
        frame[column] = values.astype("int64")

    recovered = pd.to_numeric(frame["recovered"], errors="coerce")
    if (recovered.dropna() < 0).any():
        raise ValueError(f"[{source}] rows have negative 'recovered'")
    frame["recovered"] = recovered.astype("Int64")
    return frame
