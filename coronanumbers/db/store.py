# coronanumbers
# Copyright (c) 2025 Kevin Wyjad
# Licensed under the Pythia Non-Commercial Public License v1.0.
# See the LICENSE file in the project root for details.

"""Durable DuckDB store for daily records with an idempotent merge."""

from __future__ import annotations

import datetime as dt
import logging
import os
import threading
import uuid
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional, Sequence, Set, Tuple

import duckdb
import pandas as pd

from ..catalog import Country
from ..diag import get_logger as get_diag_logger, log_json
from ..records import RECORD_COLUMNS, DailyRecord, empty_records, iter_daily_records, validate_records
from .conn_shared import connect

LOGGER = logging.getLogger(__name__)
DIAG_LOGGER = get_diag_logger(f"{__name__}.diag")

COUNTERS = ("confirmed", "deaths")

SCHEMA_SQL = (
    """
    CREATE TABLE IF NOT EXISTS countries (
        country_id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        population BIGINT,
        country_code TEXT,
        continent TEXT,
        upstream_key TEXT
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS daily_records (
        country_id TEXT NOT NULL,
        date DATE NOT NULL,
        confirmed BIGINT NOT NULL,
        deaths BIGINT NOT NULL,
        recovered BIGINT,
        updated_at TIMESTAMP NOT NULL,
        PRIMARY KEY (country_id, date)
    )
    """,
)


class StoreError(Exception):
    """Base class for store failures."""


class StoreIOError(StoreError):
    """The storage engine failed; the run cannot continue."""


class StoreConstraintError(StoreError):
    """A batch violates a store constraint; only its country fails."""


@dataclass(frozen=True)
class MergeAnomaly:
    """A counter that went down, stored as reported."""

    record: DailyRecord
    kind: str
    column: str
    previous: int

    def to_dict(self) -> dict[str, object]:
        return {
            **self.record.to_dict(),
            "kind": self.kind,
            "column": self.column,
            "previous": self.previous,
        }


@dataclass
class MergeResult:
    country_id: str
    rows_in: int = 0
    inserted: int = 0
    updated: int = 0
    unchanged: int = 0
    skipped_future: int = 0
    anomalies: List[MergeAnomaly] = field(default_factory=list)

    @property
    def records_written(self) -> int:
        return self.inserted + self.updated


def _same(left: object, right: object) -> bool:
    left_na = left is None or pd.isna(left)
    right_na = right is None or pd.isna(right)
    if left_na or right_na:
        return left_na and right_na
    return int(left) == int(right)


def _to_db_frame(frame: pd.DataFrame) -> pd.DataFrame:
    out = frame[RECORD_COLUMNS].copy()
    out["date"] = pd.to_datetime(out["date"])
    out["recovered"] = out["recovered"].astype("Int64")
    return out.reset_index(drop=True)


def _from_db_frame(frame: pd.DataFrame) -> pd.DataFrame:
    if frame.empty:
        return empty_records()
    out = frame.copy()
    out["date"] = [value.date() if hasattr(value, "date") else value for value in out["date"]]
    out["confirmed"] = out["confirmed"].astype("int64")
    out["deaths"] = out["deaths"].astype("int64")
    out["recovered"] = out["recovered"].astype("Int64")
    return out[RECORD_COLUMNS].reset_index(drop=True)


class MergeStore:
    """Single-writer DuckDB store.

    Every use of the underlying connection goes through one lock, so worker
    threads may share an instance.
    """

    def __init__(
        self,
        db_url: str | os.PathLike[str] | None = None,
        *,
        today_fn: Callable[[], dt.date] = dt.date.today,
    ) -> None:
        self._lock = threading.RLock()
        self._today = today_fn
        try:
            self._conn, self.path = connect(db_url)
        except (duckdb.Error, OSError) as exc:
            raise StoreIOError(f"cannot open store {db_url!r}: {exc}") from exc
        self.init_schema()

    # -- lifecycle -----------------------------------------------------

    def init_schema(self) -> None:
        with self._lock:
            try:
                for statement in SCHEMA_SQL:
                    self._conn.execute(statement)
            except duckdb.Error as exc:
                raise StoreIOError(f"schema initialisation failed: {exc}") from exc
        LOGGER.debug("duckdb.schema.ready | path=%s", self.path)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "MergeStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # -- metadata ------------------------------------------------------

    def ensure_country(self, country: Country) -> None:
        """Insert ``country`` into the countries table or refresh its metadata."""

        with self._lock:
            try:
                self._conn.execute(
                    """
                    INSERT INTO countries
                        (country_id, name, population, country_code, continent, upstream_key)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT (country_id) DO UPDATE SET
                        name = excluded.name,
                        population = excluded.population,
                        country_code = excluded.country_code,
                        continent = excluded.continent,
                        upstream_key = excluded.upstream_key
                    """,
                    [
                        country.id,
                        country.display_name,
                        country.population,
                        country.country_code,
                        country.continent,
                        country.upstream_key,
                    ],
                )
            except duckdb.ConstraintException as exc:
                raise StoreConstraintError(f"{country.id}: {exc}") from exc
            except duckdb.Error as exc:
                raise StoreIOError(f"{country.id}: cannot register country: {exc}") from exc

    def countries(self) -> pd.DataFrame:
        with self._lock:
            return self._query_df(
                "SELECT country_id, name, population, country_code, continent, upstream_key "
                "FROM countries ORDER BY name"
            )

    def continents(self) -> List[str]:
        with self._lock:
            rows = self._query(
                "SELECT DISTINCT continent FROM countries "
                "WHERE continent IS NOT NULL AND continent <> '' ORDER BY continent"
            )
        return [row[0] for row in rows]

    # -- reads ---------------------------------------------------------

    def last_known_date(self, country_id: str) -> Optional[dt.date]:
        with self._lock:
            rows = self._query(
                "SELECT MAX(date) FROM daily_records WHERE country_id = ?", [country_id]
            )
        value = rows[0][0] if rows else None
        if value is None:
            return None
        return value.date() if isinstance(value, dt.datetime) else value

    def records(self, country_id: str) -> pd.DataFrame:
        """Return all stored records of ``country_id`` in date order."""

        with self._lock:
            frame = self._query_df(
                "SELECT country_id, date, confirmed, deaths, recovered FROM daily_records "
                "WHERE country_id = ? ORDER BY date",
                [country_id],
            )
        return _from_db_frame(frame)

    def iter_records(self, country_id: str) -> Iterator[DailyRecord]:
        yield from iter_daily_records(self.records(country_id))

    def row_count(self, country_id: str | None = None) -> int:
        with self._lock:
            if country_id is None:
                rows = self._query("SELECT COUNT(*) FROM daily_records")
            else:
                rows = self._query(
                    "SELECT COUNT(*) FROM daily_records WHERE country_id = ?", [country_id]
                )
        return int(rows[0][0])

    # -- merge ---------------------------------------------------------

    def upsert(self, country_id: str, records: pd.DataFrame) -> MergeResult:
        """Merge ``records`` for ``country_id`` in a single transaction.

        New dates are inserted, changed dates overwritten and identical dates
        left alone. Decreasing counters are stored and reported as anomalies.
        Records dated after today are refused.
        """

        result = MergeResult(country_id=country_id, rows_in=int(len(records)))
        if records.empty:
            return result
        try:
            frame = validate_records(records, source=country_id)
        except ValueError as exc:
            raise StoreConstraintError(str(exc)) from exc
        foreign = sorted(set(frame["country_id"]) - {country_id})
        if foreign:
            raise StoreConstraintError(
                f"[{country_id}] batch contains records for other countries: {foreign}"
            )

        today = self._today()
        future_mask = frame["date"] > today
        result.skipped_future = int(future_mask.sum())
        if result.skipped_future:
            LOGGER.warning(
                "store.upsert.future_refused | country_id=%s rows=%d today=%s",
                country_id,
                result.skipped_future,
                today,
            )
        frame = frame.loc[~future_mask]
        frame = (
            frame.drop_duplicates(subset=["date"], keep="last")
            .sort_values("date")
            .reset_index(drop=True)
        )
        if frame.empty:
            return result

        with self._lock:
            try:
                self._conn.execute("BEGIN TRANSACTION")
                try:
                    self._merge(country_id, frame, result)
                    self._conn.execute("COMMIT")
                except Exception:
                    self._conn.execute("ROLLBACK")
                    raise
            except duckdb.ConstraintException as exc:
                raise StoreConstraintError(f"[{country_id}] {exc}") from exc
            except (duckdb.Error, OSError) as exc:
                LOGGER.error("store.upsert.failed | country_id=%s error=%s", country_id, exc)
                raise StoreIOError(f"[{country_id}] merge failed: {exc}") from exc

        LOGGER.debug(
            "duckdb.upsert.counts | country_id=%s rows_in=%d inserted=%d updated=%d "
            "unchanged=%d skipped_future=%d anomalies=%d",
            country_id,
            result.rows_in,
            result.inserted,
            result.updated,
            result.unchanged,
            result.skipped_future,
            len(result.anomalies),
        )
        log_json(
            DIAG_LOGGER,
            "store.upsert",
            country_id=country_id,
            inserted=result.inserted,
            updated=result.updated,
            unchanged=result.unchanged,
            anomalies=[anomaly.to_dict() for anomaly in result.anomalies],
        )
        return result

    def _merge(self, country_id: str, frame: pd.DataFrame, result: MergeResult) -> None:
        first, last = frame["date"].iloc[0], frame["date"].iloc[-1]
        existing = _from_db_frame(
            self._query_df(
                "SELECT country_id, date, confirmed, deaths, recovered FROM daily_records "
                "WHERE country_id = ? AND date BETWEEN ? AND ? ORDER BY date",
                [country_id, first, last],
            )
        )
        prior = _from_db_frame(
            self._query_df(
                "SELECT country_id, date, confirmed, deaths, recovered FROM daily_records "
                "WHERE country_id = ? AND date < ? ORDER BY date DESC LIMIT 1",
                [country_id, first],
            )
        )
        stored = {row["date"]: row for row in existing.to_dict(orient="records")}

        new_rows: List[dict] = []
        changed_rows: List[dict] = []
        unchanged_dates: Set[dt.date] = set()
        for row in frame.to_dict(orient="records"):
            old = stored.get(row["date"])
            if old is None:
                new_rows.append(row)
                continue
            if all(_same(row[column], old[column]) for column in ("confirmed", "deaths", "recovered")):
                result.unchanged += 1
                unchanged_dates.add(row["date"])
                continue
            changed_rows.append(row)
            for column in COUNTERS:
                if int(row[column]) < int(old[column]):
                    result.anomalies.append(
                        MergeAnomaly(
                            record=DailyRecord.from_mapping(row),
                            kind="revision_decrease",
                            column=column,
                            previous=int(old[column]),
                        )
                    )

        result.anomalies.extend(self._series_decreases(frame, existing, prior, unchanged_dates))

        now = dt.datetime.now()
        if changed_rows:
            self._update_rows(country_id, pd.DataFrame(changed_rows, columns=RECORD_COLUMNS), now)
        if new_rows:
            self._insert_rows(pd.DataFrame(new_rows, columns=RECORD_COLUMNS), now)
        result.inserted = len(new_rows)
        result.updated = len(changed_rows)

    @staticmethod
    def _series_decreases(
        frame: pd.DataFrame,
        existing: pd.DataFrame,
        prior: pd.DataFrame,
        unchanged_dates: Set[dt.date],
    ) -> List[MergeAnomaly]:
        """Flag written rows that are lower than the nearest earlier date.

        Unchanged rows still serve as the earlier point but are not flagged.
        """
        incoming_dates = set(frame["date"])
        kept = existing.loc[~existing["date"].isin(incoming_dates)] if not existing.empty else existing
        timeline: List[Tuple[dt.date, bool, dict]] = []
        for source, is_incoming in ((prior, False), (kept, False), (frame, True)):
            for row in source.to_dict(orient="records"):
                timeline.append((row["date"], is_incoming, row))
        timeline.sort(key=lambda item: item[0])

        anomalies: List[MergeAnomaly] = []
        previous: Optional[dict] = None
        for _, is_incoming, row in timeline:
            if previous is not None and is_incoming and row["date"] not in unchanged_dates:
                for column in COUNTERS:
                    if int(row[column]) < int(previous[column]):
                        anomalies.append(
                            MergeAnomaly(
                                record=DailyRecord.from_mapping(row),
                                kind="series_decrease",
                                column=column,
                                previous=int(previous[column]),
                            )
                        )
            previous = row
        return anomalies

    def _insert_rows(self, rows: pd.DataFrame, now: dt.datetime) -> None:
        temp_name = f"tmp_{uuid.uuid4().hex}"
        self._conn.register(temp_name, _to_db_frame(rows))
        try:
            self._conn.execute(
                f"""
                INSERT INTO daily_records
                    (country_id, date, confirmed, deaths, recovered, updated_at)
                SELECT country_id, CAST(date AS DATE), confirmed, deaths,
                       CAST(recovered AS BIGINT), ?
                FROM {temp_name}
                """,
                [now],
            )
        finally:
            self._conn.unregister(temp_name)

    def _update_rows(self, country_id: str, rows: pd.DataFrame, now: dt.datetime) -> None:
        temp_name = f"tmp_{uuid.uuid4().hex}"
        self._conn.register(temp_name, _to_db_frame(rows))
        try:
            self._conn.execute(
                f"""
                UPDATE daily_records AS t
                SET confirmed = s.confirmed,
                    deaths = s.deaths,
                    recovered = CAST(s.recovered AS BIGINT),
                    updated_at = ?
                FROM {temp_name} AS s
                WHERE t.country_id = ? AND t.date = CAST(s.date AS DATE)
                """,
                [now, country_id],
            )
        finally:
            self._conn.unregister(temp_name)

    # -- helpers -------------------------------------------------------

    def _query(self, sql: str, params: Sequence[object] | None = None) -> list:
        try:
            return self._conn.execute(sql, list(params or [])).fetchall()
        except duckdb.Error as exc:
            raise StoreIOError(f"query failed: {exc}") from exc

    def _query_df(self, sql: str, params: Sequence[object] | None = None) -> pd.DataFrame:
        try:
            return self._conn.execute(sql, list(params or [])).df()
        except duckdb.Error as exc:
            raise StoreIOError(f"query failed: {exc}") from exc


__all__ = [
    "MergeAnomaly",
    "MergeResult",
    "MergeStore",
    "StoreConstraintError",
    "StoreError",
    "StoreIOError",
]
