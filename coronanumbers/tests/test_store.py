from __future__ import annotations

import datetime as dt

import duckdb
import pandas as pd
import pytest

from coronanumbers.db.store import MergeStore, StoreConstraintError, StoreIOError
from coronanumbers.records import RECORD_COLUMNS, DailyRecord, records_frame
from coronanumbers.tests._fakes import TODAY, make_country


def _frame(country_id: str, start: dt.date, confirmed, deaths, recovered=None) -> pd.DataFrame:
    recovered = recovered or [None] * len(confirmed)
    return records_frame(
        DailyRecord(country_id, start + dt.timedelta(days=i), c, d, r)
        for i, (c, d, r) in enumerate(zip(confirmed, deaths, recovered))
    )


START = dt.date(2021, 3, 1)


def test_schema_and_empty_state(store):
    assert store.last_known_date("BJ") is None
    assert store.records("BJ").empty
    assert list(store.records("BJ").columns) == RECORD_COLUMNS


def test_upsert_inserts_then_is_idempotent(store):
    batch = _frame("BJ", START, [1, 2, 3], [0, 0, 1], [0, 1, 1])
    first = store.upsert("BJ", batch)
    assert (first.inserted, first.updated, first.unchanged) == (3, 0, 0)
    assert first.records_written == 3

    second = store.upsert("BJ", batch)
    assert (second.inserted, second.updated, second.unchanged) == (0, 0, 3)
    assert second.records_written == 0
    assert store.row_count("BJ") == 3
    assert store.last_known_date("BJ") == START + dt.timedelta(days=2)


def test_changed_values_overwrite_and_count_as_updates(store):
    store.upsert("BJ", _frame("BJ", START, [1, 2], [0, 0]))
    result = store.upsert("BJ", _frame("BJ", START + dt.timedelta(days=1), [4, 5], [0, 1]))

    assert (result.inserted, result.updated, result.unchanged) == (1, 1, 0)
    records = store.records("BJ")
    assert list(records["confirmed"]) == [1, 4, 5]
    assert store.row_count("BJ") == 3


def test_row_count_equals_distinct_dates(store):
    batch = pd.concat(
        [_frame("BJ", START, [1, 2], [0, 0]), _frame("BJ", START, [1, 3], [0, 0])],
        ignore_index=True,
    )
    result = store.upsert("BJ", batch)
    assert result.rows_in == 4
    assert result.inserted == 2
    # the last occurrence of a duplicated date wins
    assert list(store.records("BJ")["confirmed"]) == [1, 3]


def test_revision_decrease_is_stored_and_flagged(store):
    store.upsert("BJ", _frame("BJ", START, [10, 12], [1, 1]))
    result = store.upsert("BJ", _frame("BJ", START + dt.timedelta(days=1), [9], [1]))

    assert result.updated == 1
    kinds = {(a.kind, a.column) for a in result.anomalies}
    assert ("revision_decrease", "confirmed") in kinds
    assert ("series_decrease", "confirmed") in kinds
    assert list(store.records("BJ")["confirmed"]) == [10, 9]


def test_series_decrease_within_batch_is_flagged(store):
    result = store.upsert("BJ", _frame("BJ", START, [5, 4, 6], [1, 1, 0]))
    flagged = sorted((a.record.date, a.column, a.previous) for a in result.anomalies)
    assert flagged == [
        (START + dt.timedelta(days=1), "confirmed", 5),
        (START + dt.timedelta(days=2), "deaths", 1),
    ]
    assert store.row_count("BJ") == 3


def test_future_records_are_refused(store):
    batch = _frame("BJ", TODAY - dt.timedelta(days=1), [1, 2, 3], [0, 0, 0])
    result = store.upsert("BJ", batch)
    assert result.skipped_future == 1
    assert result.inserted == 2
    assert store.last_known_date("BJ") == TODAY


def test_foreign_rows_violate_constraints(store):
    with pytest.raises(StoreConstraintError):
        store.upsert("BJ", _frame("TD", START, [1], [0]))


def test_failed_merge_rolls_back(store, monkeypatch):
    store.upsert("BJ", _frame("BJ", START, [1, 2], [0, 0]))

    def _boom(*args, **kwargs):
        raise duckdb.IOException("disk full")

    monkeypatch.setattr(store, "_insert_rows", _boom)
    with pytest.raises(StoreIOError):
        store.upsert("BJ", _frame("BJ", START + dt.timedelta(days=1), [7, 8], [0, 0]))

    # the update of the overlapping day must not survive the failed insert
    assert list(store.records("BJ")["confirmed"]) == [1, 2]


def test_ensure_country_and_listings(store):
    store.ensure_country(make_country())
    store.ensure_country(make_country("TD", "Chad", country_code="TCD"))
    store.ensure_country(make_country("BJ", "Benin (updated)", continent="Africa"))

    countries = store.countries()
    assert list(countries["country_id"]) == ["BJ", "TD"]
    assert countries.loc[countries["country_id"] == "BJ", "name"].item() == "Benin (updated)"
    assert store.continents() == ["Africa"]


def test_iter_records_yields_daily_records(store):
    store.upsert("BJ", _frame("BJ", START, [1, 2], [0, 0], [None, 1]))
    records = list(store.iter_records("BJ"))
    assert records == [
        DailyRecord("BJ", START, 1, 0, None),
        DailyRecord("BJ", START + dt.timedelta(days=1), 2, 0, 1),
    ]


def test_store_reopens_existing_file(tmp_path):
    path = tmp_path / "nested" / "corona.duckdb"
    with MergeStore(path, today_fn=lambda: TODAY) as first:
        first.upsert("BJ", _frame("BJ", START, [1], [0]))
    with MergeStore(f"duckdb://{path.as_posix()}", today_fn=lambda: TODAY) as second:
        assert second.row_count() == 1


def test_repeated_batch_does_not_report_decreases_again(store):
    batch = _frame("BJ", START, [10, 8], [1, 1])
    first = store.upsert("BJ", batch)
    assert [(a.kind, a.previous) for a in first.anomalies] == [("series_decrease", 10)]

    second = store.upsert("BJ", batch)
    assert second.records_written == 0
    assert second.anomalies == []


def test_unchanged_row_still_anchors_the_next_written_row(store):
    store.upsert("BJ", _frame("BJ", START, [10], [1]))
    result = store.upsert("BJ", _frame("BJ", START, [10, 7], [1, 1]))
    assert result.unchanged == 1
    assert result.inserted == 1
    [anomaly] = result.anomalies
    assert anomaly.record.date == START + dt.timedelta(days=1)
    assert anomaly.previous == 10
