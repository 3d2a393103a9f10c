# coronanumbers
# Copyright (c) 2025 Kevin Wyjad
# Licensed under the Pythia Non-Commercial Public License v1.0.
# See the LICENSE file in the project root for details.

"""Run one collection over the country catalog.

A fixed pool of worker threads drains a queue of catalog entries. Each
country is fetched and merged independently; fetch errors and constraint
violations only fail that country, while a store IO error stops the run.
"""

from __future__ import annotations

import datetime as dt
import logging
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Iterable, Optional, Protocol, Sequence

from ..api.client import ApiClient, FetchResult
from ..api.http import FetchError
from ..catalog import Country, entries
from ..db.precheck import PrecheckStatus, VersionTooOldError, require
from ..db.store import MergeStore, StoreConstraintError, StoreIOError
from .config import CollectConfig, load
from .ranges import RangeMode, RequestedMode, select_range
from .report import Anomaly, CollectionOutcome, OutcomeStatus, RunReport

LOG = logging.getLogger(__name__)


class Fetcher(Protocol):
    def fetch_result(self, country: Country, mode: RangeMode) -> FetchResult:
        ...


class Collector:
    """Collect every catalog entry into ``store`` using ``client``."""

    def __init__(
        self,
        config: CollectConfig,
        *,
        store: MergeStore,
        client: Fetcher,
        countries: Optional[Sequence[Country]] = None,
        cancel_event: Optional[threading.Event] = None,
        deadline_s: Optional[float] = None,
        today_fn: Callable[[], dt.date] = dt.date.today,
        precheck_fn: Callable[[], PrecheckStatus] = require,
    ) -> None:
        self.config = config
        self.store = store
        self.client = client
        self.countries = tuple(countries) if countries is not None else _select(entries(), config.only)
        self.cancel_event = cancel_event
        self._stop = threading.Event()
        self.deadline_s = deadline_s
        self._today = today_fn
        self._precheck = precheck_fn
        self._report_lock = threading.Lock()
        self._deadline_at: Optional[float] = None

    def run(self, requested_mode: RequestedMode = RequestedMode.RECENT) -> RunReport:
        mode = RequestedMode(requested_mode)
        report = RunReport(requested_mode=mode)
        try:
            status = self._precheck()
        except VersionTooOldError as exc:
            report.precheck = "fatal"
            report.mark_fatal(f"precheck failed: {exc}", exc)
            report.finished_at = dt.datetime.now()
            return report
        report.precheck = status.level.value
        self._stop = threading.Event()
        if mode is RequestedMode.ALL and self.config.bulk_prefetch:
            self._prefetch()

        work: "queue.Queue[Country]" = queue.Queue()
        for country in self.countries:
            work.put(country)
        workers = max(1, min(int(self.config.workers), len(self.countries) or 1))
        if self.deadline_s is not None:
            self._deadline_at = time.monotonic() + float(self.deadline_s)

        LOG.info(
            "collect.start | mode=%s countries=%d workers=%d",
            mode.value,
            len(self.countries),
            workers,
        )
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="collect") as pool:
            futures = [pool.submit(self._worker, work, mode, report) for _ in range(workers)]
            for future in futures:
                future.result()
        clear = getattr(self.client, "clear_prefetch", None)
        if clear is not None:
            clear()

        report.finished_at = dt.datetime.now()
        LOG.info(
            "collect.done | mode=%s succeeded=%d failed=%d records=%d anomalies=%d fatal=%s cancelled=%s",
            mode.value,
            len(report.succeeded),
            len(report.partial_failures),
            report.total_records_written,
            len(report.anomalies),
            report.fatal,
            report.cancelled,
        )
        return report

    def _prefetch(self) -> None:
        prefetch = getattr(self.client, "prefetch_all", None)
        if prefetch is None:
            return
        try:
            prefetch()
        except FetchError as exc:
            LOG.warning("collect.prefetch.failed | kind=%s error=%s | fetching per country", exc.kind, exc)

    def _should_stop(self) -> bool:
        if self.cancel_event is not None and self.cancel_event.is_set():
            return True
        if self._stop.is_set():
            return True
        if self._deadline_at is not None and time.monotonic() >= self._deadline_at:
            LOG.warning("collect.deadline_reached | deadline_s=%s", self.deadline_s)
            self._stop.set()
            return True
        return False

    def _worker(self, work: "queue.Queue[Country]", mode: RequestedMode, report: RunReport) -> None:
        while True:
            if self._should_stop():
                with self._report_lock:
                    if not report.fatal and not work.empty():
                        report.cancelled = True
                return
            try:
                country = work.get_nowait()
            except queue.Empty:
                return
            outcome = self._collect_one(country, mode, report)
            with self._report_lock:
                report.outcomes.append(outcome)

    def _collect_one(self, country: Country, mode: RequestedMode, report: RunReport) -> CollectionOutcome:
        started = time.monotonic()
        attempts = 0
        range_desc = ""
        try:
            self.store.ensure_country(country)
            last_known = self.store.last_known_date(country.id)
            range_mode = select_range(
                country,
                mode,
                last_known,
                today=self._today(),
                max_recent_days=self.config.max_recent_days,
            )
            range_desc = range_mode.describe()
            fetched = self.client.fetch_result(country, range_mode)
            attempts = fetched.attempts
            merged = self.store.upsert(country.id, fetched.records)
        except FetchError as exc:
            attempts = exc.attempts or attempts
            LOG.warning(
                "collect.country.failed | geo_id=%s kind=%s attempts=%d error=%s",
                country.id,
                exc.kind,
                attempts,
                exc,
            )
            return self._outcome(
                country, OutcomeStatus.PARTIAL_FAILURE, started, attempts, range_desc, reason=f"{exc.kind}: {exc}"
            )
        except StoreConstraintError as exc:
            LOG.warning("collect.country.rejected | geo_id=%s error=%s", country.id, exc)
            return self._outcome(
                country, OutcomeStatus.PARTIAL_FAILURE, started, attempts, range_desc, reason=f"constraint: {exc}"
            )
        except StoreIOError as exc:
            LOG.error("collect.country.fatal | geo_id=%s error=%s", country.id, exc)
            with self._report_lock:
                report.mark_fatal(f"store failure while writing {country.id}: {exc}", exc)
            self._stop.set()
            return self._outcome(
                country, OutcomeStatus.FATAL, started, attempts, range_desc, reason=str(exc)
            )
        except Exception as exc:
            LOG.exception("collect.country.unexpected | geo_id=%s", country.id)
            return self._outcome(
                country,
                OutcomeStatus.PARTIAL_FAILURE,
                started,
                attempts,
                range_desc,
                reason=f"unexpected: {exc.__class__.__name__}: {exc}",
            )

        if merged.anomalies:
            with self._report_lock:
                report.anomalies.extend(
                    Anomaly(
                        country=country,
                        record=item.record,
                        kind=item.kind,
                        column=item.column,
                        previous=item.previous,
                    )
                    for item in merged.anomalies
                )
            for item in merged.anomalies:
                LOG.warning(
                    "collect.anomaly | geo_id=%s date=%s kind=%s column=%s previous=%d value=%s",
                    country.id,
                    item.record.date,
                    item.kind,
                    item.column,
                    item.previous,
                    getattr(item.record, item.column),
                )
        LOG.info(
            "collect.country.ok | geo_id=%s mode=%s rows=%d inserted=%d updated=%d attempts=%d",
            country.id,
            range_desc,
            merged.rows_in,
            merged.inserted,
            merged.updated,
            attempts,
        )
        return self._outcome(
            country,
            OutcomeStatus.SUCCESS,
            started,
            attempts,
            range_desc,
            records_written=merged.records_written,
        )

    @staticmethod
    def _outcome(
        country: Country,
        status: OutcomeStatus,
        started: float,
        attempts: int,
        range_desc: str,
        *,
        reason: str = "",
        records_written: int = 0,
    ) -> CollectionOutcome:
        return CollectionOutcome(
            country=country,
            status=status,
            records_written=records_written,
            reason=reason,
            duration_s=time.monotonic() - started,
            attempts=attempts,
            range_mode=range_desc,
        )


def _select(countries: Iterable[Country], only: Sequence[str]) -> tuple[Country, ...]:
    wanted = {geo_id.strip().upper() for geo_id in only or [] if geo_id.strip()}
    if not wanted:
        return tuple(countries)
    selected = tuple(country for country in countries if country.id in wanted)
    unknown = wanted - {country.id for country in selected}
    if unknown:
        LOG.warning("collect.only.unknown | geo_ids=%s", ",".join(sorted(unknown)))
    return selected


def collect(
    requested_mode: RequestedMode = RequestedMode.RECENT,
    *,
    config: Optional[CollectConfig] = None,
    store: Optional[MergeStore] = None,
    client: Optional[Fetcher] = None,
    countries: Optional[Sequence[Country]] = None,
    cancel_event: Optional[threading.Event] = None,
    deadline_s: Optional[float] = None,
    today_fn: Callable[[], dt.date] = dt.date.today,
    precheck_fn: Callable[[], PrecheckStatus] = require,
) -> RunReport:
    """Collect the catalog and return the run report.

    Never raises for store or fetch failures; check ``report.fatal`` instead.
    """

    cfg = config or load()
    owns_store = store is None
    if store is None:
        try:
            store = MergeStore(cfg.store.db_url, today_fn=today_fn)
        except StoreIOError as exc:
            report = RunReport(requested_mode=RequestedMode(requested_mode))
            report.mark_fatal(str(exc), exc)
            report.finished_at = dt.datetime.now()
            return report
    try:
        collector = Collector(
            cfg,
            store=store,
            client=client or ApiClient(cfg, today_fn=today_fn),
            countries=countries,
            cancel_event=cancel_event,
            deadline_s=deadline_s,
            today_fn=today_fn,
            precheck_fn=precheck_fn,
        )
        return collector.run(requested_mode)
    finally:
        if owns_store:
            store.close()


__all__ = ["Collector", "Fetcher", "collect"]
