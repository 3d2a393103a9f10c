# coronanumbers
# Copyright (c) 2025 Kevin Wyjad
# Licensed under the Pythia Non-Commercial Public License v1.0.
# See the LICENSE file in the project root for details.

"""Per-country fetch against the historical statistics endpoint."""
from __future__ import annotations

import datetime as dt
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Optional, Tuple

import pandas as pd
import requests
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
    wait_random,
)

from ..catalog import Country
from ..collect.config import CollectConfig
from ..collect.ranges import RangeMode
from ..diag import get_logger as get_diag_logger, log_json
from ..records import validate_records
from .bulk import BulkTimelines
from .http import (
    FetchError,
    NetworkError,
    ParseError,
    RateLimitedError,
    http_get_json,
    shared_session,
)
from .rate_limit import TokenBucket
from .timeline import normalize_timeline

LOG = logging.getLogger(__name__)
DIAG_LOGGER = get_diag_logger(f"{__name__}.diag")

RETRYABLE_EXCEPTIONS = (NetworkError, RateLimitedError)


@dataclass
class FetchResult:
    """Normalized records of one fetch plus the number of attempts it took."""

    records: pd.DataFrame
    attempts: int
    url: str


class _RetryAfterWait:
    """Exponential jitter, raised to the server's Retry-After hint when present."""

    def __init__(self, initial: float, maximum: float) -> None:
        self._base = wait_exponential(multiplier=initial, max=maximum) + wait_random(0, initial)
        self._maximum = maximum

    def __call__(self, retry_state: RetryCallState) -> float:
        delay = min(float(self._base(retry_state)), self._maximum)
        outcome = retry_state.outcome
        if outcome is not None and outcome.failed:
            exc = outcome.exception()
            if isinstance(exc, RateLimitedError) and exc.retry_after:
                delay = max(delay, float(exc.retry_after))
        return delay


class ApiClient:
    """Fetch one country's history in one range mode.

    The session and token bucket are shared by every worker of a run.
    """

    def __init__(
        self,
        config: CollectConfig,
        *,
        session: requests.Session | None = None,
        rate_limiter: TokenBucket | None = None,
        sleep_fn: Callable[[float], None] = time.sleep,
        today_fn: Callable[[], dt.date] = dt.date.today,
    ) -> None:
        self.config = config
        self.session = session or shared_session()
        self.rate_limiter = rate_limiter or TokenBucket(
            config.api.rate_per_sec, burst=config.api.burst
        )
        self._sleep = sleep_fn
        self._today = today_fn
        self._bulk: Optional[BulkTimelines] = None

    def build_url(self, country: Country, mode: RangeMode, *, today: dt.date) -> str:
        base = self.config.api.base_url.rstrip("/")
        return f"{base}/historical/{country.upstream_key}?lastdays={mode.lastdays(today)}"

    def _get(self, url: str) -> Any:
        api = self.config.api
        return http_get_json(
            url,
            session=self.session,
            headers={"User-Agent": api.user_agent},
            timeout=(api.connect_timeout_s, api.read_timeout_s),
            rate_limiter=self.rate_limiter,
        )

    def _get_with_retry(self, url: str, label: str) -> Tuple[Any, int]:
        """GET ``url`` with retries; returns the payload and the attempt count."""

        retry_cfg = self.config.retry
        attempts = 0

        def _log_retry(retry_state: RetryCallState) -> None:
            exc = retry_state.outcome.exception() if retry_state.outcome else None
            LOG.warning(
                "api.fetch.retry | geo_id=%s attempt=%d wait_s=%.2f error=%s",
                label,
                retry_state.attempt_number,
                retry_state.next_action.sleep if retry_state.next_action else 0.0,
                exc,
            )

        @retry(
            stop=stop_after_attempt(max(1, int(retry_cfg.max_attempts))),
            wait=_RetryAfterWait(retry_cfg.backoff_initial_s, retry_cfg.backoff_max_s),
            retry=retry_if_exception_type(RETRYABLE_EXCEPTIONS),
            before_sleep=_log_retry,
            sleep=self._sleep,
            reraise=True,
        )
        def _call() -> Any:
            nonlocal attempts
            attempts += 1
            return self._get(url)

        try:
            return _call(), attempts
        except FetchError as exc:
            exc.attempts = attempts
            raise

    def bulk_url(self) -> str:
        base = self.config.api.base_url.rstrip("/")
        return f"{base}/historical?lastdays=all"

    def prefetch_all(self) -> int:
        """Load the full history of all countries with a single request.

        Later full-history fetches are served from it; countries missing from
        the bulk answer still get their own request. Returns the number of
        cached timelines.
        """

        payload, attempts = self._get_with_retry(self.bulk_url(), "*")
        self._bulk = BulkTimelines.from_payload(payload)
        LOG.info("api.prefetch.ok | timelines=%d attempts=%d", len(self._bulk), attempts)
        return len(self._bulk)

    def clear_prefetch(self) -> None:
        self._bulk = None

    def fetch_result(self, country: Country, mode: RangeMode) -> FetchResult:
        """Fetch and normalize ``country``; transient errors are retried."""

        today = self._today()
        url = self.build_url(country, mode, today=today)
        attempts = 0
        started = time.monotonic()
        try:
            cached = self._bulk.lookup(country) if mode.is_all and self._bulk is not None else None
            if cached is not None:
                payload, url = cached, self.bulk_url()
            else:
                payload, attempts = self._get_with_retry(url, country.id)
            frame = normalize_timeline(payload, country, today=today, since=mode.since)
            try:
                frame = validate_records(frame, source=country.id)
            except ValueError as exc:
                raise ParseError(str(exc), url=url) from exc
        except FetchError as exc:
            exc.attempts = exc.attempts or attempts
            raise
        LOG.debug(
            "api.fetch.ok | geo_id=%s mode=%s rows=%d attempts=%d",
            country.id,
            mode.describe(),
            len(frame),
            attempts,
        )
        log_json(
            DIAG_LOGGER,
            "api.fetch",
            geo_id=country.id,
            url=url,
            rows=len(frame),
            attempts=attempts,
            elapsed_s=round(time.monotonic() - started, 3),
        )
        return FetchResult(records=frame, attempts=attempts, url=url)

    def fetch(self, country: Country, mode: RangeMode) -> pd.DataFrame:
        return self.fetch_result(country, mode).records


__all__ = ["ApiClient", "FetchResult", "RETRYABLE_EXCEPTIONS"]
