from __future__ import annotations

import email.utils

import pytest

from coronanumbers.api.rate_limit import TokenBucket, parse_retry_after


class FakeClock:
    def __init__(self) -> None:
        self.now = 100.0
        self.sleeps: list[float] = []

    def monotonic(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def test_bucket_allows_burst_then_waits():
    clock = FakeClock()
    bucket = TokenBucket(2.0, burst=2, sleep_fn=clock.sleep, now_fn=clock.monotonic)
    assert bucket.acquire() == 0.0
    assert bucket.acquire() == 0.0
    waited = bucket.acquire()
    assert waited == pytest.approx(0.5)
    assert clock.sleeps == [pytest.approx(0.5)]


def test_zero_rate_disables_limiting():
    clock = FakeClock()
    bucket = TokenBucket(0.0, sleep_fn=clock.sleep, now_fn=clock.monotonic)
    for _ in range(10):
        assert bucket.acquire() == 0.0
    assert clock.sleeps == []


def test_parse_retry_after_seconds_and_dates():
    assert parse_retry_after("7") == 7.0
    assert parse_retry_after(None) is None
    assert parse_retry_after("soon") is None
    http_date = email.utils.formatdate(1_000_030.0, usegmt=True)
    assert parse_retry_after(http_date, now_fn=lambda: 1_000_000.0) == pytest.approx(30.0)
