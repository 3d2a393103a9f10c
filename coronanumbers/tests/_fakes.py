"""Fakes and payload builders shared by the test modules."""
from __future__ import annotations

import datetime as dt
import threading
from typing import Any, Dict, Iterable, List, Optional

from coronanumbers.catalog import Country

TODAY = dt.date(2021, 3, 10)


def make_country(geo_id: str = "BJ", name: str = "Benin", **overrides: Any) -> Country:
    fields: Dict[str, Any] = {
        "id": geo_id,
        "display_name": name,
        "continent": "Africa",
        "population": 11_801_151,
        "country_code": "BEN",
        "api_key": geo_id,
    }
    fields.update(overrides)
    return Country(**fields)


def upstream_date(day: dt.date) -> str:
    return f"{day.month}/{day.day}/{day.year % 100}"


def timeline(
    start: dt.date,
    cases: Iterable[int],
    deaths: Iterable[int],
    recovered: Optional[Iterable[int]] = None,
) -> Dict[str, Dict[str, int]]:
    cases = list(cases)
    deaths = list(deaths)
    days = [start + dt.timedelta(days=offset) for offset in range(len(cases))]
    payload: Dict[str, Dict[str, int]] = {
        "cases": {upstream_date(day): value for day, value in zip(days, cases)},
        "deaths": {upstream_date(day): value for day, value in zip(days, deaths)},
    }
    if recovered is not None:
        payload["recovered"] = {upstream_date(day): value for day, value in zip(days, recovered)}
    return payload


def country_payload(name: str, start: dt.date, cases, deaths, recovered=None) -> Dict[str, Any]:
    return {"country": name, "province": ["mainland"], "timeline": timeline(start, cases, deaths, recovered)}


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        payload: Any = None,
        *,
        headers: Optional[Dict[str, str]] = None,
        text: Optional[str] = None,
    ) -> None:
        self.status_code = status_code
        self._payload = payload
        self.headers = headers or {}
        self.text = text if text is not None else ""
        self.closed = False

    def json(self) -> Any:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload

    def close(self) -> None:
        self.closed = True


class FakeSession:
    """Replays queued responses; exceptions in the queue are raised."""

    def __init__(self, responses: List[Any]) -> None:
        self._responses = list(responses)
        self.calls: List[Dict[str, Any]] = []

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append({"url": url, **kwargs})
        if not self._responses:
            raise AssertionError(f"unexpected request to {url}")
        item = self._responses.pop(0)
        if isinstance(item, BaseException):
            raise item
        return item




class RoutingSession:
    """Thread-safe fake session answering per upstream key.

    The last queued item for a key is repeated for further requests. The
    bulk ``historical?lastdays=all`` request is routed under ``*``.
    """

    def __init__(self, routes: Dict[str, List[Any]]) -> None:
        self._routes = {key: list(items) for key, items in routes.items()}
        self._lock = threading.Lock()
        self.calls: List[str] = []

    def get(self, url: str, **kwargs: Any) -> FakeResponse:
        key = url.split("/historical", 1)[1].split("?", 1)[0].lstrip("/") or "*"
        with self._lock:
            self.calls.append(url)
            queue = self._routes.get(key)
            if not queue:
                return FakeResponse(404, {"message": "Country not found"}, text="not found")
            item = queue.pop(0) if len(queue) > 1 else queue[0]
        if isinstance(item, BaseException):
            raise item
        return item
