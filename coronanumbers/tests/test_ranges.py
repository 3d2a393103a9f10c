from __future__ import annotations

import datetime as dt

from coronanumbers.collect.ranges import RangeMode, RequestedMode, select_range
from coronanumbers.tests._fakes import TODAY, make_country


def test_all_is_always_full_history():
    mode = select_range(make_country(), RequestedMode.ALL, TODAY, today=TODAY)
    assert mode == RangeMode.all()
    assert mode.lastdays(TODAY) == "all"


def test_recent_without_history_bootstraps_to_all():
    mode = select_range(make_country(), RequestedMode.RECENT, None, today=TODAY)
    assert mode.is_all


def test_recent_refetches_last_known_date():
    last = TODAY - dt.timedelta(days=3)
    mode = select_range(make_country(), RequestedMode.RECENT, last, today=TODAY)
    assert mode == RangeMode.recent(since=last)
    assert mode.lastdays(TODAY) == "4"
    assert mode.describe() == f"recent:{last.isoformat()}"


def test_recent_same_day_requests_one_day():
    mode = select_range(make_country(), RequestedMode.RECENT, TODAY, today=TODAY)
    assert mode.lastdays(TODAY) == "1"


def test_long_gap_escalates_to_all():
    last = TODAY - dt.timedelta(days=45)
    mode = select_range(make_country(), "recent", last, today=TODAY, max_recent_days=30)
    assert mode.is_all
