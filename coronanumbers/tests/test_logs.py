from __future__ import annotations

import logging

from coronanumbers.common import logs
from coronanumbers.diag import diagnostics


def test_get_logger_reuses_single_handler(monkeypatch):
    monkeypatch.setenv("CORONA_LOG_LEVEL", "debug")
    logs.get_logger.cache_clear()
    first = logs.get_logger("coronanumbers.tests.sample")
    second = logs.get_logger("coronanumbers.tests.sample")
    assert first is second
    assert first.level == logging.DEBUG
    assert len(first.handlers) == 1
    assert not first.propagate


def test_log_json_only_when_enabled(monkeypatch, caplog):
    logger = logging.getLogger("coronanumbers.tests.diag")
    caplog.set_level(logging.DEBUG, logger="coronanumbers.tests.diag")

    monkeypatch.delenv("CORONA_DIAG", raising=False)
    diagnostics.log_json(logger, "store.upsert", rows=3)
    assert "store.upsert" not in caplog.text

    monkeypatch.setenv("CORONA_DIAG", "1")
    diagnostics.log_json(logger, "store.upsert", rows=3)
    assert 'store.upsert {"rows": 3}' in caplog.text
