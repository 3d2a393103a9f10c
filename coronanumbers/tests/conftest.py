from __future__ import annotations

from typing import Iterable

import pytest

from coronanumbers.collect.config import ApiCfg, CollectConfig, RetryCfg, StoreCfg
from coronanumbers.db.store import MergeStore
from coronanumbers.tests._fakes import TODAY


@pytest.fixture
def config() -> CollectConfig:
    return CollectConfig(
        api=ApiCfg(base_url="https://api.test/v3/covid-19", rate_per_sec=0.0),
        retry=RetryCfg(max_attempts=3, backoff_initial_s=0.5, backoff_max_s=2.0),
        store=StoreCfg(db_url=":memory:"),
        workers=2,
        max_recent_days=30,
    )


@pytest.fixture
def store(tmp_path) -> Iterable[MergeStore]:
    merge_store = MergeStore(tmp_path / "corona.duckdb", today_fn=lambda: TODAY)
    try:
        yield merge_store
    finally:
        merge_store.close()
