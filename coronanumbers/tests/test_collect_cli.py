from __future__ import annotations

import json

import pytest

from coronanumbers.cli import collect_cli
from coronanumbers.collect.ranges import RequestedMode
from coronanumbers.collect.report import CollectionOutcome, OutcomeStatus, RunReport
from coronanumbers.tests._fakes import make_country


def _fake_collect(report: RunReport, seen: dict):
    def _collect(mode, *, config, deadline_s=None):
        seen.update(mode=mode, config=config, deadline_s=deadline_s)
        report.requested_mode = mode
        return report

    return _collect


def _success_report() -> RunReport:
    report = RunReport(requested_mode=RequestedMode.RECENT)
    report.outcomes.append(
        CollectionOutcome(make_country(), OutcomeStatus.SUCCESS, records_written=3, range_mode="all")
    )
    return report


def test_success_exit_code_and_overrides(monkeypatch, tmp_path, capsys):
    seen: dict = {}
    monkeypatch.setattr(collect_cli, "collect", _fake_collect(_success_report(), seen))
    report_path = tmp_path / "out" / "report.json"

    code = collect_cli.run(
        [
            "--all",
            "--db",
            str(tmp_path / "x.duckdb"),
            "--workers",
            "3",
            "--only",
            "bj",
            "td",
            "--deadline",
            "60",
            "--report-json",
            str(report_path),
        ]
    )

    assert code == collect_cli.EXIT_OK
    assert seen["mode"] is RequestedMode.ALL
    assert seen["config"].workers == 3
    assert seen["config"].only == ["BJ", "TD"]
    assert seen["config"].store.db_url == str(tmp_path / "x.duckdb")
    assert seen["deadline_s"] == 60.0
    payload = json.loads(report_path.read_text(encoding="utf-8"))
    assert payload["requested_mode"] == "all"
    assert payload["total_records_written"] == 3
    assert "Records written: 3" in capsys.readouterr().out


def test_partial_failure_exits_one(monkeypatch):
    report = _success_report()
    report.outcomes.append(
        CollectionOutcome(make_country("TD", "Chad"), OutcomeStatus.PARTIAL_FAILURE, reason="network: boom")
    )
    monkeypatch.setattr(collect_cli, "collect", _fake_collect(report, {}))
    assert collect_cli.run([]) == collect_cli.EXIT_FAILURES


def test_fatal_store_error_exits_one(monkeypatch):
    report = _success_report()
    report.mark_fatal("store failure while writing TD")
    monkeypatch.setattr(collect_cli, "collect", _fake_collect(report, {}))
    assert collect_cli.run([]) == collect_cli.EXIT_FAILURES


def test_fatal_precheck_exits_two(monkeypatch, capsys):
    report = RunReport(requested_mode=RequestedMode.RECENT, precheck="fatal")
    report.mark_fatal("precheck failed: DuckDB 0.8.1 is too old")
    monkeypatch.setattr(collect_cli, "collect", _fake_collect(report, {}))
    assert collect_cli.run([]) == collect_cli.EXIT_PRECHECK
    assert "Precheck failed" in capsys.readouterr().err


def test_invalid_worker_count_is_rejected(monkeypatch):
    monkeypatch.setattr(collect_cli, "collect", _fake_collect(_success_report(), {}))
    with pytest.raises(SystemExit):
        collect_cli.run(["--workers", "0"])


def test_bulk_prefetch_flag_sets_config(monkeypatch):
    monkeypatch.delenv("CORONA_BULK_PREFETCH", raising=False)
    seen: dict = {}
    monkeypatch.setattr(collect_cli, "collect", _fake_collect(_success_report(), seen))
    assert collect_cli.run(["--all", "--bulk-prefetch"]) == collect_cli.EXIT_OK
    assert seen["config"].bulk_prefetch is True

    assert collect_cli.run(["--all"]) == collect_cli.EXIT_OK
    assert seen["config"].bulk_prefetch is False
