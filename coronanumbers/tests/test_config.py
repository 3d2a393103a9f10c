from __future__ import annotations

import logging

from coronanumbers.collect import config as collect_config


def _write(tmp_path, text):
    path = tmp_path / "collect.yml"
    path.write_text(text, encoding="utf-8")
    return path


def test_packaged_defaults_load(monkeypatch):
    for name in ("CORONA_CONFIG_PATH", "CORONA_DB_URL", "CORONA_WORKERS", "CORONA_API_BASE_URL"):
        monkeypatch.delenv(name, raising=False)
    cfg = collect_config.load()
    assert cfg.api.base_url == "https://disease.sh/v3/covid-19"
    assert cfg.retry.max_attempts == 3
    assert cfg.workers == 4
    assert cfg.only == []
    assert cfg.source_path.endswith("config/collect.yml")


def test_file_values_are_used(tmp_path, monkeypatch):
    monkeypatch.delenv("CORONA_WORKERS", raising=False)
    monkeypatch.delenv("CORONA_ONLY_COUNTRIES", raising=False)
    path = _write(
        tmp_path,
        "api:\n  base_url: https://mirror.test/v3/covid-19/\n"
        "collect:\n  workers: 8\n  only: [bj, td]\n",
    )
    cfg = collect_config.load(path)
    assert cfg.api.base_url == "https://mirror.test/v3/covid-19"
    assert cfg.workers == 8
    assert cfg.only == ["BJ", "TD"]


def test_environment_overrides_file(tmp_path, monkeypatch):
    path = _write(tmp_path, "collect:\n  workers: 8\nstore:\n  db_url: from-file.duckdb\n")
    monkeypatch.setenv("CORONA_CONFIG_PATH", str(path))
    monkeypatch.setenv("CORONA_WORKERS", "2")
    monkeypatch.setenv("CORONA_DB_URL", str(tmp_path / "env.duckdb"))
    monkeypatch.setenv("CORONA_MAX_ATTEMPTS", "5")
    monkeypatch.setenv("CORONA_ONLY_COUNTRIES", "de, fr")

    cfg = collect_config.load()
    assert cfg.workers == 2
    assert cfg.store.db_url == str(tmp_path / "env.duckdb")
    assert cfg.retry.max_attempts == 5
    assert cfg.only == ["DE", "FR"]


def test_invalid_values_fall_back_with_warning(tmp_path, monkeypatch, caplog):
    monkeypatch.setenv("CORONA_WORKERS", "many")
    path = _write(tmp_path, "retry:\n  max_attempts: 0\n")
    caplog.set_level(logging.WARNING)
    cfg = collect_config.load(path)
    assert cfg.workers == 4
    assert cfg.retry.max_attempts == 3
    assert "config.invalid_value" in caplog.text
    assert "config.out_of_range" in caplog.text


def test_missing_file_uses_defaults(tmp_path, monkeypatch):
    monkeypatch.delenv("CORONA_WORKERS", raising=False)
    cfg = collect_config.load(tmp_path / "absent.yml")
    assert cfg.workers == 4
    assert cfg.store.db_url


def test_bulk_prefetch_flag(tmp_path, monkeypatch, caplog):
    monkeypatch.delenv("CORONA_BULK_PREFETCH", raising=False)
    path = _write(tmp_path, "collect:\n  bulk_prefetch: true\n")
    assert collect_config.load(path).bulk_prefetch is True
    assert collect_config.load(tmp_path / "absent.yml").bulk_prefetch is False

    monkeypatch.setenv("CORONA_BULK_PREFETCH", "off")
    assert collect_config.load(path).bulk_prefetch is False

    monkeypatch.setenv("CORONA_BULK_PREFETCH", "sometimes")
    caplog.set_level(logging.WARNING)
    assert collect_config.load(path).bulk_prefetch is False
    assert "collect.bulk_prefetch" in caplog.text
