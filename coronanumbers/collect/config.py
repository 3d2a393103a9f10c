# coronanumbers
# Copyright (c) 2025 Kevin Wyjad
# Licensed under the Pythia Non-Commercial Public License v1.0.
# See the LICENSE file in the project root for details.

"""Configuration for the collection pipeline."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import yaml

LOG = logging.getLogger(__name__)

PACKAGE_ROOT = Path(__file__).resolve().parents[1]
DEFAULT_PATH = PACKAGE_ROOT / "config" / "collect.yml"

_DEFAULT_BASE_URL = "https://disease.sh/v3/covid-19"
_DEFAULT_DB_URL = "data/corona.duckdb"


@dataclass
class ApiCfg:
    """Parameters for the upstream statistics API."""

    base_url: str = _DEFAULT_BASE_URL
    connect_timeout_s: float = 5.0
    read_timeout_s: float = 30.0
    rate_per_sec: float = 4.0
    burst: float = 4.0
    user_agent: str = "coronanumbers/0.3 (+contact)"


@dataclass
class RetryCfg:
    """Retry policy applied to transient fetch failures."""

    max_attempts: int = 3
    backoff_initial_s: float = 1.0
    backoff_max_s: float = 30.0


@dataclass
class StoreCfg:
    db_url: str = _DEFAULT_DB_URL


@dataclass
class CollectConfig:
    """Top-level configuration object."""

    api: ApiCfg = field(default_factory=ApiCfg)
    retry: RetryCfg = field(default_factory=RetryCfg)
    store: StoreCfg = field(default_factory=StoreCfg)
    workers: int = 4
    max_recent_days: int = 30
    only: List[str] = field(default_factory=list)
    bulk_prefetch: bool = False
    source_path: Optional[str] = None


def _resolve_custom_path(raw_path: str | Path) -> Path:
    candidate = Path(raw_path).expanduser()
    if not candidate.is_absolute():
        return (Path.cwd() / candidate).resolve()
    return candidate.resolve()


def _load_yaml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("r", encoding="utf-8") as handle:
            loaded = yaml.safe_load(handle) or {}
    except FileNotFoundError:
        LOG.warning("config.missing | path=%s | using defaults", path)
        return {}
    if isinstance(loaded, Mapping):
        return dict(loaded)
    LOG.warning("config.invalid | path=%s | expected a mapping", path)
    return {}


def _block(data: Mapping[str, Any], name: str) -> Dict[str, Any]:
    value = data.get(name)
    return dict(value) if isinstance(value, Mapping) else {}


def _coerce_float(value: object, default: float, *, name: str, minimum: float = 0.0) -> float:
    if value is None:
        return default
    try:
        result = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        LOG.warning("config.invalid_value | key=%s value=%r | using %s", name, value, default)
        return default
    if result < minimum:
        LOG.warning("config.out_of_range | key=%s value=%r | using %s", name, value, default)
        return default
    return result


def _coerce_int(value: object, default: int, *, name: str, minimum: int = 1) -> int:
    if value is None:
        return default
    try:
        result = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        LOG.warning("config.invalid_value | key=%s value=%r | using %s", name, value, default)
        return default
    if result < minimum:
        LOG.warning("config.out_of_range | key=%s value=%r | using %s", name, value, default)
        return default
    return result


def _coerce_bool(value: object, default: bool, *, name: str) -> bool:
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in {"1", "true", "yes", "on"}:
        return True
    if text in {"0", "false", "no", "off"}:
        return False
    LOG.warning("config.invalid_value | key=%s value=%r | using %s", name, value, default)
    return default


def _env(name: str) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None:
        return None
    cleaned = raw.strip()
    return cleaned or None


def _csv_env(name: str) -> Optional[List[str]]:
    raw = os.getenv(name)
    if raw is None:
        return None
    return [piece.strip().upper() for piece in raw.split(",") if piece.strip()]


def load(path: str | os.PathLike[str] | None = None) -> CollectConfig:
    """Load the collection configuration, applying environment overrides."""

    if path is None:
        env_path = _env("CORONA_CONFIG_PATH")
        resolved = _resolve_custom_path(env_path) if env_path else DEFAULT_PATH
    else:
        resolved = _resolve_custom_path(path)
    data = _load_yaml(resolved)

    api_block = _block(data, "api")
    retry_block = _block(data, "retry")
    store_block = _block(data, "store")
    collect_block = _block(data, "collect")

    api = ApiCfg(
        base_url=str(_env("CORONA_API_BASE_URL") or api_block.get("base_url") or _DEFAULT_BASE_URL).rstrip("/"),
        connect_timeout_s=_coerce_float(
            api_block.get("connect_timeout_s"), 5.0, name="api.connect_timeout_s"
        ),
        read_timeout_s=_coerce_float(
            api_block.get("read_timeout_s"), 30.0, name="api.read_timeout_s"
        ),
        rate_per_sec=_coerce_float(
            _env("CORONA_RATE_PER_SEC") or api_block.get("rate_per_sec"),
            4.0,
            name="api.rate_per_sec",
        ),
        burst=_coerce_float(api_block.get("burst"), 4.0, name="api.burst", minimum=1.0),
        user_agent=str(api_block.get("user_agent") or ApiCfg.user_agent),
    )
    retry = RetryCfg(
        max_attempts=_coerce_int(
            _env("CORONA_MAX_ATTEMPTS") or retry_block.get("max_attempts"),
            3,
            name="retry.max_attempts",
        ),
        backoff_initial_s=_coerce_float(
            retry_block.get("backoff_initial_s"), 1.0, name="retry.backoff_initial_s"
        ),
        backoff_max_s=_coerce_float(
            retry_block.get("backoff_max_s"), 30.0, name="retry.backoff_max_s"
        ),
    )
    store = StoreCfg(
        db_url=str(_env("CORONA_DB_URL") or store_block.get("db_url") or _DEFAULT_DB_URL),
    )

    env_only = _csv_env("CORONA_ONLY_COUNTRIES")
    config_only = [
        str(value).strip().upper()
        for value in collect_block.get("only") or []
        if str(value).strip()
    ]

    config = CollectConfig(
        api=api,
        retry=retry,
        store=store,
        workers=_coerce_int(
            _env("CORONA_WORKERS") or collect_block.get("workers"), 4, name="collect.workers"
        ),
        max_recent_days=_coerce_int(
            collect_block.get("max_recent_days"), 30, name="collect.max_recent_days"
        ),
        only=env_only if env_only is not None else config_only,
        bulk_prefetch=_coerce_bool(
            _env("CORONA_BULK_PREFETCH") or collect_block.get("bulk_prefetch"),
            False,
            name="collect.bulk_prefetch",
        ),
        source_path=resolved.as_posix(),
    )
    LOG.debug(
        "config.loaded | path=%s workers=%s db_url=%s base_url=%s",
        config.source_path,
        config.workers,
        config.store.db_url,
        config.api.base_url,
    )
    return config
