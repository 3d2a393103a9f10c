"""DuckDB target resolution and connection opening."""

from __future__ import annotations

import logging
import os
import pathlib
from urllib.parse import urlparse

import duckdb

logger = logging.getLogger(__name__)

_MEMORY_ALIASES = {
    ":memory:",
    "duckdb:///:memory:",
    "duckdb://memory",
    "duckdb://:memory:",
    "duckdb:memory",
}


def canonicalize_duckdb_target(url_or_path: str | os.PathLike[str] | None) -> tuple[str, str]:
    """Return canonical filesystem path and URL for a DuckDB target."""

    raw = str(url_or_path or "").strip()
    if not raw:
        raw = ":memory:"

    if raw in _MEMORY_ALIASES:
        return ":memory:", "duckdb:///:memory:"

    if raw.startswith("duckdb://"):
        parsed = urlparse(raw)
        path = parsed.path or ""
        if parsed.netloc and parsed.netloc != ":memory:":
            path = f"{parsed.netloc}{path}"
        if path == ":memory:":
            return ":memory:", "duckdb:///:memory:"
    else:
        path = raw

    if not os.path.isabs(path):
        path = os.path.join(os.getcwd(), path)

    path_obj = pathlib.Path(path).expanduser().resolve()
    canonical_path = str(path_obj)
    return canonical_path, f"duckdb:///{canonical_path}"


def connect(url_or_path: str | os.PathLike[str] | None) -> tuple[duckdb.DuckDBPyConnection, str]:
    """Open a connection to ``url_or_path`` and return it with the resolved path."""

    path, url = canonicalize_duckdb_target(url_or_path)
    if path != ":memory:":
        pathlib.Path(path).parent.mkdir(parents=True, exist_ok=True)
    conn = duckdb.connect(path)
    logger.debug("duckdb.connect | url=%s", url)
    return conn, path
