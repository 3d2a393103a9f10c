"""Small file-writing helpers for run artifacts."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Union

log = logging.getLogger(__name__)
PathLike = Union[str, Path]


def _ensure_parent(p: Path) -> None:
    p.parent.mkdir(parents=True, exist_ok=True)


def write_json(path: PathLike, obj: Any, *, encoding: str = "utf-8", indent: int = 2) -> Path:
    """Atomically write ``obj`` as JSON to ``path``."""

    p = Path(path)
    _ensure_parent(p)
    with tempfile.NamedTemporaryFile(
        "w", delete=False, dir=str(p.parent), encoding=encoding
    ) as tmp:
        json.dump(obj, tmp, ensure_ascii=False, indent=indent, default=str)
        tmp.flush()
        os.fsync(tmp.fileno())
        tmp_name = tmp.name
    os.replace(tmp_name, p)
    log.debug("write_json: %s", p)
    return p
