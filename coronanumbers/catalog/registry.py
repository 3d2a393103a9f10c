# coronanumbers
# Copyright (c) 2025 Kevin Wyjad
# Licensed under the Pythia Non-Commercial Public License v1.0.
# See the LICENSE file in the project root for details.

"""Static registry of the countries and territories we collect.

The table lives in ``static/countries.csv`` and is read once per process.
Rows keep their file order, which is also the order the collector walks.
"""
from __future__ import annotations

import csv
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, Optional, Tuple
from urllib.parse import quote

LOGGER = logging.getLogger(__name__)

CATALOG_PATH = Path(__file__).resolve().parent / "static" / "countries.csv"

FETCH_MODES = ("country", "province", "first_of", "usacounties")


@dataclass(frozen=True)
class Country:
    """Identity and upstream addressing for one collected country."""

    id: str
    display_name: str
    continent: str
    population: int
    country_code: str
    api_key: str
    province: str = ""
    fetch_mode: str = "country"
    shift_days: int = 0

    @property
    def geo_id(self) -> str:
        return self.id

    @property
    def upstream_key(self) -> str:
        """Path below ``/historical`` that addresses this country upstream."""

        if self.fetch_mode == "usacounties":
            return f"usacounties/{quote(self.api_key, safe='')}"
        if self.fetch_mode == "province":
            return f"{quote(self.api_key, safe='')}/{quote(self.province, safe='')}"
        if self.fetch_mode == "first_of":
            # A trailing separator makes the API answer with an array.
            return f"{quote(self.api_key, safe='')}/{quote(self.province + '|', safe='')}"
        return quote(self.api_key, safe="")


def _parse_int(value: str | None, *, default: int) -> int:
    text = (value or "").strip()
    if not text:
        return default
    try:
        return int(text)
    except ValueError:
        return default


def _row_to_country(row: Dict[str, str], line_no: int) -> Country:
    geo_id = (row.get("geo_id") or "").strip().upper()
    name = (row.get("name") or "").strip()
    if not geo_id or not name:
        raise ValueError(f"{CATALOG_PATH.name}:{line_no}: geo_id and name are required")
    fetch_mode = (row.get("fetch_mode") or "country").strip() or "country"
    if fetch_mode not in FETCH_MODES:
        raise ValueError(
            f"{CATALOG_PATH.name}:{line_no}: unknown fetch_mode {fetch_mode!r} for {geo_id}"
        )
    province = (row.get("province") or "").strip()
    if fetch_mode in {"province", "first_of"} and not province:
        raise ValueError(f"{CATALOG_PATH.name}:{line_no}: {geo_id} needs a province")
    return Country(
        id=geo_id,
        display_name=name,
        continent=(row.get("continent") or "").strip(),
        population=_parse_int(row.get("population"), default=-1),
        country_code=(row.get("country_code") or "").strip().upper(),
        api_key=(row.get("upstream_key") or "").strip() or geo_id,
        province=province,
        fetch_mode=fetch_mode,
        shift_days=max(0, _parse_int(row.get("shift_days"), default=0)),
    )


def load_catalog(path: str | Path = CATALOG_PATH) -> Tuple[Country, ...]:
    """Read the catalog table from ``path`` and validate its invariants."""

    resolved = Path(path)
    countries: list[Country] = []
    seen_ids: set[str] = set()
    seen_keys: set[str] = set()
    with resolved.open("r", encoding="utf-8", newline="") as handle:
        reader = csv.DictReader(handle)
        # line 1 is the header
        for line_no, row in enumerate(reader, start=2):
            country = _row_to_country(row, line_no)
            if country.id in seen_ids:
                raise ValueError(f"{resolved.name}:{line_no}: duplicate geo_id {country.id}")
            if country.upstream_key in seen_keys:
                raise ValueError(
                    f"{resolved.name}:{line_no}: duplicate upstream key {country.upstream_key}"
                )
            seen_ids.add(country.id)
            seen_keys.add(country.upstream_key)
            countries.append(country)
    LOGGER.debug("catalog.loaded | path=%s entries=%d", resolved, len(countries))
    return tuple(countries)


@lru_cache(maxsize=1)
def entries() -> Tuple[Country, ...]:
    """Return all supported countries in registration order."""

    return load_catalog(CATALOG_PATH)


def find(geo_id: str) -> Optional[Country]:
    """Return the catalog entry for ``geo_id`` or ``None``."""

    wanted = (geo_id or "").strip().upper()
    for country in entries():
        if country.id == wanted:
            return country
    return None


def by_continent(continent: str) -> Tuple[Country, ...]:
    wanted = (continent or "").strip().lower()
    return tuple(country for country in entries() if country.continent.lower() == wanted)


def continents() -> Tuple[str, ...]:
    return tuple(sorted({country.continent for country in entries() if country.continent}))
