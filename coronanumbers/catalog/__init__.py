"""Country registry for the collector."""

from .registry import (
    CATALOG_PATH,
    Country,
    by_continent,
    continents,
    entries,
    find,
    load_catalog,
)

__all__ = [
    "CATALOG_PATH",
    "Country",
    "by_continent",
    "continents",
    "entries",
    "find",
    "load_catalog",
]
