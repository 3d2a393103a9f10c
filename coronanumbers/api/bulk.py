# coronanumbers
# Copyright (c) 2025 Kevin Wyjad
# Licensed under the Pythia Non-Commercial Public License v1.0.
# See the LICENSE file in the project root for details.

"""Index over the all-countries ``historical?lastdays=all`` response."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Tuple

from ..catalog import Country
from .http import ParseError

LOG = logging.getLogger(__name__)

# usacounties and first_of entries are never part of the bulk answer.
BULK_FETCH_MODES = ("country", "province")


def _norm(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip().lower()


class BulkTimelines:
    """Timeline objects of one bulk response, keyed by country and province."""

    def __init__(self, items: Mapping[Tuple[str, str], Mapping[str, Any]]) -> None:
        self._items = dict(items)

    @classmethod
    def from_payload(cls, payload: Any) -> "BulkTimelines":
        if not isinstance(payload, list):
            raise ParseError("bulk response is not an array")
        items: Dict[Tuple[str, str], Mapping[str, Any]] = {}
        for item in payload:
            if not isinstance(item, Mapping) or not isinstance(item.get("timeline"), Mapping):
                continue
            key = (_norm(item.get("country")), _norm(item.get("province")))
            if key[0] and key not in items:
                items[key] = item
        if not items:
            raise ParseError("bulk response holds no timelines")
        return cls(items)

    def __len__(self) -> int:
        return len(self._items)

    def lookup(self, country: Country) -> Optional[Mapping[str, Any]]:
        """Return the cached payload for ``country`` or ``None`` on a miss.

        The upstream country name is matched against the api key and the
        display name, since the bulk answer only carries names.
        """

        if country.fetch_mode not in BULK_FETCH_MODES:
            return None
        province = _norm(country.province) if country.fetch_mode == "province" else ""
        for name in (_norm(country.api_key), _norm(country.display_name)):
            item = self._items.get((name, province))
            if item is not None:
                return item
        return None


__all__ = ["BULK_FETCH_MODES", "BulkTimelines"]
