from __future__ import annotations

import re
from typing import Any, Iterable, Iterator, Optional

from bikeflow.schemas.core import Station


_LEADING_INT = re.compile(r"^[+-]?\d+")


def strip_zeros(value: str) -> str:
    """Drop leading zeros; an all-zero id keeps a single "0"."""
    stripped = value.lstrip("0")
    if not stripped and value:
        return "0"
    return stripped


def _numeric_form(value: str) -> Optional[str]:
    match = _LEADING_INT.match(value)
    if match is None:
        return None
    return str(int(match.group(0)))


class StationIndex:
    """
    Many-to-one lookup from identifier spellings to stations.

    Station feeds and trip exports disagree on which identifier they carry (primary,
    legacy, external, short name) and on zero padding, so every known variant is
    registered. A later station wins when two stations register the same variant.
    """

    def __init__(self, entries: dict[str, Station]) -> None:
        self._entries = entries

    @classmethod
    def build(cls, stations: Iterable[Station]) -> "StationIndex":
        entries: dict[str, Station] = {}

        def _register(value: Optional[str], station: Station) -> None:
            if value:
                entries[value] = station

        for station in stations:
            for padded in (station.station_id, station.legacy_id):
                if padded is None:
                    continue
                _register(str(padded), station)
                _register(strip_zeros(str(padded)), station)
            if station.external_id is not None:
                _register(str(station.external_id), station)
            if station.short_name is not None:
                _register(str(station.short_name), station)

        return cls(entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, raw_id: object) -> bool:
        return self.lookup(raw_id) is not None

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def lookup(self, raw_id: Any) -> Optional[Station]:
        """
        Resolve a trip-side identifier: exact, then zero-stripped, then integer form.
        """

        if raw_id is None:
            return None
        value = str(raw_id).strip()
        if not value:
            return None

        match = self._entries.get(value)
        if match is not None:
            return match

        stripped = strip_zeros(value)
        if stripped:
            match = self._entries.get(stripped)
            if match is not None:
                return match

        numeric = _numeric_form(value)
        if numeric is not None:
            return self._entries.get(numeric)
        return None
