from __future__ import annotations

from dataclasses import replace
import logging
import math
from typing import Any, Mapping, Optional, Sequence

from bikeflow.config.models import StationFieldSettings
from bikeflow.ingestion.http import DataSourceError, HttpFetcher
from bikeflow.schemas.core import Station
from bikeflow.utils.diagnostics import MALFORMED_RECORD, SOURCE_UNAVAILABLE, Diagnostics, report


logger = logging.getLogger(__name__)


def first_float(record: Mapping[str, Any], names: Sequence[str]) -> Optional[float]:
    """First candidate field holding a finite number (or numeric string)."""
    for name in names:
        value = record.get(name)
        if value is None or isinstance(value, bool):
            continue
        if isinstance(value, str) and not value.strip():
            continue
        try:
            number = float(value)
        except (TypeError, ValueError):
            continue
        if math.isfinite(number):
            return number
    return None


def first_text(record: Mapping[str, Any], names: Sequence[str]) -> Optional[str]:
    """First candidate field holding a non-blank scalar, as a string."""
    for name in names:
        value = record.get(name)
        if value is None or isinstance(value, (bool, Mapping, list)):
            continue
        if isinstance(value, float) and value.is_integer():
            value = int(value)
        text = str(value).strip()
        if text:
            return text
    return None


def extract_station_records(payload: Any) -> Optional[list[Any]]:
    """Accept a bare array, `{"data": {"stations": [...]}}` or `{"stations": [...]}`."""
    if isinstance(payload, list):
        return payload
    if isinstance(payload, Mapping):
        data = payload.get("data")
        if isinstance(data, Mapping) and isinstance(data.get("stations"), list):
            return data["stations"]
        if isinstance(payload.get("stations"), list):
            return payload["stations"]
    return None


def parse_station(record: Mapping[str, Any], *, position: int, fields: StationFieldSettings) -> Station:
    station_id = first_text(record, fields.station_id)
    legacy_id = first_text(record, fields.legacy_id)
    external_id = first_text(record, fields.external_id)
    short_name = first_text(record, fields.short_name)

    key = station_id or legacy_id or external_id or short_name or f"#{position}"
    return Station(
        key=key,
        name=first_text(record, fields.name) or "",
        lon=first_float(record, fields.lon),
        lat=first_float(record, fields.lat),
        station_id=station_id,
        legacy_id=legacy_id,
        external_id=external_id,
        short_name=short_name,
    )


def parse_station_payload(
    payload: Any,
    *,
    fields: StationFieldSettings = StationFieldSettings(),
    diagnostics: Optional[Diagnostics] = None,
) -> list[Station]:
    """
    Normalize a station feed into `Station` records; never raises.

    Render keys are made unique: a repeated key gets a `#<position>` suffix.
    """

    records = extract_station_records(payload)
    if records is None:
        report(
            diagnostics,
            MALFORMED_RECORD,
            f"Could not find stations array in payload of type {type(payload).__name__}",
            level="error",
            logger=logger,
        )
        return []

    stations: list[Station] = []
    seen: set[str] = set()
    skipped = 0
    for position, record in enumerate(records):
        if not isinstance(record, Mapping):
            skipped += 1
            continue
        station = parse_station(record, position=position, fields=fields)
        if station.key in seen:
            logger.warning("Duplicate station key %s at position %s", station.key, position)
            station = replace(station, key=f"{station.key}#{position}")
        seen.add(station.key)
        stations.append(station)

    if skipped:
        report(diagnostics, MALFORMED_RECORD, f"Skipped {skipped} non-object station records", logger=logger)
    missing = sum(1 for s in stations if not s.has_coordinates)
    if missing:
        report(diagnostics, MALFORMED_RECORD, f"{missing} stations have no usable coordinates", logger=logger)

    logger.info("Stations array: %s stations", len(stations))
    return stations


class StationSource:
    def __init__(
        self,
        fetcher: HttpFetcher,
        url: str,
        *,
        fields: StationFieldSettings = StationFieldSettings(),
        diagnostics: Optional[Diagnostics] = None,
    ) -> None:
        self._fetcher = fetcher
        self._url = url
        self._fields = fields
        self._diagnostics = diagnostics

    def load(self) -> list[Station]:
        """Fetch and parse the station feed; any failure yields an empty list."""
        try:
            payload = self._fetcher.get_json(self._url)
        except DataSourceError as e:
            report(self._diagnostics, SOURCE_UNAVAILABLE, f"Error loading station data: {e}", level="error", logger=logger)
            return []
        return parse_station_payload(payload, fields=self._fields, diagnostics=self._diagnostics)
