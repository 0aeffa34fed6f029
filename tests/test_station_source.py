from __future__ import annotations

import math

from bikeflow.config.models import StationFieldSettings
from bikeflow.ingestion.http import DataSourceError
from bikeflow.ingestion.stations import (
    StationSource,
    extract_station_records,
    parse_station_payload,
    first_float,
    first_text,
)
from bikeflow.utils.diagnostics import MALFORMED_RECORD, SOURCE_UNAVAILABLE, Diagnostics


class FakeFetcher:
    def __init__(self, payload=None, error: Exception | None = None) -> None:
        self.payload = payload
        self.error = error
        self.urls: list[str] = []

    def get_json(self, url: str):
        self.urls.append(url)
        if self.error is not None:
            raise self.error
        return self.payload


def test_first_float_takes_first_finite_number() -> None:
    record = {"Long": None, "lon": "abc", "longitude": True, "lng": math.nan, "x": "-71.09", "lon_": 1.0}
    assert first_float(record, ("Long", "lon", "longitude", "lng", "x", "lon_")) == -71.09
    assert first_float({"lat": " "}, ("lat",)) is None
    assert first_float({}, ("lat",)) is None


def test_first_text_normalizes_scalars() -> None:
    assert first_text({"id": 12.0}, ("id",)) == "12"
    assert first_text({"id": " 007 "}, ("id",)) == "007"
    assert first_text({"station_id": "", "id": 5}, ("station_id", "id")) == "5"
    assert first_text({"id": {"nested": 1}}, ("id",)) is None


def test_extract_station_records_shapes() -> None:
    stations = [{"station_id": "1"}]
    assert extract_station_records(stations) is stations
    assert extract_station_records({"data": {"stations": stations}}) is stations
    assert extract_station_records({"stations": stations}) is stations
    assert extract_station_records({"data": []}) is None
    assert extract_station_records("nope") is None


def test_parse_nested_gbfs_payload() -> None:
    payload = {
        "data": {
            "stations": [
                {
                    "station_id": "A32000",
                    "legacy_id": "067",
                    "short_name": "M32006",
                    "name": "MIT at Mass Ave / Amherst St",
                    "Lat": "42.3581",
                    "Long": "-71.093198",
                },
                {"id": 3, "station_name": "Colleges of the Fenway", "lat": 42.340021, "lon": -71.100812},
            ]
        }
    }

    stations = parse_station_payload(payload)

    assert [s.key for s in stations] == ["A32000", "3"]
    mit = stations[0]
    assert (mit.legacy_id, mit.short_name) == ("067", "M32006")
    assert (mit.lat, mit.lon) == (42.3581, -71.093198)
    assert stations[1].name == "Colleges of the Fenway"


def test_key_falls_back_through_identifiers() -> None:
    stations = parse_station_payload(
        [{"legacy_id": "9"}, {"external_id": "ext"}, {"short_name": "S1"}, {"name": "anonymous"}]
    )
    assert [s.key for s in stations] == ["9", "ext", "S1", "#3"]
    assert stations[3].display_name == "anonymous"


def test_duplicate_keys_get_position_suffix() -> None:
    stations = parse_station_payload([{"station_id": "1"}, {"station_id": "1"}])
    assert [s.key for s in stations] == ["1", "1#1"]
    assert stations[1].station_id == "1"


def test_bad_records_are_reported() -> None:
    diagnostics = Diagnostics()
    stations = parse_station_payload(
        [{"station_id": "1", "lat": 42.0, "lon": -71.0}, "junk", {"station_id": "2"}],
        diagnostics=diagnostics,
    )

    assert [s.key for s in stations] == ["1", "2"]
    assert stations[1].has_coordinates is False
    assert diagnostics.count(MALFORMED_RECORD) == 2


def test_unrecognized_payload_gives_empty_list() -> None:
    diagnostics = Diagnostics()
    assert parse_station_payload({"features": []}, diagnostics=diagnostics) == []
    assert diagnostics.records[0].level == "error"


def test_field_candidates_are_configurable() -> None:
    fields = StationFieldSettings(station_id=("code",), lat=("y",), lon=("x",))
    (station,) = parse_station_payload([{"code": "Z", "y": 1.5, "x": 2.5, "station_id": "ignored"}], fields=fields)
    assert (station.key, station.lat, station.lon) == ("Z", 1.5, 2.5)


def test_station_source_load() -> None:
    fetcher = FakeFetcher(payload=[{"station_id": "1", "lat": 42.0, "lon": -71.0}])
    source = StationSource(fetcher, "https://example.com/stations.json")

    assert [s.key for s in source.load()] == ["1"]
    assert fetcher.urls == ["https://example.com/stations.json"]


def test_station_source_failure_degrades_to_empty() -> None:
    diagnostics = Diagnostics()
    fetcher = FakeFetcher(error=DataSourceError("boom", url="u", status=503))
    source = StationSource(fetcher, "u", diagnostics=diagnostics)

    assert source.load() == []
    assert diagnostics.codes() == {SOURCE_UNAVAILABLE}
