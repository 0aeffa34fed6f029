from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path

import pytest


def pytest_configure() -> None:
    """
    Run straight from a checkout: `src/` goes on the import path, no install needed.
    """

    sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))


def at(clock: str, *, day: int = 20) -> datetime:
    hour, minute = (int(p) for p in clock.split(":"))
    return datetime(2024, 3, day, hour, minute)


@pytest.fixture
def make_station():
    from bikeflow.schemas.core import Station

    def _make(key: str, lat=42.36, lon=-71.09, **ids) -> Station:
        ids.setdefault("station_id", key)
        return Station(key=key, name=ids.pop("name", f"Station {key}"), lon=lon, lat=lat, **ids)

    return _make


@pytest.fixture
def make_trip():
    from bikeflow.schemas.core import Trip

    def _make(start: str, end: str, started: str = "08:00", ended: str = "08:10") -> Trip:
        return Trip(start_station_id=start, end_station_id=end, started_at=at(started), ended_at=at(ended))

    return _make
