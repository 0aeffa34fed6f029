from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from functools import cached_property
from typing import Optional

from bikeflow.preprocessing.time_codec import MINUTES_PER_DAY, minutes_since_midnight


NO_FILTER = -1


@dataclass(frozen=True)
class Station:
    key: str
    name: str
    lon: Optional[float]
    lat: Optional[float]
    station_id: Optional[str] = None
    legacy_id: Optional[str] = None
    external_id: Optional[str] = None
    short_name: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or f"Station {self.key}"

    @property
    def has_coordinates(self) -> bool:
        return self.lon is not None and self.lat is not None


@dataclass(frozen=True)
class Trip:
    start_station_id: str
    end_station_id: str
    started_at: datetime
    ended_at: datetime

    @cached_property
    def start_minute(self) -> int:
        return minutes_since_midnight(self.started_at)

    @cached_property
    def end_minute(self) -> int:
        return minutes_since_midnight(self.ended_at)


@dataclass(frozen=True)
class TimeWindow:
    """
    Time-of-day filter: trips starting or ending within `radius` minutes of `center`.

    Distance is plain clock-minute difference, so a window near midnight does not wrap.
    """

    center: int
    radius: int = 60

    def __post_init__(self) -> None:
        if not 0 <= self.center < MINUTES_PER_DAY:
            raise ValueError(f"Window center must be in [0, {MINUTES_PER_DAY}): {self.center}")
        if self.radius < 0:
            raise ValueError(f"Window radius must be >= 0: {self.radius}")

    @property
    def start(self) -> int:
        return self.center - self.radius

    @property
    def end(self) -> int:
        return self.center + self.radius

    def contains(self, minute: int) -> bool:
        return abs(minute - self.center) <= self.radius

    def includes(self, trip: Trip) -> bool:
        return self.contains(trip.start_minute) or self.contains(trip.end_minute)

    @classmethod
    def from_slider(cls, value: int | float | str, *, radius: int = 60) -> Optional["TimeWindow"]:
        """Map a slider value to a window; the -1 sentinel means no filter."""
        minute = int(float(value))
        if minute == NO_FILTER:
            return None
        return cls(center=minute, radius=radius)
