from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

import pandas as pd

from bikeflow.schemas.core import Station, TimeWindow


class TrafficPattern(str, Enum):
    MOSTLY_DEPARTURES = "mostly departures"
    MOSTLY_ARRIVALS = "mostly arrivals"
    BALANCED = "balanced"
    NO_TRAFFIC = "no traffic"


@dataclass
class StationTraffic:
    """
    Derived counts for one station in one aggregation pass.

    Only the aggregator writes these; renderers receive them inside a `TrafficSnapshot`.
    """

    station: Station
    departures: int = 0
    arrivals: int = 0
    flow_ratio: float = 0.5
    pattern: TrafficPattern = TrafficPattern.NO_TRAFFIC

    @property
    def key(self) -> str:
        return self.station.key

    @property
    def total_traffic(self) -> int:
        return self.departures + self.arrivals

    def classify(self, *, departures_threshold: float = 0.7, arrivals_threshold: float = 0.3) -> None:
        total = self.total_traffic
        if total <= 0:
            self.flow_ratio = 0.5
            self.pattern = TrafficPattern.NO_TRAFFIC
            return

        self.flow_ratio = self.departures / total
        if self.flow_ratio > departures_threshold:
            self.pattern = TrafficPattern.MOSTLY_DEPARTURES
        elif self.flow_ratio < arrivals_threshold:
            self.pattern = TrafficPattern.MOSTLY_ARRIVALS
        else:
            self.pattern = TrafficPattern.BALANCED


@dataclass(frozen=True)
class TrafficSnapshot:
    stations: tuple[StationTraffic, ...]
    window: Optional[TimeWindow] = None
    synthetic: bool = False
    candidate_trips: int = 0
    start_matches: int = 0
    end_matches: int = 0
    _by_key: dict[str, StationTraffic] = field(default_factory=dict, init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        self._by_key.update({s.key: s for s in self.stations})

    @property
    def filter_active(self) -> bool:
        return self.window is not None

    @property
    def max_traffic(self) -> int:
        return max((s.total_traffic for s in self.stations), default=0)

    @property
    def active_count(self) -> int:
        return sum(1 for s in self.stations if s.total_traffic > 0)

    def get(self, key: str) -> Optional[StationTraffic]:
        return self._by_key.get(key)

    def by_key(self) -> dict[str, StationTraffic]:
        return dict(self._by_key)

    def top(self, n: int = 5) -> list[StationTraffic]:
        return sorted(self.stations, key=lambda s: s.total_traffic, reverse=True)[: max(n, 0)]

    def to_frame(self) -> pd.DataFrame:
        columns = ["key", "name", "lon", "lat", "departures", "arrivals", "total_traffic", "flow_ratio", "pattern"]
        rows = [
            {
                "key": s.key,
                "name": s.station.display_name,
                "lon": s.station.lon,
                "lat": s.station.lat,
                "departures": s.departures,
                "arrivals": s.arrivals,
                "total_traffic": s.total_traffic,
                "flow_ratio": s.flow_ratio,
                "pattern": s.pattern.value,
            }
            for s in self.stations
        ]
        return pd.DataFrame(rows, columns=columns)
