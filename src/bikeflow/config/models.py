from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


@dataclass(frozen=True)
class AppSettings:
    name: str = "BikeFlow"


@dataclass(frozen=True)
class StationFieldSettings:
    """
    Accepted field-name spellings per semantic station field, in priority order.
    """

    station_id: tuple[str, ...] = ("station_id", "id")
    legacy_id: tuple[str, ...] = ("legacy_id",)
    external_id: tuple[str, ...] = ("external_id",)
    short_name: tuple[str, ...] = ("short_name",)
    name: tuple[str, ...] = ("name", "station_name")
    lon: tuple[str, ...] = ("Long", "lon", "longitude", "lng", "x", "lon_")
    lat: tuple[str, ...] = ("Lat", "lat", "latitude", "y", "lat_")


@dataclass(frozen=True)
class TripColumnSettings:
    start_station_id: str = "start_station_id"
    end_station_id: str = "end_station_id"
    started_at: str = "started_at"
    ended_at: str = "ended_at"


@dataclass(frozen=True)
class SourceSettings:
    stations_url: str
    trips_url: str
    timeout_s: float = 30.0
    max_retries: int = 3
    station_fields: StationFieldSettings = field(default_factory=StationFieldSettings)
    trip_columns: TripColumnSettings = field(default_factory=TripColumnSettings)


@dataclass(frozen=True)
class AggregationSettings:
    window_minutes: int = 60
    bucket_minutes: int = 15
    departures_threshold: float = 0.7
    arrivals_threshold: float = 0.3


@dataclass(frozen=True)
class FallbackSettings:
    enabled: bool = True
    center_lat: float = 42.36027
    center_lon: float = -71.09415
    distance_scale: float = 500.0
    base_traffic: float = 300.0
    traffic_multiplier: float = 3.0
    min_traffic: int = 5
    min_departure_share: float = 0.3
    max_departure_share: float = 0.7
    seed: Optional[int] = None


@dataclass(frozen=True)
class ScaleSettings:
    min_radius: float = 5.0
    max_radius: float = 25.0
    filtered_max_radius: float = 50.0
    flow_steps: tuple[float, ...] = (0.0, 0.2, 0.4, 0.6, 0.8, 1.0)


@dataclass(frozen=True)
class RenderSettings:
    debounce_ms: int = 100
    transition_ms: int = 500
    stroke: str = "white"
    stroke_width: float = 1.5
    opacity: float = 0.8
    hover_stroke_width: float = 3.0
    hover_opacity: float = 1.0
    departures_color: str = "#4682b4"
    arrivals_color: str = "#ff8c00"


@dataclass(frozen=True)
class OverlaySettings:
    name: str
    url: str
    color: str = "green"
    weight: float = 3.0
    opacity: float = 0.4


@dataclass(frozen=True)
class MapSettings:
    center_lat: float = 42.36027
    center_lon: float = -71.09415
    zoom: int = 12
    min_zoom: int = 5
    max_zoom: int = 18
    width_px: int = 1024
    height_px: int = 768
    tiles: str = "cartodbpositron"
    overlays: tuple[OverlaySettings, ...] = ()


@dataclass(frozen=True)
class LoggingSettings:
    level: str
    format: str
    file: Optional[Path] = None


@dataclass(frozen=True)
class AppConfig:
    app: AppSettings
    sources: SourceSettings
    aggregation: AggregationSettings
    fallback: FallbackSettings
    scale: ScaleSettings
    render: RenderSettings
    map: MapSettings
    logging: LoggingSettings
