from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Mapping, Optional

from bikeflow.config.models import (
    AggregationSettings,
    AppConfig,
    AppSettings,
    FallbackSettings,
    LoggingSettings,
    MapSettings,
    OverlaySettings,
    RenderSettings,
    ScaleSettings,
    SourceSettings,
    StationFieldSettings,
    TripColumnSettings,
)


_TRUE = {"1", "true", "yes", "y", "on"}
_FALSE = {"0", "false", "no", "n", "off"}


def load_dotenv_if_available(path: str = ".env") -> None:
    try:
        from dotenv import load_dotenv  # type: ignore
    except ModuleNotFoundError:
        return
    load_dotenv(path)


def _as_path(value: str, *, base_dir: Path) -> Path:
    candidate = Path(value)
    return candidate if candidate.is_absolute() else (base_dir / candidate)


def _env_bool(name: str) -> Optional[bool]:
    raw = os.getenv(name)
    if raw is None:
        return None
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    return None


def _names(raw: Mapping[str, Any], key: str, default: tuple[str, ...]) -> tuple[str, ...]:
    value = raw.get(key)
    if value is None:
        return default
    if isinstance(value, str):
        return (value,)
    return tuple(str(v) for v in value)


def _load_station_fields(raw: Mapping[str, Any]) -> StationFieldSettings:
    defaults = StationFieldSettings()
    return StationFieldSettings(
        station_id=_names(raw, "station_id", defaults.station_id),
        legacy_id=_names(raw, "legacy_id", defaults.legacy_id),
        external_id=_names(raw, "external_id", defaults.external_id),
        short_name=_names(raw, "short_name", defaults.short_name),
        name=_names(raw, "name", defaults.name),
        lon=_names(raw, "lon", defaults.lon),
        lat=_names(raw, "lat", defaults.lat),
    )


def _load_trip_columns(raw: Mapping[str, Any]) -> TripColumnSettings:
    defaults = TripColumnSettings()
    return TripColumnSettings(
        start_station_id=str(raw.get("start_station_id", defaults.start_station_id)),
        end_station_id=str(raw.get("end_station_id", defaults.end_station_id)),
        started_at=str(raw.get("started_at", defaults.started_at)),
        ended_at=str(raw.get("ended_at", defaults.ended_at)),
    )


def load_config(path: Optional[str | Path] = None, *, base_dir: Optional[Path] = None) -> AppConfig:
    """
    Load typed application config from JSON.

    - Path resolution is relative to `base_dir` (defaults to current working directory).
    - `.env` is loaded when python-dotenv is installed (dev convenience).
    - `BIKEFLOW_*` environment variables override the source URLs, log level and fallback switch.
    """

    load_dotenv_if_available()

    config_path = Path(path or os.getenv("BIKEFLOW_CONFIG_PATH", "config/default.json")).resolve()
    base_dir = (base_dir or Path.cwd()).resolve()

    raw = json.loads(config_path.read_text(encoding="utf-8"))

    app_raw: Mapping[str, Any] = raw.get("app", {})
    app = AppSettings(name=str(app_raw.get("name", "BikeFlow")))

    sources_raw: Mapping[str, Any] = raw.get("sources", {})
    stations_url = os.getenv("BIKEFLOW_STATIONS_URL") or sources_raw.get("stations_url")
    trips_url = os.getenv("BIKEFLOW_TRIPS_URL") or sources_raw.get("trips_url")
    if not stations_url or not trips_url:
        raise ValueError("Config missing required fields: sources.stations_url and/or sources.trips_url")
    sources = SourceSettings(
        stations_url=str(stations_url),
        trips_url=str(trips_url),
        timeout_s=float(sources_raw.get("timeout_s", 30.0)),
        max_retries=int(sources_raw.get("max_retries", 3)),
        station_fields=_load_station_fields(sources_raw.get("station_fields", {})),
        trip_columns=_load_trip_columns(sources_raw.get("trip_columns", {})),
    )

    agg_raw: Mapping[str, Any] = raw.get("aggregation", {})
    aggregation = AggregationSettings(
        window_minutes=int(agg_raw.get("window_minutes", 60)),
        bucket_minutes=int(agg_raw.get("bucket_minutes", 15)),
        departures_threshold=float(agg_raw.get("departures_threshold", 0.7)),
        arrivals_threshold=float(agg_raw.get("arrivals_threshold", 0.3)),
    )
    if aggregation.window_minutes <= 0:
        raise ValueError(f"aggregation.window_minutes must be > 0: {aggregation.window_minutes}")
    if aggregation.bucket_minutes <= 0 or 1440 % aggregation.bucket_minutes != 0:
        raise ValueError(f"aggregation.bucket_minutes must divide 1440: {aggregation.bucket_minutes}")
    if not 0.0 <= aggregation.arrivals_threshold <= aggregation.departures_threshold <= 1.0:
        raise ValueError("aggregation thresholds must satisfy 0 <= arrivals <= departures <= 1")

    fb_raw: Mapping[str, Any] = raw.get("fallback", {})
    enabled = bool(fb_raw.get("enabled", True))
    env_enabled = _env_bool("BIKEFLOW_FALLBACK_ENABLED")
    if env_enabled is not None:
        enabled = env_enabled
    seed = fb_raw.get("seed")
    fallback = FallbackSettings(
        enabled=enabled,
        center_lat=float(fb_raw.get("center_lat", 42.36027)),
        center_lon=float(fb_raw.get("center_lon", -71.09415)),
        distance_scale=float(fb_raw.get("distance_scale", 500.0)),
        base_traffic=float(fb_raw.get("base_traffic", 300.0)),
        traffic_multiplier=float(fb_raw.get("traffic_multiplier", 3.0)),
        min_traffic=int(fb_raw.get("min_traffic", 5)),
        min_departure_share=float(fb_raw.get("min_departure_share", 0.3)),
        max_departure_share=float(fb_raw.get("max_departure_share", 0.7)),
        seed=None if seed is None else int(seed),
    )
    if not 0.0 <= fallback.min_departure_share <= fallback.max_departure_share <= 1.0:
        raise ValueError("fallback departure shares must satisfy 0 <= min <= max <= 1")

    scale_raw: Mapping[str, Any] = raw.get("scale", {})
    scale = ScaleSettings(
        min_radius=float(scale_raw.get("min_radius", 5.0)),
        max_radius=float(scale_raw.get("max_radius", 25.0)),
        filtered_max_radius=float(scale_raw.get("filtered_max_radius", 50.0)),
        flow_steps=tuple(float(x) for x in scale_raw.get("flow_steps", (0.0, 0.2, 0.4, 0.6, 0.8, 1.0))),
    )
    if not scale.flow_steps:
        raise ValueError("scale.flow_steps must not be empty")

    render_raw: Mapping[str, Any] = raw.get("render", {})
    defaults = RenderSettings()
    render = RenderSettings(
        debounce_ms=int(render_raw.get("debounce_ms", defaults.debounce_ms)),
        transition_ms=int(render_raw.get("transition_ms", defaults.transition_ms)),
        stroke=str(render_raw.get("stroke", defaults.stroke)),
        stroke_width=float(render_raw.get("stroke_width", defaults.stroke_width)),
        opacity=float(render_raw.get("opacity", defaults.opacity)),
        hover_stroke_width=float(render_raw.get("hover_stroke_width", defaults.hover_stroke_width)),
        hover_opacity=float(render_raw.get("hover_opacity", defaults.hover_opacity)),
        departures_color=str(render_raw.get("departures_color", defaults.departures_color)),
        arrivals_color=str(render_raw.get("arrivals_color", defaults.arrivals_color)),
    )

    map_raw: Mapping[str, Any] = raw.get("map", {})
    overlays = tuple(
        OverlaySettings(
            name=str(o["name"]),
            url=str(o["url"]),
            color=str(o.get("color", "green")),
            weight=float(o.get("weight", 3.0)),
            opacity=float(o.get("opacity", 0.4)),
        )
        for o in map_raw.get("overlays", [])
    )
    map_settings = MapSettings(
        center_lat=float(map_raw.get("center_lat", 42.36027)),
        center_lon=float(map_raw.get("center_lon", -71.09415)),
        zoom=int(map_raw.get("zoom", 12)),
        min_zoom=int(map_raw.get("min_zoom", 5)),
        max_zoom=int(map_raw.get("max_zoom", 18)),
        width_px=int(map_raw.get("width_px", 1024)),
        height_px=int(map_raw.get("height_px", 768)),
        tiles=str(map_raw.get("tiles", "cartodbpositron")),
        overlays=overlays,
    )

    logging_raw: Mapping[str, Any] = raw.get("logging", {})
    file_value = logging_raw.get("file")
    log_file = None if not file_value else _as_path(str(file_value), base_dir=base_dir)
    logging_settings = LoggingSettings(
        level=str(os.getenv("BIKEFLOW_LOG_LEVEL") or logging_raw.get("level", "INFO")),
        format=str(logging_raw.get("format", "%(asctime)s %(levelname)s %(name)s - %(message)s")),
        file=log_file,
    )

    return AppConfig(
        app=app,
        sources=sources,
        aggregation=aggregation,
        fallback=fallback,
        scale=scale,
        render=render,
        map=map_settings,
        logging=logging_settings,
    )
