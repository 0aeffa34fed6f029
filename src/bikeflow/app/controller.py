from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional, Protocol

import numpy as np

from bikeflow.analytics.scale import ScaleMapper
from bikeflow.analytics.traffic import aggregate
from bikeflow.app.debounce import LatestOnlyScheduler
from bikeflow.app.session import MapSession
from bikeflow.config.models import AppConfig
from bikeflow.ingestion.http import HttpFetcher
from bikeflow.ingestion.stations import StationSource
from bikeflow.ingestion.trips import TripSource
from bikeflow.preprocessing.time_codec import format_minutes
from bikeflow.render.folium_sink import FoliumMarkerSink
from bikeflow.render.projection import CoordinateProjector, WebMercatorProjector
from bikeflow.render.sync import GraphicsSink, RenderSync, ViewportEvents
from bikeflow.schemas.core import NO_FILTER, Station, TimeWindow, Trip
from bikeflow.schemas.traffic import TrafficSnapshot
from bikeflow.utils.diagnostics import Diagnostics


logger = logging.getLogger(__name__)


class Loader(Protocol):
    def load(self) -> list[Any]:
        ...


def filter_label(slider_value: int) -> str:
    if slider_value == NO_FILTER:
        return "all day"
    return f"around {format_minutes(slider_value)}"


def slider_readout(slider_value: int) -> str:
    return "" if slider_value == NO_FILTER else format_minutes(slider_value)


class MapController:
    """
    Wires sources, aggregation and rendering for one map.

    Collaborators are injected for tests; anything not given is built from `config`
    (HTTP sources, a Web-Mercator projector and a folium sink).
    """

    def __init__(
        self,
        config: AppConfig,
        *,
        sink: Optional[GraphicsSink] = None,
        projector: Optional[CoordinateProjector] = None,
        station_source: Optional[Loader] = None,
        trip_source: Optional[Loader] = None,
        diagnostics: Optional[Diagnostics] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        self._config = config
        self._diagnostics = diagnostics if diagnostics is not None else Diagnostics()
        self._rng = rng
        self._session = MapSession(bucket_width=config.aggregation.bucket_minutes)
        self._fetcher: Optional[HttpFetcher] = None
        self._station_source = station_source
        self._trip_source = trip_source

        self._sink = sink if sink is not None else FoliumMarkerSink(map_settings=config.map, render_settings=config.render)
        self._projector = projector if projector is not None else WebMercatorProjector(
            center_lon=config.map.center_lon,
            center_lat=config.map.center_lat,
            zoom=config.map.zoom,
            width=config.map.width_px,
            height=config.map.height_px,
        )
        self._render = RenderSync(
            self._sink,
            self._projector,
            scale=ScaleMapper(config.scale),
            settings=config.render,
            diagnostics=self._diagnostics,
        )
        self._scheduler = LatestOnlyScheduler(self.apply_filter, delay_ms=config.render.debounce_ms)
        self._snapshot: Optional[TrafficSnapshot] = None

    @property
    def config(self) -> AppConfig:
        return self._config

    @property
    def session(self) -> MapSession:
        return self._session

    @property
    def diagnostics(self) -> Diagnostics:
        return self._diagnostics

    @property
    def render_sync(self) -> RenderSync:
        return self._render

    @property
    def sink(self) -> GraphicsSink:
        return self._sink

    @property
    def snapshot(self) -> Optional[TrafficSnapshot]:
        return self._snapshot

    @property
    def label(self) -> str:
        value = self._session.last_filter
        return filter_label(NO_FILTER if value is None else value)

    def _get_fetcher(self) -> HttpFetcher:
        if self._fetcher is None:
            self._fetcher = HttpFetcher(
                timeout_s=self._config.sources.timeout_s,
                max_retries=self._config.sources.max_retries,
            )
        return self._fetcher

    def _get_station_source(self) -> Loader:
        if self._station_source is None:
            self._station_source = StationSource(
                self._get_fetcher(),
                self._config.sources.stations_url,
                fields=self._config.sources.station_fields,
                diagnostics=self._diagnostics,
            )
        return self._station_source

    def _get_trip_source(self) -> Loader:
        if self._trip_source is None:
            self._trip_source = TripSource(
                self._get_fetcher(),
                self._config.sources.trips_url,
                columns=self._config.sources.trip_columns,
                diagnostics=self._diagnostics,
            )
        return self._trip_source

    async def load(self) -> Optional[TrafficSnapshot]:
        """Fetch both sources off the event loop, then draw the unfiltered map."""
        stations, trips = await asyncio.gather(
            asyncio.to_thread(self._get_station_source().load),
            asyncio.to_thread(self._get_trip_source().load),
        )
        self.set_data(stations, trips)
        if not stations:
            logger.error("No stations loaded; nothing to draw")
            return None
        return self.apply_filter(NO_FILTER)

    def set_data(self, stations: list[Station], trips: list[Trip]) -> None:
        self._session.set_stations(stations)
        self._session.set_trips(trips)
        logger.info("Loaded %s stations and %s trips", len(stations), len(trips))

    def request_filter(self, slider_value: int) -> None:
        """Debounced entry point for slider input; requires a running event loop."""
        self._scheduler.schedule(slider_value)

    def apply_filter(self, slider_value: int) -> Optional[TrafficSnapshot]:
        """
        Aggregate for `slider_value` and push the result to the sink.

        Returns None when the value is already applied.
        """

        if self._session.is_current(slider_value):
            logger.debug("Filter %s already applied", slider_value)
            return None

        window = TimeWindow.from_slider(slider_value, radius=self._config.aggregation.window_minutes)
        snapshot = aggregate(
            self._session.stations,
            self._session.trips,
            window,
            buckets=self._session.buckets,
            bucket_width=self._session.bucket_width,
            index=self._session.index,
            settings=self._config.aggregation,
            fallback=self._config.fallback,
            diagnostics=self._diagnostics,
            rng=self._rng,
        )
        result = self._render.sync(snapshot)
        logger.info(
            "Map %s: %s entered, %s updated, %s removed",
            filter_label(slider_value),
            len(result.entered),
            len(result.updated),
            len(result.removed),
        )

        self._session.last_filter = slider_value
        self._snapshot = snapshot
        return snapshot

    def bind_viewport(self, events: ViewportEvents) -> None:
        self._render.bind_viewport(events)

    def save_map(self, path: str | Path) -> Path:
        if not isinstance(self._sink, FoliumMarkerSink):
            raise TypeError(f"save_map needs a FoliumMarkerSink, got {type(self._sink).__name__}")
        return self._sink.save(path, title=f"Bike traffic {self.label}")

    def close(self) -> None:
        self._scheduler.cancel()
        if self._fetcher is not None:
            self._fetcher.close()
            self._fetcher = None
