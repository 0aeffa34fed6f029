from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Callable, Optional, Protocol

from bikeflow.analytics.scale import ScaleMapper
from bikeflow.config.models import RenderSettings
from bikeflow.render.projection import SENTINEL, CoordinateProjector
from bikeflow.schemas.core import Station
from bikeflow.schemas.traffic import StationTraffic, TrafficPattern, TrafficSnapshot
from bikeflow.utils.diagnostics import PROJECTION_FAILURE, Diagnostics, report


logger = logging.getLogger(__name__)

VIEWPORT_EVENTS: tuple[str, ...] = ("move", "zoom", "resize", "moveend")

HoverHandler = Callable[[str, bool], None]
IdSelector = Callable[[StationTraffic], str]


@dataclass(frozen=True)
class MarkerAttrs:
    radius: float
    flow_ratio: float
    flow_step: float
    tooltip: str
    stroke: str
    stroke_width: float
    opacity: float
    lon: Optional[float] = None
    lat: Optional[float] = None


class GraphicsSink(Protocol):
    def create(self, key: str, attrs: MarkerAttrs) -> None:
        ...

    def update(self, key: str, attrs: MarkerAttrs, *, transition_ms: int) -> None:
        ...

    def restyle(self, key: str, *, stroke_width: float, opacity: float) -> None:
        ...

    def move(self, key: str, x: float, y: float) -> None:
        ...

    def remove(self, key: str) -> None:
        ...

    def bind_hover(self, handler: HoverHandler) -> None:
        ...


class ViewportEvents(Protocol):
    def on(self, event: str, callback: Callable[..., Any]) -> None:
        ...


@dataclass
class SyncResult:
    entered: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)


def tooltip_text(stats: StationTraffic) -> str:
    pattern = f" ({stats.pattern.value})" if isinstance(stats.pattern, TrafficPattern) else ""
    return (
        f"{stats.station.display_name}{pattern}\n"
        f"Total: {stats.total_traffic} trips\n"
        f"Departures: {stats.departures} trips\n"
        f"Arrivals: {stats.arrivals} trips"
    )


def _station_key(stats: StationTraffic) -> str:
    return stats.key


class RenderSync:
    """
    Keeps the sink's markers in step with the latest traffic snapshot.

    Markers are keyed by `id_selector(stats)`: new keys are created, known keys are
    updated in place, missing keys are removed. Screen positions come from the
    projector and are refreshed after every data change and every viewport event.
    """

    def __init__(
        self,
        sink: GraphicsSink,
        projector: CoordinateProjector,
        *,
        scale: Optional[ScaleMapper] = None,
        settings: RenderSettings = RenderSettings(),
        diagnostics: Optional[Diagnostics] = None,
    ) -> None:
        self._sink = sink
        self._projector = projector
        self._scale = scale or ScaleMapper()
        self._settings = settings
        self._diagnostics = diagnostics
        self._displayed: dict[str, StationTraffic] = {}
        self._hovered: set[str] = set()
        self._projection_failures: set[str] = set()
        sink.bind_hover(self.handle_hover)

    @property
    def displayed_keys(self) -> list[str]:
        return list(self._displayed)

    @property
    def scale(self) -> ScaleMapper:
        return self._scale

    @property
    def projector(self) -> CoordinateProjector:
        return self._projector

    def _style(self, key: str) -> tuple[float, float]:
        if key in self._hovered:
            return self._settings.hover_stroke_width, self._settings.hover_opacity
        return self._settings.stroke_width, self._settings.opacity

    def marker_attrs(self, key: str, stats: StationTraffic) -> MarkerAttrs:
        stroke_width, opacity = self._style(key)
        return MarkerAttrs(
            radius=self._scale.radius(stats.total_traffic),
            flow_ratio=stats.flow_ratio,
            flow_step=self._scale.flow_step(stats.flow_ratio),
            tooltip=tooltip_text(stats),
            stroke=self._settings.stroke,
            stroke_width=stroke_width,
            opacity=opacity,
            lon=stats.station.lon,
            lat=stats.station.lat,
        )

    def sync(self, snapshot: TrafficSnapshot, id_selector: IdSelector = _station_key) -> SyncResult:
        """
        Rescale to the snapshot, then diff its stations against the displayed markers.
        """

        self._scale.update(snapshot)
        incoming: dict[str, StationTraffic] = {}
        for stats in snapshot.stations:
            key = id_selector(stats)
            if key in incoming:
                logger.warning("Duplicate marker key %s; keeping the first station", key)
                continue
            incoming[key] = stats

        result = SyncResult()
        for key, stats in incoming.items():
            attrs = self.marker_attrs(key, stats)
            if key in self._displayed:
                self._sink.update(key, attrs, transition_ms=self._settings.transition_ms)
                result.updated.append(key)
            else:
                self._sink.create(key, attrs)
                result.entered.append(key)

        for key in [k for k in self._displayed if k not in incoming]:
            self._sink.remove(key)
            self._hovered.discard(key)
            result.removed.append(key)

        self._displayed = incoming
        if result.entered or result.updated:
            self.reposition()
        return result

    def _project(self, key: str, station: Station) -> tuple[float, float]:
        if not station.has_coordinates:
            self._projection_failed(key, f"Invalid coordinates for station {key}")
            return SENTINEL
        try:
            return self._projector.project(station.lon, station.lat)
        except (TypeError, ValueError, ArithmeticError) as e:
            self._projection_failed(key, f"Error projecting coordinates for station {key}: {e}")
            return SENTINEL

    def _projection_failed(self, key: str, message: str) -> None:
        if key in self._projection_failures:
            return
        self._projection_failures.add(key)
        report(self._diagnostics, PROJECTION_FAILURE, message, logger=logger)

    def reposition(self) -> int:
        for key, stats in self._displayed.items():
            x, y = self._project(key, stats.station)
            self._sink.move(key, x, y)
        return len(self._displayed)

    def handle_hover(self, key: str, entered: bool) -> None:
        if key not in self._displayed:
            return
        if entered:
            self._hovered.add(key)
        else:
            self._hovered.discard(key)
        stroke_width, opacity = self._style(key)
        self._sink.restyle(key, stroke_width=stroke_width, opacity=opacity)

    def bind_viewport(self, events: ViewportEvents) -> None:
        for name in VIEWPORT_EVENTS:
            events.on(name, self._on_viewport_change)

    def _on_viewport_change(self, *_: Any) -> None:
        self.reposition()
