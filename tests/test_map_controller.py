from __future__ import annotations

import asyncio

import numpy as np
import pytest

import bikeflow.app.controller as controller_module
from bikeflow.app.controller import MapController, filter_label, slider_readout
from bikeflow.app.debounce import LatestOnlyScheduler
from bikeflow.config.models import (
    AggregationSettings,
    AppConfig,
    AppSettings,
    FallbackSettings,
    LoggingSettings,
    MapSettings,
    RenderSettings,
    ScaleSettings,
    SourceSettings,
)
from bikeflow.render.folium_sink import FoliumMarkerSink
from bikeflow.schemas.core import NO_FILTER


def _config(**render) -> AppConfig:
    return AppConfig(
        app=AppSettings(name="Test"),
        sources=SourceSettings(stations_url="https://example.com/s.json", trips_url="https://example.com/t.csv"),
        aggregation=AggregationSettings(),
        fallback=FallbackSettings(),
        scale=ScaleSettings(),
        render=RenderSettings(**{"debounce_ms": 20, **render}),
        map=MapSettings(),
        logging=LoggingSettings(level="INFO", format="%(message)s"),
    )


class FakeLoader:
    def __init__(self, items) -> None:
        self.items = list(items)
        self.calls = 0

    def load(self):
        self.calls += 1
        return list(self.items)


class FakeEvents:
    def __init__(self) -> None:
        self.handlers = {}

    def on(self, event, callback) -> None:
        self.handlers[event] = callback


@pytest.fixture
def controller(make_station, make_trip) -> MapController:
    stations = [make_station("1", 42.36, -71.09), make_station("2", 42.37, -71.10), make_station("3", 42.35, -71.06)]
    trips = [
        make_trip("1", "2", "08:00", "08:10"),
        make_trip("2", "3", "08:15", "08:40"),
        make_trip("3", "1", "17:30", "17:45"),
    ]
    return MapController(
        _config(),
        station_source=FakeLoader(stations),
        trip_source=FakeLoader(trips),
        rng=np.random.default_rng(0),
    )


def test_labels() -> None:
    assert filter_label(NO_FILTER) == "all day"
    assert filter_label(490) == "around 8:10 AM"
    assert slider_readout(NO_FILTER) == ""
    assert slider_readout(1050) == "5:30 PM"


def test_load_draws_unfiltered_map(controller) -> None:
    snapshot = asyncio.run(controller.load())

    assert snapshot is not None and snapshot.window is None
    assert snapshot.get("1").total_traffic == 2
    assert controller.session.last_filter == NO_FILTER
    assert controller.label == "all day"
    assert isinstance(controller.sink, FoliumMarkerSink)
    assert set(controller.sink.markers) == {"1", "2", "3"}
    assert controller.render_sync.scale.range == (5.0, 25.0)


def test_apply_filter_updates_markers(controller) -> None:
    asyncio.run(controller.load())

    snapshot = controller.apply_filter(500)

    assert snapshot.window.center == 500
    assert snapshot.get("3").departures == 0
    assert snapshot.get("2").total_traffic == 2
    assert controller.label == "around 8:20 AM"
    assert controller.render_sync.scale.range == (5.0, 50.0)
    assert controller.sink.markers["2"].radius == pytest.approx(50.0)


def test_same_filter_is_not_recomputed(controller, monkeypatch) -> None:
    asyncio.run(controller.load())
    calls = []
    real = controller_module.aggregate
    monkeypatch.setattr(controller_module, "aggregate", lambda *a, **kw: calls.append(1) or real(*a, **kw))

    assert controller.apply_filter(500) is not None
    assert controller.apply_filter(500) is None
    assert len(calls) == 1


def test_debounce_applies_only_latest(controller, monkeypatch) -> None:
    applied = []
    real = controller_module.aggregate

    def counting(*args, **kwargs):
        snapshot = real(*args, **kwargs)
        applied.append(snapshot.window.center if snapshot.window else NO_FILTER)
        return snapshot

    monkeypatch.setattr(controller_module, "aggregate", counting)

    async def scenario() -> None:
        await controller.load()
        for value in (480, 490, 500):
            controller.request_filter(value)
        await asyncio.sleep(0.1)

    asyncio.run(scenario())

    assert applied == [NO_FILTER, 500]
    assert controller.session.last_filter == 500


def test_scheduler_supersedes_pending() -> None:
    fired = []

    async def scenario() -> LatestOnlyScheduler:
        scheduler = LatestOnlyScheduler(fired.append, delay_ms=10)
        scheduler.schedule("a")
        scheduler.schedule("b")
        assert scheduler.pending
        await asyncio.sleep(0.05)
        scheduler.schedule("c")
        scheduler.cancel()
        await asyncio.sleep(0.03)
        return scheduler

    scheduler = asyncio.run(scenario())
    assert fired == ["b"]
    assert scheduler.superseded == 1
    assert not scheduler.pending


def test_negative_delay_rejected() -> None:
    with pytest.raises(ValueError):
        LatestOnlyScheduler(print, delay_ms=-1)


def test_empty_sources_draw_nothing(make_trip) -> None:
    controller = MapController(
        _config(),
        station_source=FakeLoader([]),
        trip_source=FakeLoader([make_trip("1", "2")]),
    )

    assert asyncio.run(controller.load()) is None
    assert controller.sink.markers == {}


def test_unmatched_trips_fall_back_to_synthetic(make_station, make_trip) -> None:
    controller = MapController(
        _config(),
        station_source=FakeLoader([make_station("1", 42.36, -71.09)]),
        trip_source=FakeLoader([make_trip("x", "y")]),
        rng=np.random.default_rng(1),
    )

    snapshot = asyncio.run(controller.load())
    assert snapshot.synthetic is True
    assert "NoIdentifierMatches" in controller.diagnostics.codes()


def test_viewport_events_reposition_markers(controller) -> None:
    asyncio.run(controller.load())
    events = FakeEvents()
    controller.bind_viewport(events)

    controller.render_sync.projector.set_view(center_lon=-71.09, center_lat=42.36, zoom=12)
    events.handlers["moveend"]()

    assert controller.sink.position("1") == pytest.approx((512.0, 384.0))


def test_save_map(controller, tmp_path) -> None:
    asyncio.run(controller.load())
    controller.apply_filter(490)

    out = controller.save_map(tmp_path / "map.html")
    assert "Bike traffic around 8:10 AM" in out.read_text(encoding="utf-8")
