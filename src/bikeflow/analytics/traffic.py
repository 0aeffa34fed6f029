from __future__ import annotations

import logging
from typing import Optional, Sequence

import numpy as np

from bikeflow.analytics.synthetic import synthesize_traffic
from bikeflow.config.models import AggregationSettings, FallbackSettings
from bikeflow.preprocessing.station_index import StationIndex
from bikeflow.preprocessing.trip_buckets import DEFAULT_BUCKET_MINUTES, BucketMap, trips_near
from bikeflow.schemas.core import Station, TimeWindow, Trip
from bikeflow.schemas.traffic import StationTraffic, TrafficSnapshot
from bikeflow.utils.diagnostics import NO_IDENTIFIER_MATCHES, UNRESOLVED_IDENTIFIER, Diagnostics, report


logger = logging.getLogger(__name__)


def select_trips(
    trips: Sequence[Trip],
    window: Optional[TimeWindow],
    *,
    buckets: Optional[BucketMap] = None,
    bucket_width: int = DEFAULT_BUCKET_MINUTES,
) -> list[Trip]:
    """
    Trips that count toward a pass: all of them, or those the window includes.

    With `buckets` only the buckets around the window are scanned; the result is the
    same set as a linear scan.
    """

    if window is None:
        return list(trips)
    pool = trips_near(buckets, window, bucket_width) if buckets is not None else trips
    return [trip for trip in pool if window.includes(trip)]


class _Resolver:
    """Memoizes index lookups within one pass; trip exports repeat the same ids a lot."""

    def __init__(self, index: StationIndex) -> None:
        self._index = index
        self._memo: dict[str, Optional[Station]] = {}
        self.unresolved: set[str] = set()

    def __call__(self, raw_id: str) -> Optional[Station]:
        try:
            return self._memo[raw_id]
        except KeyError:
            pass
        station = self._index.lookup(raw_id)
        self._memo[raw_id] = station
        if station is None:
            self.unresolved.add(raw_id)
        return station


def aggregate(
    stations: Sequence[Station],
    trips: Sequence[Trip],
    window: Optional[TimeWindow] = None,
    *,
    buckets: Optional[BucketMap] = None,
    bucket_width: int = DEFAULT_BUCKET_MINUTES,
    index: Optional[StationIndex] = None,
    settings: AggregationSettings = AggregationSettings(),
    fallback: FallbackSettings = FallbackSettings(),
    diagnostics: Optional[Diagnostics] = None,
    rng: Optional[np.random.Generator] = None,
) -> TrafficSnapshot:
    """
    Count departures and arrivals per station for one filter value.

    Returns a fresh snapshot; stations and trips are left untouched. When no trip end
    resolves to any station (while both lists are non-empty) the snapshot holds
    synthetic, distance-weighted traffic and `synthetic=True`.
    """

    logger.info("Computing traffic for %s stations from %s trips", len(stations), len(trips))

    candidates = select_trips(trips, window, buckets=buckets, bucket_width=bucket_width)
    if window is not None:
        logger.info("Filtered to %s trips around minute %s", len(candidates), window.center)

    stats: dict[str, StationTraffic] = {}
    ordered: list[StationTraffic] = []
    for station in stations:
        entry = StationTraffic(station=station)
        stats[station.key] = entry
        ordered.append(entry)

    resolve = _Resolver(index if index is not None else StationIndex.build(stations))
    start_matches = 0
    end_matches = 0
    unresolved_ends = 0

    for trip in candidates:
        start = resolve(trip.start_station_id)
        end = resolve(trip.end_station_id)

        if start is not None and start.key in stats:
            stats[start.key].departures += 1
            start_matches += 1
        else:
            unresolved_ends += 1

        if end is not None and end.key in stats:
            stats[end.key].arrivals += 1
            end_matches += 1
        else:
            unresolved_ends += 1

    for entry in ordered:
        entry.classify(
            departures_threshold=settings.departures_threshold,
            arrivals_threshold=settings.arrivals_threshold,
        )

    logger.info(
        "Processed %s trips with %s start matches and %s end matches",
        len(candidates),
        start_matches,
        end_matches,
    )
    if unresolved_ends:
        report(
            diagnostics,
            UNRESOLVED_IDENTIFIER,
            f"{unresolved_ends} trip ends matched no station ({len(resolve.unresolved)} distinct ids)",
            level="info",
            logger=logger,
        )

    snapshot = TrafficSnapshot(
        stations=tuple(ordered),
        window=window,
        candidate_trips=len(candidates),
        start_matches=start_matches,
        end_matches=end_matches,
    )

    if snapshot.active_count == 0 and stations and trips and fallback.enabled:
        report(
            diagnostics,
            NO_IDENTIFIER_MATCHES,
            "No ID matches found, generating synthetic traffic data based on station locations",
            logger=logger,
        )
        snapshot = TrafficSnapshot(
            stations=tuple(synthesize_traffic(stations, settings=fallback, aggregation=settings, rng=rng)),
            window=window,
            synthetic=True,
            candidate_trips=len(candidates),
        )

    _log_summary(snapshot)
    return snapshot


def _log_summary(snapshot: TrafficSnapshot) -> None:
    active = snapshot.active_count
    if not active:
        logger.warning("No stations have traffic data")
        return

    logger.info("Found %s stations with traffic data (max: %s trips)", active, snapshot.max_traffic)
    for rank, s in enumerate(snapshot.top(5), 1):
        logger.debug(
            "%s. %s (ID: %s): %s total trips (%s departures, %s arrivals)",
            rank,
            s.station.display_name,
            s.key,
            s.total_traffic,
            s.departures,
            s.arrivals,
        )
