from __future__ import annotations

import logging
import math
from typing import Optional, Sequence

import numpy as np

from bikeflow.config.models import AggregationSettings, FallbackSettings
from bikeflow.schemas.core import Station
from bikeflow.schemas.traffic import StationTraffic


logger = logging.getLogger(__name__)


def distance_factor(station: Station, settings: FallbackSettings) -> float:
    """
    Inverse-distance weight in (0, 1] from the reference point; 0 without coordinates.

    Distance is measured in raw degrees, which is plenty for ranking stations of one metro area.
    """

    if not station.has_coordinates:
        return 0.0
    lat_diff = abs(float(station.lat) - settings.center_lat)
    lon_diff = abs(float(station.lon) - settings.center_lon)
    distance = math.sqrt(lat_diff * lat_diff + lon_diff * lon_diff)
    if not math.isfinite(distance):
        return 0.0
    return 1.0 / (1.0 + distance * settings.distance_scale)


def synthesize_traffic(
    stations: Sequence[Station],
    *,
    settings: FallbackSettings,
    aggregation: AggregationSettings,
    rng: Optional[np.random.Generator] = None,
) -> list[StationTraffic]:
    """
    Plausible-looking traffic for when no trip identifier matched any station.

    Central stations get larger totals; each station's departure share is drawn
    from [min_departure_share, max_departure_share]. The numbers are random and
    only meant to keep the map from going blank.
    """

    rng = rng if rng is not None else np.random.default_rng(settings.seed)
    out: list[StationTraffic] = []
    for station in stations:
        factor = distance_factor(station, settings)
        total = int(math.floor(rng.random() * settings.base_traffic * factor * settings.traffic_multiplier))
        total += settings.min_traffic
        share = rng.uniform(settings.min_departure_share, settings.max_departure_share)

        departures = int(math.floor(total * share))
        stats = StationTraffic(station=station, departures=departures, arrivals=total - departures)
        stats.classify(
            departures_threshold=aggregation.departures_threshold,
            arrivals_threshold=aggregation.arrivals_threshold,
        )
        out.append(stats)

    missing = sum(1 for s in stations if not s.has_coordinates)
    if missing:
        logger.info("Synthetic traffic: %s stations without coordinates got the minimum total", missing)
    return out
