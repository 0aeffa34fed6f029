from __future__ import annotations

import logging
from typing import Optional, Sequence

from bikeflow.preprocessing.station_index import StationIndex
from bikeflow.preprocessing.trip_buckets import DEFAULT_BUCKET_MINUTES, BucketMap, bucket_trips
from bikeflow.schemas.core import Station, Trip


logger = logging.getLogger(__name__)


class MapSession:
    """
    Loaded collections plus the lookup structures derived from them.

    The station index is rebuilt only when stations are replaced and the bucket map only
    when trips are replaced; changing the filter touches neither.
    """

    def __init__(self, *, bucket_width: int = DEFAULT_BUCKET_MINUTES) -> None:
        self._bucket_width = bucket_width
        self._stations: tuple[Station, ...] = ()
        self._trips: tuple[Trip, ...] = ()
        self._index = StationIndex.build(())
        self._buckets: Optional[BucketMap] = None
        self.last_filter: Optional[int] = None

    @property
    def bucket_width(self) -> int:
        return self._bucket_width

    @property
    def stations(self) -> tuple[Station, ...]:
        return self._stations

    @property
    def trips(self) -> tuple[Trip, ...]:
        return self._trips

    @property
    def index(self) -> StationIndex:
        return self._index

    @property
    def buckets(self) -> Optional[BucketMap]:
        return self._buckets

    @property
    def loaded(self) -> bool:
        return bool(self._stations)

    def set_stations(self, stations: Sequence[Station]) -> None:
        self._stations = tuple(stations)
        self._index = StationIndex.build(self._stations)
        self.last_filter = None
        logger.info("Station index holds %s identifier variants for %s stations", len(self._index), len(self._stations))

    def set_trips(self, trips: Sequence[Trip]) -> None:
        self._trips = tuple(trips)
        self._buckets = bucket_trips(self._trips, self._bucket_width) if self._trips else None
        self.last_filter = None
        logger.info("Bucketed %s trips into %s-minute slots", len(self._trips), self._bucket_width)

    def is_current(self, slider_value: int) -> bool:
        return self.last_filter is not None and self.last_filter == slider_value
