from __future__ import annotations

from typing import Iterable

from bikeflow.preprocessing.time_codec import MINUTES_PER_DAY
from bikeflow.schemas.core import TimeWindow, Trip


BucketMap = dict[int, list[Trip]]

DEFAULT_BUCKET_MINUTES = 15


def _check_width(width: int) -> int:
    width = int(width)
    if width <= 0:
        raise ValueError("bucket width must be > 0")
    if MINUTES_PER_DAY % width != 0:
        raise ValueError("bucket width must divide 1440 (e.g., 60, 30, 15, 10, 5, 1)")
    return width


def bucket_start(minute: int, width: int = DEFAULT_BUCKET_MINUTES) -> int:
    return (minute // width) * width


def bucket_trips(trips: Iterable[Trip], width: int = DEFAULT_BUCKET_MINUTES) -> BucketMap:
    """
    Index trips by time-of-day bucket of their start and end minute.

    Every bucket in [0, 1440) exists, empty or not. A trip whose end falls in a
    different bucket than its start is listed in both.
    """

    width = _check_width(width)
    buckets: BucketMap = {minute: [] for minute in range(0, MINUTES_PER_DAY, width)}

    for trip in trips:
        start = bucket_start(trip.start_minute, width)
        end = bucket_start(trip.end_minute, width)
        if start in buckets:
            buckets[start].append(trip)
        if end != start and end in buckets:
            buckets[end].append(trip)
    return buckets


def overlapping_buckets(window: TimeWindow, width: int = DEFAULT_BUCKET_MINUTES) -> list[int]:
    width = _check_width(width)
    first = max(bucket_start(window.start, width), 0)
    last = min(window.end, MINUTES_PER_DAY - 1)
    return list(range(first, last + 1, width))


def trips_near(buckets: BucketMap, window: TimeWindow, width: int = DEFAULT_BUCKET_MINUTES) -> list[Trip]:
    """
    Trips from buckets overlapping the window, each once, in first-seen order.

    This is a superset of the trips the window includes; callers still apply
    `TimeWindow.includes`.
    """

    seen: set[int] = set()
    out: list[Trip] = []
    for minute in overlapping_buckets(window, width):
        for trip in buckets.get(minute, ()):
            marker = id(trip)
            if marker in seen:
                continue
            seen.add(marker)
            out.append(trip)
    return out
