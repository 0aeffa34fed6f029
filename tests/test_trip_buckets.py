from __future__ import annotations

import pytest

from bikeflow.analytics.traffic import select_trips
from bikeflow.preprocessing.trip_buckets import bucket_start, bucket_trips, overlapping_buckets, trips_near
from bikeflow.schemas.core import TimeWindow


def test_all_buckets_exist_even_when_empty() -> None:
    buckets = bucket_trips([], 15)
    assert len(buckets) == 96
    assert min(buckets) == 0 and max(buckets) == 1425
    assert all(v == [] for v in buckets.values())


def test_trip_listed_in_start_and_end_bucket(make_trip) -> None:
    crossing = make_trip("1", "2", "08:05", "08:20")
    inside = make_trip("1", "2", "08:01", "08:09")
    buckets = bucket_trips([crossing, inside], 15)

    assert buckets[480] == [crossing, inside]
    assert buckets[495] == [crossing]


@pytest.mark.parametrize("width", [0, -15, 7, 1000])
def test_invalid_width_rejected(width: int) -> None:
    with pytest.raises(ValueError):
        bucket_trips([], width)


def test_bucket_start() -> None:
    assert bucket_start(0) == 0
    assert bucket_start(14) == 0
    assert bucket_start(15) == 15
    assert bucket_start(499, 60) == 480


def test_overlapping_buckets_clip_to_day() -> None:
    assert overlapping_buckets(TimeWindow(center=10), 15) == [0, 15, 30, 45, 60]
    assert overlapping_buckets(TimeWindow(center=1430), 60)[-1] == 1380


def test_trips_near_deduplicates_in_first_seen_order(make_trip) -> None:
    a = make_trip("1", "2", "08:05", "08:50")
    b = make_trip("2", "1", "08:20", "08:25")
    buckets = bucket_trips([a, b], 15)

    assert trips_near(buckets, TimeWindow(center=500), 15) == [a, b]


def test_bucketed_selection_matches_linear_scan(make_trip) -> None:
    trips = []
    for hour in range(24):
        for minute in (0, 7, 19, 33, 59):
            end_minute = (hour * 60 + minute + 37) % 1440
            trips.append(
                make_trip(
                    "1",
                    "2",
                    f"{hour:02d}:{minute:02d}",
                    f"{end_minute // 60:02d}:{end_minute % 60:02d}",
                )
            )

    for width in (1, 15, 60):
        buckets = bucket_trips(trips, width)
        for center in (0, 59, 60, 500, 719, 1380, 1439):
            window = TimeWindow(center=center)
            linear = select_trips(trips, window)
            bucketed = select_trips(trips, window, buckets=buckets, bucket_width=width)
            assert sorted(map(id, bucketed)) == sorted(map(id, linear))
