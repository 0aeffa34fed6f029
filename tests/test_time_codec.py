from __future__ import annotations

from datetime import datetime

import pandas as pd
import pytest

from bikeflow.preprocessing.time_codec import (
    format_minutes,
    minutes_since_midnight,
    parse_timestamp,
    parse_timestamp_series,
)
from bikeflow.utils.diagnostics import INVALID_INSTANT, MALFORMED_TIMESTAMP, Diagnostics


NOW = datetime(2030, 1, 1, 12, 0, 0)


def _now() -> datetime:
    return NOW


@pytest.mark.parametrize(
    ("text", "expected"),
    [
        ("3/20/2024 8:18:13 AM", datetime(2024, 3, 20, 8, 18, 13)),
        ("3/20/2024 8:18:13 PM", datetime(2024, 3, 20, 20, 18, 13)),
        ("3/20/2024 12:05:00 AM", datetime(2024, 3, 20, 0, 5, 0)),
        ("3/20/2024 12:05:00 PM", datetime(2024, 3, 20, 12, 5, 0)),
        ("3/20/2024 17:45", datetime(2024, 3, 20, 17, 45)),
        ("2024-03-20T08:18:13", datetime(2024, 3, 20, 8, 18, 13)),
        ("  3/20/2024 8:18:13 AM  ", datetime(2024, 3, 20, 8, 18, 13)),
    ],
)
def test_parse_timestamp_accepts_trip_formats(text: str, expected: datetime) -> None:
    diagnostics = Diagnostics()
    assert parse_timestamp(text, diagnostics=diagnostics, now_fn=_now) == expected
    assert diagnostics.records == []


def test_parse_timestamp_field_fallback_handles_loose_meridiem() -> None:
    # strptime needs whitespace before AM/PM and rejects hour 13 with %I.
    assert parse_timestamp("3/20/2024 8:18:13PM", now_fn=_now) == datetime(2024, 3, 20, 20, 18, 13)
    assert parse_timestamp("3/20/2024 13:05:00 PM", now_fn=_now) == datetime(2024, 3, 20, 13, 5, 0)
    assert parse_timestamp("3/20/2024 12:30:00am", now_fn=_now) == datetime(2024, 3, 20, 0, 30, 0)


@pytest.mark.parametrize("bad", ["", "   ", None, 42, "not a date", "20/3/2024"])
def test_parse_timestamp_degrades_to_now(bad) -> None:
    diagnostics = Diagnostics()
    assert parse_timestamp(bad, diagnostics=diagnostics, now_fn=_now) == NOW
    assert diagnostics.codes() == {MALFORMED_TIMESTAMP}


def test_parse_timestamp_series_mixes_fast_path_and_fallback() -> None:
    diagnostics = Diagnostics()
    out = parse_timestamp_series(
        ["3/20/2024 8:18:13 AM", "2024-03-20 09:00:00", "", "3/20/2024 8:18:13PM"],
        diagnostics=diagnostics,
        now_fn=_now,
    )

    assert out == [
        datetime(2024, 3, 20, 8, 18, 13),
        datetime(2024, 3, 20, 9, 0, 0),
        NOW,
        datetime(2024, 3, 20, 20, 18, 13),
    ]
    assert all(type(v) is datetime for v in out)
    assert diagnostics.count(MALFORMED_TIMESTAMP) == 1


def test_parse_timestamp_series_empty() -> None:
    assert parse_timestamp_series([]) == []


def test_minutes_since_midnight() -> None:
    assert minutes_since_midnight(datetime(2024, 3, 20, 20, 5)) == 1205
    assert minutes_since_midnight(datetime(2024, 3, 20, 0, 0, 59)) == 0
    assert minutes_since_midnight(datetime(2024, 3, 20, 23, 59)) == 1439


@pytest.mark.parametrize("bad", [None, "08:00", pd.NaT, 490])
def test_minutes_since_midnight_invalid_instant(bad) -> None:
    diagnostics = Diagnostics()
    assert minutes_since_midnight(bad, diagnostics=diagnostics) == 0
    assert diagnostics.codes() == {INVALID_INSTANT}


@pytest.mark.parametrize(
    ("minutes", "label"),
    [
        (490, "8:10 AM"),
        (0, "12:00 AM"),
        (720, "12:00 PM"),
        (1439, "11:59 PM"),
        (-30, "11:30 PM"),
        (1445, "12:05 AM"),
    ],
)
def test_format_minutes(minutes: int, label: str) -> None:
    assert format_minutes(minutes) == label
