from __future__ import annotations

from datetime import datetime, timedelta
import logging
import re
from typing import Any, Callable, Iterable, Optional

import pandas as pd

from bikeflow.utils.diagnostics import INVALID_INSTANT, MALFORMED_TIMESTAMP, Diagnostics, report


logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60

# Trip exports write e.g. "3/20/2024 8:18:13 AM".
TRIP_TIME_FORMAT = "%m/%d/%Y %I:%M:%S %p"

STANDARD_FORMATS: tuple[str, ...] = (
    TRIP_TIME_FORMAT,
    "%m/%d/%Y %I:%M %p",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
)

_TIME_PART = re.compile(r"(\d+):(\d+):(\d+)\s*(AM|PM)", re.IGNORECASE)


def _parse_standard(text: str) -> Optional[datetime]:
    for fmt in STANDARD_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _parse_fields(text: str) -> Optional[datetime]:
    """
    Field-by-field parse of `M/D/YYYY h:mm:ss AM|PM`.

    Tolerates what strptime rejects, e.g. a missing space before the meridiem or
    an hour written on the 24-hour clock ("13:05:00 PM").
    """

    date_part, _, time_part = text.partition(" ")
    pieces = date_part.split("/")
    if len(pieces) != 3:
        return None
    match = _TIME_PART.search(time_part)
    if match is None:
        return None

    try:
        month, day, year = (int(p) for p in pieces)
    except ValueError:
        return None

    hours, minutes, seconds, meridiem = match.groups()
    hour = int(hours)
    if meridiem.upper() == "PM" and hour < 12:
        hour += 12
    elif meridiem.upper() == "AM" and hour == 12:
        hour = 0

    try:
        return datetime(year, month, day, hour, int(minutes), int(seconds))
    except ValueError:
        return None


def parse_timestamp(
    text: Any,
    *,
    diagnostics: Optional[Diagnostics] = None,
    now_fn: Callable[[], datetime] = datetime.now,
) -> datetime:
    """
    Parse a trip timestamp; never raises.

    Unusable input yields the current wall-clock time and a `MalformedTimestamp` diagnostic.
    """

    if not isinstance(text, str) or not text.strip():
        report(diagnostics, MALFORMED_TIMESTAMP, f"Invalid date string: {text!r}", logger=logger)
        return now_fn()

    value = text.strip()
    parsed = _parse_standard(value)
    if parsed is None:
        parsed = _parse_fields(value)
    if parsed is None:
        report(diagnostics, MALFORMED_TIMESTAMP, f"Could not parse timestamp: {value!r}", logger=logger)
        return now_fn()
    return parsed


def parse_timestamp_series(
    values: Iterable[Any],
    *,
    diagnostics: Optional[Diagnostics] = None,
    now_fn: Callable[[], datetime] = datetime.now,
) -> list[datetime]:
    """
    Parse a column of trip timestamps.

    The common trip format is parsed in one vectorized pass; anything pandas cannot
    read goes through `parse_timestamp` one value at a time.
    """

    raw = pd.Series(list(values), dtype="object")
    if raw.empty:
        return []

    parsed = pd.to_datetime(raw.where(raw.map(lambda v: isinstance(v, str))), format=TRIP_TIME_FORMAT, errors="coerce")

    out: list[datetime] = []
    for original, ts in zip(raw.tolist(), parsed.tolist()):
        if ts is pd.NaT or pd.isna(ts):
            out.append(parse_timestamp(original, diagnostics=diagnostics, now_fn=now_fn))
        else:
            out.append(ts.to_pydatetime())
    return out


def minutes_since_midnight(instant: Any, *, diagnostics: Optional[Diagnostics] = None) -> int:
    if not isinstance(instant, datetime) or pd.isna(instant):
        report(diagnostics, INVALID_INSTANT, f"Invalid instant: {instant!r}", logger=logger)
        return 0
    return instant.hour * 60 + instant.minute


def format_minutes(minutes: int | float) -> str:
    """
    Render a minute-of-day as a short clock string, e.g. 490 -> "8:10 AM".

    Values outside [0, 1440) roll over like ordinary clock arithmetic.
    """

    moment = datetime(2000, 1, 1) + timedelta(minutes=float(minutes))
    hour12 = moment.hour % 12 or 12
    meridiem = "AM" if moment.hour < 12 else "PM"
    return f"{hour12}:{moment.minute:02d} {meridiem}"
