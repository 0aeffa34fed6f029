from __future__ import annotations

import csv
import io
import logging
from typing import Optional

from bikeflow.config.models import TripColumnSettings
from bikeflow.ingestion.http import DataSourceError, HttpFetcher
from bikeflow.preprocessing.time_codec import parse_timestamp_series
from bikeflow.schemas.core import Trip
from bikeflow.utils.diagnostics import (
    MALFORMED_ROW,
    MISSING_REQUIRED_COLUMN,
    SOURCE_UNAVAILABLE,
    Diagnostics,
    report,
)


logger = logging.getLogger(__name__)


class MissingRequiredColumnError(ValueError):
    def __init__(self, missing: list[str]) -> None:
        super().__init__(f"Missing required columns in trip table: {missing}")
        self.missing = missing


def _required(columns: TripColumnSettings) -> list[str]:
    return [columns.start_station_id, columns.end_station_id, columns.started_at, columns.ended_at]


def parse_trip_table(
    text: str,
    *,
    columns: TripColumnSettings = TripColumnSettings(),
    diagnostics: Optional[Diagnostics] = None,
) -> list[Trip]:
    """
    Parse the trip export (CSV with a header row) into `Trip` records.

    Raises `MissingRequiredColumnError` when a required header is absent and `csv.Error`
    when the text is not readable CSV (e.g. a field over the csv size limit). Blank lines
    are ignored; rows too short to hold every required column are skipped one by one.
    """

    reader = csv.reader(io.StringIO(text.lstrip("\ufeff")))
    header = [h.strip() for h in next(reader, [])]

    required = _required(columns)
    missing = [name for name in required if name not in header]
    if missing:
        raise MissingRequiredColumnError(missing)

    start_idx, end_idx, started_idx, ended_idx = (header.index(name) for name in required)
    min_len = max(start_idx, end_idx, started_idx, ended_idx) + 1
    logger.debug(
        "CSV column indices: start_station_id=%s end_station_id=%s started_at=%s ended_at=%s",
        start_idx,
        end_idx,
        started_idx,
        ended_idx,
    )

    start_ids: list[str] = []
    end_ids: list[str] = []
    started_raw: list[str] = []
    ended_raw: list[str] = []
    short_rows = 0

    for line_no, row in enumerate(reader, start=2):
        if not row or not any(cell.strip() for cell in row):
            continue
        if len(row) < min_len:
            short_rows += 1
            logger.debug("Skipping malformed line %s", line_no)
            continue
        start_ids.append(row[start_idx].strip())
        end_ids.append(row[end_idx].strip())
        started_raw.append(row[started_idx])
        ended_raw.append(row[ended_idx])

    if short_rows:
        report(diagnostics, MALFORMED_ROW, f"Skipped {short_rows} rows with too few columns", logger=logger)

    started = parse_timestamp_series(started_raw, diagnostics=diagnostics)
    ended = parse_timestamp_series(ended_raw, diagnostics=diagnostics)

    trips = [
        Trip(start_station_id=s, end_station_id=e, started_at=a, ended_at=b)
        for s, e, a, b in zip(start_ids, end_ids, started, ended)
    ]
    logger.info("Successfully parsed %s trips", len(trips))
    return trips


class TripSource:
    def __init__(
        self,
        fetcher: HttpFetcher,
        url: str,
        *,
        columns: TripColumnSettings = TripColumnSettings(),
        diagnostics: Optional[Diagnostics] = None,
    ) -> None:
        self._fetcher = fetcher
        self._url = url
        self._columns = columns
        self._diagnostics = diagnostics

    def load(self) -> list[Trip]:
        """Fetch and parse the trip export; any failure yields an empty list."""
        try:
            text = self._fetcher.get_text(self._url)
        except DataSourceError as e:
            report(self._diagnostics, SOURCE_UNAVAILABLE, f"Error loading trip data: {e}", level="error", logger=logger)
            return []

        try:
            return parse_trip_table(text, columns=self._columns, diagnostics=self._diagnostics)
        except MissingRequiredColumnError as e:
            report(self._diagnostics, MISSING_REQUIRED_COLUMN, str(e), level="error", logger=logger)
            return []
        except csv.Error as e:
            report(self._diagnostics, MALFORMED_ROW, f"Unreadable trip table: {e}", level="error", logger=logger)
            return []
