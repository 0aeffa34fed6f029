from __future__ import annotations

import math
from typing import Any, Protocol


TILE_SIZE = 256
MAX_LATITUDE = 85.0511287798
SENTINEL: tuple[float, float] = (0.0, 0.0)


class CoordinateProjector(Protocol):
    def project(self, lon: Any, lat: Any) -> tuple[float, float]:
        ...


def _world_xy(lon: float, lat: float, zoom: float) -> tuple[float, float]:
    scale = TILE_SIZE * (2.0**zoom)
    siny = math.sin(math.radians(lat))
    x = (lon + 180.0) / 360.0 * scale
    y = (0.5 - math.log((1 + siny) / (1 - siny)) / (4 * math.pi)) * scale
    return x, y


class WebMercatorProjector:
    """
    Screen projection for a slippy-map viewport (Web Mercator, 256 px tiles).

    Input that cannot be projected (non-numeric, non-finite, outside the Mercator
    latitude band or [-180, 180] longitude) maps to `(0, 0)`.
    """

    def __init__(self, *, center_lon: float, center_lat: float, zoom: float, width: int, height: int) -> None:
        self.set_view(center_lon=center_lon, center_lat=center_lat, zoom=zoom)
        self.resize(width=width, height=height)

    @property
    def center(self) -> tuple[float, float]:
        return self._center_lon, self._center_lat

    @property
    def zoom(self) -> float:
        return self._zoom

    def set_view(self, *, center_lon: float, center_lat: float, zoom: float) -> None:
        self._center_lon = float(center_lon)
        self._center_lat = max(min(float(center_lat), MAX_LATITUDE), -MAX_LATITUDE)
        self._zoom = float(zoom)

    def resize(self, *, width: int, height: int) -> None:
        self._width = int(width)
        self._height = int(height)

    def project(self, lon: Any, lat: Any) -> tuple[float, float]:
        try:
            lon_f = float(lon)
            lat_f = float(lat)
        except (TypeError, ValueError):
            return SENTINEL
        if not (math.isfinite(lon_f) and math.isfinite(lat_f)):
            return SENTINEL
        if abs(lat_f) > MAX_LATITUDE or abs(lon_f) > 180.0:
            return SENTINEL

        px, py = _world_xy(lon_f, lat_f, self._zoom)
        cx, cy = _world_xy(self._center_lon, self._center_lat, self._zoom)
        return px - cx + self._width / 2.0, py - cy + self._height / 2.0
