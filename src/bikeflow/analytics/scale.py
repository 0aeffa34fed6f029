from __future__ import annotations

import math
from typing import Iterable

from bikeflow.config.models import ScaleSettings
from bikeflow.schemas.traffic import TrafficSnapshot


def _signed_sqrt(x: float) -> float:
    return -math.sqrt(-x) if x < 0 else math.sqrt(x)


def domain_for(totals: Iterable[int]) -> tuple[float, float]:
    """[0, max total]; an all-zero (or empty) input gives [0, 1]."""
    top = max(totals, default=0)
    return 0.0, float(top or 1)


class ScaleMapper:
    """
    Marker radius from traffic total, on a square-root scale so marker area tracks trips.

    The domain follows the current maximum; the range widens while a time filter is on,
    because filtered views are sparser.
    """

    def __init__(self, settings: ScaleSettings = ScaleSettings()) -> None:
        self._settings = settings
        self._domain: tuple[float, float] = (0.0, 1.0)
        self._range: tuple[float, float] = self.range_for(False)

    @property
    def domain(self) -> tuple[float, float]:
        return self._domain

    @property
    def range(self) -> tuple[float, float]:
        return self._range

    @property
    def min_radius(self) -> float:
        return self._settings.min_radius

    def range_for(self, filter_active: bool) -> tuple[float, float]:
        top = self._settings.filtered_max_radius if filter_active else self._settings.max_radius
        return self._settings.min_radius, top

    def update(self, snapshot: TrafficSnapshot) -> None:
        self._domain = domain_for(s.total_traffic for s in snapshot.stations)
        self._range = self.range_for(snapshot.filter_active)

    def scale(self, total: float) -> float:
        d0, d1 = (_signed_sqrt(v) for v in self._domain)
        r0, r1 = self._range
        span = d1 - d0
        t = (_signed_sqrt(float(total)) - d0) / span if span else 0.5
        return r0 + t * (r1 - r0)

    def radius(self, total: float) -> float:
        value = self.scale(total)
        if math.isnan(value):
            return self._settings.min_radius
        return max(value, self._settings.min_radius)

    def flow_step(self, ratio: float) -> float:
        """
        Quantize a flow ratio in [0, 1] onto the configured steps (uniform bins).
        """

        steps = self._settings.flow_steps
        if ratio is None or math.isnan(ratio):
            ratio = 0.5
        n = len(steps)
        i = int(math.floor(min(max(float(ratio), 0.0), 1.0) * n))
        return steps[min(max(i, 0), n - 1)]
