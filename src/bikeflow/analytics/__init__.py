__all__ = [
    "aggregate",
    "select_trips",
    "synthesize_traffic",
    "ScaleMapper",
]

from bikeflow.analytics.scale import ScaleMapper
from bikeflow.analytics.synthetic import synthesize_traffic
from bikeflow.analytics.traffic import aggregate, select_trips
