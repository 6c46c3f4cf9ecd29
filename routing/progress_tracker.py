"""Progress and ETA of a worker along a task route."""
import math
from dataclasses import dataclass
from typing import Sequence

from configurations.config import Config
from models.dispatch_entities import Eta, GeoPoint
from routing.geo_math import distance_km

ARRIVING = "arriving"
NOT_AVAILABLE = "N/A"


@dataclass(frozen=True)
class ProgressEstimate:
    progress_percent: float
    eta: Eta


def _clamp_percent(value: float) -> float:
    if not math.isfinite(value):
        return 0.0
    return max(0.0, min(100.0, value))


class ProgressTracker:
    """Projects a live position onto the nearest route vertex.

    The position is matched to the closest route point, not the closest
    point on a segment. Coarse GPS pings make the difference small, and the
    result is always clamped to [0, 100] so position noise never raises.
    """

    def __init__(self, assumed_speed_kmh: float = Config.ASSUMED_SPEED_KMH):
        self.assumed_speed_kmh = assumed_speed_kmh

    def compute_progress(self, route: Sequence[GeoPoint], position: GeoPoint,
                         previous_progress: float = 0.0) -> ProgressEstimate:
        if len(route) < 2:
            return ProgressEstimate(_clamp_percent(previous_progress), NOT_AVAILABLE)

        segments = [distance_km(a, b) for a, b in zip(route, route[1:])]
        total_distance = sum(segments)

        closest_index = min(range(len(route)), key=lambda i: distance_km(position, route[i]))
        traveled = sum(segments[:closest_index]) + distance_km(position, route[closest_index])

        if total_distance > 0:
            progress = _clamp_percent(traveled / total_distance * 100)
        else:
            progress = 0.0

        remaining = total_distance * (1 - progress / 100)
        eta_minutes = remaining / self.assumed_speed_kmh * 60
        if not math.isfinite(eta_minutes):
            return ProgressEstimate(progress, NOT_AVAILABLE)

        # Half-up to whole minutes; under half a minute is arriving
        rounded = int(math.floor(eta_minutes + 0.5))
        eta = ARRIVING if rounded <= 0 else rounded

        return ProgressEstimate(progress, eta)
