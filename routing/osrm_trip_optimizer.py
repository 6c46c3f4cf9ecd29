"""Optimise a task's visiting order with the OSRM trip service."""
from dataclasses import dataclass, field
from typing import Dict, List

import requests
from loguru import logger

from configurations.config import Config
from core.errors import ExternalServiceError
from models.dispatch_entities import GeoPoint


@dataclass
class OptimizedTrip:
    order: List[int]
    path: List[GeoPoint] = field(default_factory=list)
    distance_m: float = 0.0
    duration_s: float = 0.0


class OSRMTripOptimizer:
    """Client for ``/trip/v1/driving``, pinned to start at the first waypoint.

    Every failure mode (timeout, connection error, non-Ok code, malformed
    payload) surfaces as ExternalServiceError so the caller can fall back to
    its own route.
    """

    def __init__(self, osrm_url: str = Config.OSRM_URL, timeout: float = Config.OSRM_TIMEOUT_SECONDS):
        self.osrm_url = osrm_url.rstrip('/')
        self.timeout = timeout

    def optimize(self, waypoints: List[GeoPoint]) -> OptimizedTrip:
        if len(waypoints) < 2:
            return OptimizedTrip(order=list(range(len(waypoints))))

        # Format coordinates for OSRM (lon,lat)
        coord_string = ";".join(f"{p.longitude},{p.latitude}" for p in waypoints)
        url = f"{self.osrm_url}/trip/v1/driving/{coord_string}"
        params = {
            'source': 'first',
            'destination': 'any',
            'roundtrip': 'false',
            'geometries': 'geojson',
            'overview': 'full'
        }

        try:
            response = requests.get(url, params=params, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            raise ExternalServiceError(f"OSRM trip request failed: {e}") from e

        if data.get('code') != 'Ok':
            raise ExternalServiceError(f"OSRM returned error: {data.get('message', data.get('code', 'Unknown error'))}")

        return self._process_trip_response(data, len(waypoints))

    def _process_trip_response(self, data: Dict, expected: int) -> OptimizedTrip:
        try:
            osrm_waypoints = data['waypoints']
            trip = data['trips'][0]
            order = sorted(range(len(osrm_waypoints)), key=lambda i: osrm_waypoints[i]['waypoint_index'])
            path = [GeoPoint(lat, lon) for lon, lat in trip['geometry']['coordinates']]
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise ExternalServiceError(f"Malformed OSRM trip response: {e}") from e

        if len(data['trips']) != 1:
            raise ExternalServiceError("OSRM split the waypoints into several trips")
        if len(order) != expected or order[0] != 0:
            raise ExternalServiceError("OSRM trip does not start at the worker position")

        logger.info(f"OSRM optimised {expected - 1} stops: {trip.get('distance', 0):.0f}m")
        return OptimizedTrip(
            order=order,
            path=path,
            distance_m=float(trip.get('distance', 0)),
            duration_s=float(trip.get('duration', 0))
        )
