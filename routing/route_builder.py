"""Nearest-neighbour visiting order over a group's stops."""
from dataclasses import dataclass
from typing import Iterable, List

from loguru import logger

from models.dispatch_entities import GeoPoint
from routing.geo_math import distance_km

DEPOT_ID = "depot"


@dataclass(frozen=True)
class Stop:
    id: str
    location: GeoPoint


@dataclass(frozen=True)
class RouteStop:
    id: str
    lat: float
    lng: float

    @property
    def location(self) -> GeoPoint:
        return GeoPoint(self.lat, self.lng)


class RouteBuilder:
    """Greedy nearest-neighbour routing.

    Starting at the depot, repeatedly move to the closest unvisited stop.
    Ties go to the stop that came first in the input, so the output is
    deterministic for a given input order. O(n^2), which is fine for groups
    bounded by the report threshold. Not tour-optimal.
    """

    def build_route(self, depot: GeoPoint, stops: Iterable[Stop]) -> List[RouteStop]:
        unvisited = list(stops)
        route = [RouteStop(DEPOT_ID, depot.latitude, depot.longitude)]
        current = depot

        while unvisited:
            nearest_index = 0
            nearest_distance = float("inf")
            for i, stop in enumerate(unvisited):
                distance = distance_km(current, stop.location)
                if distance < nearest_distance:
                    nearest_distance = distance
                    nearest_index = i

            nearest = unvisited.pop(nearest_index)
            route.append(RouteStop(nearest.id, nearest.location.latitude, nearest.location.longitude))
            current = nearest.location

        logger.debug(f"Built nearest-neighbour route with {len(route) - 1} stops")
        return route
