"""Tests for nearest-neighbour route construction."""
import random

from models.dispatch_entities import GeoPoint
from routing.route_builder import DEPOT_ID, RouteBuilder, Stop


class TestRouteBuilder:
    def setup_method(self):
        self.builder = RouteBuilder()
        self.depot = GeoPoint(0, 0)

    def test_greedy_order(self):
        """A at 1 degree, C at 2, B at 3: the route walks outward A, C, B."""
        stops = [Stop("A", GeoPoint(0, 1)), Stop("B", GeoPoint(0, 3)), Stop("C", GeoPoint(0, 2))]
        route = self.builder.build_route(self.depot, stops)

        assert [stop.id for stop in route] == [DEPOT_ID, "A", "C", "B"]
        assert (route[0].lat, route[0].lng) == (0, 0)

    def test_no_stops_gives_depot_only(self):
        route = self.builder.build_route(self.depot, [])
        assert len(route) == 1
        assert route[0].id == DEPOT_ID

    def test_route_is_permutation_of_stops(self):
        rng = random.Random(42)
        stops = [Stop(f"r{i}", GeoPoint(rng.uniform(12.9, 13.0), rng.uniform(77.5, 77.6))) for i in range(25)]
        route = self.builder.build_route(GeoPoint(12.95, 77.55), stops)

        assert len(route) == len(stops) + 1
        assert route[0].id == DEPOT_ID
        assert sorted(stop.id for stop in route[1:]) == sorted(stop.id for stop in stops)

    def test_ties_go_to_first_encountered(self):
        stops = [Stop("east", GeoPoint(0, 1)), Stop("west", GeoPoint(0, -1))]
        route = self.builder.build_route(self.depot, stops)
        assert [stop.id for stop in route[1:]] == ["east", "west"]

        route = self.builder.build_route(self.depot, list(reversed(stops)))
        assert [stop.id for stop in route[1:]] == ["west", "east"]

    def test_duplicate_locations_are_all_visited(self):
        stops = [Stop("a", GeoPoint(0, 1)), Stop("b", GeoPoint(0, 1))]
        route = self.builder.build_route(self.depot, stops)
        assert [stop.id for stop in route[1:]] == ["a", "b"]
