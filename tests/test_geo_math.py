"""Tests for haversine distance and location parsing."""
import math

import pytest

from core.errors import ValidationError
from models.dispatch_entities import GeoPoint
from routing.geo_math import distance_km, format_location, parse_location, to_wkt, validate_point


def test_one_degree_of_longitude_at_equator():
    assert distance_km(GeoPoint(0, 0), GeoPoint(0, 1)) == pytest.approx(111.19, abs=0.5)


@pytest.mark.parametrize("a,b", [
    (GeoPoint(12.9716, 77.5946), GeoPoint(12.98, 77.60)),
    (GeoPoint(-33.86, 151.21), GeoPoint(51.5, -0.12)),
    (GeoPoint(89.9, 0), GeoPoint(-89.9, 180)),
])
def test_distance_is_symmetric(a, b):
    assert distance_km(a, b) == distance_km(b, a)


def test_distance_to_self_is_zero():
    p = GeoPoint(12.9716, 77.5946)
    assert distance_km(p, p) == 0


def test_antipodal_points_do_not_raise():
    assert distance_km(GeoPoint(0, 0), GeoPoint(0, 180)) == pytest.approx(math.pi * 6371, rel=1e-6)


def test_nan_propagates():
    assert math.isnan(distance_km(GeoPoint(float("nan"), 0), GeoPoint(0, 1)))


def test_parse_lat_lng_string():
    assert parse_location("12.97, 77.59") == GeoPoint(12.97, 77.59)


def test_parse_wkt_point_is_lon_lat():
    assert parse_location("POINT(77.59 12.97)") == GeoPoint(12.97, 77.59)


@pytest.mark.parametrize("text", ["", "12.97", "abc,def", "12,13,14", "95,10", "10,190"])
def test_parse_rejects_malformed(text):
    with pytest.raises(ValidationError):
        parse_location(text)


def test_validate_point_rejects_missing_and_nan():
    with pytest.raises(ValidationError):
        validate_point(None, 10)
    with pytest.raises(ValidationError):
        validate_point(float("nan"), 10)


def test_format_helpers():
    p = GeoPoint(12.5, 77.25)
    assert format_location(p) == "12.5,77.25"
    assert to_wkt(p) == "POINT(77.25 12.5)"
    assert parse_location(to_wkt(p)) == p
