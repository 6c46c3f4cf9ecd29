"""Great-circle distance and location parsing helpers."""
import math
import re
from typing import Any

from core.errors import ValidationError
from models.dispatch_entities import GeoPoint

EARTH_RADIUS_KM = 6371.0

_WKT_POINT = re.compile(r"^\s*POINT\s*\(\s*([^\s()]+)\s+([^\s()]+)\s*\)\s*$", re.IGNORECASE)


def distance_km(a: GeoPoint, b: GeoPoint) -> float:
    """Haversine distance in kilometres. NaN coordinates give NaN, never an exception."""
    lat1, lon1, lat2, lon2 = map(math.radians, [a.latitude, a.longitude, b.latitude, b.longitude])

    dlat = lat2 - lat1
    dlon = lon2 - lon1
    h = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    # Rounding can push h a hair past 1 for antipodal points
    h = min(h, 1.0)

    return 2 * EARTH_RADIUS_KM * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def validate_point(latitude: Any, longitude: Any) -> GeoPoint:
    """Build a GeoPoint, rejecting missing, non-numeric or out-of-range values."""
    if latitude is None or longitude is None:
        raise ValidationError("Latitude and longitude are required")
    try:
        lat, lng = float(latitude), float(longitude)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid coordinates: {latitude!r}, {longitude!r}")

    if not (math.isfinite(lat) and math.isfinite(lng)):
        raise ValidationError(f"Invalid coordinates: {latitude!r}, {longitude!r}")
    if not -90.0 <= lat <= 90.0:
        raise ValidationError(f"Latitude out of range: {lat}")
    if not -180.0 <= lng <= 180.0:
        raise ValidationError(f"Longitude out of range: {lng}")
    return GeoPoint(lat, lng)


def parse_location(location: str) -> GeoPoint:
    """Parse ``"lat,lng"`` or WKT ``"POINT(lon lat)"``."""
    if not location or not location.strip():
        raise ValidationError("Location is required")

    match = _WKT_POINT.match(location)
    if match:
        lon, lat = match.groups()
        return validate_point(lat, lon)

    parts = [part.strip() for part in location.split(",")]
    if len(parts) != 2:
        raise ValidationError(f'Invalid location format: {location}. Expected: "lat,lng"')
    return validate_point(parts[0], parts[1])


def format_location(point: GeoPoint) -> str:
    return f"{point.latitude},{point.longitude}"


def to_wkt(point: GeoPoint) -> str:
    return f"POINT({point.longitude} {point.latitude})"
