"""Geospatial utilities: great-circle distance and circular geofences."""
import math
from typing import NamedTuple, Optional

from sealtrack.errors import ValidationError

EARTH_RADIUS_M = 6_371_000.0


class Coordinate(NamedTuple):
    """A WGS84 point in decimal degrees."""

    latitude: float
    longitude: float


def validate_coordinate(point: Coordinate) -> Coordinate:
    """Raise ValidationError unless lat is in [-90, 90] and lon in [-180, 180]."""
    lat, lon = point
    if lat is None or lon is None:
        raise ValidationError("Latitude and longitude are required")
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise ValidationError(f"Non-finite coordinate ({lat}, {lon})")
    if not -90.0 <= lat <= 90.0:
        raise ValidationError(f"Latitude {lat} out of range [-90, 90]")
    if not -180.0 <= lon <= 180.0:
        raise ValidationError(f"Longitude {lon} out of range [-180, 180]")
    return Coordinate(float(lat), float(lon))


def coordinate_or_none(lat: Optional[float], lon: Optional[float]) -> Optional[Coordinate]:
    """Build a Coordinate from nullable columns; None when either half is missing."""
    if lat is None or lon is None:
        return None
    return Coordinate(float(lat), float(lon))


def distance(a: Coordinate, b: Coordinate) -> float:
    """
    Haversine distance in meters between two points.

    Uses the mean Earth radius (6,371,000 m).
    """
    lat1, lon1 = validate_coordinate(a)
    lat2, lon2 = validate_coordinate(b)

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    h = (
        math.sin(d_phi / 2) ** 2
        + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    )
    # clamp: rounding can push h a hair above 1 for antipodal points
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(max(0.0, 1 - h)))
    return EARTH_RADIUS_M * c


def within_geofence(point: Coordinate, target: Coordinate, radius_m: float) -> bool:
    """True iff point lies inside (or exactly on) the circle around target."""
    if radius_m is None or radius_m < 0:
        raise ValidationError(f"Invalid geofence radius {radius_m}")
    return distance(point, target) <= radius_m
