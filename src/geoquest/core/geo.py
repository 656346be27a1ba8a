from __future__ import annotations
from dataclasses import dataclass
from math import asin, atan2, cos, degrees, radians, sin, sqrt

"""
Geospatial helpers.

Spherical-Earth math only: great-circle distance for range checks and history
statistics, and forward projection for placing generated checkpoints.
"""

EARTH_RADIUS_M = 6_371_000


@dataclass(frozen=True)
class GeoPoint:
    """A latitude/longitude pair in decimal degrees."""

    lat: float
    lon: float


def haversine_m(a: GeoPoint, b: GeoPoint) -> float:
    """Compute great-circle distance in meters between two points."""
    lat1 = radians(a.lat)
    lon1 = radians(a.lon)
    lat2 = radians(b.lat)
    lon2 = radians(b.lon)

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    h = sin(dlat / 2) ** 2 + cos(lat1) * cos(lat2) * sin(dlon / 2) ** 2
    # Rounding can push h slightly past 1 near antipodal points.
    h = min(1.0, max(0.0, h))
    return 2 * EARTH_RADIUS_M * asin(sqrt(h))


def destination_point(origin: GeoPoint, bearing_rad: float, distance_m: float) -> GeoPoint:
    """Project `distance_m` from `origin` along `bearing_rad` (clockwise from north)."""
    lat1 = radians(origin.lat)
    lon1 = radians(origin.lon)
    delta = float(distance_m) / EARTH_RADIUS_M

    sin_lat2 = sin(lat1) * cos(delta) + cos(lat1) * sin(delta) * cos(bearing_rad)
    lat2 = asin(min(1.0, max(-1.0, sin_lat2)))
    lon2 = lon1 + atan2(
        sin(bearing_rad) * sin(delta) * cos(lat1),
        cos(delta) - sin(lat1) * sin(lat2),
    )

    lon_deg = (degrees(lon2) + 540.0) % 360.0 - 180.0
    return GeoPoint(lat=degrees(lat2), lon=lon_deg)
