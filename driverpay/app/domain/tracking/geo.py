"""
Great-circle distance between GPS fixes.
"""

import math

from driverpay.app.schemas.trip import GeoPoint

# Mean radius of Earth in miles
EARTH_RADIUS_MILES = 3958.8


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Calculate the great-circle distance between two points on Earth.

    Args:
        lat1, lon1: First point coordinates (degrees)
        lat2, lon2: Second point coordinates (degrees)

    Returns:
        Distance in miles
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = lat2_rad - lat1_rad
    dlon = math.radians(lon2 - lon1)

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    # asin form stays precise for sub-meter deltas
    c = 2 * math.asin(min(1.0, math.sqrt(a)))

    return EARTH_RADIUS_MILES * c


def distance(a: GeoPoint, b: GeoPoint) -> float:
    """Distance in miles between two fixes. Symmetric, 0 for identical points."""
    return haversine_miles(a.lat, a.lng, b.lat, b.lng)
