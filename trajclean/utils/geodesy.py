"""Geodesic utilities.

Provides functions for geodesic calculations on latitude/longitude
coordinates: the haversine great-circle distance and the initial
bearing between two positions.
"""

import math

EARTH_RADIUS_M = 6371000.0


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute the great‑circle distance between two points on Earth.

    Parameters
    ----------
    lat1, lon1 : float
        Latitude and longitude of point 1 in degrees.
    lat2, lon2 : float
        Latitude and longitude of point 2 in degrees.

    Returns
    -------
    float
        Distance in metres.
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2)**2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2)**2
    # Rounding can push a marginally above 1 for antipodal points.
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def bearing(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Initial bearing from point 1 to point 2.

    Returns
    -------
    float
        Bearing in degrees in the range [0, 360).
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dlambda = math.radians(lon2 - lon1)
    y = math.sin(dlambda) * math.cos(phi2)
    x = math.cos(phi1) * math.sin(phi2) - math.sin(phi1) * math.cos(phi2) * math.cos(dlambda)
    result = math.degrees(math.atan2(y, x)) % 360.0
    # -0.0 % 360 and tiny negatives can round to exactly 360.0
    return 0.0 if result >= 360.0 else result


def bearing_delta(b1: float, b2: float) -> float:
    """Absolute turn between two bearings, folded into [0, 180]."""
    diff = abs(b2 - b1)
    if diff > 180.0:
        diff = 360.0 - diff
    return diff
