"""Great-circle distance helpers for delivery radius checks"""

import math
from typing import Optional

EARTH_RADIUS_KM = 6371.0


def validate_coordinates(latitude, longitude) -> bool:
    """True when both values are finite numbers inside the valid ranges"""
    if isinstance(latitude, bool) or isinstance(longitude, bool):
        return False
    if not isinstance(latitude, (int, float)) or not isinstance(longitude, (int, float)):
        return False
    if math.isnan(latitude) or math.isnan(longitude):
        return False
    return -90 <= latitude <= 90 and -180 <= longitude <= 180


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distance in kilometres, rounded to one decimal"""
    d_lat = math.radians(lat2 - lat1)
    d_lon = math.radians(lon2 - lon1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lon / 2) ** 2
    )
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return round(EARTH_RADIUS_KM * c, 1)


def within_radius(
    origin_lat: Optional[float],
    origin_lon: Optional[float],
    radius_km: Optional[float],
    latitude: float,
    longitude: float,
):
    """
    Returns (inside, distance_km). When the origin or radius is not
    configured every point is inside and the distance is None.
    """
    if origin_lat is None or origin_lon is None or not radius_km:
        return True, None
    distance = haversine_km(origin_lat, origin_lon, latitude, longitude)
    return distance <= radius_km, distance
