"""Utilitaires géographiques / Geographic utilities."""

import math

EARTH_RADIUS_M = 6_371_000.0


def _rad(deg: float) -> float:
    return deg * math.pi / 180


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distance Haversine en metres / Haversine distance in meters."""
    dlat = _rad(lat2 - lat1)
    dlon = _rad(lon2 - lon1)
    a = math.sin(dlat / 2) ** 2 + math.cos(_rad(lat1)) * math.cos(_rad(lat2)) * math.sin(dlon / 2) ** 2
    return EARTH_RADIUS_M * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def distance_meters(a, b) -> float:
    """Distance entre deux positions / Distance between two positions (anything with latitude/longitude)."""
    return haversine_m(a.latitude, a.longitude, b.latitude, b.longitude)


def coord_key(lat: float, lon: float, precision: int = 4) -> str:
    """Cle de cache arrondie (~11 m a 4 decimales) / Rounded cache key (~11 m at 4 decimals)."""
    return f"{round(lat, precision):.{precision}f},{round(lon, precision):.{precision}f}"
