"""
Haversine distance, bearing and walking-time helpers.
"""
import math
from typing import Protocol, Sequence, TypeVar

# Earth radius in meters (WGS84 approximate)
EARTH_RADIUS_M = 6371000.0
WALKING_SPEED_MPS = 1.4


class HasLatLon(Protocol):
    lat: float
    lon: float


S = TypeVar("S", bound=HasLatLon)


def haversine_distance_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Return great-circle distance between two points in meters.
    Arguments in degrees.
    """
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)
    a = math.sin(dlat / 2) ** 2 + math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_M * c


def distance_m(a: HasLatLon, b: HasLatLon) -> float:
    """Distance in meters between two objects carrying lat/lon."""
    return haversine_distance_m(a.lat, a.lon, b.lat, b.lon)


def bearing_deg(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Forward azimuth in degrees (0 = north, 90 = east) from point 1 to point 2."""
    dlon = math.radians(lon2 - lon1)
    lat1_rad = math.radians(lat1)
    lat2_rad = math.radians(lat2)
    y = math.sin(dlon) * math.cos(lat2_rad)
    x = math.cos(lat1_rad) * math.sin(lat2_rad) - math.sin(lat1_rad) * math.cos(lat2_rad) * math.cos(dlon)
    return (math.degrees(math.atan2(y, x)) + 360.0) % 360.0


def walk_time_minutes(distance_meters: float, walking_speed_mps: float = WALKING_SPEED_MPS) -> int:
    """Whole minutes to walk a distance, rounded up (any distance > 0 is at least 1 minute)."""
    if distance_meters <= 0:
        return 0
    return math.ceil(distance_meters / walking_speed_mps / 60.0)


def nearest_stop(point: HasLatLon, stops: Sequence[S]) -> S | None:
    """Closest stop by great-circle distance. First minimum wins on ties; None for no stops."""
    if not stops:
        return None
    nearest = stops[0]
    min_dist = distance_m(point, stops[0])
    for stop in stops[1:]:
        d = distance_m(point, stop)
        if d < min_dist:
            min_dist = d
            nearest = stop
    return nearest
