"""
Interpolation along a route polyline for vehicle animation.
Precomputes cumulative Haversine distances once per geometry; answers
point_at(d) and bearing_at(d). Routes are closed loops unless closed=False.
"""
import bisect
import logging
from typing import Sequence

from shuttle.data.geo import bearing_deg, haversine_distance_m

logger = logging.getLogger(__name__)

LngLat = tuple[float, float]


def cumulative_distances(coords: Sequence[LngLat]) -> list[float]:
    """Cumulative meters from the start to each vertex; cumul[0] = 0."""
    cumul = [0.0]
    for (lon1, lat1), (lon2, lat2) in zip(coords, coords[1:]):
        cumul.append(cumul[-1] + haversine_distance_m(lat1, lon1, lat2, lon2))
    return cumul


def _bearing(a: LngLat, b: LngLat) -> float:
    return bearing_deg(a[1], a[0], b[1], b[0])


class RouteInterpolator:
    def __init__(self, coords: Sequence[LngLat], cumul: list[float], closed: bool = True):
        self.coords = [tuple(c) for c in coords]
        self.cumulative_distances = cumul
        self.total_length_m = cumul[-1]
        self.closed = closed

    def _normalize(self, distance_m: float) -> float:
        total = self.total_length_m
        if total <= 0:
            return 0.0
        if self.closed:
            # Python's % already maps negatives into [0, total)
            return distance_m % total
        return min(max(distance_m, 0.0), total)

    def _segment_index(self, d: float) -> int:
        """Index i of the segment [i, i+1] bracketing d (first i with cumul[i+1] >= d)."""
        k = bisect.bisect_left(self.cumulative_distances, d, 1)
        return min(k, len(self.coords) - 1) - 1

    def point_at(self, distance_m: float) -> LngLat:
        d = self._normalize(distance_m)
        c = self.coords
        if d <= 0:
            return c[0]
        if d >= self.total_length_m:
            return c[-1]
        i = self._segment_index(d)
        cumul = self.cumulative_distances
        t = (d - cumul[i]) / (cumul[i + 1] - cumul[i])
        return (
            c[i][0] + t * (c[i + 1][0] - c[i][0]),
            c[i][1] + t * (c[i + 1][1] - c[i][1]),
        )

    def bearing_at(self, distance_m: float) -> float:
        d = self._normalize(distance_m)
        c = self.coords
        if d <= 0:
            return _bearing(c[0], c[1])
        if d >= self.total_length_m:
            return _bearing(c[-2], c[-1])
        i = self._segment_index(d)
        return _bearing(c[i], c[i + 1])

    def nearest_vertex_distance(self, lon: float, lat: float) -> float:
        """Distance along the route of the vertex closest to (lon, lat)."""
        best_i = 0
        best_d = float("inf")
        for i, (vlon, vlat) in enumerate(self.coords):
            d = haversine_distance_m(lat, lon, vlat, vlon)
            if d < best_d:
                best_d = d
                best_i = i
        return self.cumulative_distances[best_i]


_cache: dict[tuple, list[float]] = {}


def geometry_fingerprint(coords: Sequence[LngLat]) -> tuple:
    first = tuple(coords[0])
    last = tuple(coords[-1])
    return (len(coords), first, last, hash(tuple(tuple(c) for c in coords)))


def close_loop(coords: Sequence[LngLat]) -> list[LngLat]:
    """coords with the first vertex appended when the line does not already end where it starts."""
    points = [tuple(c) for c in coords]
    if len(points) >= 2 and points[0] != points[-1]:
        points.append(points[0])
    return points


def get_route_interpolator(coords: Sequence[LngLat] | None, closed: bool = True) -> RouteInterpolator | None:
    """
    Interpolator for a polyline, reusing the cumulative-distance table of any geometry
    with the same fingerprint. None for fewer than 2 points (caller uses raw coordinates).
    """
    if not coords or len(coords) < 2:
        return None
    key = geometry_fingerprint(coords)
    cumul = _cache.get(key)
    if cumul is None:
        cumul = cumulative_distances(coords)
        _cache[key] = cumul
        logger.info("telemetry interpolator_built points=%s length_m=%.1f", len(coords), cumul[-1])
    return RouteInterpolator(coords, cumul, closed=closed)


def clear_interpolator_cache() -> None:
    _cache.clear()


def cached_geometry_count() -> int:
    return len(_cache)
