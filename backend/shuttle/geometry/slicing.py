"""
Polyline slicing between waypoints and corridor-overlap classification.
Polylines are [lon, lat] vertex lists.
"""
from dataclasses import dataclass
from typing import Sequence

from shuttle.data.geo import haversine_distance_m

LngLat = tuple[float, float]

# Two routes closer than this (meters) are drawn as a shared corridor
DEFAULT_OVERLAP_TOLERANCE_M = 4.0


def _dist2(a: LngLat, lon: float, lat: float) -> float:
    # Planar squared distance in degrees; fine for picking the nearest vertex at city scale
    dlat = a[1] - lat
    dlon = a[0] - lon
    return dlat * dlat + dlon * dlon


def closest_index(line: Sequence[LngLat], lon: float, lat: float) -> int:
    """Index of the vertex on line nearest (lon, lat). First minimum wins."""
    best = 0
    best_d = _dist2(line[0], lon, lat)
    for i in range(1, len(line)):
        d = _dist2(line[i], lon, lat)
        if d < best_d:
            best_d = d
            best = i
    return best


def slice_between(line: Sequence[LngLat], start: LngLat, end: LngLat) -> list[LngLat]:
    """
    Contiguous vertices of line from the vertex nearest start to the vertex nearest end.
    Reversed when end comes first on the line, so output always runs start -> end.
    """
    if not line:
        return []
    i = closest_index(line, start[0], start[1])
    j = closest_index(line, end[0], end[1])
    if i <= j:
        return list(line[i : j + 1])
    return list(reversed(line[j : i + 1]))


def slice_loop(line: Sequence[LngLat], start: LngLat, end: LngLat) -> list[LngLat]:
    """
    Like slice_between, but a closed line (last vertex == first) is walked in its
    direction of travel, wrapping past the seam instead of running backwards.
    Open lines fall through to slice_between.
    """
    if len(line) < 3 or tuple(line[0]) != tuple(line[-1]):
        return slice_between(line, start, end)
    ring = list(line[:-1])
    i = closest_index(ring, start[0], start[1])
    j = closest_index(ring, end[0], end[1])
    if i <= j:
        return ring[i : j + 1]
    return ring[i:] + ring[: j + 1]


@dataclass
class CorridorRun:
    coordinates: list[LngLat]
    overlapping: bool


def _min_distance_m(p: LngLat, other: Sequence[LngLat]) -> float:
    return min(haversine_distance_m(p[1], p[0], q[1], q[0]) for q in other)


def split_overlaps(
    line: Sequence[LngLat],
    other: Sequence[LngLat],
    tolerance_m: float = DEFAULT_OVERLAP_TOLERANCE_M,
) -> list[CorridorRun]:
    """
    Classify each vertex of line as overlapping other (within tolerance_m of any of its
    vertices) or distinct, and group consecutive vertices of the same class into runs.
    Runs with fewer than 2 points are dropped.
    """
    if len(line) < 2:
        return []
    if len(other) < 2:
        return [CorridorRun(coordinates=list(line), overlapping=False)]

    runs: list[CorridorRun] = []
    current: list[LngLat] = []
    current_flag: bool | None = None
    for p in line:
        flag = _min_distance_m(p, other) <= tolerance_m
        if current_flag is None or flag == current_flag:
            current.append(p)
        else:
            runs.append(CorridorRun(coordinates=current, overlapping=current_flag))
            current = [p]
        current_flag = flag
    if current:
        runs.append(CorridorRun(coordinates=current, overlapping=bool(current_flag)))
    return [r for r in runs if len(r.coordinates) >= 2]
