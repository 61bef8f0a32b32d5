"""
Mapbox Directions client: walking directions with steps and road-following
route geometry. In-memory TTL caches; upstream failures return None.
"""
import hashlib
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any

import httpx

logger = logging.getLogger(__name__)

MAPBOX_DIRECTIONS_BASE = "https://api.mapbox.com/directions/v5/mapbox"
ROUTE_CACHE_TTL_SECONDS = 6 * 60 * 60
WALK_CACHE_TTL_SECONDS = 15 * 60
DIRECTIONS_TIMEOUT_SECONDS = 10.0
MAX_WAYPOINTS = 25

LngLat = tuple[float, float]


class _TTLCache:
    """Simple in-memory TTL cache. One TTL per key (from first set)."""

    def __init__(self, ttl_seconds: float):
        self._ttl = ttl_seconds
        self._store: dict[str, tuple[Any, float]] = {}

    def get(self, key: str) -> Any | None:
        entry = self._store.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if time.monotonic() >= expires_at:
            del self._store[key]
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        self._store[key] = (value, time.monotonic() + self._ttl)


@dataclass
class WalkRoute:
    duration_sec: float
    distance_m: float
    coordinates: list[LngLat]
    steps: list[dict] = field(default_factory=list)


def _round5(c: LngLat) -> LngLat:
    return (round(c[0], 5), round(c[1], 5))


def walk_cache_key(start: LngLat, end: LngLat) -> str:
    a, b = _round5(start), _round5(end)
    return f"{a[0]},{a[1]}-{b[0]},{b[1]}"


def waypoints_hash(coords: list[LngLat]) -> str:
    raw = json.dumps([list(c) for c in coords], separators=(",", ":"))
    return hashlib.sha1(raw.encode("utf-8")).hexdigest()[:16]


def chunk_waypoints(coords: list[LngLat], max_waypoints: int = MAX_WAYPOINTS) -> list[list[LngLat]]:
    """Split into requests of at most max_waypoints; consecutive chunks share one waypoint."""
    if len(coords) <= max_waypoints:
        return [list(coords)]
    step = max_waypoints - 1
    chunks = []
    for i in range(0, len(coords) - 1, step):
        chunks.append(list(coords[i : i + max_waypoints]))
    return chunks


def _normalize_steps(route: dict[str, Any]) -> list[dict]:
    legs = route.get("legs") or []
    raw_steps = (legs[0].get("steps") if legs and isinstance(legs[0], dict) else None) or []
    steps = []
    for s in raw_steps:
        if not isinstance(s, dict):
            continue
        maneuver = s.get("maneuver") or {}
        steps.append({
            "instruction": maneuver.get("instruction") or "Continue",
            "distance_meters": float(s.get("distance") or 0),
            "duration_sec": float(s.get("duration") or 0),
        })
    return steps


class DirectionsClient:
    """Mapbox Directions with a 15 min walking cache and 6 h route-geometry cache."""

    def __init__(self, token: str, base_url: str = MAPBOX_DIRECTIONS_BASE):
        self._token = token
        self._base = base_url.rstrip("/")
        self._walk_cache = _TTLCache(WALK_CACHE_TTL_SECONDS)
        self._route_cache = _TTLCache(ROUTE_CACHE_TTL_SECONDS)

    def _get(self, profile: str, coords: list[LngLat], steps: bool) -> dict[str, Any]:
        coord_str = ";".join(f"{c[0]},{c[1]}" for c in coords)
        url = f"{self._base}/{profile}/{coord_str}"
        params = {
            "geometries": "geojson",
            "overview": "full",
            "steps": "true" if steps else "false",
            "access_token": self._token,
        }
        with httpx.Client(timeout=DIRECTIONS_TIMEOUT_SECONDS) as client:
            resp = client.get(url, params=params)
            resp.raise_for_status()
            data = resp.json()
        routes = data.get("routes") or []
        if not routes or not (routes[0].get("geometry") or {}).get("coordinates"):
            raise ValueError("Invalid Mapbox Directions response")
        return routes[0]

    def walking(self, start: LngLat, end: LngLat) -> WalkRoute | None:
        """Walking route between two [lon, lat] points, or None when directions are unavailable."""
        key = walk_cache_key(start, end)
        cached = self._walk_cache.get(key)
        if cached is not None:
            return cached
        try:
            route = self._get("walking", [start, end], steps=True)
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.warning("telemetry directions_walk_error key=%s error=%s", key, str(e))
            return None
        result = WalkRoute(
            duration_sec=float(route.get("duration") or 0),
            distance_m=float(route.get("distance") or 0),
            coordinates=[(float(c[0]), float(c[1])) for c in route["geometry"]["coordinates"]],
            steps=_normalize_steps(route),
        )
        self._walk_cache.set(key, result)
        return result

    def route_geometry(self, route_id: str, waypoints: list[LngLat]) -> list[LngLat] | None:
        """Road-following driving geometry through the route's waypoints, or None on failure."""
        if len(waypoints) < 2:
            return None
        key = f"{route_id}:{waypoints_hash(waypoints)}"
        cached = self._route_cache.get(key)
        if cached is not None:
            return cached
        coords: list[LngLat] = []
        try:
            for i, chunk in enumerate(chunk_waypoints(waypoints)):
                route = self._get("driving", chunk, steps=False)
                chunk_coords = [(float(c[0]), float(c[1])) for c in route["geometry"]["coordinates"]]
                coords.extend(chunk_coords if i == 0 else chunk_coords[1:])
        except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
            logger.warning("telemetry directions_route_error route_id=%s error=%s", route_id, str(e))
            return None
        self._route_cache.set(key, coords)
        logger.info("telemetry route_geometry_fetched route_id=%s points=%s", route_id, len(coords))
        return coords
