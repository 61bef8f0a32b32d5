"""
Read-only transit network: stops and routes keyed by id, plus per-route polylines.
Curated polylines are replaced when road-following geometry is fetched.
"""
import json
import logging
from pathlib import Path

from shuttle.data.transit import ROUTE_CONFIGS, ROUTE_POLYLINES
from shuttle.journey.models import Route, RouteStop, Stop

logger = logging.getLogger(__name__)

LngLat = tuple[float, float]


class TransitNetwork:
    """Stops and routes loaded once from static configuration; never mutated except for fetched geometry."""

    def __init__(self, routes: list[Route], polylines: dict[str, list[LngLat]] | None = None):
        self._routes: dict[str, Route] = {r.id: r for r in routes}
        self._stops: dict[str, Stop] = {}
        self._routes_by_stop: dict[str, list[str]] = {}
        for route in routes:
            for rs in route.ordered_stops:
                self._stops.setdefault(rs.stop.id, rs.stop)
                self._routes_by_stop.setdefault(rs.stop.id, []).append(route.id)
        self._curated: dict[str, list[LngLat]] = {k: list(v) for k, v in (polylines or {}).items()}
        self._fetched: dict[str, list[LngLat]] = {}

    @classmethod
    def from_config(
        cls,
        route_configs: list[dict] = ROUTE_CONFIGS,
        polylines: dict[str, list[LngLat]] = ROUTE_POLYLINES,
    ) -> "TransitNetwork":
        routes = []
        for rc in route_configs:
            ordered = sorted(rc["stops"], key=lambda s: s["order"])
            routes.append(
                Route(
                    id=rc["id"],
                    name=rc["name"],
                    color=rc["color"],
                    ordered_stops=tuple(
                        RouteStop(
                            stop=Stop(id=s["id"], name=s["name"], lat=s["lat"], lon=s["lon"]),
                            order=s["order"],
                        )
                        for s in ordered
                    ),
                )
            )
        return cls(routes, polylines)

    @property
    def stops(self) -> list[Stop]:
        return list(self._stops.values())

    @property
    def routes(self) -> list[Route]:
        return list(self._routes.values())

    def get_stop(self, stop_id: str) -> Stop | None:
        return self._stops.get(stop_id)

    def get_route(self, route_id: str) -> Route | None:
        return self._routes.get(route_id)

    def routes_for_stop(self, stop_id: str) -> list[Route]:
        return [self._routes[rid] for rid in self._routes_by_stop.get(stop_id, [])]

    def shared_route(self, from_stop_id: str, to_stop_id: str) -> Route | None:
        """First route (in configuration order) serving both stops."""
        to_routes = set(self._routes_by_stop.get(to_stop_id, []))
        for rid in self._routes_by_stop.get(from_stop_id, []):
            if rid in to_routes:
                return self._routes[rid]
        return None

    def stops_between(self, route_id: str, from_stop_id: str, to_stop_id: str) -> list[str] | None:
        """
        Stop ids ridden from from_stop_id to to_stop_id (inclusive), following the loop order.
        None when either stop is not on the route.
        """
        route = self._routes.get(route_id)
        if route is None:
            return None
        ids = route.stop_ids
        if from_stop_id not in ids or to_stop_id not in ids:
            return None
        i, j = ids.index(from_stop_id), ids.index(to_stop_id)
        if i <= j:
            return ids[i : j + 1]
        return ids[i:] + ids[: j + 1]

    def polyline(self, route_id: str) -> list[LngLat] | None:
        """Fetched road geometry when available, else the curated polyline."""
        return self._fetched.get(route_id) or self._curated.get(route_id)

    def has_fetched_geometry(self, route_id: str) -> bool:
        return route_id in self._fetched

    def waypoints(self, route_id: str) -> list[LngLat]:
        """Stop coordinates in order, returning to the first stop to close the loop."""
        route = self._routes.get(route_id)
        if route is None:
            return []
        points = [(rs.stop.lon, rs.stop.lat) for rs in route.ordered_stops]
        return points + points[:1] if len(points) > 1 else points

    def set_route_geometry(self, route_id: str, coords: list[LngLat]) -> None:
        if route_id not in self._routes:
            raise KeyError(route_id)
        if len(coords) < 2:
            logger.warning("telemetry route_geometry_ignored route_id=%s points=%s", route_id, len(coords))
            return
        self._fetched[route_id] = [(float(c[0]), float(c[1])) for c in coords]

    def load_geometry_file(self, path: str | Path) -> int:
        """Load {route_id: [[lon, lat], ...]} written by scripts/fetch_route_geometry.py. Returns routes loaded."""
        path = Path(path)
        if not path.exists():
            return 0
        with path.open(encoding="utf-8") as f:
            data = json.load(f)
        loaded = 0
        for route_id, coords in data.items():
            if route_id in self._routes and isinstance(coords, list) and len(coords) >= 2:
                self.set_route_geometry(route_id, [(c[0], c[1]) for c in coords])
                loaded += 1
        logger.info("telemetry route_geometry_loaded path=%s routes=%s", path, loaded)
        return loaded
