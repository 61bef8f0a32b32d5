"""
Synthetic vehicle positions: each vehicle advances along its route interpolator
by speed x dt on every tick, wrapping at the route length.
"""
import asyncio
import logging
import math
import time
from dataclasses import dataclass

from shuttle.data.network import TransitNetwork
from shuttle.data.transit import VEHICLE_SEEDS
from shuttle.geometry.interpolation import RouteInterpolator, close_loop, get_route_interpolator
from shuttle.journey.models import UpcomingStop, Vehicle

logger = logging.getLogger(__name__)

DEFAULT_SPEED_MPS = 8.0
UPCOMING_STOPS = 3


@dataclass
class VehicleState:
    id: str
    route_id: str
    distance_m: float
    speed_mps: float
    seed_lat: float
    seed_lon: float


class FleetSimulator:
    def __init__(
        self,
        network: TransitNetwork,
        seeds: list[dict] = VEHICLE_SEEDS,
        speed_mps: float = DEFAULT_SPEED_MPS,
    ):
        self._network = network
        self._interpolators: dict[str, RouteInterpolator | None] = {}
        # route_id -> [(stop_id, distance along route)]
        self._stop_positions: dict[str, list[tuple[str, float]]] = {}
        for route in network.routes:
            self._build_route(route.id)
        self._states: list[VehicleState] = []
        for seed in seeds:
            if network.get_route(seed["route_id"]) is None:
                logger.warning("telemetry fleet_unknown_route vehicle_id=%s route_id=%s", seed["id"], seed["route_id"])
                continue
            interp = self._interpolators.get(seed["route_id"])
            start = interp.nearest_vertex_distance(seed["lon"], seed["lat"]) if interp else 0.0
            self._states.append(
                VehicleState(
                    id=seed["id"],
                    route_id=seed["route_id"],
                    distance_m=start,
                    speed_mps=seed.get("speed_mps", speed_mps),
                    seed_lat=seed["lat"],
                    seed_lon=seed["lon"],
                )
            )

    def _build_route(self, route_id: str) -> None:
        line = self._network.polyline(route_id)
        # Vehicles run laps; an open line would put its last vertex on top of its first
        interp = get_route_interpolator(close_loop(line) if line else None)
        self._interpolators[route_id] = interp
        route = self._network.get_route(route_id)
        if interp is None or route is None:
            self._stop_positions[route_id] = []
            return
        self._stop_positions[route_id] = [
            (rs.stop.id, interp.nearest_vertex_distance(rs.stop.lon, rs.stop.lat)) for rs in route.ordered_stops
        ]

    def refresh_route(self, route_id: str) -> None:
        """Rebuild after new geometry is stored; vehicles keep their fractional progress."""
        old = self._interpolators.get(route_id)
        self._build_route(route_id)
        new = self._interpolators.get(route_id)
        if old is None or new is None or old.total_length_m <= 0:
            return
        for state in self._states:
            if state.route_id == route_id:
                state.distance_m = state.distance_m / old.total_length_m * new.total_length_m

    def tick(self, dt_seconds: float) -> None:
        for state in self._states:
            interp = self._interpolators.get(state.route_id)
            if interp is None or interp.total_length_m <= 0:
                continue
            state.distance_m = (state.distance_m + state.speed_mps * dt_seconds) % interp.total_length_m

    def _stops_ahead(self, state: VehicleState, interp: RouteInterpolator) -> list[tuple[str, float]]:
        total = interp.total_length_m
        ahead = [(stop_id, (d - state.distance_m) % total) for stop_id, d in self._stop_positions.get(state.route_id, [])]
        ahead.sort(key=lambda x: x[1])
        return ahead

    def snapshot(self, route_id: str | None = None) -> list[Vehicle]:
        vehicles = []
        for state in self._states:
            if route_id and state.route_id != route_id:
                continue
            route = self._network.get_route(state.route_id)
            interp = self._interpolators.get(state.route_id)
            if interp is None:
                lon, lat, heading = state.seed_lon, state.seed_lat, 0.0
                upcoming: list[UpcomingStop] = []
            else:
                lon, lat = interp.point_at(state.distance_m)
                heading = interp.bearing_at(state.distance_m)
                upcoming = [
                    UpcomingStop(stop_id=stop_id, eta_min=math.ceil(meters / state.speed_mps / 60.0))
                    for stop_id, meters in self._stops_ahead(state, interp)[:UPCOMING_STOPS]
                ]
            vehicles.append(
                Vehicle(
                    id=state.id,
                    route_id=state.route_id,
                    route_name=route.name if route else state.route_id,
                    lat=lat,
                    lon=lon,
                    heading=round(heading, 1),
                    next_stop_id=upcoming[0].stop_id if upcoming else "",
                    next_stop_eta_min=upcoming[0].eta_min if upcoming else 0,
                    upcoming_stops=upcoming,
                )
            )
        return vehicles

    def arrivals(self, route_id: str, stop_id: str) -> list[float]:
        """Minutes until each vehicle on route_id next reaches stop_id."""
        interp = self._interpolators.get(route_id)
        positions = dict(self._stop_positions.get(route_id, []))
        if interp is None or stop_id not in positions:
            return []
        total = interp.total_length_m
        return [
            ((positions[stop_id] - s.distance_m) % total) / s.speed_mps / 60.0
            for s in self._states
            if s.route_id == route_id and s.speed_mps > 0
        ]

    async def run(self, interval_seconds: float) -> None:
        """Tick forever; cancel the task to stop."""
        logger.info("telemetry fleet_started vehicles=%s interval_s=%s", len(self._states), interval_seconds)
        last = time.monotonic()
        try:
            while True:
                await asyncio.sleep(interval_seconds)
                now = time.monotonic()
                self.tick(now - last)
                last = now
        except asyncio.CancelledError:
            logger.info("telemetry fleet_stopped")
            raise
