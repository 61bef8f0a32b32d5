"""
Journey composition: origin + destination -> walk, or walk + bus + walk.
Uses nearest stops, straight-line estimates and, when supplied, live walking
directions and vehicle arrival estimates. Failed lookups fall back silently.
"""
import logging
import math
import uuid
from datetime import datetime, timedelta, timezone
from typing import Callable

from shuttle.data.geo import WALKING_SPEED_MPS, distance_m, haversine_distance_m, nearest_stop, walk_time_minutes
from shuttle.data.network import TransitNetwork
from shuttle.journey.models import (
    BusSegment,
    Coordinate,
    Destination,
    Journey,
    LeaveByGuidance,
    Stop,
    WalkSegment,
    WalkStep,
    segment_wait_min,
)
from shuttle.mapbox.directions import WalkRoute

logger = logging.getLogger(__name__)

# Stop pairs closer than this are walked
WALK_PREFERRED_THRESHOLD_M = 200.0
BUS_SPEED_MPS = 10.0
# Added to every ride estimate for boarding and stops along the way
BUS_DWELL_MIN = 5
DEFAULT_WAIT_MIN = 5.0
LEAVE_BUFFER_SECONDS = 90
CURRENT_LOCATION_NAME = "Current Location"

WalkRouter = Callable[[Coordinate, Coordinate], WalkRoute | None]
# (route_id, stop_id) -> minutes until each known vehicle reaches the stop
ArrivalEstimator = Callable[[str, str], list[float]]


class NoTransitStopsError(RuntimeError):
    """Raised when there is no stop network to plan against."""


def _walk_segment(
    start: Coordinate,
    end: Coordinate,
    from_name: str,
    to_name: str,
    walk_router: WalkRouter | None,
    walking_speed_mps: float,
) -> WalkSegment:
    route = walk_router(start, end) if walk_router else None
    if route is not None:
        return WalkSegment(
            from_name=from_name,
            to_name=to_name,
            from_coords=start,
            to_coords=end,
            distance_meters=route.distance_m,
            duration_min=math.ceil(route.duration_sec / 60.0),
            instruction=f"Walk to {to_name}",
            geometry=route.coordinates or None,
            steps=[WalkStep(**s) for s in route.steps],
        )
    d = distance_m(start, end)
    return WalkSegment(
        from_name=from_name,
        to_name=to_name,
        from_coords=start,
        to_coords=end,
        distance_meters=d,
        duration_min=walk_time_minutes(d, walking_speed_mps),
        instruction=f"Walk to {to_name}",
    )


def ride_minutes(distance_meters: float) -> int:
    return math.ceil(distance_meters / BUS_SPEED_MPS / 60.0) + BUS_DWELL_MIN


def _ride_distance(network: TransitNetwork, stop_ids: list[str] | None, board: Stop, alight: Stop) -> float:
    if not stop_ids or len(stop_ids) < 2:
        return distance_m(board, alight)
    stops = [network.get_stop(sid) for sid in stop_ids]
    return sum(haversine_distance_m(a.lat, a.lon, b.lat, b.lon) for a, b in zip(stops, stops[1:]))


def _wait_minutes(
    route_id: str,
    stop_id: str,
    walk_to_stop_min: float,
    arrivals: ArrivalEstimator | None,
) -> tuple[float, float | None]:
    """(wait, next bus eta). Catches the first vehicle that arrives no earlier than the rider."""
    if arrivals is None:
        return DEFAULT_WAIT_MIN, None
    reachable = sorted(e for e in arrivals(route_id, stop_id) if e >= walk_to_stop_min)
    if not reachable:
        return DEFAULT_WAIT_MIN, None
    return reachable[0] - walk_to_stop_min, reachable[0]


def _bus_segment(
    network: TransitNetwork,
    board: Stop,
    alight: Stop,
    walk_to_stop_min: float,
    arrivals: ArrivalEstimator | None,
) -> BusSegment:
    route = network.shared_route(board.id, alight.id) or network.routes_for_stop(board.id)[0]
    ordered_ids = network.stops_between(route.id, board.id, alight.id)
    ride_m = _ride_distance(network, ordered_ids, board, alight)
    wait_min, next_eta = _wait_minutes(route.id, board.id, walk_to_stop_min, arrivals)
    return BusSegment(
        from_name=board.name,
        to_name=alight.name,
        from_coords=board.coords,
        to_coords=alight.coords,
        distance_meters=ride_m,
        duration_min=ride_minutes(ride_m),
        instruction=f"Ride {route.name} to {alight.name}",
        route_id=route.id,
        route_name=route.name,
        stops_count=len(ordered_ids) - 1 if ordered_ids else 1,
        wait_time_min=round(wait_min, 1),
        from_stop_id=board.id,
        to_stop_id=alight.id,
        bus_ordered_stop_ids=ordered_ids,
        next_bus_eta_min=next_eta,
    )


def total_duration(segments: list[WalkSegment | BusSegment]) -> float:
    return sum(s.duration_min + segment_wait_min(s) for s in segments)


def compose_journey(
    origin: Coordinate,
    destination: Destination,
    network: TransitNetwork,
    *,
    now: datetime | None = None,
    walk_router: WalkRouter | None = None,
    arrivals: ArrivalEstimator | None = None,
    walk_threshold_m: float = WALK_PREFERRED_THRESHOLD_M,
    walking_speed_mps: float = WALKING_SPEED_MPS,
) -> Journey:
    """
    Compose the faster of a walk-only trip and a walk + bus + walk trip.

    Walk-only wins when the origin and destination share a nearest stop, when their
    stops are closer than walk_threshold_m, or when walking is no slower than the bus
    plan (wait included). Raises NoTransitStopsError when the network has no stops.
    """
    stops = network.stops
    if not stops:
        raise NoTransitStopsError("Could not find transit stops")
    if now is None:
        now = datetime.now(timezone.utc)

    dest_coords = destination.coords
    origin_stop = nearest_stop(origin, stops)
    dest_stop = nearest_stop(dest_coords, stops)
    stop_gap_m = distance_m(origin_stop, dest_stop)

    walk_only = _walk_segment(
        origin, dest_coords, CURRENT_LOCATION_NAME, destination.name, walk_router, walking_speed_mps
    )
    segments: list[WalkSegment | BusSegment] = [walk_only]

    if origin_stop.id != dest_stop.id and stop_gap_m >= walk_threshold_m:
        first = _walk_segment(
            origin, origin_stop.coords, CURRENT_LOCATION_NAME, origin_stop.name, walk_router, walking_speed_mps
        )
        bus = _bus_segment(network, origin_stop, dest_stop, first.duration_min, arrivals)
        last = _walk_segment(
            dest_stop.coords, dest_coords, dest_stop.name, destination.name, walk_router, walking_speed_mps
        )
        candidate = [first, bus, last]
        if total_duration(candidate) < walk_only.duration_min:
            segments = candidate

    total = total_duration(segments)
    logger.info(
        "telemetry journey_composed destination=%s segments=%s total_min=%s",
        destination.id,
        len(segments),
        total,
    )
    return Journey(
        id=f"journey-{uuid.uuid4().hex[:12]}",
        destination=destination,
        segments=segments,
        total_duration_min=total,
        start_time=now,
        arrival_time=now + timedelta(minutes=total),
    )


def leave_by_guidance(
    journey: Journey,
    now: datetime | None = None,
    buffer_seconds: float = LEAVE_BUFFER_SECONDS,
) -> LeaveByGuidance:
    """
    "Leave now" / "Leave at HH:MM" for catching the next bus. Degrades to the
    walking-only message when no live arrival estimate is known.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    bus = journey.bus_segment
    if bus is None:
        return LeaveByGuidance(leave_now=True, message="Walk only (faster than bus)")
    first_walk = next((s for s in journey.segments if isinstance(s, WalkSegment)), None)
    if bus.next_bus_eta_min is None or first_walk is None:
        return LeaveByGuidance(
            leave_now=False,
            route_name=bus.route_name,
            message="No upcoming arrivals; using walking-only estimate.",
        )
    walk_s = first_walk.duration_min * 60
    wait_s = bus.wait_time_min * 60
    next_bus_at = now + timedelta(seconds=walk_s + wait_s)
    leave_at = now + timedelta(seconds=wait_s - buffer_seconds)
    leave_now = leave_at <= now
    return LeaveByGuidance(
        leave_now=leave_now,
        leave_at=now if leave_now else leave_at,
        next_bus_at=next_bus_at,
        route_name=bus.route_name,
        message="Leave now" if leave_now else f"Leave at {leave_at:%H:%M}",
    )
