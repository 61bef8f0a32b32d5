import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address
from starlette.concurrency import run_in_threadpool

from settings import get_settings
from shuttle.data.geo import haversine_distance_m, nearest_stop, walk_time_minutes
from shuttle.data.network import TransitNetwork
from shuttle.data.recent_searches import add_recent_search, clear_recent_searches, get_recent_searches, init_db
from shuttle.data.transit import KNOWN_DESTINATIONS
from shuttle.journey.composer import NoTransitStopsError, compose_journey, leave_by_guidance
from shuttle.journey.models import (
    ComplaintsSummaryRequest,
    Coordinate,
    Destination,
    FeatureCollection,
    JourneyRequest,
    JourneyResponse,
    NearestStopResponse,
    RecentSearchIn,
    RecentSearchOut,
    RouteGeometryResponse,
    RouteInfo,
    Stop,
    Vehicle,
)
from shuttle.live.fleet import FleetSimulator
from shuttle.mapbox.directions import DirectionsClient
from shuttle.mapbox.geocoding import geocode as mapbox_geocode
from shuttle.mapsources.adapter import (
    journey_to_map_sources,
    routes_to_collection,
    stops_to_collection,
    vehicles_to_collection,
)
from shuttle.middleware import RequestLoggingMiddleware
from shuttle.monitoring import get_metrics, record_event
from shuttle.search.supersede import QueryGate, debounced_search

settings = get_settings()
BACKEND_ROOT = Path(__file__).resolve().parent
APP_DB = BACKEND_ROOT / settings.app_db_path
ROUTE_GEOMETRY_FILE = BACKEND_ROOT / settings.route_geometry_path

# Structured logging: include module and level; handlers can add JSON later
logging.basicConfig(
    level=logging.INFO,
    format="%(levelname)s %(name)s %(message)s",
)
logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address, default_limits=["100/minute"])

network = TransitNetwork.from_config()
fleet = FleetSimulator(network)
query_gate = QueryGate()
directions_client: DirectionsClient | None = DirectionsClient(settings.mapbox_token) if settings.mapbox_token else None
_claude_client = None

# Input validation bounds (public robustness)
LAT_MIN, LAT_MAX = -90.0, 90.0
LON_MIN, LON_MAX = -180.0, 180.0
GEOCODE_QUERY_MAX_LEN = 200


def _validate_lat_lon(lat: float, lon: float) -> None:
    if not (LAT_MIN <= lat <= LAT_MAX):
        raise HTTPException(status_code=400, detail=f"lat must be between {LAT_MIN} and {LAT_MAX}")
    if not (LON_MIN <= lon <= LON_MAX):
        raise HTTPException(status_code=400, detail=f"lon must be between {LON_MIN} and {LON_MAX}")


def _parse_lnglat(value: str, name: str) -> tuple[float, float]:
    """Parse "lng,lat" query values."""
    parts = [p.strip() for p in (value or "").split(",")]
    try:
        if len(parts) != 2:
            raise ValueError(value)
        lon, lat = float(parts[0]), float(parts[1])
    except ValueError:
        raise HTTPException(status_code=400, detail=f"{name} must be lng,lat") from None
    _validate_lat_lon(lat, lon)
    return lon, lat


@asynccontextmanager
async def lifespan(app: FastAPI):
    init_db(APP_DB)
    if network.load_geometry_file(ROUTE_GEOMETRY_FILE):
        for route in network.routes:
            fleet.refresh_route(route.id)
    if not settings.mapbox_token:
        logger.warning("telemetry startup mapbox_token_missing=true fallback=straight_line")
    tick_task = asyncio.create_task(fleet.run(settings.vehicle_tick_seconds))
    yield
    tick_task.cancel()
    try:
        await tick_task
    except asyncio.CancelledError:
        pass


app = FastAPI(title=settings.app_name, debug=settings.debug, lifespan=lifespan)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)


@app.exception_handler(Exception)
def unhandled_exception_handler(request: Request, exc: Exception):
    """Return consistent JSON error for unhandled exceptions (500). Skip validation/HTTP errors."""
    from fastapi.exceptions import RequestValidationError
    if isinstance(exc, (HTTPException, RequestValidationError)):
        raise exc
    logger.exception("telemetry unhandled_exception path=%s", request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "An unexpected error occurred. Please try again later."},
    )


# Last added runs outermost: CORS wraps request logging.
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.cors_origins.split(",") if o.strip()],
    allow_credentials=True,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)


@app.get("/favicon.ico", include_in_schema=False)
@limiter.exempt
def favicon(request: Request):
    """Return 204 so browser favicon requests don't log 404."""
    return Response(status_code=204)


@app.get("/health")
@limiter.exempt
def health(request: Request):
    return {"status": "ok", "stops": len(network.stops), "routes": len(network.routes)}


@app.get("/metrics")
@limiter.exempt
def metrics(request: Request):
    return get_metrics()


# --- Stops, routes, vehicles ---


@app.get("/stops", response_model=list[Stop])
def list_stops(request: Request, route_id: str = ""):
    """All stops, or one route's stops in traversal order."""
    if not route_id:
        return network.stops
    route = network.get_route(route_id)
    if route is None:
        raise HTTPException(status_code=404, detail=f"Route not found: {route_id}.")
    return [rs.stop for rs in route.ordered_stops]


@app.get("/stops/nearest", response_model=NearestStopResponse)
def stops_nearest(request: Request, lat: float, lon: float):
    _validate_lat_lon(lat, lon)
    stop = nearest_stop(Coordinate(lat=lat, lon=lon), network.stops)
    if stop is None:
        raise HTTPException(status_code=503, detail="No stops loaded.")
    d = haversine_distance_m(lat, lon, stop.lat, stop.lon)
    return NearestStopResponse(stop=stop, distance_meters=round(d, 1), walk_minutes=walk_time_minutes(d))


@app.get("/routes", response_model=list[RouteInfo])
def list_routes(request: Request):
    return [RouteInfo(id=r.id, name=r.name, color=r.color, stop_ids=r.stop_ids) for r in network.routes]


@app.get("/routes/{route_id}/geometry", response_model=RouteGeometryResponse)
async def route_geometry(request: Request, route_id: str):
    """
    Road-following polyline through the route's stops (Mapbox driving, cached 6h).
    Falls back to the curated polyline when directions are unavailable.
    Only the HTTP call leaves the event loop; the fleet is updated on the loop it ticks on.
    """
    if network.get_route(route_id) is None:
        raise HTTPException(status_code=404, detail=f"Route not found: {route_id}.")
    if directions_client is not None:
        coords = await run_in_threadpool(directions_client.route_geometry, route_id, network.waypoints(route_id))
        if coords:
            first_fetch = not network.has_fetched_geometry(route_id)
            network.set_route_geometry(route_id, coords)
            if first_fetch:
                fleet.refresh_route(route_id)
        else:
            record_event("route_geometry_fallback")
    source = "directions" if network.has_fetched_geometry(route_id) else "curated"
    return RouteGeometryResponse(route_id=route_id, coordinates=network.polyline(route_id) or [], source=source)


@app.get("/vehicles", response_model=list[Vehicle])
@limiter.exempt
def get_vehicles(request: Request, route_id: str = ""):
    """Current animated vehicle positions. Optional ?route_id= filter."""
    return fleet.snapshot(route_id or None)


# --- Map sources ---


@app.get("/map/routes", response_model=FeatureCollection)
def map_routes(request: Request):
    return routes_to_collection(network, tolerance_m=settings.route_overlap_tolerance_m)


@app.get("/map/stops", response_model=FeatureCollection)
def map_stops(request: Request, selected: str = ""):
    return stops_to_collection(network.stops, selected or None)


@app.get("/map/vehicles", response_model=FeatureCollection)
@limiter.exempt
def map_vehicles(request: Request, selected: str = ""):
    return vehicles_to_collection(fleet.snapshot(), selected or None)


# --- Geocoding and walking directions ---


def _proximity(value: str) -> tuple[float, float]:
    if not value:
        return (settings.proximity_lon, settings.proximity_lat)
    return _parse_lnglat(value, "proximity")


@app.get("/geocode")
async def geocode(request: Request, q: str = "", proximity: str = "", session: str = ""):
    """
    Place search for the "Where to?" box. With ?session=, requests are debounced and a
    newer query from the same session supersedes older ones, which return stale=true.
    """
    query = (q or "").strip()
    if not query:
        raise HTTPException(status_code=400, detail="Missing q query parameter.")
    if len(query) > GEOCODE_QUERY_MAX_LEN:
        raise HTTPException(status_code=400, detail=f"q must be at most {GEOCODE_QUERY_MAX_LEN} characters.")
    prox = _proximity(proximity)

    def search():
        return mapbox_geocode(query, settings.mapbox_token, prox)

    if session:
        results = await debounced_search(query_gate, session, search, settings.geocode_debounce_seconds)
        if results is None:
            record_event("search_stale")
            return {"results": [], "stale": True}
    else:
        results = await search()
    return {"results": results, "stale": False}


@app.get("/directions/walk")
def directions_walk(request: Request, from_: str = Query("", alias="from"), to: str = ""):
    """Walking directions between "lng,lat" points; straight line when directions are unavailable."""
    start = _parse_lnglat(from_, "from")
    end = _parse_lnglat(to, "to")
    route = directions_client.walking(start, end) if directions_client is not None else None
    if route is not None:
        return {
            "duration_sec": route.duration_sec,
            "distance_meters": route.distance_m,
            "geometry": {"type": "LineString", "coordinates": [list(c) for c in route.coordinates]},
            "steps": route.steps,
            "fallback": False,
        }
    record_event("directions_fallback")
    d = haversine_distance_m(start[1], start[0], end[1], end[0])
    return {
        "duration_sec": walk_time_minutes(d) * 60,
        "distance_meters": round(d, 1),
        "geometry": {"type": "LineString", "coordinates": [list(start), list(end)]},
        "steps": [],
        "fallback": True,
    }


# --- Journey planning ---


def _match_known_destination(query: str) -> Destination | None:
    q = query.strip().lower()
    for d in KNOWN_DESTINATIONS:
        if d["name"].lower() == q or (d.get("address") or "").lower() == q:
            return Destination(**d)
    return None


async def _resolve_destination(query: str, origin: Coordinate) -> Destination:
    known = _match_known_destination(query)
    if known is not None:
        return known
    results = await mapbox_geocode(query, settings.mapbox_token, (origin.lon, origin.lat))
    if not results:
        raise LookupError(f'No results for "{query[:80]}".')
    first = results[0]
    lon, lat = first["coordinates"]
    return Destination(
        id=f"addr-{first['id']}",
        name=first["display_name"],
        lat=lat,
        lon=lon,
        address=first["display_name"],
    )


def _walk_router(start: Coordinate, end: Coordinate):
    if directions_client is None:
        return None
    return directions_client.walking(start.lnglat(), end.lnglat())


@app.post("/journeys", response_model=JourneyResponse)
async def post_journey(request: Request, body: JourneyRequest):
    """Plan walk-only or walk + bus + walk from origin to a destination (coordinates or search text)."""
    destination = body.destination
    if destination is None:
        try:
            destination = await _resolve_destination(body.destination_query, body.origin)
        except LookupError as e:
            logger.info("telemetry journey_destination_unresolved q=%s", body.destination_query[:50])
            raise HTTPException(status_code=404, detail="Could not calculate route: destination not found.") from e
    try:
        journey = await run_in_threadpool(
            compose_journey,
            body.origin,
            destination,
            network,
            walk_router=_walk_router,
            arrivals=fleet.arrivals,
            walk_threshold_m=settings.walk_preferred_threshold_m,
        )
    except NoTransitStopsError as e:
        logger.warning("telemetry journey_no_stops destination=%s", destination.id)
        raise HTTPException(status_code=503, detail="Could not calculate route: no transit stops loaded.") from e
    record_event("journey_walk_only" if journey.walk_only else "journey_bus")
    await run_in_threadpool(
        add_recent_search,
        APP_DB,
        label=destination.name,
        address=destination.address,
        lat=destination.lat,
        lon=destination.lon,
    )
    return JourneyResponse(
        journey=journey,
        leave_by=leave_by_guidance(journey, buffer_seconds=settings.leave_buffer_seconds),
        map_sources=journey_to_map_sources(journey, network),
    )


# --- Recent searches ---


@app.get("/recent-searches", response_model=list[RecentSearchOut])
def list_recent_searches(request: Request):
    return [RecentSearchOut(**r._asdict()) for r in get_recent_searches(APP_DB)]


@app.post("/recent-searches", response_model=RecentSearchOut, status_code=201)
def post_recent_search(request: Request, body: RecentSearchIn):
    rec = add_recent_search(APP_DB, label=body.label.strip(), address=body.address, lat=body.lat, lon=body.lon)
    return RecentSearchOut(**rec._asdict())


@app.delete("/recent-searches", status_code=204)
def delete_recent_searches(request: Request):
    clear_recent_searches(APP_DB)


# --- Ops: complaint summary ---


@app.post("/ops/complaints/summary")
def post_complaints_summary(request: Request, body: ComplaintsSummaryRequest):
    """Summarize rider complaints with Claude; category counts when CLAUDE_API_KEY is not set."""
    from shuttle.ai.claude_client import ClaudeClient, heuristic_summary

    global _claude_client
    complaints = [c.model_dump() for c in body.complaints]
    if not settings.claude_api_key:
        return {"summary_markdown": heuristic_summary(complaints), "generated_at_iso": None, "model": None, "ai_generated": False}
    if _claude_client is None:
        _claude_client = ClaudeClient(api_key=settings.claude_api_key)
    return _claude_client.summarize_complaints(complaints)
