"""Pydantic models for stops, routes, vehicles and composed journeys."""
from datetime import datetime
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


def check_lat_lon(lat: float, lon: float, prefix: str = "") -> None:
    if not (-90 <= lat <= 90):
        raise ValueError(f"{prefix}lat must be between -90 and 90")
    if not (-180 <= lon <= 180):
        raise ValueError(f"{prefix}lon must be between -180 and 180")


class Coordinate(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float
    lon: float

    @model_validator(mode="after")
    def check_range(self):
        check_lat_lon(self.lat, self.lon)
        return self

    def lnglat(self) -> tuple[float, float]:
        return (self.lon, self.lat)


class Stop(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    lat: float
    lon: float

    @property
    def coords(self) -> Coordinate:
        return Coordinate(lat=self.lat, lon=self.lon)


class RouteStop(BaseModel):
    model_config = ConfigDict(frozen=True)

    stop: Stop
    order: int


class Route(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    color: str
    ordered_stops: tuple[RouteStop, ...]

    @model_validator(mode="after")
    def check_order(self):
        orders = [rs.order for rs in self.ordered_stops]
        if any(b <= a for a, b in zip(orders, orders[1:])):
            raise ValueError(f"Stop order must be strictly increasing on route {self.id}")
        return self

    @property
    def stop_ids(self) -> list[str]:
        return [rs.stop.id for rs in self.ordered_stops]


class UpcomingStop(BaseModel):
    stop_id: str
    eta_min: int


class Vehicle(BaseModel):
    id: str
    route_id: str
    route_name: str
    lat: float
    lon: float
    heading: float
    next_stop_id: str
    next_stop_eta_min: int
    upcoming_stops: list[UpcomingStop] = Field(default_factory=list)


class Destination(BaseModel):
    id: str
    name: str
    lat: float
    lon: float
    address: str | None = None

    @property
    def coords(self) -> Coordinate:
        return Coordinate(lat=self.lat, lon=self.lon)


class WalkStep(BaseModel):
    instruction: str
    distance_meters: float
    duration_sec: float


class WalkSegment(BaseModel):
    type: Literal["walk"] = "walk"
    from_name: str
    to_name: str
    from_coords: Coordinate
    to_coords: Coordinate
    duration_min: int
    distance_meters: float
    instruction: str
    # [lon, lat] road geometry when directions were available
    geometry: list[tuple[float, float]] | None = None
    steps: list[WalkStep] = Field(default_factory=list)


class BusSegment(BaseModel):
    type: Literal["bus"] = "bus"
    from_name: str
    to_name: str
    from_coords: Coordinate
    to_coords: Coordinate
    duration_min: int
    distance_meters: float
    instruction: str
    geometry: list[tuple[float, float]] | None = None
    route_id: str
    route_name: str
    stops_count: int
    wait_time_min: float
    from_stop_id: str
    to_stop_id: str
    bus_ordered_stop_ids: list[str] | None = None
    # Live minutes until the next vehicle reaches the boarding stop; None when only the default wait is known
    next_bus_eta_min: float | None = None


JourneySegment = Annotated[Union[WalkSegment, BusSegment], Field(discriminator="type")]


def segment_wait_min(segment: WalkSegment | BusSegment) -> float:
    return segment.wait_time_min if isinstance(segment, BusSegment) else 0.0


class Journey(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    destination: Destination
    segments: list[JourneySegment] = Field(min_length=1)
    total_duration_min: float
    start_time: datetime
    arrival_time: datetime

    @model_validator(mode="after")
    def check_continuity(self):
        for prev, nxt in zip(self.segments, self.segments[1:]):
            if prev.to_coords != nxt.from_coords:
                raise ValueError("Journey segments must be continuous")
        return self

    @property
    def bus_segment(self) -> BusSegment | None:
        return next((s for s in self.segments if isinstance(s, BusSegment)), None)

    @property
    def walk_only(self) -> bool:
        return self.bus_segment is None


class LeaveByGuidance(BaseModel):
    leave_now: bool
    leave_at: datetime | None = None
    next_bus_at: datetime | None = None
    route_name: str | None = None
    message: str


# --- Request / response bodies ---


class JourneyRequest(BaseModel):
    origin: Coordinate
    destination: Destination | None = None
    destination_query: str | None = None

    @model_validator(mode="after")
    def require_destination(self):
        has_query = bool(self.destination_query and self.destination_query.strip())
        if self.destination is None and not has_query:
            raise ValueError("Provide destination or destination_query.")
        if self.destination is not None:
            check_lat_lon(self.destination.lat, self.destination.lon, prefix="destination_")
        return self


class FeatureCollection(BaseModel):
    type: Literal["FeatureCollection"] = "FeatureCollection"
    features: list[dict]


class JourneyMapSources(BaseModel):
    walk: FeatureCollection
    bus: FeatureCollection
    stops: FeatureCollection
    destination: FeatureCollection


class JourneyResponse(BaseModel):
    journey: Journey
    leave_by: LeaveByGuidance
    map_sources: JourneyMapSources


class NearestStopResponse(BaseModel):
    stop: Stop
    distance_meters: float
    walk_minutes: int


class RouteInfo(BaseModel):
    id: str
    name: str
    color: str
    stop_ids: list[str]


class RouteGeometryResponse(BaseModel):
    route_id: str
    coordinates: list[tuple[float, float]]
    source: Literal["directions", "curated"]


class RecentSearchIn(BaseModel):
    label: str
    address: str | None = None
    lat: float | None = None
    lon: float | None = None

    @model_validator(mode="after")
    def label_not_blank(self):
        if not self.label.strip():
            raise ValueError("label must not be empty")
        return self


class RecentSearchOut(BaseModel):
    label: str
    address: str | None = None
    lat: float | None = None
    lon: float | None = None
    timestamp: float


class ComplaintIn(BaseModel):
    id: str
    category: str
    notes: str = ""


class ComplaintsSummaryRequest(BaseModel):
    complaints: list[ComplaintIn] = Field(default_factory=list)
