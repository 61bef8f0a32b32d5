"""
GeoJSON feature collections for the map: journey legs (walk dashed, bus on road
geometry), destination and stop markers, stops, vehicles and route corridors.
Every function returns a collection, empty when there is nothing to draw.
"""
from typing import Iterable

from shuttle.data.network import TransitNetwork
from shuttle.geometry.slicing import DEFAULT_OVERLAP_TOLERANCE_M, slice_loop, split_overlaps
from shuttle.journey.models import BusSegment, FeatureCollection, Journey, JourneyMapSources, Stop, Vehicle

LngLat = tuple[float, float]


def empty_collection() -> FeatureCollection:
    return FeatureCollection(features=[])


def _line(coords: Iterable[LngLat], **properties) -> dict:
    return {
        "type": "Feature",
        "geometry": {"type": "LineString", "coordinates": [list(c) for c in coords]},
        "properties": properties,
    }


def _point(lon: float, lat: float, feature_id: str | None = None, **properties) -> dict:
    feature = {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [lon, lat]},
        "properties": properties,
    }
    if feature_id is not None:
        feature["id"] = feature_id
    return feature


def _bus_coords(seg: BusSegment, network: TransitNetwork | None) -> list[LngLat]:
    straight = [seg.from_coords.lnglat(), seg.to_coords.lnglat()]
    if seg.geometry and len(seg.geometry) >= 2:
        return list(seg.geometry)
    # Only follow the road when both stops are on the route
    if not seg.bus_ordered_stop_ids or network is None:
        return straight
    line = network.polyline(seg.route_id)
    if not line:
        return straight
    sliced = slice_loop(line, seg.from_coords.lnglat(), seg.to_coords.lnglat())
    return sliced if len(sliced) >= 2 else straight


def journey_to_map_sources(journey: Journey | None, network: TransitNetwork | None = None) -> JourneyMapSources:
    if journey is None or not journey.segments:
        return JourneyMapSources(
            walk=empty_collection(),
            bus=empty_collection(),
            stops=empty_collection(),
            destination=empty_collection(),
        )

    walk_features: list[dict] = []
    bus_features: list[dict] = []
    stop_features: list[dict] = []
    for seg in journey.segments:
        if isinstance(seg, BusSegment):
            bus_features.append(
                _line(_bus_coords(seg, network), segmentType="bus", routeId=seg.route_id, name=seg.route_name)
            )
            stop_features.append(
                _point(seg.from_coords.lon, seg.from_coords.lat, seg.from_stop_id,
                       id=seg.from_stop_id, name=seg.from_name, stopType="board")
            )
            stop_features.append(
                _point(seg.to_coords.lon, seg.to_coords.lat, seg.to_stop_id,
                       id=seg.to_stop_id, name=seg.to_name, stopType="alight")
            )
        else:
            coords = seg.geometry if seg.geometry and len(seg.geometry) >= 2 else [
                seg.from_coords.lnglat(),
                seg.to_coords.lnglat(),
            ]
            walk_features.append(_line(coords, segmentType="walk"))

    dest = journey.destination
    return JourneyMapSources(
        walk=FeatureCollection(features=walk_features),
        bus=FeatureCollection(features=bus_features),
        stops=FeatureCollection(features=stop_features),
        destination=FeatureCollection(features=[_point(dest.lon, dest.lat, dest.id, id=dest.id, name=dest.name)]),
    )


def stops_to_collection(stops: list[Stop], selected_stop_id: str | None = None) -> FeatureCollection:
    return FeatureCollection(
        features=[
            _point(s.lon, s.lat, s.id, id=s.id, name=s.name, selected=s.id == selected_stop_id)
            for s in stops
        ]
    )


def vehicles_to_collection(vehicles: list[Vehicle], selected_bus_id: str | None = None) -> FeatureCollection:
    return FeatureCollection(
        features=[
            _point(
                v.lon,
                v.lat,
                v.id,
                busId=v.id,
                routeId=v.route_id,
                name=v.route_name,
                bearing=v.heading,
                selected=v.id == selected_bus_id,
            )
            for v in vehicles
        ]
    )


def routes_to_collection(
    network: TransitNetwork,
    tolerance_m: float = DEFAULT_OVERLAP_TOLERANCE_M,
) -> FeatureCollection:
    """
    One line per route corridor. Each route after the first is split against the
    routes drawn before it into overlapping and distinct runs, so shared roads can
    be offset instead of drawn on top of each other.
    """
    features: list[dict] = []
    drawn: list[list[LngLat]] = []
    for route in network.routes:
        line = network.polyline(route.id)
        if not line or len(line) < 2:
            continue
        runs = [(list(line), False)]
        for previous in drawn:
            next_runs = []
            for coords, overlapping in runs:
                if overlapping:
                    next_runs.append((coords, True))
                    continue
                next_runs.extend((r.coordinates, r.overlapping) for r in split_overlaps(coords, previous, tolerance_m))
            runs = next_runs
        for i, (coords, overlapping) in enumerate(runs):
            features.append(
                _line(
                    coords,
                    id=f"{route.id}-{i}",
                    routeId=route.id,
                    name=route.name,
                    color=route.color,
                    segmentType="overlap" if overlapping else "route",
                )
            )
        drawn.append(list(line))
    return FeatureCollection(features=features)
