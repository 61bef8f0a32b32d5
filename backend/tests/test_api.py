"""API tests: stops, routes, vehicles, map sources, geocoding, directions and journeys."""
import asyncio

import pytest
from fastapi.testclient import TestClient

import main
from shuttle.data.network import TransitNetwork
from shuttle.live.fleet import FleetSimulator
from shuttle.mapbox.directions import WalkRoute
from shuttle.monitoring import reset_metrics

DEAN_SMITH = {"id": "dean", "name": "Dean Smith Center", "lat": 35.8999, "lon": -79.0438, "address": "300 Skipper Bowles Dr"}
AT_STUDENT_UNION = {"lat": 35.9105, "lon": -79.0478}


class FakeDirections:
    def __init__(self, walk=None, geometry=None):
        self.walk = walk
        self.geometry = geometry
        self.geometry_calls = []

    def walking(self, start, end):
        return self.walk

    def route_geometry(self, route_id, waypoints):
        self.geometry_calls.append((route_id, waypoints))
        return self.geometry


@pytest.fixture
def client(tmp_path, monkeypatch):
    """TestClient with a fresh network, a fleet without vehicles and a temp app DB."""
    network = TransitNetwork.from_config()
    monkeypatch.setattr(main, "network", network)
    monkeypatch.setattr(main, "fleet", FleetSimulator(network, seeds=[]))
    monkeypatch.setattr(main, "directions_client", None)
    monkeypatch.setattr(main, "APP_DB", tmp_path / "app.db")
    monkeypatch.setattr(main.settings, "geocode_debounce_seconds", 0.0)
    reset_metrics()
    return TestClient(main.app)


def fake_geocoder(results):
    calls = []

    async def geocode(query, token, proximity, limit=5):
        calls.append((query, proximity))
        return results

    geocode.calls = calls
    return geocode


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok", "stops": 8, "routes": 2}


def test_favicon(client):
    assert client.get("/favicon.ico").status_code == 204


# --- Stops and routes ---


def test_list_stops(client):
    r = client.get("/stops")
    assert r.status_code == 200
    assert len(r.json()) == 8


def test_list_stops_for_route_in_order(client):
    r = client.get("/stops", params={"route_id": "baity-hill"})
    assert [s["id"] for s in r.json()] == ["dean-dome", "baity-hill-apts", "south-campus"]
    assert client.get("/stops", params={"route_id": "nope"}).status_code == 404


def test_nearest_stop(client):
    r = client.get("/stops/nearest", params={"lat": 35.9087, "lon": -79.0471})
    assert r.status_code == 200
    data = r.json()
    assert data["stop"]["id"] == "davis-lib"
    assert data["distance_meters"] < 50
    assert data["walk_minutes"] == 1


def test_nearest_stop_invalid_lat(client):
    r = client.get("/stops/nearest", params={"lat": 95, "lon": -79.0})
    assert r.status_code == 400


def test_routes(client):
    r = client.get("/routes")
    assert r.status_code == 200
    routes = {x["id"]: x for x in r.json()}
    assert routes["p2p-express"]["color"] == "#418FC5"
    assert routes["p2p-express"]["stop_ids"][0] == "student-union"


def test_route_geometry_curated_without_directions(client):
    r = client.get("/routes/baity-hill/geometry")
    assert r.status_code == 200
    data = r.json()
    assert data["source"] == "curated"
    assert data["coordinates"][0] == [-79.0438, 35.8999]


def test_route_geometry_from_directions(client, monkeypatch):
    road = [[-79.0438, 35.8999], [-79.0420, 35.8985], [-79.0400, 35.8970], [-79.0450, 35.9035]]
    fake = FakeDirections(geometry=[tuple(c) for c in road])
    monkeypatch.setattr(main, "directions_client", fake)
    r = client.get("/routes/baity-hill/geometry")
    assert r.status_code == 200
    assert r.json() == {"route_id": "baity-hill", "coordinates": road, "source": "directions"}
    assert fake.geometry_calls[0][1] == main.network.waypoints("baity-hill")
    assert main.network.has_fetched_geometry("baity-hill")


def test_route_geometry_directions_failure_falls_back(client, monkeypatch):
    monkeypatch.setattr(main, "directions_client", FakeDirections(geometry=None))
    r = client.get("/routes/baity-hill/geometry")
    assert r.json()["source"] == "curated"
    assert client.get("/metrics").json()["events"]["route_geometry_fallback"] == 1


def _on_event_loop() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


def test_route_geometry_refreshes_fleet_on_event_loop(client, monkeypatch):
    """The directions call runs in a worker thread; the fleet refresh stays on the loop."""
    road = [(-79.0438, 35.8999), (-79.0420, 35.8985), (-79.0400, 35.8970), (-79.0450, 35.9035)]
    fake = FakeDirections(geometry=road)
    fetched_on_loop = []
    original_fetch = fake.route_geometry

    def fetch(route_id, waypoints):
        fetched_on_loop.append(_on_event_loop())
        return original_fetch(route_id, waypoints)

    fake.route_geometry = fetch
    refreshed_on_loop = []
    original_refresh = main.fleet.refresh_route

    def refresh(route_id):
        refreshed_on_loop.append(_on_event_loop())
        original_refresh(route_id)

    monkeypatch.setattr(main, "directions_client", fake)
    monkeypatch.setattr(main.fleet, "refresh_route", refresh)
    assert client.get("/routes/baity-hill/geometry").status_code == 200
    assert fetched_on_loop == [False]
    assert refreshed_on_loop == [True]


def test_route_geometry_unknown_route(client):
    assert client.get("/routes/nope/geometry").status_code == 404


# --- Vehicles and map sources ---


def test_vehicles(client, monkeypatch):
    monkeypatch.setattr(main, "fleet", FleetSimulator(main.network))
    r = client.get("/vehicles")
    assert r.status_code == 200
    assert len(r.json()) == 4
    r = client.get("/vehicles", params={"route_id": "p2p-express"})
    assert {v["id"] for v in r.json()} == {"bus-101", "bus-102"}


def test_map_vehicles(client, monkeypatch):
    monkeypatch.setattr(main, "fleet", FleetSimulator(main.network))
    r = client.get("/map/vehicles", params={"selected": "bus-101"})
    features = r.json()["features"]
    assert len(features) == 4
    selected = [f["properties"]["busId"] for f in features if f["properties"]["selected"]]
    assert selected == ["bus-101"]


def test_map_stops(client):
    r = client.get("/map/stops")
    assert r.status_code == 200
    body = r.json()
    assert body["type"] == "FeatureCollection"
    assert len(body["features"]) == 8


def test_map_routes(client):
    r = client.get("/map/routes")
    assert r.status_code == 200
    route_ids = {f["properties"]["routeId"] for f in r.json()["features"]}
    assert route_ids == {"p2p-express", "baity-hill"}


# --- Geocoding ---


def test_geocode_requires_query(client):
    assert client.get("/geocode").status_code == 400
    assert client.get("/geocode", params={"q": "   "}).status_code == 400


def test_geocode_results(client, monkeypatch):
    results = [{"id": "poi.1", "display_name": "Davis Library", "coordinates": [-79.047, 35.9088], "type": "poi"}]
    geocoder = fake_geocoder(results)
    monkeypatch.setattr(main, "mapbox_geocode", geocoder)
    r = client.get("/geocode", params={"q": "davis", "session": "abc"})
    assert r.status_code == 200
    assert r.json() == {"results": results, "stale": False}
    # Default proximity is the campus center
    assert geocoder.calls[0][1] == (main.settings.proximity_lon, main.settings.proximity_lat)


def test_geocode_proximity(client, monkeypatch):
    geocoder = fake_geocoder([])
    monkeypatch.setattr(main, "mapbox_geocode", geocoder)
    r = client.get("/geocode", params={"q": "davis", "proximity": "-79.05,35.91"})
    assert r.status_code == 200
    assert geocoder.calls[0][1] == (-79.05, 35.91)
    assert client.get("/geocode", params={"q": "davis", "proximity": "nowhere"}).status_code == 400


# --- Walking directions ---


def test_walk_directions_fallback(client):
    r = client.get("/directions/walk", params={"from": "-79.0478,35.9105", "to": "-79.0470,35.9088"})
    assert r.status_code == 200
    data = r.json()
    assert data["fallback"] is True
    assert data["geometry"]["coordinates"] == [[-79.0478, 35.9105], [-79.047, 35.9088]]
    assert data["duration_sec"] == 180


def test_walk_directions_from_mapbox(client, monkeypatch):
    walk = WalkRoute(
        duration_sec=240.0,
        distance_m=260.0,
        coordinates=[(-79.0478, 35.9105), (-79.0475, 35.9096), (-79.0470, 35.9088)],
        steps=[{"instruction": "Head south", "distance_meters": 260.0, "duration_sec": 240.0}],
    )
    monkeypatch.setattr(main, "directions_client", FakeDirections(walk=walk))
    r = client.get("/directions/walk", params={"from": "-79.0478,35.9105", "to": "-79.0470,35.9088"})
    data = r.json()
    assert data["fallback"] is False
    assert data["duration_sec"] == 240.0
    assert len(data["geometry"]["coordinates"]) == 3
    assert data["steps"][0]["instruction"] == "Head south"


def test_walk_directions_bad_coordinates(client):
    assert client.get("/directions/walk", params={"from": "abc", "to": "-79.0470,35.9088"}).status_code == 400
    assert client.get("/directions/walk", params={"from": "-79.0478,95", "to": "-79.0470,35.9088"}).status_code == 400


# --- Journeys ---


def test_journey_with_destination(client):
    r = client.post("/journeys", json={"origin": AT_STUDENT_UNION, "destination": DEAN_SMITH})
    assert r.status_code == 200
    data = r.json()
    journey = data["journey"]
    assert [s["type"] for s in journey["segments"]] == ["walk", "bus", "walk"]
    assert journey["total_duration_min"] == 13
    assert journey["segments"][1]["route_id"] == "p2p-express"
    assert data["leave_by"]["message"] == "No upcoming arrivals; using walking-only estimate."
    sources = data["map_sources"]
    assert len(sources["bus"]["features"]) == 1
    assert len(sources["stops"]["features"]) == 2
    assert sources["destination"]["features"][0]["properties"]["name"] == "Dean Smith Center"
    assert client.get("/metrics").json()["events"]["journey_bus"] == 1


def test_journey_records_recent_search(client):
    client.post("/journeys", json={"origin": AT_STUDENT_UNION, "destination": DEAN_SMITH})
    r = client.get("/recent-searches")
    assert [x["label"] for x in r.json()] == ["Dean Smith Center"]


def test_journey_saves_recent_search_off_event_loop(client, monkeypatch):
    """The SQLite write for a planned journey runs in a worker thread."""
    saved_on_loop = []
    original_add = main.add_recent_search

    def add(*args, **kwargs):
        saved_on_loop.append(_on_event_loop())
        return original_add(*args, **kwargs)

    monkeypatch.setattr(main, "add_recent_search", add)
    r = client.post("/journeys", json={"origin": AT_STUDENT_UNION, "destination": DEAN_SMITH})
    assert r.status_code == 200
    assert saved_on_loop == [False]


def test_journey_walk_only(client):
    lenoir = {"id": "lenoir", "name": "Lenoir Dining Hall", "lat": 35.9118, "lon": -79.0482}
    r = client.post("/journeys", json={"origin": AT_STUDENT_UNION, "destination": lenoir})
    data = r.json()
    assert len(data["journey"]["segments"]) == 1
    assert data["leave_by"]["leave_now"] is True
    assert data["map_sources"]["bus"]["features"] == []


def test_journey_known_destination_by_name(client, monkeypatch):
    geocoder = fake_geocoder([])
    monkeypatch.setattr(main, "mapbox_geocode", geocoder)
    r = client.post("/journeys", json={"origin": AT_STUDENT_UNION, "destination_query": "dean smith center"})
    assert r.status_code == 200
    assert r.json()["journey"]["destination"]["id"] == "dean"
    assert geocoder.calls == []


def test_journey_geocoded_destination(client, monkeypatch):
    results = [{"id": "address.9", "display_name": "123 Manning Dr", "coordinates": [-79.0438, 35.8999], "type": "address"}]
    monkeypatch.setattr(main, "mapbox_geocode", fake_geocoder(results))
    r = client.post("/journeys", json={"origin": AT_STUDENT_UNION, "destination_query": "123 manning"})
    assert r.status_code == 200
    dest = r.json()["journey"]["destination"]
    assert dest["id"] == "addr-address.9"
    assert (dest["lat"], dest["lon"]) == (35.8999, -79.0438)


def test_journey_destination_not_found(client, monkeypatch):
    monkeypatch.setattr(main, "mapbox_geocode", fake_geocoder([]))
    r = client.post("/journeys", json={"origin": AT_STUDENT_UNION, "destination_query": "atlantis"})
    assert r.status_code == 404
    assert r.json()["detail"].startswith("Could not calculate route")


def test_journey_without_stops(client, monkeypatch):
    monkeypatch.setattr(main, "network", TransitNetwork([]))
    r = client.post("/journeys", json={"origin": AT_STUDENT_UNION, "destination": DEAN_SMITH})
    assert r.status_code == 503
    assert r.json()["detail"].startswith("Could not calculate route")


def test_journey_requires_destination(client):
    r = client.post("/journeys", json={"origin": AT_STUDENT_UNION})
    assert r.status_code == 422


def test_journey_invalid_origin(client):
    r = client.post("/journeys", json={"origin": {"lat": 135.0, "lon": -79.0}, "destination": DEAN_SMITH})
    assert r.status_code == 422


# --- Recent searches ---


def test_recent_searches_crud(client):
    assert client.get("/recent-searches").json() == []
    r = client.post("/recent-searches", json={"label": "Davis Library", "address": "208 Raleigh St"})
    assert r.status_code == 201
    client.post("/recent-searches", json={"label": "Kenan Stadium"})
    client.post("/recent-searches", json={"label": "davis library", "address": "208 raleigh st"})
    labels = [x["label"] for x in client.get("/recent-searches").json()]
    assert labels == ["davis library", "Kenan Stadium"]
    assert client.delete("/recent-searches").status_code == 204
    assert client.get("/recent-searches").json() == []


def test_recent_search_blank_label(client):
    assert client.post("/recent-searches", json={"label": "  "}).status_code == 422


# --- Complaints summary ---


def test_complaints_summary_without_key(client, monkeypatch):
    monkeypatch.setattr(main.settings, "claude_api_key", "")
    body = {"complaints": [
        {"id": "c1", "category": "GPS issues", "notes": "frozen icon"},
        {"id": "c2", "category": "GPS issues"},
    ]}
    r = client.post("/ops/complaints/summary", json=body)
    assert r.status_code == 200
    data = r.json()
    assert data["ai_generated"] is False
    assert "- GPS issues: 2" in data["summary_markdown"]
