"""
Static stop/route configuration for the UNC Point-to-Point shuttles.
Coordinates are WGS84 degrees; polylines are [lon, lat] in stop order.
"""

ROUTE_CONFIGS: list[dict] = [
    {
        "id": "p2p-express",
        "name": "P2P Express",
        "color": "#418FC5",
        "stops": [
            {"id": "student-union", "name": "Student Union", "lat": 35.9105, "lon": -79.0478, "order": 1},
            {"id": "davis-lib", "name": "Davis Library", "lat": 35.9088, "lon": -79.0470, "order": 2},
            {"id": "kenan-stadium", "name": "Kenan Stadium", "lat": 35.9069, "lon": -79.0479, "order": 3},
            {"id": "franklin-st", "name": "Franklin St (Target)", "lat": 35.9132, "lon": -79.0558, "order": 4},
            {"id": "morrison", "name": "Morrison Residence Hall", "lat": 35.9045, "lon": -79.0465, "order": 5},
        ],
    },
    {
        "id": "baity-hill",
        "name": "Baity Hill",
        "color": "#C33934",
        "stops": [
            {"id": "dean-dome", "name": "Dean Smith Center", "lat": 35.8999, "lon": -79.0438, "order": 1},
            {"id": "baity-hill-apts", "name": "Baity Hill Apts", "lat": 35.8970, "lon": -79.0400, "order": 2},
            {"id": "south-campus", "name": "South Campus Dorms", "lat": 35.9035, "lon": -79.0450, "order": 3},
        ],
    },
]

# Curated road-following polylines used until directions geometry is fetched.
# Routes are loops: each polyline ends back on its first stop.
ROUTE_POLYLINES: dict[str, list[tuple[float, float]]] = {
    "p2p-express": [
        (-79.0478, 35.9105),  # student-union
        (-79.0470, 35.9088),  # davis-lib
        (-79.0479, 35.9069),  # kenan-stadium
        (-79.0558, 35.9132),  # franklin-st
        (-79.0465, 35.9045),  # morrison
        (-79.0478, 35.9105),  # student-union
    ],
    "baity-hill": [
        (-79.0438, 35.8999),  # dean-dome
        (-79.0400, 35.8970),  # baity-hill-apts
        (-79.0450, 35.9035),  # south-campus
        (-79.0438, 35.8999),  # dean-dome
    ],
}

# Seed positions for the animated fleet
VEHICLE_SEEDS: list[dict] = [
    {"id": "bus-101", "route_id": "p2p-express", "lat": 35.9110, "lon": -79.0485},
    {"id": "bus-102", "route_id": "p2p-express", "lat": 35.9040, "lon": -79.0460},
    {"id": "bus-201", "route_id": "baity-hill", "lat": 35.9010, "lon": -79.0420},
    {"id": "bus-202", "route_id": "baity-hill", "lat": 35.8975, "lon": -79.0405},
]

KNOWN_DESTINATIONS: list[dict] = [
    {"id": "davis", "name": "Davis Library", "lat": 35.9088, "lon": -79.0470, "address": "208 Raleigh St"},
    {"id": "union", "name": "Student Union", "lat": 35.9105, "lon": -79.0478, "address": "209 South Rd"},
    {"id": "lenoir", "name": "Lenoir Dining Hall", "lat": 35.9118, "lon": -79.0482, "address": "100 Manning Dr"},
    {"id": "rams", "name": "Rams Head Rec Center", "lat": 35.9032, "lon": -79.0440, "address": "340 Ridge Rd"},
    {"id": "dean", "name": "Dean Smith Center", "lat": 35.8999, "lon": -79.0438, "address": "300 Skipper Bowles Dr"},
    {"id": "kenan", "name": "Kenan Stadium", "lat": 35.9069, "lon": -79.0479, "address": "104 Stadium Dr"},
    {"id": "target", "name": "Target Franklin St", "lat": 35.9132, "lon": -79.0558, "address": "143 W Franklin St"},
    {"id": "hospital", "name": "UNC Hospitals", "lat": 35.9025, "lon": -79.0500, "address": "101 Manning Dr"},
    {"id": "store", "name": "Student Stores", "lat": 35.9100, "lon": -79.0465, "address": "207 South Rd"},
    {"id": "granville", "name": "Granville Towers", "lat": 35.9135, "lon": -79.0590, "address": "125 W Franklin St"},
]
