#!/usr/bin/env python3
"""
Fetch road-following geometry for every shuttle route and save it as JSON.

Output format: {"<route_id>": [[lon, lat], ...], ...}
The API loads this file at startup (ROUTE_GEOMETRY_PATH) so the fleet animates along
real streets without a Mapbox call on every boot.

Run: MAPBOX_TOKEN=... python scripts/fetch_route_geometry.py [--out data/route_geometry.json]
"""
import argparse
import json
import os
import sys
from pathlib import Path

# Add backend root to path
backend = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(backend))

from shuttle.data.network import TransitNetwork
from shuttle.mapbox.directions import DirectionsClient


def main() -> int:
    parser = argparse.ArgumentParser(description="Fetch route geometry from Mapbox Directions")
    parser.add_argument(
        "--out",
        default=backend / "data" / "route_geometry.json",
        type=Path,
        help="Path to output JSON file",
    )
    parser.add_argument(
        "--route",
        action="append",
        default=[],
        help="Only fetch this route id (repeatable)",
    )
    args = parser.parse_args()

    token = os.environ.get("MAPBOX_TOKEN", "").strip()
    if not token:
        print("Error: MAPBOX_TOKEN is not set", file=sys.stderr)
        return 1

    network = TransitNetwork.from_config()
    route_ids = args.route or [r.id for r in network.routes]
    unknown = [rid for rid in route_ids if network.get_route(rid) is None]
    if unknown:
        print(f"Error: unknown route(s): {', '.join(unknown)}", file=sys.stderr)
        return 1

    client = DirectionsClient(token)
    out: dict[str, list[list[float]]] = {}
    for rid in route_ids:
        coords = client.route_geometry(rid, network.waypoints(rid))
        if not coords:
            print(f"Warning: no geometry for {rid}; keeping curated polyline", file=sys.stderr)
            continue
        out[rid] = [[lon, lat] for lon, lat in coords]
        print(f"{rid}: {len(coords)} points")

    if not out:
        print("Error: no geometry fetched", file=sys.stderr)
        return 1
    args.out.parent.mkdir(parents=True, exist_ok=True)
    args.out.write_text(json.dumps(out, indent=2), encoding="utf-8")
    print(f"Wrote {len(out)} route(s) to {args.out}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
