"""Mapbox place search for the "Where to?" box. Any upstream failure yields no matches."""
import logging
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)

MAPBOX_GEOCODING_URL = "https://api.mapbox.com/geocoding/v5/mapbox.places"
# Campus bounding box: lon_min, lat_min, lon_max, lat_max
CAMPUS_BBOX = "-79.08,35.89,-79.03,35.93"
GEOCODE_TIMEOUT_SECONDS = 5.0
GEOCODE_LIMIT = 5


def _normalize_feature(f: dict) -> dict | None:
    center = f.get("center")
    if not isinstance(center, list) or len(center) < 2:
        return None
    place_types = f.get("place_type") or []
    return {
        "id": str(f.get("id") or ""),
        "display_name": f.get("place_name") or "",
        "coordinates": [float(center[0]), float(center[1])],
        "type": place_types[0] if place_types else "unknown",
    }


async def geocode(
    query: str,
    token: str,
    proximity: tuple[float, float],
    limit: int = GEOCODE_LIMIT,
) -> list[dict]:
    """
    Autocomplete search biased toward proximity (lon, lat).
    Returns [{id, display_name, coordinates: [lon, lat], type}]; [] on error or no token.
    """
    q = (query or "").strip()
    if not q or not token:
        return []
    url = f"{MAPBOX_GEOCODING_URL}/{quote(q, safe='')}.json"
    params = {
        "autocomplete": "true",
        "limit": limit,
        "proximity": f"{proximity[0]},{proximity[1]}",
        "bbox": CAMPUS_BBOX,
        "access_token": token,
    }
    try:
        async with httpx.AsyncClient(timeout=GEOCODE_TIMEOUT_SECONDS) as client:
            r = await client.get(url, params=params)
            r.raise_for_status()
            data = r.json()
    except Exception as e:
        logger.warning("telemetry geocode_error q=%s error=%s", q[:50], str(e))
        return []
    features = data.get("features") if isinstance(data, dict) else None
    if not isinstance(features, list):
        return []
    results = []
    for f in features:
        if isinstance(f, dict):
            item = _normalize_feature(f)
            if item is not None:
                results.append(item)
    return results
