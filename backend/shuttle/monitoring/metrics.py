"""In-memory counters for /metrics: HTTP status classes plus planning and upstream events."""
import time
from collections.abc import MutableMapping
from threading import Lock

_start_time = time.monotonic()
_status_counts: MutableMapping[str, int] = {}
_event_counts: MutableMapping[str, int] = {}
_lock = Lock()


def _status_bucket(status_code: int) -> str:
    if 200 <= status_code < 300:
        return "2xx"
    if 400 <= status_code < 500:
        return "4xx"
    if status_code >= 500:
        return "5xx"
    return "other"


def record_request(status_code: int) -> None:
    bucket = _status_bucket(status_code)
    with _lock:
        _status_counts[bucket] = _status_counts.get(bucket, 0) + 1


def record_event(name: str) -> None:
    """Count a named event, e.g. journey_walk_only, directions_fallback, search_stale."""
    with _lock:
        _event_counts[name] = _event_counts.get(name, 0) + 1


def get_metrics() -> dict:
    with _lock:
        counts = dict(_status_counts)
        events = dict(_event_counts)
    return {
        "requests_total": sum(counts.values()),
        "requests_2xx": counts.get("2xx", 0),
        "requests_4xx": counts.get("4xx", 0),
        "requests_5xx": counts.get("5xx", 0),
        "events": events,
        "uptime_seconds": round(time.monotonic() - _start_time, 1),
    }


def reset_metrics() -> None:
    with _lock:
        _status_counts.clear()
        _event_counts.clear()
