"""
Recent destination searches in the app SQLite DB.
Deduped by normalized (label, address), most recent first, max 8, expiring after 14 days.
"""
import sqlite3
import time
from pathlib import Path
from typing import NamedTuple

MAX_ITEMS = 8
EXPIRE_DAYS = 14
DEFAULT_USER_ID = "default"


class RecentSearchRecord(NamedTuple):
    label: str
    address: str | None
    lat: float | None
    lon: float | None
    timestamp: float


def dedupe_key(label: str, address: str | None = None) -> str:
    """Same destination by name and (optional) address, case- and whitespace-insensitive."""
    name = (label or "").strip().lower()
    addr = (address or "").strip().lower()
    return f"{name}|{addr}" if addr else name


def _expiry_cutoff(now: float) -> float:
    return now - EXPIRE_DAYS * 86400


def init_db(db_path: str | Path) -> None:
    db_path = Path(db_path)
    db_path.parent.mkdir(parents=True, exist_ok=True)
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS recent_searches (
                user_id TEXT NOT NULL,
                dedupe_key TEXT NOT NULL,
                label TEXT NOT NULL,
                address TEXT,
                lat REAL,
                lon REAL,
                timestamp REAL NOT NULL,
                PRIMARY KEY (user_id, dedupe_key)
            )
            """
        )
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_recent_searches_ts ON recent_searches(user_id, timestamp)"
        )
        conn.commit()


def get_recent_searches(
    db_path: str | Path,
    user_id: str = DEFAULT_USER_ID,
    now: float | None = None,
) -> list[RecentSearchRecord]:
    """Most recent first; expired and blank-label entries are skipped."""
    db_path = Path(db_path)
    if not db_path.exists():
        return []
    now = time.time() if now is None else now
    with sqlite3.connect(db_path) as conn:
        conn.row_factory = sqlite3.Row
        cur = conn.execute(
            """
            SELECT label, address, lat, lon, timestamp
            FROM recent_searches
            WHERE user_id = ? AND timestamp >= ? AND trim(label) != ''
            ORDER BY timestamp DESC, rowid DESC
            LIMIT ?
            """,
            (user_id, _expiry_cutoff(now), MAX_ITEMS),
        )
        return [
            RecentSearchRecord(
                label=r["label"],
                address=r["address"],
                lat=r["lat"],
                lon=r["lon"],
                timestamp=r["timestamp"],
            )
            for r in cur.fetchall()
        ]


def add_recent_search(
    db_path: str | Path,
    *,
    label: str,
    address: str | None = None,
    lat: float | None = None,
    lon: float | None = None,
    user_id: str = DEFAULT_USER_ID,
    now: float | None = None,
) -> RecentSearchRecord:
    """Insert or move to front (same label/address replaces the old entry); keeps the newest MAX_ITEMS."""
    if not (label or "").strip():
        raise ValueError("label must not be empty")
    db_path = Path(db_path)
    if not db_path.exists():
        init_db(db_path)
    now = time.time() if now is None else now
    key = dedupe_key(label, address)
    with sqlite3.connect(db_path) as conn:
        conn.execute(
            "DELETE FROM recent_searches WHERE user_id = ? AND timestamp < ?",
            (user_id, _expiry_cutoff(now)),
        )
        conn.execute(
            """
            INSERT OR REPLACE INTO recent_searches
                (user_id, dedupe_key, label, address, lat, lon, timestamp)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (user_id, key, label, address, lat, lon, now),
        )
        conn.execute(
            """
            DELETE FROM recent_searches
            WHERE user_id = ? AND dedupe_key NOT IN (
                SELECT dedupe_key FROM recent_searches
                WHERE user_id = ?
                ORDER BY timestamp DESC, rowid DESC
                LIMIT ?
            )
            """,
            (user_id, user_id, MAX_ITEMS),
        )
        conn.commit()
    return RecentSearchRecord(label=label, address=address, lat=lat, lon=lon, timestamp=now)


def clear_recent_searches(db_path: str | Path, user_id: str = DEFAULT_USER_ID) -> int:
    """Remove all recent searches for the user. Returns rows deleted."""
    db_path = Path(db_path)
    if not db_path.exists():
        return 0
    with sqlite3.connect(db_path) as conn:
        cur = conn.execute("DELETE FROM recent_searches WHERE user_id = ?", (user_id,))
        conn.commit()
        return cur.rowcount
