"""
firefeed/core/storage.py

SQLite plumbing shared by the sqlite cache backend and the local fire database.

fire_packs holds one cached feed payload per cache key as an orjson blob, with
the epoch seconds it was written and when it stops being served.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any, Optional, Tuple

import orjson

# several uvicorn workers may share one cache file
_BUSY_TIMEOUT_MS = 5000


def connect_sqlite(path: str) -> sqlite3.Connection:
    """Writable connection in WAL mode; parent directories are created first."""
    if path != ":memory:":
        Path(path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(path, check_same_thread=False)
    conn.execute(f"PRAGMA busy_timeout={_BUSY_TIMEOUT_MS};")
    conn.execute("PRAGMA journal_mode=WAL;")
    conn.execute("PRAGMA synchronous=NORMAL;")
    return conn


def connect_sqlite_ro(path: str) -> sqlite3.Connection:
    """Read-only connection to an existing file. Raises sqlite3.OperationalError if it is missing."""
    conn = sqlite3.connect(f"file:{path}?mode=ro", uri=True, check_same_thread=False)
    conn.execute("PRAGMA query_only=ON;")
    return conn


def ensure_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(
        """
        CREATE TABLE IF NOT EXISTS fire_packs (
            cache_key  TEXT PRIMARY KEY,
            stored_at  REAL NOT NULL,
            expires_at REAL NOT NULL,
            pack_json  BLOB NOT NULL
        );
        CREATE INDEX IF NOT EXISTS idx_fire_packs_stored_at ON fire_packs(stored_at);
        """
    )


def put_fire_pack(
    conn: sqlite3.Connection,
    *,
    cache_key: str,
    stored_at: float,
    expires_at: float,
    pack: Any,
) -> int:
    """Insert or replace one entry. Returns the stored blob size in bytes."""
    blob = orjson.dumps(pack)
    with conn:
        conn.execute(
            "INSERT OR REPLACE INTO fire_packs (cache_key, stored_at, expires_at, pack_json) "
            "VALUES (?, ?, ?, ?);",
            (cache_key, float(stored_at), float(expires_at), blob),
        )
    return len(blob)


def get_fire_pack(conn: sqlite3.Connection, cache_key: str) -> Optional[Tuple[float, Any]]:
    """(expires_at, pack) or None. Expiry is left to the caller."""
    found = conn.execute(
        "SELECT expires_at, pack_json FROM fire_packs WHERE cache_key = ?;", (cache_key,)
    ).fetchone()
    if found is None:
        return None
    expires_at, blob = found
    return float(expires_at), orjson.loads(blob)


def delete_fire_pack(conn: sqlite3.Connection, cache_key: str) -> None:
    with conn:
        conn.execute("DELETE FROM fire_packs WHERE cache_key = ?;", (cache_key,))


def delete_fire_packs_older_than(conn: sqlite3.Connection, *, prefix: str, stored_before: float) -> int:
    # substr, not LIKE: "_" in the prefix would act as a wildcard
    with conn:
        cur = conn.execute(
            "DELETE FROM fire_packs WHERE substr(cache_key, 1, ?) = ? AND stored_at < ?;",
            (len(prefix), prefix, float(stored_before)),
        )
    return int(cur.rowcount or 0)
