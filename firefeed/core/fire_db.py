"""
firefeed/core/fire_db.py

Read-only query interface for active wildfire incidents.

Two backends:
  - FireDBPostgres: production (WFIGS incident + perimeter views, PostGIS)
  - FireDBSqlite:   local dev / tests (same semantics over two plain tables)

Factory function `create_fire_db()` selects one from settings.

Selection, in order:
  1. latest record per irwin id, modified within the window, acres >= floor
  2. perimeter bbox joined on irwin id when one exists
  3. centroid + suggested zoom from the bbox, else the incident point
  4. optional state filter ("CA" matches "CA" and "US-CA")
  5. optional case-insensitive name substring search
  6. acres DESC NULLS LAST, modified DESC NULLS LAST, name ASC
  7. LIMIT

Every failure surfaces as DataSourceError; callers never see driver text.
"""

from __future__ import annotations

import logging
import os
import sqlite3
import threading
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass, fields
from datetime import datetime
from typing import Any, Callable, List, Optional, Sequence

import orjson
import psycopg2
import psycopg2.pool

from firefeed.core.errors import DataSourceError
from firefeed.core.geo import bbox_from_values, fire_center
from firefeed.core.keying import FireQuery
from firefeed.core.settings import Settings
from firefeed.core.storage import connect_sqlite_ro
from firefeed.core.time import to_utc_iso, utc_now, window_start

logger = logging.getLogger(__name__)


# ── Data ─────────────────────────────────────────────────────────────

@dataclass(frozen=True, slots=True)
class FireRow:
    """One active fire as returned by a query. Cached as a plain dict."""
    id: str
    name: Optional[str]
    irwin_id: Optional[str]
    modified_at: Optional[str]      # ISO8601 UTC
    acres: Optional[float]
    state: Optional[str]
    county: Optional[str]
    percent_contained: Optional[float]
    center_lng: float
    center_lat: float
    zoom: int

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "FireRow":
        return cls(**{f.name: d.get(f.name) for f in fields(cls)})


def _num(v: Any) -> Optional[float]:
    if v is None:
        return None
    try:
        return float(v)
    except (TypeError, ValueError):
        return None


def _iso_or_none(v: Any) -> Optional[str]:
    if v is None:
        return None
    if isinstance(v, datetime):
        return to_utc_iso(v)
    s = str(v).strip()
    if not s:
        return None
    try:
        return to_utc_iso(datetime.fromisoformat(s.replace("Z", "+00:00")))
    except ValueError:
        return s


def _like_pattern(term: str) -> str:
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _tuple_to_fire(row: Sequence[Any]) -> Optional[FireRow]:
    bbox = bbox_from_values(row[10], row[11], row[12], row[13])
    center = fire_center(bbox, row[8], row[9])
    if center is None:
        return None
    lng, lat, zoom = center
    irwin_id = None if row[3] is None else str(row[3])
    return FireRow(
        id=str(row[0]) if row[0] is not None else (irwin_id or ""),
        name=row[1],
        irwin_id=irwin_id,
        modified_at=_iso_or_none(row[2]),
        acres=_num(row[4]),
        state=row[5],
        county=row[6],
        percent_contained=_num(row[7]),
        center_lng=lng,
        center_lat=lat,
        zoom=zoom,
    )


def _rows_to_fires(rows: Sequence[Sequence[Any]]) -> List[FireRow]:
    fires: List[FireRow] = []
    for r in rows:
        fire = _tuple_to_fire(r)
        if fire is None:
            logger.warning("[firedb] dropping fire %r with no usable location", r[3])
            continue
        fires.append(fire)
    return fires


# ── Abstract interface ───────────────────────────────────────────────

class FireDB(ABC):
    """Read-only query interface for active fires."""

    backend: str = "abstract"

    @abstractmethod
    def query_active_fires(self, query: FireQuery) -> List[FireRow]:
        ...

    @abstractmethod
    def ping(self) -> bool:
        ...

    @abstractmethod
    def close(self) -> None:
        ...


# ── Postgres + PostGIS backend (production) ──────────────────────────

class FireDBPostgres(FireDB):
    """
    Queries the WFIGS views with psycopg2.

    The connection pool is created on first use, so a request that is served
    from cache never touches the database. Each query checks a connection out
    and always returns it, even when the query fails.
    """

    backend = "postgres"

    _BASE_SQL = """
        WITH
        -- latest incident record per irwinid inside the window
        latest_incidents AS (
            SELECT DISTINCT ON (irwinid)
                irwinid,
                incidentname,
                wfca_reportedacres,
                poostate,
                poocounty,
                percentcontained,
                modifiedondatetime_dt,
                -- Web Mercator (3857) -> WGS84 (4326)
                ST_X(ST_Transform(geom::geometry, 4326)) AS lng,
                ST_Y(ST_Transform(geom::geometry, 4326)) AS lat
            FROM data.mvw_wfigs_incident_locations_current_history
            WHERE modifiedondatetime_dt >= NOW() - make_interval(days => %(window_days)s)
              AND wfca_reportedacres >= %(min_acres)s
            ORDER BY irwinid, modifiedondatetime_dt DESC NULLS LAST
        ),
        -- one perimeter bbox per irwinid
        perimeter_bbox AS (
            SELECT DISTINCT ON (p.attr_irwinid)
                p.attr_irwinid,
                p.gid,
                p.poly_incidentname,
                (p.bbox::jsonb -> 'coordinates' -> 0 -> 0 -> 0)::float AS min_lng,
                (p.bbox::jsonb -> 'coordinates' -> 0 -> 0 -> 1)::float AS min_lat,
                (p.bbox::jsonb -> 'coordinates' -> 0 -> 2 -> 0)::float AS max_lng,
                (p.bbox::jsonb -> 'coordinates' -> 0 -> 2 -> 1)::float AS max_lat
            FROM data.vw_wfigs_interagency_perimeters_current_bbox p
            ORDER BY p.attr_irwinid, p.gid DESC
        )
        -- column order must match _tuple_to_fire indices
        SELECT
            COALESCE(pb.gid::text, li.irwinid::text) AS gid,
            COALESCE(li.incidentname, pb.poly_incidentname) AS fire_name,
            li.modifiedondatetime_dt AS modified_at,
            li.irwinid::text AS irwin_id,
            li.wfca_reportedacres AS acres,
            li.poostate AS state,
            li.poocounty AS county,
            li.percentcontained AS percent_contained,
            li.lng,
            li.lat,
            pb.min_lng,
            pb.min_lat,
            pb.max_lng,
            pb.max_lat
        FROM latest_incidents li
        LEFT JOIN perimeter_bbox pb ON li.irwinid = pb.attr_irwinid
        WHERE (pb.min_lng IS NOT NULL OR li.lng IS NOT NULL)
    """

    def __init__(
        self,
        *,
        database_url: str | None = None,
        host: str | None = None,
        port: int = 5432,
        dbname: str | None = None,
        user: str | None = None,
        password: str | None = None,
        min_conn: int = 1,
        max_conn: int = 5,
        connect_timeout_s: int = 5,
        statement_timeout_ms: int = 10_000,
        window_days: int = 7,
        min_acres: float = 1.0,
    ):
        self._database_url = database_url
        self._conn_kwargs = {
            "host": host,
            "port": port,
            "dbname": dbname,
            "user": user,
            "password": password,
        }
        self._min_conn = min_conn
        self._max_conn = max_conn
        self._connect_timeout_s = connect_timeout_s
        self._statement_timeout_ms = statement_timeout_ms
        self.window_days = window_days
        self.min_acres = min_acres
        self._pool: psycopg2.pool.ThreadedConnectionPool | None = None
        self._pool_lock = threading.Lock()

    @property
    def configured(self) -> bool:
        kw = self._conn_kwargs
        return bool(self._database_url or (kw["host"] and kw["dbname"] and kw["user"]))

    def _get_pool(self) -> psycopg2.pool.ThreadedConnectionPool:
        if self._pool is not None:
            return self._pool
        with self._pool_lock:
            if self._pool is not None:
                return self._pool
            if not self.configured:
                raise DataSourceError("PostgreSQL configuration not found")

            opts = {
                "connect_timeout": self._connect_timeout_s,
                "options": f"-c statement_timeout={int(self._statement_timeout_ms)}",
                "application_name": "firefeed",
            }
            logger.info("[firedb] Connecting to Postgres (pool %d-%d)...", self._min_conn, self._max_conn)
            try:
                if self._database_url:
                    pool = psycopg2.pool.ThreadedConnectionPool(
                        self._min_conn, self._max_conn, self._database_url, **opts
                    )
                else:
                    kw = {k: v for k, v in self._conn_kwargs.items() if v is not None}
                    pool = psycopg2.pool.ThreadedConnectionPool(
                        self._min_conn, self._max_conn, **kw, **opts
                    )
            except psycopg2.Error as e:
                raise DataSourceError("could not connect to fire database") from e
            self._pool = pool
            return pool

    def build_query(self, query: FireQuery) -> tuple[str, dict]:
        sql = self._BASE_SQL
        params: dict = {
            "window_days": int(self.window_days),
            "min_acres": self.min_acres,
            "limit": int(query.limit),
        }

        # "TX" must match both "TX" and "US-TX"
        if query.state:
            sql += " AND (UPPER(li.poostate) = UPPER(%(state)s) OR UPPER(li.poostate) = UPPER(%(state_prefixed)s))"
            params["state"] = query.state
            params["state_prefixed"] = "US-" + query.state

        if query.search:
            sql += " AND UPPER(COALESCE(li.incidentname, pb.poly_incidentname)) LIKE UPPER(%(search)s) ESCAPE '\\'"
            params["search"] = _like_pattern(query.search)

        sql += """
        ORDER BY li.wfca_reportedacres DESC NULLS LAST,
                 li.modifiedondatetime_dt DESC NULLS LAST,
                 fire_name ASC
        LIMIT %(limit)s
        """
        return sql, params

    def query_active_fires(self, query: FireQuery) -> List[FireRow]:
        sql, params = self.build_query(query)
        pool = self._get_pool()
        try:
            conn = pool.getconn()
        except psycopg2.Error as e:
            raise DataSourceError("no fire database connection available") from e

        broken = False
        try:
            conn.autocommit = True
            with conn.cursor() as cur:
                cur.execute(sql, params)
                rows = cur.fetchall()
        except psycopg2.Error as e:
            broken = bool(conn.closed)
            raise DataSourceError("fire query failed") from e
        finally:
            pool.putconn(conn, close=broken)

        return _rows_to_fires(rows)

    def ping(self) -> bool:
        pool = self._get_pool()
        try:
            conn = pool.getconn()
        except psycopg2.Error as e:
            raise DataSourceError("no fire database connection available") from e
        broken = False
        try:
            conn.autocommit = True
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
                return cur.fetchone()[0] == 1
        except psycopg2.Error as e:
            broken = bool(conn.closed)
            raise DataSourceError("fire database ping failed") from e
        finally:
            pool.putconn(conn, close=broken)

    def close(self) -> None:
        with self._pool_lock:
            if self._pool is not None:
                self._pool.closeall()
                self._pool = None


# ── SQLite backend (local dev) ───────────────────────────────────────

SQLITE_SCHEMA = """
CREATE TABLE IF NOT EXISTS incident_locations (
  irwinid TEXT NOT NULL,
  incidentname TEXT,
  reported_acres REAL,
  poostate TEXT,
  poocounty TEXT,
  percent_contained REAL,
  modified_at TEXT,               -- ISO8601, "Z" or offset
  lng REAL,                       -- WGS84
  lat REAL
);

CREATE INDEX IF NOT EXISTS idx_incident_locations_irwinid ON incident_locations(irwinid);

CREATE TABLE IF NOT EXISTS perimeters (
  gid INTEGER NOT NULL,
  attr_irwinid TEXT NOT NULL,
  poly_incidentname TEXT,
  bbox TEXT NOT NULL              -- GeoJSON Polygon, ring[0]=min corner, ring[2]=max corner
);

CREATE INDEX IF NOT EXISTS idx_perimeters_irwinid ON perimeters(attr_irwinid);
"""


class FireDBSqlite(FireDB):
    """
    Same query semantics over `incident_locations` + `perimeters`.
    "Latest per incident" uses ROW_NUMBER; ties go to the earliest inserted row.
    """

    backend = "sqlite"

    _BASE_SQL = """
        WITH
        latest_incidents AS (
            SELECT * FROM (
                SELECT
                    i.*,
                    ROW_NUMBER() OVER (
                        PARTITION BY i.irwinid
                        ORDER BY julianday(i.modified_at) DESC NULLS LAST, i.rowid ASC
                    ) AS rn
                FROM incident_locations i
                WHERE julianday(i.modified_at) >= julianday(?)
                  AND i.reported_acres >= ?
            ) WHERE rn = 1
        ),
        perimeter_bbox AS (
            SELECT * FROM (
                SELECT
                    p.gid,
                    p.attr_irwinid,
                    p.poly_incidentname,
                    json_extract(p.bbox, '$.coordinates[0][0][0]') AS min_lng,
                    json_extract(p.bbox, '$.coordinates[0][0][1]') AS min_lat,
                    json_extract(p.bbox, '$.coordinates[0][2][0]') AS max_lng,
                    json_extract(p.bbox, '$.coordinates[0][2][1]') AS max_lat,
                    ROW_NUMBER() OVER (PARTITION BY p.attr_irwinid ORDER BY p.gid DESC) AS rn
                FROM perimeters p
            ) WHERE rn = 1
        )
        SELECT
            COALESCE(CAST(pb.gid AS TEXT), li.irwinid) AS gid,
            COALESCE(li.incidentname, pb.poly_incidentname) AS fire_name,
            li.modified_at,
            li.irwinid AS irwin_id,
            li.reported_acres AS acres,
            li.poostate AS state,
            li.poocounty AS county,
            li.percent_contained,
            li.lng,
            li.lat,
            pb.min_lng,
            pb.min_lat,
            pb.max_lng,
            pb.max_lat
        FROM latest_incidents li
        LEFT JOIN perimeter_bbox pb ON li.irwinid = pb.attr_irwinid
        WHERE (pb.min_lng IS NOT NULL OR li.lng IS NOT NULL)
    """

    def __init__(
        self,
        db_path: str | None = None,
        *,
        conn: sqlite3.Connection | None = None,
        window_days: int = 7,
        min_acres: float = 1.0,
        now: Callable[[], datetime] = utc_now,
    ):
        if conn is None:
            if not db_path:
                raise ValueError("FireDBSqlite needs db_path or conn")
            conn = connect_sqlite_ro(db_path)
        self._path = db_path
        self._conn = conn
        self._lock = threading.Lock()
        self.window_days = window_days
        self.min_acres = min_acres
        self._now = now

    def build_query(self, query: FireQuery) -> tuple[str, list]:
        cutoff = to_utc_iso(window_start(self._now(), self.window_days))
        sql = self._BASE_SQL
        params: list = [cutoff, self.min_acres]

        if query.state:
            sql += " AND (UPPER(li.poostate) = UPPER(?) OR UPPER(li.poostate) = UPPER(?))"
            params += [query.state, "US-" + query.state]

        if query.search:
            sql += " AND UPPER(COALESCE(li.incidentname, pb.poly_incidentname)) LIKE UPPER(?) ESCAPE '\\'"
            params.append(_like_pattern(query.search))

        sql += """
        ORDER BY li.reported_acres DESC NULLS LAST,
                 julianday(li.modified_at) DESC NULLS LAST,
                 fire_name ASC
        LIMIT ?
        """
        params.append(int(query.limit))
        return sql, params

    def query_active_fires(self, query: FireQuery) -> List[FireRow]:
        sql, params = self.build_query(query)
        try:
            with self._lock:
                rows = self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise DataSourceError("fire query failed") from e
        return _rows_to_fires(rows)

    def ping(self) -> bool:
        try:
            with self._lock:
                return self._conn.execute("SELECT 1").fetchone()[0] == 1
        except sqlite3.Error as e:
            raise DataSourceError("fire database ping failed") from e

    def close(self) -> None:
        with self._lock:
            self._conn.close()


def ensure_sqlite_schema(conn: sqlite3.Connection) -> None:
    conn.executescript(SQLITE_SCHEMA)
    conn.commit()


# ── Factory ──────────────────────────────────────────────────────────

def create_fire_db(settings: Settings) -> FireDB:
    """
    Select the fire data source.

    Priority:
      1. FIRE_DATABASE_URL or WFCA_PG_* → Postgres (pool opened lazily)
      2. FIRE_DB_PATH pointing at an existing file → local SQLite
      3. otherwise an unconfigured Postgres backend: every query fails with
         DataSourceError, so the endpoint answers 500 instead of crashing at boot
    """
    if settings.has_postgres:
        logger.info("[firedb] Using Postgres backend")
    elif settings.fire_db_path and os.path.isfile(settings.fire_db_path):
        logger.info("[firedb] Using SQLite backend: %s", settings.fire_db_path)
        return FireDBSqlite(
            settings.fire_db_path,
            window_days=settings.fire_window_days,
            min_acres=settings.fire_min_acres,
        )
    else:
        logger.warning(
            "[firedb] No fire database configured. "
            "Set FIRE_DATABASE_URL / WFCA_PG_* for Postgres or FIRE_DB_PATH for local SQLite."
        )

    return FireDBPostgres(
        database_url=settings.fire_database_url,
        host=settings.pg_host,
        port=settings.pg_port,
        dbname=settings.pg_name,
        user=settings.pg_user,
        password=settings.pg_password,
        min_conn=settings.fire_db_pool_min,
        max_conn=settings.fire_db_pool_max,
        connect_timeout_s=settings.fire_db_connect_timeout_s,
        statement_timeout_ms=settings.fire_db_statement_timeout_ms,
        window_days=settings.fire_window_days,
        min_acres=settings.fire_min_acres,
    )


_INCIDENT_COLS = (
    "irwinid", "incidentname", "reported_acres", "poostate", "poocounty",
    "percent_contained", "modified_at", "lng", "lat",
)


def insert_incidents(conn: sqlite3.Connection, incidents: Sequence[dict]) -> int:
    """Load incident dicts keyed by the incident_locations column names."""
    sql = (
        f"INSERT INTO incident_locations ({', '.join(_INCIDENT_COLS)}) "
        f"VALUES ({', '.join('?' for _ in _INCIDENT_COLS)})"
    )
    conn.executemany(sql, [tuple(i.get(c) for c in _INCIDENT_COLS) for i in incidents])
    conn.commit()
    return len(incidents)


def insert_perimeters(conn: sqlite3.Connection, perimeters: Sequence[dict]) -> int:
    """Load perimeter dicts: gid, attr_irwinid, poly_incidentname, bbox (dict or JSON text)."""
    rows = []
    for p in perimeters:
        bbox = p["bbox"]
        if not isinstance(bbox, str):
            bbox = orjson.dumps(bbox).decode("utf-8")
        rows.append((p["gid"], p["attr_irwinid"], p.get("poly_incidentname"), bbox))
    conn.executemany(
        "INSERT INTO perimeters (gid, attr_irwinid, poly_incidentname, bbox) VALUES (?, ?, ?, ?)",
        rows,
    )
    conn.commit()
    return len(rows)
