"""
Pytest configuration and fixtures.
"""
import sqlite3
from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from firefeed.core.cache import MemoryCacheStore
from firefeed.core.fire_db import FireDBSqlite, ensure_sqlite_schema, insert_incidents, insert_perimeters
from firefeed.core.geo import BBox, bbox_to_polygon
from firefeed.core.time import to_utc_iso
from firefeed.services.fires import Fires


FIXED_NOW = datetime(2025, 8, 15, 12, 0, 0, tzinfo=timezone.utc)
MAP_BASE_URL = "https://fire-map.test"
CACHE_TTL = 300


def hours_ago(h: float) -> str:
    return to_utc_iso(FIXED_NOW - timedelta(hours=h))


def incident(irwinid, name, acres, state, *, hours, county=None, contained=None, lng=-110.0, lat=40.0):
    return {
        "irwinid": irwinid,
        "incidentname": name,
        "reported_acres": acres,
        "poostate": state,
        "poocounty": county,
        "percent_contained": contained,
        "modified_at": hours_ago(hours),
        "lng": lng,
        "lat": lat,
    }


def perimeter(gid, irwinid, bbox, name=None):
    return {
        "gid": gid,
        "attr_irwinid": irwinid,
        "poly_incidentname": name,
        "bbox": bbox_to_polygon(BBox(*bbox)),
    }


# Active set, in expected feed order:
#   Ridge 52310 > Bluebonnet 50000 > Sagebrush 5000 > Zeta 1200 (1h) > Alpha 1200 (12h)
#   > Mesquite 1200 (12h) > Saguaro A 700 > Ridgeway 300
FIXTURE_INCIDENTS = [
    # superseded record for Ridge
    incident("IRW-CA-1", "Ridge", 40000, "US-CA", hours=48, county="Fresno"),
    incident("IRW-CA-1", "Ridge", 52310, "US-CA", hours=3, county="Fresno", contained=35.7),
    incident("IRW-TX-1", "Bluebonnet", 50000, "TX", hours=6, county="Hemphill", contained=10),
    incident("IRW-TX-2", "Mesquite", 1200, "US-TX", hours=12, county="Lipscomb", lng=-100.31, lat=36.22),
    incident("IRW-CA-2", "Ridgeway", 300, "ca", hours=24, county="Mariposa", contained=0),
    incident("IRW-NV-1", None, 5000, "NV", hours=2),
    incident("IRW-OR-2", "Alpha", 1200, "OR", hours=12),
    incident("IRW-OR-3", "Zeta", 1200, "OR", hours=1),
    # same timestamp: first inserted wins
    incident("IRW-AZ-1", "Saguaro A", 700, "AZ", hours=5),
    incident("IRW-AZ-1", "Saguaro B", 800, "AZ", hours=5),
    # filtered out: stale, and under one acre
    incident("IRW-MT-1", "Old Burn", 900, "US-MT", hours=24 * 20),
    incident("IRW-OR-1", "Spot", 0.5, "OR", hours=1),
]

FIXTURE_PERIMETERS = [
    perimeter(9001, "IRW-CA-1", (-119.8, 36.6, -119.0, 37.2), name="RIDGE"),          # extent 0.8  -> 9
    perimeter(9003, "IRW-TX-1", (-100.35, 35.80, -100.19, 35.88), name="BLUEBONNET"),  # extent 0.16 -> 11
    perimeter(9100, "IRW-NV-1", (-117.05, 39.50, -117.00, 39.55), name="Sagebrush"),   # extent 0.05 -> 13
    perimeter(9200, "IRW-CA-2", (-121.0, 37.0, -119.0, 39.0)),
    perimeter(9201, "IRW-CA-2", (-120.001, 38.0, -120.0, 38.004)),                     # extent 0.004 -> 15
]

EXPECTED_ORDER = [
    "Ridge", "Bluebonnet", "Sagebrush", "Zeta", "Alpha", "Mesquite", "Saguaro A", "Ridgeway",
]


class FakeClock:
    """Settable epoch clock for cache stores."""

    def __init__(self, start: float = FIXED_NOW.timestamp()):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fire_conn():
    """In-memory fire data source seeded with the fixture incidents."""
    # route handlers run in a worker thread
    conn = sqlite3.connect(":memory:", check_same_thread=False)
    ensure_sqlite_schema(conn)
    insert_incidents(conn, FIXTURE_INCIDENTS)
    insert_perimeters(conn, FIXTURE_PERIMETERS)
    yield conn
    conn.close()


@pytest.fixture
def fire_db(fire_conn):
    return FireDBSqlite(conn=fire_conn, now=lambda: FIXED_NOW)


@pytest.fixture
def memory_cache(clock):
    return MemoryCacheStore(clock=clock)


@pytest.fixture
def fires_service(memory_cache, fire_db):
    return Fires(
        cache=memory_cache,
        fire_db=fire_db,
        cache_ttl=CACHE_TTL,
        map_base_url=MAP_BASE_URL,
        sweep_probability=0.0,
    )


@pytest.fixture
def make_client():
    """Build a TestClient whose Fires dependency is the given service."""
    from firefeed.api import fires as fires_api
    from firefeed.main import app

    previous = app.dependency_overrides.get(fires_api.get_fires_service)

    def _make(service, **client_kwargs):
        app.dependency_overrides[fires_api.get_fires_service] = lambda: service
        return TestClient(app, **client_kwargs)

    yield _make

    if previous is not None:
        app.dependency_overrides[fires_api.get_fires_service] = previous


@pytest.fixture
def client(make_client, fires_service):
    return make_client(fires_service)
