#!/usr/bin/env python3
"""
scripts/seed_dev_fires.py

Build a local SQLite fire database so the API runs without Postgres.

Input JSON (optional; a small built-in sample is used otherwise):
  {
    "incidents":  [{"irwinid", "incidentname", "reported_acres", "poostate",
                    "poocounty", "percent_contained", "modified_at", "lng", "lat"}],
    "perimeters": [{"gid", "attr_irwinid", "poly_incidentname",
                    "bbox": [min_lng, min_lat, max_lng, max_lat] | GeoJSON Polygon}]
  }

Then point the API at it:
  FIRE_DB_PATH=firefeed/data/fires_dev.db uvicorn firefeed.main:app
"""

from __future__ import annotations

import argparse
import sys
from datetime import timedelta
from pathlib import Path

import orjson

from firefeed.core.fire_db import ensure_sqlite_schema, insert_incidents, insert_perimeters
from firefeed.core.geo import BBox, bbox_from_polygon, bbox_to_polygon
from firefeed.core.storage import connect_sqlite
from firefeed.core.time import to_utc_iso, utc_now


DEFAULT_DB_PATH = "firefeed/data/fires_dev.db"


def sample_data() -> dict:
    now = utc_now()

    def ago(hours: float) -> str:
        return to_utc_iso(now - timedelta(hours=hours))

    return {
        "incidents": [
            {"irwinid": "{A1F0C9E2-0001}", "incidentname": "Ridge", "reported_acres": 52310.0,
             "poostate": "US-CA", "poocounty": "Fresno", "percent_contained": 35.0,
             "modified_at": ago(3), "lng": -119.41, "lat": 36.91},
            {"irwinid": "{A1F0C9E2-0002}", "incidentname": "Cedar Creek", "reported_acres": 1240.0,
             "poostate": "US-OR", "poocounty": "Lane", "percent_contained": 80.0,
             "modified_at": ago(30), "lng": -122.19, "lat": 43.73},
            {"irwinid": "{A1F0C9E2-0003}", "incidentname": "Bluebonnet", "reported_acres": 50000.0,
             "poostate": "TX", "poocounty": "Hemphill", "percent_contained": 10.0,
             "modified_at": ago(6), "lng": -100.27, "lat": 35.84},
            {"irwinid": "{A1F0C9E2-0004}", "incidentname": "Mesquite", "reported_acres": 1200.0,
             "poostate": "US-TX", "poocounty": "Lipscomb", "percent_contained": None,
             "modified_at": ago(12), "lng": -100.31, "lat": 36.22},
            {"irwinid": "{A1F0C9E2-0005}", "incidentname": "Old Burn", "reported_acres": 900.0,
             "poostate": "US-MT", "poocounty": "Lake", "percent_contained": 100.0,
             "modified_at": ago(24 * 20), "lng": -114.1, "lat": 47.6},
        ],
        "perimeters": [
            {"gid": 9001, "attr_irwinid": "{A1F0C9E2-0001}", "poly_incidentname": "RIDGE",
             "bbox": [-119.8, 36.6, -119.0, 37.2]},
            {"gid": 9003, "attr_irwinid": "{A1F0C9E2-0003}", "poly_incidentname": "BLUEBONNET",
             "bbox": [-100.35, 35.80, -100.19, 35.88]},
        ],
    }


def _normalize_perimeter(p: dict) -> dict:
    bbox = p.get("bbox")
    if isinstance(bbox, list) and len(bbox) == 4:
        geom = bbox_to_polygon(BBox(*(float(v) for v in bbox)))
    elif bbox_from_polygon(bbox) is not None:
        geom = bbox
    else:
        raise ValueError(f"perimeter {p.get('gid')!r} has an unusable bbox")
    return {**p, "bbox": geom}


def seed(db_path: str, data: dict, *, reset: bool) -> None:
    path = Path(db_path)
    if reset and path.exists():
        path.unlink()

    conn = connect_sqlite(db_path)
    try:
        ensure_sqlite_schema(conn)
        n_inc = insert_incidents(conn, data.get("incidents") or [])
        n_per = insert_perimeters(conn, [_normalize_perimeter(p) for p in data.get("perimeters") or []])
        # the API opens this file read-only
        conn.execute("PRAGMA journal_mode=DELETE;")
    finally:
        conn.close()

    print(f"[seed] {db_path}: +{n_inc:,} incidents, +{n_per:,} perimeters")


def main():
    parser = argparse.ArgumentParser(description="Create and load a local SQLite fire database")
    parser.add_argument("--db", default=DEFAULT_DB_PATH, help="SQLite file to create/extend")
    parser.add_argument("--json", help="Incidents/perimeters JSON file (default: built-in sample)")
    parser.add_argument("--reset", action="store_true", help="Delete the database file first")
    args = parser.parse_args()

    if args.json:
        try:
            data = orjson.loads(Path(args.json).read_bytes())
        except (OSError, orjson.JSONDecodeError) as e:
            print(f"ERROR: cannot read {args.json}: {e}")
            sys.exit(1)
    else:
        data = sample_data()

    seed(args.db, data, reset=args.reset)


if __name__ == "__main__":
    main()
