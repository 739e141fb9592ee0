#!/usr/bin/env python3
"""
scripts/watch_fires.py

Terminal view of the active fires feed: fetch, sort, page, print.

  python scripts/watch_fires.py --api http://localhost:8000/active-fires --query CA
  python scripts/watch_fires.py --sort updated --dir desc --watch 300

With --watch the feed is re-fetched every N seconds. Polls are independent;
whatever resolves last is what is on screen.
"""

from __future__ import annotations

import argparse
import sys
import time

from firefeed.services.feed_client import FeedClient, FeedClientError
from firefeed.services.listing import (
    filter_fires,
    format_acres,
    format_location,
    format_relative_time,
    paginate,
    sort_fires,
)


DEFAULT_API_URL = "http://localhost:8000/active-fires"
DEFAULT_REFRESH_S = 300


def render(data: dict, *, sort: str, direction: str, term: str, page: int, per_page: int) -> str:
    fires = sort_fires(filter_fires(data["fires"], term), sort, direction)
    pg = paginate(fires, page, per_page)
    meta = data.get("meta") or {}

    lines = [
        f"Active Wildfires - {pg.total} shown "
        f"(generated {meta.get('generated_at', '?')}, cached={meta.get('cached')})",
        f"{'NAME':<32} {'UPDATED':>10} {'LOCATION':<28} {'ACRES':>8}",
    ]
    for f in pg.items:
        lines.append(
            f"{(f.get('name') or '-')[:32]:<32} "
            f"{format_relative_time(f.get('updated')):>10} "
            f"{format_location(f.get('county'), f.get('state'))[:28]:<28} "
            f"{format_acres(f.get('acres')):>8}"
        )
    if not pg.items:
        lines.append("No active fires match.")
    if pg.total_pages > 1:
        lines.append(f"Page {pg.page} of {pg.total_pages}")
    return "\n".join(lines)


def main():
    parser = argparse.ArgumentParser(description="Print the active fires feed as a table")
    parser.add_argument("--api", default=DEFAULT_API_URL, help="Active fires endpoint URL")
    parser.add_argument("--limit", type=int, default=50)
    parser.add_argument("--query", default="", help="State code, state name, or fire name")
    parser.add_argument("--filter", default="", help="Local filter on the fetched set")
    parser.add_argument("--sort", choices=["name", "updated", "location", "acres"], default="acres")
    parser.add_argument("--dir", choices=["asc", "desc"], default="desc")
    parser.add_argument("--page", type=int, default=1)
    parser.add_argument("--per-page", type=int, default=10)
    parser.add_argument("--watch", type=int, default=0, metavar="SECONDS",
                        help=f"Refresh interval (0 = once; widget default {DEFAULT_REFRESH_S})")
    args = parser.parse_args()

    with FeedClient(args.api) as client:
        while True:
            try:
                data = client.fetch(limit=args.limit, query=args.query)
                print(render(data, sort=args.sort, direction=args.dir, term=args.filter,
                             page=args.page, per_page=args.per_page))
            except FeedClientError as e:
                print(f"ERROR: Unable to load fire data ({e})", file=sys.stderr)
                if not args.watch:
                    sys.exit(1)
            if not args.watch:
                break
            time.sleep(args.watch)
            print()


if __name__ == "__main__":
    main()
