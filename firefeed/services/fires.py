from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Optional

from firefeed.core.cache import CacheStore
from firefeed.core.contracts import FeedResponse
from firefeed.core.errors import CacheUnavailable
from firefeed.core.fire_db import FireDB, FireRow
from firefeed.core.keying import FireQuery, fires_cache_key
from firefeed.services.formatter import format_feed

logger = logging.getLogger(__name__)


@dataclass
class FeedResult:
    response: FeedResponse
    cache_hit: bool
    cache_key: str


_REQUIRED_NUMBERS = ("center_lng", "center_lat", "zoom")


def _cached_row_ok(d: Any) -> bool:
    if not isinstance(d, dict) or not isinstance(d.get("id"), str):
        return False
    for name in _REQUIRED_NUMBERS:
        v = d.get(name)
        if isinstance(v, bool) or not isinstance(v, (int, float)):
            return False
    return True


def _rows_from_cache(cached: Any) -> Optional[List[FireRow]]:
    """Rows from a cached payload, or None when any entry is incomplete."""
    if not isinstance(cached, list) or not all(_cached_row_ok(d) for d in cached):
        return None
    return [FireRow.from_dict(d) for d in cached]


class Fires:
    """
    Active fires feed: cache lookup → (miss) query → cache store → format.

    No per-key locking: two concurrent misses for the same key both query
    and the later write wins. Caching is best-effort; a failed cache write
    never fails the request.
    """

    def __init__(
        self,
        *,
        cache: CacheStore,
        fire_db: FireDB,
        cache_ttl: int,
        map_base_url: str,
        sweep_max_age_s: int = 3600,
        sweep_probability: float = 0.01,
    ):
        self.cache = cache
        self.fire_db = fire_db
        self.cache_ttl = int(cache_ttl)
        self.map_base_url = map_base_url
        self.sweep_max_age_s = int(sweep_max_age_s)
        self.sweep_probability = float(sweep_probability)

    def feed(self, query: FireQuery) -> FeedResult:
        key = fires_cache_key(query)

        try:
            cached = self.cache.get(key)
        except CacheUnavailable as e:
            logger.warning("[fires] cache read failed, treating as miss: %s", e)
            cached = None

        if cached is not None:
            rows = _rows_from_cache(cached)
            if rows is not None:
                return FeedResult(response=self._format(rows, cached=True), cache_hit=True, cache_key=key)
            logger.warning("[fires] unreadable cache entry %s, refetching", key)

        # DataSourceError propagates to the route's error handler
        rows = self.fire_db.query_active_fires(query)

        try:
            self.cache.set(key, [r.to_dict() for r in rows], self.cache_ttl)
        except CacheUnavailable as e:
            logger.warning("[fires] cache write failed, serving uncached: %s", e)

        return FeedResult(response=self._format(rows, cached=False), cache_hit=False, cache_key=key)

    def maybe_sweep(self) -> int:
        """Post-response housekeeping. Runs a sweep with `sweep_probability` chance."""
        try:
            return self.cache.sweep(self.sweep_max_age_s, self.sweep_probability)
        except Exception:
            # never let housekeeping surface after the response is gone
            logger.exception("[fires] cache sweep failed")
            return 0

    def _format(self, rows: List[FireRow], *, cached: bool) -> FeedResponse:
        return format_feed(
            rows,
            cached=cached,
            cache_ttl=self.cache_ttl,
            map_base_url=self.map_base_url,
        )
