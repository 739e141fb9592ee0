from __future__ import annotations

from typing import Iterable, Optional

from firefeed.core.contracts import FeedMeta, FeedResponse, FireCoords, FireIncident
from firefeed.core.fire_db import FireRow
from firefeed.core.time import utc_now_iso


def _int_or_none(v: Optional[float]) -> Optional[int]:
    # truncates toward zero
    if v is None:
        return None
    return int(v)


def fire_map_url(base_url: str, lng: float, lat: float, zoom: int) -> str:
    return f"{base_url.rstrip('/')}/?lng={lng:.6f}&lat={lat:.6f}&zoom={int(zoom)}"


def fire_from_row(row: FireRow, *, map_base_url: str) -> FireIncident:
    return FireIncident(
        id=row.id,
        name=row.name,
        irwin_id=row.irwin_id,
        updated=row.modified_at,
        acres=_int_or_none(row.acres),
        state=row.state,
        county=row.county,
        contained_pct=_int_or_none(row.percent_contained),
        map_url=fire_map_url(map_base_url, row.center_lng, row.center_lat, row.zoom),
        coords=FireCoords(lng=float(row.center_lng), lat=float(row.center_lat), zoom=int(row.zoom)),
    )


def format_feed(
    rows: Iterable[FireRow],
    *,
    cached: bool,
    cache_ttl: int,
    map_base_url: str,
    generated_at: Optional[str] = None,
) -> FeedResponse:
    """Wrap rows in the public envelope. Pure apart from the default timestamp."""
    fires = [fire_from_row(r, map_base_url=map_base_url) for r in rows]
    return FeedResponse(
        meta=FeedMeta(
            generated_at=generated_at or utc_now_iso(),
            count=len(fires),
            cached=cached,
            cache_ttl=int(cache_ttl),
        ),
        fires=fires,
    )
