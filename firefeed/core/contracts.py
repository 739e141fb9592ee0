from __future__ import annotations

from typing import List, Optional
from pydantic import BaseModel, Field


# ──────────────────────────────────────────────────────────────
# Active fires feed
# ──────────────────────────────────────────────────────────────

class FireCoords(BaseModel):
    lng: float
    lat: float
    zoom: int                       # suggested map zoom: 9 | 11 | 13 | 15


class FireIncident(BaseModel):
    id: str                         # perimeter gid, or irwin id when no perimeter
    name: Optional[str] = None
    irwin_id: Optional[str] = None
    updated: Optional[str] = None   # ISO8601 UTC
    acres: Optional[int] = None
    state: Optional[str] = None     # "CA" or "US-CA" as stored
    county: Optional[str] = None
    contained_pct: Optional[int] = None
    map_url: str
    coords: FireCoords


class FeedMeta(BaseModel):
    generated_at: str               # ISO8601 UTC
    count: int
    cached: bool
    cache_ttl: int                  # seconds


class FeedResponse(BaseModel):
    meta: FeedMeta
    fires: List[FireIncident] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    error: str
