from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional, Tuple

import orjson


DEFAULT_POINT_ZOOM = 13

# (extent threshold in degrees, zoom); first match wins, else 15
_ZOOM_STEPS = ((0.5, 9), (0.1, 11), (0.01, 13))
_MIN_ZOOM = 15


@dataclass(frozen=True, slots=True)
class BBox:
    min_lng: float
    min_lat: float
    max_lng: float
    max_lat: float

    @property
    def extent(self) -> float:
        return max(self.max_lng - self.min_lng, self.max_lat - self.min_lat)


def bbox_center(b: BBox) -> Tuple[float, float]:
    """(lng, lat) midpoint rounded to 6 decimals."""
    return (
        round((b.min_lng + b.max_lng) / 2.0, 6),
        round((b.min_lat + b.max_lat) / 2.0, 6),
    )


def suggested_zoom(b: Optional[BBox]) -> int:
    if b is None:
        return DEFAULT_POINT_ZOOM
    extent = b.extent
    for threshold, zoom in _ZOOM_STEPS:
        if extent > threshold:
            return zoom
    return _MIN_ZOOM


def bbox_from_values(
    min_lng: Any, min_lat: Any, max_lng: Any, max_lat: Any
) -> Optional[BBox]:
    vals = (min_lng, min_lat, max_lng, max_lat)
    if any(v is None for v in vals):
        return None
    try:
        return BBox(*(float(v) for v in vals))
    except (TypeError, ValueError):
        return None


def bbox_from_polygon(geom: Any) -> Optional[BBox]:
    """
    Bbox polygon as stored by the perimeter view: a GeoJSON Polygon whose outer
    ring runs corner-to-corner, so ring[0] is (min_lng, min_lat) and ring[2] is
    (max_lng, max_lat). Accepts a dict or a JSON string/bytes.
    """
    if geom is None:
        return None
    if isinstance(geom, (str, bytes)):
        try:
            geom = orjson.loads(geom)
        except orjson.JSONDecodeError:
            return None
    if not isinstance(geom, dict):
        return None
    try:
        ring = geom["coordinates"][0]
        lo, hi = ring[0], ring[2]
        return bbox_from_values(lo[0], lo[1], hi[0], hi[1])
    except (KeyError, IndexError, TypeError):
        return None


def _on_map(lng: float, lat: float) -> bool:
    # open bounds; NaN fails both
    return -180.0 < lng < 180.0 and -90.0 < lat < 90.0


def fire_center(
    bbox: Optional[BBox], point_lng: Any, point_lat: Any
) -> Optional[Tuple[float, float, int]]:
    """
    (lng, lat, zoom) from the bbox when its center is on the map, else from the
    point location. None when neither gives usable coordinates.
    """
    if bbox is not None:
        lng, lat = bbox_center(bbox)
        if _on_map(lng, lat):
            return lng, lat, suggested_zoom(bbox)
    if point_lng is None or point_lat is None:
        return None
    try:
        lng, lat = round(float(point_lng), 6), round(float(point_lat), 6)
    except (TypeError, ValueError):
        return None
    if not _on_map(lng, lat):
        return None
    return lng, lat, DEFAULT_POINT_ZOOM


def bbox_to_polygon(b: BBox) -> dict:
    """Inverse of bbox_from_polygon: closed corner-to-corner ring."""
    return {
        "type": "Polygon",
        "coordinates": [[
            [b.min_lng, b.min_lat],
            [b.max_lng, b.min_lat],
            [b.max_lng, b.max_lat],
            [b.min_lng, b.max_lat],
            [b.min_lng, b.min_lat],
        ]],
    }
