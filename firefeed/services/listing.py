"""
Client-side shaping of a fetched feed: sort, filter, paginate, display helpers.

Works on the public fire dicts exactly as the endpoint returns them, so the
same code serves the CLI watcher and any embedding that wants the widget's
ordering and paging without a browser.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

SortField = Literal["name", "updated", "location", "acres"]
SortDirection = Literal["asc", "desc"]

STATE_NAMES: Dict[str, str] = {
    # 50 US States
    "AL": "alabama", "AK": "alaska", "AZ": "arizona", "AR": "arkansas",
    "CA": "california", "CO": "colorado", "CT": "connecticut", "DE": "delaware",
    "FL": "florida", "GA": "georgia", "HI": "hawaii", "ID": "idaho",
    "IL": "illinois", "IN": "indiana", "IA": "iowa", "KS": "kansas",
    "KY": "kentucky", "LA": "louisiana", "ME": "maine", "MD": "maryland",
    "MA": "massachusetts", "MI": "michigan", "MN": "minnesota", "MS": "mississippi",
    "MO": "missouri", "MT": "montana", "NE": "nebraska", "NV": "nevada",
    "NH": "new hampshire", "NJ": "new jersey", "NM": "new mexico", "NY": "new york",
    "NC": "north carolina", "ND": "north dakota", "OH": "ohio", "OK": "oklahoma",
    "OR": "oregon", "PA": "pennsylvania", "RI": "rhode island", "SC": "south carolina",
    "SD": "south dakota", "TN": "tennessee", "TX": "texas", "UT": "utah",
    "VT": "vermont", "VA": "virginia", "WA": "washington", "WV": "west virginia",
    "WI": "wisconsin", "WY": "wyoming",
    # US Territories
    "PR": "puerto rico", "VI": "virgin islands", "GU": "guam",
    "AS": "american samoa", "MP": "northern mariana islands",
    "DC": "district of columbia", "WPI": "west pacific islands",
}


def _bare_state(state: Optional[str]) -> str:
    return (state or "").replace("US-", "")


def resolve_state_filter(text: Optional[str]) -> str:
    """
    Map free text to a state code for the `state` param.
    "ca" -> "CA", "calif" -> "CA", "new" -> "NH" (first name match), "Dixie" -> "".
    """
    if not text:
        return ""
    lowered = text.lower().strip()
    upper = text.upper().strip()
    if len(upper) == 2 and upper in STATE_NAMES:
        return upper
    if not lowered:
        return ""
    for code, name in STATE_NAMES.items():
        if name == lowered or name.startswith(lowered):
            return code
    return ""


def build_feed_params(limit: int = 50, query: Optional[str] = None) -> Dict[str, str]:
    """State code when the query names a state, else a name search (2+ chars)."""
    params = {"limit": str(limit)}
    if query:
        code = resolve_state_filter(query)
        if code:
            params["state"] = code
        elif len(query) >= 2:
            params["search"] = query
    return params


# ──────────────────────────────────────────────────────────────
# Display helpers
# ──────────────────────────────────────────────────────────────

def format_acres(acres: Optional[float]) -> str:
    if acres is None:
        return "-"
    if acres >= 100_000:
        return f"{acres / 1000:.0f}K"
    if acres >= 10_000:
        return f"{acres / 1000:.1f}K"
    return f"{acres:,}"


def acres_size_class(acres: Optional[float]) -> str:
    if not acres:
        return ""
    if acres < 100:
        return "small"
    if acres < 1000:
        return "medium"
    if acres < 10_000:
        return "large"
    return "mega"


def format_location(county: Optional[str], state: Optional[str]) -> str:
    clean_state = _bare_state(state)
    if county and clean_state:
        return f"{county}, {clean_state}"
    if clean_state:
        return clean_state
    if county:
        return county
    return "-"


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        dt = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def format_relative_time(value: Optional[str], *, now: Optional[datetime] = None) -> str:
    dt = _parse_ts(value)
    if dt is None:
        return "-"
    now = now or datetime.now(timezone.utc)
    mins = math.floor((now - dt).total_seconds() / 60)
    hours = math.floor(mins / 60)
    days = math.floor(hours / 24)
    if mins < 1:
        return "just now"
    if mins < 60:
        return f"{mins}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days < 7:
        return f"{days}d ago"
    return dt.date().isoformat()


# ──────────────────────────────────────────────────────────────
# Sort / filter / paginate
# ──────────────────────────────────────────────────────────────

def _sort_value(fire: Dict[str, Any], field: str) -> Any:
    if field == "name":
        return (fire.get("name") or "").lower()
    if field == "updated":
        dt = _parse_ts(fire.get("updated"))
        return dt.timestamp() if dt else 0.0
    if field == "location":
        return format_location(fire.get("county"), fire.get("state")).lower()
    if field == "acres":
        return fire.get("acres") or 0
    return None


def sort_fires(
    fires: List[Dict[str, Any]], field: str = "acres", direction: SortDirection = "desc"
) -> List[Dict[str, Any]]:
    """Stable sort; an unknown field keeps the input order."""
    if field not in ("name", "updated", "location", "acres"):
        return list(fires)
    return sorted(fires, key=lambda f: _sort_value(f, field), reverse=(direction == "desc"))


def filter_fires(fires: List[Dict[str, Any]], term: Optional[str]) -> List[Dict[str, Any]]:
    """Match name, county, bare state code, or full state name."""
    if not term:
        return list(fires)
    needle = term.lower().strip()

    def hit(fire: Dict[str, Any]) -> bool:
        code = _bare_state(fire.get("state")).upper()
        return (
            needle in (fire.get("name") or "").lower()
            or needle in (fire.get("county") or "").lower()
            or needle in code.lower()
            or needle in STATE_NAMES.get(code, "")
        )

    return [f for f in fires if hit(f)]


@dataclass
class Page:
    items: List[Dict[str, Any]]
    page: int
    total_pages: int
    total: int


def paginate(fires: List[Dict[str, Any]], page: int = 1, per_page: int = 10) -> Page:
    per_page = max(1, int(per_page))
    total = len(fires)
    total_pages = math.ceil(total / per_page)
    page = max(1, min(int(page), max(1, total_pages)))
    start = (page - 1) * per_page
    return Page(items=fires[start:start + per_page], page=page, total_pages=total_pages, total=total)
