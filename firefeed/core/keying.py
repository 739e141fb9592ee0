from __future__ import annotations

import base64
import hashlib
import re
from dataclasses import dataclass
from typing import Any, Optional

import orjson


FIRES_CACHE_PREFIX = "firefeed_fires_"

DEFAULT_LIMIT = 20
MAX_LIMIT = 100
MAX_STATE_LEN = 10
MAX_SEARCH_LEN = 50

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")
_STATE_UNSAFE = re.compile(r"[^A-Za-z\-]")
_SEARCH_UNSAFE = re.compile(r"[^A-Za-z0-9\s\-]")


@dataclass(frozen=True, slots=True)
class FireQuery:
    """Normalized request parameters. Build through `normalize_fire_request`."""
    limit: int = DEFAULT_LIMIT
    state: str = ""
    search: str = ""


def _orjson_dumps(obj: Any) -> bytes:
    return orjson.dumps(
        obj,
        option=orjson.OPT_SORT_KEYS | orjson.OPT_NON_STR_KEYS,
    )


def sha256_b32(data: bytes) -> str:
    h = hashlib.sha256(data).digest()
    # base64url, padding stripped
    return base64.urlsafe_b64encode(h).decode("ascii").rstrip("=")


def sanitize_limit(raw: Any) -> int:
    """
    Leading integer of the raw value ("1 OR 1=1" -> 1), clamped to [1, MAX_LIMIT].
    Missing or unparseable input gives DEFAULT_LIMIT.
    """
    if raw is None:
        return DEFAULT_LIMIT
    if isinstance(raw, bool):
        raw = int(raw)
    if isinstance(raw, (int, float)):
        n = int(raw)
    else:
        m = _LEADING_INT.match(str(raw))
        if not m:
            return DEFAULT_LIMIT
        n = int(m.group(1))
    return max(1, min(n, MAX_LIMIT))


def sanitize_state(raw: Optional[str]) -> str:
    """Safe charset, upper-cased, "US-" prefix dropped so "ca" and "US-CA" share a key."""
    if not raw:
        return ""
    s = _STATE_UNSAFE.sub("", str(raw)[:MAX_STATE_LEN]).upper()
    if s.startswith("US-"):
        s = s[3:]
    return s


def sanitize_search(raw: Optional[str]) -> str:
    if not raw:
        return ""
    return _SEARCH_UNSAFE.sub("", str(raw)[:MAX_SEARCH_LEN])


def normalize_fire_request(
    limit: Any = None,
    state: Optional[str] = None,
    search: Optional[str] = None,
) -> FireQuery:
    return FireQuery(
        limit=sanitize_limit(limit),
        state=sanitize_state(state),
        search=sanitize_search(search),
    )


def fires_cache_key(query: FireQuery) -> str:
    payload = {"limit": int(query.limit), "state": query.state, "search": query.search}
    blob = _orjson_dumps(payload)
    return FIRES_CACHE_PREFIX + sha256_b32(blob)
