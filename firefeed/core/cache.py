"""
firefeed/core/cache.py

Keyed TTL cache for fire feed responses.

Three backends behind one interface:
  - MemoryCacheStore: per-process dict (tests, single worker)
  - FileCacheStore:   one JSON file per key (default, shared by workers on a host)
  - SqliteCacheStore: fire_packs table in a local SQLite DB

Factory `create_cache_store()` selects one from settings.cache_backend.

Contract:
  get(key)                       -> payload or None (missing or expired)
  set(key, payload, ttl_seconds) -> None
  sweep(max_age_s, probability)  -> entries removed by *storage age*, run by chance

get/set raise CacheUnavailable when the backend itself fails; the feed service
treats that as a miss. Sweep failures are logged and count as zero removed.

TTL is enforced at read time. Sweep only bounds the growth of dead entries.
"""

from __future__ import annotations

import logging
import os
import random
import re
import sqlite3
import tempfile
import threading
import time
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

import orjson

from firefeed.core.errors import CacheUnavailable
from firefeed.core.keying import FIRES_CACHE_PREFIX
from firefeed.core.settings import Settings
from firefeed.core.storage import (
    connect_sqlite,
    delete_fire_pack,
    delete_fire_packs_older_than,
    ensure_schema,
    get_fire_pack,
    put_fire_pack,
)

logger = logging.getLogger(__name__)

Clock = Callable[[], float]

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_\-]+$")


# ── Abstract interface ───────────────────────────────────────────────

class CacheStore(ABC):
    """Keyed payload store with expiry. All methods are safe across threads."""

    backend: str = "abstract"

    def __init__(
        self,
        *,
        prefix: str = FIRES_CACHE_PREFIX,
        clock: Clock = time.time,
        rand: Callable[[], float] = random.random,
    ):
        self.prefix = prefix
        self._clock = clock
        self._rand = rand

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        ...

    @abstractmethod
    def set(self, key: str, payload: Any, ttl_seconds: int) -> None:
        ...

    @abstractmethod
    def _sweep_stored_before(self, cutoff: float) -> int:
        ...

    def sweep(self, max_age_seconds: int, probability: float) -> int:
        if probability <= 0 or self._rand() >= probability:
            return 0
        cutoff = self._clock() - float(max_age_seconds)
        removed = self._sweep_stored_before(cutoff)
        if removed:
            logger.info("[cache] %s sweep removed %d entries older than %ds", self.backend, removed, max_age_seconds)
        return removed

    def close(self) -> None:
        return None


# ── In-process backend ───────────────────────────────────────────────

class MemoryCacheStore(CacheStore):
    """
    Simple in-memory TTL cache.

    Note: each uvicorn worker has its own instance, so with several workers a
    miss can be computed once per worker. Fine for a 5-minute feed cache.
    """

    backend = "memory"

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._lock = threading.Lock()
        # key -> (expires_at, stored_at, payload)
        self._store: Dict[str, Tuple[float, float, Any]] = {}

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            entry = self._store.get(key)
            if entry is None:
                return None
            expires_at, _stored_at, payload = entry
            if self._clock() > expires_at:
                del self._store[key]
                return None
            return payload

    def set(self, key: str, payload: Any, ttl_seconds: int) -> None:
        now = self._clock()
        with self._lock:
            self._store[key] = (now + ttl_seconds, now, payload)

    def _sweep_stored_before(self, cutoff: float) -> int:
        with self._lock:
            stale = [
                k for k, (_exp, stored_at, _p) in self._store.items()
                if k.startswith(self.prefix) and stored_at < cutoff
            ]
            for k in stale:
                del self._store[k]
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._store)


# ── File backend ─────────────────────────────────────────────────────

class FileCacheStore(CacheStore):
    """
    One `<key>.json` per entry: {"expires": epoch_seconds, "data": payload}.

    Writes land in a temp file in the same directory and are moved into place
    with os.replace, so readers see either the old or the new entry in full.
    Storage age for sweeps is the file mtime.
    """

    backend = "file"

    def __init__(self, cache_dir: str, **kwargs):
        super().__init__(**kwargs)
        self.cache_dir = Path(cache_dir)

    def _path(self, key: str) -> Optional[Path]:
        if not _SAFE_KEY.match(key or ""):
            return None
        return self.cache_dir / f"{key}.json"

    def _ensure_dir(self) -> None:
        if self.cache_dir.is_dir():
            return
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        # keep the cache out of reach if the dir sits under a web root
        (self.cache_dir / ".htaccess").write_text("Require all denied\n")

    def get(self, key: str) -> Optional[Any]:
        path = self._path(key)
        if path is None:
            return None
        try:
            raw = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            raise CacheUnavailable(f"file read failed for {key}: {e}") from e

        try:
            data = orjson.loads(raw)
        except orjson.JSONDecodeError:
            logger.warning("[cache] corrupt cache file for %s, ignoring", key)
            return None
        if not isinstance(data, dict) or "expires" not in data or "data" not in data:
            return None

        try:
            expires = float(data["expires"])
        except (TypeError, ValueError):
            logger.warning("[cache] bad expiry for %s, ignoring", key)
            return None

        if self._clock() > expires:
            try:
                path.unlink()
            except OSError:
                # another worker may have replaced or removed it already
                pass
            return None
        return data["data"]

    def set(self, key: str, payload: Any, ttl_seconds: int) -> None:
        path = self._path(key)
        if path is None:
            raise CacheUnavailable(f"unsafe cache key {key!r}")
        try:
            self._ensure_dir()
            blob = orjson.dumps({"expires": self._clock() + ttl_seconds, "data": payload})
            fd, tmp = tempfile.mkstemp(dir=str(self.cache_dir), prefix=".tmp-", suffix=".json")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(blob)
                os.replace(tmp, path)
            except BaseException:
                try:
                    os.unlink(tmp)
                except OSError:
                    pass
                raise
        except (OSError, TypeError, orjson.JSONEncodeError) as e:
            raise CacheUnavailable(f"file write failed for {key}: {e}") from e

    def _sweep_stored_before(self, cutoff: float) -> int:
        if not self.cache_dir.is_dir():
            return 0
        removed = 0
        for path in self.cache_dir.glob(f"{self.prefix}*.json"):
            try:
                if path.stat().st_mtime < cutoff:
                    path.unlink()
                    removed += 1
            except OSError:
                continue
        return removed


# ── SQLite backend ───────────────────────────────────────────────────

class SqliteCacheStore(CacheStore):
    """fire_packs table (see core/storage.py). One connection, serialized by a lock."""

    backend = "sqlite"

    def __init__(self, db_path: str, **kwargs):
        super().__init__(**kwargs)
        self._path = db_path
        self._lock = threading.Lock()
        self._conn = connect_sqlite(db_path)
        ensure_schema(self._conn)

    def get(self, key: str) -> Optional[Any]:
        try:
            with self._lock:
                found = get_fire_pack(self._conn, key)
                if found is None:
                    return None
                expires_at, pack = found
                if self._clock() > expires_at:
                    delete_fire_pack(self._conn, key)
                    return None
                return pack
        except (sqlite3.Error, orjson.JSONDecodeError) as e:
            raise CacheUnavailable(f"sqlite read failed for {key}: {e}") from e

    def set(self, key: str, payload: Any, ttl_seconds: int) -> None:
        now = self._clock()
        try:
            with self._lock:
                put_fire_pack(
                    self._conn,
                    cache_key=key,
                    stored_at=now,
                    expires_at=now + ttl_seconds,
                    pack=payload,
                )
        except (sqlite3.Error, TypeError, orjson.JSONEncodeError) as e:
            raise CacheUnavailable(f"sqlite write failed for {key}: {e}") from e

    def _sweep_stored_before(self, cutoff: float) -> int:
        try:
            with self._lock:
                return delete_fire_packs_older_than(self._conn, prefix=self.prefix, stored_before=cutoff)
        except sqlite3.Error as e:
            logger.warning("[cache] sqlite sweep failed: %s", e)
            return 0

    def close(self) -> None:
        with self._lock:
            self._conn.close()


# ── Factory ──────────────────────────────────────────────────────────

def create_cache_store(settings: Settings, **kwargs) -> CacheStore:
    backend = settings.cache_backend
    if backend == "memory":
        store: CacheStore = MemoryCacheStore(**kwargs)
    elif backend == "sqlite":
        store = SqliteCacheStore(settings.cache_db_path, **kwargs)
    elif backend == "file":
        store = FileCacheStore(settings.cache_dir, **kwargs)
    else:
        raise ValueError(f"unknown cache backend: {backend}")
    logger.info("[cache] Using %s backend", store.backend)
    return store
