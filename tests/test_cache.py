"""
Tests for the cache stores.
"""
import os

import pytest

from firefeed.core.cache import (
    FileCacheStore,
    MemoryCacheStore,
    SqliteCacheStore,
    create_cache_store,
)
from firefeed.core.errors import CacheUnavailable
from firefeed.core.keying import FIRES_CACHE_PREFIX
from firefeed.core.settings import Settings

KEY = FIRES_CACHE_PREFIX + "abc123"
OTHER_KEY = FIRES_CACHE_PREFIX + "def456"
PAYLOAD = [{"id": "9001", "name": "Ridge", "acres": 52310.0}]


@pytest.fixture(params=["memory", "file", "sqlite"])
def store(request, tmp_path, clock):
    """Each backend with an injected clock and a sweep that always fires."""
    always = lambda: 0.0  # noqa: E731
    if request.param == "memory":
        s = MemoryCacheStore(clock=clock, rand=always)
    elif request.param == "file":
        s = FileCacheStore(str(tmp_path / "cache"), clock=clock, rand=always)
    else:
        s = SqliteCacheStore(str(tmp_path / "cache.db"), clock=clock, rand=always)
    yield s
    s.close()


def _age_entry(store, key, clock, seconds):
    """Push an entry's storage age back; file entries age by mtime."""
    if isinstance(store, FileCacheStore):
        path = store.cache_dir / f"{key}.json"
        t = clock() - seconds
        os.utime(path, (t, t))


class TestCacheContract:
    """Behaviour shared by every backend."""

    def test_miss(self, store):
        assert store.get(KEY) is None

    def test_set_then_get(self, store):
        store.set(KEY, PAYLOAD, 300)
        assert store.get(KEY) == PAYLOAD

    def test_overwrite(self, store):
        store.set(KEY, PAYLOAD, 300)
        store.set(KEY, [], 300)
        assert store.get(KEY) == []

    def test_valid_until_expiry_instant(self, store, clock):
        """Expired only once now is strictly past expires_at."""
        store.set(KEY, PAYLOAD, 300)
        clock.advance(300)
        assert store.get(KEY) == PAYLOAD

    def test_expired_is_absent(self, store, clock):
        store.set(KEY, PAYLOAD, 300)
        clock.advance(301)
        assert store.get(KEY) is None
        # still absent after the lazy delete
        assert store.get(KEY) is None

    def test_keys_are_independent(self, store):
        store.set(KEY, PAYLOAD, 300)
        assert store.get(OTHER_KEY) is None


class TestSweep:
    """Probabilistic removal by storage age."""

    def test_removes_only_old_entries(self, store, clock):
        store.set(KEY, PAYLOAD, 300)
        clock.advance(7200)
        store.set(OTHER_KEY, PAYLOAD, 300)
        _age_entry(store, KEY, clock, 7200)

        removed = store.sweep(3600, 1.0)

        assert removed == 1
        assert store.get(OTHER_KEY) == PAYLOAD
        clock.advance(-7200)
        assert store.get(KEY) is None

    def test_zero_probability_never_runs(self, store, clock):
        store.set(KEY, PAYLOAD, 300)
        clock.advance(7200)
        _age_entry(store, KEY, clock, 7200)
        assert store.sweep(3600, 0.0) == 0

    def test_roll_above_probability_skips(self, clock):
        s = MemoryCacheStore(clock=clock, rand=lambda: 0.5)
        s.set(KEY, PAYLOAD, 300)
        clock.advance(7200)
        assert s.sweep(3600, 0.4) == 0
        assert len(s) == 1
        assert s.sweep(3600, 0.6) == 1

    def test_other_prefixes_untouched(self, clock):
        s = MemoryCacheStore(clock=clock, rand=lambda: 0.0)
        s.set("unrelated_key", PAYLOAD, 300)
        s.set(KEY, PAYLOAD, 300)
        clock.advance(7200)
        assert s.sweep(3600, 1.0) == 1
        assert len(s) == 1


class TestFileCacheStore:
    """File backend specifics."""

    def test_directory_and_guard_created_on_first_write(self, tmp_path, clock):
        cache_dir = tmp_path / "nested" / "cache"
        s = FileCacheStore(str(cache_dir), clock=clock)
        assert not cache_dir.exists()
        s.set(KEY, PAYLOAD, 300)
        assert (cache_dir / f"{KEY}.json").is_file()
        assert (cache_dir / ".htaccess").read_text() == "Require all denied\n"

    def test_expired_file_removed_on_read(self, tmp_path, clock):
        s = FileCacheStore(str(tmp_path), clock=clock)
        s.set(KEY, PAYLOAD, 300)
        clock.advance(301)
        assert s.get(KEY) is None
        assert not (tmp_path / f"{KEY}.json").exists()

    def test_no_temp_files_left(self, tmp_path, clock):
        cache_dir = tmp_path / "cache"
        s = FileCacheStore(str(cache_dir), clock=clock)
        s.set(KEY, PAYLOAD, 300)
        s.set(KEY, PAYLOAD, 300)
        assert sorted(p.name for p in cache_dir.iterdir()) == [".htaccess", f"{KEY}.json"]

    def test_corrupt_file_is_a_miss(self, tmp_path, clock):
        s = FileCacheStore(str(tmp_path), clock=clock)
        (tmp_path / f"{KEY}.json").write_bytes(b"{not json")
        assert s.get(KEY) is None

    @pytest.mark.parametrize("expires", ['"soon"', "null", "[]"])
    def test_unreadable_expiry_is_a_miss(self, tmp_path, clock, expires):
        s = FileCacheStore(str(tmp_path), clock=clock)
        (tmp_path / f"{KEY}.json").write_text('{"expires": %s, "data": []}' % expires)
        assert s.get(KEY) is None
        s.set(KEY, PAYLOAD, 300)
        assert s.get(KEY) == PAYLOAD

    def test_unsafe_key(self, tmp_path, clock):
        s = FileCacheStore(str(tmp_path), clock=clock)
        assert s.get("../etc/passwd") is None
        with pytest.raises(CacheUnavailable):
            s.set("../etc/passwd", PAYLOAD, 300)

    def test_unwritable_directory(self, tmp_path, clock):
        """A file where the cache dir should be makes the backend unavailable."""
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        s = FileCacheStore(str(blocker), clock=clock)
        with pytest.raises(CacheUnavailable):
            s.set(KEY, PAYLOAD, 300)
        with pytest.raises(CacheUnavailable):
            s.get(KEY)


class TestSqliteCacheStore:
    """SQLite backend specifics."""

    def test_persists_across_instances(self, tmp_path, clock):
        path = str(tmp_path / "cache.db")
        a = SqliteCacheStore(path, clock=clock)
        a.set(KEY, PAYLOAD, 300)
        a.close()
        b = SqliteCacheStore(path, clock=clock)
        assert b.get(KEY) == PAYLOAD
        b.close()

    def test_closed_connection_is_unavailable(self, tmp_path, clock):
        s = SqliteCacheStore(str(tmp_path / "cache.db"), clock=clock)
        s.close()
        with pytest.raises(CacheUnavailable):
            s.get(KEY)
        with pytest.raises(CacheUnavailable):
            s.set(KEY, PAYLOAD, 300)


class TestCreateCacheStore:
    """Backend selection from settings."""

    def test_memory(self):
        assert isinstance(create_cache_store(Settings(CACHE_BACKEND="memory")), MemoryCacheStore)

    def test_file(self, tmp_path):
        s = create_cache_store(Settings(CACHE_BACKEND="file", CACHE_DIR=str(tmp_path)))
        assert isinstance(s, FileCacheStore)
        assert s.cache_dir == tmp_path

    def test_sqlite(self, tmp_path):
        s = create_cache_store(Settings(CACHE_BACKEND="sqlite", CACHE_DB_PATH=str(tmp_path / "c.db")))
        assert isinstance(s, SqliteCacheStore)
        s.close()
