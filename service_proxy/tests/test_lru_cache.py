"""
Unit tests for the bounded response cache.
"""

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_proxy.app.caching.lru_cache import BoundedCache, CacheEntry


def make_entry(signature: str, expires_at: float = 100.0) -> CacheEntry:
    return CacheEntry(signature=signature, body=signature.encode(), expires_at=expires_at)


class TestBoundedCache:
    """Test cases for BoundedCache."""

    @pytest.fixture
    def cache(self):
        return BoundedCache(max_size=3)

    def test_put_and_get(self, cache):
        """Stored entries are returned by signature."""
        cache.put("GET:a", make_entry("GET:a"))

        entry = cache.get("GET:a")
        assert entry is not None
        assert entry.body == b"GET:a"
        assert cache.get("GET:missing") is None

    def test_size_never_exceeds_capacity(self, cache):
        """Inserting past capacity evicts instead of growing."""
        for index in range(10):
            cache.put(f"GET:{index}", make_entry(f"GET:{index}"))
            assert cache.size() <= cache.max_size

        assert len(cache) == 3

    def test_least_recently_used_evicted(self, cache):
        """A read refreshes recency, so the untouched entry is evicted."""
        cache.put("GET:a", make_entry("GET:a"))
        cache.put("GET:b", make_entry("GET:b"))
        cache.put("GET:c", make_entry("GET:c"))

        cache.get("GET:a")
        cache.put("GET:d", make_entry("GET:d"))

        assert cache.has("GET:a")
        assert not cache.has("GET:b")
        assert cache.has("GET:c")
        assert cache.has("GET:d")

    def test_overwrite_refreshes_recency(self, cache):
        """Re-putting a key moves it to the most recent position."""
        cache.put("GET:a", make_entry("GET:a"))
        cache.put("GET:b", make_entry("GET:b"))
        cache.put("GET:c", make_entry("GET:c"))

        cache.put("GET:a", make_entry("GET:a", expires_at=200.0))
        cache.put("GET:d", make_entry("GET:d"))

        assert cache.get("GET:a").expires_at == 200.0
        assert not cache.has("GET:b")
        assert cache.size() == 3

    def test_has_does_not_refresh_recency(self, cache):
        """Membership checks leave eviction order alone."""
        cache.put("GET:a", make_entry("GET:a"))
        cache.put("GET:b", make_entry("GET:b"))
        cache.put("GET:c", make_entry("GET:c"))

        assert cache.has("GET:a")
        cache.put("GET:d", make_entry("GET:d"))

        assert not cache.has("GET:a")

    def test_expired_entries_are_not_evicted_early(self, cache):
        """Expiry plays no part in eviction; stale entries stay for revalidation."""
        cache.put("GET:old", make_entry("GET:old", expires_at=0.0))
        cache.put("GET:b", make_entry("GET:b"))

        assert cache.has("GET:old")
        assert not cache.get("GET:old").is_fresh(now=50.0)

    def test_on_evict_callback(self):
        """The eviction hook receives the evicted signature."""
        evicted = []
        cache = BoundedCache(max_size=1, on_evict=evicted.append)

        cache.put("GET:a", make_entry("GET:a"))
        cache.put("GET:b", make_entry("GET:b"))

        assert evicted == ["GET:a"]

    def test_delete(self, cache):
        cache.put("GET:a", make_entry("GET:a"))

        assert cache.delete("GET:a") is True
        assert cache.delete("GET:a") is False
        assert cache.size() == 0

    def test_stats(self, cache):
        """Stats report size, capacity and utilisation."""
        cache.put("GET:a", make_entry("GET:a"))

        assert cache.stats() == {"size": 1, "maxSize": 3, "utilization": 0.3333}

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            BoundedCache(max_size=0)


class TestCacheEntry:
    """Test cases for CacheEntry freshness."""

    def test_fresh_until_expiry(self):
        entry = make_entry("GET:a", expires_at=100.0)

        assert entry.is_fresh(99.9)
        assert not entry.is_fresh(100.0)
        assert not entry.is_fresh(150.0)
