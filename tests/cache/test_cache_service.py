"""
Tests for the cache-aside layer.

Tests cover:
- Hit / miss behaviour of get_or_set
- Pattern invalidation
- Degradation when the store fails
- In-memory TTL expiry
- Redis store error mapping
"""

import json
from datetime import timedelta
from unittest.mock import MagicMock

import pytest
import redis

from cache import (
    CacheExpiry,
    CacheKeys,
    CacheService,
    InMemoryCacheStore,
    RedisCacheStore,
    generate_paged_key,
)
from core.exceptions import CacheStoreError


class FakeTime:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


# =============================================================
# TEST: get_or_set
# =============================================================

class TestGetOrSet:
    """Cache-aside read path."""

    def test_hit_skips_factory(self, cache, cache_store):
        """A stored value is returned without calling the factory."""
        cache_store.set("station:1", json.dumps({"name": "Orlen", "prices": [6.49, 6.99]}))
        factory = MagicMock()

        value = cache.get_or_set("station:1", factory)

        assert value == {"name": "Orlen", "prices": [6.49, 6.99]}
        factory.assert_not_called()

    def test_miss_calls_factory_once_and_stores(self):
        """A miss computes once and stores the result with the given TTL."""
        store = MagicMock()
        store.get.return_value = None
        service = CacheService(store)
        factory = MagicMock(return_value=[1, 2, 3])

        value = service.get_or_set("stations:list:1:20", factory, ttl=timedelta(minutes=5))

        assert value == [1, 2, 3]
        factory.assert_called_once_with()
        store.set.assert_called_once_with("stations:list:1:20", "[1, 2, 3]", 300.0)

    def test_default_ttl_is_thirty_minutes(self):
        store = MagicMock()
        store.get.return_value = None
        service = CacheService(store)

        service.get_or_set("k", lambda: "v")

        assert store.set.call_args.args[2] == CacheExpiry.MEDIUM.total_seconds()

    def test_second_call_is_served_from_cache(self, cache):
        factory = MagicMock(return_value={"count": 3})

        first = cache.get_or_set("proposals:counts", factory)
        second = cache.get_or_set("proposals:counts", factory)

        assert first == second == {"count": 3}
        assert factory.call_count == 1

    def test_factory_failure_propagates_and_caches_nothing(self, cache, cache_store):
        factory = MagicMock(side_effect=RuntimeError("query failed"))

        with pytest.raises(RuntimeError, match="query failed"):
            cache.get_or_set("userstats:a@b.c", factory)

        assert cache_store.get("userstats:a@b.c") is None
        assert factory.call_count == 1

    def test_none_result_is_not_cached(self, cache, cache_store):
        value = cache.get_or_set("userban:a@b.c", lambda: None)

        assert value is None
        assert cache_store.keys("*") == []

    def test_undecodable_entry_is_recomputed(self, cache, cache_store):
        cache_store.set("k", "{not json")

        assert cache.get_or_set("k", lambda: {"fresh": True}) == {"fresh": True}
        assert json.loads(cache_store.get("k")) == {"fresh": True}

    def test_disabled_cache_always_computes(self, cache_store):
        service = CacheService(cache_store, enabled=False)
        factory = MagicMock(return_value=1)

        service.get_or_set("k", factory)
        service.get_or_set("k", factory)

        assert factory.call_count == 2
        assert cache_store.get("k") is None


# =============================================================
# TEST: Store Failures
# =============================================================

class TestStoreFailures:
    """An unavailable store degrades to always-miss."""

    def _broken_store(self):
        store = MagicMock()
        store.get.side_effect = CacheStoreError("down")
        store.set.side_effect = CacheStoreError("down")
        store.delete.side_effect = CacheStoreError("down")
        store.keys.side_effect = CacheStoreError("down")
        return store

    def test_read_failure_calls_factory(self):
        service = CacheService(self._broken_store())
        factory = MagicMock(return_value="computed")

        assert service.get_or_set("k", factory) == "computed"
        factory.assert_called_once_with()

    def test_write_failure_still_returns_value(self):
        store = MagicMock()
        store.get.return_value = None
        store.set.side_effect = CacheStoreError("down")
        service = CacheService(store)

        assert service.get_or_set("k", lambda: 42) == 42

    def test_invalidation_failure_is_swallowed(self):
        service = CacheService(self._broken_store())

        assert service.remove("k") is False
        assert service.remove_by_pattern("fuel:*") == 0
        service.invalidate_user_info("a@b.c")
        service.invalidate_proposal_lists()


# =============================================================
# TEST: Invalidation
# =============================================================

class TestInvalidation:
    """Pattern and single-key removal."""

    def test_pattern_invalidation_is_exact(self, cache, cache_store):
        for key in ("fuel:1", "fuel:2", "brand:1"):
            cache_store.set(key, "1")

        removed = cache.remove_by_pattern("fuel:*")

        assert removed == 2
        assert cache_store.get("fuel:1") is None
        assert cache_store.get("fuel:2") is None
        assert cache_store.get("brand:1") == "1"

    def test_pattern_without_matches_is_noop(self, cache, cache_store):
        cache_store.set("brand:1", "1")

        assert cache.remove_by_pattern("fuel:*") == 0
        assert cache_store.get("brand:1") == "1"

    def test_remove_single_key(self, cache, cache_store):
        cache_store.set("station:1", "1")

        assert cache.remove("station:1") is True
        assert cache.remove("station:1") is False

    def test_invalidate_user_info_for_one_user(self, cache, cache_store):
        for key in (
            "userinfo:a@b.c",
            "userinfo:x@y.z",
            "userban:a@b.c",
            "userstats:a@b.c",
            "users:top:10",
            "users:list:1:20",
        ):
            cache_store.set(key, "1")

        cache.invalidate_user_info("a@b.c")

        assert cache_store.keys("*") == ["userinfo:x@y.z"]

    def test_invalidate_user_stats(self, cache, cache_store):
        for key in ("userstats:a@b.c", "userstats:x@y.z", "users:top:10"):
            cache_store.set(key, "1")

        cache.invalidate_user_stats("a@b.c")

        assert cache_store.keys("*") == ["userstats:x@y.z"]

    def test_invalidate_proposal_lists(self, cache, cache_store):
        for key in ("proposals:list:1:20", "proposals:list:2:20", "proposals:counts", "proposal:abc"):
            cache_store.set(key, "1")

        cache.invalidate_proposal_lists()

        assert cache_store.keys("*") == ["proposal:abc"]

    def test_invalidate_station_views(self, cache, cache_store):
        for key in ("station:1", "stations:list:1:20", "stations:map", "stations:nearest:52:21", "fuel:1"):
            cache_store.set(key, "1")

        cache.invalidate_station_views()

        assert cache_store.keys("*") == ["fuel:1"]


# =============================================================
# TEST: Paged Keys
# =============================================================

class TestPagedKeys:

    def test_plain_page(self):
        assert generate_paged_key(CacheKeys.PROPOSAL_LIST, 2, 20) == "proposals:list:2:20"

    def test_search_and_sort_are_lower_cased(self):
        key = generate_paged_key("stations:list", 1, 10, search="Orlen", sort_by="Price", sort_direction="DESC")

        assert key == "stations:list:1:10:search:orlen:sort:price:dir:desc"


# =============================================================
# TEST: In-Memory Store
# =============================================================

class TestInMemoryCacheStore:

    def test_entry_expires_after_ttl(self):
        now = FakeTime()
        store = InMemoryCacheStore(clock=now)
        store.set("k", "v", ttl_seconds=10)

        now.now += 9.9
        assert store.get("k") == "v"

        now.now += 0.2
        assert store.get("k") is None
        assert store.keys("*") == []

    def test_entry_without_ttl_never_expires(self):
        now = FakeTime()
        store = InMemoryCacheStore(clock=now)
        store.set("k", "v")

        now.now += 10 ** 9
        assert store.get("k") == "v"

    def test_delete_counts_existing_keys(self):
        store = InMemoryCacheStore()
        store.set("a", "1")
        store.set("b", "2")

        assert store.delete("a", "b", "c") == 2


# =============================================================
# TEST: Redis Store
# =============================================================

class TestRedisCacheStore:
    """Redis commands and error mapping, against a mocked client."""

    def test_set_with_ttl_uses_milliseconds(self):
        client = MagicMock()
        store = RedisCacheStore(client)

        store.set("k", "v", ttl_seconds=1.5)

        client.set.assert_called_once_with("k", "v", px=1500)

    def test_keys_uses_scan(self):
        client = MagicMock()
        client.scan_iter.return_value = iter([b"fuel:1", "fuel:2"])
        store = RedisCacheStore(client, scan_count=100)

        assert store.keys("fuel:*") == ["fuel:1", "fuel:2"]
        client.scan_iter.assert_called_once_with(match="fuel:*", count=100)
        client.keys.assert_not_called()

    def test_delete_batches_keys(self):
        client = MagicMock()
        client.delete.return_value = 2
        store = RedisCacheStore(client)

        assert store.delete("fuel:1", "fuel:2") == 2
        client.delete.assert_called_once_with("fuel:1", "fuel:2")

    def test_delete_without_keys_skips_server(self):
        client = MagicMock()

        assert RedisCacheStore(client).delete() == 0
        client.delete.assert_not_called()

    def test_connection_error_becomes_cache_store_error(self):
        client = MagicMock()
        client.get.side_effect = redis.ConnectionError("refused")
        store = RedisCacheStore(client)

        with pytest.raises(CacheStoreError) as exc_info:
            store.get("k")

        assert exc_info.value.context["key"] == "k"

    def test_service_over_unreachable_redis_degrades(self):
        client = MagicMock()
        client.get.side_effect = redis.ConnectionError("refused")
        service = CacheService(RedisCacheStore(client))

        assert service.get_or_set("k", lambda: {"v": 1}) == {"v": 1}
