"""Unit tests for cache/store.py.

Runs against fakeredis for real TTL and SCAN semantics, and against a
MagicMock client whose every call raises to check the degrade-to-miss
failure policy.
"""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest
import redis

from cache.store import CacheStore


class TestGetSet:
    def test_round_trip_json(self, cache: CacheStore) -> None:
        assert cache.set("k", {"a": 1, "b": [1, 2]}) is True
        assert cache.get("k") == {"a": 1, "b": [1, 2]}

    def test_missing_key_is_none(self, cache: CacheStore) -> None:
        assert cache.get("nope") is None

    def test_default_ttl_applied(self, cache: CacheStore) -> None:
        cache.set("k", 1)
        assert 0 < cache.ttl("k") <= 120

    def test_explicit_ttl(self, cache: CacheStore) -> None:
        cache.set("k", 1, ttl=30)
        assert 0 < cache.ttl("k") <= 30

    def test_keep_ttl_preserves_expiry(self, cache: CacheStore) -> None:
        cache.set("k", 1, ttl=30)
        cache.set("k", 2, keep_ttl=True)
        assert cache.get("k") == 2
        assert 0 < cache.ttl("k") <= 30

    def test_nx_only_writes_absent_key(self, cache: CacheStore) -> None:
        assert cache.set("k", 1, condition="NX") is True
        assert cache.set("k", 2, condition="NX") is False
        assert cache.get("k") == 1

    def test_xx_only_writes_present_key(self, cache: CacheStore) -> None:
        assert cache.set("k", 1, condition="XX") is False
        assert cache.get("k") is None
        cache.set("k", 1)
        assert cache.set("k", 2, condition="XX") is True
        assert cache.get("k") == 2

    def test_unserializable_value_is_not_written(self, cache: CacheStore) -> None:
        assert cache.set("k", object()) is False
        assert cache.exists("k") is False

    def test_non_json_payload_reads_as_miss(self, cache: CacheStore, redis_client) -> None:
        redis_client.set("k", "{not json")
        assert cache.get("k") is None


class TestSlidingExpiration:
    def test_hit_rearms_ttl(self, cache: CacheStore, redis_client) -> None:
        cache.set("k", {"v": 1}, ttl=5)
        assert cache.get_and_refresh("k") == {"v": 1}
        assert cache.ttl("k") > 5

    def test_miss_writes_nothing(self, cache: CacheStore) -> None:
        assert cache.get_and_refresh("k") is None
        assert cache.exists("k") is False
        assert cache.ttl("k") == -2


class TestDelete:
    def test_single_key(self, cache: CacheStore) -> None:
        cache.set("user:1", 1)
        assert cache.delete("user:1") == 1
        assert cache.delete("user:1") == 0

    def test_single_key_treats_glob_as_literal(self, cache: CacheStore) -> None:
        cache.set("user:email:a*@x.com", 1)
        cache.set("user:email:ab@x.com", 2)
        assert cache.delete("user:email:a*@x.com") == 1
        assert cache.exists("user:email:ab@x.com") is True

    def test_pattern_delete_only_matches(self, cache: CacheStore) -> None:
        for i in range(3):
            cache.set(f"products:{i}", i)
        cache.set("user:1", 1)
        assert cache.delete_pattern("products:*") == 3
        assert cache.exists("user:1") is True
        assert cache.exists("products:0") is False

    def test_pattern_delete_spans_batches(self, cache: CacheStore) -> None:
        for i in range(1200):
            cache.set(f"bulk:{i}", i)
        assert cache.delete_pattern("bulk:*") == 1200

    def test_clear_all(self, cache: CacheStore) -> None:
        cache.set("a", 1)
        cache.set("b", 2)
        cache.clear_all()
        assert cache.exists("a") is False
        assert cache.exists("b") is False


class TestBackendFailure:
    """Every operation degrades to a miss or no-op when Redis is down."""

    @pytest.fixture
    def broken(self) -> CacheStore:
        client = MagicMock()
        err = redis.ConnectionError("connection refused")
        for name in ("get", "set", "expire", "delete", "scan_iter", "exists", "ttl", "flushdb", "ping"):
            getattr(client, name).side_effect = err
        return CacheStore(client)

    def test_reads_are_misses(self, broken: CacheStore) -> None:
        assert broken.get("k") is None
        assert broken.get_and_refresh("k") is None
        assert broken.exists("k") is False
        assert broken.ttl("k") == -1

    def test_writes_are_noops(self, broken: CacheStore) -> None:
        assert broken.set("k", 1) is False
        assert broken.delete("k") == 0
        assert broken.delete_pattern("k:*") == 0
        broken.clear_all()

    def test_ping_reports_down(self, broken: CacheStore) -> None:
        assert broken.ping() is False

    def test_failure_is_logged(self, broken: CacheStore, caplog) -> None:
        with caplog.at_level("WARNING", logger="storefront.cache"):
            broken.get("user:1")
        assert "user:1" in caplog.text
