"""
cache/store.py -- Redis-backed look-aside cache with sliding expiration.

The cache is never the source of truth. Callers read it first, fall back to
the durable store on a miss, and populate it afterwards. Writes go to the
durable store first and then update or invalidate the cache.

Failure policy: every operation catches backend errors, logs a warning and
degrades to a miss / no-op. A Redis outage costs latency, never correctness,
because the durable store is always consulted on a miss. The client is built
with socket timeouts so a hung Redis bounds every call.

Usage:
    cache = CacheStore.from_url("redis://localhost:6379/0")
    cache.set("user:42", {"id": "42"})              # EX 120 by default
    cache.get_and_refresh("user:42")                 # hit re-arms the TTL
    cache.delete_pattern("products:*")               # pattern invalidation
"""

from __future__ import annotations

import json
import logging
from typing import Any, Literal, Optional

from redis import Redis, RedisError

logger = logging.getLogger("storefront.cache")

DEFAULT_TTL = 120  # seconds

_SCAN_BATCH = 500


class CacheStore:
    def __init__(self, client: Redis, default_ttl: int = DEFAULT_TTL) -> None:
        self.client = client
        self.default_ttl = default_ttl

    @classmethod
    def from_url(cls, redis_url: str, default_ttl: int = DEFAULT_TTL, timeout: float = 2.0) -> CacheStore:
        client = Redis.from_url(
            redis_url,
            decode_responses=True,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
        )
        return cls(client, default_ttl=default_ttl)

    def get(self, key: str) -> Optional[Any]:
        """Return the decoded value for key, or None on miss or error."""
        try:
            raw = self.client.get(key)
            return json.loads(raw) if raw is not None else None
        except (RedisError, ValueError) as exc:
            logger.warning("cache GET %s failed: %s", key, exc)
            return None

    def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[int] = None,
        *,
        keep_ttl: bool = False,
        condition: Optional[Literal["NX", "XX"]] = None,
    ) -> bool:
        """Serialize value to JSON and store it under key.

        ttl defaults to the store's default_ttl. keep_ttl=True leaves an
        existing expiry untouched instead of setting a new one. condition
        "NX" only writes when the key is absent, "XX" only when present.

        Returns True if the write happened.
        """
        try:
            payload = json.dumps(value)
            if keep_ttl:
                result = self.client.set(key, payload, keepttl=True, nx=condition == "NX", xx=condition == "XX")
            else:
                result = self.client.set(
                    key,
                    payload,
                    ex=ttl or self.default_ttl,
                    nx=condition == "NX",
                    xx=condition == "XX",
                )
            return bool(result)
        except (RedisError, TypeError, ValueError) as exc:
            logger.warning("cache SET %s failed: %s", key, exc)
            return False

    def get_and_refresh(self, key: str, ttl: Optional[int] = None) -> Optional[Any]:
        """Read key and, on a hit, re-arm its TTL (sliding expiration).

        A miss writes nothing; populating after the durable read is the
        caller's job.
        """
        value = self.get(key)
        if value is None:
            return None
        try:
            self.client.expire(key, ttl or self.default_ttl)
        except RedisError as exc:
            logger.warning("cache EXPIRE %s failed: %s", key, exc)
        return value

    def delete(self, key: str) -> int:
        """Delete exactly one key. Glob characters in key are literal."""
        try:
            return int(self.client.delete(key))
        except RedisError as exc:
            logger.warning("cache DELETE %s failed: %s", key, exc)
            return 0

    def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern such as "products:*".

        Walks the keyspace with SCAN (non-blocking, unlike KEYS) and removes
        matches in batches. Returns the number removed.
        """
        try:
            removed = 0
            batch: list[str] = []
            for match in self.client.scan_iter(match=pattern, count=_SCAN_BATCH):
                batch.append(match)
                if len(batch) >= _SCAN_BATCH:
                    removed += int(self.client.delete(*batch))
                    batch = []
            if batch:
                removed += int(self.client.delete(*batch))
            return removed
        except RedisError as exc:
            logger.warning("cache DELETE %s failed: %s", pattern, exc)
            return 0

    def exists(self, key: str) -> bool:
        try:
            return self.client.exists(key) == 1
        except RedisError as exc:
            logger.warning("cache EXISTS %s failed: %s", key, exc)
            return False

    def ttl(self, key: str) -> int:
        """Remaining TTL in seconds; -2 if missing, -1 if no expiry or on error."""
        try:
            return int(self.client.ttl(key))
        except RedisError as exc:
            logger.warning("cache TTL %s failed: %s", key, exc)
            return -1

    def clear_all(self) -> None:
        try:
            self.client.flushdb()
        except RedisError as exc:
            logger.warning("cache FLUSHDB failed: %s", exc)

    def ping(self) -> bool:
        try:
            return bool(self.client.ping())
        except RedisError:
            return False

    def close(self) -> None:
        self.client.close()
