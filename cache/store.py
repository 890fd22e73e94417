"""
Cache Stores.

Key/value backends behind the cache-aside service. A store holds
serialized strings with an optional TTL and supports glob-pattern
key enumeration for bulk invalidation.

- RedisCacheStore: shared store for multi-process deployments
- InMemoryCacheStore: per-process TTL store (development, tests)

Stores raise CacheStoreError on any backend failure; the service
layer decides how to degrade.
"""

import fnmatch
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, List, Optional

import redis

from core.exceptions import CacheStoreError


logger = logging.getLogger(__name__)


# ============================================================
# STORE INTERFACE
# ============================================================

class CacheStore(ABC):
    """Abstract key/value store used by CacheService."""

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None when absent or expired."""

    @abstractmethod
    def set(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        """Store value under key, expiring after ttl_seconds when given."""

    @abstractmethod
    def delete(self, *keys: str) -> int:
        """Delete keys; return how many existed."""

    @abstractmethod
    def keys(self, pattern: str) -> List[str]:
        """Return every key matching a glob-style pattern."""


# ============================================================
# IN-MEMORY STORE
# ============================================================

@dataclass
class _Entry:
    value: str
    expires_at: Optional[float]


class InMemoryCacheStore(CacheStore):
    """In-process TTL store."""

    def __init__(self, clock=time.monotonic) -> None:
        self._store: Dict[str, _Entry] = {}
        self._clock = clock
        self._lock = threading.Lock()

    def _alive(self, key: str) -> Optional[_Entry]:
        entry = self._store.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and entry.expires_at <= self._clock():
            self._store.pop(key, None)
            return None
        return entry

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._alive(key)
            return entry.value if entry else None

    def set(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        expires_at = None if ttl_seconds is None else self._clock() + max(ttl_seconds, 0)
        with self._lock:
            self._store[key] = _Entry(value=value, expires_at=expires_at)

    def delete(self, *keys: str) -> int:
        removed = 0
        with self._lock:
            for key in keys:
                if self._alive(key) is not None:
                    removed += 1
                self._store.pop(key, None)
        return removed

    def keys(self, pattern: str) -> List[str]:
        with self._lock:
            return [
                k for k in list(self._store)
                if fnmatch.fnmatchcase(k, pattern) and self._alive(k) is not None
            ]

    def clear(self) -> None:
        with self._lock:
            self._store.clear()


# ============================================================
# REDIS STORE
# ============================================================

class RedisCacheStore(CacheStore):
    """
    Redis-backed store.

    Pattern enumeration uses SCAN (never KEYS) so it does not block
    the server on large keyspaces.
    """

    def __init__(self, client: "redis.Redis", scan_count: int = 500) -> None:
        self._client = client
        self._scan_count = scan_count

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisCacheStore":
        """Create a store connected to url."""
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=2.0,
            socket_connect_timeout=2.0,
        )
        logger.info(f"Using Redis cache store at {url.split('@')[-1]}")
        return cls(client, **kwargs)

    def get(self, key: str) -> Optional[str]:
        try:
            value = self._client.get(key)
        except redis.RedisError as e:
            raise CacheStoreError("Redis GET failed", key=key, cause=e) from e
        if isinstance(value, bytes):
            value = value.decode("utf-8")
        return value

    def set(self, key: str, value: str, ttl_seconds: Optional[float] = None) -> None:
        try:
            if ttl_seconds is None:
                self._client.set(key, value)
            else:
                self._client.set(key, value, px=max(int(ttl_seconds * 1000), 1))
        except redis.RedisError as e:
            raise CacheStoreError("Redis SET failed", key=key, cause=e) from e

    def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return int(self._client.delete(*keys))
        except redis.RedisError as e:
            raise CacheStoreError("Redis DEL failed", key=keys[0], cause=e) from e

    def keys(self, pattern: str) -> List[str]:
        try:
            found = self._client.scan_iter(match=pattern, count=self._scan_count)
            return [k.decode("utf-8") if isinstance(k, bytes) else k for k in found]
        except redis.RedisError as e:
            raise CacheStoreError("Redis SCAN failed", key=pattern, cause=e) from e


__all__ = [
    "CacheStore",
    "InMemoryCacheStore",
    "RedisCacheStore",
]
