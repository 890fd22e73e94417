"""
Cache-Aside Service.

============================================================
PURPOSE
============================================================
Avoid recomputing read-heavy queries while keeping cached views
no older than the last write that invalidated them.

PRINCIPLES:
- Caching is an optimization, never a correctness dependency
- A store failure degrades to "always miss"
- A factory failure propagates and nothing is cached
- Invalidation failures are logged, never raised to writers
- No stampede protection: concurrent misses may all compute

Values are stored as JSON; factories must return JSON-native data
(dicts, lists, strings, numbers, booleans) so that a hit returns
exactly what the miss returned.

============================================================
"""

import json
import logging
from datetime import timedelta
from typing import Callable, Optional, TypeVar, Union

from core.exceptions import CacheStoreError

from .store import CacheStore


logger = logging.getLogger(__name__)

T = TypeVar("T")

TTL = Union[timedelta, float, int]


# ============================================================
# TTL TIERS AND KEYS
# ============================================================

class CacheExpiry:
    """Named TTL tiers."""

    SHORT = timedelta(minutes=5)
    MEDIUM = timedelta(minutes=30)
    LONG = timedelta(hours=2)
    VERY_LONG = timedelta(hours=24)


class CacheKeys:
    """Key prefixes for every cached view."""

    STATION_PREFIX = "station:"
    STATION_LIST = "stations:list"
    STATION_MAP = "stations:map"
    NEAREST_STATIONS = "stations:nearest"

    USER_STATS_PREFIX = "userstats:"
    TOP_USERS = "users:top"
    USERS_LIST = "users:list"
    USER_INFO_PREFIX = "userinfo:"
    USER_BAN_PREFIX = "userban:"

    PROPOSAL_LIST = "proposals:list"
    PROPOSAL_PREFIX = "proposal:"
    PROPOSAL_COUNTS = "proposals:counts"


def generate_paged_key(
    base_key: str,
    page_number: int,
    page_size: int,
    search: Optional[str] = None,
    sort_by: Optional[str] = None,
    sort_direction: Optional[str] = None,
) -> str:
    """Build the cache key of one page of a list view."""
    parts = [base_key, str(page_number), str(page_size)]

    if search:
        parts.append(f"search:{search.lower()}")
    if sort_by:
        parts.append(f"sort:{sort_by.lower()}")
    if sort_direction:
        parts.append(f"dir:{sort_direction.lower()}")

    return ":".join(parts)


def _ttl_seconds(ttl: Optional[TTL]) -> Optional[float]:
    if ttl is None:
        return None
    if isinstance(ttl, timedelta):
        return ttl.total_seconds()
    return float(ttl)


# ============================================================
# CACHE SERVICE
# ============================================================

class CacheService:
    """Generic get-or-compute plus pattern-based invalidation."""

    def __init__(
        self,
        store: CacheStore,
        default_ttl: TTL = CacheExpiry.MEDIUM,
        enabled: bool = True,
    ):
        self._store = store
        self._default_ttl = _ttl_seconds(default_ttl)
        self._enabled = enabled

    @property
    def store(self) -> CacheStore:
        return self._store

    @property
    def enabled(self) -> bool:
        return self._enabled

    # ---------------------------------------------------------
    # READ PATH
    # ---------------------------------------------------------

    def get_or_set(
        self,
        key: str,
        factory: Callable[[], T],
        ttl: Optional[TTL] = None,
    ) -> T:
        """
        Return the cached value for key, computing and storing it on a miss.

        factory is called at most once. Its exceptions propagate and
        nothing is stored. A None result is returned but not cached.
        """
        if not self._enabled:
            return factory()

        try:
            cached = self._store.get(key)
        except CacheStoreError as e:
            logger.error(f"Cache error for key {key}, computing directly: {e.message}")
            return factory()

        if cached is not None:
            try:
                value = json.loads(cached)
            except ValueError:
                logger.warning(f"Discarding undecodable cache entry: {key}")
            else:
                logger.debug(f"Cache HIT for key: {key}")
                return value

        logger.debug(f"Cache MISS for key: {key}")
        value = factory()

        if value is None:
            return value

        try:
            serialized = json.dumps(value)
        except (TypeError, ValueError) as e:
            logger.error(f"Value for key {key} is not JSON serializable, not cached: {e}")
            return value

        ttl_seconds = _ttl_seconds(ttl) if ttl is not None else self._default_ttl
        try:
            self._store.set(key, serialized, ttl_seconds)
            logger.debug(f"Cached value for key: {key}")
        except CacheStoreError as e:
            logger.error(f"Failed to cache value for key {key}: {e.message}")

        return value

    # ---------------------------------------------------------
    # INVALIDATION
    # ---------------------------------------------------------

    def remove(self, key: str) -> bool:
        """Delete a single key. Returns whether it existed."""
        try:
            removed = self._store.delete(key) > 0
            logger.debug(f"Removed cache key: {key}")
            return removed
        except CacheStoreError as e:
            logger.error(f"Error removing cache key {key}: {e.message}")
            return False

    def remove_by_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob pattern in one batch. Returns the count."""
        try:
            keys = self._store.keys(pattern)
            if not keys:
                return 0
            removed = self._store.delete(*keys)
            logger.info(f"Removed {len(keys)} cache keys matching pattern: {pattern}")
            return removed
        except CacheStoreError as e:
            logger.error(f"Error removing cache keys by pattern {pattern}: {e.message}")
            return 0

    # ---------------------------------------------------------
    # DOMAIN INVALIDATION HELPERS
    # ---------------------------------------------------------

    def invalidate_station_views(self) -> None:
        self.remove_by_pattern(f"{CacheKeys.STATION_PREFIX}*")
        self.remove_by_pattern(f"{CacheKeys.STATION_LIST}*")
        self.remove_by_pattern(f"{CacheKeys.STATION_MAP}*")
        self.remove_by_pattern(f"{CacheKeys.NEAREST_STATIONS}*")
        logger.info("Invalidated station cache")

    def invalidate_user_stats(self, email: str) -> None:
        self.remove(f"{CacheKeys.USER_STATS_PREFIX}{email}")
        self.remove_by_pattern(f"{CacheKeys.TOP_USERS}*")
        logger.info(f"Invalidated user stats cache for: {email}")

    def invalidate_user_info(self, email: Optional[str] = None) -> None:
        """Drop one user's info views, or every user's when email is None."""
        if email:
            self.remove(f"{CacheKeys.USER_INFO_PREFIX}{email}")
            self.remove(f"{CacheKeys.USER_STATS_PREFIX}{email}")
            self.remove(f"{CacheKeys.USER_BAN_PREFIX}{email}")
        else:
            self.remove_by_pattern(f"{CacheKeys.USER_INFO_PREFIX}*")
            self.remove_by_pattern(f"{CacheKeys.USER_STATS_PREFIX}*")
            self.remove_by_pattern(f"{CacheKeys.USER_BAN_PREFIX}*")

        self.remove_by_pattern(f"{CacheKeys.TOP_USERS}*")
        self.remove_by_pattern(f"{CacheKeys.USERS_LIST}*")

    def invalidate_proposal_lists(self) -> None:
        self.remove_by_pattern(f"{CacheKeys.PROPOSAL_LIST}*")
        self.remove(CacheKeys.PROPOSAL_COUNTS)


__all__ = [
    "CacheExpiry",
    "CacheKeys",
    "CacheService",
    "generate_paged_key",
]
