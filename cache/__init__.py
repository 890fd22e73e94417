"""
Cache Package.

Cache-aside layer used by every read path of the moderation core.

Modules:
- store: CacheStore interface, Redis and in-memory backends
- service: CacheService (get-or-set, pattern invalidation), key registry

Usage:
    from cache import CacheService, create_cache_service
"""

import logging
from typing import Optional

from cache.store import CacheStore, InMemoryCacheStore, RedisCacheStore
from cache.service import CacheExpiry, CacheKeys, CacheService, generate_paged_key


logger = logging.getLogger(__name__)


def create_cache_service(
    redis_url: Optional[str] = None,
    default_ttl_seconds: float = CacheExpiry.MEDIUM.total_seconds(),
    enabled: bool = True,
) -> CacheService:
    """Create a CacheService backed by Redis when a URL is given, else in-memory."""
    if redis_url:
        store: CacheStore = RedisCacheStore.from_url(redis_url)
    else:
        logger.info("REDIS_URL not set, using in-memory cache store")
        store = InMemoryCacheStore()
    return CacheService(store, default_ttl=default_ttl_seconds, enabled=enabled)


__all__ = [
    "CacheStore",
    "InMemoryCacheStore",
    "RedisCacheStore",
    "CacheExpiry",
    "CacheKeys",
    "CacheService",
    "generate_paged_key",
    "create_cache_service",
]
