"""
Injectable key -> entry cache used by the role and user-matrix caches.

Usage:
    from practice_rbac.cache import MemoryCacheBackend

    cache = MemoryCacheBackend(max_size=1000, default_ttl=300)
    await cache.set("rbac:role:staff", permissions, ttl=300)
    value = await cache.get("rbac:role:staff")
    await cache.delete_pattern("rbac:user:*")

Pass clock= to control expiry in tests without sleeping.
"""

from .base import CacheBackend, CacheEntry, CacheStats, Clock
from .backends.memory import MemoryCacheBackend

__all__ = [
    "CacheBackend",
    "CacheEntry",
    "CacheStats",
    "Clock",
    "MemoryCacheBackend",
]
