"""
Cache backend abstract base class and data models.
"""

import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

Clock = Callable[[], float]


@dataclass
class CacheEntry:
    """A cached value with expiration."""

    value: Any
    expires_at: float | None = None  # Unix timestamp

    def is_expired(self, now: float | None = None) -> bool:
        """An entry is expired from the instant now reaches expires_at."""
        if self.expires_at is None:
            return False
        if now is None:
            now = time.time()
        return now >= self.expires_at


@dataclass
class CacheStats:
    """Cache statistics."""

    hits: int = 0
    misses: int = 0
    sets: int = 0
    deletes: int = 0
    evictions: int = 0

    @property
    def hit_rate(self) -> float:
        """Calculate hit rate percentage."""
        total = self.hits + self.misses
        if total == 0:
            return 0.0
        return (self.hits / total) * 100


class CacheBackend(ABC):
    """Abstract base for cache backends."""

    @abstractmethod
    async def get(self, key: str) -> Any | None:
        """Get a value from cache."""
        pass

    @abstractmethod
    async def set(
        self,
        key: str,
        value: Any,
        ttl: float | None = None,
    ) -> bool:
        """Set a value in cache."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete a value from cache."""
        pass

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check if key exists in cache."""
        pass

    @abstractmethod
    async def clear(self) -> None:
        """Clear all cache entries."""
        pass

    @abstractmethod
    async def get_stats(self) -> CacheStats:
        """Get cache statistics."""
        pass

    async def delete_pattern(self, pattern: str) -> int:
        """
        Delete all keys matching pattern.
        Pattern uses * as wildcard (e.g., "rbac:user:*").
        """
        return 0
