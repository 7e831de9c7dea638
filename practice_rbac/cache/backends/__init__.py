"""Cache backend implementations."""

from .memory import MemoryCacheBackend

__all__ = ["MemoryCacheBackend"]
