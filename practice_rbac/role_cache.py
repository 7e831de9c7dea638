"""
Per-role permission cache.

Parsed permissions are cached per normalized role for a fixed TTL
(5 minutes by default) and rebuilt lazily on the first miss after expiry.

Concurrent misses for the same role share one backing-store fetch. A failed
fetch yields an empty permission list for that call only; nothing is cached,
so the next call retries.
"""

import asyncio
import logging
from dataclasses import dataclass, field

from practice_rbac.base import ParsedPermission
from practice_rbac.cache import CacheBackend, MemoryCacheBackend
from practice_rbac.codec import PermissionKeyCodec, normalize_role
from practice_rbac.providers.base import PermissionSource

logger = logging.getLogger("practice_rbac.role_cache")

DEFAULT_TTL_SECONDS = 300


@dataclass
class RoleLoadResult:
    """Permissions for a role plus whether they came from the fail-closed fallback."""
    permissions: list[ParsedPermission] = field(default_factory=list)
    from_fallback: bool = False


class RolePermissionCache:
    """
    Caches ParsedPermission lists keyed by role.

    Usage:
        role_cache = RolePermissionCache(source, ttl=300)
        permissions = await role_cache.get_for_role("staff")
        await role_cache.invalidate("staff")
    """

    KEY_PREFIX = "rbac:role:"

    def __init__(
        self,
        source: PermissionSource,
        cache: CacheBackend | None = None,
        ttl: float = DEFAULT_TTL_SECONDS,
    ):
        self._source = source
        self._cache = cache or MemoryCacheBackend()
        self._ttl = ttl

        self._inflight: dict[str, asyncio.Task] = {}
        # Bumped on invalidation so an in-flight fetch can't repopulate stale data
        self._role_generations: dict[str, int] = {}
        self._global_generation = 0

    def _key(self, role: str) -> str:
        return f"{self.KEY_PREFIX}{role}"

    def _generation(self, role: str) -> tuple[int, int]:
        return (self._global_generation, self._role_generations.get(role, 0))

    # =========================================================================
    # READS
    # =========================================================================

    async def get_for_role(self, role: str) -> list[ParsedPermission]:
        """Parsed permissions for a role; empty if the role is unknown or the fetch failed."""
        result = await self.resolve(role)
        return result.permissions

    async def resolve(self, role: str) -> RoleLoadResult:
        """Like get_for_role, but reports whether the result is a fail-closed fallback."""
        role = normalize_role(role)
        if not role:
            return RoleLoadResult()

        cached = await self._cache.get(self._key(role))
        if cached is not None:
            logger.debug(f"[RBAC CACHE] Hit for role {role}")
            return RoleLoadResult(permissions=list(cached))

        task = self._inflight.get(role)
        if task is None:
            logger.debug(f"[RBAC CACHE] Miss for role {role}, fetching from {self._source.name}")
            task = asyncio.create_task(self._load(role, self._generation(role)))
            self._inflight[role] = task
            task.add_done_callback(lambda t, r=role: self._forget(r, t))

        # A caller that goes away must not cancel the fetch other callers share
        result = await asyncio.shield(task)
        return RoleLoadResult(permissions=list(result.permissions), from_fallback=result.from_fallback)

    async def _load(self, role: str, generation: tuple[int, int]) -> RoleLoadResult:
        try:
            rows = await self._source.fetch_role_permissions(role)
        except Exception as e:
            logger.error(f"[RBAC CACHE] Failed to load permissions for role {role}: {e}")
            return RoleLoadResult(permissions=[], from_fallback=True)

        permissions = PermissionKeyCodec.parse_rows(rows)

        if generation == self._generation(role):
            await self._cache.set(self._key(role), tuple(permissions), ttl=self._ttl)
            logger.debug(f"[RBAC CACHE] Cached {len(permissions)} permissions for role {role}")
        else:
            logger.debug(f"[RBAC CACHE] Role {role} invalidated during fetch, result not cached")

        return RoleLoadResult(permissions=permissions)

    def _forget(self, role: str, task: asyncio.Task) -> None:
        if self._inflight.get(role) is task:
            del self._inflight[role]

    async def is_loaded(self, role: str) -> bool:
        """Whether a non-expired entry exists for the role."""
        role = normalize_role(role)
        if not role:
            return False
        return await self._cache.exists(self._key(role))

    async def preload(self, role: str) -> bool:
        """Warm the cache for a role. Returns False if the fetch failed."""
        result = await self.resolve(role)
        return not result.from_fallback

    # =========================================================================
    # INVALIDATION
    # =========================================================================

    async def invalidate(self, role: str) -> None:
        """Drop a role's entry; the next read re-fetches."""
        role = normalize_role(role)
        if not role:
            return
        self._role_generations[role] = self._role_generations.get(role, 0) + 1
        self._inflight.pop(role, None)
        await self._cache.delete(self._key(role))
        logger.info(f"[RBAC CACHE] Invalidated role {role}")

    async def invalidate_all(self) -> None:
        """Drop every role entry."""
        self._global_generation += 1
        self._inflight.clear()
        removed = await self._cache.delete_pattern(f"{self.KEY_PREFIX}*")
        logger.info(f"[RBAC CACHE] Invalidated all roles ({removed} entries)")
