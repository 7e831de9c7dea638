"""
Tests for RolePermissionCache: TTL, invalidation, fail-closed fetches and
coalescing of concurrent misses.
"""

import asyncio
import gc

import pytest

from practice_rbac.cache import MemoryCacheBackend
from practice_rbac.providers import StaticPermissionSource
from practice_rbac.role_cache import RolePermissionCache


def keys(permissions):
    return sorted(p.key for p in permissions)


class TestRolePermissionCache:
    """Test suite for RolePermissionCache."""

    async def test_fetches_and_parses(self, source, cache):
        role_cache = RolePermissionCache(source, cache=cache)
        permissions = await role_cache.get_for_role("staff")
        assert keys(permissions) == ["cases.read", "documents.read", "tasks.create", "tasks.read"]

    async def test_role_is_normalized(self, source, cache):
        role_cache = RolePermissionCache(source, cache=cache)
        await role_cache.get_for_role("  STAFF ")
        await role_cache.get_for_role("staff")
        assert source.fetch_counts["role:staff"] == 1

    async def test_cached_within_ttl(self, source, cache, clock):
        role_cache = RolePermissionCache(source, cache=cache, ttl=300)
        await role_cache.get_for_role("staff")
        clock.advance(299)
        await role_cache.get_for_role("staff")
        assert source.fetch_counts["role:staff"] == 1

    async def test_refetch_after_expiry(self, source, cache, clock):
        """Test that an expired entry is rebuilt lazily on the next read."""
        role_cache = RolePermissionCache(source, cache=cache, ttl=300)
        await role_cache.get_for_role("staff")

        source.grant("staff", "tasks.update")
        clock.advance(300)

        permissions = await role_cache.get_for_role("staff")
        assert source.fetch_counts["role:staff"] == 2
        assert "tasks.update" in keys(permissions)

    async def test_invalidate(self, source, cache):
        role_cache = RolePermissionCache(source, cache=cache)
        await role_cache.get_for_role("staff")
        assert await role_cache.is_loaded("staff")

        await role_cache.invalidate("staff")
        assert not await role_cache.is_loaded("staff")

        await role_cache.get_for_role("staff")
        assert source.fetch_counts["role:staff"] == 2

    async def test_invalidate_all(self, source, cache):
        role_cache = RolePermissionCache(source, cache=cache)
        await role_cache.get_for_role("staff")
        await role_cache.get_for_role("manager")

        await role_cache.invalidate_all()

        assert not await role_cache.is_loaded("staff")
        assert not await role_cache.is_loaded("manager")

    async def test_fetch_failure_returns_empty_and_is_not_cached(self, flaky_source, cache):
        """Test that a failed fetch yields [] and the next call retries."""
        role_cache = RolePermissionCache(flaky_source, cache=cache)
        flaky_source.fail_roles = True

        result = await role_cache.resolve("staff")
        assert result.permissions == []
        assert result.from_fallback
        assert not await role_cache.is_loaded("staff")

        flaky_source.fail_roles = False
        permissions = await role_cache.get_for_role("staff")
        assert "tasks.read" in keys(permissions)

    async def test_preload(self, source, flaky_source, cache):
        role_cache = RolePermissionCache(source, cache=cache)
        assert await role_cache.preload("advocate")
        assert await role_cache.is_loaded("advocate")

        flaky_source.fail_roles = True
        failing = RolePermissionCache(flaky_source, cache=cache)
        assert not await failing.preload("clerk")

    async def test_unknown_role_is_empty(self, source, cache):
        role_cache = RolePermissionCache(source, cache=cache)
        assert await role_cache.get_for_role("intern") == []
        assert await role_cache.get_for_role("") == []

    async def test_concurrent_misses_coalesce(self, cache):
        """Test that concurrent misses for one role share a single fetch."""
        source = StaticPermissionSource(
            role_permissions={"staff": ["tasks.read"]},
            latency=0.01,
        )
        role_cache = RolePermissionCache(source, cache=cache)

        results = await asyncio.gather(*(role_cache.get_for_role("staff") for _ in range(20)))

        assert source.fetch_counts["role:staff"] == 1
        assert all(keys(r) == ["tasks.read"] for r in results)

    async def test_invalidation_during_fetch_is_not_cached(self, cache):
        """Test that a fetch overtaken by invalidation does not repopulate the cache."""
        source = StaticPermissionSource(
            role_permissions={"staff": ["tasks.read"]},
            latency=0.01,
        )
        role_cache = RolePermissionCache(source, cache=cache)

        pending = asyncio.create_task(role_cache.get_for_role("staff"))
        await asyncio.sleep(0)
        await role_cache.invalidate("staff")

        assert keys(await pending) == ["tasks.read"]
        assert not await role_cache.is_loaded("staff")

    async def test_results_are_copies(self, source, cache):
        role_cache = RolePermissionCache(source, cache=cache)
        first = await role_cache.get_for_role("staff")
        first.clear()
        assert len(await role_cache.get_for_role("staff")) == 4

    async def test_abandoned_fetch_failure_is_not_reported(self, clock):
        """Test that a shared fetch failing after its only caller was cancelled raises no loop error."""

        class BrokenCache(MemoryCacheBackend):
            async def set(self, key, value, ttl=None):
                raise RuntimeError("cache down")

        loop = asyncio.get_running_loop()
        reported = []
        previous = loop.get_exception_handler()
        loop.set_exception_handler(lambda _loop, context: reported.append(context))
        try:
            source = StaticPermissionSource({"staff": ["tasks.read"]}, latency=0.02)
            role_cache = RolePermissionCache(source, cache=BrokenCache(clock=clock))

            caller = asyncio.create_task(role_cache.get_for_role("staff"))
            await asyncio.sleep(0)
            caller.cancel()
            with pytest.raises(asyncio.CancelledError):
                await caller

            await asyncio.sleep(0.05)
            assert not await role_cache.is_loaded("staff")
            del caller
            gc.collect()
        finally:
            loop.set_exception_handler(previous)

        assert [c for c in reported if "never retrieved" in c.get("message", "")] == []
