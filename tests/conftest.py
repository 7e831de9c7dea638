"""
Pytest configuration and fixtures for testing.

This module provides:
- A fake clock so TTL expiry is tested without sleeping
- A static permission source seeded from fixtures/permissions.yaml
- A source wrapper that can be switched to fail
- Engine, audit and FastAPI test client fixtures
"""

import os
from pathlib import Path
from typing import Generator

import pytest

# Set test environment before importing app modules
os.environ["ENVIRONMENT"] = "test"
os.environ["PERMISSION_SOURCE"] = "static"
os.environ["AUDIT_BACKEND"] = "memory"

from fastapi.testclient import TestClient

from practice_rbac.api import create_app
from practice_rbac.audit import AuditSink, MemoryAuditStore
from practice_rbac.cache import MemoryCacheBackend
from practice_rbac.codec import RolePermissionRow, UserRecord
from practice_rbac.config import Settings
from practice_rbac.engine import PermissionEngine
from practice_rbac.exceptions import PermissionSourceError
from practice_rbac.providers import PermissionSource, StaticPermissionSource

FIXTURES_DIR = Path(__file__).parent / "fixtures"
PERMISSIONS_FILE = FIXTURES_DIR / "permissions.yaml"

TTL = 300


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: float = 1_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FlakySource(PermissionSource):
    """Wraps a source; set fail_roles / fail_users to simulate an outage."""

    def __init__(self, inner: PermissionSource):
        self.inner = inner
        self.fail_roles = False
        self.fail_users = False

    @property
    def name(self) -> str:
        return "flaky"

    async def fetch_role_permissions(self, role: str) -> list[RolePermissionRow]:
        if self.fail_roles:
            raise PermissionSourceError(f"role_permissions unavailable for {role}")
        return await self.inner.fetch_role_permissions(role)

    async def fetch_user_record(self, user_id: str) -> UserRecord:
        if self.fail_users:
            raise PermissionSourceError(f"employees unavailable for {user_id}")
        return await self.inner.fetch_user_record(user_id)


# =============================================================================
# CORE FIXTURES
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> MemoryCacheBackend:
    return MemoryCacheBackend(max_size=100, clock=clock)


@pytest.fixture
def source() -> StaticPermissionSource:
    """Static source seeded from the YAML fixture."""
    return StaticPermissionSource.from_yaml(PERMISSIONS_FILE)


@pytest.fixture
def flaky_source(source: StaticPermissionSource) -> FlakySource:
    return FlakySource(source)


@pytest.fixture
def audit_store() -> MemoryAuditStore:
    return MemoryAuditStore()


@pytest.fixture
def audit_sink(audit_store: MemoryAuditStore) -> AuditSink:
    return AuditSink(audit_store)


@pytest.fixture
def engine(
    source: StaticPermissionSource,
    cache: MemoryCacheBackend,
    audit_sink: AuditSink,
) -> PermissionEngine:
    """Fresh engine per test; no state is shared between tests."""
    return PermissionEngine(source, cache=cache, ttl=TTL, audit=audit_sink)


@pytest.fixture
def flaky_engine(
    flaky_source: FlakySource,
    cache: MemoryCacheBackend,
    audit_sink: AuditSink,
) -> PermissionEngine:
    return PermissionEngine(flaky_source, cache=cache, ttl=TTL, audit=audit_sink)


# =============================================================================
# API FIXTURES
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        _env_file=None,
        ENVIRONMENT="test",
        PERMISSION_SOURCE="static",
        AUDIT_BACKEND="memory",
        INTER_SERVICE_SECRET=None,
        CORS_ORIGINS="http://localhost:3005",
    )


@pytest.fixture
def client(engine: PermissionEngine, test_settings: Settings) -> Generator[TestClient, None, None]:
    """Create a synchronous test client for the FastAPI app."""
    with TestClient(create_app(engine=engine, settings=test_settings)) as test_client:
        yield test_client


@pytest.fixture
def secured_client(engine: PermissionEngine) -> Generator[TestClient, None, None]:
    """Test client for an app that requires X-Service-Secret."""
    settings = Settings(
        _env_file=None,
        ENVIRONMENT="test",
        PERMISSION_SOURCE="static",
        AUDIT_BACKEND="memory",
        INTER_SERVICE_SECRET="test-secret",
    )
    with TestClient(create_app(engine=engine, settings=settings)) as test_client:
        yield test_client
