"""
Permission audit trail.

Denials (and optionally grants) are recorded as append-only entries:

    {user_id, module, action, reason, timestamp, allowed}

Writes are fire-and-forget. A permission check never waits on the store and
never sees a store failure; failures are reported on the local logger only.

Stores:
- SupabaseAuditStore: inserts into AUDIT_TABLE
- HttpAuditStore: posts to security-service /api/audit/log
- MemoryAuditStore: keeps entries in a list (development, tests)
"""

import asyncio
import concurrent.futures
import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import httpx
from supabase import Client

from practice_rbac.config import Settings
from practice_rbac.exceptions import AuditWriteError
from practice_rbac.utils.logging import get_request_id

logger = logging.getLogger("practice_rbac.audit")


@dataclass(frozen=True)
class AuditEntry:
    """One permission decision worth keeping."""
    user_id: str
    module: str
    action: str
    reason: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    allowed: bool = False

    def to_record(self) -> dict[str, Any]:
        """Stable row format for external reporting."""
        return {
            "user_id": self.user_id,
            "module": self.module,
            "action": self.action,
            "reason": self.reason,
            "timestamp": self.timestamp.isoformat(),
            "allowed": self.allowed,
        }


# =============================================================================
# STORES
# =============================================================================

class AuditStore(ABC):
    """Append-only destination for audit entries."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Store name for logging."""
        pass

    @abstractmethod
    async def write(self, entry: AuditEntry) -> None:
        """
        Persist one entry.

        Raises:
            AuditWriteError: If the entry could not be written
        """
        pass


class MemoryAuditStore(AuditStore):
    """Keeps entries in memory."""

    def __init__(self):
        self.entries: list[AuditEntry] = []

    @property
    def name(self) -> str:
        return "memory"

    async def write(self, entry: AuditEntry) -> None:
        self.entries.append(entry)

    def denials(self) -> list[AuditEntry]:
        return [e for e in self.entries if not e.allowed]

    def clear(self) -> None:
        self.entries.clear()


class SupabaseAuditStore(AuditStore):
    """Inserts entries into a Supabase table."""

    def __init__(self, client: Client | None, table: str = "permission_audit_log"):
        self._client = client
        self._table = table

    @property
    def name(self) -> str:
        return "supabase"

    def _insert(self, record: dict[str, Any]) -> None:
        self._client.table(self._table).insert(record).execute()

    async def write(self, entry: AuditEntry) -> None:
        if self._client is None:
            logger.debug(f"[AUDIT] Local only: {entry.user_id} {entry.module}.{entry.action}")
            return

        try:
            await asyncio.to_thread(self._insert, entry.to_record())
        except Exception as e:
            raise AuditWriteError(f"Supabase insert into {self._table} failed: {e}") from e


class HttpAuditStore(AuditStore):
    """Posts entries to the security-service audit endpoint."""

    def __init__(
        self,
        base_url: str | None,
        service_name: str = "practice-rbac",
        service_secret: str | None = None,
        timeout: float = 5.0,
    ):
        self._base_url = (base_url or "").rstrip("/")
        self._service_name = service_name
        self._service_secret = service_secret
        self._timeout = timeout  # Short timeout for audit logs

    @property
    def name(self) -> str:
        return "http"

    def _get_headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "X-Service-Name": self._service_name,
        }
        if self._service_secret:
            headers["X-Service-Secret"] = self._service_secret
        return headers

    def _payload(self, entry: AuditEntry) -> dict[str, Any]:
        return {
            "action": "access.denied" if not entry.allowed else "permission.check",
            "actor_type": "user",
            "actor_id": entry.user_id,
            "service": self._service_name,
            "resource_type": entry.module,
            "result": "success" if entry.allowed else "denied",
            "request_id": get_request_id(),
            "metadata": entry.to_record(),
            "timestamp": entry.timestamp.isoformat(),
        }

    async def write(self, entry: AuditEntry) -> None:
        if not self._base_url:
            logger.debug("[AUDIT] SECURITY_SERVICE_URL not configured, skipping HTTP send")
            return

        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(
                    f"{self._base_url}/api/audit/log",
                    json=self._payload(entry),
                    headers=self._get_headers(),
                )
        except httpx.HTTPError as e:
            raise AuditWriteError(f"Error sending to security-service: {e}") from e

        if response.status_code >= 400:
            raise AuditWriteError(f"security-service returned {response.status_code}")


def create_audit_store(settings: Settings) -> AuditStore:
    """Build the audit store selected by AUDIT_BACKEND."""
    backend = settings.AUDIT_BACKEND.lower()

    if backend == "memory":
        return MemoryAuditStore()

    if backend == "http":
        return HttpAuditStore(
            base_url=settings.SECURITY_SERVICE_URL,
            service_name=settings.SERVICE_NAME,
            service_secret=settings.INTER_SERVICE_SECRET,
        )

    from practice_rbac.supabase_client import get_supabase

    return SupabaseAuditStore(get_supabase(settings), table=settings.AUDIT_TABLE)


# =============================================================================
# SINK
# =============================================================================

class AuditSink:
    """
    Fire-and-forget front for an AuditStore.

    Inside an event loop writes run as background tasks. Synchronous callers
    hand them to a single worker thread instead, so neither ever waits on the
    store.

    Usage:
        sink = AuditSink(MemoryAuditStore())
        sink.log_denial("user-1", "tasks", "edit", "No edit permission")
        await sink.flush()
    """

    def __init__(
        self,
        store: AuditStore | None = None,
        enabled: bool = True,
        log_grants: bool = False,
    ):
        self._store = store or MemoryAuditStore()
        self._enabled = enabled
        self._log_grants = log_grants
        self._pending: set[asyncio.Task] = set()
        self._futures: set[concurrent.futures.Future] = set()
        self._executor: concurrent.futures.ThreadPoolExecutor | None = None
        self._lock = threading.Lock()

    @property
    def store(self) -> AuditStore:
        return self._store

    @property
    def log_grants(self) -> bool:
        return self._log_grants

    @property
    def pending(self) -> int:
        """Writes scheduled but not yet finished."""
        return len(self._pending) + len(self._futures)

    def log_denial(self, user_id: str, module: str, action: str, reason: str) -> None:
        """Record a denied check. Never raises."""
        if not self._enabled:
            return
        logger.warning(
            f"[AUDIT] Denied {user_id} {module}.{action}: {reason}",
            extra={"user_id": user_id, "rbac_module": module, "action": action, "reason": reason},
        )
        self._submit(AuditEntry(user_id=user_id, module=module, action=action, reason=reason))

    def log_grant(self, user_id: str, module: str, action: str, reason: str = "Allowed") -> None:
        """Record an allowed check when grant logging is on. Never raises."""
        if not self._enabled or not self._log_grants:
            return
        logger.info(
            f"[AUDIT] Allowed {user_id} {module}.{action}",
            extra={"user_id": user_id, "rbac_module": module, "action": action},
        )
        self._submit(
            AuditEntry(user_id=user_id, module=module, action=action, reason=reason, allowed=True)
        )

    def _submit(self, entry: AuditEntry) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is not None:
            task = loop.create_task(self._write(entry))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
            return

        # No loop (sync caller); run the write on the worker thread
        with self._lock:
            if self._executor is None:
                self._executor = concurrent.futures.ThreadPoolExecutor(
                    max_workers=1, thread_name_prefix="audit"
                )
            future = self._executor.submit(asyncio.run, self._write(entry))
            self._futures.add(future)
        future.add_done_callback(self._futures.discard)

    async def _write(self, entry: AuditEntry) -> None:
        try:
            await self._store.write(entry)
        except Exception as e:
            logger.error(f"[AUDIT] Failed to write audit entry to {self._store.name}: {e}")

    async def flush(self) -> None:
        """Wait for every scheduled write to finish."""
        while self._pending or self._futures:
            waiting = [*self._pending, *(asyncio.wrap_future(f) for f in list(self._futures))]
            await asyncio.gather(*waiting, return_exceptions=True)

    def close(self, wait: bool = True) -> None:
        """Stop the worker thread, by default after its queued writes finish."""
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=wait)
