"""
Permission engine.

The single entry point the rest of the application asks "can user U do action
A in module M". Two independent checks are combined:

1. Module visibility (the user's module_access list). This is a hard gate:
   a module the user cannot see denies every action inside it.
2. Role permissions (role_permissions rows collapsed into a matrix).

Unrestricted roles (admin, partner by default) short-circuit both checks.

Every public operation degrades to a deny-everything answer when the backing
store fails; nothing here raises into a caller's render path.
"""

import asyncio
import copy
import logging
import time

from practice_rbac.audit import AuditSink, AuditStore, create_audit_store
from practice_rbac.base import (
    ActionType,
    ModuleAccessSummary,
    ModulePermissions,
    PermissionStatus,
    RBACAction,
    UserPermissionMatrix,
)
from practice_rbac.cache import CacheBackend, Clock, MemoryCacheBackend
from practice_rbac.codec import PermissionKeyCodec, normalize_role
from practice_rbac.config import Settings, get_settings
from practice_rbac.exceptions import UserNotFoundError
from practice_rbac.matrix import PermissionMatrixBuilder
from practice_rbac.modules import ALL_MODULE_KEYS, display_name, normalize_module
from practice_rbac.providers import PermissionSource, create_permission_source
from practice_rbac.role_cache import DEFAULT_TTL_SECONDS, RolePermissionCache
from practice_rbac.visibility import ModuleVisibilityResolver

logger = logging.getLogger("practice_rbac.engine")

DEFAULT_UNRESTRICTED_ROLES = frozenset({"admin", "partner"})

MODULE_DENIED_REASON = "Module access denied"
MODULE_DENIED_TOOLTIP = "You do not have access to this module. Contact Admin to enable."


class PermissionEngine:
    """
    Resolves per-user permission matrices and answers permission checks.

    Usage:
        engine = PermissionEngine.from_settings()
        if await engine.can_perform_action(user_id, "tasks", "edit"):
            ...
        status = await engine.get_permission_status(user_id, "tasks", "delete")
    """

    USER_KEY_PREFIX = "rbac:user:"

    def __init__(
        self,
        source: PermissionSource,
        cache: CacheBackend | None = None,
        ttl: float = DEFAULT_TTL_SECONDS,
        unrestricted_roles: frozenset[str] | set[str] = DEFAULT_UNRESTRICTED_ROLES,
        audit: AuditSink | None = None,
    ):
        self._source = source
        self._cache = cache or MemoryCacheBackend()
        self._ttl = ttl
        self._unrestricted_roles = frozenset(normalize_role(r) for r in unrestricted_roles)
        self._audit = audit or AuditSink()
        self._role_cache = RolePermissionCache(source, cache=self._cache, ttl=ttl)

        self._inflight: dict[str, asyncio.Task] = {}
        self._user_generations: dict[str, int] = {}
        self._global_generation = 0

    @classmethod
    def from_settings(
        cls,
        settings: Settings | None = None,
        source: PermissionSource | None = None,
        audit_store: AuditStore | None = None,
        clock: Clock = time.time,
    ) -> "PermissionEngine":
        """Build an engine wired from configuration. Owned by application start-up."""
        settings = settings or get_settings()

        cache = MemoryCacheBackend(max_size=settings.RBAC_CACHE_MAX_SIZE, clock=clock)
        audit = AuditSink(
            audit_store or create_audit_store(settings),
            enabled=settings.AUDIT_ENABLED,
            log_grants=settings.AUDIT_LOG_GRANTS,
        )
        source = source or create_permission_source(settings)

        logger.info(
            f"[RBAC] Engine initialized (source: {source.name}, "
            f"audit: {audit.store.name}, ttl: {settings.RBAC_CACHE_TTL_SECONDS}s)"
        )
        return cls(
            source,
            cache=cache,
            ttl=settings.RBAC_CACHE_TTL_SECONDS,
            unrestricted_roles=settings.unrestricted_roles,
            audit=audit,
        )

    @property
    def source(self) -> PermissionSource:
        return self._source

    @property
    def audit(self) -> AuditSink:
        return self._audit

    @property
    def role_cache(self) -> RolePermissionCache:
        return self._role_cache

    def is_unrestricted_role(self, role: str) -> bool:
        return normalize_role(role) in self._unrestricted_roles

    # =========================================================================
    # MATRIX RESOLUTION
    # =========================================================================

    def _user_key(self, user_id: str) -> str:
        return f"{self.USER_KEY_PREFIX}{user_id}"

    def _user_generation(self, user_id: str) -> tuple[int, int]:
        return (self._global_generation, self._user_generations.get(user_id, 0))

    async def get_user_permission_matrix(self, user_id: str) -> UserPermissionMatrix:
        """
        Get (or build) the user's permission matrix.

        Returns the empty 'unknown' matrix if the user or the backing store
        cannot be resolved. The fallback is never cached.
        """
        if not user_id:
            return UserPermissionMatrix.empty()

        try:
            cached = await self._cache.get(self._user_key(user_id))
            if cached is not None:
                return copy.deepcopy(cached)

            task = self._inflight.get(user_id)
            if task is None:
                task = asyncio.create_task(
                    self._build_matrix(user_id, self._user_generation(user_id))
                )
                self._inflight[user_id] = task
                task.add_done_callback(lambda t, u=user_id: self._forget(u, t))

            matrix = await asyncio.shield(task)
            return copy.deepcopy(matrix)
        except Exception as e:
            logger.error(f"[RBAC] Failed to resolve permissions for user {user_id}: {e}")
            return UserPermissionMatrix.empty()

    def _forget(self, user_id: str, task: asyncio.Task) -> None:
        if self._inflight.get(user_id) is task:
            del self._inflight[user_id]

    async def _build_matrix(self, user_id: str, generation: tuple[int, int]) -> UserPermissionMatrix:
        try:
            record = await self._source.fetch_user_record(user_id)
        except UserNotFoundError:
            logger.warning(f"[RBAC] No role or profile found for user {user_id}")
            return UserPermissionMatrix.empty()
        except Exception as e:
            logger.error(f"[RBAC] Failed to load user {user_id}: {e}")
            return UserPermissionMatrix.empty()

        cacheable = True
        if record.role in self._unrestricted_roles:
            matrix = UserPermissionMatrix(
                role=record.role,
                modules=PermissionMatrixBuilder.build_unrestricted(),
                module_access=[],
                is_unrestricted=True,
            )
        else:
            loaded = await self._role_cache.resolve(record.role)
            cacheable = not loaded.from_fallback
            matrix = UserPermissionMatrix(
                role=record.role,
                modules=PermissionMatrixBuilder.build(loaded.permissions),
                module_access=list(record.module_access),
                is_unrestricted=False,
            )

        if not cacheable:
            logger.warning(f"[RBAC] Role {record.role} unavailable, matrix for {user_id} not cached")
        elif generation != self._user_generation(user_id):
            logger.debug(f"[RBAC] User {user_id} invalidated during build, matrix not cached")
        else:
            await self._cache.set(self._user_key(user_id), matrix, ttl=self._ttl)

        logger.debug(
            f"[RBAC] Built matrix for {user_id}: role={matrix.role}, "
            f"modules={len(matrix.modules)}, unrestricted={matrix.is_unrestricted}"
        )
        return matrix

    # =========================================================================
    # DECISIONS
    # =========================================================================

    @staticmethod
    def _is_visible(matrix: UserPermissionMatrix, module: str) -> bool:
        if matrix.is_unrestricted:
            return True
        return ModuleVisibilityResolver.is_module_visible(matrix.module_access, module)

    def evaluate(
        self,
        matrix: UserPermissionMatrix,
        module: str,
        action: ActionType | str,
    ) -> PermissionStatus:
        """Decide one (module, action) against an already-resolved matrix."""
        try:
            action_type = action if isinstance(action, ActionType) else ActionType(str(action).strip().lower())
        except ValueError:
            return PermissionStatus(
                allowed=False,
                reason=f"No {action} permission",
                tooltip=f"You don't have permission to {action}. Contact Admin to enable.",
            )

        if matrix.is_unrestricted:
            return PermissionStatus(
                allowed=True,
                reason="Allowed",
                tooltip="You have permission for this action.",
            )

        if not self._is_visible(matrix, module):
            return PermissionStatus(
                allowed=False,
                reason=MODULE_DENIED_REASON,
                tooltip=MODULE_DENIED_TOOLTIP,
            )

        permissions = matrix.modules.get(normalize_module(module))
        if permissions is not None and permissions.allows(action_type):
            return PermissionStatus(
                allowed=True,
                reason="Allowed",
                tooltip=f"You can {action_type.label} items.",
            )

        return PermissionStatus(
            allowed=False,
            reason=f"No {action_type.value} permission",
            tooltip=f"You don't have permission to {action_type.label}. Contact Admin to enable.",
        )

    async def can_access_module(self, user_id: str, module: str) -> bool:
        """Whether the user can see a module at all."""
        matrix = await self.get_user_permission_matrix(user_id)
        return self._is_visible(matrix, module)

    async def can_perform_action(self, user_id: str, module: str, action: ActionType | str) -> bool:
        """
        Whether the user can perform an action in a module.

        Module visibility is checked first; a hidden module denies every action.
        Denials are sent to the audit sink.
        """
        status = await self.check(user_id, module, action)
        return status.allowed

    async def check(self, user_id: str, module: str, action: ActionType | str) -> PermissionStatus:
        """Audited decision with reason and tooltip."""
        matrix = await self.get_user_permission_matrix(user_id)
        status = self.evaluate(matrix, module, action)

        action_name = action.value if isinstance(action, ActionType) else str(action)
        module_key = normalize_module(module)
        if status.allowed:
            self._audit.log_grant(user_id, module_key, action_name)
        else:
            logger.debug(
                f"[RBAC] User {user_id} denied {module_key}.{action_name}: {status.reason}",
                extra={
                    "user_id": user_id,
                    "role": matrix.role,
                    "rbac_module": module_key,
                    "action": action_name,
                    "reason": status.reason,
                },
            )
            self._audit.log_denial(user_id, module_key, action_name, status.reason)

        return status

    async def get_permission_status(
        self,
        user_id: str,
        module: str,
        action: ActionType | str,
    ) -> PermissionStatus:
        """UI-facing decision with reason and tooltip. Not audited."""
        matrix = await self.get_user_permission_matrix(user_id)
        return self.evaluate(matrix, module, action)

    async def has_permission(self, role: str, module: str, action: RBACAction | str) -> bool:
        """Role-level check in RBAC actions (read, write, delete, admin)."""
        try:
            rbac_action = action if isinstance(action, RBACAction) else RBACAction(str(action).strip().lower())
        except ValueError:
            logger.warning(f"[RBAC] Unknown RBAC action: {action}")
            return False

        if self.is_unrestricted_role(role):
            return True

        permissions = await self._role_cache.get_for_role(role)
        return PermissionKeyCodec.has_permission(permissions, module, rbac_action)

    async def summarize(self, user_id: str) -> list[ModuleAccessSummary]:
        """Per-module rows for a "My Permissions" view."""
        matrix = await self.get_user_permission_matrix(user_id)

        keys = list(ALL_MODULE_KEYS)
        keys.extend(k for k in matrix.modules if k not in keys)

        rows = []
        for key in keys:
            visible = self._is_visible(matrix, key)
            permissions = matrix.modules.get(key) if visible else None
            permissions = permissions or ModulePermissions()
            rows.append(
                ModuleAccessSummary(
                    module=key,
                    display_name=display_name(key),
                    visible=visible,
                    can_view=permissions.can_view,
                    can_create=permissions.can_create,
                    can_edit=permissions.can_edit,
                    can_delete=permissions.can_delete,
                )
            )
        return rows

    def log_permission_denial(
        self,
        user_id: str,
        module: str,
        action: str,
        reason: str | None = None,
    ) -> None:
        """Record that a user attempted something they are not allowed to do."""
        self._audit.log_denial(
            user_id,
            normalize_module(module),
            action,
            reason or f"No {action} permission",
        )

    # =========================================================================
    # CACHE MANAGEMENT
    # =========================================================================

    async def clear_user_cache(self, user_id: str) -> None:
        """Drop one user's matrix (their role or module access changed)."""
        self._user_generations[user_id] = self._user_generations.get(user_id, 0) + 1
        self._inflight.pop(user_id, None)
        await self._cache.delete(self._user_key(user_id))
        logger.info(f"[RBAC] Cleared cache for user {user_id}")

    async def _clear_user_matrices(self) -> int:
        self._global_generation += 1
        self._inflight.clear()
        return await self._cache.delete_pattern(f"{self.USER_KEY_PREFIX}*")

    async def clear_all_caches(self) -> None:
        """Drop every user matrix and every role's permissions."""
        removed = await self._clear_user_matrices()
        await self._role_cache.invalidate_all()
        logger.info(f"[RBAC] Cleared all caches ({removed} user matrices)")

    async def invalidate_role(self, role: str) -> None:
        """A role's permissions were edited; any user holding it may be affected."""
        await self._role_cache.invalidate(role)
        removed = await self._clear_user_matrices()
        logger.info(f"[RBAC] Invalidated role {normalize_role(role)} ({removed} user matrices dropped)")

    async def preload_role(self, role: str) -> bool:
        """Warm the role cache. Returns False if the fetch failed."""
        return await self._role_cache.preload(role)

    async def is_role_loaded(self, role: str) -> bool:
        return await self._role_cache.is_loaded(role)

    async def cache_stats(self) -> dict[str, int]:
        stats = await self._cache.get_stats()
        return {
            "hits": stats.hits,
            "misses": stats.misses,
            "sets": stats.sets,
            "deletes": stats.deletes,
            "evictions": stats.evictions,
        }

    async def shutdown(self) -> None:
        """Wait for pending audit writes and stop the audit worker."""
        await self._audit.flush()
        self._audit.close()
