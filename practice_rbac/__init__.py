"""
Permission resolution for the practice management app.

Combines per-employee module visibility with role-based action permissions
into one decision per (user, module, action).

Usage:
    from practice_rbac import PermissionEngine

    engine = PermissionEngine.from_settings()
    await engine.can_perform_action(user_id, "tasks", "edit")
"""

from practice_rbac.audit import AuditEntry, AuditSink, MemoryAuditStore
from practice_rbac.base import (
    ActionType,
    ModuleAccessSummary,
    ModulePermissions,
    ParsedPermission,
    PermissionStatus,
    RBACAction,
    UserPermissionMatrix,
)
from practice_rbac.codec import PermissionKeyCodec
from practice_rbac.engine import PermissionEngine
from practice_rbac.matrix import PermissionMatrixBuilder
from practice_rbac.role_cache import RolePermissionCache
from practice_rbac.routing import RouteModuleMap
from practice_rbac.visibility import ModuleVisibilityResolver

__version__ = "0.1.0"

__all__ = [
    "ActionType",
    "AuditEntry",
    "AuditSink",
    "MemoryAuditStore",
    "ModuleAccessSummary",
    "ModulePermissions",
    "ModuleVisibilityResolver",
    "ParsedPermission",
    "PermissionEngine",
    "PermissionKeyCodec",
    "PermissionMatrixBuilder",
    "PermissionStatus",
    "RBACAction",
    "RolePermissionCache",
    "RouteModuleMap",
    "UserPermissionMatrix",
]
