"""
Core types for the permission engine.

Two vocabularies meet here:
- Stored permission rows use database actions: read, create, update, delete,
  manage (and customize for a few configurable modules).
- Callers ask role-level questions in RBAC actions (read, write, delete, admin)
  and UI-level questions in action types (read, create, edit, delete).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

UNKNOWN_ROLE = "unknown"


class DbAction(str, Enum):
    """Actions as stored in role_permissions.permission_key."""
    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    MANAGE = "manage"  # Full control (implies all others)
    CUSTOMIZE = "customize"


class RBACAction(str, Enum):
    """Role-level actions."""
    READ = "read"
    WRITE = "write"
    DELETE = "delete"
    ADMIN = "admin"


class ActionType(str, Enum):
    """Actions a UI affordance can be gated on."""
    READ = "read"
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"

    @property
    def label(self) -> str:
        """Verb used in user-facing text."""
        return "view" if self is ActionType.READ else self.value


@dataclass(frozen=True)
class ParsedPermission:
    """
    A decoded permission key.

    Format: "{module}.{action}" e.g., "tasks.create", "cases.manage"
    """
    module: str
    action: str  # Raw db action, lower-cased (may be unrecognized)
    rbac_action: RBACAction

    @property
    def key(self) -> str:
        return f"{self.module}.{self.action}"

    def __str__(self) -> str:
        return self.key


@dataclass
class ModulePermissions:
    """What a role may do inside one module."""
    can_view: bool = False
    can_create: bool = False
    can_edit: bool = False
    can_delete: bool = False

    @classmethod
    def full(cls) -> "ModulePermissions":
        return cls(can_view=True, can_create=True, can_edit=True, can_delete=True)

    def allows(self, action: ActionType) -> bool:
        if action is ActionType.READ:
            return self.can_view
        if action is ActionType.CREATE:
            return self.can_create
        if action is ActionType.EDIT:
            return self.can_edit
        if action is ActionType.DELETE:
            return self.can_delete
        return False

    def to_dict(self) -> dict[str, bool]:
        return {
            "canView": self.can_view,
            "canCreate": self.can_create,
            "canEdit": self.can_edit,
            "canDelete": self.can_delete,
        }


@dataclass
class UserPermissionMatrix:
    """
    Per-user snapshot combining module visibility with role permissions.

    module_access holds canonical module keys; an empty list means the user's
    record places no visibility restriction.
    """
    role: str
    modules: dict[str, ModulePermissions] = field(default_factory=dict)
    module_access: list[str] = field(default_factory=list)
    is_unrestricted: bool = False

    @classmethod
    def empty(cls) -> "UserPermissionMatrix":
        """Fail-closed matrix returned when the user cannot be resolved."""
        return cls(role=UNKNOWN_ROLE, modules={}, module_access=[], is_unrestricted=False)

    @property
    def is_unknown(self) -> bool:
        return self.role == UNKNOWN_ROLE

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary (for JSON serialization and caching)."""
        return {
            "role": self.role,
            "modules": {key: perms.to_dict() for key, perms in self.modules.items()},
            "moduleAccess": list(self.module_access),
            "isUnrestricted": self.is_unrestricted,
        }


@dataclass(frozen=True)
class PermissionStatus:
    """An allow/deny decision with user-facing text."""
    allowed: bool
    reason: str
    tooltip: str

    def to_dict(self) -> dict[str, Any]:
        return {"allowed": self.allowed, "reason": self.reason, "tooltip": self.tooltip}


@dataclass(frozen=True)
class ModuleAccessSummary:
    """One row of a user's "My Permissions" view."""
    module: str
    display_name: str
    visible: bool
    can_view: bool
    can_create: bool
    can_edit: bool
    can_delete: bool
