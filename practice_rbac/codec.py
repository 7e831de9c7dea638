"""
Permission key codec and boundary decoders.

Permission format: "{module}.{action}"
Examples:
- tasks.read
- cases.update
- documents.manage (implies all actions on documents)

Everything a permission source returns passes through this module before the
cache or the engine sees it: rows are validated with pydantic, roles and
module names are normalized, and keys are parsed into ParsedPermission.
Malformed keys are never rejected; they decode to a read-level permission.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel, ValidationError, field_validator

from practice_rbac.base import DbAction, ParsedPermission, RBACAction
from practice_rbac.modules import normalize_module

logger = logging.getLogger("practice_rbac.codec")


# Priority order: admin > partner > manager > advocate > ca > staff > clerk > client > user
ROLE_PRIORITY: tuple[str, ...] = (
    "admin", "partner", "manager", "advocate", "ca", "staff", "clerk", "client", "user",
)

DEFAULT_ROLE = "user"

# Operational employee titles that differ from their RBAC role
EMPLOYEE_TITLE_ROLES: dict[str, str] = {
    "rm": "manager",
    "partner/ca": "partner",
}


def normalize_role(role: str | None) -> str:
    """Trim and lower-case a role; empty input normalizes to ''."""
    if not role:
        return ""
    cleaned = role.strip().lower()
    return EMPLOYEE_TITLE_ROLES.get(cleaned, cleaned)


def effective_role(roles: Iterable[str | None]) -> str:
    """
    Pick the highest-priority role from every source a user's roles come from.

    Unrecognized titles are ignored; if nothing is recognized the user gets the
    default role.
    """
    normalized = {normalize_role(r) for r in roles}
    for role in ROLE_PRIORITY:
        if role in normalized:
            return role
    return DEFAULT_ROLE


# =============================================================================
# BOUNDARY MODELS
# =============================================================================

class RolePermissionRow(BaseModel):
    """A row of the role_permissions table."""
    role: str
    permission_key: str

    @field_validator("role")
    @classmethod
    def _normalize_role(cls, value: str) -> str:
        role = normalize_role(value)
        if not role:
            raise ValueError("role must not be empty")
        return role

    @field_validator("permission_key")
    @classmethod
    def _strip_key(cls, value: str) -> str:
        key = value.strip()
        if not key:
            raise ValueError("permission_key must not be empty")
        return key


class UserRecord(BaseModel):
    """The slice of an employee/profile record the engine needs."""
    user_id: str
    role: str = DEFAULT_ROLE
    module_access: list[str] = []

    @field_validator("role", mode="before")
    @classmethod
    def _normalize_role(cls, value: Any) -> str:
        return normalize_role(value) or DEFAULT_ROLE

    @field_validator("module_access", mode="before")
    @classmethod
    def _normalize_module_access(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        modules: list[str] = []
        for item in value:
            key = normalize_module(str(item)) if item is not None else ""
            if key and key not in modules:
                modules.append(key)
        return modules


def decode_role_rows(rows: Iterable[Mapping[str, Any]]) -> list[RolePermissionRow]:
    """Validate raw role_permissions rows, skipping (and logging) bad ones."""
    decoded: list[RolePermissionRow] = []
    for row in rows:
        try:
            decoded.append(RolePermissionRow.model_validate(row))
        except ValidationError as e:
            logger.warning(f"[RBAC] Skipping malformed role permission row {row!r}: {e.error_count()} error(s)")
    return decoded


# =============================================================================
# CODEC
# =============================================================================

class PermissionKeyCodec:
    """
    Parses "{module}.{action}" keys and maps between action vocabularies.

    The db -> RBAC mapping is lossy (create and update both become write), so
    rbac_to_db() lists every stored action that satisfies an RBAC action.
    """

    DB_TO_RBAC: dict[str, RBACAction] = {
        DbAction.READ.value: RBACAction.READ,
        DbAction.CREATE.value: RBACAction.WRITE,
        DbAction.UPDATE.value: RBACAction.WRITE,
        DbAction.CUSTOMIZE.value: RBACAction.WRITE,
        DbAction.DELETE.value: RBACAction.DELETE,
        DbAction.MANAGE.value: RBACAction.ADMIN,
    }

    RBAC_TO_DB: dict[RBACAction, tuple[DbAction, ...]] = {
        RBACAction.READ: (DbAction.READ,),
        RBACAction.WRITE: (DbAction.CREATE, DbAction.UPDATE, DbAction.CUSTOMIZE),
        RBACAction.DELETE: (DbAction.DELETE,),
        RBACAction.ADMIN: (
            DbAction.MANAGE, DbAction.CREATE, DbAction.UPDATE, DbAction.DELETE, DbAction.READ,
        ),
    }

    # Without manage, admin needs every one of these
    ADMIN_EQUIVALENT: tuple[DbAction, ...] = (
        DbAction.CREATE, DbAction.UPDATE, DbAction.DELETE, DbAction.READ,
    )

    @classmethod
    def map_action(cls, db_action: str | None) -> RBACAction:
        """Map a stored action to its RBAC action; unknown values map to read."""
        if not db_action:
            return RBACAction.READ
        return cls.DB_TO_RBAC.get(db_action.strip().lower(), RBACAction.READ)

    @classmethod
    def rbac_to_db(cls, action: RBACAction | str) -> tuple[DbAction, ...]:
        """Every stored action that satisfies the given RBAC action."""
        return cls.RBAC_TO_DB[RBACAction(action)]

    @classmethod
    def parse(cls, key: str | None) -> ParsedPermission:
        """
        Parse a permission key.

        Splits on the first "."; a key without a separator has an empty module.
        """
        raw = (key or "").strip()
        module, sep, action = raw.partition(".")
        if not sep:
            module, action = "", ""
        action = action.strip().lower()
        return ParsedPermission(
            module=normalize_module(module),
            action=action,
            rbac_action=cls.map_action(action),
        )

    @classmethod
    def parse_rows(cls, rows: Iterable[RolePermissionRow]) -> list[ParsedPermission]:
        """Parse decoded rows, dropping keys that name no module."""
        parsed: list[ParsedPermission] = []
        for row in rows:
            permission = cls.parse(row.permission_key)
            if not permission.module:
                logger.warning(f"[RBAC] Ignoring permission key without module: {row.permission_key!r}")
                continue
            parsed.append(permission)
        return parsed

    @classmethod
    def has_permission(
        cls,
        permissions: Iterable[ParsedPermission],
        module: str,
        action: RBACAction | str,
    ) -> bool:
        """
        Check whether a set of parsed permissions grants an RBAC action on a module.

        - write: any of create / update / customize
        - admin: manage, or all of create / update / delete / read
        - manage on the module satisfies every action
        """
        rbac_action = RBACAction(action)
        target = normalize_module(module)
        held = {p.action for p in permissions if p.module == target}

        if DbAction.MANAGE.value in held:
            return True

        if rbac_action is RBACAction.ADMIN:
            return all(a.value in held for a in cls.ADMIN_EQUIVALENT)

        return any(a.value in held for a in cls.rbac_to_db(rbac_action))
