"""
Static configuration-based permission source.

Keeps role permissions and user records in memory. Useful for development
and testing without a Supabase project; can be seeded from a YAML file:

    roles:
      staff:
        - tasks.read
        - tasks.create
    users:
      staff-user:
        role: Staff
        module_access: [Tasks, Cases]
      rm-user:
        role: RM
        roles: [admin]     # extra active RBAC assignments
"""

import asyncio
import logging
from collections import Counter
from pathlib import Path
from typing import Any

import yaml

from practice_rbac.codec import RolePermissionRow, UserRecord, decode_role_rows, effective_role, normalize_role
from practice_rbac.exceptions import UserNotFoundError
from practice_rbac.providers.base import PermissionSource

logger = logging.getLogger("practice_rbac.providers.static")


class StaticPermissionSource(PermissionSource):
    """
    In-memory permission source.

    Usage:
        source = StaticPermissionSource()
        source.set_role_permissions("staff", ["tasks.read", "tasks.create"])
        source.set_user("u-1", role="staff", module_access=["tasks"])
    """

    def __init__(
        self,
        role_permissions: dict[str, list[str]] | None = None,
        users: dict[str, dict[str, Any]] | None = None,
        latency: float = 0.0,
    ):
        self._role_permissions: dict[str, list[str]] = {}
        self._users: dict[str, dict[str, Any]] = {}
        self._latency = latency
        self.fetch_counts: Counter[str] = Counter()

        for role, keys in (role_permissions or {}).items():
            self.set_role_permissions(role, keys)
        for user_id, record in (users or {}).items():
            self.set_user(
                user_id,
                role=record.get("role"),
                module_access=record.get("module_access"),
                roles=record.get("roles"),
            )

        logger.info(
            f"[RBAC:STATIC] Source initialized with {len(self._role_permissions)} roles, "
            f"{len(self._users)} users"
        )

    @classmethod
    def from_yaml(cls, path: str | Path, latency: float = 0.0) -> "StaticPermissionSource":
        """Load roles and users from a YAML file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Static permissions file not found at {path}")

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        return cls(
            role_permissions=data.get("roles") or {},
            users=data.get("users") or {},
            latency=latency,
        )

    @property
    def name(self) -> str:
        return "static"

    # =========================================================================
    # MUTATORS
    # =========================================================================

    def set_role_permissions(self, role: str, permission_keys: list[str]) -> None:
        """Replace every permission assigned to a role."""
        self._role_permissions[normalize_role(role)] = list(permission_keys or [])

    def grant(self, role: str, permission_key: str) -> None:
        keys = self._role_permissions.setdefault(normalize_role(role), [])
        if permission_key not in keys:
            keys.append(permission_key)

    def revoke(self, role: str, permission_key: str) -> None:
        keys = self._role_permissions.get(normalize_role(role), [])
        if permission_key in keys:
            keys.remove(permission_key)

    def set_user(
        self,
        user_id: str,
        role: str | None = None,
        module_access: list[str] | str | None = None,
        roles: list[str] | None = None,
    ) -> None:
        """Create or replace a user record."""
        self._users[user_id] = {
            "role": role,
            "module_access": module_access,
            "roles": list(roles or []),
        }

    def remove_user(self, user_id: str) -> None:
        self._users.pop(user_id, None)

    # =========================================================================
    # PermissionSource
    # =========================================================================

    async def fetch_role_permissions(self, role: str) -> list[RolePermissionRow]:
        self.fetch_counts[f"role:{role}"] += 1
        await asyncio.sleep(self._latency)

        keys = self._role_permissions.get(normalize_role(role), [])
        return decode_role_rows({"role": role, "permission_key": key} for key in keys)

    async def fetch_user_record(self, user_id: str) -> UserRecord:
        self.fetch_counts[f"user:{user_id}"] += 1
        await asyncio.sleep(self._latency)

        record = self._users.get(user_id)
        if record is None:
            raise UserNotFoundError(user_id)

        return UserRecord(
            user_id=user_id,
            role=effective_role([record.get("role"), *record.get("roles", [])]),
            module_access=record.get("module_access"),
        )
