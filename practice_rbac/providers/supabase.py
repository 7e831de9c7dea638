"""
Supabase permission source.

Tables read:
- role_permissions (role, permission_key)
- employees (id, role, module_access)
- user_roles (user_id, role, is_active)

A user's effective role is the highest-priority role across the employee
record and all active user_roles rows, so an RBAC assignment such as 'admin'
outranks an operational title such as 'RM'.

The supabase-py client is synchronous; every query runs in a worker thread so
the event loop keeps serving other permission checks while it waits.
"""

import asyncio
import logging
from typing import Any

from supabase import Client

from practice_rbac.codec import RolePermissionRow, UserRecord, decode_role_rows, effective_role
from practice_rbac.exceptions import PermissionSourceError, UserNotFoundError
from practice_rbac.providers.base import PermissionSource

logger = logging.getLogger("practice_rbac.providers.supabase")


class SupabasePermissionSource(PermissionSource):
    """Reads role permissions and employee records from Supabase."""

    def __init__(
        self,
        client: Client | None,
        role_permissions_table: str = "role_permissions",
        employees_table: str = "employees",
        user_roles_table: str = "user_roles",
    ):
        self._client = client
        self._role_permissions_table = role_permissions_table
        self._employees_table = employees_table
        self._user_roles_table = user_roles_table

    @property
    def name(self) -> str:
        return "supabase"

    def _require_client(self) -> Client:
        if self._client is None:
            raise PermissionSourceError("Supabase client not configured")
        return self._client

    # =========================================================================
    # QUERIES (run in worker threads)
    # =========================================================================

    def _select_role_permissions(self, role: str) -> list[dict[str, Any]]:
        response = (
            self._require_client()
            .table(self._role_permissions_table)
            .select("role, permission_key")
            .eq("role", role)
            .execute()
        )
        return response.data or []

    def _select_employee(self, user_id: str) -> dict[str, Any] | None:
        response = (
            self._require_client()
            .table(self._employees_table)
            .select("id, role, module_access")
            .eq("id", user_id)
            .limit(1)
            .execute()
        )
        rows = response.data or []
        return rows[0] if rows else None

    def _select_active_roles(self, user_id: str) -> list[str]:
        response = (
            self._require_client()
            .table(self._user_roles_table)
            .select("role")
            .eq("user_id", user_id)
            .eq("is_active", True)
            .execute()
        )
        return [row.get("role") for row in (response.data or []) if row.get("role")]

    # =========================================================================
    # PermissionSource
    # =========================================================================

    async def fetch_role_permissions(self, role: str) -> list[RolePermissionRow]:
        try:
            rows = await asyncio.to_thread(self._select_role_permissions, role)
        except PermissionSourceError:
            raise
        except Exception as e:
            raise PermissionSourceError(f"Failed to load permissions for role {role}: {e}") from e

        decoded = decode_role_rows(rows)
        logger.debug(f"[RBAC] Loaded {len(decoded)} permission rows for role {role}")
        return decoded

    async def fetch_user_record(self, user_id: str) -> UserRecord:
        try:
            employee, rbac_roles = await asyncio.gather(
                asyncio.to_thread(self._select_employee, user_id),
                asyncio.to_thread(self._select_active_roles, user_id),
            )
        except PermissionSourceError:
            raise
        except Exception as e:
            raise PermissionSourceError(f"Failed to load user {user_id}: {e}") from e

        all_roles: list[str] = []
        if employee and employee.get("role"):
            all_roles.append(employee["role"])
        all_roles.extend(rbac_roles)

        if employee is None and not rbac_roles:
            raise UserNotFoundError(user_id)

        role = effective_role(all_roles)
        logger.debug(
            f"[RBAC] User {user_id} effective role: {role} "
            f"(from: {', '.join(all_roles) or 'none'})"
        )

        return UserRecord(
            user_id=user_id,
            role=role,
            module_access=(employee or {}).get("module_access"),
        )
