"""
Abstract base class for permission sources.

A source is the engine's only view of the backing store. Both operations are
expected to fail (network, auth, missing rows); implementations raise
PermissionSourceError or UserNotFoundError and leave fallback behaviour to
the caller.
"""

from abc import ABC, abstractmethod

from practice_rbac.codec import RolePermissionRow, UserRecord


class PermissionSource(ABC):
    """Backing store for role permissions and user records."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Source name (e.g., 'supabase', 'static')."""
        pass

    @abstractmethod
    async def fetch_role_permissions(self, role: str) -> list[RolePermissionRow]:
        """
        Load every permission row assigned to a role.

        Args:
            role: Normalized role name

        Returns:
            Decoded rows (possibly empty)

        Raises:
            PermissionSourceError: If the store cannot be queried
        """
        pass

    @abstractmethod
    async def fetch_user_record(self, user_id: str) -> UserRecord:
        """
        Load a user's effective role and module access list.

        Raises:
            UserNotFoundError: If no record or role assignment exists
            PermissionSourceError: If the store cannot be queried
        """
        pass
