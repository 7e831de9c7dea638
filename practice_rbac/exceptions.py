"""
Internal exception types.

These never escape the public PermissionEngine operations: sources raise them,
the role cache and the engine catch them and fall back to a deny-everything
result.
"""


class PermissionEngineError(Exception):
    """Base class for permission engine errors."""
    pass


class PermissionSourceError(PermissionEngineError):
    """The backing store could not be reached or returned an error."""
    pass


class UserNotFoundError(PermissionEngineError):
    """No employee/profile/role record exists for the user."""

    def __init__(self, user_id: str):
        super().__init__(f"No role or profile record for user {user_id}")
        self.user_id = user_id


class AuditWriteError(PermissionEngineError):
    """An audit entry could not be persisted."""
    pass
