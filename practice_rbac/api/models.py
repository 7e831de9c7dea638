"""
Request and response models for the permissions API.
"""

from pydantic import BaseModel, Field

from practice_rbac.base import (
    ModuleAccessSummary,
    ModulePermissions,
    PermissionStatus,
    UserPermissionMatrix,
)


class ModulePermissionsResponse(BaseModel):
    can_view: bool = False
    can_create: bool = False
    can_edit: bool = False
    can_delete: bool = False

    @classmethod
    def from_permissions(cls, permissions: ModulePermissions) -> "ModulePermissionsResponse":
        return cls(
            can_view=permissions.can_view,
            can_create=permissions.can_create,
            can_edit=permissions.can_edit,
            can_delete=permissions.can_delete,
        )


class PermissionMatrixResponse(BaseModel):
    """A user's full permission matrix."""
    user_id: str
    role: str
    modules: dict[str, ModulePermissionsResponse] = Field(default_factory=dict)
    module_access: list[str] = Field(default_factory=list)
    is_unrestricted: bool = False

    @classmethod
    def from_matrix(cls, user_id: str, matrix: UserPermissionMatrix) -> "PermissionMatrixResponse":
        return cls(
            user_id=user_id,
            role=matrix.role,
            modules={
                key: ModulePermissionsResponse.from_permissions(perms)
                for key, perms in matrix.modules.items()
            },
            module_access=list(matrix.module_access),
            is_unrestricted=matrix.is_unrestricted,
        )


class ModuleAccessResponse(BaseModel):
    user_id: str
    module: str
    visible: bool


class PermissionStatusResponse(BaseModel):
    """Decision for one (module, action) with user-facing text."""
    user_id: str
    module: str
    action: str
    allowed: bool
    reason: str
    tooltip: str

    @classmethod
    def from_status(
        cls,
        user_id: str,
        module: str,
        action: str,
        status: PermissionStatus,
    ) -> "PermissionStatusResponse":
        return cls(
            user_id=user_id,
            module=module,
            action=action,
            allowed=status.allowed,
            reason=status.reason,
            tooltip=status.tooltip,
        )


class ModuleSummaryRow(BaseModel):
    module: str
    display_name: str
    visible: bool
    can_view: bool
    can_create: bool
    can_edit: bool
    can_delete: bool

    @classmethod
    def from_summary(cls, summary: ModuleAccessSummary) -> "ModuleSummaryRow":
        return cls(
            module=summary.module,
            display_name=summary.display_name,
            visible=summary.visible,
            can_view=summary.can_view,
            can_create=summary.can_create,
            can_edit=summary.can_edit,
            can_delete=summary.can_delete,
        )


class PermissionSummaryResponse(BaseModel):
    user_id: str
    role: str
    is_unrestricted: bool
    modules: list[ModuleSummaryRow]


class InvalidateRequest(BaseModel):
    """Both fields empty clears every cache."""
    user_id: str | None = None
    role: str | None = None


class InvalidateResponse(BaseModel):
    success: bool = True
    cleared: list[str] = Field(default_factory=list)
