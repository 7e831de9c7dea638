"""
Builds a module -> ModulePermissions matrix from parsed permissions.

Action mapping:
- read              -> can_view
- create            -> can_create
- update, customize -> can_edit
- delete            -> can_delete
- manage            -> all four
- anything else     -> can_view (unrecognized actions decode to read)
"""

from collections.abc import Iterable

from practice_rbac.base import DbAction, ModulePermissions, ParsedPermission, RBACAction
from practice_rbac.modules import ALL_MODULE_KEYS


class PermissionMatrixBuilder:
    """Collapses a role's parsed permissions into per-module booleans."""

    @staticmethod
    def build(permissions: Iterable[ParsedPermission]) -> dict[str, ModulePermissions]:
        modules: dict[str, ModulePermissions] = {}
        managed: set[str] = set()

        for permission in permissions:
            if not permission.module:
                continue

            entry = modules.setdefault(permission.module, ModulePermissions())
            action = permission.action

            if action == DbAction.MANAGE.value:
                managed.add(permission.module)
            elif action == DbAction.CREATE.value:
                entry.can_create = True
            elif action in (DbAction.UPDATE.value, DbAction.CUSTOMIZE.value):
                entry.can_edit = True
            elif action == DbAction.DELETE.value:
                entry.can_delete = True
            elif permission.rbac_action is RBACAction.READ:
                entry.can_view = True

        # manage is the ceiling no matter where it appeared in the input
        for module in managed:
            modules[module] = ModulePermissions.full()

        return modules

    @staticmethod
    def build_unrestricted() -> dict[str, ModulePermissions]:
        """Every known module with all four permissions."""
        return {key: ModulePermissions.full() for key in ALL_MODULE_KEYS}
