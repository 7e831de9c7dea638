"""
Tests for PermissionMatrixBuilder.
"""

import itertools

from practice_rbac.base import ModulePermissions
from practice_rbac.codec import PermissionKeyCodec
from practice_rbac.matrix import PermissionMatrixBuilder
from practice_rbac.modules import ALL_MODULE_KEYS


def build(*keys: str):
    return PermissionMatrixBuilder.build(PermissionKeyCodec.parse(k) for k in keys)


class TestPermissionMatrixBuilder:
    """Test suite for PermissionMatrixBuilder."""

    def test_action_to_boolean(self):
        matrix = build("tasks.read", "tasks.create", "cases.update", "cases.delete")

        assert matrix["tasks"] == ModulePermissions(can_view=True, can_create=True)
        assert matrix["cases"] == ModulePermissions(can_edit=True, can_delete=True)

    def test_customize_counts_as_edit(self):
        assert build("compliance.customize")["compliance"].can_edit

    def test_unknown_action_counts_as_view(self):
        assert build("dashboard.archive")["dashboard"] == ModulePermissions(can_view=True)

    def test_manage_sets_everything(self):
        assert build("documents.manage")["documents"] == ModulePermissions.full()

    def test_manage_is_ceiling_in_any_order(self):
        """Test that manage yields all four regardless of where it appears."""
        keys = ["tasks.read", "tasks.manage", "tasks.create", "tasks.delete"]
        for order in itertools.permutations(keys):
            assert build(*order)["tasks"] == ModulePermissions.full()

    def test_manage_only_affects_its_module(self):
        matrix = build("tasks.manage", "cases.read")
        assert matrix["cases"] == ModulePermissions(can_view=True)

    def test_entries_start_all_false(self):
        assert build("reports.delete")["reports"] == ModulePermissions(can_delete=True)

    def test_empty_module_skipped(self):
        assert build("tasks", ".read") == {}

    def test_build_unrestricted(self):
        matrix = PermissionMatrixBuilder.build_unrestricted()
        assert set(matrix) == set(ALL_MODULE_KEYS)
        assert all(perms == ModulePermissions.full() for perms in matrix.values())
