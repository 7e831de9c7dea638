"""
Tests for PermissionEngine.

Covers the module-override invariant, the unrestricted short-circuit,
fail-closed lookups, cache stability and invalidation.
"""

import asyncio
import itertools

import pytest

from practice_rbac.audit import AuditSink, MemoryAuditStore
from practice_rbac.base import ActionType, ModulePermissions, RBACAction, UserPermissionMatrix
from practice_rbac.cache import MemoryCacheBackend
from practice_rbac.config import Settings
from practice_rbac.engine import PermissionEngine
from practice_rbac.modules import ALL_MODULE_KEYS
from practice_rbac.providers import StaticPermissionSource

ACTIONS = ["read", "create", "edit", "delete"]
USERS = [
    "staff-user", "manager-user", "advocate-user", "admin-user",
    "partner-user", "clerk-user", "ca-user", "missing-user",
]


class TestScenarios:
    """Test suite for the documented staff and manager scenarios."""

    async def test_staff_tasks(self, engine):
        """Test that tasks.read + tasks.create allows create but not edit."""
        assert await engine.can_perform_action("staff-user", "tasks", "edit") is False
        assert await engine.can_perform_action("staff-user", "tasks", "create") is True
        assert await engine.can_perform_action("staff-user", "tasks", "read") is True
        assert await engine.can_perform_action("staff-user", "tasks", "delete") is False

    async def test_manager_client_groups_hidden(self, engine):
        """Test that access to clients does not leak into client_groups."""
        assert await engine.can_access_module("manager-user", "client_groups") is False
        assert await engine.can_access_module("manager-user", "Client Groups") is False
        for action in ACTIONS:
            assert await engine.can_perform_action("manager-user", "client_groups", action) is False

        assert await engine.can_access_module("manager-user", "clients") is True
        assert await engine.can_perform_action("manager-user", "clients", "edit") is True

    async def test_manager_role_from_employee_title(self, engine):
        matrix = await engine.get_user_permission_matrix("manager-user")
        assert matrix.role == "manager"
        assert matrix.module_access == ["clients"]


class TestModuleOverride:
    """Test suite for the module visibility hard gate."""

    async def test_hidden_module_denies_despite_permissions(self, engine):
        """Test that manager has tasks.manage, but tasks is hidden, so nothing is allowed."""
        matrix = await engine.get_user_permission_matrix("manager-user")
        assert matrix.modules["tasks"] == ModulePermissions.full()

        assert await engine.can_access_module("manager-user", "tasks") is False
        for action in ACTIONS:
            assert await engine.can_perform_action("manager-user", "tasks", action) is False

    async def test_invariant_over_all_users_modules_actions(self, engine):
        """Test that no visible=False module ever allows an action."""
        modules = list(ALL_MODULE_KEYS) + ["Case Management", "DMS", "payroll"]
        for user_id, module in itertools.product(USERS, modules):
            if await engine.can_access_module(user_id, module):
                continue
            for action in ACTIONS:
                assert await engine.can_perform_action(user_id, module, action) is False

    async def test_legacy_display_names_in_module_access(self, engine):
        assert await engine.can_access_module("advocate-user", "cases")
        assert await engine.can_access_module("advocate-user", "documents")
        assert not await engine.can_access_module("advocate-user", "tasks")
        assert await engine.can_perform_action("advocate-user", "documents", "delete")

    async def test_comma_separated_module_access(self, engine):
        assert await engine.can_access_module("ca-user", "compliance")
        assert await engine.can_perform_action("ca-user", "compliance", "edit")
        assert not await engine.can_perform_action("ca-user", "compliance", "create")
        assert not await engine.can_access_module("ca-user", "billing")


class TestUnrestricted:
    """Test suite for the unrestricted-role short-circuit."""

    @pytest.mark.parametrize("user_id", ["admin-user", "partner-user"])
    async def test_everything_allowed(self, engine, user_id):
        """Test that unrestricted roles pass every check regardless of module_access."""
        for module in list(ALL_MODULE_KEYS) + ["payroll"]:
            assert await engine.can_access_module(user_id, module)
            for action in ACTIONS:
                assert await engine.can_perform_action(user_id, module, action)

    async def test_admin_from_rbac_assignment_outranks_title(self, engine):
        matrix = await engine.get_user_permission_matrix("admin-user")
        assert matrix.role == "admin"
        assert matrix.is_unrestricted
        assert matrix.module_access == []

    async def test_unrestricted_matrix_skips_role_permissions(self, engine, source):
        await engine.get_user_permission_matrix("partner-user")
        assert source.fetch_counts["role:partner"] == 0

    async def test_status_text(self, engine):
        status = await engine.get_permission_status("admin-user", "billing", "delete")
        assert status.allowed
        assert status.reason == "Allowed"
        assert status.tooltip == "You have permission for this action."

    async def test_configured_unrestricted_roles(self, source, cache):
        engine = PermissionEngine(source, cache=cache, unrestricted_roles={"Advocate"})
        assert await engine.can_perform_action("advocate-user", "billing", "delete")
        assert not await engine.can_perform_action("partner-user", "billing", "delete")


class TestEmptyModuleAccess:
    """Test suite for default-allow visibility."""

    async def test_visible_but_actions_still_checked(self, engine):
        """Test that an empty list shows every module without granting actions."""
        assert await engine.can_access_module("staff-user", "billing")
        assert not await engine.can_perform_action("staff-user", "billing", "read")

    async def test_missing_module_record_field(self, engine):
        matrix = await engine.get_user_permission_matrix("clerk-user")
        assert matrix.module_access == []
        assert await engine.can_access_module("clerk-user", "employees")
        assert await engine.can_perform_action("clerk-user", "dashboard", "read")
        assert not await engine.can_perform_action("clerk-user", "tasks", "read")


class TestPermissionStatus:
    """Test suite for reasons and tooltips."""

    async def test_module_denied(self, engine):
        status = await engine.get_permission_status("manager-user", "tasks", "create")
        assert status.allowed is False
        assert status.reason == "Module access denied"
        assert status.tooltip == "You do not have access to this module. Contact Admin to enable."

    async def test_action_denied(self, engine):
        status = await engine.get_permission_status("staff-user", "tasks", "edit")
        assert status.allowed is False
        assert status.reason == "No edit permission"
        assert status.tooltip == "You don't have permission to edit. Contact Admin to enable."

    async def test_read_uses_view_label(self, engine):
        denied = await engine.get_permission_status("staff-user", "billing", ActionType.READ)
        assert denied.reason == "No read permission"
        assert denied.tooltip == "You don't have permission to view. Contact Admin to enable."

        allowed = await engine.get_permission_status("staff-user", "tasks", "read")
        assert allowed.allowed
        assert allowed.tooltip == "You can view items."

    async def test_enum_and_string_actions_agree(self, engine):
        for action in ("create", " Create ", ActionType.CREATE):
            status = await engine.get_permission_status("staff-user", "tasks", action)
            assert status.allowed, action

    async def test_allowed(self, engine):
        status = await engine.get_permission_status("staff-user", "tasks", "create")
        assert status.allowed
        assert status.reason == "Allowed"
        assert status.tooltip == "You can create items."

    async def test_unknown_action_denied(self, engine):
        status = await engine.get_permission_status("staff-user", "tasks", "approve")
        assert status.allowed is False
        assert await engine.can_perform_action("staff-user", "tasks", "approve") is False

    async def test_status_is_not_audited(self, engine, audit_store):
        await engine.get_permission_status("staff-user", "tasks", "edit")
        await engine.audit.flush()
        assert audit_store.entries == []


class TestFailClosed:
    """Test suite for lookup failures."""

    async def test_missing_user(self, engine):
        matrix = await engine.get_user_permission_matrix("missing-user")
        assert matrix == UserPermissionMatrix.empty()
        assert matrix.role == "unknown"
        assert matrix.is_unrestricted is False
        assert matrix.modules == {}
        assert matrix.module_access == []

    async def test_missing_user_visibility_follows_empty_access(self, cache):
        """Test that an unknown user sees modules but can do nothing in them."""
        engine = PermissionEngine(StaticPermissionSource(), cache=cache)

        assert await engine.can_access_module("ghost", "tasks") is True
        for action in ACTIONS:
            assert await engine.can_perform_action("ghost", "tasks", action) is False

    async def test_profile_lookup_error(self, flaky_engine, flaky_source):
        """Test that a failed profile lookup denies every action."""
        flaky_source.fail_users = True

        matrix = await flaky_engine.get_user_permission_matrix("staff-user")
        assert matrix.is_unrestricted is False
        assert matrix.module_access == []
        assert matrix.modules == {}

        # Empty module_access keeps every module visible; the empty matrix denies the actions
        for module in ALL_MODULE_KEYS:
            assert await flaky_engine.can_access_module("staff-user", module) is True
            for action in ACTIONS:
                assert await flaky_engine.can_perform_action("staff-user", module, action) is False

        status = await flaky_engine.get_permission_status("staff-user", "tasks", "read")
        assert status.allowed is False
        assert status.reason == "No read permission"

    async def test_failure_not_cached(self, flaky_engine, flaky_source):
        flaky_source.fail_users = True
        assert not await flaky_engine.can_perform_action("staff-user", "tasks", "read")

        flaky_source.fail_users = False
        assert await flaky_engine.can_perform_action("staff-user", "tasks", "read")

    async def test_role_fetch_failure(self, flaky_engine, flaky_source):
        """Test that an unavailable role yields no permissions and is retried."""
        flaky_source.fail_roles = True
        matrix = await flaky_engine.get_user_permission_matrix("staff-user")
        assert matrix.role == "staff"
        assert matrix.modules == {}
        assert not await flaky_engine.can_perform_action("staff-user", "tasks", "read")

        flaky_source.fail_roles = False
        assert await flaky_engine.can_perform_action("staff-user", "tasks", "read")

    async def test_unexpected_source_exception(self, cache):
        class BrokenSource(StaticPermissionSource):
            async def fetch_user_record(self, user_id):
                raise RuntimeError("connection reset")

        engine = PermissionEngine(BrokenSource(), cache=cache)
        assert await engine.get_user_permission_matrix("u1") == UserPermissionMatrix.empty()
        assert await engine.can_access_module("u1", "tasks") is True
        assert await engine.can_perform_action("u1", "tasks", "read") is False

    async def test_empty_user_id(self, engine):
        assert (await engine.get_user_permission_matrix("")).is_unknown


class TestCaching:
    """Test suite for matrix caching and invalidation."""

    async def test_stable_within_ttl(self, engine, source, clock):
        first = await engine.get_user_permission_matrix("staff-user")
        clock.advance(299)
        second = await engine.get_user_permission_matrix("staff-user")

        assert first == second
        assert first.to_dict() == second.to_dict()
        assert source.fetch_counts["user:staff-user"] == 1

    async def test_returned_matrix_is_a_copy(self, engine):
        first = await engine.get_user_permission_matrix("staff-user")
        first.modules["tasks"].can_delete = True
        second = await engine.get_user_permission_matrix("staff-user")
        assert second.modules["tasks"].can_delete is False

    async def test_ttl_expiry_refetches(self, engine, source, clock):
        await engine.get_user_permission_matrix("staff-user")
        clock.advance(300)
        await engine.get_user_permission_matrix("staff-user")
        assert source.fetch_counts["user:staff-user"] == 2

    async def test_clear_user_cache(self, engine, source):
        """Test that clearing a user re-fetches their record on the next call."""
        await engine.get_user_permission_matrix("staff-user")
        source.set_user("staff-user", role="staff", module_access=["cases"])

        assert await engine.can_access_module("staff-user", "tasks")
        await engine.clear_user_cache("staff-user")
        assert not await engine.can_access_module("staff-user", "tasks")
        assert source.fetch_counts["user:staff-user"] == 2

    async def test_clear_all_caches(self, engine, source):
        await engine.get_user_permission_matrix("staff-user")
        source.grant("staff", "tasks.update")

        assert not await engine.can_perform_action("staff-user", "tasks", "edit")
        await engine.clear_all_caches()
        assert await engine.can_perform_action("staff-user", "tasks", "edit")

    async def test_invalidate_role(self, engine, source):
        """Test that a role edit reaches every user holding the role."""
        await engine.get_user_permission_matrix("staff-user")
        assert await engine.is_role_loaded("staff")

        source.revoke("staff", "tasks.create")
        await engine.invalidate_role("staff")

        assert not await engine.is_role_loaded("staff")
        assert not await engine.can_perform_action("staff-user", "tasks", "create")

    async def test_preload_role(self, engine, source):
        assert await engine.preload_role("advocate")
        await engine.get_user_permission_matrix("advocate-user")
        assert source.fetch_counts["role:advocate"] == 1

    async def test_concurrent_builds_coalesce(self, cache, audit_sink):
        """Test that twenty concurrent checks for one user share one lookup."""
        source = StaticPermissionSource(
            role_permissions={"staff": ["tasks.read"]},
            users={"u1": {"role": "staff"}},
            latency=0.01,
        )
        engine = PermissionEngine(source, cache=cache, audit=audit_sink)

        results = await asyncio.gather(
            *(engine.can_perform_action("u1", "tasks", "read") for _ in range(20))
        )

        assert all(results)
        assert source.fetch_counts["user:u1"] == 1
        assert source.fetch_counts["role:staff"] == 1

    async def test_clear_during_build_is_not_cached(self, cache):
        source = StaticPermissionSource(
            role_permissions={"staff": ["tasks.read"]},
            users={"u1": {"role": "staff"}},
            latency=0.01,
        )
        engine = PermissionEngine(source, cache=cache)

        pending = asyncio.create_task(engine.get_user_permission_matrix("u1"))
        await asyncio.sleep(0)
        await engine.clear_user_cache("u1")
        await pending

        await engine.get_user_permission_matrix("u1")
        assert source.fetch_counts["user:u1"] == 2


class TestHasPermission:
    """Test suite for role-level RBAC checks."""

    async def test_write_and_admin(self, engine):
        assert await engine.has_permission("staff", "tasks", "write")
        assert not await engine.has_permission("staff", "tasks", "delete")
        assert not await engine.has_permission("staff", "tasks", "admin")
        assert await engine.has_permission("manager", "tasks", "admin")
        assert await engine.has_permission("manager", "tasks", RBACAction.ADMIN)
        # Full create/update/delete/read set without manage
        assert await engine.has_permission("ca", "reports", "admin")
        assert await engine.has_permission("ca", "compliance", "write")
        assert not await engine.has_permission("ca", "compliance", "admin")

    async def test_unrestricted_role(self, engine):
        assert await engine.has_permission("Partner", "billing", "admin")

    async def test_unknown_action(self, engine):
        assert await engine.has_permission("staff", "tasks", "approve") is False


class TestAuditing:
    """Test suite for audit hooks."""

    async def test_denial_audited(self, engine, audit_store):
        await engine.can_perform_action("staff-user", "Task Mgmt", "edit")
        await engine.audit.flush()

        assert len(audit_store.entries) == 1
        entry = audit_store.entries[0]
        assert entry.user_id == "staff-user"
        assert entry.module == "tasks"
        assert entry.action == "edit"
        assert entry.reason == "No edit permission"
        assert entry.allowed is False

    async def test_grants_not_audited_by_default(self, engine, audit_store):
        await engine.can_perform_action("staff-user", "tasks", "read")
        await engine.audit.flush()
        assert audit_store.entries == []

    async def test_grants_audited_when_enabled(self, source, cache):
        store = MemoryAuditStore()
        engine = PermissionEngine(source, cache=cache, audit=AuditSink(store, log_grants=True))

        await engine.can_perform_action("staff-user", "tasks", "read")
        await engine.audit.flush()

        assert [e.allowed for e in store.entries] == [True]

    async def test_log_permission_denial(self, engine, audit_store):
        engine.log_permission_denial("staff-user", "DMS", "delete")
        await engine.audit.flush()

        entry = audit_store.entries[0]
        assert entry.module == "documents"
        assert entry.reason == "No delete permission"


class TestSummary:
    """Test suite for the My Permissions summary."""

    async def test_rows(self, engine):
        rows = {row.module: row for row in await engine.summarize("manager-user")}

        assert set(ALL_MODULE_KEYS) <= set(rows)
        assert rows["clients"].visible
        assert rows["clients"].can_edit
        assert rows["clients"].display_name == "Clients"

        # Hidden modules report no permissions even when the role has them
        assert not rows["tasks"].visible
        assert not rows["tasks"].can_view

    async def test_unknown_user(self, engine):
        rows = await engine.summarize("missing-user")
        assert all(row.visible for row in rows)
        assert not any(row.can_view or row.can_create or row.can_edit or row.can_delete for row in rows)


class TestFromSettings:
    """Test suite for the settings factory."""

    def test_static_source_from_file(self, tmp_path, clock):
        path = tmp_path / "perms.yaml"
        path.write_text("roles:\n  staff: [tasks.read]\nusers:\n  u1: {role: staff}\n")

        settings = Settings(
            _env_file=None,
            PERMISSION_SOURCE="static",
            STATIC_PERMISSIONS_FILE=str(path),
            AUDIT_BACKEND="memory",
            RBAC_CACHE_TTL_SECONDS=60,
            UNRESTRICTED_ROLES="admin, Partner",
        )
        engine = PermissionEngine.from_settings(settings, clock=clock)

        assert engine.source.name == "static"
        assert engine.audit.store.name == "memory"
        assert engine.is_unrestricted_role("partner")

    async def test_engines_do_not_share_state(self, source):
        first = PermissionEngine(source, cache=MemoryCacheBackend())
        second = PermissionEngine(source, cache=MemoryCacheBackend())

        await first.get_user_permission_matrix("staff-user")
        assert not await second.is_role_loaded("staff")
