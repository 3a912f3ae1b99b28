"""
Tests for the role-based authorization matrix.

Table-driven checks of the role → module → actions table, the
monotonic role hierarchy, and fail-closed behavior for anything
unknown.
"""

from __future__ import annotations

import itertools

import pytest

from inflow.tenancy.models import Role
from inflow.tenancy.permissions import (
    AuthorizationMatrix,
    Module,
    ROLE_PERMISSIONS,
    can_access,
    has_permission,
    list_actions,
)

ALL_ACTIONS = sorted({
    action
    for table in ROLE_PERMISSIONS.values()
    for actions in table.values()
    for action in actions
})

HIERARCHY = [(Role.ADMIN, Role.MANAGER), (Role.MANAGER, Role.USER), (Role.ADMIN, Role.USER)]


class TestTable:
    """Spot checks against the documented table."""

    @pytest.mark.parametrize(
        "role,module,action,expected",
        [
            (Role.ADMIN, "team", "manage_roles", True),
            (Role.ADMIN, "dashboard", "edit", True),
            (Role.ADMIN, "reports", "advanced", True),
            (Role.ADMIN, "settings", "manage_integrations", True),
            (Role.MANAGER, "clients", "export", True),
            (Role.MANAGER, "clients", "delete", False),
            (Role.MANAGER, "tasks", "assign", True),
            (Role.MANAGER, "team", "invite", True),
            (Role.MANAGER, "team", "manage_roles", False),
            (Role.MANAGER, "financial", "create", False),
            (Role.MANAGER, "reports", "advanced", False),
            (Role.USER, "clients", "create", True),
            (Role.USER, "clients", "export", False),
            (Role.USER, "financial", "view", True),
            (Role.USER, "financial", "export", False),
            (Role.USER, "strategies", "create", False),
            (Role.USER, "dashboard", "edit", False),
        ],
    )
    def test_entry(self, role, module, action, expected):
        assert has_permission(role, module, action) is expected

    def test_every_role_covers_every_module(self):
        for role in Role:
            assert set(ROLE_PERMISSIONS[role]) == set(Module)

    def test_list_actions_for_manager_contracts(self):
        assert list_actions(Role.MANAGER, Module.CONTRACTS) == ["view", "create", "edit"]

    def test_single_action_entries_are_not_substring_matched(self):
        assert has_permission(Role.USER, "settings", "view") is True
        assert has_permission(Role.USER, "settings", "vi") is False
        assert has_permission(Role.USER, "settings", "") is False

    def test_accepts_plain_strings(self):
        assert has_permission("admin", "clients", "delete") is True
        assert can_access("user", "reports") is True


class TestHierarchy:
    """Higher roles can do everything lower roles can."""

    @pytest.mark.parametrize("higher,lower", HIERARCHY)
    def test_monotonic_for_every_module_and_action(self, higher, lower):
        for module, action in itertools.product(Module, ALL_ACTIONS):
            if has_permission(lower, module, action):
                assert has_permission(higher, module, action), (
                    f"{lower.value} may {action} {module.value} but {higher.value} may not"
                )

    @pytest.mark.parametrize("higher,lower", HIERARCHY)
    def test_strict_superset_overall(self, higher, lower):
        higher_pairs = {
            (m, a) for m, actions in ROLE_PERMISSIONS[higher].items() for a in actions
        }
        lower_pairs = {
            (m, a) for m, actions in ROLE_PERMISSIONS[lower].items() for a in actions
        }
        assert lower_pairs < higher_pairs

    def test_role_levels_are_ordered(self):
        assert Role.ADMIN.has_at_least(Role.MANAGER)
        assert Role.MANAGER.has_at_least(Role.USER)
        assert not Role.USER.has_at_least(Role.MANAGER)


class TestFailClosed:
    """Unknown or unresolved inputs never grant anything."""

    @pytest.mark.parametrize("role", list(Role))
    def test_unknown_module_denied_for_all_roles(self, role):
        assert has_permission(role, "billing", "view") is False
        assert can_access(role, "billing") is False
        assert list_actions(role, "billing") == []

    @pytest.mark.parametrize("module", list(Module))
    def test_unresolved_role_denied(self, module):
        assert has_permission(None, module, "view") is False
        assert can_access(None, module) is False
        assert list_actions(None, module) == []

    def test_unknown_role_string_denied(self):
        assert has_permission("owner", "clients", "view") is False
        assert has_permission("ADMIN", "clients", "view") is False

    def test_unknown_action_denied(self):
        assert has_permission(Role.ADMIN, "clients", "impersonate") is False


class TestAuthorizationMatrix:
    """The role-bound object handed to pages."""

    def test_bound_queries(self):
        matrix = AuthorizationMatrix(Role.MANAGER)
        assert matrix.has_permission("opportunities", "export")
        assert not matrix.has_permission("opportunities", "delete")
        assert matrix.can_access(Module.TEAM)
        assert matrix.list_actions("team") == ["view", "invite"]

    def test_role_flags(self):
        assert AuthorizationMatrix(Role.ADMIN).is_admin
        assert AuthorizationMatrix(Role.MANAGER).is_manager
        user = AuthorizationMatrix(Role.USER)
        assert user.is_user and not user.is_admin and not user.is_manager

    def test_permissions_listing(self):
        perms = AuthorizationMatrix(Role.USER).permissions
        assert perms["clients"] == ["view", "create", "edit"]
        assert len(perms) == len(Module)

    def test_unresolved_matrix_is_empty(self):
        matrix = AuthorizationMatrix(None)
        assert matrix.permissions == {}
        assert not matrix.can_access("dashboard")
        assert not (matrix.is_admin or matrix.is_manager or matrix.is_user)
