"""
Role-based authorization matrix.

A static table of role → module → allowed actions. Every query is a
pure function of (role, module, action) and fails closed: an unknown
role, module or action is never allowed.

Usage:
    matrix = AuthorizationMatrix(Role.MANAGER)
    matrix.has_permission("clients", "export")   # True
    matrix.has_permission("clients", "delete")   # False
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from inflow.tenancy.models import Role


class Module(str, Enum):
    DASHBOARD = "dashboard"
    CLIENTS = "clients"
    OPPORTUNITIES = "opportunities"
    TASKS = "tasks"
    TEAM = "team"
    FINANCIAL = "financial"
    CONTRACTS = "contracts"
    REPORTS = "reports"
    SETTINGS = "settings"
    STRATEGIES = "strategies"


ROLE_PERMISSIONS: dict[Role, dict[Module, tuple[str, ...]]] = {
    Role.ADMIN: {
        Module.DASHBOARD: ("view", "edit"),
        Module.CLIENTS: ("view", "create", "edit", "delete", "export"),
        Module.OPPORTUNITIES: ("view", "create", "edit", "delete", "export"),
        Module.TASKS: ("view", "create", "edit", "delete", "assign"),
        Module.TEAM: ("view", "invite", "edit", "delete", "manage_roles"),
        Module.FINANCIAL: ("view", "create", "edit", "delete", "export"),
        Module.CONTRACTS: ("view", "create", "edit", "delete", "export"),
        Module.REPORTS: ("view", "export", "advanced"),
        Module.SETTINGS: ("view", "edit", "manage_integrations"),
        Module.STRATEGIES: ("view", "create", "edit", "delete"),
    },
    Role.MANAGER: {
        Module.DASHBOARD: ("view",),
        Module.CLIENTS: ("view", "create", "edit", "export"),
        Module.OPPORTUNITIES: ("view", "create", "edit", "export"),
        Module.TASKS: ("view", "create", "edit", "assign"),
        Module.TEAM: ("view", "invite"),
        Module.FINANCIAL: ("view", "export"),
        Module.CONTRACTS: ("view", "create", "edit"),
        Module.REPORTS: ("view", "export"),
        Module.SETTINGS: ("view",),
        Module.STRATEGIES: ("view", "create", "edit"),
    },
    Role.USER: {
        Module.DASHBOARD: ("view",),
        Module.CLIENTS: ("view", "create", "edit"),
        Module.OPPORTUNITIES: ("view", "create", "edit"),
        Module.TASKS: ("view", "create", "edit"),
        Module.TEAM: ("view",),
        Module.FINANCIAL: ("view",),
        Module.CONTRACTS: ("view",),
        Module.REPORTS: ("view",),
        Module.SETTINGS: ("view",),
        Module.STRATEGIES: ("view",),
    },
}


def _module_table(
    role: Optional[Role | str], module: Module | str
) -> Optional[tuple[str, ...]]:
    if role is None:
        return None
    try:
        role = Role(role)
        module = Module(module)
    except ValueError:
        return None
    return ROLE_PERMISSIONS.get(role, {}).get(module)


def has_permission(
    role: Optional[Role | str], module: Module | str, action: str
) -> bool:
    """Whether ``role`` may perform ``action`` in ``module``."""
    actions = _module_table(role, module)
    return actions is not None and action in actions


def can_access(role: Optional[Role | str], module: Module | str) -> bool:
    """Whether ``role`` has any entry for ``module``."""
    return _module_table(role, module) is not None


def list_actions(role: Optional[Role | str], module: Module | str) -> list[str]:
    """Actions ``role`` may perform in ``module``; empty when none."""
    return list(_module_table(role, module) or ())


class AuthorizationMatrix:
    """The permission queries bound to one resolved role."""

    def __init__(self, role: Optional[Role]):
        self.role = role

    def has_permission(self, module: Module | str, action: str) -> bool:
        return has_permission(self.role, module, action)

    def can_access(self, module: Module | str) -> bool:
        return can_access(self.role, module)

    def list_actions(self, module: Module | str) -> list[str]:
        return list_actions(self.role, module)

    @property
    def permissions(self) -> dict[str, list[str]]:
        """Module name → actions for the bound role."""
        if self.role is None:
            return {}
        return {
            module.value: list(actions)
            for module, actions in ROLE_PERMISSIONS.get(self.role, {}).items()
        }

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    @property
    def is_manager(self) -> bool:
        return self.role == Role.MANAGER

    @property
    def is_user(self) -> bool:
        return self.role == Role.USER

    def __repr__(self) -> str:
        role = self.role.value if self.role else None
        return f"AuthorizationMatrix(role={role!r})"
