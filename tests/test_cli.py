"""
Tests for the operator CLI.
"""

from __future__ import annotations

import logging

import pytest
from typer.testing import CliRunner

from inflow import cli
from inflow.integrations.supabase_client import TenantStore

runner = CliRunner()


@pytest.fixture(autouse=True)
def _reset_logging():
    yield
    root = logging.getLogger()
    for h in root.handlers[:]:
        root.removeHandler(h)


@pytest.fixture
def connected(store, monkeypatch):
    """Route every CLI connection to the in-memory store."""

    async def _from_config(cls, config):
        return store

    monkeypatch.setattr(TenantStore, "from_config", classmethod(_from_config))
    return store


class TestPermissionsCommand:

    def test_prints_manager_matrix(self):
        result = runner.invoke(cli.app, ["permissions", "manager"])
        assert result.exit_code == 0
        assert "assign" in result.output
        assert "manage_roles" not in result.output

    def test_rejects_unknown_role(self):
        result = runner.invoke(cli.app, ["permissions", "owner"])
        assert result.exit_code != 0


class TestOrgsCommand:

    def test_lists_organizations(self, connected, seed):
        seed.organization("org-a", "Agency A", owner_id="user-1")
        seed.organization("org-b", "Agency B", owner_id="user-2", created_days=2)
        seed.membership("org-b", "user-1", role="manager")

        result = runner.invoke(cli.app, ["orgs", "user-1"])
        assert result.exit_code == 0
        assert "Agency A" in result.output
        assert "Agency B" in result.output
        assert "admin" in result.output

    def test_missing_credentials(self, monkeypatch):
        monkeypatch.delenv("SUPABASE_URL", raising=False)
        monkeypatch.delenv("SUPABASE_ANON_KEY", raising=False)
        result = runner.invoke(cli.app, ["orgs", "user-1"])
        assert result.exit_code == 1
        assert "SUPABASE_URL" in result.output


class TestReconcileCommand:

    def test_reports_fixed_rows(self, connected, seed, supabase):
        seed.record("clients", created_by="user-1")
        result = runner.invoke(cli.app, ["reconcile", "user-1", "org-a"])
        assert result.exit_code == 0
        assert supabase.tables["clients"][0]["organization_id"] == "org-a"

    def test_partial_failure_exits_non_zero(self, connected, supabase):
        supabase.failing.add("tasks")
        result = runner.invoke(cli.app, ["reconcile", "user-1", "org-a"])
        assert result.exit_code == 1
        assert "failed" in result.output


class TestSubscriptionCommand:

    def test_shows_lifecycle(self, connected, seed, supabase):
        seed.subscription("org-a", plan_type="premium", status="active")
        supabase.rpc_handlers["organization_has_premium_access"] = lambda p: True

        result = runner.invoke(cli.app, ["subscription", "org-a"])
        assert result.exit_code == 0
        assert "premium" in result.output
        assert "Server premium access: True" in result.output
