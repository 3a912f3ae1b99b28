"""
Unit tests for the custom exception hierarchy.
"""

import pytest

from inflow.exceptions import InflowError, TenancyConfigError, TenantStoreError


class TestInflowError:
    """Tests for the base exception class."""

    def test_basic_creation(self):
        err = InflowError("something broke")
        assert str(err) == "something broke"
        assert err.details == {}

    def test_with_details(self):
        err = InflowError("oops", details={"code": "PGRST116"})
        assert err.details["code"] == "PGRST116"


class TestTenancyConfigError:

    def test_stores_path(self):
        err = TenancyConfigError("bad yaml", config_path="config/tenancy.yaml")
        assert err.config_path == "config/tenancy.yaml"

    def test_catchable_as_inflow_error(self):
        with pytest.raises(InflowError):
            raise TenancyConfigError("invalid")


class TestTenantStoreError:

    def test_stores_table_and_operation(self):
        err = TenantStoreError(
            "select on clients failed", table="clients", operation="select"
        )
        assert err.table == "clients"
        assert err.operation == "select"

    def test_inherits_inflow_error(self):
        assert issubclass(TenantStoreError, InflowError)


class TestStoreWrapping:
    """Client failures surface as TenantStoreError."""

    @pytest.mark.asyncio
    async def test_client_error_is_wrapped(self, store, supabase):
        supabase.failing.add("organizations")
        with pytest.raises(TenantStoreError) as exc:
            await store.list_owned_organizations("user-1")
        assert exc.value.table == "organizations"
        assert exc.value.operation == "select"
        assert isinstance(exc.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_rpc_error_is_wrapped(self, store, supabase):
        supabase.failing.add("organization_has_premium_access")
        with pytest.raises(TenantStoreError) as exc:
            await store.has_premium_access("org-a")
        assert exc.value.operation == "rpc"

    @pytest.mark.asyncio
    async def test_empty_assignment_skips_query(self, store, supabase):
        assert await store.assign_organization("clients", [], "org-a") == 0
        assert supabase.calls == []
