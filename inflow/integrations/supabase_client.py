"""
Supabase client wrapper for the tenancy core.

Provides typed async operations for the organization, membership and
subscription tables, the invite / premium-access procedures, and the
generic null-foreign-key queries used by the orphan reconciler.

Every client failure is re-raised as TenantStoreError so callers have one
exception type to handle.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from supabase import AsyncClient, acreate_client

from inflow.config.loader import resolve_supabase_credentials
from inflow.config.schema import TenancyConfig
from inflow.exceptions import TenantStoreError

logger = logging.getLogger(__name__)

ORGANIZATIONS = "organizations"
MEMBERS = "organization_members"
SUBSCRIPTIONS = "organization_subscriptions"

PROCESS_INVITE_RPC = "process_organization_invite"
PREMIUM_ACCESS_RPC = "organization_has_premium_access"


class TenantStore:
    """
    Async database client for tenant data.

    Runs with the signed-in user's key, so row-level security still
    applies; filters here narrow results, they do not replace RLS.
    """

    def __init__(self, client: AsyncClient):
        self.client = client

    @classmethod
    async def connect(cls, url: str, key: str) -> TenantStore:
        client = await acreate_client(url, key)
        return cls(client)

    @classmethod
    async def from_config(cls, config: TenancyConfig) -> TenantStore:
        """Connect with credentials read from the environment variables named in config."""
        url, key = resolve_supabase_credentials(config)
        return await cls.connect(url, key)

    async def _execute(self, query: Any, *, table: str, operation: str) -> Any:
        try:
            result = await query.execute()
        except Exception as e:
            raise TenantStoreError(
                f"{operation} on {table} failed: {e}",
                table=table,
                operation=operation,
            ) from e
        return result.data

    # ------------------------------------------------------------------
    # Organizations & memberships
    # ------------------------------------------------------------------

    async def list_owned_organizations(self, user_id: str) -> list[dict]:
        """Organizations whose owner_id is the user."""
        data = await self._execute(
            self.client.table(ORGANIZATIONS)
            .select("*")
            .eq("owner_id", user_id),
            table=ORGANIZATIONS,
            operation="select",
        )
        return data or []

    async def list_active_memberships(self, user_id: str) -> list[dict]:
        """Active memberships of the user, each with its organization embedded."""
        data = await self._execute(
            self.client.table(MEMBERS)
            .select("*, organization:organizations(*)")
            .eq("user_id", user_id)
            .eq("status", "active"),
            table=MEMBERS,
            operation="select",
        )
        return data or []

    async def get_active_membership(
        self, user_id: str, organization_id: str
    ) -> Optional[dict]:
        """The user's active membership in one organization, if any."""
        data = await self._execute(
            self.client.table(MEMBERS)
            .select("*")
            .eq("user_id", user_id)
            .eq("organization_id", organization_id)
            .eq("status", "active")
            .limit(1),
            table=MEMBERS,
            operation="select",
        )
        return data[0] if data else None

    async def process_invite(self, token: str) -> Any:
        """Validate an invite token and activate the membership server-side."""
        return await self._execute(
            self.client.rpc(PROCESS_INVITE_RPC, {"invite_token": token}),
            table=PROCESS_INVITE_RPC,
            operation="rpc",
        )

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def get_subscription(self, organization_id: str) -> Optional[dict]:
        """The organization's subscription row; None when there is none."""
        data = await self._execute(
            self.client.table(SUBSCRIPTIONS)
            .select("*")
            .eq("organization_id", organization_id)
            .limit(1),
            table=SUBSCRIPTIONS,
            operation="select",
        )
        return data[0] if data else None

    async def has_premium_access(self, organization_id: str) -> Any:
        """Ask the database whether the organization may use premium features."""
        return await self._execute(
            self.client.rpc(PREMIUM_ACCESS_RPC, {"org_id": organization_id}),
            table=PREMIUM_ACCESS_RPC,
            operation="rpc",
        )

    # ------------------------------------------------------------------
    # Orphan records
    # ------------------------------------------------------------------

    async def find_orphan_ids(
        self,
        table: str,
        user_id: str,
        *,
        foreign_key: str = "organization_id",
        owner_column: str = "created_by",
    ) -> list[str]:
        """Ids of the user's rows in ``table`` whose foreign key is null."""
        data = await self._execute(
            self.client.table(table)
            .select("id")
            .is_(foreign_key, "null")
            .eq(owner_column, user_id),
            table=table,
            operation="select",
        )
        return [str(row["id"]) for row in (data or [])]

    async def assign_organization(
        self,
        table: str,
        ids: list[str],
        organization_id: str,
        *,
        foreign_key: str = "organization_id",
    ) -> int:
        """
        Fill ``foreign_key`` on the given rows, only where it is still null.

        Returns the number of rows updated.
        """
        if not ids:
            return 0
        data = await self._execute(
            self.client.table(table)
            .update({foreign_key: organization_id})
            .in_("id", ids)
            .is_(foreign_key, "null"),
            table=table,
            operation="update",
        )
        return len(data or [])
