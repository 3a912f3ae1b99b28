"""
Tenant session — wiring for the tenancy components.

AuthSession → TenantResolver → {AuthorizationMatrix, SubscriptionGate,
OrphanReconciler}. The session owns one of each, feeds identity changes
to the resolver, and on every (user, organization) change refetches the
subscription and schedules an orphan backfill. Nothing here blocks the
caller: a role and a subscription may settle at slightly different
moments after a switch.

Usage:
    session = await TenantSession.create(config)
    await session.handle_auth_change(AuthSession(user=user))

    if session.permissions.has_permission("clients", "export"):
        ...
    if session.subscriptions.is_active:
        ...

    await session.aclose()
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Coroutine, Optional

from inflow.config.schema import TenancyConfig
from inflow.integrations.supabase_client import TenantStore
from inflow.tenancy.models import AuthSession, ResolvedTenantContext
from inflow.tenancy.permissions import AuthorizationMatrix
from inflow.tenancy.preferences import FilePreferenceStore, PreferenceStore
from inflow.tenancy.reconciler import OrphanReconciler
from inflow.tenancy.resolver import TenantResolver
from inflow.tenancy.subscription import SubscriptionGate, SubscriptionState

logger = logging.getLogger(__name__)


class TenantSession:
    """Owns the resolver, subscription gate and reconciler for one client."""

    def __init__(
        self,
        store: TenantStore,
        preferences: PreferenceStore,
        config: Optional[TenancyConfig] = None,
    ):
        self.config = config or TenancyConfig()
        self.store = store
        self.resolver = TenantResolver(
            store, preferences, retry=self.config.provisioning_retry
        )
        self.subscriptions = SubscriptionGate(
            store,
            trial_warning_days=self.config.subscription.trial_warning_days,
        )
        self.reconciler = OrphanReconciler(store, self.config.reconciler.tables)

        self._tasks: set[asyncio.Task] = set()
        self._remove_listener = self.resolver.add_listener(self._on_tenant_change)

    @classmethod
    async def create(cls, config: TenancyConfig) -> TenantSession:
        """Connect to Supabase and use the file-backed preference store."""
        store = await TenantStore.from_config(config)
        preferences = FilePreferenceStore(config.preferences.path)
        return cls(store, preferences, config)

    # ── State for consumers ──────────────────────────────────

    @property
    def context(self) -> ResolvedTenantContext:
        return self.resolver.context

    @property
    def permissions(self) -> AuthorizationMatrix:
        return AuthorizationMatrix(self.resolver.user_role)

    @property
    def subscription_state(self) -> SubscriptionState:
        return self.subscriptions.state

    # ── Triggers ─────────────────────────────────────────────

    async def handle_auth_change(self, session: AuthSession) -> ResolvedTenantContext:
        """Forward a settled auth session to the resolver."""
        if session.loading:
            return self.context
        previous = self.context.user_id
        new_user_id = session.user.id if session.user else None
        if previous and previous != new_user_id:
            self.reconciler.forget(previous)
        return await self.resolver.set_user(session.user)

    def _spawn(self, coro: Coroutine[Any, Any, Any], name: str) -> None:
        task = asyncio.get_running_loop().create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Background task {task.get_name()} failed: {exc}")

    def _on_tenant_change(self, context: ResolvedTenantContext) -> None:
        organization_id = context.current_organization_id
        # Drop the previous tenant's subscription before anything can read it.
        if organization_id != self.subscriptions.organization_id:
            self.subscriptions.clear()
        if organization_id is None:
            return
        self._spawn(
            self.subscriptions.on_organization_change(organization_id),
            name=f"subscription:{organization_id}",
        )
        if context.user_id:
            self._spawn(
                self._reconcile_later(context.user_id, organization_id),
                name=f"reconcile:{context.user_id}:{organization_id}",
            )

    async def _reconcile_later(self, user_id: str, organization_id: str) -> None:
        await asyncio.sleep(self.config.reconciler.delay_seconds)
        # Skip if the user or organization moved on during the wait.
        if (
            self.context.user_id != user_id
            or self.context.current_organization_id != organization_id
        ):
            return
        await self.reconciler.run_once(user_id, organization_id)

    # ── Lifecycle ────────────────────────────────────────────

    async def drain(self) -> None:
        """Wait until every scheduled refetch and backfill has finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel pending background work and stop listening to the resolver."""
        self._remove_listener()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._tasks.clear()
