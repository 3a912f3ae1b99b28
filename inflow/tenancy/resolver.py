"""
Tenant resolution for the signed-in user.

The resolver discovers every organization the user may act on (owned
plus active memberships), picks the current one, remembers it across
sessions, and resolves the user's role inside it. It owns the
ResolvedTenantContext; other components receive it by reference and
get notified through listeners when the (user, organization) pair
changes.

Usage:
    resolver = TenantResolver(store, FilePreferenceStore(path))
    await resolver.set_user(User(id="u-1", email="ana@agency.com"))

    resolver.current_organization   # Organization
    resolver.user_role              # Role.ADMIN

    await resolver.switch_organization("org-2")
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Optional

from pydantic import ValidationError
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_result,
    stop_after_attempt,
    wait_exponential,
)

from inflow.config.schema import RetryPolicy
from inflow.exceptions import TenantStoreError
from inflow.integrations.supabase_client import TenantStore
from inflow.observability.logging_config import clear_log_context, set_log_context
from inflow.tenancy.models import (
    InviteResult,
    Membership,
    Organization,
    ResolvedTenantContext,
    Role,
    User,
)
from inflow.tenancy.preferences import PreferenceStore

logger = logging.getLogger(__name__)

ContextListener = Callable[[ResolvedTenantContext], None]
Sleep = Callable[[float], Awaitable[None]]

LoadResult = tuple[list[Organization], dict[str, Membership]]

_FAR_FUTURE = datetime.max.replace(tzinfo=timezone.utc)

INVITE_FAILED_MESSAGE = "Could not process the invite"


def organization_sort_key(org: Organization) -> tuple:
    """Oldest first, then by name, then by id; rows without created_at go last."""
    return (
        org.created_at is None,
        org.created_at or _FAR_FUTURE,
        org.name.casefold(),
        org.id,
    )


def resolve_role(
    user_id: str, organization: Organization, membership: Optional[Membership]
) -> Role:
    """Owner is admin; otherwise the active membership's role; otherwise user."""
    if organization.is_owned_by(user_id):
        return Role.ADMIN
    if membership is not None and membership.is_active:
        return membership.role
    return Role.USER


def _not_provisioned(result: Optional[LoadResult]) -> bool:
    # None means the fetch was superseded; stop retrying.
    return result is not None and not result[0]


class TenantResolver:
    """
    Resolves and tracks the current organization for one signed-in user.

    Overlapping calls are last-write-wins: every fetch and switch takes a
    sequence number and drops its result if a newer one started meanwhile.
    """

    def __init__(
        self,
        store: TenantStore,
        preferences: PreferenceStore,
        *,
        retry: Optional[RetryPolicy] = None,
        sleep: Sleep = asyncio.sleep,
    ):
        self.store = store
        self.preferences = preferences
        self.retry = retry or RetryPolicy()
        self._sleep = sleep
        self.context = ResolvedTenantContext()
        self.user: Optional[User] = None

        self._fetch_seq = 0
        self._switch_seq = 0
        self._listeners: list[ContextListener] = []
        self._notified: tuple[Optional[str], Optional[str]] = (None, None)

    # ── Read access ──────────────────────────────────────────

    @property
    def organizations(self) -> list[Organization]:
        return self.context.organizations

    @property
    def current_organization(self) -> Optional[Organization]:
        return self.context.current_organization

    @property
    def user_role(self) -> Optional[Role]:
        return self.context.user_role

    @property
    def loading(self) -> bool:
        return self.context.loading

    # ── Listeners ────────────────────────────────────────────

    def add_listener(self, listener: ContextListener) -> Callable[[], None]:
        """
        Call ``listener(context)`` whenever the (user, current organization)
        pair changes. Returns a function that removes the listener.
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _notify(self) -> None:
        pair = (self.context.user_id, self.context.current_organization_id)
        if pair == self._notified:
            return
        self._notified = pair
        set_log_context(*pair)

        for listener in list(self._listeners):
            try:
                listener(self.context)
            except Exception as e:
                logger.error(f"Tenant listener {listener!r} failed: {e}")

    # ── Identity ─────────────────────────────────────────────

    async def set_user(self, user: Optional[User]) -> ResolvedTenantContext:
        """
        Recompute the context for a new identity; ``None`` signs out.

        Calling it again with the same user id only refreshes the stored
        profile.
        """
        if user is None:
            self.user = None
            self._fetch_seq += 1
            self._switch_seq += 1
            self.context.reset()
            self._notify()
            clear_log_context()
            logger.info("tenant_context_cleared")
            return self.context

        if self.user is not None and self.user.id == user.id:
            self.user = user
            return self.context

        self.user = user
        self._switch_seq += 1
        self.context.reset()
        self.context.user_id = user.id
        self.context.loading = True
        # Publish (new user, no organization) so nothing keeps serving the
        # previous tenant while this user's organizations load.
        self._notify()
        return await self.fetch_organizations()

    # ── Fetch ────────────────────────────────────────────────

    async def _load(self, user_id: str) -> LoadResult:
        """Run both queries and merge them; any store failure means "none yet"."""
        results = await asyncio.gather(
            self.store.list_owned_organizations(user_id),
            self.store.list_active_memberships(user_id),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, TenantStoreError):
                logger.error(f"Failed to fetch organizations: {result}")
                return [], {}
            if isinstance(result, BaseException):
                raise result
        owned_rows, member_rows = results

        merged: dict[str, Organization] = {}
        memberships: dict[str, Membership] = {}

        for row in owned_rows:
            org = self._parse(Organization, row)
            if org is not None:
                merged.setdefault(org.id, org)

        for row in member_rows:
            membership = self._parse(Membership, row)
            if membership is None or not membership.is_active:
                continue
            if membership.organization is None:
                continue
            memberships[membership.organization_id] = membership
            merged.setdefault(membership.organization.id, membership.organization)

        organizations = sorted(merged.values(), key=organization_sort_key)
        return organizations, memberships

    @staticmethod
    def _parse(model: Any, row: dict) -> Any:
        try:
            return model.model_validate(row)
        except ValidationError as e:
            logger.warning(
                "tenant_row_skipped",
                extra={"model": model.__name__, "error": str(e)},
            )
            return None

    def _retrying(self) -> AsyncRetrying:
        """Tenacity policy for the provisioning wait, built from the RetryPolicy config."""
        return AsyncRetrying(
            stop=stop_after_attempt(self.retry.max_attempts),
            wait=wait_exponential(
                multiplier=self.retry.delay_seconds, exp_base=self.retry.backoff
            ),
            retry=retry_if_result(_not_provisioned),
            before_sleep=before_sleep_log(logger, logging.INFO),
            retry_error_callback=lambda state: state.outcome.result(),
            sleep=self._sleep,
        )

    async def _attempt(self, user_id: str, seq: int) -> Optional[LoadResult]:
        if seq != self._fetch_seq:
            return None
        result = await self._load(user_id)
        if seq != self._fetch_seq:
            return None
        return result

    async def fetch_organizations(self) -> ResolvedTenantContext:
        """
        Discover the user's organizations and select the current one.

        An empty result is taken as "provisioning not finished yet" and
        retried per the retry policy; it is never an error.
        """
        user = self.user
        if user is None:
            self.context.reset()
            self._notify()
            return self.context

        self._fetch_seq += 1
        seq = self._fetch_seq
        self.context.loading = True

        result = await self._retrying()(self._attempt, user.id, seq)
        if result is None or seq != self._fetch_seq:
            return self.context

        organizations, memberships = result
        self._apply_fetch(user, organizations, memberships)
        return self.context

    def _apply_fetch(
        self,
        user: User,
        organizations: list[Organization],
        memberships: dict[str, Membership],
    ) -> None:
        context = self.context
        context.user_id = user.id
        context.organizations = organizations
        context.loading = False

        if not organizations:
            context.current_organization = None
            context.user_role = None
            logger.warning("organizations_empty", extra={"user_id": user.id})
            self._notify()
            return

        remembered = self.preferences.get_current_organization_id(user.id)
        current = context.find(remembered) if remembered else None
        if current is None:
            if remembered:
                logger.info(
                    "remembered_organization_discarded",
                    extra={"user_id": user.id, "organization_id": remembered},
                )
            current = organizations[0]

        context.current_organization = current
        context.user_role = resolve_role(user.id, current, memberships.get(current.id))
        self.preferences.set_current_organization_id(user.id, current.id)

        logger.info(
            "organizations_resolved",
            extra={
                "user_id": user.id,
                "organization_id": current.id,
                "role": context.user_role.value,
                "organization_count": len(organizations),
            },
        )
        self._notify()

    async def refresh_organizations(self) -> ResolvedTenantContext:
        """Re-run discovery, e.g. after an invite was accepted elsewhere."""
        return await self.fetch_organizations()

    # ── Switch ───────────────────────────────────────────────

    async def _lookup_role(self, user_id: str, organization: Organization) -> Role:
        if organization.is_owned_by(user_id):
            return Role.ADMIN
        try:
            row = await self.store.get_active_membership(user_id, organization.id)
        except TenantStoreError as e:
            logger.error(f"Failed to fetch role for {organization.id}: {e}")
            return Role.USER
        membership = self._parse(Membership, row) if row else None
        return resolve_role(user_id, organization, membership)

    async def switch_organization(self, organization_id: str) -> bool:
        """
        Make ``organization_id`` current and re-resolve the role there.

        Unknown ids are ignored. Returns True when the switch was applied.
        """
        user = self.user
        target = self.context.find(organization_id)
        if user is None or target is None:
            logger.warning(
                "switch_organization_ignored",
                extra={"organization_id": organization_id},
            )
            return False

        self._switch_seq += 1
        seq = self._switch_seq

        role = await self._lookup_role(user.id, target)

        if seq != self._switch_seq or self.user is not user:
            return False
        # The list may have been refetched while the role query ran.
        target = self.context.find(organization_id)
        if target is None:
            return False

        self.context.current_organization = target
        self.context.user_role = role
        self.preferences.set_current_organization_id(user.id, target.id)

        logger.info(
            "organization_switched",
            extra={
                "user_id": user.id,
                "organization_id": target.id,
                "role": role.value,
            },
        )
        self._notify()
        return True

    # ── Invites ──────────────────────────────────────────────

    async def process_invite(self, token: str) -> InviteResult:
        """
        Accept an organization invite.

        Never raises: every failure becomes ``InviteResult(success=False)``.
        """
        token = (token or "").strip()
        if not token:
            return InviteResult(success=False, message="Invite token is missing")
        if self.user is None:
            return InviteResult(success=False, message="Sign in to accept the invite")

        try:
            payload = await self.store.process_invite(token)
        except TenantStoreError as e:
            logger.error(f"Failed to process invite: {e}")
            return InviteResult(success=False, message=INVITE_FAILED_MESSAGE)

        if isinstance(payload, list):
            payload = payload[0] if payload else None
        if not isinstance(payload, dict):
            logger.error(f"Unexpected invite response: {payload!r}")
            return InviteResult(success=False, message=INVITE_FAILED_MESSAGE)

        message = str(payload.get("message") or "")
        if payload.get("success") is True:
            logger.info("invite_accepted", extra={"user_id": self.user.id})
            await self.refresh_organizations()
            return InviteResult(success=True, message=message or "Invite accepted")

        return InviteResult(success=False, message=message or "Unknown error")
