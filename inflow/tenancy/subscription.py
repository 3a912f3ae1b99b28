"""
Subscription lifecycle and premium-feature gate.

The gate fetches the current organization's subscription row and
derives its lifecycle from that row and the wall clock alone. For
operations that must not trust a possibly stale local read, the gate
also exposes the database's own premium-access check.

Every ambiguous outcome (no row, unreadable row, store failure) is
treated as "no active subscription".
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Optional

from pydantic import BaseModel, ValidationError

from inflow.exceptions import TenantStoreError
from inflow.integrations.supabase_client import TenantStore
from inflow.tenancy.models import PlanType, Subscription, SubscriptionStatus

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400
PREMIUM_PLANS = frozenset({PlanType.PREMIUM, PlanType.ENTERPRISE})


class SubscriptionLifecycle(str, Enum):
    NONE = "none"
    TRIAL = "trial"
    PREMIUM = "premium"
    ACTIVE = "active"
    EXPIRED = "expired"
    INACTIVE = "inactive"


class SubscriptionState(BaseModel):
    """Everything derived from one subscription row at one instant."""

    subscription: Optional[Subscription] = None
    is_premium: bool = False
    is_active: bool = False
    is_trial_expired: bool = False
    days_left_in_trial: int = 0
    trial_ending_soon: bool = False
    lifecycle: SubscriptionLifecycle = SubscriptionLifecycle.NONE

    @property
    def feature_allowed(self) -> bool:
        """Whether premium features are unlocked."""
        return self.is_active


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def derive_state(
    subscription: Optional[Subscription],
    now: Optional[datetime] = None,
    *,
    trial_warning_days: int = 3,
) -> SubscriptionState:
    """
    Derive the subscription flags.

    - is_trial_expired: trial plan whose trial_end_date is in the past
    - is_premium: premium or enterprise plan
    - is_active: status active and (premium, or an unexpired trial)
    - days_left_in_trial: whole days until trial_end_date, rounded up, never negative
    """
    if subscription is None:
        return SubscriptionState()

    now = now or _utcnow()
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    is_trial = subscription.plan_type == PlanType.TRIAL
    end = subscription.trial_end_date

    is_trial_expired = is_trial and end is not None and end < now
    is_premium = subscription.plan_type in PREMIUM_PLANS
    status_active = subscription.status == SubscriptionStatus.ACTIVE
    is_active = status_active and (is_premium or (is_trial and not is_trial_expired))

    days_left = 0
    if end is not None:
        days_left = max(0, math.ceil((end - now).total_seconds() / SECONDS_PER_DAY))

    if is_premium and is_active:
        lifecycle = SubscriptionLifecycle.PREMIUM
    elif is_trial and is_active:
        lifecycle = SubscriptionLifecycle.TRIAL
    elif is_trial_expired:
        lifecycle = SubscriptionLifecycle.EXPIRED
    elif status_active and not is_trial:
        lifecycle = SubscriptionLifecycle.ACTIVE
    else:
        lifecycle = SubscriptionLifecycle.INACTIVE

    return SubscriptionState(
        subscription=subscription,
        is_premium=is_premium,
        is_active=is_active,
        is_trial_expired=is_trial_expired,
        days_left_in_trial=days_left,
        trial_ending_soon=(
            is_trial and not is_trial_expired and days_left <= trial_warning_days
        ),
        lifecycle=lifecycle,
    )


class SubscriptionGate:
    """
    Tracks the subscription of one organization at a time.

    Follows the resolver's current organization through
    ``on_organization_change``; it never talks to the resolver itself.
    """

    def __init__(
        self,
        store: TenantStore,
        *,
        trial_warning_days: int = 3,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.store = store
        self.trial_warning_days = trial_warning_days
        self._clock = clock
        self.organization_id: Optional[str] = None
        self.subscription: Optional[Subscription] = None
        self.loading = False

    # ── Derived flags ────────────────────────────────────────

    @property
    def state(self) -> SubscriptionState:
        return derive_state(
            self.subscription,
            self._clock(),
            trial_warning_days=self.trial_warning_days,
        )

    @property
    def is_premium(self) -> bool:
        return self.state.is_premium

    @property
    def is_active(self) -> bool:
        return self.state.is_active

    @property
    def is_trial_expired(self) -> bool:
        return self.state.is_trial_expired

    @property
    def days_left_in_trial(self) -> int:
        return self.state.days_left_in_trial

    # ── Fetching ─────────────────────────────────────────────

    async def fetch_subscription(self, organization_id: str) -> Optional[Subscription]:
        """
        Load the organization's subscription row.

        A missing row is a normal state. Store failures and rows that do
        not parse are logged and also yield None.
        """
        try:
            row = await self.store.get_subscription(organization_id)
        except TenantStoreError as e:
            logger.error(f"Failed to fetch subscription: {e}")
            return None

        if row is None:
            logger.info(
                "subscription_missing",
                extra={"organization_id": organization_id},
            )
            return None

        try:
            return Subscription.model_validate(row)
        except ValidationError as e:
            logger.error(
                "subscription_row_invalid",
                extra={"organization_id": organization_id, "error": str(e)},
            )
            return None

    async def on_organization_change(self, organization_id: Optional[str]) -> None:
        """Refetch when the current organization changes; clear when there is none."""
        if organization_id == self.organization_id and not self.loading:
            return

        if organization_id is None:
            self.clear()
            return

        self.organization_id = organization_id
        self.subscription = None
        self.loading = True
        subscription = await self.fetch_subscription(organization_id)

        # A newer organization took over while this fetch was in flight.
        if self.organization_id != organization_id:
            return

        self.subscription = subscription
        self.loading = False
        state = self.state
        logger.info(
            "subscription_resolved",
            extra={
                "organization_id": organization_id,
                "plan_type": subscription.plan_type.value if subscription else None,
                "status": state.lifecycle.value,
            },
        )

    def clear(self) -> None:
        """Forget the current organization and its row; every flag reads inactive."""
        self.organization_id = None
        self.subscription = None
        self.loading = False

    async def refresh(self) -> None:
        """Refetch the current organization's row (e.g. after checkout)."""
        if self.organization_id is None:
            return
        self.loading = True
        await self.on_organization_change(self.organization_id)

    async def check_premium_access(self, organization_id: str) -> bool:
        """
        Ask the database whether ``organization_id`` has premium access.

        Returns False on any error or unexpected answer.
        """
        try:
            result = await self.store.has_premium_access(organization_id)
        except TenantStoreError as e:
            logger.error(f"Failed to check premium access: {e}")
            return False
        return result is True
