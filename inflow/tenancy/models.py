"""
Tenancy data models.

Pydantic models for users, organizations, memberships, subscriptions
and the in-memory resolved tenant context shared by the resolver,
the subscription gate and the orphan reconciler.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Timestamps without an offset are stored as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ── Enums ────────────────────────────────────────────────────


class Role(str, Enum):
    """Organization roles (descending privilege)."""
    ADMIN = "admin"
    MANAGER = "manager"
    USER = "user"

    @property
    def level(self) -> int:
        """Numeric privilege level (higher = more access)."""
        return {
            Role.ADMIN: 100,
            Role.MANAGER: 50,
            Role.USER: 10,
        }[self]

    def has_at_least(self, required: Role) -> bool:
        """Check if this role has at least the privilege of `required`."""
        return self.level >= required.level

    @classmethod
    def parse(cls, value: Any) -> Role:
        """
        Coerce a stored role string into a Role.

        Anything unknown or empty becomes USER, the least-privileged role.
        """
        if isinstance(value, Role):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        return cls.USER


class MembershipStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"


class PlanType(str, Enum):
    TRIAL = "trial"
    BASIC = "basic"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    CANCELED = "canceled"
    PAST_DUE = "past_due"


# ── Identity ─────────────────────────────────────────────────


class User(BaseModel):
    """The signed-in user, as supplied by the auth session."""

    id: str
    email: str = ""
    display_name: str = ""


class AuthSession(BaseModel):
    """Snapshot of the external auth session."""

    user: Optional[User] = None
    loading: bool = False


# ── Organization ─────────────────────────────────────────────


class Organization(BaseModel):
    """An organization (tenant). Created by provisioning, only read here."""

    id: str
    name: str
    slug: str = ""
    description: Optional[str] = None
    logo_url: Optional[str] = None
    owner_id: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("created_at", "updated_at")
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)

    def is_owned_by(self, user_id: str) -> bool:
        return self.owner_id == user_id


# ── Membership ───────────────────────────────────────────────


class Membership(BaseModel):
    """A non-owner user's association with an organization."""

    id: str
    organization_id: str
    user_id: str
    role: Role = Role.USER
    status: MembershipStatus = MembershipStatus.PENDING
    organization: Optional[Organization] = None

    @field_validator("role", mode="before")
    @classmethod
    def parse_role(cls, v: Any) -> Role:
        return Role.parse(v)

    @property
    def is_active(self) -> bool:
        return self.status == MembershipStatus.ACTIVE


# ── Subscription ─────────────────────────────────────────────


class Subscription(BaseModel):
    """An organization's subscription row (at most one per organization)."""

    id: str
    organization_id: str
    plan_type: PlanType = PlanType.TRIAL
    status: SubscriptionStatus = SubscriptionStatus.ACTIVE
    trial_start_date: Optional[datetime] = None
    trial_end_date: Optional[datetime] = None
    subscription_start_date: Optional[datetime] = None
    subscription_end_date: Optional[datetime] = None
    stripe_customer_id: Optional[str] = None
    stripe_subscription_id: Optional[str] = None

    @field_validator(
        "trial_start_date",
        "trial_end_date",
        "subscription_start_date",
        "subscription_end_date",
    )
    @classmethod
    def assume_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _as_utc(v)


# ── Resolved Context ─────────────────────────────────────────


class ResolvedTenantContext(BaseModel):
    """
    The in-memory tenant state for the signed-in user.

    Owned and mutated only by TenantResolver; everything else reads it.
    When ``organizations`` is non-empty, ``current_organization`` is one
    of them and ``user_role`` matches it.
    """

    user_id: Optional[str] = None
    organizations: list[Organization] = Field(default_factory=list)
    current_organization: Optional[Organization] = None
    user_role: Optional[Role] = None
    loading: bool = True

    @property
    def current_organization_id(self) -> Optional[str]:
        if self.current_organization is None:
            return None
        return self.current_organization.id

    def find(self, organization_id: str) -> Optional[Organization]:
        for org in self.organizations:
            if org.id == organization_id:
                return org
        return None

    def reset(self) -> None:
        """Drop everything (sign-out)."""
        self.user_id = None
        self.organizations = []
        self.current_organization = None
        self.user_role = None
        self.loading = False


class InviteResult(BaseModel):
    """Outcome of accepting an organization invite."""

    success: bool
    message: str = ""
