"""
Tenancy — organization resolution, authorization and subscriptions.

Resolves the signed-in user's organizations and current tenant,
derives role-based permissions, gates premium features on the
subscription lifecycle, and backfills records missing their tenant.
"""

from inflow.tenancy.models import (
    AuthSession,
    InviteResult,
    Membership,
    MembershipStatus,
    Organization,
    PlanType,
    ResolvedTenantContext,
    Role,
    Subscription,
    SubscriptionStatus,
    User,
)
from inflow.tenancy.permissions import (
    AuthorizationMatrix,
    Module,
    ROLE_PERMISSIONS,
    can_access,
    has_permission,
    list_actions,
)
from inflow.tenancy.preferences import FilePreferenceStore, MemoryPreferenceStore
from inflow.tenancy.reconciler import OrphanReconciler, OrphanTable, ReconcileReport
from inflow.tenancy.resolver import TenantResolver
from inflow.tenancy.session import TenantSession
from inflow.tenancy.subscription import (
    SubscriptionGate,
    SubscriptionLifecycle,
    SubscriptionState,
    derive_state,
)

__all__ = [
    "AuthSession",
    "AuthorizationMatrix",
    "FilePreferenceStore",
    "InviteResult",
    "Membership",
    "MembershipStatus",
    "MemoryPreferenceStore",
    "Module",
    "Organization",
    "OrphanReconciler",
    "OrphanTable",
    "PlanType",
    "ROLE_PERMISSIONS",
    "ReconcileReport",
    "ResolvedTenantContext",
    "Role",
    "Subscription",
    "SubscriptionGate",
    "SubscriptionLifecycle",
    "SubscriptionState",
    "SubscriptionStatus",
    "TenantResolver",
    "TenantSession",
    "User",
    "can_access",
    "derive_state",
    "has_permission",
    "list_actions",
]
