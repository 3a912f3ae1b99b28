"""
Custom exception hierarchy for the InflowHub tenancy core.

Structured error handling with clear categories:
- Configuration errors (caught at startup)
- Tenant store failures (caught by each component and resolved fail-closed)

Usage:
    from inflow.exceptions import TenantStoreError

    try:
        rows = await store.list_owned_organizations(user_id)
    except TenantStoreError as e:
        logger.error(f"Failed to load organizations: {e}")
        rows = []
"""

from __future__ import annotations

from typing import Optional


class InflowError(Exception):
    """
    Base exception for all InflowHub errors.

    All custom exceptions inherit from this, so you can catch
    `InflowError` to handle any platform-specific error.
    """

    def __init__(self, message: str, *, details: Optional[dict] = None):
        super().__init__(message)
        self.details = details or {}


# ── Configuration Errors ──────────────────────────────────────────


class TenancyConfigError(InflowError):
    """
    Raised when config/tenancy.yaml is unreadable or fails validation.
    """

    def __init__(
        self,
        message: str,
        *,
        config_path: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.config_path = config_path


# ── Store Errors ──────────────────────────────────────────────────


class TenantStoreError(InflowError):
    """
    Raised when a read, write or procedure call against the tenant
    store fails (network error, PostgREST error, RLS rejection).

    Components never let this escape to their callers: it is logged
    and turned into the least-privileged outcome.
    """

    def __init__(
        self,
        message: str,
        *,
        table: Optional[str] = None,
        operation: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, details=details)
        self.table = table
        self.operation = operation
