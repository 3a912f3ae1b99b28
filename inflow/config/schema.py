"""
Pydantic configuration schema for the tenancy core.

config/tenancy.yaml conforms to these models. Every section has defaults,
so an absent file yields a working configuration.
"""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------

class RetryPolicy(BaseModel):
    """Bounded wait for the organization-provisioning trigger."""
    max_retries: int = Field(
        1, ge=0, le=5, description="Extra attempts after an empty first fetch"
    )
    delay_seconds: float = Field(
        2.0, ge=0, description="Wait before the first retry"
    )
    backoff: float = Field(
        1.0, ge=1.0, description="Multiplier applied per further retry (1.0 = fixed)"
    )

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1


class OrphanTableConfig(BaseModel):
    """A tenant-scoped table whose rows may be missing their organization."""
    table: str
    foreign_key: str = "organization_id"
    owner_column: str = "created_by"

    @field_validator("table", "foreign_key", "owner_column")
    @classmethod
    def validate_identifier(cls, v: str) -> str:
        v = v.strip()
        if not v.replace("_", "").isalnum():
            raise ValueError(f"'{v}' is not a valid column or table name")
        return v


DEFAULT_ORPHAN_TABLES = (
    "clients",
    "opportunities",
    "tasks",
    "events",
    "contracts",
    "financial_entries",
    "strategies",
)


class ReconcilerConfig(BaseModel):
    """Orphan-record backfill settings."""
    delay_seconds: float = Field(
        1.0, ge=0, description="Wait after an organization change before running"
    )
    tables: list[OrphanTableConfig] = Field(
        default_factory=lambda: [
            OrphanTableConfig(table=name) for name in DEFAULT_ORPHAN_TABLES
        ]
    )

    @field_validator("tables")
    @classmethod
    def validate_unique_tables(
        cls, v: list[OrphanTableConfig]
    ) -> list[OrphanTableConfig]:
        names = [t.table for t in v]
        if len(names) != len(set(names)):
            raise ValueError("Orphan tables must be listed once each")
        return v


class SubscriptionConfig(BaseModel):
    trial_warning_days: int = Field(
        3, ge=0, description="Days left at which a trial counts as ending soon"
    )


class PreferencesConfig(BaseModel):
    path: str = Field(
        "~/.inflow/preferences.json",
        description="Where the remembered current organization is kept",
    )


class SupabaseConfig(BaseModel):
    url_env: str = "SUPABASE_URL"
    key_env: str = "SUPABASE_ANON_KEY"


# ---------------------------------------------------------------------------
# Top-level config
# ---------------------------------------------------------------------------

class TenancyConfig(BaseModel):
    """Complete configuration for the tenancy core."""
    provisioning_retry: RetryPolicy = Field(default_factory=RetryPolicy)
    reconciler: ReconcilerConfig = Field(default_factory=ReconcilerConfig)
    subscription: SubscriptionConfig = Field(default_factory=SubscriptionConfig)
    preferences: PreferencesConfig = Field(default_factory=PreferencesConfig)
    supabase: SupabaseConfig = Field(default_factory=SupabaseConfig)
