from inflow.config.loader import clear_cache, load_tenancy_config
from inflow.config.schema import (
    OrphanTableConfig,
    ReconcilerConfig,
    RetryPolicy,
    TenancyConfig,
)

__all__ = [
    "OrphanTableConfig",
    "ReconcilerConfig",
    "RetryPolicy",
    "TenancyConfig",
    "clear_cache",
    "load_tenancy_config",
]
