"""
Configuration loader for the tenancy core.

Loads config/tenancy.yaml, validates it against the Pydantic schema,
and caches the result for the lifetime of the process.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError

from inflow.config.schema import TenancyConfig
from inflow.exceptions import TenancyConfigError

CONFIG_ENV_VAR = "INFLOW_CONFIG"

# Module-level cache: resolved path (or "<defaults>") -> TenancyConfig
_loaded_configs: dict[str, TenancyConfig] = {}


def find_config_file() -> Optional[Path]:
    """Locate config/tenancy.yaml relative to the working directory or this file."""
    starts = [Path.cwd(), Path(__file__).resolve()]
    for start in starts:
        for parent in [start, *start.parents]:
            candidate = parent / "config" / "tenancy.yaml"
            if candidate.is_file():
                return candidate
    return None


def load_tenancy_config(
    config_path: Optional[str | Path] = None,
) -> TenancyConfig:
    """
    Load and validate the tenancy configuration.

    Args:
        config_path: Optional explicit path to a YAML file. If not
                     provided, $INFLOW_CONFIG is used, then the nearest
                     config/tenancy.yaml. Without any file the schema
                     defaults apply.

    Returns:
        Validated TenancyConfig instance.

    Raises:
        TenancyConfigError: If the file is missing, empty or invalid.
    """
    explicit = config_path or os.environ.get(CONFIG_ENV_VAR)
    path = Path(explicit).expanduser() if explicit else find_config_file()

    cache_key = str(path) if path else "<defaults>"
    if cache_key in _loaded_configs:
        return _loaded_configs[cache_key]

    if path is None:
        config = TenancyConfig()
        _loaded_configs[cache_key] = config
        return config

    if not path.exists():
        raise TenancyConfigError(
            f"Config not found: {path}", config_path=str(path)
        )

    try:
        with open(path, "r") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise TenancyConfigError(
            f"Config is not valid YAML: {path}", config_path=str(path)
        ) from e

    if raw is None:
        raise TenancyConfigError(
            f"Config file is empty: {path}", config_path=str(path)
        )
    if not isinstance(raw, dict):
        raise TenancyConfigError(
            f"Config must be a mapping: {path}", config_path=str(path)
        )

    try:
        config = TenancyConfig(**raw)
    except ValidationError as e:
        raise TenancyConfigError(
            f"Invalid tenancy config in {path}:\n{e}",
            config_path=str(path),
        ) from e

    _loaded_configs[cache_key] = config
    return config


def resolve_supabase_credentials(config: TenancyConfig) -> tuple[str, str]:
    """
    Read the Supabase URL and key named by the config from the environment.

    Raises EnvironmentError if either is missing.
    """
    url = os.environ.get(config.supabase.url_env, "").strip()
    key = os.environ.get(config.supabase.key_env, "").strip()
    missing = [
        name
        for name, value in (
            (config.supabase.url_env, url),
            (config.supabase.key_env, key),
        )
        if not value
    ]
    if missing:
        raise EnvironmentError(
            f"Missing required environment variables: {', '.join(missing)}\n"
            f"Set them in your .env file or shell environment."
        )
    return url, key


def clear_cache() -> None:
    """Clear the config cache. Useful for testing."""
    _loaded_configs.clear()
