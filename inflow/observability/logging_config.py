"""
Structured logging configuration for the InflowHub tenancy core.

Uses Python's built-in logging with a JSONFormatter so every
logging.getLogger() call keeps working while production output stays
machine-readable.

Environments:
- production: JSON to stdout (machine-readable)
- development/staging/test: Colored text to stderr (human-readable)

Usage:
    from inflow.observability.logging_config import configure_logging

    configure_logging()  # auto-detects from INFLOW_ENV

    logger = logging.getLogger(__name__)
    logger.info("organizations_resolved", extra={
        "user_id": "u-1",
        "organization_count": 2,
    })
"""

from __future__ import annotations

import json
import logging
import os
import sys
from contextvars import ContextVar
from datetime import datetime, timezone
from typing import Any, Optional

# ─── Tenant Log Context ───────────────────────────────────────────────

_log_context: ContextVar[Optional[dict[str, str]]] = ContextVar(
    "inflow_log_context", default=None
)


def set_log_context(
    user_id: Optional[str] = None,
    organization_id: Optional[str] = None,
) -> None:
    """
    Bind the signed-in user and current organization to the running
    task, so every log record emitted from it carries both ids.

    Called by the resolver whenever the tenant pair changes.
    """
    context: dict[str, str] = {}
    if user_id:
        context["user_id"] = user_id
    if organization_id:
        context["organization_id"] = organization_id
    _log_context.set(context or None)


def get_log_context() -> dict[str, str]:
    """Get the bound ids, or an empty dict outside a tenant context."""
    return dict(_log_context.get() or {})


def clear_log_context() -> None:
    """Clear the bound ids."""
    _log_context.set(None)


# ─── Context Filter ───────────────────────────────────────────────────


class ContextFilter(logging.Filter):
    """
    Injects user_id / organization_id into every log record.

    Values passed explicitly through ``extra`` win over the bound ones.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        for key, value in get_log_context().items():
            if not hasattr(record, key):
                setattr(record, key, value)
        return True


# ─── Formatters ───────────────────────────────────────────────────────


# Attributes every LogRecord has; anything else arrived through ``extra``.
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))
) | {"message", "asctime"}


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in vars(record).items()
        if key not in _RECORD_ATTRS and not key.startswith("_")
    }


class JSONFormatter(logging.Formatter):
    """
    One JSON object per record: timestamp, level, logger and the event
    name, followed by every ``extra`` field (tenant ids included).
    Values JSON cannot encode are written as their ``str()``.
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(
                record.created, tz=timezone.utc
            ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **_extra_fields(record),
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class DevFormatter(logging.Formatter):
    """
    ``HH:MM:SS LEVEL    logger: event [user_id=.. organization_id=..]``

    Only the tenancy fields are shown inline; warnings and errors are
    colored.
    """

    INLINE_KEYS = (
        "user_id", "organization_id", "role", "table",
        "attempt", "plan_type", "fixed", "status",
    )
    LEVEL_COLORS = {
        logging.WARNING: "\033[33m",
        logging.ERROR: "\033[31m",
        logging.CRITICAL: "\033[41m",
    }
    RESET = "\033[0m"

    def __init__(self) -> None:
        super().__init__(
            "%(asctime)s %(levelname)-8s %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )

    def formatMessage(self, record: logging.LogRecord) -> str:
        line = super().formatMessage(record)
        tags = [
            f"{key}={getattr(record, key)}"
            for key in self.INLINE_KEYS
            if getattr(record, key, None) is not None
        ]
        if tags:
            line = f"{line} [{' '.join(tags)}]"
        color = self.LEVEL_COLORS.get(record.levelno)
        return f"{color}{line}{self.RESET}" if color else line


# ─── Configuration ────────────────────────────────────────────────────


_QUIET_LOGGERS = ("httpx", "httpcore", "hpack", "supabase", "postgrest")


def configure_logging(
    env: Optional[str] = None,
    level: int = logging.INFO,
) -> None:
    """
    Route the root logger through a single handler.

    ``env`` (default: $INFLOW_ENV, else "development") picks the output:
    "production" writes JSON lines to stdout, anything else writes
    DevFormatter lines to stderr. Both carry the tenant ids.
    """
    env = (env or os.environ.get("INFLOW_ENV", "development")).strip().lower()
    production = env == "production"

    handler = logging.StreamHandler(sys.stdout if production else sys.stderr)
    handler.setFormatter(JSONFormatter() if production else DevFormatter())
    handler.addFilter(ContextFilter())

    root = logging.getLogger()
    for existing in root.handlers[:]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(level)

    # The Supabase client stack logs every request at INFO.
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
