"""
Remembered current organization, per user.

The stored id is only a hint: the resolver discards it when it no longer
appears among the user's organizations.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional, Protocol

logger = logging.getLogger(__name__)


class PreferenceStore(Protocol):
    def get_current_organization_id(self, user_id: str) -> Optional[str]: ...

    def set_current_organization_id(self, user_id: str, organization_id: str) -> None: ...

    def clear(self, user_id: str) -> None: ...


class MemoryPreferenceStore:
    """Process-local store; used in tests and short-lived tools."""

    def __init__(self, initial: Optional[dict[str, str]] = None):
        self._current: dict[str, str] = dict(initial or {})

    def get_current_organization_id(self, user_id: str) -> Optional[str]:
        return self._current.get(user_id)

    def set_current_organization_id(self, user_id: str, organization_id: str) -> None:
        self._current[user_id] = organization_id

    def clear(self, user_id: str) -> None:
        self._current.pop(user_id, None)


class FilePreferenceStore:
    """
    JSON file store.

    The file is read once when the store is created; every change is
    written straight back. A corrupt or unreadable file starts empty.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()
        self._current: dict[str, str] = self._load()

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            raw = json.loads(self.path.read_text())
        except (json.JSONDecodeError, OSError) as e:
            logger.warning(
                "preferences_load_failed",
                extra={"path": str(self.path), "error": str(e)},
            )
            return {}
        current = raw.get("current_organization", {}) if isinstance(raw, dict) else {}
        if not isinstance(current, dict):
            return {}
        return {str(k): str(v) for k, v in current.items()}

    def _save(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(
                json.dumps({"current_organization": self._current}, indent=2)
            )
        except OSError as e:
            logger.warning(
                "preferences_save_failed",
                extra={"path": str(self.path), "error": str(e)},
            )

    def get_current_organization_id(self, user_id: str) -> Optional[str]:
        return self._current.get(user_id)

    def set_current_organization_id(self, user_id: str, organization_id: str) -> None:
        if self._current.get(user_id) == organization_id:
            return
        self._current[user_id] = organization_id
        self._save()

    def clear(self, user_id: str) -> None:
        if self._current.pop(user_id, None) is not None:
            self._save()
