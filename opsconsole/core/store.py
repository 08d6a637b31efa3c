"""Key/value store for console state.

Per-operator values (the auth gate flag, the NDR login, the caller identity,
the last looked-up order and tracking history) live in memory for the
lifetime of one store, which the UI keeps per browser session. Only the
category grouping dictionaries are shared through a JSON file; every file
write re-reads the file and merges the one changed key, so stores opened
on the same path by other sessions keep each other's groups.
"""
from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Dict, MutableMapping, Optional

logger = logging.getLogger(__name__)

AUTH_TOKEN = "auth_token"
AUTHENTICATED = "authenticated"
REPEAT_ORDER_NUMBER = "repeat_order_number"
TRACKING_HISTORY = "trackingHistory"
CALLER_IDENTITY = "caller_identity"
NDR_USER = "ndr_user"
NDR_SESSION = "ndr_session"
NDR_ACTIVE_TEAM_ID = "ndr_active_team_id"
NDR_ACTIVE_TEAM_NAME = "ndr_active_team_name"
NDR_AUTO_ALLOC_DONE = "ndr_auto_alloc_done"
NDR_MY_ONLY = "ndr_my_only"
GROUPS_PREFIX = "category_groups:"

SESSION_KEYS = (
    AUTH_TOKEN,
    NDR_USER,
    NDR_SESSION,
    NDR_ACTIVE_TEAM_ID,
    NDR_ACTIVE_TEAM_NAME,
    NDR_AUTO_ALLOC_DONE,
    NDR_MY_ONLY,
)

_FILE_LOCK = threading.Lock()


def is_shared_key(key: str) -> bool:
    return key.startswith(GROUPS_PREFIX)


class LocalStore:
    """String-valued store; shared keys persist to ``path``, the rest stay in ``session``."""

    def __init__(self, path: Optional[Path] = None, session: Optional[MutableMapping[str, str]] = None) -> None:
        self.path = Path(path) if path else None
        self.session: MutableMapping[str, str] = session if session is not None else {}

    def _read_file(self) -> Dict[str, str]:
        if not self.path or not self.path.exists():
            return {}
        try:
            loaded = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable state file %s: %s", self.path, exc)
            return {}
        if not isinstance(loaded, dict):
            return {}
        return {str(k): str(v) for k, v in loaded.items() if is_shared_key(str(k))}

    def _write_file(self, key: str, value: Optional[str]) -> None:
        if not self.path:
            self._memory_only(key, value)
            return
        with _FILE_LOCK:
            data = self._read_file()
            if value is None:
                data.pop(key, None)
            else:
                data[key] = value
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(data, indent=2, sort_keys=True), encoding="utf-8")

    def _memory_only(self, key: str, value: Optional[str]) -> None:
        if value is None:
            self.session.pop(key, None)
        else:
            self.session[key] = value

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        if is_shared_key(key) and self.path:
            return self._read_file().get(key, default)
        return self.session.get(key, default)

    def set(self, key: str, value: Any) -> None:
        if is_shared_key(key):
            self._write_file(key, str(value))
        else:
            self.session[key] = str(value)

    def remove(self, key: str) -> None:
        if is_shared_key(key):
            self._write_file(key, None)
        else:
            self.session.pop(key, None)

    def get_json(self, key: str, default: Any = None) -> Any:
        """Decode a JSON value; corrupt entries read as ``default``."""

        raw = self.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding corrupt JSON stored under %s", key)
            return default

    def set_json(self, key: str, value: Any) -> None:
        self.set(key, json.dumps(value))

    def keys(self):
        return list(self.session) + [key for key in self._read_file() if key not in self.session]

    def clear_session(self) -> None:
        """Log out: drop the auth flag and every NDR session key."""

        for key in SESSION_KEYS:
            self.session.pop(key, None)


def is_authenticated(store: LocalStore) -> bool:
    return store.get(AUTH_TOKEN) == AUTHENTICATED


def authenticate(store: LocalStore, password: str, expected: str) -> bool:
    """Open the console gate when ``password`` matches the configured one."""

    if not expected:
        raise ValueError("OPSCONSOLE_PASSWORD is not configured")
    if password != expected:
        logger.warning("Rejected console login attempt")
        return False
    store.set(AUTH_TOKEN, AUTHENTICATED)
    return True
