"""
Local storage implementations.

These are in-memory or filesystem-based implementations
that work without any external services.
"""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from accountlink.storage.base import KeyValueStore

logger = logging.getLogger(__name__)


# =============================================================================
# In-Memory Store
# =============================================================================


class InMemoryStore(KeyValueStore):
    """Dict-backed store for tests and throwaway sessions."""

    def __init__(self, initial: dict[str, Any] | None = None):
        self._data: dict[str, Any] = dict(initial or {})

    def get(self, key: str) -> Any | None:
        return self._data.get(key)

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None


# =============================================================================
# JSON File Store
# =============================================================================


class JsonFileStore(KeyValueStore):
    """
    All keys in one JSON file, rewritten atomically on every change.

    A file that cannot be parsed is treated as empty and overwritten on the
    next write.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _read(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable state file {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, Any]) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, indent=2, default=str), encoding="utf-8")
        os.replace(tmp, self.path)

    def get(self, key: str) -> Any | None:
        return self._read().get(key)

    def set(self, key: str, value: Any) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def delete(self, key: str) -> bool:
        data = self._read()
        if key not in data:
            return False
        del data[key]
        self._write(data)
        return True


def create_local_stores(state_dir: str | Path) -> tuple[JsonFileStore, JsonFileStore]:
    """
    Create the session and cache stores under ``state_dir``.

    Credentials and the identity cache live in separate files so the cache
    can be wiped without touching the login.
    """
    base = Path(state_dir)
    return (
        JsonFileStore(base / "admin_session.json"),
        JsonFileStore(base / "identity_cache.json"),
    )
