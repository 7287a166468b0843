"""
Storage abstraction layer.

Persistence is deliberately tiny: an admin session and a cached copy of the
merged identity. Both sit on top of a synchronous key-value interface so
that loading the admin session never suspends.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class KeyValueStore(ABC):
    """
    Small synchronous key-value store for JSON-serializable values.

    Local Implementation: JSON file or in-memory dict
    """

    @abstractmethod
    def get(self, key: str) -> Any | None:
        """Get a value."""
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Set a value."""
        pass

    @abstractmethod
    def delete(self, key: str) -> bool:
        """Delete a key."""
        pass

    def delete_many(self, *keys: str) -> None:
        for key in keys:
            self.delete(key)


class StorageKeys:
    """Standard key names."""

    ADMIN_TOKEN = "admin_token"
    ADMIN_USER = "admin_user"
    IDENTITY = "identity"
    VIP_STATUS = "vip_status"
