"""
Storage abstractions.

- KeyValueStore → JSON file (local) or in-memory dict (tests)
- AdminSessionStore → admin token + user record
- IdentityCache → last merged identity and VIP status
"""

from accountlink.storage.base import KeyValueStore, StorageKeys
from accountlink.storage.local import InMemoryStore, JsonFileStore, create_local_stores
from accountlink.storage.sessions import AdminSessionStore, IdentityCache

__all__ = [
    "KeyValueStore",
    "StorageKeys",
    "InMemoryStore",
    "JsonFileStore",
    "create_local_stores",
    "AdminSessionStore",
    "IdentityCache",
]
