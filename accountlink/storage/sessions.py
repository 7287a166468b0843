"""
Domain stores for the admin session and the identity cache.
"""

from __future__ import annotations

import json
import logging

from pydantic import ValidationError

from accountlink.core.models import AdminIdentity, Identity, VIPStatus
from accountlink.storage.base import KeyValueStore, StorageKeys

logger = logging.getLogger(__name__)


class AdminSessionStore:
    """
    The locally issued admin login: a bearer token plus the user record.

    A stored user record that no longer parses is treated as a broken
    session and both keys are dropped.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    def load(self) -> AdminIdentity | None:
        token = self.store.get(StorageKeys.ADMIN_TOKEN)
        raw_user = self.store.get(StorageKeys.ADMIN_USER)

        if not token or not raw_user:
            return None

        try:
            if isinstance(raw_user, str):
                return AdminIdentity.model_validate_json(raw_user)
            return AdminIdentity.model_validate(raw_user)
        except ValidationError as e:
            logger.error(f"Failed to parse admin user, clearing session: {e}")
            self.clear()
            return None

    def token(self) -> str | None:
        return self.store.get(StorageKeys.ADMIN_TOKEN) or None

    def save(self, identity: AdminIdentity, token: str) -> None:
        self.store.set(StorageKeys.ADMIN_TOKEN, token)
        self.store.set(
            StorageKeys.ADMIN_USER,
            json.dumps(identity.model_dump(mode="json", exclude={"kind"})),
        )

    def clear(self) -> None:
        self.store.delete_many(StorageKeys.ADMIN_TOKEN, StorageKeys.ADMIN_USER)


class IdentityCache:
    """
    Last known merged identity and VIP status, kept across restarts.

    Only for display while the next fetch is in flight; never consulted for
    authorization. Tokens are never written here.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    def load(self) -> tuple[Identity | None, VIPStatus | None]:
        raw_identity = self.store.get(StorageKeys.IDENTITY)
        raw_vip = self.store.get(StorageKeys.VIP_STATUS)

        try:
            identity = Identity.model_validate(raw_identity) if raw_identity else None
            vip = VIPStatus.model_validate(raw_vip) if raw_vip else None
        except ValidationError as e:
            logger.warning(f"Discarding stale identity cache: {e}")
            self.clear()
            return None, None

        return identity, vip

    def save(self, identity: Identity | None, vip_status: VIPStatus | None) -> None:
        if identity is None:
            self.clear()
            return
        self.store.set(StorageKeys.IDENTITY, identity.model_dump(mode="json"))
        if vip_status is None:
            self.store.delete(StorageKeys.VIP_STATUS)
        else:
            self.store.set(StorageKeys.VIP_STATUS, vip_status.model_dump(mode="json"))

    def clear(self) -> None:
        self.store.delete_many(StorageKeys.IDENTITY, StorageKeys.VIP_STATUS)
