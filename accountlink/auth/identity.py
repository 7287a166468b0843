"""
Identity reconciliation.

Combines the local admin identity with an optional platform identity into
the one record the rest of the app keys off. ``merge`` is pure: equal
inputs always produce equal outputs, so ``id`` only moves when the admin
session or the platform link actually changes.
"""

from __future__ import annotations

from accountlink.core.models import (
    AdminIdentity,
    Identity,
    IdentitySource,
    PlatformIdentity,
)


def merge(
    admin: AdminIdentity | None,
    platform: PlatformIdentity | None,
) -> Identity | None:
    """
    Merge an admin identity with an optional platform identity.

    Returns None (unauthenticated) when there is no admin identity, even if
    a platform identity is present.
    """
    if admin is None:
        return None

    if platform is None:
        return Identity(
            id=admin.id,
            display_name=admin.best_name,
            avatar=admin.avatar or None,
            platform_uid=None,
            source=IdentitySource.ADMIN,
            admin_id=admin.id,
            username=admin.username,
            email=admin.email,
        )

    return Identity(
        id=platform.uid,
        display_name=platform.display_name or admin.best_name,
        avatar=platform.avatar or admin.avatar or None,
        platform_uid=platform.uid,
        source=IdentitySource.PLATFORM,
        admin_id=admin.id,
        username=admin.username,
        email=admin.email,
    )


def stable_key(identity: Identity | None) -> str | None:
    """Cross-system cache key: the id, namespaced by what backs it."""
    if identity is None:
        return None
    return f"{identity.source.value}:{identity.id}"


class IdentityReconciler:
    """
    Stateful wrapper around ``merge``.

    Remembers the last merged identity so callers can tell a real identity
    change (new admin, new link) apart from a refresh that changed nothing.
    """

    def __init__(self):
        self._last: Identity | None = None

    @property
    def current(self) -> Identity | None:
        return self._last

    def reconcile(
        self,
        admin: AdminIdentity | None,
        platform: PlatformIdentity | None,
    ) -> tuple[Identity | None, bool]:
        """Merge and report whether the stable key changed."""
        merged = merge(admin, platform)
        changed = stable_key(merged) != stable_key(self._last)
        self._last = merged
        return merged, changed

    def reset(self) -> None:
        self._last = None
