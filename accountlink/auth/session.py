"""
Auth session manager.

Owns the single process-wide identity state. Everything else reads it
through ``state`` or subscribes to ``session.updated``; only the methods
here write it.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict

from accountlink.auth import vip
from accountlink.auth.identity import IdentityReconciler
from accountlink.auth.tiers import VIPTier
from accountlink.core.errors import LogoutNotifyFailure, ReconciliationFailure
from accountlink.core.events import (
    BINDING_BOUND,
    BINDING_UNBOUND,
    SESSION_CLEARED,
    SESSION_UPDATED,
    Event,
    EventBus,
    EventHandler,
    Subscription,
    get_event_bus,
)
from accountlink.core.models import (
    AdminIdentity,
    Identity,
    IdentitySource,
    PlatformIdentity,
    UserProfile,
    VIPStatus,
)
from accountlink.integrations.base import AccountAPI
from accountlink.integrations.sentry import capture_exception, set_user
from accountlink.storage.sessions import AdminSessionStore, IdentityCache

logger = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    LOADING = "loading"
    READY = "ready"


class SessionState(BaseModel):
    """Snapshot of the effective user. Immutable; replaced, never edited."""

    model_config = ConfigDict(frozen=True)

    status: SessionStatus = SessionStatus.LOADING
    identity: Identity | None = None
    vip_status: VIPStatus | None = None
    profile: UserProfile | None = None
    from_cache: bool = False
    error: str | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.identity is not None

    @property
    def is_ready(self) -> bool:
        return self.status == SessionStatus.READY


class AuthSessionManager:
    """
    Loads the admin session, reconciles it with the platform identity and
    VIP record, and publishes the result.

    Usage:
        manager = AuthSessionManager(api, AdminSessionStore(store))
        await manager.initialize()
        if manager.has_tier("premium"):
            ...
    """

    def __init__(
        self,
        api: AccountAPI,
        sessions: AdminSessionStore,
        cache: IdentityCache | None = None,
        bus: EventBus | None = None,
    ):
        self.api = api
        self.sessions = sessions
        self.cache = cache
        self.bus = bus or get_event_bus()

        self._state = SessionState()
        self._reconciler = IdentityReconciler()
        self._platform: PlatformIdentity | None = None
        self._platform_owner: str | None = None
        self._generation = 0
        self._initialized = False

        self._subscriptions = [
            self.bus.subscribe(BINDING_BOUND, self._on_binding_bound),
            self.bus.subscribe(BINDING_UNBOUND, self._on_binding_unbound),
        ]

    # =========================================================================
    # Read side
    # =========================================================================

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def identity(self) -> Identity | None:
        return self._state.identity

    @property
    def vip_status(self) -> VIPStatus | None:
        return self._state.vip_status

    def is_vip(self) -> bool:
        # Cached VIP data is for display only
        if self._state.from_cache:
            return False
        return vip.is_vip(self._state.vip_status)

    def has_tier(self, required: VIPTier | str) -> bool:
        if self._state.from_cache:
            return False
        return vip.has_tier(self._state.vip_status, required)

    def subscribe(self, handler: EventHandler) -> Subscription:
        """Subscribe to every published state change."""
        return self.bus.subscribe(SESSION_UPDATED, handler)

    def close(self) -> None:
        for subscription in self._subscriptions:
            self.bus.unsubscribe(subscription)
        self._subscriptions = []

    # =========================================================================
    # Write side
    # =========================================================================

    async def initialize(self) -> SessionState:
        """Full load: publish ``loading`` then exactly one ``ready``."""
        self._initialized = True
        self._generation += 1
        generation = self._generation

        cached_identity, cached_vip = self.cache.load() if self.cache else (None, None)
        if cached_identity is not None and cached_identity.platform_uid:
            self._platform = PlatformIdentity(
                uid=cached_identity.platform_uid,
                display_name=cached_identity.display_name,
                avatar=cached_identity.avatar,
            )
            self._platform_owner = cached_identity.admin_id

        await self._set_state(SessionState(
            status=SessionStatus.LOADING,
            identity=cached_identity,
            vip_status=cached_vip,
            from_cache=cached_identity is not None,
        ))

        await self._reconcile(generation)
        return self._state

    async def refresh(self) -> SessionState:
        """Re-fetch and re-merge without going back through ``loading``."""
        if not self._initialized:
            return await self.initialize()

        self._generation += 1
        await self._reconcile(self._generation)
        return self._state

    async def login(self, admin: AdminIdentity, token: str) -> SessionState:
        """Store a fresh admin login and reconcile it."""
        self.sessions.save(admin, token)
        logger.info(f"Admin {admin.id} logged in")
        return await self.refresh()

    async def logout(self) -> None:
        """
        Tell the backend (best effort), then clear everything local.

        Local state is cleared even if the notify call fails.
        """
        try:
            if self._state.identity is not None:
                await self.api.notify_logout()
        except LogoutNotifyFailure as e:
            logger.warning(f"Logout notification failed, clearing local session anyway: {e.message}")
        finally:
            await self._clear()

    # =========================================================================
    # Internals
    # =========================================================================

    async def _reconcile(self, generation: int) -> None:
        admin = self.sessions.load()

        if admin is None:
            if generation != self._generation:
                return
            self._reconciler.reset()
            self._platform, self._platform_owner = None, None
            if self.cache:
                self.cache.clear()
            await self._set_state(SessionState(status=SessionStatus.READY))
            return

        platform, profile, vip_status, errors = await self._fetch_remote()

        if generation != self._generation:
            logger.debug(f"Discarding stale reconciliation (generation {generation})")
            return

        if platform is not None:
            self._platform, self._platform_owner = platform, admin.id
        elif "platform" not in errors:
            # Backend says nothing is linked
            self._platform, self._platform_owner = None, None
        # else: link status unknown, keep the last known link so the id stays put

        linked = self._platform if self._platform_owner == admin.id else None

        identity, changed = self._reconciler.reconcile(admin, linked)

        if vip_status is None and profile is not None:
            vip_status = profile.vip_status
        if vip_status is None and "vip" in errors and not self._state.from_cache:
            previous = self._state.identity
            if previous is not None and previous.admin_id == admin.id:
                vip_status = self._state.vip_status

        if self.cache:
            self.cache.save(identity, vip_status)
        set_user(identity.id if identity else None, source=identity.source.value if identity else None)

        if changed:
            logger.info(
                f"Identity now {identity.id} "
                f"({'linked' if identity.source == IdentitySource.PLATFORM else 'admin only'})"
            )

        await self._set_state(
            SessionState(
                status=SessionStatus.READY,
                identity=identity,
                vip_status=vip_status,
                profile=profile,
                from_cache=False,
                error="; ".join(errors.values()) or None,
            ),
            identity_changed=changed,
        )

    async def _fetch_remote(
        self,
    ) -> tuple[PlatformIdentity | None, UserProfile | None, VIPStatus | None, dict[str, str]]:
        results = await asyncio.gather(
            self.api.fetch_platform_link_status(),
            self.api.fetch_user_profile(),
            self.api.fetch_vip_status(),
            return_exceptions=True,
        )

        errors: dict[str, str] = {}
        values: list[Any] = []
        for name, result in zip(("platform", "profile", "vip"), results):
            if isinstance(result, BaseException) and not isinstance(result, Exception):
                raise result
            if isinstance(result, ReconciliationFailure):
                logger.warning(f"Reconciliation: {name} fetch failed: {result.message}")
                errors[name] = result.message
                values.append(None)
            elif isinstance(result, Exception):
                logger.error(f"Reconciliation: unexpected {name} fetch error: {result!r}", exc_info=result)
                capture_exception(result, fetch=name)
                errors[name] = str(result) or result.__class__.__name__
                values.append(None)
            else:
                values.append(result)

        platform, profile, vip_status = values
        return platform, profile, vip_status, errors

    async def _clear(self) -> None:
        self._generation += 1
        self.sessions.clear()
        if self.cache:
            self.cache.clear()
        self._reconciler.reset()
        self._platform, self._platform_owner = None, None
        set_user(None)

        await self.bus.publish(Event(event_type=SESSION_CLEARED))
        await self._set_state(SessionState(status=SessionStatus.READY))
        logger.info("Logged out, local session cleared")

    async def _set_state(self, state: SessionState, identity_changed: bool = False) -> None:
        self._state = state
        await self.bus.publish(Event(
            event_type=SESSION_UPDATED,
            user_id=state.identity.id if state.identity else None,
            payload={
                "status": state.status.value,
                "identity": state.identity.model_dump(mode="json") if state.identity else None,
                "vip_status": state.vip_status.model_dump(mode="json") if state.vip_status else None,
                "from_cache": state.from_cache,
                "identity_changed": identity_changed,
            },
        ))

    async def _on_binding_bound(self, event: Event) -> None:
        logger.info(f"Platform account bound ({event.payload.get('platform')}), refreshing identity")
        await self.refresh()

    async def _on_binding_unbound(self, event: Event) -> None:
        logger.info(f"Binding {event.payload.get('binding_id')} removed, refreshing identity")
        # A failed link fetch must not bring the removed account back
        self._platform, self._platform_owner = None, None
        await self.refresh()
