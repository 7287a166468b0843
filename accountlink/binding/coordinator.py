"""
Binding coordinator.

Turns dialog intent (open, refresh, close) into BindingSession lifecycles.
At most one session is live at a time; a new one always cancels the old
one first. Success is reported at most once per ``open()``. Existing
bindings are listed and removed here too.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable

from pydantic import BaseModel

from accountlink.binding.session import BindingSession, Sleep
from accountlink.config import Settings, get_settings
from accountlink.core.events import (
    BINDING_BOUND,
    BINDING_CLOSED,
    BINDING_FAILED,
    BINDING_OPENED,
    BINDING_STATE_CHANGED,
    BINDING_UNBOUND,
    Event,
    EventBus,
    get_event_bus,
)
from accountlink.core.models import AccountBinding, BindingState, PlatformIdentity
from accountlink.core.utils import call_maybe_async
from accountlink.integrations.base import BindingAPI
from accountlink.integrations.sentry import capture_exception

logger = logging.getLogger(__name__)

SuccessCallback = Callable[[PlatformIdentity], Any]
FailureCallback = Callable[[BindingSession], Any]


class BindingView(BaseModel):
    """What a dialog needs to render the current attempt."""

    session_id: str | None = None
    platform: str | None = None
    state: BindingState | None = None
    message: str = ""
    qr_payload: str | None = None
    countdown: str | None = None
    remaining_seconds: int = 0
    expires_at: datetime | None = None
    result_identity: PlatformIdentity | None = None
    retryable: bool = False


class BindingCoordinator:
    """
    Orchestrates BindingSession lifecycles for one dialog.

    Usage:
        coordinator = BindingCoordinator(api, on_success=manager_refresh)
        await coordinator.open("bilibili", user_id)
        ...
        await coordinator.refresh()   # new QR code
        await coordinator.close()     # dialog dismissed
        await coordinator.unbind(binding_id, user_id)
    """

    def __init__(
        self,
        api: BindingAPI,
        on_success: SuccessCallback | None = None,
        on_failure: FailureCallback | None = None,
        bus: EventBus | None = None,
        settings: Settings | None = None,
        sleep: Sleep | None = None,
    ):
        self.api = api
        self.on_success = on_success
        self.on_failure = on_failure
        self.bus = bus or get_event_bus()
        self.settings = settings or get_settings()
        self._sleep = sleep or asyncio.sleep

        self._session: BindingSession | None = None
        self._platform: str | None = None
        self._platform_name: str | None = None
        self._user_id: str | None = None

        # One attempt per open(); refreshes stay inside the same attempt
        self._attempt = 0
        self._success_reported = False

        self._background: set[asyncio.Task] = set()

    @property
    def session(self) -> BindingSession | None:
        return self._session

    # =========================================================================
    # Dialog intents
    # =========================================================================

    async def open(
        self,
        platform: str,
        user_id: str,
        platform_name: str | None = None,
    ) -> BindingSession:
        """Start a fresh binding attempt, superseding any current one."""
        await self._discard_current()

        self._attempt += 1
        self._success_reported = False
        self._platform = platform
        self._platform_name = platform_name
        self._user_id = user_id

        logger.info(f"Opening binding for {platform} (user={user_id}, attempt={self._attempt})")
        return await self._start_session()

    async def refresh(self) -> BindingSession | None:
        """Replace the current QR code with a new one. No-op once bound."""
        session = self._session
        if session is None:
            return None
        if session.state == BindingState.BOUND:
            logger.debug(f"Ignoring refresh for bound session {session.id}")
            return session

        await self._discard_current()
        return await self._start_session()

    async def close(self) -> None:
        """Cancel and forget the current session. Idempotent."""
        session = self._session
        if session is None:
            return
        self._session = None
        session.cancel()
        # Announced before the join yields to the loop
        await self._publish(BINDING_CLOSED, session)
        await session.join()

    async def shutdown(self) -> None:
        """Close and cancel any pending completion work."""
        await self.close()
        for task in list(self._background):
            if task is not asyncio.current_task():
                task.cancel()
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    def snapshot(self) -> BindingView:
        session = self._session
        if session is None:
            return BindingView()
        return BindingView(
            session_id=session.id,
            platform=session.platform,
            state=session.state,
            message=session.message,
            qr_payload=session.qr_payload,
            countdown=session.countdown,
            remaining_seconds=session.remaining_seconds,
            expires_at=session.expires_at,
            result_identity=session.result_identity,
            retryable=session.state in (BindingState.ERROR, BindingState.EXPIRED),
        )

    # =========================================================================
    # Existing bindings
    # =========================================================================

    async def list_bindings(self, user_id: str) -> list[AccountBinding]:
        """Platform accounts already linked to ``user_id``."""
        return await self.api.list_bindings(user_id)

    async def unbind(self, binding_id: str, user_id: str) -> None:
        """
        Remove a binding and announce it on ``binding.unbound``.

        Raises UnbindFailure; nothing is published in that case.
        """
        await self.api.unbind(binding_id)
        logger.info(f"Unbound {binding_id} (user={user_id})")
        await self.bus.publish(
            Event(event_type=BINDING_UNBOUND, user_id=user_id, payload={"binding_id": binding_id})
        )

    # =========================================================================
    # Internals
    # =========================================================================

    async def _start_session(self) -> BindingSession:
        session = BindingSession(
            platform=self._platform,
            user_id=self._user_id,
            api=self.api,
            settings=self.settings,
            sleep=self._sleep,
            platform_name=self._platform_name,
        )
        attempt = self._attempt
        session.add_listener(
            lambda s, old, new: self._on_transition(s, old, new, attempt)
        )
        self._session = session

        await self._publish(BINDING_OPENED, session)
        await session.start()
        return session

    async def _discard_current(self) -> None:
        session = self._session
        self._session = None
        if session is not None:
            session.cancel()
            await session.join()

    def _on_transition(
        self,
        session: BindingSession,
        old: BindingState,
        new: BindingState,
        attempt: int,
    ) -> None:
        if session is not self._session:
            return

        self._spawn(
            self._publish(BINDING_STATE_CHANGED, session, state=new.value, previous=old.value)
        )

        if new == BindingState.BOUND:
            self._spawn(self._complete(session, attempt))
        elif new in (BindingState.ERROR, BindingState.EXPIRED):
            self._spawn(self._fail(session))

    async def _complete(self, session: BindingSession, attempt: int) -> None:
        if attempt != self._attempt or self._success_reported:
            return
        self._success_reported = True

        if self.on_success is not None:
            try:
                await call_maybe_async(self.on_success, session.result_identity)
            except Exception as e:
                logger.exception(f"Binding success callback failed for {session.id}")
                capture_exception(e, session_id=session.id, platform=session.platform)

        await self._publish(BINDING_BOUND, session)

        # Leave the confirmation on screen briefly
        await self._sleep(self.settings.binding_success_close_delay_seconds)
        if self._session is session:
            await self.close()

    async def _fail(self, session: BindingSession) -> None:
        await self._publish(BINDING_FAILED, session)
        if self.on_failure is None:
            return
        try:
            await call_maybe_async(self.on_failure, session)
        except Exception as e:
            logger.exception(f"Binding failure callback failed for {session.id}")
            capture_exception(e, session_id=session.id, platform=session.platform)

    async def _publish(self, event_type: str, session: BindingSession, **extra: Any) -> None:
        payload = {
            "session_id": session.id,
            "platform": session.platform,
            "state": session.state.value,
            "qr_code_key": session.qr_code_key,
            **extra,
        }
        if session.result_identity is not None:
            payload["platform_uid"] = session.result_identity.uid
        if session.failure is not None:
            payload["error"] = session.failure.message

        await self.bus.publish(Event(event_type=event_type, user_id=session.user_id, payload=payload))

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._background.add(task)
        task.add_done_callback(self._background.discard)
