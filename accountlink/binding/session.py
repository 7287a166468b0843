"""
One QR-code binding attempt.

A session issues a QR code, then runs two independent timers against its
``qr_code_key``: a poll loop asking the backend what happened, and a local
countdown that expires the code even if the network goes quiet. The first
terminal result wins and cancels both timers.

    initializing ──create ok──▶ awaiting_scan ──pending──▶ pending_confirmation
         │                          │   │                      │   │
      create fails                bound expired              bound expired
         ▼                          ▼   ▼                      ▼   ▼
       error                       bound / expired (terminal)

Refreshing is not a transition on this object: the coordinator cancels the
session and starts a new one, which always gets a fresh key.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Awaitable, Callable

from accountlink.config import Settings, get_settings
from accountlink.core.errors import (
    AccountLinkError,
    CreationFailure,
    ExpiryFailure,
    TransientPollFailure,
)
from accountlink.core.models import (
    BindingState,
    PlatformIdentity,
    PollResult,
    PollStatus,
    QRCodeTicket,
)
from accountlink.core.utils import generate_id, utc_now
from accountlink.integrations.base import BindingAPI

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]
TransitionListener = Callable[["BindingSession", BindingState, BindingState], None]

COUNTDOWN_TICK_SECONDS = 1

ALLOWED_TRANSITIONS: dict[BindingState, set[BindingState]] = {
    BindingState.INITIALIZING: {BindingState.AWAITING_SCAN, BindingState.ERROR},
    BindingState.AWAITING_SCAN: {
        BindingState.PENDING_CONFIRMATION,
        BindingState.BOUND,
        BindingState.EXPIRED,
    },
    BindingState.PENDING_CONFIRMATION: {BindingState.BOUND, BindingState.EXPIRED},
    BindingState.BOUND: set(),
    BindingState.EXPIRED: set(),
    BindingState.ERROR: set(),
}


def format_countdown(seconds: int) -> str:
    """Render seconds as m:ss."""
    seconds = max(0, int(seconds))
    return f"{seconds // 60}:{seconds % 60:02d}"


class BindingSession:
    """State machine for a single QR binding attempt."""

    def __init__(
        self,
        platform: str,
        user_id: str,
        api: BindingAPI,
        settings: Settings | None = None,
        sleep: Sleep | None = None,
        platform_name: str | None = None,
    ):
        self.settings = settings or get_settings()
        self.id = generate_id("bind")
        self.platform = platform
        self.platform_name = platform_name or platform
        self.user_id = user_id

        self._api = api
        self._sleep = sleep or asyncio.sleep

        self.state = BindingState.INITIALIZING
        self.message = "Generating QR code..."
        self.ticket: QRCodeTicket | None = None
        self.expires_at: datetime | None = None
        self.remaining_seconds = 0
        self.result_identity: PlatformIdentity | None = None
        self.failure: AccountLinkError | None = None

        self._started = False
        self._cancelled = False
        self._tasks: list[asyncio.Task] = []
        self._listeners: list[TransitionListener] = []

    def __repr__(self) -> str:
        return f"<BindingSession(id={self.id}, platform={self.platform}, state={self.state.value})>"

    # =========================================================================
    # Read-only views
    # =========================================================================

    @property
    def qr_payload(self) -> str | None:
        return self.ticket.qr_payload if self.ticket else None

    @property
    def qr_code_key(self) -> str | None:
        return self.ticket.qr_code_key if self.ticket else None

    @property
    def is_terminal(self) -> bool:
        return self.state.is_terminal

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    @property
    def is_active(self) -> bool:
        """Still able to change state on its own."""
        return not self._cancelled and not self.state.is_terminal

    @property
    def countdown(self) -> str:
        return format_countdown(self.remaining_seconds)

    def add_listener(self, listener: TransitionListener) -> None:
        """Call ``listener(session, old_state, new_state)`` on every transition."""
        self._listeners.append(listener)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> BindingState:
        """Issue the QR code and start polling and the countdown."""
        if self._started:
            raise RuntimeError(f"{self!r} already started")
        self._started = True

        try:
            ticket = await self._api.create_binding(self.platform, self.user_id)
        except CreationFailure as e:
            if self._cancelled:
                return self.state
            logger.warning(f"QR code creation failed for {self.platform}: {e.message}")
            self.failure = e
            self._transition(BindingState.ERROR, e.message or "Failed to generate QR code")
            return self.state

        # Closed or superseded while the request was in flight
        if self._cancelled:
            logger.debug(f"{self!r} cancelled during creation, discarding {ticket.qr_code_key}")
            return self.state

        expires_in = ticket.expires_in_seconds or self.settings.binding_default_expires_in
        self.ticket = ticket
        self.expires_at = utc_now() + timedelta(seconds=expires_in)
        self.remaining_seconds = expires_in

        self._transition(
            BindingState.AWAITING_SCAN,
            f"Scan the QR code with the {self.platform_name} app",
        )

        key = ticket.qr_code_key
        self._tasks = [
            asyncio.create_task(self._poll_loop(key), name=f"{self.id}-poll"),
            asyncio.create_task(self._countdown_loop(key), name=f"{self.id}-countdown"),
        ]
        return self.state

    def cancel(self) -> None:
        """Stop both timers and ignore anything that arrives later. Idempotent."""
        if self._cancelled:
            return
        self._cancelled = True
        self._cancel_tasks()
        logger.debug(f"{self!r} cancelled")

    async def join(self) -> None:
        """Wait for the session's timers to finish after a cancel or terminal state."""
        current = asyncio.current_task()
        pending = [t for t in self._tasks if t is not current]
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    # =========================================================================
    # Transitions
    # =========================================================================

    def apply_poll(self, qr_code_key: str, result: PollResult) -> bool:
        """
        Apply one poll result. Returns True if it changed the state.

        Results for another key, for a cancelled session, or arriving after a
        terminal state are ignored.
        """
        if not self._accepts(qr_code_key):
            logger.debug(f"{self!r} ignoring poll result for {qr_code_key}")
            return False

        if result.status == PollStatus.PENDING:
            if self.state != BindingState.AWAITING_SCAN:
                return False
            self._transition(
                BindingState.PENDING_CONFIRMATION,
                "Scanned, confirm the login in the app",
            )
            return True

        if result.status == PollStatus.BOUND:
            if not result.platform_uid:
                logger.warning(f"{self!r} got a bound result without a platform uid")
                return False
            self.result_identity = PlatformIdentity(
                uid=result.platform_uid,
                display_name=result.username or None,
                avatar=result.avatar or None,
                platform=result.platform or self.platform,
            )
            name = result.username or self.result_identity.uid
            self._finish(BindingState.BOUND, f"Linked! Welcome {name}")
            return True

        if result.status == PollStatus.EXPIRED:
            return self.expire(source="server")

        return False

    def expire(self, source: str = "countdown") -> bool:
        """Force the code to expire. Returns False if the session already settled."""
        if self._cancelled or not self.state.is_waiting:
            return False
        self.failure = ExpiryFailure(source=source)
        self.remaining_seconds = 0
        self._finish(BindingState.EXPIRED, self.failure.message)
        return True

    def _accepts(self, qr_code_key: str) -> bool:
        return (
            not self._cancelled
            and self.state.is_waiting
            and self.qr_code_key == qr_code_key
        )

    def _finish(self, state: BindingState, message: str) -> None:
        # Timers go first so nothing can race the terminal state
        self._cancel_tasks()
        self._transition(state, message)

    def _transition(self, new_state: BindingState, message: str) -> None:
        old_state = self.state
        if new_state not in ALLOWED_TRANSITIONS[old_state]:
            raise RuntimeError(f"{self!r}: illegal transition {old_state.value} -> {new_state.value}")

        self.state = new_state
        self.message = message
        logger.info(f"Binding {self.id} ({self.platform}): {old_state.value} -> {new_state.value}")

        for listener in list(self._listeners):
            try:
                listener(self, old_state, new_state)
            except Exception:
                logger.exception(f"Transition listener failed for {self!r}")

    def _cancel_tasks(self) -> None:
        current = asyncio.current_task()
        for task in self._tasks:
            if task is not current and not task.done():
                task.cancel()

    # =========================================================================
    # Timers
    # =========================================================================

    async def _poll_loop(self, qr_code_key: str) -> None:
        interval = self.settings.binding_poll_interval_seconds

        while self._accepts(qr_code_key):
            await self._sleep(interval)
            if not self._accepts(qr_code_key):
                return

            try:
                result = await self._api.poll_binding(qr_code_key)
            except TransientPollFailure as e:
                # Retried on the next tick; the countdown bounds how long
                logger.warning(f"Poll failed for {qr_code_key}: {e.message}")
                continue

            self.apply_poll(qr_code_key, result)

    async def _countdown_loop(self, qr_code_key: str) -> None:
        while self._accepts(qr_code_key):
            await self._sleep(COUNTDOWN_TICK_SECONDS)
            if not self._accepts(qr_code_key):
                return

            self.remaining_seconds = max(0, self.remaining_seconds - COUNTDOWN_TICK_SECONDS)
            if self.remaining_seconds <= 0:
                logger.info(f"QR code {qr_code_key} expired locally")
                self.expire(source="countdown")
                return
