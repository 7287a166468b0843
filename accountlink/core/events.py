"""
Event bus for accountlink.

The binding flow and the session manager never call each other directly.
The coordinator announces what happened to a QR code, the session manager
announces what the effective user looks like now, and anything that renders
either one subscribes.

Event types are dotted, ``<topic>.<what>``; subscriptions may use shell
wildcards (``binding.*``).
"""

from __future__ import annotations

import fnmatch
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable

from accountlink.core.utils import generate_id, utc_now

logger = logging.getLogger(__name__)

EventHandler = Callable[["Event"], Awaitable[None]]


# Session state
SESSION_UPDATED = "session.updated"
SESSION_CLEARED = "session.cleared"

# Binding lifecycle
BINDING_OPENED = "binding.opened"
BINDING_STATE_CHANGED = "binding.state_changed"
BINDING_BOUND = "binding.bound"
BINDING_FAILED = "binding.failed"
BINDING_CLOSED = "binding.closed"
BINDING_UNBOUND = "binding.unbound"


@dataclass(frozen=True)
class Event:
    """Something that happened to a binding attempt or to the session."""

    event_type: str
    user_id: str | None = None
    payload: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: generate_id("evt"))
    timestamp: datetime = field(default_factory=utc_now)

    @property
    def topic(self) -> str:
        return self.event_type.split(".", 1)[0]


@dataclass
class Subscription:
    pattern: str
    handler: EventHandler
    user_id: str | None = None

    def matches(self, event: Event) -> bool:
        if self.user_id is not None and event.user_id != self.user_id:
            return False
        return fnmatch.fnmatchcase(event.event_type, self.pattern)


class EventBus:
    """
    In-process bus. Handlers run one after another, in subscription order,
    inside ``publish``; a handler that raises is logged and reported, and the
    rest still run.
    """

    def __init__(self, max_history: int = 1000):
        self._subscriptions: list[Subscription] = []
        self._history: deque[Event] = deque(maxlen=max_history)

    def subscribe(
        self,
        pattern: str,
        handler: EventHandler,
        user_id: str | None = None,
    ) -> Subscription:
        """Call ``handler`` for every event whose type matches ``pattern``."""
        subscription = Subscription(pattern=pattern, handler=handler, user_id=user_id)
        self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    async def publish(self, event: Event) -> int:
        """Deliver ``event``; returns how many handlers ran without error."""
        self._history.append(event)

        delivered = 0
        # Copy: handlers may subscribe or unsubscribe while we iterate
        for subscription in [s for s in self._subscriptions if s.matches(event)]:
            try:
                await subscription.handler(event)
                delivered += 1
            except Exception as e:
                logger.exception(f"Handler for {event.event_type} failed")
                # Deferred: the integrations package imports core
                from accountlink.integrations.sentry import capture_exception

                capture_exception(e, event_type=event.event_type, event_id=event.id)

        return delivered

    def get_history(
        self,
        event_type: str | None = None,
        user_id: str | None = None,
        limit: int = 100,
    ) -> list[Event]:
        """Most recent events, oldest first, optionally filtered."""
        results = [
            e for e in self._history
            if (event_type is None or fnmatch.fnmatchcase(e.event_type, event_type))
            and (user_id is None or e.user_id == user_id)
        ]
        return results[-limit:]

    def clear_history(self) -> None:
        self._history.clear()


_default_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Process-wide bus, for callers that are not handed one."""
    global _default_bus
    if _default_bus is None:
        _default_bus = EventBus()
    return _default_bus


def reset_event_bus() -> None:
    global _default_bus
    _default_bus = None
