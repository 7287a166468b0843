"""
Core module - data models and infrastructure.

This module contains:
- models: Binding, identity and VIP data models
- events: Event system for pub/sub communication
- errors: Error taxonomy
- utils: Shared utility functions
"""

from accountlink.core.models import (
    AccountBinding,
    AdminIdentity,
    BindingState,
    Identity,
    IdentitySource,
    Platform,
    PlatformIdentity,
    PollResult,
    PollStatus,
    QRCodeTicket,
    UserProfile,
    VIPStatus,
)

from accountlink.core.events import (
    Event,
    EventBus,
    get_event_bus,
    reset_event_bus,
)

from accountlink.core.errors import (
    AccountLinkError,
    CreationFailure,
    ExpiryFailure,
    LogoutNotifyFailure,
    ReconciliationFailure,
    TransientPollFailure,
    UnbindFailure,
)

from accountlink.core.utils import (
    generate_id,
    utc_now,
)

__all__ = [
    # Models
    "AccountBinding",
    "AdminIdentity",
    "BindingState",
    "Identity",
    "IdentitySource",
    "Platform",
    "PlatformIdentity",
    "PollResult",
    "PollStatus",
    "QRCodeTicket",
    "UserProfile",
    "VIPStatus",
    # Events
    "Event",
    "EventBus",
    "get_event_bus",
    "reset_event_bus",
    # Errors
    "AccountLinkError",
    "CreationFailure",
    "ExpiryFailure",
    "LogoutNotifyFailure",
    "ReconciliationFailure",
    "TransientPollFailure",
    "UnbindFailure",
    # Utils
    "generate_id",
    "utc_now",
]
