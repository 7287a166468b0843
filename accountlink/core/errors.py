"""
Error taxonomy.

None of these are fatal. Each one is either surfaced to the user with a
retry affordance, or logged and healed by the next scheduled attempt.
"""

from __future__ import annotations


class AccountLinkError(Exception):
    """Base class for all accountlink errors."""

    retryable: bool = True

    def __init__(self, message: str, *, code: int | None = None):
        super().__init__(message)
        self.message = message
        self.code = code


class CreationFailure(AccountLinkError):
    """The backend rejected or failed to issue a QR code."""
    pass


class TransientPollFailure(AccountLinkError):
    """A single poll did not get a usable answer. Never surfaced."""
    pass


class ExpiryFailure(AccountLinkError):
    """The QR code expired before the binding was confirmed."""

    def __init__(self, message: str = "QR code expired, refresh to try again", *, source: str = "countdown"):
        super().__init__(message)
        self.source = source  # "countdown" or "server"


class ReconciliationFailure(AccountLinkError):
    """Fetching the platform link, the binding list, the profile or VIP status failed."""
    pass


class LogoutNotifyFailure(AccountLinkError):
    """The backend could not be told about a logout."""
    pass


class UnbindFailure(AccountLinkError):
    """The backend refused or failed to remove a binding."""
    pass
