"""
Collaborator interfaces.

The core only talks to the backend through these. ``BackendClient`` is the
HTTP implementation; tests substitute in-memory fakes.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from accountlink.core.models import (
    AccountBinding,
    PlatformIdentity,
    PollResult,
    QRCodeTicket,
    UserProfile,
    VIPStatus,
)


class BindingAPI(ABC):
    """Issues QR codes, reports on them, and manages the resulting bindings."""

    @abstractmethod
    async def create_binding(self, platform: str, user_id: str) -> QRCodeTicket:
        """Issue a QR code. Raises CreationFailure."""
        pass

    @abstractmethod
    async def poll_binding(self, qr_code_key: str) -> PollResult:
        """Check one QR code. Raises TransientPollFailure."""
        pass

    @abstractmethod
    async def list_bindings(self, user_id: str) -> list[AccountBinding]:
        """Every platform account linked to ``user_id``. Raises ReconciliationFailure."""
        pass

    @abstractmethod
    async def unbind(self, binding_id: str) -> None:
        """Remove one binding. Raises UnbindFailure."""
        pass


class AccountAPI(ABC):
    """Platform link, profile and VIP lookups for the signed-in admin."""

    @abstractmethod
    async def fetch_platform_link_status(self) -> PlatformIdentity | None:
        """The linked platform account, if any. Raises ReconciliationFailure."""
        pass

    @abstractmethod
    async def fetch_user_profile(self) -> UserProfile:
        """Raises ReconciliationFailure."""
        pass

    @abstractmethod
    async def fetch_vip_status(self) -> VIPStatus:
        """Raises ReconciliationFailure."""
        pass

    @abstractmethod
    async def notify_logout(self) -> None:
        """Invalidate the platform session. Raises LogoutNotifyFailure."""
        pass
