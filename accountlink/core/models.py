"""
Core data models for accountlink.

Everything that crosses the collaborator boundary is parsed into one of
these models first. The three identity shapes (admin, platform, merged)
carry a ``kind`` tag so stored records say which one they are.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# Enums
# =============================================================================


class Platform(str, Enum):
    """Creator platforms an account can be linked to."""

    BILIBILI = "bilibili"
    DOUYIN = "douyin"
    YOUTUBE = "youtube"
    KUAISHOU = "kuaishou"
    WECHAT_CHANNELS = "wechat_channels"


class PollStatus(str, Enum):
    """Status reported by the backend for one QR code key."""

    PENDING = "pending"  # Scanned on the phone, not yet confirmed
    BOUND = "bound"  # Confirmed, account linked
    EXPIRED = "expired"  # Code no longer valid


class BindingState(str, Enum):
    """Lifecycle of a single QR binding attempt."""

    INITIALIZING = "initializing"
    AWAITING_SCAN = "awaiting_scan"
    PENDING_CONFIRMATION = "pending_confirmation"
    BOUND = "bound"
    EXPIRED = "expired"
    ERROR = "error"

    @property
    def is_terminal(self) -> bool:
        return self in (BindingState.BOUND, BindingState.EXPIRED, BindingState.ERROR)

    @property
    def is_waiting(self) -> bool:
        return self in (BindingState.AWAITING_SCAN, BindingState.PENDING_CONFIRMATION)


class IdentitySource(str, Enum):
    """Which system backs the merged identity's ``id``."""

    ADMIN = "admin"
    PLATFORM = "platform"


# =============================================================================
# Binding protocol
# =============================================================================


class QRCodeTicket(BaseModel):
    """A freshly issued QR code."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    qr_payload: str = Field(alias="qr_code")
    qr_code_key: str
    expires_in_seconds: int | None = Field(default=None, alias="expires_in")

    @field_validator("expires_in_seconds", mode="before")
    @classmethod
    def _zero_means_unset(cls, value: Any) -> Any:
        # The backend sends 0 when it has no opinion
        if value in (0, "0", ""):
            return None
        return value


class PollResult(BaseModel):
    """One answer from the poll endpoint."""

    model_config = ConfigDict(frozen=True)

    status: PollStatus | None = None
    platform: str | None = None
    platform_uid: str | None = None
    username: str | None = None
    avatar: str | None = None

    @field_validator("status", mode="before")
    @classmethod
    def _ignore_unknown_status(cls, value: Any) -> Any:
        if value in {s.value for s in PollStatus} or isinstance(value, PollStatus):
            return value
        return None

    @field_validator("platform_uid", mode="before")
    @classmethod
    def _uid_as_str(cls, value: Any) -> Any:
        return str(value) if value is not None else None


# =============================================================================
# Identities
# =============================================================================


class AdminIdentity(BaseModel):
    """The locally issued admin session's user record."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["admin"] = "admin"
    id: str
    name: str | None = None
    username: str | None = None
    email: str | None = None
    avatar: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _id_as_str(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value

    @property
    def best_name(self) -> str:
        return self.name or self.username or "Admin"


class PlatformIdentity(BaseModel):
    """An account on a creator platform, as verified by the backend."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["platform"] = "platform"
    uid: str
    display_name: str | None = None
    avatar: str | None = None
    platform: str = Platform.BILIBILI.value

    @field_validator("uid", mode="before")
    @classmethod
    def _uid_as_str(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value


class Identity(BaseModel):
    """The single effective user record exposed to the rest of the app."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["merged"] = "merged"
    id: str
    display_name: str
    avatar: str | None = None
    platform_uid: str | None = None
    source: IdentitySource
    admin_id: str
    username: str | None = None
    email: str | None = None

    @property
    def is_linked(self) -> bool:
        return self.platform_uid is not None


# =============================================================================
# VIP / profile
# =============================================================================


class VIPStatus(BaseModel):
    """
    Membership facts as reported by the platform.

    ``tier`` stays a plain string so that tiers this client does not know
    about survive the round trip and simply rank as 0.
    """

    model_config = ConfigDict(frozen=True)

    is_vip: bool = False
    tier: str | None = None
    expire_time: datetime | None = None

    @field_validator("tier", mode="before")
    @classmethod
    def _blank_tier(cls, value: Any) -> Any:
        if value == "":
            return None
        return value


class UserProfile(BaseModel):
    """Platform-managed profile, including the embedded VIP status."""

    model_config = ConfigDict(frozen=True)

    uid: str
    email: str | None = None
    display_name: str | None = None
    vip_status: VIPStatus | None = None
    power: int | None = None


# =============================================================================
# Bindings
# =============================================================================


class AccountBinding(BaseModel):
    """One existing link between the admin and a platform account."""

    model_config = ConfigDict(frozen=True)

    id: str
    platform: str
    platform_uid: str | None = None
    username: str | None = None
    avatar: str | None = None
    create_time: datetime | None = None
    is_primary: bool = False

    @field_validator("id", "platform_uid", mode="before")
    @classmethod
    def _as_str(cls, value: Any) -> Any:
        return str(value) if value is not None else None

    @field_validator("username", "avatar", mode="before")
    @classmethod
    def _blank_as_none(cls, value: Any) -> Any:
        if value == "":
            return None
        return value

    @field_validator("create_time", mode="before")
    @classmethod
    def _zero_time_is_unset(cls, value: Any) -> Any:
        # Unix seconds on the wire; 0 means never recorded
        if value in (0, "0", ""):
            return None
        return value
