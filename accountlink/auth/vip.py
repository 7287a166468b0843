"""
VIP status resolution.

Pure functions over a fetched ``VIPStatus``. Lapse is always computed at
read time from ``expire_time``; nothing here stores a derived flag.
"""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any

from accountlink.auth.tiers import VIPTier, tier_at_least, tier_rank
from accountlink.core.models import VIPStatus
from accountlink.core.utils import ensure_aware, utc_now


# Features unlocked for any active membership
BASE_FEATURES: dict[str, bool] = {
    "advanced_upload": True,
    "batch_processing": True,
    "priority_support": True,
    "custom_watermark": True,
    "higher_resolution": True,
}

# Extra features per tier, cumulative by rank
TIER_FEATURES: dict[VIPTier, dict[str, bool]] = {
    VIPTier.BASIC: {},
    VIPTier.PREMIUM: {
        "ai_translation": True,
        "video_analysis": True,
    },
    VIPTier.ENTERPRISE: {
        "api_access": True,
        "white_label": True,
    },
}


def is_vip(status: VIPStatus | None, now: datetime | None = None) -> bool:
    """Active membership: flagged VIP and not past its expiry."""
    if status is None or not status.is_vip:
        return False
    if status.expire_time is None:
        return True
    now = now or utc_now()
    return ensure_aware(now) <= ensure_aware(status.expire_time)


def has_tier(
    status: VIPStatus | None,
    required: VIPTier | str,
    now: datetime | None = None,
) -> bool:
    """Active membership at ``required`` rank or above."""
    return is_vip(status, now) and tier_at_least(status.tier, required)


def effective_tier(status: VIPStatus | None, now: datetime | None = None) -> str | None:
    """The tier that currently applies, or None if membership is not active."""
    if not is_vip(status, now):
        return None
    return status.tier


def days_remaining(status: VIPStatus | None, now: datetime | None = None) -> int | None:
    """
    Whole days until expiry, rounded up and never negative.

    Returns None when there is no expiry to count down to.
    """
    if status is None or status.expire_time is None:
        return None
    now = ensure_aware(now or utc_now())
    seconds = (ensure_aware(status.expire_time) - now).total_seconds()
    days = math.ceil(seconds / 86400)
    return days if days > 0 else 0


def vip_features(status: VIPStatus | None, now: datetime | None = None) -> dict[str, Any]:
    """Feature flags unlocked by the current membership."""
    if not is_vip(status, now):
        return {}

    features: dict[str, Any] = dict(BASE_FEATURES)
    rank = tier_rank(status.tier)
    for tier, extra in TIER_FEATURES.items():
        if tier_rank(tier) <= rank:
            features.update(extra)

    features["tier"] = status.tier
    features["expire_time"] = status.expire_time
    return features
