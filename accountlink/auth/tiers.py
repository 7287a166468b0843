"""
VIP tiers and their ranking.

This defines the ORDER of tiers, not what a tier unlocks.
Feature gating lives in vip.py.
"""

from enum import Enum


class VIPTier(str, Enum):
    """Platform-wide membership tier."""

    BASIC = "basic"
    PREMIUM = "premium"
    ENTERPRISE = "enterprise"


# Every tier comparison goes through this table
TIER_RANK: dict[VIPTier, int] = {
    VIPTier.BASIC: 1,
    VIPTier.PREMIUM: 2,
    VIPTier.ENTERPRISE: 3,
}


def tier_rank(tier: VIPTier | str | None) -> int:
    """Rank of a tier; unknown or missing tiers rank 0."""
    if tier is None:
        return 0
    if not isinstance(tier, VIPTier):
        try:
            tier = VIPTier(tier)
        except ValueError:
            return 0
    return TIER_RANK.get(tier, 0)


def tier_at_least(tier: VIPTier | str | None, required: VIPTier | str) -> bool:
    """Compare two tiers by rank alone, ignoring membership state."""
    return tier_rank(tier) >= tier_rank(required)
