"""
Identity and VIP state.

Design principles:
1. One owner for the effective user: AuthSessionManager
2. Merging and tier checks are pure functions, testable offline
3. Cached data is for display, never for authorization
"""

from accountlink.auth.tiers import TIER_RANK, VIPTier, tier_rank
from accountlink.auth.vip import (
    days_remaining,
    effective_tier,
    has_tier,
    is_vip,
    vip_features,
)
from accountlink.auth.identity import IdentityReconciler, merge, stable_key
from accountlink.auth.session import AuthSessionManager, SessionState, SessionStatus

__all__ = [
    # Tiers
    "TIER_RANK",
    "VIPTier",
    "tier_rank",
    # VIP
    "days_remaining",
    "effective_tier",
    "has_tier",
    "is_vip",
    "vip_features",
    # Identity
    "IdentityReconciler",
    "merge",
    "stable_key",
    # Session
    "AuthSessionManager",
    "SessionState",
    "SessionStatus",
]
