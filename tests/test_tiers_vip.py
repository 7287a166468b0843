"""
Tests for tier ranking and VIP resolution.

All pure functions: no network, no event loop.
"""

from datetime import datetime, timedelta, timezone

from accountlink.auth.tiers import TIER_RANK, VIPTier, tier_at_least, tier_rank
from accountlink.auth.vip import (
    days_remaining,
    effective_tier,
    has_tier,
    is_vip,
    vip_features,
)
from accountlink.core.models import VIPStatus

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


# =============================================================================
# Tier Ranking Tests
# =============================================================================


class TestTierRank:
    def test_fixed_order(self):
        assert tier_rank("basic") == 1
        assert tier_rank("premium") == 2
        assert tier_rank("enterprise") == 3
        assert TIER_RANK[VIPTier.PREMIUM] == 2

    def test_unknown_and_missing_rank_zero(self):
        assert tier_rank("platinum") == 0
        assert tier_rank(None) == 0
        assert tier_rank("") == 0

    def test_enum_and_string_agree(self):
        assert tier_rank(VIPTier.ENTERPRISE) == tier_rank("enterprise")

    def test_tier_at_least(self):
        assert tier_at_least("enterprise", "premium")
        assert tier_at_least("premium", "premium")
        assert not tier_at_least("basic", VIPTier.PREMIUM)
        assert not tier_at_least("platinum", "basic")


# =============================================================================
# VIP Membership Tests
# =============================================================================


class TestIsVip:
    def test_none_is_not_vip(self):
        assert not is_vip(None)

    def test_flag_without_expiry(self):
        assert is_vip(VIPStatus(is_vip=True, tier="basic"))

    def test_flag_off_wins_over_tier(self):
        assert not is_vip(VIPStatus(is_vip=False, tier="enterprise"))

    def test_expired_membership_lapses(self):
        status = VIPStatus(is_vip=True, tier="premium", expire_time=NOW - timedelta(seconds=1))
        assert not is_vip(status, now=NOW)

    def test_expiry_instant_still_counts(self):
        status = VIPStatus(is_vip=True, tier="premium", expire_time=NOW)
        assert is_vip(status, now=NOW)

    def test_naive_expiry_treated_as_utc(self):
        status = VIPStatus(is_vip=True, tier="basic", expire_time=datetime(2026, 3, 2))
        assert is_vip(status, now=NOW)

    def test_parses_wire_format(self):
        status = VIPStatus.model_validate(
            {"is_vip": True, "tier": "", "expire_time": "2026-04-01T00:00:00Z"}
        )
        assert status.tier is None
        assert is_vip(status, now=NOW)


class TestHasTier:
    def test_higher_tier_satisfies_lower(self):
        assert has_tier(VIPStatus(is_vip=True, tier="premium"), "basic")

    def test_lower_tier_fails_higher(self):
        assert not has_tier(VIPStatus(is_vip=True, tier="basic"), "premium")

    def test_non_vip_never_has_tier(self):
        assert not has_tier(VIPStatus(is_vip=False, tier="enterprise"), "basic")

    def test_lapsed_membership_has_no_tier(self):
        status = VIPStatus(is_vip=True, tier="enterprise", expire_time=NOW - timedelta(days=1))
        assert not has_tier(status, "basic", now=NOW)

    def test_unknown_tier_fails_known_requirement(self):
        assert not has_tier(VIPStatus(is_vip=True, tier="platinum"), "basic")

    def test_missing_status(self):
        assert not has_tier(None, "basic")


# =============================================================================
# Derived Facts Tests
# =============================================================================


class TestDerivedFacts:
    def test_effective_tier(self):
        assert effective_tier(VIPStatus(is_vip=True, tier="premium")) == "premium"
        assert effective_tier(VIPStatus(is_vip=False, tier="premium")) is None

    def test_days_remaining_rounds_up(self):
        status = VIPStatus(is_vip=True, expire_time=NOW + timedelta(days=2, hours=1))
        assert days_remaining(status, now=NOW) == 3

    def test_days_remaining_never_negative(self):
        status = VIPStatus(is_vip=True, expire_time=NOW - timedelta(days=5))
        assert days_remaining(status, now=NOW) == 0

    def test_days_remaining_without_expiry(self):
        assert days_remaining(VIPStatus(is_vip=True)) is None
        assert days_remaining(None) is None

    def test_features_accumulate_by_rank(self):
        features = vip_features(VIPStatus(is_vip=True, tier="enterprise"))
        assert features["advanced_upload"]
        assert features["ai_translation"]
        assert features["api_access"]
        assert features["tier"] == "enterprise"

    def test_basic_features(self):
        features = vip_features(VIPStatus(is_vip=True, tier="basic"))
        assert features["batch_processing"]
        assert "ai_translation" not in features
        assert "api_access" not in features

    def test_no_features_without_membership(self):
        assert vip_features(VIPStatus(is_vip=False, tier="enterprise")) == {}
