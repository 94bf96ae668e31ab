"""
Tests for platform fee calculation.
"""

from decimal import Decimal
from types import SimpleNamespace

import pytest

from authentication.models import SellerTier
from payments.services.fees import (
    calculate_platform_fee,
    fee_rate_for,
    split_refund_fee,
)


class TestFeeRateFor:
    @pytest.mark.parametrize(
        "tier,expected",
        [
            (SellerTier.NEW, Decimal("0.20")),
            (SellerTier.VERIFIED, Decimal("0.15")),
            (SellerTier.PRO, Decimal("0.12")),
            (SellerTier.MASTER, Decimal("0.10")),
        ],
    )
    def test_rate_per_tier(self, tier, expected):
        assert fee_rate_for(SimpleNamespace(seller_tier=tier)) == expected

    def test_unknown_tier_falls_back_to_setting(self, settings):
        settings.PLATFORM_FEE_PERCENT = 15

        assert fee_rate_for(SimpleNamespace(seller_tier="legacy")) == Decimal("0.15")
        assert fee_rate_for(None) == Decimal("0.15")


class TestCalculatePlatformFee:
    def test_new_seller_pays_twenty_percent(self):
        seller = SimpleNamespace(seller_tier=SellerTier.NEW)

        assert calculate_platform_fee(10000, seller) == 2000

    def test_rounds_half_up(self):
        # 9900 * 0.15 = 1485, 99 * 0.15 = 14.85, 10 * 0.15 = 1.5
        rate = Decimal("0.15")

        assert calculate_platform_fee(9900, rate=rate) == 1485
        assert calculate_platform_fee(99, rate=rate) == 15
        assert calculate_platform_fee(10, rate=rate) == 2

    def test_explicit_rate_overrides_tier(self):
        seller = SimpleNamespace(seller_tier=SellerTier.NEW)

        assert calculate_platform_fee(10000, seller, rate=Decimal("0.10")) == 1000

    def test_never_exceeds_amount(self):
        assert calculate_platform_fee(1, rate=Decimal("1.5")) == 1

    def test_non_positive_amount_has_no_fee(self):
        assert calculate_platform_fee(0, rate=Decimal("0.2")) == 0


class TestSplitRefundFee:
    def test_proportional_share_is_floored(self):
        # 2000 * 3333 / 10000 = 666.6
        assert split_refund_fee(2000, 10000, 3333) == 666

    def test_full_refund_reverses_whole_fee(self):
        assert split_refund_fee(2000, 10000, 10000) == 2000

    def test_remaining_refund_reverses_remaining_fee(self):
        # After a 3333 refund reversing 666, the rest reverses 1334
        assert split_refund_fee(2000 - 666, 10000 - 3333, 10000 - 3333) == 1334

    def test_zero_order_amount(self):
        assert split_refund_fee(0, 0, 100) == 0
