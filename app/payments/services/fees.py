"""
Platform fee calculation.

The platform keeps a percentage of every order. The rate depends on the
seller's tier at the moment the payment succeeds; sellers without a tier
pay the PLATFORM_FEE_PERCENT fallback.

Usage:
    from payments.services.fees import calculate_platform_fee

    fee = calculate_platform_fee(9900, seller)   # 1485 at the 15% rate
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

from django.conf import settings

from authentication.models import SellerTier

# Seller tier -> platform fee rate
SELLER_TIER_FEE_RATES: dict[str, Decimal] = {
    SellerTier.NEW: Decimal("0.20"),
    SellerTier.VERIFIED: Decimal("0.15"),
    SellerTier.PRO: Decimal("0.12"),
    SellerTier.MASTER: Decimal("0.10"),
}


def fee_rate_for(seller) -> Decimal:
    """Fee rate for a seller, falling back to PLATFORM_FEE_PERCENT."""
    tier = getattr(seller, "seller_tier", None)
    if tier in SELLER_TIER_FEE_RATES:
        return SELLER_TIER_FEE_RATES[tier]
    return Decimal(str(settings.PLATFORM_FEE_PERCENT)) / Decimal(100)


def calculate_platform_fee(amount: int, seller=None, rate: Decimal | None = None) -> int:
    """
    Platform fee for an amount, rounded half-up to a whole minor unit.

    Args:
        amount: Order amount in smallest currency unit
        seller: Seller whose tier picks the rate
        rate: Explicit rate, overrides the seller's

    Returns:
        Fee in smallest currency unit, never more than amount
    """
    if amount <= 0:
        return 0
    if rate is None:
        rate = fee_rate_for(seller)
    fee = (Decimal(amount) * rate).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return min(int(fee), amount)


def split_refund_fee(platform_fee: int, order_amount: int, refund_amount: int) -> int:
    """
    Share of an order's platform fee reversed by a refund.

    Proportional and floored; a refund of the whole remainder reverses
    whatever fee is left, so the caller passes remaining figures.
    """
    if order_amount <= 0:
        return 0
    if refund_amount >= order_amount:
        return platform_fee
    return platform_fee * refund_amount // order_amount
