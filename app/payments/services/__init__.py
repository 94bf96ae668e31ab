"""
Payment services for coordinating money movement.

This module provides:
- CheckoutService: Order creation and client confirmation
- PaymentStateService: Applies provider payment events to Payment/Order
- RefundService: Refund requests and provider refund confirmations
- SettlementService: Settlement computation, payouts and reporting
- VerifierPayoutService: Records and reports verification earnings
- PlanService / SubscriptionService: Plan catalogue, changes, proration

Usage:
    from payments.services import CheckoutService

    checkout = CheckoutService.create_checkout(buyer, product)

    # Request a partial refund
    from payments.services import RefundService

    refund = RefundService.request_refund(order, buyer, amount=2500)

    # Settle last month for one seller
    from payments.services import SettlementService

    start, end = SettlementService.previous_month_period()
    settlements = SettlementService.calculate_settlement(seller, start, end)
"""

from payments.services.checkout_service import CheckoutResult, CheckoutService
from payments.services.fees import (
    SELLER_TIER_FEE_RATES,
    calculate_platform_fee,
    fee_rate_for,
    split_refund_fee,
)
from payments.services.payment_service import PaymentStateService
from payments.services.refund_service import RefundService
from payments.services.settlement_service import (
    SettlementRunSummary,
    SettlementService,
    VerifierPayoutService,
    previous_month_period,
)
from payments.services.subscription_service import (
    PlanService,
    ProrationResult,
    SubscriptionService,
    calculate_proration,
)

__all__ = [
    "CheckoutResult",
    "CheckoutService",
    "PaymentStateService",
    "PlanService",
    "ProrationResult",
    "RefundService",
    "SELLER_TIER_FEE_RATES",
    "SettlementRunSummary",
    "SettlementService",
    "SubscriptionService",
    "VerifierPayoutService",
    "calculate_platform_fee",
    "calculate_proration",
    "fee_rate_for",
    "previous_month_period",
    "split_refund_fee",
]
