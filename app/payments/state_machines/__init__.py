"""
State machine enums and helpers for payment models.

This module defines the state enums used by payment models with django-fsm.
"""

from payments.state_machines.states import (
    BillingInterval,
    OrderStatus,
    PaymentProvider,
    PaymentStatus,
    PayoutMethod,
    RefundStatus,
    SettlementItemType,
    SettlementStatus,
    SettlementType,
    SubscriptionStatus,
    SubscriptionTier,
    VerifierPayoutStatus,
    WebhookEventStatus,
    tier_rank,
)

__all__ = [
    "BillingInterval",
    "OrderStatus",
    "PaymentProvider",
    "PaymentStatus",
    "PayoutMethod",
    "RefundStatus",
    "SettlementItemType",
    "SettlementStatus",
    "SettlementType",
    "SubscriptionStatus",
    "SubscriptionTier",
    "VerifierPayoutStatus",
    "WebhookEventStatus",
    "tier_rank",
]
