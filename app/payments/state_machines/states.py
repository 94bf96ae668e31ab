"""
State enums for payment models.

This module defines all state enums used by payment models with django-fsm.
These are Django TextChoices for database storage and admin integration.

State Machines Overview:

Order States:
    pending → paid → completed
    pending → failed → paid (late provider success)
    paid/completed → refunded

Payment States:
    created → requires_payment_method ⇄ processing → succeeded/failed
    failed → succeeded (late provider success)
    succeeded → refunded

Refund States:
    pending → processing → succeeded
    pending/processing → failed

Settlement States:
    pending → processing → paid
    processing → failed → processing (operator retry)
    pending/failed → cancelled

Subscription States:
    active → cancelled
    active → past_due → active/cancelled
"""

from django.db import models


class OrderStatus(models.TextChoices):
    """
    States for the Order lifecycle.

    Terminal states: REFUNDED
    PAID and COMPLETED orders are eligible for settlement.
    """

    PENDING = "pending", "Pending"
    PAID = "paid", "Paid"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"
    REFUNDED = "refunded", "Refunded"


class PaymentStatus(models.TextChoices):
    """
    States for the provider payment intent.

    Values match the normalized adapter status strings so a provider
    result can be compared against the stored state directly.
    """

    CREATED = "created", "Created"
    REQUIRES_PAYMENT_METHOD = "requires_payment_method", "Requires Payment Method"
    PROCESSING = "processing", "Processing"
    SUCCEEDED = "succeeded", "Succeeded"
    FAILED = "failed", "Failed"
    REFUNDED = "refunded", "Refunded"


class RefundStatus(models.TextChoices):
    """
    States for the Refund model lifecycle.

    Terminal states: SUCCEEDED, FAILED

    State Flow:
        PENDING → PROCESSING → SUCCEEDED (confirmed by webhook)
        PENDING/PROCESSING → FAILED
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    SUCCEEDED = "succeeded", "Succeeded"
    FAILED = "failed", "Failed"


class SettlementStatus(models.TextChoices):
    """
    States for the Settlement lifecycle.

    Terminal states: PAID, CANCELLED
    FAILED is held for operator action (retry payout or cancel).
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PAID = "paid", "Paid"
    FAILED = "failed", "Failed"
    CANCELLED = "cancelled", "Cancelled"


class SettlementType(models.TextChoices):
    """Who the settlement pays: a seller or a verification expert."""

    SELLER = "seller", "Seller"
    VERIFIER = "verifier", "Verifier"


class SettlementItemType(models.TextChoices):
    """
    Source of a settlement line.

    CARRIED_FORWARD / BROUGHT_FORWARD move a negative seller balance from
    one settlement into the next: the first zeroes the settlement that
    ran negative, the second waits unattached for the following one.
    """

    ORDER = "order", "Order"
    VERIFICATION = "verification", "Verification"
    REFUND_ADJUSTMENT = "refund_adjustment", "Refund Adjustment"
    CARRIED_FORWARD = "carried_forward", "Balance Carried Forward"
    BROUGHT_FORWARD = "brought_forward", "Balance Brought Forward"



class PayoutMethod(models.TextChoices):
    """How a settlement payout reaches the payee."""

    BANK_TRANSFER = "bank_transfer", "Bank Transfer"
    STRIPE_CONNECT = "stripe_connect", "Stripe Connect"


class VerifierPayoutStatus(models.TextChoices):
    """
    States for a verifier's per-verification earning.

    State Flow:
        PENDING → INCLUDED_IN_SETTLEMENT → PAID
    """

    PENDING = "pending", "Pending"
    INCLUDED_IN_SETTLEMENT = "included_in_settlement", "Included in Settlement"
    PAID = "paid", "Paid"


class SubscriptionStatus(models.TextChoices):
    """
    States for the Subscription model.

    A subscription scheduled to cancel stays ACTIVE with
    cancel_at_period_end set until its period ends.
    """

    ACTIVE = "active", "Active"
    PAST_DUE = "past_due", "Past Due"
    CANCELLED = "cancelled", "Cancelled"


class SubscriptionTier(models.TextChoices):
    """
    Subscription tiers in ascending order.

    Declaration order is the upgrade order; see tier_rank().
    """

    FREE = "FREE", "Free"
    BASIC = "BASIC", "Basic"
    PRO = "PRO", "Pro"
    ENTERPRISE = "ENTERPRISE", "Enterprise"


def tier_rank(tier: str) -> int:
    """Position of a tier in the upgrade order (FREE is 0)."""
    return SubscriptionTier.values.index(tier)


class BillingInterval(models.TextChoices):
    MONTHLY = "monthly", "Monthly"
    YEARLY = "yearly", "Yearly"


class PaymentProvider(models.TextChoices):
    """Payment rails. Chosen once per payment by currency."""

    STRIPE = "stripe", "Stripe"
    TOSS = "toss", "Toss Payments"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for WebhookEvent.

    Tracks the lifecycle of webhook event processing for idempotency.

    State Flow:
        PENDING → PROCESSING → PROCESSED
        PENDING → PROCESSING → FAILED (can retry)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"


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
