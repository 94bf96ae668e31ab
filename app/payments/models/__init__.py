"""
Payment domain models.

This module contains all payment-related models:
- Product: Catalogue entry owned by a seller
- Order: Buyer purchase with revenue split and refund totals
- Payment: Provider payment intent behind an order
- Refund: Money returned to a buyer
- Settlement / SettlementItem: Periodic payouts and their lines
- VerifierPayout: Verification expert earnings
- Plan / Subscription / SubscriptionChange: Subscription billing
- WebhookEvent: Provider webhook tracking for idempotent processing
"""

from payments.models.order import Order, Product
from payments.models.payment import Payment
from payments.models.refund import Refund
from payments.models.settlement import Settlement, SettlementItem
from payments.models.subscription import Plan, Subscription, SubscriptionChange
from payments.models.verifier_payout import VerifierPayout
from payments.models.webhook_event import WebhookEvent

__all__ = [
    "Order",
    "Payment",
    "Plan",
    "Product",
    "Refund",
    "Settlement",
    "SettlementItem",
    "Subscription",
    "SubscriptionChange",
    "VerifierPayout",
    "WebhookEvent",
]
