"""
DRF serializers for payments app.

This module provides serializers for:
- Checkout, payment confirmation and refund requests
- Orders and refunds
- Settlements, settlement items and settlement reports
- Verifier earnings reports
- Plans, subscriptions and proration quotes

Serializer Hierarchy:
    Request serializers validate input only (CheckoutRequestSerializer, ...)
    Model serializers are read-only renderings of stored rows
    Report serializers render dicts produced by the services

Usage:
    serializer = SettlementDetailSerializer(settlement)
    data = serializer.data
"""

from __future__ import annotations

from rest_framework import serializers

from payments.models import (
    Order,
    Plan,
    Refund,
    Settlement,
    SettlementItem,
    Subscription,
    SubscriptionChange,
    VerifierPayout,
)
from payments.state_machines import (
    BillingInterval,
    PayoutMethod,
    SettlementStatus,
    SubscriptionTier,
    VerifierPayoutStatus,
)


# =============================================================================
# Checkout & Orders
# =============================================================================


class CheckoutRequestSerializer(serializers.Serializer):
    """Start buying a product."""

    product_id = serializers.UUIDField()


class ConfirmPaymentSerializer(serializers.Serializer):
    """
    Client confirmation after authorization.

    Stripe sends payment_method_id, Toss sends the paymentKey from its
    redirect.
    """

    payment_method_id = serializers.CharField(required=False, allow_blank=False)
    payment_key = serializers.CharField(required=False, allow_blank=False)


class RefundRequestSerializer(serializers.Serializer):
    """Omit amount to refund everything still refundable."""

    amount = serializers.IntegerField(required=False, min_value=1)
    reason = serializers.CharField(required=False, allow_blank=True, max_length=255)


class OrderSerializer(serializers.ModelSerializer):
    product_title = serializers.CharField(source="product.title", read_only=True)
    provider = serializers.CharField(source="payment.provider", read_only=True, default=None)
    refundable_amount = serializers.IntegerField(read_only=True)

    class Meta:
        model = Order
        fields = [
            "id",
            "product",
            "product_title",
            "buyer",
            "amount",
            "currency",
            "platform_fee",
            "seller_amount",
            "refunded_amount",
            "refundable_amount",
            "status",
            "access_granted",
            "provider",
            "failure_code",
            "failure_message",
            "paid_at",
            "refunded_at",
            "settled_at",
            "created_at",
        ]
        read_only_fields = fields


class CheckoutResponseSerializer(serializers.Serializer):
    order = OrderSerializer()
    provider = serializers.CharField()
    client_secret = serializers.CharField()


class PaymentConfirmationSerializer(serializers.Serializer):
    """Provider answer to a confirmation; the order is paid by webhook."""

    payment_id = serializers.CharField()
    status = serializers.CharField()
    amount = serializers.IntegerField()
    currency = serializers.CharField()
    failure_code = serializers.CharField(allow_null=True)
    failure_message = serializers.CharField(allow_null=True)


class RefundSerializer(serializers.ModelSerializer):
    class Meta:
        model = Refund
        fields = [
            "id",
            "order",
            "amount",
            "platform_fee_reversed",
            "currency",
            "reason",
            "status",
            "provider_refund_id",
            "processed_at",
            "failed_at",
            "failure_reason",
            "created_at",
        ]
        read_only_fields = fields


# =============================================================================
# Settlements
# =============================================================================


class SettlementItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = SettlementItem
        fields = [
            "id",
            "item_type",
            "order",
            "verifier_payout",
            "refund",
            "balance_source",
            "currency",
            "amount",
            "platform_fee",
            "payout_amount",
            "description",
        ]
        read_only_fields = fields


class SettlementSerializer(serializers.ModelSerializer):
    """Settlement row for list views."""

    class Meta:
        model = Settlement
        fields = [
            "id",
            "seller",
            "settlement_type",
            "currency",
            "period_start",
            "period_end",
            "status",
            "total_amount",
            "platform_fee",
            "payout_amount",
            "refund_amount",
            "order_count",
            "verification_earnings",
            "verification_count",
            "payout_method",
            "payout_reference",
            "paid_at",
            "failed_at",
            "cancelled_at",
            "failure_reason",
            "created_at",
        ]
        read_only_fields = fields


class SettlementDetailSerializer(SettlementSerializer):
    """Settlement with its line items."""

    items = SettlementItemSerializer(many=True, read_only=True)

    class Meta(SettlementSerializer.Meta):
        fields = SettlementSerializer.Meta.fields + ["items"]
        read_only_fields = fields


class SettlementEstimateSerializer(serializers.Serializer):
    currency = serializers.CharField()
    period_start = serializers.DateTimeField()
    period_end = serializers.DateTimeField()
    gross_amount = serializers.IntegerField()
    platform_fee = serializers.IntegerField()
    refund_adjustments = serializers.IntegerField()
    net_amount = serializers.IntegerField()
    order_count = serializers.IntegerField()


class SettlementSummarySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=SettlementStatus.choices)
    currency = serializers.CharField()
    count = serializers.IntegerField()
    total_amount = serializers.IntegerField()
    platform_fee = serializers.IntegerField()
    payout_amount = serializers.IntegerField()


class ProductRevenueSerializer(serializers.Serializer):
    product_id = serializers.UUIDField()
    product_title = serializers.CharField()
    currency = serializers.CharField()
    order_count = serializers.IntegerField()
    gross_amount = serializers.IntegerField()
    platform_fee = serializers.IntegerField()
    net_amount = serializers.IntegerField()


class PayoutRequestSerializer(serializers.Serializer):
    method = serializers.ChoiceField(choices=PayoutMethod.choices, required=False)


class MarkPaidSerializer(serializers.Serializer):
    reference = serializers.CharField(required=False, allow_blank=True, max_length=255)


class MarkFailedSerializer(serializers.Serializer):
    reason = serializers.CharField()


class CancelSettlementSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True)


class RunSettlementSerializer(serializers.Serializer):
    """reference: any moment in the month after the one to settle."""

    reference = serializers.DateTimeField(required=False)


# =============================================================================
# Verifier Earnings
# =============================================================================


class VerifierPayoutSerializer(serializers.ModelSerializer):
    class Meta:
        model = VerifierPayout
        fields = [
            "id",
            "verification_reference",
            "amount",
            "currency",
            "status",
            "settlement",
            "paid_at",
            "created_at",
        ]
        read_only_fields = fields


class VerifierCurrentEarningsSerializer(serializers.Serializer):
    currency = serializers.CharField()
    period_start = serializers.DateTimeField()
    period_end = serializers.DateTimeField()
    earnings = serializers.IntegerField()
    verification_count = serializers.IntegerField()


class VerifierEarningsBreakdownSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=VerifierPayoutStatus.choices)
    currency = serializers.CharField()
    verification_count = serializers.IntegerField()
    earnings = serializers.IntegerField()


class VerifierEarningsSerializer(serializers.Serializer):
    """Current month, lifetime breakdown and unpaid rows for one verifier."""

    current = VerifierCurrentEarningsSerializer(many=True)
    breakdown = VerifierEarningsBreakdownSerializer(many=True)
    pending = VerifierPayoutSerializer(many=True)


# =============================================================================
# Plans & Subscriptions
# =============================================================================


class PlanSerializer(serializers.ModelSerializer):
    class Meta:
        model = Plan
        fields = [
            "id",
            "tier",
            "name",
            "description",
            "monthly_price",
            "yearly_price",
            "currency",
            "features",
        ]
        read_only_fields = fields


class SubscriptionSerializer(serializers.ModelSerializer):
    is_active = serializers.BooleanField(read_only=True)

    class Meta:
        model = Subscription
        fields = [
            "id",
            "tier",
            "interval",
            "status",
            "is_active",
            "current_period_start",
            "current_period_end",
            "cancel_at_period_end",
            "cancelled_at",
            "created_at",
        ]
        read_only_fields = fields


class SubscriptionChangeSerializer(serializers.ModelSerializer):
    class Meta:
        model = SubscriptionChange
        fields = [
            "id",
            "subscription",
            "from_tier",
            "to_tier",
            "interval",
            "credits_applied",
            "immediate_charge",
            "next_billing_amount",
            "next_billing_date",
            "effective_at",
        ]
        read_only_fields = fields


class ChangePlanSerializer(serializers.Serializer):
    to_tier = serializers.ChoiceField(choices=SubscriptionTier.choices)
    interval = serializers.ChoiceField(choices=BillingInterval.choices, required=False)


class CancelSubscriptionSerializer(serializers.Serializer):
    immediate = serializers.BooleanField(default=False)


class ProrationQuerySerializer(serializers.Serializer):
    to_tier = serializers.ChoiceField(choices=SubscriptionTier.choices)
    interval = serializers.ChoiceField(choices=BillingInterval.choices, required=False)


class ProrationSerializer(serializers.Serializer):
    from_tier = serializers.CharField()
    to_tier = serializers.CharField()
    interval = serializers.CharField()
    credits_applied = serializers.IntegerField()
    immediate_charge = serializers.IntegerField()
    next_billing_amount = serializers.IntegerField()
    next_billing_date = serializers.DateTimeField()
