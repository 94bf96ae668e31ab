"""
Settlement and SettlementItem models.

A Settlement is one payout to one payee (seller or verifier) for one
half-open period [period_start, period_end) in one currency. Its items
list every source row it pays for: paid orders, verification earnings,
and negative adjustments for refunds issued after an earlier settlement.

Usage:
    from payments.models import Settlement
    from payments.state_machines import SettlementStatus

    settlement = Settlement.objects.get(id=settlement_id)
    settlement.start_payout(method=PayoutMethod.STRIPE_CONNECT)
    settlement.save()
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import OptimisticLockMixin, UUIDPrimaryKeyMixin

from payments.state_machines import (
    PayoutMethod,
    SettlementItemType,
    SettlementStatus,
    SettlementType,
)


class Settlement(UUIDPrimaryKeyMixin, OptimisticLockMixin, BaseModel):
    """
    Periodic payout to a seller or verifier.

    State Flow:
        PENDING -> PROCESSING -> PAID
        PENDING -> PAID (nothing to pay out)
        PROCESSING -> FAILED -> PROCESSING (operator retry)
        PENDING/FAILED -> CANCELLED (manual override)

    Totals (smallest currency unit, signed because refund
    adjustments are negative):
        total_amount: Sum of item amounts
        platform_fee: Sum of item platform fees
        payout_amount: total_amount - platform_fee
        refund_amount: Absolute sum of attached refund adjustments

    Uniqueness:
        One settlement per (payee, type, currency, period). A concurrent
        second run for the same payee fails on this constraint.
    """

    # ==========================================================================
    # Payee & Period
    # ==========================================================================

    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="settlements",
        help_text="Payee: the seller, or the verifier for verifier settlements",
    )

    settlement_type = models.CharField(
        max_length=20,
        choices=SettlementType.choices,
        default=SettlementType.SELLER,
    )

    currency = models.CharField(max_length=3, default="usd")

    period_start = models.DateTimeField(help_text="Inclusive period start")
    period_end = models.DateTimeField(help_text="Exclusive period end")

    # ==========================================================================
    # Totals
    # ==========================================================================

    total_amount = models.BigIntegerField(default=0)
    platform_fee = models.BigIntegerField(default=0)
    payout_amount = models.BigIntegerField(default=0)
    refund_amount = models.BigIntegerField(default=0)
    order_count = models.PositiveIntegerField(default=0)
    verification_earnings = models.BigIntegerField(default=0)
    verification_count = models.PositiveIntegerField(default=0)

    # ==========================================================================
    # State & Payout
    # ==========================================================================

    status = FSMField(
        default=SettlementStatus.PENDING,
        choices=SettlementStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current settlement status (managed by FSM)",
    )

    payout_method = models.CharField(
        max_length=20,
        choices=PayoutMethod.choices,
        default=PayoutMethod.BANK_TRANSFER,
    )

    payout_reference = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Bank transfer reference or Stripe Transfer id (tr_xxx)",
    )

    paid_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    failure_reason = models.TextField(null=True, blank=True)

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-period_start", "-created_at"]
        verbose_name = "Settlement"
        verbose_name_plural = "Settlements"
        indexes = [
            models.Index(fields=["seller", "status"], name="settlement_seller_status_idx"),
            models.Index(fields=["status", "period_start"], name="settlement_status_period_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["seller", "settlement_type", "currency", "period_start", "period_end"],
                name="settlement_unique_payee_period",
            ),
            models.CheckConstraint(
                condition=Q(period_end__gt=models.F("period_start")),
                name="settlement_period_ordered",
            ),
        ]

    def __str__(self) -> str:
        return (
            f"Settlement({self.seller_id}, {self.settlement_type}, "
            f"{self.period_start:%Y-%m-%d}..{self.period_end:%Y-%m-%d}, {self.status})"
        )

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=[SettlementStatus.PENDING, SettlementStatus.FAILED],
        target=SettlementStatus.PROCESSING,
    )
    def start_payout(self, method: str | None = None):
        """
        Payout submitted to the bank or Stripe Connect.

        Transition: PENDING/FAILED -> PROCESSING
        """
        if method:
            self.payout_method = method
        self.failure_reason = None
        self.failed_at = None

    @transition(
        field=status,
        source=SettlementStatus.PROCESSING,
        target=SettlementStatus.PAID,
    )
    def mark_paid(self, reference: str | None = None):
        """
        Payee received the funds.

        Transition: PROCESSING -> PAID
        """
        self.paid_at = timezone.now()
        if reference:
            self.payout_reference = reference

    @transition(
        field=status,
        source=SettlementStatus.PENDING,
        target=SettlementStatus.PAID,
    )
    def close_without_payout(self):
        """
        Settled with a zero balance; no money moves.

        Transition: PENDING -> PAID
        """
        self.paid_at = timezone.now()

    @transition(
        field=status,
        source=SettlementStatus.PROCESSING,
        target=SettlementStatus.FAILED,
    )
    def mark_failed(self, reason: str):
        """
        Payout was rejected. Orders stay settled; an operator retries or cancels.

        Transition: PROCESSING -> FAILED
        """
        self.failed_at = timezone.now()
        self.failure_reason = reason

    @transition(
        field=status,
        source=[SettlementStatus.PENDING, SettlementStatus.FAILED],
        target=SettlementStatus.CANCELLED,
    )
    def cancel(self, reason: str | None = None):
        """
        Manual override. Terminal.

        Transition: PENDING/FAILED -> CANCELLED
        """
        self.cancelled_at = timezone.now()
        if reason:
            self.failure_reason = reason


class SettlementItem(UUIDPrimaryKeyMixin, BaseModel):
    """
    One line of a settlement, pointing at exactly one source row.

    Item types:
        ORDER: A paid order, amounts net of refunds applied before settlement
        VERIFICATION: A verifier payout, no platform fee
        REFUND_ADJUSTMENT: Negative line for a refund issued after the
            order was settled. Created with settlement NULL and attached by
            the seller's next settlement.
        CARRIED_FORWARD: Positive line bringing a negative settlement to zero
        BROUGHT_FORWARD: The matching negative balance, unattached until the
            seller's next settlement picks it up
    """

    settlement = models.ForeignKey(
        Settlement,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="items",
    )

    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="settlement_items",
    )

    item_type = models.CharField(
        max_length=20,
        choices=SettlementItemType.choices,
        db_index=True,
    )

    # Exactly one of the source references is set
    order = models.ForeignKey(
        "payments.Order",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="settlement_items",
    )
    verifier_payout = models.ForeignKey(
        "payments.VerifierPayout",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="settlement_items",
    )
    refund = models.ForeignKey(
        "payments.Refund",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="settlement_items",
    )
    balance_source = models.ForeignKey(
        Settlement,
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="balance_items",
        help_text="Settlement whose negative balance this line carries",
    )

    currency = models.CharField(max_length=3, default="usd")
    amount = models.BigIntegerField()
    platform_fee = models.BigIntegerField(default=0)
    payout_amount = models.BigIntegerField()
    description = models.CharField(max_length=255, blank=True, default="")

    class Meta:
        ordering = ["created_at"]
        verbose_name = "Settlement Item"
        verbose_name_plural = "Settlement Items"
        indexes = [
            models.Index(fields=["seller", "item_type", "settlement"], name="settlement_item_lookup_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["order"],
                condition=Q(item_type=SettlementItemType.ORDER),
                name="settlement_item_unique_order",
            ),
            models.UniqueConstraint(
                fields=["verifier_payout"],
                condition=Q(verifier_payout__isnull=False),
                name="settlement_item_unique_verifier_payout",
            ),
            models.UniqueConstraint(
                fields=["refund"],
                condition=Q(refund__isnull=False),
                name="settlement_item_unique_refund",
            ),
            models.UniqueConstraint(
                fields=["balance_source", "item_type"],
                condition=Q(balance_source__isnull=False),
                name="settlement_item_unique_balance",
            ),
            models.CheckConstraint(
                condition=(
                    Q(
                        item_type=SettlementItemType.ORDER,
                        order__isnull=False,
                        verifier_payout__isnull=True,
                        refund__isnull=True,
                        balance_source__isnull=True,
                    )
                    | Q(
                        item_type=SettlementItemType.VERIFICATION,
                        order__isnull=True,
                        verifier_payout__isnull=False,
                        refund__isnull=True,
                        balance_source__isnull=True,
                    )
                    | Q(
                        item_type=SettlementItemType.REFUND_ADJUSTMENT,
                        verifier_payout__isnull=True,
                        refund__isnull=False,
                        balance_source__isnull=True,
                    )
                    | Q(
                        item_type__in=[
                            SettlementItemType.CARRIED_FORWARD,
                            SettlementItemType.BROUGHT_FORWARD,
                        ],
                        order__isnull=True,
                        verifier_payout__isnull=True,
                        refund__isnull=True,
                        balance_source__isnull=False,
                    )
                ),
                name="settlement_item_single_source",
            ),
            models.CheckConstraint(
                condition=(
                    Q(settlement__isnull=False)
                    | Q(
                        item_type__in=[
                            SettlementItemType.REFUND_ADJUSTMENT,
                            SettlementItemType.BROUGHT_FORWARD,
                        ]
                    )
                ),
                name="settlement_item_attached",
            ),
        ]

    def __str__(self) -> str:
        return f"SettlementItem({self.item_type}, {self.payout_amount} {self.currency.upper()})"
