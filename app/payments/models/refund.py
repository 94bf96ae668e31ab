"""
Refund model for tracking money returned to buyers.

An order can have several partial refunds. Each refund carries its share
of the platform fee so the seller is only charged back their own portion.

Usage:
    from payments.models import Refund

    refund = Refund.objects.create(
        order=order,
        payment=order.payment,
        requested_by=buyer,
        amount=2500,
        platform_fee_reversed=375,
        currency=order.currency,
        reason="Not as described",
    )

    refund.start_processing()  # pending -> processing
    refund.save()

    # After the provider confirms via webhook
    refund.succeed(provider_refund_id="re_123")
    refund.save()
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import OptimisticLockMixin, UUIDPrimaryKeyMixin

from payments.state_machines import RefundStatus


class Refund(UUIDPrimaryKeyMixin, OptimisticLockMixin, BaseModel):
    """
    Represents money returned to a buyer.

    State Flow:
        PENDING -> PROCESSING -> SUCCEEDED
        PENDING/PROCESSING -> FAILED

    Fields:
        order: Order being refunded
        payment: Payment the provider refunds against
        requested_by: Buyer (or staff) who asked for the refund
        amount: Refund amount in smallest currency unit
        platform_fee_reversed: Platform fee share returned with this refund
        reason: Buyer-facing reason
        provider_refund_id: Stripe Refund id (re_xxx) or Toss transactionKey
        processed_at: When the provider confirmed the refund
        failure_reason: Error details if failed

    Note:
        Refunds created by the provider side (dashboard refunds) arrive
        by webhook with no requested_by.
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    order = models.ForeignKey(
        "payments.Order",
        on_delete=models.PROTECT,
        related_name="refunds",
    )

    payment = models.ForeignKey(
        "payments.Payment",
        on_delete=models.PROTECT,
        related_name="refunds",
    )

    requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="requested_refunds",
    )

    # ==========================================================================
    # Amount & Currency
    # ==========================================================================

    amount = models.PositiveBigIntegerField(
        help_text="Refund amount in smallest currency unit",
    )

    platform_fee_reversed = models.PositiveBigIntegerField(
        default=0,
        help_text="Portion of the order's platform fee returned with this refund",
    )

    currency = models.CharField(max_length=3, default="usd")

    reason = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Reason for the refund (visible to buyer)",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=RefundStatus.PENDING,
        choices=RefundStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the refund (managed by FSM)",
    )

    provider_refund_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Provider refund id (re_xxx or Toss transactionKey)",
    )

    processed_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)
    failure_reason = models.TextField(null=True, blank=True)

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Refund"
        verbose_name_plural = "Refunds"
        indexes = [
            models.Index(fields=["order", "status"], name="refund_order_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name="refund_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Refund({self.id}, {self.status}, {self.amount} {self.currency.upper()})"

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=RefundStatus.PENDING,
        target=RefundStatus.PROCESSING,
    )
    def start_processing(self, provider_refund_id: str | None = None):
        """
        Provider accepted the refund request.

        Transition: PENDING -> PROCESSING
        """
        if provider_refund_id:
            self.provider_refund_id = provider_refund_id

    @transition(
        field=status,
        source=[RefundStatus.PENDING, RefundStatus.PROCESSING],
        target=RefundStatus.SUCCEEDED,
    )
    def succeed(self, provider_refund_id: str | None = None):
        """
        Provider confirmed the money was returned.

        Transition: PENDING/PROCESSING -> SUCCEEDED
        """
        self.processed_at = timezone.now()
        if provider_refund_id:
            self.provider_refund_id = provider_refund_id

    @transition(
        field=status,
        source=[RefundStatus.PENDING, RefundStatus.PROCESSING],
        target=RefundStatus.FAILED,
    )
    def fail(self, reason: str | None = None):
        """
        Transition: PENDING/PROCESSING -> FAILED
        """
        self.failed_at = timezone.now()
        self.failure_reason = reason
