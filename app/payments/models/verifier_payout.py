"""
VerifierPayout model: a verification expert's earning for one verification.

Verifier earnings are passed through in full (no platform fee) and paid
out in the verifier's monthly settlement.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import Q
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import VerifierPayoutStatus


class VerifierPayout(UUIDPrimaryKeyMixin, BaseModel):
    """
    Earning owed to a verifier for a completed verification.

    State Flow:
        PENDING -> INCLUDED_IN_SETTLEMENT -> PAID

    Fields:
        verifier: User who performed the verification
        verification_reference: External verification id (unique)
        amount/currency: Earning in smallest currency unit
        settlement: Verifier settlement that pays this earning
    """

    verifier = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="verifier_payouts",
    )

    verification_reference = models.CharField(
        max_length=255,
        unique=True,
        help_text="Identifier of the verification this earning is for",
    )

    amount = models.PositiveBigIntegerField()
    currency = models.CharField(max_length=3, default="usd")

    status = FSMField(
        default=VerifierPayoutStatus.PENDING,
        choices=VerifierPayoutStatus.choices,
        db_index=True,
        protected=True,
    )

    settlement = models.ForeignKey(
        "payments.Settlement",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="verifier_payouts",
    )

    paid_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Verifier Payout"
        verbose_name_plural = "Verifier Payouts"
        indexes = [
            models.Index(fields=["verifier", "status", "created_at"], name="verifier_payout_lookup_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name="verifier_payout_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"VerifierPayout({self.verification_reference}, {self.amount} {self.currency.upper()})"

    @transition(
        field=status,
        source=VerifierPayoutStatus.PENDING,
        target=VerifierPayoutStatus.INCLUDED_IN_SETTLEMENT,
    )
    def include_in(self, settlement):
        """
        Transition: PENDING -> INCLUDED_IN_SETTLEMENT
        """
        self.settlement = settlement

    @transition(
        field=status,
        source=VerifierPayoutStatus.INCLUDED_IN_SETTLEMENT,
        target=VerifierPayoutStatus.PAID,
    )
    def mark_paid(self):
        """
        Transition: INCLUDED_IN_SETTLEMENT -> PAID
        """
        self.paid_at = timezone.now()
