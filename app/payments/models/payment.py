"""
Payment model: the provider payment intent behind an order.

One Payment per Order. The provider is chosen once at checkout from the
order currency and stored here; every later call (confirm, refund, lookup)
goes through the adapter for this stored provider.

Usage:
    from payments.models import Payment
    from payments.state_machines import PaymentProvider

    payment = Payment.objects.create(
        order=order,
        provider=PaymentProvider.STRIPE,
        provider_payment_id="pi_123",
        amount=order.amount,
        currency=order.currency,
    )
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import OptimisticLockMixin, UUIDPrimaryKeyMixin

from payments.state_machines import PaymentProvider, PaymentStatus


class Payment(UUIDPrimaryKeyMixin, OptimisticLockMixin, BaseModel):
    """
    Provider payment intent for an order.

    State Flow:
        CREATED -> REQUIRES_PAYMENT_METHOD <-> PROCESSING
        CREATED/REQUIRES_PAYMENT_METHOD/PROCESSING -> SUCCEEDED/FAILED
        FAILED -> SUCCEEDED (provider capture is authoritative)
        SUCCEEDED -> REFUNDED (full refund only)

    Transitions are driven by verified webhook events. Client
    confirmation only records the attempt.

    Fields:
        order: The order being paid
        provider: stripe or toss, fixed at creation
        provider_payment_id: PaymentIntent id (pi_xxx) or Toss paymentKey
        amount/currency: Copy of the order amount sent to the provider
        payment_method: Snapshot of the payment method used (JSON)
        customer_id: Provider customer id, when the provider has one
        failure_code/failure_message: Last decline reported by the provider
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    order = models.OneToOneField(
        "payments.Order",
        on_delete=models.PROTECT,
        related_name="payment",
    )

    # ==========================================================================
    # Provider
    # ==========================================================================

    provider = models.CharField(
        max_length=20,
        choices=PaymentProvider.choices,
        help_text="Payment rail selected at checkout",
    )

    provider_payment_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Provider payment id (Stripe PaymentIntent or Toss paymentKey)",
    )

    customer_id = models.CharField(max_length=255, null=True, blank=True)

    amount = models.PositiveBigIntegerField(
        help_text="Amount in smallest currency unit",
    )

    currency = models.CharField(max_length=3, default="usd")

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=PaymentStatus.CREATED,
        choices=PaymentStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current payment status (managed by FSM)",
    )

    payment_method = models.JSONField(default=dict, blank=True)

    failure_code = models.CharField(max_length=100, null=True, blank=True)
    failure_message = models.TextField(null=True, blank=True)

    succeeded_at = models.DateTimeField(null=True, blank=True)
    failed_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)

    metadata = models.JSONField(default=dict, blank=True)

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        indexes = [
            models.Index(fields=["provider", "status"], name="payment_provider_status_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["provider", "provider_payment_id"],
                name="payment_provider_id_unique",
            ),
        ]

    def __str__(self) -> str:
        return f"Payment({self.provider}:{self.provider_payment_id}, {self.status})"

    @property
    def is_terminal(self) -> bool:
        return self.status in (PaymentStatus.SUCCEEDED, PaymentStatus.REFUNDED)

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=[PaymentStatus.CREATED, PaymentStatus.PROCESSING],
        target=PaymentStatus.REQUIRES_PAYMENT_METHOD,
    )
    def require_payment_method(self, code: str | None = None, message: str | None = None):
        """
        Provider needs a (new) payment method.

        Transition: CREATED/PROCESSING -> REQUIRES_PAYMENT_METHOD
        """
        if code:
            self.failure_code = code
            self.failure_message = message

    @transition(
        field=status,
        source=[PaymentStatus.CREATED, PaymentStatus.REQUIRES_PAYMENT_METHOD],
        target=PaymentStatus.PROCESSING,
    )
    def start_processing(self):
        """
        Provider is processing the charge.

        Transition: CREATED/REQUIRES_PAYMENT_METHOD -> PROCESSING
        """
        pass

    @transition(
        field=status,
        source=[
            PaymentStatus.CREATED,
            PaymentStatus.REQUIRES_PAYMENT_METHOD,
            PaymentStatus.PROCESSING,
            PaymentStatus.FAILED,
        ],
        target=PaymentStatus.SUCCEEDED,
    )
    def succeed(self, payment_method: dict | None = None):
        """
        Provider captured the funds.

        Transition: CREATED/REQUIRES_PAYMENT_METHOD/PROCESSING/FAILED -> SUCCEEDED
        """
        self.succeeded_at = timezone.now()
        self.failure_code = None
        self.failure_message = None
        if payment_method:
            self.payment_method = payment_method

    @transition(
        field=status,
        source=[
            PaymentStatus.CREATED,
            PaymentStatus.REQUIRES_PAYMENT_METHOD,
            PaymentStatus.PROCESSING,
        ],
        target=PaymentStatus.FAILED,
    )
    def fail(self, code: str | None = None, message: str | None = None):
        """
        Provider reported a terminal failure.

        Transition: CREATED/REQUIRES_PAYMENT_METHOD/PROCESSING -> FAILED
        """
        self.failed_at = timezone.now()
        self.failure_code = code
        self.failure_message = message

    @transition(
        field=status,
        source=PaymentStatus.SUCCEEDED,
        target=PaymentStatus.REFUNDED,
    )
    def mark_refunded(self):
        """
        Whole amount returned to the buyer.

        Transition: SUCCEEDED -> REFUNDED
        """
        self.refunded_at = timezone.now()
