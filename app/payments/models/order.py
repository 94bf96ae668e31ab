"""
Product and Order models.

Order is the buyer-facing purchase record. It carries the revenue split
(platform fee and seller share) captured when the payment succeeds, the
refund totals applied against it, and the settlement it was paid out in.

Usage:
    from payments.models import Order, Product
    from payments.state_machines import OrderStatus

    order = Order.objects.create(
        buyer=buyer,
        product=product,
        amount=product.price,
        currency=product.currency,
        seller_amount=product.price,
    )

    # Driven by the payment state machine, never by clients
    order.mark_paid(platform_fee=1485)
    order.save()
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import F, Q
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import BaseModel
from core.model_mixins import OptimisticLockMixin, UUIDPrimaryKeyMixin

from payments.state_machines import OrderStatus


class Product(UUIDPrimaryKeyMixin, BaseModel):
    """
    Catalogue entry sold by a seller.

    Only the fields the payment flow needs: owner, price and currency.
    """

    seller = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="products",
        help_text="Seller or service provider who owns the product",
    )

    title = models.CharField(max_length=200)

    price = models.PositiveBigIntegerField(
        help_text="Price in smallest currency unit",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    is_active = models.BooleanField(default=True, db_index=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Product"
        verbose_name_plural = "Products"
        constraints = [
            models.CheckConstraint(
                condition=Q(price__gt=0),
                name="product_price_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"{self.title} ({self.price} {self.currency.upper()})"


class Order(UUIDPrimaryKeyMixin, OptimisticLockMixin, BaseModel):
    """
    A buyer's purchase of a product.

    State Flow:
        PENDING -> PAID -> COMPLETED
        PENDING -> FAILED
        FAILED -> PAID (provider reported success after a failure)
        PAID/COMPLETED -> REFUNDED (full refund)

    Money fields (all smallest currency unit):
        amount: What the buyer pays
        platform_fee: Platform commission, fixed when the order is paid
        seller_amount: amount - platform_fee
        refunded_amount: Sum of succeeded refunds
        refunded_platform_fee: Fee share reversed by those refunds

    Settlement:
        settlement is NULL until the order is included in a seller
        settlement; settled orders are never picked up again.
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    buyer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="orders",
        help_text="User purchasing the product",
    )

    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,
        related_name="orders",
    )

    # ==========================================================================
    # Amount & Revenue Split
    # ==========================================================================

    amount = models.PositiveBigIntegerField(
        help_text="Order amount in smallest currency unit",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    platform_fee = models.PositiveBigIntegerField(
        default=0,
        help_text="Platform commission captured at payment time",
    )

    seller_amount = models.PositiveBigIntegerField(
        help_text="Seller share: amount - platform_fee",
    )

    refunded_amount = models.PositiveBigIntegerField(default=0)

    refunded_platform_fee = models.PositiveBigIntegerField(default=0)

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=OrderStatus.PENDING,
        choices=OrderStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current order status (managed by FSM)",
    )

    access_granted = models.BooleanField(
        default=False,
        help_text="Whether the buyer can access the purchased product",
    )

    failure_code = models.CharField(max_length=100, null=True, blank=True)
    failure_message = models.TextField(null=True, blank=True)

    # ==========================================================================
    # Settlement
    # ==========================================================================

    settlement = models.ForeignKey(
        "payments.Settlement",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="orders",
        help_text="Seller settlement this order was paid out in",
    )

    # ==========================================================================
    # State Timestamps
    # ==========================================================================

    paid_at = models.DateTimeField(null=True, blank=True, db_index=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)
    settled_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Order"
        verbose_name_plural = "Orders"
        indexes = [
            models.Index(fields=["buyer", "status"], name="order_buyer_status_idx"),
            models.Index(fields=["status", "paid_at"], name="order_status_paid_at_idx"),
            models.Index(fields=["settlement", "status"], name="order_settlement_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount__gt=0),
                name="order_amount_positive",
            ),
            models.CheckConstraint(
                condition=Q(seller_amount=F("amount") - F("platform_fee")),
                name="order_revenue_split_balanced",
            ),
            models.CheckConstraint(
                condition=Q(refunded_amount__lte=F("amount")),
                name="order_refund_within_amount",
            ),
        ]

    def __str__(self) -> str:
        """Return string representation with ID, status, and amount."""
        return f"Order({self.id}, {self.status}, {self.amount} {self.currency.upper()})"

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def seller(self):
        return self.product.seller

    @property
    def refundable_amount(self) -> int:
        """Amount that can still be refunded."""
        return self.amount - self.refunded_amount

    @property
    def net_amount(self) -> int:
        """Gross amount after refunds."""
        return self.amount - self.refunded_amount

    @property
    def net_platform_fee(self) -> int:
        return self.platform_fee - self.refunded_platform_fee

    @property
    def net_seller_amount(self) -> int:
        """Seller share after refunds. What a settlement pays for this order."""
        return self.net_amount - self.net_platform_fee

    @property
    def is_settled(self) -> bool:
        return self.settlement_id is not None

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=[OrderStatus.PENDING, OrderStatus.FAILED],
        target=OrderStatus.PAID,
    )
    def mark_paid(self, platform_fee: int):
        """
        Mark the order paid and capture the platform fee.

        Transition: PENDING/FAILED -> PAID

        Args:
            platform_fee: Fee computed from the seller's rate at this moment
        """
        self.platform_fee = platform_fee
        self.seller_amount = self.amount - platform_fee
        self.paid_at = timezone.now()
        self.access_granted = True
        self.failure_code = None
        self.failure_message = None

    @transition(
        field=status,
        source=OrderStatus.PENDING,
        target=OrderStatus.FAILED,
    )
    def mark_failed(self, code: str | None = None, message: str | None = None):
        """
        Mark the order failed. No financial side effects.

        Transition: PENDING -> FAILED
        """
        self.failure_code = code
        self.failure_message = message

    @transition(
        field=status,
        source=OrderStatus.PAID,
        target=OrderStatus.COMPLETED,
    )
    def complete(self):
        """
        Mark the order fulfilled.

        Transition: PAID -> COMPLETED
        """
        self.completed_at = timezone.now()

    @transition(
        field=status,
        source=[OrderStatus.PAID, OrderStatus.COMPLETED],
        target=OrderStatus.REFUNDED,
    )
    def mark_refunded(self):
        """
        Mark the order fully refunded and revoke access.

        Transition: PAID/COMPLETED -> REFUNDED
        """
        self.refunded_at = timezone.now()
        self.access_granted = False

    def apply_refund(self, amount: int, platform_fee_reversed: int) -> None:
        """
        Add a succeeded refund to the running refund totals.

        Note: Does not save and does not change status - the refund
        service decides whether the order is now fully refunded.
        """
        self.refunded_amount += amount
        self.refunded_platform_fee += platform_fee_reversed
        if self.refunded_at is None:
            self.refunded_at = timezone.now()
