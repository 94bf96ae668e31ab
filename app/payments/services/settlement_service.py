"""
Settlement service: periodic payouts to sellers and verifiers.

A settlement pays one payee for one half-open period [start, end) in one
currency. Seller settlements collect paid orders that were never settled
plus any refund adjustments waiting for the seller; verifier settlements
collect pending verification earnings with no platform fee. Sources paid
before period_start that an earlier run missed roll into the next
settlement instead of being dropped.

Sources are marked settled in the same transaction that inserts the
Settlement, and the unique constraint on (payee, type, currency, period)
makes a concurrent second run for the same payee fail instead of paying
twice.

A seller settlement that would pay out a negative amount is closed at zero
and the shortfall is carried into the seller's next settlement.

Usage:
    from payments.services import SettlementService

    start, end = SettlementService.previous_month_period()
    settlements = SettlementService.calculate_settlement(seller, start, end)

    settlement = SettlementService.process_payout(settlements[0])
    SettlementService.mark_paid(settlement, reference="BANK-2026-10-0042")
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from datetime import timezone as dt_timezone
from typing import TYPE_CHECKING, Any

from django.conf import settings
from django.core.mail import send_mail
from django.db import IntegrityError
from django.db.models import Count, F, Sum
from django.utils import timezone

from django_fsm import TransitionNotAllowed

from core.services import BaseService

from payments.adapters import IdempotencyKeyGenerator, StripeAdapter
from payments.exceptions import (
    InvalidStateTransitionError,
    PaymentValidationError,
    SettlementAlreadyExistsError,
    SettlementError,
    StripeError,
)
from payments.models import Order, Settlement, SettlementItem, VerifierPayout
from payments.state_machines import (
    OrderStatus,
    PayoutMethod,
    SettlementItemType,
    SettlementType,
    VerifierPayoutStatus,
)

if TYPE_CHECKING:
    from authentication.models import User


logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

SETTLEABLE_ORDER_STATES = frozenset([OrderStatus.PAID, OrderStatus.COMPLETED])

# Unattached lines a seller's next settlement picks up
PENDING_ADJUSTMENT_TYPES = frozenset(
    [SettlementItemType.REFUND_ADJUSTMENT, SettlementItemType.BROUGHT_FORWARD]
)


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class SettlementRunSummary:
    """
    Outcome of a batch settlement run.

    Attributes:
        period_start / period_end: The settled period
        created: Ids of settlements created
        skipped: Payees already settled for the period
        errors: Payees whose settlement failed, with the error
    """

    period_start: datetime
    period_end: datetime
    created: list[str] = field(default_factory=list)
    skipped: list[dict[str, Any]] = field(default_factory=list)
    errors: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["period_start"] = self.period_start.isoformat()
        data["period_end"] = self.period_end.isoformat()
        return data


# =============================================================================
# Period Helpers
# =============================================================================


def month_start(moment: datetime) -> datetime:
    """First instant of moment's calendar month in UTC."""
    moment = moment.astimezone(dt_timezone.utc)
    return moment.replace(day=1, hour=0, minute=0, second=0, microsecond=0)


def previous_month_period(reference: datetime | None = None) -> tuple[datetime, datetime]:
    """
    Previous calendar month as a half-open UTC range.

    previous_month_period(2026-10-01 02:00) -> (2026-09-01, 2026-10-01)
    """
    end = month_start(reference or timezone.now())
    if end.month == 1:
        start = end.replace(year=end.year - 1, month=12)
    else:
        start = end.replace(month=end.month - 1)
    return start, end


# =============================================================================
# Settlement Service
# =============================================================================


class SettlementService(BaseService):
    """
    Computes, pays out and reports settlements.

    Lifecycle:
        PENDING -> PROCESSING (process_payout) -> PAID (mark_paid)
        PROCESSING -> FAILED (mark_failed) -> PROCESSING (operator retry)
        PENDING/FAILED -> CANCELLED (cancel)

    Cancelling or failing a settlement never releases its orders; they stay
    settled and an operator resolves the payout by hand.
    """

    previous_month_period = staticmethod(previous_month_period)

    # =========================================================================
    # Computation
    # =========================================================================

    @classmethod
    def calculate_settlement(
        cls,
        seller: User,
        period_start: datetime,
        period_end: datetime,
    ) -> list[Settlement]:
        """
        Settle a seller's unsettled paid orders for a period.

        Creates one Settlement per currency. Order items carry amounts net
        of refunds applied before settlement; unattached refund adjustments
        and balances brought forward are attached to the settlement of their
        currency. Unsettled orders paid before period_start are included.

        Returns:
            Created settlements, empty when nothing qualifies

        Raises:
            SettlementAlreadyExistsError: Seller already settled for the period
        """
        created: list[Settlement] = []

        with cls.atomic():
            orders = list(
                Order.objects.select_for_update(of=("self",))
                .filter(
                    product__seller=seller,
                    status__in=SETTLEABLE_ORDER_STATES,
                    paid_at__lt=period_end,
                    settlement__isnull=True,
                )
                .order_by("paid_at")
            )
            adjustments = list(
                SettlementItem.objects.select_for_update().filter(
                    seller=seller,
                    item_type__in=PENDING_ADJUSTMENT_TYPES,
                    settlement__isnull=True,
                )
            )

            late = [o for o in orders if o.paid_at < period_start]
            if late:
                cls.get_logger().warning(
                    f"Settling {len(late)} orders paid before the period",
                    extra={
                        "seller_id": str(seller.id),
                        "period_start": period_start.isoformat(),
                        "order_ids": [str(o.id) for o in late],
                    },
                )

            # A brought-forward balance alone does not open a settlement
            currencies = sorted(
                {o.currency for o in orders}
                | {
                    a.currency
                    for a in adjustments
                    if a.item_type == SettlementItemType.REFUND_ADJUSTMENT
                }
            )
            for currency in currencies:
                settlement = cls._create_seller_settlement(
                    seller,
                    currency,
                    period_start,
                    period_end,
                    [o for o in orders if o.currency == currency],
                    [a for a in adjustments if a.currency == currency],
                )
                created.append(settlement)

        for settlement in created:
            cls.get_logger().info(
                f"Settlement {settlement.id} created for seller {seller.id}",
                extra={
                    "settlement_id": str(settlement.id),
                    "seller_id": str(seller.id),
                    "currency": settlement.currency,
                    "order_count": settlement.order_count,
                    "payout_amount": settlement.payout_amount,
                },
            )
            cls._notify(settlement, "created")

        return created

    @classmethod
    def _insert_settlement(cls, **fields: Any) -> Settlement:
        try:
            with cls.atomic():
                return Settlement.objects.create(**fields)
        except IntegrityError as e:
            raise SettlementAlreadyExistsError(
                "Payee already has a settlement for this period",
                details={
                    "seller_id": str(fields["seller"].id),
                    "settlement_type": fields["settlement_type"],
                    "currency": fields["currency"],
                    "period_start": fields["period_start"].isoformat(),
                    "period_end": fields["period_end"].isoformat(),
                },
            ) from e

    @classmethod
    def _create_seller_settlement(
        cls,
        seller: User,
        currency: str,
        period_start: datetime,
        period_end: datetime,
        orders: list[Order],
        adjustments: list[SettlementItem],
    ) -> Settlement:
        settlement = cls._insert_settlement(
            seller=seller,
            settlement_type=SettlementType.SELLER,
            currency=currency,
            period_start=period_start,
            period_end=period_end,
            payout_method=settings.SETTLEMENT_DEFAULT_PAYOUT_METHOD,
        )

        items = [
            SettlementItem(
                settlement=settlement,
                seller=seller,
                item_type=SettlementItemType.ORDER,
                order=order,
                currency=currency,
                amount=order.net_amount,
                platform_fee=order.net_platform_fee,
                payout_amount=order.net_seller_amount,
                description=f"Order {order.id}",
            )
            for order in orders
        ]
        SettlementItem.objects.bulk_create(items)

        now = timezone.now()
        Order.objects.filter(pk__in=[o.pk for o in orders]).update(
            settlement=settlement,
            settled_at=now,
            version=F("version") + 1,
        )
        SettlementItem.objects.filter(pk__in=[a.pk for a in adjustments]).update(
            settlement=settlement
        )

        all_items = items + adjustments
        settlement.total_amount = sum(i.amount for i in all_items)
        settlement.platform_fee = sum(i.platform_fee for i in all_items)
        settlement.payout_amount = settlement.total_amount - settlement.platform_fee
        settlement.refund_amount = -sum(
            a.amount for a in adjustments if a.item_type == SettlementItemType.REFUND_ADJUSTMENT
        )
        settlement.order_count = len(orders)

        if settlement.payout_amount < 0:
            cls._carry_balance_forward(settlement)
        if settlement.payout_amount == 0:
            settlement.close_without_payout()
        settlement.save()
        return settlement

    @classmethod
    def _carry_balance_forward(cls, settlement: Settlement) -> None:
        """
        Zero a negative seller settlement and move the shortfall on.

        The settlement gets a positive CARRIED_FORWARD line for the
        shortfall; an unattached BROUGHT_FORWARD line of the same size but
        negative waits for the seller's next settlement. Item sums still
        equal the settlement totals.
        """
        shortfall = -settlement.payout_amount
        SettlementItem.objects.bulk_create(
            [
                SettlementItem(
                    settlement=settlement,
                    seller=settlement.seller,
                    item_type=SettlementItemType.CARRIED_FORWARD,
                    balance_source=settlement,
                    currency=settlement.currency,
                    amount=shortfall,
                    platform_fee=0,
                    payout_amount=shortfall,
                    description="Balance carried to next settlement",
                ),
                SettlementItem(
                    settlement=None,
                    seller=settlement.seller,
                    item_type=SettlementItemType.BROUGHT_FORWARD,
                    balance_source=settlement,
                    currency=settlement.currency,
                    amount=-shortfall,
                    platform_fee=0,
                    payout_amount=-shortfall,
                    description=f"Balance brought forward from settlement {settlement.id}",
                ),
            ]
        )
        settlement.total_amount += shortfall
        settlement.payout_amount = 0

        cls.get_logger().info(
            f"Settlement {settlement.id} balance carried forward",
            extra={
                "settlement_id": str(settlement.id),
                "seller_id": str(settlement.seller_id),
                "carried_amount": shortfall,
            },
        )

    @classmethod
    def calculate_verifier_settlement(
        cls,
        verifier: User,
        period_start: datetime,
        period_end: datetime,
    ) -> list[Settlement]:
        """
        Settle a verifier's pending verification earnings for a period.

        Earnings pass through in full: no platform fee. Payouts move to
        INCLUDED_IN_SETTLEMENT in the same transaction. Pending earnings
        recorded before period_start are included.

        Raises:
            SettlementAlreadyExistsError: Verifier already settled for the period
        """
        created: list[Settlement] = []

        with cls.atomic():
            payouts = list(
                VerifierPayout.objects.select_for_update()
                .filter(
                    verifier=verifier,
                    status=VerifierPayoutStatus.PENDING,
                    created_at__lt=period_end,
                )
                .order_by("created_at")
            )

            for currency in sorted({p.currency for p in payouts}):
                group = [p for p in payouts if p.currency == currency]
                earnings = sum(p.amount for p in group)

                settlement = cls._insert_settlement(
                    seller=verifier,
                    settlement_type=SettlementType.VERIFIER,
                    currency=currency,
                    period_start=period_start,
                    period_end=period_end,
                    payout_method=settings.SETTLEMENT_DEFAULT_PAYOUT_METHOD,
                    total_amount=earnings,
                    platform_fee=0,
                    payout_amount=earnings,
                    verification_earnings=earnings,
                    verification_count=len(group),
                )

                SettlementItem.objects.bulk_create(
                    [
                        SettlementItem(
                            settlement=settlement,
                            seller=verifier,
                            item_type=SettlementItemType.VERIFICATION,
                            verifier_payout=payout,
                            currency=currency,
                            amount=payout.amount,
                            platform_fee=0,
                            payout_amount=payout.amount,
                            description=f"Verification {payout.verification_reference}",
                        )
                        for payout in group
                    ]
                )
                for payout in group:
                    payout.include_in(settlement)
                    payout.save()

                created.append(settlement)

        for settlement in created:
            cls.get_logger().info(
                f"Verifier settlement {settlement.id} created",
                extra={
                    "settlement_id": str(settlement.id),
                    "verifier_id": str(verifier.id),
                    "verification_count": settlement.verification_count,
                    "payout_amount": settlement.payout_amount,
                },
            )
            cls._notify(settlement, "created")

        return created

    # =========================================================================
    # Batch Run
    # =========================================================================

    @classmethod
    def run_settlements(
        cls,
        period_start: datetime,
        period_end: datetime,
        seller: User | None = None,
    ) -> SettlementRunSummary:
        """
        Settle every payee with qualifying rows in the period.

        Sellers qualify with unsettled paid orders or refund adjustments;
        verifiers with pending earnings. Per-payee failures are collected;
        they never abort the batch. Safe to re-run: rows settled by an
        earlier run are not picked up again, and a payee already settled for
        the period is skipped, its new rows rolling into the next period.

        Args:
            seller: Restrict the run to a single payee
        """
        from authentication.models import User

        summary = SettlementRunSummary(period_start=period_start, period_end=period_end)

        order_seller_ids = (
            Order.objects.filter(
                status__in=SETTLEABLE_ORDER_STATES,
                paid_at__lt=period_end,
                settlement__isnull=True,
            )
            .values_list("product__seller_id", flat=True)
            .distinct()
        )
        adjustment_seller_ids = (
            SettlementItem.objects.filter(
                item_type=SettlementItemType.REFUND_ADJUSTMENT,
                settlement__isnull=True,
            )
            .values_list("seller_id", flat=True)
            .distinct()
        )
        verifier_ids = (
            VerifierPayout.objects.filter(
                status=VerifierPayoutStatus.PENDING,
                created_at__lt=period_end,
            )
            .values_list("verifier_id", flat=True)
            .distinct()
        )
        if seller is not None:
            order_seller_ids = order_seller_ids.filter(product__seller=seller)
            adjustment_seller_ids = adjustment_seller_ids.filter(seller=seller)
            verifier_ids = verifier_ids.filter(verifier=seller)

        seller_ids = set(order_seller_ids) | set(adjustment_seller_ids)
        jobs = [(SettlementType.SELLER, pk) for pk in seller_ids]
        jobs += [(SettlementType.VERIFIER, pk) for pk in set(verifier_ids)]

        for settlement_type, payee_id in jobs:
            payee = User.objects.get(pk=payee_id)
            calculate = (
                cls.calculate_settlement
                if settlement_type == SettlementType.SELLER
                else cls.calculate_verifier_settlement
            )
            try:
                settlements = calculate(payee, period_start, period_end)
            except SettlementAlreadyExistsError as e:
                cls.get_logger().warning(
                    f"Payee {payee_id} already settled for the period; "
                    "remaining rows roll into the next period",
                    extra={"payee_id": str(payee_id), "settlement_type": settlement_type},
                )
                summary.skipped.append(
                    {"payee_id": str(payee_id), "type": settlement_type, "reason": e.error_code}
                )
                continue
            except Exception as e:
                cls.get_logger().error(
                    f"Settlement failed for payee {payee_id}",
                    extra={"payee_id": str(payee_id), "settlement_type": settlement_type},
                    exc_info=True,
                )
                summary.errors.append(
                    {"payee_id": str(payee_id), "type": settlement_type, "error": str(e)}
                )
                continue
            summary.created.extend(str(s.id) for s in settlements)

        cls.get_logger().info(
            "Settlement run finished",
            extra={
                "period_start": period_start.isoformat(),
                "period_end": period_end.isoformat(),
                "created_count": len(summary.created),
                "skipped_count": len(summary.skipped),
                "error_count": len(summary.errors),
            },
        )
        return summary

    # =========================================================================
    # Payout Lifecycle
    # =========================================================================

    @classmethod
    def _transition(cls, settlement: Settlement, name: str, *args: Any) -> None:
        try:
            getattr(settlement, name)(*args)
        except TransitionNotAllowed as e:
            raise InvalidStateTransitionError(
                f"Cannot {name.replace('_', ' ')} settlement in status '{settlement.status}'",
                details={
                    "settlement_id": str(settlement.id),
                    "current_state": settlement.status,
                    "transition": name,
                },
            ) from e

    @classmethod
    def _lock(cls, settlement: Settlement) -> Settlement:
        return (
            Settlement.objects.select_for_update(of=("self",))
            .select_related("seller")
            .get(pk=settlement.pk)
        )

    @classmethod
    def process_payout(cls, settlement: Settlement, method: str | None = None) -> Settlement:
        """
        Submit a settlement for payout.

        bank_transfer: the settlement moves to PROCESSING and waits for the
        operator to record the bank reference with mark_paid.
        stripe_connect: a Stripe transfer to the payee's connected account
        is created; success marks the settlement PAID, a permanent rejection
        marks it FAILED.

        Raises:
            SettlementError: Nothing to pay out, or no payout destination
                (connected account or bank details) for the method
            InvalidStateTransitionError: Settlement not PENDING or FAILED
            StripeError: Transient Stripe failure, settlement left PROCESSING
        """
        with cls.atomic():
            settlement = cls._lock(settlement)
            method = method or settlement.payout_method

            if settlement.payout_amount <= 0:
                raise SettlementError(
                    "Settlement has nothing to pay out",
                    error_code="NON_POSITIVE_PAYOUT",
                    details={
                        "settlement_id": str(settlement.id),
                        "payout_amount": settlement.payout_amount,
                    },
                )
            if method == PayoutMethod.STRIPE_CONNECT and not settlement.seller.stripe_account_id:
                raise SettlementError(
                    "Payee has no connected Stripe account",
                    error_code="NO_CONNECTED_ACCOUNT",
                    details={"settlement_id": str(settlement.id)},
                )
            if method == PayoutMethod.BANK_TRANSFER and not settlement.seller.has_bank_account:
                raise SettlementError(
                    "Payee bank account details are incomplete",
                    error_code="BANK_ACCOUNT_REQUIRED",
                    details={"settlement_id": str(settlement.id)},
                )

            cls._transition(settlement, "start_payout", method)
            settlement.save()

        cls.get_logger().info(
            f"Settlement {settlement.id} payout started",
            extra={
                "settlement_id": str(settlement.id),
                "payout_method": method,
                "payout_amount": settlement.payout_amount,
            },
        )

        if method == PayoutMethod.STRIPE_CONNECT:
            return cls.submit_transfer(settlement)
        return settlement

    @classmethod
    def submit_transfer(cls, settlement: Settlement) -> Settlement:
        """
        Create the Stripe transfer for a PROCESSING settlement.

        The idempotency key includes the row version, stable while the
        settlement sits in PROCESSING, so a retried submission reuses the
        original transfer and an operator retry after FAILED gets a new one.
        """
        idempotency_key = IdempotencyKeyGenerator.generate(
            "transfer", settlement.id, attempt=settlement.version
        )
        try:
            transfer = StripeAdapter.create_transfer(
                amount=settlement.payout_amount,
                destination_account=settlement.seller.stripe_account_id,
                idempotency_key=idempotency_key,
                currency=settlement.currency,
                metadata={
                    "settlement_id": str(settlement.id),
                    "period_start": settlement.period_start.date().isoformat(),
                },
            )
        except StripeError as e:
            if e.is_retryable:
                cls.get_logger().warning(
                    f"Transient error submitting transfer for settlement {settlement.id}",
                    extra={"settlement_id": str(settlement.id), "error_code": e.error_code},
                )
                raise
            return cls.mark_failed(settlement, e.message)

        return cls.mark_paid(settlement, transfer.id)

    @classmethod
    def mark_paid(cls, settlement: Settlement, reference: str | None = None) -> Settlement:
        """
        Record that the payee received the funds.

        Verification earnings in the settlement become PAID.

        Transition: PROCESSING -> PAID
        """
        with cls.atomic():
            settlement = cls._lock(settlement)
            cls._transition(settlement, "mark_paid", reference)
            settlement.save()

            payouts = VerifierPayout.objects.select_for_update().filter(
                settlement=settlement,
                status=VerifierPayoutStatus.INCLUDED_IN_SETTLEMENT,
            )
            for payout in payouts:
                payout.mark_paid()
                payout.save()

        cls.get_logger().info(
            f"Settlement {settlement.id} paid",
            extra={"settlement_id": str(settlement.id), "payout_reference": reference},
        )
        cls._notify(settlement, "paid")
        return settlement

    @classmethod
    def mark_failed(cls, settlement: Settlement, reason: str) -> Settlement:
        """
        Record a rejected payout and tell the payee why. No auto-retry.

        Transition: PROCESSING -> FAILED
        """
        if not reason:
            raise PaymentValidationError(
                "A failure reason is required",
                error_code="REASON_REQUIRED",
            )

        with cls.atomic():
            settlement = cls._lock(settlement)
            cls._transition(settlement, "mark_failed", reason)
            settlement.save()

        cls.get_logger().warning(
            f"Settlement {settlement.id} payout failed",
            extra={"settlement_id": str(settlement.id), "reason": reason},
        )
        cls._notify(settlement, "failed")
        return settlement

    @classmethod
    def cancel(cls, settlement: Settlement, reason: str | None = None) -> Settlement:
        """
        Manual override. Orders and earnings stay attached to the settlement.

        Transition: PENDING/FAILED -> CANCELLED
        """
        with cls.atomic():
            settlement = cls._lock(settlement)
            cls._transition(settlement, "cancel", reason)
            settlement.save()

        cls.get_logger().info(
            f"Settlement {settlement.id} cancelled",
            extra={"settlement_id": str(settlement.id), "reason": reason},
        )
        return settlement

    # =========================================================================
    # Queries
    # =========================================================================

    @classmethod
    def current_estimate(cls, seller: User, now: datetime | None = None) -> list[dict[str, Any]]:
        """
        What the seller would be paid for the month so far, per currency.

        Counts unsettled paid orders since the start of the month plus any
        refund adjustments or carried balances waiting for the next
        settlement.
        """
        now = now or timezone.now()
        start = month_start(now)

        rows = (
            Order.objects.filter(
                product__seller=seller,
                status__in=SETTLEABLE_ORDER_STATES,
                paid_at__gte=start,
                paid_at__lt=now,
                settlement__isnull=True,
            )
            .values("currency")
            .annotate(
                gross_amount=Sum(F("amount") - F("refunded_amount")),
                platform_fee=Sum(F("platform_fee") - F("refunded_platform_fee")),
                order_count=Count("id"),
            )
            .order_by("currency")
        )
        pending_adjustments = dict(
            SettlementItem.objects.filter(
                seller=seller,
                item_type__in=PENDING_ADJUSTMENT_TYPES,
                settlement__isnull=True,
            )
            .values("currency")
            .annotate(total=Sum("payout_amount"))
            .values_list("currency", "total")
        )

        estimates = []
        for row in rows:
            adjustment = pending_adjustments.pop(row["currency"], 0)
            estimates.append(
                {
                    "currency": row["currency"],
                    "period_start": start,
                    "period_end": now,
                    "gross_amount": row["gross_amount"],
                    "platform_fee": row["platform_fee"],
                    "refund_adjustments": adjustment,
                    "net_amount": row["gross_amount"] - row["platform_fee"] + adjustment,
                    "order_count": row["order_count"],
                }
            )
        for currency, adjustment in pending_adjustments.items():
            estimates.append(
                {
                    "currency": currency,
                    "period_start": start,
                    "period_end": now,
                    "gross_amount": 0,
                    "platform_fee": 0,
                    "refund_adjustments": adjustment,
                    "net_amount": adjustment,
                    "order_count": 0,
                }
            )
        return estimates

    @classmethod
    def summary(cls, seller: User | None = None) -> list[dict[str, Any]]:
        """Settlement counts and totals grouped by status and currency."""
        queryset = Settlement.objects.all()
        if seller is not None:
            queryset = queryset.filter(seller=seller)

        return list(
            queryset.values("status", "currency")
            .annotate(
                count=Count("id"),
                total_amount=Sum("total_amount"),
                platform_fee=Sum("platform_fee"),
                payout_amount=Sum("payout_amount"),
            )
            .order_by("status", "currency")
        )

    @classmethod
    def revenue_by_product(
        cls,
        seller: User,
        period_start: datetime | None = None,
        period_end: datetime | None = None,
    ) -> list[dict[str, Any]]:
        """Net revenue per product for a seller, optionally within a period."""
        queryset = Order.objects.filter(
            product__seller=seller,
            status__in=SETTLEABLE_ORDER_STATES,
        )
        if period_start is not None:
            queryset = queryset.filter(paid_at__gte=period_start)
        if period_end is not None:
            queryset = queryset.filter(paid_at__lt=period_end)

        rows = (
            queryset.values("product_id", "product__title", "currency")
            .annotate(
                order_count=Count("id"),
                gross_amount=Sum(F("amount") - F("refunded_amount")),
                platform_fee=Sum(F("platform_fee") - F("refunded_platform_fee")),
            )
            .order_by("-gross_amount")
        )
        return [
            {
                "product_id": str(row["product_id"]),
                "product_title": row["product__title"],
                "currency": row["currency"],
                "order_count": row["order_count"],
                "gross_amount": row["gross_amount"],
                "platform_fee": row["platform_fee"],
                "net_amount": row["gross_amount"] - row["platform_fee"],
            }
            for row in rows
        ]

    @classmethod
    def statement_csv(cls, settlement: Settlement) -> str:
        """
        Render a settlement statement as CSV.

        Header block (id, payee, period, status), totals in minor units,
        then one row per item.
        """
        items = settlement.items.select_related("order__product").order_by("created_at")

        output = io.StringIO()
        writer = csv.writer(output)

        writer.writerow(["Settlement Statement"])
        writer.writerow(["Settlement ID", str(settlement.id)])
        writer.writerow(["Payee", settlement.seller.get_full_name()])
        writer.writerow(["Type", settlement.settlement_type])
        writer.writerow(
            [
                "Period",
                settlement.period_start.date().isoformat(),
                settlement.period_end.date().isoformat(),
            ]
        )
        writer.writerow(["Status", settlement.status])
        writer.writerow(["Currency", settlement.currency])
        writer.writerow([])
        writer.writerow(["Total Amount", settlement.total_amount])
        writer.writerow(["Platform Fee", settlement.platform_fee])
        writer.writerow(["Refunds", settlement.refund_amount])
        writer.writerow(["Payout Amount", settlement.payout_amount])
        writer.writerow(["Order Count", settlement.order_count])
        writer.writerow([])
        writer.writerow(["Item Type", "Description", "Product", "Amount", "Platform Fee", "Payout"])
        for item in items:
            writer.writerow(
                [
                    item.item_type,
                    item.description,
                    item.order.product.title if item.order_id else "",
                    item.amount,
                    item.platform_fee,
                    item.payout_amount,
                ]
            )

        return output.getvalue()

    # =========================================================================
    # Notifications
    # =========================================================================

    @classmethod
    def _notify(cls, settlement: Settlement, event: str) -> bool:
        """
        Email the payee about a settlement event.

        Delivery problems are logged, never raised: the settlement has
        already been committed.
        """
        if not settings.SETTLEMENT_NOTIFICATIONS_ENABLED:
            return False

        amount = f"{settlement.payout_amount} {settlement.currency.upper()}"
        period = (
            f"{settlement.period_start.date().isoformat()} - "
            f"{settlement.period_end.date().isoformat()}"
        )
        messages = {
            "created": (
                "Your settlement is ready",
                f"A settlement of {amount} for {period} has been created.",
            ),
            "paid": (
                "Your settlement has been paid",
                f"The settlement of {amount} for {period} has been paid.",
            ),
            "failed": (
                "Your settlement payout failed",
                f"The payout of {amount} for {period} failed: {settlement.failure_reason}",
            ),
        }
        subject, body = messages[event]

        try:
            send_mail(
                subject,
                body,
                settings.DEFAULT_FROM_EMAIL,
                [settlement.seller.email],
                fail_silently=False,
            )
        except Exception:
            cls.get_logger().error(
                f"Failed to send settlement {event} email",
                extra={"settlement_id": str(settlement.id)},
                exc_info=True,
            )
            return False
        return True


# =============================================================================
# Verifier Payout Service
# =============================================================================


class VerifierPayoutService(BaseService):
    """Records verification earnings for later settlement and reports on them."""

    @classmethod
    def create_payout(
        cls,
        verifier: User,
        verification_reference: str,
        amount: int,
        currency: str = "usd",
    ) -> VerifierPayout:
        """
        Record a verifier's earning for one verification.

        Recording the same verification twice returns the existing payout.

        Raises:
            PaymentValidationError: Non-positive amount, or the reference
                already recorded with a different amount
        """
        if amount <= 0:
            raise PaymentValidationError(
                "Verification payout amount must be positive",
                error_code="INVALID_AMOUNT",
                details={"amount": amount},
            )

        payout, created = VerifierPayout.objects.get_or_create(
            verification_reference=verification_reference,
            defaults={
                "verifier": verifier,
                "amount": amount,
                "currency": currency.lower(),
            },
        )
        if not created and (payout.verifier_id != verifier.id or payout.amount != amount):
            raise PaymentValidationError(
                "Verification already has a different payout",
                error_code="DUPLICATE_VERIFICATION",
                details={"verification_reference": verification_reference},
            )

        if created:
            cls.get_logger().info(
                f"Verifier payout recorded for {verification_reference}",
                extra={
                    "verifier_id": str(verifier.id),
                    "amount": amount,
                    "currency": payout.currency,
                },
            )
        return payout

    # =========================================================================
    # Earnings Queries
    # =========================================================================

    @classmethod
    def current_earnings(cls, verifier: User, now: datetime | None = None) -> list[dict[str, Any]]:
        """Earnings recorded since the start of the month, per currency."""
        now = now or timezone.now()
        start = month_start(now)

        rows = (
            VerifierPayout.objects.filter(
                verifier=verifier,
                created_at__gte=start,
                created_at__lt=now,
            )
            .values("currency")
            .annotate(earnings=Sum("amount"), verification_count=Count("id"))
            .order_by("currency")
        )
        return [
            {
                "currency": row["currency"],
                "period_start": start,
                "period_end": now,
                "earnings": row["earnings"],
                "verification_count": row["verification_count"],
            }
            for row in rows
        ]

    @classmethod
    def earnings_breakdown(
        cls,
        verifier: User,
        period_start: datetime | None = None,
        period_end: datetime | None = None,
    ) -> list[dict[str, Any]]:
        """Earnings grouped by payout status and currency."""
        queryset = VerifierPayout.objects.filter(verifier=verifier)
        if period_start is not None:
            queryset = queryset.filter(created_at__gte=period_start)
        if period_end is not None:
            queryset = queryset.filter(created_at__lt=period_end)

        return list(
            queryset.values("status", "currency")
            .annotate(verification_count=Count("id"), earnings=Sum("amount"))
            .order_by("status", "currency")
        )

    @classmethod
    def pending_payouts(cls, verifier: User):
        """Earnings not yet paid out, oldest first."""
        return (
            VerifierPayout.objects.filter(
                verifier=verifier,
                status__in=[
                    VerifierPayoutStatus.PENDING,
                    VerifierPayoutStatus.INCLUDED_IN_SETTLEMENT,
                ],
            )
            .select_related("settlement")
            .order_by("created_at")
        )
