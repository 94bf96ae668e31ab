"""
DRF views for payments app.

This module provides API views for:
- Checkout, payment confirmation and buyer refunds
- Settlement listing, reports, CSV statements and staff payout actions
- Verifier earnings
- Plan catalogue, subscription changes and proration quotes

Webhook endpoints live in payments.webhooks.views; they are plain Django
views because signatures are checked over the raw body.

Related files:
    - services/: business logic, all state changes go through it
    - serializers.py: Request/response serializers
    - urls.py: URL routing

Security:
    - Every endpoint requires authentication
    - Orders are visible to their buyer, settlements to their payee
    - Earnings are visible to the verifier they belong to
    - Settlement payout actions and batch runs are staff only

Errors:
    Domain errors raised by the services are rendered by
    ApplicationErrorMixin as {"error", "error_code", "details"} with the
    status of the exception class.
"""

from __future__ import annotations

import logging

from django.http import HttpResponse
from django.shortcuts import get_object_or_404
from django.utils.dateparse import parse_datetime
from drf_spectacular.types import OpenApiTypes
from drf_spectacular.utils import (
    OpenApiParameter,
    OpenApiResponse,
    extend_schema,
    extend_schema_view,
)
from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAdminUser, IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from core.exceptions import PermissionDeniedError
from core.views import ApplicationErrorMixin

from payments.models import Order, Product, Settlement
from payments.serializers import (
    CancelSettlementSerializer,
    CancelSubscriptionSerializer,
    ChangePlanSerializer,
    CheckoutRequestSerializer,
    CheckoutResponseSerializer,
    ConfirmPaymentSerializer,
    MarkFailedSerializer,
    MarkPaidSerializer,
    OrderSerializer,
    PaymentConfirmationSerializer,
    PayoutRequestSerializer,
    PlanSerializer,
    ProductRevenueSerializer,
    ProrationQuerySerializer,
    ProrationSerializer,
    RefundRequestSerializer,
    RefundSerializer,
    RunSettlementSerializer,
    SettlementDetailSerializer,
    SettlementEstimateSerializer,
    SettlementSerializer,
    SettlementSummarySerializer,
    SubscriptionChangeSerializer,
    SubscriptionSerializer,
    VerifierEarningsSerializer,
)
from payments.services import (
    CheckoutService,
    PlanService,
    RefundService,
    SettlementService,
    SubscriptionService,
    VerifierPayoutService,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Checkout & Orders
# =============================================================================


class CheckoutView(ApplicationErrorMixin, APIView):
    """
    Create an order and a provider payment intent.

    POST /api/v1/payments/checkout/

    Request body:
        {"product_id": "<uuid>"}

    Returns:
        201 with the PENDING order, the selected provider and the client
        secret the frontend completes authorization with
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="create_checkout",
        summary="Create checkout",
        tags=["Payments - Orders"],
        request=CheckoutRequestSerializer,
        responses={201: CheckoutResponseSerializer},
    )
    def post(self, request):
        serializer = CheckoutRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        product = get_object_or_404(
            Product.objects.select_related("seller"),
            id=serializer.validated_data["product_id"],
        )
        result = CheckoutService.create_checkout(buyer=request.user, product=product)

        output = CheckoutResponseSerializer(
            {
                "order": result.order,
                "provider": result.provider,
                "client_secret": result.client_secret,
            }
        )
        return Response(output.data, status=status.HTTP_201_CREATED)


@extend_schema_view(
    list=extend_schema(
        operation_id="list_orders",
        summary="List my orders",
        tags=["Payments - Orders"],
    ),
    retrieve=extend_schema(
        operation_id="get_order",
        summary="Get order",
        tags=["Payments - Orders"],
    ),
)
class OrderViewSet(ApplicationErrorMixin, viewsets.ReadOnlyModelViewSet):
    """
    Buyer's orders.

    confirm:
        Confirm the payment with the provider. The order is only marked
        PAID when the provider's success webhook arrives.

    refund:
        Request a full or partial refund within the refund window.
    """

    permission_classes = [IsAuthenticated]
    serializer_class = OrderSerializer

    def get_queryset(self):
        return (
            Order.objects.filter(buyer=self.request.user)
            .select_related("product", "payment")
            .order_by("-created_at")
        )

    @extend_schema(
        operation_id="confirm_order_payment",
        summary="Confirm payment",
        tags=["Payments - Orders"],
        request=ConfirmPaymentSerializer,
        responses={200: PaymentConfirmationSerializer},
    )
    @action(detail=True, methods=["post"])
    def confirm(self, request, pk=None):
        order = self.get_object()
        serializer = ConfirmPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = CheckoutService.confirm_payment(
            order,
            request.user,
            payment_method_id=serializer.validated_data.get("payment_method_id"),
            payment_key=serializer.validated_data.get("payment_key"),
        )
        return Response(PaymentConfirmationSerializer(result).data)

    @extend_schema(
        operation_id="request_order_refund",
        summary="Request refund",
        tags=["Payments - Orders"],
        request=RefundRequestSerializer,
        responses={201: RefundSerializer},
    )
    @action(detail=True, methods=["post"])
    def refund(self, request, pk=None):
        order = self.get_object()
        serializer = RefundRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        refund = RefundService.request_refund(
            order,
            request.user,
            amount=serializer.validated_data.get("amount"),
            reason=serializer.validated_data.get("reason") or None,
        )
        return Response(RefundSerializer(refund).data, status=status.HTTP_201_CREATED)


# =============================================================================
# Settlements
# =============================================================================


@extend_schema_view(
    list=extend_schema(
        operation_id="list_settlements",
        summary="List settlements",
        tags=["Payments - Settlements"],
        parameters=[
            OpenApiParameter("status", OpenApiTypes.STR, description="Filter by status"),
            OpenApiParameter("seller", OpenApiTypes.UUID, description="Filter by payee (staff only)"),
        ],
    ),
    retrieve=extend_schema(
        operation_id="get_settlement",
        summary="Get settlement with items",
        tags=["Payments - Settlements"],
    ),
)
class SettlementViewSet(ApplicationErrorMixin, viewsets.ReadOnlyModelViewSet):
    """
    Settlement reports for payees and payout actions for staff.

    Payees see their own settlements; staff see all and may filter by
    ?seller=<user id>.
    """

    permission_classes = [IsAuthenticated]
    staff_actions = ("payout", "mark_paid", "mark_failed", "cancel", "run")

    def get_permissions(self):
        if self.action in self.staff_actions:
            return [IsAuthenticated(), IsAdminUser()]
        return [IsAuthenticated()]

    def get_queryset(self):
        user = self.request.user
        queryset = Settlement.objects.all()

        if user.is_staff:
            seller_id = self.request.query_params.get("seller")
            if seller_id:
                queryset = queryset.filter(seller_id=seller_id)
        else:
            queryset = queryset.filter(seller=user)

        status_filter = self.request.query_params.get("status")
        if status_filter:
            queryset = queryset.filter(status=status_filter)

        if self.action == "retrieve":
            queryset = queryset.prefetch_related("items")
        return queryset.order_by("-period_start", "-created_at")

    def get_serializer_class(self):
        if self.action == "retrieve":
            return SettlementDetailSerializer
        return SettlementSerializer

    @extend_schema(
        operation_id="get_settlement_estimate",
        summary="Current month estimate",
        tags=["Payments - Settlements"],
        responses={200: SettlementEstimateSerializer(many=True)},
    )
    @action(detail=False, methods=["get"], url_path="current-estimate")
    def current_estimate(self, request):
        estimates = SettlementService.current_estimate(request.user)
        return Response(SettlementEstimateSerializer(estimates, many=True).data)

    @extend_schema(
        operation_id="get_settlement_summary",
        summary="Totals per status",
        tags=["Payments - Settlements"],
        responses={200: SettlementSummarySerializer(many=True)},
    )
    @action(detail=False, methods=["get"])
    def summary(self, request):
        seller = None if request.user.is_staff else request.user
        rows = SettlementService.summary(seller=seller)
        return Response(SettlementSummarySerializer(rows, many=True).data)

    @extend_schema(
        operation_id="get_revenue_by_product",
        summary="Revenue by product",
        tags=["Payments - Settlements"],
        parameters=[
            OpenApiParameter("start", OpenApiTypes.DATETIME),
            OpenApiParameter("end", OpenApiTypes.DATETIME),
        ],
        responses={200: ProductRevenueSerializer(many=True)},
    )
    @action(detail=False, methods=["get"])
    def revenue(self, request):
        start = request.query_params.get("start")
        end = request.query_params.get("end")
        rows = SettlementService.revenue_by_product(
            request.user,
            period_start=parse_datetime(start) if start else None,
            period_end=parse_datetime(end) if end else None,
        )
        return Response(ProductRevenueSerializer(rows, many=True).data)

    @extend_schema(
        operation_id="download_settlement_statement",
        summary="Download statement as CSV",
        tags=["Payments - Settlements"],
        responses={(200, "text/csv"): OpenApiTypes.STR},
    )
    @action(detail=True, methods=["get"])
    def statement(self, request, pk=None):
        settlement = self.get_object()
        content = SettlementService.statement_csv(settlement)

        response = HttpResponse(content, content_type="text/csv")
        response["Content-Disposition"] = f'attachment; filename="settlement-{settlement.id}.csv"'
        return response

    @extend_schema(
        operation_id="payout_settlement",
        summary="Execute payout",
        tags=["Payments - Settlements"],
        request=PayoutRequestSerializer,
        responses={200: SettlementSerializer},
    )
    @action(detail=True, methods=["post"])
    def payout(self, request, pk=None):
        settlement = self.get_object()
        serializer = PayoutRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        settlement = SettlementService.process_payout(
            settlement, method=serializer.validated_data.get("method")
        )
        return Response(SettlementSerializer(settlement).data)

    @extend_schema(
        operation_id="mark_settlement_paid",
        summary="Confirm payout",
        tags=["Payments - Settlements"],
        request=MarkPaidSerializer,
        responses={200: SettlementSerializer},
    )
    @action(detail=True, methods=["post"], url_path="mark-paid")
    def mark_paid(self, request, pk=None):
        settlement = self.get_object()
        serializer = MarkPaidSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        settlement = SettlementService.mark_paid(
            settlement, reference=serializer.validated_data.get("reference") or None
        )
        return Response(SettlementSerializer(settlement).data)

    @extend_schema(
        operation_id="mark_settlement_failed",
        summary="Record payout failure",
        tags=["Payments - Settlements"],
        request=MarkFailedSerializer,
        responses={200: SettlementSerializer},
    )
    @action(detail=True, methods=["post"], url_path="mark-failed")
    def mark_failed(self, request, pk=None):
        settlement = self.get_object()
        serializer = MarkFailedSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        settlement = SettlementService.mark_failed(
            settlement, reason=serializer.validated_data["reason"]
        )
        return Response(SettlementSerializer(settlement).data)

    @extend_schema(
        operation_id="cancel_settlement",
        summary="Cancel settlement",
        tags=["Payments - Settlements"],
        request=CancelSettlementSerializer,
        responses={200: SettlementSerializer},
    )
    @action(detail=True, methods=["post"])
    def cancel(self, request, pk=None):
        settlement = self.get_object()
        serializer = CancelSettlementSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        settlement = SettlementService.cancel(
            settlement, reason=serializer.validated_data.get("reason") or None
        )
        return Response(SettlementSerializer(settlement).data)

    @extend_schema(
        operation_id="run_settlements",
        summary="Queue settlement batch",
        tags=["Payments - Settlements"],
        request=RunSettlementSerializer,
        responses={202: OpenApiResponse(description="Batch queued")},
    )
    @action(detail=False, methods=["post"])
    def run(self, request):
        from payments.tasks import run_monthly_settlement

        serializer = RunSettlementSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        reference = serializer.validated_data.get("reference")
        task = run_monthly_settlement.delay(reference.isoformat() if reference else None)

        logger.info(
            "Settlement batch queued",
            extra={"task_id": task.id, "requested_by": str(request.user.id)},
        )
        return Response({"task_id": task.id}, status=status.HTTP_202_ACCEPTED)


# =============================================================================
# Verifier Earnings
# =============================================================================


class VerifierEarningsView(ApplicationErrorMixin, APIView):
    """
    Earnings report for the requesting verifier.

    GET /api/v1/payments/verifier/earnings/

    Returns:
        200 with the current month per currency, totals per payout status
        and the rows not yet paid out
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_verifier_earnings",
        summary="Verifier earnings",
        tags=["Payments - Verifier Earnings"],
        responses={200: VerifierEarningsSerializer},
    )
    def get(self, request):
        if not request.user.is_verifier:
            raise PermissionDeniedError(
                "Only verifiers have earnings",
                error_code="NOT_A_VERIFIER",
            )

        data = {
            "current": VerifierPayoutService.current_earnings(request.user),
            "breakdown": VerifierPayoutService.earnings_breakdown(request.user),
            "pending": VerifierPayoutService.pending_payouts(request.user),
        }
        return Response(VerifierEarningsSerializer(data).data)


# =============================================================================
# Plans & Subscriptions
# =============================================================================


class PlanListView(ApplicationErrorMixin, APIView):
    """
    Plan catalogue.

    GET /api/v1/payments/plans/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="list_plans",
        summary="List plans",
        tags=["Payments - Subscriptions"],
        responses={200: PlanSerializer(many=True)},
    )
    def get(self, request):
        return Response(PlanSerializer(PlanService.list_plans(), many=True).data)


class SubscriptionView(ApplicationErrorMixin, APIView):
    """
    Get current user's subscription.

    GET /api/v1/payments/subscription/

    Returns:
        Subscription details or 404 if no subscription
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_subscription",
        summary="Get current subscription",
        tags=["Payments - Subscriptions"],
        responses={200: SubscriptionSerializer, 404: OpenApiResponse(description="No subscription")},
    )
    def get(self, request):
        subscription = SubscriptionService.get_subscription(request.user)
        if subscription is None:
            return Response(
                {"detail": "No subscription found"},
                status=status.HTTP_404_NOT_FOUND,
            )
        return Response(SubscriptionSerializer(subscription).data)


class ChangePlanView(ApplicationErrorMixin, APIView):
    """
    Upgrade or downgrade, effective immediately.

    POST /api/v1/payments/subscription/change-plan/

    Request body:
        {"to_tier": "PRO", "interval": "monthly"}
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="change_subscription_plan",
        summary="Change plan",
        tags=["Payments - Subscriptions"],
        request=ChangePlanSerializer,
        responses={200: SubscriptionChangeSerializer},
    )
    def post(self, request):
        serializer = ChangePlanSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        change = SubscriptionService.change_plan(
            request.user,
            serializer.validated_data["to_tier"],
            interval=serializer.validated_data.get("interval"),
        )
        return Response(SubscriptionChangeSerializer(change).data)


class CancelSubscriptionView(ApplicationErrorMixin, APIView):
    """
    Cancel subscription.

    POST /api/v1/payments/subscription/cancel/

    Request body:
        {"immediate": false}  # Cancel at period end (default)
        {"immediate": true}   # Cancel now, drop to FREE
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="cancel_subscription",
        summary="Cancel subscription",
        tags=["Payments - Subscriptions"],
        request=CancelSubscriptionSerializer,
        responses={200: SubscriptionSerializer},
    )
    def post(self, request):
        serializer = CancelSubscriptionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        subscription = SubscriptionService.get_subscription(request.user)
        if subscription is None:
            return Response(
                {"detail": "No subscription found"},
                status=status.HTTP_404_NOT_FOUND,
            )

        subscription = SubscriptionService.cancel_subscription(
            subscription, immediate=serializer.validated_data["immediate"]
        )
        return Response(SubscriptionSerializer(subscription).data)


class ReactivateSubscriptionView(ApplicationErrorMixin, APIView):
    """
    Undo a period-end cancellation.

    POST /api/v1/payments/subscription/reactivate/
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="reactivate_subscription",
        summary="Reactivate subscription",
        tags=["Payments - Subscriptions"],
        request=None,
        responses={200: SubscriptionSerializer},
    )
    def post(self, request):
        subscription = SubscriptionService.get_subscription(request.user)
        if subscription is None:
            return Response(
                {"detail": "No subscription found"},
                status=status.HTTP_404_NOT_FOUND,
            )

        subscription = SubscriptionService.reactivate_subscription(subscription)
        return Response(SubscriptionSerializer(subscription).data)


class ProrationView(ApplicationErrorMixin, APIView):
    """
    Quote a plan change without applying it.

    GET /api/v1/payments/subscriptions/proration/?to_tier=PRO&interval=monthly
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="preview_proration",
        summary="Proration preview",
        tags=["Payments - Subscriptions"],
        parameters=[ProrationQuerySerializer],
        responses={200: ProrationSerializer},
    )
    def get(self, request):
        serializer = ProrationQuerySerializer(data=request.query_params)
        serializer.is_valid(raise_exception=True)

        proration = SubscriptionService.preview_change(
            request.user,
            serializer.validated_data["to_tier"],
            interval=serializer.validated_data.get("interval"),
        )
        return Response(ProrationSerializer(proration.to_dict()).data)
