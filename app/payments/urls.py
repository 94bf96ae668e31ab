"""
URL configuration for payments API.

URL Structure:
    Webhooks:
        /webhooks/stripe/                    POST
        /webhooks/toss/                      POST

    Orders:
        /checkout/                           POST
        /orders/                             GET
        /orders/{id}/                        GET
        /orders/{id}/confirm/                POST
        /orders/{id}/refund/                 POST

    Settlements:
        /settlements/                        GET
        /settlements/{id}/                   GET
        /settlements/current-estimate/       GET
        /settlements/summary/                GET
        /settlements/revenue/                GET
        /settlements/run/                    POST (staff)
        /settlements/{id}/payout/            POST (staff)
        /settlements/{id}/mark-paid/         POST (staff)
        /settlements/{id}/mark-failed/       POST (staff)
        /settlements/{id}/statement/         GET (CSV)
        /settlements/{id}/cancel/            POST (staff)

    Verifier earnings:
        /verifier/earnings/                  GET

    Subscriptions:
        /plans/                              GET
        /subscription/                       GET
        /subscription/change-plan/           POST
        /subscription/cancel/                POST
        /subscription/reactivate/            POST
        /subscriptions/proration/            GET

All URLs are prefixed with /api/v1/payments/ in the main URL configuration.
"""

from django.urls import include, path
from rest_framework.routers import DefaultRouter

from payments.views import (
    CancelSubscriptionView,
    ChangePlanView,
    CheckoutView,
    OrderViewSet,
    PlanListView,
    ProrationView,
    ReactivateSubscriptionView,
    SettlementViewSet,
    SubscriptionView,
    VerifierEarningsView,
)
from payments.webhooks.views import stripe_webhook, toss_webhook

router = DefaultRouter()
router.register(r"orders", OrderViewSet, basename="order")
router.register(r"settlements", SettlementViewSet, basename="settlement")

app_name = "payments"

urlpatterns = [
    # Webhooks
    path("webhooks/stripe/", stripe_webhook, name="stripe-webhook"),
    path("webhooks/toss/", toss_webhook, name="toss-webhook"),
    # Checkout
    path("checkout/", CheckoutView.as_view(), name="checkout"),
    # Subscriptions
    path("plans/", PlanListView.as_view(), name="plan-list"),
    path("subscription/", SubscriptionView.as_view(), name="subscription"),
    path("subscription/change-plan/", ChangePlanView.as_view(), name="subscription-change-plan"),
    path("subscription/cancel/", CancelSubscriptionView.as_view(), name="subscription-cancel"),
    path(
        "subscription/reactivate/",
        ReactivateSubscriptionView.as_view(),
        name="subscription-reactivate",
    ),
    path("subscriptions/proration/", ProrationView.as_view(), name="subscription-proration"),
    # Verifier earnings
    path("verifier/earnings/", VerifierEarningsView.as_view(), name="verifier-earnings"),
    # Orders and settlements
    path("", include(router.urls)),
]
