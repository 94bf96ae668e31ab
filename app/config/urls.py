"""
URL configuration for the payments service.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/payments/              - Payment endpoints
        webhooks/stripe/           - Stripe webhook endpoint (POST)
        webhooks/toss/             - Toss Payments webhook endpoint (POST)
        checkout/                  - Create order + payment intent
        orders/                    - Buyer order history
        orders/{id}/confirm/       - Confirm payment with a payment method
        orders/{id}/refund/        - Request a refund
        settlements/               - Settlement list/detail (own, or all for staff)
        settlements/current-estimate/ - Running estimate for this month
        settlements/summary/       - Totals per status
        settlements/run/           - Run a settlement period (staff)
        settlements/{id}/payout/   - Execute payout (staff)
        settlements/{id}/mark-paid/   - Confirm payout (staff)
        settlements/{id}/mark-failed/ - Record payout failure (staff)
        settlements/{id}/cancel/   - Cancel settlement (staff)
        plans/                     - Subscription plan catalogue
        subscription/              - Current subscription
        subscription/change-plan/  - Upgrade/downgrade with proration
        subscription/cancel/       - Cancel now or at period end
        subscription/reactivate/   - Undo a period-end cancellation
        subscriptions/proration/   - Proration preview
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
api_v1_patterns = [
    path("payments/", include("payments.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # Health check (Docker, Kubernetes, load balancers)
    path("health/", health_check, name="health_check"),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Marketplace Payments Admin"
admin.site.site_title = "Payments Admin"
admin.site.index_title = "Orders, settlements and subscriptions"
