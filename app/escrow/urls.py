"""
URL configuration for the escrow app.

All routes are prefixed with /api/v1/escrow/ when included in the main URLconf.

Usage:
    # In config/urls.py
    api_v1_patterns = [
        path("escrow/", include("escrow.urls")),
    ]
"""

from django.urls import path

from escrow import views
from escrow.webhooks.views import stripe_webhook

app_name = "escrow"

urlpatterns = [
    # Escrow lifecycle
    path("escrow/create/", views.CreateEscrowView.as_view(), name="create"),
    path("escrow/fund/", views.FundEscrowView.as_view(), name="fund"),
    path("funds/release/", views.ReleaseFundsView.as_view(), name="release"),
    path("refund/", views.RefundView.as_view(), name="refund"),
    path("dispute/", views.DisputeView.as_view(), name="dispute"),
    path("escrow/<str:escrow_id>/status/", views.EscrowStatusView.as_view(), name="status"),
    path("fees/calculate/", views.CalculateFeesView.as_view(), name="calculate-fees"),
    # Operator
    path(
        "escrow/<str:escrow_id>/reconcile/",
        views.ReconcileEscrowView.as_view(),
        name="reconcile",
    ),
    # Webhook endpoints
    path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
]
