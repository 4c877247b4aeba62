"""
URL configuration for the Django application.

The `urlpatterns` list routes URLs to views. This is the root URL configuration
that includes all app-specific routes.

URL Structure:
    /                              - ReDoc API documentation
    /admin/                        - Django admin interface
    /health/                       - Health check endpoint (for load balancers, Docker)
    /schema/                       - OpenAPI schema (YAML)
    /api/v1/auth/                  - JWT endpoints (simplejwt)
        token/                     - Obtain access/refresh pair
        token/refresh/             - Rotate refresh token
    /api/v1/escrow/                - Escrow endpoints
        escrow/create/             - Create campaign escrow (POST)
        escrow/fund/               - Fund escrow with a payment method (POST)
        funds/release/             - Release escrow to an application (POST)
        refund/                    - Refund escrow to brand (POST)
        dispute/                   - Open dispute (POST)
        escrow/{id}/status/        - Local and provider status (GET)
        escrow/{id}/reconcile/     - Reconcile with Stripe, admin only (POST)
        fees/calculate/            - Fee breakdown (GET)
        webhooks/stripe/           - Stripe webhook endpoint (POST)

For more information, see:
https://docs.djangoproject.com/en/5.2/topics/http/urls/
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView

from core.views import health_check

# =============================================================================
# API v1 Routes
# =============================================================================
# All routes here are prefixed with /api/v1/ automatically
api_v1_patterns = [
    # Authentication (simplejwt)
    path("auth/token/", TokenObtainPairView.as_view(), name="token_obtain_pair"),
    path("auth/token/refresh/", TokenRefreshView.as_view(), name="token_refresh"),
    # Escrow
    path("escrow/", include("escrow.urls")),
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
admin.site.site_header = "Campaign Escrow Admin"
admin.site.site_title = "Escrow Admin"
admin.site.index_title = "Campaigns, holds and payouts"
