"""
Pytest fixtures for escrow tests.

Service fixtures run against FakeEscrowGateway, so every lifecycle
test exercises the real claim/commit path without network calls.

Usage:
    def test_release(service, funded_hold, application, brand):
        result = service.release_funds(funded_hold.pk, brand, application.influencer_id)
        assert result.success
"""

from decimal import Decimal

import pytest
from rest_framework.test import APIClient

from authentication.tests.factories import AdminFactory, BrandFactory, InfluencerFactory
from campaigns.tests.factories import ApplicationFactory, CampaignFactory
from escrow.models import EscrowHold
from escrow.services import EscrowService
from escrow.tests.fakes import FakeEscrowGateway

VALID_PAYMENT_METHOD = "pm_card_visa"


@pytest.fixture(autouse=True)
def fee_settings(settings):
    """Pin the fee schedule and currencies used by every escrow test."""
    settings.ESCROW_PLATFORM_COMMISSION_RATE = "0.10"
    settings.ESCROW_PROVIDER_PERCENT_RATE = "0.029"
    settings.ESCROW_PROVIDER_FIXED_FEE = "0.30"
    settings.ESCROW_SUPPORTED_CURRENCIES = ["usd", "eur", "gbp", "jpy"]
    settings.ESCROW_DEFAULT_CURRENCY = "usd"
    return settings


# =============================================================================
# Accounts
# =============================================================================


@pytest.fixture
def brand(db):
    return BrandFactory()


@pytest.fixture
def other_brand(db):
    return BrandFactory()


@pytest.fixture
def influencer(db):
    return InfluencerFactory()


@pytest.fixture
def platform_admin(db):
    return AdminFactory()


# =============================================================================
# Campaign Data
# =============================================================================


@pytest.fixture
def campaign(db, brand):
    return CampaignFactory(brand=brand)


@pytest.fixture
def application(db, campaign, influencer):
    """Approved application of influencer to campaign."""
    return ApplicationFactory(campaign=campaign, influencer=influencer)


# =============================================================================
# Service & Gateway
# =============================================================================


@pytest.fixture
def gateway():
    return FakeEscrowGateway()


@pytest.fixture
def service(gateway):
    return EscrowService(gateway=gateway)


@pytest.fixture
def pending_hold(service, campaign, brand):
    """Hold created for campaign, awaiting payment."""
    result = service.create_escrow_account(campaign.id, brand, Decimal("1000.00"), "usd")
    assert result.success, result.error
    return EscrowHold.objects.get(pk=result.data["escrow_id"])


@pytest.fixture
def funded_hold(service, pending_hold, brand):
    """Hold confirmed with a valid card (authorized, not captured)."""
    result = service.fund_escrow(pending_hold.pk, brand, VALID_PAYMENT_METHOD)
    assert result.success, result.error
    return EscrowHold.objects.get(pk=pending_hold.pk)


# =============================================================================
# API
# =============================================================================


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def brand_client(api_client, brand):
    api_client.force_authenticate(user=brand)
    return api_client
