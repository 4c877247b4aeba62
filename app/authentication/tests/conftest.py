"""
Test configuration and fixtures for authentication tests.

Usage:
    def test_example(brand, api_client):
        api_client.force_authenticate(user=brand)
"""

import pytest
from rest_framework.test import APIClient

from authentication.models import User
from authentication.tests.factories import AdminFactory, BrandFactory, InfluencerFactory


@pytest.fixture
def api_client():
    """Unauthenticated DRF API client."""
    return APIClient()


@pytest.fixture
def brand(db):
    return BrandFactory()


@pytest.fixture
def influencer(db):
    return InfluencerFactory()


@pytest.fixture
def platform_admin(db):
    return AdminFactory()


@pytest.fixture
def superuser(db):
    """Create a superuser with admin privileges."""
    return User.objects.create_superuser(
        email="admin@example.com", password="AdminPass123!"
    )
