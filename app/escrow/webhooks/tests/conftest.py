"""
Pytest fixtures for webhook tests.

Hold, campaign and gateway fixtures are shared with the escrow service
tests; handlers here reconcile through the same FakeEscrowGateway.
"""

from unittest.mock import patch

import pytest
from django.test import RequestFactory

from escrow.services import ReconciliationService
from escrow.tests.conftest import (  # noqa: F401
    brand,
    campaign,
    fee_settings,
    funded_hold,
    gateway,
    pending_hold,
    service,
)


@pytest.fixture
def rf():
    return RequestFactory()


@pytest.fixture
def reconciler(gateway):
    """Route handler reconciliation through the fake gateway."""
    service = ReconciliationService(gateway=gateway)
    with patch("escrow.webhooks.handlers.get_reconciliation_service", return_value=service):
        yield service
