"""
Pytest fixtures for Stripe gateway tests.

Stripe SDK calls are patched at the class method level, so the gateway's
own error translation and unit conversion run for real.

Sections:
    - Mock Stripe Objects
    - Patched Stripe Resources
    - Stripe Error Fixtures
"""

from dataclasses import dataclass
from typing import Any
from unittest.mock import patch

import pytest
import stripe

from escrow.adapters import StripeEscrowGateway


@pytest.fixture
def gateway(settings):
    settings.STRIPE_SECRET_KEY = "sk_test_escrow"
    return StripeEscrowGateway(timeout=5, max_retries=0)


# =============================================================================
# Mock Stripe Objects
# =============================================================================


@dataclass
class MockStripeObject:
    """Mock Stripe API object with attribute access and to_dict support."""

    data: dict[str, Any]

    def __getattr__(self, name: str) -> Any:
        if name == "data":
            return self.__dict__["data"]
        return self.data.get(name)

    def to_dict(self) -> dict[str, Any]:
        return self.data


@pytest.fixture
def mock_payment_intent():
    """Create a mock PaymentIntent response."""

    def _create(
        id: str = "pi_test123456",
        status: str = "requires_payment_method",
        amount: int = 100000,
        currency: str = "usd",
        client_secret: str = "pi_test123456_secret_abc123",
        amount_received: int = 0,
        latest_charge: Any = None,
        last_payment_error: dict | None = None,
        metadata: dict | None = None,
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "object": "payment_intent",
                "status": status,
                "amount": amount,
                "currency": currency,
                "client_secret": client_secret,
                "amount_received": amount_received,
                "latest_charge": latest_charge,
                "last_payment_error": last_payment_error,
                "metadata": metadata or {},
            }
        )

    return _create


@pytest.fixture
def mock_refund():
    """Create a mock Refund response."""

    def _create(
        id: str = "re_test123456",
        amount: int = 100000,
        status: str = "succeeded",
        payment_intent: str = "pi_test123456",
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "object": "refund",
                "amount": amount,
                "currency": "usd",
                "status": status,
                "payment_intent": payment_intent,
            }
        )

    return _create


# =============================================================================
# Patched Stripe Resources
# =============================================================================


@pytest.fixture
def mock_stripe_payment_intent():
    """Patch every PaymentIntent call the gateway makes."""
    with patch.object(stripe.PaymentIntent, "create") as mock_create, patch.object(
        stripe.PaymentIntent, "confirm"
    ) as mock_confirm, patch.object(
        stripe.PaymentIntent, "capture"
    ) as mock_capture, patch.object(
        stripe.PaymentIntent, "cancel"
    ) as mock_cancel, patch.object(
        stripe.PaymentIntent, "retrieve"
    ) as mock_retrieve:
        yield {
            "create": mock_create,
            "confirm": mock_confirm,
            "capture": mock_capture,
            "cancel": mock_cancel,
            "retrieve": mock_retrieve,
        }


@pytest.fixture
def mock_stripe_refund():
    with patch.object(stripe.Refund, "create") as mock_create:
        yield mock_create


# =============================================================================
# Stripe Error Fixtures
# =============================================================================


@pytest.fixture
def card_error():
    """Create a Stripe CardError."""

    def _create(
        message: str = "Your card was declined.",
        code: str = "card_declined",
        decline_code: str | None = "generic_decline",
    ) -> stripe.CardError:
        error = stripe.CardError(message=message, param=None, code=code)
        error.decline_code = decline_code
        return error

    return _create


@pytest.fixture
def invalid_request_error():
    """Create a Stripe InvalidRequestError."""

    def _create(
        message: str = "No such payment_intent",
        code: str = "resource_missing",
    ) -> stripe.InvalidRequestError:
        return stripe.InvalidRequestError(message=message, param="intent", code=code)

    return _create
