"""
Tests for the escrow API views.

The views build their service through build_escrow_service, which is
patched to return an EscrowService on FakeEscrowGateway.
"""

from unittest.mock import patch

import pytest
from django.urls import reverse, reverse_lazy
from rest_framework import status

from escrow.exceptions import GatewayError, GatewayErrorKind, GatewayTimeoutError
from escrow.models import EscrowHold
from escrow.state_machines import EscrowStatus
from escrow.tests.conftest import VALID_PAYMENT_METHOD
from escrow.tests.fakes import DECLINED_PAYMENT_METHOD


@pytest.fixture(autouse=True)
def patched_service(service):
    with patch("escrow.views.build_escrow_service", return_value=service):
        yield service


@pytest.fixture
def admin_client(api_client, platform_admin):
    api_client.force_authenticate(user=platform_admin)
    return api_client


class TestCreateEscrowView:
    url = reverse_lazy("escrow:create")

    def test_create_returns_201(self, brand_client, campaign):
        response = brand_client.post(
            self.url,
            {"campaign_id": str(campaign.id), "amount": "1000.00", "currency": "usd"},
            format="json",
        )

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data["success"] is True
        assert response.data["data"]["status"] == EscrowStatus.PENDING_PAYMENT
        assert EscrowHold.objects.filter(pk=response.data["data"]["escrow_id"]).exists()

    def test_requires_authentication(self, api_client, campaign):
        response = api_client.post(
            self.url,
            {"campaign_id": str(campaign.id), "amount": "1000.00"},
            format="json",
        )

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_invalid_body_returns_400(self, brand_client):
        response = brand_client.post(self.url, {"amount": "abc"}, format="json")

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.data["error_code"] == "VALIDATION_ERROR"
        assert "campaign_id" in response.data["errors"]

    def test_other_brand_gets_403(self, api_client, other_brand, campaign):
        api_client.force_authenticate(user=other_brand)

        response = api_client.post(
            self.url,
            {"campaign_id": str(campaign.id), "amount": "1000.00"},
            format="json",
        )

        assert response.status_code == status.HTTP_403_FORBIDDEN
        assert response.data["error_code"] == "PERMISSION_DENIED"

    def test_unknown_campaign_returns_404(self, brand_client):
        response = brand_client.post(
            self.url,
            {"campaign_id": "8d9e4d8a-0000-4000-8000-000000000000", "amount": "10.00"},
            format="json",
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND
        assert response.data["error_code"] == "CAMPAIGN_NOT_FOUND"

    def test_second_live_escrow_returns_409(self, brand_client, pending_hold, campaign):
        response = brand_client.post(
            self.url,
            {"campaign_id": str(campaign.id), "amount": "10.00"},
            format="json",
        )

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data["details"]["escrow_id"] == pending_hold.pk


class TestFundEscrowView:
    url = reverse_lazy("escrow:fund")

    def test_fund(self, brand_client, pending_hold):
        response = brand_client.post(
            self.url,
            {"escrow_id": pending_hold.pk, "payment_method_ref": VALID_PAYMENT_METHOD},
            format="json",
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["data"]["status"] == EscrowStatus.FUNDED

    def test_declined_card_returns_402(self, brand_client, pending_hold):
        response = brand_client.post(
            self.url,
            {"escrow_id": pending_hold.pk, "payment_method_ref": DECLINED_PAYMENT_METHOD},
            format="json",
        )

        assert response.status_code == status.HTTP_402_PAYMENT_REQUIRED
        assert response.data["error_code"] == "PAYMENT_DECLINED"

    def test_pending_confirmation_returns_202(self, brand_client, gateway, pending_hold):
        gateway.fail_next("confirm_hold", GatewayTimeoutError("timed out"))

        response = brand_client.post(
            self.url,
            {"escrow_id": pending_hold.pk, "payment_method_ref": VALID_PAYMENT_METHOD},
            format="json",
        )

        assert response.status_code == status.HTTP_202_ACCEPTED
        assert response.data["success"] is False
        assert response.data["error_code"] == "PENDING_CONFIRMATION"

    def test_unknown_escrow_returns_404(self, brand_client):
        response = brand_client.post(
            self.url,
            {"escrow_id": "pi_missing", "payment_method_ref": VALID_PAYMENT_METHOD},
            format="json",
        )

        assert response.status_code == status.HTTP_404_NOT_FOUND


class TestReleaseFundsView:
    url = reverse_lazy("escrow:release")

    def test_release(self, brand_client, funded_hold, application):
        response = brand_client.post(self.url, {"application_id": str(application.id)}, format="json")

        assert response.status_code == status.HTTP_200_OK
        data = response.data["data"]
        assert data["status"] == EscrowStatus.RELEASED
        assert data["amount"] == "870.70"
        assert data["fees"]["platform_fee"] == "100.00"

    def test_release_of_pending_escrow_returns_409(self, brand_client, pending_hold, application):
        response = brand_client.post(self.url, {"application_id": str(application.id)}, format="json")

        assert response.status_code == status.HTTP_409_CONFLICT
        assert response.data["error_code"] == "INVALID_STATE"

    def test_gateway_failure_returns_502(self, brand_client, gateway, funded_hold, application):
        gateway.fail_next(
            "capture_hold",
            GatewayError("Invalid API key", kind=GatewayErrorKind.AUTHENTICATION),
        )

        response = brand_client.post(self.url, {"application_id": str(application.id)}, format="json")

        assert response.status_code == status.HTTP_502_BAD_GATEWAY
        assert response.data["error_code"] == "GATEWAY_ERROR"


class TestRefundView:
    url = reverse_lazy("escrow:refund")

    def test_refund(self, brand_client, funded_hold, campaign):
        response = brand_client.post(self.url, {"campaign_id": str(campaign.id)}, format="json")

        assert response.status_code == status.HTTP_200_OK
        assert response.data["data"]["status"] == EscrowStatus.REFUNDED
        assert response.data["data"]["reason"] == "campaign_cancelled"

    def test_partial_refund_of_uncaptured_escrow_returns_400(self, brand_client, funded_hold, campaign):
        response = brand_client.post(
            self.url,
            {"campaign_id": str(campaign.id), "refund_amount": "10.00"},
            format="json",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestDisputeView:
    url = reverse_lazy("escrow:dispute")

    def test_dispute(self, brand_client, funded_hold):
        response = brand_client.post(
            self.url,
            {
                "escrow_id": funded_hold.pk,
                "dispute_type": "content_not_delivered",
                "evidence": {"details": "No posts"},
            },
            format="json",
        )

        assert response.status_code == status.HTTP_200_OK
        assert response.data["data"]["status"] == EscrowStatus.DISPUTED

    def test_unknown_dispute_type_returns_400(self, brand_client, funded_hold):
        response = brand_client.post(
            self.url,
            {"escrow_id": funded_hold.pk, "dispute_type": "chargeback"},
            format="json",
        )

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert "dispute_type" in response.data["errors"]


class TestEscrowStatusView:
    def test_status(self, brand_client, funded_hold):
        response = brand_client.get(reverse("escrow:status", args=[funded_hold.pk]))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["data"]["in_sync"] is True

    def test_applied_influencer_can_read(self, api_client, funded_hold, application):
        api_client.force_authenticate(user=application.influencer)

        response = api_client.get(reverse("escrow:status", args=[funded_hold.pk]))

        assert response.status_code == status.HTTP_200_OK


class TestCalculateFeesView:
    url = reverse_lazy("escrow:calculate-fees")

    def test_fee_breakdown(self, brand_client):
        response = brand_client.get(self.url, {"amount": "1000.00", "currency": "usd"})

        assert response.status_code == status.HTTP_200_OK
        assert response.data["data"] == {
            "gross_amount": "1000.00",
            "platform_fee": "100.00",
            "provider_fee": "29.30",
            "net_payee_amount": "870.70",
            "currency": "usd",
        }

    def test_missing_amount_returns_400(self, brand_client):
        response = brand_client.get(self.url)

        assert response.status_code == status.HTTP_400_BAD_REQUEST


class TestReconcileEscrowView:
    def test_admin_can_reconcile(self, admin_client, funded_hold):
        response = admin_client.post(reverse("escrow:reconcile", args=[funded_hold.pk]))

        assert response.status_code == status.HTTP_200_OK
        assert response.data["data"]["action"] == "in_sync"

    def test_brand_is_forbidden(self, brand_client, funded_hold):
        response = brand_client.post(reverse("escrow:reconcile", args=[funded_hold.pk]))

        assert response.status_code == status.HTTP_403_FORBIDDEN
