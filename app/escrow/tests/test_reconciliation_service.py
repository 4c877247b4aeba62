"""
Tests for ReconciliationService and discrepancy detection.

Tests cover:
1. detect_discrepancy against every local status
2. Auto-healing of clear-cut mismatches
3. Flagging of everything else (deduplicated)
4. Claims: in-flight holds are skipped, unconfirmed claims cleared
"""

from decimal import Decimal

import pytest
from django.utils import timezone

from campaigns.models import CampaignPaymentStatus, CampaignStatus
from escrow.adapters import ProviderStatus
from escrow.exceptions import EscrowNotFoundError, GatewayError, GatewayErrorKind, GatewayTimeoutError
from escrow.models import EscrowDiscrepancy, EscrowHold
from escrow.services import ReconciliationService, detect_discrepancy
from escrow.state_machines import (
    DiscrepancyResolution,
    EscrowOperation,
    EscrowStatus,
    ProviderHoldStatus,
)
from escrow.tests.conftest import VALID_PAYMENT_METHOD
from escrow.tests.factories import EscrowHoldFactory


def _provider(status, captured="0", refunded="0"):
    return ProviderStatus(
        hold_id="pi_probe",
        status=status,
        raw_status="test",
        amount=Decimal("1000.00"),
        captured_amount=Decimal(captured),
        refunded_amount=Decimal(refunded),
        currency="usd",
    )


@pytest.fixture
def reconciler(gateway):
    return ReconciliationService(gateway=gateway)


# =============================================================================
# Detection
# =============================================================================


class TestDetectDiscrepancy:
    @pytest.mark.parametrize(
        "local,provider",
        [
            (EscrowStatus.PENDING_PAYMENT, ProviderHoldStatus.PENDING_PAYMENT),
            (EscrowStatus.PENDING_PAYMENT, ProviderHoldStatus.PROCESSING),
            (EscrowStatus.FUNDED, ProviderHoldStatus.FUNDED),
            (EscrowStatus.DISPUTED, ProviderHoldStatus.FUNDED),
            (EscrowStatus.RELEASED, ProviderHoldStatus.RELEASED),
            (EscrowStatus.REFUNDED, ProviderHoldStatus.CANCELLED),
            (EscrowStatus.CANCELLED, ProviderHoldStatus.CANCELLED),
        ],
    )
    def test_consistent_pairs(self, db, local, provider):
        hold = EscrowHoldFactory(status=local)

        assert detect_discrepancy(hold, _provider(provider)) is None

    def test_mismatch_is_typed_by_both_statuses(self, db):
        hold = EscrowHoldFactory(status=EscrowStatus.FUNDED)

        discrepancy = detect_discrepancy(hold, _provider(ProviderHoldStatus.CANCELLED))

        assert discrepancy.discrepancy_type == "provider_cancelled_local_funded"
        assert discrepancy.local_status == EscrowStatus.FUNDED
        assert discrepancy.provider_status == ProviderHoldStatus.CANCELLED

    def test_recorded_capture_on_funded_hold_is_consistent(self, db):
        hold = EscrowHoldFactory(status=EscrowStatus.FUNDED)
        EscrowHold.objects.filter(pk=hold.pk).update(
            captured_amount=Decimal("1000.00"),
            captured_at=timezone.now(),
        )
        hold = EscrowHold.objects.get(pk=hold.pk)

        assert detect_discrepancy(hold, _provider(ProviderHoldStatus.RELEASED, captured="1000")) is None

    def test_refunded_hold_needs_provider_refund_after_capture(self, db):
        hold = EscrowHoldFactory(status=EscrowStatus.REFUNDED)

        assert detect_discrepancy(
            hold, _provider(ProviderHoldStatus.RELEASED, captured="1000", refunded="1000")
        ) is None
        assert detect_discrepancy(
            hold, _provider(ProviderHoldStatus.RELEASED, captured="1000")
        ) is not None

    def test_unknown_provider_status_is_a_discrepancy(self, db):
        hold = EscrowHoldFactory(status=EscrowStatus.FUNDED)

        discrepancy = detect_discrepancy(hold, _provider(ProviderHoldStatus.UNKNOWN))

        assert discrepancy.discrepancy_type == "provider_unknown_local_funded"


# =============================================================================
# Reconciliation
# =============================================================================


class TestReconcileHold:
    def test_in_sync(self, reconciler, funded_hold):
        outcome = reconciler.reconcile_hold(funded_hold.pk)

        assert outcome.action == "in_sync"
        assert outcome.discrepancy_type is None
        assert not EscrowDiscrepancy.objects.exists()

    def test_confirms_funding_seen_only_at_provider(self, reconciler, gateway, pending_hold, campaign):
        gateway.set_status(pending_hold.pk, "requires_capture")

        outcome = reconciler.reconcile_hold(pending_hold.pk)

        assert outcome.action == "funded"
        assert EscrowHold.objects.get(pk=pending_hold.pk).status == EscrowStatus.FUNDED
        campaign.refresh_from_db()
        assert campaign.payment_status == CampaignPaymentStatus.FUNDED

        record = EscrowDiscrepancy.objects.get(pk=outcome.discrepancy_id)
        assert record.resolution == DiscrepancyResolution.AUTO_HEALED
        assert record.resolved_at is not None

    def test_cancels_hold_voided_at_provider(self, reconciler, gateway, pending_hold, campaign):
        gateway.set_status(pending_hold.pk, "canceled")

        outcome = reconciler.reconcile_hold(pending_hold.pk)

        assert outcome.action == "cancelled"
        assert EscrowHold.objects.get(pk=pending_hold.pk).status == EscrowStatus.CANCELLED
        campaign.refresh_from_db()
        assert campaign.status == CampaignStatus.CANCELLED

    def test_records_capture_and_clears_unconfirmed_claim(
        self, reconciler, service, gateway, funded_hold, application, brand
    ):
        gateway.fail_next("capture_hold", GatewayTimeoutError("timed out"))
        service.release_funds(funded_hold.pk, brand, application.influencer_id)
        gateway.set_status(funded_hold.pk, "succeeded", captured_amount=Decimal("1000.00"))

        outcome = reconciler.reconcile_hold(funded_hold.pk)

        assert outcome.action == "recorded_capture"
        hold = EscrowHold.objects.get(pk=funded_hold.pk)
        assert hold.status == EscrowStatus.FUNDED
        assert hold.captured_amount == Decimal("1000.00")
        assert hold.pending_operation == ""

        # The retried release skips the capture
        result = service.release_funds(funded_hold.pk, brand, application.influencer_id)
        assert result.success, result.error
        assert len(gateway.calls_to("capture_hold")) == 1

    def test_clears_claim_when_provider_never_applied(self, reconciler, service, gateway, pending_hold, brand):
        gateway.fail_next("confirm_hold", GatewayTimeoutError("timed out"))
        service.fund_escrow(pending_hold.pk, brand, VALID_PAYMENT_METHOD)

        outcome = reconciler.reconcile_hold(pending_hold.pk)

        assert outcome.action == "cleared_claim"
        hold = EscrowHold.objects.get(pk=pending_hold.pk)
        assert hold.pending_operation == ""
        assert hold.pending_confirmation is False
        assert hold.status == EscrowStatus.PENDING_PAYMENT

    def test_skips_hold_with_operation_in_flight(self, reconciler, gateway, funded_hold):
        EscrowHold.objects.filter(pk=funded_hold.pk).update(pending_operation=EscrowOperation.RELEASE)

        outcome = reconciler.reconcile_hold(funded_hold.pk)

        assert outcome.action == "skipped"
        assert gateway.calls_to("get_status") == []

    def test_flags_unhealable_mismatch_once(self, reconciler, gateway, funded_hold):
        gateway.set_status(funded_hold.pk, "canceled")

        first = reconciler.reconcile_hold(funded_hold.pk)
        second = reconciler.reconcile_hold(funded_hold.pk)

        assert first.action == "flagged"
        assert first.discrepancy_type == "provider_cancelled_local_funded"
        assert second.discrepancy_id == first.discrepancy_id

        record = EscrowDiscrepancy.objects.get(pk=first.discrepancy_id)
        assert record.resolution == DiscrepancyResolution.FLAGGED_FOR_REVIEW
        assert EscrowHold.objects.get(pk=funded_hold.pk).status == EscrowStatus.FUNDED

    def test_unknown_hold(self, reconciler, db):
        with pytest.raises(EscrowNotFoundError):
            reconciler.reconcile_hold("pi_missing")

    def test_provider_failure_propagates(self, reconciler, gateway, funded_hold):
        gateway.fail_next("get_status", GatewayError("down", kind=GatewayErrorKind.UNAVAILABLE))

        with pytest.raises(GatewayError):
            reconciler.reconcile_hold(funded_hold.pk)

    def test_outcome_to_dict(self, reconciler, funded_hold):
        data = reconciler.reconcile_hold(funded_hold.pk).to_dict()

        assert data == {
            "escrow_id": funded_hold.pk,
            "local_status": EscrowStatus.FUNDED,
            "provider_status": ProviderHoldStatus.FUNDED,
            "action": "in_sync",
            "discrepancy_type": None,
            "discrepancy_id": None,
        }
