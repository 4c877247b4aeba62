"""
Tests for DisputeService.
"""

from datetime import datetime, timezone

import pytest
from freezegun import freeze_time

from escrow.exceptions import (
    EscrowNotFoundError,
    EscrowPermissionError,
    EscrowValidationError,
    InvalidStateError,
)
from escrow.models import DisputeRecord, EscrowHold
from escrow.services import DisputeService
from escrow.state_machines import DisputeStatus, DisputeType, EscrowStatus
from escrow.tests.factories import EscrowHoldFactory


@pytest.fixture
def disputes():
    return DisputeService()


@pytest.fixture
def hold(campaign):
    return EscrowHoldFactory(campaign=campaign, status=EscrowStatus.FUNDED)


class TestOpenDispute:
    def test_records_dispute_and_freezes_hold(self, disputes, hold, brand):
        record = disputes.open_dispute(
            hold.pk,
            brand,
            DisputeType.CONTENT_NOT_DELIVERED,
            {"details": "No posts after 30 days"},
        )

        assert record.status == DisputeStatus.UNDER_REVIEW
        assert record.reported_by == brand
        assert record.evidence["details"] == "No posts after 30 days"
        assert record.evidence["reported_by"] == brand.pk
        assert "reported_at" in record.evidence

        hold = EscrowHold.objects.get(pk=hold.pk)
        assert hold.status == EscrowStatus.DISPUTED
        assert hold.disputed_at is not None

    @freeze_time("2026-03-01 12:00:00")
    def test_report_time_is_stamped_on_record_and_evidence(self, disputes, hold, brand):
        record = disputes.open_dispute(hold.pk, brand, DisputeType.CONTENT_QUALITY)

        frozen = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        assert record.reported_at == frozen
        assert record.evidence["reported_at"] == frozen.isoformat()
        assert EscrowHold.objects.get(pk=hold.pk).disputed_at == frozen

    def test_free_text_evidence_is_stored_as_details(self, disputes, hold, brand):
        record = disputes.open_dispute(hold.pk, brand, DisputeType.OTHER, "late delivery")

        assert record.evidence["details"] == "late delivery"

    def test_applied_influencer_can_dispute(self, disputes, hold, application):
        record = disputes.open_dispute(hold.pk, application.influencer, DisputeType.PAYMENT_DELAY)

        assert record.reported_by == application.influencer

    def test_platform_admin_can_dispute(self, disputes, hold, platform_admin):
        disputes.open_dispute(hold.pk, platform_admin, DisputeType.BREACH_OF_CONTRACT)

        assert DisputeRecord.objects.filter(escrow_hold=hold).count() == 1

    def test_unrelated_user_cannot_dispute(self, disputes, hold, other_brand, influencer):
        for caller in (other_brand, influencer):
            with pytest.raises(EscrowPermissionError):
                disputes.open_dispute(hold.pk, caller, DisputeType.OTHER)

        assert not DisputeRecord.objects.exists()

    def test_second_dispute_is_refused(self, disputes, hold, brand):
        disputes.open_dispute(hold.pk, brand, DisputeType.OTHER)

        with pytest.raises(InvalidStateError):
            disputes.open_dispute(hold.pk, brand, DisputeType.OTHER)

        assert DisputeRecord.objects.filter(escrow_hold=hold).count() == 1

    @pytest.mark.parametrize(
        "status",
        [EscrowStatus.PENDING_PAYMENT, EscrowStatus.RELEASED, EscrowStatus.REFUNDED],
    )
    def test_only_funded_holds_can_be_disputed(self, disputes, campaign, brand, status):
        hold = EscrowHoldFactory(campaign=campaign, status=status)

        with pytest.raises(InvalidStateError):
            disputes.open_dispute(hold.pk, brand, DisputeType.OTHER)

    def test_in_flight_hold_cannot_be_disputed(self, disputes, hold, brand):
        EscrowHold.objects.filter(pk=hold.pk).update(pending_operation="release")

        with pytest.raises(InvalidStateError):
            disputes.open_dispute(hold.pk, brand, DisputeType.OTHER)

    def test_unknown_type(self, disputes, hold, brand):
        with pytest.raises(EscrowValidationError):
            disputes.open_dispute(hold.pk, brand, "chargeback")

    def test_unknown_hold(self, disputes, brand):
        with pytest.raises(EscrowNotFoundError):
            disputes.open_dispute("pi_missing", brand, DisputeType.OTHER)
