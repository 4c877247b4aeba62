"""
Tests for escrow admin actions.
"""

from unittest.mock import patch

import pytest
from django.contrib.admin.sites import site
from django.test import RequestFactory

from escrow.models import EscrowDiscrepancy, EscrowHold
from escrow.state_machines import DiscrepancyResolution, EscrowStatus
from escrow.tests.factories import EscrowHoldFactory


@pytest.fixture
def admin_request(platform_admin):
    request = RequestFactory().post("/admin/")
    request.user = platform_admin
    return request


class TestReconcileAction:
    def test_queues_one_task_per_hold(self, admin_request, db):
        holds = [EscrowHoldFactory(), EscrowHoldFactory(status=EscrowStatus.FUNDED)]
        model_admin = site._registry[EscrowHold]

        with patch("escrow.tasks.reconcile_escrow_hold.delay") as mock_delay, patch.object(
            model_admin, "message_user"
        ) as mock_message:
            model_admin.reconcile_with_provider(
                admin_request, EscrowHold.objects.filter(pk__in=[h.pk for h in holds])
            )

        assert mock_delay.call_count == 2
        mock_delay.assert_any_call(holds[0].pk, actor_id=admin_request.user.pk)
        assert "2 holds" in mock_message.call_args.args[1]


class TestMarkResolvedAction:
    def test_only_flagged_discrepancies_are_resolved(self, admin_request, db):
        hold = EscrowHoldFactory(status=EscrowStatus.FUNDED)
        flagged = EscrowDiscrepancy.objects.create(
            escrow_hold=hold,
            discrepancy_type="provider_cancelled_local_funded",
            local_status=EscrowStatus.FUNDED,
            provider_status="cancelled",
        )
        healed = EscrowDiscrepancy.objects.create(
            escrow_hold=hold,
            discrepancy_type="provider_funded_local_pending_payment",
            local_status=EscrowStatus.PENDING_PAYMENT,
            provider_status="funded",
            resolution=DiscrepancyResolution.AUTO_HEALED,
        )
        model_admin = site._registry[EscrowDiscrepancy]

        with patch.object(model_admin, "message_user"):
            model_admin.mark_resolved(admin_request, EscrowDiscrepancy.objects.all())

        flagged.refresh_from_db()
        healed.refresh_from_db()
        assert flagged.resolution == DiscrepancyResolution.MANUALLY_RESOLVED
        assert flagged.resolved_at is not None
        assert healed.resolution == DiscrepancyResolution.AUTO_HEALED
