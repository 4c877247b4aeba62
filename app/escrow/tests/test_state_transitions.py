"""
Tests for EscrowHold state machine transitions using django-fsm.

Tests valid and invalid transitions and the protected status field.
"""

from decimal import Decimal

import pytest
from django.db import IntegrityError
from django_fsm import TransitionNotAllowed

from escrow.models import EscrowHold
from escrow.state_machines import EscrowStatus
from escrow.tests.factories import EscrowHoldFactory


class TestEscrowHoldTransitions:
    """Tests for EscrowHold state machine transitions."""

    # -------------------------------------------------------------------------
    # Valid Transitions
    # -------------------------------------------------------------------------

    def test_pending_to_funded(self, db):
        hold = EscrowHoldFactory()
        hold.fund()
        hold.save()

        hold = EscrowHold.objects.get(pk=hold.pk)
        assert hold.status == EscrowStatus.FUNDED
        assert hold.funded_at is not None

    def test_pending_to_cancelled(self, db):
        hold = EscrowHoldFactory()
        hold.cancel()
        hold.save()

        assert hold.status == EscrowStatus.CANCELLED
        assert hold.cancelled_at is not None
        assert hold.is_terminal is True

    def test_funded_to_released(self, db):
        hold = EscrowHoldFactory(status=EscrowStatus.FUNDED)
        hold.release()
        hold.save()

        assert hold.status == EscrowStatus.RELEASED
        assert hold.released_at is not None

    def test_funded_to_refunded(self, db):
        hold = EscrowHoldFactory(status=EscrowStatus.FUNDED)
        hold.refund(Decimal("1000.00"), refund_id="re_123")
        hold.save()

        assert hold.status == EscrowStatus.REFUNDED
        assert hold.refunded_amount == Decimal("1000.00")
        assert hold.provider_refund_id == "re_123"

    def test_funded_to_disputed(self, db):
        hold = EscrowHoldFactory(status=EscrowStatus.FUNDED)
        hold.dispute()
        hold.save()

        assert hold.status == EscrowStatus.DISPUTED
        assert hold.disputed_at is not None

    @pytest.mark.parametrize("method", ["release", "refund"])
    def test_disputed_can_be_settled(self, db, method):
        hold = EscrowHoldFactory(status=EscrowStatus.DISPUTED)
        if method == "refund":
            hold.refund(Decimal("1000.00"))
        else:
            hold.release()
        hold.save()

        assert hold.is_terminal is True

    # -------------------------------------------------------------------------
    # Invalid Transitions
    # -------------------------------------------------------------------------

    def test_cannot_release_pending(self, db):
        hold = EscrowHoldFactory()

        with pytest.raises(TransitionNotAllowed):
            hold.release()

    def test_cannot_refund_pending(self, db):
        """Pending holds are cancelled, never refunded."""
        hold = EscrowHoldFactory()

        with pytest.raises(TransitionNotAllowed):
            hold.refund(Decimal("1000.00"))

    def test_cannot_dispute_twice(self, db):
        hold = EscrowHoldFactory(status=EscrowStatus.DISPUTED)

        with pytest.raises(TransitionNotAllowed):
            hold.dispute()

    @pytest.mark.parametrize(
        "status",
        [EscrowStatus.RELEASED, EscrowStatus.REFUNDED, EscrowStatus.CANCELLED],
    )
    def test_terminal_states_accept_no_transition(self, db, status):
        hold = EscrowHoldFactory(status=status)

        for method, args in [
            ("fund", ()),
            ("release", ()),
            ("cancel", ()),
            ("dispute", ()),
            ("refund", (Decimal("1"),)),
        ]:
            with pytest.raises(TransitionNotAllowed):
                getattr(hold, method)(*args)

    def test_status_is_protected(self, db):
        hold = EscrowHoldFactory()

        with pytest.raises(AttributeError):
            hold.status = EscrowStatus.RELEASED


class TestEscrowHoldConstraints:
    def test_save_increments_version(self, db):
        hold = EscrowHoldFactory()
        assert hold.version == 1

        hold.fund()
        hold.save()

        assert hold.version == 2

    def test_one_live_hold_per_campaign(self, db):
        hold = EscrowHoldFactory()

        with pytest.raises(IntegrityError):
            EscrowHoldFactory(campaign=hold.campaign)

    def test_terminal_hold_does_not_block_a_new_one(self, db):
        hold = EscrowHoldFactory(status=EscrowStatus.CANCELLED)

        replacement = EscrowHoldFactory(campaign=hold.campaign)

        assert replacement.status == EscrowStatus.PENDING_PAYMENT
