"""
Tests for escrow Celery tasks.

Tests cover:
- process_webhook_event task
- reconcile_escrow_hold task
"""

from unittest.mock import patch
from uuid import uuid4

import pytest

from core.services import ServiceResult
from escrow.exceptions import GatewayError, GatewayErrorKind
from escrow.models import EscrowHold, WebhookEvent
from escrow.state_machines import EscrowStatus, WebhookEventStatus
from escrow.tasks import process_webhook_event, reconcile_escrow_hold
from escrow.tests.factories import WebhookEventFactory


# =============================================================================
# process_webhook_event Tests
# =============================================================================


class TestProcessWebhookEvent:
    """Tests for the process_webhook_event task."""

    def test_process_pending_event_success(self, db):
        event = WebhookEventFactory()

        with patch("escrow.webhooks.handlers.dispatch_webhook") as mock_dispatch:
            mock_dispatch.return_value = ServiceResult.success(None)

            result = process_webhook_event(str(event.id))

        assert result["status"] == "processed"
        assert result["stripe_event_id"] == event.stripe_event_id

        event.refresh_from_db()
        assert event.status == WebhookEventStatus.PROCESSED
        assert event.processed_at is not None
        assert event.retry_count == 1

    def test_skip_already_processed_event(self, db):
        event = WebhookEventFactory(status=WebhookEventStatus.PROCESSED)

        with patch("escrow.webhooks.handlers.dispatch_webhook") as mock_dispatch:
            result = process_webhook_event(str(event.id))

        assert result["status"] == "already_processed"
        mock_dispatch.assert_not_called()

    def test_event_not_found(self, db):
        result = process_webhook_event(str(uuid4()))

        assert result["status"] == "not_found"

    def test_event_without_handler_is_ignored(self, db):
        event = WebhookEventFactory(event_type="customer.created")

        result = process_webhook_event(str(event.id))

        assert result["status"] == "ignored"
        event.refresh_from_db()
        assert event.status == WebhookEventStatus.IGNORED

    def test_handler_failure_marks_event_failed(self, db):
        event = WebhookEventFactory()

        with patch("escrow.webhooks.handlers.dispatch_webhook") as mock_dispatch:
            mock_dispatch.return_value = ServiceResult.failure(
                "Handler error", error_code="HANDLER_ERROR"
            )

            result = process_webhook_event(str(event.id))

        assert result["status"] == "handler_failed"
        event.refresh_from_db()
        assert event.status == WebhookEventStatus.FAILED
        assert "Handler error" in event.error_message

    def test_exception_marks_event_failed_and_raises(self, db):
        event = WebhookEventFactory()

        with patch("escrow.webhooks.handlers.dispatch_webhook") as mock_dispatch:
            mock_dispatch.side_effect = Exception("Database connection lost")

            with pytest.raises(Exception, match="Database connection lost"):
                process_webhook_event(str(event.id))

        event.refresh_from_db()
        assert event.status == WebhookEventStatus.FAILED
        assert "Database connection lost" in event.error_message

    def test_failed_event_is_processed_on_retry(self, db):
        event = WebhookEventFactory(status=WebhookEventStatus.FAILED, retry_count=2)

        with patch("escrow.webhooks.handlers.dispatch_webhook") as mock_dispatch:
            mock_dispatch.return_value = ServiceResult.success(None)

            process_webhook_event(str(event.id))

        event.refresh_from_db()
        assert event.status == WebhookEventStatus.PROCESSED
        assert event.retry_count == 3

    def test_end_to_end_with_fake_gateway(self, gateway, pending_hold):
        gateway.set_status(pending_hold.pk, "requires_capture")
        event = WebhookEventFactory(
            event_type="payment_intent.amount_capturable_updated",
            hold_id=pending_hold.pk,
        )

        with patch("escrow.webhooks.handlers.StripeEscrowGateway", return_value=gateway):
            result = process_webhook_event(str(event.id))

        assert result["status"] == "processed"
        assert EscrowHold.objects.get(pk=pending_hold.pk).status == EscrowStatus.FUNDED
        assert WebhookEvent.objects.get(pk=event.pk).status == WebhookEventStatus.PROCESSED


# =============================================================================
# reconcile_escrow_hold Tests
# =============================================================================


class TestReconcileEscrowHold:
    """Tests for the reconcile_escrow_hold task."""

    @pytest.fixture(autouse=True)
    def stripe_gateway(self, gateway):
        with patch("escrow.tasks.StripeEscrowGateway", return_value=gateway):
            yield gateway

    def test_returns_outcome(self, funded_hold, platform_admin):
        result = reconcile_escrow_hold(funded_hold.pk, actor_id=platform_admin.pk)

        assert result["escrow_id"] == funded_hold.pk
        assert result["action"] == "in_sync"

    def test_heals_hold(self, gateway, pending_hold):
        gateway.set_status(pending_hold.pk, "canceled")

        result = reconcile_escrow_hold(pending_hold.pk)

        assert result["action"] == "cancelled"
        assert EscrowHold.objects.get(pk=pending_hold.pk).status == EscrowStatus.CANCELLED

    def test_unknown_hold(self, db):
        result = reconcile_escrow_hold("pi_missing")

        assert result == {"status": "not_found", "escrow_id": "pi_missing"}

    def test_retryable_gateway_error_is_retried(self, gateway, funded_hold):
        gateway.fail_next("get_status", GatewayError("rate limited", kind=GatewayErrorKind.RATE_LIMITED))

        # Called directly, Celery's retry re-raises the original error
        with pytest.raises(GatewayError):
            reconcile_escrow_hold(funded_hold.pk)

    def test_permanent_gateway_error_is_raised(self, gateway, funded_hold):
        gateway.fail_next(
            "get_status",
            GatewayError("Invalid API key", kind=GatewayErrorKind.AUTHENTICATION),
        )

        with patch.object(reconcile_escrow_hold, "retry") as mock_retry:
            with pytest.raises(GatewayError):
                reconcile_escrow_hold(funded_hold.pk)

        mock_retry.assert_not_called()
