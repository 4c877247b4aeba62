"""
Celery tasks for escrow processing.

This module provides async tasks for:
- Processing Stripe webhook events
- Reconciling a single escrow hold with the provider

Nothing here is scheduled; tasks are queued by the webhook view and by
operators (admin action / API).

Usage:
    from escrow.tasks import process_webhook_event, reconcile_escrow_hold

    process_webhook_event.delay(webhook_event_id)
    reconcile_escrow_hold.delay("pi_123")
"""

from __future__ import annotations

import logging
from uuid import UUID

from celery import shared_task
from django.db import transaction

from escrow.adapters import StripeEscrowGateway, backoff_delay
from escrow.exceptions import EscrowNotFoundError, GatewayError
from escrow.models import WebhookEvent
from escrow.state_machines import WebhookEventStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

MAX_WEBHOOK_RETRIES = 5
MAX_RECONCILE_RETRIES = 5


# =============================================================================
# Webhook Processing
# =============================================================================


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_WEBHOOK_RETRIES},
    acks_late=True,
)
def process_webhook_event(self, webhook_event_id: str) -> dict:
    """
    Process a Stripe webhook event asynchronously.

    This task:
    1. Loads the WebhookEvent by ID
    2. Skips events that were already handled
    3. Marks as processing and dispatches to the registered handler
    4. Marks as processed, ignored (no handler) or failed

    Raises:
        Exception: Re-raised to trigger Celery retry mechanism
    """
    from escrow.webhooks.handlers import dispatch_webhook, has_handler

    if isinstance(webhook_event_id, str):
        webhook_event_id = UUID(webhook_event_id)

    try:
        webhook_event = WebhookEvent.objects.get(id=webhook_event_id)
    except WebhookEvent.DoesNotExist:
        logger.error(
            "WebhookEvent not found",
            extra={"webhook_event_id": str(webhook_event_id)},
        )
        return {"status": "not_found", "webhook_event_id": str(webhook_event_id)}

    if webhook_event.status in (WebhookEventStatus.PROCESSED, WebhookEventStatus.IGNORED):
        logger.info(
            "WebhookEvent already handled, skipping",
            extra={
                "webhook_event_id": str(webhook_event_id),
                "stripe_event_id": webhook_event.stripe_event_id,
            },
        )
        return {"status": "already_processed", "webhook_event_id": str(webhook_event_id)}

    if not has_handler(webhook_event.event_type):
        webhook_event.mark_ignored()
        webhook_event.save()
        return {"status": "ignored", "webhook_event_id": str(webhook_event_id)}

    webhook_event.mark_processing()
    webhook_event.save()

    logger.info(
        f"Dispatching webhook: {webhook_event.event_type}",
        extra={
            "webhook_event_id": str(webhook_event_id),
            "stripe_event_id": webhook_event.stripe_event_id,
            "retry_count": webhook_event.retry_count,
        },
    )

    try:
        with transaction.atomic():
            result = dispatch_webhook(webhook_event)
    except Exception as e:
        error_msg = f"{type(e).__name__}: {e}"
        webhook_event.mark_failed(error_msg)
        webhook_event.save()
        logger.exception(
            "Webhook processing failed with exception",
            extra={
                "webhook_event_id": str(webhook_event_id),
                "stripe_event_id": webhook_event.stripe_event_id,
            },
        )
        raise

    if not result.success:
        error_msg = result.error or "Handler returned failure"
        webhook_event.mark_failed(error_msg)
        webhook_event.save()
        logger.warning(
            f"Webhook handler failed: {error_msg}",
            extra={
                "webhook_event_id": str(webhook_event_id),
                "stripe_event_id": webhook_event.stripe_event_id,
                "error_code": result.error_code,
            },
        )
        return {"status": "handler_failed", "webhook_event_id": str(webhook_event_id), "error": error_msg}

    webhook_event.mark_processed()
    webhook_event.save()
    return {
        "status": "processed",
        "webhook_event_id": str(webhook_event_id),
        "stripe_event_id": webhook_event.stripe_event_id,
    }


# =============================================================================
# Reconciliation
# =============================================================================


@shared_task(bind=True, max_retries=MAX_RECONCILE_RETRIES, acks_late=True)
def reconcile_escrow_hold(self, escrow_id: str, actor_id: int | None = None) -> dict:
    """
    Reconcile one escrow hold with Stripe.

    Retries only retryable gateway failures (rate limits, outages,
    timeouts) with exponential backoff; everything else is final.

    Returns:
        ReconciliationOutcome as a dict, or {"status": "not_found"}
    """
    from django.contrib.auth import get_user_model

    from escrow.services import ReconciliationService

    actor = None
    if actor_id is not None:
        actor = get_user_model().objects.filter(pk=actor_id).first()

    service = ReconciliationService(gateway=StripeEscrowGateway())
    try:
        outcome = service.reconcile_hold(escrow_id, actor=actor)
    except EscrowNotFoundError:
        logger.warning("Escrow hold not found for reconciliation", extra={"escrow_id": escrow_id})
        return {"status": "not_found", "escrow_id": escrow_id}
    except GatewayError as e:
        if e.retryable:
            logger.warning(
                "Reconciliation hit a retryable gateway error",
                extra={
                    "escrow_id": escrow_id,
                    "kind": e.kind.value,
                    "attempt": self.request.retries,
                },
            )
            raise self.retry(exc=e, countdown=backoff_delay(self.request.retries))
        raise

    logger.info(
        "Reconciled escrow hold",
        extra={"escrow_id": escrow_id, "action": outcome.action},
    )
    return outcome.to_dict()
