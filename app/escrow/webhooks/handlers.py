"""
Webhook event handlers for Stripe PaymentIntent events.

Escrow holds are PaymentIntents, so every handled event names a hold.
Handlers never trust the payload's status: they hand the hold to
ReconciliationService, which reads the provider state itself and heals
or flags the difference. Events for unknown or terminal holds are no-ops.

Usage:
    from escrow.webhooks.handlers import dispatch_webhook, register_handler

    @register_handler("payment_intent.processing")
    def handle_processing(webhook_event: WebhookEvent) -> ServiceResult:
        ...

    result = dispatch_webhook(webhook_event)
"""

from __future__ import annotations

import logging
from typing import Callable

from core.exceptions import BaseApplicationError
from core.services import ServiceResult

from escrow.adapters import StripeEscrowGateway
from escrow.exceptions import GatewayError
from escrow.models import EscrowHold, WebhookEvent
from escrow.services import ReconciliationService

logger = logging.getLogger(__name__)


# =============================================================================
# Handler Registry
# =============================================================================


# Maps event type strings to handler functions
WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent], ServiceResult]] = {}


def register_handler(event_type: str) -> Callable:
    """
    Decorator to register a webhook event handler.

    Args:
        event_type: The Stripe event type (e.g., "payment_intent.canceled")
    """

    def decorator(func: Callable[[WebhookEvent], ServiceResult]) -> Callable:
        WEBHOOK_HANDLERS[event_type] = func
        logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def has_handler(event_type: str) -> bool:
    return event_type in WEBHOOK_HANDLERS


def dispatch_webhook(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Dispatch a webhook event to the appropriate handler.

    Unknown event types succeed with no data so Stripe stops retrying them.
    """
    handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)

    if not handler:
        logger.info(
            f"No handler registered for event type: {webhook_event.event_type}",
            extra={"stripe_event_id": webhook_event.stripe_event_id},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {webhook_event.event_type} to handler",
        extra={"stripe_event_id": webhook_event.stripe_event_id},
    )

    return handler(webhook_event)


def get_reconciliation_service() -> ReconciliationService:
    return ReconciliationService(gateway=StripeEscrowGateway())


# =============================================================================
# Payment Intent Handlers
# =============================================================================


def _reconcile_from_event(webhook_event: WebhookEvent) -> ServiceResult:
    hold_id = webhook_event.get_object_id()
    log_context = {
        "stripe_event_id": webhook_event.stripe_event_id,
        "event_type": webhook_event.event_type,
        "escrow_id": hold_id,
    }

    if not hold_id:
        logger.error("Could not extract hold id from webhook", extra=log_context)
        return ServiceResult.failure(
            "Could not extract payment_intent id from webhook",
            error_code="INVALID_WEBHOOK_PAYLOAD",
        )

    hold = EscrowHold.objects.filter(pk=hold_id).first()
    if hold is None:
        logger.info("Webhook for unknown hold, ignoring", extra=log_context)
        return ServiceResult.success({"escrow_id": hold_id, "action": "ignored"})

    if hold.is_terminal:
        logger.info(
            "Webhook for terminal hold, ignoring",
            extra={**log_context, "local_status": hold.status},
        )
        return ServiceResult.success({"escrow_id": hold_id, "action": "ignored"})

    try:
        outcome = get_reconciliation_service().reconcile_hold(hold_id)
    except GatewayError as e:
        if e.retryable:
            raise
        return ServiceResult.from_exception(e)
    except BaseApplicationError as e:
        logger.warning(
            f"Webhook reconciliation failed: {e.message}",
            extra={**log_context, "error_code": e.error_code},
        )
        return ServiceResult.from_exception(e)

    logger.info(
        "Webhook reconciled hold",
        extra={**log_context, "action": outcome.action},
    )
    return ServiceResult.success(outcome.to_dict())


@register_handler("payment_intent.amount_capturable_updated")
def handle_amount_capturable_updated(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Authorization confirmed outside the API call (e.g. 3-D Secure completed).

    Reconciliation moves a pending_payment hold to funded.
    """
    return _reconcile_from_event(webhook_event)


@register_handler("payment_intent.canceled")
def handle_payment_intent_canceled(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Authorization voided or expired at the provider.

    A pending_payment hold is cancelled; a funded hold is flagged.
    """
    return _reconcile_from_event(webhook_event)


@register_handler("payment_intent.succeeded")
def handle_payment_intent_succeeded(webhook_event: WebhookEvent) -> ServiceResult:
    """Funds captured. Records the capture on a hold whose release is mid-flight."""
    return _reconcile_from_event(webhook_event)
