"""
Webhook endpoint view for Stripe.

The view:
1. Verifies the webhook signature
2. Creates/retrieves the WebhookEvent record (idempotent)
3. Queues the event for async processing
4. Returns immediately

Usage:
    # In urls.py
    from escrow.webhooks.views import stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from escrow.adapters import StripeEscrowGateway
from escrow.exceptions import EscrowValidationError
from escrow.models import WebhookEvent
from escrow.state_machines import WebhookEventStatus

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> HttpResponse:
    """
    Receive and queue Stripe webhook events.

    Stripe expects a 2xx response quickly, so handling happens in the
    process_webhook_event Celery task.

    Idempotency:
    - WebhookEvent.stripe_event_id is unique
    - Duplicate events that were already processed return 200 untouched

    Returns:
        HttpResponse with status:
        - 200: Event accepted (new or duplicate)
        - 400: Missing/invalid signature or payload
    """
    payload = request.body
    signature = request.headers.get("Stripe-Signature", "")

    if not signature:
        logger.warning("Webhook received without Stripe-Signature header")
        return HttpResponse("Missing signature", status=400)

    try:
        event_data = StripeEscrowGateway().verify_webhook(payload, signature)
    except EscrowValidationError as e:
        logger.warning(
            "Webhook signature verification failed",
            extra={"error": e.message, "error_code": e.error_code},
        )
        return HttpResponse("Invalid signature", status=400)

    stripe_event_id = event_data.get("id")
    event_type = event_data.get("type")

    if not stripe_event_id or not event_type:
        logger.warning("Webhook missing required fields")
        return HttpResponse("Invalid event", status=400)

    logger.info(
        f"Received Stripe webhook: {event_type}",
        extra={"stripe_event_id": stripe_event_id, "event_type": event_type},
    )

    webhook_event, created = WebhookEvent.objects.get_or_create(
        stripe_event_id=stripe_event_id,
        defaults={
            "event_type": event_type,
            "payload": event_data,
            "status": WebhookEventStatus.PENDING,
        },
    )

    if not created and webhook_event.status in (
        WebhookEventStatus.PROCESSED,
        WebhookEventStatus.IGNORED,
    ):
        logger.info(
            "Webhook already processed, returning success",
            extra={"stripe_event_id": stripe_event_id},
        )
        return HttpResponse("Already processed", status=200)

    try:
        from escrow.tasks import process_webhook_event

        process_webhook_event.delay(str(webhook_event.id))
        logger.info(
            "Webhook queued for processing",
            extra={
                "stripe_event_id": stripe_event_id,
                "webhook_event_id": str(webhook_event.id),
            },
        )
    except Exception as e:
        # Stripe retries the delivery; the stored event is picked up then
        logger.error(
            f"Failed to queue webhook: {type(e).__name__}",
            extra={"stripe_event_id": stripe_event_id},
            exc_info=True,
        )

    return HttpResponse("Accepted", status=200)
