"""
Received Stripe events.

One row per provider event id. The webhook view inserts the row and
queues escrow.tasks.process_webhook_event; a redelivered event finds the
existing row and is acknowledged without running its handler again.
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from escrow.state_machines import WebhookEventStatus


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    A verified provider event and where its handling stands.

    Handlers never trust the payload's status: they look up the hold
    named by get_object_id() and reconcile it against a fresh provider
    read. status moves pending -> processing -> processed, ignored (no
    handler registered) or failed (error_message set, retried by Celery).
    """

    stripe_event_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Provider event id; a repeat delivery hits this unique key",
    )

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Provider event type, used to pick the handler",
    )

    payload = models.JSONField(
        help_text="Verified event body as delivered",
    )

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
    )

    processed_at = models.DateTimeField(null=True, blank=True)

    error_message = models.TextField(null=True, blank=True)

    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Handler runs so far, including retries",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(fields=["status", "created_at"], name="webhook_status_idx"),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.stripe_event_id}, {self.event_type})"

    @property
    def is_processed(self) -> bool:
        return self.status == WebhookEventStatus.PROCESSED

    # The mark_* helpers only set fields; the caller saves.

    def mark_processing(self) -> None:
        self.status = WebhookEventStatus.PROCESSING
        self.retry_count += 1

    def mark_processed(self) -> None:
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.error_message = None

    def mark_ignored(self) -> None:
        self.status = WebhookEventStatus.IGNORED
        self.processed_at = timezone.now()

    def mark_failed(self, error_message: str) -> None:
        self.status = WebhookEventStatus.FAILED
        self.error_message = error_message

    def get_object_id(self) -> str | None:
        """Id of the event's data.object; the PaymentIntent (hold) id for payment_intent.* events."""
        data = self.payload.get("data") if isinstance(self.payload, dict) else None
        obj = data.get("object") if isinstance(data, dict) else None
        return obj.get("id") if isinstance(obj, dict) else None
