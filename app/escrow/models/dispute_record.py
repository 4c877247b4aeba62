"""
DisputeRecord model.

A dispute freezes a funded hold in the disputed status until a release
or refund resolves it. Resolution is manual: an operator decides and
then calls the normal release/refund operation, which marks the open
disputes resolved.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from escrow.state_machines import DisputeResolution, DisputeStatus, DisputeType


class DisputeRecord(UUIDPrimaryKeyMixin, BaseModel):
    """
    A dispute raised against an escrow hold.

    Fields:
        escrow_hold: Disputed hold
        dispute_type: Category of the dispute
        evidence: Caller-supplied evidence plus reported_by / reported_at
        reported_by: User who raised the dispute
        reported_at: When it was raised
        status: UNDER_REVIEW until a release or refund resolves it
        resolution / resolved_at: Outcome once resolved
    """

    escrow_hold = models.ForeignKey(
        "escrow.EscrowHold",
        on_delete=models.PROTECT,
        related_name="disputes",
    )

    dispute_type = models.CharField(
        max_length=30,
        choices=DisputeType.choices,
    )

    evidence = models.JSONField(default=dict, blank=True)

    reported_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="reported_disputes",
    )

    reported_at = models.DateTimeField()

    status = models.CharField(
        max_length=20,
        choices=DisputeStatus.choices,
        default=DisputeStatus.UNDER_REVIEW,
        db_index=True,
    )

    resolution = models.CharField(
        max_length=20,
        choices=DisputeResolution.choices,
        null=True,
        blank=True,
    )

    resolved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Dispute Record"
        verbose_name_plural = "Dispute Records"
        indexes = [
            models.Index(fields=["escrow_hold", "status"], name="dispute_hold_status_idx"),
        ]

    def __str__(self) -> str:
        return f"DisputeRecord({self.id}, {self.dispute_type}, {self.status})"
