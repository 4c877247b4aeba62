"""
EscrowDiscrepancy model for provider/local mismatches.

A discrepancy is recorded whenever the provider reports a hold state
that disagrees with the local EscrowHold, either on a status read, a
webhook, or an operator-triggered reconciliation.

These records provide:
1. A review queue for operators to investigate flagged holds
2. An audit trail of what reconciliation changed and why

Usage:
    from escrow.models import EscrowDiscrepancy
    from escrow.state_machines import DiscrepancyResolution

    EscrowDiscrepancy.objects.create(
        escrow_hold=hold,
        discrepancy_type="provider_released_local_funded",
        local_status="funded",
        provider_status="released",
        resolution=DiscrepancyResolution.AUTO_HEALED,
        action_taken="Recorded provider capture",
    )
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from escrow.state_machines import DiscrepancyResolution


class EscrowDiscrepancy(UUIDPrimaryKeyMixin, BaseModel):
    """
    A mismatch between a local hold and the provider's view of it.

    Indexes:
        - (resolution, created_at): Review queue of flagged items
        - (escrow_hold, discrepancy_type): Dedupe of repeated reads
    """

    escrow_hold = models.ForeignKey(
        "escrow.EscrowHold",
        on_delete=models.CASCADE,
        related_name="discrepancies",
    )

    discrepancy_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="e.g. provider_released_local_funded",
    )

    local_status = models.CharField(max_length=30)

    provider_status = models.CharField(max_length=30, blank=True)

    resolution = models.CharField(
        max_length=30,
        choices=DiscrepancyResolution.choices,
        default=DiscrepancyResolution.FLAGGED_FOR_REVIEW,
    )

    action_taken = models.TextField(blank=True)

    details = models.JSONField(default=dict, blank=True)

    resolved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Escrow Discrepancy"
        verbose_name_plural = "Escrow Discrepancies"
        indexes = [
            models.Index(fields=["resolution", "created_at"], name="discrepancy_review_idx"),
            models.Index(fields=["escrow_hold", "discrepancy_type"], name="discrepancy_hold_type_idx"),
        ]

    def __str__(self) -> str:
        return f"EscrowDiscrepancy({self.escrow_hold_id}, {self.discrepancy_type}, {self.resolution})"

    @property
    def is_open(self) -> bool:
        return self.resolution == DiscrepancyResolution.FLAGGED_FOR_REVIEW
