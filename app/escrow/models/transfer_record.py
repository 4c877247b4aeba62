"""
TransferRecord model for escrow releases.

One TransferRecord is written per released hold. It records the net
amount owed to the influencer together with the fee split. Bank
transfers are not integrated, so every record stays in
pending_bank_transfer until an external payout process picks it up.

Records are append-only: corrections are made by operators outside
this service, never by updating a row.

Usage:
    from escrow.models import TransferRecord

    record, created = TransferRecord.objects.get_or_create(
        escrow_hold=hold,
        defaults={...},
    )
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel

from escrow.exceptions import InvalidStateError
from escrow.state_machines import TransferStatus


class TransferRecord(UUIDPrimaryKeyMixin, BaseModel):
    """
    Net payout owed to an influencer for a released hold.

    Fields:
        escrow_hold: Released hold (one record per hold)
        application: Application the release completed
        influencer: Payee
        amount: Net payee amount
        gross_amount / platform_fee / provider_fee: Fee split of the release
        currency: ISO 4217 currency code
        reason: Why the funds were released
        status: Bank transfer status

    Constraints:
        - amount must not be negative
        - amount + platform_fee + provider_fee == gross_amount (enforced by fees.calculate_fees)
    """

    escrow_hold = models.OneToOneField(
        "escrow.EscrowHold",
        on_delete=models.PROTECT,
        related_name="transfer_record",
    )

    application = models.ForeignKey(
        "campaigns.Application",
        on_delete=models.PROTECT,
        related_name="transfer_records",
    )

    influencer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="transfer_records",
    )

    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Net payee amount",
    )

    gross_amount = models.DecimalField(max_digits=12, decimal_places=2)
    platform_fee = models.DecimalField(max_digits=12, decimal_places=2)
    provider_fee = models.DecimalField(max_digits=12, decimal_places=2)

    currency = models.CharField(max_length=3, default="usd")

    reason = models.CharField(max_length=100, default="campaign_completed")

    status = models.CharField(
        max_length=30,
        choices=TransferStatus.choices,
        default=TransferStatus.PENDING_BANK_TRANSFER,
        db_index=True,
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Transfer Record"
        verbose_name_plural = "Transfer Records"
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount__gte=0),
                name="transfer_record_amount_not_negative",
            ),
        ]

    def __str__(self) -> str:
        return f"TransferRecord({self.escrow_hold_id}, {self.amount} {self.currency.upper()})"

    def save(self, *args, **kwargs):
        """Insert only; an existing transfer record is never rewritten."""
        if not self._state.adding:
            raise InvalidStateError(
                "Transfer records are append-only",
                details={"transfer_record_id": str(self.pk)},
            )
        super().save(*args, **kwargs)
