"""
Escrow domain models.

This module contains all escrow-related models:
- EscrowHold: Provider authorization holding a campaign budget
- TransferRecord: Net payout owed to an influencer after release
- DisputeRecord: Dispute raised against a funded hold
- EscrowDiscrepancy: Provider/local mismatch found by a read or reconciliation
- WebhookEvent: Stripe webhook event tracking for idempotent processing
"""

from escrow.models.discrepancy import EscrowDiscrepancy
from escrow.models.dispute_record import DisputeRecord
from escrow.models.escrow_hold import EscrowHold
from escrow.models.transfer_record import TransferRecord
from escrow.models.webhook_event import WebhookEvent

__all__ = [
    "DisputeRecord",
    "EscrowDiscrepancy",
    "EscrowHold",
    "TransferRecord",
    "WebhookEvent",
]
