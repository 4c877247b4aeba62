"""
State enums for escrow models.

This module defines all state enums used by escrow models with django-fsm.
These are Django TextChoices for database storage and admin integration.

State Machines Overview:

EscrowHold States:
    pending_payment → funded → released
    pending_payment → cancelled
    funded → refunded
    funded → disputed → released / refunded

Provider Hold States (read-only view of the payment provider):
    pending_payment → processing → funded → released
    pending_payment / funded → cancelled

WebhookEvent States:
    pending → processing → processed / failed
    pending → ignored
"""

from django.db import models


class EscrowStatus(models.TextChoices):
    """
    States for the EscrowHold model lifecycle.

    Terminal states: RELEASED, REFUNDED, CANCELLED

    State Flow (happy path):
        PENDING_PAYMENT → FUNDED → RELEASED

    Abandon Flow:
        PENDING_PAYMENT → CANCELLED

    Refund Flow:
        FUNDED → REFUNDED
        DISPUTED → REFUNDED

    Dispute Flow:
        FUNDED → DISPUTED → RELEASED / REFUNDED
    """

    PENDING_PAYMENT = "pending_payment", "Pending Payment"
    FUNDED = "funded", "Funded"
    RELEASED = "released", "Released"
    REFUNDED = "refunded", "Refunded"
    CANCELLED = "cancelled", "Cancelled"
    DISPUTED = "disputed", "Disputed"


TERMINAL_ESCROW_STATUSES = frozenset(
    {EscrowStatus.RELEASED, EscrowStatus.REFUNDED, EscrowStatus.CANCELLED}
)

# A campaign may have at most one hold in these statuses
LIVE_ESCROW_STATUSES = (
    EscrowStatus.PENDING_PAYMENT,
    EscrowStatus.FUNDED,
    EscrowStatus.DISPUTED,
)


class ProviderHoldStatus(models.TextChoices):
    """
    Provider-side hold status after mapping the raw PaymentIntent status.

    Anything the mapping does not recognise is reported as UNKNOWN.
    """

    PENDING_PAYMENT = "pending_payment", "Pending Payment"
    PROCESSING = "processing", "Processing"
    FUNDED = "funded", "Funded"
    RELEASED = "released", "Released"
    CANCELLED = "cancelled", "Cancelled"
    UNKNOWN = "unknown", "Unknown"


class EscrowOperation(models.TextChoices):
    """
    Provider-facing operations that claim a hold while in flight.

    Stored on EscrowHold.pending_operation so that a concurrent
    operation on the same hold can be refused.
    """

    CREATE = "create", "Create"
    FUND = "fund", "Fund"
    RELEASE = "release", "Release"
    REFUND = "refund", "Refund"
    DISPUTE = "dispute", "Dispute"


class TransferStatus(models.TextChoices):
    """
    Status of a TransferRecord.

    Bank transfers are not integrated; every record stays pending
    until an external payout process picks it up.
    """

    PENDING_BANK_TRANSFER = "pending_bank_transfer", "Pending Bank Transfer"


class DisputeType(models.TextChoices):
    CONTENT_NOT_DELIVERED = "content_not_delivered", "Content Not Delivered"
    CONTENT_QUALITY = "content_quality", "Content Quality"
    PAYMENT_DELAY = "payment_delay", "Payment Delay"
    BREACH_OF_CONTRACT = "breach_of_contract", "Breach of Contract"
    OTHER = "other", "Other"


class DisputeStatus(models.TextChoices):
    """
    Status of a DisputeRecord.

    State Flow:
        UNDER_REVIEW → RESOLVED (via a release or refund of the hold)
    """

    UNDER_REVIEW = "under_review", "Under Review"
    RESOLVED = "resolved", "Resolved"


class DisputeResolution(models.TextChoices):
    RELEASED = "released", "Released to Influencer"
    REFUNDED = "refunded", "Refunded to Brand"


class DiscrepancyResolution(models.TextChoices):
    """
    How an EscrowDiscrepancy was handled.

    AUTO_HEALED: Reconciliation repaired the local record
    FLAGGED_FOR_REVIEW: Needs a human decision
    MANUALLY_RESOLVED: An operator closed it from the admin
    """

    AUTO_HEALED = "auto_healed", "Auto Healed"
    FLAGGED_FOR_REVIEW = "flagged_for_review", "Flagged for Review"
    MANUALLY_RESOLVED = "manually_resolved", "Manually Resolved"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for WebhookEvent.

    Tracks the lifecycle of webhook event processing for idempotency.

    State Flow:
        PENDING → PROCESSING → PROCESSED
        PENDING → PROCESSING → FAILED (can retry)
        PENDING → IGNORED (no handler for the event type)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"
    IGNORED = "ignored", "Ignored"


__all__ = [
    "DiscrepancyResolution",
    "DisputeResolution",
    "DisputeStatus",
    "DisputeType",
    "EscrowOperation",
    "EscrowStatus",
    "LIVE_ESCROW_STATUSES",
    "ProviderHoldStatus",
    "TERMINAL_ESCROW_STATUSES",
    "TransferStatus",
    "WebhookEventStatus",
]
