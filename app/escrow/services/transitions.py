"""
Immutable transition results produced by the escrow state machine.

Every successful hold transition returns an EscrowTransition that lists
the side effects owed to the Campaign and Application records. The
EntitySyncService applies them; the state machine never writes those
records itself.

Usage:
    transition = EscrowTransition(
        escrow_id=hold.pk,
        operation=EscrowOperation.FUND,
        from_status=EscrowStatus.PENDING_PAYMENT,
        to_status=EscrowStatus.FUNDED,
        effects=(MarkCampaignFunded(campaign_id=hold.campaign_id, funded_at=hold.funded_at),),
    )
    EntitySyncService().apply(transition)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Union
from uuid import UUID

from escrow.fees import FeeBreakdown


@dataclass(frozen=True)
class AttachEscrowToCampaign:
    """
    Point Campaign.escrow_id at a new hold and reset its payment status.

    previous_escrow_id is the value the creator saw; the write is a
    compare-and-set against it.
    """

    campaign_id: UUID
    escrow_id: str
    amount: Decimal
    currency: str
    previous_escrow_id: str | None = None


@dataclass(frozen=True)
class MarkCampaignFunded:
    campaign_id: UUID
    funded_at: datetime


@dataclass(frozen=True)
class MarkCampaignReleased:
    campaign_id: UUID


@dataclass(frozen=True)
class MarkCampaignRefunded:
    campaign_id: UUID
    refunded_at: datetime


@dataclass(frozen=True)
class CompleteApplication:
    """Mark the paid application completed with its net payout (set once)."""

    application_id: UUID
    paid_amount: Decimal
    completed_at: datetime


@dataclass(frozen=True)
class RecordTransfer:
    escrow_id: str
    application_id: UUID
    influencer_id: int
    fees: FeeBreakdown
    reason: str


@dataclass(frozen=True)
class ResolveDisputes:
    escrow_id: str
    resolution: str
    resolved_at: datetime


SideEffect = Union[
    AttachEscrowToCampaign,
    MarkCampaignFunded,
    MarkCampaignReleased,
    MarkCampaignRefunded,
    CompleteApplication,
    RecordTransfer,
    ResolveDisputes,
]


@dataclass(frozen=True)
class EscrowTransition:
    """
    A committed hold transition and the side effects it owes.

    Attributes:
        escrow_id: Hold that transitioned
        operation: EscrowOperation that caused it
        from_status / to_status: Hold status before and after
        effects: Ordered side effects for the entity sync layer
    """

    escrow_id: str
    operation: str
    from_status: str
    to_status: str
    effects: tuple[SideEffect, ...] = ()
