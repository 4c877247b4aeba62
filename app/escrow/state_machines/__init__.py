"""
State machine enums for escrow models.

This module defines the state enums used by escrow models with django-fsm.
"""

from escrow.state_machines.states import (
    LIVE_ESCROW_STATUSES,
    TERMINAL_ESCROW_STATUSES,
    DiscrepancyResolution,
    DisputeResolution,
    DisputeStatus,
    DisputeType,
    EscrowOperation,
    EscrowStatus,
    ProviderHoldStatus,
    TransferStatus,
    WebhookEventStatus,
)

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
