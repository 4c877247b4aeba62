"""
Escrow services for the campaign funding lifecycle.

This module provides:
- EscrowService: Entry point for every escrow operation
- EntitySyncService: Applies transition side effects to campaigns/applications
- DisputeService: Opens disputes on funded holds
- ReconciliationService: Detects and heals provider/local mismatches

Usage:
    from escrow.adapters import StripeEscrowGateway
    from escrow.services import EscrowService

    service = EscrowService(gateway=StripeEscrowGateway())

    # Authorize and confirm a campaign budget
    result = service.create_escrow_account(campaign.id, brand, Decimal("1000.00"), "usd")
    service.fund_escrow(result.data["escrow_id"], brand, "pm_card_visa")

    # Pay the influencer
    service.release_funds(result.data["escrow_id"], brand, influencer_id=influencer.pk)

    # Reconcile a single hold
    from escrow.services import ReconciliationService

    outcome = ReconciliationService(gateway=StripeEscrowGateway()).reconcile_hold("pi_123")
"""

from escrow.services.dispute_service import DisputeService
from escrow.services.entity_sync import EntitySyncService
from escrow.services.escrow_service import EscrowService
from escrow.services.reconciliation_service import (
    Discrepancy,
    ReconciliationOutcome,
    ReconciliationService,
    detect_discrepancy,
    record_discrepancy,
)
from escrow.services.transitions import EscrowTransition

__all__ = [
    "Discrepancy",
    "DisputeService",
    "EntitySyncService",
    "EscrowService",
    "EscrowTransition",
    "ReconciliationOutcome",
    "ReconciliationService",
    "detect_discrepancy",
    "record_discrepancy",
]
