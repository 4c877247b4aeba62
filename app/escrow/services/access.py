"""
Caller checks shared by the escrow services.

Ownership and role checks only; authentication happens in the API layer.
"""

from __future__ import annotations

from escrow.exceptions import EscrowPermissionError
from escrow.state_machines import EscrowStatus


def require_campaign_owner(caller, campaign) -> None:
    """The campaign's brand, or a platform admin."""
    if caller.is_platform_admin:
        return
    if caller.is_brand and campaign.is_owned_by(caller):
        return
    raise EscrowPermissionError(
        "Only the campaign's brand can manage its escrow",
        details={"campaign_id": str(campaign.pk)},
    )


def require_campaign_party(caller, campaign) -> None:
    """The campaign's brand, an influencer who applied to it, or a platform admin."""
    if caller.is_platform_admin or campaign.is_owned_by(caller):
        return
    if campaign.applications.filter(influencer_id=caller.pk).exists():
        return
    raise EscrowPermissionError(
        "Only the campaign's brand or an applied influencer can access this escrow",
        details={"campaign_id": str(campaign.pk)},
    )


def require_dispute_resolver(caller, hold) -> None:
    """A disputed hold is released or refunded by a platform admin only."""
    if hold.status != EscrowStatus.DISPUTED or caller.is_platform_admin:
        return
    raise EscrowPermissionError(
        "Only a platform admin can resolve a disputed escrow",
        details={"escrow_id": hold.pk, "current_status": hold.status},
    )
