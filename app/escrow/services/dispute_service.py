"""
Dispute handling for funded escrow holds.

Opening a dispute records a DisputeRecord and moves the hold to
disputed, which blocks any second dispute. Resolution is manual: an
operator decides and then runs the normal release or refund, which
marks the open disputes resolved.

Usage:
    from escrow.services import DisputeService

    record = DisputeService().open_dispute(
        escrow_id="pi_123",
        caller=request.user,
        dispute_type="content_not_delivered",
        evidence={"details": "No posts after 30 days"},
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import transaction
from django.utils import timezone

from django_fsm import TransitionNotAllowed

from core.services import BaseService

from escrow.exceptions import EscrowNotFoundError, EscrowValidationError, InvalidStateError
from escrow.locks import check_version
from escrow.models import DisputeRecord, EscrowHold
from escrow.services.access import require_campaign_party
from escrow.state_machines import DisputeType, EscrowStatus

if TYPE_CHECKING:
    from typing import Any


class DisputeService(BaseService):
    """
    Opens disputes on funded holds.

    Raises domain exceptions; EscrowService converts them to
    ServiceResult at its boundary.
    """

    def open_dispute(
        self,
        escrow_id: str,
        caller,
        dispute_type: str,
        evidence: Any = None,
    ) -> DisputeRecord:
        """
        Record a dispute and freeze the hold.

        Args:
            escrow_id: Hold to dispute
            caller: The brand, an influencer with an application on the
                campaign, or a platform admin
            dispute_type: One of DisputeType
            evidence: Dict of evidence, or free text stored under "details"

        Raises:
            EscrowValidationError: Unknown dispute type
            EscrowNotFoundError: Hold does not exist
            EscrowPermissionError: Caller is not a party to the campaign
            InvalidStateError: Hold is not funded (or is already disputed)
        """
        if dispute_type not in DisputeType.values:
            raise EscrowValidationError(
                f"Unknown dispute type: {dispute_type!r}",
                details={"dispute_type": dispute_type, "allowed": DisputeType.values},
            )

        hold = EscrowHold.objects.select_related("campaign").filter(pk=escrow_id).first()
        if hold is None:
            raise EscrowNotFoundError(
                f"Escrow {escrow_id} not found",
                details={"escrow_id": escrow_id},
            )

        require_campaign_party(caller, hold.campaign)

        if hold.status != EscrowStatus.FUNDED:
            raise InvalidStateError(
                f"Cannot dispute escrow in '{hold.status}' status",
                details={"escrow_id": hold.pk, "current_status": hold.status},
            )
        if hold.pending_operation:
            raise InvalidStateError(
                f"Escrow hold has a '{hold.pending_operation}' operation in progress",
                details={"escrow_id": hold.pk, "pending_operation": hold.pending_operation},
            )

        reported_at = timezone.now()
        if isinstance(evidence, dict):
            payload = dict(evidence)
        elif evidence:
            payload = {"details": str(evidence)}
        else:
            payload = {}
        payload.update(
            {
                "reported_by": caller.pk,
                "reported_at": reported_at.isoformat(),
            }
        )

        with transaction.atomic():
            locked = check_version(EscrowHold, hold.pk, hold.version)
            try:
                locked.dispute()
            except TransitionNotAllowed:
                raise InvalidStateError(
                    f"Cannot dispute escrow in '{locked.status}' status",
                    details={"escrow_id": locked.pk, "current_status": locked.status},
                )
            locked.save()

            record = DisputeRecord.objects.create(
                escrow_hold=locked,
                dispute_type=dispute_type,
                evidence=payload,
                reported_by=caller,
                reported_at=reported_at,
            )

        self.get_logger().info(
            "Dispute initiated",
            extra={
                "escrow_id": hold.pk,
                "campaign_id": str(hold.campaign_id),
                "dispute_id": str(record.pk),
                "dispute_type": dispute_type,
                "reported_by": caller.pk,
            },
        )
        return record
