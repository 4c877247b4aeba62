"""
Entity sync layer for escrow transitions.

EntitySyncService is the only writer of the payment fields on Campaign
and Application, and of TransferRecord rows. It applies the side
effects listed on an EscrowTransition inside one database transaction.

Every handler is re-entrant: replaying the same transition creates no
second TransferRecord and never overwrites Application.paid_amount.

Usage:
    from escrow.services.entity_sync import EntitySyncService

    EntitySyncService().apply(transition)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db.models import Q

from campaigns.models import (
    Application,
    ApplicationPaymentStatus,
    ApplicationStatus,
    Campaign,
    CampaignPaymentStatus,
    CampaignStatus,
)
from core.services import BaseService

from escrow.exceptions import EscrowNotFoundError, InvalidStateError, StaleRecordError
from escrow.models import DisputeRecord, TransferRecord
from escrow.services.transitions import (
    AttachEscrowToCampaign,
    CompleteApplication,
    MarkCampaignFunded,
    MarkCampaignRefunded,
    MarkCampaignReleased,
    RecordTransfer,
    ResolveDisputes,
)
from escrow.state_machines import DisputeStatus

if TYPE_CHECKING:
    from escrow.services.transitions import EscrowTransition, SideEffect


class EntitySyncService(BaseService):
    """
    Applies EscrowTransition side effects to Campaign/Application records.

    Raises domain exceptions (never returns ServiceResult): it runs inside
    the escrow state machine's transaction, and any failure must roll the
    whole transition back.
    """

    def apply(self, transition: EscrowTransition) -> None:
        """
        Apply every side effect of a transition atomically.

        Raises:
            StaleRecordError: Campaign.escrow_id changed under a create
            InvalidStateError: Application was already paid a different amount
            EscrowNotFoundError: Campaign/application row disappeared
        """
        handlers = {
            AttachEscrowToCampaign: self._attach_escrow,
            MarkCampaignFunded: self._mark_funded,
            MarkCampaignReleased: self._mark_released,
            MarkCampaignRefunded: self._mark_refunded,
            CompleteApplication: self._complete_application,
            RecordTransfer: self._record_transfer,
            ResolveDisputes: self._resolve_disputes,
        }

        with self.atomic():
            for effect in transition.effects:
                handlers[type(effect)](effect)

        self.get_logger().info(
            "Applied escrow transition",
            extra={
                "escrow_id": transition.escrow_id,
                "operation": transition.operation,
                "from_status": transition.from_status,
                "to_status": transition.to_status,
                "effects": [type(effect).__name__ for effect in transition.effects],
            },
        )

    # =========================================================================
    # Campaign
    # =========================================================================

    def _attach_escrow(self, effect: AttachEscrowToCampaign) -> None:
        # Compare-and-set: only the creator that saw previous_escrow_id wins.
        # Already pointing at this hold means a replay.
        rows = Campaign.objects.filter(
            Q(escrow_id=effect.escrow_id) | self._escrow_id_is(effect.previous_escrow_id),
            pk=effect.campaign_id,
        ).update(
            escrow_id=effect.escrow_id,
            budget=effect.amount,
            currency=effect.currency,
            payment_status=CampaignPaymentStatus.PENDING,
            funded_at=None,
            refunded_at=None,
        )
        if rows == 0:
            self._require_campaign(effect.campaign_id)
            raise StaleRecordError(
                "Campaign escrow was changed by a concurrent request",
                details={
                    "campaign_id": str(effect.campaign_id),
                    "escrow_id": effect.escrow_id,
                },
            )

    @staticmethod
    def _escrow_id_is(value: str | None) -> Q:
        if value is None:
            return Q(escrow_id__isnull=True)
        return Q(escrow_id=value)

    def _mark_funded(self, effect: MarkCampaignFunded) -> None:
        self._require_campaign(effect.campaign_id)
        Campaign.objects.filter(pk=effect.campaign_id).update(
            payment_status=CampaignPaymentStatus.FUNDED,
            status=CampaignStatus.ACTIVE,
            funded_at=effect.funded_at,
        )

    def _mark_released(self, effect: MarkCampaignReleased) -> None:
        self._require_campaign(effect.campaign_id)
        Campaign.objects.filter(pk=effect.campaign_id).update(
            payment_status=CampaignPaymentStatus.RELEASED,
        )

    def _mark_refunded(self, effect: MarkCampaignRefunded) -> None:
        self._require_campaign(effect.campaign_id)
        Campaign.objects.filter(pk=effect.campaign_id).update(
            status=CampaignStatus.CANCELLED,
            payment_status=CampaignPaymentStatus.REFUNDED,
            refunded_at=effect.refunded_at,
        )

    @staticmethod
    def _require_campaign(campaign_id) -> None:
        if not Campaign.objects.filter(pk=campaign_id).exists():
            raise EscrowNotFoundError(
                f"Campaign {campaign_id} not found",
                error_code="CAMPAIGN_NOT_FOUND",
                details={"campaign_id": str(campaign_id)},
            )

    # =========================================================================
    # Application
    # =========================================================================

    def _complete_application(self, effect: CompleteApplication) -> None:
        rows = Application.objects.filter(
            pk=effect.application_id,
            paid_amount__isnull=True,
        ).update(
            status=ApplicationStatus.COMPLETED,
            payment_status=ApplicationPaymentStatus.PAID,
            paid_amount=effect.paid_amount,
            completed_at=effect.completed_at,
        )
        if rows:
            return

        paid_amount = (
            Application.objects.filter(pk=effect.application_id)
            .values_list("paid_amount", flat=True)
            .first()
        )
        if paid_amount is None:
            raise EscrowNotFoundError(
                f"Application {effect.application_id} not found",
                error_code="APPLICATION_NOT_FOUND",
                details={"application_id": str(effect.application_id)},
            )
        if paid_amount != effect.paid_amount:
            raise InvalidStateError(
                "Application was already paid a different amount",
                details={
                    "application_id": str(effect.application_id),
                    "paid_amount": str(paid_amount),
                    "attempted_amount": str(effect.paid_amount),
                },
            )

    # =========================================================================
    # Transfer & Disputes
    # =========================================================================

    def _record_transfer(self, effect: RecordTransfer) -> None:
        fees = effect.fees
        record, created = TransferRecord.objects.get_or_create(
            escrow_hold_id=effect.escrow_id,
            defaults={
                "application_id": effect.application_id,
                "influencer_id": effect.influencer_id,
                "amount": fees.net_payee_amount,
                "gross_amount": fees.gross_amount,
                "platform_fee": fees.platform_fee,
                "provider_fee": fees.provider_fee,
                "currency": fees.currency,
                "reason": effect.reason,
            },
        )
        if not created and record.influencer_id != effect.influencer_id:
            raise InvalidStateError(
                "Escrow was already released to a different influencer",
                details={"escrow_id": effect.escrow_id},
            )

    def _resolve_disputes(self, effect: ResolveDisputes) -> None:
        DisputeRecord.objects.filter(
            escrow_hold_id=effect.escrow_id,
            status=DisputeStatus.UNDER_REVIEW,
        ).update(
            status=DisputeStatus.RESOLVED,
            resolution=effect.resolution,
            resolved_at=effect.resolved_at,
        )
