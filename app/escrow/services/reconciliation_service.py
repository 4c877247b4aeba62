"""
Reconciliation service for escrow holds.

Compares a local EscrowHold with the provider's view of it and repairs
only clear-cut cases. Everything else is recorded as an
EscrowDiscrepancy flagged for review. Nothing runs on a schedule: an
operator triggers reconciliation from the admin API, the Django admin,
or the Celery task escrow.tasks.reconcile_escrow_hold. Provider webhooks
route here as well.

Healing Strategy:
    - Provider captured, local funded/disputed without a recorded capture
      -> record the capture so a retried release skips it
    - Provider funded, local pending_payment -> confirm funding
    - Provider cancelled, local pending_payment -> cancel the hold
    - In sync, with a stale claim awaiting confirmation -> clear the claim
    - Anything else -> flag for review

Usage:
    from escrow.services import ReconciliationService

    outcome = ReconciliationService(gateway=StripeEscrowGateway()).reconcile_hold("pi_123")
    outcome.action  # "recorded_capture", "funded", "cancelled", "flagged", ...
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import TYPE_CHECKING

from django.utils import timezone

from core.services import BaseService

from escrow.exceptions import EscrowNotFoundError
from escrow.models import EscrowDiscrepancy, EscrowHold
from escrow.services.claims import commit_transition, record_capture, release_claim
from escrow.services.entity_sync import EntitySyncService
from escrow.services.transitions import MarkCampaignFunded, MarkCampaignRefunded
from escrow.state_machines import (
    DiscrepancyResolution,
    EscrowOperation,
    EscrowStatus,
    ProviderHoldStatus,
)

if TYPE_CHECKING:
    from typing import Any

    from escrow.adapters import ProviderStatus


# =============================================================================
# Detection
# =============================================================================


# Provider statuses consistent with each local status
CONSISTENT_PROVIDER_STATUSES: dict[str, frozenset[str]] = {
    EscrowStatus.PENDING_PAYMENT: frozenset(
        {ProviderHoldStatus.PENDING_PAYMENT, ProviderHoldStatus.PROCESSING}
    ),
    EscrowStatus.FUNDED: frozenset({ProviderHoldStatus.FUNDED}),
    EscrowStatus.DISPUTED: frozenset({ProviderHoldStatus.FUNDED}),
    EscrowStatus.RELEASED: frozenset({ProviderHoldStatus.RELEASED}),
    EscrowStatus.REFUNDED: frozenset(
        {ProviderHoldStatus.CANCELLED, ProviderHoldStatus.RELEASED}
    ),
    EscrowStatus.CANCELLED: frozenset({ProviderHoldStatus.CANCELLED}),
}


@dataclass
class Discrepancy:
    """A detected mismatch between a local hold and the provider."""

    discrepancy_type: str
    local_status: str
    provider_status: str
    details: dict[str, Any] = field(default_factory=dict)


def detect_discrepancy(hold: EscrowHold, provider: ProviderStatus) -> Discrepancy | None:
    """
    Compare a hold with the provider's view of it. Pure; no I/O.

    A captured hold that is still funded/disputed locally is consistent
    once the capture has been recorded (a release is mid-flight).
    """
    status = provider.status
    consistent = status in CONSISTENT_PROVIDER_STATUSES.get(hold.status, frozenset())

    if hold.status in (EscrowStatus.FUNDED, EscrowStatus.DISPUTED):
        if status == ProviderHoldStatus.RELEASED and hold.is_captured:
            consistent = True
    if hold.status == EscrowStatus.REFUNDED and status == ProviderHoldStatus.RELEASED:
        consistent = provider.refunded_amount > 0

    if consistent:
        return None

    return Discrepancy(
        discrepancy_type=f"provider_{status}_local_{hold.status}",
        local_status=hold.status,
        provider_status=status,
        details={
            "raw_status": provider.raw_status,
            "provider_amount": str(provider.amount),
            "captured_amount": str(provider.captured_amount),
            "refunded_amount": str(provider.refunded_amount),
            "local_amount": str(hold.gross_amount),
            "pending_operation": hold.pending_operation,
        },
    )


def record_discrepancy(
    hold: EscrowHold,
    discrepancy: Discrepancy,
    resolution: str = DiscrepancyResolution.FLAGGED_FOR_REVIEW,
    action_taken: str = "",
) -> EscrowDiscrepancy:
    """
    Persist a discrepancy.

    Flagged discrepancies are deduplicated per hold and type so that
    repeated status reads do not flood the review queue.
    """
    if resolution == DiscrepancyResolution.FLAGGED_FOR_REVIEW:
        record, _ = EscrowDiscrepancy.objects.get_or_create(
            escrow_hold=hold,
            discrepancy_type=discrepancy.discrepancy_type,
            resolution=DiscrepancyResolution.FLAGGED_FOR_REVIEW,
            defaults={
                "local_status": discrepancy.local_status,
                "provider_status": discrepancy.provider_status,
                "details": discrepancy.details,
                "action_taken": action_taken,
            },
        )
        return record

    return EscrowDiscrepancy.objects.create(
        escrow_hold=hold,
        discrepancy_type=discrepancy.discrepancy_type,
        local_status=discrepancy.local_status,
        provider_status=discrepancy.provider_status,
        details=discrepancy.details,
        resolution=resolution,
        action_taken=action_taken,
        resolved_at=timezone.now(),
    )


# =============================================================================
# Reconciliation
# =============================================================================


@dataclass
class ReconciliationOutcome:
    """
    Result of reconciling one hold.

    action is one of: in_sync, skipped, recorded_capture, funded,
    cancelled, cleared_claim, flagged.
    """

    escrow_id: str
    local_status: str
    provider_status: str
    action: str
    discrepancy_type: str | None = None
    discrepancy_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class ReconciliationService(BaseService):
    """
    Probes the provider for one hold and heals clear-cut mismatches.

    Raises domain and gateway exceptions; the Celery task retries
    retryable gateway kinds and EscrowService converts failures to
    ServiceResult for the admin API.
    """

    def __init__(self, gateway, sync: EntitySyncService | None = None) -> None:
        self.gateway = gateway
        self.sync = sync or EntitySyncService()

    def reconcile_hold(self, escrow_id: str, actor=None) -> ReconciliationOutcome:
        """
        Reconcile a single hold with the provider.

        Args:
            escrow_id: Hold to reconcile
            actor: User who triggered it (None for webhooks / tasks)

        Raises:
            EscrowNotFoundError: Hold does not exist
            GatewayError: Provider probe failed
        """
        hold = EscrowHold.objects.filter(pk=escrow_id).first()
        if hold is None:
            raise EscrowNotFoundError(
                f"Escrow {escrow_id} not found",
                details={"escrow_id": escrow_id},
            )

        log_context = {
            "escrow_id": hold.pk,
            "campaign_id": str(hold.campaign_id),
            "local_status": hold.status,
            "actor_id": getattr(actor, "pk", None),
        }

        if hold.pending_operation and not hold.pending_confirmation:
            self.get_logger().info(
                "Skipping reconciliation of in-flight hold",
                extra={**log_context, "pending_operation": hold.pending_operation},
            )
            return ReconciliationOutcome(
                escrow_id=hold.pk,
                local_status=hold.status,
                provider_status=ProviderHoldStatus.UNKNOWN,
                action="skipped",
            )

        provider = self.gateway.get_status(hold.pk)
        log_context["provider_status"] = provider.status

        discrepancy = detect_discrepancy(hold, provider)
        if discrepancy is None:
            return self._settle_in_sync(hold, provider, log_context)

        outcome = self._heal(hold, provider, discrepancy)
        if outcome is None:
            record = record_discrepancy(hold, discrepancy)
            outcome = ReconciliationOutcome(
                escrow_id=hold.pk,
                local_status=hold.status,
                provider_status=provider.status,
                action="flagged",
                discrepancy_type=discrepancy.discrepancy_type,
                discrepancy_id=str(record.pk),
            )
            self.get_logger().warning(
                "Escrow discrepancy flagged for review",
                extra={**log_context, "discrepancy_type": discrepancy.discrepancy_type},
            )
        else:
            self.get_logger().info(
                "Escrow discrepancy auto-healed",
                extra={
                    **log_context,
                    "discrepancy_type": discrepancy.discrepancy_type,
                    "action": outcome.action,
                },
            )
        return outcome

    def _settle_in_sync(
        self,
        hold: EscrowHold,
        provider: ProviderStatus,
        log_context: dict[str, Any],
    ) -> ReconciliationOutcome:
        action = "in_sync"
        if hold.pending_confirmation:
            # Provider shows the ambiguous call did not take effect
            release_claim(hold, error=hold.last_error)
            action = "cleared_claim"
            self.get_logger().info("Cleared stale escrow claim", extra=log_context)

        return ReconciliationOutcome(
            escrow_id=hold.pk,
            local_status=hold.status,
            provider_status=provider.status,
            action=action,
        )

    def _heal(
        self,
        hold: EscrowHold,
        provider: ProviderStatus,
        discrepancy: Discrepancy,
    ) -> ReconciliationOutcome | None:
        local = hold.status
        status = provider.status

        if (
            local in (EscrowStatus.FUNDED, EscrowStatus.DISPUTED)
            and status == ProviderHoldStatus.RELEASED
            and not hold.is_captured
        ):
            hold = record_capture(hold, provider.captured_amount)
            if hold.pending_operation:
                hold = release_claim(hold)
            action = "recorded_capture"
            description = "Recorded provider capture; release can be retried"

        elif local == EscrowStatus.PENDING_PAYMENT and status == ProviderHoldStatus.FUNDED:
            hold, _ = commit_transition(
                hold,
                EscrowOperation.FUND,
                lambda h: h.fund(),
                lambda h: [MarkCampaignFunded(campaign_id=h.campaign_id, funded_at=h.funded_at)],
                self.sync,
            )
            action = "funded"
            description = "Confirmed funding from provider state"

        elif local == EscrowStatus.PENDING_PAYMENT and status == ProviderHoldStatus.CANCELLED:
            hold, _ = commit_transition(
                hold,
                EscrowOperation.REFUND,
                lambda h: h.cancel(),
                lambda h: [
                    MarkCampaignRefunded(campaign_id=h.campaign_id, refunded_at=h.cancelled_at)
                ],
                self.sync,
            )
            action = "cancelled"
            description = "Cancelled hold voided at the provider"

        else:
            return None

        record = record_discrepancy(
            hold,
            discrepancy,
            resolution=DiscrepancyResolution.AUTO_HEALED,
            action_taken=description,
        )
        return ReconciliationOutcome(
            escrow_id=hold.pk,
            local_status=discrepancy.local_status,
            provider_status=status,
            action=action,
            discrepancy_type=discrepancy.discrepancy_type,
            discrepancy_id=str(record.pk),
        )
