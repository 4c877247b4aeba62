"""
Escrow service for campaign funding.

This module provides EscrowService, the single entry point for the
escrow lifecycle of a campaign:

    create_escrow_account -> fund_escrow -> release_funds
                                         -> refund_to_brand
                                         -> handle_dispute -> release / refund

Every operation returns a ServiceResult. Domain and gateway exceptions
raised inside are converted at the service boundary; unexpected errors
are logged and reported as INTERNAL_ERROR.

Provider calls follow the same pattern everywhere:
    1. Validate input and caller, check the hold status
    2. Claim the hold (compare-and-set on version)
    3. Call the gateway with the claim's idempotency key
    4. Commit the FSM transition and its side effects atomically

An ambiguous gateway failure (timeout, 5xx) is followed by a get_status
probe. If the provider applied the call the transition is committed;
otherwise the claim is kept and PENDING_CONFIRMATION is returned.

Usage:
    from escrow.adapters import StripeEscrowGateway
    from escrow.services import EscrowService

    service = EscrowService(gateway=StripeEscrowGateway())

    result = service.create_escrow_account(
        campaign_id=campaign.id,
        caller=request.user,
        amount=Decimal("1000.00"),
        currency="usd",
    )
    if result.success:
        escrow_id = result.data["escrow_id"]
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import IntegrityError

from campaigns.models import Application, Campaign, CampaignPaymentStatus, CampaignStatus
from core.exceptions import BaseApplicationError
from core.services import BaseService, ServiceResult

from escrow.adapters import IdempotencyKeyGenerator
from escrow.exceptions import (
    EscrowNotFoundError,
    EscrowPermissionError,
    EscrowValidationError,
    GatewayError,
    InvalidStateError,
    PendingConfirmationError,
    RefundExceedsCapturedError,
    StaleRecordError,
)
from escrow.fees import calculate_fees, parse_amount, quantize_amount, validate_currency
from escrow.models import EscrowHold, TransferRecord
from escrow.services.access import (
    require_campaign_owner,
    require_campaign_party,
    require_dispute_resolver,
)
from escrow.services.claims import (
    claim_hold,
    commit_transition,
    mark_pending_confirmation,
    record_capture,
    release_claim,
)
from escrow.services.dispute_service import DisputeService
from escrow.services.entity_sync import EntitySyncService
from escrow.services.reconciliation_service import (
    ReconciliationService,
    detect_discrepancy,
    record_discrepancy,
)
from escrow.services.transitions import (
    AttachEscrowToCampaign,
    CompleteApplication,
    EscrowTransition,
    MarkCampaignFunded,
    MarkCampaignRefunded,
    MarkCampaignReleased,
    RecordTransfer,
    ResolveDisputes,
)
from escrow.state_machines import (
    LIVE_ESCROW_STATUSES,
    DisputeResolution,
    EscrowOperation,
    EscrowStatus,
    ProviderHoldStatus,
)

if TYPE_CHECKING:
    from collections.abc import Callable
    from decimal import Decimal
    from typing import Any

    from escrow.adapters import ProviderStatus


class EscrowService(BaseService):
    """
    Orchestrates the escrow hold lifecycle against a payment gateway.

    The gateway is injected; production code passes StripeEscrowGateway,
    tests pass an in-memory fake.

    Methods:
        create_escrow_account: Authorize a campaign budget (pending_payment)
        fund_escrow: Confirm the authorization (funded)
        release_funds / release_for_application: Capture and pay out (released)
        refund_to_brand / refund_campaign: Void or refund (cancelled / refunded)
        handle_dispute: Freeze a funded hold (disputed)
        get_escrow_status: Compare local and provider state
        reconcile_escrow: Admin-triggered reconciliation
        calculate_fees: Fee breakdown without any state change
    """

    def __init__(
        self,
        gateway,
        sync: EntitySyncService | None = None,
        disputes: DisputeService | None = None,
        reconciliation: ReconciliationService | None = None,
    ) -> None:
        self.gateway = gateway
        self.sync = sync or EntitySyncService()
        self.disputes = disputes or DisputeService()
        self.reconciliation = reconciliation or ReconciliationService(gateway, sync=self.sync)

    # =========================================================================
    # Public Operations
    # =========================================================================

    def create_escrow_account(
        self,
        campaign_id,
        caller,
        amount,
        currency: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ServiceResult[dict[str, Any]]:
        """
        Authorize a campaign budget with the provider.

        Args:
            campaign_id: Campaign to fund
            caller: The campaign's brand (or a platform admin)
            amount: Budget in major units
            currency: ISO 4217 code (defaults to ESCROW_DEFAULT_CURRENCY)
            metadata: Extra metadata stored on the provider hold

        Returns:
            ServiceResult with escrow_id, status, amount, currency and the
            client_token the frontend needs to collect payment details
        """
        return self._run(
            EscrowOperation.CREATE,
            {"campaign_id": str(campaign_id)},
            lambda: self._create(campaign_id, caller, amount, currency, metadata),
        )

    def fund_escrow(self, escrow_id: str, caller, payment_method_ref: str) -> ServiceResult[dict[str, Any]]:
        """
        Confirm a pending hold with the brand's payment method.

        A declined card keeps the hold pending_payment; the brand may retry
        with another payment method (each attempt uses a new idempotency key).
        """
        return self._run(
            EscrowOperation.FUND,
            {"escrow_id": escrow_id},
            lambda: self._fund(escrow_id, caller, payment_method_ref),
        )

    def release_funds(
        self,
        escrow_id: str,
        caller,
        influencer_id,
        release_amount=None,
        reason: str = "campaign_completed",
    ) -> ServiceResult[dict[str, Any]]:
        """
        Capture a funded hold and pay the influencer's application.

        Replaying a completed release for the same influencer returns the
        recorded transfer without another capture.

        Args:
            escrow_id: Hold to release
            caller: The campaign's brand (or a platform admin); a disputed
                hold needs a platform admin
            influencer_id: Influencer whose application is paid
            release_amount: Amount to capture; defaults to the full hold
            reason: Stored on the TransferRecord
        """
        return self._run(
            EscrowOperation.RELEASE,
            {"escrow_id": escrow_id, "influencer_id": str(influencer_id)},
            lambda: self._release(
                self._get_hold(escrow_id), caller, influencer_id, release_amount, reason
            ),
        )

    def release_for_application(
        self,
        application_id,
        caller,
        release_amount=None,
        reason: str = "campaign_completed",
    ) -> ServiceResult[dict[str, Any]]:
        """Release the escrow of an application's campaign to that application."""

        def release() -> dict[str, Any]:
            application = self._get_application(application_id)
            hold = self._get_campaign_hold(application.campaign)
            return self._release(hold, caller, application.influencer_id, release_amount, reason)

        return self._run(
            EscrowOperation.RELEASE,
            {"application_id": str(application_id)},
            release,
        )

    def refund_to_brand(
        self,
        escrow_id: str,
        caller,
        refund_amount=None,
        reason: str = "campaign_cancelled",
    ) -> ServiceResult[dict[str, Any]]:
        """
        Return the campaign budget to the brand.

        pending_payment holds are cancelled; funded/disputed holds are
        voided (not captured yet) or refunded (captured).
        Only a platform admin can refund a disputed hold.
        """
        return self._run(
            EscrowOperation.REFUND,
            {"escrow_id": escrow_id},
            lambda: self._refund(self._get_hold(escrow_id), caller, refund_amount, reason),
        )

    def refund_campaign(
        self,
        campaign_id,
        caller,
        refund_amount=None,
        reason: str = "campaign_cancelled",
    ) -> ServiceResult[dict[str, Any]]:
        """Refund the current escrow of a campaign."""

        def refund() -> dict[str, Any]:
            hold = self._get_campaign_hold(self._get_campaign(campaign_id))
            return self._refund(hold, caller, refund_amount, reason)

        return self._run(
            EscrowOperation.REFUND,
            {"campaign_id": str(campaign_id)},
            refund,
        )

    def handle_dispute(
        self,
        escrow_id: str,
        caller,
        dispute_type: str,
        evidence=None,
    ) -> ServiceResult[dict[str, Any]]:
        """Open a dispute on a funded hold. Resolution is manual."""

        def dispute() -> dict[str, Any]:
            record = self.disputes.open_dispute(escrow_id, caller, dispute_type, evidence)
            return {
                "dispute_id": str(record.pk),
                "escrow_id": record.escrow_hold_id,
                "status": EscrowStatus.DISPUTED.value,
                "dispute_type": record.dispute_type,
                "dispute_status": record.status,
                "reported_at": record.reported_at.isoformat(),
            }

        return self._run(EscrowOperation.DISPUTE, {"escrow_id": escrow_id}, dispute)

    def get_escrow_status(self, escrow_id: str, caller) -> ServiceResult[dict[str, Any]]:
        """
        Report local and provider state of a hold.

        Read-only apart from recording a flagged discrepancy. A provider
        failure still returns the local view with provider_status "unknown".
        """
        return self._run(
            "status",
            {"escrow_id": escrow_id},
            lambda: self._status(escrow_id, caller),
        )

    def reconcile_escrow(self, escrow_id: str, caller) -> ServiceResult[dict[str, Any]]:
        """Reconcile a hold with the provider (platform admins only)."""

        def reconcile() -> dict[str, Any]:
            if not caller.is_platform_admin:
                raise EscrowPermissionError(
                    "Only platform admins can reconcile escrow holds",
                    details={"escrow_id": escrow_id},
                )
            return self.reconciliation.reconcile_hold(escrow_id, actor=caller).to_dict()

        return self._run("reconcile", {"escrow_id": escrow_id}, reconcile)

    def calculate_fees(self, amount, currency: str | None = None) -> ServiceResult[dict[str, str]]:
        """Fee breakdown for a gross amount; no state change."""
        return self._run(
            "calculate_fees",
            {},
            lambda: calculate_fees(
                parse_amount(amount),
                currency or settings.ESCROW_DEFAULT_CURRENCY,
            ).to_dict(),
        )

    # =========================================================================
    # Boundary
    # =========================================================================

    def _run(
        self,
        operation: str,
        context: dict[str, Any],
        call: Callable[[], dict[str, Any]],
    ) -> ServiceResult[dict[str, Any]]:
        extra = {"operation": str(operation), **context}
        try:
            return ServiceResult.success(call())
        except BaseApplicationError as e:
            return self.handle_exception(
                e,
                context=f"Escrow {operation} failed",
                log_level=logging.WARNING,
                extra={**extra, "error_code": e.error_code},
            )
        except Exception:
            self.get_logger().error(
                f"Unexpected error during escrow {operation}",
                extra=extra,
                exc_info=True,
            )
            return ServiceResult.failure(
                "An unexpected error occurred",
                error_code="INTERNAL_ERROR",
                details={"operation": str(operation)},
            )

    # =========================================================================
    # Create
    # =========================================================================

    def _create(self, campaign_id, caller, amount, currency, metadata) -> dict[str, Any]:
        currency = validate_currency(currency or settings.ESCROW_DEFAULT_CURRENCY)
        amount = self._parse_money(amount, currency, "amount")

        campaign = self._get_campaign(campaign_id)
        require_campaign_owner(caller, campaign)

        if campaign.status in (CampaignStatus.CANCELLED, CampaignStatus.COMPLETED):
            raise InvalidStateError(
                f"Cannot create escrow for a {campaign.status} campaign",
                details={"campaign_id": str(campaign.pk), "campaign_status": campaign.status},
            )
        if campaign.payment_status == CampaignPaymentStatus.RELEASED:
            raise InvalidStateError(
                "Campaign escrow was already released",
                details={"campaign_id": str(campaign.pk), "escrow_id": campaign.escrow_id},
            )
        self._ensure_no_live_hold(campaign)

        attempt = EscrowHold.objects.filter(campaign=campaign).count() + 1
        idempotency_key = IdempotencyKeyGenerator.generate(
            operation="create_hold",
            entity_id=campaign.pk,
            attempt=attempt,
        )
        provider_metadata = {
            **(metadata or {}),
            "campaign_id": str(campaign.pk),
            "brand_id": str(campaign.brand_id),
            "original_amount": str(amount),
            "type": "campaign_escrow",
        }

        try:
            hold_result = self.gateway.create_hold(
                amount=amount,
                currency=currency,
                metadata=provider_metadata,
                idempotency_key=idempotency_key,
            )
        except GatewayError as e:
            if e.ambiguous:
                raise PendingConfirmationError(
                    "Escrow creation is pending confirmation; retrying is safe",
                    details={"campaign_id": str(campaign.pk), "kind": e.kind.value},
                ) from e
            raise

        try:
            with self.atomic():
                locked = Campaign.objects.select_for_update().get(pk=campaign.pk)
                if locked.escrow_id != campaign.escrow_id:
                    raise StaleRecordError(
                        "Campaign escrow was changed by a concurrent request",
                        details={"campaign_id": str(campaign.pk)},
                    )
                self._ensure_no_live_hold(locked)

                hold = EscrowHold.objects.create(
                    id=hold_result.hold_id,
                    campaign=locked,
                    brand_id=locked.brand_id,
                    gross_amount=amount,
                    currency=currency,
                    metadata=provider_metadata,
                )
                self.sync.apply(
                    EscrowTransition(
                        escrow_id=hold.pk,
                        operation=EscrowOperation.CREATE,
                        from_status="",
                        to_status=hold.status,
                        effects=(
                            AttachEscrowToCampaign(
                                campaign_id=locked.pk,
                                escrow_id=hold.pk,
                                amount=amount,
                                currency=currency,
                                previous_escrow_id=campaign.escrow_id,
                            ),
                        ),
                    )
                )
        except (IntegrityError, InvalidStateError) as e:
            self._cancel_orphan(hold_result.hold_id, campaign.pk)
            if isinstance(e, InvalidStateError):
                raise
            raise InvalidStateError(
                "Campaign already has an active escrow",
                details={"campaign_id": str(campaign.pk)},
            ) from e

        self.get_logger().info(
            "Escrow account created",
            extra={
                "escrow_id": hold.pk,
                "campaign_id": str(campaign.pk),
                "amount": str(amount),
                "currency": currency,
            },
        )
        return {
            "escrow_id": hold.pk,
            "campaign_id": str(campaign.pk),
            "status": hold.status,
            "amount": str(hold.gross_amount),
            "currency": hold.currency,
            "client_token": hold_result.client_token,
            "metadata": hold.metadata,
        }

    def _ensure_no_live_hold(self, campaign: Campaign) -> None:
        live = EscrowHold.objects.filter(
            campaign=campaign,
            status__in=LIVE_ESCROW_STATUSES,
        ).first()
        if live is not None:
            raise InvalidStateError(
                "Campaign already has an active escrow",
                details={
                    "campaign_id": str(campaign.pk),
                    "escrow_id": live.pk,
                    "current_status": live.status,
                },
            )

    def _cancel_orphan(self, hold_id: str, campaign_id) -> None:
        # A replayed create returns the hold that is already persisted
        if EscrowHold.objects.filter(pk=hold_id).exists():
            return
        try:
            self.gateway.cancel_hold(
                hold_id,
                idempotency_key=IdempotencyKeyGenerator.generate("cancel_orphan_hold", hold_id),
            )
        except (GatewayError, InvalidStateError):
            self.get_logger().error(
                "Failed to cancel orphan provider hold",
                extra={"escrow_id": hold_id, "campaign_id": str(campaign_id)},
                exc_info=True,
            )
            return
        self.get_logger().warning(
            "Cancelled orphan provider hold after losing create race",
            extra={"escrow_id": hold_id, "campaign_id": str(campaign_id)},
        )

    # =========================================================================
    # Fund
    # =========================================================================

    def _fund(self, escrow_id: str, caller, payment_method_ref: str) -> dict[str, Any]:
        if not payment_method_ref:
            raise EscrowValidationError(
                "payment_method_ref is required",
                details={"escrow_id": escrow_id},
            )

        hold = self._get_hold(escrow_id)
        require_campaign_owner(caller, hold.campaign)
        self._require_status(hold, EscrowOperation.FUND, EscrowStatus.PENDING_PAYMENT)

        hold = claim_hold(hold, EscrowOperation.FUND)
        try:
            result = self.gateway.confirm_hold(
                hold.pk,
                payment_method_ref,
                idempotency_key=hold.pending_idempotency_key,
            )
        except GatewayError as e:
            if not e.ambiguous:
                release_claim(hold, error=e.message)
                raise
            hold = self._settle_ambiguous(
                hold,
                e,
                applied=lambda provider: provider.status == ProviderHoldStatus.FUNDED,
                commit=self._commit_fund,
            )
            return self._hold_data(hold)
        except InvalidStateError as e:
            release_claim(hold, error=e.message)
            raise

        if result.status != ProviderHoldStatus.FUNDED:
            hold = release_claim(hold)
            self.get_logger().info(
                "Escrow funding requires customer action",
                extra={"escrow_id": hold.pk, "provider_status": result.raw_status},
            )
            return {
                **self._hold_data(hold),
                "requires_action": result.requires_action,
                "client_token": result.client_token,
            }

        hold = self._commit_fund(hold)
        self.get_logger().info(
            "Escrow funded",
            extra={"escrow_id": hold.pk, "campaign_id": str(hold.campaign_id)},
        )
        return self._hold_data(hold)

    def _commit_fund(self, hold: EscrowHold, provider: ProviderStatus | None = None) -> EscrowHold:
        hold, _ = commit_transition(
            hold,
            EscrowOperation.FUND,
            lambda h: h.fund(),
            lambda h: [MarkCampaignFunded(campaign_id=h.campaign_id, funded_at=h.funded_at)],
            self.sync,
        )
        return hold

    # =========================================================================
    # Release
    # =========================================================================

    def _release(self, hold: EscrowHold, caller, influencer_id, release_amount, reason) -> dict[str, Any]:
        require_campaign_owner(caller, hold.campaign)

        if hold.status == EscrowStatus.RELEASED:
            transfer = TransferRecord.objects.filter(escrow_hold=hold).first()
            if transfer is not None and str(transfer.influencer_id) == str(influencer_id):
                self.get_logger().info(
                    "Replayed completed escrow release",
                    extra={"escrow_id": hold.pk, "transfer_id": str(transfer.pk)},
                )
                return self._release_data(hold, transfer, replayed=True)
            raise InvalidStateError(
                "Escrow was already released",
                details={"escrow_id": hold.pk, "current_status": hold.status},
            )

        self._require_status(
            hold, EscrowOperation.RELEASE, EscrowStatus.FUNDED, EscrowStatus.DISPUTED
        )
        require_dispute_resolver(caller, hold)

        application = Application.objects.filter(
            campaign_id=hold.campaign_id,
            influencer_id=influencer_id,
        ).first()
        if application is None:
            raise EscrowNotFoundError(
                "Influencer has no application on this campaign",
                error_code="APPLICATION_NOT_FOUND",
                details={"escrow_id": hold.pk, "influencer_id": str(influencer_id)},
            )
        if not application.is_payable:
            raise InvalidStateError(
                f"Application in '{application.status}' status cannot be paid",
                details={
                    "application_id": str(application.pk),
                    "application_status": application.status,
                },
            )

        if release_amount is None:
            amount = hold.gross_amount
        else:
            amount = self._parse_money(release_amount, hold.currency, "release_amount")
        if amount > hold.gross_amount:
            raise EscrowValidationError(
                "release_amount exceeds the escrow amount",
                details={
                    "escrow_id": hold.pk,
                    "release_amount": str(amount),
                    "escrow_amount": str(hold.gross_amount),
                },
            )

        hold = claim_hold(hold, EscrowOperation.RELEASE)
        if not hold.is_captured:
            hold = self._capture(hold, amount)

        fees = calculate_fees(hold.captured_amount, hold.currency)
        try:
            hold, transition = commit_transition(
                hold,
                EscrowOperation.RELEASE,
                lambda h: h.release(),
                lambda h: [
                    RecordTransfer(
                        escrow_id=h.pk,
                        application_id=application.pk,
                        influencer_id=application.influencer_id,
                        fees=fees,
                        reason=reason,
                    ),
                    CompleteApplication(
                        application_id=application.pk,
                        paid_amount=fees.net_payee_amount,
                        completed_at=h.released_at,
                    ),
                    MarkCampaignReleased(campaign_id=h.campaign_id),
                    ResolveDisputes(
                        escrow_id=h.pk,
                        resolution=DisputeResolution.RELEASED,
                        resolved_at=h.released_at,
                    ),
                ],
                self.sync,
            )
        except Exception as e:
            # Money was captured; keep the claim so the release can be retried
            mark_pending_confirmation(hold, error=str(e))
            raise

        transfer = TransferRecord.objects.get(escrow_hold_id=hold.pk)
        self.get_logger().info(
            "Escrow released",
            extra={
                "escrow_id": hold.pk,
                "campaign_id": str(hold.campaign_id),
                "application_id": str(application.pk),
                "net_amount": str(fees.net_payee_amount),
                "effects": [type(effect).__name__ for effect in transition.effects],
            },
        )
        return self._release_data(hold, transfer, replayed=False)

    def _capture(self, hold: EscrowHold, amount: Decimal) -> EscrowHold:
        try:
            capture = self.gateway.capture_hold(
                hold.pk,
                hold.currency,
                idempotency_key=hold.pending_idempotency_key,
                amount=amount,
            )
        except GatewayError as e:
            if not e.ambiguous:
                release_claim(hold, error=e.message)
                raise
            return self._settle_ambiguous(
                hold,
                e,
                applied=lambda provider: provider.is_captured,
                commit=lambda h, provider: record_capture(h, provider.captured_amount),
            )
        except InvalidStateError as e:
            release_claim(hold, error=e.message)
            raise
        return record_capture(hold, capture.captured_amount)

    # =========================================================================
    # Refund
    # =========================================================================

    def _refund(self, hold: EscrowHold, caller, refund_amount, reason) -> dict[str, Any]:
        require_campaign_owner(caller, hold.campaign)
        self._require_status(
            hold,
            EscrowOperation.REFUND,
            EscrowStatus.PENDING_PAYMENT,
            EscrowStatus.FUNDED,
            EscrowStatus.DISPUTED,
        )
        require_dispute_resolver(caller, hold)

        amount = None
        if refund_amount is not None:
            amount = self._parse_money(refund_amount, hold.currency, "refund_amount")

        if hold.is_captured:
            refundable = hold.captured_amount - (hold.refunded_amount or 0)
            amount = refundable if amount is None else amount
            if amount > refundable:
                raise RefundExceedsCapturedError(
                    "Refund amount exceeds the captured amount",
                    details={
                        "escrow_id": hold.pk,
                        "refund_amount": str(amount),
                        "captured_amount": str(hold.captured_amount),
                    },
                )
            hold = self._refund_captured(hold, amount, reason)
        else:
            if amount is not None and amount != hold.gross_amount:
                raise EscrowValidationError(
                    "An uncaptured escrow can only be refunded in full",
                    details={
                        "escrow_id": hold.pk,
                        "refund_amount": str(amount),
                        "escrow_amount": str(hold.gross_amount),
                    },
                )
            hold = self._void(hold)

        self.get_logger().info(
            "Escrow refunded to brand",
            extra={
                "escrow_id": hold.pk,
                "campaign_id": str(hold.campaign_id),
                "status": hold.status,
                "reason": reason,
            },
        )
        return {
            **self._hold_data(hold),
            "refunded_amount": str(hold.refunded_amount or hold.gross_amount),
            "refund_id": hold.provider_refund_id,
            "reason": reason,
        }

    def _void(self, hold: EscrowHold) -> EscrowHold:
        hold = claim_hold(hold, EscrowOperation.REFUND)
        try:
            self.gateway.cancel_hold(hold.pk, idempotency_key=hold.pending_idempotency_key)
        except GatewayError as e:
            if not e.ambiguous:
                release_claim(hold, error=e.message)
                raise
            return self._settle_ambiguous(
                hold,
                e,
                applied=lambda provider: provider.status == ProviderHoldStatus.CANCELLED,
                commit=lambda h, provider: self._commit_void(h),
            )
        except InvalidStateError as e:
            release_claim(hold, error=e.message)
            raise
        return self._commit_void(hold)

    def _commit_void(self, hold: EscrowHold) -> EscrowHold:
        if hold.status == EscrowStatus.PENDING_PAYMENT:
            hold, _ = commit_transition(
                hold,
                EscrowOperation.REFUND,
                lambda h: h.cancel(),
                lambda h: [
                    MarkCampaignRefunded(campaign_id=h.campaign_id, refunded_at=h.cancelled_at)
                ],
                self.sync,
            )
            return hold
        return self._commit_refund(hold, hold.gross_amount, None)

    def _refund_captured(self, hold: EscrowHold, amount: Decimal, reason: str) -> EscrowHold:
        hold = claim_hold(hold, EscrowOperation.REFUND)
        try:
            result = self.gateway.refund(
                hold.pk,
                amount,
                hold.currency,
                reason,
                idempotency_key=hold.pending_idempotency_key,
            )
        except GatewayError as e:
            if not e.ambiguous:
                release_claim(hold, error=e.message)
                raise
            return self._settle_ambiguous(
                hold,
                e,
                applied=lambda provider: provider.refunded_amount >= amount,
                commit=lambda h, provider: self._commit_refund(h, amount, None),
            )
        except InvalidStateError as e:
            release_claim(hold, error=e.message)
            raise
        return self._commit_refund(hold, result.amount, result.refund_id)

    def _commit_refund(self, hold: EscrowHold, amount: Decimal, refund_id: str | None) -> EscrowHold:
        hold, _ = commit_transition(
            hold,
            EscrowOperation.REFUND,
            lambda h: h.refund(amount, refund_id=refund_id),
            lambda h: [
                ResolveDisputes(
                    escrow_id=h.pk,
                    resolution=DisputeResolution.REFUNDED,
                    resolved_at=h.refunded_at,
                ),
                MarkCampaignRefunded(campaign_id=h.campaign_id, refunded_at=h.refunded_at),
            ],
            self.sync,
        )
        return hold

    # =========================================================================
    # Status
    # =========================================================================

    def _status(self, escrow_id: str, caller) -> dict[str, Any]:
        hold = self._get_hold(escrow_id)
        require_campaign_party(caller, hold.campaign)

        data = {
            **self._hold_data(hold),
            "metadata": hold.metadata,
            "captured_amount": str(hold.captured_amount) if hold.is_captured else None,
            "pending_operation": hold.pending_operation or None,
            "pending_confirmation": hold.pending_confirmation,
        }

        try:
            provider = self.gateway.get_status(hold.pk)
        except (GatewayError, InvalidStateError) as e:
            self.get_logger().warning(
                "Provider status unavailable; returning local view",
                extra={"escrow_id": hold.pk, "error": str(e)},
            )
            return {
                **data,
                "provider_status": ProviderHoldStatus.UNKNOWN.value,
                "in_sync": None,
                "discrepancy": None,
            }

        discrepancy = detect_discrepancy(hold, provider)
        if discrepancy is not None and not hold.is_claimed:
            record_discrepancy(hold, discrepancy)
            self.get_logger().warning(
                "Escrow discrepancy detected on status read",
                extra={
                    "escrow_id": hold.pk,
                    "local_status": hold.status,
                    "provider_status": provider.status,
                },
            )

        return {
            **data,
            "provider_status": provider.status,
            "in_sync": discrepancy is None,
            "discrepancy": (
                {
                    "type": discrepancy.discrepancy_type,
                    "local_status": discrepancy.local_status,
                    "provider_status": discrepancy.provider_status,
                }
                if discrepancy is not None
                else None
            ),
        }

    # =========================================================================
    # Helpers
    # =========================================================================

    def _settle_ambiguous(
        self,
        hold: EscrowHold,
        error: GatewayError,
        applied: Callable[[ProviderStatus], bool],
        commit: Callable[[EscrowHold, ProviderStatus], EscrowHold],
    ) -> EscrowHold:
        """
        Resolve an ambiguous gateway failure with a get_status probe.

        Commits when the provider shows the call took effect; otherwise the
        claim is kept and PendingConfirmationError is raised.
        """
        operation = hold.pending_operation
        try:
            provider = self.gateway.get_status(hold.pk)
        except GatewayError as probe_error:
            self.get_logger().warning(
                "Status probe failed after ambiguous gateway error",
                extra={"escrow_id": hold.pk, "operation": operation, "error": str(probe_error)},
            )
            provider = None

        if provider is not None and applied(provider):
            self.get_logger().info(
                "Provider confirmed ambiguous operation",
                extra={"escrow_id": hold.pk, "operation": operation},
            )
            return commit(hold, provider)

        mark_pending_confirmation(hold, error=error.message)
        raise PendingConfirmationError(
            "Payment provider did not confirm the operation; it is pending confirmation",
            details={
                "escrow_id": hold.pk,
                "operation": operation,
                "kind": error.kind.value,
            },
        ) from error

    @staticmethod
    def _require_status(hold: EscrowHold, operation: str, *allowed: str) -> None:
        if hold.status not in allowed:
            raise InvalidStateError(
                f"Cannot {operation} escrow in '{hold.status}' status",
                details={"escrow_id": hold.pk, "current_status": hold.status},
            )

    @staticmethod
    def _parse_money(value, currency: str, field_name: str) -> Decimal:
        amount = quantize_amount(parse_amount(value, field_name), currency)
        if amount <= 0:
            raise EscrowValidationError(
                f"{field_name} is below the currency's smallest unit",
                details={field_name: str(value), "currency": currency},
            )
        return amount

    @staticmethod
    def _get_hold(escrow_id: str) -> EscrowHold:
        hold = EscrowHold.objects.select_related("campaign").filter(pk=escrow_id).first()
        if hold is None:
            raise EscrowNotFoundError(
                f"Escrow {escrow_id} not found",
                details={"escrow_id": escrow_id},
            )
        return hold

    @staticmethod
    def _get_campaign(campaign_id) -> Campaign:
        try:
            campaign = Campaign.objects.filter(pk=campaign_id).first()
        except (ValueError, DjangoValidationError):
            campaign = None
        if campaign is None:
            raise EscrowNotFoundError(
                f"Campaign {campaign_id} not found",
                error_code="CAMPAIGN_NOT_FOUND",
                details={"campaign_id": str(campaign_id)},
            )
        return campaign

    @staticmethod
    def _get_application(application_id) -> Application:
        try:
            application = (
                Application.objects.select_related("campaign").filter(pk=application_id).first()
            )
        except (ValueError, DjangoValidationError):
            application = None
        if application is None:
            raise EscrowNotFoundError(
                f"Application {application_id} not found",
                error_code="APPLICATION_NOT_FOUND",
                details={"application_id": str(application_id)},
            )
        return application

    def _get_campaign_hold(self, campaign: Campaign) -> EscrowHold:
        """The campaign's live hold, else the hold it last pointed at."""
        hold = (
            EscrowHold.objects.select_related("campaign")
            .filter(campaign=campaign, status__in=LIVE_ESCROW_STATUSES)
            .first()
        )
        if hold is None and campaign.escrow_id:
            hold = EscrowHold.objects.select_related("campaign").filter(pk=campaign.escrow_id).first()
        if hold is None:
            raise EscrowNotFoundError(
                "Campaign has no escrow",
                details={"campaign_id": str(campaign.pk)},
            )
        return hold

    @staticmethod
    def _hold_data(hold: EscrowHold) -> dict[str, Any]:
        return {
            "escrow_id": hold.pk,
            "campaign_id": str(hold.campaign_id),
            "status": hold.status,
            "amount": str(hold.gross_amount),
            "currency": hold.currency,
        }

    @staticmethod
    def _release_data(hold: EscrowHold, transfer: TransferRecord, replayed: bool) -> dict[str, Any]:
        return {
            "escrow_id": hold.pk,
            "campaign_id": str(hold.campaign_id),
            "status": hold.status,
            "application_id": str(transfer.application_id),
            "influencer_id": transfer.influencer_id,
            "transfer_id": str(transfer.pk),
            "transfer_status": transfer.status,
            "captured_amount": str(hold.captured_amount),
            "amount": str(transfer.amount),
            "fees": {
                "gross_amount": str(transfer.gross_amount),
                "platform_fee": str(transfer.platform_fee),
                "provider_fee": str(transfer.provider_fee),
                "net_payee_amount": str(transfer.amount),
            },
            "currency": transfer.currency,
            "reason": transfer.reason,
            "replayed": replayed,
        }
