"""
EscrowHold model for campaign funding.

An EscrowHold mirrors one Stripe PaymentIntent created with manual
capture. Its primary key is the provider-issued hold id, which is also
the escrow id exposed to clients and stored on Campaign.escrow_id.

Usage:
    from escrow.models import EscrowHold
    from escrow.state_machines import EscrowStatus

    hold = EscrowHold.objects.create(
        id="pi_123",
        campaign=campaign,
        brand=campaign.brand,
        gross_amount=Decimal("1000.00"),
        currency="usd",
    )

    # State transitions using django-fsm
    hold.fund()  # pending_payment -> funded
    hold.save()
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models
from django.utils import timezone

from django_fsm import FSMField, transition

from core.model_mixins import VersionedMixin
from core.models import BaseModel

from escrow.state_machines import (
    LIVE_ESCROW_STATUSES,
    TERMINAL_ESCROW_STATUSES,
    EscrowStatus,
)


class EscrowHold(VersionedMixin, BaseModel):
    """
    Provider authorization holding a brand's campaign budget.

    Uses django-fsm for state machine management and optimistic
    locking via the version field for concurrency control.

    State Flow:
        PENDING_PAYMENT -> FUNDED -> RELEASED
        PENDING_PAYMENT -> CANCELLED
        FUNDED -> REFUNDED
        FUNDED -> DISPUTED -> RELEASED / REFUNDED

    Fields:
        id: Provider hold id (Stripe PaymentIntent pi_xxx)
        campaign: Campaign being funded
        brand: Payer
        gross_amount / currency: Authorized amount
        status: Current FSM state
        captured_amount / captured_at: Set once the capture succeeded
        refunded_amount / provider_refund_id: Set by a refund
        pending_operation: Provider call in flight (claim marker)
        pending_confirmation: The in-flight call had an ambiguous outcome
        pending_idempotency_key: Key reused when that call is retried
        fund_attempts: Number of confirm attempts (fresh key per attempt)
        last_error: Last provider failure for operators
        metadata: Metadata persisted with the provider hold

    Note:
        Status is protected; only the transition methods below change it,
        and only the escrow services call them.
    """

    id = models.CharField(
        max_length=255,
        primary_key=True,
        help_text="Provider hold id (Stripe PaymentIntent pi_xxx)",
    )

    # ==========================================================================
    # Relationships
    # ==========================================================================

    campaign = models.ForeignKey(
        "campaigns.Campaign",
        on_delete=models.PROTECT,
        related_name="escrow_holds",
        help_text="Campaign this hold funds",
    )

    brand = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="escrow_holds",
        help_text="Brand paying into escrow",
    )

    # ==========================================================================
    # Amount & Currency
    # ==========================================================================

    gross_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        help_text="Authorized amount in major currency units",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=EscrowStatus.PENDING_PAYMENT,
        choices=EscrowStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the escrow hold (managed by FSM)",
    )

    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Metadata persisted with the provider hold",
    )

    # ==========================================================================
    # Provider Money Movement
    # ==========================================================================

    captured_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Amount captured by the provider (set once)",
    )

    captured_at = models.DateTimeField(null=True, blank=True)

    refunded_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
    )

    provider_refund_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Stripe Refund id (re_xxx)",
    )

    # ==========================================================================
    # In-flight Operation Claim
    # ==========================================================================

    pending_operation = models.CharField(
        max_length=20,
        blank=True,
        default="",
        help_text="Provider operation currently in flight on this hold",
    )

    pending_confirmation = models.BooleanField(
        default=False,
        help_text="Last attempt of pending_operation had an unknown outcome",
    )

    pending_idempotency_key = models.CharField(
        max_length=255,
        blank=True,
        default="",
    )

    fund_attempts = models.PositiveSmallIntegerField(default=0)

    last_error = models.TextField(null=True, blank=True)

    # ==========================================================================
    # State Timestamps
    # ==========================================================================

    funded_at = models.DateTimeField(null=True, blank=True)
    released_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    disputed_at = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Escrow Hold"
        verbose_name_plural = "Escrow Holds"
        indexes = [
            models.Index(fields=["campaign", "status"], name="escrow_hold_campaign_idx"),
            models.Index(fields=["brand", "created_at"], name="escrow_hold_brand_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["campaign"],
                condition=models.Q(status__in=[s.value for s in LIVE_ESCROW_STATUSES]),
                name="escrow_hold_one_live_per_campaign",
            ),
            models.CheckConstraint(
                condition=models.Q(gross_amount__gt=0),
                name="escrow_hold_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"EscrowHold({self.id}, {self.status}, {self.gross_amount} {self.currency.upper()})"

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_ESCROW_STATUSES

    @property
    def is_captured(self) -> bool:
        return self.captured_at is not None

    @property
    def is_claimed(self) -> bool:
        return bool(self.pending_operation)

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=EscrowStatus.PENDING_PAYMENT,
        target=EscrowStatus.FUNDED,
    )
    def fund(self):
        """
        Mark the authorization as confirmed.

        Transition: PENDING_PAYMENT -> FUNDED
        """
        self.funded_at = timezone.now()

    @transition(
        field=status,
        source=[EscrowStatus.FUNDED, EscrowStatus.DISPUTED],
        target=EscrowStatus.RELEASED,
    )
    def release(self):
        """
        Release the captured funds to the influencer.

        Transition: FUNDED / DISPUTED -> RELEASED
        """
        self.released_at = timezone.now()

    @transition(
        field=status,
        source=EscrowStatus.PENDING_PAYMENT,
        target=EscrowStatus.CANCELLED,
    )
    def cancel(self):
        """
        Abandon an unconfirmed hold.

        Transition: PENDING_PAYMENT -> CANCELLED
        """
        self.cancelled_at = timezone.now()

    @transition(
        field=status,
        source=[EscrowStatus.FUNDED, EscrowStatus.DISPUTED],
        target=EscrowStatus.REFUNDED,
    )
    def refund(self, amount: Decimal, refund_id: str | None = None):
        """
        Return the funds to the brand.

        Transition: FUNDED / DISPUTED -> REFUNDED

        Args:
            amount: Amount returned (captured refund or voided authorization)
            refund_id: Provider refund id when money was captured first
        """
        self.refunded_amount = amount
        self.provider_refund_id = refund_id
        self.refunded_at = timezone.now()

    @transition(
        field=status,
        source=EscrowStatus.FUNDED,
        target=EscrowStatus.DISPUTED,
    )
    def dispute(self):
        """
        Freeze the hold while a dispute is under review.

        Transition: FUNDED -> DISPUTED
        """
        self.disputed_at = timezone.now()
