"""
Campaign and Application models.

Campaign is created by a brand and funded through an escrow hold.
Application links an influencer to a campaign and receives the
net payout when the hold is released.

Field ownership:
    Title, budget defaults and general status are maintained by the
    campaign CRUD layer. The payment fields (escrow_id, payment_status,
    funded_at, refunded_at on Campaign; payment_status, paid_amount,
    completed_at on Application) are written only by
    escrow.services.entity_sync.EntitySyncService.

Usage:
    from campaigns.models import Campaign, CampaignPaymentStatus

    campaign = Campaign.objects.create(brand=brand, title="Spring launch")
    funded = Campaign.objects.filter(payment_status=CampaignPaymentStatus.FUNDED)
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel


class CampaignStatus(models.TextChoices):
    """
    Lifecycle of a campaign as seen by brands and influencers.

    Escrow transitions only move a campaign to ACTIVE (on funding)
    or CANCELLED (on refund / cancellation).
    """

    DRAFT = "draft", "Draft"
    ACTIVE = "active", "Active"
    PAUSED = "paused", "Paused"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"


class CampaignPaymentStatus(models.TextChoices):
    """Coarse mirror of the campaign's escrow hold status."""

    PENDING = "pending", "Pending"
    FUNDED = "funded", "Funded"
    RELEASED = "released", "Released"
    REFUNDED = "refunded", "Refunded"


class ApplicationStatus(models.TextChoices):
    """
    Lifecycle of an influencer's application to a campaign.

    COMPLETED is terminal and reached only after escrow release.
    """

    PENDING = "pending", "Pending"
    APPROVED = "approved", "Approved"
    REJECTED = "rejected", "Rejected"
    IN_PROGRESS = "in_progress", "In Progress"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"


class ApplicationPaymentStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PAID = "paid", "Paid"
    FAILED = "failed", "Failed"


# Applications in these statuses can never be paid out (again)
INELIGIBLE_FOR_PAYOUT = frozenset(
    {ApplicationStatus.REJECTED, ApplicationStatus.CANCELLED, ApplicationStatus.COMPLETED}
)


class Campaign(UUIDPrimaryKeyMixin, BaseModel):
    """
    A brand's campaign, funded through at most one live escrow hold.

    Fields:
        brand: Brand account that owns (and pays for) the campaign
        title: Display title
        budget: Gross amount that was or will be held in escrow
        currency: ISO 4217 currency code (lowercase)
        status: Campaign lifecycle status
        escrow_id: Provider hold id of the current escrow hold
        payment_status: Coarse mirror of the hold status
        funded_at / refunded_at: Payment timestamps
    """

    brand = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="campaigns",
        help_text="Brand that owns and funds this campaign",
    )

    title = models.CharField(
        max_length=200,
        help_text="Campaign title",
    )

    budget = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
        help_text="Gross amount held (or to be held) in escrow",
    )

    currency = models.CharField(
        max_length=3,
        default="usd",
        help_text="ISO 4217 currency code (lowercase)",
    )

    status = models.CharField(
        max_length=20,
        choices=CampaignStatus.choices,
        default=CampaignStatus.DRAFT,
        db_index=True,
    )

    # ==========================================================================
    # Payment fields (written by the escrow entity sync layer only)
    # ==========================================================================

    escrow_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Provider hold id of the campaign's current escrow hold",
    )

    payment_status = models.CharField(
        max_length=20,
        choices=CampaignPaymentStatus.choices,
        null=True,
        blank=True,
        db_index=True,
        help_text="Mirror of the escrow hold status at coarser granularity",
    )

    funded_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Campaign"
        verbose_name_plural = "Campaigns"
        indexes = [
            models.Index(fields=["brand", "status"], name="campaign_brand_status_idx"),
        ]

    def __str__(self) -> str:
        return f"Campaign({self.id}, {self.title!r}, {self.status})"

    def is_owned_by(self, user) -> bool:
        return user is not None and self.brand_id == user.pk


class Application(UUIDPrimaryKeyMixin, BaseModel):
    """
    An influencer's application to a campaign.

    Fields:
        campaign: Campaign applied to
        influencer: Applying influencer
        status: Application lifecycle status
        payment_status: Payout status
        paid_amount: Net amount paid on release (set at most once)
        completed_at: When the application was completed by a release
    """

    campaign = models.ForeignKey(
        Campaign,
        on_delete=models.CASCADE,
        related_name="applications",
    )

    influencer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="applications",
    )

    status = models.CharField(
        max_length=20,
        choices=ApplicationStatus.choices,
        default=ApplicationStatus.PENDING,
        db_index=True,
    )

    payment_status = models.CharField(
        max_length=20,
        choices=ApplicationPaymentStatus.choices,
        default=ApplicationPaymentStatus.PENDING,
    )

    paid_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Net payee amount of the release; set once",
    )

    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Application"
        verbose_name_plural = "Applications"
        constraints = [
            models.UniqueConstraint(
                fields=["campaign", "influencer"],
                name="application_one_per_influencer_per_campaign",
            ),
        ]

    def __str__(self) -> str:
        return f"Application({self.id}, {self.status})"

    @property
    def is_payable(self) -> bool:
        return self.status not in INELIGIBLE_FOR_PAYOUT and self.paid_amount is None
