# Generated manually - escrow holds, transfer/dispute records, discrepancies, webhook events

import uuid

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


def _timestamps():
    return [
        (
            "created_at",
            models.DateTimeField(
                auto_now_add=True,
                db_index=True,
                help_text="Timestamp when this record was created",
            ),
        ),
        (
            "updated_at",
            models.DateTimeField(
                auto_now=True,
                help_text="Timestamp when this record was last modified",
            ),
        ),
    ]


def _uuid_pk():
    return (
        "id",
        models.UUIDField(
            default=uuid.uuid4,
            editable=False,
            help_text="Unique identifier for this record",
            primary_key=True,
            serialize=False,
        ),
    )


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("campaigns", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="EscrowHold",
            fields=[
                *_timestamps(),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Version for optimistic locking - incremented on each save",
                    ),
                ),
                (
                    "id",
                    models.CharField(
                        help_text="Provider hold id (Stripe PaymentIntent pi_xxx)",
                        max_length=255,
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "gross_amount",
                    models.DecimalField(
                        decimal_places=2,
                        help_text="Authorized amount in major currency units",
                        max_digits=12,
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        default="usd",
                        help_text="ISO 4217 currency code (lowercase)",
                        max_length=3,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("pending_payment", "Pending Payment"),
                            ("funded", "Funded"),
                            ("released", "Released"),
                            ("refunded", "Refunded"),
                            ("cancelled", "Cancelled"),
                            ("disputed", "Disputed"),
                        ],
                        db_index=True,
                        default="pending_payment",
                        help_text="Current state of the escrow hold (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "metadata",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Metadata persisted with the provider hold",
                    ),
                ),
                (
                    "captured_amount",
                    models.DecimalField(
                        blank=True,
                        decimal_places=2,
                        help_text="Amount captured by the provider (set once)",
                        max_digits=12,
                        null=True,
                    ),
                ),
                ("captured_at", models.DateTimeField(blank=True, null=True)),
                (
                    "refunded_amount",
                    models.DecimalField(
                        blank=True, decimal_places=2, max_digits=12, null=True
                    ),
                ),
                (
                    "provider_refund_id",
                    models.CharField(
                        blank=True,
                        help_text="Stripe Refund id (re_xxx)",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "pending_operation",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Provider operation currently in flight on this hold",
                        max_length=20,
                    ),
                ),
                (
                    "pending_confirmation",
                    models.BooleanField(
                        default=False,
                        help_text="Last attempt of pending_operation had an unknown outcome",
                    ),
                ),
                (
                    "pending_idempotency_key",
                    models.CharField(blank=True, default="", max_length=255),
                ),
                ("fund_attempts", models.PositiveSmallIntegerField(default=0)),
                ("last_error", models.TextField(blank=True, null=True)),
                ("funded_at", models.DateTimeField(blank=True, null=True)),
                ("released_at", models.DateTimeField(blank=True, null=True)),
                ("refunded_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("disputed_at", models.DateTimeField(blank=True, null=True)),
                (
                    "brand",
                    models.ForeignKey(
                        help_text="Brand paying into escrow",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="escrow_holds",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "campaign",
                    models.ForeignKey(
                        help_text="Campaign this hold funds",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="escrow_holds",
                        to="campaigns.campaign",
                    ),
                ),
            ],
            options={
                "verbose_name": "Escrow Hold",
                "verbose_name_plural": "Escrow Holds",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["campaign", "status"], name="escrow_hold_campaign_idx"
                    ),
                    models.Index(
                        fields=["brand", "created_at"], name="escrow_hold_brand_idx"
                    ),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(
                            ("status__in", ["pending_payment", "funded", "disputed"])
                        ),
                        fields=("campaign",),
                        name="escrow_hold_one_live_per_campaign",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("gross_amount__gt", 0)),
                        name="escrow_hold_amount_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="TransferRecord",
            fields=[
                *_timestamps(),
                _uuid_pk(),
                (
                    "amount",
                    models.DecimalField(
                        decimal_places=2, help_text="Net payee amount", max_digits=12
                    ),
                ),
                ("gross_amount", models.DecimalField(decimal_places=2, max_digits=12)),
                ("platform_fee", models.DecimalField(decimal_places=2, max_digits=12)),
                ("provider_fee", models.DecimalField(decimal_places=2, max_digits=12)),
                ("currency", models.CharField(default="usd", max_length=3)),
                (
                    "reason",
                    models.CharField(default="campaign_completed", max_length=100),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("pending_bank_transfer", "Pending Bank Transfer")],
                        db_index=True,
                        default="pending_bank_transfer",
                        max_length=30,
                    ),
                ),
                (
                    "application",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transfer_records",
                        to="campaigns.application",
                    ),
                ),
                (
                    "escrow_hold",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transfer_record",
                        to="escrow.escrowhold",
                    ),
                ),
                (
                    "influencer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="transfer_records",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Transfer Record",
                "verbose_name_plural": "Transfer Records",
                "ordering": ["-created_at"],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount__gte", 0)),
                        name="transfer_record_amount_not_negative",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="DisputeRecord",
            fields=[
                *_timestamps(),
                _uuid_pk(),
                (
                    "dispute_type",
                    models.CharField(
                        choices=[
                            ("content_not_delivered", "Content Not Delivered"),
                            ("content_quality", "Content Quality"),
                            ("payment_delay", "Payment Delay"),
                            ("breach_of_contract", "Breach of Contract"),
                            ("other", "Other"),
                        ],
                        max_length=30,
                    ),
                ),
                ("evidence", models.JSONField(blank=True, default=dict)),
                ("reported_at", models.DateTimeField()),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("under_review", "Under Review"),
                            ("resolved", "Resolved"),
                        ],
                        db_index=True,
                        default="under_review",
                        max_length=20,
                    ),
                ),
                (
                    "resolution",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("released", "Released to Influencer"),
                            ("refunded", "Refunded to Brand"),
                        ],
                        max_length=20,
                        null=True,
                    ),
                ),
                ("resolved_at", models.DateTimeField(blank=True, null=True)),
                (
                    "escrow_hold",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="disputes",
                        to="escrow.escrowhold",
                    ),
                ),
                (
                    "reported_by",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="reported_disputes",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Dispute Record",
                "verbose_name_plural": "Dispute Records",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["escrow_hold", "status"], name="dispute_hold_status_idx"
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="EscrowDiscrepancy",
            fields=[
                *_timestamps(),
                _uuid_pk(),
                (
                    "discrepancy_type",
                    models.CharField(
                        db_index=True,
                        help_text="e.g. provider_released_local_funded",
                        max_length=100,
                    ),
                ),
                ("local_status", models.CharField(max_length=30)),
                ("provider_status", models.CharField(blank=True, max_length=30)),
                (
                    "resolution",
                    models.CharField(
                        choices=[
                            ("auto_healed", "Auto Healed"),
                            ("flagged_for_review", "Flagged for Review"),
                            ("manually_resolved", "Manually Resolved"),
                        ],
                        default="flagged_for_review",
                        max_length=30,
                    ),
                ),
                ("action_taken", models.TextField(blank=True)),
                ("details", models.JSONField(blank=True, default=dict)),
                ("resolved_at", models.DateTimeField(blank=True, null=True)),
                (
                    "escrow_hold",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="discrepancies",
                        to="escrow.escrowhold",
                    ),
                ),
            ],
            options={
                "verbose_name": "Escrow Discrepancy",
                "verbose_name_plural": "Escrow Discrepancies",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["resolution", "created_at"], name="discrepancy_review_idx"
                    ),
                    models.Index(
                        fields=["escrow_hold", "discrepancy_type"],
                        name="discrepancy_hold_type_idx",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
            fields=[
                *_timestamps(),
                _uuid_pk(),
                (
                    "stripe_event_id",
                    models.CharField(
                        help_text="Provider event id; a repeat delivery hits this unique key",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "event_type",
                    models.CharField(
                        db_index=True,
                        help_text="Provider event type, used to pick the handler",
                        max_length=100,
                    ),
                ),
                (
                    "payload",
                    models.JSONField(help_text="Verified event body as delivered"),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("processed", "Processed"),
                            ("failed", "Failed"),
                            ("ignored", "Ignored"),
                        ],
                        db_index=True,
                        default="pending",
                        max_length=20,
                    ),
                ),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("error_message", models.TextField(blank=True, null=True)),
                (
                    "retry_count",
                    models.PositiveSmallIntegerField(
                        default=0, help_text="Handler runs so far, including retries"
                    ),
                ),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "created_at"], name="webhook_status_idx"
                    )
                ],
            },
        ),
    ]
