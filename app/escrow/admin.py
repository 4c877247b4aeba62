"""
Escrow admin configuration.

Holds are read-only in the admin: state changes go through EscrowService.
Operators can queue reconciliation for selected holds and close reviewed
discrepancies.
"""

from django.contrib import admin
from django.utils import timezone

from escrow.models import (
    DisputeRecord,
    EscrowDiscrepancy,
    EscrowHold,
    TransferRecord,
    WebhookEvent,
)
from escrow.state_machines import DiscrepancyResolution


class ReadOnlyAdminMixin:
    """Audit records are never added or deleted by hand."""

    def has_add_permission(self, request, obj=None) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(EscrowHold)
class EscrowHoldAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """
    Admin configuration for EscrowHold.

    Status is FSM-protected; the reconcile action queues
    escrow.tasks.reconcile_escrow_hold for each selected hold.
    """

    list_display = [
        "id",
        "campaign",
        "brand",
        "amount_display",
        "status",
        "pending_operation",
        "pending_confirmation",
        "created_at",
    ]
    list_filter = ["status", "pending_confirmation", "currency", "created_at"]
    search_fields = ["id", "campaign__title", "brand__email"]
    readonly_fields = [
        "id",
        "campaign",
        "brand",
        "gross_amount",
        "currency",
        "status",
        "metadata",
        "captured_amount",
        "captured_at",
        "refunded_amount",
        "provider_refund_id",
        "pending_operation",
        "pending_confirmation",
        "pending_idempotency_key",
        "fund_attempts",
        "last_error",
        "funded_at",
        "released_at",
        "refunded_at",
        "cancelled_at",
        "disputed_at",
        "version",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]
    actions = ["reconcile_with_provider"]

    fieldsets = (
        (None, {"fields": ("id", "campaign", "brand", "status")}),
        ("Amount", {"fields": ("gross_amount", "currency", "captured_amount", "refunded_amount")}),
        (
            "In-flight Operation",
            {
                "fields": (
                    "pending_operation",
                    "pending_confirmation",
                    "pending_idempotency_key",
                    "fund_attempts",
                    "last_error",
                ),
            },
        ),
        (
            "Timestamps",
            {
                "fields": (
                    "funded_at",
                    "captured_at",
                    "released_at",
                    "refunded_at",
                    "cancelled_at",
                    "disputed_at",
                    "created_at",
                    "updated_at",
                ),
            },
        ),
        (
            "Metadata",
            {
                "fields": ("metadata", "provider_refund_id", "version"),
                "classes": ("collapse",),
            },
        ),
    )

    def amount_display(self, obj: EscrowHold) -> str:
        return f"{obj.gross_amount} {obj.currency.upper()}"

    amount_display.short_description = "Amount"

    @admin.action(description="Reconcile selected holds with Stripe")
    def reconcile_with_provider(self, request, queryset):
        from escrow.tasks import reconcile_escrow_hold

        count = 0
        for hold_id in queryset.values_list("id", flat=True):
            reconcile_escrow_hold.delay(hold_id, actor_id=request.user.pk)
            count += 1
        self.message_user(request, f"Queued reconciliation for {count} holds.")


@admin.register(TransferRecord)
class TransferRecordAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = [
        "id",
        "escrow_hold",
        "influencer",
        "amount",
        "platform_fee",
        "provider_fee",
        "currency",
        "status",
        "created_at",
    ]
    list_filter = ["status", "currency"]
    search_fields = ["id", "escrow_hold__id", "influencer__email"]
    readonly_fields = [
        "id",
        "escrow_hold",
        "application",
        "influencer",
        "amount",
        "gross_amount",
        "platform_fee",
        "provider_fee",
        "currency",
        "reason",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]


@admin.register(DisputeRecord)
class DisputeRecordAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """Disputes are resolved by releasing or refunding the hold."""

    list_display = [
        "id",
        "escrow_hold",
        "dispute_type",
        "status",
        "resolution",
        "reported_by",
        "reported_at",
    ]
    list_filter = ["status", "dispute_type", "resolution"]
    search_fields = ["id", "escrow_hold__id", "reported_by__email"]
    readonly_fields = [
        "id",
        "escrow_hold",
        "dispute_type",
        "evidence",
        "reported_by",
        "reported_at",
        "status",
        "resolution",
        "resolved_at",
        "created_at",
        "updated_at",
    ]
    ordering = ["-reported_at"]


@admin.register(EscrowDiscrepancy)
class EscrowDiscrepancyAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    """
    Review queue for discrepancies flagged by status reads, webhooks
    and reconciliation.
    """

    list_display = [
        "id",
        "escrow_hold",
        "discrepancy_type",
        "local_status",
        "provider_status",
        "resolution",
        "created_at",
    ]
    list_filter = ["resolution", "discrepancy_type", "created_at"]
    search_fields = ["id", "escrow_hold__id", "discrepancy_type"]
    readonly_fields = [
        "id",
        "escrow_hold",
        "discrepancy_type",
        "local_status",
        "provider_status",
        "details",
        "resolution",
        "action_taken",
        "resolved_at",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    actions = ["mark_resolved"]

    @admin.action(description="Mark selected discrepancies as manually resolved")
    def mark_resolved(self, request, queryset):
        count = queryset.filter(
            resolution=DiscrepancyResolution.FLAGGED_FOR_REVIEW,
        ).update(
            resolution=DiscrepancyResolution.MANUALLY_RESOLVED,
            resolved_at=timezone.now(),
            action_taken=f"Resolved by {request.user}",
        )
        self.message_user(request, f"Marked {count} discrepancies as resolved.")


@admin.register(WebhookEvent)
class WebhookEventAdmin(ReadOnlyAdminMixin, admin.ModelAdmin):
    list_display = [
        "stripe_event_id",
        "event_type",
        "status",
        "retry_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "event_type", "created_at"]
    search_fields = ["stripe_event_id", "event_type"]
    readonly_fields = [
        "id",
        "stripe_event_id",
        "event_type",
        "payload",
        "status",
        "processed_at",
        "error_message",
        "retry_count",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]
