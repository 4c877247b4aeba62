"""
Django admin configuration for campaign models.

Payment fields are read-only here: they mirror escrow state and are
maintained by the escrow entity sync layer.
"""

from django.contrib import admin

from campaigns.models import Application, Campaign


class ApplicationInline(admin.TabularInline):
    model = Application
    extra = 0
    fields = ("influencer", "status", "payment_status", "paid_amount", "completed_at")
    readonly_fields = ("payment_status", "paid_amount", "completed_at")
    raw_id_fields = ("influencer",)


@admin.register(Campaign)
class CampaignAdmin(admin.ModelAdmin):
    list_display = (
        "title",
        "brand",
        "status",
        "payment_status",
        "budget",
        "currency",
        "created_at",
    )
    list_filter = ("status", "payment_status", "currency")
    search_fields = ("title", "brand__email", "escrow_id")
    raw_id_fields = ("brand",)
    readonly_fields = (
        "escrow_id",
        "payment_status",
        "funded_at",
        "refunded_at",
        "created_at",
        "updated_at",
    )
    inlines = [ApplicationInline]


@admin.register(Application)
class ApplicationAdmin(admin.ModelAdmin):
    list_display = (
        "id",
        "campaign",
        "influencer",
        "status",
        "payment_status",
        "paid_amount",
    )
    list_filter = ("status", "payment_status")
    search_fields = ("campaign__title", "influencer__email")
    raw_id_fields = ("campaign", "influencer")
    readonly_fields = ("payment_status", "paid_amount", "completed_at")
