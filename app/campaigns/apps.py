"""
Campaigns app configuration.

Holds the Campaign and Application records that escrow transitions
are mirrored onto. Generic CRUD for these records lives upstream;
this app only owns the schema.
"""

from django.apps import AppConfig


class CampaignsConfig(AppConfig):
    """Configuration for the campaigns application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "campaigns"
    verbose_name = "Campaigns"
