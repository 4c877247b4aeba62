"""
Escrow app configuration.

This app provides the campaign escrow lifecycle:
- Stripe manual-capture holds
- Fee splitting and release bookkeeping
- Dispute intake and operator-triggered reconciliation
"""

from django.apps import AppConfig


class EscrowConfig(AppConfig):
    """Configuration for the escrow application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "escrow"
    verbose_name = "Escrow"
