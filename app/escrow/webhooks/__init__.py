"""
Stripe webhook handling for escrow holds.

Webhooks are verified, stored idempotently, and processed asynchronously
via Celery tasks.
"""

from escrow.webhooks.handlers import dispatch_webhook, register_handler
from escrow.webhooks.views import stripe_webhook

__all__ = [
    "dispatch_webhook",
    "register_handler",
    "stripe_webhook",
]
