"""
Celery configuration for the Django application.

Celery runs the escrow background work:
- Stripe webhook processing (escrow.tasks.process_webhook_event)
- Operator-requested reconciliation (escrow.tasks.reconcile_escrow_hold)

This configuration uses Redis as both the message broker and result backend.
Tasks are auto-discovered from all installed Django apps.

Usage:
    from escrow.tasks import reconcile_escrow_hold

    reconcile_escrow_hold.delay(hold.id, actor_id=user.pk)

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Looks for a tasks.py module in each installed app
app.autodiscover_tasks()
