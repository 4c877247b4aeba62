"""
Model mixins providing reusable functionality for Django models.

Available Mixins:
    UUIDPrimaryKeyMixin: Use UUID as primary key
    VersionedMixin: Optimistic locking version counter

Usage:
    from core.models import BaseModel
    from core.model_mixins import UUIDPrimaryKeyMixin, VersionedMixin

    class DisputeRecord(UUIDPrimaryKeyMixin, BaseModel):
        ...

    class EscrowHold(VersionedMixin, BaseModel):
        ...

Note:
    - Always list mixins before BaseModel in inheritance
    - Mixins are abstract and don't create database tables
"""

from __future__ import annotations

import uuid

from django.db import models
from django.db.models import F


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use UUID as primary key instead of auto-increment integer.

    Fields:
        id: UUIDField as primary key (auto-generated)
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True


class VersionedMixin(models.Model):
    """
    Version counter for optimistic locking.

    Every save() of an existing row increments the version atomically
    in the database, so a writer holding a stale copy can detect that
    someone else changed the row in the meantime.

    Works with models whose primary key is assigned by the caller
    (e.g. an identifier issued by an external provider): new rows are
    detected through _state.adding rather than pk presence.

    Fields:
        version: Incremented on every update

    Usage:
        rows = Model.objects.filter(pk=pk, version=seen).update(
            field=value, version=F("version") + 1
        )
        if rows == 0:
            ...  # someone else won the race
    """

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        """Save with version auto-increment on update."""
        is_update = not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])
