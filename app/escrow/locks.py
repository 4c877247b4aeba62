"""
Optimistic locking for escrow holds.

check_version combines a version check with select_for_update: the
caller states which version it last read, and the update proceeds only
if nobody changed the row in the meantime.

Usage:
    from escrow.locks import check_version

    with transaction.atomic():
        hold = check_version(EscrowHold, escrow_id, expected_version=3)
        hold.fund()
        hold.save()  # Version auto-increments

Note:
    Provider calls are guarded separately by the claim recorded on
    EscrowHold.pending_operation (see escrow.services.claims).
"""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

from django.db import models, transaction

from escrow.exceptions import EscrowNotFoundError, StaleRecordError

if TYPE_CHECKING:
    from typing import Any

T = TypeVar("T", bound=models.Model)


def check_version(
    model_class: type[T],
    pk: Any,
    expected_version: int,
) -> T:
    """
    Atomically check version and lock a record for update.

    Args:
        model_class: Django model class (must have 'version' field)
        pk: Primary key of the record
        expected_version: Version the caller expects

    Returns:
        The locked model instance (within a transaction)

    Raises:
        StaleRecordError: If version doesn't match (concurrent modification)
        EscrowNotFoundError: If record doesn't exist

    Note:
        Must be called within a transaction context. The lock is held
        until the transaction commits or rolls back.
    """
    with transaction.atomic():
        instance = (
            model_class.objects.select_for_update()
            .filter(pk=pk, version=expected_version)
            .first()
        )

        if instance is None:
            model_name = model_class.__name__
            current_version = (
                model_class.objects.filter(pk=pk)
                .values_list("version", flat=True)
                .first()
            )
            if current_version is None:
                raise EscrowNotFoundError(
                    f"{model_name} {pk} not found",
                    details={"pk": str(pk)},
                )

            raise StaleRecordError(
                f"{model_name} {pk} has been modified "
                f"(expected version {expected_version}, current {current_version})",
                details={
                    "pk": str(pk),
                    "expected_version": expected_version,
                    "current_version": current_version,
                },
            )

        return instance


__all__ = [
    "check_version",
]
