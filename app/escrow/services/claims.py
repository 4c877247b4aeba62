"""
Claim and commit helpers for escrow hold transitions.

Before any provider call an operation claims the hold: a compare-and-set
on (pk, version, status) that records pending_operation. A concurrent
operation that read the same version loses the race and is refused.

A claim ends in one of three ways:
- commit_transition: the FSM transition is applied, the claim is cleared
  and the side effects are handed to the entity sync layer, atomically
- release_claim: the provider call failed cleanly, nothing changed
- mark_pending_confirmation: the provider outcome is unknown; the claim
  stays so that only the same operation may retry (with the same
  idempotency key) until reconciliation settles it

Usage:
    hold = claim_hold(hold, EscrowOperation.FUND)
    try:
        gateway.confirm_hold(hold.pk, pm, idempotency_key=hold.pending_idempotency_key)
    except PaymentDeclinedError as e:
        release_claim(hold, error=str(e))
        raise
    hold, transition = commit_transition(hold, EscrowOperation.FUND, lambda h: h.fund(), effects, sync)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from django_fsm import TransitionNotAllowed

from escrow.adapters import IdempotencyKeyGenerator
from escrow.exceptions import InvalidStateError, StaleRecordError
from escrow.locks import check_version
from escrow.models import EscrowHold
from escrow.services.transitions import EscrowTransition
from escrow.state_machines import EscrowOperation

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from decimal import Decimal

    from escrow.services.entity_sync import EntitySyncService
    from escrow.services.transitions import SideEffect

logger = logging.getLogger(__name__)


def _stale(hold: EscrowHold, operation: str) -> StaleRecordError:
    return StaleRecordError(
        "Escrow hold was modified by a concurrent operation",
        details={
            "escrow_id": hold.pk,
            "operation": operation,
            "expected_version": hold.version,
        },
    )


def claim_hold(hold: EscrowHold, operation: str) -> EscrowHold:
    """
    Claim a hold for a provider-facing operation.

    Re-claiming is allowed only for the same operation after an
    ambiguous outcome; the stored idempotency key is then reused so
    the provider deduplicates the retry.

    Returns:
        Fresh EscrowHold carrying the claim

    Raises:
        InvalidStateError: Another operation is in flight on the hold
        StaleRecordError: The hold changed since it was read
    """
    if hold.pending_operation:
        retrying = hold.pending_operation == operation and hold.pending_confirmation
        if not retrying:
            raise InvalidStateError(
                f"Escrow hold has a '{hold.pending_operation}' operation in progress",
                details={
                    "escrow_id": hold.pk,
                    "pending_operation": hold.pending_operation,
                    "pending_confirmation": hold.pending_confirmation,
                },
            )
        idempotency_key = hold.pending_idempotency_key
    else:
        idempotency_key = IdempotencyKeyGenerator.generate(
            operation=f"{operation}_hold",
            entity_id=hold.pk,
            attempt=hold.version,
        )

    updates = {
        "pending_operation": operation,
        "pending_confirmation": False,
        "pending_idempotency_key": idempotency_key,
        "version": F("version") + 1,
        "updated_at": timezone.now(),
    }
    if operation == EscrowOperation.FUND and idempotency_key != hold.pending_idempotency_key:
        updates["fund_attempts"] = F("fund_attempts") + 1

    rows = EscrowHold.objects.filter(
        pk=hold.pk,
        version=hold.version,
        status=hold.status,
    ).update(**updates)
    if rows == 0:
        raise _stale(hold, operation)

    logger.info(
        "Claimed escrow hold",
        extra={
            "escrow_id": hold.pk,
            "operation": operation,
            "idempotency_key": idempotency_key,
        },
    )
    return EscrowHold.objects.get(pk=hold.pk)


def release_claim(hold: EscrowHold, error: str | None = None) -> EscrowHold:
    """
    Drop a claim after a clean provider failure.

    Raises:
        StaleRecordError: The hold changed since it was claimed
    """
    rows = EscrowHold.objects.filter(pk=hold.pk, version=hold.version).update(
        pending_operation="",
        pending_confirmation=False,
        pending_idempotency_key="",
        last_error=error,
        version=F("version") + 1,
        updated_at=timezone.now(),
    )
    if rows == 0:
        raise _stale(hold, hold.pending_operation)
    return EscrowHold.objects.get(pk=hold.pk)


def mark_pending_confirmation(hold: EscrowHold, error: str | None = None) -> EscrowHold:
    """Keep the claim, flagging that its outcome is unknown."""
    rows = EscrowHold.objects.filter(pk=hold.pk, version=hold.version).update(
        pending_confirmation=True,
        last_error=error,
        version=F("version") + 1,
        updated_at=timezone.now(),
    )
    if rows == 0:
        raise _stale(hold, hold.pending_operation)

    logger.warning(
        "Escrow operation pending confirmation",
        extra={
            "escrow_id": hold.pk,
            "operation": hold.pending_operation,
            "error": error,
        },
    )
    return EscrowHold.objects.get(pk=hold.pk)


def record_capture(hold: EscrowHold, captured_amount: Decimal) -> EscrowHold:
    """
    Persist a successful provider capture immediately.

    Capture is the one irreversible step; recording it before any
    bookkeeping lets a retried release skip the capture.
    """
    rows = EscrowHold.objects.filter(
        pk=hold.pk,
        version=hold.version,
        captured_at__isnull=True,
    ).update(
        captured_amount=captured_amount,
        captured_at=timezone.now(),
        version=F("version") + 1,
        updated_at=timezone.now(),
    )
    if rows == 0:
        raise _stale(hold, hold.pending_operation)

    logger.info(
        "Recorded provider capture",
        extra={"escrow_id": hold.pk, "captured_amount": str(captured_amount)},
    )
    return EscrowHold.objects.get(pk=hold.pk)


def commit_transition(
    hold: EscrowHold,
    operation: str,
    apply: Callable[[EscrowHold], None],
    build_effects: Callable[[EscrowHold], Iterable[SideEffect]],
    sync: EntitySyncService,
) -> tuple[EscrowHold, EscrowTransition]:
    """
    Apply an FSM transition, clear the claim and sync derived records.

    Everything happens in one transaction: if the entity sync layer
    fails, the hold transition is rolled back as well.

    Args:
        hold: Hold as last seen by the caller (version is checked)
        operation: EscrowOperation being completed
        apply: Calls the FSM transition method on the locked hold
        build_effects: Builds side effects from the transitioned hold
        sync: Entity sync layer

    Raises:
        StaleRecordError: The hold changed since it was read
        InvalidStateError: The FSM refuses the transition
    """
    with transaction.atomic():
        locked = check_version(EscrowHold, hold.pk, hold.version)
        from_status = locked.status

        try:
            apply(locked)
        except TransitionNotAllowed:
            raise InvalidStateError(
                f"Cannot {operation} escrow in '{from_status}' status",
                details={"escrow_id": locked.pk, "current_status": from_status},
            )

        locked.pending_operation = ""
        locked.pending_confirmation = False
        locked.pending_idempotency_key = ""
        locked.last_error = None
        locked.save()

        transition = EscrowTransition(
            escrow_id=locked.pk,
            operation=operation,
            from_status=from_status,
            to_status=locked.status,
            effects=tuple(build_effects(locked)),
        )
        sync.apply(transition)

    logger.info(
        "Committed escrow transition",
        extra={
            "escrow_id": locked.pk,
            "operation": operation,
            "from_status": from_status,
            "to_status": locked.status,
        },
    )
    return locked, transition
