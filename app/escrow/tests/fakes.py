"""
In-memory payment gateway for escrow tests.

FakeEscrowGateway keeps PaymentIntent-like state per hold and mirrors
the StripeEscrowGateway interface, so EscrowService runs unchanged
against it.

Failure injection:
    gateway.fail_next("capture_hold", GatewayTimeoutError("timed out"))
        -> the call raises without touching provider state
    gateway.fail_next("capture_hold", GatewayTimeoutError("timed out"), applied=True)
        -> provider state changes first, then the call raises
           (a timeout after the provider already captured)

Usage:
    gateway = FakeEscrowGateway()
    service = EscrowService(gateway=gateway)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any

from escrow.adapters import (
    CancelResult,
    CaptureResult,
    ConfirmResult,
    HoldResult,
    ProviderStatus,
    RefundResult,
    map_provider_status,
)
from escrow.exceptions import (
    InvalidStateError,
    PaymentDeclinedError,
    RefundExceedsCapturedError,
)

DECLINED_PAYMENT_METHOD = "pm_card_chargeDeclined"
THREE_D_SECURE_PAYMENT_METHOD = "pm_card_threeDSecure2Required"


@dataclass
class FakeIntent:
    id: str
    amount: Decimal
    currency: str
    metadata: dict[str, str]
    status: str = "requires_payment_method"
    captured_amount: Decimal = Decimal("0")
    refunded_amount: Decimal = Decimal("0")

    @property
    def client_secret(self) -> str:
        return f"{self.id}_secret_test"


@dataclass
class InjectedFailure:
    error: Exception
    applied: bool = False


@dataclass
class FakeEscrowGateway:
    intents: dict[str, FakeIntent] = field(default_factory=dict)
    calls: list[tuple[str, dict[str, Any]]] = field(default_factory=list)
    failures: dict[str, list[InjectedFailure]] = field(default_factory=dict)
    created_keys: dict[str, str] = field(default_factory=dict)

    # =========================================================================
    # Test helpers
    # =========================================================================

    def fail_next(self, operation: str, error: Exception, applied: bool = False) -> None:
        self.failures.setdefault(operation, []).append(InjectedFailure(error, applied))

    def calls_to(self, operation: str) -> list[dict[str, Any]]:
        return [kwargs for name, kwargs in self.calls if name == operation]

    def set_status(self, hold_id: str, raw_status: str, **changes) -> None:
        """Move a hold at the provider without going through the service."""
        intent = self.intents[hold_id]
        intent.status = raw_status
        for name, value in changes.items():
            setattr(intent, name, value)

    def _start(self, operation: str, **kwargs) -> InjectedFailure | None:
        self.calls.append((operation, kwargs))
        pending = self.failures.get(operation)
        failure = pending.pop(0) if pending else None
        if failure is not None and not failure.applied:
            raise failure.error
        return failure

    @staticmethod
    def _finish(failure: InjectedFailure | None) -> None:
        if failure is not None:
            raise failure.error

    def _intent(self, hold_id: str) -> FakeIntent:
        if hold_id not in self.intents:
            raise InvalidStateError(f"No such payment_intent: {hold_id}")
        return self.intents[hold_id]

    # =========================================================================
    # Gateway interface
    # =========================================================================

    def create_hold(self, amount, currency, metadata, idempotency_key) -> HoldResult:
        failure = self._start(
            "create_hold",
            amount=amount,
            currency=currency,
            metadata=metadata,
            idempotency_key=idempotency_key,
        )
        hold_id = self.created_keys.get(idempotency_key)
        if hold_id is None:
            hold_id = f"pi_fake_{len(self.intents) + 1}"
            self.created_keys[idempotency_key] = hold_id
            self.intents[hold_id] = FakeIntent(
                id=hold_id,
                amount=amount,
                currency=currency,
                metadata={key: str(value) for key, value in metadata.items()},
            )
        intent = self.intents[hold_id]
        self._finish(failure)
        return HoldResult(
            hold_id=intent.id,
            client_token=intent.client_secret,
            status=map_provider_status(intent.status),
            raw_status=intent.status,
            amount=intent.amount,
            currency=intent.currency,
        )

    def confirm_hold(self, hold_id, payment_method_ref, idempotency_key) -> ConfirmResult:
        failure = self._start(
            "confirm_hold",
            hold_id=hold_id,
            payment_method_ref=payment_method_ref,
            idempotency_key=idempotency_key,
        )
        intent = self._intent(hold_id)
        if payment_method_ref == DECLINED_PAYMENT_METHOD:
            raise PaymentDeclinedError(
                "Your card was declined.",
                decline_code="generic_decline",
                provider_code="card_declined",
            )
        if payment_method_ref == THREE_D_SECURE_PAYMENT_METHOD:
            intent.status = "requires_action"
        else:
            intent.status = "requires_capture"
        self._finish(failure)
        return ConfirmResult(
            hold_id=intent.id,
            status=map_provider_status(intent.status),
            raw_status=intent.status,
            amount=intent.amount,
            requires_action=intent.status == "requires_action",
            client_token=intent.client_secret,
        )

    def capture_hold(self, hold_id, currency, idempotency_key, amount=None) -> CaptureResult:
        failure = self._start(
            "capture_hold",
            hold_id=hold_id,
            currency=currency,
            idempotency_key=idempotency_key,
            amount=amount,
        )
        intent = self._intent(hold_id)
        if intent.status != "requires_capture":
            raise InvalidStateError(
                "This PaymentIntent could not be captured",
                details={"provider_code": "payment_intent_unexpected_state"},
            )
        intent.captured_amount = amount if amount is not None else intent.amount
        intent.status = "succeeded"
        self._finish(failure)
        return CaptureResult(
            hold_id=intent.id,
            captured_amount=intent.captured_amount,
            status=map_provider_status(intent.status),
        )

    def cancel_hold(self, hold_id, idempotency_key) -> CancelResult:
        failure = self._start("cancel_hold", hold_id=hold_id, idempotency_key=idempotency_key)
        intent = self._intent(hold_id)
        if intent.status == "succeeded":
            raise InvalidStateError(
                "This PaymentIntent could not be canceled",
                details={"provider_code": "payment_intent_unexpected_state"},
            )
        intent.status = "canceled"
        self._finish(failure)
        return CancelResult(hold_id=intent.id, status=map_provider_status(intent.status))

    def refund(self, hold_id, amount, currency, reason, idempotency_key) -> RefundResult:
        failure = self._start(
            "refund",
            hold_id=hold_id,
            amount=amount,
            currency=currency,
            reason=reason,
            idempotency_key=idempotency_key,
        )
        intent = self._intent(hold_id)
        if amount > intent.captured_amount - intent.refunded_amount:
            raise RefundExceedsCapturedError("Refund amount exceeds the captured amount")
        intent.refunded_amount += amount
        self._finish(failure)
        return RefundResult(
            refund_id=f"re_fake_{len(self.calls_to('refund'))}",
            hold_id=hold_id,
            amount=amount,
            status="succeeded",
        )

    def get_status(self, hold_id) -> ProviderStatus:
        failure = self._start("get_status", hold_id=hold_id)
        intent = self._intent(hold_id)
        self._finish(failure)
        return ProviderStatus(
            hold_id=intent.id,
            status=map_provider_status(intent.status),
            raw_status=intent.status,
            amount=intent.amount,
            captured_amount=intent.captured_amount,
            refunded_amount=intent.refunded_amount,
            currency=intent.currency,
            metadata=dict(intent.metadata),
        )
