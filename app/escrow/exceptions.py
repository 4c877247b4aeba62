"""
Escrow-specific exceptions for campaign funding operations.

This module provides a hierarchy of exceptions for escrow operations,
covering domain validation, state conflicts and payment gateway failures.

Exception Hierarchy:
    EscrowError (base for escrow domain)
    ├── EscrowValidationError - Bad input (amount, currency, dispute type)
    ├── EscrowPermissionError - Caller does not own the campaign/hold
    ├── EscrowNotFoundError - Hold/campaign/application lookup failures
    ├── InvalidStateError - Illegal transition or lost race
    │   └── StaleRecordError - Optimistic locking conflict
    ├── PendingConfirmationError - Provider outcome unknown, awaiting probe
    └── GatewayError - Payment provider failures (typed by GatewayErrorKind)
        ├── GatewayTimeoutError - Outcome unknown (timeout / connection)
        ├── PaymentDeclinedError - Card rejected (hold stays pending_payment)
        └── RefundExceedsCapturedError - Refund larger than captured amount

Retry policy is a pure function of the error kind:

    from escrow.exceptions import GatewayErrorKind, is_retryable

    is_retryable(GatewayErrorKind.RATE_LIMITED)  # True
    is_retryable(GatewayErrorKind.DECLINED)      # False

Usage:
    from escrow.exceptions import InvalidStateError

    raise InvalidStateError(
        "Escrow hold is not funded",
        details={"escrow_id": hold.pk, "current_status": hold.status},
    )
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Escrow Domain Exceptions
# =============================================================================


class EscrowError(BaseApplicationError):
    """
    Base exception for escrow domain failures that fit no narrower class.

    Example:
        try:
            service.release_funds(...)
        except EscrowError as e:
            logger.error(f"Escrow operation failed: {e}")
    """

    default_error_code: str = "ESCROW_ERROR"


class EscrowValidationError(ValidationError):
    """
    Raised when escrow input validation fails.

    Use for:
    - Non-positive or malformed amounts
    - Unsupported currency
    - Release/refund larger than the hold
    - Unknown dispute type

    Always raised before any provider call.
    """

    default_error_code: str = "VALIDATION_ERROR"


class EscrowPermissionError(PermissionDeniedError):
    """Raised when the caller does not own the campaign or hold."""

    default_error_code: str = "PERMISSION_DENIED"


class EscrowNotFoundError(NotFoundError):
    """
    Raised when an escrow hold cannot be found.

    Campaign and application lookups reuse this class with their own
    error_code (CAMPAIGN_NOT_FOUND, APPLICATION_NOT_FOUND).
    """

    default_error_code: str = "ESCROW_NOT_FOUND"


class InvalidStateError(ConflictError):
    """
    Raised when an operation is illegal for the hold's current status.

    Also raised when a concurrent operation won a race for the same
    hold or campaign. HTTP 409.

    Example:
        if hold.status != EscrowStatus.FUNDED:
            raise InvalidStateError(
                f"Cannot dispute escrow in '{hold.status}' status",
                details={"escrow_id": hold.pk, "current_status": hold.status},
            )
    """

    default_error_code: str = "INVALID_STATE"


class StaleRecordError(InvalidStateError):
    """
    Raised when optimistic locking detects concurrent modification.

    The record was modified by another process between read and update.
    Reported to clients as INVALID_STATE.

    Attributes:
        details: Contains pk, expected_version, and current_version
    """


class PendingConfirmationError(EscrowError):
    """
    Raised when a provider call had an ambiguous outcome.

    The follow-up status probe could not confirm that the provider
    applied the operation. The hold keeps its claim so only the same
    operation may be retried; reconciliation settles it otherwise.
    HTTP 202.
    """

    default_error_code: str = "PENDING_CONFIRMATION"


# =============================================================================
# Gateway Exceptions
# =============================================================================


class GatewayErrorKind(str, Enum):
    """
    Typed classification of payment provider failures.

    Drives retry decisions (is_retryable) and ambiguity handling
    (is_ambiguous) without inspecting error messages.
    """

    DECLINED = "declined"
    INVALID_REQUEST = "invalid_request"
    INVALID_STATE = "invalid_state"
    REFUND_EXCEEDS_CAPTURED = "refund_exceeds_captured"
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"
    AUTHENTICATION = "authentication"
    UNKNOWN = "unknown"


RETRYABLE_KINDS = frozenset(
    {GatewayErrorKind.RATE_LIMITED, GatewayErrorKind.UNAVAILABLE, GatewayErrorKind.TIMEOUT}
)

# The provider may or may not have applied the request
AMBIGUOUS_KINDS = frozenset(
    {GatewayErrorKind.TIMEOUT, GatewayErrorKind.UNAVAILABLE, GatewayErrorKind.UNKNOWN}
)


def is_retryable(kind: GatewayErrorKind) -> bool:
    """
    Check if a gateway failure kind is transient.

    Use this in Celery tasks to decide whether to retry:

        except GatewayError as e:
            if is_retryable(e.kind):
                raise self.retry(exc=e, countdown=backoff_delay(self.request.retries))
            raise
    """
    return kind in RETRYABLE_KINDS


def is_ambiguous(kind: GatewayErrorKind) -> bool:
    """Check if a failure leaves the provider-side outcome unknown."""
    return kind in AMBIGUOUS_KINDS


class GatewayError(ExternalServiceError):
    """
    Base exception for payment provider failures.

    Attributes:
        kind: GatewayErrorKind classification
        provider_code: Provider's own error code, if any

    Example:
        try:
            gateway.capture_hold(hold_id, idempotency_key=key)
        except GatewayError as e:
            if e.retryable:
                schedule_retry()
    """

    default_error_code: str = "GATEWAY_ERROR"
    default_kind: GatewayErrorKind = GatewayErrorKind.UNKNOWN

    def __init__(
        self,
        message: str,
        kind: GatewayErrorKind | None = None,
        provider_code: str | None = None,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.kind = kind or self.default_kind
        self.provider_code = provider_code
        details = dict(details or {})
        details["kind"] = self.kind.value
        if provider_code:
            details["provider_code"] = provider_code
        super().__init__(message, error_code=error_code, details=details)

    @property
    def retryable(self) -> bool:
        return is_retryable(self.kind)

    @property
    def ambiguous(self) -> bool:
        return is_ambiguous(self.kind)


class GatewayTimeoutError(GatewayError):
    """
    Provider call timed out or the connection dropped.

    IMPORTANT: The operation may have succeeded on Stripe's side.
    Callers must probe get_status before assuming either outcome.
    """

    default_error_code: str = "GATEWAY_TIMEOUT"
    default_kind: GatewayErrorKind = GatewayErrorKind.TIMEOUT


class PaymentDeclinedError(GatewayError):
    """
    Card was declined by the issuing bank.

    The hold stays in pending_payment; the brand may retry with a
    different payment method.
    """

    default_error_code: str = "PAYMENT_DECLINED"
    default_kind: GatewayErrorKind = GatewayErrorKind.DECLINED

    def __init__(
        self,
        message: str,
        decline_code: str | None = None,
        provider_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = dict(details or {})
        if decline_code:
            details["decline_code"] = decline_code
        super().__init__(message, provider_code=provider_code, details=details)
        self.decline_code = decline_code


class RefundExceedsCapturedError(GatewayError):
    """Refund amount is larger than what the provider captured."""

    default_error_code: str = "REFUND_EXCEEDS_CAPTURED"
    default_kind: GatewayErrorKind = GatewayErrorKind.REFUND_EXCEEDS_CAPTURED


__all__ = [
    "EscrowError",
    "EscrowNotFoundError",
    "EscrowPermissionError",
    "EscrowValidationError",
    "GatewayError",
    "GatewayErrorKind",
    "GatewayTimeoutError",
    "InvalidStateError",
    "PaymentDeclinedError",
    "PendingConfirmationError",
    "RefundExceedsCapturedError",
    "StaleRecordError",
    "is_ambiguous",
    "is_retryable",
]
