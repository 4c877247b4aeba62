"""
Stripe gateway for escrow holds.

This module provides the StripeEscrowGateway class which encapsulates
every Stripe call the escrow lifecycle makes. An escrow hold is a
PaymentIntent created with capture_method="manual": confirming it
authorizes the brand's card, capturing it moves the money, cancelling
it voids the authorization.

Features:
- Configurable timeouts on all API calls
- Error translation to typed escrow exceptions (GatewayErrorKind)
- Structured logging with timing metrics
- Idempotency keys on every mutating call
- Deterministic mapping of raw PaymentIntent statuses

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_WEBHOOK_SECRET: Webhook signing secret
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- STRIPE_MAX_RETRIES: Network retries made by the Stripe client (default: 0)

Usage:
    from escrow.adapters import IdempotencyKeyGenerator, StripeEscrowGateway

    gateway = StripeEscrowGateway()
    hold = gateway.create_hold(
        amount=Decimal("1000.00"),
        currency="usd",
        metadata={"campaign_id": str(campaign.id)},
        idempotency_key=IdempotencyKeyGenerator.generate("create_hold", campaign.id),
    )
"""

from __future__ import annotations

import hashlib
import logging
import random
import time
import uuid
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING

import stripe
from django.conf import settings

from core.exceptions import BaseApplicationError

from escrow.exceptions import (
    EscrowValidationError,
    GatewayError,
    GatewayErrorKind,
    GatewayTimeoutError,
    InvalidStateError,
    PaymentDeclinedError,
    RefundExceedsCapturedError,
)
from escrow.fees import from_minor_units, to_minor_units
from escrow.state_machines import ProviderHoldStatus

if TYPE_CHECKING:
    from collections.abc import Callable
    from typing import Any


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class HoldResult:
    """
    Result of creating a hold.

    Attributes:
        hold_id: PaymentIntent ID (pi_xxx), used as the escrow id
        client_token: client_secret for client-side confirmation
        status: Mapped provider status
        raw_status: PaymentIntent status as returned by Stripe
        amount: Authorized amount in major units
        currency: Currency code
    """

    hold_id: str
    client_token: str | None
    status: str
    raw_status: str
    amount: Decimal
    currency: str


@dataclass
class ConfirmResult:
    """
    Result of confirming a hold with a payment method.

    requires_action is True when the card needs 3-D Secure; the hold
    stays pending_payment and client_token is returned for the browser.
    """

    hold_id: str
    status: str
    raw_status: str
    amount: Decimal
    requires_action: bool = False
    client_token: str | None = None


@dataclass
class CaptureResult:
    hold_id: str
    captured_amount: Decimal
    status: str


@dataclass
class CancelResult:
    hold_id: str
    status: str


@dataclass
class RefundResult:
    """
    Result of refunding a captured hold.

    Attributes:
        refund_id: Refund ID (re_xxx)
        amount: Refunded amount in major units
        status: Refund status (succeeded, pending, failed)
    """

    refund_id: str
    hold_id: str
    amount: Decimal
    status: str


@dataclass
class ProviderStatus:
    """
    Provider's view of a hold, used as the recovery probe.

    status is always one of ProviderHoldStatus; raw_status keeps the
    unmapped PaymentIntent status for logs and discrepancy records.
    """

    hold_id: str
    status: str
    raw_status: str
    amount: Decimal
    captured_amount: Decimal
    refunded_amount: Decimal
    currency: str
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def is_captured(self) -> bool:
        return self.captured_amount > 0


# =============================================================================
# Status Mapping
# =============================================================================


PROVIDER_STATUS_MAP: dict[str, str] = {
    "requires_payment_method": ProviderHoldStatus.PENDING_PAYMENT,
    "requires_confirmation": ProviderHoldStatus.PENDING_PAYMENT,
    "requires_action": ProviderHoldStatus.PENDING_PAYMENT,
    "processing": ProviderHoldStatus.PROCESSING,
    "requires_capture": ProviderHoldStatus.FUNDED,
    "succeeded": ProviderHoldStatus.RELEASED,
    "canceled": ProviderHoldStatus.CANCELLED,
}


def map_provider_status(raw_status: str | None) -> str:
    """
    Map a raw PaymentIntent status to a ProviderHoldStatus value.

    Unrecognised or missing statuses map to UNKNOWN; never raises.
    """
    return PROVIDER_STATUS_MAP.get(raw_status or "", ProviderHoldStatus.UNKNOWN)


# Stripe error codes meaning "the intent is not in a state that allows this call"
UNEXPECTED_STATE_CODES = frozenset({"payment_intent_unexpected_state"})

# Stripe error codes meaning "refund larger than what was charged"
REFUND_TOO_LARGE_CODES = frozenset({"amount_too_large", "charge_exceeds_source_limit"})


# =============================================================================
# Idempotency Key Generator
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for Stripe API calls.

    Format: "{operation}:{entity_id}:{attempt}:{hash}"

    The same (operation, entity, attempt) always produces the same key,
    so a retried call after a timeout is deduplicated by Stripe. A new
    attempt number produces a new key (e.g. confirming with another card).

    Example:
        key = IdempotencyKeyGenerator.generate(
            operation="capture_hold",
            entity_id="pi_123",
            attempt=1,
        )
        # Result: "capture_hold:pi_123:1:a1b2c3d4"
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int = 1,
    ) -> str:
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]

        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


# =============================================================================
# Retry Logic Helpers
# =============================================================================


def backoff_delay(attempt: int, base: float = 1.0, max_delay: float = 60.0) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Jitter prevents thundering herd when multiple workers retry simultaneously.

    Args:
        attempt: Current attempt number (0-indexed)
        base: Base delay in seconds (default: 1.0)
        max_delay: Maximum delay in seconds (default: 60.0)

    Returns:
        Delay in seconds with jitter (0-25% of calculated delay)

    Example:
        # Attempt 0: 1.0 - 1.25 seconds
        # Attempt 2: 4.0 - 5.0 seconds
        delay = backoff_delay(attempt=2)
    """
    delay = min(base * (2**attempt), max_delay)
    jitter = delay * random.uniform(0, 0.25)
    return delay + jitter


# =============================================================================
# Stripe Gateway
# =============================================================================


class StripeEscrowGateway:
    """
    Gateway for escrow hold operations on Stripe.

    Constructed explicitly and injected into EscrowService so tests can
    substitute an in-memory fake. Settings supply the defaults.

    Usage:
        gateway = StripeEscrowGateway()
        status = gateway.get_status("pi_123")
    """

    def __init__(
        self,
        api_key: str | None = None,
        webhook_secret: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.STRIPE_SECRET_KEY
        self.webhook_secret = (
            webhook_secret if webhook_secret is not None else settings.STRIPE_WEBHOOK_SECRET
        )
        self.timeout = (
            timeout if timeout is not None else getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        )
        self.max_retries = (
            max_retries if max_retries is not None else getattr(settings, "STRIPE_MAX_RETRIES", 0)
        )

    # =========================================================================
    # Configuration
    # =========================================================================

    def _configure_stripe(self) -> None:
        """Configure Stripe client with API key and timeout."""
        stripe.api_key = self.api_key
        stripe.max_network_retries = self.max_retries
        stripe.default_http_client = stripe.RequestsClient(timeout=self.timeout)

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    def _execute(self, log_context: dict[str, Any], call: Callable[[], Any]) -> Any:
        """
        Run one Stripe call with timing logs and error translation.

        Raises:
            GatewayError (or subclass) / InvalidStateError on provider failure
        """
        self._configure_stripe()
        logger = self.get_logger()

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            result = call()
        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            self._handle_stripe_error(e, log_context, duration_ms)
            raise

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "Stripe operation completed",
            extra={**log_context, "duration_ms": duration_ms},
        )
        return result

    # =========================================================================
    # Hold Operations
    # =========================================================================

    def create_hold(
        self,
        amount: Decimal,
        currency: str,
        metadata: dict[str, Any],
        idempotency_key: str,
    ) -> HoldResult:
        """
        Create a manual-capture PaymentIntent for the campaign budget.

        Raises:
            GatewayError: Stripe rejected the request
            GatewayTimeoutError: Outcome unknown
        """
        log_context = {
            "operation": "create_hold",
            "amount": str(amount),
            "currency": currency,
            "idempotency_key": idempotency_key,
        }

        intent = self._execute(
            log_context,
            lambda: stripe.PaymentIntent.create(
                amount=to_minor_units(amount, currency),
                currency=currency,
                capture_method="manual",
                payment_method_types=["card"],
                metadata={key: str(value) for key, value in metadata.items()},
                idempotency_key=idempotency_key,
            ),
        )

        return HoldResult(
            hold_id=intent.id,
            client_token=intent.client_secret,
            status=map_provider_status(intent.status),
            raw_status=intent.status,
            amount=from_minor_units(intent.amount, currency),
            currency=intent.currency,
        )

    def confirm_hold(
        self,
        hold_id: str,
        payment_method_ref: str,
        idempotency_key: str,
    ) -> ConfirmResult:
        """
        Confirm the hold with the brand's payment method.

        Returns status "funded" once the authorization succeeded, or
        "pending_payment" with requires_action=True for 3-D Secure.

        Raises:
            PaymentDeclinedError: Card was declined
            GatewayError / GatewayTimeoutError: Provider failure
        """
        log_context = {
            "operation": "confirm_hold",
            "hold_id": hold_id,
            "idempotency_key": idempotency_key,
        }

        intent = self._execute(
            log_context,
            lambda: stripe.PaymentIntent.confirm(
                hold_id,
                payment_method=payment_method_ref,
                idempotency_key=idempotency_key,
            ),
        )

        if intent.status == "requires_payment_method":
            # Stripe reports some declines by resetting the intent instead of raising
            last_error = intent.last_payment_error or {}
            raise PaymentDeclinedError(
                "Payment method was declined. Retry with a different payment method.",
                decline_code=last_error.get("decline_code"),
                provider_code=last_error.get("code"),
                details={"hold_id": hold_id},
            )

        return ConfirmResult(
            hold_id=intent.id,
            status=map_provider_status(intent.status),
            raw_status=intent.status,
            amount=from_minor_units(intent.amount, intent.currency),
            requires_action=intent.status == "requires_action",
            client_token=intent.client_secret,
        )

    def capture_hold(
        self,
        hold_id: str,
        currency: str,
        idempotency_key: str,
        amount: Decimal | None = None,
    ) -> CaptureResult:
        """
        Capture an authorized hold, fully or partially.

        Raises:
            InvalidStateError: Hold is not capturable
            GatewayError / GatewayTimeoutError: Provider failure
        """
        log_context = {
            "operation": "capture_hold",
            "hold_id": hold_id,
            "amount": str(amount) if amount is not None else None,
            "idempotency_key": idempotency_key,
        }

        capture_params: dict[str, Any] = {}
        if amount is not None:
            capture_params["amount_to_capture"] = to_minor_units(amount, currency)

        intent = self._execute(
            log_context,
            lambda: stripe.PaymentIntent.capture(
                hold_id,
                idempotency_key=idempotency_key,
                **capture_params,
            ),
        )

        return CaptureResult(
            hold_id=intent.id,
            captured_amount=from_minor_units(intent.amount_received, currency),
            status=map_provider_status(intent.status),
        )

    def cancel_hold(self, hold_id: str, idempotency_key: str) -> CancelResult:
        """
        Void an uncaptured authorization.

        Raises:
            InvalidStateError: Hold was already captured
            GatewayError / GatewayTimeoutError: Provider failure
        """
        log_context = {
            "operation": "cancel_hold",
            "hold_id": hold_id,
            "idempotency_key": idempotency_key,
        }

        intent = self._execute(
            log_context,
            lambda: stripe.PaymentIntent.cancel(
                hold_id,
                cancellation_reason="abandoned",
                idempotency_key=idempotency_key,
            ),
        )

        return CancelResult(hold_id=intent.id, status=map_provider_status(intent.status))

    def refund(
        self,
        hold_id: str,
        amount: Decimal,
        currency: str,
        reason: str,
        idempotency_key: str,
    ) -> RefundResult:
        """
        Refund a captured hold back to the brand.

        Raises:
            RefundExceedsCapturedError: Amount is larger than what was captured
            GatewayError / GatewayTimeoutError: Provider failure
        """
        provider = self.get_status(hold_id)
        if amount > provider.captured_amount - provider.refunded_amount:
            raise RefundExceedsCapturedError(
                "Refund amount exceeds the captured amount",
                details={
                    "hold_id": hold_id,
                    "refund_amount": str(amount),
                    "captured_amount": str(provider.captured_amount),
                    "refunded_amount": str(provider.refunded_amount),
                },
            )

        log_context = {
            "operation": "refund",
            "hold_id": hold_id,
            "amount": str(amount),
            "reason": reason,
            "idempotency_key": idempotency_key,
        }

        refund = self._execute(
            log_context,
            lambda: stripe.Refund.create(
                payment_intent=hold_id,
                amount=to_minor_units(amount, currency),
                reason="requested_by_customer",
                metadata={"escrow_reason": reason},
                idempotency_key=idempotency_key,
            ),
        )

        return RefundResult(
            refund_id=refund.id,
            hold_id=hold_id,
            amount=from_minor_units(refund.amount, currency),
            status=refund.status,
        )

    def get_status(self, hold_id: str) -> ProviderStatus:
        """
        Read the provider's view of a hold.

        Raises:
            GatewayError / GatewayTimeoutError: Provider failure
        """
        log_context = {"operation": "get_status", "hold_id": hold_id}

        intent = self._execute(
            log_context,
            lambda: stripe.PaymentIntent.retrieve(hold_id, expand=["latest_charge"]),
        )

        currency = intent.currency
        charge = intent.latest_charge
        amount_refunded = 0
        if charge is not None and not isinstance(charge, str):
            amount_refunded = charge["amount_refunded"] or 0

        return ProviderStatus(
            hold_id=intent.id,
            status=map_provider_status(intent.status),
            raw_status=intent.status,
            amount=from_minor_units(intent.amount, currency),
            captured_amount=from_minor_units(intent.amount_received or 0, currency),
            refunded_amount=from_minor_units(amount_refunded, currency),
            currency=currency,
            metadata=dict(intent.metadata or {}),
        )

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    def verify_webhook(self, payload: bytes, signature: str) -> dict[str, Any]:
        """
        Verify and parse a Stripe webhook event.

        Raises:
            EscrowValidationError: Invalid signature or payload
        """
        try:
            event = stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
            return event.to_dict()
        except stripe.SignatureVerificationError as e:
            raise EscrowValidationError(
                "Invalid webhook signature",
                error_code="INVALID_WEBHOOK_SIGNATURE",
                details={"error": str(e)},
            )
        except ValueError as e:
            raise EscrowValidationError(
                "Invalid webhook payload",
                error_code="INVALID_WEBHOOK_PAYLOAD",
                details={"error": str(e)},
            )

    # =========================================================================
    # Error Handling
    # =========================================================================

    def _handle_stripe_error(
        self,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe exceptions to escrow exceptions.

        Raises:
            PaymentDeclinedError: Card was declined
            InvalidStateError: Intent not in a state that allows the call
            RefundExceedsCapturedError: Refund larger than the charge
            GatewayTimeoutError: Connection failure or timeout (outcome unknown)
            GatewayError: Every other provider failure, typed by kind
        """
        logger = self.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, BaseApplicationError):
            raise error

        if isinstance(error, stripe.CardError):
            decline_code = getattr(error, "decline_code", None)
            logger.warning(
                "Card error from Stripe",
                extra={**log_context, "decline_code": decline_code},
            )
            raise PaymentDeclinedError(
                str(error.user_message or error),
                decline_code=decline_code,
                provider_code=error.code,
            )

        elif isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={**log_context, "stripe_code": error.code},
            )
            if error.code in UNEXPECTED_STATE_CODES:
                raise InvalidStateError(
                    str(error.user_message or error),
                    details={"provider_code": error.code},
                )
            if error.code in REFUND_TOO_LARGE_CODES:
                raise RefundExceedsCapturedError(
                    str(error.user_message or error),
                    provider_code=error.code,
                )
            raise GatewayError(
                str(error.user_message or error),
                kind=GatewayErrorKind.INVALID_REQUEST,
                provider_code=error.code,
            )

        elif isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise GatewayError(
                "Stripe rate limit exceeded. Please retry.",
                kind=GatewayErrorKind.RATE_LIMITED,
                provider_code="rate_limit",
            )

        elif isinstance(error, stripe.APIConnectionError):
            logger.error(
                "Connection error to Stripe",
                extra=log_context,
                exc_info=True,
            )
            raise GatewayTimeoutError(
                "Could not reach Stripe; the outcome is unknown.",
                provider_code="api_connection_error",
            )

        elif isinstance(error, stripe.AuthenticationError):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise GatewayError(
                "Stripe authentication failed",
                kind=GatewayErrorKind.AUTHENTICATION,
                provider_code="authentication_error",
            )

        elif isinstance(error, stripe.APIError):
            logger.error("Stripe API error", extra=log_context, exc_info=True)
            raise GatewayError(
                "Stripe service error. Please retry.",
                kind=GatewayErrorKind.UNAVAILABLE,
                provider_code="api_error",
            )

        else:
            logger.error(
                f"Unexpected error from Stripe: {type(error).__name__}",
                extra=log_context,
                exc_info=True,
            )
            raise GatewayError(
                f"Unexpected Stripe error: {error}",
                kind=GatewayErrorKind.UNKNOWN,
                provider_code="unknown_error",
            )
