"""
Payment gateway adapters for escrow holds.

All payment provider calls made by the escrow lifecycle go through
these adapters to ensure consistent error handling, timeouts,
idempotency, and observability.

Usage:
    from escrow.adapters import StripeEscrowGateway

    gateway = StripeEscrowGateway()
    status = gateway.get_status("pi_123")
"""

from escrow.adapters.stripe_gateway import (
    CancelResult,
    CaptureResult,
    ConfirmResult,
    HoldResult,
    IdempotencyKeyGenerator,
    ProviderStatus,
    RefundResult,
    StripeEscrowGateway,
    backoff_delay,
    map_provider_status,
)

__all__ = [
    "CancelResult",
    "CaptureResult",
    "ConfirmResult",
    "HoldResult",
    "IdempotencyKeyGenerator",
    "ProviderStatus",
    "RefundResult",
    "StripeEscrowGateway",
    "backoff_delay",
    "map_provider_status",
]
