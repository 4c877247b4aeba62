"""
Fee calculation for escrow releases.

Splits a gross amount into the platform commission, the payment
provider's processing fee and the net amount paid to the influencer.
Pure functions only: no database, no network.

Configuration (via settings):
- ESCROW_PLATFORM_COMMISSION_RATE: Platform share of gross (default: 0.10)
- ESCROW_PROVIDER_PERCENT_RATE: Provider percentage fee (default: 0.029)
- ESCROW_PROVIDER_FIXED_FEE: Provider fixed fee per charge (default: 0.30)
- ESCROW_SUPPORTED_CURRENCIES: Lowercase ISO 4217 codes accepted

Usage:
    from escrow.fees import calculate_fees

    breakdown = calculate_fees(Decimal("1000.00"), "usd")
    breakdown.platform_fee       # Decimal("100.00")
    breakdown.provider_fee       # Decimal("29.30")
    breakdown.net_payee_amount   # Decimal("870.70")
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import TYPE_CHECKING

from django.conf import settings

from escrow.exceptions import EscrowValidationError

if TYPE_CHECKING:
    from typing import Any


# Currencies without a minor unit (amounts are whole numbers)
ZERO_DECIMAL_CURRENCIES = frozenset(
    {
        "bif",
        "clp",
        "djf",
        "gnf",
        "jpy",
        "kmf",
        "krw",
        "mga",
        "pyg",
        "rwf",
        "ugx",
        "vnd",
        "vuv",
        "xaf",
        "xof",
        "xpf",
    }
)


# =============================================================================
# Currency Helpers
# =============================================================================


def currency_exponent(currency: str) -> int:
    """Number of minor-unit digits for a currency (0 for JPY, 2 for USD)."""
    return 0 if currency.lower() in ZERO_DECIMAL_CURRENCIES else 2


def quantize_amount(amount: Decimal, currency: str) -> Decimal:
    """Round to the currency's minor unit using ROUND_HALF_UP."""
    exponent = Decimal(1).scaleb(-currency_exponent(currency))
    return amount.quantize(exponent, rounding=ROUND_HALF_UP)


def to_minor_units(amount: Decimal, currency: str) -> int:
    """
    Convert a major-unit amount to the provider's integer minor units.

    Example:
        to_minor_units(Decimal("10.50"), "usd")  # 1050
        to_minor_units(Decimal("500"), "jpy")    # 500
    """
    rounded = quantize_amount(amount, currency)
    return int(rounded.scaleb(currency_exponent(currency)))


def from_minor_units(amount: int, currency: str) -> Decimal:
    return quantize_amount(Decimal(amount).scaleb(-currency_exponent(currency)), currency)


def parse_amount(value: Any, field_name: str = "amount") -> Decimal:
    """
    Coerce a user-supplied amount to a positive Decimal.

    Raises:
        EscrowValidationError: Amount is malformed, not finite or not positive
    """
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise EscrowValidationError(
            f"{field_name} must be a decimal number",
            details={field_name: str(value)},
        )

    if not amount.is_finite() or amount <= 0:
        raise EscrowValidationError(
            f"{field_name} must be positive",
            details={field_name: str(value)},
        )
    return amount


def validate_currency(currency: str | None) -> str:
    """
    Normalise and validate a currency code.

    Returns:
        The lowercase currency code

    Raises:
        EscrowValidationError: Currency is not in ESCROW_SUPPORTED_CURRENCIES
    """
    code = (currency or "").strip().lower()
    supported = [c.lower() for c in settings.ESCROW_SUPPORTED_CURRENCIES]
    if code not in supported:
        raise EscrowValidationError(
            f"Unsupported currency: {currency!r}",
            details={"currency": currency, "supported": supported},
        )
    return code


# =============================================================================
# Fee Schedule
# =============================================================================


@dataclass(frozen=True)
class FeeSchedule:
    """
    Rates used to split a gross amount.

    Attributes:
        platform_rate: Platform commission as a fraction of gross
        provider_percent_rate: Provider fee as a fraction of gross
        provider_fixed_fee: Provider flat fee per charge (major units)
    """

    platform_rate: Decimal
    provider_percent_rate: Decimal
    provider_fixed_fee: Decimal

    @classmethod
    def from_settings(cls) -> FeeSchedule:
        return cls(
            platform_rate=Decimal(str(settings.ESCROW_PLATFORM_COMMISSION_RATE)),
            provider_percent_rate=Decimal(str(settings.ESCROW_PROVIDER_PERCENT_RATE)),
            provider_fixed_fee=Decimal(str(settings.ESCROW_PROVIDER_FIXED_FEE)),
        )


@dataclass(frozen=True)
class FeeBreakdown:
    """
    Result of a fee calculation.

    Invariant: platform_fee + provider_fee + net_payee_amount == gross_amount
    """

    gross_amount: Decimal
    platform_fee: Decimal
    provider_fee: Decimal
    net_payee_amount: Decimal
    currency: str

    def to_dict(self) -> dict[str, str]:
        """Serialise amounts as strings so no precision is lost in JSON."""
        return {
            "gross_amount": str(self.gross_amount),
            "platform_fee": str(self.platform_fee),
            "provider_fee": str(self.provider_fee),
            "net_payee_amount": str(self.net_payee_amount),
            "currency": self.currency,
        }


def calculate_fees(
    gross_amount: Decimal,
    currency: str = "usd",
    schedule: FeeSchedule | None = None,
) -> FeeBreakdown:
    """
    Split a gross amount into platform fee, provider fee and net payout.

    platform_fee = gross × platform_rate
    provider_fee = gross × provider_percent_rate + provider_fixed_fee
    net          = gross − platform_fee − provider_fee

    Each component is rounded to the currency minor unit. The provider
    fee is capped so that net never drops below zero and the three
    parts always add back up to the gross amount.

    Args:
        gross_amount: Amount being released (major units)
        currency: ISO 4217 code; must be supported
        schedule: Optional override of the configured rates

    Raises:
        EscrowValidationError: Unsupported currency or non-positive amount
    """
    currency = validate_currency(currency)
    gross = quantize_amount(parse_amount(gross_amount, "gross_amount"), currency)
    schedule = schedule or FeeSchedule.from_settings()

    platform_fee = min(quantize_amount(gross * schedule.platform_rate, currency), gross)
    provider_fee = quantize_amount(
        gross * schedule.provider_percent_rate + schedule.provider_fixed_fee,
        currency,
    )
    provider_fee = min(provider_fee, gross - platform_fee)
    net = gross - platform_fee - provider_fee

    return FeeBreakdown(
        gross_amount=gross,
        platform_fee=platform_fee,
        provider_fee=provider_fee,
        net_payee_amount=net,
        currency=currency,
    )
