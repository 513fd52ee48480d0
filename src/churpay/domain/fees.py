"""Platform fee calculation for donations."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

PLATFORM_FEE_PERCENTAGE = Decimal("3.9")
PLATFORM_FEE_FIXED = Decimal("3.00")

_CENTS = Decimal("0.01")


@dataclass(frozen=True)
class PlatformFees:
    platform_fee: Decimal
    net_amount: Decimal
    percentage_fee: Decimal
    fixed_fee: Decimal


def calculate_platform_fees(amount: Decimal) -> PlatformFees:
    """Platform fee is 3.9% of the donation plus a fixed R3.00, rounded to cents."""
    percentage_fee = amount * PLATFORM_FEE_PERCENTAGE / Decimal(100)
    platform_fee = percentage_fee + PLATFORM_FEE_FIXED
    return PlatformFees(
        platform_fee=platform_fee.quantize(_CENTS, rounding=ROUND_HALF_UP),
        net_amount=(amount - platform_fee).quantize(_CENTS, rounding=ROUND_HALF_UP),
        percentage_fee=percentage_fee.quantize(_CENTS, rounding=ROUND_HALF_UP),
        fixed_fee=PLATFORM_FEE_FIXED,
    )
