"""
Minor-unit arithmetic.

Knowledge points are decimals with two places. All allocation math runs on
integer hundredths; conversion happens only at the storage/display boundary.
"""

from __future__ import annotations

from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any

from .constants import MINOR_UNITS_PER_POINT, PERCENT_MAX, PERCENT_MIN, POINT_QUANTUM


def to_decimal(value: Any, fallback: Decimal = Decimal(0)) -> Decimal:
    """Coerce *value* to a finite Decimal, or return *fallback*."""
    if isinstance(value, bool) or value is None:
        return fallback
    try:
        parsed = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        return fallback
    if not parsed.is_finite():
        return fallback
    return parsed


def quantize_points(value: Decimal) -> Decimal:
    """Round a point amount to two decimal places (half-up)."""
    return value.quantize(POINT_QUANTUM, rounding=ROUND_HALF_UP)


def to_minor(value: Any) -> int:
    """Convert a point amount to non-negative integer minor units."""
    amount = to_decimal(value)
    minor = int((amount * MINOR_UNITS_PER_POINT).to_integral_value(rounding=ROUND_HALF_UP))
    return max(0, minor)


def from_minor(minor: int) -> Decimal:
    """Convert integer minor units back to a two-place Decimal."""
    return (Decimal(int(minor)) / MINOR_UNITS_PER_POINT).quantize(POINT_QUANTUM)


def clamp_percent(value: Any, fallback: Decimal = Decimal(0)) -> Decimal:
    """Clamp *value* into [0, 100]; non-numeric input yields *fallback*."""
    parsed = to_decimal(value, fallback=fallback)
    return max(PERCENT_MIN, min(PERCENT_MAX, parsed))


def percent_of(amount_minor: int, percent: Decimal, base: Decimal = PERCENT_MAX) -> int:
    """floor(amount * percent / base) using exact decimal math."""
    if amount_minor <= 0 or percent <= 0 or base <= 0:
        return 0
    share = Decimal(amount_minor) * percent / base
    return int(share.to_integral_value(rounding=ROUND_FLOOR))
