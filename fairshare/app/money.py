"""
money.py — Decimal helpers shared by the allocator, ledger and planner.

All monetary values are decimal.Decimal quantised to cents. Float arithmetic
must never appear in or around money calculations; to_decimal() is the only
sanctioned way to bring an int/float/str into the ledger.
"""

from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal, InvalidOperation
from typing import Mapping

from fairshare.app.errors import AppError, ErrorCode

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

# Tolerance used wherever two amounts are "equal" or an amount is "zero".
EPSILON = Decimal("0.01")


def to_decimal(value) -> Decimal:
    """
    Coerces value to Decimal. Floats go through str() so that 0.1 becomes
    Decimal("0.1") and not its binary expansion.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise AppError(
            ErrorCode.INVALID_FIELD,
            f"{value!r} is not a monetary amount.",
            400,
        )
    try:
        if isinstance(value, float):
            return Decimal(str(value))
        return Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise AppError(
            ErrorCode.INVALID_FIELD,
            f"{value!r} is not a monetary amount.",
            400,
        )


def quantize(value: Decimal) -> Decimal:
    return value.quantize(CENT)


def is_negligible(value: Decimal) -> bool:
    """True when abs(value) is below EPSILON."""
    return abs(value) < EPSILON


def nearly_equal(a: Decimal, b: Decimal) -> bool:
    return is_negligible(a - b)


def has_sub_cent_digits(value: Decimal) -> bool:
    return value.as_tuple().exponent < -2 and value != value.quantize(CENT)


def apportion(total: Decimal, weights: Mapping[str, int | Decimal]) -> dict[str, Decimal]:
    """
    Splits `total` over `weights` in whole cents using the largest-remainder
    method, so the returned amounts always add up to `total` exactly.

    Each key receives floor(total * w / sum(w)) cents; the leftover cents go,
    one each, to the keys with the largest fractional parts. Ties keep the
    mapping's iteration order.

    Keys with weight 0 receive 0. The caller must ensure sum(weights) > 0.
    """
    total_weight = sum(weights.values())
    total_cents = int((total / CENT).to_integral_value(rounding=ROUND_FLOOR))

    exact = {
        key: Decimal(total_cents) * Decimal(weight) / Decimal(total_weight)
        for key, weight in weights.items()
    }
    cents = {
        key: int(value.to_integral_value(rounding=ROUND_FLOOR))
        for key, value in exact.items()
    }

    leftover = total_cents - sum(cents.values())
    by_fraction = sorted(
        weights,
        key=lambda key: exact[key] - cents[key],
        reverse=True,
    )
    for key in by_fraction[:leftover]:
        cents[key] += 1

    return {key: Decimal(count) * CENT for key, count in cents.items()}
