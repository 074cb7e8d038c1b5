"""
tests/unit/test_money.py — Decimal helpers and largest-remainder apportionment.

What this file proves:
  - to_decimal never goes through binary float expansion
  - Non-numeric input (including bool) is rejected with INVALID_FIELD
  - apportion() always returns amounts that add up to the total exactly,
    in whole cents, and hands leftover cents to the largest fractions
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from fairshare.app.errors import AppError, ErrorCode
from fairshare.app.money import (
    EPSILON,
    apportion,
    has_sub_cent_digits,
    is_negligible,
    nearly_equal,
    to_decimal,
)


# ── to_decimal ─────────────────────────────────────────────────────────────

def test_to_decimal_float_uses_shortest_repr():
    assert to_decimal(0.1) == Decimal("0.1")


def test_to_decimal_passes_decimal_through():
    value = Decimal("12.34")
    assert to_decimal(value) is value


def test_to_decimal_accepts_int_and_str():
    assert to_decimal(5) == Decimal("5")
    assert to_decimal("7.25") == Decimal("7.25")


@pytest.mark.parametrize("bad", [True, "abc", None, [1]])
def test_to_decimal_rejects_non_amounts(bad):
    with pytest.raises(AppError) as exc_info:
        to_decimal(bad)

    err = exc_info.value
    assert err.code == ErrorCode.INVALID_FIELD
    assert err.http_status == 400


# ── tolerance helpers ──────────────────────────────────────────────────────

def test_is_negligible_below_one_cent():
    assert is_negligible(Decimal("0.009"))
    assert is_negligible(Decimal("-0.009"))
    assert not is_negligible(EPSILON)


def test_nearly_equal_within_epsilon():
    assert nearly_equal(Decimal("10.00"), Decimal("10.005"))
    assert not nearly_equal(Decimal("10.00"), Decimal("10.01"))


def test_has_sub_cent_digits():
    assert has_sub_cent_digits(Decimal("1.005"))
    assert not has_sub_cent_digits(Decimal("1.000"))
    assert not has_sub_cent_digits(Decimal("1.5"))


# ── apportion ──────────────────────────────────────────────────────────────

def test_apportion_equal_three_way_gives_extra_cent_to_first():
    result = apportion(Decimal("100.00"), {"a": 1, "b": 1, "c": 1})

    assert result == {
        "a": Decimal("33.34"),
        "b": Decimal("33.33"),
        "c": Decimal("33.33"),
    }
    assert sum(result.values()) == Decimal("100.00")


def test_apportion_weighted_leftover_goes_to_largest_fraction():
    result = apportion(Decimal("10.00"), {"a": 2, "b": 1})

    assert result == {"a": Decimal("6.67"), "b": Decimal("3.33")}


def test_apportion_zero_weight_receives_nothing():
    result = apportion(Decimal("5.00"), {"a": 0, "b": 1})

    assert result == {"a": Decimal("0.00"), "b": Decimal("5.00")}


def test_apportion_single_cent_over_many():
    result = apportion(Decimal("0.01"), {"a": 1, "b": 1, "c": 1})

    assert result["a"] == Decimal("0.01")
    assert result["b"] == Decimal("0.00")
    assert result["c"] == Decimal("0.00")


@pytest.mark.parametrize("total", ["0.00", "0.07", "1.00", "99.99", "1234.56"])
def test_apportion_always_sums_to_total(total):
    weights = {"a": 3, "b": 5, "c": 7, "d": 1}
    result = apportion(Decimal(total), weights)

    assert sum(result.values()) == Decimal(total)
    for amount in result.values():
        assert amount == amount.quantize(Decimal("0.01"))
