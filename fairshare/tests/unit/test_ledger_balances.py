"""
tests/unit/test_ledger_balances.py — Pure balance arithmetic of the ledger.

What this file proves:
  - Applying an expense credits payers and debits members
  - A user who paid and took part gets the net of both
  - Reversing an expense is the exact inverse of applying it
  - Balances that reach zero are removed, not stored as 0.00
  - The sum of a group's balances is unchanged by apply/reverse (zero-sum)
  - Totals that do not match are rejected with AllocationMismatch

Unit test constraints:
  - No database, no Flask. The functions take and return plain dicts.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from fairshare.app.errors import AllocationMismatch, ErrorCode
from fairshare.app.services.ledger_service import (
    apply_expense_to_balances,
    expense_deltas,
    reverse_expense_from_balances,
    validate_expense_totals,
)


def _expense(amount: str, payers: dict[str, str], members: dict[str, str]) -> dict:
    return {
        "amount": Decimal(amount),
        "payers": [
            {"user_id": uid, "paid_amount": Decimal(paid)} for uid, paid in payers.items()
        ],
        "members": [
            {"user_id": uid, "amount_owed": Decimal(owed)} for uid, owed in members.items()
        ],
    }


# Alice paid 90 for a dinner split equally between Alice, Bob and Carol.
DINNER = _expense("90.00", {"alice": "90.00"}, {"alice": "30.00", "bob": "30.00", "carol": "30.00"})


def test_apply_to_empty_ledger():
    result = apply_expense_to_balances({}, DINNER)

    assert result == {
        "alice": Decimal("60.00"),
        "bob": Decimal("-30.00"),
        "carol": Decimal("-30.00"),
    }
    assert sum(result.values()) == Decimal("0.00")


def test_reverse_restores_empty_ledger():
    after_apply = apply_expense_to_balances({}, DINNER)

    assert reverse_expense_from_balances(after_apply, DINNER) == {}


def test_apply_does_not_modify_input():
    balances = {"alice": Decimal("5.00"), "bob": Decimal("-5.00")}

    apply_expense_to_balances(balances, DINNER)

    assert balances == {"alice": Decimal("5.00"), "bob": Decimal("-5.00")}


def test_apply_then_reverse_restores_prior_snapshot():
    prior = {"dave": Decimal("12.50"), "bob": Decimal("-12.50")}

    after = reverse_expense_from_balances(apply_expense_to_balances(prior, DINNER), DINNER)

    assert after == prior


def test_balance_reaching_zero_is_removed():
    # Bob paid Alice back the 30.00 he owed from dinner.
    repayment = _expense("30.00", {"bob": "30.00"}, {"alice": "30.00"})
    after_dinner = apply_expense_to_balances({}, DINNER)

    result = apply_expense_to_balances(after_dinner, repayment)

    assert "bob" not in result
    assert result == {"alice": Decimal("30.00"), "carol": Decimal("-30.00")}


def test_multiple_payers():
    taxi = _expense(
        "40.00",
        {"alice": "25.00", "bob": "15.00"},
        {"alice": "20.00", "bob": "20.00"},
    )

    assert apply_expense_to_balances({}, taxi) == {
        "alice": Decimal("5.00"),
        "bob": Decimal("-5.00"),
    }


def test_payer_who_is_not_a_member_is_credited_in_full():
    gift = _expense("20.00", {"alice": "20.00"}, {"bob": "10.00", "carol": "10.00"})

    assert apply_expense_to_balances({}, gift) == {
        "alice": Decimal("20.00"),
        "bob": Decimal("-10.00"),
        "carol": Decimal("-10.00"),
    }


def test_zero_sum_is_preserved_over_many_expenses():
    expenses = [
        DINNER,
        _expense("33.33", {"bob": "33.33"}, {"alice": "11.11", "bob": "11.11", "carol": "11.11"}),
        _expense("10.01", {"carol": "5.01", "alice": "5.00"}, {"bob": "10.01"}),
    ]

    balances: dict = {}
    for expense in expenses:
        balances = apply_expense_to_balances(balances, expense)
        assert sum(balances.values(), Decimal("0")) == Decimal("0")

    for expense in reversed(expenses):
        balances = reverse_expense_from_balances(balances, expense)

    assert balances == {}


def test_expense_deltas_nets_payer_and_member():
    assert expense_deltas(DINNER) == {
        "alice": Decimal("60.00"),
        "bob": Decimal("-30.00"),
        "carol": Decimal("-30.00"),
    }


def test_validate_accepts_matching_totals():
    validate_expense_totals(DINNER)


def test_validate_rejects_payer_total_mismatch():
    bad = _expense("90.00", {"alice": "80.00"}, {"alice": "45.00", "bob": "45.00"})

    with pytest.raises(AllocationMismatch) as exc_info:
        validate_expense_totals(bad)

    err = exc_info.value
    assert err.code == ErrorCode.ALLOCATION_MISMATCH
    assert err.http_status == 422
    assert err.field == "payers"
    assert err.expected == Decimal("90.00")
    assert err.actual == Decimal("80.00")


def test_validate_rejects_member_total_mismatch():
    bad = _expense("90.00", {"alice": "90.00"}, {"alice": "45.00", "bob": "44.00"})

    with pytest.raises(AllocationMismatch) as exc_info:
        validate_expense_totals(bad)

    assert exc_info.value.field == "members"
