"""
Unit tests for ledger_service persisted operations and read models.

These tests intentionally avoid Flask and real DB access. Every DB interaction
is mocked through a fake SQLAlchemy session object; commit/rollback are
observed on the mock.
"""

from __future__ import annotations

from decimal import Decimal
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from sqlalchemy.dialects import postgresql

from fairshare.app.errors import (
    AllocationMismatch,
    AppError,
    DriftError,
    ErrorCode,
    InvalidSplitState,
)
from fairshare.app.models.balance import Balance
from fairshare.app.models.expense import Expense, SplitMode
from fairshare.app.services import ledger_service


def _mock_scalars_all(session: MagicMock, rows: list) -> None:
    session.execute.return_value.scalars.return_value.all.return_value = rows


def _added(session: MagicMock, cls) -> list:
    return [c.args[0] for c in session.add.call_args_list if isinstance(c.args[0], cls)]


def _data(**overrides) -> dict:
    data = {
        "title": "Dinner",
        "amount": Decimal("90.00"),
        "payers": [{"user_id": "alice", "paid_amount": Decimal("90.00")}],
        "members": [
            {"user_id": "alice", "amount_owed": Decimal("30.00")},
            {"user_id": "bob", "amount_owed": Decimal("30.00")},
            {"user_id": "carol", "amount_owed": Decimal("30.00")},
        ],
    }
    data.update(overrides)
    return data


# ── apply_expense ──────────────────────────────────────────────────────────

def test_apply_expense_rejects_mismatch_before_touching_session():
    session = MagicMock()

    with pytest.raises(AllocationMismatch):
        ledger_service.apply_expense("g1", _data(amount=Decimal("100.00")), session)

    session.execute.assert_not_called()
    session.commit.assert_not_called()


def test_apply_expense_rejects_sub_cent_member_amounts_before_touching_session():
    session = MagicMock()
    data = _data(
        amount=Decimal("10.00"),
        payers=[{"user_id": "alice", "paid_amount": Decimal("10.00")}],
        members=[
            {"user_id": "alice", "amount_owed": Decimal("3.333")},
            {"user_id": "bob", "amount_owed": Decimal("3.333")},
            {"user_id": "carol", "amount_owed": Decimal("3.333")},
        ],
    )

    with pytest.raises(InvalidSplitState) as exc_info:
        ledger_service.apply_expense("g1", data, session)

    assert exc_info.value.field == "members.amount_owed"
    session.execute.assert_not_called()
    session.add.assert_not_called()
    session.commit.assert_not_called()


@pytest.mark.parametrize("overrides, field", [
    ({"amount": Decimal("90.001")}, "amount"),
    (
        {"payers": [{"user_id": "alice", "paid_amount": Decimal("90.004")}]},
        "payers.paid_amount",
    ),
])
def test_validate_expense_totals_rejects_sub_cent_amounts(overrides, field):
    with pytest.raises(InvalidSplitState) as exc_info:
        ledger_service.validate_expense_totals(_data(**overrides))

    assert exc_info.value.field == field


def test_validate_expense_totals_accepts_trailing_zero_digits():
    ledger_service.validate_expense_totals(_data(amount=Decimal("90.000")))


def test_apply_expense_creates_expense_and_new_balances():
    session = MagicMock()
    _mock_scalars_all(session, [])

    expense = ledger_service.apply_expense("g1", _data(), session)

    assert isinstance(expense, Expense)
    assert expense.group_id == "g1"
    assert expense.split_mode == SplitMode.CUSTOM
    assert [p.user_id for p in expense.payers] == ["alice"]
    assert [m.user_id for m in expense.members] == ["alice", "bob", "carol"]

    balances = {b.user_id: b.amount for b in _added(session, Balance)}
    assert balances == {
        "alice": Decimal("60.00"),
        "bob": Decimal("-30.00"),
        "carol": Decimal("-30.00"),
    }
    session.commit.assert_called_once()


def test_apply_expense_keeps_given_split_mode():
    session = MagicMock()
    _mock_scalars_all(session, [])

    expense = ledger_service.apply_expense(
        "g1", _data(split_mode=SplitMode.EQUAL), session,
    )

    assert expense.split_mode == SplitMode.EQUAL


def test_apply_expense_updates_and_deletes_existing_rows():
    session = MagicMock()
    alice_row = SimpleNamespace(user_id="alice", amount=Decimal("-60.00"), updated_at=None)
    bob_row = SimpleNamespace(user_id="bob", amount=Decimal("60.00"), updated_at=None)
    _mock_scalars_all(session, [alice_row, bob_row])

    # Alice pays 90 for the three of them: alice -60 + 60 = 0, bob 60 - 30 = 30
    ledger_service.apply_expense("g1", _data(), session)

    session.delete.assert_called_once_with(alice_row)
    assert bob_row.amount == Decimal("30.00")
    assert bob_row.updated_at is not None
    assert {b.user_id: b.amount for b in _added(session, Balance)} == {
        "carol": Decimal("-30.00"),
    }


# ── reverse_expense ────────────────────────────────────────────────────────

def test_reverse_expense_not_found_rolls_back():
    session = MagicMock()
    session.execute.return_value.scalar_one_or_none.return_value = None

    with pytest.raises(AppError) as exc_info:
        ledger_service.reverse_expense(999, session)

    err = exc_info.value
    assert err.code == ErrorCode.EXPENSE_NOT_FOUND
    assert err.http_status == 404
    session.rollback.assert_called_once()
    session.commit.assert_not_called()


def test_reverse_expense_deletes_expense_and_zeroed_balances():
    session = MagicMock()
    expense = SimpleNamespace(
        id=5,
        group_id="g1",
        to_ledger_entry=lambda: {
            "amount": Decimal("90.00"),
            "payers": [{"user_id": "alice", "paid_amount": Decimal("90.00")}],
            "members": [
                {"user_id": "alice", "amount_owed": Decimal("30.00")},
                {"user_id": "bob", "amount_owed": Decimal("30.00")},
                {"user_id": "carol", "amount_owed": Decimal("30.00")},
            ],
        },
    )
    session.execute.return_value.scalar_one_or_none.return_value = expense
    rows = [
        SimpleNamespace(user_id="alice", amount=Decimal("60.00"), updated_at=None),
        SimpleNamespace(user_id="bob", amount=Decimal("-30.00"), updated_at=None),
        SimpleNamespace(user_id="carol", amount=Decimal("-30.00"), updated_at=None),
    ]
    _mock_scalars_all(session, rows)

    ledger_service.reverse_expense(5, session)

    deleted = [c.args[0] for c in session.delete.call_args_list]
    assert expense in deleted
    for row in rows:
        assert row in deleted
    session.add.assert_not_called()
    session.commit.assert_called_once()


def test_reverse_expense_locks_the_expense_row():
    session = MagicMock()
    session.execute.return_value.scalar_one_or_none.return_value = None

    with pytest.raises(AppError):
        ledger_service.reverse_expense(7, session)

    stmt = session.execute.call_args_list[0].args[0]
    sql = str(stmt.compile(dialect=postgresql.dialect()))
    assert "FROM expenses" in sql
    assert "FOR UPDATE" in sql
    session.get.assert_not_called()


# ── read models ────────────────────────────────────────────────────────────

def test_get_balance_response_formats_amounts_as_strings():
    session = MagicMock()
    _mock_scalars_all(session, [
        SimpleNamespace(user_id="alice", amount=Decimal("60.00")),
        SimpleNamespace(user_id="bob", amount=Decimal("-60.00")),
    ])

    result = ledger_service.get_balance_response("g1", session)

    assert result == {
        "group_id": "g1",
        "balances": [
            {"user_id": "alice", "balance": "60.00"},
            {"user_id": "bob", "balance": "-60.00"},
        ],
        "balance_sum": "0.00",
    }


def test_get_balance_response_raises_drift_error_on_nonzero_sum():
    session = MagicMock()
    _mock_scalars_all(session, [
        SimpleNamespace(user_id="alice", amount=Decimal("60.00")),
        SimpleNamespace(user_id="bob", amount=Decimal("-59.00")),
    ])

    with pytest.raises(DriftError) as exc_info:
        ledger_service.get_balance_response("g1", session)

    err = exc_info.value
    assert err.code == ErrorCode.DRIFT_ERROR
    assert err.http_status == 500


def test_get_balance_response_empty_group():
    session = MagicMock()
    _mock_scalars_all(session, [])

    result = ledger_service.get_balance_response("g1", session)

    assert result["balances"] == []
    assert result["balance_sum"] == "0.00"


def test_get_user_totals_splits_owed_and_owe():
    session = MagicMock()
    _mock_scalars_all(session, [Decimal("10.00"), Decimal("-4.00"), Decimal("-1.50")])

    assert ledger_service.get_user_totals("alice", session) == {
        "user_id": "alice",
        "owed": Decimal("10.00"),
        "owe": Decimal("5.50"),
    }


def test_get_user_totals_without_balances():
    session = MagicMock()
    _mock_scalars_all(session, [])

    totals = ledger_service.get_user_totals("nobody", session)

    assert totals["owed"] == Decimal("0")
    assert totals["owe"] == Decimal("0")
