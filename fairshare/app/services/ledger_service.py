"""
services/ledger_service.py — Balance Ledger.

This file is the SINGLE SOURCE OF TRUTH for how expenses move balances.
Nothing else in the codebase writes to the balances table.

Two layers:

  Pure functions over a balances snapshot ({user_id: Decimal}):
    apply_expense_to_balances()      members -= amount_owed, payers += paid_amount
    reverse_expense_from_balances()  the exact inverse
    Both return a NEW dict and drop entries that land within EPSILON of 0
    (a zero balance is represented by the absence of a record).

  Persisted operations (caller-facing):
    apply_expense()    create expense + payer/member rows + balance deltas
    reverse_expense()  delete expense + inverse balance deltas
    Each runs as ONE transaction through transactions.run_transaction():
    the group's balance rows are locked (SELECT ... FOR UPDATE), the new
    snapshot is computed with the pure functions above, and the diff is
    written. Either everything commits or nothing does.

Zero-sum invariant:
  Because sum(amount_owed) == sum(paid_amount) == expense.amount (checked by
  validate_expense_totals() before any write), every apply/reverse leaves the
  sum of a group's balances unchanged, at 0 if it started at 0.

Layer rules:
  - No Flask imports. No current_app, request, g, or HTTP knowledge.
  - Receives plain values and a SQLAlchemy Session; returns dicts or ORM objects.
"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Mapping

from sqlalchemy import select
from sqlalchemy.orm import Session

from fairshare.app.errors import (
    AllocationMismatch,
    AppError,
    DriftError,
    ErrorCode,
    InvalidSplitState,
)
from fairshare.app.models.balance import Balance
from fairshare.app.models.expense import Expense, SplitMode
from fairshare.app.models.expense_member import ExpenseMember
from fairshare.app.models.expense_payer import ExpensePayer
from fairshare.app.money import (
    ZERO,
    has_sub_cent_digits,
    is_negligible,
    nearly_equal,
    to_decimal,
)
from fairshare.app.transactions import DEFAULT_MAX_ATTEMPTS, run_transaction


# ── Pure ledger arithmetic ─────────────────────────────────────────────────

def _require_cents(value: Decimal, field_name: str) -> None:
    if has_sub_cent_digits(value):
        raise InvalidSplitState(
            f"{value} has more than 2 decimal places.",
            field=field_name,
        )


def validate_expense_totals(expense: Mapping) -> None:
    """
    Raises AllocationMismatch unless
      amount == sum(payers.paid_amount) and amount == sum(members.amount_owed)
    within EPSILON. Never corrects the values.

    Raises InvalidSplitState first when any amount has sub-cent digits:
    balances are stored in whole cents, so such an expense could not be
    written without breaking the group's zero sum.
    """
    amount = to_decimal(expense["amount"])

    _require_cents(amount, "amount")
    for payer in expense["payers"]:
        _require_cents(to_decimal(payer["paid_amount"]), "payers.paid_amount")
    for member in expense["members"]:
        _require_cents(to_decimal(member["amount_owed"]), "members.amount_owed")

    paid = sum((to_decimal(p["paid_amount"]) for p in expense["payers"]), ZERO)
    if not nearly_equal(paid, amount):
        raise AllocationMismatch(
            f"Payers paid {paid} in total, but the expense amount is {amount}.",
            expected=amount,
            actual=paid,
            field="payers",
        )

    owed = sum((to_decimal(m["amount_owed"]) for m in expense["members"]), ZERO)
    if not nearly_equal(owed, amount):
        raise AllocationMismatch(
            f"Members owe {owed} in total, but the expense amount is {amount}.",
            expected=amount,
            actual=owed,
            field="members",
        )


def expense_deltas(expense: Mapping) -> dict[str, Decimal]:
    """
    Net change each user's balance receives from an expense.
    A user who both paid and took part gets paid_amount - amount_owed.
    """
    deltas: dict[str, Decimal] = defaultdict(Decimal)
    for member in expense["members"]:
        deltas[member["user_id"]] -= to_decimal(member["amount_owed"])
    for payer in expense["payers"]:
        deltas[payer["user_id"]] += to_decimal(payer["paid_amount"])
    return dict(deltas)


def _shift_balances(
        balances: Mapping[str, Decimal],
        deltas: Mapping[str, Decimal],
        sign: int,
) -> dict[str, Decimal]:
    updated = dict(balances)
    for user_id, delta in deltas.items():
        new_balance = updated.get(user_id, ZERO) + sign * delta
        if is_negligible(new_balance):
            updated.pop(user_id, None)
        else:
            updated[user_id] = new_balance
    return updated


def apply_expense_to_balances(
        balances: Mapping[str, Decimal],
        expense: Mapping,
) -> dict[str, Decimal]:
    """
    Returns the snapshot after applying `expense`. `balances` is not modified.
    A user with no prior balance starts from the signed delta.
    """
    return _shift_balances(balances, expense_deltas(expense), 1)


def reverse_expense_from_balances(
        balances: Mapping[str, Decimal],
        expense: Mapping,
) -> dict[str, Decimal]:
    """Exact inverse of apply_expense_to_balances()."""
    return _shift_balances(balances, expense_deltas(expense), -1)


# ── Data access helpers ────────────────────────────────────────────────────

def _lock_group_balances(group_id: str, session: Session) -> dict[str, Balance]:
    """
    Loads every balance row of a group with a row lock held until COMMIT,
    so concurrent ledger operations on the same group serialize here.
    """
    stmt = (
        select(Balance)
        .where(Balance.group_id == group_id)
        .with_for_update()
    )
    return {row.user_id: row for row in session.execute(stmt).scalars().all()}


def _write_balances(
        group_id: str,
        rows: dict[str, Balance],
        updated: Mapping[str, Decimal],
        session: Session,
) -> None:
    """Writes the difference between the locked rows and the new snapshot."""
    now = datetime.now(timezone.utc)

    for user_id, row in rows.items():
        if user_id not in updated:
            session.delete(row)
        elif row.amount != updated[user_id]:
            row.amount = updated[user_id]
            row.updated_at = now

    for user_id, amount in updated.items():
        if user_id not in rows:
            session.add(Balance(
                user_id=user_id,
                group_id=group_id,
                amount=amount,
                updated_at=now,
            ))

    session.flush()


def get_expense_or_404(
        expense_id: int,
        session: Session,
        for_update: bool = False,
) -> Expense:
    """
    Returns the Expense or raises EXPENSE_NOT_FOUND (404).

    With for_update=True the row stays locked until COMMIT. A concurrent
    delete of the same expense then waits here and, once the first one has
    committed, finds nothing and gets the 404.
    """
    if for_update:
        stmt = select(Expense).where(Expense.id == expense_id).with_for_update()
        expense = session.execute(stmt).scalar_one_or_none()
    else:
        expense = session.get(Expense, expense_id)
    if expense is None:
        raise AppError(
            ErrorCode.EXPENSE_NOT_FOUND,
            f"Expense {expense_id} does not exist.",
            404,
        )
    return expense


def get_group_balances(group_id: str, session: Session) -> dict[str, Decimal]:
    """Returns {user_id: amount} for every nonzero balance in a group."""
    stmt = (
        select(Balance)
        .where(Balance.group_id == group_id)
        .order_by(Balance.user_id)
    )
    return {row.user_id: row.amount for row in session.execute(stmt).scalars().all()}


# ── Persisted ledger operations ────────────────────────────────────────────

def apply_expense(
        group_id: str,
        data: dict,
        session: Session,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> Expense:
    """
    Records a new expense and applies it to the group's balances atomically.

    Args:
        group_id: The group the expense belongs to.
        data:     Allocated expense. Keys: title (str), amount (Decimal),
                  payers [{user_id, paid_amount}], members [{user_id, amount_owed}],
                  optional date (datetime), optional split_mode (SplitMode).

    Raises:
        AllocationMismatch -- payers or members do not add up to amount.
        InvalidSplitState  -- an amount has more than 2 decimal places.
        StorageError       -- the write kept conflicting with other writers.

    Returns:
        The committed Expense.
    """
    validate_expense_totals(data)

    def _work(session: Session) -> Expense:
        rows = _lock_group_balances(group_id, session)
        current = {user_id: row.amount for user_id, row in rows.items()}
        updated = apply_expense_to_balances(current, data)

        expense = Expense(
            group_id=group_id,
            title=data["title"],
            amount=to_decimal(data["amount"]),
            split_mode=data.get("split_mode") or SplitMode.CUSTOM,
            payers=[
                ExpensePayer(user_id=p["user_id"], paid_amount=to_decimal(p["paid_amount"]))
                for p in data["payers"]
            ],
            members=[
                ExpenseMember(user_id=m["user_id"], amount_owed=to_decimal(m["amount_owed"]))
                for m in data["members"]
            ],
        )
        if data.get("date") is not None:
            expense.date = data["date"]
        session.add(expense)

        _write_balances(group_id, rows, updated, session)
        return expense

    return run_transaction(session, _work, max_attempts)


def reverse_expense(
        expense_id: int,
        session: Session,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> None:
    """
    Deletes an expense and undoes its effect on the balances atomically.
    Balances that return to zero are deleted.

    Raises:
        AppError(EXPENSE_NOT_FOUND, 404) -- no such expense (already deleted).
        StorageError                     -- the write kept conflicting.
    """

    def _work(session: Session) -> None:
        expense = get_expense_or_404(expense_id, session, for_update=True)
        group_id = expense.group_id

        rows = _lock_group_balances(group_id, session)
        current = {user_id: row.amount for user_id, row in rows.items()}
        updated = reverse_expense_from_balances(current, expense.to_ledger_entry())

        session.delete(expense)
        _write_balances(group_id, rows, updated, session)

    run_transaction(session, _work, max_attempts)


# ── Read models ────────────────────────────────────────────────────────────

def get_balance_response(group_id: str, session: Session) -> dict:
    """
    Builds the payload for GET /groups/:id/balances.

    Asserts the zero-sum invariant on the stored snapshot. A group whose
    balances do not sum to zero has corrupt data: DriftError (500), never
    a silently wrong response.
    """
    balances = get_group_balances(group_id, session)
    balance_sum = sum(balances.values(), ZERO)

    if not is_negligible(balance_sum):
        raise DriftError(
            f"Balance integrity check failed: group {group_id} sums to "
            f"{balance_sum} (expected 0.00).",
            residual=balances,
        )

    return {
        "group_id": group_id,
        "balances": [
            {"user_id": user_id, "balance": str(amount)}
            for user_id, amount in balances.items()
        ],
        "balance_sum": str(balance_sum.quantize(Decimal("0.01"))),
    }


def get_user_totals(user_id: str, session: Session) -> dict:
    """
    Sums a user's balances across all groups.

    Returns:
        {"user_id", "owed": total others owe this user,
                    "owe":  total this user owes others}
    """
    stmt = select(Balance.amount).where(Balance.user_id == user_id)
    owed = ZERO
    owe = ZERO
    for amount in session.execute(stmt).scalars().all():
        if amount > 0:
            owed += amount
        elif amount < 0:
            owe += -amount

    return {"user_id": user_id, "owed": owed, "owe": owe}
