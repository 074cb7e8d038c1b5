"""
services/expense_service.py — Expense use cases for the HTTP layer.

Thin orchestration over the allocator and the ledger:

  create_expense  allocate (when a split block is given) → ledger.apply_expense
  delete_expense  ledger.reverse_expense
  list_expenses / get_expense  read-only queries

An expense is created either with explicit `members` (split_mode 'custom'),
or with a `split` block ({mode, member_ids, excluded | shares | amounts}) that
is turned into members here by allocation_service.allocate(). Either way the
ledger re-validates the totals before writing.

Layer rules:
  - No Flask imports. No current_app, request, g, or HTTP knowledge.
  - Commits happen inside ledger_service via run_transaction(); this module
    never commits on its own.
"""

from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from fairshare.app.models.expense import Expense, SplitMode
from fairshare.app.services import allocation_service, ledger_service
from fairshare.app.transactions import DEFAULT_MAX_ATTEMPTS


def _resolve_members(data: dict) -> tuple[list[dict], SplitMode]:
    """Returns (members, split_mode) for a validated CreateExpenseSchema payload."""
    split_block = data.get("split")
    if split_block is None:
        return data["members"], SplitMode.CUSTOM

    split = split_block["split"]
    members = allocation_service.allocate(
        data["amount"],
        split_block["member_ids"],
        split,
    )
    return members, split.mode


def create_expense(
        group_id: str,
        data: dict,
        session: Session,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> Expense:
    """
    Records a new expense for a group and updates the group's balances.

    Args:
        group_id: The group this expense belongs to.
        data:     Validated dict from CreateExpenseSchema.

    Raises:
        InvalidSplitState / AllocationMismatch -- from the allocator or ledger.
        StorageError -- the ledger write kept conflicting.
    """
    members, split_mode = _resolve_members(data)

    ledger_data = {
        "title": data["title"],
        "amount": data["amount"],
        "date": data.get("date"),
        "split_mode": split_mode,
        "payers": data["payers"],
        "members": members,
    }
    return ledger_service.apply_expense(group_id, ledger_data, session, max_attempts)


def delete_expense(
        expense_id: int,
        session: Session,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> None:
    """
    Deletes an expense and reverses its balance changes.

    Not idempotent: the row is gone after the first call, so a
    second call raises EXPENSE_NOT_FOUND instead of reversing twice.
    """
    ledger_service.reverse_expense(expense_id, session, max_attempts)


def list_expenses(group_id: str, session: Session) -> list[Expense]:
    """Returns all expenses of a group, most recent first."""
    stmt = (
        select(Expense)
        .where(Expense.group_id == group_id)
        .order_by(Expense.date.desc(), Expense.id.desc())
    )
    return list(session.execute(stmt).scalars().all())


def get_expense(expense_id: int, session: Session) -> Expense:
    """Returns a single expense with its payers and members."""
    return ledger_service.get_expense_or_404(expense_id, session)
