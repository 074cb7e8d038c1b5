"""
routes/expenses.py — Expense route handlers.

Registered at url_prefix=/api/v1 (not /api/v1/expenses) because this blueprint
owns BOTH the group-scoped paths (/groups/:id/expenses) and the
expense-ID paths (/expenses/:id). Registering at /api/v1/expenses would
make the group-scoped paths unreachable.

Layer rules:
  - Parse, validate, call ONE service, return envelope.
  - No business logic. No DB queries. No bare SQL.
  - No db.session.commit() here: ledger writes commit inside
    ledger_service through run_transaction(), which also owns retries.
  - _serialize_expense() is a pure data-shape helper — not business logic.

Endpoints:
  POST   /groups/:id/expenses   → 201  record expense, apply to balances
  GET    /groups/:id/expenses   → 200  list expenses, most recent first
  GET    /expenses/:id          → 200  get expense + payers + members
  DELETE /expenses/:id          → 200  delete expense, reverse its balances
"""

from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request

from fairshare.app.extensions import db
from fairshare.app.models.expense import Expense
from fairshare.app.schemas.expense_schema import CreateExpenseSchema
from fairshare.app.services import expense_service

expenses_bp = Blueprint("expenses", __name__)


# ── Serialization helper ───────────────────────────────────────────────────
# Pure data-shaping. No DB access, no logic. Amounts as strings.

def _serialize_expense(expense: Expense) -> dict:
    """Converts an Expense ORM object to a plain dict for JSON output."""
    return {
        "id": expense.id,
        "group_id": expense.group_id,
        "title": expense.title,
        "amount": str(expense.amount),                  # Decimal → string
        "split_mode": expense.split_mode.value,
        "date": expense.date.isoformat() if expense.date else None,
        "created_at": expense.created_at.isoformat() if expense.created_at else None,
        "payers": [
            {"user_id": p.user_id, "paid_amount": str(p.paid_amount)}
            for p in expense.payers
        ],
        "members": [
            {"user_id": m.user_id, "amount_owed": str(m.amount_owed)}
            for m in expense.members
        ],
    }


def _max_attempts() -> int:
    return current_app.config["LEDGER_MAX_TRANSACTION_ATTEMPTS"]


# ── Group-scoped expense routes ────────────────────────────────────────────

@expenses_bp.route("/groups/<group_id>/expenses", methods=["POST"])
def create_expense(group_id: str):
    """
    POST /groups/:id/expenses — Record a new expense.
    Members come either as explicit amounts or as a split block the server
    allocates ('equal', 'shares', 'unequal').
    """
    data = CreateExpenseSchema().load(request.get_json(force=True) or {})
    expense = expense_service.create_expense(
        group_id=group_id,
        data=data,
        session=db.session,
        max_attempts=_max_attempts(),
    )
    return jsonify({"data": _serialize_expense(expense), "warnings": []}), 201


@expenses_bp.route("/groups/<group_id>/expenses", methods=["GET"])
def list_expenses(group_id: str):
    """GET /groups/:id/expenses — List a group's expenses."""
    expenses = expense_service.list_expenses(
        group_id=group_id,
        session=db.session,
    )
    return jsonify({
        "data": [_serialize_expense(e) for e in expenses],
        "warnings": [],
    }), 200


# ── Expense-ID routes ──────────────────────────────────────────────────────

@expenses_bp.route("/expenses/<int:expense_id>", methods=["GET"])
def get_expense(expense_id: int):
    """GET /expenses/:id — Get expense detail including payers and members."""
    expense = expense_service.get_expense(
        expense_id=expense_id,
        session=db.session,
    )
    return jsonify({"data": _serialize_expense(expense), "warnings": []}), 200


@expenses_bp.route("/expenses/<int:expense_id>", methods=["DELETE"])
def delete_expense(expense_id: int):
    """
    DELETE /expenses/:id — Hard delete. The expense's payer/member rows go
    with it and every balance it touched is reversed in the same transaction.
    A second DELETE for the same id returns 404.
    """
    expense_service.delete_expense(
        expense_id=expense_id,
        session=db.session,
        max_attempts=_max_attempts(),
    )
    return jsonify({
        "data": {
            "deleted": True,
            "expense_id": expense_id,
        },
        "warnings": [],
    }), 200
