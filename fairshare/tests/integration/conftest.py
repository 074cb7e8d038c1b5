"""
tests/integration/conftest.py — Fixtures and helpers for all integration tests.

Design:
  - Tests run against TEST_DATABASE_URL, an in-memory SQLite database by
    default (Flask-SQLAlchemy keeps a single shared connection for it).
    Point TEST_DATABASE_URL at PostgreSQL to exercise the row locks as well.
  - The app is created once per session using create_app("testing").
  - All tables are created once via db.create_all() at session start.
  - Between tests, all rows are deleted in FK-safe order so tests are isolated.

Helper functions (not fixtures) are provided for common operations:
  - make_expense(client, group_id, ...)       → HTTP response
  - equal_expense(client, group_id, ...)      → created expense dict
  - get_balances(client, group_id)            → {user_id: Decimal}
  - get_settlements(client, group_id)         → HTTP response
  - delete_expense(client, expense_id)        → HTTP response

These are plain functions (not pytest fixtures) so they can be called with
arbitrary arguments in any test without fixture parameterization overhead.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from fairshare.app import create_app
from fairshare.app.extensions import db as _db


# ═══════════════════════════════════════════════════════════════════════════
# Session-scoped app fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(scope="session")
def app():
    """
    Creates the Flask application in 'testing' mode once for the entire test session.

    Steps:
      1. Create app with TestingConfig.
      2. Run db.create_all() to create all tables.
      3. Yield the app for the test session.
      4. Drop all tables at teardown.
    """
    flask_app = create_app("testing")

    with flask_app.app_context():
        _db.create_all()

    yield flask_app

    with flask_app.app_context():
        _db.drop_all()


# ═══════════════════════════════════════════════════════════════════════════
# Function-scoped test isolation
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture(autouse=True)
def clean_tables(app):
    """
    Deletes all rows after every test in FK-safe order.

    autouse=True means this runs around EVERY test in the integration suite
    without needing to be declared in each test function.

    Payer and member rows are deleted before the expenses they reference.
    """
    yield  # run the test

    with app.app_context():
        _db.session.rollback()  # discard any uncommitted state from a failed test

        from sqlalchemy import text
        with _db.engine.connect() as conn:
            conn.execute(text("DELETE FROM expense_payers"))
            conn.execute(text("DELETE FROM expense_members"))
            conn.execute(text("DELETE FROM expenses"))
            conn.execute(text("DELETE FROM balances"))
            conn.commit()


# ═══════════════════════════════════════════════════════════════════════════
# Client fixture
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client(app):
    """Flask test client. Each test gets a fresh client (function-scoped)."""
    return app.test_client()


# ═══════════════════════════════════════════════════════════════════════════
# Shared helper functions (not fixtures)
# ═══════════════════════════════════════════════════════════════════════════

def make_expense(
    client,
    group_id: str,
    amount: str,
    payers: list[dict],
    members: list[dict] | None = None,
    split: dict | None = None,
    title: str = "Test Expense",
    date: str | None = None,
):
    """
    Creates an expense and returns the HTTP response.
    Pass either members (explicit {user_id, amount_owed} rows) or split
    ({mode, member_ids, ...}, allocated by the server).
    """
    payload: dict = {
        "title": title,
        "amount": amount,
        "payers": payers,
    }
    if members is not None:
        payload["members"] = members
    if split is not None:
        payload["split"] = split
    if date is not None:
        payload["date"] = date

    return client.post(f"/api/v1/groups/{group_id}/expenses", json=payload)


def equal_expense(
    client,
    group_id: str,
    payer: str,
    amount: str,
    member_ids: list[str],
    title: str = "Test Expense",
) -> dict:
    """One payer covers `amount`, split equally between member_ids. Returns the expense."""
    resp = make_expense(
        client,
        group_id,
        amount=amount,
        payers=[{"user_id": payer, "paid_amount": amount}],
        split={"mode": "equal", "member_ids": member_ids},
        title=title,
    )
    assert resp.status_code == 201, f"equal_expense failed: {resp.get_json()}"
    return resp.get_json()["data"]


def get_balances(client, group_id: str) -> dict[str, Decimal]:
    """Returns {user_id: Decimal} from GET /groups/:id/balances."""
    resp = client.get(f"/api/v1/groups/{group_id}/balances")
    assert resp.status_code == 200, f"get_balances failed: {resp.get_json()}"
    return {
        row["user_id"]: Decimal(row["balance"])
        for row in resp.get_json()["data"]["balances"]
    }


def get_settlements(client, group_id: str):
    return client.get(f"/api/v1/groups/{group_id}/settlements")


def delete_expense(client, expense_id: int):
    return client.delete(f"/api/v1/expenses/{expense_id}")
