"""Add balance zero-sum integrity trigger.

Revision: 002_add_balance_zero_sum_trigger
Created:  2026-10-19

The service layer keeps sum(balances.amount) == 0 for every group
(ledger_service.validate_expense_totals() runs before any write). This
migration adds the database-side check, so a write that bypasses the
service layer cannot leave a group out of balance either.

Why a trigger and not a CHECK constraint:
  PostgreSQL CHECK constraints are evaluated per-row in isolation and cannot
  aggregate sibling rows. An AFTER row-level trigger can.

Trigger design:
  Function : fn_check_balance_zero_sum()
    - Determines the affected group_id from NEW (INSERT/UPDATE) or
      OLD (DELETE).
    - Sums balances.amount for that group.
    - Raises EXCEPTION (SQLSTATE '23514' — check_violation) if the absolute
      sum is 0.01 or more.

  Trigger  : trg_balances_zero_sum_check
    - AFTER INSERT OR UPDATE OR DELETE ON balances
    - FOR EACH ROW
    - DEFERRABLE INITIALLY DEFERRED

  Deferred execution:
    ledger_service writes one balance row at a time (update, insert or
    delete per user). Between those statements the group is temporarily out
    of balance. The trigger fires at COMMIT, when all rows are written.

Append-only:
  This file must NEVER be edited after it has been applied to any database.
  If a change is needed, create a new corrective migration.
"""

from __future__ import annotations

from alembic import op

# ── Alembic revision identifiers ──────────────────────────────────────────
revision: str = "002_add_balance_zero_sum_trigger"
down_revision: str | None = "001_initial_schema"
branch_labels: tuple | None = None
depends_on: tuple | None = None


# ── SQL definitions ────────────────────────────────────────────────────────

_CREATE_FUNCTION = """
CREATE OR REPLACE FUNCTION fn_check_balance_zero_sum()
RETURNS TRIGGER
LANGUAGE plpgsql
AS $$
DECLARE
    v_group_id  VARCHAR(128);
    v_sum       NUMERIC(14, 2);
BEGIN
    IF TG_OP = 'DELETE' THEN
        v_group_id := OLD.group_id;
    ELSE
        v_group_id := NEW.group_id;
    END IF;

    -- COALESCE: a group whose last balance was just deleted sums to 0.
    SELECT COALESCE(SUM(amount), 0)
    INTO v_sum
    FROM balances
    WHERE group_id = v_group_id;

    IF ABS(v_sum) >= 0.01 THEN
        RAISE EXCEPTION
            'Balance drift: balances of group % sum to % (expected 0.00)',
            v_group_id, v_sum
            USING ERRCODE = '23514';  -- check_violation
    END IF;

    IF TG_OP = 'DELETE' THEN
        RETURN OLD;
    ELSE
        RETURN NEW;
    END IF;
END;
$$;
"""

_CREATE_TRIGGER = """
CREATE CONSTRAINT TRIGGER trg_balances_zero_sum_check
    AFTER INSERT OR UPDATE OR DELETE
    ON balances
    DEFERRABLE INITIALLY DEFERRED
    FOR EACH ROW
    EXECUTE FUNCTION fn_check_balance_zero_sum();
"""

_DROP_TRIGGER = "DROP TRIGGER IF EXISTS trg_balances_zero_sum_check ON balances;"
_DROP_FUNCTION = "DROP FUNCTION IF EXISTS fn_check_balance_zero_sum();"


def upgrade() -> None:
    """
    Creates the zero-sum trigger and its backing function.

    After this migration, any transaction that leaves a group's balances
    summing to a nonzero amount fails at commit with SQLSTATE 23514.
    """
    op.execute(_CREATE_FUNCTION)
    op.execute(_CREATE_TRIGGER)


def downgrade() -> None:
    """Trigger first (it references the function), then the function."""
    op.execute(_DROP_TRIGGER)
    op.execute(_DROP_FUNCTION)
