"""
transactions.py — Transactional unit-of-work runner for ledger writes.

Ledger operations must commit all of their writes together or none of them.
run_transaction() gives them that contract on top of a SQLAlchemy session:

    result = run_transaction(session, work, max_attempts=5)

  1. Calls work(session). The work function reads (with row locks), writes
     and flushes, but never commits.
  2. Commits. On any exception the session is rolled back, so a partially
     applied operation is never visible to anyone.
  3. If the failure is a write conflict (see _is_conflict), the whole unit
     of work is re-run from scratch, up to max_attempts times in total.
     Exhausting the attempts raises StorageError.
  4. Any other failure (AppError from a service, a genuine integrity bug,
     ...) is re-raised unchanged after the rollback.

This is the only place in the codebase that commits on behalf of a service.
Routes that call ledger operations therefore do NOT commit themselves.
"""

from __future__ import annotations

import logging
from typing import Callable, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session

from fairshare.app.errors import StorageError, TransactionConflict

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 5

# PostgreSQL SQLSTATEs that mean "someone else got there first, try again".
_RETRYABLE_PGCODES = {
    "40001",  # serialization_failure
    "40P01",  # deadlock_detected
}

# Unique constraints hit when two transactions create the same record at once.
_RACE_CONSTRAINTS = (
    "uq_balances_user_group",
    "balances.user_id, balances.group_id",  # SQLite spelling of the same constraint
)


def _is_conflict(exc: DBAPIError) -> bool:
    """True when exc is a write collision that a retry can resolve."""
    orig = getattr(exc, "orig", None)
    pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if pgcode in _RETRYABLE_PGCODES:
        return True

    text = str(orig if orig is not None else exc)
    if isinstance(exc, IntegrityError):
        return any(name in text for name in _RACE_CONSTRAINTS)
    if isinstance(exc, OperationalError):
        return "database is locked" in text
    return False


def run_transaction(
        session: Session,
        work: Callable[[Session], T],
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
) -> T:
    """
    Runs work(session) and commits it as one atomic unit, retrying on conflict.

    Raises:
        StorageError -- every attempt ended in a TransactionConflict.
        Anything work() raises that is not a conflict, after rollback.
    """
    max_attempts = max(max_attempts, 1)
    last_conflict: TransactionConflict | None = None

    for attempt in range(1, max_attempts + 1):
        try:
            result = work(session)
            session.commit()
            return result
        except TransactionConflict as conflict:
            session.rollback()
            last_conflict = conflict
        except DBAPIError as exc:
            session.rollback()
            if not _is_conflict(exc):
                raise
            last_conflict = TransactionConflict(
                f"Concurrent update on ledger records: {exc.orig}"
            )
        except Exception:
            session.rollback()
            raise

        logger.warning(
            "Ledger transaction conflict (attempt %d of %d): %s",
            attempt,
            max_attempts,
            last_conflict.message,
        )

    raise StorageError(
        f"Ledger update failed after {max_attempts} attempts because of "
        f"concurrent changes. Please try again.",
        attempts=max_attempts,
    ) from last_conflict
