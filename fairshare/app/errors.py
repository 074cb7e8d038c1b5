"""
errors.py — AppError base class, ledger error kinds and error code registry.

Every error returned by the FairShare API must use a code defined here.
Do not raise strings or generic exceptions from service or route code.

Rules:
  - New error codes require: add constant here + add a test.
  - Error codes are a versioned contract. They do not change once published.
  - Error messages are human-readable prose. They may be improved at any time.

The ledger core raises four kinds of error, each a subclass of AppError so
that the global Flask handler renders them without special cases:

  AllocationMismatch   member shares do not add up to the expense total
  InvalidSplitState    degenerate allocator input (no members, zero shares...)
  TransactionConflict  concurrent write collision on balance/expense records
  StorageError         conflicts kept happening after every retry
  DriftError           balances that should sum to zero do not
"""

from __future__ import annotations

from decimal import Decimal


class AppError(Exception):

    def __init__(
            self,
            code: str,
            message: str,
            http_status: int,
            field: str | None = None,
    ) -> None:
        super().__init__(message)
        self.code        = code
        self.message     = message
        self.http_status = http_status
        self.field       = field  # which request field caused the error

    def to_dict(self) -> dict:
        payload = {
            "code":    self.code,
            "message": self.message,
        }
        if self.field is not None:
            payload["field"] = self.field
        return {"error": payload}

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(code={self.code!r}, "
            f"http_status={self.http_status}, "
            f"message={self.message!r})"
        )


# ── Error Code Registry ────────────────────────────────────────────────────
#
# Organised by category. HTTP status is indicated in the comment.
#
# IMPORTANT: these are the string values sent in the API response.
# Do not rename them without a major version bump.
# ──────────────────────────────────────────────────────────────────────────

class ErrorCode:

    # ── Schema / Input Errors (400) ────────────────────────────────────────
    MISSING_FIELD              = "MISSING_FIELD"
    INVALID_FIELD              = "INVALID_FIELD"
    INVALID_AMOUNT_PRECISION   = "INVALID_AMOUNT_PRECISION"
    INVALID_SPLIT_MODE         = "INVALID_SPLIT_MODE"
    SPLIT_FIELD_MODE_MISMATCH  = "SPLIT_FIELD_MODE_MISMATCH"
    DUPLICATE_PAYER            = "DUPLICATE_PAYER"
    DUPLICATE_MEMBER           = "DUPLICATE_MEMBER"

    # ── Not Found Errors (404) ─────────────────────────────────────────────
    EXPENSE_NOT_FOUND          = "EXPENSE_NOT_FOUND"

    # ── Conflict Errors (409) ──────────────────────────────────────────────
    TRANSACTION_CONFLICT       = "TRANSACTION_CONFLICT"

    # ── Business Rule Violations (422) ────────────────────────────────────
    ALLOCATION_MISMATCH        = "ALLOCATION_MISMATCH"
    INVALID_SPLIT_STATE        = "INVALID_SPLIT_STATE"

    # ── System Errors (500 / 503) ──────────────────────────────────────────
    DRIFT_ERROR                = "DRIFT_ERROR"
    STORAGE_ERROR              = "STORAGE_ERROR"
    INTERNAL_ERROR             = "INTERNAL_ERROR"


# ── Ledger error kinds ─────────────────────────────────────────────────────

class AllocationMismatch(AppError):
    """The computed shares (or payments) do not equal the expense total."""

    def __init__(
            self,
            message: str,
            expected: Decimal | None = None,
            actual: Decimal | None = None,
            field: str | None = None,
    ) -> None:
        super().__init__(ErrorCode.ALLOCATION_MISMATCH, message, 422, field=field)
        self.expected = expected
        self.actual   = actual


class InvalidSplitState(AppError):

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(ErrorCode.INVALID_SPLIT_STATE, message, 422, field=field)


class TransactionConflict(AppError):
    """
    Two ledger operations collided on the same balance/expense records.
    Raised inside the transaction runner and retried there; callers only see
    it (as StorageError) once every attempt has failed.
    """

    def __init__(
            self,
            message: str,
            code: str = ErrorCode.TRANSACTION_CONFLICT,
            http_status: int = 409,
    ) -> None:
        super().__init__(code, message, http_status)


class StorageError(TransactionConflict):

    def __init__(self, message: str, attempts: int) -> None:
        super().__init__(message, code=ErrorCode.STORAGE_ERROR, http_status=503)
        self.attempts = attempts


class DriftError(AppError):
    """
    Balances that must sum to zero do not. `residual` maps each user to the
    amount left unsettled (positive for creditors, negative for debtors).
    """

    def __init__(self, message: str, residual: dict | None = None) -> None:
        super().__init__(ErrorCode.DRIFT_ERROR, message, 500)
        self.residual = residual or {}
