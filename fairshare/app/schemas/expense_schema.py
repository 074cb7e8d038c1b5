"""
schemas/expense_schema.py — Marshmallow schemas for expense endpoints.

Validation responsibility:
  - This file:
      - Field types, lengths, decimal precision (max 2 dp, never rounded)
      - DUPLICATE_PAYER / DUPLICATE_MEMBER (400) — request shape rules
      - Exactly one of `members` (explicit owed amounts) or `split`
        (server-side allocation) must be present
      - Non-empty-after-trim enforcement for title
  - services/ledger_service.py:
      - ALLOCATION_MISMATCH (422) — payers/members must add up to amount;
        requires Decimal arithmetic across the whole payload
  - services/allocation_service.py:
      - INVALID_SPLIT_STATE (422) — degenerate split definitions

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import (
    Schema,
    ValidationError,
    fields,
    validate,
    validates_schema,
)

from fairshare.app.errors import ErrorCode
from fairshare.app.schemas.allocation_schema import SplitSchema


# ── Shared monetary amount validators ─────────────────────────────────────
#
# More than 2 decimal places is REJECTED with INVALID_AMOUNT_PRECISION,
# never rounded or truncated.
# ──────────────────────────────────────────────────────────────────────────

def _validate_monetary_amount(value: Decimal) -> None:
    """
    Validates a strictly positive monetary Decimal:
      - Must be greater than zero.
      - Must have at most 2 decimal places.

    The route error handler detects INVALID_AMOUNT_PRECISION by matching the
    raised ValidationError message to the known ErrorCode constant.
    """
    if value <= Decimal("0"):
        raise ValidationError("Amount must be greater than zero.")

    # Decimal("10.123").as_tuple().exponent == -3  → 3 dp → REJECT
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def _validate_owed_amount(value: Decimal) -> None:
    """Like _validate_monetary_amount, but 0.00 is allowed (excluded member)."""
    if value < Decimal("0"):
        raise ValidationError("Amount must not be negative.")
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def _validate_non_empty_after_trim(value: str) -> None:
    """
    validate.Length(min=1) alone allows whitespace-only strings like "   ".
    Mirrors the DB CHECK(LENGTH(TRIM(...)) > 0) constraint at the API layer.
    """
    if not value.strip():
        raise ValidationError("This field must not be blank or contain only whitespace.")


def _first_duplicate(user_ids: list[str]) -> str | None:
    seen = set()
    for user_id in user_ids:
        if user_id in seen:
            return user_id
        seen.add(user_id)
    return None


# ── Sub-schemas ────────────────────────────────────────────────────────────

class PayerInputSchema(Schema):

    user_id = fields.Str(
        required=True,
        validate=[validate.Length(max=128), _validate_non_empty_after_trim],
    )

    paid_amount = fields.Decimal(
        required=True,
        validate=_validate_monetary_amount,
    )


class MemberInputSchema(Schema):

    user_id = fields.Str(
        required=True,
        validate=[validate.Length(max=128), _validate_non_empty_after_trim],
    )

    amount_owed = fields.Decimal(
        required=True,
        validate=_validate_owed_amount,
    )


# ── Create expense ─────────────────────────────────────────────────────────

class CreateExpenseSchema(Schema):
    """
    POST /groups/:id/expenses

    Split definition — send exactly one of:
      - members: [{user_id, amount_owed}]  explicit amounts (split_mode 'custom')
      - split:   {mode, member_ids, ...}   allocated server-side
                                           (see allocation_schema.SplitSchema)

    Checks NOT in this schema (belong in services):
      - sum(payers.paid_amount) == amount   → ledger_service.py
      - sum(members.amount_owed) == amount  → ledger_service.py
    """

    title = fields.Str(
        required=True,
        validate=[
            validate.Length(min=1, max=255),
            _validate_non_empty_after_trim,
        ],
    )

    amount = fields.Decimal(
        required=True,
        validate=_validate_monetary_amount,
    )

    # When the expense happened. Defaults to the time it is recorded.
    date = fields.DateTime(load_default=None)

    payers = fields.List(
        fields.Nested(PayerInputSchema),
        required=True,
        validate=validate.Length(min=1, error="At least one payer is required."),
    )

    members = fields.List(
        fields.Nested(MemberInputSchema),
        validate=validate.Length(min=1, error="At least one member is required."),
    )

    split = fields.Nested(SplitSchema)

    @validates_schema(skip_on_field_errors=True)
    def validate_split_definition(self, data: dict, **kwargs) -> None:
        has_members = "members" in data
        has_split = "split" in data

        if has_members and has_split:
            raise ValidationError(
                "Send either members or split, not both.",
                field_name="split",
            )
        if not has_members and not has_split:
            raise ValidationError(
                "Missing data for required field: send members or split.",
                field_name="members",
            )

        if _first_duplicate([p["user_id"] for p in data["payers"]]) is not None:
            raise ValidationError(ErrorCode.DUPLICATE_PAYER, field_name="payers")

        if has_members and _first_duplicate([m["user_id"] for m in data["members"]]) is not None:
            raise ValidationError(ErrorCode.DUPLICATE_MEMBER, field_name="members")
