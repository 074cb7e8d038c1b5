"""
schemas/allocation_schema.py — Marshmallow schemas for split definitions.

Validation responsibility:
  - This file:
      - Field types, decimal precision, non-negative weights/amounts
      - INVALID_SPLIT_MODE         (400) — mode not one of equal/shares/unequal
      - SPLIT_FIELD_MODE_MISMATCH  (400) — e.g. `shares` sent with mode 'equal'
      - DUPLICATE_MEMBER           (400) — same user twice in member_ids
  - services/allocation_service.py:
      - INVALID_SPLIT_STATE  (422) — no included member, all-zero shares,
                                     ids that are not members
      - ALLOCATION_MISMATCH  (422) — shares do not add up to the total

post_load turns the flat payload into the tagged split dataclass, so services
never branch on mode strings.

IMPORTANT: Inherits from marshmallow.Schema directly — never ma.Schema.
           See extensions.py for the full explanation.
"""

from __future__ import annotations

from decimal import Decimal

from marshmallow import (
    Schema,
    ValidationError,
    fields,
    post_load,
    validate,
    validates_schema,
)

from fairshare.app.errors import ErrorCode
from fairshare.app.models.expense import SplitMode
from fairshare.app.services.allocation_service import (
    EqualSplit,
    SharesSplit,
    UnequalSplit,
)

_ALLOCATABLE_MODES = [SplitMode.EQUAL.value, SplitMode.SHARES.value, SplitMode.UNEQUAL.value]

# Which optional field belongs to which mode.
_MODE_FIELDS = {
    "excluded": SplitMode.EQUAL.value,
    "shares":   SplitMode.SHARES.value,
    "amounts":  SplitMode.UNEQUAL.value,
}


def _validate_non_negative_amount(value: Decimal) -> None:
    """
    Validates a monetary Decimal that may be zero (a member's share, a total
    being composed):
      - Must be >= 0.
      - Must have at most 2 decimal places — rejected, never rounded.
    """
    if value < Decimal("0"):
        raise ValidationError("Amount must not be negative.")
    if value.as_tuple().exponent < -2:
        raise ValidationError(ErrorCode.INVALID_AMOUNT_PRECISION)


def _validate_user_id(value: str) -> None:
    if not value.strip():
        raise ValidationError("user_id must not be blank.")


class SplitSchema(Schema):
    """
    How an expense total is divided, without the total itself.

      {"mode": "equal",   "member_ids": [...], "excluded": [...]}
      {"mode": "shares",  "member_ids": [...], "shares":  {"u1": 2, "u2": 1}}
      {"mode": "unequal", "member_ids": [...], "amounts": {"u1": "12.50"}}

    Loads to {"member_ids": [...], "split": EqualSplit | SharesSplit | UnequalSplit}.
    """

    mode = fields.Str(
        required=True,
        validate=validate.OneOf(_ALLOCATABLE_MODES, error=ErrorCode.INVALID_SPLIT_MODE),
    )

    member_ids = fields.List(
        fields.Str(validate=[validate.Length(max=128), _validate_user_id]),
        required=True,
        validate=validate.Length(min=1, error="At least one member is required."),
    )

    excluded = fields.List(fields.Str())

    shares = fields.Dict(
        keys=fields.Str(),
        values=fields.Int(
            strict=True,
            validate=validate.Range(min=0, error="Shares must be 0 or more."),
        ),
    )

    amounts = fields.Dict(
        keys=fields.Str(),
        values=fields.Decimal(validate=_validate_non_negative_amount),
    )

    @validates_schema(skip_on_field_errors=True)
    def validate_mode_fields(self, data: dict, **kwargs) -> None:
        for field_name, owner_mode in _MODE_FIELDS.items():
            if field_name in data and data["mode"] != owner_mode:
                raise ValidationError(
                    ErrorCode.SPLIT_FIELD_MODE_MISMATCH,
                    field_name=field_name,
                )

        member_ids = data["member_ids"]
        if len(set(member_ids)) != len(member_ids):
            raise ValidationError(ErrorCode.DUPLICATE_MEMBER, field_name="member_ids")

    @post_load
    def build_split(self, data: dict, **kwargs) -> dict:
        mode = SplitMode(data.pop("mode"))
        if mode == SplitMode.EQUAL:
            split = EqualSplit(excluded=frozenset(data.pop("excluded", [])))
        elif mode == SplitMode.SHARES:
            split = SharesSplit(shares=dict(data.pop("shares", {})))
        else:
            split = UnequalSplit(amounts=dict(data.pop("amounts", {})))
        data["split"] = split
        return data


class AllocationRequestSchema(SplitSchema):
    """
    POST /allocations — preview how a total would be split.

    Loads to {"total": Decimal, "member_ids": [...], "split": ...}.
    """

    total = fields.Decimal(
        required=True,
        validate=_validate_non_negative_amount,
    )
