"""
services/allocation_service.py — Expense Allocator.

Turns an expense total and a split mode into the amount each member owes.

Split modes are a tagged union of frozen dataclasses. Each variant carries
only the data its mode needs, so e.g. share weights can never be attached to
an equal split:

  EqualSplit(excluded)   total / included_count for every included member
  SharesSplit(shares)    total * shares_i / sum(shares); missing weight = 1
  UnequalSplit(amounts)  edited members keep their amount; the rest share
                         what is left equally (0 each when nothing is left)

Money is apportioned in whole cents with the largest-remainder method, so for
equal and shares splits sum(owed) == total exactly and no member is more than
one cent away from the exact quotient.

Guarantee: allocate() never returns shares that miss the total by EPSILON or
more. It raises AllocationMismatch instead and never rounds silently.

ExpenseDraft is the interactive working state used while a user composes an
expense (toggle members, bump shares, type amounts). It recomputes the running
split after every change and hands a split to allocate() on submit().

Layer rules:
  - No Flask imports, no DB access. Pure and synchronous.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Mapping, Union

from fairshare.app.errors import AllocationMismatch, InvalidSplitState
from fairshare.app.models.expense import SplitMode
from fairshare.app.money import (
    ZERO,
    apportion,
    has_sub_cent_digits,
    nearly_equal,
    to_decimal,
)

DEFAULT_SHARES = 1


# ── Split variants ─────────────────────────────────────────────────────────

@dataclass(frozen=True)
class EqualSplit:
    excluded: frozenset[str] = frozenset()

    mode = SplitMode.EQUAL


@dataclass(frozen=True)
class SharesSplit:
    shares: Mapping[str, int] = field(default_factory=dict)

    mode = SplitMode.SHARES


@dataclass(frozen=True)
class UnequalSplit:
    # Only the members the user edited by hand.
    amounts: Mapping[str, Decimal] = field(default_factory=dict)

    mode = SplitMode.UNEQUAL


Split = Union[EqualSplit, SharesSplit, UnequalSplit]


# ── Private helpers ────────────────────────────────────────────────────────

def _validate_members(member_ids: list[str]) -> None:
    if not member_ids:
        raise InvalidSplitState(
            "An expense must be split between at least one member.",
            field="member_ids",
        )
    if len(set(member_ids)) != len(member_ids):
        raise InvalidSplitState(
            "The same member appears more than once.",
            field="member_ids",
        )


def _validate_total(total: Decimal) -> None:
    if total < ZERO:
        raise InvalidSplitState("The expense total cannot be negative.", field="total")
    if has_sub_cent_digits(total):
        raise InvalidSplitState(
            f"The expense total {total} has more than 2 decimal places.",
            field="total",
        )


def _require_known(ids, member_ids: list[str], field_name: str) -> None:
    unknown = sorted(set(ids) - set(member_ids))
    if unknown:
        raise InvalidSplitState(
            f"{', '.join(unknown)} {'is' if len(unknown) == 1 else 'are'} "
            f"not part of this expense.",
            field=field_name,
        )


def _validate_edited_amount(uid: str, amount: Decimal) -> None:
    if amount < ZERO:
        raise InvalidSplitState(
            f"The amount for {uid} cannot be negative.",
            field="amounts",
        )
    if has_sub_cent_digits(amount):
        raise InvalidSplitState(
            f"The amount for {uid} has more than 2 decimal places.",
            field="amounts",
        )


def _equal_amounts(total: Decimal, member_ids: list[str], split: EqualSplit) -> dict[str, Decimal]:
    _require_known(split.excluded, member_ids, "excluded")
    included = [uid for uid in member_ids if uid not in split.excluded]
    if not included:
        raise InvalidSplitState(
            "At least one member must be included in an equal split.",
            field="excluded",
        )

    owed = {uid: ZERO for uid in member_ids}
    owed.update(apportion(total, {uid: 1 for uid in included}))
    return owed


def _shares_amounts(total: Decimal, member_ids: list[str], split: SharesSplit) -> dict[str, Decimal]:
    _require_known(split.shares, member_ids, "shares")
    weights = {uid: split.shares.get(uid, DEFAULT_SHARES) for uid in member_ids}

    for uid, weight in weights.items():
        if isinstance(weight, bool) or not isinstance(weight, int) or weight < 0:
            raise InvalidSplitState(
                f"Shares for {uid} must be a whole number of at least 0.",
                field="shares",
            )
    if sum(weights.values()) == 0:
        raise InvalidSplitState(
            "At least one member must hold a share.",
            field="shares",
        )

    return apportion(total, weights)


def _unequal_amounts(total: Decimal, member_ids: list[str], split: UnequalSplit) -> dict[str, Decimal]:
    _require_known(split.amounts, member_ids, "amounts")
    edited = {uid: to_decimal(amount) for uid, amount in split.amounts.items()}
    for uid, amount in edited.items():
        _validate_edited_amount(uid, amount)

    owed = {uid: edited.get(uid, ZERO) for uid in member_ids}
    owed.update(distribute_remaining(total, member_ids, edited))
    return owed


def distribute_remaining(
        total: Decimal,
        member_ids: list[str],
        edited: Mapping[str, Decimal],
) -> dict[str, Decimal]:
    """
    Shares what the edited members leave of `total` equally among the rest.

    Returns amounts for the non-edited members only (empty when every member
    was edited; nothing is recomputed in that case). When the edited amounts
    already exceed the total, the rest get 0 and the mismatch is left for
    allocate() to report.
    """
    remaining_ids = [uid for uid in member_ids if uid not in edited]
    if not remaining_ids:
        return {}

    remaining = total - sum(edited.values(), ZERO)
    if remaining < ZERO:
        return {uid: ZERO for uid in remaining_ids}
    return apportion(remaining, {uid: 1 for uid in remaining_ids})


def _check_total(total: Decimal, owed: dict[str, Decimal]) -> None:
    allocated = sum(owed.values(), ZERO)
    if not nearly_equal(allocated, total):
        raise AllocationMismatch(
            f"Member shares add up to {allocated}, "
            f"but the expense total is {total}.",
            expected=total,
            actual=allocated,
            field="members",
        )


# ── Public service functions ───────────────────────────────────────────────

def allocate(total, member_ids: list[str], split: Split) -> list[dict]:
    """
    Computes what each member owes for an expense of `total`.

    Args:
        total:      Expense total. Decimal (int/str accepted), >= 0, cents.
        member_ids: Everyone taking part, in display order.
        split:      EqualSplit | SharesSplit | UnequalSplit.

    Returns:
        [{"user_id": str, "amount_owed": Decimal}, ...] in member_ids order.
        Members excluded from the split are present with 0.00.

    Raises:
        InvalidSplitState  -- degenerate input (no members, no included
                              member, all-zero shares, unknown ids...).
        AllocationMismatch -- shares do not add up to the total (only
                              reachable for unequal splits).
    """
    total = to_decimal(total)
    _validate_total(total)
    _validate_members(member_ids)

    if isinstance(split, EqualSplit):
        owed = _equal_amounts(total, member_ids, split)
    elif isinstance(split, SharesSplit):
        owed = _shares_amounts(total, member_ids, split)
    elif isinstance(split, UnequalSplit):
        owed = _unequal_amounts(total, member_ids, split)
    else:
        raise InvalidSplitState(f"Unsupported split {split!r}.", field="mode")

    _check_total(total, owed)
    return [{"user_id": uid, "amount_owed": owed[uid]} for uid in member_ids]


# ── Interactive draft ──────────────────────────────────────────────────────

@dataclass
class MemberShare:
    user_id: str
    equal_amount: Decimal = ZERO
    shares: int = DEFAULT_SHARES
    unequal_amount: Decimal = ZERO
    included: bool = True
    edited: bool = False


class ExpenseDraft:
    """
    Working state of an expense being composed.

    All members start included, with one share and no edited amount. Every
    mutator recomputes the running split for the active mode, so the
    `members` list always reflects what the user would see on screen.
    """

    def __init__(
            self,
            member_ids: list[str],
            total=ZERO,
            mode: SplitMode = SplitMode.EQUAL,
    ) -> None:
        _validate_members(member_ids)
        if mode not in (SplitMode.EQUAL, SplitMode.SHARES, SplitMode.UNEQUAL):
            raise InvalidSplitState(f"Unsupported split mode {mode!r}.", field="mode")

        self.total = to_decimal(total)
        self.mode = mode
        self.members = [MemberShare(user_id=uid) for uid in member_ids]
        self._recompute()

    # ── lookups ────────────────────────────────────────────────────────────

    @property
    def member_ids(self) -> list[str]:
        return [m.user_id for m in self.members]

    def member(self, user_id: str) -> MemberShare:
        for share in self.members:
            if share.user_id == user_id:
                return share
        raise InvalidSplitState(f"{user_id} is not part of this expense.", field="user_id")

    @property
    def total_shares(self) -> int:
        return sum(m.shares for m in self.members)

    # ── mutators ───────────────────────────────────────────────────────────

    def set_total(self, total) -> None:
        self.total = to_decimal(total)
        self._recompute()

    def set_mode(self, mode: SplitMode) -> None:
        if mode not in (SplitMode.EQUAL, SplitMode.SHARES, SplitMode.UNEQUAL):
            raise InvalidSplitState(f"Unsupported split mode {mode!r}.", field="mode")
        if self.mode == SplitMode.UNEQUAL and mode != SplitMode.UNEQUAL:
            for share in self.members:
                share.edited = False
        self.mode = mode
        self._recompute()

    def toggle_inclusion(self, user_id: str) -> None:
        """Only meaningful for equal splits; ignored in the other modes."""
        if self.mode != SplitMode.EQUAL:
            return
        share = self.member(user_id)
        share.included = not share.included
        self._recompute()

    def set_shares(self, user_id: str, value: int) -> None:
        """Negative values are ignored."""
        share = self.member(user_id)
        if value < 0:
            return
        share.shares = value

    def increment_shares(self, user_id: str) -> None:
        self.set_shares(user_id, self.member(user_id).shares + 1)

    def decrement_shares(self, user_id: str) -> None:
        self.set_shares(user_id, self.member(user_id).shares - 1)

    def edit_amount(self, user_id: str, value) -> None:
        """
        Pins a member's amount. Negative or sub-cent values raise
        InvalidSplitState and leave the draft unchanged.
        """
        share = self.member(user_id)
        amount = to_decimal(value)
        _validate_edited_amount(user_id, amount)
        share.unequal_amount = amount
        share.edited = True
        self._recompute()

    # ── split construction ─────────────────────────────────────────────────

    def split_state(self) -> Split:
        if self.mode == SplitMode.EQUAL:
            return EqualSplit(
                excluded=frozenset(m.user_id for m in self.members if not m.included)
            )
        if self.mode == SplitMode.SHARES:
            return SharesSplit(shares={m.user_id: m.shares for m in self.members})
        return UnequalSplit(
            amounts={m.user_id: m.unequal_amount for m in self.members if m.edited}
        )

    def preview(self) -> dict[str, Decimal]:
        """
        Running per-member amounts for the active mode, without validation.
        Shares with an all-zero weight total preview as 0 for everyone.
        """
        if self.mode == SplitMode.EQUAL:
            return {m.user_id: m.equal_amount for m in self.members}
        if self.mode == SplitMode.UNEQUAL:
            return {m.user_id: m.unequal_amount for m in self.members}
        if self.total_shares == 0 or self.total < ZERO:
            return {m.user_id: ZERO for m in self.members}
        return apportion(self.total, {m.user_id: m.shares for m in self.members})

    def submit(self) -> list[dict]:
        """Validates and returns the final allocation. See allocate()."""
        return allocate(self.total, self.member_ids, self.split_state())

    # ── internals ──────────────────────────────────────────────────────────

    def _recompute(self) -> None:
        if self.total < ZERO:
            return
        if self.mode == SplitMode.EQUAL:
            self._recompute_equal()
        elif self.mode == SplitMode.UNEQUAL:
            self._recompute_unequal()

    def _recompute_equal(self) -> None:
        included = [m.user_id for m in self.members if m.included]
        amounts = apportion(self.total, {uid: 1 for uid in included}) if included else {}
        for share in self.members:
            share.equal_amount = amounts.get(share.user_id, ZERO)

    def _recompute_unequal(self) -> None:
        edited = {m.user_id: m.unequal_amount for m in self.members if m.edited}
        amounts = distribute_remaining(self.total, self.member_ids, edited)
        for share in self.members:
            if not share.edited:
                share.unequal_amount = amounts[share.user_id]
