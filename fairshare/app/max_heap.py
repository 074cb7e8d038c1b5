"""
max_heap.py — Array-backed binary max-heap of (user_id, amount) entries.

Built on heapq (a min-heap over a plain list) by storing negated amounts.
An insertion counter breaks ties so user ids are never compared; among equal
amounts the earliest inserted entry comes out first. Callers must not rely
on that order.
"""

from __future__ import annotations

import heapq
import itertools
from decimal import Decimal
from typing import NamedTuple


class HeapEntry(NamedTuple):
    user_id: str
    amount: Decimal


class MaxHeap:

    def __init__(self, entries=None) -> None:
        self._heap: list[tuple[Decimal, int, str]] = []
        self._counter = itertools.count()
        for user_id, amount in entries or ():
            self.insert(user_id, amount)

    def insert(self, user_id: str, amount: Decimal) -> None:
        """O(log n)."""
        heapq.heappush(self._heap, (-amount, next(self._counter), user_id))

    def extract_max(self) -> HeapEntry:
        """Removes and returns the largest entry. O(log n). IndexError when empty."""
        if not self._heap:
            raise IndexError("extract_max from an empty heap")
        neg_amount, _, user_id = heapq.heappop(self._heap)
        return HeapEntry(user_id, -neg_amount)

    def peek(self) -> HeapEntry | None:
        """Returns the largest entry without removing it, or None when empty."""
        if not self._heap:
            return None
        neg_amount, _, user_id = self._heap[0]
        return HeapEntry(user_id, -neg_amount)

    def drain(self) -> list[HeapEntry]:
        """Empties the heap, returning its entries largest first."""
        entries = []
        while self._heap:
            entries.append(self.extract_max())
        return entries

    def __len__(self) -> int:
        return len(self._heap)

    def __bool__(self) -> bool:
        return bool(self._heap)

    def __repr__(self) -> str:  # pragma: no cover
        return f"<MaxHeap size={len(self._heap)} peek={self.peek()}>"
