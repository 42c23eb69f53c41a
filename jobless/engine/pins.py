"""
jobless.engine.pins — Pin Slot Rules
=====================================

Pure helpers for the per-user pin state machine:
unpinned → pinned@k → unpinned, k ∈ {1, 2, 3}.  The Award Manager calls
these while holding the user's row lock.
"""

from __future__ import annotations

from collections.abc import Iterable

from jobless.constants import MAX_PINNED_BADGES, PIN_SLOTS


def next_free_slot(used: Iterable[int | None]) -> int | None:
    """Lowest slot in 1..3 not present in *used*, or None when all are taken.

    >>> next_free_slot({1, 3})
    2
    """
    taken = {slot for slot in used if slot is not None}
    for slot in PIN_SLOTS:
        if slot not in taken:
            return slot
    return None


def is_valid_slot(slot: int) -> bool:
    return slot in PIN_SLOTS


def at_capacity(pinned_count: int) -> bool:
    return pinned_count >= MAX_PINNED_BADGES
