"""
tests/test_pins.py — Pin slot helpers
======================================
"""

from __future__ import annotations

from jobless.engine.pins import at_capacity, is_valid_slot, next_free_slot


class TestNextFreeSlot:
    def test_empty_gets_first_slot(self):
        assert next_free_slot([]) == 1

    def test_fills_lowest_gap(self):
        assert next_free_slot({1, 3}) == 2
        assert next_free_slot([2, 3]) == 1

    def test_full_returns_none(self):
        assert next_free_slot([1, 2, 3]) is None

    def test_ignores_unset_slots(self):
        assert next_free_slot([None, 1]) == 2


def test_valid_slots():
    assert [s for s in range(0, 5) if is_valid_slot(s)] == [1, 2, 3]


def test_capacity():
    assert not at_capacity(2)
    assert at_capacity(3)
