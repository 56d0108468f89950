"""Tests for the sibling comparator."""

import itertools
import random

from mapfolders_dnd.model import Folder, Item
from mapfolders_dnd.ordering import compare, sort_key, sort_siblings


def _items():
    rng = random.Random(7)
    keys = ["1", "1V", "2", "V", "zz"]
    return [Item(f"i{index}", None, rng.choice(keys)) for index in range(12)]


def test_compare_orders_by_position_then_id():
    a = Item("b", None, "1")
    b = Item("a", None, "2")
    tie = Item("a", None, "1")

    assert compare(a, b) < 0
    assert compare(b, a) > 0
    assert compare(tie, a) < 0
    assert compare(a, a) == 0


def test_compare_is_a_strict_total_order():
    items = _items()

    for a, b in itertools.product(items, repeat=2):
        if a.id == b.id:
            assert compare(a, b) == 0
        else:
            assert compare(a, b) != 0
            assert compare(a, b) == -compare(b, a)

    for a, b, c in itertools.product(items, repeat=3):
        if compare(a, b) < 0 and compare(b, c) < 0:
            assert compare(a, c) < 0


def test_sort_siblings_matches_compare():
    items = _items()
    ordered = sort_siblings(items)

    for first, second in zip(ordered, ordered[1:]):
        assert compare(first, second) < 0
    assert [sort_key(item) for item in ordered] == sorted(sort_key(item) for item in items)


def test_sort_siblings_works_for_folders():
    folders = [Folder("b", "V"), Folder("a", "V"), Folder("c", "1")]

    assert [folder.id for folder in sort_siblings(folders)] == ["c", "a", "b"]
