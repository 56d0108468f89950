"""Tests for sibling position allocation and rebalancing."""

from __future__ import annotations

import random

import pytest

from mapfolders_dnd.allocator import (
    Allocator,
    first_position,
    last_position,
    position_after,
    position_before,
)
from mapfolders_dnd.keys import InvalidOrderKeyError, KeySpaceExhaustedError, is_valid_key
from mapfolders_dnd.model import Item
from mapfolders_dnd.ordering import sort_siblings


def _siblings(*pairs):
    return [Item(item_id, None, key) for item_id, key in pairs]


def test_empty_container_gets_baseline_key():
    assert first_position([]).key == "V"
    assert last_position([]).key == "V"


def test_last_position_sorts_after_every_sibling():
    siblings = _siblings(("a", "5"), ("b", "9"))

    allocation = last_position(siblings)

    assert allocation.key > "9"
    assert not allocation.rebalanced


def test_first_position_sorts_before_every_sibling():
    siblings = _siblings(("a", "5"), ("b", "9"))

    assert first_position(siblings).key < "5"


def test_position_before_lands_between_neighbours():
    siblings = _siblings(("a", "1"), ("b", "2"))

    allocation = position_before("2", siblings)

    assert "1" < allocation.key < "2"
    assert allocation.key == "1V"


def test_position_after_lands_between_neighbours():
    siblings = _siblings(("a", "1"), ("b", "2"), ("c", "5"))

    assert "2" < position_after("2", siblings).key < "5"
    assert position_after("5", siblings).key > "5"


def test_unknown_anchor_falls_back_to_last_position():
    siblings = _siblings(("a", "1"), ("b", "2"))

    assert position_after("V", siblings).key > "2"
    assert position_before("V", siblings).key > "2"


def test_invalid_sibling_key_is_rejected():
    with pytest.raises(InvalidOrderKeyError):
        last_position(_siblings(("a", "10")))


def test_exhausted_gap_rebalances_neighbours():
    allocator = Allocator(max_length=2, headroom=0)
    siblings = _siblings(("a", "1"), ("b", "11"), ("c", "2"))

    allocation = allocator.position_before("11", siblings)

    assert allocation.rebalanced
    replaced = {item.id: allocation.rebalanced.get(item.id, item.position) for item in siblings}
    keys = sorted([allocation.key, *replaced.values()])
    assert len(set(keys)) == 4
    assert replaced["a"] < allocation.key < replaced["b"] < replaced["c"]
    assert all(len(key) <= 2 and is_valid_key(key) for key in keys)


def test_colliding_siblings_still_get_a_distinct_key():
    siblings = _siblings(("a", "V"), ("b", "V"))

    after = position_after("V", siblings)
    before = position_before("V", siblings)

    assert after.key > "V"
    assert before.key < "V"
    assert not after.rebalanced and not before.rebalanced


def test_rebalance_fails_when_container_cannot_fit():
    allocator = Allocator(max_length=1, headroom=0)
    digits = "123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
    siblings = [Item(f"i{n}", None, key) for n, key in enumerate(digits)]

    with pytest.raises(KeySpaceExhaustedError):
        allocator.first_position(siblings)


def test_allocator_reads_ordering_settings(dummy_config):
    dummy_config.set_setting('ordering.max_key_length', 6)
    dummy_config.set_setting('ordering.rebalance_headroom', 1)

    allocator = Allocator.from_config(dummy_config)

    assert allocator.max_length == 6
    assert allocator.headroom == 1


def _apply(items, allocation, new_id):
    updated = [
        Item(item.id, item.container_id, allocation.rebalanced.get(item.id, item.position))
        for item in items
    ]
    updated.append(Item(new_id, None, allocation.key))
    return updated


def test_thousand_inserts_before_first_item_stay_ordered():
    allocator = Allocator()
    items = [Item("seed", None, allocator.last_position([]).key)]
    rebalances = 0

    for index in range(1000):
        allocation = allocator.first_position(items)
        if allocation.rebalanced:
            rebalances += 1
        items = _apply(items, allocation, f"n{index}")
        assert allocation.key == min(item.position for item in items)

    assert rebalances >= 1
    keys = [item.position for item in items]
    assert len(set(keys)) == len(keys)
    assert all(is_valid_key(key) and len(key) <= allocator.max_length for key in keys)
    expected = [f"n{index}" for index in reversed(range(1000))] + ["seed"]
    assert [item.id for item in sort_siblings(items)] == expected


def test_random_operations_match_reference_list():
    rng = random.Random(1234)
    allocator = Allocator(max_length=2, headroom=1)
    items = []
    expected = []
    rebalances = 0

    for step in range(600):
        by_id = {item.id: item for item in items}
        operation = rng.random()
        if expected and operation < 0.15:
            victim = rng.choice(expected)
            expected.remove(victim)
            items = [item for item in items if item.id != victim]
            continue

        if expected and operation < 0.55:
            item_id = rng.choice(expected)
            expected.remove(item_id)
            items = [item for item in items if item.id != item_id]
        else:
            item_id = f"n{step}"

        slot = rng.randint(0, len(expected))
        if not expected:
            allocation = allocator.last_position(items)
        elif slot == len(expected):
            allocation = allocator.position_after(by_id[expected[-1]].position, items)
        elif slot == 0:
            allocation = allocator.first_position(items)
        else:
            allocation = allocator.position_before(by_id[expected[slot]].position, items)

        if allocation.rebalanced:
            rebalances += 1
        items = _apply(items, allocation, item_id)
        expected.insert(slot, item_id)

        keys = [item.position for item in items]
        assert len(set(keys)) == len(keys)
        assert all(is_valid_key(key) and len(key) <= 2 for key in keys)
        assert [item.id for item in sort_siblings(items)] == expected

    assert rebalances >= 1
