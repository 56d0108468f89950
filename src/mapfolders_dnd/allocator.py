"""Position allocation for reorderable siblings.

Every function takes the sibling set of the *target* container, excluding
the entry being placed, and returns an :class:`Allocation`. The new key
never collides with an existing sibling key. When the gap at the requested
slot cannot hold another key within the configured length, the smallest
surrounding run of siblings is respaced and the allocation retried once;
the replacement keys are reported in ``Allocation.rebalanced``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from .keys import (
    DEFAULT_MAX_KEY_LENGTH,
    DEFAULT_REBALANCE_HEADROOM,
    KeySpaceExhaustedError,
    keys_between,
    validate_key,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Allocation:
    """A newly allocated key plus any sibling keys replaced to make room."""

    key: str
    rebalanced: Mapping[str, str] = field(default_factory=dict)


class Allocator:
    """Allocates order keys for one sibling namespace at a time."""

    def __init__(
        self,
        max_length: int = DEFAULT_MAX_KEY_LENGTH,
        headroom: int = DEFAULT_REBALANCE_HEADROOM,
    ):
        if max_length < 1:
            raise ValueError(f"max_length must be positive, got {max_length}")
        self.max_length = int(max_length)
        self.headroom = max(0, int(headroom))

    @classmethod
    def from_config(cls, config) -> "Allocator":
        """Build an allocator from ``ordering.*`` settings."""
        return cls(
            max_length=config.get_setting("ordering.max_key_length", DEFAULT_MAX_KEY_LENGTH),
            headroom=config.get_setting("ordering.rebalance_headroom", DEFAULT_REBALANCE_HEADROOM),
        )

    # ------------------------------------------------------------------ API
    def first_position(self, siblings: Iterable) -> Allocation:
        """Key before every sibling, or the baseline key when there are none."""
        return self._allocate(self._ordered(siblings), 0)

    def last_position(self, siblings: Iterable) -> Allocation:
        """Key after every sibling, or the baseline key when there are none."""
        ordered = self._ordered(siblings)
        return self._allocate(ordered, len(ordered))

    def position_after(self, anchor_key: str, siblings: Iterable) -> Allocation:
        """Key between ``anchor_key`` and the next greater sibling key.

        Falls back to :meth:`last_position` when no sibling holds
        ``anchor_key``.
        """
        ordered = self._ordered(siblings)
        if not any(item.position == anchor_key for item in ordered):
            logger.debug("Anchor %r not among siblings; appending", anchor_key)
            return self._allocate(ordered, len(ordered))
        index = sum(1 for item in ordered if item.position <= anchor_key)
        return self._allocate(ordered, index)

    def position_before(self, anchor_key: str, siblings: Iterable) -> Allocation:
        """Key between the previous lesser sibling key and ``anchor_key``."""
        ordered = self._ordered(siblings)
        if not any(item.position == anchor_key for item in ordered):
            logger.debug("Anchor %r not among siblings; appending", anchor_key)
            return self._allocate(ordered, len(ordered))
        index = sum(1 for item in ordered if item.position < anchor_key)
        return self._allocate(ordered, index)

    # ------------------------------------------------------------ internals
    @staticmethod
    def _ordered(siblings: Iterable) -> List:
        ordered = list(siblings)
        for item in ordered:
            validate_key(item.position)
        ordered.sort(key=lambda item: item.position)
        return ordered

    def _between(self, lower: Optional[str], upper: Optional[str], count: int = 1, headroom: int = 0) -> List[str]:
        if lower is not None and upper is not None and lower >= upper:
            # Colliding neighbours leave no gap until they are respaced.
            raise KeySpaceExhaustedError(f"No gap between {lower!r} and {upper!r}")
        return keys_between(lower, upper, count, max_length=self.max_length, headroom=headroom)

    def _allocate(self, ordered: Sequence, index: int) -> Allocation:
        lower = ordered[index - 1].position if index > 0 else None
        upper = ordered[index].position if index < len(ordered) else None
        try:
            return Allocation(self._between(lower, upper)[0])
        except KeySpaceExhaustedError:
            logger.debug("Gap between %r and %r exhausted; rebalancing", lower, upper)

        rebalanced = self._rebalance(ordered, index)

        def current(item) -> str:
            return rebalanced.get(item.id, item.position)

        lower = current(ordered[index - 1]) if index > 0 else None
        upper = current(ordered[index]) if index < len(ordered) else None
        try:
            key = self._between(lower, upper)[0]
        except KeySpaceExhaustedError as exc:
            raise KeySpaceExhaustedError(
                f"Allocation between {lower!r} and {upper!r} failed after rebalancing"
            ) from exc
        return Allocation(key, rebalanced)

    def _rebalance(self, ordered: Sequence, index: int) -> Dict[str, str]:
        """Respace the smallest run of siblings around ``index``.

        The window grows outwards, doubling each time, until the keys just
        outside it leave room for every sibling in it plus the open slot.
        """
        total = len(ordered)
        start = end = index
        width = 1
        while True:
            start = max(0, start - width)
            end = min(total, end + width)
            lower = ordered[start - 1].position if start > 0 else None
            upper = ordered[end].position if end < total else None
            window = ordered[start:end]
            try:
                keys = self._between(lower, upper, len(window) + 1, headroom=self.headroom)
            except KeySpaceExhaustedError:
                if start == 0 and end == total:
                    raise KeySpaceExhaustedError(
                        f"Cannot rebalance {total} siblings within {self.max_length} digits"
                    ) from None
                width *= 2
                continue
            del keys[index - start]
            logger.info(
                "Rebalanced %d sibling(s) between %r and %r", len(window), lower, upper
            )
            return {item.id: key for item, key in zip(window, keys)}


_default_allocator = Allocator()


def first_position(siblings: Iterable) -> Allocation:
    return _default_allocator.first_position(siblings)


def last_position(siblings: Iterable) -> Allocation:
    return _default_allocator.last_position(siblings)


def position_after(anchor_key: str, siblings: Iterable) -> Allocation:
    return _default_allocator.position_after(anchor_key, siblings)


def position_before(anchor_key: str, siblings: Iterable) -> Allocation:
    return _default_allocator.position_before(anchor_key, siblings)
