"""Sibling ordering shared by every read path."""

from __future__ import annotations

from typing import Iterable, List, Tuple, TypeVar

T = TypeVar("T")


def compare(a, b) -> int:
    """Order two siblings by ``position``, breaking ties on ``id``.

    Returns a negative number, zero or a positive number like a classic
    ``cmp`` function. Zero is only returned for the same identity.
    """

    if a.position != b.position:
        return -1 if a.position < b.position else 1
    if a.id != b.id:
        return -1 if a.id < b.id else 1
    return 0


def sort_key(item) -> Tuple[str, str]:
    """Key function equivalent to :func:`compare`."""
    return (item.position, item.id)


def sort_siblings(items: Iterable[T]) -> List[T]:
    """Return ``items`` as a new list in sibling order."""
    return sorted(items, key=sort_key)
