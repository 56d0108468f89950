"""Pure helpers translating pointer positions into drop targets."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, Sequence

from .model import ContainerId, DropTarget, ItemTarget, Position, ZoneTarget

RowKind = Literal["item", "header", "footer"]


@dataclass(frozen=True)
class RowBounds:
    """Geometry metadata for hit-testing rendered sidebar rows.

    ``key`` is the item id for item rows. Header and footer rows describe
    the drop zones of ``container_id`` (``None`` for the unassigned group).
    """

    key: str
    top: float
    height: float
    kind: RowKind = "item"
    container_id: ContainerId = None


@dataclass(frozen=True)
class HitTestResult:
    """Result of translating a pointer Y coordinate to an insertion slot."""

    row: RowBounds
    position: Position

    @property
    def key(self) -> str:
        return self.row.key


def hit_test_insertion(rows: Sequence[RowBounds], pointer_y: float) -> Optional[HitTestResult]:
    """Return which row the insertion line should target for a given pointer Y.

    Rows are ordered by their top coordinate. If ``pointer_y`` lies before all
    rows the first row is returned with ``position='above'``; beyond the final
    row, the last row with ``position='below'``.
    """

    if not rows:
        return None

    pointer = float(pointer_y)
    ordered = sorted(rows, key=lambda r: (r.top, r.height))

    first = ordered[0]
    if pointer <= first.top:
        return HitTestResult(first, "above")

    for row in ordered:
        height = max(0.0, float(row.height))
        bottom = row.top + height

        if height <= 0.0:
            # Treat zero-height rows as infinitesimal lines.
            if pointer <= row.top:
                return HitTestResult(row, "above")
            continue

        mid = row.top + (height / 2.0)

        if pointer < mid:
            return HitTestResult(row, "above")
        if pointer <= bottom:
            return HitTestResult(row, "below")

    return HitTestResult(ordered[-1], "below")


def drop_target_at(rows: Sequence[RowBounds], pointer_y: float) -> Optional[DropTarget]:
    """Map a pointer Y coordinate to the target passed to a reconciler.

    Item rows yield an :class:`ItemTarget` on the hit side; header and footer
    rows yield the matching :class:`ZoneTarget` whatever the side.
    """

    hit = hit_test_insertion(rows, pointer_y)
    if hit is None:
        return None
    if hit.row.kind == "item":
        return ItemTarget(hit.row.key, hit.position)
    return ZoneTarget(hit.row.container_id, hit.row.kind)
