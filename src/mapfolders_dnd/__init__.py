"""Order keys and drag reconciliation for nested, reorderable lists."""

from .allocator import (
    Allocation,
    Allocator,
    first_position,
    last_position,
    position_after,
    position_before,
)
from .keys import (
    BASELINE_KEY,
    InvalidOrderKeyError,
    KeySpaceExhaustedError,
    OrderingError,
    is_valid_key,
    keys_between,
)
from .logic import HitTestResult, RowBounds, drop_target_at, hit_test_insertion
from .model import (
    UNASSIGNED,
    Folder,
    FolderTarget,
    Item,
    ItemTarget,
    Placement,
    PlacementCache,
    ZoneTarget,
)
from .ordering import compare, sort_siblings
from .reconciler import (
    DragReconciler,
    DragState,
    DropResult,
    FolderReconciler,
    PlacementPersistenceError,
)
from .signals import ReconcilerSignals, Signal

__all__ = [
    "Allocation",
    "Allocator",
    "BASELINE_KEY",
    "DragReconciler",
    "DragState",
    "DropResult",
    "Folder",
    "FolderReconciler",
    "FolderTarget",
    "HitTestResult",
    "InvalidOrderKeyError",
    "Item",
    "ItemTarget",
    "KeySpaceExhaustedError",
    "OrderingError",
    "Placement",
    "PlacementCache",
    "PlacementPersistenceError",
    "ReconcilerSignals",
    "RowBounds",
    "Signal",
    "UNASSIGNED",
    "ZoneTarget",
    "compare",
    "drop_target_at",
    "first_position",
    "hit_test_insertion",
    "is_valid_key",
    "keys_between",
    "last_position",
    "position_after",
    "position_before",
    "sort_siblings",
]
