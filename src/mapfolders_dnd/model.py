"""Plain data shared by the allocator, the comparator and the reconcilers."""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Literal, Mapping, Optional, Union

ContainerId = Optional[str]
Position = Literal["above", "below"]
Zone = Literal["header", "footer"]


@dataclass(frozen=True)
class Item:
    """A reorderable leaf (a placed marker)."""

    id: str
    container_id: ContainerId
    position: str

    def moved(self, container_id: ContainerId, position: str) -> "Item":
        return replace(self, container_id=container_id, position=position)


@dataclass(frozen=True)
class Folder:
    """A container; folder positions form their own namespace."""

    id: str
    position: str

    def moved(self, position: str) -> "Folder":
        return replace(self, position=position)


@dataclass(frozen=True)
class ItemTarget:
    """Hovering over another item.

    ``position`` selects the side of the target item. ``None`` lets the
    reconciler pick: below when the dragged item currently sorts before the
    target, above otherwise.
    """

    item_id: str
    position: Optional[Position] = None

    def __post_init__(self):
        if self.position not in (None, "above", "below"):
            raise ValueError(f"Unsupported position '{self.position}'")


@dataclass(frozen=True)
class ZoneTarget:
    """Hovering over a container's header (first slot) or footer (last slot)."""

    container_id: ContainerId
    zone: Zone = "header"

    def __post_init__(self):
        if self.zone not in ("header", "footer"):
            raise ValueError(f"Unsupported zone '{self.zone}'")


# The "unassigned" drop zone places items first among unassigned items.
UNASSIGNED = ZoneTarget(None, "header")


@dataclass(frozen=True)
class FolderTarget:
    """Hovering over another folder while dragging a folder."""

    folder_id: str
    position: Optional[Position] = None

    def __post_init__(self):
        if self.position not in (None, "above", "below"):
            raise ValueError(f"Unsupported position '{self.position}'")


DropTarget = Union[ItemTarget, ZoneTarget]


@dataclass(frozen=True)
class Placement:
    """Where a dragged entry lands.

    ``container_id`` is always ``None`` for folder placements.
    ``rebalanced`` maps sibling ids to replacement keys when the allocator
    had to respace neighbours.
    """

    id: str
    container_id: ContainerId
    position: str
    rebalanced: Mapping[str, str] = field(default_factory=dict)


class PlacementCache:
    """Committed local view of items and folders.

    The external data layer loads it; reconcilers write optimistic
    placements into it on drop. Containers are independent ordering
    namespaces keyed by ``container_id``.
    """

    def __init__(self, items: Iterable[Item] = (), folders: Iterable[Folder] = ()):
        self._items: Dict[str, Item] = {}
        self._folders: Dict[str, Folder] = {}
        self.load_items(items)
        self.load_folders(folders)

    def load_items(self, items: Iterable[Item]) -> None:
        self._items = {item.id: item for item in items}

    def load_folders(self, folders: Iterable[Folder]) -> None:
        self._folders = {folder.id: folder for folder in folders}

    def items(self) -> List[Item]:
        return list(self._items.values())

    def folders(self) -> List[Folder]:
        return list(self._folders.values())

    def get_item(self, item_id: str) -> Optional[Item]:
        return self._items.get(item_id)

    def get_folder(self, folder_id: str) -> Optional[Folder]:
        return self._folders.get(folder_id)

    def siblings(self, container_id: ContainerId, exclude: Optional[str] = None) -> List[Item]:
        return [
            item
            for item in self._items.values()
            if item.container_id == container_id and item.id != exclude
        ]

    def has_container(self, container_id: ContainerId) -> bool:
        if container_id is None or container_id in self._folders:
            return True
        return any(item.container_id == container_id for item in self._items.values())

    def upsert_item(self, item: Item) -> None:
        self._items[item.id] = item

    def remove_item(self, item_id: str) -> Optional[Item]:
        return self._items.pop(item_id, None)

    def upsert_folder(self, folder: Folder) -> None:
        self._folders[folder.id] = folder

    def remove_folder(self, folder_id: str) -> Optional[Folder]:
        return self._folders.pop(folder_id, None)

    def apply_item_placement(self, placement: Placement) -> None:
        item = self._items.get(placement.id)
        if item is not None:
            self._items[item.id] = item.moved(placement.container_id, placement.position)
        for sibling_id, key in placement.rebalanced.items():
            sibling = self._items.get(sibling_id)
            if sibling is not None:
                self._items[sibling_id] = sibling.moved(sibling.container_id, key)

    def apply_folder_placement(self, placement: Placement) -> None:
        folder = self._folders.get(placement.id)
        if folder is not None:
            self._folders[folder.id] = folder.moved(placement.position)
        for sibling_id, key in placement.rebalanced.items():
            sibling = self._folders.get(sibling_id)
            if sibling is not None:
                self._folders[sibling_id] = sibling.moved(key)
