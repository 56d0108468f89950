"""Marker and folder store for mapfolders.

This module provides the :class:`Board`, which keeps placed markers and
their folders in a JSON file, owns the local placement cache and wires the
marker and folder drag reconcilers to it. The board's async placement
methods are the persistence collaborators the reconcilers call on drop.
"""

import asyncio
import json
import logging
import os
import uuid
from typing import Dict, List, Optional

from mapfolders_dnd import (
    Allocator,
    DragReconciler,
    DropResult,
    Folder,
    FolderReconciler,
    Item,
    PlacementCache,
    PlacementPersistenceError,
    is_valid_key,
)

from .config import Config
from .platform_utils import get_data_dir

logger = logging.getLogger(__name__)

BOARD_VERSION = 1


class BoardError(Exception):
    """Base class for board failures reported to the user."""


class UnknownMarkerError(BoardError, LookupError):
    pass


class UnknownFolderError(BoardError, LookupError):
    pass


class FolderNotEmptyError(BoardError):
    pass


class DuplicateFolderError(BoardError, ValueError):
    pass


class BoardStorageError(BoardError):
    pass


class Board:
    """Placed markers organised into ordered folders"""

    def __init__(self, config: Optional[Config] = None, path: Optional[str] = None, *, loop=None):
        self.config = config or Config()
        self.path = path or self.config.get_setting('board.path') or os.path.join(get_data_dir(), 'board.json')
        self.folders: Dict[str, dict] = {}  # folder_id -> folder record
        self.markers: Dict[str, dict] = {}  # marker_id -> marker record
        self.allocator = Allocator.from_config(self.config)
        self.cache = PlacementCache()
        self._pending = set()
        # Respaced sibling keys waiting for the placement call that caused them
        self._staged_marker_keys: Dict[Optional[str], Dict[str, str]] = {}
        self._staged_folder_keys: Dict[str, str] = {}
        self._load_board()

        self.marker_reconciler = DragReconciler(
            self.cache,
            self.update_item_placement,
            persist_rebalanced=self.persist_rebalanced_markers,
            allocator=self.allocator,
            loop=loop,
        )
        self.folder_reconciler = FolderReconciler(
            self.cache,
            self.update_folder_placement,
            persist_rebalanced=self.persist_rebalanced_folders,
            allocator=self.allocator,
            loop=loop,
        )
        self.marker_reconciler.signals.dropped.connect(self._on_marker_dropped)

    # ------------------------------------------------------------- storage
    def _load_board(self):
        """Load folders and markers from the board file"""
        folders: Dict[str, dict] = {}
        markers: Dict[str, dict] = {}
        if os.path.exists(self.path):
            try:
                with open(self.path, 'r') as f:
                    data = json.load(f)
                folders = {k: v for k, v in data.get('folders', {}).items() if isinstance(v, dict)}
                markers = {k: v for k, v in data.get('markers', {}).items() if isinstance(v, dict)}
            except (OSError, ValueError, AttributeError) as e:
                logger.error(f"Failed to load board from {self.path}: {e}")
                folders, markers = {}, {}

        for records in (folders, markers):
            for record_id, record in records.items():
                record['id'] = record_id

        self.folders = folders
        self.markers = markers
        repaired = self._repair_records()
        self._refresh_cache()
        if repaired:
            self._save_board()

    def _repair_records(self) -> bool:
        """Detach markers from missing folders and re-key invalid positions"""
        repaired = False
        for marker in self.markers.values():
            folder_id = marker.get('folder_id')
            if folder_id is not None and folder_id not in self.folders:
                logger.warning("Marker %s referenced missing folder %s; unassigning", marker.get('id'), folder_id)
                marker['folder_id'] = None
                repaired = True

        # Legacy numeric positions keep their relative order when re-keyed
        def legacy_order(record):
            position = record.get('position')
            number = position if isinstance(position, (int, float)) and not isinstance(position, bool) else 0
            return (number, str(record.get('id')))

        invalid_folders = [f for f in self.folders.values() if not is_valid_key(f.get('position'))]
        valid_folders = [f for f in self.folders.values() if is_valid_key(f.get('position'))]
        for folder in sorted(invalid_folders, key=legacy_order):
            folder['position'] = self.allocator.last_position(self._as_folders(valid_folders)).key
            valid_folders.append(folder)
            repaired = True

        invalid_markers = [m for m in self.markers.values() if not is_valid_key(m.get('position'))]
        for marker in sorted(invalid_markers, key=legacy_order):
            siblings = [
                m for m in self.markers.values()
                if m.get('folder_id') == marker.get('folder_id') and is_valid_key(m.get('position'))
            ]
            marker['position'] = self.allocator.last_position(self._as_items(siblings)).key
            repaired = True

        if repaired:
            logger.info("Repaired board records in %s", self.path)
        return repaired

    def _save_board(self):
        """Save folders and markers to the board file"""
        data = {
            'version': BOARD_VERSION,
            'folders': self.folders,
            'markers': self.markers,
        }
        tmp_path = f"{self.path}.tmp"
        try:
            os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
            with open(tmp_path, 'w') as f:
                json.dump(data, f, indent=2)
            os.replace(tmp_path, self.path)
        except OSError as e:
            logger.error(f"Failed to save board to {self.path}: {e}")
            raise BoardStorageError(f"Failed to save board to {self.path}: {e}") from e
        logger.debug("Board saved to %s", self.path)

    def reload(self):
        """Re-read the board file, replacing the local cache"""
        self._load_board()

    def _refresh_cache(self):
        self.cache.load_folders(self._as_folders(self.folders.values()))
        self.cache.load_items(self._as_items(self.markers.values()))

    @staticmethod
    def _as_items(records) -> List[Item]:
        return [Item(r['id'], r.get('folder_id'), r['position']) for r in records]

    @staticmethod
    def _as_folders(records) -> List[Folder]:
        return [Folder(r['id'], r['position']) for r in records]

    # ----------------------------------------------------------- lifecycle
    def folder_name_exists(self, name: str) -> bool:
        """Check if a folder name already exists"""
        for folder in self.folders.values():
            if folder.get('name', '').lower() == name.lower():
                return True
        return False

    def create_folder(self, name: str, color: str = None, notes: str = "") -> str:
        """Create a new folder after the existing ones and return its ID"""
        if self.folder_name_exists(name):
            raise DuplicateFolderError(f"Folder name '{name}' already exists")

        folder_id = str(uuid.uuid4())
        allocation = self.allocator.last_position(self.cache.folders())
        self._apply_folder_keys(allocation.rebalanced)
        self.folders[folder_id] = {
            'id': folder_id,
            'name': name,
            'notes': notes,
            'color': color,
            'hide_markers': False,
            'position': allocation.key,
        }
        self.cache.upsert_folder(Folder(folder_id, allocation.key))
        self._save_board()
        logger.info("Created folder %s (%s)", name, folder_id)
        return folder_id

    def delete_folder(self, folder_id: str):
        """Delete an empty folder"""
        if folder_id not in self.folders:
            raise UnknownFolderError(f"Unknown folder '{folder_id}'")
        # Dropped markers count even while their placement is still being saved
        if self.cache.siblings(folder_id) or any(m.get('folder_id') == folder_id for m in self.markers.values()):
            raise FolderNotEmptyError(
                f"Folder '{self.folders[folder_id].get('name', folder_id)}' still contains markers"
            )
        del self.folders[folder_id]
        self.cache.remove_folder(folder_id)
        self._save_board()

    def add_marker(self, label: str, folder_id: str = None, notes: str = "", marker_id: str = None) -> str:
        """Create a marker at the end of its folder and return its ID"""
        if folder_id is not None and folder_id not in self.folders:
            raise UnknownFolderError(f"Unknown folder '{folder_id}'")

        marker_id = marker_id or str(uuid.uuid4())
        if marker_id in self.markers:
            raise BoardError(f"Marker '{marker_id}' already exists")

        allocation = self.allocator.last_position(self.cache.siblings(folder_id))
        self._apply_marker_keys(allocation.rebalanced)
        self.markers[marker_id] = {
            'id': marker_id,
            'label': label,
            'notes': notes,
            'folder_id': folder_id,
            'position': allocation.key,
            'color': None,
        }
        self.cache.upsert_item(Item(marker_id, folder_id, allocation.key))
        self._save_board()
        return marker_id

    def delete_marker(self, marker_id: str):
        if marker_id not in self.markers:
            raise UnknownMarkerError(f"Unknown marker '{marker_id}'")
        del self.markers[marker_id]
        self.cache.remove_item(marker_id)
        self._save_board()

    def rename_folder(self, folder_id: str, name: str):
        """Rename a folder, keeping names unique"""
        folder = self._folder(folder_id)
        if name.lower() != folder.get('name', '').lower() and self.folder_name_exists(name):
            raise DuplicateFolderError(f"Folder name '{name}' already exists")
        folder['name'] = name
        self._save_board()

    def update_folder_color(self, folder_id: str, color: str = None):
        """Update the colour given to markers later dropped into a folder"""
        self._folder(folder_id)['color'] = color or None
        self._save_board()

    def set_folder_hide_markers(self, folder_id: str, hidden: bool):
        """Set whether a folder's markers are hidden from the map"""
        self._folder(folder_id)['hide_markers'] = bool(hidden)
        self._save_board()

    def update_marker(self, marker_id: str, label: str = None, notes: str = None):
        """Change a marker's label and/or notes"""
        marker = self.markers.get(marker_id)
        if marker is None:
            raise UnknownMarkerError(f"Unknown marker '{marker_id}'")
        if label is not None:
            marker['label'] = label
        if notes is not None:
            marker['notes'] = notes
        self._save_board()

    def _folder(self, folder_id: str) -> dict:
        folder = self.folders.get(folder_id)
        if folder is None:
            raise UnknownFolderError(f"Unknown folder '{folder_id}'")
        return folder

    def resolve_folder(self, ref: str) -> str:
        """Return the folder ID matching an ID or a (case-insensitive) name"""
        if ref in self.folders:
            return ref
        for folder_id, folder in self.folders.items():
            if folder.get('name', '').lower() == ref.lower():
                return folder_id
        raise UnknownFolderError(f"Unknown folder '{ref}'")

    def resolve_marker(self, ref: str) -> str:
        """Return the marker ID matching an ID or a unique label"""
        if ref in self.markers:
            return ref
        matches = [m['id'] for m in self.markers.values() if m.get('label', '').lower() == ref.lower()]
        if len(matches) == 1:
            return matches[0]
        if matches:
            raise BoardError(f"Marker label '{ref}' is ambiguous; use its ID")
        raise UnknownMarkerError(f"Unknown marker '{ref}'")

    # --------------------------------------------------------------- moves
    def move_marker(self, marker_id: str, target) -> Optional[DropResult]:
        """Move a marker as a single drag gesture onto ``target``"""
        if marker_id not in self.markers:
            raise UnknownMarkerError(f"Unknown marker '{marker_id}'")
        return self._move(self.marker_reconciler, marker_id, target, "marker")

    def move_folder(self, folder_id: str, target) -> Optional[DropResult]:
        """Move a folder as a single drag gesture onto ``target``"""
        if folder_id not in self.folders:
            raise UnknownFolderError(f"Unknown folder '{folder_id}'")
        return self._move(self.folder_reconciler, folder_id, target, "folder")

    def _move(self, reconciler, active_id: str, target, kind: str) -> Optional[DropResult]:
        try:
            reconciler.check_event_loop()
        except RuntimeError as e:
            raise BoardError(f"Cannot move {kind} '{active_id}' without a running event loop") from e
        if not reconciler.on_drag_start(active_id):
            raise BoardError(f"Another {kind} is being dragged")
        try:
            result = reconciler.on_drag_end(target)
        except PlacementPersistenceError as e:
            self.track_pending(e.pending)
            raise
        return self.track(result)

    def track(self, result: Optional[DropResult]) -> Optional[DropResult]:
        """Remember a drop's pending persistence so :meth:`drain` can await it"""
        for pending in (getattr(result, 'rebalance_pending', None), getattr(result, 'pending', None)):
            self.track_pending(pending)
        return result

    def track_pending(self, pending):
        if isinstance(pending, asyncio.Future):
            self._pending.add(pending)
            pending.add_done_callback(self._pending.discard)

    async def drain(self) -> List[BaseException]:
        """Wait for every tracked persistence call; return their failures"""
        failures: List[BaseException] = []
        while self._pending:
            batch = list(self._pending)
            self._pending.difference_update(batch)
            results = await asyncio.gather(*batch, return_exceptions=True)
            failures.extend(r for r in results if isinstance(r, BaseException))
        return failures

    # --------------------------------------------------------------- reads
    def ordered_folders(self) -> List[dict]:
        result = []
        for folder in self.folder_reconciler.get_ordered_folders():
            record = self.folders.get(folder.id)
            if record is not None:
                result.append({**record, 'position': folder.position})
        return result

    def ordered_markers(self, folder_id: str = None) -> List[dict]:
        result = []
        for item in self.marker_reconciler.get_ordered_items(folder_id):
            record = self.markers.get(item.id)
            if record is not None:
                result.append({**record, 'folder_id': item.container_id, 'position': item.position})
        return result

    # --------------------------------------------------------- persistence
    async def update_item_placement(self, marker_id: str, folder_id: Optional[str], position: str) -> dict:
        # Respaced siblings and the placement land in the same save
        self._apply_marker_keys(self._staged_marker_keys.pop(folder_id, {}), update_cache=False)
        marker = self.markers.get(marker_id)
        if marker is None:
            raise UnknownMarkerError(f"Unknown marker '{marker_id}'")
        if folder_id is not None and folder_id not in self.folders:
            raise UnknownFolderError(f"Unknown folder '{folder_id}'")
        marker['folder_id'] = folder_id
        marker['position'] = position
        self._save_board()
        return dict(marker)

    async def update_folder_placement(self, folder_id: str, position: str) -> dict:
        staged, self._staged_folder_keys = self._staged_folder_keys, {}
        self._apply_folder_keys(staged, update_cache=False)
        folder = self.folders.get(folder_id)
        if folder is None:
            raise UnknownFolderError(f"Unknown folder '{folder_id}'")
        folder['position'] = position
        self._save_board()
        return dict(folder)

    def persist_rebalanced_markers(self, folder_id: Optional[str], rebalanced: Dict[str, str]):
        """Stage respaced marker keys for the placement call that follows"""
        self._staged_marker_keys.setdefault(folder_id, {}).update(rebalanced)

    def persist_rebalanced_folders(self, _container_id, rebalanced: Dict[str, str]):
        """Stage respaced folder keys for the placement call that follows"""
        self._staged_folder_keys.update(rebalanced)

    def _apply_marker_keys(self, rebalanced: Dict[str, str], update_cache: bool = True):
        for marker_id, key in rebalanced.items():
            marker = self.markers.get(marker_id)
            if marker is None:
                continue
            marker['position'] = key
            if update_cache:
                self.cache.upsert_item(Item(marker_id, marker.get('folder_id'), key))

    def _apply_folder_keys(self, rebalanced: Dict[str, str], update_cache: bool = True):
        for folder_id, key in rebalanced.items():
            folder = self.folders.get(folder_id)
            if folder is None:
                continue
            folder['position'] = key
            if update_cache:
                self.cache.upsert_folder(Folder(folder_id, key))

    def _on_marker_dropped(self, placement):
        """Markers dropped into a folder take on its colour, or the default one"""
        if placement.container_id is None:
            return
        folder = self.folders.get(placement.container_id)
        marker = self.markers.get(placement.id)
        if folder and marker:
            marker['color'] = folder.get('color') or None
