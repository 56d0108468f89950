from __future__ import annotations

import argparse
import logging
from typing import Dict, List, Optional, Sequence

from textual import events
from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.message import Message
from textual.screen import ModalScreen
from textual.timer import Timer
from textual.widgets import DataTable, Footer, Header, Static

from mapfolders.board import Board, BoardError
from mapfolders.config import Config
from mapfolders_dnd import (
    UNASSIGNED,
    FolderTarget,
    ItemTarget,
    OrderingError,
    PlacementPersistenceError,
    ZoneTarget,
)

LOG = logging.getLogger(__name__)

UNASSIGNED_ROW = "unassigned"


class BoardTable(DataTable):
    """Folder and marker list translating keys into drag gestures."""

    BINDINGS = [
        Binding("space", "pick_up", "Pick up"),
        Binding("enter", "drop", "Drop"),
        Binding("escape", "cancel_drag", "Cancel", show=False),
    ]

    class PickUpRequested(Message):
        """Sent when the user picks up the highlighted row."""

        def __init__(self, cursor_row: int):
            super().__init__()
            self.cursor_row = cursor_row

    class DropRequested(Message):
        """Sent when the user drops onto the highlighted row."""

        def __init__(self, cursor_row: int):
            super().__init__()
            self.cursor_row = cursor_row

    class CancelRequested(Message):
        """Sent when the user abandons the current drag."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.cursor_type = "row"
        self.zebra_stripes = True

    def action_pick_up(self) -> None:
        self.post_message(self.PickUpRequested(self.cursor_row))

    def action_drop(self) -> None:
        self.post_message(self.DropRequested(self.cursor_row))

    def action_cancel_drag(self) -> None:
        self.post_message(self.CancelRequested())


class HelpScreen(ModalScreen[None]):
    """Modal overlay listing keyboard shortcuts."""

    def compose(self) -> ComposeResult:
        lines = [
            "[b]mapfolders[/b]",
            "",
            "Navigation:",
            "  ↑/↓          Move selection (and the drop target while dragging)",
            "  PgUp/PgDn    Scroll a page",
            "",
            "Dragging:",
            "  Space        Pick up the highlighted marker or folder",
            "  Enter        Drop onto the highlighted row",
            "  Esc          Cancel the drag",
            "",
            "  r            Reload the board file",
            "  q or Ctrl+C  Quit",
            "",
            "Press Esc, q, or ? to close this help.",
        ]
        yield Static("\n".join(lines), id="help-panel")

    def on_key(self, event: events.Key) -> None:
        if event.key in {"escape", "q", "?"}:
            event.stop()
            self.dismiss()


class StatusBar(Static):
    """Single-line status indicator."""

    last_message = ""

    def set_message(self, message: str, *, error: bool = False) -> None:
        self.last_message = message or ""
        self.set_class(error, "error")
        self.update(self.last_message)


class MapFoldersTuiApp(App[None]):
    """Textual interface for reordering markers and folders with the keyboard."""

    TITLE = "mapfolders"
    CSS = """
    Screen {
        layout: vertical;
    }

    HelpScreen {
        align: center middle;
    }

    #board-table {
        height: 1fr;
        margin: 1 2;
    }

    #status {
        height: 3;
        content-align: left middle;
        padding: 0 1;
        background: $boost;
    }

    #status.error {
        background: $error;
        color: $text;
    }

    #help-panel {
        width: 70%;
        background: $surface;
        border: round $secondary;
        padding: 2;
        content-align: left top;
    }
    """

    BINDINGS = [
        Binding("q", "quit_app", "Quit"),
        Binding("ctrl+c", "quit_app", "Quit", show=False),
        Binding("r", "reload", "Reload"),
        Binding("?", "show_help", "Help"),
    ]

    def __init__(self, board: Board, **kwargs):
        super().__init__(**kwargs)
        self.board = board
        self.row_keys: List[str] = []
        self.row_map: Dict[str, dict] = {}
        self.dragging: Optional[str] = None  # row key of the picked up row
        self._status_timer: Optional[Timer] = None

        for reconciler in (board.marker_reconciler, board.folder_reconciler):
            reconciler.signals.placement_failed.connect(self._on_placement_failed)
        board.marker_reconciler.signals.container_pulse.connect(self._on_container_pulse)

    # --------------------------------------------------------------------- UI
    def compose(self) -> ComposeResult:
        yield Header()
        table = BoardTable(id="board-table")
        table.add_columns(" ", "Name", "Colour")
        yield table
        yield Footer()
        yield StatusBar(id="status")

    def on_mount(self) -> None:
        self.status_bar = self.query_one(StatusBar)
        self.board_table = self.query_one(BoardTable)
        self.board_table.focus()
        self.render_board()
        self.set_status(f"Loaded {len(self.board.markers)} marker(s) in {len(self.board.folders)} folder(s)")

    def render_board(self, *, focus_key: Optional[str] = None) -> None:
        """Rebuild the table from the committed order"""
        table = self.board_table
        cursor_row = table.cursor_row
        table.clear(columns=False)
        self.row_keys = []
        self.row_map.clear()

        for folder in self.board.ordered_folders():
            self._add_row(f"folder:{folder['id']}", folder, ("▸", folder.get('name', ''), folder.get('color') or ""))
            for marker in self.board.ordered_markers(folder['id']):
                self._add_marker_row(marker)
            self._add_row(f"folder-end:{folder['id']}", folder, ("", "  ┄ end of folder", ""))

        self._add_row(UNASSIGNED_ROW, {}, ("▸", "Unassigned", ""))
        for marker in self.board.ordered_markers(None):
            self._add_marker_row(marker)

        if focus_key in self.row_map:
            cursor_row = self.row_keys.index(focus_key)
        if self.row_keys:
            table.move_cursor(row=min(cursor_row, len(self.row_keys) - 1))

    def _add_marker_row(self, marker: dict) -> None:
        row_key = f"marker:{marker['id']}"
        grip = "≡" if row_key == self.dragging else ""
        self._add_row(row_key, marker, (grip, f"  {marker.get('label', '')}", marker.get('color') or ""))

    def _add_row(self, row_key: str, record: dict, cells) -> None:
        self.board_table.add_row(*cells, key=row_key)
        self.row_keys.append(row_key)
        self.row_map[row_key] = record

    # ---------------------------------------------------------------- bindings
    def action_quit_app(self) -> None:
        self.exit()

    def action_reload(self) -> None:
        self._cancel()
        self.board.reload()
        self.render_board()
        self.set_status("Board reloaded")

    def action_show_help(self) -> None:
        self.push_screen(HelpScreen())

    def on_board_table_pick_up_requested(self, event: BoardTable.PickUpRequested) -> None:
        event.stop()
        row_key = self.row_key_at(event.cursor_row)
        if row_key is None or self.dragging is not None:
            return
        kind, _, record_id = row_key.partition(":")
        if kind == "marker":
            started = self.board.marker_reconciler.on_drag_start(record_id)
            name = self.row_map[row_key].get('label', record_id)
        elif kind == "folder":
            started = self.board.folder_reconciler.on_drag_start(record_id)
            name = self.row_map[row_key].get('name', record_id)
        else:
            self.set_status("Pick up a marker or a folder header", error=True)
            return
        if started:
            self.dragging = row_key
            self.render_board()
            self.set_status(f"Moving {name}: choose a row and press Enter", persist=True)

    def on_board_table_drop_requested(self, event: BoardTable.DropRequested) -> None:
        event.stop()
        if self.dragging is None:
            return
        row_key = self.dragging
        reconciler = self._active_reconciler()
        target = self.target_for_row(self.row_key_at(event.cursor_row))
        self.dragging = None
        if target is None:
            reconciler.on_drag_cancel()
            self.render_board()
            self.set_status("Nothing to drop onto here", error=True)
            return
        try:
            result = self.board.track(reconciler.on_drag_end(target))
        except (OrderingError, PlacementPersistenceError) as exc:
            self.board.track_pending(getattr(exc, 'pending', None))
            LOG.error("Drop failed: %s", exc)
            self.render_board(focus_key=row_key)
            self.set_status(f"Unable to move: {exc}", error=True, persist=True)
            return
        self.render_board(focus_key=row_key)
        if result is None:
            self.set_status("Not moved")
        elif not self._status_timer:
            self.set_status("Moved")

    def on_board_table_cancel_requested(self, event: BoardTable.CancelRequested) -> None:
        event.stop()
        if self.dragging is not None:
            self._cancel()
            self.render_board()
            self.set_status("Move cancelled")

    def on_data_table_row_highlighted(self, event: DataTable.RowHighlighted) -> None:
        if event.data_table is not getattr(self, "board_table", None) or self.dragging is None:
            return
        target = self.target_for_row(getattr(event.row_key, "value", None))
        if target is None:
            return
        placement = self._active_reconciler().on_drag_over(target)
        if placement is not None:
            self.set_status(f"Drop here: {self._describe(placement.container_id)}", persist=True)

    # ----------------------------------------------------------------- gestures
    def row_key_at(self, row: int) -> Optional[str]:
        if 0 <= row < len(self.row_keys):
            return self.row_keys[row]
        return None

    def target_for_row(self, row_key: Optional[str]):
        """Map a table row to a drop target for the active drag"""
        if row_key is None or self.dragging is None:
            return None
        kind, _, record_id = row_key.partition(":")
        if self.dragging.startswith("folder:"):
            if kind in ("folder", "folder-end"):
                return FolderTarget(record_id)
            if kind == "marker":
                folder_id = self.row_map[row_key].get('folder_id')
                return FolderTarget(folder_id) if folder_id else None
            return None

        if kind == "marker":
            return ItemTarget(record_id)
        if kind == "folder":
            return ZoneTarget(record_id, "header")
        if kind == "folder-end":
            return ZoneTarget(record_id, "footer")
        if row_key == UNASSIGNED_ROW:
            return UNASSIGNED
        return None

    def _active_reconciler(self):
        if self.dragging is not None and self.dragging.startswith("folder:"):
            return self.board.folder_reconciler
        return self.board.marker_reconciler

    def _cancel(self) -> None:
        self._active_reconciler().on_drag_cancel()
        self.dragging = None

    def _describe(self, folder_id: Optional[str]) -> str:
        if folder_id is None:
            return "Unassigned"
        return self.board.folders.get(folder_id, {}).get('name', folder_id)

    # ------------------------------------------------------------------ signals
    def _on_container_pulse(self, folder_id: Optional[str]) -> None:
        self.set_status(f"Moved into {self._describe(folder_id)}")

    def _on_placement_failed(self, placement, exc: Exception) -> None:
        self.set_status(f"Unable to save {placement.id}: {exc}", error=True, persist=True)

    # ----------------------------------------------------------------- status
    def set_status(self, message: str, *, error: bool = False, persist: bool = False) -> None:
        if not hasattr(self, "status_bar"):
            return
        if self._status_timer:
            self._status_timer.stop()
            self._status_timer = None
        self.status_bar.set_message(message, error=error)
        if not persist:
            self._status_timer = self.set_timer(6, self._clear_status, name="status-clear")

    def _clear_status(self) -> None:
        self.status_bar.set_message("")
        self._status_timer = None


def run_app(board: Board) -> int:
    app = MapFoldersTuiApp(board)
    try:
        app.run()
    except KeyboardInterrupt:
        pass
    return 0


def parse_args(argv: Optional[Sequence[str]] = None):
    parser = argparse.ArgumentParser(description="mapfolders terminal UI")
    parser.add_argument("--board", help="Board file to use instead of the configured one")
    parser.add_argument("--config-dir", help="Directory holding config.json")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Python logging level (default: WARNING)",
    )
    return parser.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None):
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )
    try:
        board = Board(Config(args.config_dir), path=args.board)
    except BoardError as exc:
        LOG.error("Unable to open board: %s", exc)
        return 1
    return run_app(board)


__all__ = ["main", "MapFoldersTuiApp"]


if __name__ == "__main__":
    raise SystemExit(main())
