#!/usr/bin/env python3
"""
mapfolders - ordered folders of placed map markers
Command line entry point
"""

import argparse
import asyncio
import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Optional, Sequence

from mapfolders_dnd import (
    UNASSIGNED,
    FolderTarget,
    ItemTarget,
    OrderingError,
    PlacementPersistenceError,
    ZoneTarget,
)

from .board import Board, BoardError
from .config import Config
from .platform_utils import get_data_dir

logger = logging.getLogger(__name__)


def setup_logging(config: Config, verbose: bool = False):
    """Set up logging configuration"""
    log_dir = get_data_dir()
    os.makedirs(log_dir, exist_ok=True)

    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    # Clear any existing handlers
    logging.getLogger().handlers.clear()

    # File handler with rotation
    file_handler = RotatingFileHandler(
        os.path.join(log_dir, 'mapfolders.log'),
        maxBytes=10*1024*1024,  # 10MB
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setFormatter(formatter)

    # Console output is reserved for command results unless verbose
    console_handler = logging.StreamHandler()
    console_handler.setFormatter(formatter)

    verbose = verbose or bool(config.get_setting('logging.debug_enabled', False))
    effective_level = logging.DEBUG if verbose else logging.INFO
    file_handler.setLevel(effective_level)
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)

    root_logger = logging.getLogger()
    root_logger.setLevel(effective_level)
    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    logging.getLogger('asyncio').setLevel(logging.DEBUG if verbose else logging.WARNING)
    logging.getLogger('mapfolders').setLevel(effective_level)
    logging.getLogger('mapfolders_dnd').setLevel(effective_level)


def parse_args(argv: Optional[Sequence[str]] = None):
    parser = argparse.ArgumentParser(description="Organise placed map markers into ordered folders")
    parser.add_argument("--board", help="Board file to use instead of the configured one")
    parser.add_argument("--config-dir", help="Directory holding config.json")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="Show folders and markers in order")

    add_folder = sub.add_parser("add-folder", help="Create a folder after the existing ones")
    add_folder.add_argument("name")
    add_folder.add_argument("--color", help="Colour given to markers dropped into the folder")
    add_folder.add_argument("--notes", default="")

    add_marker = sub.add_parser("add-marker", help="Create a marker at the end of a folder")
    add_marker.add_argument("label")
    add_marker.add_argument("--folder", help="Folder ID or name (default: unassigned)")
    add_marker.add_argument("--notes", default="")

    move = sub.add_parser("move", help="Move a marker")
    move.add_argument("marker", help="Marker ID or label")
    where = move.add_mutually_exclusive_group(required=True)
    where.add_argument("--above", metavar="MARKER", help="Place directly above another marker")
    where.add_argument("--below", metavar="MARKER", help="Place directly below another marker")
    where.add_argument("--folder", metavar="FOLDER", help="Place at the end of a folder")
    where.add_argument("--unassigned", action="store_true", help="Place first among unassigned markers")
    move.add_argument("--first", action="store_true", help="With --folder, place at the start of the folder")

    move_folder = sub.add_parser("move-folder", help="Move a folder")
    move_folder.add_argument("folder", help="Folder ID or name")
    side = move_folder.add_mutually_exclusive_group(required=True)
    side.add_argument("--above", metavar="FOLDER")
    side.add_argument("--below", metavar="FOLDER")

    delete_marker = sub.add_parser("delete-marker", help="Delete a marker")
    delete_marker.add_argument("marker")

    delete_folder = sub.add_parser("delete-folder", help="Delete an empty folder")
    delete_folder.add_argument("folder")

    edit_folder = sub.add_parser("edit-folder", help="Rename or recolour a folder, or hide its markers")
    edit_folder.add_argument("folder", help="Folder ID or name")
    edit_folder.add_argument("--name", help="New folder name")
    colour = edit_folder.add_mutually_exclusive_group()
    colour.add_argument("--color", help="Colour given to markers dropped into the folder")
    colour.add_argument("--no-color", action="store_true", help="Drop the folder colour")
    hiding = edit_folder.add_mutually_exclusive_group()
    hiding.add_argument("--hide-markers", dest="hide_markers", action="store_const", const=True)
    hiding.add_argument("--show-markers", dest="hide_markers", action="store_const", const=False)

    edit_marker = sub.add_parser("edit-marker", help="Change a marker's label or notes")
    edit_marker.add_argument("marker", help="Marker ID or label")
    edit_marker.add_argument("--label", help="New label")
    edit_marker.add_argument("--notes")

    sub.add_parser("tui", help="Reorder markers interactively")

    args = parser.parse_args(argv)
    if args.command == "move" and args.first and not args.folder:
        parser.error("--first can only be used with --folder")
    if args.command == "edit-folder" and args.name is None and args.color is None \
            and not args.no_color and args.hide_markers is None:
        parser.error("edit-folder needs --name, --color, --no-color, --hide-markers or --show-markers")
    if args.command == "edit-marker" and args.label is None and args.notes is None:
        parser.error("edit-marker needs --label or --notes")
    return args


def print_board(board: Board, out=None):
    out = out or sys.stdout
    for folder in board.ordered_folders():
        suffix = f" ({folder['color']})" if folder.get('color') else ""
        if folder.get('hide_markers'):
            suffix += " (markers hidden)"
        print(f"{folder['name']}{suffix} [{folder['id']}]", file=out)
        _print_markers(board.ordered_markers(folder['id']), out)
    print("Unassigned", file=out)
    _print_markers(board.ordered_markers(None), out)


def _print_markers(markers, out):
    if not markers:
        print("  (empty)", file=out)
    for index, marker in enumerate(markers, start=1):
        print(f"  {index}. {marker['label']} [{marker['id']}]", file=out)


def marker_target(board: Board, args):
    if args.above:
        return ItemTarget(board.resolve_marker(args.above), "above")
    if args.below:
        return ItemTarget(board.resolve_marker(args.below), "below")
    if args.folder:
        return ZoneTarget(board.resolve_folder(args.folder), "header" if args.first else "footer")
    return UNASSIGNED


async def run_command(args, config: Config) -> int:
    board = Board(config, path=args.board)
    command = args.command

    if command == "list":
        print_board(board)
    elif command == "add-folder":
        folder_id = board.create_folder(args.name, color=args.color, notes=args.notes)
        print(folder_id)
    elif command == "add-marker":
        folder_id = board.resolve_folder(args.folder) if args.folder else None
        print(board.add_marker(args.label, folder_id=folder_id, notes=args.notes))
    elif command == "move":
        marker_id = board.resolve_marker(args.marker)
        target = marker_target(board, args)
        if board.move_marker(marker_id, target) is None:
            print("Nothing to move")
    elif command == "move-folder":
        folder_id = board.resolve_folder(args.folder)
        other = board.resolve_folder(args.above or args.below)
        target = FolderTarget(other, "above" if args.above else "below")
        if board.move_folder(folder_id, target) is None:
            print("Nothing to move")
    elif command == "delete-marker":
        board.delete_marker(board.resolve_marker(args.marker))
    elif command == "delete-folder":
        board.delete_folder(board.resolve_folder(args.folder))
    elif command == "edit-folder":
        folder_id = board.resolve_folder(args.folder)
        if args.name is not None:
            board.rename_folder(folder_id, args.name)
        if args.color is not None or args.no_color:
            board.update_folder_color(folder_id, None if args.no_color else args.color)
        if args.hide_markers is not None:
            board.set_folder_hide_markers(folder_id, args.hide_markers)
    elif command == "edit-marker":
        board.update_marker(board.resolve_marker(args.marker), label=args.label, notes=args.notes)

    failures = await board.drain()
    for failure in failures:
        print(f"Error: {failure}", file=sys.stderr)
    return 1 if failures else 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Main entry point"""
    args = parse_args(argv)
    config = Config(args.config_dir)
    setup_logging(config, verbose=args.verbose)

    if args.command == "tui":
        from .tui.app import run_app

        return run_app(Board(config, path=args.board))

    try:
        return asyncio.run(run_command(args, config))
    except (BoardError, OrderingError, PlacementPersistenceError) as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
