"""Tests for the marker and folder board."""

import asyncio
import json

import pytest

from mapfolders.board import (
    Board,
    BoardError,
    BoardStorageError,
    DuplicateFolderError,
    FolderNotEmptyError,
    UnknownFolderError,
    UnknownMarkerError,
)
from mapfolders.config import Config
from mapfolders_dnd import UNASSIGNED, FolderTarget, ItemTarget, PlacementPersistenceError, ZoneTarget


def _labels(board, folder_id=None):
    return [marker['label'] for marker in board.ordered_markers(folder_id)]


def _names(board):
    return [folder['name'] for folder in board.ordered_folders()]


def test_new_folders_and_markers_are_appended(tmp_path, dummy_config):
    board = Board(dummy_config, path=str(tmp_path / 'board.json'))

    trips = board.create_folder('Trips', color='#ff0000')
    food = board.create_folder('Food')
    board.add_marker('Paris', folder_id=trips)
    board.add_marker('Rome', folder_id=trips)
    board.add_marker('Oslo')

    assert _names(board) == ['Trips', 'Food']
    assert _labels(board, trips) == ['Paris', 'Rome']
    assert _labels(board, food) == []
    assert _labels(board) == ['Oslo']

    reloaded = Board(dummy_config, path=str(tmp_path / 'board.json'))
    assert _names(reloaded) == ['Trips', 'Food']
    assert _labels(reloaded, trips) == ['Paris', 'Rome']
    assert reloaded.folders[trips]['color'] == '#ff0000'


def test_board_path_comes_from_config(tmp_path):
    config = Config(str(tmp_path / 'conf'))
    config.set_setting('board.path', str(tmp_path / 'maps' / 'mine.json'))

    board = Board(config)
    board.create_folder('Trips')

    assert (tmp_path / 'maps' / 'mine.json').exists()


def test_folder_names_are_unique_case_insensitively(tmp_path, dummy_config):
    board = Board(dummy_config, path=str(tmp_path / 'board.json'))
    board.create_folder('Trips')

    with pytest.raises(DuplicateFolderError):
        board.create_folder('trips')


def test_unknown_references_raise(tmp_path, dummy_config):
    board = Board(dummy_config, path=str(tmp_path / 'board.json'))

    with pytest.raises(UnknownFolderError):
        board.add_marker('Paris', folder_id='missing')
    with pytest.raises(UnknownMarkerError):
        board.delete_marker('missing')
    with pytest.raises(UnknownFolderError):
        board.resolve_folder('Nowhere')


def test_resolve_by_name_and_label(tmp_path, dummy_config):
    board = Board(dummy_config, path=str(tmp_path / 'board.json'))
    trips = board.create_folder('Trips')
    paris = board.add_marker('Paris', folder_id=trips)
    board.add_marker('Cafe')
    board.add_marker('cafe')

    assert board.resolve_folder('TRIPS') == trips
    assert board.resolve_marker('paris') == paris
    assert board.resolve_marker(paris) == paris
    with pytest.raises(BoardError):
        board.resolve_marker('Cafe')


def test_moves_are_persisted_after_drain(tmp_path, dummy_config):
    path = str(tmp_path / 'board.json')

    async def scenario():
        board = Board(dummy_config, path=path)
        trips = board.create_folder('Trips')
        paris = board.add_marker('Paris', folder_id=trips)
        rome = board.add_marker('Rome', folder_id=trips)
        oslo = board.add_marker('Oslo')

        board.move_marker(oslo, ItemTarget(rome, 'above'))
        board.move_marker(paris, UNASSIGNED)
        assert _labels(board, trips) == ['Oslo', 'Rome']

        assert await board.drain() == []
        return trips

    trips = asyncio.run(scenario())

    reloaded = Board(dummy_config, path=path)
    assert _labels(reloaded, trips) == ['Oslo', 'Rome']
    assert _labels(reloaded) == ['Paris']


def test_drop_into_coloured_folder_recolours_marker(tmp_path, dummy_config):
    path = str(tmp_path / 'board.json')

    async def scenario():
        board = Board(dummy_config, path=path)
        trips = board.create_folder('Trips', color='red')
        plain = board.create_folder('Plain')
        paris = board.add_marker('Paris')
        board.move_marker(paris, ZoneTarget(plain, 'footer'))
        assert board.markers[paris]['color'] is None
        board.move_marker(paris, ZoneTarget(trips, 'header'))
        await board.drain()
        saved = json.loads((tmp_path / 'board.json').read_text())
        assert saved['markers'][paris]['color'] == 'red'

        board.move_marker(paris, UNASSIGNED)
        assert board.markers[paris]['color'] == 'red'
        board.move_marker(paris, ZoneTarget(plain, 'header'))
        await board.drain()
        return paris

    paris = asyncio.run(scenario())

    saved = json.loads((tmp_path / 'board.json').read_text())
    assert saved['markers'][paris]['color'] is None


def test_folders_can_be_reordered(tmp_path, dummy_config):
    path = str(tmp_path / 'board.json')

    async def scenario():
        board = Board(dummy_config, path=path)
        a = board.create_folder('A')
        board.create_folder('B')
        c = board.create_folder('C')
        board.move_folder(c, FolderTarget(a, 'above'))
        assert _names(board) == ['C', 'A', 'B']
        assert board.move_folder(c, FolderTarget(c, 'below')) is None
        await board.drain()

    asyncio.run(scenario())

    assert _names(Board(dummy_config, path=path)) == ['C', 'A', 'B']


def test_non_empty_folder_cannot_be_deleted(tmp_path, dummy_config):
    async def scenario():
        board = Board(dummy_config, path=str(tmp_path / 'board.json'))
        trips = board.create_folder('Trips')
        oslo = board.add_marker('Oslo')
        board.move_marker(oslo, ZoneTarget(trips, 'footer'))

        with pytest.raises(FolderNotEmptyError):
            board.delete_folder(trips)

        await board.drain()
        board.move_marker(oslo, UNASSIGNED)
        await board.drain()
        board.delete_folder(trips)
        return board

    board = asyncio.run(scenario())

    assert board.folders == {}
    assert _labels(board) == ['Oslo']


def test_failed_save_is_reported_by_drain(tmp_path, dummy_config):
    blocker = tmp_path / 'not-a-dir'
    blocker.write_text('')

    async def scenario():
        board = Board(dummy_config, path=str(tmp_path / 'board.json'))
        paris = board.add_marker('Paris')
        board.add_marker('Rome')
        failed = []
        board.marker_reconciler.signals.placement_failed.connect(
            lambda placement, exc: failed.append(placement.id)
        )

        board.path = str(blocker / 'board.json')
        board.move_marker(paris, UNASSIGNED)
        failures = await board.drain()
        return board, paris, failed, failures

    board, paris, failed, failures = asyncio.run(scenario())

    assert failed == [paris]
    assert len(failures) == 1
    assert isinstance(failures[0], PlacementPersistenceError)
    assert _labels(board) == ['Paris', 'Rome']


def test_legacy_board_is_repaired_on_load(tmp_path, dummy_config):
    path = tmp_path / 'board.json'
    path.write_text(json.dumps({
        'folders': {
            'f1': {'name': 'Trips', 'position': 2},
            'f2': {'name': 'Food', 'position': 1},
        },
        'markers': {
            'm1': {'label': 'Paris', 'folder_id': 'f1', 'position': 3},
            'm2': {'label': 'Rome', 'folder_id': 'f1', 'position': 1},
            'm3': {'label': 'Oslo', 'folder_id': 'gone', 'position': 'V'},
            'junk': 'not a record',
        },
    }))

    board = Board(dummy_config, path=str(path))

    assert _names(board) == ['Food', 'Trips']
    assert _labels(board, 'f1') == ['Rome', 'Paris']
    assert _labels(board) == ['Oslo']
    saved = json.loads(path.read_text())
    assert all(isinstance(m['position'], str) for m in saved['markers'].values())
    assert 'junk' not in saved['markers']


def test_rebalanced_keys_are_saved(tmp_path, dummy_config):
    dummy_config.set_setting('ordering.max_key_length', 1)
    dummy_config.set_setting('ordering.rebalance_headroom', 0)
    path = str(tmp_path / 'board.json')

    async def scenario():
        board = Board(dummy_config, path=path)
        trips = board.create_folder('Trips')
        board.add_marker('A', folder_id=trips)
        b = board.add_marker('B', folder_id=trips)
        rebalanced = []
        for n in range(6):
            result = board.move_marker(board.add_marker(f'M{n}'), ItemTarget(b, 'above'))
            rebalanced.append(bool(result.placement.rebalanced))
        assert await board.drain() == []
        return trips, rebalanced

    trips, rebalanced = asyncio.run(scenario())

    assert any(rebalanced)
    reloaded = Board(dummy_config, path=path)
    assert _labels(reloaded, trips) == ['A', 'M0', 'M1', 'M2', 'M3', 'M4', 'M5', 'B']
    keys = [marker['position'] for marker in reloaded.ordered_markers(trips)]
    assert len(set(keys)) == len(keys)


def test_move_without_event_loop_is_refused_before_anything_changes(tmp_path, dummy_config):
    path = tmp_path / 'board.json'
    board = Board(dummy_config, path=str(path))
    trips = board.create_folder('Trips')
    food = board.create_folder('Food')
    paris = board.add_marker('Paris', folder_id=trips)
    rome = board.add_marker('Rome', folder_id=trips)
    before = path.read_text()

    with pytest.raises(BoardError):
        board.move_marker(paris, ItemTarget(rome, 'below'))
    with pytest.raises(BoardError):
        board.move_folder(food, FolderTarget(trips, 'above'))

    assert _labels(board, trips) == ['Paris', 'Rome']
    assert _names(board) == ['Trips', 'Food']
    assert board.cache.get_item(paris).position == board.markers[paris]['position']
    assert not board.marker_reconciler.is_dragging
    assert not board.folder_reconciler.is_dragging
    assert path.read_text() == before


def test_rebalanced_siblings_are_saved_with_their_placement(tmp_path, dummy_config):
    dummy_config.set_setting('ordering.max_key_length', 1)
    dummy_config.set_setting('ordering.rebalance_headroom', 0)
    path = str(tmp_path / 'board.json')

    async def scenario():
        board = Board(dummy_config, path=path)
        trips = board.create_folder('Trips')
        board.add_marker('A', folder_id=trips)
        b = board.add_marker('B', folder_id=trips)
        for n in range(20):
            marker = board.add_marker(f'M{n}')
            anchor = board.cache.get_item(b).position
            if board.allocator.position_before(anchor, board.cache.siblings(trips)).rebalanced:
                break
            board.move_marker(marker, ItemTarget(b, 'above'))
            assert await board.drain() == []
        else:
            pytest.fail('no move needed a rebalance')
        saved_order = _labels(board, trips)

        saves = []

        def failing_save():
            saves.append(True)
            raise BoardStorageError('disk full')

        board._save_board = failing_save
        result = board.move_marker(marker, ItemTarget(b, 'above'))
        failures = await board.drain()
        del board._save_board

        assert result.placement.rebalanced
        assert len(saves) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], PlacementPersistenceError)
        assert _labels(Board(dummy_config, path=path), trips) == saved_order

        # The next successful save writes the placement and its siblings together
        board.add_marker('Z')
        return trips, saved_order, board.markers[marker]['label']

    trips, saved_order, label = asyncio.run(scenario())

    reloaded = Board(dummy_config, path=path)
    assert _labels(reloaded, trips) == saved_order[:-1] + [label, 'B']
    keys = [marker['position'] for marker in reloaded.ordered_markers(trips)]
    assert len(set(keys)) == len(keys)


def test_folders_can_be_renamed_recoloured_and_hidden(tmp_path, dummy_config):
    path = str(tmp_path / 'board.json')
    board = Board(dummy_config, path=path)
    trips = board.create_folder('Trips', color='red')
    board.create_folder('Food')

    board.rename_folder(trips, 'Holidays')
    board.rename_folder(trips, 'HOLIDAYS')
    with pytest.raises(DuplicateFolderError):
        board.rename_folder(trips, 'food')
    board.update_folder_color(trips, 'blue')
    board.set_folder_hide_markers(trips, True)

    reloaded = Board(dummy_config, path=path)
    folder = reloaded.folders[trips]
    assert (folder['name'], folder['color'], folder['hide_markers']) == ('HOLIDAYS', 'blue', True)

    reloaded.update_folder_color(trips)
    reloaded.set_folder_hide_markers(trips, False)
    assert reloaded.folders[trips]['color'] is None
    assert reloaded.folders[trips]['hide_markers'] is False
    with pytest.raises(UnknownFolderError):
        reloaded.rename_folder('missing', 'Nope')


def test_markers_can_be_relabelled(tmp_path, dummy_config):
    path = str(tmp_path / 'board.json')
    board = Board(dummy_config, path=path)
    paris = board.add_marker('Paris', notes='capital')

    board.update_marker(paris, label='Paris, France')
    board.update_marker(paris, notes='')

    marker = Board(dummy_config, path=path).markers[paris]
    assert (marker['label'], marker['notes']) == ('Paris, France', '')
    with pytest.raises(UnknownMarkerError):
        board.update_marker('missing', label='Nope')
