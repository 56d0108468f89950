import os
import sys

import pytest

# Ensure project root and the src/ packages are on sys.path
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
for path in (ROOT, os.path.join(ROOT, 'src')):
    if path not in sys.path:
        sys.path.insert(0, path)


class DummyConfig:
    """Minimal config shim exposing dotted settings."""

    def __init__(self):
        self._settings = {
            'ordering.max_key_length': 32,
            'ordering.rebalance_headroom': 2,
        }

    def get_setting(self, key, default=None):
        return self._settings.get(key, default)

    def set_setting(self, key, value):
        self._settings[key] = value


@pytest.fixture
def dummy_config():
    return DummyConfig()


@pytest.fixture
def isolated_dirs(tmp_path, monkeypatch):
    """Point the XDG config and data directories into ``tmp_path``."""
    monkeypatch.delenv('MAPFOLDERS_CONFIG_DIR', raising=False)
    monkeypatch.setenv('XDG_CONFIG_HOME', str(tmp_path / 'config'))
    monkeypatch.setenv('XDG_DATA_HOME', str(tmp_path / 'data'))
    return tmp_path
