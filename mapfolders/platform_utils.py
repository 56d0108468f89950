"""Platform-related utility functions."""

import logging
import os
from pathlib import Path

APP_NAME = "mapfolders"

logger = logging.getLogger(__name__)


def _normalize_path(path: str) -> str:
    """Expand user references and return an absolute path."""
    return os.path.abspath(os.path.expanduser(path))


def _xdg_dir(env_name: str, fallback: str) -> str:
    value = os.environ.get(env_name)
    if value and value.strip():
        return _normalize_path(value)
    try:
        home = str(Path.home())
    except RuntimeError:
        logger.warning(
            "Unable to determine the home directory; using the working directory for %s",
            env_name,
        )
        home = os.getcwd()
    return os.path.join(home, fallback)


def get_config_dir() -> str:
    """Return the per-user configuration directory.

    ``MAPFOLDERS_CONFIG_DIR`` overrides the XDG location.
    """
    override = os.environ.get("MAPFOLDERS_CONFIG_DIR")
    if override:
        return _normalize_path(override)
    return os.path.join(_xdg_dir("XDG_CONFIG_HOME", ".config"), APP_NAME)


def get_data_dir() -> str:
    """Return the per-user data directory (board file and logs)."""
    return os.path.join(_xdg_dir("XDG_DATA_HOME", os.path.join(".local", "share")), APP_NAME)
