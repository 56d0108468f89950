"""
Terminal UI package for mapfolders.

The Textual application lives in ``mapfolders.tui.app``. It is imported
lazily so that running ``python -m mapfolders.tui.app`` does not import the
module twice before executing it.
"""

from __future__ import annotations

from typing import Any

__all__ = ["main"]


def main(*args: Any, **kwargs: Any) -> Any:
    """Entry point used by ``mapfolders-tui`` console script."""
    from .app import main as _app_main

    return _app_main(*args, **kwargs)
