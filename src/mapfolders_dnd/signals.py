"""Connect/emit notifications raised by the reconcilers.

The reconcilers never talk to a UI toolkit; hosts subscribe to these
signals to flash a folder after a drop or report a failed save.
"""

from __future__ import annotations

from typing import Any, Callable, List


class Signal:
    """Simple signal that mirrors the Qt ``connect``/``emit`` pattern."""

    def __init__(self, name: str = "") -> None:
        self.name = name
        self._subscribers: List[Callable[..., Any]] = []

    def connect(self, callback: Callable[..., Any]) -> None:
        """Register a slot to be invoked when the signal fires."""

        if callback not in self._subscribers:
            self._subscribers.append(callback)

    def disconnect(self, callback: Callable[..., Any]) -> None:
        """Remove a previously registered slot if present."""

        try:
            self._subscribers.remove(callback)
        except ValueError:
            return

    def emit(self, *args: Any, **kwargs: Any) -> None:
        """Invoke all connected slots with the provided arguments."""

        for callback in list(self._subscribers):
            callback(*args, **kwargs)


class ReconcilerSignals:
    """Notifications for one reconciler.

    ``container_pulse(container_id)``: transient highlight of a drop
    destination. ``dropped(placement)``: a gesture committed a placement.
    ``placement_failed(placement, exc)``: the persistence collaborator
    rejected a placement; the local placement is kept.
    """

    def __init__(self) -> None:
        self.container_pulse: Signal = Signal("container_pulse")
        self.dropped: Signal = Signal("dropped")
        self.placement_failed: Signal = Signal("placement_failed")
