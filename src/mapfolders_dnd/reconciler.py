"""Drag gesture reconciliation for markers and folders.

A reconciler turns the four gesture calls of a UI layer into provisional
placements (visible through :meth:`get_ordered_items`) and, on drop, into
exactly one call to the persistence collaborator. Provisional placements are
always derived from the committed :class:`PlacementCache` plus the current
target, never from an earlier provisional result.

Persistence collaborators may be plain callables or coroutine functions.
Awaitables are scheduled on the reconciler's event loop and never awaited by
the reconciler itself; :class:`DropResult.pending` exposes the future.
"""

from __future__ import annotations

import abc
import asyncio
import enum
import inspect
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Union

from .allocator import Allocator
from .model import (
    ContainerId,
    Folder,
    FolderTarget,
    Item,
    ItemTarget,
    Placement,
    PlacementCache,
    ZoneTarget,
)
from .ordering import compare, sort_siblings
from .signals import ReconcilerSignals

logger = logging.getLogger(__name__)

Target = Union[ItemTarget, ZoneTarget, FolderTarget]


class PlacementPersistenceError(Exception):
    """The persistence collaborator rejected a placement.

    The local placement is kept; callers decide whether to retry or reload.
    When a failed rebalance call is raised after the placement call was still
    issued, ``pending`` holds that placement call's result.
    """

    def __init__(self, message: str, placement: Placement, pending: Any = None):
        super().__init__(message)
        self.placement = placement
        self.pending = pending


class DragState(enum.Enum):
    IDLE = "idle"
    DRAGGING = "dragging"


@dataclass
class DragSession:
    """State of the single active gesture."""

    active_id: str
    source_container: ContainerId
    target: Optional[Target] = None
    provisional: Optional[Placement] = None


@dataclass(frozen=True)
class DropResult:
    """Outcome of a completed gesture.

    ``pending`` is the future wrapping an asynchronous persistence call, or
    the collaborator's return value when it is synchronous.
    ``rebalance_pending`` is the same for the rebalance collaborator.
    """

    placement: Placement
    pending: Any = None
    rebalance_pending: Any = None


class _Reconciler(abc.ABC):
    """Gesture state machine shared by marker and folder reconcilers."""

    def __init__(
        self,
        cache: PlacementCache,
        persist: Callable[..., Any],
        *,
        persist_rebalanced: Optional[Callable[[ContainerId, dict], Any]] = None,
        allocator: Optional[Allocator] = None,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        self.cache = cache
        self.allocator = allocator or Allocator()
        self.signals = ReconcilerSignals()
        self.session: Optional[DragSession] = None
        self._persist = persist
        self._persist_rebalanced = persist_rebalanced
        self._loop = loop

    # ---------------------------------------------------------------- state
    @property
    def state(self) -> DragState:
        return DragState.DRAGGING if self.session is not None else DragState.IDLE

    @property
    def is_dragging(self) -> bool:
        return self.session is not None

    # -------------------------------------------------------------- gesture
    def on_drag_start(self, active_id: str) -> bool:
        """Begin a gesture. Returns ``False`` when the start was ignored."""
        if self.session is not None:
            logger.debug(
                "Ignoring drag start for %s while %s is being dragged",
                active_id,
                self.session.active_id,
            )
            return False
        if not self._exists(active_id):
            logger.debug("Ignoring drag start for unknown id %s", active_id)
            return False
        self.session = DragSession(active_id, self._container_of(active_id))
        logger.debug("Drag started for %s", active_id)
        return True

    def on_drag_over(self, target: Target) -> Optional[Placement]:
        """Update the provisional placement for the hovered target."""
        session = self.session
        if session is None:
            return None
        if self._is_stale(target):
            logger.debug("Ignoring hover over stale target %r", target)
            return session.provisional
        session.target = target
        session.provisional = self._place(session.active_id, target)
        return session.provisional

    def on_drag_end(self, target: Optional[Target] = None) -> Optional[DropResult]:
        """Commit the gesture. ``None`` drops on the last hovered target.

        Returns ``None`` when nothing moved (stale target, drop onto the
        dragged entry itself, or no target at all).

        Raises :class:`PlacementPersistenceError` when a synchronous
        collaborator fails; the local placement stays committed and the
        placement call is issued even if the rebalance call failed.

        Raises ``RuntimeError`` before anything is committed when an async
        collaborator has no event loop to run on.
        """
        session = self.session
        if session is None:
            return None
        self.session = None
        if target is None:
            target = session.target
        if target is None or self._is_stale(target):
            logger.debug("Drag of %s ended without a valid target", session.active_id)
            return None
        placement = self._place(session.active_id, target)
        if placement is None:
            logger.debug("Drag of %s ended on itself", session.active_id)
            return None

        self.check_event_loop()
        self._commit(placement)
        logger.info(
            "Placed %s in %s at %s", placement.id, placement.container_id or "(root)", placement.position
        )
        self._notify(session, placement, target)

        rebalance_pending = None
        rebalance_error = None
        if placement.rebalanced:
            try:
                rebalance_pending = self._dispatch_rebalanced(placement)
            except PlacementPersistenceError as exc:
                rebalance_error = exc
        pending = self._dispatch(self._persist, self._persist_args(placement), placement)
        if rebalance_error is not None:
            rebalance_error.pending = pending
            raise rebalance_error
        return DropResult(placement, pending, rebalance_pending)

    def on_drag_cancel(self) -> None:
        """Discard the gesture without any side effect."""
        if self.session is not None:
            logger.debug("Drag of %s cancelled", self.session.active_id)
        self.session = None

    # ---------------------------------------------------------------- reads
    def get_ordered_items(self, container_id: ContainerId) -> List[Item]:
        items = self._overlay_items(self.cache.items())
        return sort_siblings(item for item in items if item.container_id == container_id)

    def get_ordered_folders(self) -> List[Folder]:
        return sort_siblings(self._overlay_folders(self.cache.folders()))

    def _provisional(self) -> Optional[Placement]:
        return self.session.provisional if self.session is not None else None

    def _overlay_items(self, items: List[Item]) -> List[Item]:
        return items

    def _overlay_folders(self, folders: List[Folder]) -> List[Folder]:
        return folders

    # ---------------------------------------------------------- persistence
    def check_event_loop(self) -> None:
        """Raise ``RuntimeError`` when an async collaborator has no loop to run on"""
        collaborators = (self._persist, self._persist_rebalanced)
        if self._loop is None and any(inspect.iscoroutinefunction(func) for func in collaborators):
            asyncio.get_running_loop()

    def _dispatch(self, func: Callable[..., Any], args: tuple, placement: Placement) -> Any:
        try:
            result = func(*args)
        except Exception as exc:
            self._report_failure(placement, exc)
            raise PlacementPersistenceError(
                f"Failed to persist placement of {placement.id}: {exc}", placement
            ) from exc
        if not inspect.isawaitable(result):
            return result
        try:
            loop = self._loop if self._loop is not None else asyncio.get_running_loop()
        except RuntimeError as exc:
            # Awaitable returned by a plain callable outside any loop
            if inspect.iscoroutine(result):
                result.close()
            self._report_failure(placement, exc)
            raise PlacementPersistenceError(
                f"Failed to persist placement of {placement.id}: {exc}", placement
            ) from exc
        return asyncio.ensure_future(self._guard(result, placement), loop=loop)

    async def _guard(self, awaitable: Awaitable[Any], placement: Placement) -> Any:
        try:
            return await awaitable
        except Exception as exc:
            self._report_failure(placement, exc)
            raise PlacementPersistenceError(
                f"Failed to persist placement of {placement.id}: {exc}", placement
            ) from exc

    def _dispatch_rebalanced(self, placement: Placement) -> Any:
        if self._persist_rebalanced is None:
            logger.warning(
                "Rebalanced %d sibling(s) without a rebalance collaborator; keys kept locally",
                len(placement.rebalanced),
            )
            return None
        return self._dispatch(
            self._persist_rebalanced,
            (placement.container_id, dict(placement.rebalanced)),
            placement,
        )

    def _report_failure(self, placement: Placement, exc: Exception) -> None:
        logger.error(f"Failed to persist placement of {placement.id}: {exc}")
        self.signals.placement_failed.emit(placement, exc)

    # ------------------------------------------------------------- subclass
    @abc.abstractmethod
    def _exists(self, active_id: str) -> bool:
        ...

    @abc.abstractmethod
    def _container_of(self, active_id: str) -> ContainerId:
        ...

    @abc.abstractmethod
    def _is_stale(self, target: Target) -> bool:
        ...

    @abc.abstractmethod
    def _place(self, active_id: str, target: Target) -> Optional[Placement]:
        """Placement for dropping ``active_id`` on ``target``, ``None`` for itself"""
        ...

    @abc.abstractmethod
    def _commit(self, placement: Placement) -> None:
        ...

    @abc.abstractmethod
    def _persist_args(self, placement: Placement) -> tuple:
        ...

    def _notify(self, session: DragSession, placement: Placement, target: Target) -> None:
        self.signals.dropped.emit(placement)


class DragReconciler(_Reconciler):
    """Reconciles marker drags within and across containers.

    ``persist`` is called as ``persist(item_id, container_id, position)``.
    """

    def _exists(self, active_id: str) -> bool:
        return self.cache.get_item(active_id) is not None

    def _container_of(self, active_id: str) -> ContainerId:
        return self.cache.get_item(active_id).container_id

    def _is_stale(self, target: Target) -> bool:
        if isinstance(target, ItemTarget):
            return self.cache.get_item(target.item_id) is None
        if isinstance(target, ZoneTarget):
            return not self.cache.has_container(target.container_id)
        raise TypeError(f"Unsupported drop target {target!r}")

    def _place(self, active_id: str, target: Target) -> Optional[Placement]:
        active = self.cache.get_item(active_id)
        if active is None:
            return None

        if isinstance(target, ItemTarget):
            if target.item_id == active_id:
                return None
            over = self.cache.get_item(target.item_id)
            container_id = over.container_id
            siblings = self.cache.siblings(container_id, exclude=active_id)
            side = target.position or ("below" if compare(active, over) < 0 else "above")
            if side == "below":
                allocation = self.allocator.position_after(over.position, siblings)
            else:
                allocation = self.allocator.position_before(over.position, siblings)
        else:
            container_id = target.container_id
            siblings = self.cache.siblings(container_id, exclude=active_id)
            if target.zone == "footer":
                allocation = self.allocator.last_position(siblings)
            else:
                allocation = self.allocator.first_position(siblings)

        return Placement(active_id, container_id, allocation.key, dict(allocation.rebalanced))

    def _commit(self, placement: Placement) -> None:
        self.cache.apply_item_placement(placement)

    def _persist_args(self, placement: Placement) -> tuple:
        return (placement.id, placement.container_id, placement.position)

    def _notify(self, session: DragSession, placement: Placement, target: Target) -> None:
        super()._notify(session, placement, target)
        crossed = placement.container_id != session.source_container
        on_folder_zone = isinstance(target, ZoneTarget) and target.container_id is not None
        if crossed or on_folder_zone:
            self.signals.container_pulse.emit(placement.container_id)

    def _overlay_items(self, items: List[Item]) -> List[Item]:
        provisional = self._provisional()
        if provisional is None:
            return items
        overlaid = []
        for item in items:
            if item.id == provisional.id:
                item = item.moved(provisional.container_id, provisional.position)
            elif item.id in provisional.rebalanced:
                item = item.moved(item.container_id, provisional.rebalanced[item.id])
            overlaid.append(item)
        return overlaid


class FolderReconciler(_Reconciler):
    """Reconciles folder drags; folders are never mixed with markers.

    ``persist`` is called as ``persist(folder_id, position)``.
    """

    def _exists(self, active_id: str) -> bool:
        return self.cache.get_folder(active_id) is not None

    def _container_of(self, active_id: str) -> ContainerId:
        return None

    def _is_stale(self, target: Target) -> bool:
        if isinstance(target, FolderTarget):
            return self.cache.get_folder(target.folder_id) is None
        raise TypeError(f"Unsupported folder drop target {target!r}")

    def _place(self, active_id: str, target: Target) -> Optional[Placement]:
        active = self.cache.get_folder(active_id)
        if active is None or target.folder_id == active_id:
            return None
        over = self.cache.get_folder(target.folder_id)
        siblings = [folder for folder in self.cache.folders() if folder.id != active_id]
        side = target.position or ("below" if compare(active, over) < 0 else "above")
        if side == "below":
            allocation = self.allocator.position_after(over.position, siblings)
        else:
            allocation = self.allocator.position_before(over.position, siblings)
        return Placement(active_id, None, allocation.key, dict(allocation.rebalanced))

    def _commit(self, placement: Placement) -> None:
        self.cache.apply_folder_placement(placement)

    def _persist_args(self, placement: Placement) -> tuple:
        return (placement.id, placement.position)

    def _overlay_folders(self, folders: List[Folder]) -> List[Folder]:
        provisional = self._provisional()
        if provisional is None:
            return folders
        overlaid = []
        for folder in folders:
            if folder.id == provisional.id:
                folder = folder.moved(provisional.position)
            elif folder.id in provisional.rebalanced:
                folder = folder.moved(provisional.rebalanced[folder.id])
            overlaid.append(folder)
        return overlaid

