# nicecrop/src/nicecrop/crop_editor/interaction.py
"""Pointer-driven create / move / resize state machine.

States:
    Idle
    Drawing(anchor, current)             rubber-band for a new region
    Manipulating(region_id, handle, ...)  handle None means move

All coordinates handed in are raw pointer positions ("client" space).
They are mapped into display space with the viewport's zoom, so the
minimum-size gate and the stored regions are zoom independent.

Every gesture runs inside a ``contextlib.ExitStack``. Resources registered
with :meth:`InteractionController.add_gesture_resource` are entered when a
gesture starts and closed on every way out of it (pointer up, pointer
leaving the canvas or window, cancel, switching to read-only).
"""

from __future__ import annotations

from contextlib import ExitStack
from dataclasses import dataclass
from enum import Enum
from typing import Callable, ContextManager, List, NamedTuple, Optional, Union

from nicecrop.errors import ValidationReject
from nicecrop.utils.logging import get_logger
from .geometry import Point, Rect, bounding_rect, clamp
from .regions import MIN_REGION_SIZE, RegionStore
from .viewport import Viewport

logger = get_logger(__name__)


# ------------- resize handles -------------


class HandleEffect(NamedTuple):
    """How dragging a handle changes a rectangle.

    moves_x / moves_y: the handle sits on the west / north edge, so the
    origin follows the pointer and the opposite edge stays put.
    width_sign / height_sign: +1 grows with the delta, -1 shrinks, 0 fixed.
    """

    moves_x: bool
    moves_y: bool
    width_sign: int
    height_sign: int


class ResizeHandle(Enum):
    N = "n"
    S = "s"
    E = "e"
    W = "w"
    NE = "ne"
    NW = "nw"
    SE = "se"
    SW = "sw"

    @property
    def effect(self) -> HandleEffect:
        return _HANDLE_EFFECTS[self]

    @property
    def cursor(self) -> str:
        return f"{self.value}-resize"


_HANDLE_EFFECTS = {
    ResizeHandle.N: HandleEffect(False, True, 0, -1),
    ResizeHandle.S: HandleEffect(False, False, 0, 1),
    ResizeHandle.E: HandleEffect(False, False, 1, 0),
    ResizeHandle.W: HandleEffect(True, False, -1, 0),
    ResizeHandle.NE: HandleEffect(False, True, 1, -1),
    ResizeHandle.NW: HandleEffect(True, True, -1, -1),
    ResizeHandle.SE: HandleEffect(False, False, 1, 1),
    ResizeHandle.SW: HandleEffect(True, False, -1, 1),
}


def handle_anchor(rect: Rect, handle: ResizeHandle) -> Point:
    """Where a handle is drawn: corners and edge midpoints."""
    v = handle.value
    if "w" in v:
        x = rect.x
    elif "e" in v:
        x = rect.right
    else:
        x = rect.x + rect.width / 2.0
    if "n" in v:
        y = rect.y
    elif "s" in v:
        y = rect.bottom
    else:
        y = rect.y + rect.height / 2.0
    return Point(x, y)


def apply_resize(snapshot: Rect, handle: ResizeHandle, dx: float, dy: float) -> Rect:
    """Move the edges named by ``handle`` by (dx, dy), display space.

    West/north edges are clamped at 0 and the opposite edge is held fixed.
    No minimum size is enforced here.
    """
    e = handle.effect

    if e.moves_x:
        x = max(0.0, snapshot.x + dx)
        width = snapshot.right - x
    else:
        x = snapshot.x
        width = snapshot.width + e.width_sign * dx

    if e.moves_y:
        y = max(0.0, snapshot.y + dy)
        height = snapshot.bottom - y
    else:
        y = snapshot.y
        height = snapshot.height + e.height_sign * dy

    return Rect(x, y, width, height)


# ------------- states -------------


@dataclass(frozen=True)
class Idle:
    pass


@dataclass(frozen=True)
class Drawing:
    anchor: Point
    current: Rect


@dataclass(frozen=True)
class Manipulating:
    region_id: str
    handle: Optional[ResizeHandle]
    snapshot: Rect
    start_client: Point

    @property
    def is_move(self) -> bool:
        return self.handle is None


InteractionState = Union[Idle, Drawing, Manipulating]

IDLE = Idle()


# ------------- hit testing -------------


class HitKind(Enum):
    CANVAS = "canvas"
    BODY = "body"
    HANDLE = "handle"


@dataclass(frozen=True)
class HitTarget:
    kind: HitKind
    region_id: Optional[str] = None
    handle: Optional[ResizeHandle] = None


CANVAS = HitTarget(HitKind.CANVAS)


def hit_test(
    store: RegionStore,
    point: Point,
    zoom_level: float = 1.0,
    tolerance_px: float = 8.0,
) -> HitTarget:
    """Resolve what a pointer-down at ``point`` (display space) lands on.

    Handles are only live on the selected region and win over bodies.
    Bodies are tested topmost (most recently added) first.
    ``tolerance_px`` is in screen pixels so handles keep their on-screen
    size at any zoom.
    """
    tol = tolerance_px / zoom_level

    selected = store.selected
    if selected is not None:
        for handle in ResizeHandle:
            ax, ay = handle_anchor(selected.rect, handle)
            if abs(point.x - ax) <= tol and abs(point.y - ay) <= tol:
                return HitTarget(HitKind.HANDLE, selected.id, handle)

    for region in reversed(store.regions):
        if region.rect.contains(point.x, point.y):
            return HitTarget(HitKind.BODY, region.id)

    return CANVAS


# ------------- controller -------------


class EventKind(Enum):
    SELECTED = "selected"
    CREATED = "created"
    UPDATED = "updated"
    DRAFT = "draft"
    GESTURE_ENDED = "gesture_ended"


@dataclass(frozen=True)
class InteractionEvent:
    kind: EventKind
    region_id: Optional[str] = None


InteractionListener = Callable[[InteractionEvent], None]
GestureResource = Callable[[InteractionState], ContextManager[object]]


class InteractionController:
    """Turns pointer events into RegionStore mutations."""

    def __init__(
        self,
        store: RegionStore,
        viewport: Viewport,
        *,
        min_size: float = MIN_REGION_SIZE,
        handle_tolerance_px: float = 8.0,
    ) -> None:
        self.store = store
        self.viewport = viewport
        self.min_size = float(min_size)
        self.handle_tolerance_px = float(handle_tolerance_px)

        self._state: InteractionState = IDLE
        self._scope: Optional[ExitStack] = None
        self._read_only = False

        self._listeners: List[InteractionListener] = []
        self._gesture_resources: List[GestureResource] = []

    # ------------- public API -------------

    @property
    def state(self) -> InteractionState:
        return self._state

    @property
    def is_idle(self) -> bool:
        return isinstance(self._state, Idle)

    @property
    def draft(self) -> Optional[Rect]:
        """Rubber-band rectangle while drawing, else None."""
        if isinstance(self._state, Drawing):
            return self._state.current
        return None

    @property
    def read_only(self) -> bool:
        return self._read_only

    @read_only.setter
    def read_only(self, value: bool) -> None:
        self._read_only = bool(value)
        if self._read_only and not self.is_idle:
            self.cancel()

    def add_listener(self, listener: InteractionListener) -> None:
        self._listeners.append(listener)

    def add_gesture_resource(self, factory: GestureResource) -> None:
        """Register a context-manager factory entered for the life of each gesture."""
        self._gesture_resources.append(factory)

    def pointer_down(
        self,
        client: Point,
        element_origin: Optional[Point] = None,
        target: Optional[HitTarget] = None,
    ) -> bool:
        """Start a gesture. Returns False if the event was ignored."""
        if self._read_only:
            logger.debug("pointer_down ignored: read-only")
            return False

        if not self.is_idle:
            # A pointer-up got lost (e.g. released outside the page).
            self._end_gesture()

        display = self.viewport.to_display_point(client, element_origin)
        if target is None:
            target = hit_test(self.store, display, self.viewport.zoom_level, self.handle_tolerance_px)

        if target.kind is HitKind.CANVAS:
            self._set_selection(None)
            ext_w, ext_h = self.viewport.extent
            anchor = Point(clamp(display.x, 0.0, ext_w), clamp(display.y, 0.0, ext_h))
            self._begin_gesture(Drawing(anchor=anchor, current=Rect(anchor.x, anchor.y, 0.0, 0.0)))
            logger.debug(f"drawing from ({anchor.x:.1f}, {anchor.y:.1f})")
            return True

        region = self.store.get(target.region_id) if target.region_id else None
        if region is None:
            return False

        self._set_selection(region.id)
        self._begin_gesture(
            Manipulating(
                region_id=region.id,
                handle=target.handle,
                snapshot=region.rect,
                start_client=client,
            )
        )
        logger.debug(f"manipulating {region.id}: {target.handle.value if target.handle else 'move'}")
        return True

    def pointer_move(self, client: Point, element_origin: Optional[Point] = None) -> bool:
        """Advance the current gesture. Returns True if anything changed."""
        state = self._state

        if isinstance(state, Drawing):
            display = self.viewport.to_display_point(client, element_origin)
            ext_w, ext_h = self.viewport.extent
            current = Point(clamp(display.x, 0.0, ext_w), clamp(display.y, 0.0, ext_h))
            self._state = Drawing(anchor=state.anchor, current=bounding_rect(state.anchor, current))
            self._emit(EventKind.DRAFT)
            return True

        if isinstance(state, Manipulating):
            region = self.store.get(state.region_id)
            if region is None:
                # Deleted from elsewhere mid-gesture.
                self._end_gesture()
                return False

            zoom = self.viewport.zoom_level
            dx = (client.x - state.start_client.x) / zoom
            dy = (client.y - state.start_client.y) / zoom

            if state.is_move:
                changes = self._moved_position(state.snapshot, dx, dy)
            else:
                new_rect = apply_resize(state.snapshot, state.handle, dx, dy)
                if new_rect.width < self.min_size or new_rect.height < self.min_size:
                    # Hold the last valid size until the pointer comes back.
                    return False
                changes = {
                    "x": new_rect.x,
                    "y": new_rect.y,
                    "width": new_rect.width,
                    "height": new_rect.height,
                }

            try:
                self.store.update(region.id, changes)
            except ValidationReject as exc:
                logger.debug(f"update rejected: {exc}")
                return False
            self._emit(EventKind.UPDATED, region.id)
            return True

        return False

    def pointer_up(self) -> Optional[str]:
        """Finish the current gesture.

        Returns the id of a newly created region, if the draw gate passed.
        """
        state = self._state
        if isinstance(state, Idle):
            return None

        self._end_gesture()

        if isinstance(state, Drawing):
            rect = state.current
            if not (rect.width > self.min_size and rect.height > self.min_size):
                logger.debug(f"discarded draft {rect.width:.1f}x{rect.height:.1f}")
                self._emit(EventKind.DRAFT)
                return None
            try:
                region_id = self.store.create(rect)
            except ValidationReject as exc:
                logger.debug(f"create rejected: {exc}")
                self._emit(EventKind.DRAFT)
                return None
            self._emit(EventKind.CREATED, region_id)
            self._set_selection(region_id)
            logger.info(
                f"created {region_id}: x={rect.x:.1f}, y={rect.y:.1f}, "
                f"w={rect.width:.1f}, h={rect.height:.1f}"
            )
            return region_id

        self._emit(EventKind.GESTURE_ENDED, state.region_id)
        return None

    def pointer_leave(self) -> Optional[str]:
        """Pointer left the gesture area; ends the gesture like pointer-up.

        The area is the canvas for a draw and the window for a move or resize.
        """
        return self.pointer_up()

    def cancel(self) -> None:
        """Abort any gesture without committing a draft."""
        state = self._state
        if isinstance(state, Idle):
            return
        self._end_gesture()
        if isinstance(state, Drawing):
            self._emit(EventKind.DRAFT)
        else:
            self._emit(EventKind.GESTURE_ENDED, state.region_id)

    # ------------- internals -------------

    def _moved_position(self, snapshot: Rect, dx: float, dy: float) -> dict:
        ext_w, ext_h = self.viewport.extent
        return {
            "x": clamp(snapshot.x + dx, 0.0, ext_w - snapshot.width),
            "y": clamp(snapshot.y + dy, 0.0, ext_h - snapshot.height),
        }

    def _begin_gesture(self, state: InteractionState) -> None:
        scope = ExitStack()
        try:
            for factory in self._gesture_resources:
                scope.enter_context(factory(state))
        except Exception:
            scope.close()
            raise
        self._scope = scope
        self._state = state

    def _end_gesture(self) -> None:
        scope, self._scope = self._scope, None
        self._state = IDLE
        if scope is not None:
            scope.close()

    def _set_selection(self, region_id: Optional[str]) -> None:
        if self.store.selected_id == region_id:
            return
        self.store.select(region_id)
        self._emit(EventKind.SELECTED, self.store.selected_id)

    def _emit(self, kind: EventKind, region_id: Optional[str] = None) -> None:
        event = InteractionEvent(kind, region_id)
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Error in interaction listener for {kind.value}")
