# tests/crop_editor/test_interaction.py

from __future__ import annotations

from contextlib import contextmanager
from typing import List

import pytest

from nicecrop.crop_editor.geometry import Point, Rect
from nicecrop.crop_editor.interaction import (
    Drawing,
    EventKind,
    HitKind,
    InteractionController,
    InteractionEvent,
    Manipulating,
    ResizeHandle,
    apply_resize,
    hit_test,
)
from nicecrop.crop_editor.regions import RegionStore
from nicecrop.crop_editor.viewport import Viewport

ORIGIN = Point(0.0, 0.0)


@pytest.fixture()
def controller() -> InteractionController:
    store = RegionStore()
    viewport = Viewport(display_width=500, display_height=400)
    return InteractionController(store, viewport)


def _drag(ctrl: InteractionController, start, end, origin: Point = ORIGIN):
    ctrl.pointer_down(Point(*start), origin)
    ctrl.pointer_move(Point(*end), origin)
    return ctrl.pointer_up()


def test_tiny_draw_is_discarded(controller: InteractionController):
    """5x2 px rubber band never becomes a region."""
    assert _drag(controller, (10, 10), (15, 12)) is None
    assert len(controller.store) == 0
    assert controller.is_idle


def test_draw_creates_and_selects(controller: InteractionController):
    rid = _drag(controller, (10, 10), (200, 150))

    assert rid is not None
    region = controller.store.get(rid)
    assert region.rect == Rect(10.0, 10.0, 190.0, 140.0)
    assert controller.store.selected_id == rid


def test_draw_backwards_normalizes_rect(controller: InteractionController):
    rid = _drag(controller, (200, 150), (10, 10))
    assert controller.store.get(rid).rect == Rect(10.0, 10.0, 190.0, 140.0)


def test_draw_exactly_min_size_is_discarded(controller: InteractionController):
    assert _drag(controller, (0, 0), (20, 100)) is None
    assert _drag(controller, (0, 0), (21, 21)) is not None


def test_draw_is_clamped_to_image(controller: InteractionController):
    rid = _drag(controller, (450, 350), (900, 900))
    assert controller.store.get(rid).rect == Rect(450.0, 350.0, 50.0, 50.0)


def test_draw_while_zoomed_uses_display_units(controller: InteractionController):
    controller.viewport.set_zoom(2.0)
    # 30x30 screen px at 2x is 15x15 display px: below the gate.
    assert _drag(controller, (100, 100), (130, 130)) is None

    rid = _drag(controller, (100, 100), (200, 180))
    assert controller.store.get(rid).rect == Rect(50.0, 50.0, 50.0, 40.0)


def test_element_origin_is_subtracted(controller: InteractionController):
    origin = Point(300.0, 120.0)
    rid = _drag(controller, (310, 130), (410, 230), origin=origin)
    assert controller.store.get(rid).rect == Rect(10.0, 10.0, 100.0, 100.0)


def test_draft_is_visible_only_while_drawing(controller: InteractionController):
    controller.pointer_down(Point(10, 10), ORIGIN)
    controller.pointer_move(Point(60, 40), ORIGIN)
    assert isinstance(controller.state, Drawing)
    assert controller.draft == Rect(10.0, 10.0, 50.0, 30.0)
    controller.pointer_up()
    assert controller.draft is None


def test_pointer_down_on_canvas_clears_selection(controller: InteractionController):
    rid = _drag(controller, (10, 10), (100, 100))
    assert controller.store.selected_id == rid
    controller.pointer_down(Point(300, 300), ORIGIN)
    assert controller.store.selected_id is None
    controller.pointer_up()


def test_move_region_is_clamped_inside_image(controller: InteractionController):
    rid = _drag(controller, (10, 10), (110, 110))

    controller.pointer_down(Point(50, 50), ORIGIN)
    assert isinstance(controller.state, Manipulating)
    controller.pointer_move(Point(90, 70), ORIGIN)
    assert controller.store.get(rid).rect == Rect(50.0, 30.0, 100.0, 100.0)

    controller.pointer_move(Point(-500, 2000), ORIGIN)
    assert controller.store.get(rid).rect == Rect(0.0, 300.0, 100.0, 100.0)
    controller.pointer_up()
    assert controller.is_idle


def test_move_delta_is_divided_by_zoom(controller: InteractionController):
    rid = _drag(controller, (10, 10), (110, 110))
    controller.viewport.set_zoom(2.0)

    # Region body at display (50, 50) is at screen (100, 100) now.
    controller.pointer_down(Point(100, 100), ORIGIN)
    controller.pointer_move(Point(140, 100), ORIGIN)
    controller.pointer_up()

    assert controller.store.get(rid).x == pytest.approx(30.0)


def test_resize_se_handle(controller: InteractionController):
    rid = _drag(controller, (10, 10), (110, 110))

    # Selected region; SE handle sits at (110, 110).
    controller.pointer_down(Point(110, 110), ORIGIN)
    state = controller.state
    assert isinstance(state, Manipulating) and state.handle is ResizeHandle.SE
    controller.pointer_move(Point(160, 130), ORIGIN)
    controller.pointer_up()

    assert controller.store.get(rid).rect == Rect(10.0, 10.0, 150.0, 120.0)


def test_resize_below_min_is_held_at_last_valid(controller: InteractionController):
    rid = _drag(controller, (10, 10), (110, 110))

    controller.pointer_down(Point(110, 110), ORIGIN)
    controller.pointer_move(Point(40, 40), ORIGIN)   # 30x30: fine
    controller.pointer_move(Point(25, 25), ORIGIN)   # 15x15: rejected
    controller.pointer_up()

    assert controller.store.get(rid).rect == Rect(10.0, 10.0, 30.0, 30.0)


def test_resize_to_exactly_min_is_allowed(controller: InteractionController):
    rid = _drag(controller, (10, 10), (110, 110))
    controller.pointer_down(Point(110, 110), ORIGIN)
    controller.pointer_move(Point(30, 30), ORIGIN)
    controller.pointer_up()
    assert controller.store.get(rid).rect == Rect(10.0, 10.0, 20.0, 20.0)


def test_resize_nw_clamps_at_zero_and_keeps_far_edge(controller: InteractionController):
    rid = _drag(controller, (10, 10), (110, 110))

    controller.pointer_down(Point(10, 10), ORIGIN)
    assert controller.state.handle is ResizeHandle.NW
    controller.pointer_move(Point(-50, -50), ORIGIN)
    controller.pointer_up()

    assert controller.store.get(rid).rect == Rect(0.0, 0.0, 110.0, 110.0)


@pytest.mark.parametrize(
    "handle, dx, dy, expected",
    [
        (ResizeHandle.N, 0, 10, Rect(10, 20, 100, 90)),
        (ResizeHandle.S, 0, 10, Rect(10, 10, 100, 110)),
        (ResizeHandle.E, 10, 0, Rect(10, 10, 110, 100)),
        (ResizeHandle.W, 10, 0, Rect(20, 10, 90, 100)),
        (ResizeHandle.NE, 10, 10, Rect(10, 20, 110, 90)),
        (ResizeHandle.SW, 10, 10, Rect(20, 10, 90, 110)),
    ],
)
def test_apply_resize_moves_named_edges(handle, dx, dy, expected):
    assert apply_resize(Rect(10, 10, 100, 100), handle, dx, dy) == expected


def test_pointer_leave_commits_draft(controller: InteractionController):
    controller.pointer_down(Point(10, 10), ORIGIN)
    controller.pointer_move(Point(100, 100), ORIGIN)
    rid = controller.pointer_leave()
    assert rid is not None
    assert controller.is_idle


def test_hit_test_prefers_handles_and_topmost(controller: InteractionController):
    store = controller.store
    a = store.create(Rect(10, 10, 100, 100))
    b = store.create(Rect(50, 50, 100, 100))

    assert hit_test(store, Point(60, 60)).region_id == b
    assert hit_test(store, Point(20, 20)).region_id == a
    assert hit_test(store, Point(400, 300)).kind is HitKind.CANVAS

    store.select(a)
    hit = hit_test(store, Point(111, 111))
    assert hit.kind is HitKind.HANDLE and hit.region_id == a and hit.handle is ResizeHandle.SE


def test_read_only_ignores_pointer_down_and_cancels(controller: InteractionController):
    controller.pointer_down(Point(10, 10), ORIGIN)
    controller.read_only = True
    assert controller.is_idle

    assert controller.pointer_down(Point(10, 10), ORIGIN) is False
    controller.pointer_move(Point(200, 200), ORIGIN)
    assert controller.pointer_up() is None
    assert len(controller.store) == 0


def test_gesture_resources_released_on_every_exit(controller: InteractionController):
    entered: List[str] = []
    exited: List[str] = []

    @contextmanager
    def resource(state):
        entered.append(type(state).__name__)
        try:
            yield
        finally:
            exited.append(type(state).__name__)

    controller.add_gesture_resource(resource)

    _drag(controller, (10, 10), (100, 100))                # pointer up
    controller.pointer_down(Point(300, 300), ORIGIN)
    controller.pointer_leave()                             # leave
    controller.pointer_down(Point(50, 50), ORIGIN)
    controller.cancel()                                    # cancel
    controller.pointer_down(Point(300, 300), ORIGIN)
    controller.read_only = True                            # read-only

    assert entered == ["Drawing", "Drawing", "Manipulating", "Drawing"]
    assert exited == entered


def test_listener_errors_do_not_break_gesture(controller: InteractionController):
    seen: List[InteractionEvent] = []

    def broken(_event):
        raise RuntimeError("boom")

    controller.add_listener(broken)
    controller.add_listener(seen.append)

    rid = _drag(controller, (10, 10), (100, 100))

    kinds = [e.kind for e in seen]
    assert EventKind.CREATED in kinds
    assert EventKind.SELECTED in kinds
    assert rid in controller.store
