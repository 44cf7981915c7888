# nicecrop/src/nicecrop/crop_editor/crop_editor_widget.py

from __future__ import annotations

import html
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Sequence

from nicegui import events, ui
from PIL import Image

from nicecrop.detection.adapter import DetectionResult
from nicecrop.utils.logging import get_logger
from .geometry import Point, Rect
from .interaction import (
    Drawing,
    EventKind,
    InteractionEvent,
    InteractionState,
    Manipulating,
    ResizeHandle,
    handle_anchor,
)
from .regions import MIN_REGION_SIZE, RegionDict
from .session import DetectionOutcome, EditorSession, SourceImage

logger = get_logger(__name__)

# Pointer events report the client position plus the canvas's on-screen
# top-left, which already reflects scroll and the zoom transform.
_POINTER_JS = """(e) => {
    const r = e.currentTarget.getBoundingClientRect();
    emit({x: e.clientX, y: e.clientY, left: r.left, top: r.top, button: e.button, buttons: e.buttons});
}"""

_POINTER_DOWN_JS = """(e) => {
    e.preventDefault();
    const r = e.currentTarget.getBoundingClientRect();
    emit({x: e.clientX, y: e.clientY, left: r.left, top: r.top, button: e.button, buttons: e.buttons});
}"""

# Only Ctrl/Cmd + wheel is ours; a plain wheel scrolls the container.
_WHEEL_JS = """(e) => {
    if (e.ctrlKey || e.metaKey) {
        e.preventDefault();
        emit({deltaY: e.deltaY, ctrl: e.ctrlKey, meta: e.metaKey});
    }
}"""

_SCROLL_JS = """(e) => {
    const t = e.target;
    emit({left: t.scrollLeft, top: t.scrollTop, width: t.clientWidth, height: t.clientHeight});
}"""

_HINT = "Click and drag to add crop regions. Hold Ctrl/Cmd + scroll to zoom."


# Move/resize keeps following the pointer after it leaves the canvas:
# window-level listeners forward mousemove/mouseup, and leaving the
# page ends the gesture like a release.
def js_track_window_pointer(*, key: str, canvas_id: int, move_event: str, up_event: str, throttle_ms: int) -> str:
    return f"""
(() => {{
  if (window['{key}']) window['{key}']();
  const el = getHtmlElement({canvas_id});
  if (!el) return;
  let last = 0;
  const payload = (e) => {{
    const r = el.getBoundingClientRect();
    return {{x: e.clientX, y: e.clientY, left: r.left, top: r.top, button: e.button, buttons: e.buttons}};
  }};
  const move = (e) => {{
    const now = performance.now();
    if (now - last < {throttle_ms}) return;
    last = now;
    emitEvent('{move_event}', payload(e));
  }};
  const up = (e) => emitEvent('{up_event}', payload(e));
  window.addEventListener('mousemove', move);
  window.addEventListener('mouseup', up);
  document.documentElement.addEventListener('mouseleave', up);
  window['{key}'] = () => {{
    window.removeEventListener('mousemove', move);
    window.removeEventListener('mouseup', up);
    document.documentElement.removeEventListener('mouseleave', up);
    delete window['{key}'];
  }};
}})();
""".strip()


def js_untrack_window_pointer(*, key: str) -> str:
    return f"if (window['{key}']) window['{key}']();"


@dataclass
class CropEditorConfig:
    # Region appearance
    region_color: str = "#3b82f6"
    region_selected_color: str = "#f59e0b"
    region_line_width: float = 2.0          # screen px
    region_fill_opacity: float = 0.08
    draft_color: str = "#06b6d4"
    handle_color: str = "#f59e0b"
    handle_radius_px: float = 5.0           # screen px
    badge_font_px: float = 12.0             # screen px

    # Interaction
    handle_tolerance_px: float = 8.0        # handle hit-test tolerance (screen px)
    min_region_size: float = MIN_REGION_SIZE
    mousemove_throttle_sec: float = 0.02

    # Layout
    max_display_width: Optional[int] = 1000
    canvas_max_height: str = "70vh"
    read_only_dim_opacity: float = 0.4
    preview_size: int = 160                 # thumbnail edge (px)


class CropEditorWidget:
    """NiceGUI canvas for drawing, moving and resizing crop regions.

    - Regions live in an :class:`EditorSession` (display-space floats).
    - Public API uses dicts; internal uses ``Region``.

    Events (via callback registration):
        on_region_created(handler): handler(region_dict)
        on_region_updated(handler): handler(region_dict)
        on_region_deleted(handler): handler(region_id)
        on_region_selected(handler): handler(region_id or None)
        on_regions_replaced(handler): handler(list_of_region_dicts)
    """

    def __init__(
        self,
        *,
        session: Optional[EditorSession] = None,
        parent=None,
        config: Optional[CropEditorConfig] = None,
    ) -> None:
        self.config = config if config is not None else CropEditorConfig()
        self.session = session if session is not None else EditorSession(
            max_display_width=self.config.max_display_width,
            min_region_size=self.config.min_region_size,
            handle_tolerance_px=self.config.handle_tolerance_px,
        )

        # Callback registries
        self._region_created_handlers: List[Callable[[RegionDict], None]] = []
        self._region_updated_handlers: List[Callable[[RegionDict], None]] = []
        self._region_deleted_handlers: List[Callable[[str], None]] = []
        self._region_selected_handlers: List[Callable[[Optional[str]], None]] = []
        self._regions_replaced_handlers: List[Callable[[List[RegionDict]], None]] = []

        # Last known size of the scroll container (screen px)
        self._container_w: float = 800.0
        self._container_h: float = 600.0

        # Page-level events emitted by the window listeners of a move/resize
        self._evt_window_move: str = f"nicecrop_window_move_{id(self)}"
        self._evt_window_up: str = f"nicecrop_window_up_{id(self)}"
        self._window_track_key: str = f"__nicecrop_track_{id(self)}"
        self._tracking_window = False

        controller = self.session.controller
        controller.add_listener(self._on_interaction)
        controller.add_gesture_resource(self._gesture_cursor)
        controller.add_gesture_resource(self._window_pointer_tracking)

        container = parent if parent is not None else ui.element("div").classes("w-full")
        with container:
            self._build()

        self._sync_zoom_controls()
        self._redraw_overlays()

    def _build(self) -> None:
        """Build the NiceGUI UI. Must be called within a NiceGUI slot."""
        with ui.row().classes("w-full items-center justify-between gap-4"):
            self._hint = ui.label(_HINT).classes("text-sm text-gray-500")
            with ui.row().classes("items-center gap-1"):
                self._zoom_out_btn = ui.button(icon="zoom_out", on_click=self.zoom_out).props("flat dense")
                self._zoom_label = ui.label("100%").classes("text-sm w-12 text-center")
                self._zoom_in_btn = ui.button(icon="zoom_in", on_click=self.zoom_in).props("flat dense")
                self._zoom_reset_btn = ui.button(icon="restart_alt", on_click=self.reset_zoom).props("flat dense")

        self._scroll = (
            ui.element("div")
            .classes("w-full overflow-auto rounded border border-gray-300")
            .style(f"max-height: {self.config.canvas_max_height};")
        )
        self._scroll.on("scroll", self._on_scroll, js_handler=_SCROLL_JS, throttle=0.1)

        with self._scroll:
            self.interactive = ui.interactive_image().style("max-width: none; cursor: crosshair;")

        self.interactive.on("mousedown", self._on_pointer_down, js_handler=_POINTER_DOWN_JS)
        self.interactive.on(
            "mousemove",
            self._on_pointer_move,
            js_handler=_POINTER_JS,
            throttle=self.config.mousemove_throttle_sec,
        )
        self.interactive.on("mouseup", self._on_pointer_up, js_handler=_POINTER_JS)
        self.interactive.on("mouseleave", self._on_pointer_leave, js_handler=_POINTER_JS)
        self.interactive.on("wheel", self._on_wheel, js_handler=_WHEEL_JS)

        # Page-level key handler for Delete / Backspace / Escape
        ui.keyboard(on_key=self._on_key, ignore=["input", "select", "button", "textarea"])

        # Register Python listeners for the window-level drag events
        ui.on(self._evt_window_move, self._on_window_move)
        ui.on(self._evt_window_up, self._on_window_up)

    # ------------- public image API -------------

    @property
    def image(self) -> Optional[SourceImage]:
        return self.session.image

    def load_image(self, filename: str, data: bytes, mime_type: Optional[str] = None) -> SourceImage:
        """Show a new image; all regions are dropped.

        Raises:
            DecodeFailure: nothing on screen changes.
        """
        image = self.session.load_image(filename, data, mime_type)
        raster = self.session.preview_source
        if raster is not None and (raster.width, raster.height) != (image.display.width, image.display.height):
            raster = raster.resize((image.display.width, image.display.height), Image.Resampling.LANCZOS)
        self.interactive.set_source(raster)
        self._sync_zoom_controls()
        self._notify_replaced()
        self._notify_selected(None)
        self._redraw_overlays()
        return image

    def reset(self) -> None:
        """Forget the image and every region."""
        self.session.reset()
        self.interactive.set_source("")
        self._sync_zoom_controls()
        self._notify_replaced()
        self._notify_selected(None)
        self._redraw_overlays()

    # ------------- public region API -------------

    def get_regions(self) -> List[RegionDict]:
        return self.session.store.to_dicts()

    @property
    def selected_id(self) -> Optional[str]:
        return self.session.store.selected_id

    def set_regions(self, regions: Sequence[Mapping[str, Any]]) -> None:
        """Overwrite regions (ids kept where unique). Clears the selection."""
        self.session.controller.cancel()
        self.session.store.replace_all(regions)
        self._notify_replaced()
        self._notify_selected(None)
        self._redraw_overlays()
        logger.debug(f"set_regions: loaded {len(self.session.store)} regions")

    def update_region(self, region_id: str, changes: Mapping[str, Any]) -> None:
        """Merge ``changes`` (e.g. label / filename) into a region."""
        store = self.session.store
        if region_id not in store:
            return
        store.update(region_id, changes)
        self._notify_updated(region_id)
        self._redraw_overlays()

    def select_region(self, region_id: Optional[str], *, scroll_into_view: bool = True) -> None:
        """Select a region by id (or None to clear selection)."""
        store = self.session.store
        if region_id is not None and region_id not in store:
            return
        store.select(region_id)
        self._notify_selected(region_id)
        self._redraw_overlays()
        if region_id is not None and scroll_into_view:
            self.scroll_to_region(region_id)

    def delete_region(self, region_id: str) -> None:
        store = self.session.store
        was_selected = store.selected_id == region_id
        if not store.delete(region_id):
            return
        for handler in list(self._region_deleted_handlers):
            try:
                handler(region_id)
            except Exception:
                logger.exception("Error in region_deleted handler")
        logger.info(f"Deleted region: {region_id}")
        if was_selected:
            self._notify_selected(None)
        self._redraw_overlays()

    def delete_selected_region(self) -> None:
        """Delete the currently selected region, if any."""
        rid = self.session.store.selected_id
        if rid is not None:
            self.delete_region(rid)

    def apply_detection(self, result: DetectionResult) -> DetectionOutcome:
        outcome = self.session.apply_detection(result)
        if outcome is DetectionOutcome.REPLACED:
            self._notify_replaced()
            self._notify_selected(None)
            self._redraw_overlays()
        return outcome

    @contextmanager
    def detection_in_progress(self) -> Iterator[None]:
        """Dim the canvas and block pointer input while detection runs."""
        try:
            with self.session.detection_in_progress():
                self._hint.text = "Detecting regions..."
                self.interactive.style(add="cursor: default")
                self._redraw_overlays()
                yield
        finally:
            self._hint.text = _HINT
            self.interactive.style(add="cursor: crosshair")
            self._redraw_overlays()

    # ------------- public event registration API -------------

    def on_region_created(self, handler: Callable[[RegionDict], None]) -> None:
        """Register callback for region creation events.

        Handler is called with: region_dict (RegionDict)
        """
        self._region_created_handlers.append(handler)

    def on_region_updated(self, handler: Callable[[RegionDict], None]) -> None:
        """Register callback for region move/resize/edit events.

        Handler is called with: region_dict (RegionDict)
        """
        self._region_updated_handlers.append(handler)

    def on_region_deleted(self, handler: Callable[[str], None]) -> None:
        """Register callback for region deletion events.

        Handler is called with: region_id (str)
        """
        self._region_deleted_handlers.append(handler)

    def on_region_selected(self, handler: Callable[[Optional[str]], None]) -> None:
        """Register callback for selection changes.

        Handler is called with: region_id (str or None)
        """
        self._region_selected_handlers.append(handler)

    def on_regions_replaced(self, handler: Callable[[List[RegionDict]], None]) -> None:
        """Register callback for wholesale replacement (new image, detection, reset).

        Handler is called with: list of RegionDict
        """
        self._regions_replaced_handlers.append(handler)

    # ------------- public viewport API -------------

    def zoom_in(self) -> None:
        if self.session.viewport.zoom_in():
            self._sync_zoom_controls()

    def zoom_out(self) -> None:
        if self.session.viewport.zoom_out():
            self._sync_zoom_controls()

    def reset_zoom(self) -> None:
        if self.session.viewport.reset_zoom():
            self._sync_zoom_controls()

    def get_viewport(self) -> dict:
        return self.session.viewport.to_dict()

    def scroll_to_region(self, region_id: str) -> None:
        region = self.session.store.get(region_id)
        if region is None:
            return
        left, top = self.session.viewport.scroll_to_region(region.rect, self._container_w, self._container_h)
        ui.run_javascript(
            f"getHtmlElement({self._scroll.id}).scrollTo({{left: {left:.1f}, top: {top:.1f}, behavior: 'smooth'}});"
        )

    # ------------- internals: rendering -------------

    def _sync_zoom_controls(self) -> None:
        vp = self.session.viewport
        self._zoom_label.text = f"{vp.zoom_percent}%"
        self._zoom_in_btn.set_enabled(vp.can_zoom_in)
        self._zoom_out_btn.set_enabled(vp.can_zoom_out)
        self._zoom_reset_btn.set_enabled(vp.zoom_level != 1.0)
        if vp.display_width > 0:
            self.interactive.style(add=f"width: {vp.content_width:.1f}px")
        # Stroke widths are divided by zoom, so redraw.
        self._redraw_overlays()

    def _region_svg(self, index: int, rect: Rect, selected: bool, zoom: float) -> str:
        cfg = self.config
        color = cfg.region_selected_color if selected else cfg.region_color
        lw = cfg.region_line_width / zoom
        font = cfg.badge_font_px / zoom
        badge_w = font * (0.9 + 0.6 * len(str(index)))
        badge_h = font * 1.5
        badge_y = max(0.0, rect.y - badge_h)
        return (
            f'<rect x="{rect.x:.2f}" y="{rect.y:.2f}" width="{rect.width:.2f}" height="{rect.height:.2f}" '
            f'stroke="{color}" stroke-width="{lw:.2f}" fill="{color}" fill-opacity="{cfg.region_fill_opacity}" />'
            f'<rect x="{rect.x:.2f}" y="{badge_y:.2f}" width="{badge_w:.2f}" height="{badge_h:.2f}" fill="{color}" />'
            f'<text x="{rect.x + font * 0.45:.2f}" y="{badge_y + font * 1.1:.2f}" font-size="{font:.2f}" '
            f'font-family="sans-serif" fill="white">{html.escape(str(index))}</text>'
        )

    def _redraw_overlays(self) -> None:
        """Draw regions, handles and the rubber band as SVG in display coordinates."""
        session = self.session
        cfg = self.config
        zoom = session.viewport.zoom_level
        store = session.store
        parts: List[str] = []

        for index, region in enumerate(store.regions, start=1):
            parts.append(self._region_svg(index, region.rect, region.id == store.selected_id, zoom))

        selected = store.selected
        if selected is not None and not session.detecting:
            r = cfg.handle_radius_px / zoom
            for handle in ResizeHandle:
                ax, ay = handle_anchor(selected.rect, handle)
                parts.append(
                    f'<circle cx="{ax:.2f}" cy="{ay:.2f}" r="{r:.2f}" fill="{cfg.handle_color}" '
                    f'stroke="white" stroke-width="{1.5 / zoom:.2f}" />'
                )

        draft = session.controller.draft
        if draft is not None and draft.width > 0 and draft.height > 0:
            parts.append(
                f'<rect x="{draft.x:.2f}" y="{draft.y:.2f}" width="{draft.width:.2f}" height="{draft.height:.2f}" '
                f'stroke="{cfg.draft_color}" stroke-width="{cfg.region_line_width / zoom:.2f}" '
                f'stroke-dasharray="{6 / zoom:.2f} {4 / zoom:.2f}" fill="{cfg.draft_color}" fill-opacity="0.1" />'
            )

        if session.detecting and session.display is not None:
            d = session.display
            parts.append(
                f'<rect x="0" y="0" width="{d.width}" height="{d.height}" '
                f'fill="white" fill-opacity="{cfg.read_only_dim_opacity}" />'
            )

        self.interactive.content = "".join(parts)
        self.interactive.update()

    @contextmanager
    def _gesture_cursor(self, state: InteractionState) -> Iterator[None]:
        """Cursor + no text selection for the life of one gesture."""
        if isinstance(state, Manipulating):
            cursor = "move" if state.is_move else state.handle.cursor
        elif isinstance(state, Drawing):
            cursor = "crosshair"
        else:
            cursor = "default"
        self.interactive.classes(add="select-none")
        self.interactive.style(add=f"cursor: {cursor}")
        try:
            yield
        finally:
            self.interactive.classes(remove="select-none")
            self.interactive.style(add="cursor: crosshair")

    @contextmanager
    def _window_pointer_tracking(self, state: InteractionState) -> Iterator[None]:
        """Window mousemove/mouseup listeners for the life of a move or resize."""
        if not isinstance(state, Manipulating):
            yield
            return
        ui.run_javascript(
            js_track_window_pointer(
                key=self._window_track_key,
                canvas_id=self.interactive.id,
                move_event=self._evt_window_move,
                up_event=self._evt_window_up,
                throttle_ms=int(self.config.mousemove_throttle_sec * 1000),
            )
        )
        self._tracking_window = True
        try:
            yield
        finally:
            self._tracking_window = False
            ui.run_javascript(js_untrack_window_pointer(key=self._window_track_key))

    # ------------- internals: notifications -------------

    def _region_dict(self, region_id: str) -> Optional[RegionDict]:
        region = self.session.store.get(region_id)
        return region.to_dict() if region is not None else None

    def _notify_created(self, region_id: str) -> None:
        data = self._region_dict(region_id)
        if data is None:
            return
        for handler in list(self._region_created_handlers):
            try:
                handler(data)
            except Exception:
                logger.exception("Error in region_created handler")

    def _notify_updated(self, region_id: str) -> None:
        data = self._region_dict(region_id)
        if data is None:
            return
        for handler in list(self._region_updated_handlers):
            try:
                handler(data)
            except Exception:
                logger.exception("Error in region_updated handler")

    def _notify_selected(self, region_id: Optional[str]) -> None:
        for handler in list(self._region_selected_handlers):
            try:
                handler(region_id)
            except Exception:
                logger.exception("Error in region_selected handler")

    def _notify_replaced(self) -> None:
        regions = self.get_regions()
        for handler in list(self._regions_replaced_handlers):
            try:
                handler(regions)
            except Exception:
                logger.exception("Error in regions_replaced handler")

    def _on_interaction(self, event: InteractionEvent) -> None:
        if event.kind is EventKind.CREATED and event.region_id is not None:
            self._notify_created(event.region_id)
        elif event.kind is EventKind.UPDATED and event.region_id is not None:
            self._notify_updated(event.region_id)
        elif event.kind is EventKind.SELECTED:
            self._notify_selected(event.region_id)
        self._redraw_overlays()

    # ------------- internals: events -------------

    @staticmethod
    def _pointer_args(e: events.GenericEventArguments) -> tuple[Point, Point, Dict[str, Any]]:
        args = e.args if isinstance(e.args, dict) else {}
        client = Point(float(args.get("x", 0.0)), float(args.get("y", 0.0)))
        origin = Point(float(args.get("left", 0.0)), float(args.get("top", 0.0)))
        return client, origin, args

    def _on_pointer_down(self, e: events.GenericEventArguments) -> None:
        if not self.session.has_image:
            return
        client, origin, args = self._pointer_args(e)
        if args.get("button", 0) != 0:
            return
        self.session.controller.pointer_down(client, origin)

    def _advance(self, e: events.GenericEventArguments) -> None:
        controller = self.session.controller
        if controller.is_idle:
            return
        client, origin, args = self._pointer_args(e)
        if not (int(args.get("buttons", 1)) & 1):
            # Button released somewhere we never heard about.
            controller.pointer_up()
            return
        controller.pointer_move(client, origin)

    def _on_pointer_move(self, e: events.GenericEventArguments) -> None:
        if self._tracking_window:
            # window listeners drive move/resize
            return
        self._advance(e)

    def _on_pointer_up(self, e: events.GenericEventArguments) -> None:
        self.session.controller.pointer_up()

    def _on_pointer_leave(self, e: events.GenericEventArguments) -> None:
        # Only a draw ends at the canvas edge; move/resize end at the window.
        if isinstance(self.session.controller.state, Drawing):
            self.session.controller.pointer_leave()

    def _on_window_move(self, e: events.GenericEventArguments) -> None:
        if not self._tracking_window:
            return
        self._advance(e)

    def _on_window_up(self, e: events.GenericEventArguments) -> None:
        """Release (or page leave) anywhere in the window during move/resize."""
        if not self._tracking_window:
            return
        controller = self.session.controller
        client, origin, _args = self._pointer_args(e)
        # The last throttled move may have been dropped; land on the release point.
        controller.pointer_move(client, origin)
        controller.pointer_up()

    def _on_wheel(self, e: events.GenericEventArguments) -> None:
        args = e.args if isinstance(e.args, dict) else {}
        dy = args.get("deltaY", 0)
        if not isinstance(dy, (int, float)) or dy == 0:
            return
        changed = self.session.viewport.handle_wheel(
            float(dy),
            ctrl=bool(args.get("ctrl", False)),
            meta=bool(args.get("meta", False)),
        )
        if changed:
            self._sync_zoom_controls()

    def _on_scroll(self, e: events.GenericEventArguments) -> None:
        args = e.args if isinstance(e.args, dict) else {}
        self.session.viewport.set_scroll(float(args.get("left", 0.0)), float(args.get("top", 0.0)))
        self._container_w = float(args.get("width", self._container_w)) or self._container_w
        self._container_h = float(args.get("height", self._container_h)) or self._container_h

    def _on_key(self, e: events.KeyEventArguments) -> None:
        """Keyboard shortcuts: delete selected region, cancel gesture."""
        if not e.action.keydown:
            return
        key_name = getattr(e.key, "name", None)

        if key_name in ("Backspace", "Delete"):
            if self.session.controller.is_idle and not self.session.detecting:
                self.delete_selected_region()
        elif key_name == "Escape":
            self.session.controller.cancel()
