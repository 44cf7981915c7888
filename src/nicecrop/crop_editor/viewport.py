# nicecrop/src/nicecrop/crop_editor/viewport.py

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, Tuple

from nicecrop.utils.logging import get_logger
from .geometry import Point, Rect, clamp, viewport_point_to_display_point

logger = get_logger(__name__)

MIN_ZOOM = 0.5
MAX_ZOOM = 4.0
ZOOM_STEP = 0.15


@dataclass
class Viewport:
    """Zoom level and scroll offset of the editor canvas.

    The canvas lays the image out at ``display_width x display_height`` and
    scales it by ``zoom_level`` inside a scrollable container. Scroll
    offsets are in zoomed (screen) pixels. Nothing here touches stored
    regions; callers read :attr:`zoom_level` when mapping pointer input.
    """

    display_width: int
    display_height: int
    zoom_level: float = 1.0
    scroll_x: float = 0.0
    scroll_y: float = 0.0

    def __post_init__(self) -> None:
        self.zoom_level = self._clamp_zoom(self.zoom_level)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Viewport":
        return cls(**data)

    # ------------------ derived geometry ------------------

    @property
    def content_width(self) -> float:
        """Width of the zoomed canvas in screen pixels."""
        return self.display_width * self.zoom_level

    @property
    def content_height(self) -> float:
        return self.display_height * self.zoom_level

    @property
    def extent(self) -> Tuple[float, float]:
        """Logical (unzoomed) bounds used to clamp regions."""
        return float(self.display_width), float(self.display_height)

    @property
    def origin(self) -> Point:
        """Top-left of the canvas relative to the scroll container's visible area."""
        return Point(-self.scroll_x, -self.scroll_y)

    @property
    def zoom_percent(self) -> int:
        return int(round(self.zoom_level * 100))

    @property
    def can_zoom_in(self) -> bool:
        return self.zoom_level < MAX_ZOOM

    @property
    def can_zoom_out(self) -> bool:
        return self.zoom_level > MIN_ZOOM

    def to_display_point(self, client: Point, element_origin: Point | None = None) -> Point:
        """Pointer position -> unzoomed display space.

        ``element_origin`` is the canvas's on-screen top-left when the
        caller measured it directly (e.g. ``getBoundingClientRect``);
        otherwise the scroll offset gives the origin.
        """
        origin = element_origin if element_origin is not None else self.origin
        return viewport_point_to_display_point(client, origin, self.zoom_level)

    # ------------------ zoom ------------------

    def zoom_in(self) -> bool:
        return self.set_zoom(self.zoom_level + ZOOM_STEP)

    def zoom_out(self) -> bool:
        return self.set_zoom(self.zoom_level - ZOOM_STEP)

    def reset_zoom(self) -> bool:
        return self.set_zoom(1.0)

    def set_zoom(self, zoom_level: float) -> bool:
        """Set zoom (clamped). Returns True if it changed."""
        new_zoom = self._clamp_zoom(zoom_level)
        if new_zoom == self.zoom_level:
            return False
        old = self.zoom_level
        self.zoom_level = new_zoom
        # Keep the scroll offset inside the resized content.
        self.scroll_x = max(0.0, min(self.scroll_x, self.content_width))
        self.scroll_y = max(0.0, min(self.scroll_y, self.content_height))
        logger.debug(f"zoom {old:.2f} -> {new_zoom:.2f}")
        return True

    def handle_wheel(self, delta_y: float, *, ctrl: bool = False, meta: bool = False) -> bool:
        """Apply a wheel event. Returns True if zoom changed.

        Only Ctrl/Cmd + wheel zooms. A plain wheel scrolls the container,
        which the browser already does; we just record the new offset.
        """
        if not (ctrl or meta):
            self.scroll_by(0.0, delta_y)
            return False
        if delta_y == 0:
            return False
        return self.zoom_out() if delta_y > 0 else self.zoom_in()

    # ------------------ scroll ------------------

    def set_scroll(self, scroll_x: float, scroll_y: float) -> None:
        self.scroll_x = max(0.0, float(scroll_x))
        self.scroll_y = max(0.0, float(scroll_y))

    def scroll_by(self, dx: float, dy: float) -> None:
        self.set_scroll(
            clamp(self.scroll_x + dx, 0.0, self.content_width),
            clamp(self.scroll_y + dy, 0.0, self.content_height),
        )

    def scroll_to_region(self, rect: Rect, container_width: float, container_height: float) -> Tuple[float, float]:
        """Scroll so that ``rect`` (display space) is centred in the container.

        Returns the new (scroll_x, scroll_y).
        """
        z = self.zoom_level
        left = rect.x * z - container_width / 2.0 + (rect.width * z) / 2.0
        top = rect.y * z - container_height / 2.0 + (rect.height * z) / 2.0
        max_left = max(0.0, self.content_width - container_width)
        max_top = max(0.0, self.content_height - container_height)
        self.set_scroll(clamp(left, 0.0, max_left), clamp(top, 0.0, max_top))
        return self.scroll_x, self.scroll_y

    # ------------------ internal helpers ------------------

    @staticmethod
    def _clamp_zoom(zoom_level: float) -> float:
        # Round so repeated +/- steps land on the same values (1.15, 1.3, ...).
        return round(clamp(float(zoom_level), MIN_ZOOM, MAX_ZOOM), 2)
