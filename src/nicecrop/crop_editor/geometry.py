# nicecrop/src/nicecrop/crop_editor/geometry.py
"""Display-space <-> source-space coordinate mapping.

Display space is the image as laid out at 100% zoom. Source space is the
native pixel grid of the uploaded file. Regions are stored in display
space; everything that reads pixels goes through :func:`to_source_rect`.

Rounding happens only on the way into source space. Drag and resize math
stays in floats so a long gesture does not accumulate drift.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import NamedTuple, Tuple


class Point(NamedTuple):
    x: float
    y: float


@dataclass(frozen=True)
class Rect:
    """Axis-aligned rectangle given by its top-left corner and size."""

    x: float
    y: float
    width: float
    height: float

    @property
    def right(self) -> float:
        return self.x + self.width

    @property
    def bottom(self) -> float:
        return self.y + self.height

    @property
    def area(self) -> float:
        return self.width * self.height

    def contains(self, px: float, py: float) -> bool:
        return self.x <= px <= self.right and self.y <= py <= self.bottom

    def as_box(self) -> Tuple[int, int, int, int]:
        """Return (left, top, right, bottom) as ints, PIL box order."""
        return (
            int(self.x),
            int(self.y),
            int(self.x + self.width),
            int(self.y + self.height),
        )


@dataclass(frozen=True)
class Dimensions:
    width: int
    height: int

    def __post_init__(self) -> None:
        if self.width <= 0 or self.height <= 0:
            raise ValueError(f"dimensions must be positive, got {self.width}x{self.height}")

    @property
    def aspect(self) -> float:
        return self.width / self.height


def clamp(value: float, lo: float, hi: float) -> float:
    """Clamp value into [lo, hi]. If hi < lo, lo wins."""
    return max(lo, min(hi, value))


def scale_factors(original: Dimensions, display: Dimensions) -> Tuple[float, float]:
    """Per-axis display -> source scale."""
    return original.width / display.width, original.height / display.height


def round_half_up(value: float) -> float:
    """Nearest integer, halves toward +infinity (2.5 -> 3, -2.5 -> -2)."""
    return float(math.floor(value + 0.5))


def to_source_rect(display_rect: Rect, original: Dimensions, display: Dimensions) -> Rect:
    """Map a display-space rectangle onto the source pixel grid.

    Each axis is scaled independently, then x, y, width and height are
    each rounded to the nearest integer, halves rounding up.
    """
    sx, sy = scale_factors(original, display)
    return Rect(
        x=round_half_up(display_rect.x * sx),
        y=round_half_up(display_rect.y * sy),
        width=round_half_up(display_rect.width * sx),
        height=round_half_up(display_rect.height * sy),
    )


def to_display_rect(source_rect: Rect, original: Dimensions, display: Dimensions) -> Rect:
    """Inverse of :func:`to_source_rect`, without rounding."""
    sx, sy = scale_factors(original, display)
    return Rect(
        x=source_rect.x / sx,
        y=source_rect.y / sy,
        width=source_rect.width / sx,
        height=source_rect.height / sy,
    )


def viewport_point_to_display_point(
    client_point: Point,
    viewport_origin: Point,
    zoom_level: float,
) -> Point:
    """Raw pointer position -> unzoomed display space."""
    if zoom_level <= 0:
        raise ValueError(f"zoom_level must be positive, got {zoom_level}")
    return Point(
        (client_point.x - viewport_origin.x) / zoom_level,
        (client_point.y - viewport_origin.y) / zoom_level,
    )


def display_point_to_viewport_point(
    display_point: Point,
    viewport_origin: Point,
    zoom_level: float,
) -> Point:
    return Point(
        display_point.x * zoom_level + viewport_origin.x,
        display_point.y * zoom_level + viewport_origin.y,
    )


def bounding_rect(a: Point, b: Point) -> Rect:
    """Smallest rectangle spanning two corner points, in any order."""
    return Rect(
        x=min(a.x, b.x),
        y=min(a.y, b.y),
        width=abs(b.x - a.x),
        height=abs(b.y - a.y),
    )


def fit_display_dimensions(original: Dimensions, max_width: int | None) -> Dimensions:
    """Layout size of an image at 100% zoom.

    Images wider than ``max_width`` are scaled down preserving aspect ratio;
    images are never scaled up.
    """
    if max_width is None or original.width <= max_width:
        return Dimensions(original.width, original.height)
    scale = max_width / original.width
    return Dimensions(
        max(1, int(round_half_up(original.width * scale))),
        max(1, int(round_half_up(original.height * scale))),
    )
