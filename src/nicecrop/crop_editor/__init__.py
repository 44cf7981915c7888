"""Crop editor - region store, pointer interaction and zoom for cropping images.

The NiceGUI pieces live in their own modules so the state machine can be
used (and tested) without a UI::

    from nicecrop.crop_editor.crop_editor_widget import CropEditorWidget, CropEditorConfig
    from nicecrop.crop_editor.preview_panel import CropPreviewPanel
    from nicecrop.crop_editor.session import EditorSession
"""

from .geometry import Dimensions, Point, Rect, fit_display_dimensions, to_display_rect, to_source_rect
from .interaction import InteractionController, ResizeHandle
from .regions import MIN_REGION_SIZE, Region, RegionDict, RegionStore
from .viewport import MAX_ZOOM, MIN_ZOOM, ZOOM_STEP, Viewport

__all__ = [
    "Dimensions",
    "InteractionController",
    "MAX_ZOOM",
    "MIN_REGION_SIZE",
    "MIN_ZOOM",
    "Point",
    "Rect",
    "Region",
    "RegionDict",
    "RegionStore",
    "ResizeHandle",
    "Viewport",
    "ZOOM_STEP",
    "fit_display_dimensions",
    "to_display_rect",
    "to_source_rect",
]
