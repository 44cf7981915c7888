# nicecrop/src/nicecrop/crop_editor/session.py

from __future__ import annotations

import io
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import PurePath
from typing import Iterator, Optional

from PIL import Image

from nicecrop.detection.adapter import DetectionResult
from nicecrop.errors import CropError
from nicecrop.export.encoding import ExportConfig, ImageFormat
from nicecrop.export.pipeline import ExportedFile, decode_source, export_all_async, export_region_async
from nicecrop.utils.logging import get_logger
from .geometry import Dimensions, fit_display_dimensions
from .interaction import InteractionController
from .regions import MIN_REGION_SIZE, RegionStore
from .viewport import Viewport

logger = get_logger(__name__)

_MIME_BY_PIL_FORMAT = {
    "PNG": "image/png",
    "JPEG": "image/jpeg",
    "WEBP": "image/webp",
    "GIF": "image/gif",
    "BMP": "image/bmp",
    "TIFF": "image/tiff",
}


@dataclass(frozen=True)
class SourceImage:
    """The uploaded file plus its dimension pair. Immutable per image."""

    filename: str
    data: bytes
    mime_type: str
    original: Dimensions
    display: Dimensions

    @property
    def base_name(self) -> str:
        return PurePath(self.filename).stem or "image"


class DetectionOutcome(Enum):
    REPLACED = "replaced"
    EMPTY = "empty"


class EditorSession:
    """All editor state for one user: image, regions, selection, zoom.

    Replacing the image (or starting over) swaps image, dimensions,
    regions, selection and zoom together.
    """

    def __init__(
        self,
        *,
        max_display_width: Optional[int] = 1000,
        min_region_size: float = MIN_REGION_SIZE,
        handle_tolerance_px: float = 8.0,
        export_config: Optional[ExportConfig] = None,
    ) -> None:
        self.max_display_width = max_display_width
        self.export_config = export_config or ExportConfig()

        self.store = RegionStore(min_size=min_region_size)
        self.viewport = Viewport(display_width=0, display_height=0)
        self.controller = InteractionController(
            self.store,
            self.viewport,
            min_size=min_region_size,
            handle_tolerance_px=handle_tolerance_px,
        )

        self.image: Optional[SourceImage] = None
        # Decoded copy kept for preview rendering; exports re-decode.
        self._preview_source: Optional[Image.Image] = None
        self._detecting = False

    # ------------- properties -------------

    @property
    def has_image(self) -> bool:
        return self.image is not None

    @property
    def original(self) -> Optional[Dimensions]:
        return self.image.original if self.image else None

    @property
    def display(self) -> Optional[Dimensions]:
        return self.image.display if self.image else None

    @property
    def preview_source(self) -> Optional[Image.Image]:
        return self._preview_source

    @property
    def detecting(self) -> bool:
        return self._detecting

    # ------------- image lifecycle -------------

    def load_image(self, filename: str, data: bytes, mime_type: Optional[str] = None) -> SourceImage:
        """Decode and install a new image, clearing all regions.

        Raises:
            DecodeFailure: the session is left exactly as it was.
        """
        decoded = decode_source(data)
        original = Dimensions(decoded.width, decoded.height)
        display = fit_display_dimensions(original, self.max_display_width)
        if mime_type is None:
            mime_type = self._guess_mime(data)

        image = SourceImage(
            filename=filename or "image",
            data=bytes(data),
            mime_type=mime_type,
            original=original,
            display=display,
        )

        self.controller.cancel()
        self.image = image
        self._preview_source = decoded
        self.store.clear()
        self._reset_viewport(display.width, display.height)

        logger.info(
            f"loaded {image.filename!r}: original={original.width}x{original.height}, "
            f"display={display.width}x{display.height}"
        )
        return image

    def reset(self) -> None:
        """Start over: no image, no regions."""
        self.controller.cancel()
        self.image = None
        self._preview_source = None
        self.store.clear()
        self._reset_viewport(0, 0)
        logger.info("session reset")

    # ------------- detection -------------

    @contextmanager
    def detection_in_progress(self) -> Iterator[None]:
        """Read-only canvas for the duration of a detection request."""
        self._detecting = True
        self.controller.read_only = True
        try:
            yield
        finally:
            self._detecting = False
            self.controller.read_only = False

    def apply_detection(self, result: DetectionResult) -> DetectionOutcome:
        """Merge a detection result: non-empty replaces everything."""
        if not result.regions:
            logger.info("detection returned no regions; keeping current regions")
            return DetectionOutcome.EMPTY
        self.controller.cancel()
        self.store.replace_all(result.regions)
        logger.info(f"replaced regions with {len(result.regions)} detected region(s)")
        return DetectionOutcome.REPLACED

    # ------------- export -------------

    async def export_region(self, region_id: str, *, image_format: Optional[ImageFormat] = None) -> ExportedFile:
        image = self._require_image()
        region = self.store.get(region_id)
        if region is None:
            raise KeyError(region_id)
        return await export_region_async(
            image.data,
            region,
            self.store.index_of(region_id) + 1,
            image.original,
            image.display,
            config=self.export_config,
            image_format=image_format,
        )

    async def export_all(self) -> ExportedFile:
        image = self._require_image()
        # Snapshot so edits made while encoding don't leak into this archive.
        regions = self.store.regions
        return await export_all_async(
            image.data,
            image.filename,
            regions,
            image.original,
            image.display,
            config=self.export_config,
        )

    # ------------- internals -------------

    def _require_image(self) -> SourceImage:
        if self.image is None:
            raise CropError("no image loaded")
        return self.image

    def _reset_viewport(self, width: int, height: int) -> None:
        vp = self.viewport
        vp.display_width = width
        vp.display_height = height
        vp.reset_zoom()
        vp.set_scroll(0.0, 0.0)

    @staticmethod
    def _guess_mime(data: bytes) -> str:
        try:
            with Image.open(io.BytesIO(data)) as img:
                return _MIME_BY_PIL_FORMAT.get(img.format or "", "image/png")
        except (OSError, ValueError):
            return "image/png"
