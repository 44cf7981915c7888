# nicecrop/src/nicecrop/upload_widget/upload_widget.py
from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional

from nicegui import ui

from nicecrop.upload_widget.normalize import UploadedImage, read_upload, safe_upload_event_summary
from nicecrop.utils.logging import get_logger

logger = get_logger(__name__)

# Public type alias (stable API)
OnImageReady = Callable[[UploadedImage], Awaitable[None]]


class ImageUploadWidget:
    """Single-image NiceGUI upload control.

    Non-image files are ignored with a status message; image bytes are
    handed to ``on_image_ready`` once fully received.
    """

    def __init__(
        self,
        *,
        on_image_ready: OnImageReady,
        label: str = "Drop an image here or click to browse",
        accept: str = "image/*",
        max_file_size: Optional[int] = None,
    ) -> None:
        self._label = label
        self._accept = accept
        self._max_file_size = max_file_size
        self._on_image_ready = on_image_ready
        self._busy = False

        self._build()

    def _build(self) -> None:
        """Build the NiceGUI UI. Must be called within a NiceGUI slot."""
        self._status = ui.label("").classes("text-sm text-gray-600")
        self._spinner = ui.spinner(size="lg").classes("mt-2")
        self._spinner.visible = False

        props = f'accept="{self._accept}"'
        if self._max_file_size is not None:
            props += f" max-file-size={int(self._max_file_size)}"

        self._upload = ui.upload(
            label=self._label,
            auto_upload=True,
            multiple=False,
            on_upload=self._on_upload,
        ).props(props).classes("w-full")

    @property
    def busy(self) -> bool:
        return self._busy

    def _set_status(self, msg: str) -> None:
        self._status.text = msg

    async def _on_upload(self, e: Any) -> None:
        if self._busy:
            logger.warning("upload ignored, previous image still loading: %s", safe_upload_event_summary(e))
            return

        self._busy = True
        self._spinner.visible = True
        try:
            try:
                uploaded = await read_upload(e)
            except RuntimeError:
                logger.exception("upload read failed")
                self._set_status("Could not read the uploaded file")
                return

            if not uploaded.is_image:
                logger.info("ignoring non-image upload %r (%s)", uploaded.name, uploaded.content_type)
                self._set_status(f"{uploaded.name} is not an image")
                return

            self._set_status(f"Loading {uploaded.name}")
            logger.debug("received %s (%d bytes)", uploaded.name, len(uploaded.data))
            try:
                await self._on_image_ready(uploaded)
            except Exception:
                logger.exception("on_image_ready failed")
                self._set_status(f"Could not load {uploaded.name}")
                return
            self._set_status("")
        finally:
            self._busy = False
            self._spinner.visible = False
            reset = getattr(self._upload, "reset", None)
            if callable(reset):
                reset()
