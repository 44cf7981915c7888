# nicecrop/src/nicecrop/app.py
"""Single-page crop tool: upload an image, draw regions, download crops.

Run with the ``nicecrop`` console script or ``python -m nicecrop.app``.
Detection is enabled when ``NICECROP_DETECTION_URL`` is set.
"""

from __future__ import annotations

from typing import Optional

from nicegui import ui

from nicecrop.crop_editor.crop_editor_widget import CropEditorConfig, CropEditorWidget
from nicecrop.crop_editor.preview_panel import CropPreviewPanel
from nicecrop.crop_editor.session import DetectionOutcome, EditorSession
from nicecrop.detection.adapter import DetectionClient, DetectionConfig
from nicecrop.errors import CropError, DecodeFailure, DetectionFailure
from nicecrop.export.encoding import ExportConfig
from nicecrop.upload_widget import ImageUploadWidget, UploadedImage
from nicecrop.utils.download import trigger_download
from nicecrop.utils.gui_defaults import set_up_gui_defaults
from nicecrop.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


class CropApp:
    """One browser tab's worth of crop tool.

    Owns an :class:`EditorSession`; the upload area is shown until an image
    is loaded, then the editor, action bar and previews take its place.
    """

    def __init__(
        self,
        *,
        editor_config: Optional[CropEditorConfig] = None,
        export_config: Optional[ExportConfig] = None,
        detection_config: Optional[DetectionConfig] = None,
    ) -> None:
        self.editor_config = editor_config or CropEditorConfig()
        self.detection_config = detection_config if detection_config is not None else DetectionConfig.from_env()
        self.session = EditorSession(
            max_display_width=self.editor_config.max_display_width,
            min_region_size=self.editor_config.min_region_size,
            handle_tolerance_px=self.editor_config.handle_tolerance_px,
            export_config=export_config,
        )
        self._detector: Optional[DetectionClient] = (
            DetectionClient(self.detection_config) if self.detection_config.enabled else None
        )
        self._busy = False

        self._build()

    def _build(self) -> None:
        """Build the NiceGUI UI. Must be called within a NiceGUI slot."""
        with ui.column().classes("w-full gap-4 p-4"):
            ui.label("Image Cropper").classes("text-2xl font-bold")

            self._upload_section = ui.column().classes("w-full max-w-xl")
            with self._upload_section:
                ImageUploadWidget(on_image_ready=self._on_image_ready)

            self._workspace = ui.column().classes("w-full gap-2")
            with self._workspace:
                with ui.row().classes("w-full items-center gap-2"):
                    self._file_label = ui.label("").classes("font-medium")
                    ui.space()
                    self._detect_btn = ui.button("Detect regions", icon="auto_fix_high", on_click=self.detect)
                    if self._detector is None:
                        self._detect_btn.set_enabled(False)
                        self._detect_btn.tooltip("Set NICECROP_DETECTION_URL to enable detection")
                    self._download_all_btn = ui.button(
                        "Download all (ZIP)", icon="archive", on_click=self.download_all
                    )
                    ui.button("Reset", icon="restart_alt", on_click=self.reset).props("outline")

                with ui.row().classes("w-full no-wrap items-start gap-4"):
                    with ui.column().classes("grow min-w-0"):
                        self.editor = CropEditorWidget(session=self.session, config=self.editor_config)
                    with ui.column().classes("w-80 shrink-0"):
                        self.previews = CropPreviewPanel(
                            self.editor,
                            on_download=self.download_region,
                            thumb_size=self.editor_config.preview_size,
                        )

        self.editor.on_region_created(lambda _r: self._sync_actions())
        self.editor.on_region_deleted(lambda _rid: self._sync_actions())
        self.editor.on_regions_replaced(lambda _rs: self._sync_actions())
        self._sync_views()

    # ------------- state sync -------------

    def _sync_views(self) -> None:
        has_image = self.session.has_image
        self._upload_section.visible = not has_image
        self._workspace.visible = has_image
        self._file_label.text = self.session.image.filename if self.session.image else ""
        self._sync_actions()

    def _sync_actions(self) -> None:
        idle = not self._busy and not self.session.detecting
        self._download_all_btn.set_enabled(idle and len(self.session.store) > 0)
        self._detect_btn.set_enabled(idle and self._detector is not None and self.session.has_image)

    # ------------- handlers -------------

    async def _on_image_ready(self, uploaded: UploadedImage) -> None:
        try:
            self.editor.load_image(uploaded.name, uploaded.data, uploaded.content_type)
        except DecodeFailure as exc:
            logger.warning(f"could not load {uploaded.name!r}: {exc}")
            ui.notify(f"Could not open {uploaded.name}: not a readable image", type="negative")
            return
        self._sync_views()
        ui.notify(f"Loaded {uploaded.name}", type="positive")

    async def detect(self) -> None:
        image = self.session.image
        if image is None or self._detector is None or self.session.detecting:
            return

        self._sync_actions()
        notification = ui.notification("Detecting regions...", spinner=True, timeout=None)
        try:
            with self.editor.detection_in_progress():
                self._sync_actions()
                result = await self._detector.detect_async(image.data, image.mime_type, image.display)
        except DetectionFailure as exc:
            logger.warning(f"detection failed: {exc}")
            ui.notify(f"Detection failed: {exc}", type="negative")
            return
        finally:
            notification.dismiss()
            self._sync_actions()

        if self.session.image is not image:
            logger.info("image changed during detection; discarding result")
            return

        outcome = self.editor.apply_detection(result)
        if outcome is DetectionOutcome.REPLACED:
            ui.notify(f"Detected {len(result.regions)} region(s)", type="positive")
        else:
            ui.notify("No regions detected", type="warning")

    async def download_region(self, region_id: str) -> None:
        try:
            exported = await self.session.export_region(region_id)
        except KeyError:
            return
        except CropError as exc:
            logger.exception(f"export failed for {region_id}")
            ui.notify(f"Export failed: {exc}", type="negative")
            return
        trigger_download(exported.data, exported.filename, exported.media_type)

    async def download_all(self) -> None:
        if self._busy or len(self.session.store) == 0:
            return
        self._busy = True
        self._sync_actions()
        try:
            exported = await self.session.export_all()
        except CropError as exc:
            logger.exception("archive export failed")
            ui.notify(f"Export failed: {exc}", type="negative")
            return
        finally:
            self._busy = False
            self._sync_actions()
        trigger_download(exported.data, exported.filename, exported.media_type)
        ui.notify(f"Downloaded {exported.filename}", type="positive")

    def reset(self) -> None:
        self.editor.reset()
        self._sync_views()
        ui.notify("Reset complete", type="info")


def build_page() -> None:
    set_up_gui_defaults()
    ui.page_title("Image Cropper")
    CropApp()


def main(*, host: str = "127.0.0.1", port: int = 8080) -> None:
    """Console entrypoint: configure logging and serve the crop page."""
    configure_logging()
    ui.page("/")(build_page)
    logger.info(f"starting nicecrop on http://{host}:{port}")
    ui.run(host=host, port=port, title="Image Cropper", reload=False)


if __name__ in {"__main__", "__mp_main__"}:
    main()
