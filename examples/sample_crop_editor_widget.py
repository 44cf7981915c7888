from __future__ import annotations

import io

import numpy as np
from nicegui import ui
from PIL import Image

from nicecrop.crop_editor.crop_editor_widget import CropEditorWidget
from nicecrop.crop_editor.preview_panel import CropPreviewPanel
from nicecrop.utils.download import trigger_download
from nicecrop.utils.logging import configure_logging


def create_demo_image(height: int = 900, width: int = 1600) -> bytes:
    """Simple demo image: colour gradients + sine rings, as PNG bytes."""
    yy, xx = np.mgrid[0:height, 0:width].astype(float)
    r = np.hypot(xx - width / 2, yy - height / 2)
    rgb = np.stack(
        [
            xx / width,
            yy / height,
            0.5 + 0.5 * np.sin(r / 25.0),
        ],
        axis=-1,
    )
    img = Image.fromarray((rgb * 255).astype(np.uint8), mode="RGB")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


if __name__ in {"__main__", "__mp_main__"}:
    configure_logging(level="DEBUG")

    with ui.row().classes("w-full no-wrap gap-6 p-4"):
        with ui.column().classes("grow gap-2"):
            ui.label("CropEditorWidget demo").classes("text-lg font-bold")
            editor = CropEditorWidget()
            editor.load_image("demo.png", create_demo_image())
            editor.set_regions(
                [
                    {"id": "region-1", "x": 60, "y": 40, "width": 200, "height": 150, "label": "top-left"},
                ]
            )

            def on_created(region: dict) -> None:
                ui.notify(f"Region created: {region['id']}", timeout=1.0)

            editor.on_region_created(on_created)

        with ui.column().classes("w-80 gap-2"):

            async def download(region_id: str) -> None:
                exported = await editor.session.export_region(region_id)
                trigger_download(exported.data, exported.filename, exported.media_type)

            async def download_all() -> None:
                exported = await editor.session.export_all()
                trigger_download(exported.data, exported.filename, exported.media_type)

            ui.button("Download all (ZIP)", icon="archive", on_click=download_all)
            CropPreviewPanel(editor, on_download=download)

    ui.run(reload=False)
