# nicecrop/src/nicecrop/crop_editor/preview_panel.py

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, List, Optional, Tuple

from nicegui import run, ui
from PIL import Image

from nicecrop.errors import CropError
from nicecrop.export.pipeline import render_preview, resolve_export_name
from nicecrop.utils.logging import get_logger
from .crop_editor_widget import CropEditorWidget
from .geometry import to_source_rect
from .regions import Region

logger = get_logger(__name__)

OnDownloadRegion = Callable[[str], Awaitable[None]]


class CropPreviewPanel:
    """Thumbnail list of every region, in store order.

    Clicking a card selects (and scrolls to) its region. Each card has a
    download and a delete button. Rebuilds are debounced so a drag does
    not re-render thumbnails on every mouse move.
    """

    def __init__(
        self,
        editor: CropEditorWidget,
        *,
        on_download: Optional[OnDownloadRegion] = None,
        thumb_size: int = 160,
        refresh_debounce_sec: float = 0.15,
    ) -> None:
        self.editor = editor
        self._on_download = on_download
        self._thumb_size = int(thumb_size)
        self._refresh_debounce_sec = float(refresh_debounce_sec)
        self._debounce_task: Optional[asyncio.Task[None]] = None
        self._cards: dict[str, ui.card] = {}

        self._build()

        editor.on_region_created(lambda _r: self.schedule_refresh())
        editor.on_region_updated(lambda _r: self.schedule_refresh())
        editor.on_region_deleted(lambda _rid: self.schedule_refresh())
        editor.on_regions_replaced(lambda _rs: self.schedule_refresh())
        editor.on_region_selected(lambda _rid: self._highlight_selected())

        # Initial render once the client is connected.
        ui.timer(0.0, self.refresh, once=True)

    def _build(self) -> None:
        """Build the NiceGUI UI. Must be called within a NiceGUI slot."""
        with ui.column().classes("w-full gap-2"):
            self._title = ui.label("Crop previews (0)").classes("text-base font-semibold")
            self._empty = ui.label("Draw a region on the image to see its preview here.").classes(
                "text-sm text-gray-500"
            )
            self._grid = ui.element("div").classes("w-full grid grid-cols-2 gap-2")

    # ------------- refresh -------------

    def _cancel_debounce_task(self) -> None:
        t = self._debounce_task
        self._debounce_task = None
        if t is not None and not t.done():
            t.cancel()

    def schedule_refresh(self) -> None:
        self._cancel_debounce_task()

        async def _refresh_later() -> None:
            try:
                await asyncio.sleep(self._refresh_debounce_sec)
                await self.refresh()
            except asyncio.CancelledError:
                return

        self._debounce_task = asyncio.create_task(_refresh_later())

    def _render_thumbs(self, regions: List[Region]) -> List[Tuple[Region, Optional[Image.Image]]]:
        session = self.editor.session
        source, image = session.preview_source, session.image
        out: List[Tuple[Region, Optional[Image.Image]]] = []
        for region in regions:
            thumb: Optional[Image.Image] = None
            if source is not None and image is not None:
                try:
                    thumb = render_preview(source, region.rect, image.original, image.display, self._thumb_size)
                except CropError:
                    logger.exception(f"preview failed for {region.id}")
            out.append((region, thumb))
        return out

    async def refresh(self) -> None:
        """Re-render all thumbnails off the event loop, then rebuild the cards."""
        regions = self.editor.session.store.regions
        rendered = await run.io_bound(self._render_thumbs, regions)
        if rendered is None:
            # app is shutting down
            return

        self._title.text = f"Crop previews ({len(rendered)})"
        self._empty.visible = not rendered
        self._grid.clear()
        self._cards = {}
        with self._grid:
            for index, (region, thumb) in enumerate(rendered, start=1):
                self._cards[region.id] = self._build_card(index, region, thumb)
        self._highlight_selected()

    def _build_card(self, index: int, region: Region, thumb: Optional[Image.Image]) -> ui.card:
        card = ui.card().classes("p-2 gap-1 cursor-pointer").tight()
        card.on("click", lambda _e, rid=region.id: self.editor.select_region(rid))
        with card:
            if thumb is not None:
                ui.image(thumb).classes("w-full").props("fit=contain")
            with ui.row().classes("w-full items-center justify-between no-wrap"):
                ui.label(f"{index}. {resolve_export_name(region, index)}").classes("text-xs truncate")
                with ui.row().classes("gap-0 no-wrap"):
                    ui.button(
                        icon="download",
                        on_click=lambda _e, rid=region.id: self._download(rid),
                    ).props("flat dense round size=sm")
                    ui.button(
                        icon="delete",
                        on_click=lambda _e, rid=region.id: self.editor.delete_region(rid),
                    ).props("flat dense round size=sm color=negative")
            size = self._source_size(region)
            if size:
                ui.label(size).classes("text-xs text-gray-500")
        return card

    def _source_size(self, region: Region) -> str:
        image = self.editor.session.image
        if image is None:
            return ""
        src = to_source_rect(region.rect, image.original, image.display)
        return f"{int(src.width)} x {int(src.height)} px"

    def _highlight_selected(self) -> None:
        selected = self.editor.selected_id
        for rid, card in self._cards.items():
            if rid == selected:
                card.classes(add="ring-2 ring-amber-500")
            else:
                card.classes(remove="ring-2 ring-amber-500")

    async def _download(self, region_id: str) -> None:
        if self._on_download is None:
            return
        await self._on_download(region_id)
