# tests/test_app.py

from __future__ import annotations

from typing import Any, List

import pytest

import nicecrop.app as app_mod
import nicecrop.crop_editor.crop_editor_widget as cew_mod
import nicecrop.crop_editor.preview_panel as pp_mod
import nicecrop.upload_widget.upload_widget as uw_mod
import nicecrop.utils.download as dl_mod
from nicecrop.app import CropApp
from nicecrop.crop_editor.geometry import Dimensions, Rect
from nicecrop.crop_editor.regions import Region
from nicecrop.detection.adapter import DetectionConfig, DetectionResult
from nicecrop.errors import DetectionFailure, EncodeFailure
from nicecrop.upload_widget.normalize import UploadedImage

from fake_ui import FakeRun, FakeUI

pytestmark = pytest.mark.requires_nicegui


@pytest.fixture()
def fake_ui(monkeypatch: pytest.MonkeyPatch) -> FakeUI:
    ui = FakeUI()
    for mod in (app_mod, cew_mod, pp_mod, uw_mod, dl_mod):
        monkeypatch.setattr(mod, "ui", ui, raising=True)
    monkeypatch.setattr(pp_mod, "run", FakeRun(), raising=True)
    return ui


class _FakeDetector:
    def __init__(self, result: Any = None, exc: Exception | None = None) -> None:
        self.result = result
        self.exc = exc
        self.calls: List[Dimensions] = []

    async def detect_async(self, image_data: bytes, mime_type: str, display: Dimensions) -> DetectionResult:
        self.calls.append(display)
        if self.exc is not None:
            raise self.exc
        return self.result


def _app(detector: _FakeDetector | None = None) -> CropApp:
    crop_app = CropApp(detection_config=DetectionConfig())
    crop_app._detector = detector
    return crop_app


@pytest.mark.asyncio
async def test_upload_switches_to_workspace(fake_ui: FakeUI, png_bytes) -> None:
    crop_app = _app()
    assert crop_app._upload_section.visible and not crop_app._workspace.visible

    await crop_app._on_image_ready(UploadedImage("photo.png", png_bytes(1200, 600), "image/png"))

    assert not crop_app._upload_section.visible and crop_app._workspace.visible
    assert crop_app.session.display == Dimensions(1000, 500)
    assert fake_ui.notifications[-1] == ("Loaded photo.png", "positive")
    # No regions yet, nothing to download.
    assert not crop_app._download_all_btn.enabled


@pytest.mark.asyncio
async def test_unreadable_upload_is_reported(fake_ui: FakeUI) -> None:
    crop_app = _app()
    await crop_app._on_image_ready(UploadedImage("bad.png", b"nope", "image/png"))
    assert not crop_app.session.has_image
    assert fake_ui.notifications[-1][1] == "negative"


@pytest.mark.asyncio
async def test_download_all_offers_zip(fake_ui: FakeUI, png_bytes) -> None:
    crop_app = _app()
    await crop_app._on_image_ready(UploadedImage("photo.png", png_bytes(400, 300), "image/png"))
    crop_app.session.store.create(Rect(10, 10, 50, 50))

    await crop_app.download_all()

    [(data, filename, media_type)] = fake_ui.downloads
    assert filename == "photo-cropped.zip"
    assert media_type == "application/zip"
    assert data[:2] == b"PK"


@pytest.mark.asyncio
async def test_failed_export_offers_nothing(fake_ui: FakeUI, png_bytes, monkeypatch: pytest.MonkeyPatch) -> None:
    crop_app = _app()
    await crop_app._on_image_ready(UploadedImage("photo.png", png_bytes(400, 300), "image/png"))
    crop_app.session.store.create(Rect(10, 10, 50, 50))
    crop_app.session.store.create(Rect(100, 10, 50, 50))

    async def failing_export_all():
        raise EncodeFailure("simulated")

    monkeypatch.setattr(crop_app.session, "export_all", failing_export_all)

    await crop_app.download_all()

    assert fake_ui.downloads == []
    assert fake_ui.notifications[-1][1] == "negative"
    assert len(crop_app.session.store) == 2
    assert crop_app._download_all_btn.enabled


@pytest.mark.asyncio
async def test_download_single_region(fake_ui: FakeUI, png_bytes) -> None:
    crop_app = _app()
    await crop_app._on_image_ready(UploadedImage("photo.png", png_bytes(400, 300), "image/png"))
    rid = crop_app.session.store.create(Rect(10, 10, 50, 50), label="logo")

    await crop_app.download_region(rid)

    [(_data, filename, media_type)] = fake_ui.downloads
    assert (filename, media_type) == ("logo.webp", "image/webp")


@pytest.mark.asyncio
async def test_detect_replaces_regions(fake_ui: FakeUI, png_bytes) -> None:
    result = DetectionResult(
        regions=[Region(id="", x=0, y=0, width=30, height=30) for _ in range(3)],
        confidence=0.9,
    )
    detector = _FakeDetector(result=result)
    crop_app = _app(detector)
    await crop_app._on_image_ready(UploadedImage("photo.png", png_bytes(400, 300), "image/png"))
    crop_app.session.store.create(Rect(100, 100, 50, 50))

    await crop_app.detect()

    assert detector.calls == [Dimensions(400, 300)]
    assert len(crop_app.session.store) == 3
    assert fake_ui.notifications[-1] == ("Detected 3 region(s)", "positive")
    assert not crop_app.session.detecting


@pytest.mark.asyncio
async def test_detect_failure_keeps_regions(fake_ui: FakeUI, png_bytes) -> None:
    crop_app = _app(_FakeDetector(exc=DetectionFailure("service down", status_code=503)))
    await crop_app._on_image_ready(UploadedImage("photo.png", png_bytes(400, 300), "image/png"))
    crop_app.session.store.create(Rect(100, 100, 50, 50))

    await crop_app.detect()

    assert len(crop_app.session.store) == 1
    assert fake_ui.notifications[-1] == ("Detection failed: service down", "negative")
    assert not crop_app.session.detecting
    assert not crop_app.session.controller.read_only


@pytest.mark.asyncio
async def test_reset_returns_to_upload(fake_ui: FakeUI, png_bytes) -> None:
    crop_app = _app()
    await crop_app._on_image_ready(UploadedImage("photo.png", png_bytes(400, 300), "image/png"))
    crop_app.reset()
    assert crop_app._upload_section.visible
    assert not crop_app.session.has_image
