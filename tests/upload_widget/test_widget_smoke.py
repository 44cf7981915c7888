from __future__ import annotations

from typing import Any, Callable, List, Optional

import pytest

import nicecrop.upload_widget.upload_widget as uw_mod
from nicecrop.upload_widget.normalize import UploadedImage
from nicecrop.upload_widget.upload_widget import ImageUploadWidget

pytestmark = pytest.mark.requires_nicegui


class _FakeElement:
    def __init__(self, text: str = "") -> None:
        self.text = text
        self.visible: bool = True

    def classes(self, *_args: Any, **_kwargs: Any) -> "_FakeElement":
        return self

    def props(self, *_args: Any, **_kwargs: Any) -> "_FakeElement":
        return self


class _FakeUploadControl(_FakeElement):
    def __init__(
        self,
        *,
        label: str,
        auto_upload: bool,
        multiple: bool,
        on_upload: Callable[..., Any],
    ) -> None:
        super().__init__(text=label)
        self.auto_upload = auto_upload
        self.multiple = multiple
        self.on_upload = on_upload
        self._props_string: str = ""
        self.reset_calls = 0

    def props(self, s: str) -> "_FakeUploadControl":
        self._props_string = s
        return self

    def reset(self) -> None:
        self.reset_calls += 1


class _FakeUI:
    def __init__(self) -> None:
        self.last_upload: Optional[_FakeUploadControl] = None

    def label(self, text: str) -> _FakeElement:
        return _FakeElement(text=text)

    def spinner(self, size: str = "lg") -> _FakeElement:
        return _FakeElement(text=f"spinner:{size}")

    def upload(self, *, label: str, auto_upload: bool, multiple: bool, on_upload: Callable[..., Any]) -> _FakeUploadControl:
        ctrl = _FakeUploadControl(label=label, auto_upload=auto_upload, multiple=multiple, on_upload=on_upload)
        self.last_upload = ctrl
        return ctrl


@pytest.fixture()
def headless_widget_env(monkeypatch: pytest.MonkeyPatch) -> _FakeUI:
    fake_ui = _FakeUI()
    monkeypatch.setattr(uw_mod, "ui", fake_ui, raising=True)
    return fake_ui


class _FakeFile:
    def __init__(self, name: str, data: bytes, content_type: str) -> None:
        self.name = name
        self.content_type = content_type
        self._data = data

    async def read(self) -> bytes:
        return self._data


class _FakeUploadEvent:
    def __init__(self, file: Any) -> None:
        self.sender = None
        self.file = file


@pytest.mark.asyncio
async def test_widget_hands_image_bytes_to_callback(headless_widget_env: _FakeUI) -> None:
    received: List[UploadedImage] = []

    async def on_image_ready(image: UploadedImage) -> None:
        received.append(image)

    widget = ImageUploadWidget(on_image_ready=on_image_ready, max_file_size=1024)

    ctrl = headless_widget_env.last_upload
    assert ctrl is not None
    assert ctrl.on_upload == widget._on_upload
    assert ctrl.auto_upload and not ctrl.multiple
    assert 'accept="image/*"' in ctrl._props_string

    await widget._on_upload(_FakeUploadEvent(_FakeFile("a.png", b"PNG", "image/png")))

    assert [r.name for r in received] == ["a.png"]
    assert received[0].data == b"PNG"
    assert not widget.busy
    assert ctrl.reset_calls == 1


@pytest.mark.asyncio
async def test_widget_ignores_non_images(headless_widget_env: _FakeUI) -> None:
    received: List[UploadedImage] = []

    async def on_image_ready(image: UploadedImage) -> None:
        received.append(image)

    widget = ImageUploadWidget(on_image_ready=on_image_ready)
    await widget._on_upload(_FakeUploadEvent(_FakeFile("notes.txt", b"hi", "text/plain")))

    assert received == []
    assert "not an image" in widget._status.text


@pytest.mark.asyncio
async def test_widget_survives_callback_failure(headless_widget_env: _FakeUI) -> None:
    async def on_image_ready(image: UploadedImage) -> None:
        raise ValueError("cannot decode")

    widget = ImageUploadWidget(on_image_ready=on_image_ready)
    await widget._on_upload(_FakeUploadEvent(_FakeFile("bad.png", b"??", "image/png")))

    assert not widget.busy
    assert "Could not load bad.png" in widget._status.text
