# nicecrop/src/nicecrop/upload_widget/normalize.py
"""Turn a NiceGUI upload event into ``(name, bytes, content_type)``.

Depending on the NiceGUI version the event carries either

- ``e.file`` with an async ``read()`` (and ``name`` / ``content_type``), or
- ``e.content`` (a file-like object) plus ``e.name`` / ``e.type``.

Both are handled here so the widget does not care.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import PurePath
from typing import Any, Optional

_SUFFIX_MIME = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".bmp": "image/bmp",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
}


@dataclass(frozen=True)
class UploadedImage:
    name: str
    data: bytes
    content_type: str

    @property
    def is_image(self) -> bool:
        return self.content_type.startswith("image/")


def _guess_content_type(name: str, declared: Optional[str]) -> str:
    if isinstance(declared, str) and declared:
        return declared.lower()
    return _SUFFIX_MIME.get(PurePath(name).suffix.lower(), "application/octet-stream")


async def _maybe_await(value: Any) -> Any:
    if hasattr(value, "__await__"):
        return await value
    return value


def safe_upload_event_summary(e: Any) -> str:
    """One-line description of an upload event, without the bytes."""
    f = getattr(e, "file", None)
    name = getattr(f, "name", None) or getattr(e, "name", None)
    ctype = getattr(f, "content_type", None) or getattr(e, "type", None)
    return f"{type(e).__name__}(name={name!r}, content_type={ctype!r}, has_file={f is not None})"


async def read_upload(e: Any) -> UploadedImage:
    """Read the uploaded bytes from a NiceGUI upload event.

    Raises:
        RuntimeError: the event exposes no readable payload.
    """
    upload_file = getattr(e, "file", None)
    data: Any = None

    if upload_file is not None:
        read = getattr(upload_file, "read", None)
        if callable(read):
            data = await _maybe_await(read())
        name = getattr(upload_file, "name", None)
        declared = getattr(upload_file, "content_type", None)
    else:
        content = getattr(e, "content", None)
        read = getattr(content, "read", None)
        if callable(read):
            data = await _maybe_await(read())
        name = getattr(e, "name", None)
        declared = getattr(e, "type", None)

    if not isinstance(data, (bytes, bytearray)):
        raise RuntimeError(f"upload event has no readable payload: {safe_upload_event_summary(e)}")

    name = name if isinstance(name, str) and name else "image"
    return UploadedImage(
        name=name,
        data=bytes(data),
        content_type=_guess_content_type(name, declared),
    )
