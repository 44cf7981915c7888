"""Download trigger for NiceGUI apps.

Offers in-memory bytes to the browser as a file save.
"""

from __future__ import annotations

from nicegui import ui

from nicecrop.utils.logging import get_logger

logger = get_logger(__name__)


def trigger_download(data: bytes, filename: str, media_type: str = "application/octet-stream") -> None:
    """
    Send ``data`` to the browser as ``filename``.

    Fire-and-forget. The bytes are served from memory by NiceGUI, so there
    is no temp file or object URL left behind for us to clean up.

    Args:
        data: File content.
        filename: Suggested save name.
        media_type: MIME type sent with the download.
    """
    if not filename:
        raise ValueError("filename must not be empty")
    ui.download(data, filename, media_type)
    logger.debug(f"download offered: {filename} ({len(data)} bytes, {media_type})")
