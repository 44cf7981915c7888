# nicecrop/src/nicecrop/export/pipeline.py
"""Crop, encode and package regions of the source image.

Every export call decodes the source bytes itself, so concurrent exports
share no raster. The ``*_async`` variants run in a worker thread and can
be awaited from a NiceGUI handler while the user keeps editing.

A batch export is all-or-nothing: the first failing crop raises and no
archive is produced.
"""

from __future__ import annotations

import asyncio
import io
import re
from dataclasses import dataclass
from pathlib import PurePath
from typing import Dict, Optional, Sequence

from PIL import Image, ImageOps, UnidentifiedImageError

from nicecrop.crop_editor.geometry import Dimensions, Rect, to_source_rect
from nicecrop.crop_editor.regions import Region
from nicecrop.errors import DecodeFailure, EncodeFailure
from nicecrop.utils.logging import get_logger
from .archive import build_archive
from .encoding import EncodedImage, ExportConfig, ImageFormat, encode_image

logger = get_logger(__name__)

_IMAGE_EXT_RE = re.compile(r"\.(png|jpg|jpeg|webp)$", re.IGNORECASE)
_PATH_SEP_RE = re.compile(r"[\\/]+")

ZIP_MEDIA_TYPE = "application/zip"


@dataclass(frozen=True)
class ExportedFile:
    filename: str
    data: bytes
    media_type: str


# ------------- decode / crop -------------


def decode_source(data: bytes) -> Image.Image:
    """Decode image bytes into an RGBA raster with EXIF orientation applied.

    Raises:
        DecodeFailure: the bytes are not a readable image.
    """
    if not data:
        raise DecodeFailure("image data is empty")
    try:
        img = Image.open(io.BytesIO(data))
        img.load()
        img = ImageOps.exif_transpose(img)
        return img.convert("RGBA")
    except (UnidentifiedImageError, OSError, ValueError, Image.DecompressionBombError) as exc:
        raise DecodeFailure(f"could not decode image: {exc}") from exc


def crop_region(
    source: Image.Image,
    rect: Rect,
    original: Dimensions,
    display: Dimensions,
) -> Image.Image:
    """Cut the display-space ``rect`` out of ``source``.

    The output is exactly the rounded source rectangle in size, so pixels
    are copied without resampling. Parts of the rectangle outside the
    source come out transparent.
    """
    src = to_source_rect(rect, original, display)
    width, height = int(src.width), int(src.height)
    if width <= 0 or height <= 0:
        raise EncodeFailure(f"region maps to an empty source rectangle ({width}x{height})")
    try:
        cropped = source.crop(src.as_box())
    except (OSError, ValueError) as exc:
        raise EncodeFailure(f"could not crop {src}: {exc}") from exc
    return cropped


def render_preview(
    source: Image.Image,
    rect: Rect,
    original: Dimensions,
    display: Dimensions,
    max_size: int = 160,
) -> Image.Image:
    """Thumbnail of a region, resampled with Lanczos."""
    thumb = crop_region(source, rect, original, display)
    thumb.thumbnail((max_size, max_size), Image.Resampling.LANCZOS)
    return thumb


# ------------- naming -------------


def resolve_export_name(region: Region, index: int) -> str:
    """Base file name (no extension) for the 1-based ``index``-th region.

    ``filename`` wins over ``label``; otherwise ``crop-{index}``. A
    trailing image extension is dropped so the chosen format's extension
    can be appended.
    """
    base = region.filename or region.label or f"crop-{index}"
    base = _IMAGE_EXT_RE.sub("", base.strip())
    base = _PATH_SEP_RE.sub("_", base).strip()
    return base or f"crop-{index}"


def _unique_name(name: str, used: set) -> str:
    if name not in used:
        used.add(name)
        return name
    stem, dot, ext = name.rpartition(".")
    if not dot:
        stem, ext = name, ""
    n = 2
    while True:
        candidate = f"{stem}-{n}.{ext}" if ext else f"{stem}-{n}"
        if candidate not in used:
            used.add(candidate)
            return candidate
        n += 1


def archive_name(source_filename: str, suffix: str = "-cropped") -> str:
    base = PurePath(source_filename or "").stem or "image"
    return f"{base}{suffix}.zip"


# ------------- export -------------


def encode_template(
    source: Image.Image,
    *,
    config: Optional[ExportConfig] = None,
    image_format: Optional[ImageFormat] = None,
) -> EncodedImage:
    """Re-encode the full original at template quality."""
    config = config or ExportConfig()
    return encode_image(
        source,
        image_format=image_format,
        quality=config.template_quality,
        lossy_format=config.lossy_format,
    )


def export_region(
    source_data: bytes,
    region: Region,
    index: int,
    original: Dimensions,
    display: Dimensions,
    *,
    config: Optional[ExportConfig] = None,
    image_format: Optional[ImageFormat] = None,
) -> ExportedFile:
    """Crop and encode one region for direct download."""
    config = config or ExportConfig()
    source = decode_source(source_data)
    encoded = encode_image(
        crop_region(source, region.rect, original, display),
        image_format=image_format,
        quality=config.crop_quality,
        lossy_format=config.lossy_format,
    )
    filename = f"{resolve_export_name(region, index)}.{encoded.extension}"
    logger.info(f"exported {region.id} as {filename} ({len(encoded.data)} bytes)")
    return ExportedFile(filename=filename, data=encoded.data, media_type=encoded.mime_type)


def export_all(
    source_data: bytes,
    source_filename: str,
    regions: Sequence[Region],
    original: Dimensions,
    display: Dimensions,
    *,
    config: Optional[ExportConfig] = None,
) -> ExportedFile:
    """Template plus every region, packed into one ZIP.

    Raises:
        DecodeFailure, EncodeFailure: the whole batch is abandoned.
    """
    config = config or ExportConfig()
    source = decode_source(source_data)

    files: Dict[str, bytes] = {}
    used: set = set()

    template = encode_template(source, config=config)
    files[_unique_name(f"template.{template.extension}", used)] = template.data

    for i, region in enumerate(regions, start=1):
        encoded = encode_image(
            crop_region(source, region.rect, original, display),
            quality=config.crop_quality,
            lossy_format=config.lossy_format,
        )
        name = _unique_name(f"{resolve_export_name(region, i)}.{encoded.extension}", used)
        files[name] = encoded.data

    data = build_archive(files)
    filename = archive_name(source_filename, config.archive_suffix)
    logger.info(f"exported {len(regions)} region(s) + template as {filename} ({len(data)} bytes)")
    return ExportedFile(filename=filename, data=data, media_type=ZIP_MEDIA_TYPE)


async def export_region_async(*args, **kwargs) -> ExportedFile:
    return await asyncio.to_thread(export_region, *args, **kwargs)


async def export_all_async(*args, **kwargs) -> ExportedFile:
    return await asyncio.to_thread(export_all, *args, **kwargs)
