# nicecrop/src/nicecrop/export/encoding.py
"""Output format policy.

- Any pixel with alpha < 255 -> PNG (lossless, keeps transparency).
- Otherwise the lossy photographic format (WebP unless configured to
  JPEG), quality 0.85 for crops and 0.92 for the template.
"""

from __future__ import annotations

import io
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

import numpy as np
from PIL import Image

from nicecrop.errors import EncodeFailure
from nicecrop.utils.logging import get_logger

logger = get_logger(__name__)

CROP_QUALITY = 0.85
TEMPLATE_QUALITY = 0.92


class ImageFormat(Enum):
    PNG = "png"
    JPEG = "jpeg"
    WEBP = "webp"

    @property
    def extension(self) -> str:
        return "jpg" if self is ImageFormat.JPEG else self.value

    @property
    def mime_type(self) -> str:
        return f"image/{self.value}"

    @property
    def pil_format(self) -> str:
        return self.value.upper()

    @property
    def is_lossy(self) -> bool:
        return self is not ImageFormat.PNG

    @classmethod
    def parse(cls, value: "str | ImageFormat") -> "ImageFormat":
        if isinstance(value, ImageFormat):
            return value
        v = str(value).lower().lstrip(".")
        if v == "jpg":
            v = "jpeg"
        try:
            return cls(v)
        except ValueError:
            raise ValueError(f"unsupported image format: {value!r}") from None


@dataclass
class ExportConfig:
    lossy_format: ImageFormat = ImageFormat.WEBP
    crop_quality: float = CROP_QUALITY
    template_quality: float = TEMPLATE_QUALITY
    archive_suffix: str = "-cropped"

    def __post_init__(self) -> None:
        self.lossy_format = ImageFormat.parse(self.lossy_format)
        if not self.lossy_format.is_lossy:
            raise ValueError("lossy_format must be a lossy format (webp or jpeg)")
        for name in ("crop_quality", "template_quality"):
            q = getattr(self, name)
            if not 0.0 < q <= 1.0:
                raise ValueError(f"{name} must be in (0, 1], got {q}")


@dataclass(frozen=True)
class EncodedImage:
    data: bytes
    format: ImageFormat

    @property
    def extension(self) -> str:
        return self.format.extension

    @property
    def mime_type(self) -> str:
        return self.format.mime_type


def has_transparency(img: Image.Image) -> bool:
    """True if any pixel is less than fully opaque."""
    if "A" not in img.getbands():
        if img.info.get("transparency") is None:
            return False
        img = img.convert("RGBA")
    alpha = np.asarray(img.getchannel("A"))
    return bool((alpha < 255).any())


def select_format(img: Image.Image, lossy_format: ImageFormat = ImageFormat.WEBP) -> ImageFormat:
    return ImageFormat.PNG if has_transparency(img) else lossy_format


def encode_image(
    img: Image.Image,
    *,
    image_format: Optional[ImageFormat] = None,
    quality: float = CROP_QUALITY,
    lossy_format: ImageFormat = ImageFormat.WEBP,
) -> EncodedImage:
    """Encode a raster, picking the format unless one is forced.

    Raises:
        EncodeFailure: Pillow could not write the image.
    """
    if not 0.0 < quality <= 1.0:
        raise ValueError(f"quality must be in (0, 1], got {quality}")

    fmt = ImageFormat.parse(image_format) if image_format is not None else select_format(img, lossy_format)

    out = img
    save_kwargs: Dict[str, Any] = {}
    if fmt is ImageFormat.PNG:
        save_kwargs["optimize"] = True
    else:
        save_kwargs["quality"] = int(round(quality * 100))
        # JPEG has no alpha; WebP only needs it if something is see-through.
        if fmt is ImageFormat.JPEG or not has_transparency(img):
            if out.mode != "RGB":
                out = out.convert("RGB")
        if fmt is ImageFormat.JPEG:
            save_kwargs["optimize"] = True

    buf = io.BytesIO()
    try:
        out.save(buf, format=fmt.pil_format, **save_kwargs)
    except (OSError, ValueError, KeyError) as exc:
        raise EncodeFailure(f"could not encode {img.width}x{img.height} image as {fmt.value}: {exc}") from exc

    data = buf.getvalue()
    if not data:
        raise EncodeFailure(f"encoder produced no data for {fmt.value}")

    logger.debug(f"encoded {img.width}x{img.height} as {fmt.value} ({len(data)} bytes)")
    return EncodedImage(data=data, format=fmt)
