# tests/export/test_pipeline.py

from __future__ import annotations

import io
import zipfile

import pytest
from PIL import Image

import nicecrop.export.pipeline as pipeline_mod
from nicecrop.crop_editor.geometry import Dimensions, Rect
from nicecrop.crop_editor.regions import Region
from nicecrop.errors import DecodeFailure
from nicecrop.export.encoding import CROP_QUALITY, TEMPLATE_QUALITY, ExportConfig, ImageFormat
from nicecrop.export.pipeline import (
    archive_name,
    crop_region,
    decode_source,
    export_all,
    export_region,
    render_preview,
    resolve_export_name,
)

ORIGINAL = Dimensions(1000, 800)
DISPLAY = Dimensions(500, 400)


def _region(rid="region-1", x=100, y=100, w=100, h=100, **kw) -> Region:
    return Region(id=rid, x=x, y=y, width=w, height=h, **kw)


@pytest.mark.parametrize(
    "region, index, expected",
    [
        (_region(), 3, "crop-3"),
        (_region(label="Cat.PNG"), 1, "Cat"),
        (_region(label="dog", filename="my-file.jpeg"), 1, "my-file"),
        (_region(label="photo.tiff"), 1, "photo.tiff"),
        (_region(label="a/b\\c.webp"), 1, "a_b_c"),
        (_region(label="   "), 2, "crop-2"),
    ],
)
def test_resolve_export_name(region, index, expected):
    assert resolve_export_name(region, index) == expected


def test_archive_name_uses_source_stem():
    assert archive_name("holiday.photo.JPG") == "holiday.photo-cropped.zip"
    assert archive_name("") == "image-cropped.zip"


def test_decode_rejects_garbage():
    with pytest.raises(DecodeFailure):
        decode_source(b"")
    with pytest.raises(DecodeFailure):
        decode_source(b"\x89PNG but not really")


def test_crop_region_uses_source_scale(png_bytes):
    source = decode_source(png_bytes(1000, 800))
    cropped = crop_region(source, Rect(100, 100, 100, 100), ORIGINAL, DISPLAY)
    assert cropped.size == (200, 200)


def test_crop_outside_source_is_transparent(png_bytes):
    source = decode_source(png_bytes(1000, 800))
    # Last 10 display px (20 source px) fall outside the image.
    cropped = crop_region(source, Rect(480, 0, 30, 30), ORIGINAL, DISPLAY)
    assert cropped.size == (60, 60)
    assert cropped.getpixel((59, 0))[3] == 0
    assert cropped.getpixel((0, 0))[3] == 255


def test_crop_is_pixel_exact_copy_of_rounded_box(png_bytes):
    """Output size always equals the rounded source box; pixels are copied, not resampled."""
    source = decode_source(png_bytes(1000, 800))
    rect = Rect(100.25, 50.25, 60.25, 40.25)

    cropped = crop_region(source, rect, ORIGINAL, DISPLAY)

    assert cropped.size == (121, 81)
    assert cropped.tobytes() == source.crop((201, 101, 322, 182)).tobytes()


def test_render_preview_fits_box(png_bytes):
    source = decode_source(png_bytes(1000, 800))
    thumb = render_preview(source, Rect(0, 0, 400, 100), ORIGINAL, DISPLAY, max_size=160)
    assert max(thumb.size) == 160


def test_export_region_with_forced_format(png_bytes):
    exported = export_region(
        png_bytes(1000, 800),
        _region(label="face"),
        1,
        ORIGINAL,
        DISPLAY,
        image_format=ImageFormat.JPEG,
    )
    assert exported.filename == "face.jpg"
    assert exported.media_type == "image/jpeg"
    assert Image.open(io.BytesIO(exported.data)).size == (200, 200)


def test_transparent_source_exports_png(png_bytes):
    data = png_bytes(1000, 800, color=(0, 0, 0, 0))
    exported = export_region(data, _region(), 1, ORIGINAL, DISPLAY)
    assert exported.filename == "crop-1.png"


def test_export_all_template_first_and_unique_names(png_bytes):
    regions = [
        _region("region-1", label="same"),
        _region("region-2", x=200, label="same.png"),
        _region("region-3", x=300),
    ]

    exported = export_all(png_bytes(1000, 800), "shot.png", regions, ORIGINAL, DISPLAY)

    assert exported.filename == "shot-cropped.zip"
    assert exported.media_type == "application/zip"
    with zipfile.ZipFile(io.BytesIO(exported.data)) as zf:
        names = zf.namelist()
        assert names == ["template.webp", "same.webp", "same-2.webp", "crop-3.webp"]
        template = Image.open(io.BytesIO(zf.read("template.webp")))
        assert template.size == (1000, 800)


def test_export_all_uses_template_and_crop_quality(png_bytes, monkeypatch: pytest.MonkeyPatch):
    qualities = []
    real_encode = pipeline_mod.encode_image

    def spy(img, **kwargs):
        qualities.append(kwargs["quality"])
        return real_encode(img, **kwargs)

    monkeypatch.setattr(pipeline_mod, "encode_image", spy)

    export_all(png_bytes(1000, 800), "shot.png", [_region(), _region("region-2", x=200)], ORIGINAL, DISPLAY)

    assert qualities == [TEMPLATE_QUALITY, CROP_QUALITY, CROP_QUALITY]


def test_export_all_can_use_jpeg(png_bytes):
    config = ExportConfig(lossy_format=ImageFormat.JPEG, archive_suffix="-crops")
    exported = export_all(png_bytes(1000, 800), "shot.png", [_region()], ORIGINAL, DISPLAY, config=config)
    assert exported.filename == "shot-crops.zip"
    with zipfile.ZipFile(io.BytesIO(exported.data)) as zf:
        assert zf.namelist() == ["template.jpg", "crop-1.jpg"]
