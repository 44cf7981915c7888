"""Crop export - format policy, encoding and ZIP packaging."""

from .archive import build_archive
from .encoding import CROP_QUALITY, TEMPLATE_QUALITY, EncodedImage, ExportConfig, ImageFormat, encode_image, select_format
from .pipeline import ExportedFile, archive_name, export_all, export_region, resolve_export_name

__all__ = [
    "CROP_QUALITY",
    "EncodedImage",
    "ExportConfig",
    "ExportedFile",
    "ImageFormat",
    "TEMPLATE_QUALITY",
    "archive_name",
    "build_archive",
    "encode_image",
    "export_all",
    "export_region",
    "resolve_export_name",
    "select_format",
]
