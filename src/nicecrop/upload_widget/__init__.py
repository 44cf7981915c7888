# nicecrop/src/nicecrop/upload_widget/__init__.py
from __future__ import annotations

from .normalize import UploadedImage, read_upload
from .upload_widget import ImageUploadWidget, OnImageReady

__all__ = [
    "ImageUploadWidget",
    "OnImageReady",
    "UploadedImage",
    "read_upload",
]
