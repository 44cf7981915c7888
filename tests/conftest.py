# tests/conftest.py
from __future__ import annotations

import io
import sys
from pathlib import Path

import pytest


def pytest_configure() -> None:
    # Ensure `nicecrop/src` is importable when running tests from the repo root.
    repo_root = Path(__file__).resolve().parents[1]
    src_dir = repo_root / "src"
    if src_dir.exists():
        sys.path.insert(0, str(src_dir))


def _png_bytes(width: int, height: int, color=(200, 40, 40, 255), mode: str = "RGBA") -> bytes:
    from PIL import Image

    img = Image.new(mode, (width, height), color)
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture()
def png_bytes():
    """Factory: ``png_bytes(w, h, color=..., mode=...)`` -> PNG file bytes."""
    return _png_bytes
