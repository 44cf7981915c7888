# nicecrop/src/nicecrop/export/archive.py

from __future__ import annotations

import io
import zipfile
from typing import Mapping

from nicecrop.errors import EncodeFailure


def build_archive(files: Mapping[str, bytes], *, compression: int = zipfile.ZIP_STORED) -> bytes:
    """Pack named blobs into one ZIP, in mapping order.

    Images are already compressed, so entries are stored by default.
    """
    buf = io.BytesIO()
    try:
        with zipfile.ZipFile(buf, mode="w", compression=compression) as zf:
            for name, data in files.items():
                if not name:
                    raise ValueError("archive entry name must not be empty")
                zf.writestr(name, data)
    except (OSError, ValueError, zipfile.BadZipFile) as exc:
        raise EncodeFailure(f"could not build archive: {exc}") from exc
    return buf.getvalue()
