"""
nicecrop: Crop many regions out of one image, in the browser, with NiceGUI.

This package provides:
- CropEditorWidget: draw, move, resize and zoom crop regions over an image
- An export pipeline producing per-region files and a ZIP of all crops
- A client for an optional remote region-detection service
- Logging utilities for library and application use

For logging configuration in standalone scripts/demos:
    ```python
    from nicecrop.utils.logging import configure_logging
    configure_logging(level="DEBUG")
    ```

When used as a library (imported by other applications), logging is
automatically handled by the parent application's configuration.
"""

import logging

from nicecrop.utils.logging import configure_logging, get_logger

from nicecrop.errors import CropError, DecodeFailure, DetectionFailure, EncodeFailure, ValidationReject

# Ensure nicecrop logger has NullHandler so logs don't propagate to root
# when no application has configured logging. Applications/demos call
# configure_logging() to replace this with a real handler.
_logger = logging.getLogger("nicecrop")
if not _logger.handlers:
    _logger.addHandler(logging.NullHandler())

__all__ = [
    "CropError",
    "DecodeFailure",
    "DetectionFailure",
    "EncodeFailure",
    "ValidationReject",
    "configure_logging",
    "get_logger",
]

__version__ = "0.1.0"
