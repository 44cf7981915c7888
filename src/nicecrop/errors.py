# nicecrop/src/nicecrop/errors.py
"""Failure types shared by the editor, export and detection layers.

None of these terminate an editing session. UI handlers catch them, log
and notify; ``ValidationReject`` is swallowed by the interaction layer
because an undersized rectangle is ordinary user behaviour.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class CropError(Exception):
    """Base class for nicecrop failures."""


class DecodeFailure(CropError):
    """The source image could not be loaded or decoded."""


class EncodeFailure(CropError):
    """A raster could not be encoded into an output file."""


class DetectionFailure(CropError):
    """The detection service failed or returned a malformed response."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_data: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response_data = response_data or {}


class ValidationReject(CropError, ValueError):
    """A rectangle failed the minimum-size policy."""
