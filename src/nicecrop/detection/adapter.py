# nicecrop/src/nicecrop/detection/adapter.py
"""Client for the remote region-detection service.

Request (JSON POST)::

    {"imageBase64": "data:image/png;base64,...", "width": W, "height": H}

``width``/``height`` are the *display* dimensions of the image. The
service answers either::

    {"regions": [{"x": .., "y": .., "width": .., "height": .., "label": ..}, ...],
     "confidence": 0.9}

or ``{"error": "message"}``.

Coordinate convention: region values are display-space pixels relative
to the width/height that were sent. Regions may instead carry
``x_percent``/``y_percent``/``width_percent``/``height_percent`` (0-100);
those are converted against the same display dimensions. Nothing else is
scaled. An optional inset (``DetectionConfig.inset_px``, default 0)
shrinks every region on all four sides.
"""

from __future__ import annotations

import asyncio
import base64
import math
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import requests
from requests import Session

from nicecrop.crop_editor.geometry import Dimensions, clamp
from nicecrop.crop_editor.regions import Region
from nicecrop.errors import DetectionFailure
from nicecrop.utils.logging import get_logger

logger = get_logger(__name__)

ENV_URL = "NICECROP_DETECTION_URL"
ENV_API_KEY = "NICECROP_DETECTION_API_KEY"
ENV_TIMEOUT = "NICECROP_DETECTION_TIMEOUT"
ENV_INSET = "NICECROP_DETECTION_INSET"

_PERCENT_KEYS = ("x_percent", "y_percent", "width_percent", "height_percent")
_PIXEL_KEYS = ("x", "y", "width", "height")


@dataclass
class DetectionConfig:
    url: Optional[str] = None
    api_key: Optional[str] = None
    timeout: float = 60.0
    inset_px: float = 0.0

    def __post_init__(self) -> None:
        if self.inset_px < 0:
            raise ValueError(f"inset_px must be >= 0, got {self.inset_px}")

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "DetectionConfig":
        env = os.environ if environ is None else environ
        return cls(
            url=env.get(ENV_URL) or None,
            api_key=env.get(ENV_API_KEY) or None,
            timeout=float(env.get(ENV_TIMEOUT, 60.0)),
            inset_px=float(env.get(ENV_INSET, 0.0)),
        )


@dataclass(frozen=True)
class DetectionResult:
    regions: List[Region] = field(default_factory=list)
    confidence: float = 0.0


def encode_data_url(image_data: bytes, mime_type: str) -> str:
    return f"data:{mime_type};base64,{base64.b64encode(image_data).decode('ascii')}"


def _number(item: Mapping[str, Any], key: str, index: int) -> float:
    value = item.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
        raise DetectionFailure(f"region {index}: {key!r} is not a number ({value!r})")
    return float(value)


def _parse_region(item: Any, index: int, display: Dimensions, inset_px: float) -> Optional[Region]:
    if not isinstance(item, Mapping):
        raise DetectionFailure(f"region {index} is not an object")

    if all(k in item for k in _PIXEL_KEYS):
        x, y, w, h = (_number(item, k, index) for k in _PIXEL_KEYS)
    elif all(k in item for k in _PERCENT_KEYS):
        px, py, pw, ph = (_number(item, k, index) for k in _PERCENT_KEYS)
        x = px / 100.0 * display.width
        y = py / 100.0 * display.height
        w = pw / 100.0 * display.width
        h = ph / 100.0 * display.height
    else:
        raise DetectionFailure(f"region {index} has no usable coordinates")

    x += inset_px
    y += inset_px
    w -= 2.0 * inset_px
    h -= 2.0 * inset_px

    # Keep results on the image.
    left = clamp(x, 0.0, display.width)
    top = clamp(y, 0.0, display.height)
    right = clamp(x + w, 0.0, display.width)
    bottom = clamp(y + h, 0.0, display.height)
    if right - left <= 0 or bottom - top <= 0:
        logger.warning(f"dropping detected region {index}: no area after clipping")
        return None

    label = item.get("label")
    return Region(
        id="",
        x=left,
        y=top,
        width=right - left,
        height=bottom - top,
        label=str(label) if label else None,
    )


def parse_detection_response(
    payload: Any,
    display: Dimensions,
    *,
    inset_px: float = 0.0,
) -> DetectionResult:
    """Validate a service payload and convert it to display-space regions.

    Returned regions have empty ids; the RegionStore assigns fresh ones.

    Raises:
        DetectionFailure: ``{"error": ...}`` or a malformed payload.
    """
    if not isinstance(payload, Mapping):
        raise DetectionFailure("detection response is not a JSON object")

    error = payload.get("error")
    if error:
        raise DetectionFailure(str(error), response_data=dict(payload))

    raw_regions = payload.get("regions")
    if not isinstance(raw_regions, list):
        raise DetectionFailure("detection response has no 'regions' list", response_data=dict(payload))

    confidence = payload.get("confidence", 0.0)
    if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
        raise DetectionFailure(f"confidence is not a number ({confidence!r})")

    regions: List[Region] = []
    for i, item in enumerate(raw_regions):
        region = _parse_region(item, i, display, inset_px)
        if region is not None:
            regions.append(region)

    return DetectionResult(regions=regions, confidence=float(confidence))


class DetectionClient:
    """Blocking HTTP client; use :meth:`detect_async` from the UI loop."""

    def __init__(self, config: DetectionConfig, session: Optional[Session] = None) -> None:
        self.config = config
        self.session = session if session is not None else Session()
        headers: Dict[str, str] = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": "nicecrop/0.1",
        }
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"
        self.session.headers.update(headers)

    def detect(self, image_data: bytes, mime_type: str, display: Dimensions) -> DetectionResult:
        if not self.config.url:
            raise DetectionFailure("detection service is not configured")

        body = {
            "imageBase64": encode_data_url(image_data, mime_type),
            "width": display.width,
            "height": display.height,
        }
        logger.info(f"requesting detection for {display.width}x{display.height} image")

        try:
            response = self.session.post(self.config.url, json=body, timeout=self.config.timeout)
        except requests.RequestException as exc:
            raise DetectionFailure(f"detection request failed: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if not response.ok:
            message = None
            if isinstance(payload, Mapping):
                message = payload.get("error")
            raise DetectionFailure(
                message or f"detection service returned HTTP {response.status_code}",
                status_code=response.status_code,
                response_data=dict(payload) if isinstance(payload, Mapping) else None,
            )

        result = parse_detection_response(payload, display, inset_px=self.config.inset_px)
        logger.info(f"detected {len(result.regions)} region(s), confidence={result.confidence:.2f}")
        return result

    async def detect_async(self, image_data: bytes, mime_type: str, display: Dimensions) -> DetectionResult:
        return await asyncio.to_thread(self.detect, image_data, mime_type, display)

    def close(self) -> None:
        self.session.close()
