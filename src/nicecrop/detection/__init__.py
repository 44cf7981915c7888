"""Remote region detection."""

from .adapter import DetectionClient, DetectionConfig, DetectionResult, parse_detection_response

__all__ = ["DetectionClient", "DetectionConfig", "DetectionResult", "parse_detection_response"]
