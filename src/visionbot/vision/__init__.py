"""Remote image analysis."""

from visionbot.vision.base import VisionAPIError, VisionProvider
from visionbot.vision.kakao import KakaoVisionClient
from visionbot.vision.types import DetectionResult, is_empty

__all__ = [
    "DetectionResult",
    "KakaoVisionClient",
    "VisionAPIError",
    "VisionProvider",
    "is_empty",
]
