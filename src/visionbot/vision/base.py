"""Vision service provider interface."""

from __future__ import annotations

from typing import Protocol

from visionbot.vision.types import (
    FaceResult,
    NSFWResult,
    PoseResult,
    ProductResult,
    TagResult,
    TextResult,
)


class VisionAPIError(Exception):
    """A vision service call failed (transport, HTTP status or response shape)."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class VisionProvider(Protocol):
    """Provider contract for image analysis.

    Each method issues exactly one remote call and raises ``VisionAPIError``
    on failure.
    """

    async def detect_faces(self, image: bytes, threshold: float) -> FaceResult: ...

    async def detect_products(
        self, image: bytes, threshold: float
    ) -> ProductResult: ...

    async def detect_nsfw(self, image: bytes) -> NSFWResult: ...

    async def generate_tags(self, image: bytes) -> TagResult: ...

    async def analyze_poses(self, image: bytes) -> PoseResult: ...

    async def extract_texts(self, image: bytes) -> TextResult: ...
