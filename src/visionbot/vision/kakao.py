"""Kakao Vision REST API client."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from visionbot.vision.base import VisionAPIError
from visionbot.vision.types import (
    Face,
    FacialPoints,
    FaceResult,
    Keypoint,
    KeypointName,
    NSFWResult,
    Point,
    Pose,
    PoseResult,
    Product,
    ProductResult,
    TagResult,
    TextBlock,
    TextResult,
)

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://dapi.kakao.com"
DEFAULT_POSE_URL = "https://cv-api.kakaobrain.com/pose"
DEFAULT_TIMEOUT = 60.0

FACE_PATH = "/v2/vision/face/detect"
PRODUCT_PATH = "/v2/vision/product/detect"
ADULT_PATH = "/v2/vision/adult/detect"
MULTITAG_PATH = "/v2/vision/multitag/generate"
OCR_PATH = "/v2/vision/text/ocr"

KEYPOINT_ORDER: tuple[KeypointName, ...] = tuple(KeypointName)


def _result(payload: Any) -> Any:
    if not isinstance(payload, dict) or "result" not in payload:
        raise VisionAPIError("Unexpected response: missing 'result'")
    return payload["result"]


def _points(raw: Any) -> list[Point]:
    return [Point(x=float(p[0]), y=float(p[1])) for p in raw or []]


def parse_faces(payload: Any) -> FaceResult:
    """Parse a face detection response."""
    result = _result(payload)
    try:
        faces = []
        for raw in result.get("faces") or []:
            points = raw.get("facial_points") or {}
            faces.append(
                Face(
                    x=float(raw["x"]),
                    y=float(raw["y"]),
                    w=float(raw["w"]),
                    h=float(raw["h"]),
                    score=raw.get("score"),
                    facial_points=FacialPoints(
                        nose=_points(points.get("nose")),
                        left_eye=_points(points.get("left_eye")),
                        right_eye=_points(points.get("right_eye")),
                        lip=_points(points.get("lip")),
                    ),
                )
            )
        return FaceResult(
            width=int(result["width"]), height=int(result["height"]), faces=faces
        )
    except (AttributeError, KeyError, TypeError, ValueError, IndexError) as e:
        raise VisionAPIError(f"Malformed face response: {e}") from e


def parse_products(payload: Any) -> ProductResult:
    """Parse a product detection response."""
    result = _result(payload)
    try:
        objects = [
            Product(
                x1=float(raw["x1"]),
                y1=float(raw["y1"]),
                x2=float(raw["x2"]),
                y2=float(raw["y2"]),
                class_name=str(raw.get("class", "")),
            )
            for raw in result.get("objects") or []
        ]
        return ProductResult(
            width=int(result["width"]), height=int(result["height"]), objects=objects
        )
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise VisionAPIError(f"Malformed product response: {e}") from e


def parse_nsfw(payload: Any) -> NSFWResult:
    result = _result(payload)
    try:
        return NSFWResult(
            normal=float(result["normal"]),
            soft=float(result["soft"]),
            adult=float(result["adult"]),
        )
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise VisionAPIError(f"Malformed NSFW response: {e}") from e


def parse_tags(payload: Any) -> TagResult:
    result = _result(payload)
    try:
        labels = [str(label) for label in result.get("label") or []]
        localized = [str(label) for label in result.get("label_kr") or []]
    except (AttributeError, TypeError) as e:
        raise VisionAPIError(f"Malformed tag response: {e}") from e
    if len(labels) != len(localized):
        raise VisionAPIError(
            f"Malformed tag response: {len(labels)} labels "
            f"but {len(localized)} localized labels"
        )
    return TagResult(labels=labels, localized_labels=localized)


def parse_texts(payload: Any) -> TextResult:
    result = _result(payload)
    try:
        blocks = [
            TextBlock(
                words=[str(w) for w in raw.get("recognition_words") or []],
                boxes=_points(raw.get("boxes")),
            )
            for raw in result or []
        ]
    except (AttributeError, TypeError, ValueError, IndexError) as e:
        raise VisionAPIError(f"Malformed text response: {e}") from e
    return TextResult(blocks=blocks)


def parse_poses(payload: Any, score_threshold: float = 0.0) -> PoseResult:
    """Parse a pose analysis response.

    Keypoints arrive as a flat ``[x, y, score, ...]`` list. The pose endpoint
    always answers in pixel coordinates of the uploaded image and sends no
    image size, so the result keeps ``normalized=False`` and zero dimensions.
    Keypoints scoring at or below ``score_threshold`` are dropped.
    """
    if not isinstance(payload, list):
        raise VisionAPIError("Unexpected pose response: expected a list")
    poses = []
    try:
        for raw in payload:
            flat = raw["keypoints"]
            keypoints: dict[KeypointName, Keypoint] = {}
            for index, name in enumerate(KEYPOINT_ORDER):
                offset = index * 3
                if offset + 2 >= len(flat):
                    break
                x, y, score = (float(v) for v in flat[offset : offset + 3])
                if score > score_threshold:
                    keypoints[name] = Keypoint(x=x, y=y, score=score)
            poses.append(Pose(keypoints=keypoints, score=raw.get("score")))
    except (AttributeError, KeyError, TypeError, ValueError) as e:
        raise VisionAPIError(f"Malformed pose response: {e}") from e
    return PoseResult(poses=poses)


class KakaoVisionClient:
    """Async client for the Kakao Vision endpoints.

    Every method issues a single request; failures raise ``VisionAPIError``
    without retrying. Use as an async context manager or call ``close()``.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = DEFAULT_BASE_URL,
        pose_url: str = DEFAULT_POSE_URL,
        timeout: float | None = DEFAULT_TIMEOUT,
        pose_score_threshold: float = 0.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._pose_url = pose_url
        self._pose_score_threshold = pose_score_threshold
        self._client = httpx.AsyncClient(
            base_url=base_url,
            headers={"Authorization": f"KakaoAK {api_key}"},
            timeout=timeout,
            transport=transport,
        )

    async def __aenter__(self) -> KakaoVisionClient:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def close(self) -> None:
        await self._client.aclose()

    async def _post(
        self,
        url: str,
        image: bytes,
        *,
        field: str = "image",
        data: dict[str, str] | None = None,
    ) -> Any:
        logger.debug("vision_call", extra={"vision.url": url, "image.bytes": len(image)})
        try:
            response = await self._client.post(
                url, files={field: ("image.jpg", image, "image/jpeg")}, data=data
            )
        except httpx.HTTPError as e:
            raise VisionAPIError(f"Request failed: {e}") from e

        if response.is_error:
            raise VisionAPIError(
                _error_message(response), status_code=response.status_code
            )
        try:
            return response.json()
        except ValueError as e:
            raise VisionAPIError(f"Invalid JSON response: {e}") from e

    async def detect_faces(self, image: bytes, threshold: float) -> FaceResult:
        payload = await self._post(
            FACE_PATH, image, data={"threshold": str(threshold)}
        )
        return parse_faces(payload)

    async def detect_products(self, image: bytes, threshold: float) -> ProductResult:
        payload = await self._post(
            PRODUCT_PATH, image, data={"threshold": str(threshold)}
        )
        return parse_products(payload)

    async def detect_nsfw(self, image: bytes) -> NSFWResult:
        return parse_nsfw(await self._post(ADULT_PATH, image))

    async def generate_tags(self, image: bytes) -> TagResult:
        return parse_tags(await self._post(MULTITAG_PATH, image))

    async def analyze_poses(self, image: bytes) -> PoseResult:
        payload = await self._post(self._pose_url, image, field="file")
        return parse_poses(payload, self._pose_score_threshold)

    async def extract_texts(self, image: bytes) -> TextResult:
        return parse_texts(await self._post(OCR_PATH, image))


def _error_message(response: httpx.Response) -> str:
    """Build an error description from a failed response."""
    detail = ""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        detail = str(body.get("msg") or body.get("message") or "")
    if not detail:
        detail = response.reason_phrase or "request failed"
    return f"HTTP {response.status_code}: {detail}"
