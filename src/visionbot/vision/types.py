"""Structured results returned by the vision service.

Geometric fields of faces and products are normalized to the unit square
relative to the ``width``/``height`` declared by that response. Pose keypoints
are in pixels unless ``PoseResult.normalized`` is set.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


@dataclass(frozen=True, slots=True)
class Point:
    x: float
    y: float


@dataclass(frozen=True, slots=True)
class FacialPoints:
    """Landmark point groups of a detected face."""

    nose: list[Point] = field(default_factory=list)
    left_eye: list[Point] = field(default_factory=list)
    right_eye: list[Point] = field(default_factory=list)
    lip: list[Point] = field(default_factory=list)

    def groups(self) -> list[list[Point]]:
        """Groups that are marked on the image, in drawing order."""
        return [self.nose, self.right_eye, self.left_eye, self.lip]


@dataclass(frozen=True, slots=True)
class Face:
    x: float
    y: float
    w: float
    h: float
    score: float | None = None
    facial_points: FacialPoints = field(default_factory=FacialPoints)


@dataclass(frozen=True, slots=True)
class FaceResult:
    width: int
    height: int
    faces: list[Face]


@dataclass(frozen=True, slots=True)
class Product:
    x1: float
    y1: float
    x2: float
    y2: float
    class_name: str


@dataclass(frozen=True, slots=True)
class ProductResult:
    width: int
    height: int
    objects: list[Product]


@dataclass(frozen=True, slots=True)
class NSFWResult:
    normal: float
    soft: float
    adult: float


@dataclass(frozen=True, slots=True)
class TagResult:
    labels: list[str]
    localized_labels: list[str]


@dataclass(frozen=True, slots=True)
class TextBlock:
    words: list[str]
    boxes: list[Point] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class TextResult:
    blocks: list[TextBlock]

    @property
    def words(self) -> list[str]:
        return [word for block in self.blocks for word in block.words]


class KeypointName(str, Enum):
    """Body keypoints in the order the pose endpoint reports them."""

    NOSE = "nose"
    LEFT_EYE = "left_eye"
    RIGHT_EYE = "right_eye"
    LEFT_EAR = "left_ear"
    RIGHT_EAR = "right_ear"
    LEFT_SHOULDER = "left_shoulder"
    RIGHT_SHOULDER = "right_shoulder"
    LEFT_ELBOW = "left_elbow"
    RIGHT_ELBOW = "right_elbow"
    LEFT_WRIST = "left_wrist"
    RIGHT_WRIST = "right_wrist"
    LEFT_HIP = "left_hip"
    RIGHT_HIP = "right_hip"
    LEFT_KNEE = "left_knee"
    RIGHT_KNEE = "right_knee"
    LEFT_ANKLE = "left_ankle"
    RIGHT_ANKLE = "right_ankle"


@dataclass(frozen=True, slots=True)
class Keypoint:
    x: float
    y: float
    score: float


@dataclass(frozen=True, slots=True)
class Pose:
    """One detected person. Keypoints below the confidence threshold are absent."""

    keypoints: dict[KeypointName, Keypoint]
    score: float | None = None

    def get(self, name: KeypointName) -> Keypoint | None:
        return self.keypoints.get(name)


@dataclass(frozen=True, slots=True)
class PoseResult:
    """Detected poses.

    Coordinates are pixels unless ``normalized`` is set, in which case they are
    fractions of ``width`` and ``height``. Kakao only produces pixels.
    """

    poses: list[Pose]
    width: int = 0
    height: int = 0
    normalized: bool = False


DetectionResult = (
    FaceResult | ProductResult | NSFWResult | TagResult | PoseResult | TextResult
)


def is_empty(result: DetectionResult) -> bool:
    """Whether a result has no entities worth reporting.

    NSFW scores are always reportable.
    """
    if isinstance(result, FaceResult):
        return not result.faces
    if isinstance(result, ProductResult):
        return not result.objects
    if isinstance(result, TagResult):
        return not result.labels
    if isinstance(result, PoseResult):
        return not result.poses
    if isinstance(result, TextResult):
        return not result.words
    return False
