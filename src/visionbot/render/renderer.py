"""Draw detection results onto images.

The renderer never touches the caller's image: every routine draws on an RGB
copy. Label text is cosmetic, so a label that fails to draw is recorded in
``RenderResult.label_failures`` and logged while the rest of the overlay is
still produced.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from PIL import Image, ImageDraw

from visionbot.commands import VisionCommand
from visionbot.render.fonts import FontError, FontLoader
from visionbot.render.geometry import (
    Color,
    color_for_index,
    mask_block_size,
    pixelate_region,
    scale_point,
    scale_rect,
)
from visionbot.vision.types import (
    DetectionResult,
    FaceResult,
    KeypointName,
    PoseResult,
    ProductResult,
)

logger = logging.getLogger(__name__)

STROKE_WIDTH = 2
LANDMARK_RADIUS = 1
POSE_POINT_RADIUS = 3
POSE_STROKE_WIDTH = 2
LABEL_INSET = 5

K = KeypointName

# Skeleton lines drawn between pose keypoints
POSE_EDGES: tuple[tuple[KeypointName, KeypointName], ...] = (
    (K.LEFT_SHOULDER, K.RIGHT_SHOULDER),
    (K.LEFT_SHOULDER, K.LEFT_ELBOW),
    (K.RIGHT_SHOULDER, K.RIGHT_ELBOW),
    (K.LEFT_ELBOW, K.LEFT_WRIST),
    (K.RIGHT_ELBOW, K.RIGHT_WRIST),
    (K.LEFT_HIP, K.RIGHT_HIP),
    (K.LEFT_SHOULDER, K.RIGHT_HIP),
    (K.RIGHT_SHOULDER, K.LEFT_HIP),
    (K.LEFT_HIP, K.LEFT_KNEE),
    (K.RIGHT_HIP, K.RIGHT_KNEE),
    (K.LEFT_KNEE, K.LEFT_ANKLE),
    (K.RIGHT_KNEE, K.RIGHT_ANKLE),
)


@dataclass(frozen=True)
class LabelFailure:
    text: str
    error: str


@dataclass
class RenderResult:
    """Annotated image plus anything the caption needs."""

    image: Image.Image
    classes: list[str] = field(default_factory=list)
    label_failures: list[LabelFailure] = field(default_factory=list)

    @property
    def partial(self) -> bool:
        """True when some labels are missing from the image."""
        return bool(self.label_failures)


class AnnotationRenderer:
    """Renders face, product, pose and mask overlays."""

    def __init__(self, fonts: FontLoader | None = None) -> None:
        self._fonts = fonts or FontLoader()

    def render(
        self,
        image: Image.Image,
        result: DetectionResult,
        command: VisionCommand,
    ) -> RenderResult:
        """Return a new annotated image for ``result``.

        Raises:
            ValueError: If the result has no image representation.
        """
        canvas = image.convert("RGB")
        if isinstance(result, FaceResult):
            if command == VisionCommand.MASK_FACES:
                return self._mask_faces(canvas, result)
            return self._draw_faces(canvas, result)
        if isinstance(result, ProductResult):
            return self._draw_products(canvas, result)
        if isinstance(result, PoseResult):
            return self._draw_poses(canvas, result)
        raise ValueError(f"Nothing to draw for {type(result).__name__}")

    def _draw_label(
        self,
        draw: ImageDraw.ImageDraw,
        render: RenderResult,
        position: tuple[float, float],
        text: str,
        color: Color,
    ) -> None:
        try:
            font = self._fonts.for_image_height(render.image.height)
            draw.text(position, text, fill=color, font=font, anchor="ls")
        except (FontError, OSError, ValueError) as e:
            logger.warning(
                "label_draw_failed", extra={"label": text, "error.message": str(e)}
            )
            render.label_failures.append(LabelFailure(text=text, error=str(e)))

    @staticmethod
    def _stroke_box(
        draw: ImageDraw.ImageDraw,
        box: tuple[float, float, float, float],
        color: Color,
        width: int = STROKE_WIDTH,
    ) -> None:
        x0, y0, x1, y1 = box
        draw.line(
            [(x0, y0), (x1, y0), (x1, y1), (x0, y1), (x0, y0)],
            fill=color,
            width=width,
        )

    @staticmethod
    def _dot(
        draw: ImageDraw.ImageDraw, x: float, y: float, radius: float, color: Color
    ) -> None:
        draw.ellipse(
            [(x - radius, y - radius), (x + radius, y + radius)],
            fill=color,
            outline=color,
        )

    def _draw_faces(self, canvas: Image.Image, result: FaceResult) -> RenderResult:
        render = RenderResult(image=canvas)
        draw = ImageDraw.Draw(canvas)
        width, height = result.width, result.height

        for i, face in enumerate(result.faces):
            color = color_for_index(i)
            box = scale_rect(face.x, face.y, face.w, face.h, width, height)
            self._stroke_box(draw, box, color)
            self._draw_label(
                draw,
                render,
                (box[0] + LABEL_INSET, box[3] - LABEL_INSET),
                f"Face #{i + 1}",
                color,
            )
            for group in face.facial_points.groups():
                for point in group:
                    x, y = scale_point(point.x, point.y, width, height)
                    self._dot(draw, x, y, LANDMARK_RADIUS, color)

        return render

    def _mask_faces(self, canvas: Image.Image, result: FaceResult) -> RenderResult:
        for face in result.faces:
            box = scale_rect(face.x, face.y, face.w, face.h, result.width, result.height)
            pixelate_region(canvas, box, mask_block_size(box[2] - box[0]))
        return RenderResult(image=canvas)

    def _draw_products(
        self, canvas: Image.Image, result: ProductResult
    ) -> RenderResult:
        render = RenderResult(image=canvas)
        draw = ImageDraw.Draw(canvas)
        width, height = result.width, result.height

        for i, product in enumerate(result.objects):
            render.classes.append(product.class_name)
            color = color_for_index(i)
            x0, y0 = scale_point(product.x1, product.y1, width, height)
            x1, y1 = scale_point(product.x2, product.y2, width, height)
            self._stroke_box(draw, (x0, y0, x1, y1), color)
            self._draw_label(
                draw,
                render,
                (x0 + LABEL_INSET, y1 - LABEL_INSET),
                f"#{i + 1}: {product.class_name}",
                color,
            )

        return render

    def _draw_poses(self, canvas: Image.Image, result: PoseResult) -> RenderResult:
        draw = ImageDraw.Draw(canvas)

        for i, pose in enumerate(result.poses):
            color = color_for_index(i)
            points: dict[KeypointName, tuple[float, float]] = {}
            for name, keypoint in pose.keypoints.items():
                if result.normalized:
                    points[name] = scale_point(
                        keypoint.x, keypoint.y, result.width, result.height
                    )
                else:
                    points[name] = (keypoint.x, keypoint.y)

            for x, y in points.values():
                self._dot(draw, x, y, POSE_POINT_RADIUS, color)

            for start, end in POSE_EDGES:
                if start in points and end in points:
                    draw.line(
                        [points[start], points[end]],
                        fill=color,
                        width=POSE_STROKE_WIDTH,
                    )

        return RenderResult(image=canvas)
