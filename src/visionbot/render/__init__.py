"""Annotation rendering for vision results."""

from visionbot.render.fonts import FontError, FontLoader
from visionbot.render.geometry import PALETTE, color_for_index, pixelate_region, scale
from visionbot.render.renderer import AnnotationRenderer, LabelFailure, RenderResult

__all__ = [
    "AnnotationRenderer",
    "FontError",
    "FontLoader",
    "LabelFailure",
    "PALETTE",
    "RenderResult",
    "color_for_index",
    "pixelate_region",
    "scale",
]
