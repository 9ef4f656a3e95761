"""Coordinate scaling, palette cycling and pixelation helpers.

Remote detectors report positions normalized to the unit square. Everything
here converts those into pixel space for drawing. Inputs outside [0, 1] are
not corrected.
"""

from __future__ import annotations

import math

from PIL import Image

Color = tuple[int, int, int]
Rect = tuple[float, float, float, float]

# Saturated colors that stay visible on most photos
PALETTE: tuple[Color, ...] = (
    (255, 255, 0),  # yellow
    (0, 255, 255),  # cyan
    (255, 0, 255),  # purple
    (0, 255, 0),  # green
    (0, 0, 255),  # blue
    (255, 0, 0),  # red
)

# Face width is divided into this many pixel blocks when masking
MASK_BLOCKS_PER_FACE = 8


def scale(normalized: float, axis_length: float) -> float:
    """Convert a normalized coordinate into pixels along one axis."""
    return normalized * axis_length


def scale_point(x: float, y: float, width: float, height: float) -> tuple[float, float]:
    return scale(x, width), scale(y, height)


def scale_rect(
    x: float, y: float, w: float, h: float, width: float, height: float
) -> Rect:
    """Scale a normalized (x, y, w, h) box into pixel corners (x0, y0, x1, y1)."""
    return (
        scale(x, width),
        scale(y, height),
        scale(x + w, width),
        scale(y + h, height),
    )


def color_for_index(index: int) -> Color:
    """Pick a palette color for the entity at ``index``, rotating through the palette."""
    return PALETTE[index % len(PALETTE)]


def mask_block_size(region_width: float) -> int:
    """Block size used to pixelate a region of the given pixel width."""
    return max(1, int(region_width / MASK_BLOCKS_PER_FACE))


def pixelate_region(image: Image.Image, rect: Rect, block_size: int) -> None:
    """Replace the pixels inside ``rect`` with block averages, in place.

    ``rect`` is clipped to the image; an empty intersection leaves the image
    untouched. Callers are expected to pass a working copy.
    """
    block_size = max(1, int(block_size))
    x0, y0, x1, y1 = (int(v) for v in rect)
    left = max(0, min(x0, x1))
    top = max(0, min(y0, y1))
    right = min(image.width, max(x0, x1))
    bottom = min(image.height, max(y0, y1))
    if right <= left or bottom <= top:
        return

    region = image.crop((left, top, right, bottom))
    width, height = region.size
    small = region.resize(
        (
            max(1, math.ceil(width / block_size)),
            max(1, math.ceil(height / block_size)),
        ),
        Image.Resampling.BOX,
    )
    image.paste(small.resize((width, height), Image.Resampling.NEAREST), (left, top))
