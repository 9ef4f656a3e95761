"""Font loading for annotation labels."""

from __future__ import annotations

import logging
from pathlib import Path

from PIL import ImageFont

logger = logging.getLogger(__name__)

# Label text height relative to image height
FONT_SIZE_DIVISOR = 24

FontType = ImageFont.FreeTypeFont | ImageFont.ImageFont


class FontError(Exception):
    """Font could not be loaded."""


def font_size_for_height(image_height: int) -> int:
    """Label font size that keeps text legible across resolutions."""
    return max(1, int(image_height / FONT_SIZE_DIVISOR))


class FontLoader:
    """Loads label fonts on demand, one instance per size.

    With no ``path`` Pillow's bundled default font is used.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = Path(path).expanduser() if path else None
        self._cache: dict[int, FontType] = {}

    @property
    def path(self) -> Path | None:
        return self._path

    def verify(self) -> None:
        """Load the font once so a bad path fails at startup.

        Raises:
            FontError: If the font file is missing or unreadable.
        """
        self.get(FONT_SIZE_DIVISOR)

    def get(self, size: int) -> FontType:
        size = max(1, int(size))
        font = self._cache.get(size)
        if font is None:
            font = self._load(size)
            self._cache[size] = font
        return font

    def for_image_height(self, image_height: int) -> FontType:
        return self.get(font_size_for_height(image_height))

    def _load(self, size: int) -> FontType:
        if self._path is None:
            return ImageFont.load_default(size=size)
        try:
            return ImageFont.truetype(str(self._path), size=size)
        except OSError as e:
            raise FontError(f"Failed to load font {self._path}: {e}") from e
