"""
Thumbnail generation for exported avatars and attachments.

The blob extractor only depends on the ImageResizer protocol; the default
implementation uses Pillow.
"""

import logging
import math
from pathlib import Path
from typing import Protocol, Union

from PIL import Image

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


class ImageResizer(Protocol):
    """Anything that can write a cropped, resized copy of an image file."""

    def resize_crop(self, source: PathLike, dest: PathLike, width: int, height: int) -> None:
        ...


def _round(value: float) -> int:
    # Half away from zero: 2.5 -> 3
    return int(math.floor(abs(value) + 0.5)) * (1 if value >= 0 else -1)


def center_crop_box(src_width: int, src_height: int, width: int, height: int) -> tuple[int, int, int, int]:
    """
    Crop box that gives the source the target aspect ratio.

    The dimension that overflows the target more is cropped symmetrically
    around the image center.

    Returns:
        (left, top, right, bottom) in source pixels
    """
    x = y = 0
    if src_width - width > src_height - height:
        new_width = _round(width * src_height / height)
        x = _round((src_width - new_width) / 2)
        src_width = new_width
    else:
        new_height = _round(height * src_width / width)
        y = _round((src_height - new_height) / 2)
        src_height = new_height
    return (x, y, x + src_width, y + src_height)


class PillowImageResizer:
    """Center-crop then resample with Pillow, keeping the source format."""

    resample = Image.Resampling.LANCZOS

    def resize_crop(self, source: PathLike, dest: PathLike, width: int, height: int) -> None:
        """
        Write a width x height thumbnail of source to dest.

        Raises:
            OSError: If the source is not a readable image or dest cannot be written
            ValueError: If the size is not positive
        """
        if width < 1 or height < 1:
            raise ValueError(f"Thumbnail size must be positive, got {width}x{height}")

        with Image.open(source) as image:
            image_format = image.format
            box = center_crop_box(image.width, image.height, width, height)
            thumbnail = image.crop(box).resize((width, height), self.resample)

        if image_format == "JPEG" and thumbnail.mode not in ("RGB", "L"):
            thumbnail = thumbnail.convert("RGB")

        thumbnail.save(dest, format=image_format)
        logger.debug(f"Thumbnail {width}x{height} written: {dest}")
