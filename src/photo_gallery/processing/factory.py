"""Factory for image sources based on the classified format."""

import logging

from photo_gallery.processing.config import FormatFamily
from photo_gallery.processing.sources import (
    BaseImageSource,
    RawDecodeSource,
    RawPlaceholderSource,
    StandardImageSource,
)

logger = logging.getLogger(__name__)


def create_image_source(family: FormatFamily, full_decode: bool = False) -> BaseImageSource:
    """Create the image source for a format family.

    Args:
        family: Classification of the original
        full_decode: Demosaic RAW files with LibRaw instead of rendering a
            labeled stand-in when no embedded preview exists

    Raises:
        ValueError: If the family is unsupported
    """
    if family is FormatFamily.STANDARD:
        return StandardImageSource()

    if family is FormatFamily.RAW:
        if full_decode:
            logger.debug("Using LibRaw full decode for RAW originals")
            return RawDecodeSource()
        return RawPlaceholderSource()

    raise ValueError(f"No image source for format family: {family}")
