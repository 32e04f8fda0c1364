"""Strategies that turn a stored original into Pillow images."""

import logging
from abc import ABC, abstractmethod
from io import BytesIO
from pathlib import Path
from typing import Optional, Union

import rawpy
from PIL import Image

from photo_gallery.processing.placeholders import raw_placeholder, simulated_raw_image

logger = logging.getLogger(__name__)

Source = Union[str, Path, bytes]


def open_image(source: Source) -> Image.Image:
    """Decode a path or an in-memory buffer fully and detach it from the file."""
    handle = BytesIO(source) if isinstance(source, bytes) else source
    with Image.open(handle) as img:
        img.load()
        return img.copy()


class BaseImageSource(ABC):
    """Abstract access to the pixels of an original."""

    # True when decode_full renders a stand-in instead of real pixels
    synthetic: bool = False

    def try_embedded_preview(self, source: Source) -> Optional[Image.Image]:
        """Return a preview stored inside the container, or None."""
        return None

    @abstractmethod
    def decode_full(self, source: Source, max_dimension: Optional[int] = None) -> Image.Image:
        """Decode the whole image.

        Args:
            source: Path to the original, or its bytes where supported
            max_dimension: Envelope the caller will fit the result into. Stand-in
                renderers use it to draw at the target size.
        """
        pass

    def load_base_image(self, source: Source) -> Image.Image:
        """Best renderable image: the embedded preview when present, else a full decode."""
        preview = self.try_embedded_preview(source)
        if preview is not None:
            return preview
        return self.decode_full(source)


class StandardImageSource(BaseImageSource):
    """JPEG, PNG, TIFF and WebP originals decoded with Pillow."""

    def decode_full(self, source: Source, max_dimension: Optional[int] = None) -> Image.Image:
        return open_image(source)


class RawPlaceholderSource(BaseImageSource):
    """Camera RAW originals without sensor demosaicing.

    The embedded JPEG or bitmap thumbnail is used when LibRaw can find one.
    Otherwise a deterministic labeled stand-in is rendered.
    """

    synthetic = True

    def try_embedded_preview(self, source: Source) -> Optional[Image.Image]:
        if isinstance(source, bytes):
            return None
        try:
            with rawpy.imread(str(source)) as raw:
                thumb = raw.extract_thumb()
        except rawpy.LibRawNoThumbnailError:
            logger.debug(f"No embedded preview in {source}")
            return None
        except (rawpy.LibRawError, OSError) as e:
            logger.warning(f"Failed to extract embedded preview from {source}: {e}")
            return None

        if thumb.format == rawpy.ThumbFormat.JPEG:
            return open_image(bytes(thumb.data))
        if thumb.format == rawpy.ThumbFormat.BITMAP:
            return Image.fromarray(thumb.data)
        logger.debug(f"Unsupported thumbnail format {thumb.format} in {source}")
        return None

    def decode_full(self, source: Source, max_dimension: Optional[int] = None) -> Image.Image:
        filename = "RAW File" if isinstance(source, bytes) else Path(source).name
        if max_dimension:
            return raw_placeholder(max_dimension, filename)
        return simulated_raw_image(filename)


class RawDecodeSource(RawPlaceholderSource):
    """Camera RAW originals demosaiced by LibRaw when no preview is embedded."""

    synthetic = False

    def decode_full(self, source: Source, max_dimension: Optional[int] = None) -> Image.Image:
        if isinstance(source, bytes):
            raise ValueError("RAW decoding needs a file path")
        with rawpy.imread(str(source)) as raw:
            rgb = raw.postprocess(use_camera_wb=True, output_bps=8)
        return Image.fromarray(rgb)
