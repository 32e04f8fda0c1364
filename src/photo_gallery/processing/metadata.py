"""Best-effort metadata extraction for standard and RAW originals."""

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union

from PIL import ExifTags, Image

from photo_gallery.processing.models import ImageMetadata
from photo_gallery.processing.sources import BaseImageSource, RawPlaceholderSource

logger = logging.getLogger(__name__)

Base = ExifTags.Base

# Allow-listed tags: attribute name -> (tag id, lives in the Exif sub-IFD)
RAW_TAGS = {
    "make": (Base.Make, False),
    "model": (Base.Model, False),
    "orientation": (Base.Orientation, False),
    "software": (Base.Software, False),
    "artist": (Base.Artist, False),
    "copyright": (Base.Copyright, False),
    "lens_model": (Base.LensModel, True),
    "iso": (Base.ISOSpeedRatings, True),
    "f_number": (Base.FNumber, True),
    "exposure_time": (Base.ExposureTime, True),
    "focal_length": (Base.FocalLength, True),
    "white_balance": (Base.WhiteBalance, True),
    "color_space": (Base.ColorSpace, True),
    "width": (Base.ExifImageWidth, True),
    "height": (Base.ExifImageHeight, True),
}

FLOAT_FIELDS = {"f_number", "exposure_time", "focal_length"}
INT_FIELDS = {"orientation", "iso", "white_balance", "color_space", "width", "height"}

EXIF_DATE_FORMAT = "%Y:%m:%d %H:%M:%S"


def _clean(name: str, value: Any) -> Any:
    """Coerce a raw tag value into a JSON-friendly scalar."""
    if isinstance(value, tuple):
        value = value[0] if value else None
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="ignore")
    if name in FLOAT_FIELDS:
        return round(float(value), 6)
    if name in INT_FIELDS:
        return int(value)
    return str(value).strip("\x00 ").strip() or None


def _capture_time(exif: Image.Exif) -> Optional[str]:
    raw_value = exif.get_ifd(ExifTags.IFD.Exif).get(Base.DateTimeOriginal) or exif.get(Base.DateTime)
    if not raw_value:
        return None
    try:
        return datetime.strptime(str(raw_value).strip("\x00 "), EXIF_DATE_FORMAT).isoformat()
    except ValueError:
        return str(raw_value)


def _metadata_from_exif(exif: Image.Exif) -> ImageMetadata:
    metadata = ImageMetadata()
    sub_ifd = exif.get_ifd(ExifTags.IFD.Exif)
    for name, (tag, in_sub_ifd) in RAW_TAGS.items():
        value = (sub_ifd if in_sub_ifd else exif).get(tag)
        try:
            cleaned = _clean(name, value)
        except (TypeError, ValueError, ZeroDivisionError) as e:
            logger.debug(f"Skipping unreadable tag {name}: {e}")
            continue
        if cleaned is not None:
            setattr(metadata, name, cleaned)
    metadata.date_time = _capture_time(exif)
    return metadata


class MetadataExtractor:
    """Extract capture metadata without ever raising to the caller."""

    def __init__(self, raw_source: Optional[BaseImageSource] = None):
        self.raw_source = raw_source or RawPlaceholderSource()

    def extract(self, file_path: Union[str, Path], is_raw: bool) -> ImageMetadata:
        try:
            if is_raw:
                return self._extract_raw(Path(file_path))
            return self._extract_standard(Path(file_path))
        except Exception as e:
            logger.warning(f"Failed to extract metadata from {file_path}: {e}")
            return ImageMetadata(extraction_error=str(e))

    def _extract_standard(self, file_path: Path) -> ImageMetadata:
        with Image.open(file_path) as img:
            dpi = img.info.get("dpi")
            return ImageMetadata(
                width=img.width,
                height=img.height,
                format=img.format,
                density=round(float(dpi[0]), 2) if dpi else None,
                has_alpha=img.mode in ("RGBA", "LA", "PA") or "transparency" in img.info,
            )

    def _extract_raw(self, file_path: Path) -> ImageMetadata:
        """Read the allow-listed tags from the RAW container.

        Most RAW containers are TIFF-structured, so Pillow can usually read
        their IFDs directly. When it cannot, the EXIF block of the embedded
        preview is used instead.
        """
        metadata = None
        try:
            # Sub-IFDs are read lazily from the open file
            with Image.open(file_path) as img:
                exif = img.getexif()
                if exif:
                    metadata = _metadata_from_exif(exif)
        except (OSError, SyntaxError, ValueError) as e:
            logger.debug(f"Pillow cannot read the RAW container {file_path.name}: {e}")

        if metadata is None:
            preview = self.raw_source.try_embedded_preview(file_path)
            exif = preview.getexif() if preview is not None else None
            if exif:
                metadata = _metadata_from_exif(exif)

        if metadata is None:
            logger.warning(f"No metadata found in RAW file {file_path.name}")
            return ImageMetadata(format="RAW")

        metadata.format = "RAW"
        return metadata
