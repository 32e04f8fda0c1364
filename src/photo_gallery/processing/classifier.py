"""Format classification by file extension."""

from pathlib import PurePath
from typing import Optional

from photo_gallery.processing.config import FormatFamily, RAW_EXTENSIONS, STANDARD_EXTENSIONS


def file_extension(filename: str) -> str:
    """Lower-cased extension including the dot, or "" when there is none."""
    return PurePath(filename).suffix.lower()


def classify(filename: str) -> FormatFamily:
    """Classify a file name as standard image, camera RAW or unsupported.

    Only the extension is inspected; file contents are never read.
    """
    ext = file_extension(filename)
    if ext in RAW_EXTENSIONS:
        return FormatFamily.RAW
    if ext in STANDARD_EXTENSIONS:
        return FormatFamily.STANDARD
    return FormatFamily.UNSUPPORTED


def is_raw_file(filename: str) -> bool:
    return classify(filename) is FormatFamily.RAW


def raw_format(filename: str) -> Optional[str]:
    """Extension family of a RAW file (e.g. ".cr2"), None for anything else."""
    return file_extension(filename) if is_raw_file(filename) else None
