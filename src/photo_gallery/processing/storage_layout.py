"""Deterministic on-disk layout for originals and their renditions.

Files live at ``{root}/{collection_id}/{subdir}/{prefix}{filename}`` and are
published under ``{url_prefix}/{collection_id}/{subdir}/{prefix}{filename}``.
"""

import logging
import os
import uuid
from pathlib import Path, PurePosixPath
from typing import Dict, Iterable, List, NamedTuple, Optional, Union

from photo_gallery.processing.config import VariantKind

logger = logging.getLogger(__name__)


class Slot(NamedTuple):
    subdir: str
    prefix: str


SLOTS: Dict[VariantKind, Slot] = {
    VariantKind.ORIGINAL: Slot("original", ""),
    VariantKind.THUMBNAIL: Slot("thumbnails", "thumb_"),
    VariantKind.WEB: Slot("web", "web_"),
    VariantKind.HIGH_RES: Slot("high-res", "highres_"),
    VariantKind.PREVIEW: Slot("high-res", "highres_"),
    VariantKind.PROCESSED: Slot("processed", "processed_"),
}

# Provisioned for every upload; "processed" is created on first adjustment
UPLOAD_KINDS = (VariantKind.ORIGINAL, VariantKind.THUMBNAIL, VariantKind.WEB, VariantKind.HIGH_RES)


def write_atomic(path: Union[str, Path], data: bytes) -> None:
    """Write ``data`` so readers see either the old file or the complete new one."""
    path = Path(path)
    tmp_path = path.with_name(f".{path.name}.{uuid.uuid4().hex}.tmp")
    try:
        with open(tmp_path, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise


class StorageLayout:
    """Path scheme, provisioning and cleanup for collection files."""

    def __init__(self, root: Union[str, Path], url_prefix: str = "/uploads"):
        self.root = Path(root)
        self.url_prefix = "/" + url_prefix.strip("/")

    @staticmethod
    def new_filename(original_filename: str) -> str:
        """Collision-free stored name keeping the original extension."""
        return f"{uuid.uuid4()}{Path(original_filename).suffix.lower()}"

    @staticmethod
    def derivative_name(kind: VariantKind, filename: str) -> str:
        if kind is VariantKind.ORIGINAL:
            return filename
        return f"{SLOTS[kind].prefix}{Path(filename).stem}.jpg"

    @staticmethod
    def processed_name(filename: str, timestamp_ms: int) -> str:
        """Render name unique per call, even within the same millisecond."""
        suffix = uuid.uuid4().hex[:8]
        return f"{SLOTS[VariantKind.PROCESSED].prefix}{Path(filename).stem}_{timestamp_ms}_{suffix}.jpg"

    def collection_dir(self, collection_id: str) -> Path:
        return self.root / collection_id

    def directory(self, collection_id: str, kind: VariantKind) -> Path:
        return self.collection_dir(collection_id) / SLOTS[kind].subdir

    def ensure_dirs(self, collection_id: str, kinds: Iterable[VariantKind] = UPLOAD_KINDS) -> None:
        """Create the collection's subdirectories if they do not exist yet."""
        for kind in kinds:
            self.directory(collection_id, kind).mkdir(parents=True, exist_ok=True)

    def path_for(self, collection_id: str, kind: VariantKind, name: str) -> Path:
        return self.directory(collection_id, kind) / name

    def url_for(self, collection_id: str, kind: VariantKind, name: str) -> str:
        return f"{self.url_prefix}/{collection_id}/{SLOTS[kind].subdir}/{name}"

    def variant_path(self, collection_id: str, kind: VariantKind, filename: str) -> Path:
        return self.path_for(collection_id, kind, self.derivative_name(kind, filename))

    def variant_url(self, collection_id: str, kind: VariantKind, filename: str) -> str:
        return self.url_for(collection_id, kind, self.derivative_name(kind, filename))

    def path_from_url(self, url: str) -> Optional[Path]:
        """Resolve a published URL back to its file, or None if it is not ours."""
        prefix = self.url_prefix + "/"
        if not url or not url.startswith(prefix):
            return None
        relative = PurePosixPath(url[len(prefix):])
        if ".." in relative.parts or relative.is_absolute():
            return None
        return self.root.joinpath(*relative.parts)

    def write(self, path: Path, data: bytes) -> None:
        write_atomic(path, data)

    def photo_files(self, collection_id: str, filename: str, variant_urls: Iterable[str] = ()) -> List[Path]:
        """Every file that may belong to a photo, without duplicates."""
        candidates = [self.variant_path(collection_id, kind, filename) for kind in UPLOAD_KINDS]
        for url in variant_urls:
            path = self.path_from_url(url)
            if path is not None:
                candidates.append(path)
        unique: List[Path] = []
        for path in candidates:
            if path not in unique:
                unique.append(path)
        return unique

    def delete_photo_files(self, collection_id: str, filename: str, variant_urls: Iterable[str] = ()) -> int:
        """Remove a photo's files across all subdirectories.

        Files that are already gone are skipped. Returns the number removed.
        """
        deleted = sum(self.remove(path) for path in self.photo_files(collection_id, filename, variant_urls))
        self.prune_collection_dirs(collection_id)
        return deleted

    @staticmethod
    def remove(path: Path) -> bool:
        """Delete one file; returns False if it was already gone."""
        try:
            path.unlink()
        except FileNotFoundError:
            logger.debug(f"Already missing: {path}")
            return False
        logger.debug(f"Deleted file: {path}")
        return True

    def prune_collection_dirs(self, collection_id: str) -> None:
        """Remove empty subdirectories, then the collection directory if it is empty."""
        subdirs = {slot.subdir for slot in SLOTS.values()}
        for subdir in sorted(subdirs):
            self._remove_if_empty(self.collection_dir(collection_id) / subdir)
        self._remove_if_empty(self.collection_dir(collection_id))

    @staticmethod
    def _remove_if_empty(directory: Path) -> None:
        try:
            directory.rmdir()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.debug(f"Keeping {directory}: {e.strerror}")
