"""Per-upload ingestion workflow and photo removal."""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Mapping, Optional

from photo_gallery.errors import (
    FileTooLargeError,
    GalleryError,
    MissingFieldError,
    PersistenceError,
    UnsupportedTypeError,
)
from photo_gallery.processing.auth import Principal, load_owned_collection, load_owned_photo
from photo_gallery.processing.classifier import classify, file_extension, raw_format
from photo_gallery.processing.config import (
    ALLOWED_CONTENT_TYPE_PREFIXES,
    ALLOWED_CONTENT_TYPES,
    RAW_DERIVATIVES,
    STANDARD_DERIVATIVES,
    FormatFamily,
    VariantKind,
)
from photo_gallery.processing.derivatives import DerivativeGenerator
from photo_gallery.processing.factory import create_image_source
from photo_gallery.processing.metadata import MetadataExtractor
from photo_gallery.processing.models import Outcome, Photo, ProcessingStatus, StepResult
from photo_gallery.processing.record_store import GalleryStore
from photo_gallery.processing.sources import BaseImageSource
from photo_gallery.processing.storage_layout import StorageLayout

logger = logging.getLogger(__name__)

DEFAULT_MAX_UPLOAD_BYTES = 100 * 1024 * 1024


@dataclass
class UploadedFile:
    """File content as received from the caller."""
    filename: str
    content: bytes
    content_type: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.content)


def _storage_kind(kind: VariantKind) -> VariantKind:
    # The RAW preview is published as the photo's high-res rendition
    return VariantKind.HIGH_RES if kind is VariantKind.PREVIEW else kind


def _derivative_status(results: Mapping[VariantKind, StepResult[bytes]]) -> ProcessingStatus:
    """Failed only when no derivative could be rendered from the original at all."""
    if results and all(r.outcome is Outcome.FALLBACK and r.error for r in results.values()):
        return ProcessingStatus.FAILED
    return ProcessingStatus.COMPLETED


class IngestionOrchestrator:
    """Turn an upload into a stored original, its derivatives and a Photo record.

    Input problems are rejected before anything is written. Once the
    original is on disk, metadata and derivative failures degrade to
    fallbacks; only storage failures abort, and they remove whatever was
    written for the upload.
    """

    def __init__(
        self,
        store: GalleryStore,
        layout: StorageLayout,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
        raw_full_decode: bool = False,
        image_sources: Optional[Mapping[FormatFamily, BaseImageSource]] = None,
    ):
        self.store = store
        self.layout = layout
        self.max_upload_bytes = max_upload_bytes
        self.image_sources: Dict[FormatFamily, BaseImageSource] = {
            FormatFamily.STANDARD: create_image_source(FormatFamily.STANDARD),
            FormatFamily.RAW: create_image_source(FormatFamily.RAW, full_decode=raw_full_decode),
        }
        self.image_sources.update(image_sources or {})
        self.extractor = MetadataExtractor(raw_source=self.image_sources[FormatFamily.RAW])

    def validate(self, upload: Optional[UploadedFile]) -> FormatFamily:
        """Check an upload against the size ceiling and the type allow-lists.

        Raises:
            MissingFieldError: If no file content was supplied
            FileTooLargeError: If the file exceeds the size ceiling
            UnsupportedTypeError: If the declared type or the extension is not accepted
        """
        if upload is None or not upload.filename or not upload.content:
            raise MissingFieldError("No file provided")

        if upload.size > self.max_upload_bytes:
            limit_mb = self.max_upload_bytes // (1024 * 1024)
            raise FileTooLargeError(f"File size exceeds {limit_mb}MB limit")

        content_type = (upload.content_type or "").lower()
        if content_type not in ALLOWED_CONTENT_TYPES and not content_type.startswith(ALLOWED_CONTENT_TYPE_PREFIXES):
            raise UnsupportedTypeError(f"Unsupported content type: {content_type}")

        family = classify(upload.filename)
        if family is FormatFamily.UNSUPPORTED:
            ext = file_extension(upload.filename) or "(none)"
            raise UnsupportedTypeError(f"Unsupported file type: {ext}")
        return family

    def ingest(self, principal: Principal, collection_id: Optional[str], upload: Optional[UploadedFile]) -> Photo:
        """Store an upload in a collection and return the persisted photo.

        Raises:
            MissingFieldError: If the collection id or file is missing
            CollectionNotFoundError: If the collection does not exist
            AccessDeniedError: If the principal does not own the collection
            InputRejectedError: If the file fails validation
            PersistenceError: If the original, a derivative or the record cannot be stored
        """
        if not collection_id:
            raise MissingFieldError("No collection ID provided")
        collection = load_owned_collection(self.store, principal, collection_id)
        family = self.validate(upload)
        is_raw = family is FormatFamily.RAW

        filename = self.layout.new_filename(upload.filename)
        original_path = self.layout.variant_path(collection.id, VariantKind.ORIGINAL, filename)
        try:
            self.layout.ensure_dirs(collection.id)
            self.layout.write(original_path, upload.content)
        except OSError as e:
            logger.error(f"Failed to store original {upload.filename}: {e}")
            raise PersistenceError("Failed to store uploaded file") from e
        logger.info(f"Stored original {upload.filename} as {filename} ({upload.size} bytes)")

        variants = {
            VariantKind.ORIGINAL.value: self.layout.variant_url(collection.id, VariantKind.ORIGINAL, filename),
        }
        try:
            metadata = self.extractor.extract(original_path, is_raw)
            if metadata.extraction_error:
                logger.warning(f"Continuing without metadata for {upload.filename}")

            kinds = RAW_DERIVATIVES if is_raw else STANDARD_DERIVATIVES
            generator = DerivativeGenerator(self.image_sources[family])
            results = generator.generate_all(original_path, kinds)

            outcomes = {}
            for kind, result in results.items():
                stored_kind = _storage_kind(kind)
                self.layout.write(self.layout.variant_path(collection.id, stored_kind, filename), result.value)
                variants[stored_kind.value] = self.layout.variant_url(collection.id, stored_kind, filename)
                outcomes[stored_kind.value] = {"outcome": result.outcome.value}
                if not result.is_ok:
                    logger.warning(f"{kind.value} for {upload.filename} fell back: {result.reason}")
                    outcomes[stored_kind.value].update(reason=result.reason, error=result.error)

            bag = metadata.to_dict()
            bag["derivatives"] = outcomes
            photo = Photo(
                id=str(uuid.uuid4()),
                collection_id=collection.id,
                filename=filename,
                original_filename=upload.filename,
                is_raw=is_raw,
                raw_format=raw_format(upload.filename),
                variants=variants,
                width=metadata.width,
                height=metadata.height,
                processing_status=_derivative_status(results),
                metadata=bag,
                order_index=self.store.count_photos(collection.id) + 1,
                uploaded_at=datetime.now(),
            )
            self.store.add_photo(photo)
        except GalleryError:
            self._discard(collection.id, filename, variants)
            raise
        except OSError as e:
            logger.error(f"Failed to store derivatives for {upload.filename}: {e}")
            self._discard(collection.id, filename, variants)
            raise PersistenceError("Failed to store derivatives") from e

        logger.info(
            f"Ingested {upload.filename} into {collection.id} as photo {photo.id} "
            f"({photo.processing_status.value}, order {photo.order_index})"
        )
        return photo

    def _discard(self, collection_id: str, filename: str, variants: Mapping[str, str]) -> None:
        removed = self.layout.delete_photo_files(collection_id, filename, variants.values())
        logger.info(f"Removed {removed} files of failed upload {filename}")

    def get_photo(self, principal: Principal, photo_id: str) -> Photo:
        photo, _ = load_owned_photo(self.store, principal, photo_id)
        return photo

    def delete_photo(self, principal: Principal, photo_id: str) -> int:
        """Delete a photo record and all of its files.

        The record goes first, so a record store failure leaves the photo and its files intact.
        Returns the number of files removed.
        """
        photo, collection = load_owned_photo(self.store, principal, photo_id)
        self.store.remove_photo(photo.id)
        urls = [*photo.variants.values(), *photo.render_urls]
        removed = self.layout.delete_photo_files(collection.id, photo.filename, urls)
        logger.info(f"Deleted photo {photo.id} and {removed} files")
        return removed
