"""Adjustment workflow for persisted RAW photos."""

import logging
import time
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Union

from photo_gallery.errors import NotRawError, PersistenceError
from photo_gallery.processing.adjustments import AdjustmentPipeline
from photo_gallery.processing.auth import Principal, load_owned_photo
from photo_gallery.processing.config import FormatFamily, VariantKind
from photo_gallery.processing.factory import create_image_source
from photo_gallery.processing.models import (
    Photo,
    ProcessingSettings,
    ProcessingStatus,
    merge_metadata,
)
from photo_gallery.processing.record_store import GalleryStore
from photo_gallery.processing.storage_layout import StorageLayout

logger = logging.getLogger(__name__)

SettingsInput = Union[ProcessingSettings, Mapping[str, Any], None]


@dataclass
class AdjustmentOutcome:
    """What an adjustment produced and where it was recorded."""
    photo: Photo
    settings: ProcessingSettings
    processed_url: str
    status: ProcessingStatus
    preset: Optional[str] = None
    new_photo_id: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "processedUrl": self.processed_url,
            "settings": self.settings.to_dict(),
            "preset": self.preset,
            "processingStatus": self.status.value,
        }
        if self.status is ProcessingStatus.FAILED:
            payload["message"] = "RAW processing failed; a fallback render was written"
            payload["error"] = self.error
        elif self.new_photo_id:
            payload["newPhotoId"] = self.new_photo_id
            payload["message"] = "Processed photo saved as new version"
        else:
            payload["updated"] = True
            payload["message"] = "Photo updated with processed version"
        return payload


class AdjustmentService:
    """Apply processing settings to a stored RAW photo.

    Settings are validated before anything is touched. The original file
    is only ever read; the render is written to the collection's
    ``processed`` directory and either repoints the photo's web and
    high-res variants or becomes a new child photo.
    """

    def __init__(
        self,
        store: GalleryStore,
        layout: StorageLayout,
        pipeline: Optional[AdjustmentPipeline] = None,
        raw_full_decode: bool = False,
    ):
        self.store = store
        self.layout = layout
        self.pipeline = pipeline or AdjustmentPipeline(
            create_image_source(FormatFamily.RAW, full_decode=raw_full_decode)
        )

    def process(
        self,
        principal: Principal,
        photo_id: str,
        settings: SettingsInput = None,
        preset: Optional[str] = None,
        save_as_new: bool = False,
    ) -> AdjustmentOutcome:
        """Render ``photo_id`` with ``settings``.

        Raises:
            InvalidSettingsError: If a parameter is unknown or out of range
            PhotoNotFoundError: If the photo does not exist
            AccessDeniedError: If the principal does not own the photo
            NotRawError: If the photo is not a RAW original
            PersistenceError: If the render or the record cannot be written
        """
        if not isinstance(settings, ProcessingSettings):
            settings = ProcessingSettings.from_dict(settings)

        photo, collection = load_owned_photo(self.store, principal, photo_id)
        if not photo.is_raw:
            raise NotRawError("Photo is not a RAW file")

        if not save_as_new:
            photo.processing_status = ProcessingStatus.PROCESSING
            self.store.update_photo(photo)

        processed_name = self.layout.processed_name(photo.filename, int(time.time() * 1000))
        output_path = self.layout.path_for(collection.id, VariantKind.PROCESSED, processed_name)
        processed_url = self.layout.url_for(collection.id, VariantKind.PROCESSED, processed_name)
        original_path = self.layout.variant_path(collection.id, VariantKind.ORIGINAL, photo.filename)

        try:
            self.layout.ensure_dirs(collection.id, [VariantKind.PROCESSED])
            result = self.pipeline.process(original_path, output_path, settings)
        except OSError as e:
            logger.error(f"Failed to write processed render for {photo.id}: {e}")
            self._abort(photo, settings, preset, str(e), output_path)
            raise PersistenceError("Failed to store processed image", code="PROCESSING_FAILED") from e

        now = datetime.now().isoformat()
        history_entry = {
            "processedAt": now,
            "settings": settings.to_dict(),
            "preset": preset,
            "outcome": result.outcome.value,
            "processedUrl": processed_url,
            "saveAsNew": save_as_new,
        }

        try:
            if not result.is_ok:
                self._record_failure(photo, settings, preset, result.error, history_entry)
                return AdjustmentOutcome(
                    photo=photo,
                    settings=settings,
                    processed_url=processed_url,
                    status=ProcessingStatus.FAILED,
                    preset=preset,
                    error=result.error,
                )

            if save_as_new:
                child = self._create_child(photo, processed_name, processed_url, settings, preset, now)
                logger.info(f"Saved processed version of {photo.id} as {child.id}")
                return AdjustmentOutcome(
                    photo=child,
                    settings=settings,
                    processed_url=processed_url,
                    status=ProcessingStatus.COMPLETED,
                    preset=preset,
                    new_photo_id=child.id,
                )

            variants = dict(photo.variants)
            variants[VariantKind.WEB.value] = processed_url
            variants[VariantKind.HIGH_RES.value] = processed_url
            updated = replace(
                photo,
                variants=variants,
                metadata=merge_metadata(photo.metadata, {
                    "processedSettings": settings.to_dict(),
                    "processedAt": now,
                    "isProcessed": True,
                    "preset": preset,
                    "processedUrl": processed_url,
                }, history_entry),
                processing_status=ProcessingStatus.COMPLETED,
            )
            self.store.update_photo(updated)
        except PersistenceError as e:
            logger.error(f"Failed to record processed render for {photo.id}: {e.message}")
            self._abort(photo, settings, preset, e.message, output_path)
            raise PersistenceError("Failed to record processed image", code="PROCESSING_FAILED") from e

        logger.info(f"Updated photo {photo.id} with processed render")
        return AdjustmentOutcome(
            photo=updated,
            settings=settings,
            processed_url=processed_url,
            status=ProcessingStatus.COMPLETED,
            preset=preset,
        )

    def _abort(
        self,
        photo: Photo,
        settings: ProcessingSettings,
        preset: Optional[str],
        error: str,
        output_path: Path,
    ) -> None:
        """Drop an unrecorded render and leave the photo marked failed where possible."""
        try:
            self.layout.remove(output_path)
        except OSError as e:
            logger.warning(f"Could not remove render {output_path}: {e}")
        try:
            self._record_failure(photo, settings, preset, error)
        except PersistenceError as e:
            logger.error(f"Could not mark photo {photo.id} as failed: {e.message}")

    def _record_failure(
        self,
        photo: Photo,
        settings: ProcessingSettings,
        preset: Optional[str],
        error: Optional[str],
        history_entry: Optional[Dict[str, Any]] = None,
    ) -> None:
        photo.metadata = merge_metadata(photo.metadata, {
            "processingError": error,
            "lastProcessingAttempt": datetime.now().isoformat(),
            "lastAttemptSettings": settings.to_dict(),
            "lastAttemptPreset": preset,
        }, history_entry)
        photo.processing_status = ProcessingStatus.FAILED
        self.store.update_photo(photo)
        logger.warning(f"RAW processing failed for photo {photo.id}: {error}")

    def _create_child(
        self,
        parent: Photo,
        processed_name: str,
        processed_url: str,
        settings: ProcessingSettings,
        preset: Optional[str],
        processed_at: str,
    ) -> Photo:
        child = Photo(
            id=str(uuid.uuid4()),
            collection_id=parent.collection_id,
            filename=processed_name,
            original_filename=f"{Path(parent.original_filename).stem}_processed.jpg",
            is_raw=False,
            variants={
                VariantKind.ORIGINAL.value: processed_url,
                VariantKind.THUMBNAIL.value: processed_url,
                VariantKind.WEB.value: processed_url,
                VariantKind.HIGH_RES.value: processed_url,
            },
            width=parent.width,
            height=parent.height,
            processing_status=ProcessingStatus.COMPLETED,
            metadata={
                "parentPhotoId": parent.id,
                "isProcessedVersion": True,
                "processedSettings": settings.to_dict(),
                "processedAt": processed_at,
                "preset": preset,
            },
            order_index=self.store.count_photos(parent.collection_id) + 1,
            parent_id=parent.id,
        )
        return self.store.add_photo(child)

    def get_processing_info(self, principal: Principal, photo_id: str) -> Dict[str, Any]:
        """Summarize a RAW photo's processing state and last settings."""
        photo, _ = load_owned_photo(self.store, principal, photo_id)
        if not photo.is_raw:
            raise NotRawError("Photo is not a RAW file")

        metadata = photo.metadata
        defaults = ProcessingSettings().to_dict()
        failed = photo.processing_status is ProcessingStatus.FAILED
        return {
            "photo": {
                "id": photo.id,
                "filename": photo.filename,
                "originalFilename": photo.original_filename,
                "isRaw": photo.is_raw,
                "rawFormat": photo.raw_format,
                "originalUrl": photo.original_url,
                "webUrl": photo.variant_url(VariantKind.WEB),
            },
            "isProcessed": bool(metadata.get("isProcessed")),
            "processedAt": metadata.get("processedAt"),
            "processedSettings": metadata.get("processedSettings") or defaults,
            "processingStatus": photo.processing_status.value,
            "processingError": metadata.get("processingError") if failed else None,
            "lastProcessingAttempt": metadata.get("lastProcessingAttempt"),
            "processingHistory": metadata.get("processingHistory", []),
            "defaultSettings": defaults,
        }
