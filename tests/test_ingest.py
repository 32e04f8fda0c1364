"""Tests for the ingestion orchestrator."""

from io import BytesIO

import pytest
from PIL import Image

from conftest import PreviewRawSource, encode, jpeg_bytes, make_image

from photo_gallery.errors import (
    AccessDeniedError,
    CollectionNotFoundError,
    FileTooLargeError,
    MissingFieldError,
    PersistenceError,
    PhotoNotFoundError,
    UnsupportedTypeError,
)
from photo_gallery.processing.auth import Principal
from photo_gallery.processing.config import FormatFamily, VariantKind
from photo_gallery.processing.ingest import IngestionOrchestrator, UploadedFile
from photo_gallery.processing.models import ProcessingStatus


def files_under(root):
    return sorted(p for p in root.rglob("*") if p.is_file()) if root.exists() else []


def image_at(layout, url):
    with Image.open(layout.path_from_url(url)) as img:
        return img.size


class TestValidation:
    """Test input rejection before any side effect."""

    def test_missing_collection_id(self, orchestrator, owner, gallery_root):
        with pytest.raises(MissingFieldError):
            orchestrator.ingest(owner, None, UploadedFile("a.jpg", jpeg_bytes()))
        assert files_under(gallery_root) == []

    def test_missing_file(self, orchestrator, owner, collection):
        with pytest.raises(MissingFieldError):
            orchestrator.ingest(owner, collection.id, None)
        with pytest.raises(MissingFieldError):
            orchestrator.ingest(owner, collection.id, UploadedFile("a.jpg", b""))

    def test_unknown_collection(self, orchestrator, owner):
        with pytest.raises(CollectionNotFoundError) as exc_info:
            orchestrator.ingest(owner, "nope", UploadedFile("a.jpg", jpeg_bytes()))
        assert exc_info.value.code == "COLLECTION_NOT_FOUND"

    def test_other_owner_denied(self, orchestrator, collection, gallery_root):
        with pytest.raises(AccessDeniedError):
            orchestrator.ingest(Principal("mallory"), collection.id, UploadedFile("a.jpg", jpeg_bytes()))
        assert files_under(gallery_root) == []

    def test_admin_bypasses_ownership(self, orchestrator, collection):
        photo = orchestrator.ingest(Principal("root", "admin"), collection.id, UploadedFile("a.jpg", jpeg_bytes()))
        assert photo.collection_id == collection.id

    def test_too_large(self, store, layout, owner, collection, gallery_root):
        small_limit = IngestionOrchestrator(store, layout, max_upload_bytes=1024)
        with pytest.raises(FileTooLargeError) as exc_info:
            small_limit.ingest(owner, collection.id, UploadedFile("a.jpg", b"\xff" * 2048))
        assert exc_info.value.code == "FILE_TOO_LARGE"
        assert files_under(gallery_root) == []

    @pytest.mark.parametrize("filename", ["notes.txt", "movie.mp4", "noext"])
    def test_unsupported_extension(self, orchestrator, owner, collection, filename, gallery_root):
        with pytest.raises(UnsupportedTypeError):
            orchestrator.ingest(owner, collection.id, UploadedFile(filename, b"data"))
        assert files_under(gallery_root) == []

    def test_unsupported_content_type(self, orchestrator):
        with pytest.raises(UnsupportedTypeError):
            orchestrator.validate(UploadedFile("a.jpg", b"data", "text/plain"))

    @pytest.mark.parametrize("content_type", [None, "", "image/jpeg", "IMAGE/X-CANON-CR2", "application/octet-stream"])
    def test_accepted_content_types(self, orchestrator, content_type):
        assert orchestrator.validate(UploadedFile("a.cr2", b"data", content_type)) is FormatFamily.RAW


class TestStandardIngestion:
    """Test ingestion of standard images."""

    @pytest.mark.slow
    def test_large_jpeg(self, orchestrator, owner, collection, layout, store):
        photo = orchestrator.ingest(owner, collection.id, UploadedFile("Holiday.JPG", jpeg_bytes(3000, 2000), "image/jpeg"))

        assert photo.is_raw is False
        assert photo.raw_format is None
        assert photo.processing_status is ProcessingStatus.COMPLETED
        assert (photo.width, photo.height) == (3000, 2000)
        assert photo.original_filename == "Holiday.JPG"
        assert photo.filename.endswith(".jpg")
        assert photo.order_index == 1
        assert not photo.used_fallback

        assert image_at(layout, photo.variant_url(VariantKind.THUMBNAIL)) == (400, 267)
        assert image_at(layout, photo.variant_url(VariantKind.WEB)) == (1200, 800)
        assert image_at(layout, photo.variant_url(VariantKind.HIGH_RES)) == (2400, 1600)
        assert layout.path_from_url(photo.original_url).read_bytes() == jpeg_bytes(3000, 2000)

        assert store.get_photo(photo.id).to_dict() == photo.to_dict()

    def test_collection_count_and_cover(self, orchestrator, owner, collection, store):
        first = orchestrator.ingest(owner, collection.id, UploadedFile("1.jpg", jpeg_bytes()))
        second = orchestrator.ingest(owner, collection.id, UploadedFile("2.png", encode(make_image(), "PNG")))

        assert (first.order_index, second.order_index) == (1, 2)
        loaded = store.get_collection(collection.id)
        assert loaded.photo_count == 2
        assert loaded.cover_photo["id"] == first.id
        assert loaded.cover_photo["thumbnailUrl"] == first.variant_url(VariantKind.THUMBNAIL)

    def test_racing_uploads_may_share_order_index(self, orchestrator, owner, collection, store, monkeypatch):
        # Both uploads see an empty collection when computing their index
        monkeypatch.setattr(store, "count_photos", lambda collection_id: 0)
        first = orchestrator.ingest(owner, collection.id, UploadedFile("1.jpg", jpeg_bytes()))
        second = orchestrator.ingest(owner, collection.id, UploadedFile("2.jpg", jpeg_bytes()))

        assert first.order_index == second.order_index == 1
        assert store.get_collection(collection.id).photo_count == 2
        assert [p.id for p in store.list_photos(collection.id)] == [first.id, second.id]

    def test_metadata_recorded(self, orchestrator, owner, collection):
        photo = orchestrator.ingest(owner, collection.id, UploadedFile("a.jpg", jpeg_bytes(320, 240)))
        assert photo.metadata["format"] == "JPEG"
        assert photo.metadata["derivatives"]["thumbnail"] == {"outcome": "ok"}

    def test_corrupt_image_still_returns_record(self, orchestrator, owner, collection, layout):
        """Undecodable bytes degrade to placeholders and a failed status."""
        photo = orchestrator.ingest(owner, collection.id, UploadedFile("broken.jpg", b"garbage" * 100))

        assert photo.processing_status is ProcessingStatus.FAILED
        assert (photo.width, photo.height) == (0, 0)
        assert photo.used_fallback
        assert photo.metadata["extractionError"]
        assert image_at(layout, photo.variant_url(VariantKind.THUMBNAIL)) == (400, 400)


class TestRawIngestion:
    """Test ingestion of camera RAW files."""

    def test_raw_without_preview(self, raw_photo, layout):
        assert raw_photo.is_raw is True
        assert raw_photo.raw_format == ".cr2"
        assert raw_photo.processing_status is ProcessingStatus.COMPLETED
        assert raw_photo.used_fallback
        for kind in (VariantKind.THUMBNAIL, VariantKind.WEB, VariantKind.HIGH_RES, VariantKind.ORIGINAL):
            url = raw_photo.variant_url(kind)
            assert url
            assert layout.path_from_url(url).exists()
        assert raw_photo.variant_url(VariantKind.HIGH_RES).endswith(".jpg")
        assert "/high-res/highres_" in raw_photo.variant_url(VariantKind.HIGH_RES)
        assert image_at(layout, raw_photo.variant_url(VariantKind.HIGH_RES)) == (2048, 2048)
        derivatives = raw_photo.metadata["derivatives"]
        assert derivatives["highRes"]["outcome"] == "fallback"

    def test_raw_with_embedded_preview(self, store, layout, owner, collection, raw_upload):
        orchestrator = IngestionOrchestrator(
            store, layout, image_sources={FormatFamily.RAW: PreviewRawSource(size=(3000, 2000))}
        )
        photo = orchestrator.ingest(owner, collection.id, raw_upload)

        assert not photo.used_fallback
        assert image_at(layout, photo.variant_url(VariantKind.HIGH_RES)) == (2048, 1365)
        assert image_at(layout, photo.variant_url(VariantKind.THUMBNAIL)) == (400, 267)


class TestPersistenceFailures:
    """Test that storage failures leave nothing behind."""

    def test_record_failure_removes_files(self, orchestrator, owner, collection, store, gallery_root, monkeypatch):
        def fail(photo):
            raise PersistenceError("database is locked")

        monkeypatch.setattr(store, "add_photo", fail)
        with pytest.raises(PersistenceError):
            orchestrator.ingest(owner, collection.id, UploadedFile("a.jpg", jpeg_bytes()))

        assert files_under(gallery_root) == []
        assert store.get_collection(collection.id).photo_count == 0

    def test_unwritable_root(self, store, tmp_path, owner, collection):
        from photo_gallery.processing.storage_layout import StorageLayout

        blocker = tmp_path / "blocker"
        blocker.write_text("")
        orchestrator = IngestionOrchestrator(store, StorageLayout(blocker))
        with pytest.raises(PersistenceError) as exc_info:
            orchestrator.ingest(owner, collection.id, UploadedFile("a.jpg", jpeg_bytes()))
        assert exc_info.value.code == "UPLOAD_FAILED"
        assert store.count_photos(collection.id) == 0


class TestDeletePhoto:
    """Test photo deletion through the orchestrator."""

    def test_delete_removes_record_and_files(self, orchestrator, owner, collection, store, layout, gallery_root):
        photo = orchestrator.ingest(owner, collection.id, UploadedFile("a.jpg", jpeg_bytes()))
        layout.path_from_url(photo.variant_url(VariantKind.WEB)).unlink()

        removed = orchestrator.delete_photo(owner, photo.id)
        assert removed == 3
        assert store.get_photo(photo.id) is None
        assert store.get_collection(collection.id).photo_count == 0
        assert files_under(gallery_root) == []

    def test_delete_requires_owner(self, orchestrator, raw_photo):
        with pytest.raises(AccessDeniedError):
            orchestrator.delete_photo(Principal("mallory"), raw_photo.id)

    def test_delete_unknown_photo(self, orchestrator, owner):
        with pytest.raises(PhotoNotFoundError):
            orchestrator.delete_photo(owner, "nope")
