"""Shared fixtures for photo-gallery tests."""

from io import BytesIO
from pathlib import Path

import pytest
from PIL import Image

from photo_gallery.processing.auth import Principal
from photo_gallery.processing.ingest import IngestionOrchestrator, UploadedFile
from photo_gallery.processing.record_store import GalleryStore
from photo_gallery.processing.sources import RawPlaceholderSource
from photo_gallery.processing.storage_layout import StorageLayout


def make_image(width: int = 640, height: int = 480, mode: str = "RGB") -> Image.Image:
    """Deterministic test pattern with gradients in the red and green bands."""
    size = (width, height)
    red = Image.linear_gradient("L").resize(size)
    green = Image.linear_gradient("L").transpose(Image.Transpose.ROTATE_90).resize(size)
    bands = [red, green, Image.new("L", size, 96)]
    if mode == "RGBA":
        bands.append(Image.new("L", size, 200))
    return Image.merge(mode, bands)


def encode(image: Image.Image, fmt: str = "JPEG", **params) -> bytes:
    buffer = BytesIO()
    image.save(buffer, format=fmt, **params)
    return buffer.getvalue()


def jpeg_bytes(width: int = 640, height: int = 480, **params) -> bytes:
    return encode(make_image(width, height), "JPEG", quality=90, **params)


class PreviewRawSource(RawPlaceholderSource):
    """RAW source whose container always yields an embedded preview."""

    def __init__(self, size=(1600, 1067)):
        self.size = size

    def try_embedded_preview(self, source):
        return make_image(*self.size)


class BrokenRawSource(RawPlaceholderSource):
    """RAW source that fails to decode anything."""

    def load_base_image(self, source):
        raise RuntimeError("sensor data unreadable")


@pytest.fixture
def gallery_root(tmp_path: Path) -> Path:
    return tmp_path / "uploads"


@pytest.fixture
def store(tmp_path: Path) -> GalleryStore:
    return GalleryStore(str(tmp_path / "gallery.db"))


@pytest.fixture
def layout(gallery_root: Path) -> StorageLayout:
    return StorageLayout(gallery_root, "/uploads")


@pytest.fixture
def owner() -> Principal:
    return Principal("alice")


@pytest.fixture
def collection(store, owner):
    return store.create_collection(owner.user_id, "Spring Wedding")


@pytest.fixture
def orchestrator(store, layout) -> IngestionOrchestrator:
    return IngestionOrchestrator(store, layout)


@pytest.fixture
def raw_upload() -> UploadedFile:
    # Opaque bytes: no decoder can find an embedded preview in them
    return UploadedFile("IMG_0001.CR2", b"\x00RAWDATA" * 512, "application/octet-stream")


@pytest.fixture
def raw_photo(orchestrator, owner, collection, raw_upload):
    return orchestrator.ingest(owner, collection.id, raw_upload)
