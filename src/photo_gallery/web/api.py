"""FastAPI web interface for photo-gallery."""

import asyncio
import logging
from concurrent.futures import ThreadPoolExecutor
from contextlib import asynccontextmanager
from datetime import datetime
from functools import partial
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from pydantic import BaseModel, ConfigDict, Field

from photo_gallery import __version__
from photo_gallery.errors import GalleryError, InputRejectedError, PersistenceError
from photo_gallery.processing.adjust import AdjustmentService
from photo_gallery.processing.auth import Principal, TokenAuthorizer
from photo_gallery.processing.config import PARAMETER_RANGES, PRESETS, WIRE_NAMES
from photo_gallery.processing.ingest import IngestionOrchestrator, UploadedFile
from photo_gallery.processing.models import ProcessingSettings
from photo_gallery.processing.record_store import GalleryStore
from photo_gallery.processing.storage_layout import StorageLayout

from .config import GalleryConfig, get_default_config

logger = logging.getLogger(__name__)

AUTH_COOKIE = "auth-token"

router = APIRouter()


# Pydantic models for request/response


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class UploadResponse(CamelModel):
    id: str
    filename: str
    original_filename: str = Field(..., alias="originalFilename")
    thumbnail_url: Optional[str] = Field(None, alias="thumbnailUrl")
    web_url: Optional[str] = Field(None, alias="webUrl")
    high_res_url: Optional[str] = Field(None, alias="highResUrl")
    original_url: str = Field(..., alias="originalUrl")
    width: int
    height: int
    is_raw: bool = Field(..., alias="isRaw")
    raw_format: Optional[str] = Field(None, alias="rawFormat")
    processing_status: str = Field(..., alias="processingStatus")
    order_index: int = Field(..., alias="orderIndex")
    used_fallback: bool = Field(False, alias="usedFallback")
    uploaded_at: datetime = Field(..., alias="uploadedAt")


class PhotoResponse(UploadResponse):
    collection_id: str = Field(..., alias="collectionId")
    parent_photo_id: Optional[str] = Field(None, alias="parentPhotoId")
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ProcessRequest(CamelModel):
    settings: Optional[Dict[str, Any]] = Field(None, description="Adjustment values; missing fields use defaults")
    preset: Optional[str] = Field(None, description="Name of the preset the settings were resolved from")
    save_as_new: bool = Field(False, alias="saveAsNew", description="Create a new photo instead of updating in place")


class ProcessResponse(CamelModel):
    processed_url: str = Field(..., alias="processedUrl")
    settings: Dict[str, float]
    preset: Optional[str] = None
    processing_status: str = Field(..., alias="processingStatus")
    new_photo_id: Optional[str] = Field(None, alias="newPhotoId")
    updated: Optional[bool] = None
    message: str
    error: Optional[str] = None


class DeleteResponse(CamelModel):
    id: str
    deleted: bool
    files_removed: int = Field(..., alias="filesRemoved")


class ParameterInfo(BaseModel):
    min: float
    max: float
    default: float


class PresetsResponse(BaseModel):
    presets: Dict[str, Dict[str, float]]
    defaults: Dict[str, float]
    ranges: Dict[str, ParameterInfo]


def bearer_token(request: Request) -> Optional[str]:
    """Token from the Authorization header, falling back to the auth cookie."""
    header = request.headers.get("Authorization", "")
    scheme, _, token = header.partition(" ")
    if scheme.lower() == "bearer" and token.strip():
        return token.strip()
    return request.cookies.get(AUTH_COOKIE)


def get_principal(request: Request) -> Principal:
    return request.app.state.authorizer.authorize(bearer_token(request))


async def run_blocking(request: Request, func, *args, **kwargs):
    """Run blocking image or storage work on the app's thread pool."""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(request.app.state.executor, partial(func, *args, **kwargs))


async def handle_gallery_error(request: Request, exc: GalleryError) -> JSONResponse:
    return JSONResponse(status_code=exc.status, content=exc.to_dict())


async def handle_validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Render malformed requests as ``INVALID_REQUEST`` like every other rejection."""
    problems = "; ".join(
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg')}" for err in exc.errors()
    )
    error = InputRejectedError(f"Invalid request: {problems}", details=jsonable_encoder(exc.errors()))
    return await handle_gallery_error(request, error)


# API endpoints


@router.post("/api/photos/upload", response_model=UploadResponse)
async def upload_photo(
    request: Request,
    file: Optional[UploadFile] = File(None),
    collectionId: Optional[str] = Form(None),
    principal: Principal = Depends(get_principal),
):
    """Upload a photo into a collection and generate its derivatives."""
    upload = None
    if file is not None:
        upload = UploadedFile(
            filename=file.filename or "",
            content=await file.read(),
            content_type=file.content_type,
        )
    try:
        photo = await run_blocking(request, request.app.state.ingestor.ingest, principal, collectionId, upload)
    except GalleryError:
        raise
    except Exception as e:
        logger.error(f"Upload failed: {e}", exc_info=True)
        raise PersistenceError("Upload failed") from e
    return UploadResponse(**photo.to_dict())


@router.get("/api/photos/{photo_id}", response_model=PhotoResponse)
async def get_photo(request: Request, photo_id: str, principal: Principal = Depends(get_principal)):
    """Get a stored photo record."""
    photo = await run_blocking(request, request.app.state.ingestor.get_photo, principal, photo_id)
    return PhotoResponse(**photo.to_dict())


@router.delete("/api/photos/{photo_id}", response_model=DeleteResponse)
async def delete_photo(request: Request, photo_id: str, principal: Principal = Depends(get_principal)):
    """Delete a photo and every file it owns."""
    removed = await run_blocking(request, request.app.state.ingestor.delete_photo, principal, photo_id)
    return DeleteResponse(id=photo_id, deleted=True, files_removed=removed)


@router.post("/api/photos/{photo_id}/process-raw", response_model=ProcessResponse, response_model_exclude_none=True)
async def process_raw(
    request: Request,
    photo_id: str,
    body: ProcessRequest,
    principal: Principal = Depends(get_principal),
):
    """Apply adjustment settings to a RAW photo."""
    outcome = await run_blocking(
        request,
        request.app.state.adjuster.process,
        principal,
        photo_id,
        body.settings,
        preset=body.preset,
        save_as_new=body.save_as_new,
    )
    return ProcessResponse(**outcome.to_dict())


@router.get("/api/photos/{photo_id}/process-raw")
async def get_processing_info(request: Request, photo_id: str, principal: Principal = Depends(get_principal)):
    """Get the processing state and last settings of a RAW photo."""
    return await run_blocking(request, request.app.state.adjuster.get_processing_info, principal, photo_id)


@router.get("/api/presets", response_model=PresetsResponse)
async def list_presets():
    """List the named adjustment presets with the parameter ranges."""
    ranges = {
        WIRE_NAMES[name]: ParameterInfo(min=r.minimum, max=r.maximum, default=r.identity)
        for name, r in PARAMETER_RANGES.items()
    }
    return PresetsResponse(presets=PRESETS, defaults=ProcessingSettings().to_dict(), ranges=ranges)


@router.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "timestamp": datetime.now()}


def create_app(config: Optional[GalleryConfig] = None) -> FastAPI:
    """Build the application and its services from ``config``."""
    config = config or get_default_config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        app.state.executor.shutdown(wait=False)

    app = FastAPI(
        title="photo-gallery API",
        description="Photo ingestion, derivatives and non-destructive RAW adjustments",
        version=__version__,
        lifespan=lifespan,
    )

    # Enable CORS for frontend development
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # In production, restrict to specific origins
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    store = GalleryStore(config.db_path)
    layout = StorageLayout(config.upload_dir, config.url_prefix)
    app.state.config = config
    app.state.store = store
    app.state.layout = layout
    app.state.authorizer = TokenAuthorizer(config.api_tokens)
    app.state.ingestor = IngestionOrchestrator(
        store,
        layout,
        max_upload_bytes=config.max_upload_bytes,
        raw_full_decode=config.raw_full_decode,
    )
    app.state.adjuster = AdjustmentService(store, layout, raw_full_decode=config.raw_full_decode)
    app.state.executor = ThreadPoolExecutor(max_workers=config.max_workers)

    if not len(app.state.authorizer):
        logger.warning("No API tokens configured; every authenticated request will be rejected")

    app.add_exception_handler(GalleryError, handle_gallery_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.include_router(router)

    # Serve uploaded originals and derivatives
    app.mount(layout.url_prefix, StaticFiles(directory=config.upload_dir), name="uploads")
    logger.info(f"Serving uploads from {config.upload_dir} at {layout.url_prefix}")
    return app


_app: Optional[FastAPI] = None


def get_app() -> FastAPI:
    """Application built from the default configuration."""
    global _app
    if _app is None:
        _app = create_app()
    return _app


def __getattr__(name: str):
    # ``app`` is built on first access so importing this module creates no files
    if name == "app":
        return get_app()
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


