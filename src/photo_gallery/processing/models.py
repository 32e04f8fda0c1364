"""Data models for photos, collections, metadata and adjustment settings."""

import math
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Generic, List, Mapping, Optional, TypeVar

from photo_gallery.errors import InvalidSettingsError
from photo_gallery.processing.config import (
    ATTRIBUTE_NAMES,
    PARAMETER_RANGES,
    WIRE_NAMES,
    VariantKind,
)

T = TypeVar("T")


class ProcessingStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class Outcome(str, Enum):
    """How a degradable step finished."""
    OK = "ok"
    FALLBACK = "fallback"


@dataclass
class StepResult(Generic[T]):
    """Value produced by a best-effort step, with the reason when it degraded."""
    outcome: Outcome
    value: T
    reason: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def ok(cls, value: T) -> "StepResult[T]":
        return cls(Outcome.OK, value)

    @classmethod
    def fallback(cls, value: T, reason: str, error: Optional[str] = None) -> "StepResult[T]":
        return cls(Outcome.FALLBACK, value, reason=reason, error=error)

    @property
    def is_ok(self) -> bool:
        return self.outcome is Outcome.OK


@dataclass(frozen=True)
class ProcessingSettings:
    """Immutable snapshot of the eleven adjustment parameters.

    Every instance is range-checked on construction, so an out-of-range
    value can never reach a pixel operation. Use ``with_changes`` to derive
    a new snapshot; instances are never modified in place.
    """
    exposure: float = 0
    shadows: float = 0
    highlights: float = 0
    contrast: float = 0
    vibrance: float = 0
    saturation: float = 0
    temperature: float = 5500
    tint: float = 0
    clarity: float = 0
    sharpening: float = 25
    noise_reduction: float = 25

    def __post_init__(self):
        violations = []
        for f in fields(self):
            value = getattr(self, f.name)
            bounds = PARAMETER_RANGES[f.name]
            wire = WIRE_NAMES[f.name]
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                violations.append(f"{wire} must be a number, got {value!r}")
            elif math.isnan(value) or not bounds.minimum <= value <= bounds.maximum:
                violations.append(
                    f"{wire}={value} outside [{bounds.minimum:g}, {bounds.maximum:g}]"
                )
        if violations:
            raise InvalidSettingsError(violations)

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ProcessingSettings":
        """Build settings from wire names; missing fields take their identity value."""
        data = data or {}
        unknown = [key for key in data if key not in ATTRIBUTE_NAMES]
        if unknown:
            raise InvalidSettingsError([f"unknown parameter: {key}" for key in sorted(unknown)])
        kwargs = {ATTRIBUTE_NAMES[key]: value for key, value in data.items() if value is not None}
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, float]:
        return {WIRE_NAMES[f.name]: getattr(self, f.name) for f in fields(self)}

    def with_changes(self, **changes: float) -> "ProcessingSettings":
        return replace(self, **changes)

    def is_identity(self, name: str) -> bool:
        return getattr(self, name) == PARAMETER_RANGES[name].identity

    @property
    def is_noop(self) -> bool:
        return all(self.is_identity(f.name) for f in fields(self))


@dataclass
class ImageMetadata:
    """Capture and container metadata; every field is optional."""
    width: int = 0
    height: int = 0
    format: Optional[str] = None
    density: Optional[float] = None
    has_alpha: Optional[bool] = None
    make: Optional[str] = None
    model: Optional[str] = None
    lens_model: Optional[str] = None
    date_time: Optional[str] = None
    iso: Optional[int] = None
    f_number: Optional[float] = None
    exposure_time: Optional[float] = None
    focal_length: Optional[float] = None
    white_balance: Optional[int] = None
    color_space: Optional[int] = None
    orientation: Optional[int] = None
    software: Optional[str] = None
    artist: Optional[str] = None
    copyright: Optional[str] = None
    extraction_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Camel-cased mapping without the unset fields."""
        result = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is None:
                continue
            head, *rest = f.name.split("_")
            result[head + "".join(part.title() for part in rest)] = value
        return result


@dataclass
class Collection:
    """Summary projection of a collection owned by the record store."""
    id: str
    owner_id: str
    title: str
    slug: str
    photo_count: int = 0
    cover_photo: Optional[Dict[str, str]] = None
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "ownerId": self.owner_id,
            "title": self.title,
            "slug": self.slug,
            "photoCount": self.photo_count,
            "coverPhoto": self.cover_photo,
            "createdAt": self.created_at.isoformat(),
            "updatedAt": self.updated_at.isoformat(),
        }


@dataclass
class Photo:
    """One uploaded asset and its renditions."""
    id: str
    collection_id: str
    filename: str
    original_filename: str
    is_raw: bool
    variants: Dict[str, str]
    raw_format: Optional[str] = None
    width: int = 0
    height: int = 0
    processing_status: ProcessingStatus = ProcessingStatus.PENDING
    metadata: Dict[str, Any] = field(default_factory=dict)
    order_index: int = 0
    parent_id: Optional[str] = None
    uploaded_at: datetime = field(default_factory=datetime.now)

    def variant_url(self, kind: VariantKind) -> Optional[str]:
        return self.variants.get(kind.value)

    @property
    def original_url(self) -> str:
        return self.variants[VariantKind.ORIGINAL.value]

    @property
    def render_urls(self) -> List[str]:
        """Adjustment renders this photo owns, including superseded and failed ones."""
        urls = []
        for entry in self.metadata.get("processingHistory", []):
            url = entry.get("processedUrl")
            # A successful saveAsNew render belongs to the child photo
            if not url or (entry.get("saveAsNew") and entry.get("outcome") == Outcome.OK.value):
                continue
            urls.append(url)
        return urls

    @property
    def used_fallback(self) -> bool:
        outcomes = self.metadata.get("derivatives", {})
        return any(entry.get("outcome") == Outcome.FALLBACK.value for entry in outcomes.values())

    def cover_summary(self) -> Dict[str, str]:
        return {
            "id": self.id,
            "thumbnailUrl": self.variants.get(VariantKind.THUMBNAIL.value, ""),
            "webUrl": self.variants.get(VariantKind.WEB.value, ""),
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "collectionId": self.collection_id,
            "filename": self.filename,
            "originalFilename": self.original_filename,
            "thumbnailUrl": self.variant_url(VariantKind.THUMBNAIL),
            "webUrl": self.variant_url(VariantKind.WEB),
            "highResUrl": self.variant_url(VariantKind.HIGH_RES),
            "originalUrl": self.variant_url(VariantKind.ORIGINAL),
            "width": self.width,
            "height": self.height,
            "isRaw": self.is_raw,
            "rawFormat": self.raw_format,
            "processingStatus": self.processing_status.value,
            "orderIndex": self.order_index,
            "parentPhotoId": self.parent_id,
            "usedFallback": self.used_fallback,
            "uploadedAt": self.uploaded_at.isoformat(),
            "metadata": self.metadata,
        }


def merge_metadata(
    existing: Mapping[str, Any],
    updates: Mapping[str, Any],
    history_entry: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """Return a new metadata bag with ``updates`` layered over ``existing``.

    Keys are only added or replaced, never removed. A history entry is
    appended to ``processingHistory``.
    """
    merged = dict(existing)
    merged.update(updates)
    if history_entry is not None:
        history: List[Dict[str, Any]] = list(existing.get("processingHistory", []))
        history.append(history_entry)
        merged["processingHistory"] = history
    return merged
