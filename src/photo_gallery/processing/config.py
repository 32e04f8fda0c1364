"""Fixed tables for format classification, derivative envelopes and adjustments."""

from enum import Enum
from typing import Dict, FrozenSet, NamedTuple, Tuple


class FormatFamily(str, Enum):
    """Result of classifying an uploaded file by extension."""
    STANDARD = "standard"
    RAW = "raw"
    UNSUPPORTED = "unsupported"


STANDARD_EXTENSIONS: FrozenSet[str] = frozenset({
    ".jpg", ".jpeg",
    ".png",
    ".tif", ".tiff",
    ".webp",
})

RAW_EXTENSIONS: FrozenSet[str] = frozenset({
    ".cr2", ".cr3",          # Canon
    ".nef", ".nrw",          # Nikon
    ".arw", ".srf", ".sr2",  # Sony
    ".dng",                  # Adobe
    ".raf",                  # Fujifilm
    ".orf",                  # Olympus
    ".rw2",                  # Panasonic
    ".pef", ".ptx",          # Pentax
    ".x3f",                  # Sigma
    ".mrw",                  # Minolta
    ".dcr", ".kdc",          # Kodak
    ".erf",                  # Epson
    ".mef",                  # Mamiya
    ".mos",                  # Leaf
    ".raw",                  # Generic
})

# Declared content types accepted alongside the extension check
ALLOWED_CONTENT_TYPE_PREFIXES: Tuple[str, ...] = ("image/",)
ALLOWED_CONTENT_TYPES: FrozenSet[str] = frozenset({"application/octet-stream", ""})


class VariantKind(str, Enum):
    """Every rendition a photo can carry."""
    ORIGINAL = "original"
    THUMBNAIL = "thumbnail"
    WEB = "web"
    HIGH_RES = "highRes"
    PREVIEW = "preview"
    PROCESSED = "processed"


class Envelope(NamedTuple):
    """Bounding box and encode quality of a derivative."""
    max_dimension: int
    quality: int


DERIVATIVE_ENVELOPES: Dict[VariantKind, Envelope] = {
    VariantKind.THUMBNAIL: Envelope(400, 80),
    VariantKind.WEB: Envelope(1200, 85),
    VariantKind.HIGH_RES: Envelope(2400, 90),
    VariantKind.PREVIEW: Envelope(2048, 90),
}

# Kinds generated at ingestion time, per format family
STANDARD_DERIVATIVES: Tuple[VariantKind, ...] = (
    VariantKind.THUMBNAIL, VariantKind.WEB, VariantKind.HIGH_RES,
)
RAW_DERIVATIVES: Tuple[VariantKind, ...] = (
    VariantKind.THUMBNAIL, VariantKind.WEB, VariantKind.PREVIEW,
)

PROCESSED_QUALITY = 95


class ParameterRange(NamedTuple):
    """Valid closed interval and identity value of an adjustment parameter."""
    minimum: float
    maximum: float
    identity: float


# Declaration order is the serialization order; pipeline order lives in adjustments.py
PARAMETER_RANGES: Dict[str, ParameterRange] = {
    "exposure": ParameterRange(-2, 2, 0),
    "shadows": ParameterRange(0, 100, 0),
    "highlights": ParameterRange(0, 100, 0),
    "contrast": ParameterRange(-100, 100, 0),
    "vibrance": ParameterRange(-100, 100, 0),
    "saturation": ParameterRange(-100, 100, 0),
    "temperature": ParameterRange(2000, 10000, 5500),
    "tint": ParameterRange(-100, 100, 0),
    "clarity": ParameterRange(-100, 100, 0),
    "sharpening": ParameterRange(0, 100, 25),
    "noise_reduction": ParameterRange(0, 100, 25),
}

# Wire names differ from attribute names only for noise reduction
WIRE_NAMES: Dict[str, str] = {name: name for name in PARAMETER_RANGES}
WIRE_NAMES["noise_reduction"] = "noiseReduction"
ATTRIBUTE_NAMES: Dict[str, str] = {wire: attr for attr, wire in WIRE_NAMES.items()}


# Highlights recovery is expressed as a positive amount because the valid
# range starts at zero.
PRESETS: Dict[str, Dict[str, float]] = {
    "portrait": {
        "exposure": 0.2, "shadows": 15, "highlights": 10, "contrast": 10,
        "vibrance": 15, "saturation": 0, "temperature": 5600, "tint": 5,
        "clarity": 20, "sharpening": 40, "noiseReduction": 20,
    },
    "landscape": {
        "exposure": 0, "shadows": 25, "highlights": 20, "contrast": 25,
        "vibrance": 30, "saturation": 10, "temperature": 5400, "tint": -5,
        "clarity": 35, "sharpening": 50, "noiseReduction": 15,
    },
    "dramatic": {
        "exposure": -0.3, "shadows": 40, "highlights": 30, "contrast": 40,
        "vibrance": 25, "saturation": 20, "temperature": 5200, "tint": 0,
        "clarity": 50, "sharpening": 30, "noiseReduction": 25,
    },
    "soft": {
        "exposure": 0.3, "shadows": 10, "highlights": 5, "contrast": -15,
        "vibrance": 10, "saturation": -5, "temperature": 5700, "tint": 10,
        "clarity": -20, "sharpening": 15, "noiseReduction": 40,
    },
    "vivid": {
        "exposure": 0.1, "shadows": 20, "highlights": 15, "contrast": 30,
        "vibrance": 50, "saturation": 25, "temperature": 5500, "tint": 0,
        "clarity": 30, "sharpening": 45, "noiseReduction": 20,
    },
}


def get_preset(name: str) -> Dict[str, float]:
    """Return a copy of a named preset.

    Raises:
        KeyError: If no preset has that name
    """
    key = name.lower().strip()
    if key not in PRESETS:
        raise KeyError(f"Unknown preset: {name}. Available: {', '.join(sorted(PRESETS))}")
    return dict(PRESETS[key])
