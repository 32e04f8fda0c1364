"""Derivative generation: thumbnail, web, high-res and RAW preview renditions."""

import logging
from io import BytesIO
from typing import Dict, Iterable, Optional

from PIL import Image, ImageOps

from photo_gallery.processing.config import DERIVATIVE_ENVELOPES, Envelope, VariantKind
from photo_gallery.processing.models import StepResult
from photo_gallery.processing.placeholders import neutral_placeholder
from photo_gallery.processing.sources import BaseImageSource, Source, StandardImageSource

logger = logging.getLogger(__name__)


def fit_within(image: Image.Image, max_dimension: int) -> Image.Image:
    """Shrink to fit a square bounding box, keeping aspect ratio; never enlarge."""
    fitted = image.copy()
    fitted.thumbnail((max_dimension, max_dimension), Image.Resampling.LANCZOS)
    return fitted


def flatten(image: Image.Image) -> Image.Image:
    """Composite transparent images onto white; JPEG has no alpha channel."""
    if image.mode in ("RGBA", "LA", "P", "PA"):
        image = image.convert("RGBA")
        background = Image.new("RGB", image.size, (255, 255, 255))
        background.paste(image, mask=image.split()[-1])
        return background
    if image.mode != "RGB":
        return image.convert("RGB")
    return image


def normalize(image: Image.Image) -> Image.Image:
    """Apply the EXIF orientation and flatten to RGB."""
    return flatten(ImageOps.exif_transpose(image))


def encode_jpeg(image: Image.Image, quality: int) -> bytes:
    image = flatten(image)
    buffer = BytesIO()
    image.save(buffer, format="JPEG", quality=quality, progressive=True, optimize=True)
    return buffer.getvalue()


def envelope_for(kind: VariantKind) -> Envelope:
    try:
        return DERIVATIVE_ENVELOPES[kind]
    except KeyError:
        raise ValueError(f"{kind.value} is not a derivative kind") from None


class DerivativeGenerator:
    """Render resized, recompressed copies of an original.

    Every call returns a ``StepResult``; failures degrade to a placeholder
    sized to the envelope instead of raising.
    """

    def __init__(self, image_source: Optional[BaseImageSource] = None):
        self.image_source = image_source or StandardImageSource()

    def generate(self, source: Source, kind: VariantKind) -> StepResult[bytes]:
        """Produce one derivative of ``source``."""
        return self.generate_all(source, [kind])[kind]

    def generate_all(
        self, source: Source, kinds: Iterable[VariantKind]
    ) -> Dict[VariantKind, StepResult[bytes]]:
        """Produce several derivatives; each kind succeeds or falls back on its own.

        The original is decoded once and shared by all kinds. Synthetic
        sources render their stand-in per envelope instead.
        """
        kinds = list(kinds)
        for kind in kinds:
            envelope_for(kind)

        base: Optional[Image.Image] = None
        decode_error: Optional[Exception] = None
        try:
            base = self.image_source.try_embedded_preview(source)
            if base is not None:
                logger.debug("Rendering derivatives from embedded preview")
            elif not self.image_source.synthetic:
                base = self.image_source.decode_full(source)
            if base is not None:
                base = normalize(base)
        except Exception as e:
            logger.error(f"Failed to decode original: {e}")
            decode_error = e

        results = {}
        for kind in kinds:
            results[kind] = self._render(source, kind, base, decode_error)
        return results

    def _render(
        self,
        source: Source,
        kind: VariantKind,
        base: Optional[Image.Image],
        decode_error: Optional[Exception],
    ) -> StepResult[bytes]:
        envelope = envelope_for(kind)
        try:
            if decode_error is not None:
                raise decode_error
            if base is not None:
                return StepResult.ok(encode_jpeg(fit_within(base, envelope.max_dimension), envelope.quality))

            stand_in = self.image_source.decode_full(source, envelope.max_dimension)
            return StepResult.fallback(
                encode_jpeg(fit_within(stand_in, envelope.max_dimension), envelope.quality),
                reason="no embedded preview; rendered RAW stand-in",
            )
        except Exception as e:
            logger.error(f"Failed to generate {kind.value} derivative: {e}")
            placeholder = neutral_placeholder(envelope.max_dimension, envelope.max_dimension, "Error")
            return StepResult.fallback(
                encode_jpeg(placeholder, envelope.quality),
                reason="derivative generation failed",
                error=str(e),
            )
