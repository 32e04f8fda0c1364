"""Non-destructive tone, color and detail adjustments for RAW renders.

Adjustments are applied in a fixed order. Each step returns its input
untouched when the parameter sits at its identity value, so default
settings reproduce the base image exactly.
"""

import logging
from io import BytesIO
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, Tuple, Union

from PIL import Image, ImageEnhance, ImageFilter

from photo_gallery.processing.config import PROCESSED_QUALITY
from photo_gallery.processing.models import ProcessingSettings, StepResult
from photo_gallery.processing.placeholders import processed_fallback
from photo_gallery.processing.sources import BaseImageSource, RawPlaceholderSource
from photo_gallery.processing.storage_layout import write_atomic

logger = logging.getLogger(__name__)

MID_GRAY = 128
FALLBACK_QUALITY = 90


def _clamp(value: float) -> int:
    return max(0, min(255, int(round(value))))


def _apply_luts(image: Image.Image, luts: Sequence[List[int]]) -> Image.Image:
    """Map each RGB band through its own 256-entry lookup table."""
    table: List[int] = []
    for lut in luts:
        table.extend(lut)
    return image.point(table)


def adjust_exposure(image: Image.Image, settings: ProcessingSettings) -> Image.Image:
    if settings.is_identity("exposure"):
        return image
    return ImageEnhance.Brightness(image).enhance(2 ** settings.exposure)


def adjust_contrast(image: Image.Image, settings: ProcessingSettings) -> Image.Image:
    if settings.is_identity("contrast"):
        return image
    gain = 1 + settings.contrast / 100
    lut = [_clamp((v - MID_GRAY) * gain + MID_GRAY) for v in range(256)]
    return _apply_luts(image, [lut] * 3)


def adjust_saturation(image: Image.Image, settings: ProcessingSettings) -> Image.Image:
    if settings.is_identity("saturation"):
        return image
    return ImageEnhance.Color(image).enhance(max(0.0, 1 + settings.saturation / 100))


def adjust_vibrance(image: Image.Image, settings: ProcessingSettings) -> Image.Image:
    # Approximated as a gentler saturation scale that composes with saturation
    if settings.is_identity("vibrance"):
        return image
    return ImageEnhance.Color(image).enhance(max(0.0, 1 + settings.vibrance / 200))


def adjust_sharpening(image: Image.Image, settings: ProcessingSettings) -> Image.Image:
    if settings.is_identity("sharpening") or settings.sharpening == 0:
        return image
    sigma = max(0.5, 3 - settings.sharpening / 50)
    return image.filter(ImageFilter.UnsharpMask(radius=sigma, percent=200, threshold=2))


def adjust_noise_reduction(image: Image.Image, settings: ProcessingSettings) -> Image.Image:
    if settings.noise_reduction <= 25:
        return image
    return image.filter(ImageFilter.GaussianBlur(radius=(settings.noise_reduction - 25) / 100))


def adjust_white_balance(image: Image.Image, settings: ProcessingSettings) -> Image.Image:
    """Temperature and tint as per-channel gains."""
    if settings.is_identity("temperature") and settings.is_identity("tint"):
        return image
    temp_diff = settings.temperature - 5500
    red = 1 + temp_diff / 10000 if temp_diff > 0 else 1.0
    blue = 1 + abs(temp_diff) / 10000 if temp_diff < 0 else 1.0
    green = 1 + (settings.tint / 100) * 0.1
    luts = [[_clamp(v * gain) for v in range(256)] for gain in (red, green, blue)]
    return _apply_luts(image, luts)


def adjust_shadows_highlights(image: Image.Image, settings: ProcessingSettings) -> Image.Image:
    """Shadows lift and highlight recovery folded into a single gamma."""
    if settings.is_identity("shadows") and settings.is_identity("highlights"):
        return image
    shadows_gamma = 1 + settings.shadows / 200
    highlights_gamma = 1 - settings.highlights / 200
    gamma = (shadows_gamma + highlights_gamma) / 2
    if gamma == 1:
        return image
    lut = [_clamp(255 * (v / 255) ** (1 / gamma)) for v in range(256)]
    return _apply_luts(image, [lut] * 3)


def adjust_clarity(image: Image.Image, settings: ProcessingSettings) -> Image.Image:
    # Negative clarity is accepted but has no softening effect
    if settings.clarity <= 0:
        return image
    percent = max(1, int(round(200 * settings.clarity / 100)))
    return image.filter(ImageFilter.UnsharpMask(radius=3, percent=percent, threshold=0))


Step = Callable[[Image.Image, ProcessingSettings], Image.Image]

PIPELINE: Tuple[Tuple[str, Step], ...] = (
    ("exposure", adjust_exposure),
    ("contrast", adjust_contrast),
    ("saturation", adjust_saturation),
    ("vibrance", adjust_vibrance),
    ("sharpening", adjust_sharpening),
    ("noise_reduction", adjust_noise_reduction),
    ("white_balance", adjust_white_balance),
    ("shadows_highlights", adjust_shadows_highlights),
    ("clarity", adjust_clarity),
)


def encode_processed(image: Image.Image, quality: int = PROCESSED_QUALITY) -> bytes:
    buffer = BytesIO()
    image.convert("RGB").save(buffer, format="JPEG", quality=quality, progressive=True, optimize=True)
    return buffer.getvalue()


class AdjustmentPipeline:
    """Apply ``ProcessingSettings`` to the renderable base of a RAW original."""

    def __init__(self, image_source: Optional[BaseImageSource] = None):
        self.image_source = image_source or RawPlaceholderSource()

    def render(self, image: Image.Image, settings: ProcessingSettings) -> Image.Image:
        """Run every adjustment step in order and return the result.

        The input image is not modified.
        """
        result = image.convert("RGB") if image.mode != "RGB" else image.copy()
        for name, step in PIPELINE:
            result = step(result, settings)
            logger.debug(f"Applied {name}")
        return result

    def process(
        self,
        source: Union[str, Path],
        output_path: Union[str, Path],
        settings: ProcessingSettings,
    ) -> StepResult[Path]:
        """Render ``source`` with ``settings`` into ``output_path``.

        Pixel failures never raise: a labeled fallback summarizing the
        settings is written instead and the result is marked as a fallback.
        Errors writing the output are propagated.
        """
        output_path = Path(output_path)
        logger.info(f"Processing {Path(source).name} with settings: {settings.to_dict()}")
        try:
            base = self.image_source.load_base_image(source)
            data = encode_processed(self.render(base, settings))
            result = StepResult.ok(output_path)
        except Exception as e:
            logger.error(f"RAW processing failed for {source}: {e}", exc_info=True)
            data = encode_processed(processed_fallback(settings, Path(source).name), FALLBACK_QUALITY)
            result = StepResult.fallback(output_path, reason="adjustment failed", error=str(e))

        write_atomic(output_path, data)
        return result

    def process_batch(
        self,
        sources: Iterable[Union[str, Path]],
        output_dir: Union[str, Path],
        settings: ProcessingSettings,
    ) -> List[StepResult[Path]]:
        """Process several originals into ``output_dir`` as ``{stem}_processed.jpg``."""
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        results = []
        for source in sources:
            output_path = output_dir / f"{Path(source).stem}_processed.jpg"
            try:
                results.append(self.process(source, output_path, settings))
            except OSError as e:
                logger.error(f"Failed to process {source}: {e}")
        return results
