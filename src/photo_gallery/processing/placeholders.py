"""Deterministic stand-in images for when real pixels are unavailable.

All renderers here are pure functions of their arguments: the same inputs
always produce the same pixels, which keeps fallback derivatives stable
across retries.
"""

from typing import Iterable, Tuple

from PIL import Image, ImageDraw, ImageFont

from photo_gallery.processing.models import ProcessingSettings

Color = Tuple[int, int, int]

STAND_IN_SIZE = (1200, 800)


def _vertical_gradient(size: Tuple[int, int], top: Color, bottom: Color) -> Image.Image:
    mask = Image.linear_gradient("L").resize(size)
    return Image.composite(Image.new("RGB", size, bottom), Image.new("RGB", size, top), mask)


def _centered_lines(
    image: Image.Image,
    lines: Iterable[Tuple[str, float, int, Color]],
) -> None:
    """Draw (text, vertical position fraction, font size, color) lines centered horizontally."""
    draw = ImageDraw.Draw(image)
    width, height = image.size
    for text, y_fraction, font_size, color in lines:
        font = ImageFont.load_default(size=font_size)
        left, top, right, bottom = draw.textbbox((0, 0), text, font=font)
        x = (width - (right - left)) / 2 - left
        y = height * y_fraction - (bottom - top) / 2 - top
        draw.text((x, y), text, fill=color, font=font)


def truncate_label(label: str, limit: int = 20) -> str:
    return label if len(label) <= limit else label[: limit - 3] + "..."


def raw_placeholder(max_dimension: int, filename: str = "RAW File") -> Image.Image:
    """Labeled square placeholder for a RAW derivative with no decodable pixels."""
    size = (max_dimension, max_dimension)
    image = _vertical_gradient(size, (31, 41, 55), (55, 65, 81))
    draw = ImageDraw.Draw(image)
    inset = max(4, min(20, max_dimension // 20))
    draw.rounded_rectangle(
        (inset, inset, max_dimension - inset, max_dimension - inset),
        radius=8, outline=(107, 114, 128), width=2,
    )
    small = max_dimension <= 400
    _centered_lines(image, [
        ("RAW", 0.45, 14 if small else 18, (209, 213, 219)),
        (truncate_label(filename), 0.55, 10 if small else 12, (156, 163, 175)),
        ("Processing Required", 0.65, 8 if small else 10, (107, 114, 128)),
    ])
    return image


def neutral_placeholder(width: int, height: int, text: str = "Image") -> Image.Image:
    """Plain light placeholder used when a derivative could not be produced."""
    image = Image.new("RGB", (width, height), (241, 245, 249))
    draw = ImageDraw.Draw(image)
    inset = max(2, min(10, min(width, height) // 20))
    draw.rectangle((inset, inset, width - inset, height - inset), outline=(203, 213, 225), width=2)
    _centered_lines(image, [(text, 0.5, 16, (100, 116, 139))])
    return image


def simulated_raw_image(filename: str) -> Image.Image:
    """Synthetic base image standing in for demosaiced sensor data."""
    image = _vertical_gradient(STAND_IN_SIZE, (79, 70, 229), (219, 39, 119)).convert("RGBA")
    overlay = Image.new("RGBA", STAND_IN_SIZE, (0, 0, 0, 0))
    draw = ImageDraw.Draw(overlay)
    for cx, cy, radius, alpha in ((300, 200, 80, 77), (800, 300, 120, 51), (600, 600, 100, 64)):
        draw.ellipse((cx - radius, cy - radius, cx + radius, cy + radius), fill=(255, 255, 255, alpha))
    image = Image.alpha_composite(image, overlay).convert("RGB")
    _centered_lines(image, [(f"RAW: {filename}", 0.10, 16, (240, 240, 245))])
    return image


def processed_fallback(settings: ProcessingSettings, filename: str) -> Image.Image:
    """Labeled render summarizing the requested settings after a failed adjustment."""
    s = settings
    image = Image.new("RGB", STAND_IN_SIZE, (31, 41, 55))
    muted = (209, 213, 219)
    _centered_lines(image, [
        (f"RAW Processed: {filename}", 0.30, 24, (249, 250, 251)),
        (f"Exposure: {s.exposure:g} EV | Shadows: {s.shadows:g} | Highlights: {s.highlights:g}", 0.45, 14, muted),
        (f"Temperature: {s.temperature:g}K | Tint: {s.tint:g} | Contrast: {s.contrast:g}", 0.55, 14, muted),
        (f"Saturation: {s.saturation:g} | Vibrance: {s.vibrance:g} | Clarity: {s.clarity:g}", 0.65, 14, muted),
        (f"Sharpening: {s.sharpening:g} | Noise Reduction: {s.noise_reduction:g}", 0.75, 14, muted),
        ("Adjustment could not be applied", 0.90, 12, (156, 163, 175)),
    ])
    return image
