from __future__ import annotations

import math

from geoclone.core.policy import Resize, TargetFormat
from geoclone.util.errors import TransformError

# Megapixel targets within 10% of the current size are not worth a resample.
MEGAPIXEL_SKIP_RATIO = 0.9

FORMAT_SUFFIX = {
    TargetFormat.JPEG: ".jpg",
    TargetFormat.HEIC: ".heic",
}

PILLOW_FORMAT = {
    TargetFormat.JPEG: "JPEG",
    TargetFormat.HEIC: "HEIF",
}

SUFFIX_FORMAT = {
    ".jpg": "jpeg",
    ".jpeg": "jpeg",
    ".heic": "heic",
    ".heif": "heic",
    ".png": "png",
    ".tif": "tiff",
    ".tiff": "tiff",
}


def target_size(width: int, height: int, resize: Resize) -> tuple[int, int] | None:
    """Return the new (width, height), or None when no resize is needed."""
    if width <= 0 or height <= 0:
        raise TransformError(f"Invalid source image size ({width}, {height})")

    if resize.kind == "PERCENT":
        if resize.value >= 100:
            return None
        ratio = resize.value / 100.0
    elif resize.kind == "MEGAPIXELS":
        target_pixels = resize.value * 1_000_000
        area_ratio = target_pixels / float(width * height)
        if area_ratio > MEGAPIXEL_SKIP_RATIO:
            return None
        ratio = math.sqrt(area_ratio)
    else:
        return None

    new_w = max(1, int(width * ratio))
    new_h = max(1, int(height * ratio))
    if new_w >= width and new_h >= height:
        return None
    return new_w, new_h


def output_suffix(source_suffix: str, fmt: TargetFormat) -> str:
    if fmt == TargetFormat.PRESERVE:
        return source_suffix
    return FORMAT_SUFFIX[fmt]


def format_name(suffix: str) -> str:
    """Short lowercase format name for a file suffix (jpeg, heic, png, tiff)."""
    return SUFFIX_FORMAT.get(suffix.lower(), suffix.lower().lstrip("."))


# JPEG-scale quality -> HEVC encoder quality
HEIF_QUALITY_TABLE = [(70, 50.0), (85, 60.0), (92, 70.0), (95, 80.0), (100, 100.0)]


def heif_quality(quality: int) -> int:
    """Map a JPEG-scale quality (1-100) onto the HEIF encoder's scale."""
    lower: tuple[int, float] | None = None
    upper: tuple[int, float] | None = None
    for q, mapped in HEIF_QUALITY_TABLE:
        if q == quality:
            return int(mapped)
        if q < quality:
            lower = (q, mapped)
        else:
            upper = (q, mapped)
            break

    if lower and upper:
        ratio = (quality - lower[0]) / (upper[0] - lower[0])
        value = lower[1] + ratio * (upper[1] - lower[1])
        # snap near-table values
        if abs(value - lower[1]) < 0.1:
            return int(lower[1])
        if abs(value - upper[1]) < 0.1:
            return int(upper[1])
        return int(value)
    if lower:
        return int(lower[1])
    return int(upper[1]) if upper else quality
