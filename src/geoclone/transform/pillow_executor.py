"""Production TransformExecutor: Pillow (+ pillow-heif) for pixels, ExifTool for GPS.

Every output is produced as a hidden temp file next to the destination and
moved into place with os.replace(), so a failed or interrupted job never
leaves a partial destination file.
"""

from __future__ import annotations

from pathlib import Path
import os
import shutil
import threading
import uuid

from PIL import Image
from pillow_heif import register_heif_opener

from geoclone.core.photo_task import TransformPlan, TransformResult
from geoclone.core.policy import DEFAULT_QUALITY, PolicyRule, TargetFormat
from geoclone.exif.exiftool import ExifTool
from geoclone.transform.base import TransformExecutor
from geoclone.transform.image_ops import (
    PILLOW_FORMAT,
    format_name,
    heif_quality,
    output_suffix,
    target_size,
)
from geoclone.util.errors import ExifToolError, TransformError

register_heif_opener()

ACTION_COPIED = "COPIED"
ACTION_CONVERTED = "CONVERTED"

# Pillow formats that accept `quality` / `exif` / `xmp` on save.
LOSSY_FORMATS = {"JPEG", "HEIF", "WEBP"}
EXIF_FORMATS = {"JPEG", "HEIF", "PNG", "WEBP"}
XMP_FORMATS = {"JPEG", "HEIF"}


class PillowTransformExecutor(TransformExecutor):
    def __init__(
        self,
        exiftool: ExifTool | None = None,
        dry_run: bool = False,
        overwrite: bool = False,
    ) -> None:
        self.exiftool = exiftool
        self.dry_run = dry_run
        self.overwrite = overwrite
        self._claimed: set[Path] = set()
        self._claim_lock = threading.Lock()

    def destination_path(self, plan: TransformPlan) -> Path:
        src = plan.record.source_path
        if plan.rule.preserve_original:
            return plan.destination
        return plan.destination.with_suffix(output_suffix(src.suffix, plan.rule.format))

    def execute(self, plan: TransformPlan) -> TransformResult:
        src = plan.record.source_path
        rule = plan.rule
        dest = self.destination_path(plan)
        action = ACTION_COPIED if rule.preserve_original else ACTION_CONVERTED
        wants_gps = plan.fix is not None and self.exiftool is not None

        if not src.is_file():
            raise TransformError(f"Source file is missing: {src}")
        if dest.exists() and not self.overwrite:
            return TransformResult(success=False, error=f"Destination already exists: {dest}", destination=dest)
        self._claim(dest)

        if self.dry_run:
            return TransformResult(
                success=True,
                action=action,
                geotagged=wants_gps,
                output_format=format_name(dest.suffix),
                destination=dest,
            )

        dest.parent.mkdir(parents=True, exist_ok=True)
        # Keep the real suffix so ExifTool recognizes the container.
        tmp = dest.with_name(f".{dest.stem}.{uuid.uuid4().hex[:8]}.tmp{dest.suffix}")
        resized = False
        try:
            if rule.preserve_original:
                shutil.copy2(src, tmp)
            else:
                resized = _convert(src, tmp, rule)
                shutil.copystat(src, tmp)
            if wants_gps:
                self.exiftool.write_gps(tmp, plan.fix)
            os.replace(tmp, dest)
        except ExifToolError as e:
            raise TransformError(f"GPS merge failed: {e}") from e
        except Image.DecompressionBombError as e:
            raise TransformError(str(e)) from e
        except (OSError, ValueError) as e:
            raise TransformError(f"{type(e).__name__}: {e}") from e
        finally:
            if tmp.exists():
                tmp.unlink()

        return TransformResult(
            success=True,
            action=action,
            geotagged=wants_gps,
            resized=resized,
            output_format=format_name(dest.suffix),
            destination=dest,
        )

    def _claim(self, dest: Path) -> None:
        # Two sources may map to one output (IMG_1.jpg and IMG_1.heic -> IMG_1.heic).
        key = dest.expanduser().resolve()
        with self._claim_lock:
            if key in self._claimed:
                raise TransformError(f"Destination produced by another photo in this run: {dest}")
            self._claimed.add(key)


def _convert(src: Path, out: Path, rule: PolicyRule) -> bool:
    """Re-encode `src` into `out` per `rule`; returns True when resized."""
    with Image.open(src) as im:
        exif = im.info.get("exif")
        icc = im.info.get("icc_profile")
        xmp = im.info.get("xmp")
        pillow_format = _pillow_format(im, rule)

        size = target_size(im.width, im.height, rule.resize)
        img = im.resize(size, Image.Resampling.LANCZOS) if size else im

        if pillow_format == "JPEG" and img.mode not in ("RGB", "L", "CMYK"):
            img = img.convert("RGB")

        save_kwargs: dict[str, object] = {}
        if pillow_format in LOSSY_FORMATS:
            quality = rule.quality if rule.quality is not None else DEFAULT_QUALITY
            if pillow_format == "HEIF":
                quality = heif_quality(quality)
            save_kwargs["quality"] = quality
        if exif and pillow_format in EXIF_FORMATS:
            save_kwargs["exif"] = exif
        if xmp and pillow_format in XMP_FORMATS:
            save_kwargs["xmp"] = xmp
        if icc:
            save_kwargs["icc_profile"] = icc

        img.save(out, format=pillow_format, **save_kwargs)
        return size is not None


def _pillow_format(im: Image.Image, rule: PolicyRule) -> str:
    if rule.format != TargetFormat.PRESERVE:
        return PILLOW_FORMAT[rule.format]
    if not im.format:
        raise TransformError("Cannot determine source image format.")
    return im.format
