from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
import json
import os
import shutil
import subprocess
import sys
from typing import Any, Sequence

from geoclone.core.geo import GeoFix
from geoclone.util.errors import ExifToolError
from geoclone.util.timeparse import format_exif_datetime

READ_TAGS = [
    "-DateTimeOriginal",
    "-OffsetTimeOriginal",
    "-CreateDate",
    "-SubSecDateTimeOriginal",
    "-Rating",
    "-FileSize",
]

# Batched reads keep the command line under OS limits.
READ_BATCH_SIZE = 200


@dataclass(frozen=True)
class PhotoMetadata:
    source_file: Path
    date_time_original: str | None
    offset_time_original: str | None
    create_date: str | None
    rating: int | None
    file_size: int | None
    error: str = ""


class ExifTool:
    """Thin subprocess wrapper around the ExifTool executable."""

    def __init__(self, exiftool_path: str | None = None) -> None:
        self.exiftool_path = exiftool_path or resolve_exiftool_path()

    def read_metadata(self, files: Sequence[Path]) -> dict[Path, PhotoMetadata]:
        """Read capture time, rating and size for `files`.

        Returns mapping: path as passed in -> metadata. Files ExifTool could not
        read carry `error`; files missing from the output are absent.
        Raises ExifToolError when ExifTool cannot be run at all.
        """
        out: dict[Path, PhotoMetadata] = {}
        for start in range(0, len(files), READ_BATCH_SIZE):
            batch = [str(p) for p in files[start:start + READ_BATCH_SIZE]]
            cmd = [self.exiftool_path, "-json", "-n", "-charset", "filename=utf8", *READ_TAGS, *batch]
            proc = self._run(cmd)
            # ExifTool exits 1 when some (not all) files fail; per-file errors are in the JSON.
            text = (proc.stdout or "").strip()
            if not text:
                if proc.returncode != 0:
                    raise ExifToolError(proc.stderr.strip() or "ExifTool returned non-zero exit code.")
                continue
            try:
                rows = json.loads(text)
            except json.JSONDecodeError as e:
                raise ExifToolError(f"ExifTool returned invalid JSON: {e}") from e
            for row in rows:
                meta = _to_metadata(row)
                if meta is not None:
                    out[meta.source_file] = meta
        return out

    def write_gps(self, path: Path, fix: GeoFix) -> None:
        """Write GPS position (and GPS time) into `path` in place.

        Raises ExifToolError when ExifTool fails for the file.
        """
        cmd = [
            self.exiftool_path,
            "-overwrite_original",
            "-q",
            *gps_tag_args(fix),
            str(path),
        ]
        proc = self._run(cmd)
        if proc.returncode != 0:
            raise ExifToolError(proc.stderr.strip() or f"ExifTool failed to write GPS tags to {path.name}.")

    def _run(self, cmd: list[str]) -> subprocess.CompletedProcess:
        try:
            return subprocess.run(
                cmd,
                capture_output=True,
                text=True,
            )
        except FileNotFoundError as e:
            raise ExifToolError(_exiftool_missing_message()) from e


def gps_tag_args(fix: GeoFix) -> list[str]:
    args = [
        f"-GPSLatitude={abs(fix.lat):.8f}",
        f"-GPSLatitudeRef={_gps_lat_ref(fix.lat)}",
        f"-GPSLongitude={abs(fix.lon):.8f}",
        f"-GPSLongitudeRef={_gps_lon_ref(fix.lon)}",
    ]
    if fix.alt is not None:
        args += [
            f"-GPSAltitude={abs(fix.alt):.3f}",
            f"-GPSAltitudeRef={0 if fix.alt >= 0 else 1}",
        ]
    utc = datetime.fromtimestamp(fix.timestamp, tz=timezone.utc)
    args.append(f"-GPSDateTime={format_exif_datetime(utc)}Z")
    return args


def _to_metadata(row: dict[str, Any]) -> PhotoMetadata | None:
    src = row.get("SourceFile")
    if not src:
        return None
    return PhotoMetadata(
        source_file=Path(src),
        date_time_original=_str_or_none(row.get("SubSecDateTimeOriginal") or row.get("DateTimeOriginal")),
        offset_time_original=_str_or_none(row.get("OffsetTimeOriginal")),
        create_date=_str_or_none(row.get("CreateDate")),
        rating=_int_or_none(row.get("Rating")),
        file_size=_int_or_none(row.get("FileSize")),
        error=str(row.get("Error") or ""),
    )


def _str_or_none(v: Any) -> str | None:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def _int_or_none(v: Any) -> int | None:
    if v is None or v == "":
        return None
    try:
        return int(round(float(v)))
    except (TypeError, ValueError):
        return None


def _gps_lat_ref(lat: float) -> str:
    return "N" if lat >= 0 else "S"


def _gps_lon_ref(lon: float) -> str:
    return "E" if lon >= 0 else "W"


def resolve_exiftool_path() -> str:
    """Resolve an ExifTool executable path.

    Resolution order:
    1) GEOCLONE_EXIFTOOL_PATH env var (explicit override)
    2) Bundled binary next to a frozen executable
    3) PATH lookup
    4) Common install locations
    5) Fallback: "exiftool" (may still fail at runtime with a friendly error)
    """
    env_path = os.environ.get("GEOCLONE_EXIFTOOL_PATH")
    if env_path:
        p = Path(env_path)
        if p.exists():
            return str(p)

    if getattr(sys, "frozen", False):
        exe_dir = Path(sys.executable).resolve().parent
        bundled = exe_dir / "bin" / "exiftool"
        if bundled.exists():
            return str(bundled)

    which = shutil.which("exiftool")
    if which:
        return which

    for cand in ("/opt/homebrew/bin/exiftool", "/usr/local/bin/exiftool", "/usr/bin/exiftool"):
        if Path(cand).exists():
            return cand

    return "exiftool"


def _exiftool_missing_message() -> str:
    return (
        "ExifTool not found. Install ExifTool or set GEOCLONE_EXIFTOOL_PATH."
    )


def is_exiftool_available() -> bool:
    path = resolve_exiftool_path()
    if path == "exiftool":
        return shutil.which("exiftool") is not None
    return Path(path).exists()
