from __future__ import annotations

from dataclasses import dataclass, field
from datetime import tzinfo
from pathlib import Path
import os
from typing import Iterable

from geoclone.core.photo_task import PhotoRecord, UNRATED
from geoclone.core.track import TrackSource
from geoclone.exif.exiftool import ExifTool, PhotoMetadata
from geoclone.util.errors import DiscoveryError, ExifToolError
from geoclone.util.paths import is_macos_artifact, is_photo, is_track_log
from geoclone.util.timeparse import (
    parse_exif_datetime,
    parse_photo_timestamp_from_name,
    to_epoch_seconds,
)

@dataclass(frozen=True)
class ScanIssue:
    path: str
    reason: str

@dataclass
class ScanResult:
    photos: list[PhotoRecord]
    issues: list[ScanIssue] = field(default_factory=list)

def list_photo_files(root: Path, issues: list[ScanIssue] | None = None) -> list[Path]:
    """Recursively list photo files below `root`, sorted.

    Raises DiscoveryError when `root` is missing, not a directory or
    unreadable. Unreadable sub-directories are recorded in `issues`.
    """
    root = root.expanduser().resolve()
    if not root.exists():
        raise DiscoveryError(f"Source path does not exist: {root}")
    if not root.is_dir():
        raise DiscoveryError(f"Source path is not a directory: {root}")
    try:
        with os.scandir(root):
            pass
    except OSError as e:
        raise DiscoveryError(f"Cannot read source directory {root}: {e}") from e

    def _on_error(err: OSError) -> None:
        if issues is not None:
            issues.append(ScanIssue(path=str(err.filename or ""), reason=f"unreadable directory: {err.strerror or err}"))

    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root, onerror=_on_error):
        dirnames.sort()
        for name in filenames:
            p = Path(dirpath) / name
            if is_macos_artifact(p) or not is_photo(p):
                continue
            found.append(p)
    return sorted(found)

def scan_photos(
    root: Path,
    exiftool: ExifTool | None = None,
    default_tz: tzinfo | None = None,
) -> ScanResult:
    """Discover photos below `root` and build PhotoRecords.

    - capture time: DateTimeOriginal (with OffsetTimeOriginal), then
      CreateDate, then a timestamp in the file name; None if all fail
    - rating: EXIF/XMP Rating clamped to 0-5, unrated photos get 5
    - per-file problems are recorded as ScanIssue and the file is skipped

    Without an ExifTool instance only file names are used for capture time.
    """
    root = root.expanduser().resolve()
    issues: list[ScanIssue] = []
    files = list_photo_files(root, issues)

    metadata: dict[Path, PhotoMetadata] = {}
    if exiftool is not None and files:
        try:
            metadata = exiftool.read_metadata(files)
        except ExifToolError as e:
            raise DiscoveryError(f"Cannot read photo metadata: {e}") from e

    photos: list[PhotoRecord] = []
    for p in files:
        try:
            size = p.stat().st_size
        except OSError as e:
            issues.append(ScanIssue(path=str(p), reason=f"stat failed: {e}"))
            continue

        meta = metadata.get(p)
        if exiftool is not None:
            if meta is None:
                issues.append(ScanIssue(path=str(p), reason="no metadata returned by ExifTool"))
                continue
            if meta.error:
                issues.append(ScanIssue(path=str(p), reason=meta.error))
                continue

        photos.append(PhotoRecord(
            source_path=p,
            capture_time=_capture_time(p, meta, default_tz),
            rating=_rating(meta),
            byte_size=meta.file_size if meta and meta.file_size is not None else size,
            relative_path=p.relative_to(root),
        ))

    return ScanResult(photos=photos, issues=issues)

def _capture_time(p: Path, meta: PhotoMetadata | None, default_tz: tzinfo | None) -> float | None:
    if meta is not None:
        for raw in (meta.date_time_original, meta.create_date):
            dt = parse_exif_datetime(raw, meta.offset_time_original, default_tz)
            if dt is not None:
                return to_epoch_seconds(dt)
    dt = parse_photo_timestamp_from_name(p.stem)
    if dt is None:
        return None
    return to_epoch_seconds(dt, default_tz)

def _rating(meta: PhotoMetadata | None) -> int:
    if meta is None or meta.rating is None:
        return UNRATED
    return min(5, max(0, meta.rating))

def read_track_sources(paths: Iterable[Path]) -> tuple[list[TrackSource], list[ScanIssue]]:
    """Read GPX/CSV track logs from files or directories (recursive).

    Unreadable files are reported as issues and skipped.
    """
    files: set[Path] = set()
    issues: list[ScanIssue] = []
    for p in paths:
        p = p.expanduser().resolve()
        if not p.exists():
            issues.append(ScanIssue(path=str(p), reason="track path does not exist"))
            continue
        if p.is_file():
            files.add(p)
            continue
        for child in p.rglob("*"):
            if child.is_file() and is_track_log(child) and not is_macos_artifact(child):
                files.add(child)

    sources: list[TrackSource] = []
    for f in sorted(files):
        try:
            sources.append(TrackSource(name=str(f), data=f.read_bytes()))
        except OSError as e:
            issues.append(ScanIssue(path=str(f), reason=f"read failed: {e}"))
    return sources, issues
