from __future__ import annotations

from pathlib import Path

PHOTO_SUFFIXES = {".jpg", ".jpeg", ".heic", ".heif", ".png", ".tif", ".tiff"}
TRACK_SUFFIXES = {".gpx", ".csv"}

def is_photo(p: Path) -> bool:
    return p.suffix.lower() in PHOTO_SUFFIXES

def is_track_log(p: Path) -> bool:
    return p.suffix.lower() in TRACK_SUFFIXES

def is_macos_artifact(p: Path) -> bool:
    name = p.name
    if name.startswith("._") or name == ".DS_Store":
        return True
    parts = p.parts
    return "__MACOSX" in parts
