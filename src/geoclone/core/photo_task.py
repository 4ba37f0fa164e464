from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from geoclone.core.geo import GeoFix
from geoclone.core.policy import PolicyRule

UNRATED = 5

@dataclass(frozen=True)
class PhotoRecord:
    """One discovered photo.

    - source_path: absolute path of the original
    - capture_time: POSIX seconds, None when no capture time could be read
    - rating: 0-5; photos without a rating count as 5 (keep as-is)
    - relative_path: path below the source root, mirrored under the destination
    """
    source_path: Path
    capture_time: float | None = None
    rating: int = UNRATED
    byte_size: int = 0
    relative_path: Path | None = None

    def relative(self) -> Path:
        return self.relative_path or Path(self.source_path.name)

@dataclass(frozen=True)
class TransformPlan:
    record: PhotoRecord
    rule: PolicyRule
    fix: GeoFix | None
    destination: Path

@dataclass(frozen=True)
class TransformResult:
    success: bool
    error: str = ""
    action: str = ""  # COPIED|CONVERTED
    geotagged: bool = False
    resized: bool = False
    output_format: str = ""
    destination: Path | None = None

@dataclass(frozen=True)
class JobOutcome:
    source_path: Path
    success: bool
    error: str = ""
    destination: Path | None = None
    action: str = ""
    geotagged: bool = False
    resized: bool = False
    output_format: str = ""
    rating: int = UNRATED
    fix_method: str = "NONE"  # EXACT|INTERPOLATED|CLAMPED|NONE
