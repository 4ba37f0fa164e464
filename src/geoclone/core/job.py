from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from geoclone.core.interpolate import DEFAULT_MAX_EXTRAPOLATION_SECONDS
from geoclone.core.policy import PolicyTable

@dataclass
class JobOptions:
    source_root: Path
    destination_root: Path
    run_folder: Path
    workers: int
    dry_run: bool = False
    overwrite: bool = False

    # geotagging
    geotag: bool = True
    track_paths: list[Path] = field(default_factory=list)
    max_extrapolation_seconds: float = DEFAULT_MAX_EXTRAPOLATION_SECONDS
    max_gap_seconds: float | None = DEFAULT_MAX_EXTRAPOLATION_SECONDS
    timezone: str = ""

@dataclass
class JobState:
    stage: str = "PENDING"
    scanned_photos: int = 0
    scan_issues: int = 0
    track_points: int = 0
    done: int = 0
    success: int = 0
    failed: int = 0

@dataclass
class Job:
    id: str
    name: str
    options: JobOptions
    policy_table: PolicyTable
    state: JobState = field(default_factory=JobState)
