from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
import os
from typing import Any, Mapping

import yaml
from appdirs import user_config_dir

from geoclone.core.interpolate import DEFAULT_MAX_EXTRAPOLATION_SECONDS
from geoclone.core.policy import PolicyTable, load_policy_table
from geoclone.util.errors import ConfigError
from geoclone.util.timeparse import parse_duration, resolve_timezone

DEFAULT_WORKERS = max(1, min(8, os.cpu_count() or 4))

DEFAULT_CONF_YAML = """\
default_path:
  from: YOUR_ORIGIN_PATH
  to: YOUR_TARGET_PATH
workers: 4
geotag:
  enabled: true
  # GPX or CSV track logs (files or directories)
  sources: []
  # how far a photo may be from the nearest track point
  max_extrapolation: 5m
  # timezone of camera clocks without an offset tag (empty = this computer's)
  timezone: ""
policies:
- rate: [5]
- rate: [4]
  commands:
    format: heic
- rate: [3]
  commands:
    format: heic
    resize: 50m
- rate: [0, 1, 2]
  commands:
    format: heic
    resize: 36m
    quality: 92%
"""


def default_config_path() -> Path:
    cfg_dir = Path(user_config_dir(appname="geoclone", appauthor=False))
    return cfg_dir / "config.yaml"


@dataclass
class GeotagSettings:
    enabled: bool = True
    sources: list[Path] = field(default_factory=list)
    max_extrapolation_seconds: float = DEFAULT_MAX_EXTRAPOLATION_SECONDS
    # None: interpolate across any gap inside the track
    max_gap_seconds: float | None = DEFAULT_MAX_EXTRAPOLATION_SECONDS
    # False: max_gap follows the match window
    max_gap_explicit: bool = False
    timezone: str = ""


@dataclass
class GeoCloneConfig:
    """Typed, validated config. Parsed once at startup, never re-read."""
    policy_table: PolicyTable
    source_root: Path | None = None
    destination_root: Path | None = None
    workers: int = DEFAULT_WORKERS
    geotag: GeotagSettings = field(default_factory=GeotagSettings)


def load_config(path: Path) -> GeoCloneConfig:
    """Read and validate a YAML config file.

    Raises ConfigError if the file is unreadable, not YAML, or invalid.
    """
    try:
        text = path.expanduser().read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read config '{path}': {e}") from e
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to deserialize '{path}': {e}") from e
    return parse_config(data)


def parse_config(data: Any) -> GeoCloneConfig:
    if not isinstance(data, Mapping):
        raise ConfigError("Config root must be a mapping.")

    policy_table = load_policy_table(
        data.get("policies"),
        allow_overlap=bool(data.get("allow_overlap", False)),
    )

    default_path = data.get("default_path") or {}
    if not isinstance(default_path, Mapping):
        raise ConfigError("'default_path' must be a mapping with 'from' and 'to'.")

    workers = data.get("workers", DEFAULT_WORKERS)
    if isinstance(workers, bool) or not isinstance(workers, int) or workers < 1:
        raise ConfigError(f"'workers' must be a positive integer, got {workers!r}.")

    return GeoCloneConfig(
        policy_table=policy_table,
        source_root=_opt_path(default_path.get("from")),
        destination_root=_opt_path(default_path.get("to")),
        workers=workers,
        geotag=_parse_geotag(data.get("geotag") or {}),
    )


def _parse_geotag(raw: Any) -> GeotagSettings:
    if not isinstance(raw, Mapping):
        raise ConfigError("'geotag' must be a mapping.")

    sources = raw.get("sources") or []
    if isinstance(sources, str):
        sources = [sources]
    if not isinstance(sources, list):
        raise ConfigError("'geotag.sources' must be a list of paths.")

    window = _duration(raw.get("max_extrapolation", DEFAULT_MAX_EXTRAPOLATION_SECONDS), "geotag.max_extrapolation")
    gap_raw = raw.get("max_gap", window)
    if gap_raw is None or str(gap_raw).strip().lower() in ("none", "off"):
        max_gap = None
    else:
        max_gap = _duration(gap_raw, "geotag.max_gap")

    tz_name = str(raw.get("timezone") or "").strip()
    if tz_name and resolve_timezone(tz_name) is None:
        raise ConfigError(f"Unknown timezone '{tz_name}'.")

    return GeotagSettings(
        enabled=bool(raw.get("enabled", True)),
        sources=[Path(str(s)).expanduser() for s in sources],
        max_extrapolation_seconds=window,
        max_gap_seconds=max_gap,
        max_gap_explicit="max_gap" in raw,
        timezone=tz_name,
    )


def _duration(value: Any, key: str) -> float:
    try:
        return parse_duration(value)
    except ValueError as e:
        raise ConfigError(f"'{key}': {e}") from e


def _opt_path(value: Any) -> Path | None:
    if value is None or not str(value).strip():
        return None
    return Path(str(value)).expanduser()


def new_run_folder(output_root: Path) -> Path:
    stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    return output_root / f"GeoClone_{stamp}"


def write_default_config(path: Path, force: bool = False) -> bool:
    """Write DEFAULT_CONF_YAML to `path`; returns False if it exists and not `force`."""
    if path.exists() and not force:
        return False
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(DEFAULT_CONF_YAML, encoding="utf-8")
    return True
