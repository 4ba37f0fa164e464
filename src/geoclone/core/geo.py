from __future__ import annotations

from dataclasses import dataclass

@dataclass(frozen=True)
class GeoPoint:
    """One timestamped position from a track log.

    - timestamp: POSIX seconds (UTC)
    - alt: metres above sea level, None when the log carries no elevation
    """
    timestamp: float
    lat: float
    lon: float
    alt: float | None = None

@dataclass(frozen=True)
class GeoFix:
    timestamp: float
    lat: float
    lon: float
    alt: float | None
    method: str  # EXACT|INTERPOLATED|CLAMPED
