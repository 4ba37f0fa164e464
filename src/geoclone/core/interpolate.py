from __future__ import annotations

from bisect import bisect_left

from geoclone.core.geo import GeoFix, GeoPoint
from geoclone.core.track import Track

DEFAULT_MAX_EXTRAPOLATION_SECONDS = 300.0

METHOD_EXACT = "EXACT"
METHOD_INTERPOLATED = "INTERPOLATED"
METHOD_CLAMPED = "CLAMPED"

def locate(
    track: Track,
    timestamp: float,
    max_extrapolation_seconds: float,
    max_gap_seconds: float | None = None,
) -> GeoFix | None:
    """Return the position at `timestamp`, or None when the track cannot tell.

    - exact timestamp match: the stored point
    - between two points: straight linear blend of lat/lon/alt
    - before the first / after the last point: that endpoint when within
      `max_extrapolation_seconds`, otherwise None (never extrapolated)
    - between two points further apart than `max_gap_seconds` (a logging
      pause): handled like the track ends, the nearer side when within
      `max_extrapolation_seconds`, otherwise None. No gap limit when None.
    """
    if track.is_empty():
        return None

    ts = track.timestamps
    i = bisect_left(ts, timestamp)

    if i < len(ts) and ts[i] == timestamp:
        return _fix(track[i], timestamp, METHOD_EXACT)

    if i == 0:
        return _clamp(track[0], timestamp, max_extrapolation_seconds)
    if i == len(ts):
        return _clamp(track[-1], timestamp, max_extrapolation_seconds)

    before = track[i - 1]
    after = track[i]
    if max_gap_seconds is not None and after.timestamp - before.timestamp > max_gap_seconds:
        nearest = before if (timestamp - before.timestamp) <= (after.timestamp - timestamp) else after
        return _clamp(nearest, timestamp, max_extrapolation_seconds)

    return _interpolate(before, after, timestamp)

def _interpolate(before: GeoPoint, after: GeoPoint, timestamp: float) -> GeoFix:
    f = (timestamp - before.timestamp) / (after.timestamp - before.timestamp)
    alt = None
    if before.alt is not None and after.alt is not None:
        alt = before.alt + f * (after.alt - before.alt)
    return GeoFix(
        timestamp=timestamp,
        lat=before.lat + f * (after.lat - before.lat),
        lon=before.lon + f * (after.lon - before.lon),
        alt=alt,
        method=METHOD_INTERPOLATED,
    )

def _clamp(point: GeoPoint, timestamp: float, window: float) -> GeoFix | None:
    if abs(timestamp - point.timestamp) > window:
        return None
    return _fix(point, timestamp, METHOD_CLAMPED)

def _fix(point: GeoPoint, timestamp: float, method: str) -> GeoFix:
    return GeoFix(timestamp=timestamp, lat=point.lat, lon=point.lon, alt=point.alt, method=method)

class Interpolator:
    """A track bound to an extrapolation window; shared read-only by workers."""

    def __init__(
        self,
        track: Track,
        max_extrapolation_seconds: float = DEFAULT_MAX_EXTRAPOLATION_SECONDS,
        max_gap_seconds: float | None = None,
    ) -> None:
        if max_extrapolation_seconds < 0:
            raise ValueError("max_extrapolation_seconds must be >= 0")
        if max_gap_seconds is not None and max_gap_seconds < 0:
            raise ValueError("max_gap_seconds must be >= 0")
        self.track = track
        self.max_extrapolation_seconds = max_extrapolation_seconds
        self.max_gap_seconds = max_gap_seconds

    def locate(self, timestamp: float | None) -> GeoFix | None:
        if timestamp is None:
            return None
        return locate(self.track, timestamp, self.max_extrapolation_seconds, self.max_gap_seconds)
