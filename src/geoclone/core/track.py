from __future__ import annotations

from dataclasses import dataclass, field
from datetime import tzinfo
from typing import Iterable, Iterator, Sequence

from geoclone.core.geo import GeoPoint
from geoclone.parsers.gpx import looks_like_gpx, parse_gpx
from geoclone.parsers.track_csv import parse_track_csv
from geoclone.util.errors import SourceParseError

@dataclass(frozen=True)
class TrackSource:
    """Raw bytes of one track log; `name` is only used in warnings."""
    name: str
    data: bytes

@dataclass(frozen=True)
class TrackWarning:
    source: str
    reason: str

class Track:
    """Time-ordered, de-duplicated sequence of GeoPoints.

    Read-only after construction; safe to share between worker threads.
    """

    def __init__(self, points: Iterable[GeoPoint] = ()) -> None:
        # sorted() is stable: equal timestamps stay in encounter order
        ordered = sorted(points, key=lambda p: p.timestamp)
        kept: list[GeoPoint] = []
        for p in ordered:
            if kept and kept[-1].timestamp == p.timestamp:
                continue
            kept.append(p)
        self._points: tuple[GeoPoint, ...] = tuple(kept)
        self._timestamps: tuple[float, ...] = tuple(p.timestamp for p in kept)

    @property
    def points(self) -> tuple[GeoPoint, ...]:
        return self._points

    @property
    def timestamps(self) -> Sequence[float]:
        return self._timestamps

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self) -> Iterator[GeoPoint]:
        return iter(self._points)

    def __getitem__(self, i: int) -> GeoPoint:
        return self._points[i]

    def is_empty(self) -> bool:
        return not self._points

    def span(self) -> tuple[float, float] | None:
        if not self._points:
            return None
        return self._timestamps[0], self._timestamps[-1]

@dataclass
class TrackLoadResult:
    track: Track
    sources_loaded: int = 0
    warnings: list[TrackWarning] = field(default_factory=list)

def parse_track_source(source: TrackSource, default_tz: tzinfo | None = None) -> list[GeoPoint]:
    """Parse one source as GPX when it looks like XML, otherwise as CSV."""
    if looks_like_gpx(source.data):
        return parse_gpx(source.data)
    return parse_track_csv(source.data, default_tz=default_tz)

def load_track(sources: Iterable[TrackSource], default_tz: tzinfo | None = None) -> TrackLoadResult:
    """Parse every source and merge all points into one Track.

    A source that fails to parse is skipped with a warning; GPS enrichment is
    best-effort so no single source can fail the load. Zero parsed points
    produce an empty Track.
    """
    points: list[GeoPoint] = []
    warnings: list[TrackWarning] = []
    loaded = 0
    for src in sources:
        try:
            parsed = parse_track_source(src, default_tz=default_tz)
        except SourceParseError as e:
            warnings.append(TrackWarning(source=src.name, reason=str(e)))
            continue
        points.extend(parsed)
        loaded += 1
    return TrackLoadResult(track=Track(points), sources_loaded=loaded, warnings=warnings)
