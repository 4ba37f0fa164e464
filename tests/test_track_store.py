from __future__ import annotations

from geoclone.core.geo import GeoPoint
from geoclone.core.track import Track, TrackSource, load_track

GPX_A = b"""<?xml version="1.0" encoding="UTF-8"?>
<gpx version="1.1" xmlns="http://www.topografix.com/GPX/1/1">
  <trk><trkseg>
    <trkpt lat="10.0" lon="20.0"><time>2023-02-03T05:00:00Z</time></trkpt>
    <trkpt lat="11.0" lon="21.0"><time>2023-02-03T05:10:00Z</time></trkpt>
  </trkseg></trk>
</gpx>
"""

CSV_B = b"""timestamp,latitude,longitude,altitude
2023-02-03T05:05:00Z,10.5,20.5,100
2023-02-03T05:10:00Z,99.0,99.0,100
"""


def test_track_sorts_and_dedupes_keeping_first() -> None:
    track = Track([
        GeoPoint(timestamp=30, lat=3, lon=3),
        GeoPoint(timestamp=10, lat=1, lon=1),
        GeoPoint(timestamp=30, lat=9, lon=9),
        GeoPoint(timestamp=20, lat=2, lon=2),
    ])
    assert list(track.timestamps) == [10, 20, 30]
    assert track[2].lat == 3
    assert track.span() == (10, 30)


def test_merges_sources_in_time_order() -> None:
    result = load_track([
        TrackSource(name="a.gpx", data=GPX_A),
        TrackSource(name="b.csv", data=CSV_B),
    ])
    assert result.sources_loaded == 2
    assert result.warnings == []
    lats = [p.lat for p in result.track]
    # 05:10 appears in both sources; the GPX point was seen first
    assert lats == [10.0, 10.5, 11.0]
    ts = list(result.track.timestamps)
    assert ts == sorted(ts)
    assert len(set(ts)) == len(ts)


def test_bad_source_is_skipped_with_warning() -> None:
    result = load_track([
        TrackSource(name="broken.gpx", data=b"<gpx><trk>"),
        TrackSource(name="good.gpx", data=GPX_A),
        TrackSource(name="junk.csv", data=b"foo,bar\n1,2\n"),
    ])
    assert result.sources_loaded == 1
    assert len(result.track) == 2
    assert [w.source for w in result.warnings] == ["broken.gpx", "junk.csv"]


def test_no_sources_gives_empty_track() -> None:
    result = load_track([])
    assert result.track.is_empty()
    assert result.track.span() is None
    assert result.sources_loaded == 0


def test_oversized_csv_field_is_skipped_with_warning() -> None:
    big = b"lat,lon,time\n1," + b"x" * 200_000 + b",2023-01-01T00:00:00Z\n"
    result = load_track([
        TrackSource(name="big.csv", data=big),
        TrackSource(name="a.gpx", data=GPX_A),
    ])
    assert result.sources_loaded == 1
    assert [w.source for w in result.warnings] == ["big.csv"]
    assert "malformed CSV" in result.warnings[0].reason
    assert [p.lat for p in result.track] == [10.0, 11.0]
