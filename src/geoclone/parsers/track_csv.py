from __future__ import annotations

from datetime import tzinfo
import csv
import io
from typing import Optional

from geoclone.core.geo import GeoPoint
from geoclone.util.errors import SourceParseError
from geoclone.util.timeparse import parse_track_timestamp, to_epoch_seconds

LAT_COL_CANDIDATES = ["latitude", "lat", "gpslatitude"]
LON_COL_CANDIDATES = ["longitude", "lon", "lng", "gpslongitude"]
TIME_COL_CANDIDATES = ["timestamp", "time", "datetime", "date"]
ALT_COL_CANDIDATES = ["altitude", "alt", "elevation", "ele"]

REASON_NO_COORDINATE_COLUMNS = "no latitude/longitude columns"
REASON_NO_TIME_COLUMN = "no timestamp column"
REASON_NO_ROWS = "no timestamped rows"

def _pick_col(cols: list[str], candidates: list[str]) -> Optional[str]:
    cols_l = {c.lower().strip(): c for c in cols}
    for cand in candidates:
        if cand in cols_l:
            return cols_l[cand]
    # substring fallback
    for c in cols:
        cl = c.lower()
        if any(cand in cl for cand in candidates):
            return c
    return None

def parse_track_csv(data: bytes, default_tz: tzinfo | None = None) -> list[GeoPoint]:
    """Parse a CSV position log into GeoPoints.

    Rows with unparsable coordinates or timestamps are skipped. Naive
    timestamps are interpreted in `default_tz` (UTC when not given).
    """
    reader = csv.DictReader(io.StringIO(_decode(data)))
    try:
        rows = list(reader)
    except csv.Error as e:
        raise SourceParseError(f"malformed CSV: {e}") from e
    cols = reader.fieldnames or []

    lat_col = _pick_col(cols, LAT_COL_CANDIDATES)
    lon_col = _pick_col(cols, LON_COL_CANDIDATES)
    time_col = _pick_col(cols, TIME_COL_CANDIDATES)
    alt_col = _pick_col(cols, ALT_COL_CANDIDATES)

    if not lat_col or not lon_col:
        raise SourceParseError(REASON_NO_COORDINATE_COLUMNS)
    if not time_col:
        raise SourceParseError(REASON_NO_TIME_COLUMN)

    out: list[GeoPoint] = []
    for r in rows:
        try:
            lat = float(str(r.get(lat_col, "")).strip())
            lon = float(str(r.get(lon_col, "")).strip())
        except ValueError:
            continue

        raw_ts = r.get(time_col)
        if not raw_ts:
            continue
        try:
            ts = to_epoch_seconds(parse_track_timestamp(str(raw_ts), default_tz))
        except (ValueError, OverflowError):
            continue

        alt = None
        if alt_col and r.get(alt_col) not in (None, ""):
            try:
                alt = float(str(r.get(alt_col)).strip())
            except ValueError:
                alt = None

        out.append(GeoPoint(timestamp=ts, lat=lat, lon=lon, alt=alt))

    if not out:
        raise SourceParseError(REASON_NO_ROWS)
    return out

def _decode(data: bytes) -> str:
    # BOM tolerance
    try:
        return data.decode("utf-8-sig")
    except UnicodeDecodeError as e:
        raise SourceParseError(f"not UTF-8 text: {e}") from e
