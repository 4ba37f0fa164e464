from __future__ import annotations

import re
from datetime import datetime, tzinfo
from dateutil import parser as dtparser
from dateutil import tz

# Acceptable track-log timestamp formats (extend only if necessary):
# - 2023-02-03T05:29:36Z (GPX, ISO 8601)
# - 2023-08-30_20:51:00:149 (millisecond suffix)
# - 2023-08-30 20:51:00
# - 2023/08/30 20:51:00
# - 20230830 205100
# - Any ISO-like string parseable by dateutil as a last resort.

FILENAME_TS_REGEXES = [
    re.compile(r"(?P<y>\d{4})-(?P<m>\d{2})-(?P<d>\d{2})[ _](?P<h>\d{2})[-:](?P<mi>\d{2})[-:](?P<s>\d{2})"),
    re.compile(r"(?P<y>\d{4})(?P<m>\d{2})(?P<d>\d{2})[ _]?(?P<h>\d{2})(?P<mi>\d{2})(?P<s>\d{2})"),
]

MS_SUFFIX_TS_REGEX = re.compile(
    r"^(?P<y>\d{4})-(?P<m>\d{2})-(?P<d>\d{2})[ _]"
    r"(?P<h>\d{2}):(?P<mi>\d{2}):(?P<s>\d{2})(?::(?P<ms>\d{1,3}))?$"
)

EXIF_TS_REGEX = re.compile(
    r"^(?P<y>\d{4}):(?P<m>\d{2}):(?P<d>\d{2})[ T]"
    r"(?P<h>\d{2}):(?P<mi>\d{2}):(?P<s>\d{2})(?:\.(?P<frac>\d+))?"
    r"(?P<off>Z|[+-]\d{2}:?\d{2})?$"
)

DURATION_REGEX = re.compile(r"^(?P<val>\d+(?:\.\d+)?)\s*(?P<unit>s|m|h)?$")
_UNIT_SECONDS = {"s": 1.0, "m": 60.0, "h": 3600.0}


def parse_track_timestamp(value: str, default_tz: tzinfo | None = None) -> datetime:
    """Parse a track-log timestamp string into an aware datetime.

    Strings carrying an offset keep it. Naive values are attached to
    `default_tz` (UTC when not given, which is the GPX convention).
    """
    v = value.strip()
    dt = _parse_naive_or_aware(v)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=default_tz or tz.UTC)
    return dt


def _parse_naive_or_aware(v: str) -> datetime:
    # Normalize common separators
    v2 = v.replace("/", "-")
    m = MS_SUFFIX_TS_REGEX.match(v2)
    if m:
        gd = m.groupdict()
        ms = gd.get("ms")
        micro = int(ms) * 1000 if ms else 0
        return datetime(
            int(gd["y"]), int(gd["m"]), int(gd["d"]),
            int(gd["h"]), int(gd["mi"]), int(gd["s"]),
            microsecond=micro,
        )
    v3 = v2.replace("_", " ")
    for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M", "%Y%m%d %H%M%S"):
        try:
            return datetime.strptime(v3, fmt)
        except ValueError:
            pass
    # Last resort
    return dtparser.isoparse(v2) if "T" in v2 else dtparser.parse(v3)


def parse_exif_datetime(
    value: str | None,
    offset: str | None = None,
    default_tz: tzinfo | None = None,
) -> datetime | None:
    """Parse an EXIF `YYYY:MM:DD HH:MM:SS` value into an aware datetime.

    EXIF capture times are wall-clock times. The offset comes from the value
    itself, then from `offset` (OffsetTimeOriginal), then from `default_tz`
    (local time when not given). Returns None for empty or zeroed values.
    """
    if not value:
        return None
    m = EXIF_TS_REGEX.match(str(value).strip())
    if not m:
        return None
    gd = m.groupdict()
    frac = gd.get("frac") or ""
    micro = int(frac[:6].ljust(6, "0")) if frac else 0
    try:
        dt = datetime(
            int(gd["y"]), int(gd["m"]), int(gd["d"]),
            int(gd["h"]), int(gd["mi"]), int(gd["s"]),
            microsecond=micro,
        )
    except ValueError:
        return None

    zone = _offset_tz(gd.get("off")) or _offset_tz(offset)
    if zone is None:
        zone = default_tz or tz.tzlocal()
    return dt.replace(tzinfo=zone)


def _offset_tz(offset: str | None) -> tzinfo | None:
    if not offset:
        return None
    o = offset.strip()
    if o == "Z":
        return tz.UTC
    m = re.match(r"^(?P<sign>[+-])(?P<h>\d{2}):?(?P<mi>\d{2})$", o)
    if not m:
        return None
    seconds = int(m.group("h")) * 3600 + int(m.group("mi")) * 60
    if m.group("sign") == "-":
        seconds = -seconds
    return tz.tzoffset(None, seconds)


def parse_photo_timestamp_from_name(stem: str) -> datetime | None:
    """Extract timestamp from photo filename stem (no extension)."""
    for rx in FILENAME_TS_REGEXES:
        m = rx.search(stem)
        if not m:
            continue
        gd = m.groupdict()
        try:
            return datetime(
                int(gd["y"]), int(gd["m"]), int(gd["d"]),
                int(gd["h"]), int(gd["mi"]), int(gd["s"])
            )
        except ValueError:
            continue
    return None


def to_epoch_seconds(dt: datetime, default_tz: tzinfo | None = None) -> float:
    """Convert a datetime to POSIX seconds; naive values use `default_tz` (UTC if None)."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=default_tz or tz.UTC)
    return dt.timestamp()


def format_exif_datetime(dt: datetime) -> str:
    """Format datetime to EXIF DateTimeOriginal format: YYYY:MM:DD HH:MM:SS."""
    return dt.strftime("%Y:%m:%d %H:%M:%S")


def parse_duration(value: str | int | float) -> float:
    """Parse `300`, `"300s"`, `"5m"` or `"1h"` into seconds.

    Raises ValueError for anything else, including negative values.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid duration {value!r}")
    if isinstance(value, (int, float)):
        if value < 0:
            raise ValueError(f"Negative duration {value!r}")
        return float(value)
    m = DURATION_REGEX.match(str(value).strip().lower())
    if not m:
        raise ValueError(f"Invalid duration {value!r}")
    unit = m.group("unit") or "s"
    return float(m.group("val")) * _UNIT_SECONDS[unit]


def resolve_timezone(name: str | None) -> tzinfo | None:
    """Return a tzinfo for an IANA name or UTC offset; None/empty means local time."""
    if not name:
        return tz.tzlocal()
    return _offset_tz(name) or tz.gettz(name)
