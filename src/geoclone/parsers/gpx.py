from __future__ import annotations

import xml.etree.ElementTree as ET

from geoclone.core.geo import GeoPoint
from geoclone.util.errors import SourceParseError
from geoclone.util.timeparse import parse_track_timestamp, to_epoch_seconds

POINT_TAGS = ("trkpt", "rtept")

def looks_like_gpx(data: bytes) -> bool:
    head = data[:512].lstrip(b"\xef\xbb\xbf \t\r\n")
    return head.startswith(b"<")

def parse_gpx(data: bytes) -> list[GeoPoint]:
    """Parse GPX 1.0/1.1 track and route points.

    Points without a <time> are dropped; naive times are UTC.
    Raises SourceParseError for malformed XML, a non-GPX root, or a document
    that yields no timestamped point.
    """
    try:
        root = ET.fromstring(data)
    except ET.ParseError as e:
        raise SourceParseError(f"malformed GPX: {e}") from e

    if _local(root.tag) != "gpx":
        raise SourceParseError(f"unexpected root element <{_local(root.tag)}>")

    out: list[GeoPoint] = []
    for el in root.iter():
        if _local(el.tag) not in POINT_TAGS:
            continue
        point = _to_point(el)
        if point is not None:
            out.append(point)

    if not out:
        raise SourceParseError("no timestamped track points")
    return out

def _to_point(el: ET.Element) -> GeoPoint | None:
    try:
        lat = float(el.attrib["lat"])
        lon = float(el.attrib["lon"])
    except (KeyError, ValueError):
        return None

    time_text = _child_text(el, "time")
    if not time_text:
        return None
    try:
        ts = to_epoch_seconds(parse_track_timestamp(time_text))
    except (ValueError, OverflowError):
        return None

    alt = None
    ele_text = _child_text(el, "ele")
    if ele_text:
        try:
            alt = float(ele_text)
        except ValueError:
            alt = None

    return GeoPoint(timestamp=ts, lat=lat, lon=lon, alt=alt)

def _child_text(el: ET.Element, name: str) -> str:
    for child in el:
        if _local(child.tag) == name:
            return (child.text or "").strip()
    return ""

def _local(tag: str) -> str:
    # Namespaces differ between GPX 1.0 and 1.1
    return tag.rsplit("}", 1)[-1]
