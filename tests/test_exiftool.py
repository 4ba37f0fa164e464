from __future__ import annotations

from pathlib import Path
import json

import pytest

from geoclone.core.geo import GeoFix
from geoclone.exif import exiftool as exiftool_mod
from geoclone.exif.exiftool import ExifTool, _gps_lat_ref, _gps_lon_ref, gps_tag_args
from geoclone.util.errors import ExifToolError


class _Proc:
    def __init__(self, returncode: int = 0, stdout: str = "", stderr: str = "") -> None:
        self.returncode = returncode
        self.stdout = stdout
        self.stderr = stderr


def test_gps_ref_helpers() -> None:
    assert _gps_lat_ref(12.3) == "N"
    assert _gps_lat_ref(-0.1) == "S"
    assert _gps_lat_ref(0.0) == "N"
    assert _gps_lon_ref(45.6) == "E"
    assert _gps_lon_ref(-45.6) == "W"
    assert _gps_lon_ref(0.0) == "E"


def test_gps_tag_args_signs_and_altitude() -> None:
    fix = GeoFix(timestamp=0.0, lat=-12.5, lon=45.25, alt=-3.0, method="EXACT")
    args = gps_tag_args(fix)
    assert "-GPSLatitude=12.50000000" in args
    assert "-GPSLatitudeRef=S" in args
    assert "-GPSLongitude=45.25000000" in args
    assert "-GPSLongitudeRef=E" in args
    assert "-GPSAltitude=3.000" in args
    assert "-GPSAltitudeRef=1" in args
    assert "-GPSDateTime=1970:01:01 00:00:00Z" in args

    no_alt = gps_tag_args(GeoFix(timestamp=0.0, lat=1, lon=1, alt=None, method="CLAMPED"))
    assert not [a for a in no_alt if a.startswith("-GPSAltitude")]


def test_read_metadata_parses_json(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    a = tmp_path / "a.jpg"
    b = tmp_path / "b.jpg"
    calls: list[list[str]] = []

    def fake_run(cmd, capture_output, text):
        calls.append(cmd)
        rows = [
            {"SourceFile": str(a), "DateTimeOriginal": "2023:08:30 20:51:00", "OffsetTimeOriginal": "+02:00",
             "Rating": 3, "FileSize": 1234},
            {"SourceFile": str(b), "Error": "File format error"},
        ]
        return _Proc(returncode=1, stdout=json.dumps(rows))

    monkeypatch.setattr(exiftool_mod.subprocess, "run", fake_run)
    meta = ExifTool(exiftool_path="exiftool").read_metadata([a, b])

    assert calls[0][:2] == ["exiftool", "-json"]
    assert meta[a].date_time_original == "2023:08:30 20:51:00"
    assert meta[a].offset_time_original == "+02:00"
    assert meta[a].rating == 3
    assert meta[a].file_size == 1234
    assert meta[b].error == "File format error"


def test_read_metadata_batches(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    files = [tmp_path / f"{i}.jpg" for i in range(5)]
    calls: list[list[str]] = []

    def fake_run(cmd, capture_output, text):
        calls.append(cmd)
        return _Proc(stdout="[]")

    monkeypatch.setattr(exiftool_mod, "READ_BATCH_SIZE", 2)
    monkeypatch.setattr(exiftool_mod.subprocess, "run", fake_run)
    assert ExifTool(exiftool_path="exiftool").read_metadata(files) == {}
    assert len(calls) == 3


def test_read_metadata_errors(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    tool = ExifTool(exiftool_path="exiftool")

    monkeypatch.setattr(exiftool_mod.subprocess, "run", lambda cmd, capture_output, text: _Proc(returncode=2, stderr="bad"))
    with pytest.raises(ExifToolError, match="bad"):
        tool.read_metadata([tmp_path / "a.jpg"])

    monkeypatch.setattr(exiftool_mod.subprocess, "run", lambda cmd, capture_output, text: _Proc(stdout="{not json"))
    with pytest.raises(ExifToolError):
        tool.read_metadata([tmp_path / "a.jpg"])

    def missing(cmd, capture_output, text):
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr(exiftool_mod.subprocess, "run", missing)
    with pytest.raises(ExifToolError, match="not found"):
        tool.read_metadata([tmp_path / "a.jpg"])


def test_write_gps(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    calls: list[list[str]] = []

    def fake_run(cmd, capture_output, text):
        calls.append(cmd)
        return _Proc(returncode=0)

    monkeypatch.setattr(exiftool_mod.subprocess, "run", fake_run)
    target = tmp_path / "a.jpg"
    fix = GeoFix(timestamp=0.0, lat=1.0, lon=2.0, alt=None, method="EXACT")
    ExifTool(exiftool_path="exiftool").write_gps(target, fix)

    assert "-overwrite_original" in calls[0]
    assert calls[0][-1] == str(target)

    monkeypatch.setattr(exiftool_mod.subprocess, "run", lambda cmd, capture_output, text: _Proc(returncode=1, stderr="nope"))
    with pytest.raises(ExifToolError, match="nope"):
        ExifTool(exiftool_path="exiftool").write_gps(target, fix)


def test_resolve_exiftool_path_env_override(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    fake = tmp_path / "exiftool"
    fake.write_text("#!/bin/sh\n", encoding="utf-8")
    monkeypatch.setenv("GEOCLONE_EXIFTOOL_PATH", str(fake))
    assert exiftool_mod.resolve_exiftool_path() == str(fake)
    assert exiftool_mod.is_exiftool_available()
