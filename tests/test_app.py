from __future__ import annotations

from pathlib import Path

import pytest

from geoclone import app
from geoclone.core.run_summary import build_report
from geoclone.core.photo_task import JobOutcome
from geoclone.util.errors import UserCancelledError


def _config(tmp_path: Path) -> Path:
    cfg = tmp_path / "config.yaml"
    assert app.main(["--config", str(cfg), "init"]) == app.EXIT_OK
    return cfg


def test_init_writes_once_then_needs_force(tmp_path: Path) -> None:
    cfg = _config(tmp_path)
    assert cfg.exists()
    assert app.main(["--config", str(cfg), "init"]) == app.EXIT_FATAL
    assert app.main(["--config", str(cfg), "init", "--force"]) == app.EXIT_OK


def test_clone_without_config_is_fatal(tmp_path: Path) -> None:
    assert app.main(["--config", str(tmp_path / "missing.yaml"), "clone"]) == app.EXIT_FATAL


def test_clone_with_invalid_config_is_fatal(tmp_path: Path) -> None:
    cfg = tmp_path / "config.yaml"
    cfg.write_text("policies:\n- rate: [0, 1, 2]\n", encoding="utf-8")
    assert app.main(["--config", str(cfg), "clone", "--from", "a", "--to", "b"]) == app.EXIT_FATAL


def test_clone_exit_codes_and_job_options(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    cfg = _config(tmp_path)
    monkeypatch.setattr(app, "is_exiftool_available", lambda: True)
    seen = []

    def fake_run_clone(job, progress_cb, cancel_cb):
        seen.append(job)
        progress_cb(100, "Done.")
        outcomes = [JobOutcome(source_path=Path("/src/a.jpg"), success=True, action="COPIED")]
        if job.options.dry_run:
            outcomes.append(JobOutcome(source_path=Path("/src/b.jpg"), success=False, error="boom"))
        return build_report(outcomes, total=len(outcomes), cancelled=False)

    monkeypatch.setattr(app, "run_clone", fake_run_clone)
    base = ["--config", str(cfg), "clone", "--from", str(tmp_path / "src"), "--to", str(tmp_path / "dst"),
            "--output", str(tmp_path / "runs")]

    assert app.main(base + ["--workers", "3", "--ignore-geotag", "--track", "extra.gpx"]) == app.EXIT_OK
    opts = seen[0].options
    assert opts.workers == 3
    assert not opts.geotag
    assert opts.track_paths == [Path("extra.gpx")]
    assert opts.run_folder.parent == tmp_path / "runs"
    assert opts.max_extrapolation_seconds == 300.0

    assert app.main(base + ["--dry-run", "--max-extrapolation", "2m"]) == app.EXIT_FAILURES
    assert seen[1].options.dry_run
    assert seen[1].options.max_extrapolation_seconds == 120.0
    # no max_gap in the config: the gap limit follows the new window
    assert seen[1].options.max_gap_seconds == 120.0


def test_explicit_max_gap_survives_window_flag(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    cfg = tmp_path / "config.yaml"
    cfg.write_text("policies:\n- rate: [0, 1, 2, 3, 4, 5]\ngeotag:\n  max_gap: 10m\n", encoding="utf-8")
    monkeypatch.setattr(app, "is_exiftool_available", lambda: True)
    seen = []

    def fake_run_clone(job, progress_cb, cancel_cb):
        seen.append(job)
        return build_report([], total=0, cancelled=False)

    monkeypatch.setattr(app, "run_clone", fake_run_clone)
    args = ["--config", str(cfg), "clone", "--from", str(tmp_path / "src"), "--to", str(tmp_path / "dst"),
            "--output", str(tmp_path / "runs"), "--max-extrapolation", "2m"]

    assert app.main(args) == app.EXIT_OK
    assert seen[0].options.max_extrapolation_seconds == 120.0
    assert seen[0].options.max_gap_seconds == 600.0


def test_clone_argument_errors(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    cfg = tmp_path / "config.yaml"
    cfg.write_text("policies:\n- rate: [0, 1, 2, 3, 4, 5]\n", encoding="utf-8")
    monkeypatch.setattr(app, "is_exiftool_available", lambda: True)

    assert app.main(["--config", str(cfg), "clone", "--to", "dst"]) == app.EXIT_FATAL
    assert app.main(["--config", str(cfg), "clone", "--from", "a", "--to", "b", "--workers", "0"]) == app.EXIT_FATAL
    assert app.main(["--config", str(cfg), "clone", "--from", "a", "--to", "b", "--max-extrapolation", "x"]) == app.EXIT_FATAL


def test_clone_missing_exiftool_and_cancel(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    cfg = tmp_path / "config.yaml"
    cfg.write_text("policies:\n- rate: [0, 1, 2, 3, 4, 5]\n", encoding="utf-8")
    args = ["--config", str(cfg), "clone", "--from", "a", "--to", "b", "--output", str(tmp_path / "runs")]

    monkeypatch.setattr(app, "is_exiftool_available", lambda: False)
    assert app.main(args) == app.EXIT_FATAL

    def cancelled(job, progress_cb, cancel_cb):
        raise UserCancelledError()

    monkeypatch.setattr(app, "is_exiftool_available", lambda: True)
    monkeypatch.setattr(app, "run_clone", cancelled)
    assert app.main(args) == app.EXIT_FAILURES
