from __future__ import annotations

from pathlib import Path
from typing import Callable
import json
from dataclasses import asdict

from geoclone.core.job import Job, JobOptions
from geoclone.core.manifest import ManifestRow, ManifestWriter
from geoclone.core.orchestrator import run
from geoclone.core.photo_task import JobOutcome, PhotoRecord
from geoclone.core.run_logger import RunLogger
from geoclone.core.run_summary import FinalReport, RunSummary, jsonify, write_run_summary
from geoclone.core.scanner import ScanResult, read_track_sources, scan_photos
from geoclone.core.track import Track, TrackLoadResult, load_track
from geoclone.exif.exiftool import ExifTool
from geoclone.transform.base import TransformExecutor
from geoclone.transform.pillow_executor import PillowTransformExecutor
from geoclone.util.errors import UserCancelledError
from geoclone.util.timeparse import resolve_timezone

ProgressCb = Callable[[int, str], None]  # percent, message
CancelCb = Callable[[], bool]  # returns True if cancelled

def run_clone(
    job: Job,
    progress_cb: ProgressCb,
    cancel_cb: CancelCb,
    exiftool: ExifTool | None = None,
    executor: TransformExecutor | None = None,
) -> FinalReport:
    """Run a clone job end-to-end: scan, load tracks, transform, report.

    Outputs (must exist at end of run, even if the job failed or was cancelled):
      - run_config.json
      - run_log.txt
      - manifest.csv
      - run_summary.json

    Raises DiscoveryError for an unreadable source root and
    UserCancelledError when cancelled before transforming started. A
    cancellation during the transform stage returns a report with
    `cancelled=True` instead.
    """
    opts = job.options
    run_folder = opts.run_folder
    run_folder.mkdir(parents=True, exist_ok=True)

    logger = RunLogger(run_folder / "run_log.txt")
    logger.log("Job started.")
    _log_run_settings(logger, job)
    _write_run_config(job, run_folder)

    exiftool = exiftool or ExifTool()
    tz = resolve_timezone(opts.timezone)
    scan = ScanResult(photos=[])
    track_result = TrackLoadResult(track=Track())
    report: FinalReport | None = None
    error_message = ""

    try:
        job.state.stage = "SCAN"
        progress_cb(0, "Scanning photos...")
        scan = scan_photos(opts.source_root, exiftool=exiftool, default_tz=tz)
        job.state.scanned_photos = len(scan.photos)
        job.state.scan_issues = len(scan.issues)
        logger.log(f"Scanned photos: {len(scan.photos)}, skipped: {len(scan.issues)}")
        for issue in scan.issues:
            logger.log(f"Skipped {issue.path}: {issue.reason}")

        if cancel_cb():
            raise UserCancelledError()

        job.state.stage = "TRACK"
        if opts.geotag:
            progress_cb(5, "Loading track logs...")
            track_result = _load_tracks(opts, logger)
            job.state.track_points = len(track_result.track)
        else:
            logger.log("Geotagging disabled.")

        if cancel_cb():
            raise UserCancelledError()

        job.state.stage = "TRANSFORM"
        progress_cb(10, f"Processing {len(scan.photos)} photos...")
        logger.log(f"Processing with {opts.workers} worker(s)...")
        if executor is None:
            executor = PillowTransformExecutor(
                exiftool=exiftool if opts.geotag else None,
                dry_run=opts.dry_run,
                overwrite=opts.overwrite,
            )

        def _on_failure(outcome: JobOutcome) -> None:
            logger.log(f"FAILED {outcome.source_path}: {outcome.error}")

        def _on_progress(done: int, total: int) -> None:
            job.state.done = done
            pct = 10 + int(90 * (done / max(1, total)))
            progress_cb(pct, f"Processed {done}/{total} photos...")

        report = run(
            scan.photos,
            track_result.track,
            job.policy_table,
            opts.workers,
            cancel_cb,
            executor=executor,
            max_extrapolation_seconds=opts.max_extrapolation_seconds,
            max_gap_seconds=opts.max_gap_seconds,
            destination_for=_destination_for(opts.destination_root),
            progress_cb=_on_progress,
            on_failure=_on_failure,
        )
        job.state.success = report.succeeded
        job.state.failed = report.failed

        logger.log(
            f"Attempted {report.attempted}/{report.total}: {report.succeeded} succeeded, "
            f"{report.failed} failed, {report.geotagged} geotagged."
        )
        if report.cancelled:
            job.state.stage = "CANCELLED"
            logger.log(f"Cancelled by user; {report.not_attempted} photo(s) not attempted.")
        else:
            job.state.stage = "DONE"
            logger.log("Job finished.")
            progress_cb(100, "Done.")
        return report
    except UserCancelledError:
        error_message = "Cancelled by user."
        job.state.stage = "CANCELLED"
        logger.log(error_message)
        raise
    except Exception as e:
        error_message = str(e)
        job.state.stage = "FAILED"
        logger.log(f"Job failed: {error_message}")
        raise
    finally:
        logger.log("Writing manifest...")
        _write_manifest(run_folder, scan.photos, report, error_message)
        try:
            write_run_summary(run_folder / "run_summary.json", _build_run_summary(job, scan, track_result, report, error_message))
        except Exception as exc:  # pragma: no cover - do not crash on summary failures
            logger.log(f"Run summary failed: {exc}")

def _load_tracks(opts: JobOptions, logger: RunLogger) -> TrackLoadResult:
    sources, issues = read_track_sources(opts.track_paths)
    for issue in issues:
        logger.log(f"Track source skipped {issue.path}: {issue.reason}")
    result = load_track(sources, default_tz=resolve_timezone(opts.timezone))
    for w in result.warnings:
        logger.log(f"Track source skipped {w.source}: {w.reason}")
    span = result.track.span()
    logger.log(
        f"Track sources loaded: {result.sources_loaded}/{len(sources)}, points: {len(result.track)}"
        + (f", span {span[0]:.0f}-{span[1]:.0f}" if span else "")
    )
    if result.track.is_empty():
        logger.log("No track points; photos will be processed without GPS.")
    return result

def _destination_for(root: Path) -> Callable[[PhotoRecord], Path]:
    def _dest(record: PhotoRecord) -> Path:
        return root / record.relative()
    return _dest

def _log_run_settings(logger: RunLogger, job: Job) -> None:
    opts = job.options
    logger.log(f"From: {opts.source_root}")
    logger.log(f"To: {opts.destination_root}")
    logger.log(f"Workers: {opts.workers}")
    if opts.geotag:
        logger.log(f"Track logs: {[str(p) for p in opts.track_paths]}")
        logger.log(f"Max extrapolation: {opts.max_extrapolation_seconds:g}s")
        gap = "none" if opts.max_gap_seconds is None else f"{opts.max_gap_seconds:g}s"
        logger.log(f"Max track gap: {gap}")
    else:
        logger.log("Geotag: disabled")
    for rule in job.policy_table.rules:
        logger.log(f"Policy {rule.describe()}")
    logger.log(f"Dry run: {'Yes' if opts.dry_run else 'No'}")

def _write_run_config(job: Job, run_folder: Path) -> None:
    path = run_folder / "run_config.json"
    payload = {
        "job": {
            "id": job.id,
            "name": job.name,
        },
        "options": jsonify(asdict(job.options)),
        "policies": [rule.describe() for rule in job.policy_table.rules],
    }
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
def _write_manifest(
    run_folder: Path,
    photos: list[PhotoRecord],
    report: FinalReport | None,
    default_reason: str,
) -> None:
    """Write manifest.csv for all discovered photos.

    Ensures a manifest is written even if the job failed or was cancelled.
    """
    manifest = ManifestWriter(run_folder / "manifest.csv")
    by_src = {o.source_path: o for o in report.outcomes} if report else {}

    for rec in sorted(photos, key=lambda r: str(r.source_path)):
        o = by_src.get(rec.source_path)
        if o is None:
            manifest.add(ManifestRow(
                source_path=str(rec.source_path),
                output_path="",
                status="NOT_ATTEMPTED",
                reason=default_reason or ("Cancelled by user." if report and report.cancelled else ""),
                rating=str(rec.rating),
                action="",
                output_format="",
                resized="NO",
                geotagged="NO",
                fix_method="NONE",
            ))
            continue
        manifest.add(ManifestRow(
            source_path=str(o.source_path),
            output_path="" if o.destination is None else str(o.destination),
            status="SUCCESS" if o.success else "FAILED",
            reason=o.error,
            rating=str(o.rating),
            action=o.action,
            output_format=o.output_format,
            resized="YES" if o.resized else "NO",
            geotagged="YES" if o.geotagged else "NO",
            fix_method=o.fix_method,
        ))

    manifest.write()

def _build_run_summary(
    job: Job,
    scan: ScanResult,
    track_result: TrackLoadResult,
    report: FinalReport | None,
    error_message: str,
) -> RunSummary:
    opts = job.options
    settings = {
        "workers": opts.workers,
        "geotag": opts.geotag,
        "max_extrapolation_seconds": opts.max_extrapolation_seconds,
        "max_gap_seconds": opts.max_gap_seconds,
        "dry_run": opts.dry_run,
        "overwrite": opts.overwrite,
        "destination_root": str(opts.destination_root),
    }
    return RunSummary(
        run_id=job.id,
        inputs=[str(opts.source_root)],
        settings=settings,
        report=report,
        track_sources_loaded=track_result.sources_loaded,
        track_points=len(track_result.track),
        track_warnings=[{"source": w.source, "reason": w.reason} for w in track_result.warnings],
        scan_issues=[{"path": i.path, "reason": i.reason} for i in scan.issues],
        error=error_message,
    )
