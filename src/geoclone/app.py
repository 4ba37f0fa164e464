"""Command line entrypoint.

Run in development:
    python -m geoclone.app clone --from ~/Pictures/raw --to ~/Pictures/library
"""

from __future__ import annotations

import argparse
import signal
import threading
import uuid
from pathlib import Path

from appdirs import user_log_dir
from rich.console import Console
from rich.progress import BarColumn, Progress, SpinnerColumn, TaskProgressColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from geoclone.core.job import Job, JobOptions
from geoclone.core.pipeline import run_clone
from geoclone.core.run_summary import FinalReport
from geoclone.core.settings import (
    GeoCloneConfig,
    default_config_path,
    load_config,
    new_run_folder,
    write_default_config,
)
from geoclone.exif.exiftool import is_exiftool_available
from geoclone.util.errors import GeoCloneError, UserCancelledError
from geoclone.util.timeparse import parse_duration

EXIT_OK = 0
EXIT_FAILURES = 1
EXIT_FATAL = 2

console = Console()


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="geoclone",
        description="Clone a photo library: geotag from track logs, re-encode by star rating.",
    )
    p.add_argument("--config", type=Path, default=None, help="Config file (default: per-user config.yaml).")
    sub = p.add_subparsers(dest="command", required=True)

    clone = sub.add_parser("clone", help="Process a source directory into the destination.")
    clone.add_argument("--from", dest="source", type=Path, default=None, help="Source directory (overrides config).")
    clone.add_argument("--to", dest="destination", type=Path, default=None, help="Destination directory (overrides config).")
    clone.add_argument("--workers", type=int, default=None, help="Number of parallel workers.")
    clone.add_argument("--track", action="append", type=Path, default=[], help="Extra GPX/CSV track log (repeatable).")
    clone.add_argument("--max-extrapolation", default=None, help='Match window, e.g. "300", "5m".')
    clone.add_argument("--ignore-geotag", action="store_true", help="Do not geotag photos.")
    clone.add_argument("--dry-run", action="store_true", help="Plan everything but write nothing.")
    clone.add_argument("--overwrite", action="store_true", help="Replace existing destination files.")
    clone.add_argument("--output", type=Path, default=None, help="Where run folders (logs, manifest) are written.")

    init = sub.add_parser("init", help="Write a default config file.")
    init.add_argument("--force", action="store_true", help="Overwrite an existing config.")
    return p


def main(argv: list[str] | None = None) -> int:
    args = build_arg_parser().parse_args(argv)
    config_path = args.config or default_config_path()

    if args.command == "init":
        return _cmd_init(config_path, args.force)

    try:
        return _cmd_clone(args, config_path)
    except GeoCloneError as e:
        console.print(f"[red]Error:[/] {e}")
        return EXIT_FATAL


def _cmd_init(config_path: Path, force: bool) -> int:
    if write_default_config(config_path, force=force):
        console.print(f"Wrote default config to [cyan]{config_path}[/]")
        return EXIT_OK
    console.print(f"[yellow]Config already exists at {config_path}. Use --force to overwrite.[/]")
    return EXIT_FATAL


def _cmd_clone(args: argparse.Namespace, config_path: Path) -> int:
    if not config_path.exists():
        console.print(f"[red]No config at {config_path}.[/] Run [bold]geoclone init[/] first.")
        return EXIT_FATAL
    cfg = load_config(config_path)

    job = _build_job(args, cfg)
    if job is None:
        return EXIT_FATAL

    if not is_exiftool_available():
        console.print("[red]ExifTool not found.[/] Install ExifTool or set GEOCLONE_EXIFTOOL_PATH.")
        return EXIT_FATAL

    cancel_event = threading.Event()
    previous = signal.signal(signal.SIGINT, _cancel_handler(cancel_event))
    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TaskProgressColumn(),
            TimeElapsedColumn(),
            console=console,
        ) as progress:
            task = progress.add_task("Starting...", total=100)

            def _progress(pct: int, msg: str) -> None:
                progress.update(task, completed=pct, description=msg)

            report = run_clone(job, _progress, cancel_event.is_set)
    except UserCancelledError:
        console.print("[yellow]Cancelled before processing started.[/]")
        return EXIT_FAILURES
    except KeyboardInterrupt:
        console.print("[red]Interrupted.[/]")
        return EXIT_FAILURES
    finally:
        signal.signal(signal.SIGINT, previous)

    _print_report(report)
    console.print(f"Run folder: [cyan]{job.options.run_folder}[/]")
    return EXIT_OK if report.ok else EXIT_FAILURES


def _build_job(args: argparse.Namespace, cfg: GeoCloneConfig) -> Job | None:
    source = args.source or cfg.source_root
    destination = args.destination or cfg.destination_root
    if source is None or destination is None:
        console.print("[red]Both a source (--from) and a destination (--to) are required.[/]")
        return None

    workers = args.workers if args.workers is not None else cfg.workers
    if workers < 1:
        console.print("[red]--workers must be >= 1.[/]")
        return None

    window = cfg.geotag.max_extrapolation_seconds
    if args.max_extrapolation is not None:
        try:
            window = parse_duration(args.max_extrapolation)
        except ValueError as e:
            console.print(f"[red]--max-extrapolation:[/] {e}")
            return None

    max_gap = cfg.geotag.max_gap_seconds
    if args.max_extrapolation is not None and not cfg.geotag.max_gap_explicit:
        max_gap = window

    output_root = args.output or Path(user_log_dir(appname="geoclone", appauthor=False))
    options = JobOptions(
        source_root=source.expanduser(),
        destination_root=destination.expanduser(),
        run_folder=new_run_folder(output_root.expanduser()),
        workers=workers,
        dry_run=args.dry_run,
        overwrite=args.overwrite,
        geotag=cfg.geotag.enabled and not args.ignore_geotag,
        track_paths=[*cfg.geotag.sources, *args.track],
        max_extrapolation_seconds=window,
        max_gap_seconds=max_gap,
        timezone=cfg.geotag.timezone,
    )
    return Job(id=str(uuid.uuid4()), name=source.name or str(source), options=options, policy_table=cfg.policy_table)


def _cancel_handler(event: threading.Event):
    def _handler(signum, frame) -> None:
        if event.is_set():
            # Second Ctrl-C: stop waiting for in-flight jobs.
            raise KeyboardInterrupt
        event.set()
        console.print("[yellow]Cancelling; waiting for running jobs to finish...[/]")
    return _handler


def _print_report(report: FinalReport) -> None:
    table = Table(title="Clone Statistics")
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right")
    table.add_row("Photos found", str(report.total))
    table.add_row("Processed", f"[green]{report.succeeded}[/]")
    table.add_row("Failed", f"[red]{report.failed}[/]" if report.failed else "0")
    table.add_row("Not attempted", str(report.not_attempted))
    table.add_row("GPS added", str(report.geotagged))
    table.add_row("Resized", str(report.resized))
    table.add_row("Converted to JPEG", str(report.converted_to_jpeg))
    table.add_row("Converted to HEIC", str(report.converted_to_heic))
    table.add_row("Copied", str(report.copied))
    console.print(table)

    for f in report.failures:
        console.print(f"[red]FAILED[/] {f.source_path}: {f.reason}")
    if report.cancelled:
        console.print("[yellow]Run was cancelled.[/]")


if __name__ == "__main__":
    raise SystemExit(main())
