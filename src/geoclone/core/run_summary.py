from __future__ import annotations

from dataclasses import asdict, dataclass, field
from pathlib import Path
import json
from typing import Any, Iterable

from geoclone.core.photo_task import JobOutcome


@dataclass(frozen=True)
class FailureEntry:
    source_path: str
    reason: str


@dataclass
class FinalReport:
    """Order-independent summary of one run.

    `outcomes` and `failures` are sorted by source path, so the report does not
    depend on worker count or completion order.
    """
    total: int
    attempted: int
    succeeded: int
    failed: int
    cancelled: bool
    outcomes: list[JobOutcome] = field(default_factory=list)
    failures: list[FailureEntry] = field(default_factory=list)
    not_attempted: int = 0
    geotagged: int = 0
    resized: int = 0
    converted_to_jpeg: int = 0
    converted_to_heic: int = 0
    copied: int = 0

    @property
    def photo_ids(self) -> list[str]:
        return [str(o.source_path) for o in self.outcomes]

    @property
    def ok(self) -> bool:
        return self.failed == 0 and not self.cancelled


def build_report(outcomes: Iterable[JobOutcome], total: int, cancelled: bool) -> FinalReport:
    ordered = sorted(outcomes, key=lambda o: str(o.source_path))
    succeeded = [o for o in ordered if o.success]
    failed = [o for o in ordered if not o.success]
    return FinalReport(
        total=total,
        attempted=len(ordered),
        succeeded=len(succeeded),
        failed=len(failed),
        cancelled=cancelled,
        outcomes=ordered,
        failures=[FailureEntry(source_path=str(o.source_path), reason=o.error) for o in failed],
        not_attempted=total - len(ordered),
        geotagged=sum(1 for o in succeeded if o.geotagged),
        resized=sum(1 for o in succeeded if o.resized),
        converted_to_jpeg=sum(1 for o in succeeded if o.action == "CONVERTED" and o.output_format == "jpeg"),
        converted_to_heic=sum(1 for o in succeeded if o.action == "CONVERTED" and o.output_format == "heic"),
        copied=sum(1 for o in succeeded if o.action == "COPIED"),
    )


@dataclass
class RunSummary:
    run_id: str
    inputs: list[str]
    settings: dict[str, Any]
    report: FinalReport | None
    track_sources_loaded: int = 0
    track_points: int = 0
    track_warnings: list[dict[str, str]] = field(default_factory=list)
    scan_issues: list[dict[str, str]] = field(default_factory=list)
    error: str = ""


def write_run_summary(path: Path, summary: RunSummary) -> None:
    payload = jsonify(asdict(summary))
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2), encoding="utf-8")


def jsonify(obj: Any) -> Any:
    """Recursively convert asdict() output into JSON-safe types."""
    if isinstance(obj, dict):
        return {k: jsonify(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [jsonify(v) for v in obj]
    if isinstance(obj, Path):
        return str(obj)
    return obj
