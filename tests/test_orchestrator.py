from __future__ import annotations

from pathlib import Path
import os
import threading

import pytest

from geoclone.core.geo import GeoPoint
from geoclone.core.orchestrator import run
from geoclone.core.photo_task import PhotoRecord, TransformPlan, TransformResult
from geoclone.core.policy import PolicyRule, TargetFormat, validate
from geoclone.core.track import Track
from geoclone.transform.base import TransformExecutor
from geoclone.util.errors import TransformError

FAILING = {"p03.jpg", "p06.jpg", "p09.jpg"}


class _FakeExecutor(TransformExecutor):
    """Writes a small text file per plan via temp file + os.replace."""

    def __init__(self, on_execute=None) -> None:
        self.plans: list[TransformPlan] = []
        self._lock = threading.Lock()
        self._on_execute = on_execute

    def execute(self, plan: TransformPlan) -> TransformResult:
        with self._lock:
            self.plans.append(plan)
        if self._on_execute is not None:
            self._on_execute(plan)
        if plan.record.source_path.name in FAILING:
            raise TransformError(f"cannot decode {plan.record.source_path.name}")
        plan.destination.parent.mkdir(parents=True, exist_ok=True)
        tmp = plan.destination.with_name(f".{plan.destination.name}.tmp")
        tmp.write_text(f"rating={plan.record.rating}", encoding="utf-8")
        os.replace(tmp, plan.destination)
        return TransformResult(
            success=True,
            action="COPIED" if plan.rule.preserve_original else "CONVERTED",
            geotagged=plan.fix is not None,
            output_format="jpeg",
            destination=plan.destination,
        )


def _records(src: Path, n: int = 10) -> list[PhotoRecord]:
    return [
        PhotoRecord(
            source_path=src / f"p{i:02d}.jpg",
            capture_time=1000.0 + i * 10,
            rating=i % 6,
            relative_path=Path(f"p{i:02d}.jpg"),
        )
        for i in range(n)
    ]


def _table():
    return validate([
        PolicyRule(ratings=frozenset({4, 5}), preserve_original=True),
        PolicyRule(ratings=frozenset({0, 1, 2, 3}), format=TargetFormat.JPEG, quality=80),
    ])


def _track() -> Track:
    return Track([GeoPoint(timestamp=1000.0, lat=1.0, lon=2.0), GeoPoint(timestamp=1050.0, lat=2.0, lon=3.0)])


def _dest(root: Path):
    return lambda rec: root / rec.relative()


@pytest.mark.parametrize("workers", [1, 4, 8])
def test_failures_are_isolated_and_report_is_deterministic(tmp_path: Path, workers: int) -> None:
    dst = tmp_path / f"dst{workers}"
    executor = _FakeExecutor()

    report = run(
        _records(tmp_path / "src"),
        _track(),
        _table(),
        workers,
        lambda: False,
        executor=executor,
        max_extrapolation_seconds=30,
        destination_for=_dest(dst),
    )

    assert report.total == 10
    assert report.attempted == 10
    assert report.succeeded == 7
    assert report.failed == 3
    assert not report.cancelled
    assert sorted(Path(f.source_path).name for f in report.failures) == sorted(FAILING)
    assert report.photo_ids == sorted(report.photo_ids)
    assert len(executor.plans) == 10
    # 1000-1050 on the track, 1060-1080 clamped within 30s, 1090 out of range
    assert report.geotagged == 7
    assert sorted(p.name for p in dst.iterdir()) == [f"p{i:02d}.jpg" for i in range(10) if f"p{i:02d}.jpg" not in FAILING]


def test_same_report_for_any_worker_count(tmp_path: Path) -> None:
    def _run(workers: int):
        return run(
            _records(tmp_path / "src"),
            _track(),
            _table(),
            workers,
            lambda: False,
            executor=_FakeExecutor(),
            destination_for=_dest(tmp_path / f"out{workers}"),
        )

    one, many = _run(1), _run(8)
    assert [o.source_path for o in one.outcomes] == [o.source_path for o in many.outcomes]
    assert [o.success for o in one.outcomes] == [o.success for o in many.outcomes]
    assert [o.fix_method for o in one.outcomes] == [o.fix_method for o in many.outcomes]


def test_rule_and_fix_reach_the_executor(tmp_path: Path) -> None:
    executor = _FakeExecutor()
    run(_records(tmp_path, 6), _track(), _table(), 1, lambda: False, executor=executor, max_extrapolation_seconds=0)

    by_name = {p.record.source_path.name: p for p in executor.plans}
    assert by_name["p05.jpg"].rule.preserve_original
    assert by_name["p01.jpg"].rule.format == TargetFormat.JPEG
    assert by_name["p02.jpg"].fix is not None
    assert by_name["p02.jpg"].fix.lat == pytest.approx(1.4)
    # in place by default
    assert by_name["p00.jpg"].destination == tmp_path / "p00.jpg"


def test_cancel_before_start_attempts_nothing(tmp_path: Path) -> None:
    executor = _FakeExecutor()
    report = run(_records(tmp_path), _track(), _table(), 4, lambda: True, executor=executor)
    assert report.attempted == 0
    assert report.not_attempted == 10
    assert report.cancelled
    assert executor.plans == []


def test_cancel_mid_run_leaves_only_complete_files(tmp_path: Path) -> None:
    dst = tmp_path / "dst"
    cancelled = threading.Event()
    executor = _FakeExecutor(on_execute=lambda _plan: cancelled.set())

    report = run(
        _records(tmp_path / "src", 40),
        _track(),
        _table(),
        4,
        cancelled.is_set,
        executor=executor,
        destination_for=_dest(dst),
    )

    assert report.cancelled
    assert 1 <= report.attempted < report.total
    assert report.attempted + report.not_attempted == report.total
    written = list(dst.iterdir())
    assert not [p for p in written if p.name.endswith(".tmp")]
    for p in written:
        assert p.read_text(encoding="utf-8").startswith("rating=")


def test_unexpected_executor_error_fails_only_that_photo(tmp_path: Path) -> None:
    class _Buggy(_FakeExecutor):
        def execute(self, plan: TransformPlan) -> TransformResult:
            if plan.record.source_path.name == "p01.jpg":
                raise RuntimeError("bug")
            return super().execute(plan)

    report = run(_records(tmp_path / "src", 3), _track(), _table(), 2, lambda: False,
                 executor=_Buggy(), destination_for=_dest(tmp_path / "dst"))
    assert report.failed == 1
    assert report.failures[0].reason == "RuntimeError: bug"


def test_out_of_range_rating_is_a_job_failure(tmp_path: Path) -> None:
    rec = PhotoRecord(source_path=tmp_path / "x.jpg", rating=9)
    failures = []
    report = run([rec], Track(), _table(), 1, lambda: False, executor=_FakeExecutor(), on_failure=failures.append)
    assert report.failed == 1
    assert failures[0].source_path == rec.source_path


def test_progress_and_validation(tmp_path: Path) -> None:
    seen: list[tuple[int, int]] = []
    run(_records(tmp_path / "src", 5), Track(), _table(), 2, lambda: False,
        executor=_FakeExecutor(), destination_for=_dest(tmp_path / "dst"),
        progress_cb=lambda done, total: seen.append((done, total)))
    assert sorted(seen) == [(i, 5) for i in range(1, 6)]

    with pytest.raises(ValueError):
        run([], Track(), _table(), 0, lambda: False, executor=_FakeExecutor())

    empty = run([], Track(), _table(), 3, lambda: False, executor=_FakeExecutor())
    assert (empty.total, empty.attempted, empty.cancelled) == (0, 0, False)
