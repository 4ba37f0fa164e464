from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
import queue
import threading
from typing import Callable, Sequence

from geoclone.core.interpolate import DEFAULT_MAX_EXTRAPOLATION_SECONDS, Interpolator
from geoclone.core.photo_task import JobOutcome, PhotoRecord, TransformPlan
from geoclone.core.policy import PolicyTable
from geoclone.core.run_summary import FinalReport, build_report
from geoclone.core.track import Track
from geoclone.transform.base import TransformExecutor
from geoclone.util.errors import ConfigError, TransformError

ProgressCb = Callable[[int, int], None]  # done, total
CancelCb = Callable[[], bool]  # returns True if cancelled
DestinationFn = Callable[[PhotoRecord], Path]
FailureCb = Callable[[JobOutcome], None]


@dataclass
class RunContext:
    """Everything workers share during one run.

    `interpolator`, `policy_table` and `executor` are read-only. `slots` holds
    one outcome per job index and each index is written by exactly one worker;
    the progress counter is the only state guarded by `lock`.
    """
    interpolator: Interpolator
    policy_table: PolicyTable
    executor: TransformExecutor
    destination_for: DestinationFn
    cancel_cb: CancelCb
    progress_cb: ProgressCb | None
    on_failure: FailureCb | None
    total: int
    slots: list[JobOutcome | None] = field(default_factory=list)
    done: int = 0
    lock: threading.Lock = field(default_factory=threading.Lock)


def run(
    records: Sequence[PhotoRecord],
    track: Track,
    policy_table: PolicyTable,
    worker_count: int,
    cancel_cb: CancelCb,
    *,
    executor: TransformExecutor,
    max_extrapolation_seconds: float = DEFAULT_MAX_EXTRAPOLATION_SECONDS,
    max_gap_seconds: float | None = None,
    destination_for: DestinationFn | None = None,
    progress_cb: ProgressCb | None = None,
    on_failure: FailureCb | None = None,
) -> FinalReport:
    """Transform every record on a pool of `worker_count` workers.

    Per record: resolve its policy rule, locate a GPS fix (a missing fix is
    not an error), hand the plan to `executor` and record the outcome. A
    failing job never stops the batch. `cancel_cb` is checked before each job
    is taken; jobs already handed to the executor finish normally.
    """
    if worker_count < 1:
        raise ValueError("worker_count must be >= 1")

    records = list(records)
    ctx = RunContext(
        interpolator=Interpolator(track, max_extrapolation_seconds, max_gap_seconds),
        policy_table=policy_table,
        executor=executor,
        destination_for=destination_for or _in_place_destination,
        cancel_cb=cancel_cb,
        progress_cb=progress_cb,
        on_failure=on_failure,
        total=len(records),
        slots=[None] * len(records),
    )

    work: queue.Queue[tuple[int, PhotoRecord]] = queue.Queue()
    for i, rec in enumerate(records):
        work.put((i, rec))

    cancelled = cancel_cb()
    if not cancelled and records:
        n = min(worker_count, len(records))
        with ThreadPoolExecutor(max_workers=n, thread_name_prefix="geoclone-worker") as pool:
            futures = [pool.submit(_worker_loop, ctx, work) for _ in range(n)]
            for f in futures:
                # Worker loops never raise for job failures; re-raise anything else.
                f.result()
        cancelled = not work.empty()

    outcomes = [o for o in ctx.slots if o is not None]
    return build_report(outcomes, total=len(records), cancelled=cancelled)


def _worker_loop(ctx: RunContext, work: queue.Queue[tuple[int, PhotoRecord]]) -> None:
    while True:
        if ctx.cancel_cb():
            return
        try:
            index, record = work.get_nowait()
        except queue.Empty:
            return
        outcome = run_one(ctx, record)
        ctx.slots[index] = outcome
        if not outcome.success and ctx.on_failure is not None:
            ctx.on_failure(outcome)
        with ctx.lock:
            ctx.done += 1
            done = ctx.done
        if ctx.progress_cb is not None:
            ctx.progress_cb(done, ctx.total)


def run_one(ctx: RunContext, record: PhotoRecord) -> JobOutcome:
    """Run a single job and turn every per-photo failure into a JobOutcome."""
    try:
        rule = ctx.policy_table.resolve(record.rating)
    except ConfigError as e:
        return JobOutcome(source_path=record.source_path, success=False, error=str(e), rating=record.rating)

    fix = ctx.interpolator.locate(record.capture_time)
    fix_method = fix.method if fix else "NONE"

    try:
        destination = ctx.destination_for(record)
        plan = TransformPlan(record=record, rule=rule, fix=fix, destination=destination)
        result = ctx.executor.execute(plan)
    except (TransformError, OSError) as e:
        return JobOutcome(
            source_path=record.source_path,
            success=False,
            error=str(e) or type(e).__name__,
            rating=record.rating,
            fix_method=fix_method,
        )
    except Exception as e:  # isolate unexpected executor bugs to this photo
        return JobOutcome(
            source_path=record.source_path,
            success=False,
            error=f"{type(e).__name__}: {e}",
            rating=record.rating,
            fix_method=fix_method,
        )

    return JobOutcome(
        source_path=record.source_path,
        success=result.success,
        error="" if result.success else (result.error or "transform failed"),
        destination=result.destination or destination,
        action=result.action,
        geotagged=result.geotagged,
        resized=result.resized,
        output_format=result.output_format,
        rating=record.rating,
        fix_method=fix_method,
    )


def _in_place_destination(record: PhotoRecord) -> Path:
    return record.source_path
