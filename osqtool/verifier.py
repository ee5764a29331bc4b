"""
Concurrent verification engine.

Every record becomes one task on a bounded thread pool. A task:

1. Skips the query (PARTIAL) when its platform cannot run on this host.
2. Runs the query through the backend and measures wall-clock time.
3. Checks the single-run, per-query daily and row budgets.

Tasks share no state: each returns an Outcome and the calling thread is
the only one that aggregates them into the Report. A failing task never
stops its siblings, and the engine waits for every task before applying
the aggregate budgets. No timeout is imposed on the backend call.
"""

import logging
import os
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Mapping, Optional

from osqtool.backend import ExecutionBackend, Row, format_row, host_platform
from osqtool.errors import BudgetExceeded, ExecutionError, ScheduleError, VerificationError
from osqtool.schemas import Outcome, OutcomeStatus, Policy, QueryRecord, Report

logger = logging.getLogger(__name__)


SECONDS_PER_DAY = 86400
POSIX_PLATFORMS = frozenset({"linux", "darwin", "freebsd"})
SAMPLE_ROWS = 10

Clock = Callable[[], float]


@dataclass
class RunResult:
    """Rows from running one query outside verification."""
    name: str
    rows: list = field(default_factory=list)
    elapsed: float = 0.0
    incompatible_platform: Optional[str] = None


def check_compatibility(platform: Optional[str], host: str) -> Optional[str]:
    """Return None if a query for `platform` can run on `host`,
    otherwise the platform it is restricted to."""
    if not platform or platform == host:
        return None
    if platform == "posix":
        return None if host in POSIX_PLATFORMS else "posix"
    return platform


def runs_per_day(record: QueryRecord) -> int:
    """
    Number of scheduled runs per day.

    Raises:
        ScheduleError: If the interval is not a positive integer
    """
    try:
        interval = int(record.interval)
    except (TypeError, ValueError):
        raise ScheduleError(f"{record.name}: interval {record.interval!r} is not an integer")
    if interval <= 0:
        raise ScheduleError(f"{record.name}: interval {interval} is not positive")
    return SECONDS_PER_DAY // interval


def sample_rows(rows: list[Row]) -> tuple:
    """At most SAMPLE_ROWS formatted rows, plus "..." when truncated."""
    sample = [format_row(r) for r in rows[:SAMPLE_ROWS]]
    if len(rows) > SAMPLE_ROWS:
        sample.append("...")
    return tuple(sample)


def _execute(record: QueryRecord, backend: ExecutionBackend, clock: Clock) -> tuple[list[Row], float]:
    start = clock()
    try:
        rows = backend.run(record.query_text)
    except ExecutionError as e:
        raise ExecutionError(f"{record.name}: {e}") from e
    except Exception as e:
        raise ExecutionError(f"{record.name}: {type(e).__name__}: {e}") from e
    return rows, clock() - start


def verify_record(
    record: QueryRecord,
    policy: Policy,
    backend: ExecutionBackend,
    host: str,
    clock: Clock = time.monotonic,
) -> Outcome:
    """Verify a single record. Never raises for a query-level failure."""
    name = record.name

    incompatible = check_compatibility(record.platform, host)
    if incompatible:
        logger.warning("Skipped %r: incompatible platform: %r", name, incompatible)
        return Outcome(name=name, status=OutcomeStatus.PARTIAL, incompatible_platform=incompatible)

    logger.info("Verifying %r ...", name, extra={"query": name})
    try:
        rows, elapsed = _execute(record, backend, clock)
    except ExecutionError as e:
        logger.error("%r failed validation: %s", name, e, extra={"query": name})
        return Outcome(name=name, status=OutcomeStatus.ERRORED, error=e)

    try:
        return _check_budgets(record, policy, rows, elapsed)
    except Exception as e:
        error = ExecutionError(f"{name}: {type(e).__name__}: {e}")
        logger.exception("%r failed validation: %s", name, error, extra={"query": name})
        return Outcome(name=name, status=OutcomeStatus.ERRORED, elapsed=elapsed, error=error)


def _check_budgets(record: QueryRecord, policy: Policy, rows: list[Row], elapsed: float) -> Outcome:
    name = record.name
    try:
        daily_runs = runs_per_day(record)
        schedule_error = None
    except ScheduleError as e:
        daily_runs, schedule_error = 0, e
    daily_duration = daily_runs * elapsed

    measured = dict(
        name=name,
        elapsed=elapsed,
        row_count=len(rows),
        daily_runs=daily_runs,
        daily_duration=daily_duration,
    )

    error: Optional[Exception] = None
    sample: tuple = ()
    if policy.max_duration is not None and elapsed > policy.max_duration:
        error = BudgetExceeded(
            f"{name}: {elapsed:.3f}s exceeds maximum duration of {policy.max_duration}s"
        )
    elif schedule_error is not None:
        error = schedule_error
    elif policy.max_query_daily_duration is not None and daily_duration > policy.max_query_daily_duration:
        error = BudgetExceeded(
            f"{name}: {daily_duration:.3f}s daily runtime ({daily_runs} runs x {elapsed:.3f}s) "
            f"exceeds maximum of {policy.max_query_daily_duration}s"
        )
    elif policy.max_results is not None and len(rows) > policy.max_results:
        sample = sample_rows(rows)
        error = BudgetExceeded(
            f"{name}: {len(rows)} results exceeds maximum of {policy.max_results}:\n"
            + "\n".join(sample)
        )

    if error is not None:
        logger.error("%r failed validation: %s", name, error, extra={"query": name})
        return Outcome(status=OutcomeStatus.ERRORED, sample=sample, error=error, **measured)

    logger.info("%r returned %d rows within %.3fs", name, len(rows), elapsed)
    return Outcome(status=OutcomeStatus.VERIFIED, **measured)


def _collect(report: Report, outcome: Outcome) -> None:
    report.outcomes[outcome.name] = outcome
    if outcome.status is OutcomeStatus.VERIFIED:
        report.verified += 1
    elif outcome.status is OutcomeStatus.PARTIAL:
        report.partial += 1
    else:
        report.errored += 1
    report.total_daily_duration += outcome.daily_duration
    report.total_daily_runs += outcome.daily_runs


def verify(
    records: Mapping[str, QueryRecord],
    policy: Policy,
    backend: ExecutionBackend,
    *,
    host: Optional[str] = None,
    clock: Clock = time.monotonic,
) -> Report:
    """
    Verify every record against the backend.

    Args:
        records: Mapping of name -> resolved record
        policy: Budgets and pool width
        backend: Execution backend
        host: Platform to check compatibility against (default: this host)
        clock: Monotonic clock used to time each run

    Returns:
        Report with totals; report.error is set when any query failed or
        an aggregate check did not pass
    """
    host = host or host_platform()
    workers = policy.concurrency_limit if policy.concurrency_limit > 0 else (os.cpu_count() or 1)
    report = Report()

    with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="osqtool-verify") as pool:
        futures = [
            pool.submit(verify_record, records[name], policy, backend, host, clock)
            for name in sorted(records)
        ]
        for future in as_completed(futures):
            _collect(report, future.result())

    for outcome in report.failures:
        report.errors.append(outcome.error)

    logger.info(report.summary())
    logger.info(
        "total runtime per day: %.3fs over %d runs",
        report.total_daily_duration, report.total_daily_runs,
    )

    if (
        policy.max_total_daily_duration is not None
        and report.total_daily_duration > policy.max_total_daily_duration
    ):
        report.errors.append(BudgetExceeded(
            f"total runtime per day ({report.total_daily_duration:.3f}s) "
            f"exceeds {policy.max_total_daily_duration}s"
        ))

    if report.verified == 0:
        report.errors.append(VerificationError("0 queries were verified"))

    return report


def run_query(
    record: QueryRecord,
    backend: ExecutionBackend,
    *,
    host: Optional[str] = None,
    clock: Clock = time.monotonic,
) -> RunResult:
    """
    Run one query and return its rows; incompatible queries are not run.

    Raises:
        ExecutionError: If the backend fails
    """
    incompatible = check_compatibility(record.platform, host or host_platform())
    if incompatible:
        return RunResult(name=record.name, incompatible_platform=incompatible)
    rows, elapsed = _execute(record, backend, clock)
    return RunResult(name=record.name, rows=rows, elapsed=elapsed)
