"""
Timing engine for registered benchmark cases.

Implements:
- One-time setup and a verification run checking row-count equivalence
- Warm-up iterations discarded before measurement
- High-resolution timing with perf_counter
- Adaptive stopping: minimum sample count, stability target and a per-case
  wall-clock ceiling

Cases run strictly one after another so no two cases compete for a backend.

fan_out() is the building block for hand-written operations that issue
concurrent sub-queries through thread-safe clients, e.g.

    @group.case("raw-threads", adapter)
    def orders_by_id():
        return fan_out(lambda p: adapter.execute(sql, p), params)

The catalog itself fans out through ExecutorAdapter.execute_all().
"""

import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Callable, Iterable, List, Optional, Sequence, Tuple, Union

import structlog

from querybench.config import (
    BenchmarkReport,
    BenchmarkState,
    CaseResult,
    CaseStatus,
    ResultMap,
    RunConfiguration,
    TimingPolicy,
)
from querybench.exceptions import ConfigurationError, EquivalenceError, TimeoutExceeded
from querybench.metrics import calculate_metrics, relative_standard_error
from querybench.registry import BenchmarkCase, BenchmarkGroup, CaseRegistry

logger = structlog.get_logger()


def count_rows(result: Any) -> Optional[int]:
    """Row count of an operation's return value, None if it has none."""
    if result is None or isinstance(result, (str, bytes)):
        return None
    if hasattr(result, '__len__'):
        return len(result)
    rowcount = getattr(result, 'rowcount', None)
    if isinstance(rowcount, int) and rowcount >= 0:
        return rowcount
    return None


def fan_out(fn: Callable[[Any], Any], inputs: Sequence[Any], max_workers: Optional[int] = None) -> List[Any]:
    """
    Run fn once per input concurrently and wait for every call.

    Use inside an operation that issues concurrent sub-queries; the timing
    sample only closes after all of them completed. The first exception is
    re-raised once every call has finished.

    Returns:
        Results in input order
    """
    if not inputs:
        return []

    workers = max_workers or len(inputs)
    with ThreadPoolExecutor(max_workers=workers) as pool:
        futures = [pool.submit(fn, item) for item in inputs]
    return [future.result() for future in futures]


class TimingEngine:
    """
    Runs every case of a registry and produces one CaseResult per case.

    Failures are caught at the case boundary: a case that fails in setup,
    verification, warm-up or measurement is recorded as FAILED and the run
    moves on to the next case.
    """

    def __init__(
        self,
        policy: Optional[TimingPolicy] = None,
        clock: Callable[[], float] = time.perf_counter,
    ):
        """
        Initialize timing engine.

        Args:
            policy: Warm-up and stopping parameters
            clock: Monotonic clock in seconds

        Raises:
            ConfigurationError: If the policy fails validation
        """
        self.policy = policy or TimingPolicy()
        errors = self.policy.validate()
        if errors:
            raise ConfigurationError(errors)
        self.clock = clock

    def run_all(self, groups: Union[CaseRegistry, Iterable[BenchmarkGroup]]) -> ResultMap:
        """
        Execute every case in group-then-registration order.

        Args:
            groups: Registry (frozen for the duration of the run) or groups

        Returns:
            Dict mapping group name to dict of case name to CaseResult
        """
        if isinstance(groups, CaseRegistry):
            groups.freeze()
            groups = groups.groups()

        results: ResultMap = {}
        for group in groups:
            reference = group.expected_rows
            group_results = {}

            for case in group:
                result = self.run_case(group, case, reference)
                if reference is None and result.succeeded and result.row_count is not None:
                    reference = result.row_count
                group_results[case.name] = result

            results[group.name] = group_results

        return results

    def run(self, registry: CaseRegistry, config: Optional[RunConfiguration] = None) -> BenchmarkReport:
        """
        Execute a registry and wrap the results in a report.

        Args:
            registry: Populated case registry
            config: Run configuration recorded in the report

        Returns:
            BenchmarkReport with results for all cases
        """
        report_id = f"benchmark_{datetime.now().strftime('%Y%m%d_%H%M%S')}"
        start_time = datetime.now()

        logger.info(
            "Benchmark started",
            report_id=report_id,
            groups=len(registry),
            cases=registry.case_count(),
        )

        results = self.run_all(registry)
        end_time = datetime.now()

        report = BenchmarkReport(
            report_id=report_id,
            start_time=start_time,
            end_time=end_time,
            results=results,
            config=config,
            state=BenchmarkState.COMPLETED,
        )

        logger.info(
            "Benchmark complete",
            report_id=report_id,
            duration_s=round(report.total_duration_seconds, 2),
            failed_cases=len(report.failed_cases),
        )
        return report

    def run_case(
        self,
        group: BenchmarkGroup,
        case: BenchmarkCase,
        expected_rows: Optional[int] = None,
    ) -> CaseResult:
        """
        Set up, verify, warm up and measure one case.

        Args:
            group: Group owning the case
            case: Case to run
            expected_rows: Row count the verification run must return

        Returns:
            SUCCESS result with statistics, or FAILED result with the cause
        """
        log = logger.bind(group=group.name, case=case.name, strategy=case.strategy)
        log.info("case_started")

        def failed(phase: str, error: BaseException, warmups: int = 0) -> CaseResult:
            log.warning("case_failed", phase=phase, error=str(error))
            return CaseResult.failed(group.name, case.name, case.strategy, error, warmups)

        if case.setup is not None:
            try:
                case.setup()
            except Exception as e:
                return failed("setup", e)

        # Verification run doubles as the first warm-up iteration
        try:
            row_count = count_rows(case.operation())
        except Exception as e:
            return failed("verification", e)

        if expected_rows is not None and row_count is not None and row_count != expected_rows:
            return failed(
                "verification",
                EquivalenceError(group.name, case.name, expected_rows, row_count),
                warmups=1,
            )

        try:
            warmups = 1 + self._warm_up(case)
        except Exception as e:
            return failed("warmup", e, warmups=1)

        try:
            samples, caveat = self._measure(case)
        except Exception as e:
            # Partial samples are discarded: no misleading statistics
            return failed("measurement", e, warmups=warmups)

        metrics = calculate_metrics(samples)
        if caveat is not None:
            log.warning("case_timed_out", iterations=len(samples), caveat=str(caveat))

        result = CaseResult(
            group=group.name,
            case=case.name,
            strategy=case.strategy,
            status=CaseStatus.SUCCESS,
            iterations=len(samples),
            warmup_iterations=warmups,
            mean_ms=metrics['mean_ms'],
            stddev_ms=metrics['stddev_ms'],
            min_ms=metrics['min_ms'],
            max_ms=metrics['max_ms'],
            p50_ms=metrics['p50_ms'],
            p90_ms=metrics['p90_ms'],
            p99_ms=metrics['p99_ms'],
            ops_per_sec=metrics['ops_per_sec'],
            total_time_s=sum(samples) / 1000.0,
            row_count=row_count,
            caveat=str(caveat) if caveat is not None else None,
        )

        log.info(
            "case_completed",
            iterations=result.iterations,
            mean_ms=round(result.mean_ms, 3),
            p99_ms=round(result.p99_ms, 3),
        )
        return result

    def _warm_up(self, case: BenchmarkCase) -> int:
        """Discarded iterations after the verification run; returns the count."""
        remaining = max(0, self.policy.warmup_iterations - 1)
        start = self.clock()
        done = 0

        while done < remaining and self.clock() - start < self.policy.warmup_time:
            case.operation()
            done += 1

        return done

    def _measure(self, case: BenchmarkCase) -> Tuple[List[float], Optional[TimeoutExceeded]]:
        """
        Collect timing samples until the stopping rule or the ceiling.

        Returns:
            (samples in milliseconds, TimeoutExceeded caveat or None)
        """
        policy = self.policy
        samples: List[float] = []
        start = self.clock()

        while True:
            iteration_start = self.clock()
            case.operation()
            samples.append((self.clock() - iteration_start) * 1000.0)

            count = len(samples)
            elapsed = self.clock() - start

            if count >= policy.max_iterations:
                return samples, None

            if (
                count >= policy.min_iterations
                and elapsed >= policy.min_time
                and relative_standard_error(samples) <= policy.target_rse
            ):
                return samples, None

            # Ceiling reached before the stopping rule held
            if elapsed >= policy.max_time:
                return samples, TimeoutExceeded(case.name, count, policy.max_time)
