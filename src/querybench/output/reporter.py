"""
Comparative rendering of benchmark results.

One section per group with cases in registration order (never sorted by
speed). Failed cases show their cause instead of statistics.
"""

from dataclasses import dataclass, field
from typing import Dict, List, Union

from tabulate import tabulate

from querybench.config import BenchmarkReport, CaseResult, ResultMap
from querybench.metrics import relative_to_fastest

HEADERS = [
    "Case",
    "Strategy",
    "Iter",
    "Mean (ms)",
    "Stddev (ms)",
    "P50 (ms)",
    "P90 (ms)",
    "P99 (ms)",
    "Ops/s",
    "vs fastest",
]


@dataclass
class RenderedOutput:
    """Human-readable text plus one machine-readable record per case"""
    text: str
    records: List[Dict[str, object]] = field(default_factory=list)


def _case_row(result: CaseResult, ratio) -> List[object]:
    if not result.succeeded:
        return [result.case, result.strategy, result.iterations, f"FAILED: {result.error}"] + [""] * 6

    iterations = f"{result.iterations}*" if result.timed_out else str(result.iterations)
    return [
        result.case,
        result.strategy,
        iterations,
        f"{result.mean_ms:.3f}",
        f"{result.stddev_ms:.3f}",
        f"{result.p50_ms:.3f}",
        f"{result.p90_ms:.3f}",
        f"{result.p99_ms:.3f}",
        f"{result.ops_per_sec:.1f}",
        f"{ratio:.2f}x" if ratio is not None else "",
    ]


def render_group(name: str, cases: Dict[str, CaseResult]) -> str:
    """Render one group's section."""
    ratios = relative_to_fastest(
        {case: (r.mean_ms if r.succeeded else None) for case, r in cases.items()}
    )
    rows = [_case_row(result, ratios[case]) for case, result in cases.items()]

    lines = [name, "-" * len(name)]
    lines.append(tabulate(rows, headers=HEADERS, tablefmt="simple", disable_numparse=True))

    caveats = [r for r in cases.values() if r.succeeded and r.timed_out]
    for result in caveats:
        lines.append(f"* {result.case}: {result.caveat}")

    return "\n".join(lines)


class Reporter:
    """Renders results; has no side effects and never re-runs cases."""

    def report(self, results: Union[BenchmarkReport, ResultMap]) -> RenderedOutput:
        """
        Render every group and collect export records.

        Args:
            results: Report or bare group -> case -> CaseResult mapping

        Returns:
            RenderedOutput with the text and one record per case
        """
        if isinstance(results, BenchmarkReport):
            result_map = results.results
        else:
            result_map = results

        sections = [render_group(name, cases) for name, cases in result_map.items()]
        records = [
            result.to_record()
            for cases in result_map.values()
            for result in cases.values()
        ]

        total = len(records)
        failed = sum(1 for record in records if record["status"] != "success")
        sections.append(f"{total} cases, {total - failed} succeeded, {failed} failed")

        return RenderedOutput(text="\n\n".join(sections), records=records)
