"""
Console table export for benchmark results.

Exports benchmark results as formatted console tables using tabulate.
"""

from datetime import datetime
from pathlib import Path
from querybench.config import BenchmarkReport
from querybench.output.reporter import Reporter


def format_report(report: BenchmarkReport) -> str:
    """
    Full text report: run header, one table per group, footer.

    Example:
        select * from customer
        ----------------------
        Case    Strategy    Iter    Mean (ms)  ...
        ------  ----------  ------  ---------
        raw     raw         120     0.412      ...
    """
    rendered = Reporter().report(report)

    output = []
    output.append("=" * 70)
    output.append("Database Access Strategy Benchmark")
    output.append("=" * 70)
    output.append(f"Report ID: {report.report_id}")
    output.append(f"Timestamp: {report.start_time.isoformat()}")

    if report.config is not None:
        timing = report.config.timing
        output.append("")
        output.append("Configuration:")
        output.append(f"  Strategies:         {', '.join(report.config.strategies)}")
        output.append(f"  Warmup iterations:  {timing.warmup_iterations}")
        output.append(f"  Iterations:         {timing.min_iterations}-{timing.max_iterations}")
        output.append(f"  Time per case:      {timing.min_time}-{timing.max_time}s")

    output.append("")
    output.append(rendered.text)

    if report.teardown_errors:
        output.append("")
        output.append("Teardown errors:")
        output.extend(f"  {error}" for error in report.teardown_errors)

    output.append("")
    output.append(f"Benchmark completed in {report.total_duration_seconds:.2f} seconds.")
    output.append("=" * 70)

    return "\n".join(output)


def export_table(report: BenchmarkReport, output_dir: str = "results/tables") -> str:
    """
    Export benchmark report as formatted table.

    Args:
        report: BenchmarkReport to export
        output_dir: Directory for table output

    Returns:
        Path to created text file
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filepath = output_path / f"{report.report_id}_{timestamp}.txt"
    filepath.write_text(format_report(report))

    return str(filepath)
