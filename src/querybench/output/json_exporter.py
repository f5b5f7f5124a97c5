"""
JSON export for benchmark results.

One record per case: group, case, strategy, status, iteration count and
latency statistics, for downstream analysis.
"""

import json
from datetime import datetime
from pathlib import Path

from querybench.config import BenchmarkReport, BenchmarkState


def export_json(report: BenchmarkReport, output_dir: str = "results/json") -> str:
    """
    Export benchmark report as JSON file.

    Args:
        report: BenchmarkReport to export
        output_dir: Directory for JSON output

    Returns:
        Path to created JSON file
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filepath = output_path / f"{report.report_id}_{timestamp}.json"

    with open(filepath, 'w') as f:
        json.dump(report.to_json(), f, indent=2)

    report.state = BenchmarkState.EXPORTED
    return str(filepath)
