"""
Metrics calculation utilities for benchmark cases.

Calculates per-case summary statistics from iteration timings:
- mean and standard deviation
- latency percentiles (P50, P90, P99)
- operations per second
"""

import math
from typing import Dict, List, Optional

import numpy as np

PERCENTILES = (50, 90, 99)


def calculate_metrics(timings: List[float]) -> Dict[str, float]:
    """
    Calculate performance metrics from timing measurements.

    Args:
        timings: List of iteration durations in milliseconds

    Returns:
        Dictionary with metrics:
        - mean_ms / stddev_ms: sample mean and standard deviation
        - min_ms / max_ms: fastest and slowest iteration
        - p50_ms / p90_ms / p99_ms: latency percentiles
        - ops_per_sec: iterations per second of measured time
        - count: number of samples

    Example:
        >>> metrics = calculate_metrics([10.0, 12.0, 15.0, 11.0, 13.0])
        >>> metrics['p50_ms']
        12.0
    """
    if not timings:
        return {
            'mean_ms': 0.0,
            'stddev_ms': 0.0,
            'min_ms': 0.0,
            'max_ms': 0.0,
            'p50_ms': 0.0,
            'p90_ms': 0.0,
            'p99_ms': 0.0,
            'ops_per_sec': 0.0,
            'count': 0
        }

    timings_array = np.array(timings, dtype=float)

    p50, p90, p99 = (float(v) for v in np.percentile(timings_array, PERCENTILES))

    # Sample standard deviation; a single sample has no spread
    stddev = float(np.std(timings_array, ddof=1)) if len(timings) > 1 else 0.0

    total_time_s = float(timings_array.sum()) / 1000.0
    ops_per_sec = len(timings) / total_time_s if total_time_s > 0 else 0.0

    return {
        'mean_ms': float(timings_array.mean()),
        'stddev_ms': stddev,
        'min_ms': float(timings_array.min()),
        'max_ms': float(timings_array.max()),
        'p50_ms': p50,
        'p90_ms': p90,
        'p99_ms': p99,
        'ops_per_sec': ops_per_sec,
        'count': len(timings)
    }


def relative_standard_error(timings: List[float]) -> float:
    """
    Standard error of the mean divided by the mean.

    Used as the stopping criterion of the adaptive timing loop. Returns
    infinity when fewer than two samples exist or the mean is zero.
    """
    if len(timings) < 2:
        return math.inf

    timings_array = np.array(timings, dtype=float)
    mean = float(timings_array.mean())
    if mean <= 0:
        return math.inf

    sem = float(np.std(timings_array, ddof=1)) / math.sqrt(len(timings))
    return sem / mean


def relative_to_fastest(means: Dict[str, Optional[float]]) -> Dict[str, Optional[float]]:
    """
    Ratio of each case's mean to the fastest mean in the same group.

    Args:
        means: Case name to mean latency (None for failed cases)

    Returns:
        Case name to ratio (1.0 for the fastest, None when unavailable)

    Example:
        >>> relative_to_fastest({'raw': 2.0, 'orm': 5.0, 'broken': None})
        {'raw': 1.0, 'orm': 2.5, 'broken': None}
    """
    valid = [m for m in means.values() if m is not None and m > 0]
    if not valid:
        return {name: None for name in means}

    fastest = min(valid)
    return {
        name: (mean / fastest if mean is not None and mean > 0 else None)
        for name, mean in means.items()
    }
