"""
Numeric summaries used by the metrics aggregator.

All helpers return 0 for empty input rather than raising or producing NaN.
"""

import math
from datetime import datetime
from typing import Dict, Iterable, Optional, Sequence

# Percentiles reported for cycle time distributions
DEFAULT_PERCENTILES = (50, 70, 85, 95)

SECONDS_PER_DAY = 24 * 60 * 60


def average(values: Iterable[float]) -> float:
    """Arithmetic mean; 0 for an empty collection."""
    values = list(values)
    if not values:
        return 0
    return sum(values) / len(values)


def percentile(values: Sequence[float], p: float) -> float:
    """
    Nearest-rank percentile.

    Uses index = ceil(p / 100 * n) - 1 over the sorted values, clamped to
    [0, n - 1].

    Args:
        values: Sample values (any order)
        p: Percentile in the range 0..100

    Returns:
        The percentile value, or 0 for an empty sample
    """
    if not values:
        return 0

    ordered = sorted(values)
    index = math.ceil(p / 100 * len(ordered)) - 1
    index = min(max(index, 0), len(ordered) - 1)
    return ordered[index]


def median(values: Sequence[float]) -> float:
    return percentile(values, 50)


def percentile_summary(
    values: Sequence[float],
    percentiles: Iterable[int] = DEFAULT_PERCENTILES
) -> Dict[str, float]:
    """Map of 'p50', 'p85', ... to percentile values."""
    return {f"p{p}": percentile(values, p) for p in percentiles}


def percentage(part: float, whole: float, cap: Optional[float] = None) -> float:
    """
    part / whole * 100, rounded to one decimal.

    Returns 0 when whole is not positive. If cap is given the result is
    clamped to it.
    """
    if not whole or whole <= 0:
        return 0
    value = part / whole * 100
    if cap is not None:
        value = min(value, cap)
    return round(value, 1)


def ceil_days(start: Optional[datetime], end: Optional[datetime]) -> Optional[int]:
    """Whole days from start to end, rounded up; None if either is missing."""
    if start is None or end is None:
        return None
    seconds = abs((end - start).total_seconds())
    return math.ceil(seconds / SECONDS_PER_DAY)
