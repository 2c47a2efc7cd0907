"""
Unit tests for numeric summaries.
"""

from datetime import datetime, timedelta, timezone

import pytest

from ado_insights.stats import (
    average,
    ceil_days,
    median,
    percentage,
    percentile,
    percentile_summary,
)


class TestPercentile:
    """Test nearest-rank percentiles."""

    def test_median_of_five(self):
        assert percentile([1, 2, 3, 4, 5], 50) == 3

    def test_unsorted_input(self):
        assert percentile([5, 1, 4, 2, 3], 50) == 3

    @pytest.mark.parametrize("p,expected", [
        (0, 1),
        (10, 1),
        (85, 9),
        (95, 10),
        (100, 10),
    ])
    def test_rank_convention(self, p, expected):
        """Test index = ceil(p/100 * n) - 1, clamped to the sample."""
        assert percentile(list(range(1, 11)), p) == expected

    def test_empty(self):
        assert percentile([], 50) == 0

    def test_single_value(self):
        assert percentile([7], 95) == 7

    def test_summary_keys(self):
        summary = percentile_summary([1, 2, 3, 4])
        assert set(summary) == {"p50", "p70", "p85", "p95"}
        assert summary["p50"] == 2
        assert median([1, 2, 3, 4]) == 2


class TestAverage:
    def test_empty_is_zero(self):
        assert average([]) == 0

    def test_generator_input(self):
        assert average(x for x in [2, 4]) == 3


class TestPercentage:
    def test_rounded_to_one_decimal(self):
        assert percentage(1, 3) == 33.3

    def test_zero_denominator(self):
        assert percentage(5, 0) == 0

    def test_cap(self):
        assert percentage(3, 2, cap=100) == 100
        assert percentage(3, 2) == 150


class TestCeilDays:
    def test_partial_day_rounds_up(self):
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert ceil_days(start, start + timedelta(days=2, hours=1)) == 3

    def test_same_instant(self):
        start = datetime(2024, 1, 1, tzinfo=timezone.utc)
        assert ceil_days(start, start) == 0

    def test_missing_date(self):
        assert ceil_days(None, datetime(2024, 1, 1, tzinfo=timezone.utc)) is None
