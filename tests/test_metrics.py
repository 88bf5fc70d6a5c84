"""Tests for the numeric helpers.

Tests:
- Margins (A/B, top-2, consecutive) and their edge cases
- Percent change and lookups over time series
- Volatility, all-time highs and formatting
- Bucket helpers
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from defi_quiz.core.metrics import (
    SECONDS_PER_DAY,
    ab_margin,
    boundary_margin,
    chain_count_bucket,
    change_bucket,
    concentration_bucket,
    consecutive_margins,
    find_all_time_high,
    find_value_at_or_before,
    format_change,
    format_month,
    format_usd,
    format_yyyymm,
    has_min_separation,
    has_new_high_in_days,
    interpret_volatility,
    percent_change,
    top2_margin,
    tvl_band,
    tvl_rank_bucket,
    volatility_score,
)


def _ts(date: str) -> float:
    return datetime.strptime(date, "%Y-%m-%d").replace(tzinfo=timezone.utc).timestamp()


# ---------------------------------------------------------------------------
# Margins
# ---------------------------------------------------------------------------


class TestMargins:
    def test_ab_margin_scenario(self):
        assert ab_margin(100, 50) == pytest.approx(0.5)

    def test_ab_margin_symmetric(self):
        assert ab_margin(30, 70) == ab_margin(70, 30)

    def test_ab_margin_equal_values(self):
        assert ab_margin(10, 10) == 0

    def test_ab_margin_non_positive(self):
        assert ab_margin(0, 0) is None
        assert ab_margin(-5, -1) is None

    def test_top2_margin_scenario(self):
        assert top2_margin([100, 80, 60]) == pytest.approx(0.2)

    def test_top2_margin_too_short(self):
        assert top2_margin([100]) is None
        assert top2_margin([0, 0]) is None

    def test_consecutive_margins(self):
        margins = consecutive_margins([100, 50, 25])
        assert margins == pytest.approx([0.5, 0.5])

    def test_min_separation(self):
        assert has_min_separation([100, 50, 25], 0.4)
        assert not has_min_separation([100, 95, 25], 0.4)

    def test_boundary_margin(self):
        assert boundary_margin(0.05, (-0.1, 0.0, 0.1), scale=4) == pytest.approx(0.2)

    def test_boundary_margin_clamped(self):
        assert boundary_margin(10.0, (0.0,), scale=4) == 1.0

    def test_boundary_margin_relative(self):
        # 2B vs the 1B boundary: (2B - 1B) / 2B
        assert boundary_margin(2e9, (1e9,), relative=True) == pytest.approx(0.5)


# ---------------------------------------------------------------------------
# Series
# ---------------------------------------------------------------------------


class TestSeries:
    def test_value_at_or_before(self):
        series = [(10.0, 1.0), (20.0, 2.0), (30.0, 3.0)]
        assert find_value_at_or_before(series, 25) == (20.0, 2.0)
        assert find_value_at_or_before(series, 30) == (30.0, 3.0)
        assert find_value_at_or_before(series, 5) is None
        assert find_value_at_or_before([], 5) is None

    def test_percent_change(self):
        series = [(0.0, 100.0), (30 * SECONDS_PER_DAY, 110.0)]
        assert percent_change(series, 30) == pytest.approx(0.1)

    def test_percent_change_needs_two_points(self):
        assert percent_change([(0.0, 100.0)], 30) is None

    def test_percent_change_zero_base(self):
        series = [(0.0, 0.0), (30 * SECONDS_PER_DAY, 110.0)]
        assert percent_change(series, 30) is None

    def test_all_time_high_first_max(self):
        assert find_all_time_high([(1.0, 5.0), (2.0, 9.0), (3.0, 9.0)]) == (9.0, 2.0)

    def test_all_time_high_empty(self):
        assert find_all_time_high([]) is None

    def test_new_high_in_days(self):
        rising = [(i * SECONDS_PER_DAY, float(i + 1)) for i in range(200)]
        falling = [(i * SECONDS_PER_DAY, float(200 - i)) for i in range(200)]
        assert has_new_high_in_days(rising, 90)
        assert not has_new_high_in_days(falling, 90)


class TestVolatility:
    def test_flat_series(self):
        assert volatility_score([100.0] * 40, 30) == 0.0

    def test_too_short(self):
        assert volatility_score([100.0] * 5, 30) is None

    def test_saturates_for_large_swings(self):
        values = [100.0, 130.0] * 20
        assert volatility_score(values, 30) == 1.0

    def test_interpretation(self):
        assert interpret_volatility(0.1) == "low"
        assert interpret_volatility(0.5) == "moderate"
        assert interpret_volatility(0.9) == "high"


# ---------------------------------------------------------------------------
# Formatting and buckets
# ---------------------------------------------------------------------------


class TestFormatting:
    def test_format_usd(self):
        assert format_usd(1.2e9) == "$1.2B"
        assert format_usd(350e6) == "$350M"
        assert format_usd(12_000) == "$12K"
        assert format_usd(900) == "$900"

    def test_format_change(self):
        assert format_change(0.123) == "+12.3%"
        assert format_change(-0.05) == "-5.0%"

    def test_months(self):
        assert format_month(_ts("2024-03-15")) == "Mar 2024"
        assert format_yyyymm(_ts("2024-03-15")) == "2024-03"


class TestBuckets:
    def test_tvl_band(self):
        assert tvl_band(12e9) == "$10B+"
        assert tvl_band(750e6) == "$500M-$1B"
        assert tvl_band(10e6) == "<$50M"

    def test_chain_count_bucket(self):
        assert chain_count_bucket(1) == "single-chain"
        assert chain_count_bucket(5) == "2-5 chains"
        assert chain_count_bucket(11) == "10+ chains"

    def test_change_bucket(self):
        assert change_bucket(0.0) == "roughly flat"
        assert change_bucket(0.2) == "up >10%"
        assert change_bucket(-0.05) == "down 1-10%"

    def test_concentration_bucket(self):
        assert concentration_bucket(0.8) == ">75%"
        assert concentration_bucket(0.1) == "<25%"

    def test_rank_bucket(self):
        assert tvl_rank_bucket(5) == "top 5"
        assert tvl_rank_bucket(60) == "top 100"
