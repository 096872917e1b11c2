"""
test_trend_status.py — Trend calculator and flood status classifier.

Run with:
    pytest tests/test_trend_status.py -v
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from conftest import T0, _make_series
from gauge.app.hydro.models import FloodStatus, FloodThresholds, HistoryPoint, Trend
from gauge.app.hydro.stations import get_thresholds
from gauge.app.hydro.status import DEFAULT_THRESHOLDS, classify_status
from gauge.app.hydro.trend import STABLE, compute_trend


# ═══════════════════════════════════════════════════════════════════════════
# Trend
# ═══════════════════════════════════════════════════════════════════════════

class TestComputeTrend:

    def test_rising_over_one_hour(self):
        # 5 samples at 15 minutes: latest vs 4 back spans exactly 1 h
        series = _make_series([2.0, 2.1, 2.2, 2.3, 2.5])
        result = compute_trend(series)
        assert result.trend is Trend.RISING
        assert result.change_rate == 0.5

    def test_falling(self):
        series = _make_series([3.0, 2.9, 2.8, 2.7, 2.6])
        result = compute_trend(series)
        assert result.trend is Trend.FALLING
        assert result.change_rate == -0.4

    def test_uses_sample_four_positions_back(self):
        # the oldest point is ignored once more than 5 samples exist
        series = _make_series([0.0, 2.0, 2.0, 2.0, 2.0, 2.25])
        result = compute_trend(series)
        assert result.change_rate == 0.25

    def test_falls_back_to_oldest_with_few_samples(self):
        series = _make_series([1.0, 1.5], step_minutes=60)
        result = compute_trend(series)
        assert result.trend is Trend.RISING
        assert result.change_rate == 0.5

    def test_single_sample_is_stable(self):
        assert compute_trend(_make_series([4.0])) == STABLE

    def test_empty_is_stable(self):
        assert compute_trend([]) == STABLE

    def test_short_span_is_stable(self):
        # 6 minutes between points is under the 0.1 h floor
        series = _make_series([1.0, 3.0], step_minutes=6)
        assert compute_trend(series) == STABLE

    def test_noise_below_floor_is_stable(self):
        series = _make_series([2.000, 2.001, 2.002, 2.003, 2.005])
        assert compute_trend(series) == STABLE

    def test_floor_checked_before_rounding(self):
        # 0.007 m/h would round up to 0.01 but stays under the floor
        series = _make_series([2.000, 2.002, 2.004, 2.006, 2.007])
        result = compute_trend(series)
        assert result.trend is Trend.STABLE
        assert result.change_rate == 0.0

    def test_unsorted_input_is_ordered(self):
        series = _make_series([2.0, 2.1, 2.2, 2.3, 2.5])
        result = compute_trend(list(reversed(series)))
        assert result.trend is Trend.RISING

    def test_rate_rounded_to_two_decimals(self):
        points = [HistoryPoint(T0 - timedelta(hours=3), 1.0), HistoryPoint(T0, 2.0)]
        assert compute_trend(points).change_rate == 0.33


# ═══════════════════════════════════════════════════════════════════════════
# Status
# ═══════════════════════════════════════════════════════════════════════════

class TestClassifyStatus:
    T = FloodThresholds(minor=4.5, moderate=6.0, major=8.0)

    @pytest.mark.parametrize("level,expected", [
        (0.0, FloodStatus.SAFE),
        (4.49, FloodStatus.SAFE),
        (4.5, FloodStatus.WATCH),
        (5.99, FloodStatus.WATCH),
        (6.0, FloodStatus.WARNING),
        (7.99, FloodStatus.WARNING),
        (8.0, FloodStatus.DANGER),
        (15.0, FloodStatus.DANGER),
    ])
    def test_boundaries_belong_to_higher_tier(self, level, expected):
        assert classify_status(level, self.T) is expected

    def test_negative_level_is_safe(self):
        assert classify_status(-1.2, self.T) is FloodStatus.SAFE

    def test_default_thresholds(self):
        assert classify_status(4.0) is FloodStatus.WATCH
        assert classify_status(3.99) is FloodStatus.SAFE
        assert DEFAULT_THRESHOLDS == FloodThresholds(4.0, 6.0, 8.0)

    def test_unknown_station_uses_default(self):
        assert get_thresholds("999999Z") == DEFAULT_THRESHOLDS

    def test_known_station_thresholds(self):
        assert get_thresholds("130207A") == FloodThresholds(4.5, 6.0, 8.0)

    def test_status_rank_order(self):
        ranks = [s.rank for s in (FloodStatus.SAFE, FloodStatus.WATCH, FloodStatus.WARNING, FloodStatus.DANGER)]
        assert ranks == sorted(ranks)
