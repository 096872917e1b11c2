"""
Trend calculator — rate of change and rising/falling/stable from level samples.

Algorithm:
    latest   = newest sample
    previous = sample LOOKBACK_SAMPLES positions earlier (or the oldest one)
               which is ~1 hour back at the usual 15-minute cadence
    Δh       = (latest.t - previous.t) in hours

    fewer than 2 samples, or Δh <= 0.1  →  stable, 0
    rate = Δlevel / Δh
    |rate| < NOISE_FLOOR               →  stable, 0
    otherwise rising / falling by sign, rate rounded to 2 decimals

Both BOM and WMIP readings go through this one function so their trend
labels are comparable.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from gauge.app.hydro.models import HistoryPoint, Trend

LOOKBACK_SAMPLES = 4
MIN_DELTA_HOURS = 0.1
NOISE_FLOOR = 0.01  # m/h


@dataclass(frozen=True)
class TrendResult:
    trend: Trend
    change_rate: float


STABLE = TrendResult(Trend.STABLE, 0.0)


def compute_trend(samples: Sequence[HistoryPoint]) -> TrendResult:
    """Classify the recent trend of an already quality-filtered series."""
    if len(samples) < 2:
        return STABLE

    ordered = sorted(samples, key=lambda p: p.timestamp)
    latest = ordered[-1]
    previous = ordered[max(0, len(ordered) - 1 - LOOKBACK_SAMPLES)]

    delta_hours = (latest.timestamp - previous.timestamp).total_seconds() / 3600
    if delta_hours <= MIN_DELTA_HOURS:
        return STABLE

    rate = (latest.level - previous.level) / delta_hours
    if abs(rate) < NOISE_FLOOR:
        return STABLE

    return TrendResult(Trend.RISING if rate > 0 else Trend.FALLING, round(rate, 2))
