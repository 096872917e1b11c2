"""Status classifier — level + flood class thresholds → severity."""

from __future__ import annotations

from typing import Optional

from gauge.app.hydro.models import FloodStatus, FloodThresholds

DEFAULT_THRESHOLDS = FloodThresholds(minor=4.0, moderate=6.0, major=8.0)


def classify_status(level: float, thresholds: Optional[FloodThresholds] = None) -> FloodStatus:
    """
    Map a level to a flood tier. Boundaries belong to the higher tier.

    >>> classify_status(6.0, FloodThresholds(4.5, 6.0, 8.0))
    <FloodStatus.WARNING: 'warning'>
    """
    t = thresholds or DEFAULT_THRESHOLDS
    if level >= t.major:
        return FloodStatus.DANGER
    if level >= t.moderate:
        return FloodStatus.WARNING
    if level >= t.minor:
        return FloodStatus.WATCH
    return FloodStatus.SAFE
