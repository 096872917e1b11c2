"""
Injectable wall clock.

Services that reason about elapsed time (rate limiter, cache gateway,
freshness filter) take a ``Clock`` so tests can move time without sleeping.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current instant, timezone-aware UTC."""
    return datetime.now(timezone.utc)


def to_epoch_ms(instant: datetime) -> int:
    return int(instant.timestamp() * 1000)
