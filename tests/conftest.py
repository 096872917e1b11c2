"""
Shared fixtures — fake clock, reading factories, mock upstream transports.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional

import httpx
import pytest

from gauge.app.hydro.models import HistoryPoint, Reading, ReadingKind, Trend
from gauge.app.sources.base import FetchStatus, ProviderResult

# 2024-01-15 10:00:00 UTC
T0 = datetime(2024, 1, 15, 10, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


def _make_reading(
    station_id: str = "130207A",
    value: float = 2.5,
    *,
    source: str = "bom",
    timestamp: datetime = T0 - timedelta(minutes=15),
    trend: Trend = Trend.STABLE,
    change_rate: float = 0.0,
) -> Reading:
    return Reading(
        station_id=station_id,
        kind=ReadingKind.LEVEL,
        value=value,
        unit="m",
        timestamp=timestamp,
        source=source,
        trend=trend,
        change_rate=change_rate,
    )


def _make_series(levels: List[float], *, end: datetime = T0, step_minutes: int = 15) -> List[HistoryPoint]:
    """Evenly spaced points ending at ``end``, oldest first."""
    n = len(levels)
    return [
        HistoryPoint(end - timedelta(minutes=step_minutes * (n - 1 - i)), level)
        for i, level in enumerate(levels)
    ]


class FakeProvider:
    """
    In-memory water level provider.

    ``readings`` maps station id → Reading, → (FetchStatus, message)
    for a failure, or → an exception to raise. Unknown stations answer NO_DATA.
    """

    def __init__(
        self,
        name: str,
        readings: Optional[Dict[str, object]] = None,
        history: Optional[Dict[str, List[HistoryPoint]]] = None,
    ):
        self.name = name
        self.readings = readings or {}
        self.history = history or {}
        self.calls: List[str] = []
        self.history_calls: List[tuple] = []

    async def fetch_one(self, station_id: str) -> ProviderResult[Reading]:
        self.calls.append(station_id)
        entry = self.readings.get(station_id)
        if isinstance(entry, Exception):
            raise entry
        if isinstance(entry, Reading):
            return ProviderResult.ok(self.name, entry)
        if isinstance(entry, tuple):
            status, message = entry
            return ProviderResult.failure(self.name, status, message)
        return ProviderResult.failure(self.name, FetchStatus.NO_DATA, f"{self.name} has nothing for {station_id}")

    async def fetch_history(self, station_id: str, lookback_hours: int = 24):
        self.history_calls.append((station_id, lookback_hours))
        points = self.history.get(station_id)
        if points:
            return ProviderResult.ok(self.name, points)
        return ProviderResult.failure(self.name, FetchStatus.NO_DATA, "no history")


def _mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))
