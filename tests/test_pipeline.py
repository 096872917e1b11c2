"""
test_pipeline.py — Cached water level snapshot, statewide rainfall and cache warm.

Run with:
    pytest tests/test_pipeline.py -v
"""

from __future__ import annotations

import asyncio
from typing import Dict, List, Optional

import pytest

from conftest import T0, FakeProvider, _make_reading
from gauge.app.core.cache import CacheGateway, MemoryCacheBackend
from gauge.app.hydro.models import SampleLocation
from gauge.app.hydro.stations import get_station
from gauge.app.pipeline.orchestrator import SourceOrchestrator
from gauge.app.pipeline.rainfall import StatewideRainfallService, summarise_statewide
from gauge.app.pipeline.warm import start_warm_task, stop_warm_task, warm_caches
from gauge.app.pipeline.water_levels import WaterLevelService
from gauge.app.sources.base import FetchStatus, ProviderResult
from gauge.app.sources.open_meteo import RainfallSummary

STATION_IDS = ["130207A", "130212A"]


def _make_water_levels(clock, readings: Dict[str, object]):
    provider = FakeProvider("bom", readings)
    orchestrator = SourceOrchestrator([provider], clock=clock)
    service = WaterLevelService(
        orchestrator,
        CacheGateway("water_levels", MemoryCacheBackend(), clock),
        stations=[get_station(sid) for sid in STATION_IDS],
        dams=[],
        clock=clock,
    )
    return service, provider


def _summary(name: str, current: float = 0.0, last_24h: float = 0.0, last_7d: float = 0.0,
             next_24h: float = 0.0, next_7d: float = 0.0) -> RainfallSummary:
    return RainfallSummary(name, -23.0, 148.0, current, last_24h, last_7d, next_24h, next_7d, T0)


class _FakeOpenMeteo:
    name = "open-meteo"

    def __init__(self, summaries: Dict[str, RainfallSummary]):
        self.summaries = summaries
        self.calls: List[str] = []

    async def fetch_rainfall(self, latitude, longitude, name=None):
        self.calls.append(name)
        summary = self.summaries.get(name)
        if isinstance(summary, Exception):
            raise summary
        if summary is None:
            return ProviderResult.failure(self.name, FetchStatus.TIMEOUT, "open-meteo request timed out")
        return ProviderResult.ok(self.name, summary)


def _locations(*names: str) -> List[SampleLocation]:
    return [SampleLocation(n, -23.0, 148.0) for n in names]


def _make_rainfall(clock, summaries, names):
    client = _FakeOpenMeteo(summaries)
    service = StatewideRainfallService(
        client,
        CacheGateway("statewide_rainfall", MemoryCacheBackend(), clock),
        locations=_locations(*names),
        clock=clock,
    )
    return service, client


# ═══════════════════════════════════════════════════════════════════════════
# Water level snapshot
# ═══════════════════════════════════════════════════════════════════════════

class TestWaterLevelSnapshot:

    @pytest.mark.asyncio
    async def test_payload(self, clock):
        service, _ = _make_water_levels(clock, {"130207A": _make_reading("130207A", 2.0)})
        data = await service.snapshot()

        assert data["sources"] == ["bom"]
        assert [g["station"]["id"] for g in data["gauges"]] == STATION_IDS
        sandy = data["gauges"][0]
        assert sandy["status"] == "safe"
        assert sandy["reading"]["value"] == 2.0
        assert sandy["thresholds"]["minor"] == 4.5
        assert data["gauges"][1]["reading"] is None
        assert data["highest_status"] == "safe"
        assert data["elevated"] is False
        assert data["last_updated"] == T0.isoformat()

    @pytest.mark.asyncio
    async def test_served_from_cache_before_stale(self, clock):
        service, provider = _make_water_levels(clock, {"130207A": _make_reading()})
        await service.snapshot()
        clock.advance(seconds=120)
        await service.snapshot()
        assert len(provider.calls) == 2
        assert service.background_refresh is None

    @pytest.mark.asyncio
    async def test_stale_snapshot_served_while_refreshing_in_background(self, clock):
        service, provider = _make_water_levels(clock, {"130207A": _make_reading()})
        first = await service.snapshot()

        clock.advance(seconds=150)
        stale = await service.snapshot()
        task = service.background_refresh
        again = await service.snapshot()

        assert stale == first
        assert again == first
        assert task is not None
        assert service.background_refresh is task

        await task
        assert len(provider.calls) == 4
        fresh = await service.snapshot()
        assert fresh["last_updated"] == clock().isoformat()
        assert len(provider.calls) == 4

    @pytest.mark.asyncio
    async def test_background_refresh_failure_is_logged(self, clock, caplog):
        service, _ = _make_water_levels(clock, {"130207A": _make_reading()})
        first = await service.snapshot()

        async def broken():
            raise RuntimeError("cache write failed")

        service.refresh = broken
        clock.advance(seconds=150)
        with caplog.at_level("ERROR"):
            assert await service.snapshot() == first
            await service.background_refresh
        assert any("Background water level refresh failed" in r.getMessage() for r in caplog.records)
        assert not service.refreshing

    @pytest.mark.asyncio
    async def test_aclose_cancels_background_refresh(self, clock):
        service, _ = _make_water_levels(clock, {"130207A": _make_reading()})
        await service.snapshot()
        gate = asyncio.Event()

        async def slow():
            await gate.wait()

        service.refresh = slow
        clock.advance(seconds=150)
        await service.snapshot()
        task = service.background_refresh
        await asyncio.sleep(0)
        await service.aclose()
        assert task.cancelled()
        assert service.background_refresh is None

    @pytest.mark.asyncio
    async def test_rebuilt_after_max_age(self, clock):
        service, provider = _make_water_levels(clock, {"130207A": _make_reading()})
        await service.snapshot()
        clock.advance(seconds=181)
        await service.snapshot()
        assert len(provider.calls) == 4

    @pytest.mark.asyncio
    async def test_elevated_snapshot_expires_sooner(self, clock):
        service, provider = _make_water_levels(clock, {"130207A": _make_reading("130207A", 4.6)})
        first = await service.snapshot()
        assert first["elevated"] is True
        assert first["highest_status"] == "watch"

        clock.advance(seconds=59)
        await service.snapshot()
        assert len(provider.calls) == 2

        clock.advance(seconds=2)
        await service.snapshot()
        assert len(provider.calls) == 4

    @pytest.mark.asyncio
    async def test_concurrent_misses_refresh_once(self, clock):
        service, provider = _make_water_levels(clock, {"130207A": _make_reading()})
        first, second = await asyncio.gather(service.snapshot(), service.snapshot())
        assert first == second
        assert len(provider.calls) == len(STATION_IDS)

    @pytest.mark.asyncio
    async def test_no_data_snapshot(self, clock):
        service, _ = _make_water_levels(clock, {})
        data = await service.snapshot()
        assert data["sources"] == ["unavailable"]
        assert data["highest_status"] is None


# ═══════════════════════════════════════════════════════════════════════════
# Statewide rainfall
# ═══════════════════════════════════════════════════════════════════════════

class TestSummariseStatewide:

    def test_spread_and_counts(self):
        locs = _locations("A", "B")
        samples = [
            (locs[0], _summary("A", current=0.0, last_24h=10, last_7d=20, next_24h=5, next_7d=30)),
            (locs[1], _summary("B", current=2.0, last_24h=20, last_7d=40, next_24h=15, next_7d=50)),
        ]
        data = summarise_statewide(samples, T0.isoformat())

        assert data["current"] == {"precipitation": 1.0, "is_raining": True, "raining_locations": 1}
        assert data["last_24_hours"] == {"min": 10, "max": 20, "avg": 15.0}
        assert data["next_7_days"] == {"min": 30, "max": 50, "avg": 40.0}
        assert data["last_7_days"] == 30.0
        assert data["sample_count"] == 2
        assert [r["name"] for r in data["regions"]] == ["A", "B"]


class TestStatewideRainfallService:

    @pytest.mark.asyncio
    async def test_failed_samples_excluded(self, clock):
        summaries = {"A": _summary("A", last_24h=8.0)}
        service, client = _make_rainfall(clock, summaries, ["A", "B", "C"])
        data = await service.summary()

        assert data["sample_count"] == 1
        assert data["last_24_hours"]["avg"] == 8.0
        assert client.calls == ["A", "B", "C"]

    @pytest.mark.asyncio
    async def test_raising_location_counted_as_failed(self, clock):
        summaries = {"A": _summary("A", last_24h=4.0), "B": AttributeError("bad payload")}
        service, _ = _make_rainfall(clock, summaries, ["A", "B"])
        data = await service.summary()
        assert data["sample_count"] == 1

    @pytest.mark.asyncio
    async def test_concurrent_misses_refresh_once(self, clock):
        service, client = _make_rainfall(clock, {"A": _summary("A")}, ["A"])
        first, second = await asyncio.gather(service.summary(), service.summary())
        assert first == second
        assert client.calls == ["A"]

    @pytest.mark.asyncio
    async def test_all_failed_is_none_and_not_cached(self, clock):
        service, _ = _make_rainfall(clock, {}, ["A", "B"])
        assert await service.summary() is None
        assert await service.gateway.get(service.max_age_ms) is None

    @pytest.mark.asyncio
    async def test_cached_for_ten_minutes(self, clock):
        service, client = _make_rainfall(clock, {"A": _summary("A")}, ["A"])
        await service.summary()
        clock.advance(seconds=600)
        await service.summary()
        assert client.calls == ["A"]

        clock.advance(seconds=1)
        await service.summary()
        assert client.calls == ["A", "A"]

    @pytest.mark.asyncio
    async def test_all_locations_queried_in_batches(self, clock):
        names = [f"L{i}" for i in range(12)]
        service, client = _make_rainfall(clock, {n: _summary(n) for n in names}, names)
        data = await service.refresh()
        assert client.calls == names
        assert data["sample_count"] == 12


# ═══════════════════════════════════════════════════════════════════════════
# Cache warm
# ═══════════════════════════════════════════════════════════════════════════

class _Refreshable:
    def __init__(self, outcome: Optional[object] = None, error: Optional[Exception] = None):
        self.outcome = outcome
        self.error = error
        self.refreshed = 0

    async def refresh(self):
        self.refreshed += 1
        if self.error:
            raise self.error
        return self.outcome


class TestCacheWarm:

    @pytest.mark.asyncio
    async def test_failure_in_one_does_not_stop_the_other(self, caplog):
        water = _Refreshable(error=RuntimeError("bom down"))
        rain = _Refreshable(outcome={"sample_count": 1})
        with caplog.at_level("ERROR"):
            await warm_caches(water, rain)
        assert water.refreshed == 1
        assert rain.refreshed == 1
        assert any("water_levels" in r.getMessage() for r in caplog.records)

    @pytest.mark.asyncio
    async def test_fills_caches(self, clock):
        water, _ = _make_water_levels(clock, {"130207A": _make_reading()})
        rain, _ = _make_rainfall(clock, {"A": _summary("A")}, ["A"])
        task = start_warm_task(water, rain)
        await task
        assert await water.gateway.get(water.max_age_ms) is not None
        assert await rain.gateway.get(rain.max_age_ms) is not None

    @pytest.mark.asyncio
    async def test_stop_cancels_running_task(self):
        gate = asyncio.Event()

        class _Slow:
            async def refresh(self):
                await gate.wait()

        task = start_warm_task(_Slow(), _Slow())
        await asyncio.sleep(0)
        await stop_warm_task(task)
        assert task.cancelled()

    @pytest.mark.asyncio
    async def test_stop_without_task(self):
        await stop_warm_task(None)
