"""
Water level snapshot — the dashboard's main payload, cached.

The snapshot bundles the reconciled readings, BOM discharge and rainfall,
dam storage and the static station metadata. It is cached as plain JSON
data so the Redis backend can hold it.

Freshness:
    normal    3 minutes
    elevated  1 minute while any station is at watch or above
    stale     after 2 minutes the cached snapshot is still served, and one
              background refresh is started if none is running
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

from gauge.app.core.cache import CacheEntry, CacheGateway
from gauge.app.core.clock import Clock, utc_now
from gauge.app.hydro.models import DamStation, FloodStatus, Station
from gauge.app.hydro.stations import DAM_STATIONS, GAUGE_STATIONS, get_thresholds
from gauge.app.pipeline.orchestrator import SourceOrchestrator

logger = logging.getLogger(__name__)

CACHE_KEY = "water_levels"


class WaterLevelService:
    def __init__(
        self,
        orchestrator: SourceOrchestrator,
        gateway: CacheGateway,
        *,
        stations: Sequence[Station] = GAUGE_STATIONS,
        dams: Sequence[DamStation] = DAM_STATIONS,
        max_age_seconds: int = 180,
        elevated_max_age_seconds: int = 60,
        stale_after_seconds: int = 120,
        clock: Clock = utc_now,
    ):
        self.orchestrator = orchestrator
        self.gateway = gateway
        self.stations = list(stations)
        self.dams = list(dams)
        self.max_age_ms = max_age_seconds * 1000
        self.elevated_max_age_ms = elevated_max_age_seconds * 1000
        self.stale_after_ms = stale_after_seconds * 1000
        self._clock = clock
        self._refresh_lock = asyncio.Lock()
        self.background_refresh: Optional[asyncio.Task] = None

    async def _cached(self) -> Optional[CacheEntry]:
        entry = await self.gateway.get(self.max_age_ms)
        if entry is None:
            return None
        if entry.data.get("elevated") and entry.age_ms(self._clock()) > self.elevated_max_age_ms:
            logger.debug("Elevated snapshot older than %ds, refreshing", self.elevated_max_age_ms // 1000)
            return None
        return entry

    def _is_stale(self, entry: CacheEntry) -> bool:
        return entry.age_ms(self._clock()) > self.stale_after_ms

    async def snapshot(self) -> Dict[str, Any]:
        """Cached snapshot if not expired, otherwise a newly built one."""
        cached = await self._cached()
        if cached is not None:
            if self._is_stale(cached):
                self._schedule_refresh()
            return cached.data
        async with self._refresh_lock:
            # another request may have refreshed while we waited
            cached = await self._cached()
            if cached is not None:
                return cached.data
            return await self.refresh()

    @property
    def refreshing(self) -> bool:
        return self.background_refresh is not None and not self.background_refresh.done()

    def _schedule_refresh(self) -> None:
        if self.refreshing:
            logger.debug("Background water level refresh already running")
            return
        logger.info("Water level snapshot is stale, refreshing in background")
        self.background_refresh = asyncio.create_task(self._refresh_in_background(), name="water-levels-refresh")

    async def _refresh_in_background(self) -> None:
        async with self._refresh_lock:
            cached = await self._cached()
            if cached is not None and not self._is_stale(cached):
                return
            try:
                await self.refresh()
            except Exception:
                logger.exception("Background water level refresh failed")

    async def aclose(self) -> None:
        """Cancel a running background refresh."""
        task, self.background_refresh = self.background_refresh, None
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.info("Background water level refresh cancelled on shutdown")

    async def refresh(self) -> Dict[str, Any]:
        """Rebuild the snapshot from the providers and store it."""
        ids = [s.id for s in self.stations]
        aggregate = await self.orchestrator.aggregate(ids)
        extended, dams = await asyncio.gather(
            self.orchestrator.fetch_extended(ids),
            self.orchestrator.fetch_dam_storage(self.dams),
        )

        gauges: List[Dict[str, Any]] = []
        for station in self.stations:
            discharge = extended.discharge.get(station.id)
            rainfall = extended.rainfall.get(station.id)
            gauges.append({
                "station": station.to_dict(),
                "thresholds": get_thresholds(station.id).to_dict(),
                **aggregate.station_payload(station.id),
                "discharge": discharge.to_dict() if discharge else None,
                "rainfall": rainfall.to_dict() if rainfall else None,
            })

        highest = aggregate.highest_status
        elevated = highest is not None and highest.rank >= FloodStatus.WATCH.rank
        data = {
            "last_updated": self._clock().isoformat(),
            "gauges": gauges,
            "sources": aggregate.sources,
            "errors": aggregate.errors + extended.errors,
            "dam_storage": [d.to_dict() for d in dams],
            "highest_status": highest.value if highest else None,
            "elevated": elevated,
        }
        await self.gateway.set(data)
        logger.info(
            "Water level snapshot rebuilt: %d/%d readings, highest status %s",
            aggregate.reading_count, len(ids), data["highest_status"],
        )
        return data
