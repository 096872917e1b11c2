"""
Statewide rainfall aggregate over the Queensland sample locations.

Sample locations are queried against Open-Meteo in batches of five, and
only the successful samples are aggregated. If every sample fails the
aggregate is None and the route reports an upstream error.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

from gauge.app.core.cache import CacheGateway
from gauge.app.core.clock import Clock, utc_now
from gauge.app.hydro.models import SampleLocation
from gauge.app.hydro.stations import RAINFALL_SAMPLE_LOCATIONS
from gauge.app.pipeline.orchestrator import batched
from gauge.app.sources.base import RAIN_DECIMALS
from gauge.app.sources.open_meteo import OpenMeteoClient, RainfallSummary

logger = logging.getLogger(__name__)

CACHE_KEY = "statewide_rainfall"


def _spread(values: List[float]) -> Dict[str, float]:
    return {
        "min": round(min(values), RAIN_DECIMALS),
        "max": round(max(values), RAIN_DECIMALS),
        "avg": round(sum(values) / len(values), RAIN_DECIMALS),
    }


def summarise_statewide(
    samples: Sequence[Tuple[SampleLocation, RainfallSummary]], fetched_at: str,
) -> Dict[str, Any]:
    """Min/max/avg totals and a per-location breakdown. ``samples`` must be non-empty."""
    summaries = [s for _, s in samples]
    raining = sum(1 for s in summaries if s.is_raining)
    current = [s.current_precipitation for s in summaries]
    return {
        "current": {
            "precipitation": round(sum(current) / len(current), RAIN_DECIMALS),
            "is_raining": raining > 0,
            "raining_locations": raining,
        },
        "last_24_hours": _spread([s.last_24h for s in summaries]),
        "next_24_hours": _spread([s.next_24h for s in summaries]),
        "next_7_days": _spread([s.next_7d for s in summaries]),
        "last_7_days": round(sum(s.last_7d for s in summaries) / len(summaries), RAIN_DECIMALS),
        "regions": [
            {
                "name": loc.name,
                "latitude": loc.latitude,
                "longitude": loc.longitude,
                "last_24_hours": s.last_24h,
                "next_24_hours": s.next_24h,
                "is_raining": s.is_raining,
            }
            for loc, s in samples
        ],
        "sample_count": len(summaries),
        "fetched_at": fetched_at,
    }


class StatewideRainfallService:
    def __init__(
        self,
        client: OpenMeteoClient,
        gateway: CacheGateway,
        *,
        locations: Sequence[SampleLocation] = RAINFALL_SAMPLE_LOCATIONS,
        batch_size: int = 5,
        max_age_seconds: int = 600,
        clock: Clock = utc_now,
    ):
        self.client = client
        self.gateway = gateway
        self.locations = list(locations)
        self.batch_size = batch_size
        self.max_age_ms = max_age_seconds * 1000
        self._clock = clock
        self._refresh_lock = asyncio.Lock()

    async def summary(self) -> Optional[Dict[str, Any]]:
        """Cached aggregate if under the max age, else computed now."""
        entry = await self.gateway.get(self.max_age_ms)
        if entry is not None:
            return entry.data
        async with self._refresh_lock:
            # another request may have refreshed while we waited
            entry = await self.gateway.get(self.max_age_ms)
            if entry is not None:
                return entry.data
            return await self.refresh()

    async def refresh(self) -> Optional[Dict[str, Any]]:
        samples: List[Tuple[SampleLocation, RainfallSummary]] = []
        failed = 0
        for batch in batched(self.locations, self.batch_size):
            results = await asyncio.gather(
                *(self.client.fetch_rainfall(loc.latitude, loc.longitude, loc.name) for loc in batch),
                return_exceptions=True,
            )
            for loc, result in zip(batch, results):
                if isinstance(result, Exception):
                    logger.error("Rainfall fetch for %s raised %s: %s", loc.name, type(result).__name__, result)
                    failed += 1
                elif isinstance(result, BaseException):
                    raise result
                elif result.success and result.data is not None:
                    samples.append((loc, result.data))
                else:
                    failed += 1

        if not samples:
            logger.error("Statewide rainfall failed for all %d locations", len(self.locations))
            return None

        data = summarise_statewide(samples, self._clock().isoformat())
        await self.gateway.set(data)
        logger.info(
            "Statewide rainfall refreshed from %d locations (%d failed)", len(samples), failed,
        )
        return data
