"""
Service container — wires provider clients, caches and pipelines from settings.

One ``Services`` instance lives on ``app.state.services`` for the lifetime
of the application. Tests build their own with fake providers and pass it
to ``create_app``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, List

from gauge.app.core.cache import CacheBackend, CacheGateway, build_cache_backend
from gauge.app.core.clock import Clock, utc_now
from gauge.app.core.config import Settings
from gauge.app.core.rate_limit import RateLimiter
from gauge.app.pipeline import rainfall, water_levels
from gauge.app.pipeline.orchestrator import SourceOrchestrator
from gauge.app.pipeline.rainfall import StatewideRainfallService
from gauge.app.pipeline.water_levels import WaterLevelService
from gauge.app.sources.base import HttpProvider, WaterLevelProvider
from gauge.app.sources.bom import BomClient
from gauge.app.sources.open_meteo import OpenMeteoClient
from gauge.app.sources.warnings import WarningsClient
from gauge.app.sources.wmip import WmipClient

logger = logging.getLogger(__name__)


@dataclass
class Services:
    orchestrator: SourceOrchestrator
    water_levels: WaterLevelService
    rainfall: StatewideRainfallService
    open_meteo: OpenMeteoClient
    warnings: WarningsClient
    limiter: RateLimiter
    cache: CacheBackend
    clients: List[HttpProvider]

    async def aclose(self) -> None:
        await asyncio.gather(*(c.close() for c in self.clients))
        await self.cache.close()
        logger.info("Provider clients and cache closed")


def build_services(config: Settings, clock: Clock = utc_now) -> Services:
    bom = BomClient(
        config.BOM_WATERDATA_URL,
        config.BOM_TIMEOUT,
        history_timeout=config.BOM_HISTORY_TIMEOUT,
        capabilities_timeout=config.BOM_CAPABILITIES_TIMEOUT,
        clock=clock,
    )
    wmip = WmipClient(config.WMIP_BASE_URL, config.WMIP_TIMEOUT, clock=clock)
    open_meteo = OpenMeteoClient(config.OPEN_METEO_BASE_URL, config.OPEN_METEO_TIMEOUT, clock=clock)
    warnings = WarningsClient(
        config.BOM_WARNINGS_URL,
        config.WARNINGS_TIMEOUT,
        product_url=config.BOM_PRODUCT_URL,
        demo_mode=config.DEMO_MODE,
        clock=clock,
    )

    by_name: Dict[str, WaterLevelProvider] = {bom.name: bom, wmip.name: wmip}
    unknown = [name for name in config.PROVIDER_PRIORITY if name not in by_name]
    if unknown:
        raise ValueError(f"Unknown providers in PROVIDER_PRIORITY: {', '.join(unknown)}")
    providers = [by_name[name] for name in config.PROVIDER_PRIORITY]

    orchestrator = SourceOrchestrator(
        providers,
        bom=bom,
        clock=clock,
        batch_size=config.FETCH_BATCH_SIZE,
        freshness_hours=config.FRESHNESS_WINDOW_HOURS,
    )
    cache = build_cache_backend(config)

    logger.info(
        "Services built: providers=%s cache=%s demo=%s",
        ",".join(config.PROVIDER_PRIORITY), cache.name, config.DEMO_MODE,
    )
    return Services(
        orchestrator=orchestrator,
        water_levels=WaterLevelService(
            orchestrator,
            CacheGateway(water_levels.CACHE_KEY, cache, clock),
            max_age_seconds=config.WATER_LEVELS_MAX_AGE_SECONDS,
            elevated_max_age_seconds=config.WATER_LEVELS_ELEVATED_MAX_AGE_SECONDS,
            stale_after_seconds=config.WATER_LEVELS_STALE_AFTER_SECONDS,
            clock=clock,
        ),
        rainfall=StatewideRainfallService(
            open_meteo,
            CacheGateway(rainfall.CACHE_KEY, cache, clock),
            batch_size=config.FETCH_BATCH_SIZE,
            max_age_seconds=config.STATEWIDE_RAINFALL_MAX_AGE_SECONDS,
            clock=clock,
        ),
        open_meteo=open_meteo,
        warnings=warnings,
        limiter=RateLimiter(config.RATE_LIMIT_REQUESTS, config.RATE_LIMIT_WINDOW_SECONDS, clock=clock),
        cache=cache,
        clients=[bom, wmip, open_meteo, warnings],
    )
