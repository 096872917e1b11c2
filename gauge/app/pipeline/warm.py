"""
Background cache warm on startup.

Fills the water level snapshot and the statewide rainfall aggregate so the
first dashboard request is served from cache. Runs as a detached asyncio
task; request handling never waits on it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Optional

from gauge.app.pipeline.rainfall import StatewideRainfallService
from gauge.app.pipeline.water_levels import WaterLevelService

logger = logging.getLogger(__name__)


async def warm_caches(
    water_levels: WaterLevelService, rainfall: StatewideRainfallService,
) -> None:
    start = time.perf_counter()
    logger.info("Warming caches")
    results = await asyncio.gather(
        water_levels.refresh(), rainfall.refresh(), return_exceptions=True,
    )
    for name, outcome in zip(("water_levels", "statewide_rainfall"), results):
        if isinstance(outcome, Exception):
            logger.error("Cache warm failed for %s: %s", name, outcome, exc_info=outcome)
        elif outcome is None:
            logger.warning("Cache warm produced no data for %s", name)
    logger.info(
        "Cache warm finished in %.1fs", time.perf_counter() - start,
        extra={"duration_ms": int((time.perf_counter() - start) * 1000)},
    )


def start_warm_task(
    water_levels: WaterLevelService, rainfall: StatewideRainfallService,
) -> asyncio.Task:
    return asyncio.create_task(warm_caches(water_levels, rainfall), name="cache-warm")


async def stop_warm_task(task: Optional[asyncio.Task]) -> None:
    if task is None or task.done():
        return
    task.cancel()
    try:
        await task
    except asyncio.CancelledError:
        logger.info("Cache warm cancelled on shutdown")
