"""
FastAPI route: Water Levels — reconciled gauge readings for the basin.

Endpoints:
    GET /api/v1/water-levels                — cached snapshot, all gauges
    GET /api/v1/water-levels?station=<id>   — snapshot filtered to one gauge
    GET /api/v1/water-levels/{station_id}   — reading plus level history
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Path, Query

from gauge.app.api.deps import enforce_rate_limit, get_services, known_station
from gauge.app.core.errors import NotFoundError
from gauge.app.pipeline.services import Services

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/water-levels",
    tags=["water-levels"],
    dependencies=[Depends(enforce_rate_limit)],
)


@router.get("")
async def list_water_levels(
    station: Optional[str] = Query(None, description="Restrict to one station id"),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    snapshot = await services.water_levels.snapshot()
    if station is None:
        return snapshot

    station_id = known_station(station)
    return {
        **snapshot,
        "gauges": [g for g in snapshot["gauges"] if g["station_id"] == station_id],
    }


@router.get("/{station_id}")
async def station_water_level(
    station_id: str = Path(..., description="Gauge id, e.g. 130207A"),
    hours: int = Query(24, ge=1, le=168, description="History lookback in hours"),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    station_id = known_station(station_id)
    detail = await services.orchestrator.station_detail(station_id, hours)
    if detail is None:
        raise NotFoundError("Station", station_id=station_id)
    return detail.to_dict()
