"""
FastAPI route: Predictions — short-range level projections for one gauge.

Endpoints:
    GET /api/v1/predictions/{station_id}

Projection uses the last two points of a 6 hour history; the upstream
trigger reports when the gauge feeding this one is at minor flood or above.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Path

from gauge.app.api.deps import enforce_rate_limit, get_services, known_station
from gauge.app.hydro.predictions import project_levels, upstream_link, upstream_trigger
from gauge.app.pipeline.services import Services

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/v1/predictions",
    tags=["predictions"],
    dependencies=[Depends(enforce_rate_limit)],
)

HISTORY_HOURS = 6


@router.get("/{station_id}")
async def get_predictions(
    station_id: str = Path(..., description="Gauge id, e.g. 130207A"),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    station_id = known_station(station_id)
    orchestrator = services.orchestrator

    detail = await orchestrator.station_detail(station_id, HISTORY_HOURS)
    reading = detail.reading if detail else None

    trigger = None
    link = upstream_link(station_id)
    if link is not None:
        upstream = await orchestrator.aggregate([link.upstream_id])
        levels = {sid: r.value for sid, r in upstream.readings.items() if r is not None}
        trigger = upstream_trigger(station_id, levels)

    if reading is None:
        logger.info("No current reading for %s, predictions unavailable", station_id,
                    extra={"station_id": station_id})
        predictions = []
    else:
        predictions = [p.to_dict() for p in project_levels(reading.value, detail.history)]

    return {
        "station_id": station_id,
        "current_level": reading.value if reading else None,
        "predictions": predictions,
        "upstream_trigger": trigger.to_dict() if trigger else None,
        "source": reading.source if reading else None,
    }
