"""
FastAPI route: Rainfall — Open-Meteo rainfall summaries.

Endpoints:
    GET /api/v1/rainfall?lat=&lng=&name=  — one location
    GET /api/v1/rainfall                  — statewide aggregate (cached)
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from gauge.app.api.deps import enforce_rate_limit, get_services, validate_coordinates
from gauge.app.core.errors import ExternalServiceError
from gauge.app.pipeline.services import Services

router = APIRouter(
    prefix="/api/v1/rainfall",
    tags=["rainfall"],
    dependencies=[Depends(enforce_rate_limit)],
)


@router.get("")
async def get_rainfall(
    lat: Optional[float] = Query(None, description="Latitude in degrees"),
    lng: Optional[float] = Query(None, description="Longitude in degrees"),
    name: Optional[str] = Query(None, max_length=100, description="Display name for the location"),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    coords = validate_coordinates(lat, lng)

    if coords is None:
        summary = await services.rainfall.summary()
        if summary is None:
            raise ExternalServiceError("open-meteo", "rainfall unavailable for every sample location")
        return {"scope": "statewide", "data": summary}

    result = await services.open_meteo.fetch_rainfall(coords[0], coords[1], name)
    if not result.success or result.data is None:
        raise ExternalServiceError("open-meteo", result.error_message, status=result.status.value)
    return {"scope": "location", "data": result.data.to_dict()}
