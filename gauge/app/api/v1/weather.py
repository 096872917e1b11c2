"""
FastAPI route: Weather — current conditions from Open-Meteo.

Endpoints:
    GET /api/v1/weather?lat=&lng=  — defaults to Clermont
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from gauge.app.api.deps import enforce_rate_limit, get_services, validate_coordinates
from gauge.app.core.errors import ExternalServiceError
from gauge.app.hydro.stations import CLERMONT
from gauge.app.pipeline.services import Services

router = APIRouter(
    prefix="/api/v1/weather",
    tags=["weather"],
    dependencies=[Depends(enforce_rate_limit)],
)


@router.get("")
async def get_weather(
    lat: Optional[float] = Query(None, description="Latitude in degrees"),
    lng: Optional[float] = Query(None, description="Longitude in degrees"),
    services: Services = Depends(get_services),
) -> Dict[str, Any]:
    latitude, longitude = validate_coordinates(lat, lng) or (CLERMONT.latitude, CLERMONT.longitude)

    result = await services.open_meteo.fetch_weather(latitude, longitude)
    if not result.success or result.data is None:
        raise ExternalServiceError("open-meteo", result.error_message, status=result.status.value)
    return result.data.to_dict()
