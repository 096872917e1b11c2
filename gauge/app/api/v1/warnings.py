"""
FastAPI route: Warnings — active BOM flood warnings for the basin.

Endpoints:
    GET /api/v1/warnings
"""

from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Depends

from gauge.app.api.deps import enforce_rate_limit, get_services
from gauge.app.pipeline.services import Services

router = APIRouter(
    prefix="/api/v1/warnings",
    tags=["warnings"],
    dependencies=[Depends(enforce_rate_limit)],
)


@router.get("")
async def get_warnings(services: Services = Depends(get_services)) -> Dict[str, Any]:
    report = await services.warnings.fetch_warnings()
    return {**report.to_dict(), "highest_level": report.highest_level}
