"""
Health check aggregation — deep health probe for the service.

Checks:
    • Cache backend (Redis ping when Redis is configured)
    • Station registry (gauges, thresholds, rainfall sample points)
    • Provider configuration (priority order names known providers)

Upstream providers are not probed here.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from gauge.app.core.cache import CacheBackend
from gauge.app.core.config import Settings, settings
from gauge.app.hydro.stations import (
    FLOOD_THRESHOLDS,
    GAUGE_STATIONS,
    RAINFALL_SAMPLE_LOCATIONS,
    is_valid_station_id,
)

logger = logging.getLogger(__name__)

KNOWN_PROVIDERS = ("bom", "wmip")


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"  # partial functionality
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    latency_ms: float = 0.0
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            d["message"] = self.message
        if self.details:
            d["details"] = self.details
        return d


@dataclass
class HealthReport:
    status: HealthStatus = HealthStatus.HEALTHY
    version: str = settings.APP_VERSION
    environment: str = settings.ENVIRONMENT
    timestamp: str = ""
    uptime_seconds: float = 0.0
    components: List[ComponentHealth] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "version": self.version,
            "environment": self.environment,
            "timestamp": self.timestamp or datetime.now(timezone.utc).isoformat(),
            "uptime_seconds": round(self.uptime_seconds, 1),
            "components": [c.to_dict() for c in self.components],
        }


_start_time = time.monotonic()


async def check_cache(backend: Optional[CacheBackend]) -> ComponentHealth:
    comp = ComponentHealth(name="cache")
    start = time.monotonic()
    if backend is None:
        comp.status = HealthStatus.DEGRADED
        comp.message = "Cache not initialised"
    elif await backend.ping():
        comp.message = f"{backend.name} cache available"
        comp.details = {"backend": backend.name}
    else:
        comp.status = HealthStatus.DEGRADED
        comp.message = f"{backend.name} cache unreachable"
        comp.details = {"backend": backend.name}
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def check_station_registry() -> ComponentHealth:
    comp = ComponentHealth(name="station_registry")
    start = time.monotonic()
    invalid = [s.id for s in GAUGE_STATIONS if not is_valid_station_id(s.id)]
    if not GAUGE_STATIONS or invalid:
        comp.status = HealthStatus.UNHEALTHY
        comp.message = f"Invalid station ids: {', '.join(invalid)}" if invalid else "No stations configured"
    else:
        comp.message = f"{len(GAUGE_STATIONS)} gauges configured"
    comp.details = {
        "gauges": len(GAUGE_STATIONS),
        "offline": sum(1 for s in GAUGE_STATIONS if s.is_offline),
        "thresholds": len(FLOOD_THRESHOLDS),
        "rainfall_locations": len(RAINFALL_SAMPLE_LOCATIONS),
    }
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def check_providers(config: Settings) -> ComponentHealth:
    comp = ComponentHealth(name="providers")
    start = time.monotonic()
    unknown = [p for p in config.PROVIDER_PRIORITY if p not in KNOWN_PROVIDERS]
    if not config.PROVIDER_PRIORITY or unknown:
        comp.status = HealthStatus.UNHEALTHY
        comp.message = f"Unknown providers: {', '.join(unknown)}" if unknown else "No providers configured"
    else:
        comp.message = "Priority: " + " → ".join(config.PROVIDER_PRIORITY)
    comp.details = {
        "priority": list(config.PROVIDER_PRIORITY),
        "bom": config.BOM_WATERDATA_URL,
        "wmip": config.WMIP_BASE_URL,
        "open_meteo": config.OPEN_METEO_BASE_URL,
        "warnings": config.BOM_WARNINGS_URL,
    }
    comp.latency_ms = (time.monotonic() - start) * 1000
    return comp


async def run_health_check(
    backend: Optional[CacheBackend] = None, config: Settings = settings,
) -> HealthReport:
    """Run all health checks and aggregate into a report."""
    report = HealthReport(
        version=config.APP_VERSION,
        environment=config.ENVIRONMENT,
        timestamp=datetime.now(timezone.utc).isoformat(),
        uptime_seconds=time.monotonic() - _start_time,
    )

    for coro in (check_cache(backend), check_station_registry(), check_providers(config)):
        report.components.append(await coro)

    statuses = [c.status for c in report.components]
    if HealthStatus.UNHEALTHY in statuses:
        report.status = HealthStatus.UNHEALTHY
    elif HealthStatus.DEGRADED in statuses:
        report.status = HealthStatus.DEGRADED

    if report.status is not HealthStatus.HEALTHY:
        logger.warning("Health check %s", report.status.value)
    return report
