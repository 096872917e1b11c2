"""
Domain models for gauge telemetry.

Every provider payload is decoded into these types at the client boundary;
nothing downstream of a provider client sees provider wire formats.

Readings are frozen: a new fetch cycle builds new objects, and derived
attributes (status) are attached with ``dataclasses.replace``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class Trend(str, Enum):
    RISING = "rising"
    FALLING = "falling"
    STABLE = "stable"


class FloodStatus(str, Enum):
    """Flood severity tiers, ordered least to most severe."""
    SAFE = "safe"
    WATCH = "watch"
    WARNING = "warning"
    DANGER = "danger"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]


_STATUS_RANK = {
    FloodStatus.SAFE: 0,
    FloodStatus.WATCH: 1,
    FloodStatus.WARNING: 2,
    FloodStatus.DANGER: 3,
}


class ReadingKind(str, Enum):
    LEVEL = "level"
    DISCHARGE = "discharge"
    RAINFALL = "rainfall"


class RiverSystem(str, Enum):
    CLERMONT = "clermont"
    THERESA = "theresa"
    WOLFANG = "wolfang"
    DOUGLAS = "douglas"
    ISAAC = "isaac"
    NOGOA = "nogoa"
    MACKENZIE = "mackenzie"
    COMET = "comet"
    FITZROY = "fitzroy"
    BURNETT = "burnett"


# ---------------------------------------------------------------------------
# Static configuration
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Station:
    id: str
    name: str
    stream: str
    river_system: RiverSystem
    latitude: float
    longitude: float
    role: str = ""
    is_offline: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "stream": self.stream,
            "river_system": self.river_system.value,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "role": self.role,
            "is_offline": self.is_offline,
        }


@dataclass(frozen=True)
class DamStation:
    id: str
    name: str
    river: str
    river_system: RiverSystem
    latitude: float
    longitude: float
    capacity_ml: Optional[float] = None


@dataclass(frozen=True)
class FloodThresholds:
    """Flood class levels in metres."""
    minor: float
    moderate: float
    major: float

    def to_dict(self) -> Dict[str, float]:
        return {"minor": self.minor, "moderate": self.moderate, "major": self.major}


@dataclass(frozen=True)
class SampleLocation:
    name: str
    latitude: float
    longitude: float


# ---------------------------------------------------------------------------
# Telemetry
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class HistoryPoint:
    timestamp: datetime
    level: float

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": self.timestamp.isoformat(), "level": self.level}


@dataclass(frozen=True)
class Reading:
    """
    One normalised observation for one station.

    Level readings carry ``trend``, ``change_rate`` (m/h) and, once
    reconciled, ``status``. Rainfall readings carry ``period``.
    """
    station_id: str
    kind: ReadingKind
    value: float
    unit: str
    timestamp: datetime
    source: str
    trend: Optional[Trend] = None
    change_rate: Optional[float] = None
    status: Optional[FloodStatus] = None
    period: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "station_id": self.station_id,
            "kind": self.kind.value,
            "value": self.value,
            "unit": self.unit,
            "timestamp": self.timestamp.isoformat(),
            "source": self.source,
        }
        if self.kind is ReadingKind.LEVEL:
            d["trend"] = self.trend.value if self.trend else None
            d["change_rate"] = self.change_rate
            d["status"] = self.status.value if self.status else None
        if self.period:
            d["period"] = self.period
        return d


@dataclass(frozen=True)
class DamStorageReading:
    station_id: str
    name: str
    volume: float
    level: Optional[float]
    timestamp: datetime
    source: str
    percent_full: Optional[float] = None
    volume_unit: str = "ML"
    level_unit: str = "m"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "station_id": self.station_id,
            "name": self.name,
            "volume": self.volume,
            "volume_unit": self.volume_unit,
            "level": self.level,
            "level_unit": self.level_unit,
            "percent_full": self.percent_full,
            "timestamp": self.timestamp.isoformat(),
            "source": self.source,
        }


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

UNAVAILABLE_SOURCE = "unavailable"


@dataclass
class AggregateResult:
    """
    Reconciled readings for a set of stations.

    ``readings`` holds exactly one key per requested station, in request
    order, with None where no provider produced a fresh reading.
    """
    readings: Dict[str, Optional[Reading]] = field(default_factory=dict)
    sources: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def reading_count(self) -> int:
        return sum(1 for r in self.readings.values() if r is not None)

    @property
    def highest_status(self) -> Optional[FloodStatus]:
        statuses = [r.status for r in self.readings.values() if r is not None and r.status]
        return max(statuses, key=lambda s: s.rank) if statuses else None

    def station_payload(self, station_id: str) -> Dict[str, Any]:
        reading = self.readings.get(station_id)
        return {
            "station_id": station_id,
            "reading": reading.to_dict() if reading else None,
            "trend": reading.trend.value if reading and reading.trend else None,
            "change_rate": reading.change_rate if reading else None,
            "status": reading.status.value if reading and reading.status else None,
            "source": reading.source if reading else None,
            "timestamp": reading.timestamp.isoformat() if reading else None,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stations": [self.station_payload(sid) for sid in self.readings],
            "sources": list(self.sources),
            "errors": list(self.errors),
        }
