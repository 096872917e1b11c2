"""
Short-range level projections and upstream flood triggers.

Projection:
    Linear extrapolation of the latest hourly rate at +2h, +4h and +6h.
    Confidence drops 10% per lead hour and is further penalised by the
    magnitude of the rate, with a floor of 0.3.

Upstream trigger:
    A downstream gauge is flagged when its upstream gauge has reached minor
    flood level; the ETA is the typical travel time of the flood peak.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

from gauge.app.hydro.models import HistoryPoint
from gauge.app.hydro.stations import get_station, get_thresholds

LEAD_HOURS = (2, 4, 6)
MIN_CONFIDENCE = 0.3


@dataclass(frozen=True)
class UpstreamLink:
    upstream_id: str
    eta: str


# downstream gauge → the gauge whose peak reaches it first
UPSTREAM_LINKS: Dict[str, UpstreamLink] = {
    "130207A": UpstreamLink("130212A", "2-4 hours"),    # Sandy Creek ← Theresa Creek
    "130410A": UpstreamLink("130401A", "6-8 hours"),    # Deverill ← Yatton
    "130219A": UpstreamLink("130209A", "8-12 hours"),   # Duck Ponds ← Craigmore
    "130105B": UpstreamLink("130113A", "10-14 hours"),  # Coolmaringa ← Rileys Crossing
    "130106A": UpstreamLink("130105B", "12-18 hours"),  # Bingegang ← Coolmaringa
    "130003A": UpstreamLink("130004A", "12-18 hours"),  # Yaamba ← The Gap
    "130005A": UpstreamLink("130003A", "6-10 hours"),   # Rockhampton ← Yaamba
}


@dataclass(frozen=True)
class Prediction:
    lead_hours: int
    level: float
    confidence: float

    def to_dict(self) -> Dict[str, object]:
        return {
            "time": f"+{self.lead_hours}h",
            "level": self.level,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class UpstreamTrigger:
    station_id: str
    station: str
    level: float
    eta: str

    def to_dict(self) -> Dict[str, object]:
        return {
            "station_id": self.station_id,
            "station": self.station,
            "level": self.level,
            "eta": self.eta,
        }


def hourly_rate(history: Sequence[HistoryPoint]) -> float:
    """Rate between the two most recent points, 0 if undefined."""
    if len(history) < 2:
        return 0.0
    ordered = sorted(history, key=lambda p: p.timestamp)
    latest, previous = ordered[-1], ordered[-2]
    hours = (latest.timestamp - previous.timestamp).total_seconds() / 3600
    if hours <= 0:
        return 0.0
    return (latest.level - previous.level) / hours


def project_levels(current_level: float, history: Sequence[HistoryPoint]) -> List[Prediction]:
    rate = hourly_rate(history)
    penalty = min(0.3, abs(rate) * 0.3)
    predictions = []
    for hours in LEAD_HOURS:
        level = max(0.0, round(current_level + rate * hours, 2))
        confidence = max(MIN_CONFIDENCE, 1 - hours * 0.1 - penalty)
        predictions.append(Prediction(hours, level, round(confidence, 2)))
    return predictions


def upstream_link(station_id: str) -> Optional[UpstreamLink]:
    return UPSTREAM_LINKS.get(station_id)


def upstream_trigger(station_id: str, levels: Mapping[str, float]) -> Optional[UpstreamTrigger]:
    """
    Check whether the upstream gauge of ``station_id`` is at minor flood or above.

    ``levels`` maps station id → current level for whatever gauges are known.
    """
    link = UPSTREAM_LINKS.get(station_id)
    if link is None:
        return None
    level = levels.get(link.upstream_id)
    station = get_station(link.upstream_id)
    if level is None or station is None:
        return None
    if level < get_thresholds(link.upstream_id).minor:
        return None
    return UpstreamTrigger(link.upstream_id, station.name, level, link.eta)
