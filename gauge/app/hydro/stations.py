"""
Static station registry for the Fitzroy Basin monitoring network.

Contains:
    • GAUGE_STATIONS      — river gauges, in display order
    • DAM_STATIONS        — storages reported by BOM Water Data
    • FLOOD_THRESHOLDS    — BOM flood class levels per gauge (metres)
    • RAINFALL_SAMPLE_LOCATIONS — points used for the statewide rainfall summary

Stations are immutable and never created at runtime.
"""

from __future__ import annotations

import re
from typing import Dict, List, Optional

from gauge.app.hydro.models import (
    DamStation,
    FloodThresholds,
    RiverSystem,
    SampleLocation,
    Station,
)
from gauge.app.hydro.status import DEFAULT_THRESHOLDS

STATION_ID_PATTERN = re.compile(r"^\d{6}[A-Z]$")

# Clermont town centre
CLERMONT = SampleLocation("Clermont", -22.8245, 147.6392)


GAUGE_STATIONS: List[Station] = [
    # Clermont area
    Station("130212A", "Theresa Creek @ Gregory Hwy", "Theresa Creek", RiverSystem.CLERMONT,
            -22.7833, 147.5667, "Upstream early warning", is_offline=True),
    Station("130207A", "Sandy Creek @ Clermont", "Sandy Creek", RiverSystem.CLERMONT,
            -22.8245, 147.6392, "Primary monitoring"),
    Station("120311A", "Clermont Alpha Rd", "Eastern Creek", RiverSystem.CLERMONT,
            -22.9000, 147.7000, "Secondary monitoring", is_offline=True),
    # Isaac
    Station("130401A", "Isaac River @ Yatton", "Isaac River", RiverSystem.ISAAC,
            -22.4167, 148.3333, "Upper Isaac"),
    Station("130410A", "Isaac River @ Deverill", "Isaac River", RiverSystem.ISAAC,
            -22.1833, 148.6167, "Mid Isaac"),
    Station("130408A", "Connors River @ Pink Lagoon", "Connors River", RiverSystem.ISAAC,
            -21.9500, 148.7833, "Tributary input", is_offline=True),
    # Nogoa
    Station("130209A", "Nogoa River @ Craigmore", "Nogoa River", RiverSystem.NOGOA,
            -23.5167, 147.9333, "Above Emerald"),
    Station("130219A", "Nogoa River @ Duck Ponds", "Nogoa River", RiverSystem.NOGOA,
            -23.4500, 148.1000, "Below Fairbairn Dam"),
    Station("130204A", "Retreat Creek @ Dunrobin", "Retreat Creek", RiverSystem.NOGOA,
            -23.6000, 147.8000, "Tributary", is_offline=True),
    # Mackenzie
    Station("130106A", "Mackenzie River @ Bingegang", "Mackenzie River", RiverSystem.MACKENZIE,
            -23.1833, 149.3500, "Lower Mackenzie"),
    Station("130105B", "Mackenzie River @ Coolmaringa", "Mackenzie River", RiverSystem.MACKENZIE,
            -23.3333, 148.8333, "Mid Mackenzie"),
    Station("130113A", "Mackenzie River @ Rileys Crossing", "Mackenzie River", RiverSystem.MACKENZIE,
            -23.4500, 148.5000, "Upper Mackenzie"),
    # Comet
    Station("130504A", "Comet River @ Comet Weir", "Comet River", RiverSystem.COMET,
            -23.6000, 148.5500, "Lower Comet", is_offline=True),
    Station("130502A", "Comet River @ The Lake", "Comet River", RiverSystem.COMET,
            -23.8000, 148.3000, "Upper Comet", is_offline=True),
    # Fitzroy
    Station("130004A", "Fitzroy River @ The Gap", "Fitzroy River", RiverSystem.FITZROY,
            -23.3833, 149.9167, "Upper Fitzroy"),
    Station("130003A", "Fitzroy River @ Yaamba", "Fitzroy River", RiverSystem.FITZROY,
            -23.1333, 150.3667, "Mid Fitzroy", is_offline=True),
    Station("130005A", "Fitzroy River @ Rockhampton", "Fitzroy River", RiverSystem.FITZROY,
            -23.3833, 150.5000, "Final downstream"),
]

DAM_STATIONS: List[DamStation] = [
    DamStation("130216A", "Fairbairn Dam", "Nogoa River", RiverSystem.NOGOA,
               -23.4600, 148.0800, capacity_ml=1_301_000),
]

FLOOD_THRESHOLDS: Dict[str, FloodThresholds] = {
    "130207A": FloodThresholds(4.5, 6.0, 8.0),
    "130212A": FloodThresholds(3.0, 4.5, 6.0),
    "120311A": FloodThresholds(2.5, 4.0, 5.5),
    "130401A": FloodThresholds(5.0, 7.0, 9.0),
    "130410A": FloodThresholds(6.0, 8.0, 10.0),
    "130408A": FloodThresholds(4.0, 6.0, 8.0),
    "130209A": FloodThresholds(5.0, 7.0, 9.0),
    "130219A": FloodThresholds(4.5, 6.5, 8.5),
    "130204A": FloodThresholds(3.0, 4.5, 6.0),
    "130106A": FloodThresholds(8.0, 10.0, 12.0),
    "130105B": FloodThresholds(7.0, 9.0, 11.0),
    "130113A": FloodThresholds(6.0, 8.0, 10.0),
    "130504A": FloodThresholds(5.0, 7.0, 9.0),
    "130502A": FloodThresholds(4.0, 6.0, 8.0),
    "130004A": FloodThresholds(7.0, 8.5, 10.0),
    "130003A": FloodThresholds(6.5, 8.0, 9.5),
    "130005A": FloodThresholds(7.0, 8.5, 10.5),
}

RAINFALL_SAMPLE_LOCATIONS: List[SampleLocation] = [
    # Southeast
    SampleLocation("Brisbane", -27.47, 153.03),
    SampleLocation("Ipswich", -27.61, 152.76),
    SampleLocation("Gold Coast", -28.01, 153.32),
    # Wide Bay-Burnett
    SampleLocation("Bundaberg", -24.85, 152.35),
    SampleLocation("Gympie", -26.19, 152.67),
    # Central
    SampleLocation("Rockhampton", -23.38, 150.51),
    SampleLocation("Clermont", -22.82, 147.64),
    # Mackay-Whitsunday
    SampleLocation("Mackay", -21.12, 149.11),
    # North
    SampleLocation("Townsville", -19.30, 146.79),
    SampleLocation("Ingham", -18.65, 146.17),
    # Far North
    SampleLocation("Cairns", -16.92, 145.77),
    SampleLocation("Innisfail", -17.52, 146.03),
    # Darling Downs
    SampleLocation("Toowoomba", -27.56, 151.95),
    SampleLocation("Dalby", -27.18, 151.26),
]

_STATIONS_BY_ID: Dict[str, Station] = {s.id: s for s in GAUGE_STATIONS}


def station_ids() -> List[str]:
    return [s.id for s in GAUGE_STATIONS]


def get_station(station_id: str) -> Optional[Station]:
    return _STATIONS_BY_ID.get(station_id)


def get_thresholds(station_id: str) -> FloodThresholds:
    """Flood class levels for a gauge, or the network default."""
    return FLOOD_THRESHOLDS.get(station_id, DEFAULT_THRESHOLDS)


def is_valid_station_id(value: str) -> bool:
    return bool(STATION_ID_PATTERN.match(value or ""))
