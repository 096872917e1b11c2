"""
Bureau of Meteorology Water Data client (SOS2 / WaterML 2.0).

Fetches water course level, discharge, rainfall and dam storage from the
BOM Sensor Observation Service and normalises them into ``Reading`` records.

Request shape:
    GET {BOM_WATERDATA_URL}?service=SOS&version=2.0&request=GetObservation
        &responseFormat=http://www.opengis.net/waterml/2.0
        &featureOfInterest=http://bom.gov.au/waterdata/services/stations/{id}
        [&observedProperty=http://bom.gov.au/waterdata/services/parameters/{name}]
        [&temporalFilter=om:phenomenonTime,{start}/{end}]

Response parsing:
    Each ``om:OM_Observation`` block names its parameter. Points are
    ``wml2:MeasurementTVP`` time/value pairs; ``xsi:nil="true"`` values and
    non-numeric values are dropped before anything else looks at the series.

Level readings do not send ``observedProperty``: the parameter is matched
client-side, since BOM returns empty documents for some encodings of the
parameter name.
"""

from __future__ import annotations

import asyncio
import logging
import math
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Tuple
from urllib.parse import quote

from gauge.app.hydro.models import (
    DamStation,
    DamStorageReading,
    HistoryPoint,
    Reading,
    ReadingKind,
)
from gauge.app.hydro.trend import compute_trend
from gauge.app.sources.base import (
    FLOW_DECIMALS,
    LEVEL_DECIMALS,
    RAIN_DECIMALS,
    FetchStatus,
    HttpProvider,
    ProviderError,
    ProviderResult,
)
from gauge.app.sources.timestamps import parse_iso

logger = logging.getLogger(__name__)

STATION_URI = "http://bom.gov.au/waterdata/services/stations/{station_id}"
PARAMETER_URI = "http://bom.gov.au/waterdata/services/parameters/{name}"
WATERML2_FORMAT = "http://www.opengis.net/waterml/2.0"
XSI_NIL = "{http://www.w3.org/2001/XMLSchema-instance}nil"

WATER_COURSE_LEVEL = "Water Course Level"
WATER_COURSE_DISCHARGE = "Water Course Discharge"
STORAGE_LEVEL = "Storage Level"
STORAGE_VOLUME = "Storage Volume"
RAINFALL = "Rainfall"

LEVEL_WINDOW_HOURS = 6  # enough samples for the trend lookback

# Length units BOM has been seen to report for levels → metres
_LEVEL_UNIT_FACTORS = {"m": 1.0, "cm": 0.01, "mm": 0.001}


@dataclass(frozen=True)
class Observation:
    timestamp: datetime
    value: float
    unit: str


# ---------------------------------------------------------------------------
# WaterML 2.0 parsing
# ---------------------------------------------------------------------------

def _localname(tag: str) -> str:
    if "}" in tag:
        return tag.split("}", 1)[1]
    return tag


def _mentions(element: ET.Element, parameter: str) -> bool:
    needles = (parameter, quote(parameter), parameter.replace(" ", "+"))
    for el in element.iter():
        haystack = list(el.attrib.values())
        if el.text:
            haystack.append(el.text)
        if any(needle in value for value in haystack for needle in needles):
            return True
    return False


def _unit_of(element: ET.Element, default: str) -> str:
    for el in element.iter():
        if _localname(el.tag) == "uom" and el.get("code"):
            return el.get("code", default)
    return default


def parse_waterml2(xml_text: str, parameter: str, default_unit: str = "m") -> List[Observation]:
    """
    Extract valid observations of ``parameter`` from a WaterML 2.0 document.

    Raises ``ProviderError`` if the document is not XML at all.
    """
    try:
        root = ET.fromstring(xml_text)
    except ET.ParseError as e:
        raise ProviderError(FetchStatus.UPSTREAM_ERROR, f"bom returned invalid XML: {e}") from e

    observations: List[Observation] = []
    for block in root.iter():
        if _localname(block.tag) != "OM_Observation" or not _mentions(block, parameter):
            continue
        unit = _unit_of(block, default_unit)
        for tvp in block.iter():
            if _localname(tvp.tag) != "MeasurementTVP":
                continue
            time_text: Optional[str] = None
            value_el: Optional[ET.Element] = None
            for child in tvp:
                name = _localname(child.tag)
                if name == "time":
                    time_text = (child.text or "").strip()
                elif name == "value":
                    value_el = child
            if not time_text or value_el is None or value_el.get(XSI_NIL) == "true":
                continue
            try:
                value = float((value_el.text or "").strip())
            except ValueError:
                continue
            if not math.isfinite(value):
                continue
            timestamp = parse_iso(time_text)
            if timestamp is None:
                continue
            observations.append(Observation(timestamp, value, unit))

    observations.sort(key=lambda o: o.timestamp)
    return observations


def _to_metres(observation: Observation) -> float:
    factor = _LEVEL_UNIT_FACTORS.get(observation.unit.strip().lower())
    if factor is None:
        raise ProviderError(
            FetchStatus.UPSTREAM_ERROR, f"bom reported unsupported level unit '{observation.unit}'",
        )
    return observation.value * factor


def _format_instant(instant: datetime) -> str:
    return instant.strftime("%Y-%m-%dT%H:%M:%SZ")


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class BomClient(HttpProvider):
    """BOM Water Data Online SOS2 client."""

    name = "bom"

    def __init__(
        self,
        base_url: str,
        timeout: float = 15.0,
        *,
        history_timeout: float = 20.0,
        capabilities_timeout: float = 10.0,
        **kwargs,
    ):
        super().__init__(base_url, timeout, **kwargs)
        self.history_timeout = history_timeout
        self.capabilities_timeout = capabilities_timeout

    def _params(
        self,
        station_id: str,
        parameter: Optional[str] = None,
        window: Optional[Tuple[datetime, datetime]] = None,
    ) -> Dict[str, str]:
        params = {
            "service": "SOS",
            "version": "2.0",
            "request": "GetObservation",
            "responseFormat": WATERML2_FORMAT,
            "featureOfInterest": STATION_URI.format(station_id=station_id),
        }
        if parameter:
            params["observedProperty"] = PARAMETER_URI.format(name=quote(parameter))
        if window:
            start, end = window
            params["temporalFilter"] = f"om:phenomenonTime,{_format_instant(start)}/{_format_instant(end)}"
        return params

    def _window(self, hours: float) -> Tuple[datetime, datetime]:
        now = self._clock()
        return now - timedelta(hours=hours), now

    async def _observations(
        self,
        station_id: str,
        parameter: str,
        *,
        send_parameter: bool = True,
        window_hours: Optional[float] = None,
        timeout: Optional[float] = None,
        default_unit: str = "m",
    ) -> Tuple[List[Observation], str]:
        params = self._params(
            station_id,
            parameter if send_parameter else None,
            self._window(window_hours) if window_hours else None,
        )
        response = await self._request(
            "GET", self.base_url, params=params, timeout=timeout,
            headers={"Accept": "application/xml"},
        )
        xml_text = response.text
        return parse_waterml2(xml_text, parameter, default_unit), xml_text

    # ── Water level ──

    async def fetch_one(self, station_id: str) -> ProviderResult[Reading]:
        return await self._guard("level", station_id, self._fetch_level(station_id))

    async def _fetch_level(self, station_id: str) -> Reading:
        observations, _ = await self._observations(
            station_id, WATER_COURSE_LEVEL,
            send_parameter=False, window_hours=LEVEL_WINDOW_HOURS,
        )
        if not observations:
            raise ProviderError(FetchStatus.NO_DATA, f"bom has no water level observations for {station_id}")

        series = [HistoryPoint(o.timestamp, _to_metres(o)) for o in observations]
        latest = series[-1]
        trend = compute_trend(series)
        return Reading(
            station_id=station_id,
            kind=ReadingKind.LEVEL,
            value=round(latest.level, LEVEL_DECIMALS),
            unit="m",
            timestamp=latest.timestamp,
            source=self.name,
            trend=trend.trend,
            change_rate=trend.change_rate,
        )

    async def fetch_history(
        self, station_id: str, lookback_hours: int = 24,
    ) -> ProviderResult[List[HistoryPoint]]:
        return await self._guard(
            "history", station_id, self._fetch_history(station_id, lookback_hours),
        )

    async def _fetch_history(self, station_id: str, lookback_hours: int) -> List[HistoryPoint]:
        observations, _ = await self._observations(
            station_id, WATER_COURSE_LEVEL,
            send_parameter=False, window_hours=lookback_hours, timeout=self.history_timeout,
        )
        if not observations:
            raise ProviderError(FetchStatus.NO_DATA, f"bom has no level history for {station_id}")
        return [HistoryPoint(o.timestamp, _to_metres(o)) for o in observations]

    # ── Extended attributes ──

    async def fetch_discharge(self, station_id: str) -> ProviderResult[Reading]:
        return await self._guard("discharge", station_id, self._fetch_discharge(station_id))

    async def _fetch_discharge(self, station_id: str) -> Reading:
        observations, _ = await self._observations(
            station_id, WATER_COURSE_DISCHARGE, default_unit="ML/d",
        )
        if not observations:
            raise ProviderError(FetchStatus.NO_DATA, f"bom has no discharge for {station_id}")
        latest = observations[-1]
        unit = "cumec" if latest.unit.strip().lower() == "cumec" else "ML/d"
        return Reading(
            station_id=station_id,
            kind=ReadingKind.DISCHARGE,
            value=round(latest.value, FLOW_DECIMALS),
            unit=unit,
            timestamp=latest.timestamp,
            source=self.name,
        )

    async def fetch_rainfall(self, station_id: str) -> ProviderResult[Reading]:
        return await self._guard("rainfall", station_id, self._fetch_rainfall(station_id))

    async def _fetch_rainfall(self, station_id: str) -> Reading:
        observations, xml_text = await self._observations(
            station_id, RAINFALL, default_unit="mm",
        )
        if not observations:
            raise ProviderError(FetchStatus.NO_DATA, f"bom has no rainfall for {station_id}")
        latest = observations[-1]
        return Reading(
            station_id=station_id,
            kind=ReadingKind.RAINFALL,
            value=round(latest.value, RAIN_DECIMALS),
            unit="mm",
            timestamp=latest.timestamp,
            source=self.name,
            period="daily" if "DailyTotal" in xml_text else "hourly",
        )

    async def fetch_dam_storage(self, dam: DamStation) -> ProviderResult[DamStorageReading]:
        return await self._guard("dam storage", dam.id, self._fetch_dam_storage(dam))

    async def _fetch_dam_storage(self, dam: DamStation) -> DamStorageReading:
        volume_task = self._observations(dam.id, STORAGE_VOLUME, default_unit="ML")
        level_task = self._guard("storage level", dam.id, self._observations(dam.id, STORAGE_LEVEL))
        (volume_obs, _), level_result = await asyncio.gather(volume_task, level_task)

        if not volume_obs:
            raise ProviderError(FetchStatus.NO_DATA, f"bom has no storage volume for {dam.id}")
        volume = volume_obs[-1]

        level: Optional[float] = None
        if level_result.success and level_result.data and level_result.data[0]:
            level = round(level_result.data[0][-1].value, LEVEL_DECIMALS)

        percent_full = None
        if dam.capacity_ml:
            percent_full = round(volume.value / dam.capacity_ml * 100, 1)

        return DamStorageReading(
            station_id=dam.id,
            name=dam.name,
            volume=round(volume.value, 1),
            level=level,
            timestamp=volume.timestamp,
            source=self.name,
            percent_full=percent_full,
        )

    # ── Availability ──

    async def check_available(self) -> bool:
        """GetCapabilities probe. Never raises."""
        try:
            await self._request(
                "GET", self.base_url,
                params={"service": "SOS", "version": "2.0", "request": "GetCapabilities"},
                timeout=self.capabilities_timeout,
            )
        except ProviderError as e:
            logger.info("BOM availability check failed: %s", e.message)
            return False
        return True
