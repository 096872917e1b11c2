"""
Queensland Water Monitoring Information Portal (WMIP) client.

WMIP runs a Kisters Hydstra web service: a JSON request is POSTed to
``webservice.exe`` and time series come back as traces of points:

    {"error_num": 0,
     "return": {"traces": [{"site": "130207A",
                            "trace": [{"v": "1.234", "t": 20240115103000, "q": 10}, ...]}]}}

``t`` is the 14-digit AEST encoding handled by ``timestamps``; ``q`` is the
Hydstra quality code, where 255 means "no data" and the point is dropped
before latest-value selection and trend computation.
"""

from __future__ import annotations

import logging
import math
from datetime import timedelta
from typing import Any, Dict, List, Optional

from gauge.app.hydro.models import HistoryPoint, Reading, ReadingKind
from gauge.app.hydro.trend import compute_trend
from gauge.app.sources.base import (
    LEVEL_DECIMALS,
    FetchStatus,
    HttpProvider,
    ProviderError,
    ProviderResult,
    expect_shape,
)
from gauge.app.sources.timestamps import decode_wmip, encode_wmip

logger = logging.getLogger(__name__)

NO_DATA_QUALITY = 255
LEVEL_VARIABLE = "100.00"  # stage height, metres
LEVEL_WINDOW_HOURS = 3


class WmipClient(HttpProvider):
    """Hydstra ``get_ts_traces`` client for WMIP gauges."""

    name = "wmip"

    def __init__(self, base_url: str, timeout: float = 10.0, *, availability_timeout: float = 5.0, **kwargs):
        super().__init__(base_url, timeout, **kwargs)
        self.availability_timeout = availability_timeout

    def _trace_request(self, station_id: str, lookback_hours: float) -> Dict[str, Any]:
        end = self._clock()
        start = end - timedelta(hours=lookback_hours)
        return {
            "function": "get_ts_traces",
            "version": "2",
            "params": {
                "site_list": station_id,
                "datasource": "A",
                "varfrom": LEVEL_VARIABLE,
                "varto": LEVEL_VARIABLE,
                "start_time": encode_wmip(start),
                "end_time": encode_wmip(end),
                "data_type": "point",
                "multiplier": "1",
            },
        }

    async def _call(self, payload: Dict[str, Any], timeout: Optional[float] = None) -> Dict[str, Any]:
        response = await self._request(
            "POST", self.base_url, json=payload, timeout=timeout,
            headers={"Accept": "application/json"},
        )
        body = response.json()
        if not isinstance(body, dict):
            raise ProviderError(FetchStatus.UPSTREAM_ERROR, "wmip returned a non-object payload")
        if body.get("error_num", 0) != 0:
            raise ProviderError(
                FetchStatus.UPSTREAM_ERROR,
                f"wmip error {body.get('error_num')}: {body.get('error_msg', 'unknown error')}",
            )
        return body

    def _points(self, body: Dict[str, Any], station_id: str) -> List[HistoryPoint]:
        """Quality-filtered level series, oldest first."""
        now = self._clock()
        block = expect_shape(body.get("return"), dict, self.name, "return block")
        traces = expect_shape(block.get("traces"), list, self.name, "traces list")
        points: List[HistoryPoint] = []
        dropped = 0
        for trace in traces:
            trace = expect_shape(trace, dict, self.name, "trace")
            for raw in expect_shape(trace.get("trace"), list, self.name, "trace points"):
                if not isinstance(raw, dict):
                    dropped += 1
                    continue
                if int(raw.get("q", 0)) == NO_DATA_QUALITY:
                    dropped += 1
                    continue
                try:
                    value = float(raw["v"])
                except (KeyError, TypeError, ValueError):
                    dropped += 1
                    continue
                if not math.isfinite(value):
                    dropped += 1
                    continue
                decoded = decode_wmip(raw.get("t"), now=now)
                if decoded.malformed:
                    # a substituted "now" would make an old point look fresh
                    dropped += 1
                    continue
                points.append(HistoryPoint(decoded.instant, value))
        if dropped:
            logger.debug("wmip dropped %d unusable points for %s", dropped, station_id)
        points.sort(key=lambda p: p.timestamp)
        return points

    # ── Water level ──

    async def fetch_one(self, station_id: str) -> ProviderResult[Reading]:
        return await self._guard("level", station_id, self._fetch_level(station_id))

    async def _fetch_level(self, station_id: str) -> Reading:
        body = await self._call(self._trace_request(station_id, LEVEL_WINDOW_HOURS))
        series = self._points(body, station_id)
        if not series:
            raise ProviderError(FetchStatus.NO_DATA, f"wmip has no valid level points for {station_id}")
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
        body = await self._call(self._trace_request(station_id, lookback_hours))
        series = self._points(body, station_id)
        if not series:
            raise ProviderError(FetchStatus.NO_DATA, f"wmip has no level history for {station_id}")
        return series

    # ── Availability ──

    async def check_available(self, station_id: str = "130207A") -> bool:
        """Site-list probe. Never raises."""
        payload = {"function": "get_site_list", "version": "1", "params": {"site_list": station_id}}
        try:
            await self._call(payload, timeout=self.availability_timeout)
        except ProviderError as e:
            logger.info("WMIP availability check failed: %s", e.message)
            return False
        except ValueError as e:
            logger.info("WMIP availability check returned a malformed payload: %s", e)
            return False
        return True
