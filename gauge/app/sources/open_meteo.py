"""
Open-Meteo client — rainfall summaries and current weather conditions.

Open-Meteo is free and needs no API key. Two request shapes are used:

Rainfall (per location):
    GET /forecast?hourly=precipitation,precipitation_probability
                 &daily=precipitation_sum,precipitation_probability_max
                 &current=precipitation&past_days=7&forecast_days=7
                 &timezone=Australia/Brisbane

    The hourly series spans 7 days back and 7 days ahead, labelled in local
    time. The current hour is located with the response's
    ``utc_offset_seconds``; totals are summed either side of it:

        last_24h = Σ precip[now-24 … now-1]
        next_24h = Σ precip[now … now+23]
        last_7d  = Σ daily[0 … 6]
        next_7d  = Σ daily[7 …]

Weather (current conditions):
    GET /forecast?current=temperature_2m,...&hourly=precipitation
                 &past_hours=12&forecast_hours=1

Normalisation happens here: °C and mm to 1 decimal, km/h, hPa and % whole.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from gauge.app.sources.base import (
    RAIN_DECIMALS,
    TEMPERATURE_DECIMALS,
    FetchStatus,
    HttpProvider,
    ProviderError,
    ProviderResult,
    expect_shape,
)
from gauge.app.sources.timestamps import local_hour_key

logger = logging.getLogger(__name__)

TIMEZONE = "Australia/Brisbane"
BRISBANE_OFFSET_SECONDS = 10 * 3600

WEATHER_DESCRIPTIONS: Dict[int, str] = {
    0: "Clear sky",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Foggy",
    48: "Depositing rime fog",
    51: "Light drizzle",
    53: "Moderate drizzle",
    55: "Dense drizzle",
    61: "Slight rain",
    63: "Moderate rain",
    65: "Heavy rain",
    71: "Slight snow",
    73: "Moderate snow",
    75: "Heavy snow",
    80: "Slight rain showers",
    81: "Moderate rain showers",
    82: "Violent rain showers",
    95: "Thunderstorm",
    96: "Thunderstorm with hail",
    99: "Thunderstorm with heavy hail",
}

COMPASS_POINTS = (
    "N", "NNE", "NE", "ENE", "E", "ESE", "SE", "SSE",
    "S", "SSW", "SW", "WSW", "W", "WNW", "NW", "NNW",
)


# ---------------------------------------------------------------------------
# Classification helpers
# ---------------------------------------------------------------------------

def rainfall_intensity(mm_per_hour: float) -> str:
    if mm_per_hour == 0:
        return "No rain"
    if mm_per_hour < 2.5:
        return "Light rain"
    if mm_per_hour < 7.5:
        return "Moderate rain"
    if mm_per_hour < 50:
        return "Heavy rain"
    return "Intense rain"


def rainfall_risk(next_24h: float, next_7d: float) -> str:
    """Flood-producing rainfall risk from forecast totals (mm)."""
    if next_24h > 100 or next_7d > 300:
        return "extreme"
    if next_24h > 50 or next_7d > 150:
        return "high"
    if next_24h > 25 or next_7d > 75:
        return "moderate"
    return "low"


def compass_direction(degrees: float) -> str:
    return COMPASS_POINTS[round(degrees / 22.5) % 16]


def cloud_description(cover_pct: Optional[float]) -> Optional[str]:
    if cover_pct is None:
        return None
    if cover_pct >= 80:
        return "Overcast"
    if cover_pct >= 50:
        return "Cloudy"
    if cover_pct >= 20:
        return "Partly cloudy"
    return "Clear"


def _num(values: Sequence[Any], index: int) -> float:
    """Value at ``index`` treating gaps and nulls as 0."""
    if index < len(values) and values[index] is not None:
        return float(values[index])
    return 0.0


def _opt_round(value: Any, digits: Optional[int] = None) -> Optional[float]:
    if value is None:
        return None
    return round(float(value), digits) if digits is not None else round(float(value))


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RainfallPoint:
    timestamp: str  # provider local hour label
    precipitation: float
    probability: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "precipitation": self.precipitation,
            "precipitation_probability": self.probability,
        }


@dataclass(frozen=True)
class DailyRainfall:
    date: str
    precipitation_sum: float
    probability_max: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "precipitation_sum": self.precipitation_sum,
            "precipitation_probability_max": self.probability_max,
        }


@dataclass
class RainfallSummary:
    """Observed and forecast rainfall around one location (mm)."""
    name: Optional[str]
    latitude: float
    longitude: float
    current_precipitation: float
    last_24h: float
    last_7d: float
    next_24h: float
    next_7d: float
    fetched_at: datetime
    hourly_history: List[RainfallPoint] = field(default_factory=list)
    hourly_forecast: List[RainfallPoint] = field(default_factory=list)
    daily_forecast: List[DailyRainfall] = field(default_factory=list)

    @property
    def is_raining(self) -> bool:
        return self.current_precipitation > 0

    @property
    def intensity(self) -> str:
        return rainfall_intensity(self.current_precipitation)

    @property
    def risk(self) -> str:
        return rainfall_risk(self.next_24h, self.next_7d)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "location": {"name": self.name, "latitude": self.latitude, "longitude": self.longitude},
            "current": {
                "precipitation": self.current_precipitation,
                "is_raining": self.is_raining,
                "intensity": self.intensity,
            },
            "last_24_hours": self.last_24h,
            "last_7_days": self.last_7d,
            "next_24_hours": self.next_24h,
            "next_7_days": self.next_7d,
            "risk": self.risk,
            "hourly_history": [p.to_dict() for p in self.hourly_history],
            "hourly_forecast": [p.to_dict() for p in self.hourly_forecast],
            "daily_forecast": [d.to_dict() for d in self.daily_forecast],
            "fetched_at": self.fetched_at.isoformat(),
        }


@dataclass
class WeatherObservation:
    """Current conditions at one location."""
    latitude: float
    longitude: float
    observed_at: str
    temperature_c: Optional[float] = None
    apparent_temperature_c: Optional[float] = None
    humidity_pct: Optional[float] = None
    wind_speed_kmh: Optional[float] = None
    wind_direction: Optional[str] = None
    wind_gust_kmh: Optional[float] = None
    pressure_hpa: Optional[float] = None
    rainfall_12h_mm: float = 0.0
    cloud: Optional[str] = None
    description: str = "Unknown"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "latitude": self.latitude,
            "longitude": self.longitude,
            "observed_at": self.observed_at,
            "temperature_c": self.temperature_c,
            "apparent_temperature_c": self.apparent_temperature_c,
            "humidity_pct": self.humidity_pct,
            "wind_speed_kmh": self.wind_speed_kmh,
            "wind_direction": self.wind_direction,
            "wind_gust_kmh": self.wind_gust_kmh,
            "pressure_hpa": self.pressure_hpa,
            "rainfall_12h_mm": self.rainfall_12h_mm,
            "cloud": self.cloud,
            "description": self.description,
        }


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class OpenMeteoClient(HttpProvider):
    """Open-Meteo forecast API client."""

    name = "open-meteo"

    async def _forecast(self, params: Dict[str, Any]) -> Dict[str, Any]:
        response = await self._request("GET", f"{self.base_url}/forecast", params=params)
        body = response.json()
        if not isinstance(body, dict):
            raise ProviderError(FetchStatus.UPSTREAM_ERROR, "open-meteo returned a non-object payload")
        if body.get("error"):
            raise ProviderError(
                FetchStatus.UPSTREAM_ERROR, f"open-meteo error: {body.get('reason', 'unknown')}",
            )
        return body

    # ── Rainfall ──

    async def fetch_rainfall(
        self, latitude: float, longitude: float, name: Optional[str] = None,
    ) -> ProviderResult[RainfallSummary]:
        key = name or f"{latitude:.4f},{longitude:.4f}"
        return await self._guard("rainfall", key, self._fetch_rainfall(latitude, longitude, name))

    async def _fetch_rainfall(
        self, latitude: float, longitude: float, name: Optional[str],
    ) -> RainfallSummary:
        body = await self._forecast({
            "latitude": latitude,
            "longitude": longitude,
            "hourly": "precipitation,precipitation_probability",
            "daily": "precipitation_sum,precipitation_probability_max",
            "current": "precipitation",
            "past_days": 7,
            "forecast_days": 7,
            "timezone": TIMEZONE,
        })
        return self._summarise_rainfall(body, latitude, longitude, name)

    def _summarise_rainfall(
        self, body: Dict[str, Any], latitude: float, longitude: float, name: Optional[str],
    ) -> RainfallSummary:
        hourly = expect_shape(body.get("hourly"), dict, self.name, "hourly block")
        times: List[str] = expect_shape(hourly.get("time"), list, self.name, "hourly time series")
        if not times:
            raise ProviderError(FetchStatus.NO_DATA, "open-meteo returned no hourly precipitation")
        precip = expect_shape(hourly.get("precipitation"), list, self.name, "hourly precipitation")
        probability = expect_shape(hourly.get("precipitation_probability"), list, self.name, "hourly probability")

        now = self._clock()
        offset = int(body.get("utc_offset_seconds", BRISBANE_OFFSET_SECONDS))
        now_key = local_hour_key(now, offset)
        current_index = next((i for i, t in enumerate(times) if t >= now_key), len(times))

        history_start = max(0, current_index - 24)
        forecast_end = min(current_index + 24, len(times))

        def point(i: int) -> RainfallPoint:
            prob = probability[i] if i < len(probability) else None
            return RainfallPoint(times[i], round(_num(precip, i), RAIN_DECIMALS), prob)

        daily = expect_shape(body.get("daily"), dict, self.name, "daily block")
        daily_times: List[str] = expect_shape(daily.get("time"), list, self.name, "daily time series")
        daily_sums = expect_shape(daily.get("precipitation_sum"), list, self.name, "daily precipitation")
        daily_prob = expect_shape(daily.get("precipitation_probability_max"), list, self.name, "daily probability")

        current = expect_shape(body.get("current"), dict, self.name, "current block")
        return RainfallSummary(
            name=name,
            latitude=latitude,
            longitude=longitude,
            current_precipitation=round(float(current.get("precipitation") or 0.0), RAIN_DECIMALS),
            last_24h=round(sum(_num(precip, i) for i in range(history_start, current_index)), RAIN_DECIMALS),
            next_24h=round(sum(_num(precip, i) for i in range(current_index, forecast_end)), RAIN_DECIMALS),
            last_7d=round(sum(_num(daily_sums, i) for i in range(min(7, len(daily_sums)))), RAIN_DECIMALS),
            next_7d=round(sum(_num(daily_sums, i) for i in range(7, len(daily_sums))), RAIN_DECIMALS),
            fetched_at=now,
            hourly_history=[point(i) for i in range(history_start, current_index)],
            hourly_forecast=[point(i) for i in range(current_index, forecast_end)],
            daily_forecast=[
                DailyRainfall(
                    daily_times[i],
                    round(_num(daily_sums, i), RAIN_DECIMALS),
                    _num(daily_prob, i),
                )
                for i in range(7, len(daily_times))
            ],
        )

    # ── Weather ──

    async def fetch_weather(self, latitude: float, longitude: float) -> ProviderResult[WeatherObservation]:
        key = f"{latitude:.4f},{longitude:.4f}"
        return await self._guard("weather", key, self._fetch_weather(latitude, longitude))

    async def _fetch_weather(self, latitude: float, longitude: float) -> WeatherObservation:
        body = await self._forecast({
            "latitude": latitude,
            "longitude": longitude,
            "current": (
                "temperature_2m,relative_humidity_2m,apparent_temperature,precipitation,rain,"
                "weather_code,wind_speed_10m,wind_direction_10m,wind_gusts_10m,"
                "surface_pressure,cloud_cover"
            ),
            "hourly": "precipitation",
            "past_hours": 12,
            "forecast_hours": 1,
            "timezone": TIMEZONE,
        })
        current = expect_shape(body.get("current"), dict, self.name, "current block")
        if not current:
            raise ProviderError(FetchStatus.NO_DATA, "open-meteo returned no current conditions")

        hourly = expect_shape(body.get("hourly"), dict, self.name, "hourly block")
        recent = expect_shape(hourly.get("precipitation"), list, self.name, "hourly precipitation")
        cloud = cloud_description(current.get("cloud_cover"))
        direction = current.get("wind_direction_10m")
        code = current.get("weather_code")

        return WeatherObservation(
            latitude=latitude,
            longitude=longitude,
            observed_at=str(current.get("time", "")),
            temperature_c=_opt_round(current.get("temperature_2m"), TEMPERATURE_DECIMALS),
            apparent_temperature_c=_opt_round(current.get("apparent_temperature"), TEMPERATURE_DECIMALS),
            humidity_pct=_opt_round(current.get("relative_humidity_2m")),
            wind_speed_kmh=_opt_round(current.get("wind_speed_10m")),
            wind_direction=compass_direction(float(direction)) if direction is not None else None,
            wind_gust_kmh=_opt_round(current.get("wind_gusts_10m")),
            pressure_hpa=_opt_round(current.get("surface_pressure")),
            rainfall_12h_mm=round(sum(float(v or 0) for v in recent), RAIN_DECIMALS),
            cloud=cloud,
            description=WEATHER_DESCRIPTIONS.get(code, cloud or "Unknown") if code is not None else (cloud or "Unknown"),
        )
