"""
test_open_meteo.py — Open-Meteo rainfall summaries and current conditions.

Run with:
    pytest tests/test_open_meteo.py -v
"""

from __future__ import annotations

from datetime import datetime, timedelta

import httpx
import pytest

from conftest import FakeClock, _mock_client
from gauge.app.sources.base import FetchStatus
from gauge.app.sources.open_meteo import (
    OpenMeteoClient,
    cloud_description,
    compass_direction,
    rainfall_intensity,
    rainfall_risk,
)

BASE_URL = "http://open-meteo.test/v1"

# T0 is 20:00 in Brisbane; the hourly series starts 7 local days earlier
SERIES_START = datetime(2024, 1, 8, 0, 0)
CURRENT_INDEX = 7 * 24 + 20


def _rainfall_body(before: float = 0.5, after: float = 2.0, daily: float = 3.0, current: float = 3.0) -> dict:
    times = [(SERIES_START + timedelta(hours=i)).strftime("%Y-%m-%dT%H:%M") for i in range(14 * 24)]
    precip = [before if i < CURRENT_INDEX else after for i in range(len(times))]
    days = [(SERIES_START + timedelta(days=i)).strftime("%Y-%m-%d") for i in range(14)]
    return {
        "utc_offset_seconds": 36000,
        "current": {"time": "2024-01-15T20:00", "precipitation": current},
        "hourly": {
            "time": times,
            "precipitation": precip,
            "precipitation_probability": [40] * len(times),
        },
        "daily": {
            "time": days,
            "precipitation_sum": [daily] * 14,
            "precipitation_probability_max": [60] * 14,
        },
    }


def _make_client(handler) -> OpenMeteoClient:
    return OpenMeteoClient(BASE_URL, 10, client=_mock_client(handler), clock=FakeClock())


def _json(body):
    return lambda request: httpx.Response(200, json=body)


# ═══════════════════════════════════════════════════════════════════════════
# Classification helpers
# ═══════════════════════════════════════════════════════════════════════════

class TestHelpers:

    @pytest.mark.parametrize("mm,label", [
        (0, "No rain"),
        (1.0, "Light rain"),
        (2.5, "Moderate rain"),
        (7.5, "Heavy rain"),
        (50, "Intense rain"),
    ])
    def test_intensity(self, mm, label):
        assert rainfall_intensity(mm) == label

    @pytest.mark.parametrize("next_24h,next_7d,risk", [
        (0, 0, "low"),
        (30, 0, "moderate"),
        (0, 160, "high"),
        (101, 0, "extreme"),
        (10, 301, "extreme"),
    ])
    def test_risk(self, next_24h, next_7d, risk):
        assert rainfall_risk(next_24h, next_7d) == risk

    @pytest.mark.parametrize("degrees,point", [(0, "N"), (350, "N"), (90, "E"), (200, "SSW"), (225, "SW")])
    def test_compass(self, degrees, point):
        assert compass_direction(degrees) == point

    def test_cloud_description(self):
        assert cloud_description(None) is None
        assert cloud_description(10) == "Clear"
        assert cloud_description(55) == "Cloudy"
        assert cloud_description(95) == "Overcast"


# ═══════════════════════════════════════════════════════════════════════════
# Rainfall
# ═══════════════════════════════════════════════════════════════════════════

class TestFetchRainfall:

    @pytest.mark.asyncio
    async def test_totals_split_at_current_hour(self):
        result = await _make_client(_json(_rainfall_body())).fetch_rainfall(-22.82, 147.64, "Clermont")

        assert result.success
        summary = result.data
        assert summary.last_24h == 12.0
        assert summary.next_24h == 48.0
        assert summary.last_7d == 21.0
        assert summary.next_7d == 21.0
        assert summary.hourly_history[-1].timestamp == "2024-01-15T19:00"
        assert summary.hourly_forecast[0].timestamp == "2024-01-15T20:00"
        assert len(summary.hourly_history) == 24
        assert len(summary.hourly_forecast) == 24
        assert summary.daily_forecast[0].date == "2024-01-15"

    @pytest.mark.asyncio
    async def test_current_conditions(self):
        summary = (await _make_client(_json(_rainfall_body())).fetch_rainfall(-22.82, 147.64)).data
        assert summary.is_raining
        assert summary.intensity == "Moderate rain"
        assert summary.risk == "moderate"
        assert summary.to_dict()["location"]["name"] is None

    @pytest.mark.asyncio
    async def test_null_precipitation_counts_as_zero(self):
        body = _rainfall_body()
        body["hourly"]["precipitation"][CURRENT_INDEX] = None
        summary = (await _make_client(_json(body)).fetch_rainfall(-22.82, 147.64)).data
        assert summary.next_24h == 46.0

    @pytest.mark.asyncio
    async def test_request_params(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen.update(request.url.params)
            return httpx.Response(200, json=_rainfall_body())

        await _make_client(handler).fetch_rainfall(-22.82, 147.64)
        assert seen["path"].endswith("/forecast")
        assert seen["past_days"] == "7"
        assert seen["timezone"] == "Australia/Brisbane"

    @pytest.mark.asyncio
    async def test_empty_series_is_no_data(self):
        result = await _make_client(_json({"hourly": {"time": []}})).fetch_rainfall(-22.82, 147.64)
        assert result.status is FetchStatus.NO_DATA

    @pytest.mark.asyncio
    async def test_error_payload(self):
        body = {"error": True, "reason": "Latitude must be in range"}
        result = await _make_client(_json(body)).fetch_rainfall(-99, 147.64)
        assert result.status is FetchStatus.UPSTREAM_ERROR
        assert "Latitude" in result.error_message

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        {"hourly": ["x"]},
        {"hourly": {"time": "2024-01-15T20:00"}},
        {"hourly": {"time": ["2024-01-15T20:00"], "precipitation": {"a": 1}}},
    ])
    async def test_wrong_payload_shape_is_upstream_error(self, body):
        result = await _make_client(_json(body)).fetch_rainfall(-22.82, 147.64)
        assert result.success is False
        assert result.status is FetchStatus.UPSTREAM_ERROR

    @pytest.mark.asyncio
    async def test_wrong_daily_shape_is_upstream_error(self):
        body = _rainfall_body()
        body["daily"] = [3.0] * 14
        result = await _make_client(_json(body)).fetch_rainfall(-22.82, 147.64)
        assert result.status is FetchStatus.UPSTREAM_ERROR


# ═══════════════════════════════════════════════════════════════════════════
# Weather
# ═══════════════════════════════════════════════════════════════════════════

def _weather_body(**overrides) -> dict:
    current = {
        "time": "2024-01-15T20:00",
        "temperature_2m": 28.46,
        "apparent_temperature": 30.12,
        "relative_humidity_2m": 64.4,
        "wind_speed_10m": 12.6,
        "wind_direction_10m": 200,
        "wind_gusts_10m": 25.2,
        "surface_pressure": 1008.6,
        "cloud_cover": 55,
        "weather_code": 63,
    }
    current.update(overrides)
    return {"current": current, "hourly": {"precipitation": [0.2, None, 1.1]}}


class TestFetchWeather:

    @pytest.mark.asyncio
    async def test_normalised_observation(self):
        result = await _make_client(_json(_weather_body())).fetch_weather(-22.82, 147.64)

        obs = result.data
        assert obs.temperature_c == 28.5
        assert obs.apparent_temperature_c == 30.1
        assert obs.humidity_pct == 64
        assert obs.wind_speed_kmh == 13
        assert obs.wind_direction == "SSW"
        assert obs.wind_gust_kmh == 25
        assert obs.pressure_hpa == 1009
        assert obs.rainfall_12h_mm == 1.3
        assert obs.cloud == "Cloudy"
        assert obs.description == "Moderate rain"

    @pytest.mark.asyncio
    async def test_unknown_code_falls_back_to_cloud(self):
        obs = (await _make_client(_json(_weather_body(weather_code=7))).fetch_weather(0, 0)).data
        assert obs.description == "Cloudy"

    @pytest.mark.asyncio
    async def test_no_code_no_cloud_is_unknown(self):
        body = _weather_body(weather_code=None, cloud_cover=None)
        obs = (await _make_client(_json(body)).fetch_weather(0, 0)).data
        assert obs.description == "Unknown"
        assert obs.cloud is None

    @pytest.mark.asyncio
    async def test_missing_current_is_no_data(self):
        result = await _make_client(_json({"hourly": {}})).fetch_weather(0, 0)
        assert result.status is FetchStatus.NO_DATA

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        {"current": ["x"]},
        {"current": {"time": "2024-01-15T20:00"}, "hourly": ["x"]},
    ])
    async def test_wrong_payload_shape_is_upstream_error(self, body):
        result = await _make_client(_json(body)).fetch_weather(0, 0)
        assert result.status is FetchStatus.UPSTREAM_ERROR
