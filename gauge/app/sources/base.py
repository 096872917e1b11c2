"""
Provider client plumbing shared by BOM, WMIP, Open-Meteo and the warnings feed.

Every public fetch returns a ``ProviderResult``; nothing raises across the
client boundary. Internally, clients raise ``ProviderError`` and the
``_guard`` wrapper turns it into a failure result.

Failure statuses:
    TIMEOUT         upstream exceeded the request timeout
    UPSTREAM_ERROR  non-2xx status or malformed payload
    NETWORK_ERROR   DNS / connection failure
    NO_DATA         upstream answered but nothing usable survived filtering
    STALE_DATA      reading present but outside the freshness window
    INVALID_INPUT   caller passed an unusable key
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Generic, List, Optional, Protocol, TypeVar

import httpx

from gauge.app.core.clock import Clock, utc_now
from gauge.app.hydro.models import HistoryPoint, Reading

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Decimal places kept at normalisation; wind, pressure and percentages are whole
LEVEL_DECIMALS = 1
FLOW_DECIMALS = 1
RAIN_DECIMALS = 1
TEMPERATURE_DECIMALS = 1


class FetchStatus(str, Enum):
    """Outcome of a provider fetch."""
    SUCCESS = "success"
    TIMEOUT = "timeout"
    UPSTREAM_ERROR = "upstream_error"
    NETWORK_ERROR = "network_error"
    NO_DATA = "no_data"
    STALE_DATA = "stale_data"
    INVALID_INPUT = "invalid_input"


@dataclass
class ProviderResult(Generic[T]):
    """
    Single return type for all provider operations.

    Callers check ``success`` before using ``data``.
    """
    success: bool
    status: FetchStatus
    provider: str
    data: Optional[T] = None
    error_message: str = ""
    fetch_duration_ms: int = 0

    @classmethod
    def ok(cls, provider: str, data: T, duration_ms: int = 0) -> "ProviderResult[T]":
        return cls(True, FetchStatus.SUCCESS, provider, data, "", duration_ms)

    @classmethod
    def failure(
        cls, provider: str, status: FetchStatus, message: str, duration_ms: int = 0,
    ) -> "ProviderResult[T]":
        return cls(False, status, provider, None, message, duration_ms)


class ProviderError(Exception):
    """Raised inside a client; converted to a failure result at the boundary."""

    def __init__(self, status: FetchStatus, message: str):
        super().__init__(message)
        self.status = status
        self.message = message


def expect_shape(value: Any, kind: type, provider: str, what: str) -> Any:
    """Return ``value`` if it is a ``kind``; a missing value reads as empty."""
    if value is None:
        return kind()
    if not isinstance(value, kind):
        raise ProviderError(
            FetchStatus.UPSTREAM_ERROR,
            f"{provider} returned a malformed {what}: expected {kind.__name__}, got {type(value).__name__}",
        )
    return value


class WaterLevelProvider(Protocol):
    """Fetch contract the orchestrator depends on."""

    name: str

    async def fetch_one(self, station_id: str) -> ProviderResult[Reading]:
        ...

    async def fetch_history(
        self, station_id: str, lookback_hours: int = 24,
    ) -> ProviderResult[List[HistoryPoint]]:
        ...


class HttpProvider:
    """
    Base for HTTP-backed clients.

    Owns a lazily created ``httpx.AsyncClient`` unless one is injected
    (tests pass a client built on ``httpx.MockTransport``).
    """

    name = "provider"

    def __init__(
        self,
        base_url: str,
        timeout: float,
        *,
        client: Optional[httpx.AsyncClient] = None,
        clock: Clock = utc_now,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self._clock = clock
        self._http_client = client
        self._owns_client = client is None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers={"User-Agent": "gauge-telemetry/1.0"},
            )
        return self._http_client

    async def close(self) -> None:
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _request(
        self, method: str, url: str, *, timeout: Optional[float] = None, **kwargs: Any,
    ) -> httpx.Response:
        """Issue one request; map every transport failure to ``ProviderError``."""
        client = await self._get_client()
        try:
            response = await client.request(
                method, url, timeout=timeout or self.timeout, **kwargs,
            )
        except httpx.TimeoutException as e:
            raise ProviderError(
                FetchStatus.TIMEOUT,
                f"{self.name} request timed out after {timeout or self.timeout:.0f}s",
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(FetchStatus.NETWORK_ERROR, f"{self.name} request failed: {e}") from e

        if not response.is_success:
            raise ProviderError(
                FetchStatus.UPSTREAM_ERROR,
                f"{self.name} returned HTTP {response.status_code}",
            )
        return response

    async def _guard(self, operation: str, key: str, work: Awaitable[T]) -> ProviderResult[T]:
        """Await ``work`` and convert any provider failure into a result."""
        start = time.perf_counter()
        try:
            data = await work
        except ProviderError as e:
            duration_ms = int((time.perf_counter() - start) * 1000)
            logger.warning(
                "%s %s failed for %s: %s",
                self.name, operation, key, e.message,
                extra={"provider": self.name, "station_id": key, "duration_ms": duration_ms},
            )
            return ProviderResult.failure(self.name, e.status, e.message, duration_ms)
        except (ValueError, KeyError, TypeError, IndexError, AttributeError) as e:
            duration_ms = int((time.perf_counter() - start) * 1000)
            logger.warning(
                "%s %s returned a malformed payload for %s: %s",
                self.name, operation, key, e,
                extra={"provider": self.name, "station_id": key},
            )
            return ProviderResult.failure(
                self.name, FetchStatus.UPSTREAM_ERROR,
                f"{self.name} returned a malformed payload: {e}", duration_ms,
            )
        duration_ms = int((time.perf_counter() - start) * 1000)
        return ProviderResult.ok(self.name, data, duration_ms)
