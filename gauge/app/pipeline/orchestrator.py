"""
Source orchestrator — batched, priority-ordered water level reconciliation.

Algorithm:
    1. Sweep the primary provider over every requested station in batches
       of ``batch_size``. A batch runs concurrently and is awaited before the
       next one starts, which keeps per-upstream concurrency bounded.
    2. Accept a reading only when ``0 <= now - t < freshness window``.
    3. Sweep the next provider over the stations still missing, same rule.
       A later provider never starts before the earlier sweep completes, and
       never replaces a reading already accepted.
    4. Attach a flood status using each station's thresholds.

``sources`` lists the contributing providers in query order, or
``["unavailable"]`` when none produced a fresh reading. Every failure is
recorded as ``"provider: station: message"``; none aborts the sweep.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import (
    Any, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, TypeVar,
)

from gauge.app.core.clock import Clock, utc_now
from gauge.app.hydro.models import (
    UNAVAILABLE_SOURCE,
    AggregateResult,
    DamStation,
    DamStorageReading,
    FloodThresholds,
    HistoryPoint,
    Reading,
    Station,
)
from gauge.app.hydro.stations import get_station, get_thresholds
from gauge.app.hydro.status import classify_status
from gauge.app.sources.base import FetchStatus, ProviderResult, WaterLevelProvider
from gauge.app.sources.bom import BomClient

logger = logging.getLogger(__name__)

T = TypeVar("T")


def batched(items: Sequence[T], size: int) -> Iterable[Sequence[T]]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


def _unexpected(provider: str, error: Exception) -> ProviderResult[Any]:
    return ProviderResult.failure(
        provider, FetchStatus.UPSTREAM_ERROR, f"{provider} failed unexpectedly: {type(error).__name__}: {error}",
    )


@dataclass
class ExtendedData:
    """Discharge and rainfall readings keyed by station id."""
    discharge: Dict[str, Reading] = field(default_factory=dict)
    rainfall: Dict[str, Reading] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)


@dataclass
class StationDetail:
    station: Station
    thresholds: FloodThresholds
    reading: Optional[Reading]
    history: List[HistoryPoint]
    history_source: Optional[str]
    sources: List[str]
    errors: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "station": self.station.to_dict(),
            "thresholds": self.thresholds.to_dict(),
            "reading": self.reading.to_dict() if self.reading else None,
            "history": [p.to_dict() for p in self.history],
            "history_source": self.history_source,
            "sources": list(self.sources),
            "errors": list(self.errors),
        }


class SourceOrchestrator:
    """Reconciles one reading per station from providers in priority order."""

    def __init__(
        self,
        providers: Sequence[WaterLevelProvider],
        *,
        bom: Optional[BomClient] = None,
        clock: Clock = utc_now,
        batch_size: int = 5,
        freshness_hours: float = 48.0,
    ):
        if not providers:
            raise ValueError("At least one water level provider is required")
        if batch_size < 1:
            raise ValueError("batch_size must be positive")
        self.providers = list(providers)
        self.bom = bom
        self._clock = clock
        self.batch_size = batch_size
        self.freshness = timedelta(hours=freshness_hours)

    @property
    def provider_names(self) -> List[str]:
        return [p.name for p in self.providers]

    def is_fresh(self, reading: Reading, now: datetime) -> bool:
        age = now - reading.timestamp
        return timedelta(0) <= age < self.freshness

    async def _run_batched(
        self,
        keys: Sequence[str],
        work: Callable[[str], Awaitable[T]],
        label: str,
        on_error: Callable[[str, Exception], T],
    ) -> Dict[str, T]:
        """Run ``work`` per key in bounded batches; an exception becomes ``on_error(key, exc)``."""
        results: Dict[str, T] = {}
        for index, batch in enumerate(batched(keys, self.batch_size)):
            outcomes = await asyncio.gather(*(work(k) for k in batch), return_exceptions=True)
            for key, outcome in zip(batch, outcomes):
                if isinstance(outcome, Exception):
                    logger.error(
                        "%s fetch for %s raised %s: %s", label, key, type(outcome).__name__, outcome,
                        extra={"provider": label, "station_id": key},
                    )
                    outcome = on_error(key, outcome)
                elif isinstance(outcome, BaseException):
                    raise outcome
                results[key] = outcome
            logger.debug(
                "%s batch %d done (%d stations)", label, index, len(batch),
                extra={"batch": index, "stations": len(batch)},
            )
        return results

    # ── Reconciliation ──

    async def aggregate(self, station_ids: Sequence[str]) -> AggregateResult:
        start = time.perf_counter()
        station_ids = list(dict.fromkeys(station_ids))
        accepted: Dict[str, Reading] = {}
        sources: List[str] = []
        errors: List[str] = []

        for provider in self.providers:
            missing = [sid for sid in station_ids if sid not in accepted]
            if not missing:
                break

            results = await self._run_batched(
                missing, provider.fetch_one, provider.name,
                lambda sid, e, name=provider.name: _unexpected(name, e),
            )
            now = self._clock()
            contributed = 0
            for sid in missing:
                result = results[sid]
                if not result.success or result.data is None:
                    errors.append(f"{provider.name}: {sid}: {result.error_message or result.status.value}")
                    continue
                reading = result.data
                if not self.is_fresh(reading, now):
                    errors.append(
                        f"{provider.name}: {sid}: {FetchStatus.STALE_DATA.value} "
                        f"(reading at {reading.timestamp.isoformat()})"
                    )
                    logger.info(
                        "%s reading for %s is stale: %s", provider.name, sid, reading.timestamp.isoformat(),
                        extra={"provider": provider.name, "station_id": sid},
                    )
                    continue
                status = classify_status(reading.value, get_thresholds(sid))
                accepted[sid] = dataclasses.replace(reading, status=status)
                contributed += 1

            if contributed:
                sources.append(provider.name)
            logger.info(
                "%s returned fresh data for %d/%d stations",
                provider.name, contributed, len(missing),
                extra={"provider": provider.name, "stations": len(missing)},
            )

        if not sources:
            sources.append(UNAVAILABLE_SOURCE)
            logger.warning("No fresh water level data from any provider")

        result = AggregateResult(
            readings={sid: accepted.get(sid) for sid in station_ids},
            sources=sources,
            errors=errors,
        )
        logger.info(
            "Reconciled %d/%d stations from %s",
            result.reading_count, len(station_ids), ", ".join(sources),
            extra={"duration_ms": int((time.perf_counter() - start) * 1000)},
        )
        return result

    # ── Extended attributes ──

    async def fetch_extended(self, station_ids: Sequence[str]) -> ExtendedData:
        """Discharge and rainfall per station from BOM, merged by station id."""
        extended = ExtendedData()
        if self.bom is None:
            return extended
        bom = self.bom

        async def both(sid: str):
            return await asyncio.gather(bom.fetch_discharge(sid), bom.fetch_rainfall(sid))

        results = await self._run_batched(
            list(station_ids), both, "extended",
            lambda sid, e: (_unexpected(bom.name, e), _unexpected(bom.name, e)),
        )
        for sid, (discharge, rainfall) in results.items():
            if discharge.success and discharge.data is not None:
                extended.discharge[sid] = discharge.data
            elif discharge.status is not FetchStatus.NO_DATA:
                extended.errors.append(f"{bom.name}: {sid}: {discharge.error_message}")
            if rainfall.success and rainfall.data is not None:
                extended.rainfall[sid] = rainfall.data
            elif rainfall.status is not FetchStatus.NO_DATA:
                extended.errors.append(f"{bom.name}: {sid}: {rainfall.error_message}")
        return extended

    async def fetch_dam_storage(self, dams: Sequence[DamStation]) -> List[DamStorageReading]:
        if self.bom is None or not dams:
            return []
        results = await asyncio.gather(
            *(self.bom.fetch_dam_storage(d) for d in dams), return_exceptions=True,
        )
        storage: List[DamStorageReading] = []
        for dam, result in zip(dams, results):
            if isinstance(result, Exception):
                logger.error("dam storage fetch for %s raised %s", dam.id, result, extra={"station_id": dam.id})
            elif isinstance(result, BaseException):
                raise result
            elif result.success and result.data is not None:
                storage.append(result.data)
        return storage

    # ── Single station ──

    async def station_detail(self, station_id: str, hours: int = 24) -> Optional[StationDetail]:
        """
        Reconciled reading plus level history for one station.

        History comes from the provider that produced the reading, then the
        remaining providers in priority order. Returns None for an unknown id.
        """
        station = get_station(station_id)
        if station is None:
            return None

        aggregate = await self.aggregate([station_id])
        reading = aggregate.readings.get(station_id)
        errors = list(aggregate.errors)

        ordered = list(self.providers)
        if reading is not None:
            ordered.sort(key=lambda p: p.name != reading.source)

        history: List[HistoryPoint] = []
        history_source: Optional[str] = None
        for provider in ordered:
            result = await provider.fetch_history(station_id, hours)
            if result.success and result.data:
                history = result.data
                history_source = provider.name
                break
            errors.append(f"{provider.name}: {station_id}: history {result.error_message or result.status.value}")

        return StationDetail(
            station=station,
            thresholds=get_thresholds(station_id),
            reading=reading,
            history=history,
            history_source=history_source,
            sources=aggregate.sources,
            errors=errors,
        )
