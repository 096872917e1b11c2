"""
Per-client fixed-window rate limiter.

Each client identity gets a counter that resets when its window elapses.
State is process-wide but owned by an explicit ``RateLimiter`` instance with
an injected clock, so tests can advance time deterministically.

Memory stays bounded: expired windows are purged opportunistically, at most
once per window length, during ``check()``.

Usage:
    limiter = RateLimiter(limit=60, window_seconds=60)
    decision = limiter.check(client_identity(request))
    if not decision.allowed:
        raise RateLimitError(retry_after=decision.retry_after)
"""

from __future__ import annotations

import logging
import math
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Mapping, Optional

from gauge.app.core.clock import Clock, utc_now

logger = logging.getLogger(__name__)

# Header precedence for resolving the caller behind a proxy
IDENTITY_HEADERS = ("x-forwarded-for", "x-real-ip", "cf-connecting-ip")
UNKNOWN_IDENTITY = "unknown"


@dataclass
class _Window:
    count: int
    reset_at: datetime


@dataclass(frozen=True)
class RateLimitDecision:
    """Outcome of a single ``check()`` call."""
    allowed: bool
    limit: int
    remaining: int
    reset_at: datetime
    retry_after: int = 0  # whole seconds; 0 when allowed

    @property
    def reset_epoch(self) -> int:
        return int(self.reset_at.timestamp())


class RateLimiter:
    """Thread-safe fixed-window limiter keyed by client identity."""

    def __init__(
        self,
        limit: int = 60,
        window_seconds: float = 60,
        clock: Clock = utc_now,
    ):
        if limit < 1:
            raise ValueError("limit must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")
        self.limit = limit
        self.window = timedelta(seconds=window_seconds)
        self._clock = clock
        self._entries: Dict[str, _Window] = {}
        self._lock = threading.Lock()
        self._next_purge = clock() + self.window

    def check(self, identity: str) -> RateLimitDecision:
        """Count one request for ``identity`` and decide whether it may proceed."""
        now = self._clock()
        with self._lock:
            if now >= self._next_purge:
                self._purge_locked(now)
                self._next_purge = now + self.window

            entry = self._entries.get(identity)
            if entry is None or now >= entry.reset_at:
                entry = _Window(count=0, reset_at=now + self.window)
                self._entries[identity] = entry

            if entry.count >= self.limit:
                wait = (entry.reset_at - now).total_seconds()
                retry_after = max(1, math.ceil(wait))
                logger.warning(
                    "Rate limit exceeded for %s (retry in %ds)",
                    identity, retry_after,
                    extra={"identity": identity},
                )
                return RateLimitDecision(
                    allowed=False,
                    limit=self.limit,
                    remaining=0,
                    reset_at=entry.reset_at,
                    retry_after=retry_after,
                )

            entry.count += 1
            return RateLimitDecision(
                allowed=True,
                limit=self.limit,
                remaining=self.limit - entry.count,
                reset_at=entry.reset_at,
            )

    def purge_expired(self) -> int:
        """Drop every window that has already elapsed. Returns the number removed."""
        with self._lock:
            return self._purge_locked(self._clock())

    def _purge_locked(self, now: datetime) -> int:
        expired = [key for key, entry in self._entries.items() if now >= entry.reset_at]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Purged %d expired rate-limit windows", len(expired))
        return len(expired)

    def reset(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def client_identity(headers: Mapping[str, str], client_host: Optional[str] = None) -> str:
    """
    Resolve the caller identity from proxy headers.

    ``X-Forwarded-For`` may hold a chain; the first hop is the client.
    Falls back to the socket peer, then to ``"unknown"``.
    """
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    for name in IDENTITY_HEADERS[1:]:
        value = headers.get(name)
        if value and value.strip():
            return value.strip()
    return client_host or UNKNOWN_IDENTITY
