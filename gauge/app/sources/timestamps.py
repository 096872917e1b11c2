"""
Timestamp codec — provider time encodings ↔ canonical UTC instants.

WMIP (Hydstra) encodes times as 14-digit ``YYYYMMDDHHmmss`` strings in
Queensland standard time, a fixed UTC+10 with no daylight saving. The offset
is applied explicitly; host locale never participates.

Decoding never raises:
    malformed input  → "now", logged, ``malformed=True``
    > 30 days old    → kept, logged, ``suspect=True``
    > 60 s in future → kept, logged, ``suspect=True``

``encode_wmip`` is the exact inverse of ``decode_wmip`` at one-second
resolution and is used to build request windows.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Union

logger = logging.getLogger(__name__)

AEST = timezone(timedelta(hours=10), "AEST")
WMIP_FORMAT = "%Y%m%d%H%M%S"
_WMIP_PATTERN = re.compile(r"^\d{14}$")

MAX_PLAUSIBLE_AGE = timedelta(days=30)
MAX_FUTURE_SKEW = timedelta(seconds=60)


@dataclass(frozen=True)
class DecodedTimestamp:
    instant: datetime
    malformed: bool = False
    suspect: bool = False


def _check_plausible(instant: datetime, now: datetime, raw: str) -> bool:
    if now - instant > MAX_PLAUSIBLE_AGE:
        logger.warning("Timestamp %s is more than 30 days old (%s)", raw, instant.isoformat())
        return True
    if instant - now > MAX_FUTURE_SKEW:
        logger.warning("Timestamp %s is in the future (%s)", raw, instant.isoformat())
        return True
    return False


def decode_wmip(raw: Union[str, int, None], now: Optional[datetime] = None) -> DecodedTimestamp:
    """Decode a 14-digit AEST timestamp into a UTC instant."""
    now = now or datetime.now(timezone.utc)
    text = "" if raw is None else str(raw).strip()

    if not _WMIP_PATTERN.match(text):
        logger.warning("Malformed WMIP timestamp %r, substituting current time", raw)
        return DecodedTimestamp(instant=now, malformed=True)

    try:
        local = datetime.strptime(text, WMIP_FORMAT).replace(tzinfo=AEST)
    except ValueError:
        logger.warning("Invalid WMIP timestamp %r, substituting current time", raw)
        return DecodedTimestamp(instant=now, malformed=True)

    instant = local.astimezone(timezone.utc)
    return DecodedTimestamp(instant=instant, suspect=_check_plausible(instant, now, text))


def encode_wmip(instant: datetime) -> str:
    """Format an instant as a 14-digit AEST timestamp. Naive values are taken as UTC."""
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(AEST).strftime(WMIP_FORMAT)


def parse_iso(raw: Optional[str]) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp (BOM WaterML2, CAP feeds) into UTC.

    Offsets and a trailing ``Z`` are honoured; naive values are taken as UTC.
    Returns None for anything unparseable.
    """
    if not raw:
        return None
    text = raw.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.debug("Unparseable ISO timestamp %r", raw)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def local_hour_key(instant: datetime, utc_offset_seconds: int) -> str:
    """
    Render ``instant`` as the provider's local ``YYYY-MM-DDTHH:00`` hour label.

    Open-Meteo returns hourly series labelled in the requested timezone
    without an offset; the response carries ``utc_offset_seconds``.
    """
    tz = timezone(timedelta(seconds=utc_offset_seconds))
    return instant.astimezone(tz).strftime("%Y-%m-%dT%H:00")
