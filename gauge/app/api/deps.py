"""
Shared route dependencies: service container access, rate limiting and
coordinate validation.
"""

from __future__ import annotations

from typing import Optional, Tuple

from fastapi import Request, Response

from gauge.app.core.errors import NotFoundError, RateLimitError, ValidationError
from gauge.app.core.rate_limit import RateLimitDecision, client_identity
from gauge.app.hydro.stations import get_station, is_valid_station_id
from gauge.app.pipeline.services import Services


def get_services(request: Request) -> Services:
    return request.app.state.services


def enforce_rate_limit(request: Request, response: Response) -> RateLimitDecision:
    """Count the request against the caller's window; 429 once it is spent."""
    services: Services = request.app.state.services
    identity = client_identity(
        request.headers, request.client.host if request.client else None,
    )
    decision = services.limiter.check(identity)
    if not decision.allowed:
        raise RateLimitError(
            f"Too many requests. Try again in {decision.retry_after} seconds.",
            retry_after=decision.retry_after,
            limit=decision.limit,
            reset_at=decision.reset_epoch,
        )
    response.headers["X-RateLimit-Limit"] = str(decision.limit)
    response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
    response.headers["X-RateLimit-Reset"] = str(decision.reset_epoch)
    return decision


def validate_coordinates(
    latitude: Optional[float], longitude: Optional[float],
) -> Optional[Tuple[float, float]]:
    """
    Check an optional coordinate pair.

    Returns None when both are omitted. Supplying only one, or a value
    outside the valid range, raises ``ValidationError``.
    """
    if latitude is None and longitude is None:
        return None
    if latitude is None or longitude is None:
        raise ValidationError(
            "Both lat and lng are required when either is given",
            field="lat" if latitude is None else "lng",
        )
    if not -90 <= latitude <= 90:
        raise ValidationError("Latitude must be between -90 and 90", field="lat", value=latitude)
    if not -180 <= longitude <= 180:
        raise ValidationError("Longitude must be between -180 and 180", field="lng", value=longitude)
    return latitude, longitude


def known_station(station_id: str) -> str:
    """Normalise a station id; 422 if malformed, 404 if not in the registry."""
    station_id = station_id.strip().upper()
    if not is_valid_station_id(station_id):
        raise ValidationError(
            "Station id must be six digits followed by a letter", field="station_id", value=station_id,
        )
    if get_station(station_id) is None:
        raise NotFoundError("Station", station_id=station_id)
    return station_id
