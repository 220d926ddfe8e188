"""
Distance / drive-time quoting.

Given two locations, ask the directions provider for a traffic-aware driving
route. If no usable leg comes back, geocode the address-only endpoints to place
references and retry exactly once. Failures are returned as a ``Quote`` with
``success=False`` and the provider's reason; nothing is raised.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Optional

from django.conf import settings
from django.utils import timezone

from .directions import DirectionsClient, DirectionsError

logger = logging.getLogger(__name__)

METERS_TO_MILES = 0.000621371


@dataclass(frozen=True)
class Location:
    """A place reference, a free-text address, raw coordinates, or a mix."""
    lat: Optional[float] = None
    lng: Optional[float] = None
    address: str = ""
    place_id: str = ""

    @classmethod
    def from_payload(cls, data: Dict[str, Any]) -> "Location":
        lat = data.get("lat", data.get("latitude"))
        lng = data.get("lng", data.get("longitude"))
        return cls(
            lat=float(lat) if lat is not None else None,
            lng=float(lng) if lng is not None else None,
            address=(data.get("address") or "").strip(),
            place_id=(data.get("placeId") or data.get("place_id") or "").strip(),
        )

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None

    def to_provider_param(self) -> str:
        """Place reference first, then address, then coordinates."""
        if self.place_id:
            return f"place_id:{self.place_id}"
        if self.address:
            return self.address
        if self.has_coordinates:
            return f"{self.lat},{self.lng}"
        return ""


@dataclass
class Quote:
    """Ephemeral quote; recomputed on demand, never stored."""
    success: bool
    distance_miles: Optional[float] = None
    drive_minutes: Optional[int] = None
    drive_seconds: Optional[int] = None
    computed_at: Optional[datetime] = None
    traffic_model: str = ""
    reason: str = ""
    debug: Dict[str, Any] = field(default_factory=dict)

    def as_payload(self) -> Dict[str, Any]:
        if not self.success:
            payload = {"success": False, "reason": self.reason}
            if self.debug:
                payload["debug"] = self.debug
            return payload
        return {
            "success": True,
            "distanceMiles": self.distance_miles,
            "driveMin": self.drive_minutes,
            "computedAt": int(self.computed_at.timestamp() * 1000),
            "trafficModel": self.traffic_model,
        }


def drive_minutes_from_seconds(seconds: float) -> int:
    """Round half up to whole minutes, never below 1."""
    return max(1, int(math.floor(seconds / 60 + 0.5)))


def miles_from_meters(meters: float) -> float:
    return round(meters * METERS_TO_MILES, 1)


def first_leg(data: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    routes = (data or {}).get("routes") or []
    if not routes:
        return None
    legs = routes[0].get("legs") or []
    return legs[0] if legs else None


class QuoteEngine:
    """Computes a ``Quote`` for an origin/destination pair."""

    def __init__(self, client: Optional[DirectionsClient] = None, traffic_model: Optional[str] = None):
        self.client = client or DirectionsClient()
        self.traffic_model = traffic_model or settings.QUOTE_TRAFFIC_MODEL

    def compute_quote(self, origin: Location, destination: Location) -> Quote:
        try:
            return self._compute(origin, destination)
        except DirectionsError as e:
            logger.warning("Quote failed: %s", e.reason)
            return Quote(success=False, reason=e.reason)
        except Exception as e:
            logger.exception("Unexpected quoting failure")
            return Quote(success=False, reason=str(e) or "ERROR")

    def _compute(self, origin: Location, destination: Location) -> Quote:
        o = origin.to_provider_param()
        d = destination.to_provider_param()
        if not o or not d:
            return Quote(success=False, reason="INVALID_LOCATION")

        data = self.client.directions(o, d, self.traffic_model)
        leg = first_leg(data)

        if leg is None:
            logger.info("No route leg for %s -> %s (status=%s); geocoding and retrying", o, d, data.get("status"))
            o = self._geocoded(origin, o)
            d = self._geocoded(destination, d)
            data = self.client.directions(o, d, self.traffic_model)
            leg = first_leg(data)

        if leg is None:
            return Quote(
                success=False,
                reason=data.get("status") or "NO_LEG",
                debug={"origin": o, "destination": d},
            )

        meters = (leg.get("distance") or {}).get("value") or 0
        seconds = (leg.get("duration_in_traffic") or {}).get("value")
        if seconds is None:
            seconds = (leg.get("duration") or {}).get("value")
        if seconds is None:
            seconds = 0

        return Quote(
            success=True,
            distance_miles=miles_from_meters(meters),
            drive_minutes=drive_minutes_from_seconds(seconds),
            drive_seconds=int(seconds),
            computed_at=timezone.now(),
            traffic_model=self.traffic_model,
        )

    def _geocoded(self, location: Location, current: str) -> str:
        if not location.address or location.place_id:
            return current
        place_id = self.client.geocode_place_id(location.address)
        return f"place_id:{place_id}" if place_id else current


QuoteFunction = Callable[[Location, Location], Quote]
