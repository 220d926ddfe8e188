"""
Find eligible drivers for a ride.

A driver is eligible when they are online with a known position, their car
has enough seats for the ride type, they accept pets if the passenger brings
one, and they have not already declined (or are not currently holding) the
offer. Candidates are ordered closest first from the ride's origin.
"""

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List

from drivers.models import DriverProfile
from common.utils import calculate_distance
from services.quoting.pricing import seat_requirement

logger = logging.getLogger(__name__)


@dataclass
class DriverCandidate:
    """A driver the ride can be targeted at."""
    external_id: str
    name: str
    car: str
    seats: int
    distance_km: float

    def as_payload(self) -> Dict[str, Any]:
        return {
            "id": self.external_id,
            "name": self.name,
            "car": self.car,
            "seats": self.seats,
            "distanceKm": round(self.distance_km, 2) if math.isfinite(self.distance_km) else None,
        }


def find_candidate_drivers(ride: Dict[str, Any]) -> List[DriverCandidate]:
    """
    List eligible drivers for one ride document, closest first.

    Args:
        ride: Offer document (as returned by the offer store)

    Returns:
        DriverCandidate list sorted by distance from the ride's origin. When
        the ride has no origin coordinates every distance is infinite and the
        database order is kept.
    """
    excluded = set(ride.get("declined_driver_ids") or [])
    if ride.get("driver_id"):
        excluded.add(ride["driver_id"])

    drivers = DriverProfile.objects.filter(
        status=True,
        latitude__isnull=False,
        longitude__isnull=False,
        car_seats__gte=seat_requirement(ride.get("ride_type") or "standard"),
    ).exclude(external_id__in=excluded)

    if ride.get("traveling_with_pet"):
        drivers = drivers.filter(pets=True)

    origin_lat = ride.get("origin_latitude")
    origin_lng = ride.get("origin_longitude")

    candidates: List[DriverCandidate] = []
    for profile in drivers.order_by("id"):
        if origin_lat is None or origin_lng is None:
            distance_km = math.inf
        else:
            distance_km = calculate_distance(
                float(origin_lat),
                float(origin_lng),
                float(profile.latitude),
                float(profile.longitude),
            ) / 1000.0
        candidates.append(
            DriverCandidate(
                external_id=profile.external_id,
                name=profile.display_name,
                car=profile.car_label,
                seats=profile.car_seats,
                distance_km=distance_km,
            )
        )

    # Stable sort keeps id order for ties
    candidates.sort(key=lambda c: c.distance_km)

    logger.debug(
        "Found %d candidate drivers for ride %s (excluded=%d)",
        len(candidates), ride.get("id"), len(excluded),
    )
    return candidates
